"""Minimalist function set of the Docker Distribution (v2) registry API.

We must be able to list repositories and tags, to get manifest digests and
creation times, and to delete manifests.

https://distribution.github.io/distribution/spec/api/
"""

import datetime

import httpx
import structlog
from pydantic import BaseModel, ValidationError
from structlog.stdlib import BoundLogger

from ..config import PrunerConfig
from ..exceptions import DecodeError, NetworkError
from ..models.manifest_version import ManifestVersion
from ..models.wire import CatalogPage, ManifestV1, TagList, V1Compatibility
from .auth import AuthSession

DIGEST_HEADER = "docker-content-digest"


def next_page_url(response: httpx.Response) -> str | None:
    """Extract the next page from a ``Link`` response header.

    The header looks like ``</v2/_catalog?last=b&n=2>; rel="next"``; we
    take what is between the first ``<`` and the last ``>``.  No header
    means this was the last page.
    """
    link = response.headers.get("link")
    if not link:
        return None
    begin = link.find("<") + 1
    end = link.rfind(">")
    if end < begin:
        return None
    return link[begin:end]


class RegistryClient:
    """Client for talking to a Docker Distribution registry.

    Note that these are synchronous, and that nothing is ever fetched in
    parallel: registries generally rate-limit requests, and the pruner has
    to look at one tag at a time anyway.

    Parameters
    ----------
    cfg
        Pruner configuration.
    http_client
        HTTP client to use.  If not given, one is created with the
        configured timeout and closed by `close`.
    logger
        Logger to use for messages.
    """

    def __init__(
        self,
        cfg: PrunerConfig,
        http_client: httpx.Client | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        self._url = str(cfg.registry).rstrip("/")
        self._page_size = cfg.page_size
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.Client(timeout=cfg.timeout)
        self.auth = AuthSession(
            self._http_client, auth=cfg.auth, logger=self._logger
        )

    def close(self) -> None:
        if self._owns_client:
            self._http_client.close()

    def list_repositories(self) -> list[str]:
        """Return all repository names in the registry catalog, following
        pagination.
        """
        repositories: list[str] = []
        url: str | None = "/v2/_catalog"
        params = {"n": str(self._page_size)} if self._page_size else None
        page = 0
        while url:
            page += 1
            self._logger.debug(f"Requesting catalog page {page}")
            r = self._request("GET", url, ManifestVersion.V2, params=params)
            catalog = self._decode(r, CatalogPage)
            repositories.extend(catalog.repositories)
            url = next_page_url(r)
        self._logger.debug(f"Found {len(repositories)} repositories")
        return repositories

    def list_tags(self, repository: str) -> list[str]:
        r = self._request(
            "GET", f"/v2/{repository}/tags/list", ManifestVersion.V2
        )
        return self._decode(r, TagList).tags

    def get_digest(self, repository: str, tag: str) -> str:
        """Return the digest of the manifest that a tag points to.

        This only issues a HEAD request: the digest is in a header.
        """
        r = self._request(
            "HEAD", f"/v2/{repository}/manifests/{tag}", ManifestVersion.V2
        )
        return self._digest(r)

    def get_manifest_created(
        self, repository: str, tag: str
    ) -> tuple[str, datetime.datetime]:
        """Return the digest and creation time of a tagged manifest.

        Only the schema v1 manifest records when the image was created, and
        it does so inside a JSON-encoded string in each history entry.  So
        we decode the manifest, then decode the newest (first) history entry
        a second time to get at ``created``.
        """
        r = self._request(
            "GET", f"/v2/{repository}/manifests/{tag}", ManifestVersion.V1
        )
        manifest = self._decode(r, ManifestV1)
        if not manifest.history:
            raise DecodeError(
                f"Manifest {repository}:{tag} has no history",
                method="GET",
                url=str(r.request.url),
            )
        try:
            compat = V1Compatibility.model_validate_json(
                manifest.history[0].v1_compatibility
            )
        except ValidationError as e:
            raise DecodeError(
                f"Cannot decode history of {repository}:{tag}: {e}",
                method="GET",
                url=str(r.request.url),
            ) from e
        return self._digest(r), compat.created

    def group_tags_by_digest(self, repository: str) -> dict[str, set[str]]:
        """Return a map of digest to the set of tags pointing at it.

        One request per tag; the API has no way to batch these.
        """
        result: dict[str, set[str]] = {}
        for tag in self.list_tags(repository):
            digest = self.get_digest(repository, tag)
            result.setdefault(digest, set()).add(tag)
        return result

    def delete_manifest(self, repository: str, digest: str) -> None:
        """Delete a manifest by digest.

        Never by tag: a tag may have been moved since we looked at it.
        """
        self._request(
            "DELETE", f"/v2/{repository}/manifests/{digest}", ManifestVersion.V2
        )

    def _request(
        self,
        method: str,
        url: str,
        version: ManifestVersion,
        *,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request, authenticating and retrying once if the
        registry answers with a challenge.
        """
        request = self._http_client.build_request(
            method,
            self._absolute(url),
            params=params,
            headers={"accept": version.content_type},
        )
        r = self._send(request)
        if r.status_code == httpx.codes.UNAUTHORIZED:
            self._logger.debug(f"Challenged on {method} {request.url.path}")
            self.auth.authenticate(r)
            r = self._send(request)
        if not r.is_success:
            raise NetworkError(
                f"Got non-success HTTP status {r.status_code} when sending"
                f" {method} {request.url.path}",
                method=method,
                url=str(request.url),
                status=r.status_code,
            )
        return r

    def _send(self, request: httpx.Request) -> httpx.Response:
        authorization = self.auth.authorization()
        if authorization is None:
            request.headers.pop("authorization", None)
        else:
            request.headers["authorization"] = authorization
        try:
            return self._http_client.send(request)
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Cannot send {request.method} {request.url.path}: {e}",
                method=request.method,
                url=str(request.url),
            ) from e

    def _absolute(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return self._url + url

    def _decode[T: BaseModel](
        self, r: httpx.Response, model: type[T]
    ) -> T:
        try:
            return model.model_validate_json(r.content)
        except ValidationError as e:
            raise DecodeError(
                f"Cannot decode response to {r.request.method}"
                f" {r.request.url.path}: {e}",
                method=r.request.method,
                url=str(r.request.url),
            ) from e

    def _digest(self, r: httpx.Response) -> str:
        digest = r.headers.get(DIGEST_HEADER)
        if not digest:
            raise DecodeError(
                f"No {DIGEST_HEADER} header in response to"
                f" {r.request.method} {r.request.url.path}",
                method=r.request.method,
                url=str(r.request.url),
            )
        return digest

