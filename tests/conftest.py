"""Test fixtures for registry pruner."""

import base64
import datetime
import json
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest
from pydantic import HttpUrl, SecretStr

from registry_pruner.config import PrunerConfig, RegistryAuth
from registry_pruner.models.manifest_version import ManifestVersion
from registry_pruner.storage.registry import RegistryClient

REGISTRY = "https://registry.example.com"
REALM = "https://auth.example.com/token"
SERVICE = "registry.example.com"

_TAGS = re.compile(r"/v2/(?P<repo>.+)/tags/list")
_MANIFESTS = re.compile(r"/v2/(?P<repo>.+)/manifests/(?P<ref>[^/]+)")


def rfc3339(dt: datetime.datetime) -> str:
    """Format a timestamp the way the registry does, with nanoseconds."""
    return dt.astimezone(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%S.%f") + "123Z"


@dataclass
class FakeManifest:
    digest: str
    created: datetime.datetime


@dataclass
class FakeRegistry:
    """In-memory registry behind an `httpx.MockTransport`.

    If ``token`` is set, every registry request must carry it as a bearer
    token or be answered with a 401 challenge.
    """

    token: str | None = None
    username: str | None = None
    password: str | None = None
    page_size: int = 100
    repositories: dict[str, dict[str, FakeManifest]] = field(
        default_factory=dict
    )
    requests: list[httpx.Request] = field(default_factory=list)
    deleted: list[tuple[str, str]] = field(default_factory=list)
    token_requests: list[httpx.Request] = field(default_factory=list)

    def add(
        self,
        repository: str,
        tag: str,
        digest: str,
        created: datetime.datetime,
    ) -> None:
        tags = self.repositories.setdefault(repository, {})
        tags[tag] = FakeManifest(digest=digest, created=created)

    def registry_requests(self, method: str | None = None) -> list[str]:
        return [
            f"{r.method} {r.url.path}"
            for r in self.requests
            if method is None or r.method == method
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(REALM):
            self.token_requests.append(request)
            return self._token(request)
        self.requests.append(request)
        if self.token and (
            request.headers.get("authorization") != f"Bearer {self.token}"
        ):
            scope = "registry:catalog:*"
            path = request.url.path
            if match := _TAGS.fullmatch(path) or _MANIFESTS.fullmatch(path):
                scope = f"repository:{match.group('repo')}:pull,delete"
            challenge = (
                f'Bearer realm="{REALM}",service="{SERVICE}",scope="{scope}"'
            )
            return httpx.Response(
                401, headers={"www-authenticate": challenge}
            )
        path = request.url.path
        if path == "/v2/_catalog":
            return self._catalog(request)
        if match := _TAGS.fullmatch(path):
            return self._tags(match.group("repo"))
        if match := _MANIFESTS.fullmatch(path):
            return self._manifest(
                request, match.group("repo"), match.group("ref")
            )
        return httpx.Response(404)

    def _token(self, request: httpx.Request) -> httpx.Response:
        if self.username is not None:
            userpass = f"{self.username}:{self.password or ''}"
            expected = "Basic " + base64.b64encode(userpass.encode()).decode()
            if request.headers.get("authorization") != expected:
                return httpx.Response(401)
        return httpx.Response(200, json={"token": self.token})

    def _catalog(self, request: httpx.Request) -> httpx.Response:
        names = sorted(self.repositories)
        n = int(request.url.params.get("n", self.page_size))
        last = request.url.params.get("last")
        if last is not None:
            names = [x for x in names if x > last]
        page = names[:n]
        headers = {}
        if len(names) > n:
            headers["link"] = f'</v2/_catalog?last={page[-1]}&n={n}>; rel="next"'
        return httpx.Response(
            200, headers=headers, json={"repositories": page}
        )

    def _tags(self, repository: str) -> httpx.Response:
        if repository not in self.repositories:
            return httpx.Response(404)
        tags = list(self.repositories[repository]) or None
        return httpx.Response(200, json={"name": repository, "tags": tags})

    def _manifest(
        self, request: httpx.Request, repository: str, ref: str
    ) -> httpx.Response:
        tags = self.repositories.get(repository, {})
        if request.method == "DELETE":
            if not ref.startswith("sha256:"):
                return httpx.Response(400)
            moved = [t for t, m in tags.items() if m.digest == ref]
            if not moved:
                return httpx.Response(404)
            for tag in moved:
                del tags[tag]
            self.deleted.append((repository, ref))
            return httpx.Response(202)
        manifest = tags.get(ref)
        if manifest is None:
            return httpx.Response(404)
        headers = {"docker-content-digest": manifest.digest}
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        if request.headers.get("accept") != ManifestVersion.V1.content_type:
            return httpx.Response(
                200, headers=headers, json={"schemaVersion": 2}
            )
        older = manifest.created - datetime.timedelta(days=365)
        body = {
            "schemaVersion": 1,
            "name": repository,
            "tag": ref,
            "history": [
                {
                    "v1Compatibility": json.dumps(
                        {"id": "new", "created": rfc3339(manifest.created)}
                    )
                },
                {
                    "v1Compatibility": json.dumps(
                        {"id": "old", "created": rfc3339(older)}
                    )
                },
            ],
        }
        return httpx.Response(200, headers=headers, json=body)


def days_ago(days: int) -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC) - datetime.timedelta(
        days=days
    )


@pytest.fixture
def registry() -> FakeRegistry:
    """Registry holding the ``app`` repository and a couple of others."""
    reg = FakeRegistry()
    reg.add("app", "v1", "sha256:aaa", days_ago(40))
    reg.add("app", "v2", "sha256:aaa", days_ago(40))
    reg.add("app", "latest", "sha256:bbb", days_ago(1))
    reg.add("team/web", "v1.0", "sha256:ccc", days_ago(90))
    reg.add("team/web", "v1.1", "sha256:ddd", days_ago(10))
    return reg


@pytest.fixture
def http_client(registry: FakeRegistry) -> Iterator[httpx.Client]:
    with httpx.Client(transport=httpx.MockTransport(registry.handler)) as c:
        yield c


@pytest.fixture
def config() -> PrunerConfig:
    """Live-mode configuration matching ``v`` tags older than 30 days."""
    return PrunerConfig(
        registry=HttpUrl(REGISTRY),
        repositories=re.compile(".*"),
        tags=re.compile("v.*"),
        min_age=datetime.timedelta(days=30),
        dry_run=False,
        debug=True,
    )


@pytest.fixture
def auth_config(config: PrunerConfig) -> PrunerConfig:
    return config.model_copy(
        update={
            "auth": RegistryAuth(
                username="fbooth", password=SecretStr("hunter2")
            )
        }
    )


@pytest.fixture
def client(
    config: PrunerConfig, http_client: httpx.Client
) -> RegistryClient:
    return RegistryClient(config, http_client=http_client)


@pytest.fixture
def support_dir() -> Path:
    return Path(__file__).parent / "support"
