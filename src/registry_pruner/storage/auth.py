"""Bearer token authentication for the Docker Distribution API.

https://distribution.github.io/distribution/spec/auth/token/
"""

import base64
from enum import Enum

import httpx
import structlog
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from ..config import RegistryAuth
from ..exceptions import AuthServiceError
from ..models.challenge import AuthChallenge
from ..models.wire import TokenResponse


class AuthState(Enum):
    """Whether the session currently holds a bearer token."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class AuthSession:
    """Holds the credentials presented to one registry.

    The session starts out unauthenticated, sending basic credentials (if
    any) with every request.  The first time the registry answers with a
    401 challenge, `authenticate` exchanges those credentials for a bearer
    token at the token service named by the challenge, and from then on
    that token is sent instead.

    The token is kept for the lifetime of the session no matter what scope
    it was issued for.  A registry that issues tokens scoped to a single
    repository will challenge again on the next repository, and the caller
    just authenticates again.

    Parameters
    ----------
    http_client
        Client used to talk to the token service.
    auth
        Basic credentials, if any.
    logger
        Logger to use for messages.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        auth: RegistryAuth | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._http_client = http_client
        self._auth = auth
        self._logger = logger or structlog.get_logger(__name__)
        self._token: str | None = None

    @property
    def state(self) -> AuthState:
        if self._token is None:
            return AuthState.UNAUTHENTICATED
        return AuthState.AUTHENTICATED

    def reset(self) -> None:
        """Forget the current token."""
        self._token = None

    def authorization(self) -> str | None:
        """Value for the ``Authorization`` header, if we have anything to
        send.
        """
        if self._token is not None:
            return f"Bearer {self._token}"
        basic = self._basic_credentials()
        if basic is None:
            return None
        user, password = basic
        encoded = base64.b64encode(f"{user}:{password}".encode()).decode()
        return f"Basic {encoded}"

    def authenticate(self, response: httpx.Response) -> None:
        """Answer the challenge carried by a 401 response.

        Parameters
        ----------
        response
            The rejected response.

        Raises
        ------
        AuthProtocolError
            Raised if the challenge header is missing or unusable.
        AuthServiceError
            Raised if the token service fails or returns no token.
        """
        challenge = AuthChallenge.from_header(
            response.headers.get("www-authenticate")
        )
        self._token = None
        self._logger.debug(
            f"Requesting token from {challenge.realm} for service"
            f" '{challenge.service}', scope '{challenge.scope}'"
        )
        params = {"service": challenge.service, "scope": challenge.scope}
        basic = self._basic_credentials()
        try:
            if basic is None:
                r = self._http_client.get(challenge.realm, params=params)
            else:
                r = self._http_client.get(
                    challenge.realm, params=params, auth=basic
                )
        except httpx.HTTPError as e:
            raise AuthServiceError(
                f"Cannot reach token service: {e}",
                method="GET",
                url=challenge.realm,
            ) from e
        if not r.is_success:
            raise AuthServiceError(
                f"Token service returned HTTP status {r.status_code}",
                method="GET",
                url=str(r.request.url),
            )
        try:
            token = TokenResponse.model_validate_json(r.content).token
        except ValidationError as e:
            raise AuthServiceError(
                "Token service response has no token",
                method="GET",
                url=str(r.request.url),
            ) from e
        self._token = token
        self._logger.debug(f"Authenticated for scope '{challenge.scope}'")

    def _basic_credentials(self) -> tuple[str, str] | None:
        if self._auth is None or self._auth.username is None:
            return None
        password = (
            self._auth.password.get_secret_value() if self._auth.password else ""
        )
        return (self._auth.username, password)
