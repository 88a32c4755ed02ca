"""Model for bearer authentication challenges."""

import re
from dataclasses import dataclass
from typing import Self

from ..exceptions import AuthProtocolError

BEARER_PREFIX = "Bearer "

# One key="value" pair, followed by a comma or the end of the input.  Values
# may themselves contain commas (scope="repository:foo:pull,delete").
_PAIR = re.compile(r'\s*(\w+)="([^"]*)"\s*(?:,|$)')


def extract_key_value_pairs(text: str) -> dict[str, str]:
    """Parse comma-separated ``key="value"`` pairs.

    Parameters
    ----------
    text
        Parameter list of a ``WWW-Authenticate`` header, without the
        authentication scheme.

    Returns
    -------
    dict of str to str
        The parsed pairs.  Empty if the input is empty or is not entirely
        made up of well-formed pairs.
    """
    result: dict[str, str] = {}
    pos = 0
    while pos < len(text):
        match = _PAIR.match(text, pos)
        if match is None:
            return {}
        result[match.group(1)] = match.group(2)
        pos = match.end()
    return result


@dataclass(frozen=True)
class AuthChallenge:
    """Where and how to ask for a bearer token."""

    realm: str
    service: str
    scope: str

    @classmethod
    def from_header(cls, header: str | None) -> Self:
        """Parse a ``WWW-Authenticate: Bearer ...`` header value.

        Raises
        ------
        AuthProtocolError
            Raised if the scheme is not ``Bearer`` or if ``realm``,
            ``service``, or ``scope`` is missing.
        """
        if not header or not header.startswith(BEARER_PREFIX):
            raise AuthProtocolError(
                f"Unsupported authentication challenge '{header or ''}'"
            )
        params = extract_key_value_pairs(header[len(BEARER_PREFIX) :])
        missing = [
            x for x in ("realm", "service", "scope") if x not in params
        ]
        if missing:
            raise AuthProtocolError(
                f"Authentication challenge '{header}' is missing "
                f"{', '.join(missing)}"
            )
        return cls(
            realm=params["realm"],
            service=params["service"],
            scope=params["scope"],
        )
