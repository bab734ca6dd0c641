"""Token extraction from Flask requests.

Workflows send their OIDC token in the ``Authorization: Bearer <token>``
header, usually from ``core.getIDToken()`` or the
``ACTIONS_ID_TOKEN_REQUEST_URL`` endpoint.
"""

from __future__ import annotations

from typing import Final

from flask import request

from .errors import MissingToken
from .protocols import Extractor

_JWT_SEGMENTS: Final[int] = 3


class BearerExtractor(Extractor):
    """Reads the workflow's OIDC token from an ``Authorization`` header.

    Only the shape of the token is checked here: a compact JWS with three
    dot-separated segments. Everything else is up to the verifier.

    Security Notes:
        - Workflow tokens are short-lived but replayable until ``exp``;
          accept them over HTTPS only
        - The token is never logged
    """

    def __init__(self, header: str = "Authorization") -> None:
        self._header = header

    def extract(self) -> str:
        """Return the raw OIDC token without the scheme prefix.

        Raises:
            MissingToken: If the header is absent, uses another scheme,
                or does not carry a three-segment JWT.
        """
        value = request.headers.get(self._header, "").strip()
        if not value:
            raise MissingToken(
                f"no OIDC token in the {self._header} header "
                "(does the workflow have 'id-token: write' permission?)"
            )

        scheme, _, token = value.partition(" ")
        if scheme.lower() != "bearer":
            raise MissingToken(f"expected '{self._header}: Bearer <OIDC token>'")

        token = token.strip()
        if token.count(".") != _JWT_SEGMENTS - 1 or not all(token.split(".")):
            raise MissingToken("bearer value is not a JWT (expected three dot-separated segments)")

        return token
