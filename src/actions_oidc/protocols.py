"""Protocol definitions for the collaborators of the verifier.

This module defines structural interfaces using Protocol (PEP 544) for:
- Fetching the key set over HTTP
- Resolving signing keys
- Token verification
- Token extraction

Using protocols allows for duck-typing and easier testing/mocking without
requiring explicit inheritance. A ``requests.Session`` satisfies
:class:`HTTPSession`; tests pass small fakes instead.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

    from .verifier import VerificationResult

# ============================================================================
# Type Aliases
# ============================================================================

type Clock = Callable[[], float]
"""Returns the current time in seconds, like :func:`time.time`."""

type ViewFunc = Callable[..., Any]
"""Type alias for Flask view functions."""


# ============================================================================
# Core Protocols
# ============================================================================


class HTTPResponse(Protocol):
    """The part of ``requests.Response`` the key cache reads."""

    status_code: int

    def json(self) -> Any: ...


class HTTPSession(Protocol):
    """The part of ``requests.Session`` the key cache uses.

    Implementations raise ``requests.RequestException`` (or a subclass) on
    transport failures.
    """

    def get(self, url: str, *, timeout: float) -> HTTPResponse: ...


class KeyResolver(Protocol):
    """Protocol for turning a key identifier into a public key.

    Implemented by :class:`actions_oidc.jwks.KeyCache`.
    """

    def resolve(self, kid: str) -> RSAPublicKey:
        """Resolve a signing key by its ID.

        Raises:
            KeyNotFound: If ``kid`` is not in the provider's key set.
            JWKSFetchError: If the key set could not be fetched.
        """
        ...


class TokenVerifier(Protocol):
    """Protocol for token verification implementations."""

    def verify(self, token: str) -> VerificationResult:
        """Verify a token, evaluate the policy and return the result.

        Raises:
            AuthError: Any verification or authorization failure.
        """
        ...


class Extractor(Protocol):
    """Protocol for pulling the raw token out of the current Flask request."""

    def extract(self) -> str:
        """Return the raw JWT string.

        Raises:
            MissingToken: Token not found or improperly formatted.
        """
        ...
