"""Verification, authorization and configuration errors.

This module defines the exception hierarchy for OIDC token verification
failures. All errors inherit from AuthError to allow catch-all handling.

Every error carries:
    category: Stable identifier for programmatic branching. Never parse
        the message text; compare the category (or the class) instead.
    reason: Human-readable detail for logs.
    error_code: HTTP status the Flask integration answers with.
    retryable: True only for transient failures (the JWKS endpoint was
        unreachable); the caller may retry later with the same token.

Security Note:
    Reasons can mention claim names and key identifiers. Log them
    server-side; return only the category to untrusted clients.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from .policy import EvaluationResult


class AuthError(Exception):
    """Base exception for all verification and authorization failures.

    Attributes:
        reason: Human-readable detail, may be empty.
    """

    category: ClassVar[str] = "auth_error"
    error_code: ClassVar[int] = 401
    retryable: ClassVar[bool] = False
    default_reason: ClassVar[str] = "authentication failed"

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.reason:
            return f"{self.default_reason}: {self.reason}"
        return self.default_reason

    @property
    def description(self) -> str:
        """Message suitable for an HTTP error body."""
        return str(self)


class MissingToken(AuthError):  # noqa: N818
    """Raised when no bearer token is found in the request."""

    category = "missing_token"
    default_reason = "missing token"


class InvalidToken(AuthError):  # noqa: N818
    """Raised when a token is present but structurally unacceptable.

    This occurs when:
    - Token is malformed (not a valid JWT structure)
    - The header has no string `kid`
    - A required claim is missing or not a string
    - Any other structural validation fails
    """

    category = "invalid_token"
    default_reason = "invalid token"


class TokenNotYetValid(InvalidToken):
    """Raised when the token's `nbf` or `iat` lies in the future."""

    category = "token_not_yet_valid"
    default_reason = "token not valid yet"


class ExpiredToken(AuthError):  # noqa: N818
    """Raised when a token's expiration time (exp claim) has passed.

    Never retry with the same token: the workflow has to request a new one.
    """

    category = "token_expired"
    default_reason = "token expired"


class InvalidSignature(AuthError):
    """Raised when the signature does not verify or the algorithm is untrusted.

    Tokens signed with anything outside the RSA PKCS#1 family are rejected
    before any key lookup, which closes the HMAC key-confusion hole.
    """

    category = "invalid_signature"
    default_reason = "invalid signature"


class InvalidIssuer(AuthError):
    """Raised when `iss` is not the expected OIDC provider."""

    category = "invalid_issuer"
    default_reason = "invalid issuer"


class InvalidAudience(AuthError):
    """Raised when the configured audience is not listed in `aud`."""

    category = "invalid_audience"
    default_reason = "invalid audience"


class AccessDenied(AuthError):
    """Raised when a valid token is rejected by the policy.

    The token is cryptographically and structurally valid; the caller
    simply is not allowed. This is the only error that maps to 403.

    Attributes:
        result: The policy evaluation that produced the denial.
    """

    category = "access_denied"
    error_code = 403
    default_reason = "access denied by policy"

    def __init__(self, reason: str = "", result: EvaluationResult | None = None) -> None:
        self.result = result
        super().__init__(reason)


class KeyNotFound(AuthError):  # noqa: N818
    """Raised when the token's `kid` is absent from a freshly fetched key set."""

    category = "key_not_found"
    default_reason = "signing key not found"


class JWKSFetchError(AuthError):
    """Raised when the key set cannot be fetched or parsed.

    Covers transport errors, non-200 responses and malformed bodies. The
    underlying exception is chained as ``__cause__``. This is the only
    retryable failure.
    """

    category = "jwks_fetch_failed"
    error_code = 503
    retryable = True
    default_reason = "failed to fetch JWKS"


class ConfigurationError(AuthError):
    """Raised when the verifier is constructed with unusable settings.

    Surfaces at startup, never at request time.
    """

    category = "configuration"
    error_code = 500
    default_reason = "invalid configuration"


class PolicyError(ConfigurationError):
    """Raised when a policy fails validation.

    Attributes:
        rule: Name of the offending rule, a positional ``rule[<i>]``
            identifier for unnamed rules, or "" for policy-level problems.
    """

    category = "invalid_policy"

    def __init__(self, rule: str, reason: str) -> None:
        self.rule = rule
        super().__init__(reason)

    def __str__(self) -> str:
        if self.rule:
            return f"policy error in rule {self.rule!r}: {self.reason}"
        return f"policy error: {self.reason}"
