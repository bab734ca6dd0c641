"""GitHub Actions OIDC token verification using PyJWT.

This module ties the pieces together:
- Rejects untrusted signing algorithms from the (unverified) header
- Resolves the signing key via a :class:`~actions_oidc.protocols.KeyResolver`
- Validates signature and time claims using PyJWT
- Validates issuer and required workflow claims
- Checks the audience
- Evaluates the configured policy

Every failure short-circuits and surfaces as an
:class:`~actions_oidc.errors.AuthError` subclass.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

import jwt

from .claims import GITHUB_ISSUER, ActionsClaims
from .errors import (
    AccessDenied,
    AuthError,
    ExpiredToken,
    InvalidAudience,
    InvalidSignature,
    InvalidToken,
    TokenNotYetValid,
)
from .jwks import DEFAULT_CACHE_DURATION, DEFAULT_JWKS_URL, DEFAULT_TIMEOUT, KeyCache
from .policy import EvaluationResult, Policy, evaluate, validate_policy
from .protocols import TokenVerifier

if TYPE_CHECKING:
    from .protocols import Clock, HTTPSession, KeyResolver

logger = logging.getLogger(__name__)

RSA_ALGORITHMS: Final[tuple[str, ...]] = ("RS256", "RS384", "RS512")
"""Signing algorithms trusted for GitHub Actions tokens."""


@dataclass(frozen=True, slots=True)
class VerifierOptions:
    """Configuration for a :class:`Verifier`.

    Attributes:
        policy: Authorization policy. None allows every verified token.
        audience: Required member of the token's ``aud``. None or an empty
            string skips the audience check (not recommended: any workflow
            could replay a token minted for another service).
        issuer: Expected ``iss``.
        jwks_url: Key set endpoint.
        cache_duration: Seconds a fetched key set stays fresh.
        timeout: HTTP timeout for key set fetches.
        session: HTTP client for key set fetches. A new
            ``requests.Session`` when None.
        clock: Time source for the key cache.

    Example:
        ```python
        options = VerifierOptions(
            audience="https://deploy.example.com",
            policy=load_policy_file("policy.json"),
        )
        verifier = Verifier(options)
        ```
    """

    policy: Policy | None = None
    audience: str | None = None
    issuer: str = GITHUB_ISSUER
    jwks_url: str = DEFAULT_JWKS_URL
    cache_duration: float = DEFAULT_CACHE_DURATION
    timeout: float = DEFAULT_TIMEOUT
    session: HTTPSession | None = field(default=None, compare=False)
    clock: Clock = field(default=time.time, compare=False)

    def __post_init__(self) -> None:
        # An empty audience means "unchecked", same as None
        if not self.audience:
            object.__setattr__(self, "audience", None)


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """Verified claims together with the policy decision that admitted them."""

    claims: ActionsClaims
    policy_result: EvaluationResult


class Verifier(TokenVerifier):
    """Verifies GitHub Actions OIDC tokens and authorizes them against a policy.

    Thread Safety:
        Safe to share. The options and policy are immutable and the key
        cache only swaps whole snapshots.

    Example:
        ```python
        verifier = Verifier(VerifierOptions(audience="https://deploy.example.com"))

        try:
            result = verifier.verify(raw_token)
        except AccessDenied as e:
            ...  # valid token, not allowed
        except AuthError as e:
            if e.retryable:
                ...  # JWKS unavailable, retry later
        ```
    """

    def __init__(
        self,
        options: VerifierOptions | None = None,
        *,
        key_resolver: KeyResolver | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            options: Verification settings. Defaults apply when None.
            key_resolver: Overrides the :class:`KeyCache` built from
                ``options``.

        Raises:
            PolicyError: If ``options.policy`` is invalid.
            ConfigurationError: If ``cache_duration`` or ``timeout`` is not
                positive.
        """
        self._opt = options or VerifierOptions()

        # Fail closed at construction rather than per request
        validate_policy(self._opt.policy)

        self._cache: KeyCache | None = None
        if key_resolver is None:
            self._cache = KeyCache(
                url=self._opt.jwks_url,
                cache_duration=self._opt.cache_duration,
                session=self._opt.session,
                timeout=self._opt.timeout,
                clock=self._opt.clock,
            )
            key_resolver = self._cache
        self._keys: KeyResolver = key_resolver

    @property
    def options(self) -> VerifierOptions:
        return self._opt

    def close(self) -> None:
        """Close the key cache built by this verifier.

        An injected ``key_resolver`` is left to its owner.
        """
        if self._cache is not None:
            self._cache.close()

    def __enter__(self) -> Verifier:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def verify(self, token: str) -> VerificationResult:
        """Verify ``token`` and evaluate the policy.

        Args:
            token: Raw JWT string.

        Returns:
            The verified claims and the (allowing) policy decision.

        Raises:
            InvalidSignature: Untrusted algorithm or bad signature.
            InvalidToken: Malformed token or missing claims.
            ExpiredToken, TokenNotYetValid: Time claims out of range.
            InvalidIssuer, InvalidAudience: Wrong issuer or audience.
            KeyNotFound, JWKSFetchError: Key resolution failed.
            AccessDenied: The policy denied the caller.
        """
        try:
            claims = self._parse(token)
            claims.validate(self._opt.issuer)
            self._check_audience(claims)
        except AuthError as e:
            logger.debug("Token rejected (%s): %s", e.category, e.reason)
            raise

        result = evaluate(self._opt.policy, claims)
        if not result.allowed:
            logger.info(
                "Policy denied %s at %s (%s)", claims.repository, claims.ref, result.reason
            )
            raise AccessDenied(result.reason, result=result)

        return VerificationResult(claims=claims, policy_result=result)

    def _parse(self, token: str) -> ActionsClaims:
        # Step 1: inspect the unverified header. Nothing in it is trusted;
        # it only selects the algorithm family and the key.
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise InvalidToken(str(e)) from e

        alg = header.get("alg")
        if alg not in RSA_ALGORITHMS:
            raise InvalidSignature(f"unexpected signing method: {alg}")

        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise InvalidToken("missing kid in token header")

        # Step 2: resolve the key
        try:
            key = self._keys.resolve(kid)
        except AuthError:
            raise
        except Exception as e:
            raise InvalidToken(f"Key resolution failed: {e}") from e

        # Step 3: signature and time claims. Issuer and audience are checked
        # afterwards so their failures get their own categories.
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=list(RSA_ALGORITHMS),
                options={"verify_aud": False, "verify_iss": False},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken("token has expired") from e
        except jwt.ImmatureSignatureError as e:
            raise TokenNotYetValid(str(e)) from e
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            raise InvalidSignature(str(e)) from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken(str(e)) from e

        return ActionsClaims.from_mapping(payload)

    def _check_audience(self, claims: ActionsClaims) -> None:
        if self._opt.audience is None:
            return
        if self._opt.audience not in claims.aud:
            raise InvalidAudience("audience mismatch")


def verify_token(token: str, options: VerifierOptions | None = None) -> VerificationResult:
    """Verify a single token with a throwaway :class:`Verifier`.

    Convenient for scripts. Long-running services should keep one
    ``Verifier`` so the key set stays cached between calls.
    """
    with Verifier(options) as verifier:
        return verifier.verify(token)
