"""
GitHub Actions OIDC token verification and policy-based authorization.

High-level flow (per token)
---------------------------
1. `Verifier.verify(token)`:
   - Reads the unverified header, rejects non-RSA algorithms, takes the `kid`
   - Asks `KeyCache` for the public key of that `kid` (fetching the JWKS
     on a miss or when the cached set is older than `cache_duration`)
   - Runs `jwt.decode(...)` for signature and time claims
   - Checks issuer, required workflow claims and audience
2. The `Policy` decides allow/deny from the claims; first matching rule wins.
3. On success a `VerificationResult` carries the claims and the decision.
   Every failure is an `AuthError` subclass with a stable `category`.

Security notes
--------------
- Never trust claims until signature verification succeeds.
- Only RSA algorithms are accepted (no HMAC key confusion).
- Always configure an audience so tokens minted for other services are
  rejected.
- Policy patterns are trusted configuration; never build them from token
  contents.

Example usage
-------------

.. code-block:: python

    from actions_oidc import (
        Conditions,
        OIDCAuth,
        Policy,
        Rule,
        Verifier,
        VerifierOptions,
    )

    policy = Policy(
        rules=(
            Rule(
                name="main-pushes",
                conditions=Conditions(
                    repository=("myorg/*",),
                    ref=("refs/heads/main",),
                    event_name=("push",),
                ),
                effect="allow",
            ),
        ),
        default_deny=True,
    )

    verifier = Verifier(
        VerifierOptions(audience="https://deploy.example.com", policy=policy)
    )

    # Plain call
    result = verifier.verify(raw_token)
    print(result.claims.repository, result.policy_result.reason)

    # Or protect Flask routes
    auth = OIDCAuth(verifier)

    @app.post("/deploy")
    @auth.require()
    def deploy():
        return {"repository": g.oidc_claims.repository}
"""

# Claims
from .claims import GITHUB_ISSUER, REQUIRED_CLAIMS, ActionsClaims

# Configuration
from .config import load_policy_file, options_from_env

# Errors
from .errors import (
    AccessDenied,
    AuthError,
    ConfigurationError,
    ExpiredToken,
    InvalidAudience,
    InvalidIssuer,
    InvalidSignature,
    InvalidToken,
    JWKSFetchError,
    KeyNotFound,
    MissingToken,
    PolicyError,
    TokenNotYetValid,
)

# Extractors
from .extractors import BearerExtractor

# Flask extension
from .flask_extension import OIDCAuth

# Key cache
from .jwks import DEFAULT_JWKS_URL, KeyCache, KeySetSnapshot, jwk_to_public_key, parse_jwks

# Matcher
from .matcher import match, match_any

# Policy
from .policy import (
    Conditions,
    Effect,
    EvaluationResult,
    Policy,
    Rule,
    evaluate,
    validate_policy,
)

# Protocols
from .protocols import Clock, Extractor, HTTPSession, KeyResolver, TokenVerifier, ViewFunc

# Verifier
from .verifier import VerificationResult, Verifier, VerifierOptions, verify_token

__all__ = [
    # Errors
    "AuthError",
    "AccessDenied",
    "ConfigurationError",
    "ExpiredToken",
    "InvalidAudience",
    "InvalidIssuer",
    "InvalidSignature",
    "InvalidToken",
    "JWKSFetchError",
    "KeyNotFound",
    "MissingToken",
    "PolicyError",
    "TokenNotYetValid",
    # Protocols
    "Clock",
    "Extractor",
    "HTTPSession",
    "KeyResolver",
    "TokenVerifier",
    "ViewFunc",
    # Claims
    "ActionsClaims",
    "GITHUB_ISSUER",
    "REQUIRED_CLAIMS",
    # Matcher
    "match",
    "match_any",
    # Key cache
    "DEFAULT_JWKS_URL",
    "KeyCache",
    "KeySetSnapshot",
    "jwk_to_public_key",
    "parse_jwks",
    # Policy
    "Conditions",
    "Effect",
    "EvaluationResult",
    "Policy",
    "Rule",
    "evaluate",
    "validate_policy",
    # Verifier
    "VerificationResult",
    "Verifier",
    "VerifierOptions",
    "verify_token",
    # Configuration
    "load_policy_file",
    "options_from_env",
    # Extractors
    "BearerExtractor",
    # Flask extension
    "OIDCAuth",
]
