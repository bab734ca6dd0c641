"""Flask extension that admits only authorized GitHub Actions workflows.

Security Model:
1. Extract the bearer token from the request
2. Verify it and evaluate the verifier's policy
3. Optionally evaluate a stricter per-route policy
4. Store the result in ``flask.g.oidc`` and the claims in ``flask.g.oidc_claims``
5. Convert auth errors to HTTP responses: 403 for policy denials, 503 when
   the key set is unreachable, 401 for everything else
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, abort, g

from .errors import AccessDenied, AuthError
from .extractors import BearerExtractor
from .policy import validate_policy

if TYPE_CHECKING:
    from .policy import Policy
    from .protocols import Extractor, TokenVerifier, ViewFunc

logger = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "actions_oidc"
"""Flask extensions registry key for OIDCAuth."""


class OIDCAuth:
    """
    Flask decorator glue for workflow authentication.

    Pattern:
        auth = OIDCAuth(verifier)
        auth.init_app(app)

    Usage:
        @app.post("/deploy")
        @auth.require(policy=production_policy)
        def deploy():
            return {"repository": g.oidc_claims.repository}
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        extractor: Extractor | None = None,
    ) -> None:
        self._verifier: TokenVerifier = verifier
        self._extractor: Extractor = extractor or BearerExtractor()

    def init_app(
        self,
        app: Flask,
        *,
        verifier: TokenVerifier | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        """Register the extension on ``app``, optionally swapping collaborators."""
        if verifier is not None:
            self._verifier = verifier
        if extractor is not None:
            self._extractor = extractor

        app.extensions[_EXT_KEY] = self

    def require(self, *, policy: Policy | None = None):
        """Decorator that protects a view.

        Args:
            policy: Extra policy for this route, evaluated after the
                verifier's own policy. Validated here, at import time.

        Raises:
            PolicyError: If ``policy`` is invalid.
        """
        validate_policy(policy)

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    token = self._extractor.extract()
                    result = self._verifier.verify(token)

                    if policy is not None:
                        route_result = policy.evaluate(result.claims)
                        if not route_result.allowed:
                            raise AccessDenied(route_result.reason, result=route_result)

                    g.oidc = result
                    g.oidc_claims = result.claims

                except AuthError as e:
                    abort(e.error_code, description=e.description)
                except Exception:
                    logger.exception("Unexpected error while verifying workflow token")
                    abort(401, description="Authentication failed")

                return view(*args, **kwargs)

            return wrapper

        return decorator
