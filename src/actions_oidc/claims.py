"""Typed view over a verified GitHub Actions OIDC payload.

PyJWT hands back a plain ``dict``. The policy engine and callers work with
:class:`ActionsClaims` instead: a frozen record of the string attributes
GitHub puts in every workflow token, plus the registered JWT claims.

Reference: https://docs.github.com/actions/security-for-github-actions/security-hardening-your-deployments/about-security-hardening-with-openid-connect
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Final

from .errors import InvalidIssuer, InvalidToken

GITHUB_ISSUER: Final[str] = "https://token.actions.githubusercontent.com"
"""Issuer of GitHub Actions OIDC tokens."""

REQUIRED_CLAIMS: Final[tuple[str, ...]] = (
    "repository",
    "repository_owner",
    "ref",
    "workflow",
    "event_name",
    "actor",
)
"""Claims every workflow token must carry with a non-empty value."""

_NUMERIC_CLAIMS: Final[tuple[str, ...]] = ("exp", "iat", "nbf")


@dataclass(frozen=True, slots=True)
class ActionsClaims:
    """Claims carried by a GitHub Actions OIDC token.

    String attributes that are absent from the payload are ``""``. Optional
    attributes such as ``environment`` are only present when the job
    targets a deployment environment.

    Attributes:
        iss: Issuer.
        sub: Subject, e.g. ``repo:myorg/myrepo:ref:refs/heads/main``.
        aud: Audiences, always normalized to a tuple.
        exp, iat, nbf: Registered time claims (Unix seconds) or None.
        raw: Read-only view of the complete decoded payload.
    """

    iss: str = ""
    sub: str = ""
    aud: tuple[str, ...] = ()
    exp: int | None = None
    iat: int | None = None
    nbf: int | None = None
    jti: str = ""

    # Repository
    repository: str = ""
    repository_owner: str = ""
    repository_owner_id: str = ""
    repository_visibility: str = ""
    repository_id: str = ""

    # Git reference
    ref: str = ""
    ref_type: str = ""
    sha: str = ""

    # Workflow
    workflow: str = ""
    workflow_ref: str = ""
    workflow_sha: str = ""
    job_workflow_ref: str = ""
    job_workflow_sha: str = ""
    event_name: str = ""
    run_id: str = ""
    run_number: str = ""
    run_attempt: str = ""
    runner_environment: str = ""

    # Actor
    actor: str = ""
    actor_id: str = ""
    triggering_actor: str = ""

    # Deployment environment (optional)
    environment: str = ""

    # Enterprise (optional)
    enterprise_id: str = ""
    enterprise_slug: str = ""

    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> ActionsClaims:
        """Build claims from a decoded JWT payload.

        Unknown payload keys are kept in ``raw`` only.

        Raises:
            InvalidToken: If a known claim has the wrong JSON type.
        """
        values: dict[str, Any] = {}

        for f in fields(cls):
            if f.name == "raw" or f.name not in payload:
                continue

            raw_value = payload[f.name]
            if raw_value is None:
                continue

            if f.name == "aud":
                values["aud"] = _audiences(raw_value)
            elif f.name in _NUMERIC_CLAIMS:
                if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
                    raise InvalidToken(f"{f.name} claim must be numeric")
                values[f.name] = int(raw_value)
            else:
                if not isinstance(raw_value, str):
                    raise InvalidToken(f"{f.name} claim must be a string")
                values[f.name] = raw_value

        return cls(**values, raw=MappingProxyType(dict(payload)))

    def validate(self, issuer: str = GITHUB_ISSUER) -> None:
        """Check the issuer and the presence of required claims.

        Args:
            issuer: Expected ``iss`` value, compared exactly.

        Raises:
            InvalidIssuer: If ``iss`` differs from ``issuer``.
            InvalidToken: If a required claim is empty or missing.
        """
        if self.iss != issuer:
            raise InvalidIssuer(f"expected {issuer}")

        for name in REQUIRED_CLAIMS:
            if not getattr(self, name):
                raise InvalidToken(f"{name} claim is required")


def _audiences(raw_value: Any) -> tuple[str, ...]:
    # `aud` is either a single string or an array of strings
    if isinstance(raw_value, str):
        return (raw_value,)
    if isinstance(raw_value, (list, tuple)) and all(isinstance(a, str) for a in raw_value):
        return tuple(raw_value)
    raise InvalidToken("aud claim must be a string or an array of strings")
