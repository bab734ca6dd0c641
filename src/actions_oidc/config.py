"""Environment-driven configuration.

Recognized variables (all optional):

    ACTIONS_OIDC_AUDIENCE       required ``aud`` member
    ACTIONS_OIDC_ISSUER         expected ``iss``
    ACTIONS_OIDC_JWKS_URL       key set endpoint
    ACTIONS_OIDC_CACHE_SECONDS  key set lifetime in seconds
    ACTIONS_OIDC_HTTP_TIMEOUT   key set fetch timeout in seconds
    ACTIONS_OIDC_POLICY_FILE    path to a JSON policy document

A ``.env`` file in the working directory is loaded first when reading
from the process environment.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Final

from dotenv import load_dotenv

from .claims import GITHUB_ISSUER
from .errors import ConfigurationError, PolicyError
from .jwks import DEFAULT_CACHE_DURATION, DEFAULT_JWKS_URL, DEFAULT_TIMEOUT
from .policy import Policy, validate_policy
from .verifier import VerifierOptions

ENV_PREFIX: Final[str] = "ACTIONS_OIDC_"


def load_policy_file(path: str | os.PathLike[str]) -> Policy:
    """Read, parse and validate a JSON policy document.

    Raises:
        ConfigurationError: If the file cannot be read or is not JSON.
        PolicyError: If the document is not a valid policy.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot load policy file {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise PolicyError("", "policy document must be a JSON object")

    policy = Policy.from_dict(data)
    validate_policy(policy)
    return policy


def options_from_env(environ: Mapping[str, str] | None = None) -> VerifierOptions:
    """Build :class:`VerifierOptions` from environment variables.

    Args:
        environ: Variables to read. When None, ``.env`` is loaded into the
            process environment and ``os.environ`` is used.

    Raises:
        ConfigurationError: On unparsable numbers or an unreadable policy.
        PolicyError: If the policy file is not a valid policy.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    def get(name: str) -> str | None:
        value = environ.get(ENV_PREFIX + name, "").strip()
        return value or None

    policy_file = get("POLICY_FILE")

    return VerifierOptions(
        policy=load_policy_file(Path(policy_file)) if policy_file else None,
        audience=get("AUDIENCE"),
        issuer=get("ISSUER") or GITHUB_ISSUER,
        jwks_url=get("JWKS_URL") or DEFAULT_JWKS_URL,
        cache_duration=_positive_float(get("CACHE_SECONDS"), "CACHE_SECONDS", DEFAULT_CACHE_DURATION),
        timeout=_positive_float(get("HTTP_TIMEOUT"), "HTTP_TIMEOUT", DEFAULT_TIMEOUT),
    )


def _positive_float(raw: str | None, name: str, default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
    return value
