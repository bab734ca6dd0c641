"""Time-cached GitHub Actions JWKS.

Resolves a token's ``kid`` to an RSA public key, fetching the provider's
key set on demand.

Resolution Strategy
-------------------
For each requested ``kid``:

1) Snapshot lookup (fast path)
    - Read the current snapshot reference without locking.
    - Key present and snapshot younger than ``cache_duration`` → return.

2) Refresh
    - Fetch the whole key set, parse every RSA entry, swap in a new
      snapshot. Concurrent callers that observed the same stale snapshot
      share one fetch.

3) Re-check
    - Key present → return.
    - Still absent → :class:`KeyNotFound`. Not retried.

Failure Handling
----------------
Transport errors, non-200 responses and malformed bodies raise
:class:`JWKSFetchError` and leave the previous snapshot in place. If that
stale snapshot still holds the requested key it is served instead, so a
JWKS outage only affects keys we have never seen.

Malformed individual keys are skipped and logged; one bad entry cannot
poison the whole set.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

import jwt
import requests
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from .errors import ConfigurationError, JWKSFetchError, KeyNotFound
from .protocols import KeyResolver

if TYPE_CHECKING:
    from .protocols import Clock, HTTPSession

logger = logging.getLogger(__name__)

DEFAULT_JWKS_URL: Final[str] = "https://token.actions.githubusercontent.com/.well-known/jwks"
"""GitHub Actions JWKS endpoint."""

DEFAULT_CACHE_DURATION: Final[float] = 3600.0
"""Default snapshot lifetime in seconds (one hour)."""

DEFAULT_TIMEOUT: Final[float] = 10.0
"""Default HTTP timeout in seconds for a JWKS fetch."""

_RSA_KEY_TYPE: Final[str] = "RSA"


@dataclass(frozen=True, slots=True)
class KeySetSnapshot:
    """Immutable parsed key set.

    Attributes:
        keys: Read-only mapping of kid to public key.
        fetched_at: Clock time of the successful fetch, None if never fetched.
    """

    keys: Mapping[str, RSAPublicKey] = field(default_factory=lambda: MappingProxyType({}))
    fetched_at: float | None = None

    def age(self, now: float) -> float | None:
        if self.fetched_at is None:
            return None
        return now - self.fetched_at


class KeyCache(KeyResolver):
    """Resolves RSA signing keys from a JWKS endpoint with a time-based cache.

    Thread Safety:
        Readers only dereference ``self._snapshot``, which is replaced as a
        whole and never mutated. Writers serialize on ``_refresh_lock``.

    Parameters
    ----------
    url : str
        JWKS endpoint. Defaults to GitHub's.
    cache_duration : float
        Seconds a fetched key set stays fresh.
    session : HTTPSession | None
        HTTP client; a new ``requests.Session`` when omitted. A session
        created here is closed by :meth:`close`; a passed-in one is left
        to its owner.
    timeout : float
        Per-request timeout passed to ``session.get``.
    clock : Clock
        Time source, injectable for tests.

    Example
    -------
    with KeyCache(cache_duration=600) as cache:
        public_key = cache.resolve(kid)
    """

    def __init__(
        self,
        url: str = DEFAULT_JWKS_URL,
        cache_duration: float = DEFAULT_CACHE_DURATION,
        session: HTTPSession | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Clock = time.time,
    ) -> None:
        if cache_duration <= 0:
            raise ConfigurationError(f"cache_duration must be positive, got {cache_duration}")
        if timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout}")

        self._url = url or DEFAULT_JWKS_URL
        self._cache_duration = cache_duration
        self._owns_session = session is None
        self._session: HTTPSession = session if session is not None else requests.Session()
        self._timeout = timeout
        self._clock = clock

        self._refresh_lock = threading.Lock()
        self._snapshot = KeySetSnapshot()

    @property
    def url(self) -> str:
        return self._url

    @property
    def cache_duration(self) -> float:
        return self._cache_duration

    @property
    def fetched_at(self) -> float | None:
        """Clock time of the last successful refresh."""
        return self._snapshot.fetched_at

    def close(self) -> None:
        """Close the HTTP session if this cache created it."""
        if self._owns_session:
            self._session.close()  # type: ignore[attr-defined]

    def __enter__(self) -> KeyCache:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def resolve(self, kid: str) -> RSAPublicKey:
        """Return the public key for ``kid``, refreshing the key set if needed.

        Raises:
            KeyNotFound: If ``kid`` is absent after a refresh.
            JWKSFetchError: If the refresh failed and no cached copy of
                ``kid`` exists.
        """
        snapshot = self._snapshot
        key = snapshot.keys.get(kid)
        if key is not None and self._is_fresh(snapshot):
            return key

        try:
            snapshot = self._refresh(snapshot)
        except JWKSFetchError:
            if key is not None:
                logger.warning("JWKS refresh failed, serving cached key %s", kid)
                return key
            raise

        key = snapshot.keys.get(kid)
        if key is None:
            raise KeyNotFound(f"key ID {kid!r} not found in JWKS")
        return key

    def refresh(self) -> KeySetSnapshot:
        """Fetch the key set now, regardless of the snapshot's age.

        Raises:
            JWKSFetchError: If the fetch or parse failed.
        """
        with self._refresh_lock:
            return self._fetch_and_swap()

    def _is_fresh(self, snapshot: KeySetSnapshot) -> bool:
        age = snapshot.age(self._clock())
        return age is not None and age < self._cache_duration

    def _refresh(self, observed: KeySetSnapshot) -> KeySetSnapshot:
        with self._refresh_lock:
            # Another caller already replaced the snapshot we saw
            if self._snapshot is not observed:
                return self._snapshot
            return self._fetch_and_swap()

    def _fetch_and_swap(self) -> KeySetSnapshot:
        logger.debug("Fetching JWKS from %s", self._url)
        document = self._fetch()
        keys = parse_jwks(document)

        snapshot = KeySetSnapshot(keys=MappingProxyType(keys), fetched_at=self._clock())
        self._snapshot = snapshot
        logger.info("Loaded %d signing key(s) from %s", len(keys), self._url)
        return snapshot

    def _fetch(self) -> Mapping[str, Any]:
        try:
            response = self._session.get(self._url, timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning("JWKS request to %s failed: %s", self._url, e)
            raise JWKSFetchError(str(e)) from e

        if response.status_code != 200:
            logger.warning("JWKS endpoint %s returned HTTP %d", self._url, response.status_code)
            raise JWKSFetchError(f"HTTP {response.status_code}")

        try:
            document = response.json()
        except ValueError as e:
            raise JWKSFetchError(f"malformed JWKS body: {e}") from e

        if not isinstance(document, Mapping) or not isinstance(document.get("keys"), list):
            raise JWKSFetchError("malformed JWKS body: missing 'keys' array")

        return document


def parse_jwks(document: Mapping[str, Any]) -> dict[str, RSAPublicKey]:
    """Parse the RSA entries of a JWKS document.

    Non-RSA entries are ignored. RSA entries that PyJWT cannot load are
    logged and skipped.

    Returns:
        Mapping of kid to public key.
    """
    keys: dict[str, RSAPublicKey] = {}

    for entry in document.get("keys", []):
        if not isinstance(entry, Mapping) or entry.get("kty") != _RSA_KEY_TYPE:
            continue

        kid = entry.get("kid")
        if not isinstance(kid, str) or not kid:
            logger.warning("Skipping JWKS key without a kid")
            continue

        try:
            keys[kid] = jwk_to_public_key(entry)
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            logger.warning("Skipping malformed JWKS key %r: %s", kid, e)

    return keys


def jwk_to_public_key(entry: Mapping[str, Any]) -> RSAPublicKey:
    """Load an RSA public key from a single JWKS entry with :class:`jwt.PyJWK`.

    Raises:
        jwt.PyJWTError: If PyJWT rejects the entry (unknown ``alg``,
            missing ``n``/``e``).
        ValueError: If the entry does not describe a usable RSA public key.
        TypeError: If ``n`` or ``e`` is not a string.
    """
    key = jwt.PyJWK(dict(entry)).key
    if not isinstance(key, RSAPublicKey):
        raise ValueError("not an RSA public key")
    return key
