"""Glob-style matching for policy conditions.

Supported wildcards:
    ``*``   matches any run of characters except ``/``
    ``**``  matches any run of characters including ``/``. A single ``/``
            right after ``**`` is optional, so ``myorg/**/file`` also
            matches ``myorg/file``.

Examples:
    >>> match("myorg/*", "myorg/myrepo")
    True
    >>> match("refs/heads/*", "refs/heads/feature/x")
    False
    >>> match("refs/heads/**", "refs/heads/feature/x")
    True

Trust boundary:
    Matching backtracks over every viable split point and is exponential
    on pathological patterns with many ambiguous wildcard boundaries.
    Patterns come from the operator's policy file, never from tokens, so
    this cost is bounded by whoever writes the policy.
"""

from __future__ import annotations

from collections.abc import Iterable


def match(pattern: str, value: str) -> bool:
    """Return True if ``value`` matches the glob ``pattern``."""
    return _match_at(pattern, 0, value, 0)


def match_any(patterns: Iterable[str], value: str) -> bool:
    """Return True if any of ``patterns`` matches ``value``.

    An empty pattern collection matches nothing.
    """
    return any(match(pattern, value) for pattern in patterns)


def _match_at(pattern: str, pi: int, value: str, vi: int) -> bool:
    plen = len(pattern)
    vlen = len(value)

    while True:
        if pi >= plen and vi >= vlen:
            return True

        if pi >= plen:
            return False

        if pattern.startswith("**", pi):
            pi += 2

            # Trailing ** swallows the rest of the value
            if pi >= plen:
                return True

            if pattern[pi] == "/":
                pi += 1

            return any(_match_at(pattern, pi, value, i) for i in range(vi, vlen + 1))

        if pattern[pi] == "*":
            pi += 1

            # Literal text after the * up to the pattern's next separator
            pattern_slash = pattern.find("/", pi)
            suffix_end = plen if pattern_slash < 0 else pattern_slash

            # * never crosses a separator in the value
            value_slash = value.find("/", vi)
            window_end = vlen if value_slash < 0 else value_slash

            if suffix_end == pi:
                return _match_at(pattern, pi, value, window_end)

            return any(
                _match_at(pattern, pi, value, i) for i in range(vi, window_end + 1)
            )

        if vi >= vlen:
            rest = pattern[pi:]
            return rest in ("*", "**", "")

        if pattern[pi] != value[vi]:
            return False

        pi += 1
        vi += 1
