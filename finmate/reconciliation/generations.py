"""
Request-generation tokens.

Each logical fetch (the dashboard, one transaction list, ...) has a key.
Starting a fetch bumps the key's counter and hands back the new value;
when the response lands it is only applied if no newer fetch for the same
key started in the meantime.
"""

from collections import defaultdict


class RequestGenerations:
    """Monotonic counters per fetch key. Not shared across processes."""

    def __init__(self):
        self._current: dict[str, int] = defaultdict(int)

    def begin(self, key: str) -> int:
        """Start a new generation for ``key`` and return its token."""
        self._current[key] += 1
        return self._current[key]

    def current(self, key: str) -> int:
        return self._current[key]

    def is_current(self, key: str, token: int) -> bool:
        """True if ``token`` is still the latest generation for ``key``."""
        return self._current[key] == token

    def invalidate(self, key: str) -> None:
        """Make every in-flight fetch for ``key`` stale, e.g. on user switch."""
        self._current[key] += 1
