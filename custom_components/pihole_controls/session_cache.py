"""Bounded, time-limited cache of authenticated Pi-hole sessions."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
import time

from .const import SESSION_CACHE_MAX_ENTRIES, SESSION_TTL_SECONDS

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PiHoleSession:
    """An authenticated session returned by the device's auth endpoint."""

    sid: str
    csrf: str | None
    created_at: float


class PiHoleSessionCache:
    """Map connection fingerprints to sessions.

    Entries expire lazily after the TTL. When a new fingerprint is stored at
    capacity, the entry with the oldest creation time is evicted. All access
    is serialized through a single lock, so several API clients (one per
    connection profile) may share one cache.
    """

    def __init__(
        self,
        ttl: float = SESSION_TTL_SECONDS,
        max_entries: int = SESSION_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: Seconds after creation at which a session is considered stale.
            max_entries: Maximum number of live sessions.
            clock: Monotonic time source, injectable for tests.
        """
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._sessions: dict[str, PiHoleSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def now(self) -> float:
        """Return the cache's current time."""
        return self._clock()

    def _is_expired(self, session: PiHoleSession, now: float) -> bool:
        return now - session.created_at > self._ttl

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, session in self._sessions.items() if self._is_expired(session, now)]
        for key in expired:
            del self._sessions[key]
        if expired:
            _LOGGER.debug("Purged %d expired session(s)", len(expired))

    async def async_get(self, fingerprint: str) -> PiHoleSession | None:
        """Return the live session for a fingerprint, or None."""
        async with self._lock:
            self._purge_expired(self._clock())
            return self._sessions.get(fingerprint)

    async def async_set(self, fingerprint: str, session: PiHoleSession) -> None:
        """Store a session, evicting the oldest entry when full."""
        async with self._lock:
            self._purge_expired(self._clock())
            if fingerprint not in self._sessions and len(self._sessions) >= self._max_entries:
                oldest = min(self._sessions, key=lambda key: self._sessions[key].created_at)
                del self._sessions[oldest]
                _LOGGER.debug("Session cache full, evicted oldest entry")
            self._sessions[fingerprint] = session

    async def async_remove(self, fingerprint: str) -> None:
        """Drop the session for a fingerprint, if any."""
        async with self._lock:
            self._sessions.pop(fingerprint, None)

    async def async_clear(self) -> None:
        """Drop every cached session."""
        async with self._lock:
            self._sessions.clear()
