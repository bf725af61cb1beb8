"""Short-lived store that carries OAuth tokens across a redirect round trip.

Spotify and Google redirect back to us independently, and the user may
authorize them in either order. Before sending the user off to provider B
we park provider A's tokens here under the OAuth ``state`` value; B's
callback echoes ``state`` back and the tokens are picked up again.

Entries live for ten minutes at most. A background reaper sweeps abandoned
attempts every five minutes, and reads ignore anything past its TTL even if
the reaper has not run yet.
"""

import secrets
import threading
import time
from collections.abc import Callable
from types import TracebackType

from spot2yt.logging import logger
from spot2yt.models import CorrelationEntry, OAuthTokens

DEFAULT_TTL = 10 * 60.0
DEFAULT_SWEEP_INTERVAL = 5 * 60.0
TOKEN_BYTES = 16


class CorrelationStore:
    """Thread-safe TTL map of state token -> CorrelationEntry.

    Args:
        ttl: Seconds an entry stays readable after its last write.
        sweep_interval: Seconds between background sweeps.
        clock: Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CorrelationEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._reaper: threading.Thread | None = None

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def issue_token() -> str:
        """Return a fresh unguessable state token (32 hex chars)."""
        return secrets.token_hex(TOKEN_BYTES)

    def _expired(self, entry: CorrelationEntry, now: float) -> bool:
        return now - entry.timestamp > self._ttl

    def upsert(
        self,
        token: str,
        spotify_tokens: OAuthTokens | None = None,
        youtube_tokens: OAuthTokens | None = None,
    ) -> CorrelationEntry:
        """Merge whichever tokens are given into the entry for token.

        Absent arguments never clear a field that is already set.
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.get(token)
            if entry is None or self._expired(entry, now):
                entry = CorrelationEntry(timestamp=now)
                self._entries[token] = entry
            if spotify_tokens is not None:
                entry.spotify_tokens = spotify_tokens
            if youtube_tokens is not None:
                entry.youtube_tokens = youtube_tokens
            entry.timestamp = now
            snapshot = CorrelationEntry(entry.spotify_tokens, entry.youtube_tokens, entry.timestamp)

        logger.debug(
            "Parked tokens for state {}... (spotify={}, youtube={})",
            token[:8],
            snapshot.spotify_tokens is not None,
            snapshot.youtube_tokens is not None,
        )
        return snapshot

    def read(self, token: str) -> CorrelationEntry | None:
        """Return a copy of the entry for token, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                logger.debug("No parked tokens for state {}...", token[:8])
                return None
            if self._expired(entry, self._clock()):
                del self._entries[token]
                logger.debug("Parked tokens for state {}... expired", token[:8])
                return None
            return CorrelationEntry(entry.spotify_tokens, entry.youtube_tokens, entry.timestamp)

    def clear(self, token: str) -> None:
        """Delete the entry for token once it has been consumed."""
        with self._lock:
            removed = self._entries.pop(token, None)
        if removed is not None:
            logger.debug("Cleared parked tokens for state {}...", token[:8])

    def sweep(self) -> int:
        """Delete every entry older than the TTL. Returns number deleted."""
        with self._lock:
            now = self._clock()
            stale = [k for k, v in self._entries.items() if self._expired(v, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Swept {} expired authorization state(s)", len(stale))
        return len(stale)

    def _run_reaper(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            self.sweep()

    def start(self) -> None:
        """Start the background reaper thread (idempotent)."""
        if self._reaper is not None and self._reaper.is_alive():
            return
        self._stop.clear()
        self._reaper = threading.Thread(
            target=self._run_reaper, name="spot2yt-correlation-reaper", daemon=True
        )
        self._reaper.start()
        logger.debug("Correlation reaper started (every {}s)", self._sweep_interval)

    def stop(self) -> None:
        """Stop the reaper thread and wait for it to exit."""
        self._stop.set()
        if self._reaper is not None:
            self._reaper.join()
            self._reaper = None

    @property
    def running(self) -> bool:
        return self._reaper is not None and self._reaper.is_alive()

    def __enter__(self) -> "CorrelationStore":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()


_store: CorrelationStore | None = None
_store_lock = threading.Lock()


def get_store() -> CorrelationStore:
    """Get the process-wide store, starting its reaper on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = CorrelationStore()
            _store.start()
        return _store


def reset_store() -> None:
    """Stop and discard the process-wide store (for tests)."""
    global _store
    with _store_lock:
        if _store is not None:
            _store.stop()
        _store = None
