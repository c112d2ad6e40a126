"""
In-memory result cache with TTL and per-key request coalescing.

Keys are SHA-256 digests of a canonical JSON rendering of the full request
(player pool, optimizer and simulation configuration), so identical requests
hit the same entry across processes.
"""

import copy
import dataclasses
import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def _canonical(obj: Any) -> Any:
    """Convert dataclasses, sets and mappings to JSON-stable structures."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _canonical(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, dict):
        return {str(k): _canonical(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return sorted(_canonical(v) for v in obj)
    if isinstance(obj, (list, tuple)):
        return [_canonical(v) for v in obj]
    if isinstance(obj, float) and obj.is_integer():
        return int(obj)
    return obj


# Fields whose list order carries no meaning
UNORDERED_FIELDS = frozenset({
    'locked_player_ids', 'excluded_player_ids', 'teams', 'games', 'positions', 'partner_positions',
})


def _sort_id_lists(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: sorted(v, key=str) if k in UNORDERED_FIELDS and isinstance(v, list) else _sort_id_lists(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [_sort_id_lists(v) for v in obj]
    return obj


def make_cache_key(**parts: Any) -> str:
    """
    Stable key for a request.

    Players and player-id lists are fingerprinted independent of input
    order. Nothing time-dependent goes into the key.
    """
    normalized = {}
    for name, value in parts.items():
        if name == 'players' and value is not None:
            value = sorted(value, key=lambda p: p.id)
        normalized[name] = _sort_id_lists(_canonical(value))
    payload = json.dumps(normalized, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


class _InFlight:
    """A computation in progress that concurrent callers wait on."""

    def __init__(self):
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[BaseException] = None


class ResultCache:
    """
    Thread-safe TTL cache.

    get_or_compute runs at most one computation per key at a time; concurrent
    callers for the same key block and receive the first computation's result
    (or its exception). Failed computations are not cached.

    The cache owns its entries: values are deep-copied on the way in and on
    every read, so callers may mutate what they receive.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 1000):
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._inflight: Dict[str, _InFlight] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._max_entries = max_entries
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Tuple[Any, bool]:
        """(value, True) on a live hit, (None, False) otherwise."""
        with self._lock:
            value, hit = self._get_locked(key)
        return (copy.deepcopy(value), True) if hit else (None, False)

    def _get_locked(self, key: str) -> Tuple[Any, bool]:
        entry = self._entries.get(key)
        if entry is None:
            return None, False
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None, False
        return value, True

    def set(self, key: str, value: Any, ttl: float):
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        value = copy.deepcopy(value)
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._evict_locked()
            self._entries[key] = (value, self._clock() + ttl)

    def _evict_locked(self):
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]
        if len(self._entries) >= self._max_entries:
            # Drop the entry closest to expiry
            oldest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest]

    def get_or_compute(self, key: str, compute: Callable[[], Any], ttl: float) -> Any:
        """Return the cached value, or compute it once across concurrent callers."""
        with self._lock:
            value, hit = self._get_locked(key)
            if not hit:
                flight = self._inflight.get(key)
                leader = flight is None
                if leader:
                    flight = _InFlight()
                    self._inflight[key] = flight
                    self.misses += 1
            else:
                self.hits += 1
        if hit:
            return copy.deepcopy(value)

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return copy.deepcopy(flight.value)

        try:
            result = compute()
            # Waiters copy from a private snapshot, never from the leader's result
            flight.value = copy.deepcopy(result)
        except BaseException as exc:
            flight.error = exc
            logger.warning("Cache compute failed for key %s: %s", key[:12], exc)
            raise
        else:
            self.set(key, flight.value, ttl)
        finally:
            with self._lock:
                self._inflight.pop(key, None)
            flight.done.set()

        return result

    def invalidate(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
