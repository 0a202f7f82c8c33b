# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Bounded in-memory cache of page-boundary checkpoints and prefix totals.

Pure performance state: anything missing here is recomputed by walking the
prefix again, so eviction and wholesale invalidation are always safe.
Built once per process and handed to every page request.
"""

import bisect
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

from walker import START, Checkpoint

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrefixSummary:
    total_items: int
    folders: tuple[str, ...]


class CheckpointCache:
    """LRU map of (prefix, boundary index) -> Checkpoint plus per-prefix summaries.

    Every method takes the lock for its whole body and never awaits, so
    concurrent requests see each write as a whole. Two writers racing on the
    same boundary store equivalent checkpoints; the last one wins.
    """

    def __init__(self, max_checkpoints: int = 4096, max_prefixes: int = 512, ttl: float = 3600):
        self.max_checkpoints = max_checkpoints
        self.max_prefixes = max_prefixes
        self.ttl = ttl

        self._checkpoints: OrderedDict[tuple[str, int], Checkpoint] = OrderedDict()
        self._boundaries: dict[str, list[int]] = {}  # prefix -> sorted boundary indexes
        self._summaries: OrderedDict[str, PrefixSummary] = OrderedDict()
        self._last_access: dict[str, float] = {}
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # ── Checkpoints ─────────────────────────────────────────────────────────

    def nearest(self, prefix: str, boundary: int) -> tuple[int, Checkpoint]:
        """Largest cached boundary <= boundary for prefix, else (0, START)."""
        with self._lock:
            indexes = self._boundaries.get(prefix)
            if indexes:
                self._last_access[prefix] = time.time()
                pos = bisect.bisect_right(indexes, boundary) - 1
                if pos >= 0:
                    index = indexes[pos]
                    key = (prefix, index)
                    self._checkpoints.move_to_end(key)
                    self._hits += 1
                    return index, self._checkpoints[key]
            self._misses += 1
            return 0, START

    def record(self, prefix: str, boundary: int, checkpoint: Checkpoint):
        # Boundary 0 is always the start of the prefix
        if boundary <= 0:
            return
        key = (prefix, boundary)
        with self._lock:
            if key in self._checkpoints:
                self._checkpoints[key] = checkpoint
                self._checkpoints.move_to_end(key)
            else:
                while len(self._checkpoints) >= self.max_checkpoints:
                    self._evict_oldest_checkpoint()
                self._checkpoints[key] = checkpoint
                bisect.insort(self._boundaries.setdefault(prefix, []), boundary)
            self._last_access[prefix] = time.time()

    def _evict_oldest_checkpoint(self):
        (prefix, boundary), _ = self._checkpoints.popitem(last=False)
        indexes = self._boundaries.get(prefix)
        if indexes:
            pos = bisect.bisect_left(indexes, boundary)
            if pos < len(indexes) and indexes[pos] == boundary:
                del indexes[pos]
            if not indexes:
                del self._boundaries[prefix]
        self._forget_if_empty(prefix)
        self._evictions += 1

    def _forget_if_empty(self, prefix: str):
        if prefix not in self._boundaries and prefix not in self._summaries:
            self._last_access.pop(prefix, None)

    def boundaries(self, prefix: str) -> list[int]:
        with self._lock:
            return list(self._boundaries.get(prefix, ()))

    # ── Prefix summaries ────────────────────────────────────────────────────

    def summary(self, prefix: str) -> PrefixSummary | None:
        with self._lock:
            found = self._summaries.get(prefix)
            if found is not None:
                self._summaries.move_to_end(prefix)
                self._last_access[prefix] = time.time()
            return found

    def store_summary(self, prefix: str, summary: PrefixSummary):
        with self._lock:
            self._summaries[prefix] = summary
            self._summaries.move_to_end(prefix)
            while len(self._summaries) > self.max_prefixes:
                evicted, _ = self._summaries.popitem(last=False)
                self._forget_if_empty(evicted)
                self._evictions += 1
                log.debug(f"Evicted summary for '{evicted}'")
            self._last_access[prefix] = time.time()

    # ── Invalidation ────────────────────────────────────────────────────────

    def invalidate(self, prefix: str | None = None):
        """Drop everything known about prefix, or the whole cache when None."""
        with self._lock:
            if prefix is None:
                self._checkpoints.clear()
                self._boundaries.clear()
                self._summaries.clear()
                self._last_access.clear()
                log.info("Checkpoint cache cleared")
                return
            self._drop_prefix(prefix)
            log.info(f"Checkpoint cache invalidated for '{prefix}'")

    def _drop_prefix(self, prefix: str):
        for boundary in self._boundaries.pop(prefix, ()):
            self._checkpoints.pop((prefix, boundary), None)
        self._summaries.pop(prefix, None)
        self._last_access.pop(prefix, None)

    def purge_idle(self):
        """Remove prefixes untouched for longer than ttl."""
        now = time.time()
        with self._lock:
            idle = [p for p, t in self._last_access.items() if now - t > self.ttl]
            for prefix in idle:
                self._drop_prefix(prefix)
        if idle:
            log.info(f"Cleaned {len(idle)} idle prefix(es) from checkpoint cache")

    def stats(self) -> dict:
        with self._lock:
            return {
                'checkpoints': len(self._checkpoints),
                'prefixes': len(self._summaries),
                'tracked_prefixes': len(self._last_access),
                'max_checkpoints': self.max_checkpoints,
                'max_prefixes': self.max_prefixes,
                'hits': self._hits,
                'misses': self._misses,
                'evictions': self._evictions,
            }
