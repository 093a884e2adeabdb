"""
Per-repository TTL caches with in-flight request coalescing.

A RepoCache is an explicit object owned by whoever drives the engine (one per
session, one per test). Nothing here is module-level state.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

STATUS = "status"
AHEAD_BEHIND = "ahead_behind"
ACTIVITY = "activity"

CacheKey = tuple[str, Hashable]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    cached_at: float


def canonical_repo_key(root: Path | str) -> str:
    """Absolute, symlink-resolved form of a repository path."""
    return os.path.realpath(os.path.abspath(os.path.expanduser(str(root))))


def make_key(root: Path | str, extra: Hashable = None) -> CacheKey:
    return (canonical_repo_key(root), extra)


class RepoCache:
    """
    TTL maps and in-flight load maps, one of each per query kind.

    cached() serves a fresh entry, joins a load already running for the same
    key, or starts a new one. Entries are replaced wholesale, never mutated.
    Each (kind, repo) has an epoch bumped by invalidate(); a load that started
    before the bump still answers its callers but is not stored.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, dict[CacheKey, CacheEntry]] = {}
        self._in_flight: dict[str, dict[CacheKey, asyncio.Future]] = {}
        self._epochs: dict[tuple[str, str], int] = {}

    def _epoch(self, kind: str, key: CacheKey) -> int:
        return self._epochs.get((kind, key[0]), 0)

    def get(self, kind: str, key: CacheKey, ttl: float) -> CacheEntry | None:
        """The entry for key if it is younger than ttl seconds."""
        entry = self._entries.get(kind, {}).get(key)
        if entry is None or self._clock() - entry.cached_at >= ttl:
            return None
        return entry

    def in_flight(self, kind: str, key: CacheKey) -> bool:
        return key in self._in_flight.get(kind, {})

    async def cached(
        self,
        kind: str,
        key: CacheKey,
        ttl: float,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        entry = self.get(kind, key, ttl)
        if entry is not None:
            logger.debug(f"{kind} cache hit for {key[0]}")
            return entry.value

        pending = self._in_flight.setdefault(kind, {}).get(key)
        if pending is not None:
            logger.debug(f"{kind} joining in-flight load for {key[0]}")
            return await asyncio.shield(pending)

        logger.debug(f"{kind} loading for {key[0]}")
        epoch = self._epoch(kind, key)
        task = asyncio.ensure_future(loader())
        self._in_flight[kind][key] = task

        def _settle(done: asyncio.Future) -> None:
            in_flight = self._in_flight.get(kind, {})
            if in_flight.get(key) is done:
                del in_flight[key]
            if done.cancelled() or done.exception() is not None:
                return
            if self._epoch(kind, key) != epoch:
                logger.debug(f"{kind} load for {key[0]} finished after invalidation, not stored")
                return
            self._entries.setdefault(kind, {})[key] = CacheEntry(done.result(), self._clock())

        task.add_done_callback(_settle)
        # Shielded so a cancelled caller does not cancel the load for joiners.
        return await asyncio.shield(task)

    def invalidate(
        self,
        root: Path | str,
        status: bool = True,
        ahead_behind: bool = True,
        activity: bool = False,
    ) -> None:
        """Drop the selected entries for one repository."""
        repo_key = canonical_repo_key(root)
        kinds = [
            kind for kind, selected in (
                (STATUS, status), (AHEAD_BEHIND, ahead_behind), (ACTIVITY, activity)
            ) if selected
        ]
        for kind in kinds:
            self._epochs[(kind, repo_key)] = self._epochs.get((kind, repo_key), 0) + 1
            entries = self._entries.get(kind, {})
            for key in [k for k in entries if k[0] == repo_key]:
                del entries[key]
        logger.debug(f"Invalidated {kinds} for {repo_key}")

    def reset(self) -> None:
        """Forget everything, including which loads are in flight."""
        for kind, in_flight in self._in_flight.items():
            for key in in_flight:
                self._epochs[(kind, key[0])] = self._epochs.get((kind, key[0]), 0) + 1
        self._entries.clear()
        self._in_flight.clear()


class Generations:
    """
    Monotonic request counters, one per query kind.

    A caller takes a number before issuing a request and applies the response
    only if no newer number was taken meanwhile. The older request is not
    cancelled; its answer is ignored.
    """

    def __init__(self):
        self._counters: dict[str, int] = {}

    def next(self, kind: str) -> int:
        self._counters[kind] = self._counters.get(kind, 0) + 1
        return self._counters[kind]

    def current(self, kind: str) -> int:
        return self._counters.get(kind, 0)

    def is_current(self, kind: str, generation: int) -> bool:
        return self._counters.get(kind, 0) == generation
