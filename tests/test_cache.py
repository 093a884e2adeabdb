"""Tests for RepoCache and Generations."""

import asyncio

import pytest

from treestate.lib.cache import (
    ACTIVITY,
    AHEAD_BEHIND,
    STATUS,
    Generations,
    RepoCache,
    canonical_repo_key,
    make_key,
)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class CountingLoader:
    """Loader that blocks on a gate and counts invocations."""

    def __init__(self, value="value", error=None):
        self.calls = 0
        self.gate = asyncio.Event()
        self.value = value
        self.error = error

    async def __call__(self):
        self.calls += 1
        await self.gate.wait()
        if self.error:
            raise self.error
        return f"{self.value}-{self.calls}"


class TestCoalescing:
    """Test in-flight request joining."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_load(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader()
        key = make_key(tmp_path)

        first = asyncio.create_task(cache.cached(STATUS, key, 10, loader))
        second = asyncio.create_task(cache.cached(STATUS, key, 10, loader))
        await asyncio.sleep(0)
        assert cache.in_flight(STATUS, key)

        loader.gate.set()
        assert await first == "value-1"
        assert await second == "value-1"
        assert loader.calls == 1
        assert not cache.in_flight(STATUS, key)

    @pytest.mark.asyncio
    async def test_different_kinds_do_not_coalesce(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader()
        loader.gate.set()
        key = make_key(tmp_path)
        await asyncio.gather(
            cache.cached(STATUS, key, 10, loader),
            cache.cached(AHEAD_BEHIND, key, 10, loader),
        )
        assert loader.calls == 2

    @pytest.mark.asyncio
    async def test_failure_reaches_all_callers_and_clears_marker(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader(error=RuntimeError("git exploded"))
        key = make_key(tmp_path)

        first = asyncio.create_task(cache.cached(STATUS, key, 10, loader))
        second = asyncio.create_task(cache.cached(STATUS, key, 10, loader))
        await asyncio.sleep(0)
        loader.gate.set()

        for task in (first, second):
            with pytest.raises(RuntimeError):
                await task
        assert loader.calls == 1
        assert not cache.in_flight(STATUS, key)
        assert cache.get(STATUS, key, 10) is None

        loader.error = None
        assert await cache.cached(STATUS, key, 10, loader) == "value-2"

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_load(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader()
        key = make_key(tmp_path)

        first = asyncio.create_task(cache.cached(STATUS, key, 10, loader))
        second = asyncio.create_task(cache.cached(STATUS, key, 10, loader))
        await asyncio.sleep(0)
        first.cancel()
        loader.gate.set()

        assert await second == "value-1"
        assert first.cancelled()


class TestTTL:
    """Test freshness window."""

    @pytest.mark.asyncio
    async def test_fresh_entry_served_without_loading(self, tmp_path):
        clock = FakeClock()
        cache = RepoCache(clock=clock)
        loader = CountingLoader()
        loader.gate.set()
        key = make_key(tmp_path)

        assert await cache.cached(STATUS, key, 1.2, loader) == "value-1"
        clock.now += 1.0
        assert await cache.cached(STATUS, key, 1.2, loader) == "value-1"
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_expired_entry_reloads(self, tmp_path):
        clock = FakeClock()
        cache = RepoCache(clock=clock)
        loader = CountingLoader()
        loader.gate.set()
        key = make_key(tmp_path)

        await cache.cached(STATUS, key, 1.2, loader)
        clock.now += 1.2
        assert await cache.cached(STATUS, key, 1.2, loader) == "value-2"

    @pytest.mark.asyncio
    async def test_entry_records_cached_at(self, tmp_path):
        clock = FakeClock()
        cache = RepoCache(clock=clock)
        loader = CountingLoader()
        loader.gate.set()
        key = make_key(tmp_path)
        await cache.cached(STATUS, key, 5, loader)
        assert cache.get(STATUS, key, 5).cached_at == 100.0


class TestInvalidate:
    """Test explicit invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader()
        loader.gate.set()
        key = make_key(tmp_path)

        await cache.cached(STATUS, key, 60, loader)
        cache.invalidate(tmp_path)
        assert await cache.cached(STATUS, key, 60, loader) == "value-2"

    @pytest.mark.asyncio
    async def test_invalidate_is_selective(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader()
        loader.gate.set()
        other = tmp_path / "other"
        other.mkdir()

        await cache.cached(STATUS, make_key(tmp_path), 60, loader)
        await cache.cached(ACTIVITY, make_key(tmp_path, 365), 60, loader)
        await cache.cached(STATUS, make_key(other), 60, loader)

        cache.invalidate(tmp_path, status=True, ahead_behind=True, activity=False)
        assert cache.get(STATUS, make_key(tmp_path), 60) is None
        assert cache.get(ACTIVITY, make_key(tmp_path, 365), 60) is not None
        assert cache.get(STATUS, make_key(other), 60) is not None

        cache.invalidate(tmp_path, status=False, ahead_behind=False, activity=True)
        assert cache.get(ACTIVITY, make_key(tmp_path, 365), 60) is None

    @pytest.mark.asyncio
    async def test_load_in_flight_during_invalidation_is_not_stored(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader()
        key = make_key(tmp_path)

        pending = asyncio.create_task(cache.cached(STATUS, key, 60, loader))
        await asyncio.sleep(0)
        cache.invalidate(tmp_path)
        loader.gate.set()

        assert await pending == "value-1"
        assert cache.get(STATUS, key, 60) is None

    @pytest.mark.asyncio
    async def test_reset_drops_everything(self, tmp_path):
        cache = RepoCache()
        loader = CountingLoader()
        loader.gate.set()
        await cache.cached(STATUS, make_key(tmp_path), 60, loader)
        await cache.cached(ACTIVITY, make_key(tmp_path, 30), 60, loader)
        cache.reset()
        assert cache.get(STATUS, make_key(tmp_path), 60) is None
        assert cache.get(ACTIVITY, make_key(tmp_path, 30), 60) is None


class TestCanonicalRepoKey:
    """Test repository key normalization."""

    def test_symlink_and_relative_forms_match(self, tmp_path, monkeypatch):
        real = tmp_path / "repo"
        real.mkdir()
        link = tmp_path / "link"
        link.symlink_to(real)
        monkeypatch.chdir(tmp_path)
        assert canonical_repo_key(link) == canonical_repo_key("repo")
        assert canonical_repo_key(real / "sub" / "..") == canonical_repo_key(real)


class TestGenerations:
    """Test generation counters."""

    def test_latest_is_current(self):
        gens = Generations()
        first = gens.next(STATUS)
        second = gens.next(STATUS)
        assert not gens.is_current(STATUS, first)
        assert gens.is_current(STATUS, second)
        assert gens.current(STATUS) == second

    def test_kinds_are_independent(self):
        gens = Generations()
        status = gens.next(STATUS)
        gens.next(AHEAD_BEHIND)
        assert gens.is_current(STATUS, status)
