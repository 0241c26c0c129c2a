"""
Unit tests for the cross-process file rate limiter.
"""

import fcntl
import os
from pathlib import Path

import pytest

from gemini_bridge.rate_limiter import FileRateLimiter


class FakeTime:
    """Clock and sleep pair: sleeping advances the clock."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def state_file(temp_dir: Path) -> Path:
    return temp_dir / "rate" / "last_call"


def make_limiter(state_file: Path, fake_time: FakeTime, interval: float = 1.0, **kwargs) -> FileRateLimiter:
    return FileRateLimiter(
        state_file,
        min_interval=interval,
        clock=fake_time.clock,
        sleep=fake_time.sleep,
        **kwargs,
    )


class TestAwaitTurn:
    """Tests for await_turn."""

    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time)

        waited = await limiter.await_turn()

        assert waited == 0.0
        assert fake_time.sleeps == []
        assert float(state_file.read_text()) == pytest.approx(fake_time.now)

    @pytest.mark.asyncio
    async def test_back_to_back_calls_wait_full_interval(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time, interval=2.0)

        await limiter.await_turn()
        waited = await limiter.await_turn()

        assert waited == pytest.approx(2.0)
        assert fake_time.sleeps == [pytest.approx(2.0)]

    @pytest.mark.asyncio
    async def test_partial_wait(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time, interval=2.0)

        await limiter.await_turn()
        fake_time.now += 0.5
        waited = await limiter.await_turn()

        assert waited == pytest.approx(1.5)

    @pytest.mark.asyncio
    async def test_no_wait_after_interval(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time)

        await limiter.await_turn()
        fake_time.now += 5
        waited = await limiter.await_turn()

        assert waited == 0.0
        assert fake_time.sleeps == []

    @pytest.mark.asyncio
    async def test_records_time_after_waiting(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time, interval=1.0)

        await limiter.await_turn()
        await limiter.await_turn()

        assert float(state_file.read_text()) == pytest.approx(fake_time.now)

    @pytest.mark.asyncio
    async def test_state_shared_between_instances(self, state_file, fake_time):
        first = make_limiter(state_file, fake_time)
        second = make_limiter(state_file, fake_time)

        await first.await_turn()
        waited = await second.await_turn()

        assert waited == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_disabled_interval(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time, interval=0)

        assert await limiter.await_turn() == 0.0
        assert await limiter.await_turn() == 0.0
        assert fake_time.sleeps == []

    @pytest.mark.asyncio
    async def test_clock_moved_backwards(self, state_file, fake_time):
        state_file.parent.mkdir(parents=True)
        state_file.write_text(str(fake_time.now + 3600))
        limiter = make_limiter(state_file, fake_time, interval=1.0)

        waited = await limiter.await_turn()

        assert waited == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_corrupt_state_file(self, state_file, fake_time):
        state_file.parent.mkdir(parents=True)
        state_file.write_text("not a timestamp")
        limiter = make_limiter(state_file, fake_time)

        assert await limiter.await_turn() == 0.0

    @pytest.mark.asyncio
    async def test_held_lock_times_out_and_proceeds(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time, lock_timeout=0.1)
        limiter.lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(limiter.lock_file), os.O_CREAT | os.O_RDWR)
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

        try:
            waited = await limiter.await_turn()
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

        assert waited == 0.0
        assert limiter.get_stats()["lock_timeouts"] == 1
        assert state_file.exists()

    @pytest.mark.asyncio
    async def test_state_file_replaced_by_rename(self, state_file, fake_time, monkeypatch):
        renames: list[tuple[str, str]] = []
        real_replace = os.replace

        def recording_replace(src, dst):
            renames.append((str(src), str(dst)))
            real_replace(src, dst)

        monkeypatch.setattr(os, "replace", recording_replace)
        limiter = make_limiter(state_file, fake_time)

        await limiter.await_turn()

        assert len(renames) == 1
        assert renames[0][1] == str(state_file)
        assert Path(renames[0][0]).parent == state_file.parent
        assert sorted(p.name for p in state_file.parent.iterdir()) == ["last_call", "last_call.lock"]

    @pytest.mark.asyncio
    async def test_failed_state_write_leaves_no_temp_file(self, state_file, fake_time, monkeypatch):
        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", failing_replace)
        limiter = make_limiter(state_file, fake_time)

        assert await limiter.await_turn() == 0.0
        assert sorted(p.name for p in state_file.parent.iterdir()) == ["last_call.lock"]


class TestCanProceedAndStats:
    """Tests for can_proceed and get_stats."""

    def test_can_proceed_without_history(self, state_file, fake_time):
        assert make_limiter(state_file, fake_time).can_proceed() == (True, 0.0)

    @pytest.mark.asyncio
    async def test_can_proceed_right_after_call(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time, interval=3.0)
        await limiter.await_turn()

        proceed, wait = limiter.can_proceed()

        assert not proceed
        assert wait == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_stats(self, state_file, fake_time):
        limiter = make_limiter(state_file, fake_time, interval=1.0)

        await limiter.await_turn()
        await limiter.await_turn()
        await limiter.await_turn()

        stats = limiter.get_stats()
        assert stats["total_turns"] == 3
        assert stats["throttle_count"] == 2
        assert stats["total_wait_seconds"] == pytest.approx(2.0)
        assert stats["lock_timeouts"] == 0
