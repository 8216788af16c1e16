"""
Tests for the background snapshot poll.
"""

import asyncio
import threading

from skating_scheduler.main import _poll_snapshots


class CountingRepository:
    """Records which thread each refresh ran on."""

    def __init__(self, fail: bool = False) -> None:
        self.threads: list[int] = []
        self.fail = fail

    def refresh(self) -> bool:
        self.threads.append(threading.get_ident())
        if self.fail:
            raise RuntimeError("warehouse suspended")
        return False


async def _run_poll(repository, duration: float = 0.1) -> int:
    loop_thread = threading.get_ident()
    task = asyncio.create_task(_poll_snapshots(repository, 0.01))
    await asyncio.sleep(duration)
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    return loop_thread


class TestSnapshotPoll:
    """Tests for the lifespan poll task."""

    def test_refresh_runs_off_the_event_loop(self):
        """A slow database read must not block request handling."""
        repository = CountingRepository()

        loop_thread = asyncio.run(_run_poll(repository))

        assert repository.threads
        assert all(ident != loop_thread for ident in repository.threads)

    def test_failed_refresh_keeps_polling(self):
        repository = CountingRepository(fail=True)

        asyncio.run(_run_poll(repository))

        assert len(repository.threads) > 1
