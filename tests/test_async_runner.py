from __future__ import annotations

import asyncio
import threading
import unittest

from header_remover.async_runner import AsyncLoopRunner


class TestAsyncLoopRunner(unittest.TestCase):
    def test_runs_coroutines_on_worker_thread(self) -> None:
        runner = AsyncLoopRunner()
        self.addCleanup(runner.shutdown)

        async def work() -> str:
            await asyncio.sleep(0)
            return threading.current_thread().name

        future = runner.submit(work())
        self.assertEqual(future.result(timeout=2.0), "submission-loop")

    def test_exceptions_propagate(self) -> None:
        runner = AsyncLoopRunner()
        self.addCleanup(runner.shutdown)

        async def fail() -> None:
            raise ValueError("boom")

        with self.assertRaises(ValueError):
            runner.submit(fail()).result(timeout=2.0)

    def test_shutdown_prevents_new_work(self) -> None:
        runner = AsyncLoopRunner()
        runner.shutdown()
        runner.shutdown()
        self.assertFalse(runner.is_running)

        async def work() -> None:
            return None

        with self.assertRaises(RuntimeError):
            runner.submit(work())


if __name__ == "__main__":
    unittest.main()
