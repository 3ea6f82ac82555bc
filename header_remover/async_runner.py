from __future__ import annotations

import asyncio
import threading
from collections.abc import Coroutine
from concurrent.futures import Future
from typing import Any, TypeVar


T = TypeVar("T")


class AsyncLoopRunner:
    """Run coroutines on one event loop owned by a single worker thread."""

    def __init__(self, name: str = "submission-loop") -> None:
        self._loop = asyncio.new_event_loop()
        self._shutdown = threading.Event()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._worker, name=name, daemon=True)
        self._thread.start()
        self._ready.wait()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._shutdown.is_set()

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        if self._shutdown.is_set():
            coro.close()
            raise RuntimeError("AsyncLoopRunner is shut down")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def shutdown(self, wait: bool = True) -> None:
        if self._shutdown.is_set():
            if wait:
                self._thread.join()
            return
        self._shutdown.set()
        self._loop.call_soon_threadsafe(self._loop.stop)
        if wait:
            self._thread.join()

    def _worker(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.close()
