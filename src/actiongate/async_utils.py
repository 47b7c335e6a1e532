"""Run gateway coroutines from synchronous callers.

A single daemon thread hosts a long-lived event loop, so sync callers do not
pay for a fresh loop per action and the approval poll task keeps a running
loop while a sync caller blocks.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Coroutine, TypeVar

R = TypeVar("R")


class _BackgroundLoop:
    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def in_loop_thread(self) -> bool:
        return self._thread is not None and threading.get_ident() == self._thread.ident

    def get(self) -> asyncio.AbstractEventLoop:
        loop = self._loop
        if loop is not None and loop.is_running():
            return loop
        with self._lock:
            if self._loop is not None and self._loop.is_running():
                return self._loop
            ready = threading.Event()
            loop = asyncio.new_event_loop()

            def runner() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            self._thread = threading.Thread(target=runner, name=self.name, daemon=True)
            self._thread.start()
            ready.wait()
            self._loop = loop
            return loop


_background = _BackgroundLoop("actiongate-async-loop")


def run_sync(coro: Coroutine[object, object, R]) -> R:
    """Run ``coro`` to completion on the shared background loop and return its result."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        coro.close()
        raise RuntimeError("run_sync cannot be called from within an async event loop; await instead")
    if _background.in_loop_thread():
        coro.close()
        raise RuntimeError("run_sync cannot be called from the background loop thread")
    future = asyncio.run_coroutine_threadsafe(coro, _background.get())
    return future.result()
