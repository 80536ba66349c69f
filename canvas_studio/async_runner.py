# Background event loop shared by the Flask request threads

import asyncio
import logging
import threading
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class AsyncRunner:
    """
    Runs coroutines on one long-lived event loop in a daemon thread.

    Provider services keep ``httpx`` / OpenAI clients between calls; those
    clients are bound to the loop that created them, so every request thread
    submits its coroutine to the same loop instead of spinning up a new one.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever,
                    name='canvas-studio-loop',
                    daemon=True,
                )
                self._thread.start()
                logger.debug("Started background event loop")
            return self._loop

    def run(self, coro: Coroutine, timeout: Optional[float] = None) -> Any:
        """Block the calling thread until ``coro`` finishes on the shared loop"""
        future = asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())
        return future.result(timeout)

    def shutdown(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5)
        loop.close()
