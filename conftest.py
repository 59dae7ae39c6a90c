"""
Root conftest.py — shared fixtures for promise stream tests.

Fixtures:
  timed_producer  — builds executors that drive a stream from loop timers
  loop_errors     — collects contexts passed to the loop's exception handler
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest


# ---------------------------------------------------------------------------
# Timer-driven producers
# ---------------------------------------------------------------------------

Step = tuple  # (delay_ms, "emit" | "complete" | "fail", *args)


@pytest.fixture
def timed_producer() -> Callable[..., Callable[..., None]]:
    """
    Return a factory of executors. Each step is ``(delay_ms, action, *args)``;
    the executor schedules ``action(*args)`` with ``loop.call_later``.

        stream = PromiseStream(timed_producer((10, "emit", "foo"), (20, "complete")))
    """

    def make(*steps: Step) -> Callable[..., None]:
        def executor(emit: Callable[..., None], complete: Callable[[], None], fail: Callable[..., None]) -> None:
            loop = asyncio.get_running_loop()
            handles = {"emit": emit, "complete": complete, "fail": fail}
            for delay_ms, action, *args in steps:
                loop.call_later(delay_ms / 1000, handles[action], *args)

        return executor

    return make


# ---------------------------------------------------------------------------
# Loop exception handler capture
# ---------------------------------------------------------------------------

@pytest.fixture
def loop_errors() -> Any:
    """Install a capturing exception handler on the running loop.

    Must be requested by an ``asyncio`` test; the previous handler is restored
    by calling ``.restore()`` or automatically at teardown.
    """

    class _Capture:
        def __init__(self) -> None:
            self.contexts: list[dict[str, Any]] = []
            self._loop: asyncio.AbstractEventLoop | None = None
            self._previous: Any = None

        def install(self) -> "_Capture":
            self._loop = asyncio.get_running_loop()
            self._previous = self._loop.get_exception_handler()
            self._loop.set_exception_handler(lambda _loop, context: self.contexts.append(context))
            return self

        def restore(self) -> None:
            if self._loop is not None:
                self._loop.set_exception_handler(self._previous)
                self._loop = None

        @property
        def exceptions(self) -> list[BaseException]:
            return [c["exception"] for c in self.contexts if "exception" in c]

    capture = _Capture()
    yield capture
    capture.restore()
