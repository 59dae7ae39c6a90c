"""
PromiseStream — a push-based event stream with bounded replay.

A producer (the executor) is called once at construction with three handles:
``emit(value)``, ``complete()`` and ``fail(error)``. Any number of consumers may
attach at any time, before or after the stream finishes:

- then / catch / completed — single-result promises for the terminal outcome
- iterate(on_next)          — push callbacks: buffered values, then live ones
- async_iterator()          — pull iteration: buffered values, then live ones

The last ``buffer_size`` values are kept for late subscribers, and the terminal
outcome is replayed to anyone attaching after it happened.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator, Callable, Generator, Generic, Mapping, TypeVar

from .errors import as_exception
from .promise import Promise, is_awaitable, settle
from .types import (
    ACTIVE,
    COMPLETED,
    Active,
    Completed,
    Executor,
    Failed,
    NextCallback,
    StreamControls,
    StreamOptions,
    StreamState,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StreamController(Generic[T]):
    """Producer-side handles of a stream. The executor gets its bound methods."""

    def __init__(self, stream: PromiseStream[T]) -> None:
        self._stream = stream

    def emit(self, value: Any) -> None:
        """Emit a value, or an awaitable that resolves to one."""
        self._stream._trigger_next(value)

    def complete(self) -> None:
        self._stream._trigger_complete()

    def fail(self, error: Any = None) -> None:
        self._stream._trigger_error(error)


class PromiseStream(Generic[T]):
    """
    A single-producer, multi-consumer event stream with bounded replay.

    The stream is awaitable (``await stream`` waits for completion and raises
    on failure) and async-iterable (``async for value in stream``).
    """

    def __init__(
        self,
        executor: Executor,
        options: StreamOptions | Mapping[str, Any] | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._options = _coerce_options(options)
        self._loop = loop or asyncio.get_running_loop()
        self._state: StreamState = ACTIVE
        self._buffer: deque[T] = deque(maxlen=self._options.buffer_size)

        # Live subscribers stay registered for the stream's lifetime; the
        # terminal ones are dropped once the terminal transition has fired.
        self._next_callbacks: list[Callable[[T], Any]] = []
        self._error_callbacks: list[Callable[[Any], None]] = []
        self._complete_callbacks: list[Callable[[], None]] = []

        self._controller: StreamControls[T] = StreamController(self)
        executor(self._controller.emit, self._controller.complete, self._controller.fail)

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def buffer_size(self) -> int:
        return self._options.buffer_size

    def __repr__(self) -> str:
        return f"<PromiseStream {type(self._state).__name__.lower()} buffered={len(self._buffer)}>"

    # ── Producer handles ──────────────────────────────────────────────────────

    def _trigger_next(self, value: Any) -> None:
        if is_awaitable(value):
            pending = value.future if isinstance(value, Promise) else asyncio.ensure_future(value, loop=self._loop)
            pending.add_done_callback(self._on_emitted)
        else:
            self._loop.call_soon(self._accept, value)

    def _on_emitted(self, pending: asyncio.Future) -> None:
        if pending.cancelled():
            logger.debug("Emitted awaitable was cancelled; nothing to deliver")
            return
        exc = pending.exception()
        if exc is not None:
            self._report("Emitted awaitable failed; value discarded", exc)
            return
        self._accept(pending.result())

    def _accept(self, value: T) -> None:
        if not isinstance(self._state, Active):
            logger.debug("Discarding value emitted after the stream became %s", self._state)
            return

        self._buffer.append(value)
        for callback in list(self._next_callbacks):
            self._dispatch(callback, value)

    def _trigger_complete(self) -> None:
        if not isinstance(self._state, Active):
            logger.debug("complete() ignored; stream is already %s", self._state)
            return
        self._loop.call_soon(self._transition, COMPLETED)

    def _trigger_error(self, error: Any = None) -> None:
        if not isinstance(self._state, Active):
            logger.debug("fail() ignored; stream is already %s", self._state)
            return
        self._loop.call_soon(self._transition, Failed(error))

    def _transition(self, state: Completed | Failed) -> None:
        # complete() and fail() may both have been scheduled in the same tick
        if not isinstance(self._state, Active):
            return

        self._state = state
        logger.debug("Stream transitioned to %s", state)

        if isinstance(state, Failed):
            callbacks: list[Callable[..., Any]] = self._error_callbacks
            args: tuple[Any, ...] = (state.error,)
        else:
            callbacks = self._complete_callbacks
            args = ()
        self._error_callbacks = []
        self._complete_callbacks = []

        for callback in callbacks:
            self._dispatch(callback, *args)

    def _dispatch(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as exc:
            self._report("Stream subscriber raised", exc)

    def _report(self, message: str, exc: BaseException) -> None:
        self._loop.call_exception_handler({
            "message": message,
            "exception": exc,
            "stream": self,
        })

    # ── Promise-style consumption ─────────────────────────────────────────────

    def then(
        self,
        on_completed: Callable[[], Any] | None = None,
        on_failed: Callable[[Any], Any] | None = None,
    ) -> Promise[Any]:
        """
        Promise of ``on_completed()`` once the stream completes, or of
        ``on_failed(error)`` once it fails.

        If the stream is already terminal the handler runs right away. On an
        already-failed stream without ``on_failed`` the promise is rejected;
        while the stream is still active a missing ``on_failed`` resolves to None.
        """
        state = self._state
        if isinstance(state, Completed):
            return self._settled(on_completed)
        if isinstance(state, Failed):
            if on_failed is None:
                return Promise.reject(state.error, loop=self._loop)
            return self._settled(on_failed, state.error)

        promise: Promise[Any] = Promise(loop=self._loop)
        self._complete_callbacks.append(lambda: settle(promise.future, on_completed))
        self._error_callbacks.append(lambda error: settle(promise.future, on_failed, error))
        return promise

    def catch(self, on_failed: Callable[[Any], Any] | None = None) -> Promise[Any]:
        """Promise of ``on_failed(error)`` if the stream fails, None if it completes."""
        state = self._state
        if isinstance(state, Completed):
            return Promise.resolve(None, loop=self._loop)
        if isinstance(state, Failed):
            return self._settled(on_failed, state.error)

        promise: Promise[Any] = Promise(loop=self._loop)
        self._complete_callbacks.append(lambda: settle(promise.future, None))
        self._error_callbacks.append(lambda error: settle(promise.future, on_failed, error))
        return promise

    def completed(self) -> Promise[None]:
        """Resolves when the stream completes; rejected with the reason if it fails."""
        state = self._state
        if isinstance(state, Completed):
            return Promise.resolve(None, loop=self._loop)
        if isinstance(state, Failed):
            return Promise.reject(state.error, loop=self._loop)

        promise: Promise[None] = Promise(loop=self._loop)
        future = promise.future

        def _resolve() -> None:
            if not future.done():
                future.set_result(None)

        def _reject(error: Any) -> None:
            if not future.done():
                future.set_exception(as_exception(error))

        self._complete_callbacks.append(_resolve)
        self._error_callbacks.append(_reject)
        return promise

    def _settled(self, handler: Callable[..., Any] | None, *args: Any) -> Promise[Any]:
        promise: Promise[Any] = Promise(loop=self._loop)
        settle(promise.future, handler, *args)
        return promise

    def __await__(self) -> Generator[Any, None, None]:
        return self.completed().__await__()

    # ── Push iteration ────────────────────────────────────────────────────────

    def iterate(self, on_next: NextCallback[T]) -> Promise[None]:
        """
        Call ``on_next`` for every buffered value, then for every value emitted
        from now on. Returns the same promise as :meth:`completed`; failures are
        reported only through it, never through ``on_next``.
        """
        for value in list(self._buffer):
            on_next(value)

        self._next_callbacks.append(on_next)
        return self.completed()

    # ── Pull iteration ────────────────────────────────────────────────────────

    async def async_iterator(self) -> AsyncIterator[T]:
        """
        Yield buffered values, then live values until the stream ends.

        The buffer snapshot is taken when iteration starts. A value accepted
        before the terminal transition is always yielded before the stream's
        end; a failure is raised after the last such value.
        """
        backlog = list(self._buffer)
        queue: asyncio.Queue[Any] = asyncio.Queue()
        subscribed = isinstance(self._state, Active)

        def _on_end(*_: Any) -> None:
            queue.put_nowait(_END)

        if subscribed:
            self._next_callbacks.append(queue.put_nowait)
            self._complete_callbacks.append(_on_end)
            self._error_callbacks.append(_on_end)

        try:
            for value in backlog:
                yield value

            if subscribed:
                while True:
                    item = await queue.get()
                    if item is _END:
                        break
                    yield item
        finally:
            if subscribed:
                _discard(self._next_callbacks, queue.put_nowait)
                _discard(self._complete_callbacks, _on_end)
                _discard(self._error_callbacks, _on_end)

        state = self._state
        if isinstance(state, Failed):
            raise as_exception(state.error)

    def __aiter__(self) -> AsyncIterator[T]:
        return self.async_iterator()


class _End:
    """Sentinel value that ends a pull iterator."""


_END = _End()


def _coerce_options(options: StreamOptions | Mapping[str, Any] | None) -> StreamOptions:
    if options is None:
        return StreamOptions()
    if isinstance(options, StreamOptions):
        return options
    return StreamOptions.model_validate(dict(options))


def _discard(callbacks: list[Any], callback: Any) -> None:
    try:
        callbacks.remove(callback)
    except ValueError:
        pass  # already fired and cleared
