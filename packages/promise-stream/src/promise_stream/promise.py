"""
Promise — a chainable single-result future on top of asyncio.

``then`` / ``catch`` return new promises; handlers may return plain values or
awaitables, which are adopted before the next link settles. Every link settles
from its own event loop callback.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Generator, Generic, TypeVar

from .errors import as_exception, reason_of

T = TypeVar("T")
U = TypeVar("U")


def is_awaitable(value: Any) -> bool:
    return inspect.isawaitable(value)


def adopt(future: asyncio.Future, value: Any) -> None:
    """Settle ``future`` with ``value``, waiting first if it is awaitable."""
    if future.done():
        return
    if not is_awaitable(value):
        future.set_result(value)
        return

    if isinstance(value, Promise):
        inner = value.future
    else:
        inner = asyncio.ensure_future(value, loop=future.get_loop())

    def _copy(done: asyncio.Future) -> None:
        if future.done():
            return
        if done.cancelled():
            future.cancel()
        elif done.exception() is not None:
            future.set_exception(done.exception())
        else:
            future.set_result(done.result())

    inner.add_done_callback(_copy)


def settle(future: asyncio.Future, handler: Callable[..., Any] | None, *args: Any) -> None:
    """Run ``handler(*args)`` and adopt its outcome into ``future``.

    Without a handler the future resolves to ``None``.
    """
    if future.done():
        return
    if handler is None:
        future.set_result(None)
        return
    try:
        value = handler(*args)
    except Exception as exc:
        future.set_exception(exc)
        return
    adopt(future, value)


class Promise(Generic[T]):
    """A single-result deferred value with ``then``/``catch`` chaining."""

    def __init__(
        self,
        future: asyncio.Future | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if future is None:
            future = (loop or asyncio.get_running_loop()).create_future()
        self._future = future

    @classmethod
    def resolve(cls, value: Any = None, *, loop: asyncio.AbstractEventLoop | None = None) -> "Promise[Any]":
        """A promise that adopts ``value`` (resolved right away unless it is awaitable)."""
        promise: Promise[Any] = cls(loop=loop)
        adopt(promise._future, value)
        return promise

    @classmethod
    def reject(cls, reason: Any = None, *, loop: asyncio.AbstractEventLoop | None = None) -> "Promise[Any]":
        """An already-rejected promise."""
        promise: Promise[Any] = cls(loop=loop)
        promise._future.set_exception(as_exception(reason))
        return promise

    @property
    def future(self) -> asyncio.Future:
        return self._future

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> T:
        """Return the value, or raise the rejection; the promise must be done."""
        return self._future.result()

    def then(
        self,
        on_fulfilled: Callable[[T], Any] | None = None,
        on_rejected: Callable[[Any], Any] | None = None,
    ) -> "Promise[Any]":
        nxt: Promise[Any] = Promise(loop=self._future.get_loop())
        target = nxt._future

        def _on_done(done: asyncio.Future) -> None:
            if target.done():
                return
            if done.cancelled():
                target.cancel()
                return
            exc = done.exception()
            if exc is not None:
                if on_rejected is None:
                    target.set_exception(exc)
                else:
                    settle(target, on_rejected, reason_of(exc))
            elif on_fulfilled is None:
                target.set_result(done.result())
            else:
                settle(target, on_fulfilled, done.result())

        self._future.add_done_callback(_on_done)
        return nxt

    def catch(self, on_rejected: Callable[[Any], Any] | None = None) -> "Promise[Any]":
        # Without a handler the rejection is swallowed and the link resolves to None
        return self.then(None, on_rejected or _ignore)

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()

    def __repr__(self) -> str:
        if not self._future.done():
            status = "pending"
        elif self._future.cancelled():
            status = "cancelled"
        elif self._future.exception() is not None:
            status = f"rejected {self._future.exception()!r}"
        else:
            status = f"fulfilled {self._future.result()!r}"
        return f"<Promise {status}>"


def _ignore(_reason: Any) -> None:
    return None
