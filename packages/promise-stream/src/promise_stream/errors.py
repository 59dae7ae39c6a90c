"""
Failure reasons — opaque values carried by a failed stream.

A producer may fail a stream with anything (an exception, a string, ``None``).
Handlers always see that raw value; only when a reason must be *raised* is a
non-exception value wrapped in :class:`StreamFailure`.
"""
from __future__ import annotations

from typing import Any


class StreamFailure(Exception):
    """Raised in place of a failure reason that is not itself an exception."""

    def __init__(self, reason: Any = None) -> None:
        super().__init__(reason)
        self.reason = reason

    def __repr__(self) -> str:
        return f"StreamFailure({self.reason!r})"


def as_exception(reason: Any) -> BaseException:
    """Return something raisable for ``reason``."""
    if isinstance(reason, BaseException):
        return reason
    return StreamFailure(reason)


def reason_of(exc: BaseException) -> Any:
    """Inverse of :func:`as_exception`."""
    if isinstance(exc, StreamFailure):
        return exc.reason
    return exc
