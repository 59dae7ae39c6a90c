"""
Core type definitions for promise streams.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")
T_contra = TypeVar("T_contra", contravariant=True)

# ─── Stream state ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Active:
    """Initial state; the producer may still emit."""


@dataclass(frozen=True)
class Completed:
    """Terminal: the producer signalled completion."""


@dataclass(frozen=True)
class Failed:
    """Terminal: the producer signalled failure with an opaque reason."""
    error: Any = None


StreamState = Union[Active, Completed, Failed]

ACTIVE = Active()
COMPLETED = Completed()


# ─── Options ──────────────────────────────────────────────────────────────────

class StreamOptions(BaseModel):
    """Construction options for a PromiseStream."""

    # Number of most recent values replayed to late subscribers
    buffer_size: int = Field(default=1, ge=1, alias="bufferSize")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


# ─── Producer side ────────────────────────────────────────────────────────────

class StreamControls(Protocol[T_contra]):
    """The three handles a producer receives."""

    def emit(self, value: T_contra | Awaitable[T_contra]) -> None:
        ...

    def complete(self) -> None:
        ...

    def fail(self, error: Any = None) -> None:
        ...


EmitFn = Callable[[Any], None]
CompleteFn = Callable[[], None]
FailFn = Callable[..., None]

# Called once, synchronously, with (emit, complete, fail)
Executor = Callable[[EmitFn, CompleteFn, FailFn], None]

# Consumer callbacks
NextCallback = Callable[[T], Any]
