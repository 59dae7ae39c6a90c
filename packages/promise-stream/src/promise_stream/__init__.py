"""
promise_stream — push-based event streams with bounded replay for asyncio.
"""

from .errors import StreamFailure
from .promise import Promise
from .stream import PromiseStream, StreamController
from .types import (
    Active,
    Completed,
    Executor,
    Failed,
    StreamControls,
    StreamOptions,
    StreamState,
)

__all__ = [
    # Stream
    "PromiseStream", "StreamController", "StreamControls", "Executor",
    # State
    "StreamState", "Active", "Completed", "Failed",
    # Options / errors
    "StreamOptions", "StreamFailure",
    # Futures
    "Promise",
]
