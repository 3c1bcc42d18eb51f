"""
Bounded streaming over all keys of a bucket.

Keys arrive in chunks from a streamed ``$bucket`` index scan. Each chunk is
folded into an accumulator by a caller-supplied reducer, so the full key set
is never held in memory. The scan ends in one of three states:

- COMPLETED: the stream signalled it was done
- FAILED: an unexpected message arrived (error, or a foreign ref)
- TIMED_OUT: no message arrived within the per-wait timeout

Only COMPLETED is a success; the other two still return the partial
accumulator so the caller can decide whether it is usable.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from vertector_riakstore.client import Bucket, KeysChunk, KeyStream, StreamDone, StreamError

logger = logging.getLogger(__name__)

# Maximum wait for any single stream message, in seconds
STREAM_TIMEOUT_SECONDS = 30.0

A = TypeVar("A")

Reducer = Callable[[list[str], A], A]


class StreamStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class StreamResult(Generic[A]):
    """Terminal state of a key stream plus the reducer accumulator."""
    status: StreamStatus
    acc: A
    chunks: int = 0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is StreamStatus.COMPLETED


def consume(stream: KeyStream, reducer: Reducer, acc: A, timeout: float = STREAM_TIMEOUT_SECONDS) -> StreamResult[A]:
    """
    Drive a started key stream to a terminal state.

    Args:
        stream: Started stream handle
        reducer: ``(keys, acc) -> acc`` applied to every chunk, in arrival order
        acc: Initial accumulator
        timeout: Seconds to wait for each message (not cumulative)

    Returns:
        StreamResult with the final status and accumulator
    """
    status = StreamStatus.RUNNING
    chunks = 0
    error: Exception | None = None

    try:
        while status is StreamStatus.RUNNING:
            message = stream.receive(timeout)

            if message is None:
                status = StreamStatus.TIMED_OUT
                logger.warning(f"Key stream {stream.ref} timed out after {timeout}s ({chunks} chunks)")
            elif isinstance(message, KeysChunk) and message.ref == stream.ref:
                acc = reducer(message.keys, acc)
                chunks += 1
            elif isinstance(message, StreamDone) and message.ref == stream.ref:
                status = StreamStatus.COMPLETED
            else:
                status = StreamStatus.FAILED
                if isinstance(message, StreamError):
                    error = message.error
                logger.warning(f"Key stream {stream.ref} failed on message {message!r}")
    finally:
        stream.close()

    return StreamResult(status=status, acc=acc, chunks=chunks, error=error)


def stream_keys(
    client: Any,
    bucket: Bucket,
    reducer: Reducer,
    acc: A,
    timeout: float = STREAM_TIMEOUT_SECONDS,
) -> StreamResult[A]:
    """
    Stream every key of ``bucket`` through ``reducer``.

    Example:
        >>> result = stream_keys(client, bucket, lambda keys, n: n + len(keys), 0)
        >>> result.ok, result.acc
        (True, 1234)
    """
    start_time = time.perf_counter()
    stream = client.stream_keys(bucket)
    result = consume(stream, reducer, acc, timeout=timeout)
    logger.debug(
        f"Key stream {stream.ref} finished: {result.status.value}",
        extra={
            "chunks": result.chunks,
            "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
        }
    )
    return result
