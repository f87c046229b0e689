from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Protocol, runtime_checkable

from loguru import logger

from travel_rag_agent.errors import StreamFramingFailure
from travel_rag_agent.orchestrator import AnswerResult, ConversationOrchestrator
from travel_rag_agent.status import StatusEvent

_background_runs: set[asyncio.Task] = set()

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def format_frame(payload: dict[str, Any]) -> bytes:
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
    return f"data: {body}\n\n".encode("utf-8")


def status_frame(event: StatusEvent) -> bytes:
    return format_frame({"type": "status", "status": event.to_dict()})


def final_frame(result: AnswerResult) -> bytes:
    return format_frame({"type": "final", "result": result.to_dict()})


def error_frame(error: str) -> bytes:
    return format_frame({"type": "error", "error": error})


@runtime_checkable
class SseChannel(Protocol):
    async def open(self, headers: dict[str, str]) -> None: ...

    async def write(self, chunk: bytes) -> None:
        """Write one frame. Raises StreamFramingFailure once the channel is closed."""
        ...

    async def close(self) -> None: ...


class QueueSseChannel:
    """In-process channel whose consumer side is an async iterator of byte chunks.

    The iterator is suitable as a streaming HTTP response body. Once the
    consumer calls ``disconnect`` further writes are discarded silently.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self.headers: dict[str, str] | None = None
        self._opened = False
        self._closed = False
        self._disconnected = False

    @property
    def opened(self) -> bool:
        return self._opened

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    async def open(self, headers: dict[str, str]) -> None:
        if self._opened:
            raise StreamFramingFailure("Channel already opened")
        self.headers = dict(headers)
        self._opened = True

    async def write(self, chunk: bytes) -> None:
        if self._closed:
            raise StreamFramingFailure("Write after channel close")
        if not self._opened:
            raise StreamFramingFailure("Write before channel open")
        if self._disconnected:
            return
        self._queue.put_nowait(chunk)

    async def close(self) -> None:
        if self._closed:
            raise StreamFramingFailure("Channel already closed")
        self._closed = True
        self._queue.put_nowait(None)

    def disconnect(self) -> None:
        self._disconnected = True

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk


async def stream_answer(
    orchestrator: ConversationOrchestrator,
    channel: SseChannel,
    query: str,
    session_id: str | None = None,
    *,
    context: str | None = None,
) -> AnswerResult | None:
    """Run one answer and deliver it over ``channel`` as SSE frames.

    Status frames are queued synchronously from the tracker's observer and
    written in order by a pump task. Exactly one terminal frame follows and
    the channel is closed exactly once. A failed write stops delivery but not
    the run; it is raised as StreamFramingFailure after the channel is closed.
    Returns the run's result, or None if the run itself raised.
    """
    await channel.open(SSE_HEADERS)

    frames: asyncio.Queue[bytes | None] = asyncio.Queue()
    write_errors: list[StreamFramingFailure] = []

    async def pump() -> None:
        while True:
            frame = await frames.get()
            if frame is None:
                return
            if write_errors:
                continue
            try:
                await channel.write(frame)
            except StreamFramingFailure as ex:
                write_errors.append(ex)
            except Exception as ex:
                write_errors.append(StreamFramingFailure(f"Channel write failed: {ex}"))
            if write_errors:
                logger.warning(f"Stream delivery stopped: {write_errors[0]}")

    pump_task = asyncio.create_task(pump())
    result: AnswerResult | None = None
    try:
        try:
            result = await orchestrator.answer(
                query,
                session_id,
                context=context,
                on_status=lambda event: frames.put_nowait(status_frame(event)),
            )
            frames.put_nowait(final_frame(result))
        except Exception as ex:
            logger.error(f"Streaming run failed: {type(ex).__name__}: {ex}")
            frames.put_nowait(error_frame(str(ex) or type(ex).__name__))
        frames.put_nowait(None)
        await pump_task
    finally:
        if not pump_task.done():
            pump_task.cancel()
        await channel.close()

    if write_errors:
        raise write_errors[0]
    return result


async def iter_answer_frames(
    orchestrator: ConversationOrchestrator,
    query: str,
    session_id: str | None = None,
    *,
    context: str | None = None,
) -> AsyncIterator[bytes]:
    """Yield the SSE frames of one answer as they are produced."""
    channel = QueueSseChannel()
    task = asyncio.create_task(stream_answer(orchestrator, channel, query, session_id, context=context))
    _background_runs.add(task)
    task.add_done_callback(_background_runs.discard)
    try:
        async for chunk in channel:
            yield chunk
        await task
    finally:
        if not task.done():
            # Consumer went away: keep the run going but stop buffering frames
            channel.disconnect()
