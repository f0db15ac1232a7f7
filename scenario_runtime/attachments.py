"""Append-only store for attachments produced by hooks and steps."""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional

import structlog

from .errors import AttachmentContractViolation
from .models import Attachment

LOGGER = structlog.get_logger("scenario_runtime")

DEFAULT_TEXT_MIME_TYPE = "text/plain"
STREAM_CHUNK_SIZE = 64 * 1024

AttachCallback = Callable[..., Any]


class SourceKind(str, Enum):
    """Shape of the data handed to ``attach``."""

    STREAM = "stream"
    BINARY = "binary"
    TEXT = "text"


def classify(data: Any) -> SourceKind:
    if isinstance(data, str):
        return SourceKind.TEXT
    if isinstance(data, (bytes, bytearray, memoryview)):
        return SourceKind.BINARY
    if hasattr(data, "__aiter__") or callable(getattr(data, "read", None)):
        return SourceKind.STREAM
    raise AttachmentContractViolation(f"Cannot attach data of type {type(data).__name__}")


class AttachmentStore:
    """Collects attachments in the order their ``attach`` call completed.

    Text and binary payloads are stored immediately. Streams are drained in a
    background task and stored when they end, so a slow stream lands after
    attachments made later.
    """

    def __init__(self, owner: str = "Scenario.attach()") -> None:
        self._owner = owner
        self._attachments: list[Attachment] = []
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def attachments(self) -> tuple[Attachment, ...]:
        return tuple(self._attachments)

    @property
    def pending_streams(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._attachments)

    def close(self) -> None:
        """Stop accepting attachments; streams still running are discarded when they end."""

        self._closed = True

    def attach(
        self,
        data: Any,
        mime_type: Optional[str] = None,
        callback: Optional[AttachCallback] = None,
    ) -> Optional[asyncio.Task[None]]:
        if self._closed:
            raise AttachmentContractViolation(self._closed_message())
        kind = classify(data)
        if kind is SourceKind.STREAM:
            return self._attach_stream(data, mime_type, callback)
        if kind is SourceKind.BINARY:
            if not mime_type:
                raise AttachmentContractViolation(f"{self._owner} expects a mime_type")
            self._append(bytes(data), mime_type)
        else:
            self._append(data, mime_type or DEFAULT_TEXT_MIME_TYPE)
        if callback is not None:
            callback()
        return None

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for streams still being buffered."""

        while self._pending:
            batch = set(self._pending)
            self._pending.difference_update(batch)
            done, not_done = await asyncio.wait(batch, timeout=timeout)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    LOGGER.warning("attachment_callback_failed", error=str(task.exception()))
            if not_done:
                LOGGER.warning("attachment_streams_abandoned", count=len(not_done), timeout=timeout)
                return

    def _attach_stream(
        self,
        source: Any,
        mime_type: Optional[str],
        callback: Optional[AttachCallback],
    ) -> asyncio.Task[None]:
        if not mime_type:
            raise AttachmentContractViolation(f"{self._owner} expects a mime_type")
        if callback is None:
            raise AttachmentContractViolation(
                f"{self._owner} expects a callback when data is a stream"
            )
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise AttachmentContractViolation(
                f"{self._owner} needs a running event loop when data is a stream"
            ) from exc
        task = loop.create_task(self._buffer_stream(source, mime_type, callback))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _buffer_stream(self, source: Any, mime_type: str, callback: AttachCallback) -> None:
        chunks: list[bytes] = []
        try:
            async for chunk in _iter_chunks(source):
                chunks.append(_as_bytes(chunk))
        except Exception as exc:
            LOGGER.warning("attachment_stream_failed", mime_type=mime_type, error=str(exc))
            callback(exc)
            return
        if self._closed:
            LOGGER.warning("attachment_discarded", mime_type=mime_type, reason="store closed")
            callback(AttachmentContractViolation(self._closed_message()))
            return
        self._append(b"".join(chunks), mime_type)
        callback()

    def _closed_message(self) -> str:
        return f"{self._owner} cannot attach after the scenario has completed"

    def _append(self, data: str | bytes, mime_type: str) -> None:
        self._attachments.append(Attachment(mime_type=mime_type, data=data))
        LOGGER.debug("attachment_added", mime_type=mime_type, size=len(data))


async def _iter_chunks(source: Any) -> AsyncIterator[Any]:
    if hasattr(source, "__aiter__"):
        async for chunk in source:
            yield chunk
        return
    read = source.read
    while True:
        if inspect.iscoroutinefunction(read):
            chunk = await read(STREAM_CHUNK_SIZE)
        else:
            chunk = await asyncio.to_thread(read, STREAM_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


def _as_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk)
    raise AttachmentContractViolation(f"Stream produced a {type(chunk).__name__} chunk")
