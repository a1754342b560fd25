# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Callable, Mapping, Optional
from uuid import uuid4

from .errors import MalformedPayloadError, UnknownEventError
from .frames import Chunk, FrameDecoder
from .models import MessageRecord, MessageState
from .reducer import apply_event
from .schemas import DEFAULT_DEMAND_STAGE, ErrorEvent, ExchangeRequest, ThreadInfoEvent, parse_event

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(slots=True)
class Exchange:
    """Handle for one request/response cycle.

    Only the manager mutates ``record``; callers read it as the latest snapshot.
    """

    generation: int
    request: ExchangeRequest
    user_message: MessageRecord
    record: MessageRecord
    decoder: FrameDecoder
    started_at: float
    thread_id: Optional[str] = None
    cancelled: bool = False
    stalled: bool = False
    _cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def payload(self) -> dict[str, Any]:
        return self.request.to_payload()


class ExchangeManager:
    """Runs exchanges for one conversation, one live generation at a time."""

    def __init__(
        self,
        *,
        encoding: str = "utf-8",
        clock: Clock = time.perf_counter,
        on_thread_id: Optional[Callable[[str], None]] = None,
        payload_preview_chars: int = 200,
        default_demand_stage: str = DEFAULT_DEMAND_STAGE,
    ) -> None:
        self._encoding = encoding
        self._clock = clock
        self._on_thread_id = on_thread_id
        self._payload_preview_chars = payload_preview_chars
        self._default_demand_stage = default_demand_stage
        self._generations = itertools.count(1)
        self._active: Optional[Exchange] = None
        self._thread_id: Optional[str] = None

    @property
    def thread_id(self) -> Optional[str]:
        return self._thread_id

    @property
    def active(self) -> Optional[Exchange]:
        return self._active

    def is_current(self, exchange: Exchange) -> bool:
        return (
            not exchange.cancelled
            and self._active is not None
            and self._active.generation == exchange.generation
        )

    def begin_exchange(
        self,
        query: str,
        *,
        thread_id: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Exchange:
        """Start a new exchange, abandoning any exchange still in flight."""
        fields: dict[str, Any] = {"demand_stage": self._default_demand_stage}
        fields.update(context or {})
        fields.pop("threadId", None)
        fields["query"] = query
        fields["thread_id"] = thread_id if thread_id is not None else (self._thread_id or "")
        request = ExchangeRequest.model_validate(fields)

        if self._active is not None:
            logger.info("Abandoning exchange %s for a new request", self._active.id)
            self.cancel(self._active)

        generation = next(self._generations)
        user_message = MessageRecord(
            id=uuid4().hex,
            role="user",
            content=request.query,
            state=MessageState.COMPLETED,
        )
        exchange = Exchange(
            generation=generation,
            request=request,
            user_message=user_message,
            record=MessageRecord(id=uuid4().hex, role="assistant"),
            decoder=FrameDecoder(self._encoding),
            started_at=self._clock(),
        )
        self._active = exchange
        logger.info("Started exchange %s (generation %s)", exchange.id, generation)
        return exchange

    def feed(self, exchange: Exchange, chunk: Chunk) -> MessageRecord:
        """Push one raw chunk and return the record after applying completed events."""
        if not self.is_current(exchange):
            logger.debug("Dropping chunk for stale exchange %s", exchange.id)
            return exchange.record

        for payload in exchange.decoder.feed(chunk):
            # A thread id callback may cancel or replace this exchange mid-chunk.
            if not self.is_current(exchange):
                break
            self._dispatch(exchange, payload)
        return exchange.record

    def fail(self, exchange: Exchange, description: str) -> MessageRecord:
        """Terminate the exchange with a transport-level error."""
        if not self.is_current(exchange):
            return exchange.record
        logger.warning("Transport fault in exchange %s: %s", exchange.id, description)
        exchange.record = apply_event(exchange.record, ErrorEvent(error=description), transport=True)
        return exchange.record

    def cancel(self, exchange: Exchange) -> None:
        if exchange.cancelled:
            return
        exchange.cancelled = True
        exchange._cancel_event.set()
        exchange.decoder.close()
        if self._active is not None and self._active.generation == exchange.generation:
            self._active = None
        logger.info("Cancelled exchange %s (generation %s)", exchange.id, exchange.generation)

    def reset(self) -> None:
        """Drop the live exchange and forget the thread id, as for a new chat."""
        if self._active is not None:
            self.cancel(self._active)
        self._thread_id = None

    async def astream(
        self, exchange: Exchange, chunks: AsyncIterable[Chunk]
    ) -> AsyncIterator[MessageRecord]:
        """Read chunks until a terminal event, the end of the stream, or cancellation.

        Yields the record each time a chunk changed it. The source is closed on
        exit, so a server that keeps the connection open after
        ``stream_complete`` does not hold the loop.
        """
        iterator = chunks.__aiter__()
        try:
            while self.is_current(exchange) and not exchange.record.is_terminal:
                try:
                    chunk = await self._next_chunk(exchange, iterator)
                except StopAsyncIteration:
                    self._end_of_stream(exchange)
                    return
                except Exception as exc:  # noqa: BLE001 - transport faults end the exchange, not the caller
                    before = exchange.record
                    self.fail(exchange, str(exc) or type(exc).__name__)
                    if exchange.record is not before:
                        yield exchange.record
                    return

                if chunk is None:
                    return

                before = exchange.record
                record = self.feed(exchange, chunk)
                if record is not before:
                    yield record
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def consume(
        self,
        exchange: Exchange,
        chunks: AsyncIterable[Chunk],
        on_update: Optional[Callable[[MessageRecord], None]] = None,
    ) -> MessageRecord:
        async for record in self.astream(exchange, chunks):
            if on_update is not None:
                on_update(record)
        return exchange.record

    async def _next_chunk(self, exchange: Exchange, iterator: AsyncIterator[Chunk]) -> Optional[Chunk]:
        """Await the next chunk, or return None if the exchange is cancelled first."""
        read = asyncio.ensure_future(iterator.__anext__())
        cancelled = asyncio.ensure_future(exchange._cancel_event.wait())
        try:
            done, _ = await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (read, cancelled) if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if read in done and not read.cancelled():
            return read.result()
        return None

    def _end_of_stream(self, exchange: Exchange) -> None:
        exchange.decoder.close()
        if exchange.record.streaming:
            exchange.stalled = True
            logger.warning("Stream for exchange %s ended without a terminal event", exchange.id)

    def _dispatch(self, exchange: Exchange, payload: str) -> None:
        try:
            event = parse_event(payload)
        except UnknownEventError as exc:
            logger.debug("Skipping event of unknown type %r in exchange %s", exc.event_type, exchange.id)
            return
        except MalformedPayloadError as exc:
            logger.warning(
                "Failed to parse stream data in exchange %s: %s. Raw data: %s",
                exchange.id,
                exc,
                payload[: self._payload_preview_chars],
            )
            return

        if exchange.record.is_terminal:
            logger.debug("Ignoring %s event after exchange %s terminated", event.type, exchange.id)
            return

        if isinstance(event, ThreadInfoEvent):
            if event.thread_id:
                self._surface_thread_id(exchange, event.thread_id)
            return

        elapsed_ms = (self._clock() - exchange.started_at) * 1000
        exchange.record = apply_event(exchange.record, event, elapsed_ms=elapsed_ms)
        if exchange.record.is_terminal:
            logger.info(
                "Exchange %s finished as %s in %s ms",
                exchange.id,
                exchange.record.state.value,
                exchange.record.response_time_ms,
            )

    def _surface_thread_id(self, exchange: Exchange, thread_id: str) -> None:
        exchange.thread_id = thread_id
        self._thread_id = thread_id
        if self._on_thread_id is not None:
            self._on_thread_id(thread_id)
