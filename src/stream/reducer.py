# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from __future__ import annotations

import logging
from dataclasses import replace
from types import MappingProxyType
from typing import Optional
from uuid import uuid4

from .models import FunctionCallRecord, MessageRecord, MessageState, utc_now
from .schemas import (
    ContentEvent,
    ErrorEvent,
    FunctionCallEvent,
    FunctionResultEvent,
    StreamCompleteEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)

_UNKNOWN_ERROR = "Unknown error"


def apply_event(
    record: MessageRecord,
    event: StreamEvent,
    *,
    elapsed_ms: Optional[float] = None,
    transport: bool = False,
) -> MessageRecord:
    """Fold one stream event into a message record and return the next record.

    The input record is never mutated. Terminal records are returned as-is, and
    events with no visible effect (``thread_info``, ``intermediate``) return
    the same instance. ``transport`` marks an error the client synthesised for
    a connection fault rather than one sent by the server.
    """
    if record.is_terminal:
        logger.debug("Ignoring %s event for terminated message %s", event.type, record.id)
        return record

    if isinstance(event, ContentEvent):
        if not event.content:
            return record
        return replace(record, content=record.content + event.content)

    if isinstance(event, FunctionCallEvent):
        call = FunctionCallRecord(
            id=_new_call_id(event.function_name),
            name=event.function_name,
            arguments=MappingProxyType(dict(event.arguments or {})),
            observed_at=utc_now(),
        )
        return replace(record, function_calls=record.function_calls + (call,))

    if isinstance(event, FunctionResultEvent):
        return _attach_result(record, event)

    if isinstance(event, StreamCompleteEvent):
        response_time = round(elapsed_ms) if elapsed_ms is not None else None
        return replace(record, state=MessageState.COMPLETED, response_time_ms=response_time)

    if isinstance(event, ErrorEvent):
        description = event.error if event.error else _UNKNOWN_ERROR
        return replace(
            record,
            content=format_error(event, transport=transport),
            state=MessageState.ERRORED,
            error=description,
        )

    return record


def format_error(event: ErrorEvent, *, transport: bool = False) -> str:
    description = event.error if event.error else _UNKNOWN_ERROR
    if transport:
        return f"Sorry, I encountered an error: {description}"
    return f"Error: {description}"


def _attach_result(record: MessageRecord, event: FunctionResultEvent) -> MessageRecord:
    # Results carry no call id, so the earliest unresolved call with the same
    # name wins.
    calls = list(record.function_calls)
    for index, call in enumerate(calls):
        if call.name == event.function_name and not call.resolved:
            calls[index] = replace(call, result=event.result, resolved=True)
            return replace(record, function_calls=tuple(calls))

    logger.debug("Dropping result for %s: no unresolved call in message %s", event.function_name, record.id)
    return record


def _new_call_id(name: str) -> str:
    return f"{name}-{uuid4().hex}"
