# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import MalformedPayloadError, UnknownEventError
from .models import FunctionCallRecord, MessageRecord

DEFAULT_DEMAND_STAGE = "Pre-Demand"


class _WireEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ContentEvent(_WireEvent):
    type: Literal["content"] = "content"
    content: str


class FunctionCallEvent(_WireEvent):
    type: Literal["function_call"] = "function_call"
    function_name: str
    arguments: Optional[dict[str, Any]] = None


class FunctionResultEvent(_WireEvent):
    type: Literal["function_result"] = "function_result"
    function_name: str
    result: Any = None


class ThreadInfoEvent(_WireEvent):
    type: Literal["thread_info"] = "thread_info"
    thread_id: Optional[str] = None


class IntermediateEvent(_WireEvent):
    type: Literal["intermediate"] = "intermediate"


class StreamCompleteEvent(_WireEvent):
    type: Literal["stream_complete"] = "stream_complete"


class ErrorEvent(_WireEvent):
    type: Literal["error"] = "error"
    error: Optional[str] = None

    @field_validator("error", mode="before")
    @classmethod
    def coerce_error(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(value)


StreamEvent = Annotated[
    Union[
        ContentEvent,
        FunctionCallEvent,
        FunctionResultEvent,
        ThreadInfoEvent,
        IntermediateEvent,
        StreamCompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

EVENT_TYPES = frozenset(
    {
        "content",
        "function_call",
        "function_result",
        "thread_info",
        "intermediate",
        "stream_complete",
        "error",
    }
)

_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(payload: str) -> StreamEvent:
    """Parse one ``data:`` payload into a typed stream event.

    Raises ``MalformedPayloadError`` for broken JSON or invalid fields and
    ``UnknownEventError`` when the ``type`` tag is missing or unrecognised.
    """
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise MalformedPayloadError(f"Invalid JSON: {exc}", payload) from exc

    if not isinstance(data, dict):
        raise MalformedPayloadError("Payload is not a JSON object", payload)

    event_type = data.get("type")
    if not isinstance(event_type, str) or event_type not in EVENT_TYPES:
        raise UnknownEventError(f"Unknown event type: {event_type!r}", payload, event_type)

    try:
        return _EVENT_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise MalformedPayloadError(
            f"Invalid {event_type} event: {exc.error_count()} validation error(s)", payload
        ) from exc


class ExchangeRequest(BaseModel):
    """Request body posted to the assistant backend for one exchange."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    thread_id: str = Field(default="", alias="threadId")
    demand_stage: str = Field(default=DEFAULT_DEMAND_STAGE)
    account_name: str = Field(default="", alias="AccountName")
    account_id: str = Field(default="", alias="AccountId")
    client_name: str = Field(default="", alias="ClientName")
    client_id: str = Field(default="", alias="ClientId")
    pursuit_id: str = Field(default="", alias="PursuitId")
    additional_instructions: str = Field(default="")

    @field_validator("query")
    @classmethod
    def validate_query(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Query must not be empty")
        return value

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class FunctionCallSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    resolved: bool = False
    timestamp: datetime


class MessageSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    content: str
    type: Literal["user", "assistant"]
    timestamp: datetime
    function_calls: list[FunctionCallSnapshot] = Field(default_factory=list, alias="functionCalls")
    is_streaming: bool = Field(default=False, alias="isStreaming")
    response_time: Optional[int] = Field(default=None, alias="responseTime")


def _to_function_call(record: FunctionCallRecord) -> FunctionCallSnapshot:
    return FunctionCallSnapshot(
        id=record.id,
        name=record.name,
        arguments=dict(record.arguments),
        result=record.result,
        resolved=record.resolved,
        timestamp=record.observed_at,
    )


def to_snapshot(record: MessageRecord) -> MessageSnapshot:
    return MessageSnapshot(
        id=record.id,
        content=record.content,
        type=record.role,
        timestamp=record.created_at,
        function_calls=[_to_function_call(call) for call in record.function_calls],
        is_streaming=record.streaming,
        response_time=record.response_time_ms,
    )
