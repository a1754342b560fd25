# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional

Role = Literal["user", "assistant"]


class MessageState(str, enum.Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class FunctionCallRecord:
    id: str
    name: str
    arguments: Mapping[str, Any]
    observed_at: datetime
    result: Any = None
    resolved: bool = False


@dataclass(frozen=True, slots=True)
class MessageRecord:
    id: str
    role: Role
    content: str = ""
    function_calls: tuple[FunctionCallRecord, ...] = ()
    state: MessageState = MessageState.STREAMING
    response_time_ms: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    error: Optional[str] = None

    @property
    def streaming(self) -> bool:
        return self.state is MessageState.STREAMING

    @property
    def is_terminal(self) -> bool:
        return self.state is not MessageState.STREAMING
