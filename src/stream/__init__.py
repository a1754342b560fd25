# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Streaming core: decodes the assistant's event stream into message records."""

from .exchange import Exchange, ExchangeManager
from .frames import FrameDecoder
from .models import FunctionCallRecord, MessageRecord, MessageState
from .reducer import apply_event
from .schemas import ExchangeRequest, parse_event, to_snapshot

__all__ = [
    "Exchange",
    "ExchangeManager",
    "ExchangeRequest",
    "FrameDecoder",
    "FunctionCallRecord",
    "MessageRecord",
    "MessageState",
    "apply_event",
    "parse_event",
    "to_snapshot",
]
