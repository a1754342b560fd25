# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from __future__ import annotations

import logging
from typing import Optional

from src.config import get_int_env, get_str_env

from .exchange import ExchangeManager
from .schemas import DEFAULT_DEMAND_STAGE

logger = logging.getLogger(__name__)

_EXCHANGE_MANAGER: Optional[ExchangeManager] = None


def initialise_exchange_manager() -> ExchangeManager:
    """Create the exchange manager using configuration."""
    global _EXCHANGE_MANAGER
    if _EXCHANGE_MANAGER is not None:
        return _EXCHANGE_MANAGER

    encoding = get_str_env("STREAM_ENCODING", "utf-8") or "utf-8"
    manager = ExchangeManager(
        encoding=encoding,
        payload_preview_chars=get_int_env("STREAM_PAYLOAD_PREVIEW_CHARS", 200),
        default_demand_stage=get_str_env("STREAM_DEFAULT_DEMAND_STAGE", DEFAULT_DEMAND_STAGE),
    )
    _EXCHANGE_MANAGER = manager
    logger.info("Initialised exchange manager with encoding %s", encoding)
    return manager


def set_exchange_manager(manager: Optional[ExchangeManager]) -> None:
    global _EXCHANGE_MANAGER
    _EXCHANGE_MANAGER = manager


def get_exchange_manager() -> ExchangeManager:
    if _EXCHANGE_MANAGER is None:
        raise RuntimeError("Exchange manager has not been initialised")
    return _EXCHANGE_MANAGER
