# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Parse-level faults raised for a single ``data:`` payload.

None of these ever escape the exchange read loop; they are logged and the
offending payload is skipped.
"""


class EventParseError(ValueError):
    """A payload could not be turned into a stream event."""

    def __init__(self, message: str, payload: str) -> None:
        super().__init__(message)
        self.payload = payload


class MalformedPayloadError(EventParseError):
    """Payload is not valid JSON, not an object, or has invalid fields."""


class UnknownEventError(EventParseError):
    """Payload has no ``type`` or a ``type`` this client does not handle."""

    def __init__(self, message: str, payload: str, event_type: object = None) -> None:
        super().__init__(message, payload)
        self.event_type = event_type
