import json

import pytest


@pytest.fixture
def make_event():
    """Encode one server-side frame of the event stream."""

    def _make_event(event_type: str, data: dict) -> str:
        json_data = json.dumps(data, ensure_ascii=False)
        return f"event: {event_type}\ndata: {json_data}\n\n"

    return _make_event
