import pytest

from src.stream.models import MessageRecord, MessageState
from src.stream.reducer import apply_event, format_error
from src.stream.schemas import (
    ContentEvent,
    ErrorEvent,
    FunctionCallEvent,
    FunctionResultEvent,
    IntermediateEvent,
    StreamCompleteEvent,
    ThreadInfoEvent,
)


@pytest.fixture
def record():
    return MessageRecord(id="m1", role="assistant")


def _fold(record, *events, elapsed_ms=None):
    for event in events:
        record = apply_event(record, event, elapsed_ms=elapsed_ms)
    return record


def test_content_is_appended_in_order(record):
    result = _fold(record, ContentEvent(content="a"), ContentEvent(content="b"), ContentEvent(content="c"))
    assert result.content == "abc"
    assert result.streaming is True


def test_apply_does_not_mutate_input(record):
    apply_event(record, ContentEvent(content="x"))
    assert record.content == ""


def test_result_attaches_to_earliest_unresolved_call(record):
    result = _fold(
        record,
        FunctionCallEvent(function_name="f", arguments={"n": 1}),
        FunctionCallEvent(function_name="f", arguments={"n": 2}),
        FunctionResultEvent(function_name="f", result=1),
    )

    first, second = result.function_calls
    assert first.resolved is True
    assert first.result == 1
    assert second.resolved is False
    assert second.result is None
    assert first.id != second.id


def test_falsy_result_still_resolves_call(record):
    result = _fold(
        record,
        FunctionCallEvent(function_name="count", arguments={}),
        FunctionCallEvent(function_name="count", arguments={}),
        FunctionResultEvent(function_name="count", result=0),
        FunctionResultEvent(function_name="count", result=5),
    )
    assert [call.result for call in result.function_calls] == [0, 5]
    assert all(call.resolved for call in result.function_calls)


def test_unmatched_result_is_dropped(record):
    with_call = apply_event(record, FunctionCallEvent(function_name="search", arguments={"q": "x"}))
    result = apply_event(with_call, FunctionResultEvent(function_name="lookup", result="nope"))
    assert result is with_call


def test_call_arguments_are_read_only_copies(record):
    arguments = {"q": "contoso"}
    result = apply_event(record, FunctionCallEvent(function_name="search", arguments=arguments))
    arguments["q"] = "changed"

    call = result.function_calls[0]
    assert call.arguments["q"] == "contoso"
    with pytest.raises(TypeError):
        call.arguments["q"] = "again"


def test_missing_arguments_become_empty_mapping(record):
    result = apply_event(record, FunctionCallEvent(function_name="ping"))
    assert dict(result.function_calls[0].arguments) == {}


def test_rapid_calls_get_distinct_ids(record):
    events = [FunctionCallEvent(function_name="f", arguments={}) for _ in range(50)]
    result = _fold(record, *events)
    assert len({call.id for call in result.function_calls}) == 50


def test_informational_events_return_same_record(record):
    assert apply_event(record, ThreadInfoEvent(thread_id="T1")) is record
    assert apply_event(record, IntermediateEvent()) is record


def test_stream_complete_sets_response_time(record):
    result = _fold(record, ContentEvent(content="done"), StreamCompleteEvent(), elapsed_ms=49.6)
    assert result.state is MessageState.COMPLETED
    assert result.streaming is False
    assert result.response_time_ms == 50
    assert result.content == "done"


def test_error_replaces_content(record):
    result = _fold(record, ContentEvent(content="partial"), ErrorEvent(error="boom"))
    assert result.content == "Error: boom"
    assert result.state is MessageState.ERRORED
    assert result.error == "boom"
    assert result.response_time_ms is None


def test_error_formatting():
    assert format_error(ErrorEvent()) == "Error: Unknown error"
    assert (
        format_error(ErrorEvent(error="HTTP error! status: 502"), transport=True)
        == "Sorry, I encountered an error: HTTP error! status: 502"
    )


@pytest.mark.parametrize("terminal", [StreamCompleteEvent(), ErrorEvent(error="boom")])
def test_terminal_records_ignore_further_events(record, terminal):
    finished = _fold(record, ContentEvent(content="hi"), terminal, elapsed_ms=10)

    later = _fold(
        finished,
        ContentEvent(content="more"),
        FunctionCallEvent(function_name="f", arguments={}),
        StreamCompleteEvent(),
        ErrorEvent(error="late"),
        elapsed_ms=999,
    )

    assert later is finished
    assert later.streaming is False
