from __future__ import annotations

import json

import pytest

from clawde.session.events import StreamAccumulator
from clawde.session.records import (
    AssistantRecord,
    ResultRecord,
    SystemRecord,
    UnknownRecord,
    UserRecord,
    decode_record,
)


@pytest.mark.parametrize(
    "line",
    ["", "   \n", "not json", "{broken", "[1, 2, 3]", '"text"', "42", "null"],
)
def test_non_records_are_skipped(line: str) -> None:
    assert decode_record(line) is None


def test_system_init_record() -> None:
    record = decode_record(json.dumps({"type": "system", "subtype": "init", "session_id": "s1", "model": "opus"}))
    assert isinstance(record, SystemRecord)
    assert record.subtype == "init"
    assert record.session_id == "s1"


def test_assistant_record_keeps_block_order_and_drops_junk() -> None:
    payload = {
        "type": "assistant",
        "message": {
            "content": [
                {"type": "text", "text": "a"},
                "stray string",
                {"no_type": True},
                {"type": "tool_use", "name": "Read", "input": {"file_path": "/x"}},
                {"type": "thinking", "thinking": "hmm"},
            ]
        },
    }
    record = decode_record(json.dumps(payload))
    assert isinstance(record, AssistantRecord)
    assert [block.type for block in record.message.content] == ["text", "tool_use", "thinking"]
    assert record.message.content[1].input == {"file_path": "/x"}


def test_assistant_string_content_becomes_text_block() -> None:
    record = decode_record(json.dumps({"type": "assistant", "message": {"content": "hi"}}))
    assert isinstance(record, AssistantRecord)
    assert record.message.content[0].text == "hi"


def test_assistant_without_message_has_no_blocks() -> None:
    record = decode_record(json.dumps({"type": "assistant"}))
    assert isinstance(record, AssistantRecord)
    assert record.message.content == []


def test_tool_use_with_non_mapping_input() -> None:
    payload = {"type": "assistant", "message": {"content": [{"type": "tool_use", "name": "Bash", "input": "ls"}]}}
    record = decode_record(json.dumps(payload))
    assert isinstance(record, AssistantRecord)
    assert record.message.content[0].input == {}


def test_user_tool_result_record() -> None:
    payload = {"type": "user", "message": {"content": [{"type": "tool_result", "content": "ok", "is_error": False}]}}
    record = decode_record(json.dumps(payload))
    assert isinstance(record, UserRecord)
    assert record.message.content[0].content == "ok"


def test_result_record_coerces_error_fields() -> None:
    payload = {
        "type": "result",
        "subtype": "error_during_execution",
        "errors": "boom",
        "error": {"code": 1},
        "total_cost_usd": 0.25,
    }
    record = decode_record(json.dumps(payload))
    assert isinstance(record, ResultRecord)
    assert record.errors == ["boom"]
    assert record.error == '{"code": 1}'
    assert record.total_cost_usd == 0.25


def test_result_with_bad_numeric_fields_keeps_text() -> None:
    record = decode_record(
        json.dumps(
            {
                "type": "result",
                "subtype": "success",
                "result": "the answer",
                "total_cost_usd": "n/a",
                "cost_usd": True,
                "num_turns": "three",
                "duration_ms": [1],
            }
        )
    )
    assert isinstance(record, ResultRecord)
    assert record.result == "the answer"
    assert record.total_cost_usd is None and record.cost_usd is None
    assert record.num_turns is None and record.duration_ms is None

    accumulator = StreamAccumulator()
    accumulator.apply(record)
    response = accumulator.finish(0)
    assert response.text == "the answer"
    assert response.cost_usd is None


def test_error_result_with_bad_cost_still_reports_error() -> None:
    record = decode_record(
        json.dumps({"type": "result", "subtype": "error_max_turns", "is_error": True, "total_cost_usd": "lots"})
    )
    assert isinstance(record, ResultRecord)
    accumulator = StreamAccumulator()
    accumulator.apply(record)
    assert accumulator.finish(0).error


def test_unknown_record_type() -> None:
    record = decode_record(json.dumps({"type": "stream_event", "subtype": "delta", "x": 1}))
    assert isinstance(record, UnknownRecord)
    assert record.type == "stream_event"
    assert record.subtype == "delta"


def test_record_without_type_is_unknown() -> None:
    record = decode_record(json.dumps({"hello": "world"}))
    assert isinstance(record, UnknownRecord)
    assert record.type is None
