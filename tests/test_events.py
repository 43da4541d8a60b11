from __future__ import annotations

import json

from cogo_sdk.streaming.events import (
    CliApplyEvent,
    CliPlanEvent,
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    QueuedEvent,
    TypedHandlers,
    UnrecognizedEvent,
    decode_event,
    extract_trace_id,
    parse_event,
)


def test_meta_payload_is_validated() -> None:
    event = parse_event("meta", '{"trace_id":"t1","envelope_version":"v1","intent":{"k":1}}')
    assert isinstance(event, MetaEvent)
    assert event.trace_id == "t1"
    assert event.intent == {"k": 1}


def test_wrong_field_type_is_unrecognized_with_raw_data() -> None:
    raw = '{"trace_id": 42}'
    event = parse_event("meta", raw)
    assert event == UnrecognizedEvent(event="meta", data=raw)


def test_undecodable_json_is_unrecognized() -> None:
    event = parse_event("done", "{not json")
    assert event == UnrecognizedEvent(event="done", data="{not json")


def test_unknown_event_name_is_unrecognized() -> None:
    event = parse_event("page.chunk", '{"html":"<div/>"}')
    assert isinstance(event, UnrecognizedEvent)
    assert event.event == "page.chunk"


def test_cli_apply_requires_trace_id_and_status() -> None:
    assert isinstance(parse_event("cli.apply", '{"status":"running"}'), UnrecognizedEvent)
    event = parse_event("cli.apply", '{"trace_id":"t1","action_id":"a","status":"success"}')
    assert isinstance(event, CliApplyEvent)
    assert event.status == "success"


def test_cli_plan_requires_actions_list() -> None:
    assert isinstance(parse_event("cli.plan", '{"trace_id":"t1","actions":"a"}'), UnrecognizedEvent)
    event = parse_event("cli.plan", '{"trace_id":"t1","actions":[{"id":"a"},{"id":"b"}]}')
    assert isinstance(event, CliPlanEvent)
    assert len(event.actions) == 2


def test_queued_accepts_integer_estimate() -> None:
    event = parse_event("queued", '{"trace_id":"t1","estimate_ms":1200}')
    assert isinstance(event, QueuedEvent)
    assert event.estimate_ms == 1200


def test_done_keeps_extra_fields() -> None:
    event = parse_event("done", '{"trace_id":"t1","output":{"json":1},"ide_hints":{"toast":"ok"}}')
    assert isinstance(event, DoneEvent)
    assert event.extras == {"output": {"json": 1}, "ide_hints": {"toast": "ok"}}


def test_error_requires_code_and_message() -> None:
    assert isinstance(parse_event("error", '{"message":"boom"}'), UnrecognizedEvent)
    event = parse_event("error", '{"code":"E_RATE","message":"slow down","retryable":true}')
    assert isinstance(event, ErrorEvent)
    assert event.retryable is True
    assert event.trace_id is None


def test_decode_event_from_payload_object() -> None:
    event = decode_event("done", {"trace_id": "t9"})
    assert isinstance(event, DoneEvent)

    invalid = decode_event("done", {"trace_id": None})
    assert isinstance(invalid, UnrecognizedEvent)
    assert json.loads(invalid.data) == {"trace_id": None}


def test_extract_trace_id() -> None:
    assert extract_trace_id('{"trace_id":"t1"}') == "t1"
    assert extract_trace_id('{"trace_id":7}') is None
    assert extract_trace_id("[1,2]") is None
    assert extract_trace_id("") is None
    assert extract_trace_id("nope") is None


def test_handlers_lookup_by_event_name() -> None:
    def on_plan(event: CliPlanEvent) -> None:
        pass

    handlers = TypedHandlers(cli_plan=on_plan)
    assert handlers.for_event("cli.plan") is on_plan
    assert handlers.for_event("cli.apply") is None
    assert handlers.for_event("page.chunk") is None
