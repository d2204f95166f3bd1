from __future__ import annotations

from toolpipe.llm.tool_call_accumulator import ToolCallAccumulator


def test_accumulator_parses_fragmented_json_args() -> None:
    acc = ToolCallAccumulator()

    acc.add_chunk({"id": "call_1", "index": 0, "name": "add", "args": "{\"a\": 15,"})
    acc.add_chunk({"index": 0, "args": " \"b\": 27}"})

    tool_calls, invalid = acc.finalize()

    assert invalid == []
    assert len(tool_calls) == 1
    assert tool_calls[0].id == "call_1"
    assert tool_calls[0].name == "add"
    assert tool_calls[0].args == {"a": 15, "b": 27}


def test_accumulator_keeps_parallel_calls_in_order() -> None:
    acc = ToolCallAccumulator()
    acc.add_chunks(
        [
            {"id": "call_a", "index": 0, "name": "add", "args": "{\"a\":1"},
            {"id": "call_b", "index": 1, "name": "sqrt", "args": "{\"a\":"},
            {"index": 1, "args": "9}"},
            {"index": 0, "args": ",\"b\":2}"},
        ]
    )

    tool_calls, invalid = acc.finalize()

    assert invalid == []
    assert [(c.id, c.name, c.args) for c in tool_calls] == [
        ("call_a", "add", {"a": 1, "b": 2}),
        ("call_b", "sqrt", {"a": 9}),
    ]


def test_accumulator_keeps_invalid_json_non_fatal() -> None:
    acc = ToolCallAccumulator()

    acc.add_chunk({"id": "call_1", "index": 0, "name": "add", "args": "{\"a\":"})

    tool_calls, invalid = acc.finalize()

    assert tool_calls == []
    assert len(invalid) == 1
    assert invalid[0].id == "call_1"
    assert invalid[0].name == "add"
    assert invalid[0].raw_args.startswith("{\"a\":")


def test_empty_args_mean_no_arguments() -> None:
    acc = ToolCallAccumulator()
    acc.add_chunk({"id": "call_1", "index": 0, "name": "ping"})

    tool_calls, _ = acc.finalize()
    assert tool_calls[0].args == {}

    acc.reset()
    assert acc.finalize() == ([], [])
