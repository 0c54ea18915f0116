"""Tests for ToolCallAccumulator."""

import pytest

from exthost.chat.accumulator import ToolCall, ToolCallAccumulator


class TestToolCallAccumulator:
    """Merging streamed tool-call deltas by index."""

    def test_fragments_merge_into_one_call(self) -> None:
        acc = ToolCallAccumulator()
        acc.merge({"index": 0, "id": "a", "function": {"name": "read_file", "arguments": '{"pa'}})
        acc.merge({"index": 0, "function": {"arguments": 'th":1}'}})
        calls = acc.calls()
        assert calls == [ToolCall(id="a", function_name="read_file", arguments_text='{"path":1}')]

    def test_empty_id_and_name_do_not_overwrite(self) -> None:
        acc = ToolCallAccumulator()
        acc.merge({"index": 0, "id": "call_1", "function": {"name": "grep"}})
        acc.merge({"index": 0, "id": "", "function": {"name": "", "arguments": "{}"}})
        assert acc.calls()[0].id == "call_1"
        assert acc.calls()[0].function_name == "grep"

    def test_out_of_order_indices_returned_sorted(self) -> None:
        acc = ToolCallAccumulator()
        acc.merge({"index": 1, "id": "second", "function": {"name": "b"}})
        acc.merge({"index": 0, "id": "first", "function": {"name": "a"}})
        assert [c.id for c in acc.calls()] == ["first", "second"]

    def test_empty_records_are_skipped(self) -> None:
        acc = ToolCallAccumulator()
        acc.merge({"index": 3})
        assert acc.calls() == []
        assert not acc

    def test_non_integer_index_rejected(self) -> None:
        acc = ToolCallAccumulator()
        with pytest.raises(ValueError):
            acc.merge({"index": "0", "id": "a"})

    def test_to_message_shape(self) -> None:
        call = ToolCall(id="a", function_name="read_file", arguments_text="{}")
        assert call.to_message() == {
            "id": "a",
            "type": "function",
            "function": {"name": "read_file", "arguments": "{}"},
        }
