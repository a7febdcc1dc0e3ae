"""Unit tests for structured tool-call assembly."""

import pytest

from chatstream.emission import EmissionGuard
from chatstream.errors import InvalidToolCallError
from chatstream.events import ToolCallEvent
from chatstream.streaming import (
    ToolCallAccumulator,
    ToolCallFragment,
    try_parse_object,
)


class TestTryParseObject:
    def test_object(self):
        assert try_parse_object('{"q": 1}') == {"q": 1}

    def test_empty_object(self):
        assert try_parse_object("{}") == {}

    @pytest.mark.parametrize("text", [
        None, "", '{"q": 1', "[1, 2]", '"text"', "42", "null", "{} trailing",
    ])
    def test_rejects_non_objects(self, text):
        assert try_parse_object(text) is None

    def test_deeply_nested_input(self):
        assert try_parse_object('{"a": ' + "[" * 100000) is None


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def acc(emitted):
    return ToolCallAccumulator(emitted.append)


class TestToolCallAccumulator:
    def test_single_tool_call_single_fragment(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="echo", arguments_delta='{"text": "hi"}'))

        assert emitted == [ToolCallEvent(id="c1", name="echo", arguments={"text": "hi"})]
        assert acc.pending == {}
        assert acc.completed == {0}

    def test_arguments_accumulated_across_fragments(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="echo", arguments_delta='{"te'))
        assert emitted == []
        assert acc.pending[0].arguments == '{"te'

        acc.feed(ToolCallFragment(index=0, arguments_delta='xt": "hi"}'))
        assert emitted == [ToolCallEvent(id="c1", name="echo", arguments={"text": "hi"})]

    def test_name_arrives_after_arguments(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", arguments_delta='{"q": 1}'))
        assert emitted == []

        acc.feed(ToolCallFragment(index=0, name="search"))
        assert emitted == [ToolCallEvent(id="c1", name="search", arguments={"q": 1})]

    def test_id_and_name_are_overwritten(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="old", name="first"))
        acc.feed(ToolCallFragment(index=0, call_id="new", name="second"))
        acc.feed(ToolCallFragment(index=0, arguments_delta="{}"))

        assert emitted == [ToolCallEvent(id="new", name="second", arguments={})]

    def test_generated_id_when_missing(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, name="search", arguments_delta='{"q": 1}'))

        assert emitted[0].id.startswith("call_")
        assert len(emitted[0].id) == len("call_") + 8

    def test_late_fragments_for_completed_index_are_ignored(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="search", arguments_delta='{"q": 1}'))
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="search", arguments_delta='{"q": 1}'))
        acc.feed(ToolCallFragment(index=0, arguments_delta='{"q": 2}'))

        assert len(emitted) == 1
        assert acc.pending == {}

    def test_multiple_concurrent_tool_calls(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="foo", arguments_delta='{"a":'))
        acc.feed(ToolCallFragment(index=1, call_id="c2", name="bar", arguments_delta='{"b":'))
        acc.feed(ToolCallFragment(index=1, arguments_delta=' 2}'))
        acc.feed(ToolCallFragment(index=0, arguments_delta=' 1}'))

        assert emitted == [
            ToolCallEvent(id="c2", name="bar", arguments={"b": 2}),
            ToolCallEvent(id="c1", name="foo", arguments={"a": 1}),
        ]

    def test_non_object_arguments_are_not_emitted(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, name="f", arguments_delta="[1, 2]"))

        assert emitted == []
        assert 0 in acc.pending


class TestFlush:
    def test_non_strict_flush_drops_invalid_json(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", name="f", arguments_delta='{"a": '))
        acc.flush(strict=False)

        assert emitted == []
        assert acc.pending == {}

    def test_strict_flush_raises_on_invalid_json(self, acc, emitted):
        acc.feed(ToolCallFragment(index=3, call_id="c1", name="f", arguments_delta='{"a": '))

        with pytest.raises(InvalidToolCallError) as exc_info:
            acc.flush(strict=True)

        assert exc_info.value.index == 3
        assert exc_info.value.snippet == '{"a": '
        assert emitted == []

    def test_flush_names_unnamed_calls(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", arguments_delta='{"a": 1}'))
        acc.flush(strict=True)

        assert emitted == [ToolCallEvent(id="c1", name="unknown_tool", arguments={"a": 1})]

    def test_flush_emits_in_index_order(self, acc, emitted):
        acc.feed(ToolCallFragment(index=2, call_id="c3", arguments_delta="{}"))
        acc.feed(ToolCallFragment(index=0, call_id="c1", arguments_delta="{}"))
        acc.flush(strict=False)

        assert [e.id for e in emitted] == ["c1", "c3"]

    def test_strict_flush_emits_valid_calls_before_raising(self, acc, emitted):
        acc.feed(ToolCallFragment(index=0, call_id="c1", arguments_delta="{}"))
        acc.feed(ToolCallFragment(index=1, call_id="c2", arguments_delta="{"))

        with pytest.raises(InvalidToolCallError):
            acc.flush(strict=True)

        assert [e.id for e in emitted] == ["c1"]

    def test_flush_on_empty_accumulator(self, acc, emitted):
        acc.flush(strict=True)
        assert emitted == []


class TestSharedGuard:
    def test_duplicate_identity_is_suppressed_but_index_finalized(self, emitted):
        guard = EmissionGuard()
        guard.admit("search", {"q": 1}, 0)
        acc = ToolCallAccumulator(emitted.append, guard)

        acc.feed(ToolCallFragment(index=0, call_id="c1", name="search", arguments_delta='{"q": 9}'))

        assert emitted == []
        assert acc.completed == {0}
        assert acc.pending == {}
