import pytest

from depmigrator.agent.messages import StreamEnd, TextDelta, ToolCallDelta
from depmigrator.agent.stream_assembler import TurnAssembler
from depmigrator.errors import MalformedStreamError


def _assemble(fragments):
    assembler = TurnAssembler()
    echoed = [assembler.feed(fragment) for fragment in fragments]
    return assembler.finish(), echoed


def test_text_only_turn():
    turn, echoed = _assemble([TextDelta("Hel"), TextDelta("lo"), StreamEnd("end_turn")])

    assert turn.text == "Hello"
    assert turn.tool_calls == []
    assert turn.stop_reason == "end_turn"
    assert echoed == ["Hel", "lo", None]


def test_arguments_assembled_across_fragments():
    turn, _ = _assemble([
        TextDelta("Reading."),
        ToolCallDelta(index=0, call_id="call_1", name="read_file", arguments='{"file_'),
        ToolCallDelta(index=0, arguments='path": "go.'),
        ToolCallDelta(index=0, arguments='mod"}'),
        StreamEnd("tool_use"),
    ])

    assert turn.text == "Reading."
    assert len(turn.tool_calls) == 1
    call = turn.tool_calls[0]
    assert (call.call_id, call.tool_name, call.arguments) == ("call_1", "read_file", {"file_path": "go.mod"})


def test_interleaved_calls_are_kept_apart():
    turn, _ = _assemble([
        ToolCallDelta(index=0, call_id="a", name="read_file", arguments='{"file_path":'),
        ToolCallDelta(index=1, call_id="b", name="get_root"),
        ToolCallDelta(index=0, arguments=' "x.go"}'),
        StreamEnd("tool_use"),
    ])

    assert [(c.call_id, c.arguments) for c in turn.tool_calls] == [("a", {"file_path": "x.go"}), ("b", {})]


def test_invalid_argument_json_is_recorded_not_fatal():
    turn, _ = _assemble([
        ToolCallDelta(index=0, call_id="a", name="read_file", arguments='{"file_path": '),
        ToolCallDelta(index=1, call_id="b", name="read_file", arguments='["x"]'),
        StreamEnd("tool_use"),
    ])

    assert [c.call_id for c in turn.tool_calls] == ["a", "b"]
    assert set(turn.argument_errors) == {"a", "b"}


def test_missing_stream_end_infers_stop_reason():
    assembler = TurnAssembler()
    assembler.feed(ToolCallDelta(index=0, call_id="a", name="get_root"))
    assert assembler.finish().stop_reason == "tool_use"


@pytest.mark.parametrize(
    "fragments",
    [
        [ToolCallDelta(index=0, arguments="{}")],
        [ToolCallDelta(index=0, call_id="a")],
        [
            ToolCallDelta(index=0, call_id="a", name="get_root"),
            ToolCallDelta(index=1, call_id="a", name="get_root"),
        ],
        [
            ToolCallDelta(index=0, call_id="a", name="get_root"),
            ToolCallDelta(index=0, call_id="b", arguments="{}"),
        ],
        [StreamEnd("end_turn"), TextDelta("late")],
    ],
)
def test_structural_faults_are_fatal(fragments):
    assembler = TurnAssembler()
    with pytest.raises(MalformedStreamError):
        for fragment in fragments:
            assembler.feed(fragment)
