import json

from deskpilot.llm.errors import classify_failure
from deskpilot.llm.recovery import parse_arguments, parse_failed_generation, recover_tool_calls


def _tool_use_failed(generation: str):
    body = {
        "error": {
            "code": "tool_use_failed",
            "message": "Failed to call a function. Please adjust your prompt.",
            "failed_generation": generation,
        }
    }
    return classify_failure(400, json.dumps(body))


def test_parse_arguments_falls_back_to_empty_dict():
    assert parse_arguments('{"path": "~"}') == {"path": "~"}
    assert parse_arguments({"a": 1}) == {"a": 1}
    assert parse_arguments("{broken") == {}
    assert parse_arguments("[1, 2]") == {}
    assert parse_arguments(None) == {}


def test_recovers_single_well_formed_call():
    failure = _tool_use_failed('<function=read_dir>{"path": "~/Desktop"}</function>')

    response = recover_tool_calls(failure)

    assert response is not None
    assert response.content == ""
    assert len(response.tool_calls) == 1
    call = response.tool_calls[0]
    assert call.name == "read_dir"
    assert call.arguments == {"path": "~/Desktop"}
    assert call.id.startswith("recovered_")


def test_degenerate_value_maps_to_primary_parameter():
    calls = parse_failed_generation('<function=exec_command>{"ls -la ~"}</function>')

    assert len(calls) == 1
    assert calls[0].arguments == {"command": "ls -la ~"}


def test_only_first_recovered_call_is_returned():
    failure = _tool_use_failed(
        '<function=read_dir>{"path": "~"}</function>'
        '<function=read_file>{"path": "~/notes.txt"}</function>'
    )

    response = recover_tool_calls(failure)

    assert response is not None
    assert [call.name for call in response.tool_calls] == ["read_dir"]


def test_no_recovery_without_failed_generation_or_other_codes():
    assert recover_tool_calls(_tool_use_failed("")) is None
    assert recover_tool_calls(_tool_use_failed("I cannot call tools")) is None
    assert recover_tool_calls(classify_failure(500, json.dumps({"error": {"code": "server_error"}}))) is None
