import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from cobrowse.config import Settings
from cobrowse.planner import (
    INVALID_KEY_MESSAGE,
    MISSING_KEY_MESSAGE,
    QUOTA_MESSAGE,
    UNKNOWN_MODEL_MESSAGE,
    ConfigurationError,
    Planner,
    PlannerError,
    RequestError,
    build_planning_prompt,
    normalize_error_message,
    parse_function_args,
    to_history,
    to_tool_results,
)

SNAPSHOT = {
    "url": "http://localhost:3000/",
    "title": "Sam's Portfolio",
    "capturedAt": "2026-10-18T10:00:00Z",
    "sections": [{"id": f"s{i}", "heading": f"Section {i}", "textPreview": ""} for i in range(12)],
    "elements": [],
}


def _tool_call(name, arguments, call_id="call_1"):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _completion(content, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _make_planner(completion=None, api_key="sk-test", model="gpt-4o"):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion or _completion("Hello!"))
    return Planner(Settings(api_key=api_key, model=model), client=client), client


def _payload(**overrides):
    payload = {"message": "Take me to contact", "history": [], "pageSnapshot": SNAPSHOT}
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------

def test_missing_api_key_is_a_configuration_error():
    planner, client = _make_planner(api_key=None)
    with pytest.raises(ConfigurationError) as exc:
        asyncio.run(planner.respond(_payload()))
    assert str(exc.value) == MISSING_KEY_MESSAGE
    client.chat.completions.create.assert_not_awaited()


def test_empty_model_is_a_configuration_error():
    planner, _ = _make_planner(model="")
    with pytest.raises(ConfigurationError):
        asyncio.run(planner.respond(_payload()))


@pytest.mark.parametrize("overrides, message", [
    ({"message": "   "}, "Missing user message."),
    ({"message": None}, "Missing user message."),
    ({"pageSnapshot": None}, "Missing or invalid page snapshot."),
    ({"pageSnapshot": {**SNAPSHOT, "sections": "none"}}, "Missing or invalid page snapshot."),
])
def test_malformed_requests_are_rejected_before_calling_the_model(overrides, message):
    planner, client = _make_planner()
    with pytest.raises(RequestError, match=message):
        asyncio.run(planner.respond(_payload(**overrides)))
    client.chat.completions.create.assert_not_awaited()


def test_to_history_windows_and_truncates():
    history = [{"role": "user", "content": f"m{i}", "createdAt": "t"} for i in range(14)]
    history.append({"role": "user", "content": "x" * 5000, "createdAt": "t"})
    history.append({"role": "user", "content": 12, "createdAt": "t"})

    result = to_history(history)

    assert len(result) == 10
    assert result[0]["content"] == "m5"
    assert len(result[-1]["content"]) == 1200
    assert to_history("nope") == []


def test_to_tool_results_drops_malformed_and_caps():
    good = {"toolCallId": "a", "name": "scroll_by", "success": True, "output": "ok"}
    results = to_tool_results([good, {"toolCallId": "b"}, good, good, good])
    assert len(results) == 3
    assert all(item is good for item in results)


def test_parse_function_args():
    assert parse_function_args('{"delta": 200}') == {"delta": 200}
    assert parse_function_args({"text": "a"}) == {"text": "a"}
    assert parse_function_args("{broken") == {}
    assert parse_function_args("[1, 2]") == {}
    assert parse_function_args(None) == {}


# ---------------------------------------------------------------------------
# Planning call
# ---------------------------------------------------------------------------

def test_planning_response_caps_tool_calls_and_drops_unknown_names():
    calls = [
        _tool_call("navigate_to_section", '{"sectionId": "projects"}', "c1"),
        _tool_call("delete_everything", "{}", "c2"),
        _tool_call("highlight_element", '{"text": "latest project"}', "c3"),
        _tool_call("scroll_by", '{"delta": 300}', "c4"),
        _tool_call("scroll_by", '{"delta": -300}', "c5"),
        _tool_call("fill_input", '{"value": "x"}', "c6"),
    ]
    planner, client = _make_planner(_completion(None, calls))

    response = asyncio.run(planner.respond(_payload()))

    assert [c.id for c in response.tool_calls] == ["c1", "c3", "c4"]
    assert response.tool_calls[0].args == {"sectionId": "projects"}
    assert response.awaiting_tool_results is True
    assert response.assistant_message == "I will handle that now."

    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["temperature"] == 0.2
    assert len(kwargs["tools"]) == 5
    assert kwargs["model"] == "gpt-4o"


def test_planning_without_tool_calls_returns_text():
    planner, _ = _make_planner(_completion("  The projects are Atlas and Weather Station.  "))
    response = asyncio.run(planner.respond(_payload()))

    assert response.assistant_message == "The projects are Atlas and Weather Station."
    assert response.tool_calls == []
    assert response.awaiting_tool_results is False


def test_planning_with_nothing_returns_empty_message():
    planner, _ = _make_planner(_completion(None, []))
    response = asyncio.run(planner.respond(_payload()))
    assert response.assistant_message == ""
    assert response.awaiting_tool_results is False


def test_tool_call_without_id_gets_one():
    raw = SimpleNamespace(id=None, function=SimpleNamespace(name="scroll_by", arguments='{"delta": 1}'))
    planner, _ = _make_planner(_completion("", [raw]))
    response = asyncio.run(planner.respond(_payload()))
    assert response.tool_calls[0].id


def test_planning_prompt_contains_history_and_slim_snapshot():
    history = [{"role": "assistant", "content": "Hi", "createdAt": "t"}]
    prompt = build_planning_prompt("go", history, SNAPSHOT)

    assert "ASSISTANT: Hi" in prompt
    assert "Latest user message: go" in prompt
    snapshot_json = prompt.split("Current page snapshot (JSON):\n", 1)[1].rsplit("\n\n", 1)[0]
    assert len(json.loads(snapshot_json)["sections"]) == 10

    assert "No previous conversation." in build_planning_prompt("go", [], SNAPSHOT)


# ---------------------------------------------------------------------------
# Final call
# ---------------------------------------------------------------------------

def test_final_call_uses_tool_results():
    planner, client = _make_planner(_completion("You are now at the contact section."))
    results = [{"toolCallId": "c1", "name": "navigate_to_section", "success": True, "output": "Moved."}]

    response = asyncio.run(planner.respond(_payload(toolResults=results)))

    assert response.assistant_message == "You are now at the contact section."
    assert response.tool_calls == []
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["temperature"] == 0.3
    assert "tools" not in kwargs
    assert '"toolCallId": "c1"' in kwargs["messages"][1]["content"]


def test_final_call_falls_back_when_empty():
    planner, _ = _make_planner(_completion(""))
    results = [{"toolCallId": "c1", "name": "scroll_by", "success": True, "output": "ok"}]
    response = asyncio.run(planner.respond(_payload(toolResults=results)))
    assert response.assistant_message == "I completed the requested action."


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

def test_provider_failure_is_wrapped_and_normalized():
    planner, client = _make_planner()
    client.chat.completions.create.side_effect = RuntimeError('{"error": {"code": 429, "message": "Quota exceeded"}}')

    with pytest.raises(PlannerError) as exc:
        asyncio.run(planner.respond(_payload()))
    assert str(exc.value) == f"I ran into an error: {QUOTA_MESSAGE}"


def test_malformed_provider_response_is_a_planner_error():
    planner, _ = _make_planner(SimpleNamespace(choices=[]))
    with pytest.raises(PlannerError, match="I ran into an error"):
        asyncio.run(planner.respond(_payload()))


@pytest.mark.parametrize("raw, expected", [
    ('{"code": 429}', QUOTA_MESSAGE),
    ("You exceeded your current quota: insufficient_quota", QUOTA_MESSAGE),
    ('{"code": 401}', INVALID_KEY_MESSAGE),
    ("Incorrect API key provided: sk-***", INVALID_KEY_MESSAGE),
    ("The model `gpt-9` does not exist (model_not_found)", UNKNOWN_MODEL_MESSAGE),
    ("Connection reset by peer", "Connection reset by peer"),
])
def test_normalize_error_message(raw, expected):
    assert normalize_error_message(RuntimeError(raw)) == expected
