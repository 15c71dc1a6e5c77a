from mediachat.adapters.messages_to_genai import DENIED_RESPONSE, system_text, to_genai_contents
from mediachat.domain.models import Message, TextPart, ToolCallPart, ToolCallState
from tests.conftest import user


def test_tool_calls_become_call_and_response_pairs():
    messages = [
        Message(role="system", parts=[TextPart(text="be brief")]),
        user("2+3 and 5000+1?"),
        Message(
            role="assistant",
            parts=[
                TextPart(text="Working on it"),
                ToolCallPart(
                    tool_call_id="c1",
                    tool_name="calculate",
                    input={"a": 2, "b": 3, "operator": "+"},
                    state=ToolCallState.OUTPUT_AVAILABLE,
                    output={"result": 5},
                ),
                ToolCallPart(
                    tool_call_id="c2",
                    tool_name="calculate",
                    input={"a": 5000, "b": 1, "operator": "+"},
                    state=ToolCallState.OUTPUT_DENIED,
                ),
            ],
        ),
    ]

    contents = to_genai_contents(messages)

    assert [c.role for c in contents] == ["user", "model", "user"]
    model = contents[1]
    assert model.parts[0].text == "Working on it"
    assert [p.function_call.name for p in model.parts[1:]] == ["calculate", "calculate"]
    responses = [p.function_response for p in contents[2].parts]
    assert responses[0].response == {"output": {"result": 5}}
    assert responses[1].response == DENIED_RESPONSE
    assert system_text(messages) == "be brief"


def test_empty_user_messages_are_skipped():
    assert to_genai_contents([Message(role="user", parts=[TextPart(text="")])]) == []
