import asyncio
import json

from mediachat.ports import StepFinish, TextDelta, ToolCallRequest
from tests.conftest import media_key

CID = "conv-1"


def sse_events(body: str):
    events = []
    for frame in body.split("\n\n"):
        if not frame.startswith("data: "):
            continue
        payload = frame[len("data: ") :]
        events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


def chat_body(text="hi", message_id="m1", conversation_id=CID):
    return {
        "conversation_id": conversation_id,
        "messages": [
            {"id": message_id, "role": "user", "parts": [{"type": "text", "text": text}]}
        ],
    }


async def upload(client, name="cat.png", data=b"png-bytes", content_type="image/png", cid=CID):
    return await client.post(
        f"/api/conversations/{cid}/upload", files={"file": (name, data, content_type)}
    )


async def test_health(client):
    response = await client.get("/health")
    assert response.json()["status"] == "ok"


async def test_upload_then_serve_inline(client):
    response = await upload(client)

    assert response.status_code == 200
    uploaded = response.json()
    assert uploaded["key"].startswith(f"uploads/{CID}/")
    assert uploaded["key"].endswith("/cat.png")
    assert uploaded["name"] == "cat.png"
    assert uploaded["contentType"] == "image/png"
    assert uploaded["size"] == len(b"png-bytes")

    served = await client.get(uploaded["url"])
    assert served.status_code == 200
    assert served.content == b"png-bytes"
    assert served.headers["content-type"] == "image/png"
    assert served.headers["content-disposition"] == "inline"
    assert served.headers["x-content-type-options"] == "nosniff"


async def test_oversized_upload_is_rejected_before_storing(client, store):
    response = await upload(client, data=b"x" * 17)

    assert response.status_code == 400
    assert "too large" in response.json()["detail"]
    assert store.count("put") == 0


async def test_upload_at_the_limit_is_accepted(client):
    response = await upload(client, data=b"x" * 16)
    assert response.status_code == 200


async def test_unlisted_types_download_as_attachments(client):
    uploaded = (await upload(client, name="page one.html", data=b"<script>", content_type="text/html")).json()

    served = await client.get(uploaded["url"])

    assert served.headers["content-type"] == "application/octet-stream"
    assert served.headers["content-disposition"] == 'attachment; filename="page_one.html"'
    assert served.headers["x-content-type-options"] == "nosniff"


async def test_other_conversations_files_are_forbidden(client):
    uploaded = (await upload(client, cid="conv-2")).json()

    response = await client.get(f"/api/conversations/{CID}/files/{uploaded['key']}")

    assert response.status_code == 403
    assert response.json() == {"detail": "Forbidden"}


async def test_missing_file_is_404(client):
    response = await client.get(f"/api/conversations/{CID}/files/{media_key(CID, 'nope.png')}")
    assert response.status_code == 404


async def test_file_metadata(client, store):
    key = media_key(CID, "cat.png")
    await store.put(key, b"png", content_type="image/png", custom_metadata={"description": "a cat"})

    response = await client.get(f"/api/conversations/{CID}/files-meta/{key}")

    assert response.json() == {"description": "a cat", "transcript": ""}
    assert store.count("get") == 0


async def test_delete_ignores_foreign_keys(client, store):
    own = (await upload(client)).json()["key"]
    foreign = (await upload(client, cid="conv-2")).json()["key"]

    response = await client.post(
        f"/api/conversations/{CID}/delete-files", json={"keys": [own, foreign]}
    )

    assert response.json() == {"deleted": 1}
    assert await store.get(own) is None
    assert await store.get(foreign) is not None


async def test_chat_streams_sse_and_persists_history(client, deps):
    response = await client.post("/api/chat", json=chat_body())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = sse_events(response.text)
    assert events[-1] == "[DONE]"
    assert [e["type"] for e in events[:-1]] == ["content", "done"]
    assert events[0]["delta"] == "ok"

    await asyncio.sleep(0)
    history = (await client.get(f"/api/conversations/{CID}/messages")).json()["messages"]
    assert [m["role"] for m in history] == ["user", "assistant"]
    assert history[0]["id"] == "m1"
    assert history[1]["parts"] == [{"type": "text", "text": "ok"}]
    assert not deps.gate.is_active(CID)


async def test_model_failure_is_reported_in_stream(client, text_model):
    from mediachat.errors import UpstreamModelError

    text_model.steps = [[UpstreamModelError("quota exceeded")]]

    response = await client.post("/api/chat", json=chat_body())

    events = sse_events(response.text)
    assert [e["type"] for e in events[:-1]] == ["error", "done"]
    assert events[0]["error"]["message"] == "quota exceeded"
    await asyncio.sleep(0)
    assert (await client.get(f"/api/conversations/{CID}/messages")).json() == {"messages": []}


async def test_second_concurrent_turn_is_rejected(client, deps):
    deps.gate.acquire(CID)

    response = await client.post("/api/chat", json=chat_body())

    assert response.status_code == 409


async def test_malformed_chat_request(client):
    response = await client.post("/api/chat", json={"messages": []})
    assert response.status_code == 400


async def test_client_tool_result_via_continuation(client, text_model):
    text_model.steps = [
        [ToolCallRequest("call_tz", "getUserTimezone", {}), StepFinish("tool_calls")],
        [TextDelta("You are in UTC"), StepFinish()],
    ]

    chat = asyncio.create_task(client.post("/api/chat", json=chat_body("what time is it?")))
    await asyncio.sleep(0.05)
    pushed = await client.post(
        "/api/continuation",
        json={"conversation_id": CID, "tool_results": {"call_tz": {"output": {"timezone": "UTC"}}}},
    )
    response = await asyncio.wait_for(chat, 2.0)

    assert pushed.json() == {"status": "ok", "delivered": 1}
    types = [e["type"] for e in sse_events(response.text)[:-1]]
    assert types == ["tool_call", "tool-input-available", "tool_result", "content", "done"]


async def test_clear_conversation(client, store, deps):
    await upload(client)
    await client.post("/api/chat", json=chat_body())
    await asyncio.sleep(0)

    response = await client.delete(f"/api/conversations/{CID}")

    assert response.json() == {"status": "ok", "deletedFiles": 1}
    assert await store.list(f"uploads/{CID}/") == []
    assert (await client.get(f"/api/conversations/{CID}/messages")).json() == {"messages": []}


async def wait_for_idle(deps, conversation_id, expected_messages):
    for _ in range(200):
        await asyncio.sleep(0.01)
        history = deps.conversations.get(conversation_id)
        if len(history) >= expected_messages and not deps.gate.is_active(conversation_id):
            return history
    raise AssertionError("conversation did not settle")


async def test_due_task_runs_a_turn_and_survives_later_turns(client, deps):
    deps.scheduler.schedule(CID, "buy milk", delay_seconds=0)

    history = await wait_for_idle(deps, CID, 2)
    assert [(m.role, m.text()) for m in history] == [
        ("user", "Running scheduled task: buy milk"),
        ("assistant", "ok"),
    ]

    await client.post("/api/chat", json=chat_body("hi", message_id="m2"))
    history = await wait_for_idle(deps, CID, 4)

    assert [m.text() for m in history] == ["Running scheduled task: buy milk", "ok", "hi", "ok"]
