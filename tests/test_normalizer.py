import asyncio

import pytest

from mediachat.domain.models import FilePart, Message, TextPart
from mediachat.media.captions import CaptionCache
from mediachat.media.normalizer import MediaNormalizer, vision_prompt
from mediachat.media.uploads import MediaService
from tests.conftest import media_key, media_url, user
from tests.fakes import FakeVision

CID = "conv-1"


async def put_image(store, name="cat.png", **metadata):
    await store.put(
        media_key(CID, name), b"\x89PNG-bytes", content_type="image/png", custom_metadata=metadata
    )


def image(name="cat.png", url=None):
    return FilePart(media_type="image/png", url=url or media_url(CID, name), filename=name)


def voice(name="note.webm", url=None):
    return FilePart(media_type="video/webm", url=url or media_url(CID, name), filename=name)


def texts(message: Message):
    return [part.text for part in message.parts]


async def test_image_is_replaced_by_description_and_persisted(store, vision, normalizer):
    await put_image(store, filename="cat.png")

    result = await normalizer.normalize_message(user("what is this?", image()), CID)

    assert texts(result) == ["what is this?", "[Attached image: a cat on a sofa]"]
    assert all(isinstance(part, TextPart) for part in result.parts)
    obj = await store.get(media_key(CID, "cat.png"))
    assert obj.custom_metadata == {"filename": "cat.png", "description": "a cat on a sofa"}
    assert obj.body == b"\x89PNG-bytes"


async def test_second_normalization_reads_stored_description(store, vision, normalizer):
    await put_image(store)
    message = user("look", image())

    first = await normalizer.normalize_message(message, CID)
    second = await normalizer.normalize_message(message, CID)

    assert texts(first) == texts(second)
    assert len(vision.calls) == 1
    assert store.count("put") == 2  # seed + one write-back


async def test_stored_description_is_used_without_model_call(store, vision, transcriber):
    await put_image(store, description="a dog in the snow")
    normalizer = MediaNormalizer(store=store, vision=vision, transcriber=transcriber)

    result = await normalizer.normalize_message(user("", image()), CID)

    assert texts(result) == ["[Attached image: a dog in the snow]"]
    assert vision.calls == []


async def test_caption_cache_skips_the_store(store, vision, transcriber):
    await put_image(store)
    normalizer = MediaNormalizer(
        store=store, vision=vision, transcriber=transcriber, captions=CaptionCache(8)
    )
    await normalizer.normalize_message(user("", image()), CID)
    gets = store.count("get")

    await normalizer.normalize_message(user("", image()), CID)

    assert store.count("get") == gets


async def test_unresolvable_url_yields_unknown_without_store_access(store, vision, normalizer):
    part = image(url="https://elsewhere.example.com/cat.png")

    result = await normalizer.normalize_message(user("", part), CID)

    assert texts(result) == ["[Attached image: [Unknown image]]"]
    assert store.calls == []
    assert vision.calls == []


async def test_other_conversation_key_is_treated_as_unknown(store, normalizer):
    part = image(url=media_url("conv-2", "cat.png"))

    result = await normalizer.normalize_message(user("", part), CID)

    assert texts(result) == ["[Attached image: [Unknown image]]"]
    assert store.calls == []


async def test_missing_object_yields_not_found(normalizer, vision):
    result = await normalizer.normalize_message(user("", image("gone.png")), CID)

    assert texts(result) == ["[Attached image: [Image not found]]"]
    assert vision.calls == []


async def test_vision_failure_is_not_persisted(store, vision, normalizer):
    await put_image(store)
    vision.fail = True

    result = await normalizer.normalize_message(user("", image()), CID)

    assert texts(result) == ["[Attached image: [Could not describe image]]"]
    obj = await store.get(media_key(CID, "cat.png"))
    assert "description" not in obj.custom_metadata

    vision.fail = False
    retry = await normalizer.normalize_message(user("", image()), CID)
    assert texts(retry) == ["[Attached image: a cat on a sofa]"]


async def test_empty_transcript_is_not_persisted(store, transcriber, normalizer):
    await store.put(media_key(CID, "note.webm"), b"webm", content_type="video/webm")
    transcriber.text = "   "

    result = await normalizer.normalize_message(user("", voice()), CID)

    assert texts(result) == ["[Voice message: [Could not transcribe]]"]
    obj = await store.get(media_key(CID, "note.webm"))
    assert "transcript" not in obj.custom_metadata


async def test_voice_message_is_transcribed(store, transcriber, normalizer):
    await store.put(media_key(CID, "note.webm"), b"webm", content_type="video/webm")

    result = await normalizer.normalize_message(user("", voice()), CID)

    assert texts(result) == ["[Voice message: remind me to buy milk]"]
    assert transcriber.calls[0]["media_type"] == "video/webm"
    obj = await store.get(media_key(CID, "note.webm"))
    assert obj.custom_metadata["transcript"] == "remind me to buy milk"


async def test_part_order_is_text_then_images_then_audio(store, normalizer):
    await put_image(store)
    await store.put(media_key(CID, "note.webm"), b"webm", content_type="video/webm")
    message = Message(
        role="user",
        parts=[voice(), TextPart(text="hi"), image()],
    )

    result = await normalizer.normalize_message(message, CID)

    assert texts(result) == [
        "hi",
        "[Attached image: a cat on a sofa]",
        "[Voice message: remind me to buy milk]",
    ]


async def test_user_text_is_passed_as_vision_context(store, vision, normalizer):
    await put_image(store)

    await normalizer.normalize_message(user("is this cat hungry?", image()), CID)

    assert vision.calls[0]["prompt"] == vision_prompt("is this cat hungry?")
    assert "is this cat hungry?" in vision.calls[0]["prompt"]


async def test_non_user_messages_are_untouched(normalizer):
    message = Message(role="assistant", parts=[image()])
    assert await normalizer.normalize_message(message, CID) is message


async def test_concurrent_requests_share_one_model_call(store, transcriber):
    vision = FakeVision(delay_seconds=0.05)
    normalizer = MediaNormalizer(store=store, vision=vision, transcriber=transcriber)
    await put_image(store)

    results = await asyncio.gather(
        *(normalizer.normalize_message(user("", image()), CID) for _ in range(5))
    )

    assert {tuple(texts(r)) for r in results} == {("[Attached image: a cat on a sofa]",)}
    assert len(vision.calls) == 1
    assert store.count("put") == 2


async def test_normalize_messages_keeps_order(store, normalizer):
    await put_image(store)
    messages = [user("first"), Message(role="assistant", parts=[TextPart(text="ok")]), user("", image())]

    result = await normalizer.normalize_messages(messages, CID)

    assert [m.role for m in result] == ["user", "assistant", "user"]
    assert texts(result[2]) == ["[Attached image: a cat on a sofa]"]


@pytest.mark.parametrize("context", ["", "hello"])
def test_vision_prompt(context):
    prompt = vision_prompt(context)
    assert ("hello" in prompt) == bool(context)


async def test_deleted_file_is_reported_missing_on_later_turns(store, vision, transcriber):
    captions = CaptionCache(8)
    normalizer = MediaNormalizer(
        store=store, vision=vision, transcriber=transcriber, captions=captions
    )
    media = MediaService(store=store, max_upload_bytes=1024, captions=captions)
    await put_image(store)
    await normalizer.normalize_message(user("", image()), CID)

    assert await media.delete(CID, [media_key(CID, "cat.png")]) == 1

    result = await normalizer.normalize_message(user("", image()), CID)
    assert texts(result) == ["[Attached image: [Image not found]]"]
