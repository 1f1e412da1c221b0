import base64
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from voice_support.errors import SpeechSessionError
from voice_support.handlers.media_handlers import (
    handle_connected,
    handle_dtmf,
    handle_mark,
    handle_media,
    handle_start,
    handle_stop,
    make_audio_sink,
)
from voice_support.models.conversation import ConversationManager


def start_message(**start_overrides):
    start = {
        "stream_sid": "MZ123",
        "call_sid": "CA123",
        "from": "+919876543210",
        "to": "+918000000000",
        "custom_parameters": {"client_id": "shop-1"},
        "media_format": {"encoding": "audio/x-mulaw", "sample_rate": 8000},
    }
    start.update(start_overrides)
    return {"event": "start", "sequence_number": 1, "start": start}


@pytest.fixture
def conversation_manager():
    return ConversationManager()


@pytest.fixture
def session_manager():
    manager = MagicMock()
    manager.create_session = AsyncMock()
    manager.process_incoming_audio = AsyncMock()
    manager.end_session = AsyncMock()
    return manager


@pytest.fixture
def websocket():
    return AsyncMock()


@pytest.mark.asyncio
async def test_handle_connected(websocket, conversation_manager, session_manager):
    assert await handle_connected(
        {"event": "connected", "protocol": "Call"},
        websocket, "call-1", conversation_manager, session_manager,
    ) is True


@pytest.mark.asyncio
async def test_handle_start_opens_session(websocket, conversation_manager, session_manager):
    """Test that the start event registers the stream and opens the call session"""
    result = await handle_start(
        start_message(), websocket, "call-1", conversation_manager, session_manager
    )

    assert result is True
    conversation = conversation_manager.get_conversation("call-1")
    assert conversation["websocket"] is websocket
    assert conversation["stream_sid"] == "MZ123"
    assert conversation["media_format"]["sample_rate"] == 8000

    args, kwargs = session_manager.create_session.call_args
    assert args == ("call-1", {
        "call_sid": "CA123",
        "from": "+919876543210",
        "to": "+918000000000",
        "stream_sid": "MZ123",
        "custom_parameters": {"client_id": "shop-1"},
    })
    assert callable(kwargs["audio_sink"])


@pytest.mark.asyncio
async def test_handle_start_prefers_top_level_stream_sid(
    websocket, conversation_manager, session_manager
):
    message = start_message()
    message["stream_sid"] = "MZ-top"

    await handle_start(message, websocket, "call-1", conversation_manager, session_manager)

    assert conversation_manager.get_conversation("call-1")["stream_sid"] == "MZ-top"


@pytest.mark.asyncio
async def test_handle_start_invalid(websocket, conversation_manager, session_manager):
    result = await handle_start(
        start_message(call_sid="  "), websocket, "call-1", conversation_manager, session_manager
    )

    assert result is False
    session_manager.create_session.assert_not_called()
    assert conversation_manager.get_conversation("call-1") is None


@pytest.mark.asyncio
async def test_handle_start_session_failure(websocket, conversation_manager, session_manager):
    session_manager.create_session.side_effect = SpeechSessionError("Failed to connect")

    result = await handle_start(
        start_message(), websocket, "call-1", conversation_manager, session_manager
    )

    assert result is False
    assert conversation_manager.get_conversation("call-1") is None


@pytest.mark.asyncio
async def test_handle_media(websocket, conversation_manager, session_manager):
    message = {
        "event": "media",
        "media": {"chunk": 1, "payload": base64.b64encode(b"\x00\x01\x02").decode()},
    }

    assert await handle_media(
        message, websocket, "call-1", conversation_manager, session_manager
    ) is True
    session_manager.process_incoming_audio.assert_awaited_once_with("call-1", b"\x00\x01\x02")


@pytest.mark.asyncio
async def test_handle_media_invalid_payload(websocket, conversation_manager, session_manager):
    message = {"event": "media", "media": {"payload": "not base64!"}}

    assert await handle_media(
        message, websocket, "call-1", conversation_manager, session_manager
    ) is False
    session_manager.process_incoming_audio.assert_not_called()


@pytest.mark.asyncio
async def test_handle_dtmf(websocket, conversation_manager, session_manager):
    valid = {"event": "dtmf", "dtmf": {"digit": "5", "duration": 250}}
    invalid = {"event": "dtmf", "dtmf": {"digit": "55"}}

    assert await handle_dtmf(valid, websocket, "call-1", conversation_manager, session_manager)
    assert not await handle_dtmf(invalid, websocket, "call-1", conversation_manager, session_manager)


@pytest.mark.asyncio
async def test_handle_mark(websocket, conversation_manager, session_manager):
    assert await handle_mark(
        {"event": "mark", "mark": {"name": "greeting-done"}},
        websocket, "call-1", conversation_manager, session_manager,
    ) is True
    assert await handle_mark(
        {"event": "mark"}, websocket, "call-1", conversation_manager, session_manager
    ) is False


@pytest.mark.asyncio
async def test_handle_stop(websocket, conversation_manager, session_manager):
    conversation_manager.add_conversation("call-1", websocket, "MZ123")

    result = await handle_stop(
        {"event": "stop", "stop": {"call_sid": "CA123", "reason": "hangup"}},
        websocket, "call-1", conversation_manager, session_manager,
    )

    assert result is True
    session_manager.end_session.assert_awaited_once_with("call-1")
    assert conversation_manager.get_conversation("call-1") is None


@pytest.mark.asyncio
async def test_handle_stop_malformed_still_ends_call(
    websocket, conversation_manager, session_manager
):
    await handle_stop(
        {"event": "stop", "stop": "gone"},
        websocket, "call-1", conversation_manager, session_manager,
    )

    session_manager.end_session.assert_awaited_once_with("call-1")


@pytest.mark.asyncio
async def test_audio_sink_sends_media_event(websocket, conversation_manager):
    conversation_manager.add_conversation("call-1", websocket, "MZ123")
    sink = make_audio_sink(conversation_manager)

    await sink("call-1", b"\x01\x02")

    sent = json.loads(websocket.send_text.call_args[0][0])
    assert sent == {
        "event": "media",
        "stream_sid": "MZ123",
        "media": {"payload": base64.b64encode(b"\x01\x02").decode()},
    }


@pytest.mark.asyncio
async def test_audio_sink_skips_closed_call(websocket, conversation_manager):
    sink = make_audio_sink(conversation_manager)

    await sink("call-404", b"\x01")

    websocket.send_text.assert_not_called()
