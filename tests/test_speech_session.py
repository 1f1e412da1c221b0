import asyncio
import base64
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from voice_support.bot.speech_session import SpeechSession
from voice_support.errors import SpeechSessionError
from voice_support.models.conversation import MessageRole
from voice_support.models.realtime_schemas import SpeechSessionConfig

CONNECT = "voice_support.bot.speech_session.websockets.connect"


class FakeVendorSocket:
    """Stands in for the vendor WebSocket: records sends, replays queued messages."""

    def __init__(self):
        self.sent = []
        self.incoming = asyncio.Queue()
        self.closed_with = None

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        self.incoming.put_nowait(None)

    def hang_up(self):
        self.incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self.incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def session():
    return SpeechSession("sk-test", "wss://example.test/v1/realtime", "test-model")


@pytest.mark.asyncio
async def test_start_connects_and_configures(session):
    """Test that start opens the vendor socket and sends the session settings"""
    ws = FakeVendorSocket()
    with patch(CONNECT, new=AsyncMock(return_value=ws)) as connect:
        await session.start("call-1", SpeechSessionConfig(voice="shimmer"))

    args, kwargs = connect.call_args
    assert args[0] == "wss://example.test/v1/realtime?model=test-model"
    assert kwargs["additional_headers"] == {
        "Authorization": "Bearer sk-test",
        "OpenAI-Beta": "realtime=v1",
    }
    assert session.is_connected
    assert session.call_id == "call-1"

    update = ws.sent[0]
    assert update["type"] == "session.update"
    assert update["session"]["voice"] == "shimmer"
    assert update["session"]["modalities"] == ["text", "audio"]
    assert update["session"]["input_audio_format"] == "pcm16"
    assert update["session"]["input_audio_transcription"] == {"model": "whisper-1"}
    assert update["session"]["turn_detection"] == {
        "type": "server_vad",
        "threshold": 0.5,
        "prefix_padding_ms": 300,
        "silence_duration_ms": 700,
    }
    assert update["session"]["temperature"] == 0.8
    assert update["session"]["max_response_output_tokens"] == 300

    await session.stop()


@pytest.mark.asyncio
async def test_start_connection_refused(session):
    with patch(CONNECT, new=AsyncMock(side_effect=OSError("refused"))):
        with pytest.raises(SpeechSessionError) as exc_info:
            await session.start("call-1")

    assert "Failed to connect" in str(exc_info.value)
    assert exc_info.value.fatal is False
    assert not session.is_connected


@pytest.mark.asyncio
async def test_start_timeout(session):
    async def slow_connect(*args, **kwargs):
        await asyncio.sleep(1)

    with patch(CONNECT, new=AsyncMock(side_effect=slow_connect)), \
            patch("voice_support.bot.speech_session.CONNECTION_TIMEOUT", 0.01):
        with pytest.raises(SpeechSessionError) as exc_info:
            await session.start("call-1")

    assert "Timeout while connecting" in str(exc_info.value)


@pytest.mark.asyncio
async def test_vendor_events_are_dispatched(session):
    received = []
    for name in (
        "session_created",
        "speech_started",
        "speech_stopped",
        "input_committed",
        "user_transcript_completed",
        "ai_transcript_delta",
        "ai_transcript_completed",
        "audio_output",
        "audio_output_done",
        "response_done",
        "conversation_item_created",
    ):
        session.on(name, lambda *args, name=name: received.append((name, args)))

    audio = base64.b64encode(b"\x01\x02").decode("utf-8")
    for event in [
        {"type": "session.created", "session": {"id": "sess_1"}},
        {"type": "input_audio_buffer.speech_started"},
        {"type": "input_audio_buffer.speech_stopped"},
        {"type": "input_audio_buffer.committed"},
        {
            "type": "conversation.item.input_audio_transcription.completed",
            "transcript": "mera order 5001 kaha hai",
            "item_id": "item_1",
        },
        {"type": "response.audio_transcript.delta", "delta": "Ji", "response_id": "r1"},
        {"type": "response.transcript.done", "transcript": "Ji sir", "response_id": "r1"},
        {"type": "response.audio.delta", "delta": audio},
        {"type": "response.audio.done"},
        {"type": "response.done", "response": {"id": "r1"}},
        {"type": "conversation.item.created", "item": {"id": "item_2"}},
        {"type": "rate_limits.updated"},
    ]:
        await session.handle_event(event)

    assert session.session_id == "sess_1"
    assert [name for name, _ in received] == [
        "session_created",
        "speech_started",
        "speech_stopped",
        "input_committed",
        "user_transcript_completed",
        "ai_transcript_delta",
        "ai_transcript_completed",
        "audio_output",
        "audio_output_done",
        "response_done",
        "conversation_item_created",
    ]
    assert received[4][1] == ({"transcript": "mera order 5001 kaha hai", "item_id": "item_1"},)
    assert received[5][1] == ({"delta": "Ji", "response_id": "r1"},)
    assert received[7][1] == (b"\x01\x02",)

    history = session.get_conversation_history()
    assert [(e.role, e.content) for e in history] == [
        (MessageRole.USER, "mera order 5001 kaha hai"),
        (MessageRole.ASSISTANT, "Ji sir"),
    ]


@pytest.mark.asyncio
async def test_vendor_error_event(session):
    errors = []
    session.on("error", errors.append)

    await session.handle_event({
        "type": "error",
        "error": {"type": "invalid_request_error", "message": "Invalid audio format"},
    })

    assert len(errors) == 1
    assert isinstance(errors[0], SpeechSessionError)
    assert str(errors[0]) == "Invalid audio format"
    assert errors[0].fatal is False


@pytest.mark.asyncio
async def test_malformed_messages_are_skipped(session):
    ws = FakeVendorSocket()
    started = []
    session.on("speech_started", lambda *args: started.append(True))

    with patch(CONNECT, new=AsyncMock(return_value=ws)):
        await session.start("call-1")

    ws.incoming.put_nowait("not json")
    ws.incoming.put_nowait("[]")
    ws.incoming.put_nowait("42")
    ws.incoming.put_nowait(json.dumps({"type": "input_audio_buffer.speech_started"}))
    await wait_until(lambda: started)

    assert session.is_connected
    await session.stop()


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others(session):
    called = []

    def broken(*args):
        raise RuntimeError("handler bug")

    async def working(*args):
        called.append("async")

    session.on("speech_started", broken)
    session.on("speech_started", working)

    await session.handle_event({"type": "input_audio_buffer.speech_started"})

    assert called == ["async"]


@pytest.mark.asyncio
async def test_sends_are_noops_while_disconnected(session):
    await session.send_audio(b"\x00\x01")
    await session.update_context("SYSTEM: hello")
    await session.interrupt()

    assert session.ws is None


@pytest.mark.asyncio
async def test_outbound_messages(session):
    ws = FakeVendorSocket()
    with patch(CONNECT, new=AsyncMock(return_value=ws)):
        await session.start("call-1")

    await session.send_audio(b"\x00\x01")
    await session.update_context("SYSTEM: Order cancelled")
    await session.interrupt()

    assert ws.sent[1] == {
        "type": "input_audio_buffer.append",
        "audio": base64.b64encode(b"\x00\x01").decode("utf-8"),
    }
    assert ws.sent[2] == {
        "type": "conversation.item.create",
        "item": {
            "type": "message",
            "role": "system",
            "content": [{"type": "input_text", "text": "SYSTEM: Order cancelled"}],
        },
    }
    assert ws.sent[3] == {"type": "response.cancel"}

    await session.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent(session):
    ws = FakeVendorSocket()
    closed = MagicMock()
    with patch(CONNECT, new=AsyncMock(return_value=ws)):
        await session.start("call-1")
    session.on("closed", closed)

    await session.stop()
    await session.stop()

    assert ws.closed_with == (1000, "Normal closure")
    assert not session.is_connected
    closed.assert_not_called()


@pytest.mark.asyncio
async def test_reconnects_after_unexpected_close(session):
    first, second = FakeVendorSocket(), FakeVendorSocket()
    closed = MagicMock()
    session.on("closed", closed)

    with patch(CONNECT, new=AsyncMock(side_effect=[first, second])), \
            patch("voice_support.config.constants.RECONNECT_DELAY", 0):
        await session.start("call-1")
        first.hang_up()
        await wait_until(lambda: second.sent)

    closed.assert_called_once_with()
    assert session.ws is second
    assert session.is_connected
    assert second.sent[0]["type"] == "session.update"

    await session.stop()


@pytest.mark.asyncio
async def test_exhausted_reconnects_raise_fatal_error(session):
    """Test that a lost connection is reported as fatal once retries run out"""
    first = FakeVendorSocket()
    errors = []
    session.on("error", errors.append)
    connect = AsyncMock(side_effect=[first, OSError("down"), OSError("down"), OSError("down")])

    with patch(CONNECT, new=connect), \
            patch("voice_support.config.constants.RECONNECT_DELAY", 0):
        await session.start("call-1")
        first.hang_up()
        await wait_until(lambda: errors)

    assert connect.await_count == 4
    assert errors[0].fatal is True
    assert not session.is_connected

    await session.stop()
