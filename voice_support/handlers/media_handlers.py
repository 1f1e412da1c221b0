"""
Handles the telephony provider's media-stream events.

Each function processes one event type (``connected``, ``start``,
``media``, ``dtmf``, ``mark``, ``stop``) for the call bound to the
WebSocket. ``start`` opens the call session, ``media`` forwards caller
audio to it and ``stop`` ends it. Audio produced by the speech model is
sent back over the same WebSocket as ``media`` events.
"""

import base64
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket
from pydantic import ValidationError

from voice_support.bot.call_session_manager import AudioSink, CallSessionManager
from voice_support.config.constants import LOGGER_NAME
from voice_support.errors import SpeechSessionError
from voice_support.models.conversation import ConversationManager
from voice_support.models.telephony_schemas import (
    ConnectedMessage,
    DtmfMessage,
    MarkMessage,
    MediaMessage,
    OutgoingMediaMessage,
    OutgoingMediaPayload,
    StartMessage,
    StopMessage,
)

logger = logging.getLogger(LOGGER_NAME)


def make_audio_sink(conversation_manager: ConversationManager) -> AudioSink:
    """
    Build the coroutine that plays model audio back to a caller.

    The WebSocket and stream id are looked up per chunk so a call that has
    already hung up is skipped instead of raising.
    """

    async def send_audio(call_id: str, audio: bytes):
        conversation = conversation_manager.get_conversation(call_id)
        if conversation is None:
            logger.debug(f"Dropping audio for closed call {call_id}")
            return
        message = OutgoingMediaMessage(
            stream_sid=conversation["stream_sid"],
            media=OutgoingMediaPayload(payload=base64.b64encode(audio).decode("utf-8")),
        )
        await conversation["websocket"].send_text(message.model_dump_json(exclude_none=True))

    return send_audio


async def handle_connected(
    message: Dict[str, Any],
    websocket: WebSocket,
    call_id: str,
    conversation_manager: ConversationManager,
    session_manager: CallSessionManager,
) -> bool:
    """Acknowledge the provider's ``connected`` event."""
    try:
        ConnectedMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid connected message: {e}")
        return False
    logger.info(f"Media stream connected for call {call_id}")
    return True


async def handle_start(
    message: Dict[str, Any],
    websocket: WebSocket,
    call_id: str,
    conversation_manager: ConversationManager,
    session_manager: CallSessionManager,
) -> bool:
    """
    Handle the ``start`` event by opening the call session.

    Args:
        message: The start event with call details and media format
        websocket: The telephony WebSocket for this call
        call_id: Call identifier taken from the connection URL
        conversation_manager: Registry of live telephony streams
        session_manager: Manager that owns the call sessions

    Returns:
        True if the call session is running
    """
    try:
        start = StartMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid start message: {e}")
        return False

    stream_sid = start.stream_sid or start.start.stream_sid
    conversation_manager.add_conversation(
        call_id,
        websocket,
        stream_sid=stream_sid,
        media_format=start.start.media_format.model_dump(),
    )
    logger.info(f"Media stream started for call {call_id} (stream {stream_sid})")

    call_data = {
        "call_sid": start.start.call_sid,
        "from": start.start.from_number,
        "to": start.start.to_number,
        "stream_sid": stream_sid,
        "custom_parameters": start.start.custom_parameters,
    }
    try:
        await session_manager.create_session(
            call_id, call_data, audio_sink=make_audio_sink(conversation_manager)
        )
    except SpeechSessionError as e:
        logger.error(f"Failed to start call session for call {call_id}: {e}")
        conversation_manager.remove_conversation(call_id)
        return False
    return True


async def handle_media(
    message: Dict[str, Any],
    websocket: WebSocket,
    call_id: str,
    conversation_manager: ConversationManager,
    session_manager: CallSessionManager,
) -> bool:
    """Decode one inbound audio chunk and forward it to the speech session."""
    try:
        media = MediaMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid media message: {e}")
        return False

    await session_manager.process_incoming_audio(call_id, base64.b64decode(media.media.payload))
    return True


async def handle_dtmf(
    message: Dict[str, Any],
    websocket: WebSocket,
    call_id: str,
    conversation_manager: ConversationManager,
    session_manager: CallSessionManager,
) -> bool:
    try:
        dtmf = DtmfMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid dtmf message: {e}")
        return False
    logger.info(f"DTMF digit {dtmf.dtmf.digit} received on call {call_id}")
    return True


async def handle_mark(
    message: Dict[str, Any],
    websocket: WebSocket,
    call_id: str,
    conversation_manager: ConversationManager,
    session_manager: CallSessionManager,
) -> bool:
    try:
        mark = MarkMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid mark message: {e}")
        return False
    logger.debug(f"Playback mark {mark.mark.name} reached on call {call_id}")
    return True


async def handle_stop(
    message: Dict[str, Any],
    websocket: WebSocket,
    call_id: str,
    conversation_manager: ConversationManager,
    session_manager: CallSessionManager,
) -> bool:
    """Handle the ``stop`` event: end the call session and forget the stream."""
    reason: Optional[str] = None
    try:
        reason = StopMessage(**message).stop.reason
    except ValidationError as e:
        logger.warning(f"Invalid stop message, ending call anyway: {e}")

    logger.info(f"Media stream stopped for call {call_id} (reason: {reason or 'n/a'})")
    await session_manager.end_session(call_id)
    conversation_manager.remove_conversation(call_id)
    return True
