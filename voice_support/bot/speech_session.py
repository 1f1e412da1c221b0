"""
Speech-to-speech session against the OpenAI Realtime API.

One ``SpeechSession`` holds the duplex vendor connection for one call. It
sends the session configuration, forwards caller audio, injects system
context updates and turns the vendor's tagged events into local events
that listeners subscribe to with ``on``:

- ``session_created``, ``session_updated``
- ``speech_started``, ``speech_stopped``, ``input_committed``
- ``user_transcript_completed`` ``{transcript, item_id}``
- ``ai_transcript_delta`` ``{delta, response_id}``
- ``ai_transcript_completed`` ``{transcript, response_id}``
- ``audio_output`` (raw bytes), ``audio_output_done``
- ``response_done``, ``conversation_item_created``
- ``error`` (``SpeechSessionError``; ``fatal`` once reconnects are exhausted)
- ``closed``
"""

import asyncio
import base64
import inspect
import json
import logging
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import websockets
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from voice_support.config import constants
from voice_support.config.constants import (
    CONNECTION_TIMEOUT,
    EVENT_AUDIO_DELTA,
    EVENT_AUDIO_DONE,
    EVENT_AUDIO_TRANSCRIPT_DELTA,
    EVENT_AUDIO_TRANSCRIPT_DONE,
    EVENT_ERROR,
    EVENT_INPUT_COMMITTED,
    EVENT_ITEM_CREATED,
    EVENT_RESPONSE_DONE,
    EVENT_SESSION_CREATED,
    EVENT_SESSION_UPDATED,
    EVENT_SPEECH_STARTED,
    EVENT_SPEECH_STOPPED,
    EVENT_TRANSCRIPT_DELTA,
    EVENT_TRANSCRIPT_DONE,
    EVENT_USER_TRANSCRIPT_COMPLETED,
    LOGGER_NAME,
    NORMAL_CLOSURE,
    WS_MAX_SIZE,
    WS_PING_INTERVAL,
)
from voice_support.errors import SpeechSessionError
from voice_support.models.conversation import ConversationEntry, MessageRole
from voice_support.models.realtime_schemas import (
    AudioAppendEvent,
    ConversationItemCreateEvent,
    RealtimeErrorDetail,
    ResponseCancelEvent,
    SessionSettings,
    SessionUpdateEvent,
    SpeechSessionConfig,
)

logger = logging.getLogger(LOGGER_NAME)

Handler = Callable[..., Any]


class SpeechSession:
    """
    Client for one call's OpenAI Realtime speech-to-speech conversation.

    Args:
        api_key: OpenAI API key
        url: Realtime WebSocket endpoint
        model: Realtime model name
    """

    def __init__(self, api_key: str, url: str, model: str):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.ws = None
        self.call_id: Optional[str] = None
        self.session_id: Optional[str] = None
        self.config = SpeechSessionConfig()
        self.conversation_context: List[ConversationEntry] = []
        self._listeners: Dict[str, List[Handler]] = defaultdict(list)
        self._recv_task: Optional[asyncio.Task] = None
        self._connected = False
        self._is_stopping = False
        self._reconnect_attempts = 0

    @property
    def is_connected(self) -> bool:
        return self._connected and not self._is_stopping

    # Listener registry

    def on(self, event: str, handler: Handler):
        """Register a sync or async handler for a local event."""
        self._listeners[event].append(handler)

    def remove_all_listeners(self):
        self._listeners.clear()

    async def _emit(self, event: str, *args):
        for handler in list(self._listeners.get(event, [])):
            try:
                outcome = handler(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(
                    f"Handler for {event} failed on call {self.call_id}: {e}", exc_info=True
                )

    # Connection

    async def start(self, call_id: str, config: Optional[SpeechSessionConfig] = None):
        """
        Open the vendor connection and configure the session.

        Args:
            call_id: The call this session serves
            config: Per-call overrides of the session tunables

        Raises:
            SpeechSessionError: If the connection could not be opened
        """
        self.call_id = call_id
        if config is not None:
            self.config = config
        await self._connect()
        logger.info(f"Speech session started for call {call_id}")

    async def _connect(self):
        url = f"{self.url}?model={self.model}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        logger.info(f"Connecting to OpenAI Realtime API with model: {self.model}")
        connection_start = time.time()
        try:
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    ping_interval=WS_PING_INTERVAL,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=CONNECTION_TIMEOUT,
            )
        except asyncio.TimeoutError as e:
            raise SpeechSessionError(
                f"Timeout while connecting to OpenAI Realtime API (after {CONNECTION_TIMEOUT}s)"
            ) from e
        except (OSError, WebSocketException) as e:
            raise SpeechSessionError(f"Failed to connect to OpenAI Realtime API: {e}") from e

        logger.debug(
            f"WebSocket connection established in {time.time() - connection_start:.2f} seconds"
        )
        self._connected = True
        self._recv_task = asyncio.create_task(self._recv_loop())
        await self._configure_session()

    async def _configure_session(self):
        settings = SessionSettings.from_config(self.config)
        await self._send(SessionUpdateEvent(session=settings))

    async def _reconnect(self) -> bool:
        """
        Reconnect with linear back-off.

        Returns:
            True if the connection was restored within the retry budget
        """
        while (
            not self._is_stopping
            and self._reconnect_attempts < constants.MAX_RECONNECT_ATTEMPTS
        ):
            self._reconnect_attempts += 1
            delay = constants.RECONNECT_DELAY * self._reconnect_attempts
            logger.info(
                f"Reconnecting speech session for call {self.call_id} "
                f"(attempt {self._reconnect_attempts}/{constants.MAX_RECONNECT_ATTEMPTS}) "
                f"in {delay} seconds"
            )
            await asyncio.sleep(delay)
            try:
                await self._connect()
            except SpeechSessionError as e:
                logger.warning(f"Reconnect attempt {self._reconnect_attempts} failed: {e}")
                continue
            self._reconnect_attempts = 0
            logger.info(f"Speech session restored for call {self.call_id}")
            return True
        return False

    async def _recv_loop(self):
        ws = self.ws
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                try:
                    event = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON: {message[:100]}...")
                    continue
                if not isinstance(event, dict):
                    logger.warning(f"Ignoring non-object event: {message[:100]}")
                    continue
                await self.handle_event(event)
        except ConnectionClosedOK:
            logger.info(f"Speech WebSocket closed normally for call {self.call_id}")
        except ConnectionClosed as e:
            logger.warning(f"Speech WebSocket closed unexpectedly for call {self.call_id}: {e}")

        if ws is not self.ws:
            return
        self._connected = False
        if self._is_stopping:
            return

        await self._emit("closed")
        if await self._reconnect():
            return

        logger.error(
            f"Speech session for call {self.call_id} lost after "
            f"{constants.MAX_RECONNECT_ATTEMPTS} reconnect attempts"
        )
        await self._emit(
            "error",
            SpeechSessionError("Speech session connection lost", fatal=True),
        )

    # Vendor events

    async def handle_event(self, event: Dict[str, Any]):
        """Dispatch one vendor event by its ``type`` tag; unknown types are ignored."""
        event_type = event.get("type", "")
        if event_type != EVENT_AUDIO_DELTA:
            logger.debug(f"Speech event for call {self.call_id}: {event_type}")

        if event_type == EVENT_SESSION_CREATED:
            session = event.get("session") or {}
            self.session_id = session.get("id")
            await self._emit("session_created", session)

        elif event_type == EVENT_SESSION_UPDATED:
            await self._emit("session_updated", event.get("session") or {})

        elif event_type == EVENT_SPEECH_STARTED:
            logger.info(f"User started speaking on call {self.call_id}")
            await self._emit("speech_started")

        elif event_type == EVENT_SPEECH_STOPPED:
            logger.info(f"User stopped speaking on call {self.call_id}")
            await self._emit("speech_stopped")

        elif event_type == EVENT_INPUT_COMMITTED:
            await self._emit("input_committed")

        elif event_type == EVENT_USER_TRANSCRIPT_COMPLETED:
            transcript = event.get("transcript") or ""
            logger.info(f"User transcript on call {self.call_id}: {transcript}")
            self.conversation_context.append(
                ConversationEntry(role=MessageRole.USER, content=transcript)
            )
            await self._emit(
                "user_transcript_completed",
                {"transcript": transcript, "item_id": event.get("item_id")},
            )

        elif event_type in (EVENT_TRANSCRIPT_DELTA, EVENT_AUDIO_TRANSCRIPT_DELTA):
            await self._emit(
                "ai_transcript_delta",
                {"delta": event.get("delta", ""), "response_id": event.get("response_id")},
            )

        elif event_type in (EVENT_TRANSCRIPT_DONE, EVENT_AUDIO_TRANSCRIPT_DONE):
            transcript = event.get("transcript") or ""
            logger.info(f"Assistant transcript on call {self.call_id}: {transcript}")
            self.conversation_context.append(
                ConversationEntry(role=MessageRole.ASSISTANT, content=transcript)
            )
            await self._emit(
                "ai_transcript_completed",
                {"transcript": transcript, "response_id": event.get("response_id")},
            )

        elif event_type == EVENT_AUDIO_DELTA:
            await self._emit("audio_output", base64.b64decode(event.get("delta", "")))

        elif event_type == EVENT_AUDIO_DONE:
            await self._emit("audio_output_done")

        elif event_type == EVENT_RESPONSE_DONE:
            await self._emit("response_done", event.get("response") or {})

        elif event_type == EVENT_ITEM_CREATED:
            await self._emit("conversation_item_created", event.get("item") or {})

        elif event_type == EVENT_ERROR:
            detail = RealtimeErrorDetail(**(event.get("error") or {}))
            logger.error(f"Speech error event on call {self.call_id}: {detail.message}")
            await self._emit("error", SpeechSessionError(detail.message))

    # Outbound

    async def _send(self, message: BaseModel):
        if not self._connected or self.ws is None:
            logger.warning(f"Cannot send {message.type}, speech session not connected")
            return
        try:
            await self.ws.send(message.model_dump_json())
        except ConnectionClosed as e:
            logger.error(f"Error sending {message.type} on call {self.call_id}: {e}")

    async def send_audio(self, chunk: bytes):
        """Forward one caller audio chunk; a no-op while disconnected."""
        if not self.is_connected:
            logger.warning(f"Cannot send audio, speech session not connected for call {self.call_id}")
            return
        await self._send(AudioAppendEvent(audio=base64.b64encode(chunk).decode("utf-8")))

    async def update_context(self, text: str):
        """Inject a system message so the model verbalizes it to the caller."""
        if not self.is_connected:
            logger.warning(f"Cannot update context, speech session not connected for call {self.call_id}")
            return
        logger.info(f"Updating conversation context for call {self.call_id}: {text[:100]}")
        await self._send(ConversationItemCreateEvent.system_text(text))

    async def interrupt(self):
        """Cancel the in-flight spoken response (barge-in)."""
        if not self.is_connected:
            return
        logger.debug(f"Interrupting current response on call {self.call_id}")
        await self._send(ResponseCancelEvent())

    def get_conversation_history(self) -> List[ConversationEntry]:
        return self.conversation_context

    async def stop(self):
        """Detach listeners and close the connection; safe to call twice."""
        if self.ws is None:
            return

        self._is_stopping = True
        self.remove_all_listeners()
        ws, self.ws = self.ws, None
        self._connected = False
        try:
            await ws.close(code=NORMAL_CLOSURE, reason="Normal closure")
        except ConnectionClosed as e:
            logger.debug(f"Speech WebSocket already closed for call {self.call_id}: {e}")

        if self._recv_task and self._recv_task is not asyncio.current_task():
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                logger.debug("Speech receive task cancelled")
        self._recv_task = None
        logger.info(f"Speech session stopped for call {self.call_id}")
