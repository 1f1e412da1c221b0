"""
WebSocket connection manager for the telephony media stream.

This module implements the server side of the provider's media-stream
protocol, providing the infrastructure to:
- Accept one WebSocket per call (``/audio?callId=<id>``)
- Route incoming JSON events to the handler for their ``event`` field
- Forward raw binary frames as caller audio
- End the call session when the stream stops or the socket drops
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from voice_support.bot.call_session_manager import CallSessionManager
from voice_support.config.constants import (
    LOGGER_NAME,
    TELEPHONY_EVENT_CONNECTED,
    TELEPHONY_EVENT_DTMF,
    TELEPHONY_EVENT_MARK,
    TELEPHONY_EVENT_MEDIA,
    TELEPHONY_EVENT_START,
    TELEPHONY_EVENT_STOP,
)
from voice_support.handlers.media_handlers import (
    handle_connected,
    handle_dtmf,
    handle_mark,
    handle_media,
    handle_start,
    handle_stop,
)
from voice_support.models.conversation import ConversationManager

logger = logging.getLogger(LOGGER_NAME)

# Policy violation close code, used when the call id is missing
POLICY_VIOLATION = 1008

# Type hint for handler functions
HandlerFunc = Callable[
    [Dict[str, Any], WebSocket, str, ConversationManager, CallSessionManager],
    Awaitable[bool],
]


class WebSocketManager:
    """Routes media-stream events for each call to the appropriate handler.

    Each message is dispatched on its ``event`` field. A ``start`` event whose
    session cannot be opened, or a ``stop`` event, ends the connection.
    """

    def __init__(self, session_manager: CallSessionManager):
        self.session_manager = session_manager
        self.conversation_manager = ConversationManager()

        self.handlers: Dict[str, HandlerFunc] = {
            TELEPHONY_EVENT_CONNECTED: handle_connected,
            TELEPHONY_EVENT_START: handle_start,
            TELEPHONY_EVENT_MEDIA: handle_media,
            TELEPHONY_EVENT_DTMF: handle_dtmf,
            TELEPHONY_EVENT_MARK: handle_mark,
            TELEPHONY_EVENT_STOP: handle_stop,
        }

    async def handle_websocket(self, websocket: WebSocket, call_id: Optional[str]):
        """Handle one call's media-stream WebSocket throughout its lifecycle.

        Args:
            websocket: The FastAPI WebSocket connection object
            call_id: Call identifier from the ``callId`` query parameter
        """
        if not call_id:
            logger.error("WebSocket connection rejected - no callId")
            await websocket.close(code=POLICY_VIOLATION)
            return

        await websocket.accept()
        logger.info(f"WebSocket connection established for call {call_id}")

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    logger.info(f"Telephony disconnected for call {call_id}")
                    break

                if frame.get("bytes") is not None:
                    await self.session_manager.process_incoming_audio(call_id, frame["bytes"])
                    continue

                try:
                    message_dict = json.loads(frame.get("text") or "")
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON on call {call_id}")
                    continue

                event = message_dict.get("event")

                # Fast path for audio chunks to minimize processing overhead
                if event == TELEPHONY_EVENT_MEDIA:
                    await handle_media(
                        message_dict,
                        websocket,
                        call_id,
                        self.conversation_manager,
                        self.session_manager,
                    )
                    continue

                logger.info(f"Received {event} event for call {call_id}")

                handler = self.handlers.get(event)
                if handler is None:
                    logger.warning(f"Unhandled event type received: {event}")
                    continue

                ok = await handler(
                    message_dict,
                    websocket,
                    call_id,
                    self.conversation_manager,
                    self.session_manager,
                )

                if event == TELEPHONY_EVENT_STOP:
                    break
                if event == TELEPHONY_EVENT_START and not ok:
                    break

        except WebSocketDisconnect:
            logger.info(f"Telephony disconnected for call {call_id}")
        except Exception as e:
            logger.error(f"Error in WebSocket connection for call {call_id}: {e}", exc_info=True)
        finally:
            if self.session_manager.get_session(call_id) is not None:
                await self.session_manager.end_session(call_id)
            self.conversation_manager.remove_conversation(call_id)
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close()
            logger.info(f"WebSocket connection closed for call {call_id}")
