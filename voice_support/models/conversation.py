"""
Conversation state for active telephony media streams.

This module provides the ``ConversationEntry`` model used for the speech
session's conversation log and the ``ConversationManager`` class, which
tracks the telephony WebSocket, stream id and media format for each call
so outbound audio can be routed back to the right leg.
"""

import time
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import WebSocket
from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Role of a participant in a conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ConversationEntry(BaseModel):
    """One entry of a call's conversation log."""
    role: MessageRole
    content: str
    timestamp: float = Field(default_factory=time.time)


class ConversationManager:
    """
    Manages active telephony streams.

    Each call id is associated with its WebSocket connection, the
    provider's stream id and the negotiated media format.
    """

    def __init__(self):
        """Initialize an empty dictionary of active conversations."""
        self.active_conversations = {}

    def add_conversation(
        self,
        call_id: str,
        websocket: WebSocket,
        stream_sid: Optional[str] = None,
        media_format: Optional[Dict[str, Any]] = None,
    ):
        """
        Add a new call to the active conversations registry.

        Args:
            call_id: Unique identifier for the call
            websocket: The active telephony WebSocket connection
            stream_sid: Stream identifier assigned by the telephony provider
            media_format: Audio format reported in the stream start event
        """
        self.active_conversations[call_id] = {
            "websocket": websocket,
            "stream_sid": stream_sid,
            "media_format": media_format or {},
        }

    def get_conversation(self, call_id: str) -> Optional[Dict[str, Any]]:
        """
        Get an active conversation by its call id.

        Returns:
            Dictionary with websocket, stream_sid and media_format, or None
        """
        return self.active_conversations.get(call_id)

    def remove_conversation(self, call_id: str):
        """Remove a call from the registry."""
        if call_id in self.active_conversations:
            del self.active_conversations[call_id]

    def get_all_conversations(self) -> Dict[str, Dict[str, Any]]:
        return self.active_conversations
