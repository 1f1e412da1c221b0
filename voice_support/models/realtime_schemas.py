"""
Pydantic models for the speech-to-speech vendor (OpenAI Realtime API).

This module provides the tunable ``SpeechSessionConfig`` and type-safe
models for the outgoing client events the speech session sends.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from voice_support.config.constants import (
    DEFAULT_VOICE,
    EVENT_AUDIO_APPEND,
    EVENT_ITEM_CREATE,
    EVENT_RESPONSE_CANCEL,
    EVENT_SESSION_UPDATE,
)

SYSTEM_INSTRUCTIONS = """You are Caly, a highly empathetic, professional Hindi/Hinglish customer support agent for e-commerce.

CRITICAL RULES:
1. Speak ONLY in Hindi/Hinglish - natural, conversational tone with "ji", "sir/madam"
2. Be warm, helpful, and patient like a professional sales person
3. Keep responses SHORT (5-10 seconds of speech)
4. NEVER say you're performing actions - just acknowledge naturally
5. When collecting info (order_id, phone), ask politely and confirm

TONE EXAMPLES:
- Greeting: "Namaste ji, main Caly hoon. Aapki kaise madad kar sakti hoon?"
- Asking for info: "Ji sir, apna order number batayiye please"
- Confirming: "Ji, order number 12345, sahi hai na?"
- Processing: "Ek minute sir, check kar rahi hoon"
- Success: "Ji ho gaya sir, aapka return request create ho gaya hai"
- Error: "Maaf kijiye sir, thoda technical issue aa raha hai. Main manager se connect karti hoon"

IMPORTANT:
- DO NOT mention APIs, databases, or technical terms
- DO NOT say "I'm executing" or "calling backend" - just be natural
- If user says "rehne do" or "cancel karo" - acknowledge and move on
- Always be humble and respectful"""


class TurnDetection(BaseModel):
    """Server-side voice activity detection settings."""
    type: str = "server_vad"
    threshold: float = 0.5
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 700


class InputAudioTranscription(BaseModel):
    model: str = "whisper-1"


class SpeechSessionConfig(BaseModel):
    """Tunables sent to the vendor in the session.update event."""
    voice: str = DEFAULT_VOICE
    instructions: str = SYSTEM_INSTRUCTIONS
    input_audio_format: str = "pcm16"
    output_audio_format: str = "pcm16"
    transcription_model: str = "whisper-1"
    vad_threshold: float = Field(0.5, ge=0.0, le=1.0)
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 700
    temperature: float = 0.8
    max_response_output_tokens: int = 300


class SessionSettings(BaseModel):
    """The ``session`` object of a session.update event."""
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    instructions: str
    voice: str
    input_audio_format: str
    output_audio_format: str
    input_audio_transcription: InputAudioTranscription
    turn_detection: TurnDetection
    temperature: float
    max_response_output_tokens: int

    @classmethod
    def from_config(cls, config: SpeechSessionConfig) -> "SessionSettings":
        return cls(
            instructions=config.instructions,
            voice=config.voice,
            input_audio_format=config.input_audio_format,
            output_audio_format=config.output_audio_format,
            input_audio_transcription=InputAudioTranscription(
                model=config.transcription_model
            ),
            turn_detection=TurnDetection(
                threshold=config.vad_threshold,
                prefix_padding_ms=config.prefix_padding_ms,
                silence_duration_ms=config.silence_duration_ms,
            ),
            temperature=config.temperature,
            max_response_output_tokens=config.max_response_output_tokens,
        )


class RealtimeBaseMessage(BaseModel):
    """Base model for client events."""
    type: str


class SessionUpdateEvent(RealtimeBaseMessage):
    type: Literal["session.update"] = EVENT_SESSION_UPDATE
    session: SessionSettings


class AudioAppendEvent(RealtimeBaseMessage):
    type: Literal["input_audio_buffer.append"] = EVENT_AUDIO_APPEND
    audio: str = Field(..., description="Base64-encoded audio data")


class InputText(BaseModel):
    type: str = "input_text"
    text: str


class SystemMessageItem(BaseModel):
    type: str = "message"
    role: str = "system"
    content: List[InputText]


class ConversationItemCreateEvent(RealtimeBaseMessage):
    """Injects a system message into the live conversation."""
    type: Literal["conversation.item.create"] = EVENT_ITEM_CREATE
    item: SystemMessageItem

    @classmethod
    def system_text(cls, text: str) -> "ConversationItemCreateEvent":
        return cls(item=SystemMessageItem(content=[InputText(text=text)]))


class ResponseCancelEvent(RealtimeBaseMessage):
    type: Literal["response.cancel"] = EVENT_RESPONSE_CANCEL


class RealtimeErrorDetail(BaseModel):
    """Payload of a vendor ``error`` event."""
    type: Optional[str] = None
    code: Optional[str] = None
    message: str = "Unknown error"
    details: Optional[Dict[str, Any]] = None
