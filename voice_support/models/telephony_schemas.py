"""
Pydantic models for the telephony provider's media-stream WebSocket protocol.

The provider sends JSON events (``connected``, ``start``, ``media``, ``dtmf``,
``mark``, ``stop``) with base64 audio in ``media.payload``. Outbound audio is
sent back as ``media`` events carrying the stream id.
"""

import base64
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


DTMF_DIGITS = "0123456789*#ABCD"


def _validate_base64(v: str) -> str:
    try:
        if v:
            base64.b64decode(v, validate=True)
        else:
            raise ValueError("Audio payload cannot be empty")
    except Exception:
        raise ValueError("Invalid base64 encoded audio data")
    return v


# Base Models
class BaseMessage(BaseModel):
    """Base model for all media-stream messages."""
    model_config = ConfigDict(populate_by_name=True)

    event: str = Field(..., description="Event name")
    sequence_number: Optional[Union[int, str]] = None
    stream_sid: Optional[str] = Field(None, description="Provider stream identifier")


# Incoming Messages
class ConnectedMessage(BaseMessage):
    event: Literal["connected"]


class MediaFormat(BaseModel):
    encoding: str = "base64"
    sample_rate: Optional[Union[int, str]] = None
    bit_rate: Optional[str] = None


class StartPayload(BaseModel):
    """Call details carried by a ``start`` event."""
    model_config = ConfigDict(populate_by_name=True)

    stream_sid: Optional[str] = None
    call_sid: str = Field(..., description="Provider call identifier")
    account_sid: Optional[str] = None
    from_number: Optional[str] = Field(None, alias="from")
    to_number: Optional[str] = Field(None, alias="to")
    custom_parameters: Dict[str, Any] = Field(default_factory=dict)
    media_format: MediaFormat = Field(default_factory=MediaFormat)

    @field_validator("call_sid")
    def validate_call_sid(cls, v):
        """Validate that the call id is not empty."""
        if not v.strip():
            raise ValueError("call_sid cannot be empty")
        return v


class StartMessage(BaseMessage):
    event: Literal["start"]
    start: StartPayload


class MediaPayload(BaseModel):
    chunk: Optional[Union[int, str]] = None
    timestamp: Optional[Union[int, str]] = None
    payload: str = Field(..., description="Base64-encoded audio data")

    @field_validator("payload")
    def validate_payload(cls, v):
        """Validate that the audio payload is valid base64."""
        return _validate_base64(v)


class MediaMessage(BaseMessage):
    event: Literal["media"]
    media: MediaPayload


class DtmfPayload(BaseModel):
    duration: Optional[Union[int, str]] = None
    digit: str

    @field_validator("digit")
    def validate_digit(cls, v):
        """Validate that the digit is a DTMF key."""
        if len(v) != 1 or v not in DTMF_DIGITS:
            raise ValueError(f"Invalid DTMF value: {v}")
        return v


class DtmfMessage(BaseMessage):
    event: Literal["dtmf"]
    dtmf: DtmfPayload


class MarkPayload(BaseModel):
    name: str


class MarkMessage(BaseMessage):
    event: Literal["mark"]
    mark: MarkPayload


class StopPayload(BaseModel):
    call_sid: Optional[str] = None
    account_sid: Optional[str] = None
    reason: Optional[str] = None


class StopMessage(BaseMessage):
    event: Literal["stop"]
    stop: StopPayload = Field(default_factory=StopPayload)


# Outgoing Messages
class OutgoingMediaPayload(BaseModel):
    payload: str

    @field_validator("payload")
    def validate_payload(cls, v):
        """Validate that the audio payload is valid base64."""
        return _validate_base64(v)


class OutgoingMediaMessage(BaseMessage):
    """Audio sent back to the caller."""
    event: Literal["media"] = "media"
    media: OutgoingMediaPayload


# Union type for all possible incoming messages
IncomingMessage = Union[
    ConnectedMessage,
    StartMessage,
    MediaMessage,
    DtmfMessage,
    MarkMessage,
    StopMessage,
]

# Union type for all possible outgoing messages
OutgoingMessage = Union[
    OutgoingMediaMessage,
    MarkMessage,
]
