"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for configuration values and making it easier to
maintain consistent naming throughout the codebase.
"""

# Logger name used throughout the application
LOGGER_NAME = "voice_support"

# Default OpenAI model for the Realtime API
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-10-01"
DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_VOICE = "alloy"

# Agent timing
AGENT_TIMEOUT_SECONDS = 30
AGENT_CLEANUP_INTERVAL_SECONDS = 2 * 60
AGENT_MAX_AGE_SECONDS = 5 * 60

# Speech session connection handling
MAX_RECONNECT_ATTEMPTS = 3
RECONNECT_DELAY = 1  # seconds, multiplied by the attempt number
CONNECTION_TIMEOUT = 35  # seconds
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_PING_INTERVAL = 5
NORMAL_CLOSURE = 1000

# Call session handling
SESSION_TIMEOUT_SECONDS = 15 * 60
MAX_HISTORY_MESSAGES = 20
CHARGE_PER_MINUTE = 30
MAX_STORED_CALLS = 1000  # in-memory store keeps only the most recent calls

# Speech vendor event types (incoming)
EVENT_SESSION_CREATED = "session.created"
EVENT_SESSION_UPDATED = "session.updated"
EVENT_SPEECH_STARTED = "input_audio_buffer.speech_started"
EVENT_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
EVENT_INPUT_COMMITTED = "input_audio_buffer.committed"
EVENT_USER_TRANSCRIPT_COMPLETED = "conversation.item.input_audio_transcription.completed"
EVENT_TRANSCRIPT_DELTA = "response.transcript.delta"
EVENT_TRANSCRIPT_DONE = "response.transcript.done"
EVENT_AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
EVENT_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
EVENT_AUDIO_DELTA = "response.audio.delta"
EVENT_AUDIO_DONE = "response.audio.done"
EVENT_RESPONSE_DONE = "response.done"
EVENT_ITEM_CREATED = "conversation.item.created"
EVENT_ERROR = "error"

# Speech vendor event types (outgoing)
EVENT_SESSION_UPDATE = "session.update"
EVENT_AUDIO_APPEND = "input_audio_buffer.append"
EVENT_ITEM_CREATE = "conversation.item.create"
EVENT_RESPONSE_CANCEL = "response.cancel"

# Telephony media-stream event names
TELEPHONY_EVENT_CONNECTED = "connected"
TELEPHONY_EVENT_START = "start"
TELEPHONY_EVENT_MEDIA = "media"
TELEPHONY_EVENT_DTMF = "dtmf"
TELEPHONY_EVENT_MARK = "mark"
TELEPHONY_EVENT_STOP = "stop"
