"""
Models module for data structures and state management in the voice support backend.

This module provides structured data models and state management classes for the
application, defining the schemas for agent lifecycle, intent detection, the
speech-to-speech vendor and the telephony media stream.

Key components:
- agent_models: Agent lifecycle states, the tagged outcome values an agent
  pushes onto its queue, and the orchestrator events relayed to subscribers.
- intent: The result of classifying a single caller utterance.
- conversation: Conversation log entries and the registry of live telephony
  streams.
- realtime_schemas: Session configuration and client events for the OpenAI
  Realtime API.
- telephony_schemas: Pydantic models for validating the provider's media-stream
  messages.

Usage examples:
```python
from voice_support.models.telephony_schemas import StartMessage

message = StartMessage(**{
    "event": "start",
    "stream_sid": "stream-1",
    "start": {"call_sid": "call-1", "from": "+919800000000"},
})

from voice_support.models.realtime_schemas import SessionSettings, SpeechSessionConfig

settings = SessionSettings.from_config(SpeechSessionConfig(voice="shimmer"))
```
"""

from voice_support.models.agent_models import (
    ActionStatus,
    AgentOutcome,
    AgentState,
    Completed,
    Failed,
    NeedInfo,
    OrchestratorEvent,
)
from voice_support.models.conversation import (
    ConversationEntry,
    ConversationManager,
    MessageRole,
)
from voice_support.models.intent import EntityExpectation, IntentResult
from voice_support.models.realtime_schemas import SessionSettings, SpeechSessionConfig
from voice_support.models.telephony_schemas import (
    IncomingMessage,
    MediaMessage,
    OutgoingMediaMessage,
    StartMessage,
    StopMessage,
)
