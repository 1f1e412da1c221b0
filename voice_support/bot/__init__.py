"""
Bot module for real-time speech conversations with OpenAI's Realtime API.

This module connects each phone call to a speech-to-speech model and wires
the conversation to the agent layer.

Key components:
- SpeechSession: Client for one call's OpenAI Realtime connection. Sends the
  session configuration, forwards caller audio, injects context updates,
  handles barge-in and reconnects within a small retry budget.
- CallSessionManager: Per-call wiring. Runs intent detection on every user
  transcript, launches or updates agents through the orchestrator and turns
  agent outcomes into context updates the model speaks to the caller.

Usage examples:
```python
from voice_support.agents import AgentOrchestrator
from voice_support.bot import CallSessionManager
from voice_support.services import InMemoryActionStore

store = InMemoryActionStore()
manager = CallSessionManager(AgentOrchestrator(store=store), store)

async def play(call_id: str, audio: bytes):
    ...  # send audio back to the telephony leg

await manager.create_session("call-1", {"from": "+919800000000"}, audio_sink=play)
await manager.process_incoming_audio("call-1", pcm_chunk)
await manager.end_session("call-1")
```
"""

from voice_support.bot.call_session_manager import CallSession, CallSessionManager
from voice_support.bot.speech_session import SpeechSession

__all__ = ["CallSession", "CallSessionManager", "SpeechSession"]
