"""
Voice Support - telephony to speech-to-speech bridge with task agents

This application answers e-commerce customer-support phone calls. Inbound
telephony audio is bridged to a speech-to-speech model, caller intents are
detected from the streaming transcripts, and task-specific agents carry out
business actions (order lookup, returns, refunds, address changes, ...)
against an e-commerce backend. Agent results are fed back into the live
conversation so the model can speak them to the caller.

Architecture Overview:
- FastAPI server exposing a WebSocket endpoint for the telephony media stream
- Speech session per call, connected to the OpenAI Realtime API
- Regex based intent detection over user transcripts (Hindi/Hinglish/English)
- Agent orchestrator owning at most one task agent per call

Key Components:
- agents: Agent engine, agent descriptors, intent detector and orchestrator
- bot: Speech session (vendor adapter) and call session manager (per-call wiring)
- config: Constants, settings and logging setup
- handlers: Message handlers for the telephony media-stream protocol
- models: Pydantic models for agents, intents, conversations and wire messages
- services: Persistence and commerce collaborator interfaces and adapters
- websocket_manager: Routing of telephony WebSocket messages

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key
   - COMMERCE_API_URL: Base URL of the commerce backend (optional)
   - PORT / HOST / LOG_LEVEL

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the telephony provider's media stream at ws://your-server:8000/audio?callId=<id>
"""
