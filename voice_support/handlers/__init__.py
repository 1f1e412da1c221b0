"""
Handlers module for the telephony media-stream WebSocket.

This module processes the JSON events a telephony provider sends over the
``/audio`` WebSocket for each call and connects them to the call session
manager.

Key components:
- media_handlers: One handler per event type. ``start`` opens the call
  session, ``media`` forwards base64 audio to it, ``stop`` ends it, while
  ``connected``, ``dtmf`` and ``mark`` are validated and logged.
  ``make_audio_sink`` builds the coroutine that plays model audio back to
  the caller as ``media`` events.

Usage examples:
```python
from voice_support.handlers.media_handlers import handle_media, handle_start

await handle_start(message, websocket, call_id, conversation_manager, session_manager)
await handle_media(message, websocket, call_id, conversation_manager, session_manager)
```
"""
