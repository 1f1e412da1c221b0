"""
FastAPI server for the voice commerce support backend.

This module initializes the FastAPI application that telephony providers
stream call audio to. Every call opens a media-stream WebSocket on
``/audio?callId=<id>``; the call is bridged to an OpenAI Realtime speech
session, and customer requests detected in the conversation are handled by
task agents (order lookup, returns, refunds, ...) through the agent
orchestrator.

The orchestrator's periodic cleanup runs for the lifetime of the app and
all live calls are ended on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, WebSocket

from voice_support.agents.orchestrator import AgentOrchestrator
from voice_support.bot.call_session_manager import CallSessionManager
from voice_support.config import settings
from voice_support.config.logging_config import configure_logging
from voice_support.services.commerce import (
    CommerceConnector,
    HttpCommerceConnector,
    InMemoryCommerceConnector,
)
from voice_support.services.store import InMemoryActionStore
from voice_support.websocket_manager import WebSocketManager

# Configure logging
logger = configure_logging(settings.LOG_LEVEL)


def create_commerce_connector() -> CommerceConnector:
    """REST connector when a backend URL is configured, sample data otherwise."""
    if settings.COMMERCE_API_URL:
        logger.info(f"Using commerce backend at {settings.COMMERCE_API_URL}")
        return HttpCommerceConnector(
            settings.COMMERCE_API_URL,
            settings.COMMERCE_API_KEY,
            settings.COMMERCE_TIMEOUT,
        )
    logger.warning("COMMERCE_API_URL not set, using in-memory sample data")
    return InMemoryCommerceConnector.with_sample_data()


store = InMemoryActionStore()
commerce = create_commerce_connector()
orchestrator = AgentOrchestrator(store=store, commerce=commerce)
session_manager = CallSessionManager(orchestrator, store)
websocket_manager = WebSocketManager(session_manager)


@asynccontextmanager
async def lifespan(app: FastAPI):
    orchestrator.start()
    logger.info(f"Voice support server ready on http://{settings.HOST}:{settings.PORT}")
    yield
    await session_manager.shutdown()
    await orchestrator.shutdown()
    await commerce.close()
    logger.info("Voice support server stopped")


# Create FastAPI application
app = FastAPI(
    title="Voice Support Agent",
    description="Hindi/Hinglish voice commerce support over OpenAI Realtime API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.websocket("/audio")
async def audio_endpoint(websocket: WebSocket, call_id: Optional[str] = Query(None, alias="callId")):
    """Media-stream WebSocket for one call.

    The telephony provider sends ``connected``, ``start``, ``media``, ``dtmf``,
    ``mark`` and ``stop`` events; model audio is returned as ``media`` events.
    """
    await websocket_manager.handle_websocket(websocket, call_id)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Service status, whether the OpenAI key is configured, the number
        of live calls and agent statistics.
    """
    return {
        "status": "healthy",
        "openai_api_key_configured": bool(settings.OPENAI_API_KEY),
        "active_sessions": session_manager.get_session_count(),
        "agents": orchestrator.get_agent_stats(),
    }


@app.get("/agents")
async def list_agents():
    """Active agents across all calls and aggregate counts."""
    return {
        "active": orchestrator.get_all_active_agents(),
        "stats": orchestrator.get_agent_stats(),
        "available": orchestrator.registry.list_agents(),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Voice Support Agent",
        "description": "Hindi/Hinglish voice commerce support over OpenAI Realtime API",
        "version": "1.0.0",
        "endpoints": {
            "/audio?callId=<id>": "WebSocket endpoint for the telephony media stream",
            "/health": "Health check endpoint",
            "/agents": "Active agents and statistics",
        },
    }
