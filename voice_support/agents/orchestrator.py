"""
Agent orchestrator.

Owns the set of active agents across calls, at most one per call id.
Launching a different agent type for a call always cancels the previous
agent before the new entry is created. Each launched agent gets a relay
task that drains its outcome queue and republishes the outcomes as
``OrchestratorEvent`` values to the call's subscribers and to any global
listeners.
"""

import asyncio
import inspect
import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from voice_support.agents.base import Agent
from voice_support.agents.registry import AgentRegistry
from voice_support.config import constants
from voice_support.config.constants import LOGGER_NAME
from voice_support.models.agent_models import (
    EVENT_AGENT_CANCELLED,
    EVENT_AGENT_COMPLETED,
    EVENT_AGENT_ERROR,
    EVENT_AGENT_NEEDS_INFO,
    AgentState,
    Completed,
    Failed,
    NeedInfo,
    OrchestratorEvent,
)
from voice_support.services.commerce import CommerceConnector, InMemoryCommerceConnector
from voice_support.services.store import ActionStore, InMemoryActionStore

logger = logging.getLogger(LOGGER_NAME)

# States eligible for removal by the periodic sweep
SWEEPABLE_STATES = (AgentState.COMPLETED, AgentState.ERROR)


@dataclass
class ActiveAgentEntry:
    """Bookkeeping for the agent currently bound to a call."""
    agent: Agent
    agent_type: str
    state: AgentState
    start_time: float
    relay_task: Optional[asyncio.Task] = None

    @property
    def duration(self) -> float:
        return time.time() - self.start_time


class AgentOrchestrator:
    """
    Launches, updates and cancels agents for live calls.

    Args:
        registry: Agent descriptor registry; the 14 built-in agents by default
        store: Persistence collaborator handed to every agent
        commerce: Commerce backend collaborator handed to every agent
    """

    def __init__(
        self,
        registry: Optional[AgentRegistry] = None,
        store: Optional[ActionStore] = None,
        commerce: Optional[CommerceConnector] = None,
    ):
        self.registry = registry or AgentRegistry()
        self.store = store or InMemoryActionStore()
        self.commerce = commerce or InMemoryCommerceConnector()
        self.active_agents: Dict[str, ActiveAgentEntry] = {}
        self._subscribers: Dict[str, asyncio.Queue] = {}
        self._listeners: List[Callable[[OrchestratorEvent], Any]] = []
        self._cleanup_task: Optional[asyncio.Task] = None

    # Lifecycle

    def start(self):
        """Schedule the periodic sweep of finished agents."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Agent orchestrator started")

    async def shutdown(self):
        """Stop the sweep and cancel every active agent."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                logger.debug("Cleanup task cancelled")
            self._cleanup_task = None

        for call_id in list(self.active_agents):
            await self.cancel_agent(call_id)

        logger.info("Agent orchestrator shut down")

    # Subscriptions

    def subscribe(self, call_id: str) -> asyncio.Queue:
        """Return the event queue for a call, creating it on first use."""
        if call_id not in self._subscribers:
            self._subscribers[call_id] = asyncio.Queue()
        return self._subscribers[call_id]

    def unsubscribe(self, call_id: str):
        self._subscribers.pop(call_id, None)

    def add_listener(self, callback: Callable[[OrchestratorEvent], Any]):
        """Register a global observer, called (or awaited) for every event."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[OrchestratorEvent], Any]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _publish(self, event: OrchestratorEvent):
        queue = self._subscribers.get(event.call_id)
        if queue is not None:
            queue.put_nowait(event)

        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Orchestrator listener failed on {event.type}: {e}", exc_info=True)

    # Operations

    async def launch_agent(
        self,
        call_id: str,
        agent_type: str,
        initial_data: Optional[Dict[str, Any]] = None,
    ) -> Agent:
        """
        Launch an agent for a call, or feed data to the one already running.

        Args:
            call_id: The call the agent works for
            agent_type: Registered agent type name, e.g. ``ReturnAgent``
            initial_data: Fields already known, usually the extracted entities

        Returns:
            The agent now bound to the call

        Raises:
            UnknownAgentTypeError: If ``agent_type`` is not registered
        """
        initial_data = initial_data or {}
        descriptor = self.registry.get(agent_type)

        existing = self.active_agents.get(call_id)
        if existing is not None:
            if existing.agent_type == agent_type and not existing.agent.state.is_terminal:
                logger.info(f"Updating existing {agent_type} for call {call_id}")
                existing.agent.update_data(initial_data)
                existing.state = existing.agent.state
                return existing.agent

            if existing.agent.state.is_terminal:
                await self._discard(call_id)
            else:
                logger.info(
                    f"Replacing {existing.agent_type} with {agent_type} for call {call_id}"
                )
                await self.cancel_agent(call_id)

        agent = Agent(
            descriptor,
            call_id,
            initial_data,
            store=self.store,
            commerce=self.commerce,
        )
        entry = ActiveAgentEntry(
            agent=agent,
            agent_type=agent_type,
            state=AgentState.RUNNING,
            start_time=time.time(),
        )
        self.active_agents[call_id] = entry
        entry.relay_task = asyncio.create_task(self._relay(call_id, entry))

        logger.info(f"Launching {agent_type} for call {call_id}")
        agent.start()
        return agent

    def update_agent(self, call_id: str, data: Dict[str, Any]) -> bool:
        """
        Forward newly collected fields to the call's agent.

        Returns:
            False when the call has no agent or the agent is already terminal
        """
        entry = self.active_agents.get(call_id)
        if entry is None:
            logger.warning(f"No active agent for call {call_id}")
            return False
        accepted = entry.agent.update_data(data)
        entry.state = entry.agent.state
        return accepted

    async def cancel_agent(self, call_id: str) -> bool:
        """
        Cancel and remove the call's agent.

        Errors raised while cancelling are logged, not propagated.

        Returns:
            True if an agent was bound to the call
        """
        entry = self.active_agents.get(call_id)
        if entry is None:
            return False

        try:
            entry.agent.cancel()
            entry.state = AgentState.CANCELLED
            logger.info(f"Cancelled {entry.agent_type} for call {call_id}")
            await self._publish(OrchestratorEvent(
                type=EVENT_AGENT_CANCELLED,
                call_id=call_id,
                agent_type=entry.agent_type,
            ))
        except Exception as e:
            logger.error(f"Error cancelling agent for call {call_id}: {e}", exc_info=True)
        finally:
            if self.active_agents.get(call_id) is entry:
                del self.active_agents[call_id]
            await self._await_relay(entry, cancel=True)
        return True

    def get_agent(self, call_id: str) -> Optional[Agent]:
        entry = self.active_agents.get(call_id)
        return entry.agent if entry else None

    def get_agent_state(self, call_id: str) -> Optional[Dict[str, Any]]:
        entry = self.active_agents.get(call_id)
        if entry is None:
            return None
        return {
            "agent_type": entry.agent_type,
            "state": entry.state.value,
            "start_time": entry.start_time,
            "duration": entry.duration,
        }

    def has_active_agent(self, call_id: str) -> bool:
        return call_id in self.active_agents

    def get_all_active_agents(self) -> List[Dict[str, Any]]:
        return [
            {
                "call_id": call_id,
                "agent_type": entry.agent_type,
                "state": entry.state.value,
                "duration": entry.duration,
            }
            for call_id, entry in self.active_agents.items()
        ]

    def get_agent_stats(self) -> Dict[str, Any]:
        entries = list(self.active_agents.values())
        return {
            "total_active": len(entries),
            "by_type": dict(Counter(e.agent_type for e in entries)),
            "by_state": dict(Counter(e.state.value for e in entries)),
        }

    def cleanup(self) -> int:
        """
        Remove finished agents older than the retention period.

        Returns:
            Number of entries removed
        """
        now = time.time()
        stale = [
            call_id
            for call_id, entry in self.active_agents.items()
            if entry.state in SWEEPABLE_STATES
            and now - entry.start_time > constants.AGENT_MAX_AGE_SECONDS
        ]
        for call_id in stale:
            entry = self.active_agents.pop(call_id)
            logger.info(f"Cleaned up {entry.state.value} {entry.agent_type} for call {call_id}")
        return len(stale)

    # Internals

    async def _relay(self, call_id: str, entry: ActiveAgentEntry):
        """Drain one agent's outcome queue until the channel closes."""
        agent = entry.agent
        while True:
            outcome = await agent.outcomes.get()
            if outcome is None:
                break
            # Anything still queued behind a cancellation is stale
            if agent.state == AgentState.CANCELLED:
                continue

            if self.active_agents.get(call_id) is entry:
                entry.state = agent.state

            if isinstance(outcome, NeedInfo):
                event = OrchestratorEvent(
                    type=EVENT_AGENT_NEEDS_INFO,
                    call_id=call_id,
                    agent_type=entry.agent_type,
                    field=outcome.field,
                    prompt=outcome.prompt,
                )
            elif isinstance(outcome, Completed):
                event = OrchestratorEvent(
                    type=EVENT_AGENT_COMPLETED,
                    call_id=call_id,
                    agent_type=entry.agent_type,
                    result=outcome.result,
                    duration=entry.duration,
                )
            elif isinstance(outcome, Failed):
                event = OrchestratorEvent(
                    type=EVENT_AGENT_ERROR,
                    call_id=call_id,
                    agent_type=entry.agent_type,
                    error=outcome.error,
                )
            else:
                logger.warning(f"Unknown agent outcome for call {call_id}: {outcome!r}")
                continue

            await self._publish(event)

        logger.debug(f"Relay for {entry.agent_type} on call {call_id} finished")

    async def _await_relay(self, entry: ActiveAgentEntry, cancel: bool = False):
        task = entry.relay_task
        if task is None or task is asyncio.current_task():
            return
        if cancel:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug(f"Relay for {entry.agent_type} cancelled")

    async def _discard(self, call_id: str):
        """Drop a terminal entry without publishing a cancellation."""
        entry = self.active_agents.pop(call_id, None)
        if entry is not None:
            await self._await_relay(entry)

    async def _cleanup_loop(self):
        while True:
            await asyncio.sleep(constants.AGENT_CLEANUP_INTERVAL_SECONDS)
            removed = self.cleanup()
            if removed:
                logger.info(f"Agent cleanup removed {removed} entries")
