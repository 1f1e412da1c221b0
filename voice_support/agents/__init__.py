"""
Agents module: task agents, intent detection and orchestration.

A caller utterance is classified by the ``IntentDetector``. Business intents
map to one of fourteen agent types; the ``AgentOrchestrator`` launches that
agent for the call (cancelling any different agent already bound to it),
feeds it follow-up data and relays its outcomes as events.

Key components:
- base: The generic ``Agent`` state machine and the ``AgentDescriptor``
  describing one agent type (required fields, prompts, workflow).
- orders, returns, payments, address, catalog, support: The fourteen agent
  descriptors grouped by business domain.
- registry: Maps agent type names to descriptors.
- intent_detector: Ordered regex tables for Hindi/Hinglish intents and
  entity extraction.
- orchestrator: At most one active agent per call, outcome relay and the
  periodic sweep of finished agents.

Usage examples:
```python
from voice_support.agents import AgentOrchestrator, IntentDetector

orchestrator = AgentOrchestrator()
events = orchestrator.subscribe("call-1")

result = IntentDetector().detect("mera order 123456 kaha hai")
if result.requires_agent:
    await orchestrator.launch_agent("call-1", result.agent_type, result.entities)

event = await events.get()  # agent_completed, agent_needs_info, ...
```
"""

from voice_support.agents.base import Agent, AgentDescriptor
from voice_support.agents.intent_detector import IntentDetector
from voice_support.agents.orchestrator import ActiveAgentEntry, AgentOrchestrator
from voice_support.agents.registry import AgentRegistry

__all__ = [
    "Agent",
    "AgentDescriptor",
    "ActiveAgentEntry",
    "AgentOrchestrator",
    "AgentRegistry",
    "IntentDetector",
]
