"""
Agent state, outcome and orchestrator event models.

An agent never calls back into its owner. It pushes outcome values
(``NeedInfo``, ``Completed``, ``Failed``) onto its own queue, and the
orchestrator relays them to subscribers as ``OrchestratorEvent`` values.
"""

from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AgentState(str, Enum):
    """Lifecycle state of an agent."""
    INITIALIZING = "INITIALIZING"
    WAITING_FOR_INFO = "WAITING_FOR_INFO"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentState.COMPLETED, AgentState.CANCELLED, AgentState.ERROR)


class ActionStatus(str, Enum):
    """Status of an audit action record."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


# Agent outcomes
class NeedInfo(BaseModel):
    """The agent is missing a required field and asks for it."""
    kind: Literal["need_info"] = "need_info"
    field: str
    prompt: str


class Completed(BaseModel):
    """The agent finished, successfully or with a business rejection."""
    kind: Literal["completed"] = "completed"
    result: Dict[str, Any]


class Failed(BaseModel):
    """The agent hit an unexpected error or timed out."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["error"] = "error"
    error: Exception


AgentOutcome = Union[NeedInfo, Completed, Failed]


# Orchestrator events
EVENT_AGENT_NEEDS_INFO = "agent_needs_info"
EVENT_AGENT_COMPLETED = "agent_completed"
EVENT_AGENT_ERROR = "agent_error"
EVENT_AGENT_CANCELLED = "agent_cancelled"


class OrchestratorEvent(BaseModel):
    """Lifecycle event published by the orchestrator for one call."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["agent_needs_info", "agent_completed", "agent_error", "agent_cancelled"]
    call_id: str
    agent_type: str
    field: Optional[str] = None
    prompt: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    duration: Optional[float] = Field(None, description="Seconds since launch")
    error: Optional[Exception] = None
