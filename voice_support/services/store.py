"""
Persistence interface for agent audit actions, transcripts and call records.

Agents write one audit action per execution and update its status once the
business outcome is known. The call session manager stores transcripts and
the final call summary. ``InMemoryActionStore`` is used for local runs and
tests; a database-backed store implements the same interface.
"""

import itertools
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from voice_support.config.constants import LOGGER_NAME, MAX_STORED_CALLS
from voice_support.models.agent_models import ActionStatus

logger = logging.getLogger(LOGGER_NAME)


class ActionRecord(BaseModel):
    """Audit row for one agent action."""
    id: str
    call_id: str
    action_type: str
    params: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.9
    status: ActionStatus = ActionStatus.PENDING
    result: Optional[Dict[str, Any]] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: Optional[float] = None


class TranscriptRecord(BaseModel):
    call_id: str
    role: str
    text: str
    timestamp: float = Field(default_factory=time.time)


class ActionStore(ABC):
    """Abstract persistence collaborator."""

    @abstractmethod
    async def create_action(
        self,
        call_id: str,
        action_type: str,
        params: Dict[str, Any],
        confidence: float = 0.9,
    ) -> ActionRecord:
        """
        Create a pending audit action.

        Args:
            call_id: The call the action belongs to
            action_type: Action name, e.g. ``create_return``
            params: Inputs the agent acted on
            confidence: Confidence score of the triggering intent

        Returns:
            The stored record with its generated id
        """

    @abstractmethod
    async def update_action_status(
        self, action_id: str, status: ActionStatus, detail: Dict[str, Any]
    ) -> Optional[ActionRecord]:
        """Set the final status and result detail of an action."""

    @abstractmethod
    async def get_action(self, action_id: str) -> Optional[ActionRecord]:
        pass

    @abstractmethod
    async def save_transcript(self, call_id: str, role: str, text: str) -> None:
        pass

    @abstractmethod
    async def update_call(self, call_id: str, fields: Dict[str, Any]) -> None:
        """Merge final call data (transcript, duration, charge) into the call record."""


class InMemoryActionStore(ActionStore):
    """
    Process-local store keeping everything in dictionaries.

    Meant for development and tests. Only the ``max_calls`` most recent calls
    are kept; the oldest call is dropped with its actions, transcripts and
    summary.
    """

    def __init__(self, max_calls: int = MAX_STORED_CALLS):
        self.max_calls = max_calls
        self._recent_calls: Dict[str, None] = OrderedDict()
        self.actions: Dict[str, ActionRecord] = {}
        self.transcripts: Dict[str, List[TranscriptRecord]] = {}
        self.calls: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    async def create_action(
        self,
        call_id: str,
        action_type: str,
        params: Dict[str, Any],
        confidence: float = 0.9,
    ) -> ActionRecord:
        self._track(call_id)
        record = ActionRecord(
            id=f"act-{next(self._ids)}",
            call_id=call_id,
            action_type=action_type,
            params=params,
            confidence=confidence,
        )
        self.actions[record.id] = record
        logger.debug(f"Action {record.id} created for call {call_id}: {action_type}")
        return record

    async def update_action_status(
        self, action_id: str, status: ActionStatus, detail: Dict[str, Any]
    ) -> Optional[ActionRecord]:
        record = self.actions.get(action_id)
        if record is None:
            logger.warning(f"Cannot update unknown action {action_id}")
            return None
        record.status = ActionStatus(status)
        record.result = detail
        record.updated_at = time.time()
        logger.debug(f"Action {action_id} marked {record.status.value}")
        return record

    async def get_action(self, action_id: str) -> Optional[ActionRecord]:
        return self.actions.get(action_id)

    async def save_transcript(self, call_id: str, role: str, text: str) -> None:
        self._track(call_id)
        self.transcripts.setdefault(call_id, []).append(
            TranscriptRecord(call_id=call_id, role=role, text=text)
        )

    async def update_call(self, call_id: str, fields: Dict[str, Any]) -> None:
        self._track(call_id)
        self.calls.setdefault(call_id, {}).update(fields)

    def get_actions_for_call(self, call_id: str) -> List[ActionRecord]:
        return [a for a in self.actions.values() if a.call_id == call_id]

    def _track(self, call_id: str):
        if call_id in self._recent_calls:
            return
        self._recent_calls[call_id] = None
        while len(self._recent_calls) > self.max_calls:
            oldest, _ = self._recent_calls.popitem(last=False)
            self._evict(oldest)

    def _evict(self, call_id: str):
        self.transcripts.pop(call_id, None)
        self.calls.pop(call_id, None)
        for action_id in [a.id for a in self.actions.values() if a.call_id == call_id]:
            del self.actions[action_id]
        logger.debug(f"Evicted stored records for call {call_id}")
