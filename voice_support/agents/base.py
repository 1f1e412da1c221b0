"""
Generic agent engine.

Every agent type is described by an ``AgentDescriptor`` (name, ordered
required fields, prompt table and an async ``run`` function holding the
business workflow). A single ``Agent`` class drives the shared state
machine for all of them:

    INITIALIZING -> WAITING_FOR_INFO -> RUNNING -> COMPLETED | ERROR
    (any non-terminal state) -> CANCELLED

Outcomes are pushed onto ``Agent.outcomes`` (an ``asyncio.Queue``) as
``NeedInfo``, ``Completed`` or ``Failed`` values. A terminal transition
closes the channel by pushing ``None``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from voice_support.config.constants import AGENT_TIMEOUT_SECONDS, LOGGER_NAME
from voice_support.errors import AgentTimeoutError
from voice_support.models.agent_models import (
    ActionStatus,
    AgentOutcome,
    AgentState,
    Completed,
    Failed,
    NeedInfo,
)
from voice_support.services.commerce import CommerceConnector
from voice_support.services.store import ActionRecord, ActionStore

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_PROMPTS = {
    "order_id": "Order ID required",
    "phone": "Phone number required",
    "email": "Email required",
    "reason": "Reason required",
    "pin_code": "PIN code required",
}

# Dates spoken to callers are rendered in Indian Standard Time
DISPLAY_TZ = timezone(timedelta(hours=5, minutes=30))


@dataclass(frozen=True)
class AgentDescriptor:
    """Static description of one agent type."""
    name: str
    required_fields: Tuple[str, ...]
    run: Callable[["Agent"], Awaitable[None]]
    prompts: Dict[str, str] = field(default_factory=dict)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_since(value: Any, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days elapsed since an ISO timestamp, or None when it is missing."""
    moment = parse_timestamp(value)
    if moment is None:
        return None
    now = now or datetime.now(timezone.utc)
    return int((now - moment).total_seconds() // 86400)


def format_day(
    value: Any,
    today_label: str = "Today",
    include_year: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """Render a date as ``today_label``, ``Tomorrow`` or ``24 Nov`` in Indian time."""
    moment = parse_timestamp(value)
    if moment is None:
        return "N/A"
    now = (now or datetime.now(timezone.utc)).astimezone(DISPLAY_TZ)
    local = moment.astimezone(DISPLAY_TZ)
    if local.date() == now.date():
        return today_label
    if local.date() == (now + timedelta(days=1)).date():
        return "Tomorrow"
    label = f"{local.day} {local.strftime('%b')}"
    if include_year:
        label += f" {local.year}"
    return label


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class Agent:
    """
    One task attempt bound to one call.

    Args:
        descriptor: The agent type definition
        call_id: The owning call
        initial_data: Fields already known at launch (usually extracted entities)
        store: Persistence collaborator for audit actions
        commerce: Commerce backend collaborator
    """

    def __init__(
        self,
        descriptor: AgentDescriptor,
        call_id: str,
        initial_data: Optional[Dict[str, Any]] = None,
        store: Optional[ActionStore] = None,
        commerce: Optional[CommerceConnector] = None,
    ):
        self.descriptor = descriptor
        self.call_id = call_id
        self.data: Dict[str, Any] = dict(initial_data or {})
        self.store = store
        self.commerce = commerce
        self.state = AgentState.INITIALIZING
        self.result: Optional[Dict[str, Any]] = None
        self.error: Optional[Exception] = None
        self.start_time = time.time()
        self.outcomes: "asyncio.Queue[Optional[AgentOutcome]]" = asyncio.Queue()
        self._closed = False
        self._timeout_task: Optional[asyncio.Task] = None
        self._execution_task: Optional[asyncio.Task] = None

    @property
    def agent_type(self) -> str:
        return self.descriptor.name

    @property
    def required_fields(self) -> Tuple[str, ...]:
        return self.descriptor.required_fields

    def missing_fields(self) -> List[str]:
        return [f for f in self.required_fields if not _has_value(self.data.get(f))]

    def has_required_data(self) -> bool:
        return not self.missing_fields()

    def get_prompt_for_field(self, field_name: str) -> str:
        if field_name in self.descriptor.prompts:
            return self.descriptor.prompts[field_name]
        return DEFAULT_PROMPTS.get(field_name, f"{field_name} required")

    def request_missing_info(self):
        """Emit ``NeedInfo`` for the first missing required field."""
        missing = self.missing_fields()
        if not missing:
            return
        field_name = missing[0]
        logger.info(f"Agent {self.agent_type} for call {self.call_id} needs {field_name}")
        self._emit(NeedInfo(field=field_name, prompt=self.get_prompt_for_field(field_name)))

    def start(self) -> asyncio.Task:
        """Schedule ``execute`` without blocking the caller."""
        self._execution_task = asyncio.create_task(self.execute())
        return self._execution_task

    async def execute(self):
        """Gate on required data, then run the descriptor's workflow under the watchdog."""
        if self.state.is_terminal:
            return

        if not self.has_required_data():
            self.state = AgentState.WAITING_FOR_INFO
            self.request_missing_info()
            return

        self.state = AgentState.RUNNING
        self._start_timeout()
        logger.info(f"Executing {self.agent_type} for call {self.call_id}")

        try:
            await self.descriptor.run(self)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.handle_error(e)

    def update_data(self, partial: Dict[str, Any]) -> bool:
        """
        Merge new fields into the agent's data.

        Resumes execution when the agent was waiting and is now data-complete.

        Returns:
            False when the agent is already terminal and the update was ignored
        """
        if self.state.is_terminal:
            logger.debug(
                f"Ignoring data update for {self.state.value} agent {self.agent_type} "
                f"on call {self.call_id}"
            )
            return False

        self.data.update(partial or {})

        if self.state == AgentState.WAITING_FOR_INFO:
            if self.has_required_data():
                self.state = AgentState.RUNNING
                self.start()
            else:
                self.request_missing_info()
        return True

    def complete(self, result: Dict[str, Any]):
        if self.state.is_terminal:
            logger.debug(
                f"Dropping result for {self.state.value} agent {self.agent_type} "
                f"on call {self.call_id}"
            )
            return
        self.result = result
        self.state = AgentState.COMPLETED
        self._clear_timeout()
        logger.info(
            f"Agent {self.agent_type} completed for call {self.call_id} "
            f"(success={result.get('success')})"
        )
        self._emit(Completed(result=result))
        self._close()

    def handle_error(self, error: Exception):
        if self.state.is_terminal:
            return
        self.error = error
        self.state = AgentState.ERROR
        self._clear_timeout()
        logger.error(f"Agent {self.agent_type} failed for call {self.call_id}: {error}")
        self._emit(Failed(error=error))
        self._close()

    def cancel(self):
        """
        Mark the agent cancelled and close its outcome channel.

        In-flight collaborator calls are not aborted; their results are dropped.
        """
        if self.state.is_terminal:
            return
        self.state = AgentState.CANCELLED
        self._clear_timeout()
        logger.info(f"Agent {self.agent_type} cancelled for call {self.call_id}")
        self._close()

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "has_required_data": self.has_required_data(),
            "missing_fields": self.missing_fields(),
            "result": self.result,
        }

    # Audit helpers used by the descriptors

    async def record_action(
        self, action_type: str, params: Dict[str, Any], confidence: float = 0.9
    ) -> ActionRecord:
        return await self.store.create_action(self.call_id, action_type, params, confidence)

    async def mark_action(
        self, action: ActionRecord, status: ActionStatus, detail: Dict[str, Any]
    ):
        await self.store.update_action_status(action.id, status, detail)

    async def reject(
        self,
        action: ActionRecord,
        message: str,
        context_update: Optional[str] = None,
    ):
        """Mark the action failed and complete with ``success: False``."""
        await self.mark_action(action, ActionStatus.FAILED, {"error": message})
        self.complete({
            "success": False,
            "message": message,
            "contextUpdate": context_update or f"{message}. Explain this to customer politely in Hindi.",
        })

    # Internals

    def _emit(self, outcome: AgentOutcome):
        if self._closed:
            return
        self.outcomes.put_nowait(outcome)

    def _close(self):
        if self._closed:
            return
        self._closed = True
        self.outcomes.put_nowait(None)

    def _start_timeout(self):
        self._clear_timeout()
        self._timeout_task = asyncio.create_task(self._timeout_watchdog())

    def _clear_timeout(self):
        if self._timeout_task and not self._timeout_task.done():
            if self._timeout_task is not asyncio.current_task():
                self._timeout_task.cancel()
        self._timeout_task = None

    async def _timeout_watchdog(self):
        await asyncio.sleep(AGENT_TIMEOUT_SECONDS)
        if self.state == AgentState.RUNNING:
            logger.warning(
                f"Agent {self.agent_type} timed out after {AGENT_TIMEOUT_SECONDS}s "
                f"for call {self.call_id}"
            )
            self.handle_error(AgentTimeoutError())
