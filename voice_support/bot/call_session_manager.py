"""
Per-call wiring between the speech session, intent detection and agents.

For each live call the manager owns a ``CallSession``: the speech session,
a bounded conversation history and the bookkeeping needed to route the
caller's follow-up answers to an agent that asked for information. Two
consumer tasks run per call. One processes user transcripts in delivery
order, the other turns orchestrator events into context updates that the
speech model verbalizes.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from voice_support.agents.intent_detector import IntentDetector
from voice_support.agents.orchestrator import AgentOrchestrator
from voice_support.bot.speech_session import SpeechSession
from voice_support.config import constants, settings
from voice_support.config.constants import LOGGER_NAME
from voice_support.errors import SpeechSessionError, VoiceSupportError
from voice_support.models.agent_models import (
    EVENT_AGENT_CANCELLED,
    EVENT_AGENT_COMPLETED,
    EVENT_AGENT_ERROR,
    EVENT_AGENT_NEEDS_INFO,
    OrchestratorEvent,
)
from voice_support.models.conversation import ConversationEntry, MessageRole
from voice_support.models.intent import IntentResult
from voice_support.models.realtime_schemas import SpeechSessionConfig
from voice_support.services.store import ActionStore

logger = logging.getLogger(LOGGER_NAME)

AudioSink = Callable[[str, bytes], Awaitable[None]]

NEED_INFO_TEMPLATE = "SYSTEM: {prompt}. Ask user naturally for this information in Hindi."
AGENT_ERROR_UPDATE = (
    "SYSTEM: Technical issue occurred. Apologize to user and offer to create a support "
    'ticket. Say in Hindi: "Maaf kijiye sir, thoda technical issue aa raha hai. Main aapka '
    'ticket create kar deti hoon, team 24 ghante mein contact karegi."'
)
CANCELLED_UPDATE = (
    'SYSTEM: User cancelled the action. Acknowledge politely: "Ji sir, koi baat nahi. '
    'Kuch aur batayiye?"'
)
LAUNCH_FAILED_UPDATE = (
    'SYSTEM: Could not process request. Apologize: "Maaf kijiye, thodi problem aa rahi '
    'hai. Kuch aur madad kar sakti hoon?"'
)


def default_session_factory() -> SpeechSession:
    return SpeechSession(
        settings.OPENAI_API_KEY,
        settings.OPENAI_REALTIME_URL,
        settings.OPENAI_REALTIME_MODEL,
    )


@dataclass
class CallSession:
    """State of one live call."""
    call_id: str
    call_data: Dict[str, Any]
    speech: SpeechSession
    audio_sink: Optional[AudioSink] = None
    history: List[ConversationEntry] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    is_active: bool = True
    current_intent: Optional[str] = None
    waiting_for_entity: Optional[str] = None
    assistant_speaking: bool = False
    transcripts: asyncio.Queue = field(default_factory=asyncio.Queue)
    tasks: List[asyncio.Task] = field(default_factory=list)
    timeout_task: Optional[asyncio.Task] = None

    def add_message(self, role: MessageRole, content: str):
        self.history.append(ConversationEntry(role=role, content=content))
        if len(self.history) > constants.MAX_HISTORY_MESSAGES:
            self.history = self.history[-constants.MAX_HISTORY_MESSAGES:]

    @property
    def duration(self) -> float:
        return time.time() - self.start_time


class CallSessionManager:
    """
    Creates, drives and tears down call sessions.

    Args:
        orchestrator: Agent orchestrator shared by all calls
        store: Persistence collaborator for transcripts and call summaries
        detector: Intent detector; a default one is created when omitted
        session_factory: Builds a fresh ``SpeechSession`` per call
    """

    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        store: ActionStore,
        detector: Optional[IntentDetector] = None,
        session_factory: Callable[[], SpeechSession] = default_session_factory,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.detector = detector or IntentDetector()
        self.session_factory = session_factory
        self.sessions: Dict[str, CallSession] = {}

    async def create_session(
        self,
        call_id: str,
        call_data: Optional[Dict[str, Any]] = None,
        audio_sink: Optional[AudioSink] = None,
        config: Optional[SpeechSessionConfig] = None,
    ) -> CallSession:
        """
        Open the speech session for a call and start its consumers.

        Args:
            call_id: Call identifier from the telephony provider
            call_data: Call metadata (caller number, stream id, ...)
            audio_sink: Coroutine receiving ``(call_id, audio_bytes)`` for playback
            config: Speech session overrides

        Returns:
            The new CallSession

        Raises:
            SpeechSessionError: If the speech session could not be started
        """
        logger.info(f"Creating call session for call {call_id}")

        session = CallSession(
            call_id=call_id,
            call_data=call_data or {},
            speech=self.session_factory(),
            audio_sink=audio_sink,
        )
        self._register_speech_handlers(session)

        events = self.orchestrator.subscribe(call_id)
        session.tasks.append(asyncio.create_task(self._consume_transcripts(session)))
        session.tasks.append(asyncio.create_task(self._consume_agent_events(session, events)))
        self._reset_timeout(session)

        try:
            await session.speech.start(
                call_id, config or SpeechSessionConfig(voice=settings.REALTIME_VOICE)
            )
        except SpeechSessionError:
            logger.error(f"Could not start speech session for call {call_id}")
            await self._cleanup_session(session)
            raise

        self.sessions[call_id] = session
        logger.info(f"Call session created for call {call_id}")
        return session

    # Speech events

    def _register_speech_handlers(self, session: CallSession):
        speech = session.speech
        call_id = session.call_id

        async def on_speech_started():
            logger.debug(f"User speech started on call {call_id}")
            if session.assistant_speaking:
                session.assistant_speaking = False
                await speech.interrupt()

        async def on_user_transcript(data: Dict[str, Any]):
            await session.transcripts.put(data.get("transcript") or "")

        async def on_ai_transcript(data: Dict[str, Any]):
            transcript = data.get("transcript") or ""
            logger.info(f"Assistant said on call {call_id}: {transcript}")
            session.add_message(MessageRole.ASSISTANT, transcript)
            await self._save_transcript(call_id, MessageRole.ASSISTANT, transcript)

        async def on_audio_output(chunk: bytes):
            session.assistant_speaking = True
            if session.audio_sink is not None:
                await session.audio_sink(call_id, chunk)

        def on_response_done(response: Dict[str, Any]):
            session.assistant_speaking = False

        async def on_error(error: Exception):
            logger.error(f"Speech session error on call {call_id}: {error}")
            if isinstance(error, SpeechSessionError) and error.fatal:
                await self.end_session(call_id)

        speech.on("speech_started", on_speech_started)
        speech.on("user_transcript_completed", on_user_transcript)
        speech.on("ai_transcript_completed", on_ai_transcript)
        speech.on("audio_output", on_audio_output)
        speech.on("response_done", on_response_done)
        speech.on("error", on_error)

    async def _consume_transcripts(self, session: CallSession):
        while True:
            transcript = await session.transcripts.get()
            try:
                await self._handle_user_transcript(session, transcript)
            except Exception as e:
                logger.error(
                    f"Error handling transcript on call {session.call_id}: {e}", exc_info=True
                )

    async def _handle_user_transcript(self, session: CallSession, transcript: str):
        call_id = session.call_id
        logger.info(f"User said on call {call_id}: {transcript}")

        session.add_message(MessageRole.USER, transcript)
        self._reset_timeout(session)
        await self._save_transcript(call_id, MessageRole.USER, transcript)

        detection = self.detector.detect(transcript, session.history)
        logger.info(
            f"Intent detected on call {call_id}: {detection.intent} "
            f"(confidence={detection.confidence}, requires_agent={detection.requires_agent}, "
            f"entities={detection.entities})"
        )
        await self.handle_intent(session, detection)

    async def handle_intent(self, session: CallSession, detection: IntentResult):
        """Cancel, update or launch an agent for one classified utterance."""
        call_id = session.call_id
        if not session.is_active:
            logger.debug(f"Ignoring utterance on ended call {call_id}")
            return

        if detection.should_cancel_agent:
            logger.info(f"User requested cancellation on call {call_id}")
            await self.orchestrator.cancel_agent(call_id)
            session.current_intent = None
            session.waiting_for_entity = None
            await session.speech.update_context(CANCELLED_UPDATE)
            return

        if self._forward_free_text_answer(session, detection):
            return

        if not detection.requires_agent:
            # A bare answer such as "5001" right after "order number batayiye"
            if self._forward_expected_entity(session, detection):
                return
            logger.debug(f"Normal conversation on call {call_id}, no agent needed")
            return

        session.current_intent = detection.intent

        expected = session.waiting_for_entity
        if expected and detection.entities.get(expected):
            logger.info(f"Received expected entity {expected} on call {call_id}")
            session.waiting_for_entity = None
            if self.orchestrator.update_agent(call_id, detection.entities):
                return

        logger.info(f"Launching {detection.agent_type} for call {call_id}")
        try:
            await self.orchestrator.launch_agent(call_id, detection.agent_type, detection.entities)
        except VoiceSupportError as e:
            logger.error(f"Error launching agent for call {call_id}: {e}")
            await session.speech.update_context(LAUNCH_FAILED_UPDATE)

    def _forward_expected_entity(self, session: CallSession, detection: IntentResult) -> bool:
        if not self.orchestrator.has_active_agent(session.call_id):
            return False

        expected = session.waiting_for_entity
        if expected is None:
            expectation = self.detector.is_waiting_for_entity(
                session.speech.get_conversation_history()
            )
            expected = expectation.entity if expectation else None

        if not expected or not detection.entities.get(expected):
            return False

        logger.info(f"Received expected entity {expected} on call {session.call_id}")
        session.waiting_for_entity = None
        return self.orchestrator.update_agent(session.call_id, detection.entities)

    def _forward_free_text_answer(self, session: CallSession, detection: IntentResult) -> bool:
        """
        Hand the caller's words to an agent waiting for a field no entity pattern extracts.

        Reasons, addresses and issue descriptions arrive as free speech. A new
        request for a different agent is not treated as an answer.
        """
        expected = session.waiting_for_entity
        if not expected or expected in self.detector.entity_patterns:
            return False

        state = self.orchestrator.get_agent_state(session.call_id)
        if state is None:
            return False
        if detection.requires_agent and detection.agent_type != state["agent_type"]:
            return False

        answer = (detection.original_text or "").strip()
        if not answer:
            return False

        logger.info(f"Received {expected} for {state['agent_type']} on call {session.call_id}")
        session.waiting_for_entity = None
        return self.orchestrator.update_agent(session.call_id, {expected: answer})

    # Agent events

    async def _consume_agent_events(self, session: CallSession, events: asyncio.Queue):
        while True:
            event = await events.get()
            try:
                await self._handle_agent_event(session, event)
            except Exception as e:
                logger.error(
                    f"Error handling {event.type} on call {session.call_id}: {e}", exc_info=True
                )

    async def _handle_agent_event(self, session: CallSession, event: OrchestratorEvent):
        call_id = session.call_id

        if event.type == EVENT_AGENT_NEEDS_INFO:
            logger.info(f"Agent {event.agent_type} needs {event.field} on call {call_id}")
            session.waiting_for_entity = event.field
            await session.speech.update_context(NEED_INFO_TEMPLATE.format(prompt=event.prompt))

        elif event.type == EVENT_AGENT_COMPLETED:
            result = event.result or {}
            logger.info(
                f"Agent {event.agent_type} completed on call {call_id} "
                f"(success={result.get('success')})"
            )
            session.current_intent = None
            session.waiting_for_entity = None
            await session.speech.update_context(f"SYSTEM: {result.get('contextUpdate')}")

        elif event.type == EVENT_AGENT_ERROR:
            logger.error(f"Agent {event.agent_type} error on call {call_id}: {event.error}")
            session.current_intent = None
            session.waiting_for_entity = None
            await session.speech.update_context(AGENT_ERROR_UPDATE)

        elif event.type == EVENT_AGENT_CANCELLED:
            logger.info(f"Agent {event.agent_type} cancelled on call {call_id}")
            session.current_intent = None
            session.waiting_for_entity = None

    # Audio

    async def process_incoming_audio(self, call_id: str, audio: bytes):
        """Forward one caller audio chunk to the call's speech session."""
        session = self.sessions.get(call_id)
        if session is None or not session.is_active:
            logger.warning(f"Cannot process audio, session not found or inactive: {call_id}")
            return
        await session.speech.send_audio(audio)

    # Persistence

    async def _save_transcript(self, call_id: str, role: MessageRole, text: str):
        try:
            await self.store.save_transcript(call_id, role.value, text)
        except Exception as e:
            logger.error(f"Error saving {role.value} transcript for call {call_id}: {e}")

    # Timeouts

    def _reset_timeout(self, session: CallSession):
        if session.timeout_task is not None and not session.timeout_task.done():
            session.timeout_task.cancel()
        session.timeout_task = asyncio.create_task(self._expire(session.call_id))

    async def _expire(self, call_id: str):
        await asyncio.sleep(constants.SESSION_TIMEOUT_SECONDS)
        logger.warning(f"Session timeout for call {call_id}, cleaning up")
        await self.end_session(call_id, is_timeout=True)

    # Teardown

    async def end_session(self, call_id: str, is_timeout: bool = False):
        """
        End a call: cancel its agent, stop speech and store the call summary.

        Local cleanup happens even when the summary cannot be stored.
        """
        session = self.sessions.get(call_id)
        if session is None:
            logger.warning(f"Session not found for ending: {call_id}")
            return
        if not session.is_active:
            return

        logger.info(f"Ending call session for call {call_id} (timeout={is_timeout})")
        session.is_active = False

        # Queued transcripts must not launch agents once the call has ended
        await self._stop_tasks(session)

        try:
            await self.orchestrator.cancel_agent(call_id)
            await session.speech.stop()

            full_transcript = "\n".join(
                f"{entry.role.value}: {entry.content}" for entry in session.history
            )
            duration = int(session.duration)
            charge_amount = duration / 60 * constants.CHARGE_PER_MINUTE

            await self.store.update_call(call_id, {
                "transcript_full": full_transcript,
                "end_ts": datetime.now(timezone.utc),
                "duration_seconds": duration,
                "charge_amount": charge_amount,
            })
            logger.info(f"Call session ended for call {call_id} after {duration}s")
        except Exception as e:
            logger.error(f"Error ending call session {call_id}: {e}", exc_info=True)
        finally:
            await self._cleanup_session(session)
            self.sessions.pop(call_id, None)

    async def _cleanup_session(self, session: CallSession):
        await self._stop_tasks(session)
        session.speech.remove_all_listeners()
        self.orchestrator.unsubscribe(session.call_id)

    async def _stop_tasks(self, session: CallSession):
        current = asyncio.current_task()
        pending = list(session.tasks)
        if session.timeout_task is not None:
            pending.append(session.timeout_task)

        for task in pending:
            if task is not current and not task.done():
                task.cancel()
        for task in pending:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                logger.debug(f"Session task cancelled for call {session.call_id}")

        session.tasks.clear()
        session.timeout_task = None

    async def shutdown(self):
        for call_id in list(self.sessions):
            await self.end_session(call_id)

    # Accessors

    def get_session(self, call_id: str) -> Optional[CallSession]:
        return self.sessions.get(call_id)

    def get_active_sessions(self) -> List[str]:
        return list(self.sessions)

    def get_session_count(self) -> int:
        return len(self.sessions)
