"""
Quiz session controller for the Quiz Master bot.
Serializes events into each session's state machine and drives the
question retrieval and countdown effects that state changes call for.
"""
import logging
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from dataclasses import dataclass
from datetime import datetime

from .data_manager import QuestionProvider, QuestionProviderError
from .session_machine import (
    ContractViolationError,
    LoadFailed,
    Phase,
    QuestionsLoaded,
    Restart,
    SessionState,
    TimerTick,
    apply,
    initial_state,
)
from .session_timer import SessionTimer

StateListener = Callable[[SessionState], Awaitable[Any]]


@dataclass(frozen=True)
class RetrievalResult:
    """A retrieval outcome tagged with the session generation that requested it."""
    generation: int
    event: Union[QuestionsLoaded, LoadFailed]


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when attempting to create a session that conflicts with existing session."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class QuizSessionRunner:
    """
    Owns one quiz session and applies its events one at a time.

    Events from the presenter, the question retrieval and the countdown all go
    through a single queue. After each transition the runner starts or stops
    the retrieval and the timer so they match the new phase, then hands the
    new state to the listener for rendering.
    """

    def __init__(
        self,
        session_id: str,
        provider: QuestionProvider,
        listener: Optional[StateListener] = None,
        tick_interval: float = 1.0
    ):
        """
        Initialize the session runner.

        Args:
            session_id: Identifier used in logs (the Discord channel id)
            provider: Source of questions for this session
            listener: Awaited with every new state
            tick_interval: Seconds between countdown ticks
        """
        self.logger = logging.getLogger(__name__)
        self.session_id = str(session_id)
        self.created_at = datetime.now()
        self.listener = listener
        self._provider = provider
        self._state = initial_state()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._timer = SessionTimer(self.session_id, tick_interval)
        self._worker: Optional[asyncio.Task] = None
        self._fetch_task: Optional[asyncio.Task] = None
        # Bumped on Restart so that an in-flight retrieval is discarded.
        self._generation = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start consuming events."""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._consume())
        self.logger.info(
            f"Session {self.session_id} started",
            extra={
                'event_type': 'session_started',
                'session_id': self.session_id,
                'timestamp': time.time()
            }
        )

    async def stop(self) -> None:
        """Stop the timer, any retrieval in flight and the event consumer."""
        await self._timer.cancel()
        self._cancel_retrieval()
        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            if worker is not asyncio.current_task():
                try:
                    await worker
                except asyncio.CancelledError:
                    pass
        self._worker = None
        self.logger.info(
            f"Session {self.session_id} stopped",
            extra={
                'event_type': 'session_stopped',
                'session_id': self.session_id,
                'timestamp': time.time()
            }
        )

    async def dispatch(self, event) -> None:
        """Queue an event for this session."""
        await self._queue.put(event)

    async def join(self) -> None:
        """Wait until every queued event has been applied."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._handle(event)
            except Exception as e:
                self.logger.error(
                    f"Unexpected error handling {type(event).__name__} for session {self.session_id}: {e}",
                    exc_info=True
                )
            finally:
                self._queue.task_done()

    async def _handle(self, event) -> None:
        if isinstance(event, RetrievalResult):
            # Restart may have been applied after this result was queued.
            if event.generation != self._generation:
                self.logger.debug(f"Discarding stale retrieval result for session {self.session_id}")
                return
            event = event.event

        previous = self._state
        try:
            current = apply(previous, event)
        except ContractViolationError as e:
            self.logger.warning(f"Rejected {type(event).__name__} for session {self.session_id}: {e}")
            return

        if current is previous:
            self.logger.debug(
                f"Ignored {type(event).__name__} in phase {previous.phase.value} for session {self.session_id}"
            )
            return

        self._state = current
        if current.phase is not previous.phase:
            self.logger.info(
                f"Session {self.session_id}: {previous.phase.value} -> {current.phase.value} "
                f"({type(event).__name__})",
                extra={
                    'event_type': 'session_phase_transition',
                    'session_id': self.session_id,
                    'from_phase': previous.phase.value,
                    'to_phase': current.phase.value,
                    'score': current.score,
                    'timestamp': time.time()
                }
            )

        await self._sync_effects(previous, current, event)
        await self._notify(current)

    async def _sync_effects(self, previous: SessionState, current: SessionState, event) -> None:
        if isinstance(event, Restart):
            self._generation += 1
            self._cancel_retrieval()

        if previous.phase is Phase.ACTIVE and current.phase is not Phase.ACTIVE:
            await self._timer.cancel()

        if current.phase is Phase.LOADING and previous.phase is not Phase.LOADING:
            self._start_retrieval(current.requested_count)
        elif current.phase is Phase.ACTIVE and previous.phase is not Phase.ACTIVE:
            self._timer.start(current.seconds_remaining, self._on_tick)

    async def _notify(self, state: SessionState) -> None:
        if self.listener is None:
            return
        try:
            await self.listener(state)
        except Exception as e:
            self.logger.error(f"State listener failed for session {self.session_id}: {e}", exc_info=True)

    async def _on_tick(self) -> None:
        await self._queue.put(TimerTick())

    def _start_retrieval(self, count: int) -> None:
        self._fetch_task = asyncio.create_task(self._retrieve(count, self._generation))

    def _cancel_retrieval(self) -> None:
        if self._fetch_task is not None and not self._fetch_task.done():
            self._fetch_task.cancel()
        self._fetch_task = None

    async def _retrieve(self, count: int, generation: int) -> None:
        self.logger.info(f"Fetching {count} questions for session {self.session_id}")
        try:
            questions = await self._provider.fetch_questions(count)
            event = QuestionsLoaded(questions)
        except QuestionProviderError as e:
            self.logger.warning(f"Question retrieval failed for session {self.session_id}: {e}")
            event = LoadFailed(str(e))
        except Exception as e:
            self.logger.error(
                f"Unexpected provider error for session {self.session_id}: {e}", exc_info=True
            )
            event = LoadFailed(str(e))

        await self._queue.put(RetrievalResult(generation, event))


class QuizController:
    """
    Keeps one independent quiz session per Discord channel.
    """

    def __init__(self, provider: QuestionProvider, tick_interval: float = 1.0):
        """
        Initialize the quiz controller.

        Args:
            provider: Question source shared by all sessions
            tick_interval: Seconds between countdown ticks
        """
        self.logger = logging.getLogger(__name__)
        self.provider = provider
        self.tick_interval = tick_interval
        self._sessions: Dict[int, QuizSessionRunner] = {}
        self.logger.info("QuizController initialized")

    async def open_session(
        self,
        channel_id: int,
        listener: Optional[StateListener] = None,
        replace: bool = True
    ) -> QuizSessionRunner:
        """
        Open a new session for a channel.

        A finished or idle session in the same channel is replaced. A session
        that is loading or in progress is only replaced when ``replace`` is set.

        Raises:
            SessionConflictError: If an in-progress session exists and ``replace`` is False
        """
        existing = self._sessions.get(channel_id)
        if existing is not None:
            if self.has_active_session(channel_id) and not replace:
                raise SessionConflictError(f"Channel {channel_id} already has a quiz in progress")
            await self.close_session(channel_id)

        runner = QuizSessionRunner(str(channel_id), self.provider, listener, self.tick_interval)
        self._sessions[channel_id] = runner
        runner.start()
        self.logger.info(f"Opened quiz session for channel {channel_id}")
        return runner

    def get_session(self, channel_id: int) -> Optional[QuizSessionRunner]:
        return self._sessions.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a channel has a session that is loading or in progress.
        """
        runner = self._sessions.get(channel_id)
        return runner is not None and runner.state.phase in (Phase.LOADING, Phase.ACTIVE)

    async def dispatch(self, channel_id: int, event) -> None:
        """
        Queue an event for the channel's session.

        Raises:
            SessionNotFoundError: If the channel has no session
        """
        runner = self._sessions.get(channel_id)
        if runner is None:
            raise SessionNotFoundError(f"No quiz session for channel {channel_id}")
        await runner.dispatch(event)

    async def close_session(self, channel_id: int) -> bool:
        """
        Stop and forget the channel's session.

        Returns:
            True if a session was closed, False if none existed
        """
        runner = self._sessions.pop(channel_id, None)
        if runner is None:
            return False
        await runner.stop()
        self.logger.info(f"Closed quiz session for channel {channel_id}")
        return True

    async def close_all(self) -> None:
        for channel_id in list(self._sessions):
            await self.close_session(channel_id)

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a session.

        Returns:
            Dictionary with progress information, or None if no session exists
        """
        runner = self._sessions.get(channel_id)
        if runner is None:
            return None

        state = runner.state
        return {
            'channel_id': channel_id,
            'phase': state.phase.value,
            'requested_count': state.requested_count,
            'total_questions': state.num_questions,
            'current_question': state.current_index + 1 if state.questions else 0,
            'answered': len(state.recorded_answers),
            'score': state.score,
            'seconds_remaining': state.seconds_remaining,
            'started_at': runner.created_at
        }

    def get_session_status_summary(self, channel_id: int) -> str:
        """
        Get a one-line human-readable session status.
        """
        progress = self.get_session_progress(channel_id)
        if progress is None:
            return "No quiz session in this channel"

        phase = progress['phase']
        if phase == Phase.AWAITING_COUNT.value:
            return "Status: Waiting for a question count"
        if phase == Phase.LOADING.value:
            return f"Status: Loading {progress['requested_count']} questions"
        if phase == Phase.ERROR.value:
            return "Status: Failed to load questions"
        if phase == Phase.ACTIVE.value:
            return (
                f"Status: Active | Question {progress['current_question']}/{progress['total_questions']}"
                f" | Score {progress['score']} | {progress['seconds_remaining']}s left"
            )
        return (
            f"Status: {phase.capitalize()} | Score {progress['score']}/{progress['total_questions']}"
            f" | Answered {progress['answered']}"
        )

    def get_all_active_sessions(self) -> Dict[int, Dict[str, Any]]:
        return {
            channel_id: self.get_session_progress(channel_id)
            for channel_id in self._sessions
            if self.has_active_session(channel_id)
        }
