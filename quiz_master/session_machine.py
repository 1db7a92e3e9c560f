"""
Quiz session state machine.

All session state lives in an immutable ``SessionState`` value. The only way to
move a session forward is ``apply(state, event)``, which is pure: it never
starts fetches or timers itself. Callers observe the returned state and drive
those effects (see ``quiz_controller.QuizSessionRunner``).
"""
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple, Type

from .models import AnswerOption, Question

SECONDS_PER_QUESTION = 30


class Phase(Enum):
    """Enumeration of quiz session phases."""
    AWAITING_COUNT = "awaiting_count"
    LOADING = "loading"
    ACTIVE = "active"
    ERROR = "error"
    FINISHED = "finished"
    REVIEWING = "reviewing"


class ContractViolationError(ValueError):
    """Raised when an event carries a payload the caller should never send."""
    pass


@dataclass(frozen=True)
class SessionState:
    """Snapshot of a single quiz session."""
    phase: Phase = Phase.AWAITING_COUNT
    requested_count: Optional[int] = None
    questions: Tuple[Question, ...] = ()
    current_index: int = 0
    score: int = 0
    seconds_remaining: Optional[int] = None
    recorded_answers: Tuple[AnswerOption, ...] = ()

    @property
    def num_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def is_terminal(self) -> bool:
        """True once no further answers can be recorded."""
        return self.phase in (Phase.ERROR, Phase.FINISHED, Phase.REVIEWING)

    def answer_for(self, index: int) -> Optional[AnswerOption]:
        """Return the answer recorded for question ``index``, or None if it was never answered."""
        if 0 <= index < len(self.recorded_answers):
            return self.recorded_answers[index]
        return None


def initial_state() -> SessionState:
    """Return the zero state every session starts from."""
    return SessionState()


# Events

@dataclass(frozen=True)
class CountSelected:
    count: int


@dataclass(frozen=True)
class QuestionsLoaded:
    questions: Sequence[Question]

    def __post_init__(self):
        object.__setattr__(self, "questions", tuple(self.questions))


@dataclass(frozen=True)
class LoadFailed:
    reason: str = ""


@dataclass(frozen=True)
class AnswerSubmitted:
    option: AnswerOption


@dataclass(frozen=True)
class TimerTick:
    pass


@dataclass(frozen=True)
class FinishRequested:
    pass


@dataclass(frozen=True)
class ReviewRequested:
    pass


@dataclass(frozen=True)
class ReviewPrevious:
    pass


@dataclass(frozen=True)
class ReviewNext:
    pass


@dataclass(frozen=True)
class ReviewJump:
    index: int


@dataclass(frozen=True)
class Restart:
    pass


# Transition handlers. Each returns the unchanged state when the event is not
# valid for the current phase.

def _on_count_selected(state: SessionState, event: CountSelected) -> SessionState:
    if state.phase is not Phase.AWAITING_COUNT:
        return state
    if not isinstance(event.count, int) or event.count < 1:
        raise ContractViolationError(f"Question count must be a positive integer, got {event.count!r}")
    return dataclasses.replace(state, requested_count=event.count, phase=Phase.LOADING)


def _on_questions_loaded(state: SessionState, event: QuestionsLoaded) -> SessionState:
    if state.phase is not Phase.LOADING:
        return state
    if not event.questions:
        return dataclasses.replace(state, phase=Phase.ERROR)
    return dataclasses.replace(
        state,
        questions=event.questions,
        seconds_remaining=state.requested_count * SECONDS_PER_QUESTION,
        phase=Phase.ACTIVE,
        current_index=0,
        score=0,
        recorded_answers=(),
    )


def _on_load_failed(state: SessionState, event: LoadFailed) -> SessionState:
    if state.phase is not Phase.LOADING:
        return state
    return dataclasses.replace(state, phase=Phase.ERROR)


def _on_answer_submitted(state: SessionState, event: AnswerSubmitted) -> SessionState:
    if state.phase is not Phase.ACTIVE:
        return state
    recorded = state.recorded_answers + (event.option,)
    score = state.score + 1 if event.option.is_correct else state.score
    if state.current_index + 1 >= len(state.questions):
        return dataclasses.replace(
            state, recorded_answers=recorded, score=score, phase=Phase.FINISHED
        )
    return dataclasses.replace(
        state, recorded_answers=recorded, score=score, current_index=state.current_index + 1
    )


def _on_timer_tick(state: SessionState, event: TimerTick) -> SessionState:
    if state.phase is not Phase.ACTIVE or not state.seconds_remaining:
        return state
    remaining = state.seconds_remaining - 1
    if remaining == 0:
        return dataclasses.replace(state, seconds_remaining=0, phase=Phase.FINISHED)
    return dataclasses.replace(state, seconds_remaining=remaining)


def _on_finish_requested(state: SessionState, event: FinishRequested) -> SessionState:
    if state.phase is not Phase.ACTIVE:
        return state
    return dataclasses.replace(state, phase=Phase.FINISHED)


def _on_review_requested(state: SessionState, event: ReviewRequested) -> SessionState:
    if state.phase is not Phase.FINISHED:
        return state
    return dataclasses.replace(state, phase=Phase.REVIEWING, current_index=0)


def _on_review_previous(state: SessionState, event: ReviewPrevious) -> SessionState:
    if state.phase is not Phase.REVIEWING:
        return state
    return dataclasses.replace(state, current_index=max(0, state.current_index - 1))


def _on_review_next(state: SessionState, event: ReviewNext) -> SessionState:
    if state.phase is not Phase.REVIEWING:
        return state
    last_index = max(0, len(state.questions) - 1)
    return dataclasses.replace(state, current_index=min(last_index, state.current_index + 1))


def _on_review_jump(state: SessionState, event: ReviewJump) -> SessionState:
    if state.phase is not Phase.REVIEWING:
        return state
    if not 0 <= event.index < len(state.questions):
        raise ContractViolationError(
            f"Review index {event.index} out of range for {len(state.questions)} questions"
        )
    return dataclasses.replace(state, current_index=event.index)


def _on_restart(state: SessionState, event: Restart) -> SessionState:
    return initial_state()


_HANDLERS: Dict[Type, Callable] = {
    CountSelected: _on_count_selected,
    QuestionsLoaded: _on_questions_loaded,
    LoadFailed: _on_load_failed,
    AnswerSubmitted: _on_answer_submitted,
    TimerTick: _on_timer_tick,
    FinishRequested: _on_finish_requested,
    ReviewRequested: _on_review_requested,
    ReviewPrevious: _on_review_previous,
    ReviewNext: _on_review_next,
    ReviewJump: _on_review_jump,
    Restart: _on_restart,
}


def apply(state: SessionState, event) -> SessionState:
    """
    Compute the next session state.

    Args:
        state: Current session state
        event: One of the event types defined in this module

    Returns:
        The next state, or ``state`` itself when the event does not apply
        to the current phase

    Raises:
        ContractViolationError: If the event payload is invalid (bad count,
            out-of-range review index). ``state`` is left untouched.
        TypeError: If ``event`` is not a known event type
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown session event: {event!r}")
    return handler(state, event)
