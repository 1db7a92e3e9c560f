"""
Unit tests for the quiz session state machine.
"""
import unittest

from quiz_master.models import AnswerOption
from quiz_master.session_machine import (
    SECONDS_PER_QUESTION,
    AnswerSubmitted,
    ContractViolationError,
    CountSelected,
    FinishRequested,
    LoadFailed,
    Phase,
    QuestionsLoaded,
    Restart,
    ReviewJump,
    ReviewNext,
    ReviewPrevious,
    ReviewRequested,
    SessionState,
    TimerTick,
    apply,
    initial_state,
)
from tests.test_fixtures import TestFixtures


def run_events(state, *events):
    for event in events:
        state = apply(state, event)
    return state


class TestInitialState(unittest.TestCase):
    """Test cases for the zero state."""

    def test_initial_state_fields(self):
        state = initial_state()

        self.assertIs(state.phase, Phase.AWAITING_COUNT)
        self.assertIsNone(state.requested_count)
        self.assertEqual(state.questions, ())
        self.assertEqual(state.current_index, 0)
        self.assertEqual(state.score, 0)
        self.assertIsNone(state.seconds_remaining)
        self.assertEqual(state.recorded_answers, ())
        self.assertIsNone(state.current_question)
        self.assertFalse(state.is_terminal)

    def test_unknown_event_type(self):
        with self.assertRaises(TypeError):
            apply(initial_state(), object())


class TestLoadingTransitions(unittest.TestCase):
    """Test cases for count selection and question retrieval outcomes."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions(3)

    def test_count_selected_moves_to_loading(self):
        state = apply(initial_state(), CountSelected(3))

        self.assertIs(state.phase, Phase.LOADING)
        self.assertEqual(state.requested_count, 3)

    def test_count_selected_rejects_non_positive(self):
        for bad in (0, -1):
            with self.subTest(count=bad):
                with self.assertRaises(ContractViolationError):
                    apply(initial_state(), CountSelected(bad))

    def test_count_selected_ignored_outside_awaiting_count(self):
        loading = apply(initial_state(), CountSelected(3))

        self.assertIs(apply(loading, CountSelected(5)), loading)

    def test_questions_loaded_starts_quiz(self):
        state = run_events(initial_state(), CountSelected(3), QuestionsLoaded(self.questions))

        self.assertIs(state.phase, Phase.ACTIVE)
        self.assertEqual(state.num_questions, 3)
        self.assertEqual(state.current_index, 0)
        self.assertEqual(state.score, 0)
        self.assertEqual(state.seconds_remaining, 3 * SECONDS_PER_QUESTION)
        self.assertEqual(state.current_question, self.questions[0])

    def test_questions_loaded_stores_tuple(self):
        state = run_events(initial_state(), CountSelected(3), QuestionsLoaded(self.questions))

        self.assertIsInstance(state.questions, tuple)

    def test_empty_questions_loaded_is_error(self):
        state = run_events(initial_state(), CountSelected(3), QuestionsLoaded([]))

        self.assertIs(state.phase, Phase.ERROR)
        self.assertTrue(state.is_terminal)

    def test_load_failed_moves_to_error(self):
        state = run_events(initial_state(), CountSelected(3), LoadFailed("boom"))

        self.assertIs(state.phase, Phase.ERROR)

    def test_retrieval_results_ignored_outside_loading(self):
        state = initial_state()

        self.assertIs(apply(state, QuestionsLoaded(self.questions)), state)
        self.assertIs(apply(state, LoadFailed()), state)

    def test_error_only_leaves_on_restart(self):
        error = run_events(initial_state(), CountSelected(3), LoadFailed())

        for event in (CountSelected(3), TimerTick(), ReviewRequested(), FinishRequested()):
            with self.subTest(event=event):
                self.assertIs(apply(error, event), error)
        self.assertEqual(apply(error, Restart()), initial_state())


class TestActiveTransitions(unittest.TestCase):
    """Test cases for answering and the countdown."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions(3)
        self.active = run_events(initial_state(), CountSelected(3), QuestionsLoaded(self.questions))

    def test_all_correct_answers_finish_with_full_score(self):
        state = self.active
        for question in self.questions:
            state = apply(state, AnswerSubmitted(TestFixtures.correct_option(question)))

        self.assertIs(state.phase, Phase.FINISHED)
        self.assertEqual(state.score, 3)
        self.assertEqual(len(state.recorded_answers), 3)

    def test_mixed_answers_score(self):
        state = run_events(
            self.active,
            AnswerSubmitted(TestFixtures.correct_option(self.questions[0])),
            AnswerSubmitted(TestFixtures.wrong_option(self.questions[1])),
            AnswerSubmitted(TestFixtures.correct_option(self.questions[2])),
        )

        self.assertIs(state.phase, Phase.FINISHED)
        self.assertEqual(state.score, 2)

    def test_answer_advances_index(self):
        state = apply(self.active, AnswerSubmitted(TestFixtures.wrong_option(self.questions[0])))

        self.assertIs(state.phase, Phase.ACTIVE)
        self.assertEqual(state.current_index, 1)
        self.assertEqual(state.score, 0)
        self.assertEqual(state.answer_for(0), TestFixtures.wrong_option(self.questions[0]))
        self.assertIsNone(state.answer_for(1))

    def test_score_matches_correct_recorded_answers(self):
        state = self.active
        for i, question in enumerate(self.questions):
            option = TestFixtures.correct_option(question) if i % 2 else TestFixtures.wrong_option(question)
            state = apply(state, AnswerSubmitted(option))
            self.assertEqual(state.score, sum(1 for a in state.recorded_answers if a.is_correct))

    def test_answer_option_outside_question_still_scored_by_flag(self):
        state = apply(self.active, AnswerSubmitted(AnswerOption("elsewhere", True)))

        self.assertEqual(state.score, 1)

    def test_timer_tick_decrements(self):
        state = apply(self.active, TimerTick())

        self.assertEqual(state.seconds_remaining, 3 * SECONDS_PER_QUESTION - 1)
        self.assertIs(state.phase, Phase.ACTIVE)

    def test_timer_expiry_finishes_quiz(self):
        state = apply(self.active, AnswerSubmitted(TestFixtures.correct_option(self.questions[0])))
        for _ in range(3 * SECONDS_PER_QUESTION):
            state = apply(state, TimerTick())

        self.assertIs(state.phase, Phase.FINISHED)
        self.assertEqual(state.seconds_remaining, 0)
        self.assertEqual(state.score, 1)
        self.assertEqual(len(state.recorded_answers), 1)

    def test_finish_requested_ends_early(self):
        state = apply(self.active, FinishRequested())

        self.assertIs(state.phase, Phase.FINISHED)
        self.assertEqual(state.seconds_remaining, self.active.seconds_remaining)

    def test_ticks_ignored_once_finished(self):
        finished = apply(self.active, FinishRequested())

        self.assertIs(apply(finished, TimerTick()), finished)

    def test_answers_ignored_once_finished(self):
        finished = apply(self.active, FinishRequested())

        self.assertIs(apply(finished, AnswerSubmitted(AnswerOption("x", True))), finished)

    def test_restart_mid_quiz(self):
        state = apply(self.active, AnswerSubmitted(TestFixtures.correct_option(self.questions[0])))

        self.assertEqual(apply(state, Restart()), initial_state())

    def test_review_events_ignored_while_active(self):
        for event in (ReviewRequested(), ReviewNext(), ReviewPrevious(), ReviewJump(0)):
            with self.subTest(event=event):
                self.assertIs(apply(self.active, event), self.active)


class TestReviewTransitions(unittest.TestCase):
    """Test cases for reviewing a finished quiz."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions(3)
        self.finished = run_events(
            initial_state(),
            CountSelected(3),
            QuestionsLoaded(self.questions),
            AnswerSubmitted(TestFixtures.correct_option(self.questions[0])),
            FinishRequested(),
        )

    def test_review_starts_at_first_question(self):
        state = apply(self.finished, ReviewRequested())

        self.assertIs(state.phase, Phase.REVIEWING)
        self.assertEqual(state.current_index, 0)
        self.assertEqual(state.score, self.finished.score)
        self.assertEqual(state.recorded_answers, self.finished.recorded_answers)

    def test_review_navigation_is_clamped(self):
        state = apply(self.finished, ReviewRequested())

        self.assertEqual(apply(state, ReviewPrevious()).current_index, 0)
        state = run_events(state, ReviewNext(), ReviewNext(), ReviewNext(), ReviewNext())
        self.assertEqual(state.current_index, 2)
        state = apply(state, ReviewPrevious())
        self.assertEqual(state.current_index, 1)

    def test_review_jump(self):
        state = run_events(self.finished, ReviewRequested(), ReviewJump(2))

        self.assertEqual(state.current_index, 2)
        self.assertIsNone(state.answer_for(2))

    def test_review_jump_out_of_range(self):
        state = apply(self.finished, ReviewRequested())

        for bad in (-1, 3):
            with self.subTest(index=bad):
                with self.assertRaises(ContractViolationError):
                    apply(state, ReviewJump(bad))

    def test_review_does_not_change_score(self):
        state = run_events(self.finished, ReviewRequested(), ReviewNext(), ReviewJump(0))

        self.assertEqual(state.score, 1)
        self.assertEqual(len(state.recorded_answers), 1)

    def test_restart_from_review(self):
        state = apply(self.finished, ReviewRequested())

        self.assertEqual(apply(state, Restart()), initial_state())


class TestQuizScenarios(unittest.TestCase):
    """End-to-end event sequences through a five question quiz."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions(5)
        self.loaded = run_events(initial_state(), CountSelected(5), QuestionsLoaded(self.questions))

    def answer_four_then_miss(self):
        first_correct = TestFixtures.correct_option(self.questions[0])
        state = self.loaded
        for _ in range(4):
            state = apply(state, AnswerSubmitted(first_correct))
        return apply(state, AnswerSubmitted(TestFixtures.wrong_option(self.questions[4])))

    def test_loading_five_questions(self):
        self.assertIs(self.loaded.phase, Phase.ACTIVE)
        self.assertEqual(self.loaded.seconds_remaining, 150)
        self.assertEqual(self.loaded.current_index, 0)

    def test_four_correct_then_one_wrong(self):
        state = self.answer_four_then_miss()

        self.assertEqual(state.score, 4)
        self.assertIs(state.phase, Phase.FINISHED)
        self.assertEqual(len(state.recorded_answers), 5)

    def test_clock_runs_out_without_answers(self):
        state = self.loaded
        for _ in range(150):
            state = apply(state, TimerTick())

        self.assertIs(state.phase, Phase.FINISHED)
        self.assertEqual(state.recorded_answers, ())
        self.assertEqual(state.score, 0)
        self.assertEqual(state.seconds_remaining, 0)
        self.assertIs(apply(state, TimerTick()), state)

    def test_failed_load_ignores_answers_until_restart(self):
        state = run_events(initial_state(), CountSelected(3), LoadFailed())
        self.assertIs(state.phase, Phase.ERROR)

        self.assertIs(apply(state, AnswerSubmitted(AnswerOption("x", True))), state)
        self.assertEqual(apply(state, Restart()), initial_state())

    def test_review_navigation_after_finishing(self):
        state = run_events(
            self.answer_four_then_miss(), ReviewRequested(), ReviewNext(), ReviewNext(), ReviewPrevious()
        )
        self.assertEqual(state.current_index, 1)

        for _ in range(10):
            state = apply(state, ReviewNext())
        self.assertEqual(state.current_index, len(self.questions) - 1)


class TestPhaseEventSweep(unittest.TestCase):
    """Every event applied in every phase keeps the session invariants."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions(3)
        correct = TestFixtures.correct_option(self.questions[0])
        wrong = TestFixtures.wrong_option(self.questions[1])
        active = run_events(initial_state(), CountSelected(3), QuestionsLoaded(self.questions))
        answered = run_events(active, AnswerSubmitted(correct), AnswerSubmitted(wrong))
        finished = apply(answered, FinishRequested())
        self.states = {
            Phase.AWAITING_COUNT: initial_state(),
            Phase.LOADING: apply(initial_state(), CountSelected(3)),
            Phase.ACTIVE: answered,
            Phase.ERROR: run_events(initial_state(), CountSelected(3), LoadFailed()),
            Phase.FINISHED: finished,
            Phase.REVIEWING: run_events(finished, ReviewRequested(), ReviewNext()),
        }
        self.events = [
            CountSelected(2),
            QuestionsLoaded(self.questions),
            LoadFailed("down"),
            AnswerSubmitted(correct),
            TimerTick(),
            FinishRequested(),
            ReviewRequested(),
            ReviewPrevious(),
            ReviewNext(),
            ReviewJump(0),
            Restart(),
        ]
        # Phase in which each event type takes effect; Restart applies everywhere.
        self.valid_phase = {
            CountSelected: Phase.AWAITING_COUNT,
            QuestionsLoaded: Phase.LOADING,
            LoadFailed: Phase.LOADING,
            AnswerSubmitted: Phase.ACTIVE,
            TimerTick: Phase.ACTIVE,
            FinishRequested: Phase.ACTIVE,
            ReviewRequested: Phase.FINISHED,
            ReviewPrevious: Phase.REVIEWING,
            ReviewNext: Phase.REVIEWING,
            ReviewJump: Phase.REVIEWING,
        }

    def assert_invariants(self, state):
        self.assertLessEqual(len(state.recorded_answers), len(state.questions))
        self.assertEqual(state.score, sum(1 for answer in state.recorded_answers if answer.is_correct))
        self.assertTrue(0 <= state.current_index < max(1, len(state.questions)))
        if state.seconds_remaining is not None:
            self.assertGreaterEqual(state.seconds_remaining, 0)

    def test_every_phase_event_pair(self):
        for phase, state in self.states.items():
            self.assertIs(state.phase, phase)
            self.assert_invariants(state)
            for event in self.events:
                with self.subTest(phase=phase, event=event):
                    result = apply(state, event)
                    self.assert_invariants(result)
                    if isinstance(event, Restart):
                        self.assertEqual(result, initial_state())
                    elif self.valid_phase[type(event)] is not phase:
                        self.assertIs(result, state)
                    else:
                        self.assertIsNot(result, state)

    def test_finished_scoring_is_frozen(self):
        finished = self.states[Phase.FINISHED]

        for event in self.events[:-1]:
            with self.subTest(event=event):
                result = apply(finished, event)
                self.assertEqual(result.score, finished.score)
                self.assertEqual(result.recorded_answers, finished.recorded_answers)

    def test_invariants_hold_along_long_sequences(self):
        sequence = [CountSelected(3), QuestionsLoaded(self.questions)]
        sequence += [TimerTick()] * 5 + [AnswerSubmitted(TestFixtures.correct_option(q)) for q in self.questions]
        sequence += [TimerTick(), ReviewRequested(), ReviewNext(), ReviewJump(2), ReviewNext(), Restart()]
        sequence += [CountSelected(3), QuestionsLoaded(self.questions)] + [TimerTick()] * 90

        state = initial_state()
        for event in sequence:
            state = apply(state, event)
            self.assert_invariants(state)

        self.assertIs(state.phase, Phase.FINISHED)
        self.assertEqual(state.seconds_remaining, 0)


class TestNoOpIdentity(unittest.TestCase):
    """Ignored events return the very same state object."""

    def test_ignored_events_return_same_object(self):
        state = SessionState()
        for event in (TimerTick(), AnswerSubmitted(AnswerOption("a")), ReviewNext(), FinishRequested()):
            with self.subTest(event=event):
                self.assertIs(apply(state, event), state)

    def test_apply_does_not_mutate_input(self):
        state = initial_state()
        apply(state, CountSelected(4))

        self.assertIs(state.phase, Phase.AWAITING_COUNT)
        self.assertIsNone(state.requested_count)


if __name__ == '__main__':
    unittest.main()
