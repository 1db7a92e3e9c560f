"""
Discord embeds and button views for each quiz session phase.

Nothing here changes session state: every button turns into a session event
that is handed to the ``dispatch`` coroutine.
"""
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import discord

from .session_machine import (
    SECONDS_PER_QUESTION,
    AnswerSubmitted,
    CountSelected,
    FinishRequested,
    Phase,
    Restart,
    ReviewJump,
    ReviewNext,
    ReviewPrevious,
    ReviewRequested,
    SessionState,
)

Dispatch = Callable[[Any], Awaitable[None]]

COLOR_OK = 0x00ff00
COLOR_WARN = 0xff6600
COLOR_ALERT = 0xff0000
COLOR_INFO = 0x3498db

MAX_LABEL_LENGTH = 80
MAX_SELECT_OPTIONS = 25


def format_time(seconds: Optional[int]) -> str:
    """Format seconds as MM:SS."""
    seconds = max(0, seconds or 0)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def progress_bar(done: int, total: int, width: int = 10) -> str:
    if total <= 0:
        return "▱" * width
    filled = round(width * done / total)
    return "▰" * filled + "▱" * (width - filled) + f" {done}/{total}"


def _truncate(text: str, limit: int = MAX_LABEL_LENGTH) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def _timer_style(seconds_remaining: Optional[int]) -> Tuple[int, str]:
    remaining = seconds_remaining or 0
    if remaining > 30:
        return COLOR_OK, "⏱️"
    if remaining > 10:
        return COLOR_WARN, "⚠️"
    return COLOR_ALERT, "🚨"


# Embeds

def build_count_embed(count_options: List[int]) -> discord.Embed:
    embed = discord.Embed(
        title="🎯 Welcome to Quiz Master",
        description="How many questions would you like to do?",
        color=COLOR_INFO
    )
    embed.add_field(
        name="⏱️ Timing",
        value=f"{SECONDS_PER_QUESTION} seconds per question, shared across the whole quiz",
        inline=False
    )
    embed.set_footer(text=f"Choose one of: {', '.join(map(str, count_options))}")
    return embed


def build_loading_embed(state: SessionState) -> discord.Embed:
    return discord.Embed(
        title="⏳ Loading questions...",
        description=f"Fetching {state.requested_count} questions",
        color=COLOR_INFO
    )


def build_error_embed(state: SessionState) -> discord.Embed:
    embed = discord.Embed(
        title="❌ Could not load questions",
        description="Something went wrong while fetching the questions.",
        color=COLOR_ALERT
    )
    embed.set_footer(text="Press Restart to try again")
    return embed


def build_question_embed(state: SessionState) -> discord.Embed:
    question = state.current_question
    color, timer_emoji = _timer_style(state.seconds_remaining)
    embed = discord.Embed(
        title=f"🎯 Question {state.current_index + 1}/{state.num_questions}",
        description=question.text if question else "",
        color=color
    )
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=format_time(state.seconds_remaining),
        inline=True
    )
    embed.add_field(name="🏆 Score", value=str(state.score), inline=True)
    embed.add_field(
        name="📊 Progress",
        value=progress_bar(len(state.recorded_answers), state.num_questions),
        inline=False
    )
    if (state.seconds_remaining or 0) <= 10:
        embed.set_footer(text="⚡ Time running out!")
    else:
        embed.set_footer(text="Pick an answer below")
    return embed


def build_results_embed(state: SessionState) -> discord.Embed:
    total = state.num_questions
    answered = len(state.recorded_answers)
    percent = round(100 * state.score / total) if total else 0
    embed = discord.Embed(
        title="🎉 Quiz Complete!",
        description=f"You scored **{state.score}** out of **{total}** ({percent}%)",
        color=COLOR_OK
    )
    if answered < total:
        embed.add_field(
            name="⏰ Time's up",
            value=f"You answered {answered} of {total} questions.",
            inline=False
        )
    embed.add_field(
        name="📊 Final Statistics",
        value=(
            f"Correct: {state.score}\n"
            f"Wrong: {answered - state.score}\n"
            f"Unanswered: {total - answered}\n"
            f"Time left: {format_time(state.seconds_remaining)}"
        ),
        inline=False
    )
    embed.set_footer(text="Review your answers or start again")
    return embed


def build_review_embed(state: SessionState) -> discord.Embed:
    question = state.current_question
    chosen = state.answer_for(state.current_index)
    correct = question.correct_option if question else None

    if chosen is None:
        color, verdict = COLOR_WARN, "⏰ Not answered"
    elif chosen.is_correct:
        color, verdict = COLOR_OK, f"✅ {chosen.text}"
    else:
        color, verdict = COLOR_ALERT, f"❌ {chosen.text}"

    embed = discord.Embed(
        title=f"🔍 Review {state.current_index + 1}/{state.num_questions}",
        description=question.text if question else "",
        color=color
    )
    if question is not None:
        lines = []
        for option in question.options:
            marker = "✅" if option.is_correct else ("❌" if option == chosen else "▫️")
            lines.append(f"{marker} {option.text}")
        embed.add_field(name="Options", value="\n".join(lines) or "-", inline=False)
    embed.add_field(name="Your answer", value=verdict, inline=True)
    embed.add_field(name="Correct answer", value=correct.text if correct else "-", inline=True)
    embed.set_footer(text=f"Final score: {state.score}/{state.num_questions}")
    return embed


# Views

class QuizView(discord.ui.View):
    """Base view that forwards button presses to a session as events."""

    def __init__(self, dispatch: Dispatch, owner_id: Optional[int] = None):
        super().__init__(timeout=None)
        self.dispatch = dispatch
        self.owner_id = owner_id

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if self.owner_id is None or interaction.user.id == self.owner_id:
            return True
        await interaction.response.send_message(
            "This quiz belongs to someone else. Use `/quiz` to start your own.",
            ephemeral=True
        )
        return False

    def add_event_button(
        self,
        label: str,
        event,
        style: discord.ButtonStyle = discord.ButtonStyle.secondary,
        row: Optional[int] = None,
        disabled: bool = False
    ) -> discord.ui.Button:
        button = discord.ui.Button(label=_truncate(label), style=style, row=row, disabled=disabled)

        async def callback(interaction: discord.Interaction):
            await interaction.response.defer()
            await self.dispatch(event)

        button.callback = callback
        self.add_item(button)
        return button


class CountSelectView(QuizView):
    def __init__(self, dispatch: Dispatch, count_options: List[int], owner_id: Optional[int] = None):
        super().__init__(dispatch, owner_id)
        for count in count_options:
            self.add_event_button(f"{count} questions", CountSelected(count), discord.ButtonStyle.primary)


class QuestionView(QuizView):
    def __init__(self, dispatch: Dispatch, state: SessionState, owner_id: Optional[int] = None):
        super().__init__(dispatch, owner_id)
        question = state.current_question
        options = question.options if question else ()
        # Rows 0-3 hold up to 20 options, row 4 is reserved for Finish.
        for position, option in enumerate(options[:20]):
            self.add_event_button(
                option.text, AnswerSubmitted(option), discord.ButtonStyle.primary, row=position // 5
            )
        self.add_event_button("Finish", FinishRequested(), discord.ButtonStyle.danger, row=4)


class ResultsView(QuizView):
    def __init__(self, dispatch: Dispatch, owner_id: Optional[int] = None):
        super().__init__(dispatch, owner_id)
        self.add_event_button("Review answers", ReviewRequested(), discord.ButtonStyle.primary)
        self.add_event_button("Restart", Restart(), discord.ButtonStyle.secondary)


class ReviewView(QuizView):
    def __init__(self, dispatch: Dispatch, state: SessionState, owner_id: Optional[int] = None):
        super().__init__(dispatch, owner_id)
        last_index = state.num_questions - 1
        self.add_event_button("◀ Previous", ReviewPrevious(), row=0, disabled=state.current_index <= 0)
        self.add_event_button("Next ▶", ReviewNext(), row=0, disabled=state.current_index >= last_index)
        self.add_event_button("Restart", Restart(), discord.ButtonStyle.danger, row=0)
        if state.num_questions > 1:
            self.add_item(self._build_jump_select(state))

    def _build_jump_select(self, state: SessionState) -> discord.ui.Select:
        # A select holds at most 25 options; show a window around the current question.
        total = state.num_questions
        start = max(0, min(state.current_index - MAX_SELECT_OPTIONS // 2, total - MAX_SELECT_OPTIONS))
        end = min(total, start + MAX_SELECT_OPTIONS)
        options = []
        for index in range(start, end):
            answer = state.answer_for(index)
            marker = "⏰" if answer is None else ("✅" if answer.is_correct else "❌")
            options.append(discord.SelectOption(
                label=_truncate(f"{index + 1}. {state.questions[index].text}", 100),
                value=str(index),
                emoji=marker,
                default=index == state.current_index
            ))
        select = discord.ui.Select(placeholder="Jump to question...", options=options, row=1)

        async def callback(interaction: discord.Interaction):
            await interaction.response.defer()
            await self.dispatch(ReviewJump(int(select.values[0])))

        select.callback = callback
        return select


class ErrorView(QuizView):
    def __init__(self, dispatch: Dispatch, owner_id: Optional[int] = None):
        super().__init__(dispatch, owner_id)
        self.add_event_button("Restart", Restart(), discord.ButtonStyle.danger)


def build_embed(state: SessionState, count_options: List[int]) -> discord.Embed:
    """Build the embed shown for a session state."""
    phase = state.phase
    if phase is Phase.AWAITING_COUNT:
        return build_count_embed(count_options)
    if phase is Phase.LOADING:
        return build_loading_embed(state)
    if phase is Phase.ERROR:
        return build_error_embed(state)
    if phase is Phase.ACTIVE:
        return build_question_embed(state)
    if phase is Phase.FINISHED:
        return build_results_embed(state)
    return build_review_embed(state)


def build_view(
    state: SessionState,
    dispatch: Dispatch,
    count_options: List[int],
    owner_id: Optional[int] = None
) -> Optional[discord.ui.View]:
    """Build the buttons for a session state; None while loading."""
    phase = state.phase
    if phase is Phase.AWAITING_COUNT:
        return CountSelectView(dispatch, count_options, owner_id)
    if phase is Phase.LOADING:
        return None
    if phase is Phase.ERROR:
        return ErrorView(dispatch, owner_id)
    if phase is Phase.ACTIVE:
        return QuestionView(dispatch, state, owner_id)
    if phase is Phase.FINISHED:
        return ResultsView(dispatch, owner_id)
    return ReviewView(dispatch, state, owner_id)


def build_screen(
    state: SessionState,
    dispatch: Dispatch,
    count_options: List[int],
    owner_id: Optional[int] = None
) -> Tuple[discord.Embed, Optional[discord.ui.View]]:
    """
    Build the embed and view for a session state.

    Args:
        state: Session state to render
        dispatch: Coroutine that queues an event for the session
        count_options: Question counts offered on the start screen
        owner_id: Discord user allowed to press the buttons, or None for anyone

    Returns:
        Tuple of (embed, view); the view is None while loading
    """
    return build_embed(state, count_options), build_view(state, dispatch, count_options, owner_id)
