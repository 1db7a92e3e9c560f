"""
Core data models for the Quiz Master bot.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class AnswerOption:
    """A single selectable answer for a question."""
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice quiz question."""
    id: int
    text: str
    options: Tuple[AnswerOption, ...] = ()

    @property
    def correct_option(self) -> Optional[AnswerOption]:
        """Return the first option flagged as correct, if any."""
        for option in self.options:
            if option.is_correct:
                return option
        return None


@dataclass
class QuizSettings:
    """Configuration settings used when opening quiz sessions."""
    count_options: List[int] = field(default_factory=lambda: [5, 10, 15, 20])
    random_order: bool = False
    provider: str = "file"
    api_base_url: Optional[str] = None
    request_timeout: float = 10.0
