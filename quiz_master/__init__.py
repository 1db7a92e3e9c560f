"""Quiz Master: a Discord bot that runs timed multiple-choice quizzes."""

__version__ = "1.0.0"
