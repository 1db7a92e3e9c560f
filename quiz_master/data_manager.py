"""
Question providers: JSON quiz files on disk and a remote HTTP question service.
"""
import asyncio
import json
import os
import logging
import random
from typing import Any, Dict, List, Optional
from dataclasses import replace
from pathlib import Path

import requests

from .models import AnswerOption, Question


class QuestionProviderError(Exception):
    """Raised when a provider cannot produce questions for the requested count."""
    pass


def validate_question_payload(items: Any) -> List[str]:
    """
    Validate a list of raw question objects.

    Expected structure of each item:
    {
        "id": int,
        "questionText": str,
        "answerOptions": [
            {"answerText": str, "isCorrect": bool}
        ]
    }

    Args:
        items: Decoded JSON value to validate

    Returns:
        List of problems found; empty when the payload is valid
    """
    if not isinstance(items, list):
        return ["Questions must be a JSON array"]

    if not items:
        return ["Question array cannot be empty"]

    problems = []
    seen_ids = set()
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            problems.append(f"Question {i} must be an object")
            continue

        if "questionText" not in item:
            problems.append(f"Question {i} missing 'questionText' field")
        elif not isinstance(item["questionText"], str):
            problems.append(f"Question {i} 'questionText' field must be a string")

        if "id" in item and (not isinstance(item["id"], int) or isinstance(item["id"], bool)):
            problems.append(f"Question {i} 'id' field must be an integer")
        elif "id" in item:
            if item["id"] in seen_ids:
                problems.append(f"Question {i} repeats id {item['id']}")
            seen_ids.add(item["id"])

        options = item.get("answerOptions")
        if not isinstance(options, list) or not options:
            problems.append(f"Question {i} 'answerOptions' must be a non-empty array")
            continue

        for j, option in enumerate(options):
            if not isinstance(option, dict) or not isinstance(option.get("answerText"), str):
                problems.append(f"Question {i} option {j} must have a string 'answerText'")
            elif not isinstance(option.get("isCorrect", False), bool):
                problems.append(f"Question {i} option {j} 'isCorrect' must be a boolean")

    return problems


def parse_questions(items: List[dict], id_offset: int = 0) -> List[Question]:
    """
    Parse validated question objects into Question instances.

    Questions without an ``id`` are numbered from ``id_offset`` by position.
    """
    questions = []
    for position, item in enumerate(items):
        options = tuple(
            AnswerOption(text=option["answerText"], is_correct=option.get("isCorrect", False))
            for option in item["answerOptions"]
        )
        questions.append(Question(
            id=item.get("id", id_offset + position),
            text=item["questionText"],
            options=options
        ))
    return questions


class QuestionProvider:
    """Base class for asynchronous question sources."""

    async def fetch_questions(self, count: int) -> List[Question]:
        """
        Return exactly ``count`` questions.

        Raises:
            QuestionProviderError: If the questions cannot be produced
        """
        raise NotImplementedError


class JsonFileQuestionProvider(QuestionProvider):
    """Serves questions from a directory of JSON quiz files."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB limit

    SAMPLE_QUIZ = {
        "quiz": [
            {
                "id": 1,
                "questionText": "What is the capital of France?",
                "answerOptions": [
                    {"answerText": "Berlin", "isCorrect": False},
                    {"answerText": "Paris", "isCorrect": True},
                    {"answerText": "Madrid", "isCorrect": False},
                    {"answerText": "Rome", "isCorrect": False}
                ]
            },
            {
                "id": 2,
                "questionText": "What is 2 + 2?",
                "answerOptions": [
                    {"answerText": "3", "isCorrect": False},
                    {"answerText": "4", "isCorrect": True},
                    {"answerText": "5", "isCorrect": False}
                ]
            },
            {
                "id": 3,
                "questionText": "What programming language is this bot written in?",
                "answerOptions": [
                    {"answerText": "Python", "isCorrect": True},
                    {"answerText": "Rust", "isCorrect": False},
                    {"answerText": "Go", "isCorrect": False}
                ]
            }
        ]
    }

    def __init__(self, quiz_directory: str = "./quizzes/", random_order: bool = False):
        """
        Initialize the provider with a quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON quiz files
            random_order: Shuffle the bank before serving questions
        """
        self.quiz_directory = Path(quiz_directory)
        self.random_order = random_order
        self.question_bank: List[Question] = []
        self.loaded_files: Dict[str, int] = {}
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.sample_quiz_created = False
        self._loaded = False
        self.logger = logging.getLogger(__name__)

    def load_quiz_files(self) -> List[Question]:
        """
        Load all JSON files from the quiz directory into the question bank.

        Returns:
            The combined question bank
        """
        self.question_bank = []
        self.loaded_files.clear()
        self.load_errors.clear()
        self.sample_quiz_created = False
        self._loaded = True

        directory_result = self._ensure_quiz_directory()
        if not directory_result['success']:
            self.load_errors.append(directory_result['error'])
            return self.question_bank

        try:
            json_files = sorted(self.quiz_directory.glob("*.json"))
        except OSError as e:
            self.load_errors.append(f"System error scanning {self.quiz_directory}: {e}")
            return self.question_bank

        # If no files found, create sample quiz and provide guidance
        if not json_files:
            self.logger.warning(f"No JSON files found in {self.quiz_directory}")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self._create_sample_quiz()

        for json_file in json_files:
            load_result = self._load_quiz_file_safely(json_file)
            if not load_result['success']:
                self.load_errors.append(f"{json_file.name}: {load_result['error']}")

        if not self.loaded_files:
            self.logger.error("No quiz files could be loaded successfully")
            self.load_errors.append("All quiz files failed to load")
        else:
            self.logger.info(
                f"Loaded {len(self.question_bank)} questions from {len(self.loaded_files)} quiz files"
            )
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.question_bank

    def _ensure_quiz_directory(self) -> Dict[str, Any]:
        """
        Ensure the quiz directory exists and is readable.

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            if not self.quiz_directory.exists():
                self.quiz_directory.mkdir(parents=True, exist_ok=True)
                self.logger.info(f"Created quiz directory: {self.quiz_directory}")

            if not os.access(self.quiz_directory, os.R_OK):
                return {
                    'success': False,
                    'error': f"Permission denied: Cannot read from {self.quiz_directory}"
                }

            return {'success': True}

        except PermissionError:
            return {
                'success': False,
                'error': f"Permission denied: Cannot access {self.quiz_directory}"
            }
        except OSError as e:
            return {
                'success': False,
                'error': f"System error accessing {self.quiz_directory}: {e}"
            }

    def _load_quiz_file_safely(self, json_file: Path) -> Dict[str, Any]:
        """
        Load a single quiz file into the bank.

        Args:
            json_file: Path to the JSON file to load

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            file_size = json_file.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                             f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB"
                }

            with open(json_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {json_file}: {e}")
            return {'success': False, 'error': f"Invalid JSON: {e}"}
        except PermissionError:
            return {'success': False, 'error': "Permission denied"}
        except OSError as e:
            return {'success': False, 'error': f"System error: {e}"}

        items = data.get("quiz") if isinstance(data, dict) else data
        problems = validate_question_payload(items)
        if problems:
            self.logger.error(f"Invalid quiz structure in {json_file}: {problems[0]}")
            return {'success': False, 'error': problems[0]}

        questions = parse_questions(items, id_offset=len(self.question_bank))
        questions = self._assign_unique_ids(questions, json_file.stem)
        self.question_bank.extend(questions)
        self.loaded_files[json_file.stem] = len(questions)
        self.logger.info(f"Loaded quiz '{json_file.stem}' with {len(questions)} questions")
        return {'success': True}

    def _assign_unique_ids(self, questions: List[Question], source: str) -> List[Question]:
        """Renumber questions whose id is already taken by an earlier file."""
        taken = {question.id for question in self.question_bank}
        taken.update(question.id for question in questions)
        next_id = max(taken, default=0) + 1
        seen = {question.id for question in self.question_bank}
        result = []
        for question in questions:
            if question.id in seen:
                self.logger.warning(
                    f"Question id {question.id} in '{source}' is already used, renumbered to {next_id}"
                )
                question = replace(question, id=next_id)
                next_id += 1
            seen.add(question.id)
            result.append(question)
        return result

    def _create_sample_quiz(self) -> List[Question]:
        """
        Write a sample quiz file when the directory is empty and load it.

        Returns:
            The question bank holding the sample questions
        """
        sample_file_path = self.quiz_directory / "sample_quiz.json"
        try:
            if not sample_file_path.exists():
                with open(sample_file_path, 'w', encoding='utf-8') as f:
                    json.dump(self.SAMPLE_QUIZ, f, indent=2, ensure_ascii=False)
                self.logger.info(f"Created sample quiz file: {sample_file_path}")
        except OSError as e:
            self.logger.error(f"Failed to create sample quiz: {e}")
            self.load_errors.append(f"Failed to create sample quiz: {e}")

        self.question_bank = parse_questions(self.SAMPLE_QUIZ["quiz"])
        self.loaded_files["sample_quiz"] = len(self.question_bank)
        self.sample_quiz_created = True
        return self.question_bank

    async def fetch_questions(self, count: int) -> List[Question]:
        if not self._loaded:
            await asyncio.to_thread(self.load_quiz_files)

        if count > len(self.question_bank):
            raise QuestionProviderError(
                f"Requested {count} questions but only {len(self.question_bank)} are available"
            )

        selected = self.question_bank.copy()
        if self.random_order:
            random.shuffle(selected)
        return selected[:count]

    def get_question_count(self) -> int:
        return len(self.question_bank)

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_questions': len(self.question_bank),
            'loaded_files': dict(self.loaded_files),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'sample_created': self.sample_quiz_created,
            'quiz_directory': str(self.quiz_directory)
        }


class HttpQuestionProvider(QuestionProvider):
    """Fetches questions from a remote question service."""

    def __init__(self, base_url: str, timeout: float = 10.0, *, session: Optional[requests.Session] = None):
        self._endpoint = base_url.rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()
        self.logger = logging.getLogger(__name__)

    def _get_questions(self, count: int) -> List[Question]:
        url = f"{self._endpoint}/questions/{count}"
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            self.logger.warning("Question request failed url=%s error=%s", url, exc)
            raise QuestionProviderError(f"Question service request failed: {exc}") from exc
        except ValueError as exc:
            self.logger.warning("Question service returned invalid JSON url=%s", url)
            raise QuestionProviderError("Question service returned invalid JSON") from exc

        items = payload.get("quiz") if isinstance(payload, dict) else payload
        problems = validate_question_payload(items)
        if problems:
            raise QuestionProviderError(f"Malformed question payload: {problems[0]}")

        questions = parse_questions(items)
        if len(questions) != count:
            raise QuestionProviderError(
                f"Question service returned {len(questions)} questions, expected {count}"
            )
        self.logger.debug("Fetched %d questions from %s", len(questions), url)
        return questions

    async def fetch_questions(self, count: int) -> List[Question]:
        return await asyncio.to_thread(self._get_questions, count)


def create_question_provider(config_manager) -> QuestionProvider:
    """
    Build the question provider selected in configuration.

    Args:
        config_manager: ConfigManager holding the current settings

    Returns:
        A ready-to-use QuestionProvider
    """
    settings = config_manager.get_quiz_settings()
    if settings.provider == "http":
        if not settings.api_base_url:
            raise ValueError("HTTP question provider requires 'api_base_url'")
        return HttpQuestionProvider(settings.api_base_url, settings.request_timeout)

    provider = JsonFileQuestionProvider(config_manager.get_quiz_directory(), settings.random_order)
    provider.load_quiz_files()
    return provider
