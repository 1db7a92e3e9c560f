"""
Configuration manager for Quiz Master settings and parameters.
"""
import logging
from typing import Optional, Dict, Any, List
from pathlib import Path

from .models import QuizSettings


class ConfigManager:
    """Manages bot configuration settings and quiz parameters."""

    # Default configuration values
    DEFAULT_COUNT_OPTIONS = [5, 10, 15, 20]
    DEFAULT_RANDOM_ORDER = False
    DEFAULT_PROVIDER = "file"
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"
    DEFAULT_REQUEST_TIMEOUT = 10.0

    # Validation limits
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 50
    MAX_COUNT_OPTIONS = 5  # One Discord button row
    MIN_REQUEST_TIMEOUT = 1.0
    MAX_REQUEST_TIMEOUT = 60.0
    PROVIDERS = ("file", "http")

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings(count_options=list(self.DEFAULT_COUNT_OPTIONS))
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            Copy of the current QuizSettings
        """
        return QuizSettings(
            count_options=list(self._global_settings.count_options),
            random_order=self._global_settings.random_order,
            provider=self._global_settings.provider,
            api_base_url=self._global_settings.api_base_url,
            request_timeout=self._global_settings.request_timeout
        )

    def set_count_options(self, options: List[int]) -> Dict[str, Any]:
        """
        Set the question counts offered to users when a session starts.

        Args:
            options: List of positive question counts

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(options, list) or not options:
            error_msg = "Count options must be a non-empty list"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Provide at least one question count"
            }

        if len(options) > self.MAX_COUNT_OPTIONS:
            error_msg = f"At most {self.MAX_COUNT_OPTIONS} count options are supported"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many options: Maximum is {self.MAX_COUNT_OPTIONS}"
            }

        for count in options:
            # bool is an int subclass; reject it explicitly
            if not isinstance(count, int) or isinstance(count, bool):
                error_msg = f"Question count must be an integer, got {type(count).__name__}"
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
                }
            if count < self.MIN_QUESTION_COUNT or count > self.MAX_QUESTION_COUNT:
                error_msg = (
                    f"Question count {count} outside "
                    f"{self.MIN_QUESTION_COUNT}-{self.MAX_QUESTION_COUNT}"
                )
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': (
                        f"❌ Question counts must be between "
                        f"{self.MIN_QUESTION_COUNT} and {self.MAX_QUESTION_COUNT}"
                    )
                }

        self._global_settings.count_options = sorted(set(options))
        self.logger.info(f"Count options set to {self._global_settings.count_options}")
        return {
            'success': True,
            'message': f"Count options set to {self._global_settings.count_options}",
            'user_message': f"✅ Question counts: {', '.join(map(str, self._global_settings.count_options))}"
        }

    def get_count_options(self) -> List[int]:
        return list(self._global_settings.count_options)

    def set_random_order(self, random_order: bool) -> Dict[str, Any]:
        """
        Set whether file-backed questions are shuffled.

        Args:
            random_order: True to shuffle, False for file order

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(random_order, bool):
            error_msg = f"Random order must be a boolean, got {type(random_order).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid input: Expected true or false"
            }

        self._global_settings.random_order = random_order
        order_str = "random" if random_order else "sequential"
        self.logger.info(f"Question order set to {order_str}")
        return {
            'success': True,
            'message': f"Question order set to {order_str}",
            'user_message': f"✅ Questions will be served in {order_str} order"
        }

    def get_random_order(self) -> bool:
        return self._global_settings.random_order

    def set_provider(self, provider: str) -> Dict[str, Any]:
        """
        Select the question provider.

        Args:
            provider: Either 'file' or 'http'

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if provider not in self.PROVIDERS:
            error_msg = f"Unknown question provider: {provider!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Provider must be one of: {', '.join(self.PROVIDERS)}"
            }

        self._global_settings.provider = provider
        self.logger.info(f"Question provider set to {provider}")
        return {
            'success': True,
            'message': f"Question provider set to {provider}",
            'user_message': f"✅ Questions will be loaded via {provider}"
        }

    def set_api_base_url(self, url: Optional[str]) -> Dict[str, Any]:
        """
        Set the base URL of the remote question service.

        Args:
            url: http(s) URL, or None to clear it

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if url is not None and (not isinstance(url, str) or not url.startswith(("http://", "https://"))):
            error_msg = f"API base URL must start with http:// or https://, got {url!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid URL: it must start with http:// or https://"
            }

        self._global_settings.api_base_url = url
        self.logger.info(f"API base URL set to {url}")
        return {
            'success': True,
            'message': f"API base URL set to {url}",
            'user_message': f"✅ Question service: {url}"
        }

    def set_request_timeout(self, timeout: float) -> Dict[str, Any]:
        """
        Set the HTTP request timeout in seconds.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool):
            error_msg = f"Request timeout must be a number, got {type(timeout).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(timeout).__name__}"
            }

        if timeout < self.MIN_REQUEST_TIMEOUT or timeout > self.MAX_REQUEST_TIMEOUT:
            error_msg = (
                f"Request timeout must be between {self.MIN_REQUEST_TIMEOUT} "
                f"and {self.MAX_REQUEST_TIMEOUT} seconds"
            )
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._global_settings.request_timeout = float(timeout)
        self.logger.info(f"Request timeout set to {timeout} seconds")
        return {
            'success': True,
            'message': f"Request timeout set to {timeout} seconds",
            'user_message': f"✅ Request timeout set to {timeout} seconds"
        }

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory path for quiz files with validation.

        Args:
            directory: Path to quiz files directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(directory, str):
            error_msg = f"Quiz directory must be a string, got {type(directory).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(directory).__name__}"
            }

        if not directory.strip():
            error_msg = "Quiz directory cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Directory path cannot be empty"
            }

        try:
            normalized_path = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid directory path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {directory}"
            }

        # Check if path is reasonable (not system directories)
        system_dirs = ['/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files']
        if any(normalized_path.startswith(sys_dir) for sys_dir in system_dirs):
            error_msg = f"Cannot use system directory: {normalized_path}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Cannot use system directory: {directory}"
            }

        self._quiz_directory = normalized_path
        self.logger.info(f"Quiz directory set to {normalized_path}")
        return {
            'success': True,
            'message': f"Quiz directory set to {normalized_path}",
            'user_message': f"✅ Quiz directory set to {normalized_path}"
        }

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a loaded config.json.

        Invalid values are logged and skipped so the defaults stay in effect.

        Args:
            config: Full configuration dictionary

        Returns:
            List of error messages for settings that were rejected
        """
        quiz_config = config.get('quiz', {}) if config else {}
        errors = []

        setters = [
            ('count_options', self.set_count_options),
            ('random_order', self.set_random_order),
            ('provider', self.set_provider),
            ('quiz_directory', self.set_quiz_directory),
            ('api_base_url', self.set_api_base_url),
            ('request_timeout', self.set_request_timeout),
        ]
        for key, setter in setters:
            if key not in quiz_config:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} rejected settings")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            count_options=list(self.DEFAULT_COUNT_OPTIONS),
            random_order=self.DEFAULT_RANDOM_ORDER,
            provider=self.DEFAULT_PROVIDER,
            api_base_url=None,
            request_timeout=self.DEFAULT_REQUEST_TIMEOUT
        )
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        if not self._global_settings.count_options:
            validation_result["valid"] = False
            validation_result["issues"].append("No question count options configured")

        if self._global_settings.provider not in self.PROVIDERS:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid question provider: {self._global_settings.provider}"
            )

        if self._global_settings.provider == "http" and not self._global_settings.api_base_url:
            validation_result["valid"] = False
            validation_result["issues"].append("HTTP provider selected but no API base URL set")

        if not isinstance(self._quiz_directory, str) or not self._quiz_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid quiz directory: {self._quiz_directory}"
            )

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        order_str = "random" if settings.random_order else "sequential"
        source_str = (
            settings.api_base_url if settings.provider == "http" else self._quiz_directory
        )

        return (
            f"Quiz Settings:\n"
            f"• Question counts: {', '.join(map(str, settings.count_options))}\n"
            f"• Order: {order_str}\n"
            f"• Provider: {settings.provider} ({source_str})"
        )
