"""
Countdown tick source for quiz sessions.
Produces one tick per interval while a session is active and logs the timer lifecycle.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(session_id: str, duration: int) -> None:
        """Log timer countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}, Duration {duration}s",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, total_duration: int) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Duration {total_duration}s",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_cleanup_start(session_id: str) -> float:
        """Log start of timer cleanup process."""
        cleanup_start_time = time.time()
        logger.debug(
            f"Timer lifecycle: CLEANUP_START - Session {session_id}",
            extra={
                'event_type': 'timer_cleanup_start',
                'session_id': session_id,
                'timestamp': cleanup_start_time
            }
        )
        return cleanup_start_time

    @staticmethod
    def log_timer_cleanup_complete(session_id: str, cleanup_start_time: float, success: bool) -> None:
        """Log completion of timer cleanup process."""
        cleanup_duration = time.time() - cleanup_start_time
        status = "SUCCESS" if success else "FAILED"
        logger.debug(
            f"Timer lifecycle: CLEANUP_COMPLETE - Session {session_id}, Status {status}, Duration {cleanup_duration:.3f}s",
            extra={
                'event_type': 'timer_cleanup_complete',
                'session_id': session_id,
                'cleanup_duration': cleanup_duration,
                'success': success,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class SessionTimer:
    """Emits one tick per interval for a quiz session until cancelled or exhausted."""

    CANCEL_TIMEOUT = 2.0

    def __init__(self, session_id: str = None, interval: float = 1.0):
        """
        Initialize the timer.

        Args:
            session_id: Identifier used in log records
            interval: Seconds between ticks
        """
        self._task: Optional[asyncio.Task] = None
        self._remaining_time = 0
        self._total_duration = 0
        self._is_cancelled = False
        self._session_id = session_id
        self._interval = interval

    async def start_countdown(
        self,
        duration: int,
        tick_callback: Callable[[], Awaitable[Any]]
    ) -> None:
        """
        Run a countdown, invoking ``tick_callback`` after every elapsed interval.

        Args:
            duration: Number of ticks to emit
            tick_callback: Awaited once per elapsed interval
        """
        self._remaining_time = duration
        self._total_duration = duration
        self._is_cancelled = False

        TimerLifecycleLogger.log_timer_start(self._session_id, duration)

        try:
            while self._remaining_time > 0 and not self._is_cancelled:
                await asyncio.sleep(self._interval)
                if self._is_cancelled:
                    break
                self._remaining_time -= 1
                TimerLifecycleLogger.log_timer_update(
                    self._session_id,
                    self._remaining_time,
                    self._total_duration
                )
                await tick_callback()

            TimerLifecycleLogger.log_timer_completion(
                self._session_id,
                "cancelled" if self._is_cancelled else "natural_expiry",
                self._total_duration
            )

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(
                self._session_id,
                "asyncio_cancelled",
                self._total_duration
            )
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "countdown_execution_error",
                str(e),
                "start_countdown"
            )
            raise

    def start(self, duration: int, tick_callback: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """
        Start the countdown as a background task.

        Raises:
            RuntimeError: If the timer is already running
        """
        if self.is_running:
            raise RuntimeError(f"Timer already running for session {self._session_id}")
        self._task = asyncio.create_task(self.start_countdown(duration, tick_callback))
        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id, "idle", "running", f"{duration} ticks scheduled"
        )
        return self._task

    async def cancel(self) -> bool:
        """
        Cancel the countdown and wait for the task to finish.

        Returns:
            True if a running task was cancelled, False if nothing was running
        """
        cleanup_start_time = TimerLifecycleLogger.log_timer_cleanup_start(self._session_id)
        self._is_cancelled = True

        task = self._task
        if task is None or task.done():
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id, "idle", "cancelled", "no active task"
            )
            return False

        if task is asyncio.current_task():
            # Cancelling from inside a tick callback; the loop exits on the flag.
            return True

        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.CANCEL_TIMEOUT)
        success = task in done
        if not success:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "cancellation_timeout",
                f"Timer task did not complete cancellation within {self.CANCEL_TIMEOUT}s",
                "cancel"
            )
        self._task = None
        TimerLifecycleLogger.log_timer_cleanup_complete(self._session_id, cleanup_start_time, success)
        return True

    @property
    def is_running(self) -> bool:
        """Check if the countdown task is still running."""
        return self._task is not None and not self._task.done()

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def remaining_time(self) -> int:
        """Get remaining ticks."""
        return self._remaining_time
