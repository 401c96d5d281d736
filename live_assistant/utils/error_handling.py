"""
Structured error handling for the session engine.

Three classes of failure exist:
- per-chunk (a malformed audio payload): logged and dropped, the stream goes on
- tool-action (a bound action raised): always answered, never escalated
- fatal-session (device, connect, channel-reported error): session moves to ERROR
"""

import asyncio
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Callable, Dict, Any, List
from datetime import datetime

from .logging_config import get_logger


logger = get_logger("errors")


class SessionEngineError(Exception):
    """Base class for engine errors."""


class DecodeError(SessionEngineError, ValueError):
    """An audio payload could not be decoded into samples."""


class DeviceError(SessionEngineError):
    """An audio input or output device could not be acquired."""


class ChannelError(SessionEngineError):
    """The duplex channel failed to connect or reported a transport error."""


class InvalidTransitionError(SessionEngineError, ValueError):
    """A session status transition is not allowed from the current state."""


class ErrorSeverity(Enum):
    """Error severity levels."""
    WARNING = "warning"          # Log and continue (per-chunk)
    RECOVERABLE = "recoverable"  # Answered and contained (tool actions)
    FATAL = "fatal"              # Session must stop


@dataclass
class ComponentError:
    """Structured error information."""
    component: str
    severity: ErrorSeverity
    message: str
    exception: Optional[BaseException] = None
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())
    traceback_str: Optional[str] = None

    def __post_init__(self):
        """Capture traceback if exception provided."""
        if self.exception and not self.traceback_str:
            self.traceback_str = ''.join(
                traceback.format_exception(
                    type(self.exception),
                    self.exception,
                    self.exception.__traceback__
                )
            )


class ErrorHandler:
    """
    Centralized error bookkeeping.

    Features:
    - Severity-based logging
    - Bounded error history
    - Per-component / per-severity summary
    """

    def __init__(self, max_history: int = 100):
        self._error_log: List[ComponentError] = []
        self._max_history = max_history

    def handle_error(self, error: ComponentError) -> bool:
        """
        Record and log an error.

        Args:
            error: Error to handle

        Returns:
            True if the engine may continue, False if the error is fatal
        """
        self._error_log.append(error)
        if len(self._error_log) > self._max_history:
            self._error_log.pop(0)

        if error.severity == ErrorSeverity.WARNING:
            logger.warning(f"{error.component}: {error.message}" + (f" ({error.exception})" if error.exception else ""))
            return True
        if error.severity == ErrorSeverity.RECOVERABLE:
            logger.warning(f"{error.component}: {error.message} (contained)" + (f": {error.exception}" if error.exception else ""))
            return True

        logger.error(f"FATAL in {error.component}: {error.message}" + (f": {error.exception}" if error.exception else ""))
        if error.traceback_str:
            logger.debug(error.traceback_str)
        return False

    def get_error_history(self, component: Optional[str] = None) -> List[ComponentError]:
        """
        Get error history, optionally filtered by component.

        Args:
            component: Optional component name to filter by

        Returns:
            List of errors
        """
        if component:
            return [e for e in self._error_log if e.component == component]
        return self._error_log.copy()

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of errors."""
        summary = {
            'total_errors': len(self._error_log),
            'by_severity': {},
            'by_component': {}
        }

        for error in self._error_log:
            severity = error.severity.value
            summary['by_severity'][severity] = summary['by_severity'].get(severity, 0) + 1

            component = error.component
            summary['by_component'][component] = summary['by_component'].get(component, 0) + 1

        return summary


async def safe_cleanup(*cleanup_funcs: Callable) -> List[tuple]:
    """
    Run multiple cleanup functions, ensuring all run even if some fail.

    Accepts both plain callables and coroutine functions.

    Args:
        *cleanup_funcs: Cleanup functions to run, in order

    Returns:
        List of (function name, exception) for every step that failed
    """
    errors = []

    for func in cleanup_funcs:
        name = getattr(func, '__name__', repr(func))
        try:
            result = func()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            errors.append((name, e))
            logger.warning(f"Cleanup error in {name}: {e}")

    if errors:
        logger.warning(f"{len(errors)} cleanup errors occurred")

    return errors
