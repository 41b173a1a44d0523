"""
voicepipe error taxonomy and centralized handling of recoverable errors.

Recoverable failures (a skipped chunk, a degraded VAD) are routed through
handle_error() so they are logged and counted in one place; the pipeline then
carries on with the next unit of work.
"""
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from .logging_utils import setup_logger

logger = setup_logger("voicepipe.error_handler")

RATE_LIMIT_MARKERS = ("429", "rate_limit", "Rate limit")


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for error tracking"""
    component: str
    operation: str
    session_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)


class ErrorHandler:
    """Centralized error handling and reporting system"""

    def __init__(self, max_history_size: int = 1000):
        self.error_count = 0
        self.error_history: List[Dict[str, Any]] = []
        self.max_history_size = max_history_size
        self.error_handlers: Dict[Type[Exception], Callable] = {}

    def register_error_handler(self, exception_type: Type[Exception], handler: Callable) -> None:
        """Register a custom error handler for a specific exception type"""
        self.error_handlers[exception_type] = handler

    def handle_error(self, error: Exception, context: ErrorContext, severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> Dict[str, Any]:
        """Handle an error with context and severity"""
        error_id = f"ERR_{int(time.time() * 1000000)}"
        self.error_count += 1

        error_details = {
            'error_id': error_id,
            'type': error.__class__.__name__,
            'message': str(error),
            'traceback': ''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            'context': {
                'component': context.component,
                'operation': context.operation,
                'session_id': context.session_id,
                'metadata': context.metadata
            },
            'severity': severity.value,
            'timestamp': context.timestamp.isoformat(),
            'count': self.error_count
        }

        if error.__class__ in self.error_handlers:
            try:
                return self.error_handlers[error.__class__](error, context, severity)
            except Exception as handler_error:
                logger.error(f"Error in custom handler for {error.__class__.__name__}: {handler_error}")

        self._log_error(error_details, severity)
        self._add_to_history(error_details)
        return error_details

    def _log_error(self, error_details: Dict[str, Any], severity: ErrorSeverity) -> None:
        """Log error with appropriate level"""
        log_message = (
            f"[{error_details['error_id']}] {error_details['context']['component']}."
            f"{error_details['context']['operation']} {error_details['type']}: {error_details['message']}"
        )

        if severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message, extra={'error_details': error_details})
        elif severity == ErrorSeverity.HIGH:
            logger.error(log_message, extra={'error_details': error_details})
        elif severity == ErrorSeverity.MEDIUM:
            logger.warning(log_message, extra={'error_details': error_details})
        else:
            logger.info(log_message, extra={'error_details': error_details})

    def _add_to_history(self, error_details: Dict[str, Any]) -> None:
        """Add error to history, removing old entries if needed"""
        self.error_history.append(error_details)
        if len(self.error_history) > self.max_history_size:
            self.error_history = self.error_history[-self.max_history_size:]

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics"""
        return {
            'total_errors': self.error_count,
            'recent_errors': len(self.error_history),
            'error_types': self._get_error_type_counts()
        }

    def _get_error_type_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for error in self.error_history[-100:]:
            error_type = error['type']
            counts[error_type] = counts.get(error_type, 0) + 1
        return counts

    def clear_error_history(self) -> None:
        """Clear error history"""
        self.error_history.clear()
        self.error_count = 0


def get_error_handler() -> ErrorHandler:
    """Get or create error handler instance"""
    if not hasattr(get_error_handler, '_instance'):
        get_error_handler._instance = ErrorHandler()
    return get_error_handler._instance


def handle_error(error: Exception, component: str, operation: str, severity: ErrorSeverity = ErrorSeverity.MEDIUM, **context_kwargs) -> Dict[str, Any]:
    """Convenience function to handle errors"""
    context = ErrorContext(component=component, operation=operation, **context_kwargs)
    return get_error_handler().handle_error(error, context, severity)


class VoicePipeException(Exception):
    """Base exception for voicepipe-specific errors"""

    def __init__(self, message: str, component: str = "unknown", operation: str = "unknown", **kwargs):
        super().__init__(message)
        self.component = component
        self.operation = operation
        self.context = kwargs


class PermissionDenied(VoicePipeException):
    """Microphone access was refused or no input device could be opened"""
    pass


class RecordingFailed(VoicePipeException):
    """The capture stream or the encoder faulted mid-session"""
    pass


class VADUnavailable(VoicePipeException):
    """Voice activity detection could not be set up; ceiling timer only"""
    pass


class EmptyAudioResponse(VoicePipeException):
    """TTS returned no usable audio for a chunk"""
    pass


class PlaybackFailed(VoicePipeException):
    """A chunk could not be decoded or played"""
    pass


class RateLimited(VoicePipeException):
    """The TTS service refused the request for rate-limit reasons"""
    pass


class ApiError(VoicePipeException):
    """A request to the AI API failed"""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class TTSRequestError(ApiError):
    pass


class SpeechToTextError(ApiError):
    pass


class ConfigurationError(VoicePipeException):
    """Configuration-related errors"""
    pass


class ValidationError(VoicePipeException):
    """Input validation errors"""
    pass


def is_rate_limit_error(error: BaseException) -> bool:
    """True when an error signals an HTTP 429 / rate-limit refusal."""
    if isinstance(error, RateLimited):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error)
    return any(marker in message for marker in RATE_LIMIT_MARKERS)
