import os
import sys

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from voicepipe.error_handler import (
    ApiError,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    RateLimited,
    TTSRequestError,
    get_error_handler,
    handle_error,
    is_rate_limit_error,
)


def test_handler_records_history_and_counts():
    handler = ErrorHandler(max_history_size=2)
    for i in range(3):
        handler.handle_error(ValueError(f"bad {i}"), ErrorContext("playback", "play_chunks"), ErrorSeverity.LOW)

    stats = handler.get_error_stats()
    assert stats["total_errors"] == 3
    assert stats["recent_errors"] == 2
    assert stats["error_types"] == {"ValueError": 2}
    assert handler.error_history[-1]["message"] == "bad 2"


def test_custom_handler_is_used():
    handler = ErrorHandler()
    seen = []
    handler.register_error_handler(KeyError, lambda error, context, severity: seen.append(context.operation) or {})

    handler.handle_error(KeyError("x"), ErrorContext("assistant", "send_message"))

    assert seen == ["send_message"]
    assert handler.error_history == []


def test_handle_error_uses_shared_handler():
    before = get_error_handler().get_error_stats()["total_errors"]

    details = handle_error(RuntimeError("boom"), component="recorder", operation="start_vad",
                           severity=ErrorSeverity.MEDIUM, session_id="abc", metadata={"k": 1})

    assert details["context"]["session_id"] == "abc"
    assert details["context"]["metadata"] == {"k": 1}
    assert details["severity"] == "medium"
    assert get_error_handler().get_error_stats()["total_errors"] == before + 1


def test_rate_limit_detection():
    assert is_rate_limit_error(RateLimited("slow down"))
    assert is_rate_limit_error(TTSRequestError("Too many requests", status_code=429))
    assert is_rate_limit_error(RuntimeError("HTTP 429"))
    assert is_rate_limit_error(RuntimeError("rate_limit_exceeded"))
    assert is_rate_limit_error(ApiError("Rate limit reached"))
    assert not is_rate_limit_error(ApiError("Server error", status_code=500))


def test_exception_keeps_context():
    error = TTSRequestError("failed", status_code=502, component="api_client", operation="tts", chunk_index=3)

    assert error.status_code == 502
    assert error.component == "api_client"
    assert error.operation == "tts"
    assert error.context == {"chunk_index": 3}


def test_clear_error_history_resets_stats():
    handler = ErrorHandler()
    handler.handle_error(TTSRequestError("TTS request failed", status_code=500), ErrorContext("playback", "fetch"))

    handler.clear_error_history()

    stats = handler.get_error_stats()
    assert stats["total_errors"] == 0
    assert stats["recent_errors"] == 0
    assert handler.error_history == []
