"""
Input validation before text and audio leave the process.
"""
import re
from typing import Optional

from .encoding import AudioBlob
from .error_handler import ValidationError
from .logging_utils import setup_logger

logger = setup_logger("voicepipe.validation")

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')


class InputValidator:
    """Centralized input validation and sanitization"""

    def __init__(self):
        self.MAX_TEXT_LENGTH = 10000
        self.MAX_AUDIO_SIZE = 25 * 1024 * 1024  # 25MB

    def validate_text_input(self, text: str, max_length: Optional[int] = None) -> str:
        """Validate and sanitize text input"""
        if not isinstance(text, str):
            raise ValidationError("Input must be a string", component="validation", operation="validate_text_input")

        if not text.strip():
            raise ValidationError("Input cannot be empty", component="validation", operation="validate_text_input")

        if max_length is None:
            max_length = self.MAX_TEXT_LENGTH

        if len(text) > max_length:
            raise ValidationError(
                f"Input exceeds maximum length of {max_length} characters",
                component="validation",
                operation="validate_text_input",
            )

        # Remove control characters except newlines and tabs
        return _CONTROL_CHARS.sub('', text).strip()

    def validate_audio_blob(self, blob: AudioBlob) -> AudioBlob:
        """Reject empty or oversized recordings before upload"""
        if not isinstance(blob, AudioBlob):
            raise ValidationError("Audio must be an AudioBlob", component="validation", operation="validate_audio_blob")
        if blob.size == 0:
            raise ValidationError("Audio recording is empty", component="validation", operation="validate_audio_blob")
        if blob.size > self.MAX_AUDIO_SIZE:
            raise ValidationError(
                f"Audio recording exceeds {self.MAX_AUDIO_SIZE // (1024 * 1024)}MB",
                component="validation",
                operation="validate_audio_blob",
            )
        return blob


_validator = InputValidator()


def validate_chat_message(text: str) -> str:
    return _validator.validate_text_input(text)


def validate_audio_blob(blob: AudioBlob) -> AudioBlob:
    return _validator.validate_audio_blob(blob)


__all__ = ["InputValidator", "validate_chat_message", "validate_audio_blob"]
