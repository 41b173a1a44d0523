"""
Persisted TTS preferences.

Two independent flags live in the key-value store:

- ``ai-tts-enabled``: whether replies are spoken automatically.
- ``ai-tts-rate-limited``: timestamp of the last TTS rate-limit refusal. The
  flag holds for the rest of that calendar day and is cleared the first time
  it is read on a later day.
"""
from datetime import datetime
from typing import Callable, Optional

from .logging_utils import setup_logger
from .storage import KeyValueStore

logger = setup_logger("voicepipe.preferences")

TTS_ENABLED_KEY = "ai-tts-enabled"
TTS_RATE_LIMITED_KEY = "ai-tts-rate-limited"


class TTSPreferences:
    """TTS-enabled toggle and the daily rate-limit flag."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self._clock = clock

    def is_tts_enabled(self) -> bool:
        return self.store.get(TTS_ENABLED_KEY) == "true"

    def set_tts_enabled(self, enabled: bool) -> None:
        self.store.set(TTS_ENABLED_KEY, "true" if enabled else "false")
        logger.info(f"TTS {'enabled' if enabled else 'disabled'}")

    def toggle_tts(self) -> bool:
        enabled = not self.is_tts_enabled()
        self.set_tts_enabled(enabled)
        return enabled

    def rate_limited_at(self) -> Optional[datetime]:
        stored = self.store.get(TTS_RATE_LIMITED_KEY)
        if not stored:
            return None
        try:
            return datetime.fromisoformat(stored)
        except ValueError:
            logger.warning(f"Discarding unreadable rate-limit stamp {stored!r}")
            self.store.remove(TTS_RATE_LIMITED_KEY)
            return None

    def is_rate_limited(self) -> bool:
        limited_at = self.rate_limited_at()
        if limited_at is None:
            return False
        if limited_at.date() == self._clock().date():
            return True
        self.store.remove(TTS_RATE_LIMITED_KEY)
        logger.info("TTS rate limit from a previous day cleared")
        return False

    def mark_rate_limited(self) -> None:
        self.store.set(TTS_RATE_LIMITED_KEY, self._clock().isoformat())
        logger.warning("TTS rate limit hit; speech disabled for the rest of the day")

    def clear_rate_limit(self) -> None:
        self.store.remove(TTS_RATE_LIMITED_KEY)


__all__ = ["TTSPreferences", "TTS_ENABLED_KEY", "TTS_RATE_LIMITED_KEY"]
