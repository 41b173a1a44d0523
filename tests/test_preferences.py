import os
import sys
from datetime import datetime, timedelta

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from voicepipe.preferences import TTS_ENABLED_KEY, TTS_RATE_LIMITED_KEY, TTSPreferences
from voicepipe.storage import MemoryStore


def test_tts_disabled_by_default_and_toggles(day_clock):
    store = MemoryStore()
    prefs = TTSPreferences(store, clock=day_clock)

    assert prefs.is_tts_enabled() is False
    assert prefs.toggle_tts() is True
    assert store.get(TTS_ENABLED_KEY) == "true"
    assert prefs.toggle_tts() is False
    assert store.get(TTS_ENABLED_KEY) == "false"


def test_rate_limit_holds_for_the_rest_of_the_day(day_clock):
    store = MemoryStore()
    prefs = TTSPreferences(store, clock=day_clock)

    prefs.mark_rate_limited()
    day_clock.when = day_clock.when.replace(hour=23, minute=59)

    assert prefs.is_rate_limited() is True


def test_rate_limit_clears_on_next_day(day_clock):
    store = MemoryStore()
    prefs = TTSPreferences(store, clock=day_clock)
    prefs.mark_rate_limited()

    day_clock.when = day_clock.when + timedelta(days=1)

    assert prefs.is_rate_limited() is False
    assert store.get(TTS_RATE_LIMITED_KEY) is None


def test_unreadable_stamp_is_discarded(day_clock):
    store = MemoryStore({TTS_RATE_LIMITED_KEY: "not a date"})
    prefs = TTSPreferences(store, clock=day_clock)

    assert prefs.is_rate_limited() is False
    assert store.get(TTS_RATE_LIMITED_KEY) is None


def test_clear_rate_limit(day_clock):
    store = MemoryStore({TTS_RATE_LIMITED_KEY: datetime(2024, 3, 14, 8, 0).isoformat()})
    prefs = TTSPreferences(store, clock=day_clock)
    assert prefs.is_rate_limited() is True

    prefs.clear_rate_limit()

    assert prefs.is_rate_limited() is False
