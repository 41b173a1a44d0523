import io
import os
import sys
import tempfile
from datetime import datetime

import numpy as np
import pytest
import soundfile as sf

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

os.environ.setdefault("VOICEPIPE_LOG_DIR", tempfile.mkdtemp(prefix="voicepipe-logs-"))


class FakeSource:
    """Microphone stand-in; tests push blocks through emit()."""

    def __init__(self, sample_rate, channels, on_block, on_error, fail=None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.on_block = on_block
        self.on_error = on_error
        self.fail = fail
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.fail is not None:
            raise self.fail
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def emit(self, block):
        self.on_block(np.asarray(block, dtype=np.float32).reshape(-1, self.channels))


class SourceFactory:
    def __init__(self, fail=None):
        self.fail = fail
        self.sources = []

    def __call__(self, sample_rate, channels, on_block, on_error):
        source = FakeSource(sample_rate, channels, on_block, on_error, fail=self.fail)
        self.sources.append(source)
        return source

    @property
    def last(self):
        return self.sources[-1]


class FakeTicker:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.callback()


class TickerFactory:
    def __init__(self):
        self.tickers = []

    def __call__(self, interval, callback):
        ticker = FakeTicker(interval, callback)
        self.tickers.append(ticker)
        return ticker

    @property
    def last(self):
        return self.tickers[-1]


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self):
        return self.timers[-1]


class FakeClock:
    """Monotonic clock in seconds, advanced by hand."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeAnalyser:
    """Analyser whose level the test sets directly."""

    def __init__(self):
        self.level = 0.0
        self.pushed = 0
        self.reset_calls = 0

    def push(self, samples):
        self.pushed += 1

    def mean_level(self):
        return self.level

    def reset(self):
        self.reset_calls += 1


class FakePlayer:
    def __init__(self, on_play=None):
        self.played = []
        self.interrupts = 0
        self.on_play = on_play
        self.cancel_flags = []

    def play(self, samples, sample_rate, cancelled=None):
        self.cancel_flags.append(cancelled)
        self.played.append((len(samples), sample_rate))
        if self.on_play is not None:
            self.on_play(len(self.played))
        return True

    def interrupt(self):
        self.interrupts += 1


class DayClock:
    """datetime.now replacement for the daily rate-limit flag."""

    def __init__(self, when):
        self.when = when

    def __call__(self):
        return self.when


def make_wav(frames=1600, sample_rate=16000, value=0.1):
    buf = io.BytesIO()
    sf.write(buf, np.full(frames, value, dtype=np.float32), sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


@pytest.fixture
def sources():
    return SourceFactory()


@pytest.fixture
def tickers():
    return TickerFactory()


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def analyser():
    return FakeAnalyser()


@pytest.fixture
def player():
    return FakePlayer()


@pytest.fixture
def day_clock():
    return DayClock(datetime(2024, 3, 14, 9, 30))


@pytest.fixture
def wav_bytes():
    return make_wav
