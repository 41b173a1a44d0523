"""
Voice activity detection for auto-stopping a recording.

FrequencyAnalyser turns the most recent window of microphone samples into a
0-255 spectrum, the same scale a browser analyser node reports, and
VoiceActivityDetector decides from the mean of that spectrum when the
speaker has gone quiet for long enough to stop.
"""
import threading
from typing import Optional

import numpy as np

DEFAULT_FFT_SIZE = 512
DEFAULT_SMOOTHING = 0.3
DEFAULT_MIN_DECIBELS = -100.0
DEFAULT_MAX_DECIBELS = -30.0

DEFAULT_SILENCE_THRESHOLD = 25.0
DEFAULT_SILENCE_TIMEOUT_MS = 1500.0
DEFAULT_MIN_RECORDING_DURATION_MS = 800.0


class FrequencyAnalyser:
    """Smoothed byte-scaled magnitude spectrum over a sliding sample window.

    push() is called from the audio thread and byte_frequency_data() from the
    tick thread, so the window is guarded by a lock.
    """

    def __init__(
        self,
        fft_size: int = DEFAULT_FFT_SIZE,
        smoothing: float = DEFAULT_SMOOTHING,
        min_decibels: float = DEFAULT_MIN_DECIBELS,
        max_decibels: float = DEFAULT_MAX_DECIBELS,
    ):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be in [0, 1)")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = np.blackman(fft_size).astype(np.float32)
        self._samples = np.zeros(fft_size, dtype=np.float32)
        self._previous = np.zeros(fft_size // 2, dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, samples: np.ndarray) -> None:
        """Append samples (any shape; channels are averaged) to the window."""
        block = np.asarray(samples, dtype=np.float32)
        if block.ndim > 1:
            block = block.mean(axis=1)
        block = block.ravel()
        if block.size == 0:
            return

        with self._lock:
            if block.size >= self.fft_size:
                self._samples[:] = block[-self.fft_size:]
            else:
                self._samples = np.roll(self._samples, -block.size)
                self._samples[-block.size:] = block

    def byte_frequency_data(self) -> np.ndarray:
        """Current spectrum as ``fft_size // 2`` unsigned bytes."""
        with self._lock:
            frame = self._samples * self._window

        magnitude = np.abs(np.fft.rfft(frame))[: self.frequency_bin_count] / self.fft_size
        smoothed = self.smoothing * self._previous + (1.0 - self.smoothing) * magnitude
        self._previous = smoothed

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(smoothed)
        scaled = 255.0 * (decibels - self.min_decibels) / (self.max_decibels - self.min_decibels)
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def mean_level(self) -> float:
        """Mean amplitude of the spectrum on the 0-255 scale."""
        return float(np.mean(self.byte_frequency_data()))

    def reset(self) -> None:
        with self._lock:
            self._samples.fill(0.0)
        self._previous.fill(0.0)


class VoiceActivityDetector:
    """Decides when sustained silence should end a recording.

    Times are milliseconds on any monotonic scale. Nothing fires during the
    first ``min_recording_duration_ms`` so the start of an utterance is never
    clipped; after that, ``silence_timeout_ms`` of continuous sub-threshold
    level fires exactly once.
    """

    def __init__(
        self,
        silence_threshold: float = DEFAULT_SILENCE_THRESHOLD,
        silence_timeout_ms: float = DEFAULT_SILENCE_TIMEOUT_MS,
        min_recording_duration_ms: float = DEFAULT_MIN_RECORDING_DURATION_MS,
    ):
        self.silence_threshold = silence_threshold
        self.silence_timeout_ms = silence_timeout_ms
        self.min_recording_duration_ms = min_recording_duration_ms

        self.started_ms: float = 0.0
        self.silence_started_ms: Optional[float] = None
        self.triggered = False

    def reset(self, start_ms: float) -> None:
        self.started_ms = start_ms
        self.silence_started_ms = None
        self.triggered = False

    def update(self, level: float, now_ms: float) -> bool:
        """Feed one level sample; True on the single tick that should auto-stop."""
        if self.triggered:
            return False
        if now_ms - self.started_ms < self.min_recording_duration_ms:
            return False

        if level >= self.silence_threshold:
            self.silence_started_ms = None
            return False

        if self.silence_started_ms is None:
            self.silence_started_ms = now_ms
        if now_ms - self.silence_started_ms >= self.silence_timeout_ms:
            self.triggered = True
            return True
        return False


__all__ = ["FrequencyAnalyser", "VoiceActivityDetector"]
