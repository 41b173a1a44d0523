#!/usr/bin/env python3
"""
VAD-gated voice recorder.

A recording runs IDLE -> REQUESTING -> RECORDING -> STOPPING -> IDLE. While
recording, every captured block is buffered and fed to a frequency analyser;
a periodic tick reads the analyser level and asks the voice activity detector
whether the speaker has stopped. A ceiling timer bounds every recording.

A session ends in exactly one of two ways: a manual stop_recording(), which
returns the encoded blob to its caller, or an auto-stop (silence or ceiling),
which hands the blob to the on_auto_stop callback. Both paths claim the
session through the RECORDING -> STOPPING transition under one lock, so only
one of them ever finalizes it.
"""
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Union

import numpy as np

from .audio_input import SoundDeviceInput
from .encoding import AudioBlob, AudioFormat, encode_fragments, is_format_supported, select_audio_format
from .error_handler import (
    ErrorSeverity,
    PermissionDenied,
    RecordingFailed,
    VADUnavailable,
    VoicePipeException,
    handle_error,
)
from .logging_utils import setup_logger
from .scheduling import IntervalTicker, start_timer
from .vad import FrequencyAnalyser, VoiceActivityDetector

logger = setup_logger("voicepipe.recorder")

DEFAULT_SAMPLE_RATE = 16000
DEFAULT_MAX_RECORDING_DURATION_MS = 30000.0


class RecorderState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    RECORDING = "recording"
    STOPPING = "stopping"


@dataclass
class CaptureSession:
    """Everything one recording owns; released as a unit."""
    audio_format: AudioFormat
    started_at: float
    stream: Any = None
    analyser: Optional[FrequencyAnalyser] = None
    detector: Optional[VoiceActivityDetector] = None
    ticker: Any = None
    ceiling_timer: Any = None
    fragments: List[np.ndarray] = field(default_factory=list)
    auto_stop_triggered: bool = False
    stop_reason: Optional[str] = None
    released: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def mime_type(self) -> str:
        return self.audio_format.mime_type

    @property
    def silence_started_ms(self) -> Optional[float]:
        return self.detector.silence_started_ms if self.detector else None


class VoiceRecorder:
    """Microphone recorder that stops itself after sustained silence."""

    def __init__(
        self,
        on_auto_stop: Optional[Callable[[AudioBlob], None]] = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = 1,
        min_recording_duration_ms: float = 800.0,
        silence_timeout_ms: float = 1500.0,
        silence_threshold: float = 25.0,
        max_recording_duration_ms: float = DEFAULT_MAX_RECORDING_DURATION_MS,
        fft_size: int = 512,
        smoothing: float = 0.3,
        tick_interval: float = 1.0 / 60.0,
        format_preferences: Optional[Sequence[Union[str, AudioFormat]]] = None,
        input_device: Any = None,
        source_factory: Optional[Callable[..., Any]] = None,
        analyser_factory: Optional[Callable[[], FrequencyAnalyser]] = None,
        ticker_factory: Callable[[float, Callable[[], None]], Any] = IntervalTicker,
        timer_factory: Callable[[float, Callable[[], None]], Any] = start_timer,
        format_supported: Optional[Callable[[AudioFormat], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.on_auto_stop = on_auto_stop
        self.sample_rate = sample_rate
        self.channels = channels
        self.min_recording_duration_ms = min_recording_duration_ms
        self.silence_timeout_ms = silence_timeout_ms
        self.silence_threshold = silence_threshold
        self.max_recording_duration_ms = max_recording_duration_ms
        self.tick_interval = tick_interval
        self.format_preferences = format_preferences
        self.input_device = input_device

        self._source_factory = source_factory or self._default_source
        self._analyser_factory = analyser_factory or (lambda: FrequencyAnalyser(fft_size=fft_size, smoothing=smoothing))
        self._ticker_factory = ticker_factory
        self._timer_factory = timer_factory
        self._format_supported = format_supported or (lambda fmt: is_format_supported(fmt, self.sample_rate))
        self._clock = clock

        self._lock = threading.RLock()
        self._state = RecorderState.IDLE
        self._session: Optional[CaptureSession] = None
        self.error: Optional[str] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == RecorderState.RECORDING

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    def start_recording(self) -> bool:
        """Open the microphone and begin a VAD-monitored recording.

        Returns:
            bool: True once recording, False when the microphone was refused
        """
        with self._lock:
            previous = self._session
            self._session = None
        if previous is not None:
            logger.info("Releasing previous capture session before starting a new one")
            self._release(previous)

        with self._lock:
            self.error = None
            self._state = RecorderState.REQUESTING
            audio_format = select_audio_format(self.format_preferences, self._format_supported)
            session = CaptureSession(audio_format=audio_format, started_at=self._clock())
            self._session = session

        try:
            session.stream = self._source_factory(
                self.sample_rate,
                self.channels,
                lambda block: self._on_audio_block(session, block),
                lambda exc: self._on_stream_error(session, exc),
            )
            session.stream.start()
        except Exception as e:
            error = e if isinstance(e, PermissionDenied) else PermissionDenied(
                str(e) or "Microphone access denied", component="recorder", operation="start_recording"
            )
            logger.error(f"Could not start recording: {error}")
            self._release(session)
            with self._lock:
                if self._session is session:
                    self._session = None
                    self._state = RecorderState.IDLE
                self.error = str(error)
            return False

        self._start_vad(session)

        try:
            session.ceiling_timer = self._timer_factory(
                self.max_recording_duration_ms / 1000.0,
                lambda: self._auto_stop(session, "max_duration"),
            )
        except Exception as e:
            # Without the ceiling there is nothing bounding the session.
            logger.error(f"Could not arm recording ceiling timer: {e}")
            self._release(session)
            with self._lock:
                if self._session is session:
                    self._session = None
                    self._state = RecorderState.IDLE
                self.error = f"Recording failed: {e}"
            return False

        with self._lock:
            if self._session is not session:
                return False
            self._state = RecorderState.RECORDING
        logger.info(f"Recording started ({session.mime_type})")
        return True

    def stop_recording(self) -> Optional[AudioBlob]:
        """Stop a manual recording and return the encoded audio.

        Returns None when nothing is recording, or when the session failed.
        """
        with self._lock:
            session = self._session
            if session is None or not self._claim(session):
                return None
            session.auto_stop_triggered = False
            session.stop_reason = "manual"

        logger.info("Recording stopped manually")
        return self._finalize(session)

    def close(self) -> None:
        """Tear down any active session without producing audio."""
        with self._lock:
            session = self._session
            self._session = None
            self._state = RecorderState.IDLE
        if session is not None:
            self._release(session)
            logger.info("Capture session discarded")

    def __enter__(self) -> "VoiceRecorder":
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        return False

    # ------------------------------------------------------------------
    # Session internals
    # ------------------------------------------------------------------

    def _default_source(self, sample_rate, channels, on_block, on_error) -> SoundDeviceInput:
        return SoundDeviceInput(sample_rate, channels, on_block, on_error, device=self.input_device)

    def _start_vad(self, session: CaptureSession) -> None:
        try:
            session.analyser = self._analyser_factory()
            session.detector = VoiceActivityDetector(
                silence_threshold=self.silence_threshold,
                silence_timeout_ms=self.silence_timeout_ms,
                min_recording_duration_ms=self.min_recording_duration_ms,
            )
            session.detector.reset(session.started_at * 1000.0)
            session.ticker = self._ticker_factory(self.tick_interval, lambda: self._on_tick(session))
            session.ticker.start()
        except Exception as e:
            session.analyser = None
            session.detector = None
            session.ticker = None
            handle_error(
                VADUnavailable(f"Voice activity detection unavailable: {e}", component="recorder", operation="start_vad"),
                component="recorder",
                operation="start_vad",
                severity=ErrorSeverity.MEDIUM,
            )

    def _claim(self, session: CaptureSession) -> bool:
        """Move a live session from RECORDING to STOPPING; caller holds the lock."""
        if self._session is not session or self._state != RecorderState.RECORDING:
            return False
        self._state = RecorderState.STOPPING
        return True

    def _on_audio_block(self, session: CaptureSession, block: np.ndarray) -> None:
        with session.lock:
            session.fragments.append(block)
        analyser = session.analyser
        if analyser is not None:
            analyser.push(block)

    def _on_tick(self, session: CaptureSession) -> None:
        if session.released or self._session is not session or self._state != RecorderState.RECORDING:
            return
        analyser, detector = session.analyser, session.detector
        if analyser is None or detector is None:
            return
        if detector.update(analyser.mean_level(), self._clock() * 1000.0):
            self._auto_stop(session, "silence")

    def _auto_stop(self, session: CaptureSession, reason: str) -> None:
        with self._lock:
            if not self._claim(session):
                return
            session.auto_stop_triggered = True
            session.stop_reason = reason

        logger.info(f"Recording auto-stopped ({reason})")
        blob = self._finalize(session)
        if blob is None or self.on_auto_stop is None:
            return
        try:
            self.on_auto_stop(blob)
        except Exception as e:
            handle_error(e, component="recorder", operation="on_auto_stop", severity=ErrorSeverity.HIGH)

    def _on_stream_error(self, session: CaptureSession, error: Exception) -> None:
        with self._lock:
            if not self._claim(session):
                return
            session.stop_reason = "error"
        self._fail(session, RecordingFailed(f"Recording failed: {error}", component="recorder", operation="capture"))

    def _finalize(self, session: CaptureSession) -> Optional[AudioBlob]:
        """Release the session and encode what it captured."""
        self._release(session)
        with session.lock:
            fragments = list(session.fragments)
            session.fragments.clear()

        try:
            blob = encode_fragments(fragments, self.sample_rate, session.audio_format, self.channels)
        except RecordingFailed as e:
            self._fail(session, e)
            return None

        with self._lock:
            if self._session is session:
                self._session = None
                self._state = RecorderState.IDLE
        logger.info(f"Recording finalized: {blob.size} bytes {blob.mime_type}")
        return blob

    def _fail(self, session: CaptureSession, error: VoicePipeException) -> None:
        self._release(session)
        with session.lock:
            session.fragments.clear()
        with self._lock:
            self.error = str(error)
            if self._session is session:
                self._session = None
                self._state = RecorderState.IDLE
        handle_error(error, component="recorder", operation=error.operation, severity=ErrorSeverity.HIGH)

    def _release(self, session: CaptureSession) -> None:
        """Stop timers, VAD, and the microphone. Idempotent."""
        with session.lock:
            if session.released:
                return
            session.released = True

        if session.ticker is not None:
            try:
                session.ticker.cancel()
            except Exception as e:
                logger.warning(f"Error cancelling VAD ticker: {e}")
        if session.ceiling_timer is not None:
            try:
                session.ceiling_timer.cancel()
            except Exception as e:
                logger.warning(f"Error cancelling ceiling timer: {e}")
        if session.stream is not None:
            try:
                session.stream.stop()
                session.stream.close()
            except Exception as e:
                logger.warning(f"Error releasing input stream: {e}")
        if session.analyser is not None:
            session.analyser.reset()


__all__ = ["VoiceRecorder", "RecorderState", "CaptureSession"]
