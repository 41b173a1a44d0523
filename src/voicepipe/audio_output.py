#!/usr/bin/env python3
"""
Interruptible speaker output over PortAudio (sounddevice).
"""
import os
import threading
from typing import Any, Optional

import numpy as np
try:
    import sounddevice as sd  # PortAudio bindings
except Exception:  # PortAudio missing; play() then raises PlaybackFailed
    sd = None  # type: ignore

from .error_handler import PlaybackFailed
from .logging_utils import setup_logger

logger = setup_logger("voicepipe.audio_output")


class AudioPlayer:
    """Plays one buffer at a time; interrupt() halts it from any thread."""

    def __init__(self, output_device: Any = None, block_sec: float = 0.05):
        self.output_device = output_device  # sd device index or name
        self.block_sec = block_sec
        self.current_stream: Optional[Any] = None
        self.is_playing = False
        self.interrupt_requested = False

        self._buffer = np.array([], dtype=np.float32)
        self._buffer_lock = threading.Lock()
        self._done = threading.Event()
        self._cancelled: Optional[threading.Event] = None

    def play(self, samples: np.ndarray, sample_rate: int, cancelled: Optional[threading.Event] = None) -> bool:
        """
        Play audio and block until it ends or is interrupted.

        Args:
            samples: Mono float samples
            sample_rate: Sample rate in Hz
            cancelled: Owner's cancel flag; once set, nothing more is played,
                even if it was set before this call marked itself playing

        Returns:
            bool: True if playback completed, False if interrupted
        """
        if os.environ.get("VOICEPIPE_NO_AUDIO", "0") == "1":
            logger.info("VOICEPIPE_NO_AUDIO=1 set; skipping audio playback")
            return True
        if sd is None:
            raise PlaybackFailed(
                "Audio output unavailable: PortAudio/sounddevice could not be loaded",
                component="audio_output",
                operation="play",
            )

        self.interrupt_requested = False
        self._done.clear()
        self._cancelled = cancelled
        with self._buffer_lock:
            self._buffer = np.asarray(samples, dtype=np.float32).reshape(-1).copy()
            self.is_playing = True

        # interrupt() is a no-op until is_playing is set, so a cancel that
        # landed before this point is only visible through the flag.
        if cancelled is not None and cancelled.is_set():
            logger.info("Playback cancelled before audio started")
            self.interrupt_requested = True
            self.is_playing = False
            with self._buffer_lock:
                self._buffer = np.array([], dtype=np.float32)
            return False

        expected_sec = max(3.0, min(120.0, len(self._buffer) / float(sample_rate) + 1.0))
        try:
            self.current_stream = sd.OutputStream(
                samplerate=sample_rate,
                channels=1,
                dtype=np.float32,
                blocksize=int(sample_rate * self.block_sec),
                callback=self._audio_callback,
                device=self.output_device,
            )
            with self.current_stream:
                if not self._done.wait(timeout=expected_sec):
                    logger.warning(f"Audio playback exceeded expected duration ({expected_sec:.1f}s); stopping")
                    self.interrupt_requested = True
        except PlaybackFailed:
            raise
        except Exception as e:
            raise PlaybackFailed(f"Audio playback failed: {e}", component="audio_output", operation="play") from e
        finally:
            self.is_playing = False
            self.current_stream = None

        return not self.interrupt_requested

    def _audio_callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        cancelled = self._cancelled
        if cancelled is not None and cancelled.is_set():
            self.interrupt_requested = True
        if self.interrupt_requested or not self.is_playing:
            outdata.fill(0)
            self._done.set()
            return

        with self._buffer_lock:
            if len(self._buffer) == 0:
                self.is_playing = False
                outdata.fill(0)
                self._done.set()
                return

            chunk = self._buffer[:frames]
            self._buffer = self._buffer[frames:]

        if len(chunk) < frames:
            padded = np.zeros(frames, dtype=np.float32)
            padded[:len(chunk)] = chunk
            chunk = padded
        outdata[:] = chunk.reshape(-1, 1)

    def interrupt(self) -> None:
        """Halt current playback immediately."""
        if not self.is_playing:
            return
        logger.info("Audio playback interruption requested")
        self.interrupt_requested = True
        self.is_playing = False
        with self._buffer_lock:
            self._buffer = np.array([], dtype=np.float32)
        self._done.set()

        stream = self.current_stream
        if stream is not None:
            try:
                stream.abort()
            except Exception as e:
                logger.error(f"Error stopping audio stream: {e}")

    def get_playback_status(self) -> dict:
        return {
            'is_playing': self.is_playing,
            'interrupt_requested': self.interrupt_requested,
            'buffer_size': len(self._buffer),
        }


__all__ = ["AudioPlayer"]
