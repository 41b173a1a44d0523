#!/usr/bin/env python3
"""
Microphone capture over PortAudio (sounddevice).
"""
from typing import Any, Callable, Optional

import numpy as np
try:
    import sounddevice as sd  # PortAudio bindings
except Exception:  # PortAudio missing; opening a source then fails with PermissionDenied
    sd = None  # type: ignore

from .error_handler import PermissionDenied
from .logging_utils import setup_logger

logger = setup_logger("voicepipe.audio_input")

BLOCK_SEC = 0.03


class SoundDeviceInput:
    """Input stream that hands each captured block to ``on_block``.

    ``on_error`` is called when the stream ends without stop() having been
    requested, which is how PortAudio reports a lost or revoked device.
    """

    def __init__(
        self,
        sample_rate: int,
        channels: int,
        on_block: Callable[[np.ndarray], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        device: Any = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.on_block = on_block
        self.on_error = on_error
        self.device = device
        self._stream = None
        self._stopping = False

    def start(self) -> None:
        if sd is None:
            raise PermissionDenied(
                "Audio input unavailable: PortAudio/sounddevice could not be loaded",
                component="audio_input",
                operation="start",
            )
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=int(self.sample_rate * BLOCK_SEC),
                device=self.device,
                callback=self._callback,
                finished_callback=self._finished,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise PermissionDenied(
                f"Microphone access denied: {e}",
                component="audio_input",
                operation="start",
            ) from e
        logger.info(f"Audio input stream started ({self.sample_rate} Hz, {self.channels} ch)")

    def _callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.debug(f"Input stream status: {status}")
        self.on_block(indata.copy())

    def _finished(self) -> None:
        if not self._stopping and self.on_error is not None:
            self.on_error(RuntimeError("Input stream ended unexpectedly"))

    def stop(self) -> None:
        self._stopping = True
        if self._stream is None:
            return
        try:
            self._stream.stop()
        except Exception as e:
            logger.error(f"Error stopping input stream: {e}")

    def close(self) -> None:
        self._stopping = True
        if self._stream is None:
            return
        try:
            self._stream.close()
        except Exception as e:
            logger.error(f"Error closing input stream: {e}")
        finally:
            self._stream = None


__all__ = ["SoundDeviceInput"]
