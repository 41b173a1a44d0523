import os
import sys
import threading
import types

import numpy as np
import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from voicepipe import audio_input, audio_output
from voicepipe.audio_input import SoundDeviceInput
from voicepipe.audio_output import AudioPlayer
from voicepipe.error_handler import PermissionDenied, PlaybackFailed


class FakeOutputStream:
    """Drains the player's callback synchronously when entered."""

    instances = []

    def __init__(self, samplerate, channels, dtype, blocksize, callback, device):
        self.samplerate = samplerate
        self.blocksize = blocksize
        self.callback = callback
        self.device = device
        self.blocks = []
        self.aborted = False
        FakeOutputStream.instances.append(self)

    def __enter__(self):
        for _ in range(1000):
            outdata = np.ones((self.blocksize, 1), dtype=np.float32)
            self.callback(outdata, self.blocksize, None, None)
            self.blocks.append(outdata.copy())
            if not self.callback.__self__.is_playing:
                break
        return self

    def __exit__(self, *exc):
        return False

    def abort(self):
        self.aborted = True


class FakeInputStream:
    def __init__(self, samplerate, channels, dtype, blocksize, device, callback, finished_callback):
        self.samplerate = samplerate
        self.channels = channels
        self.callback = callback
        self.finished_callback = finished_callback
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.finished_callback()

    def close(self):
        self.closed = True


@pytest.fixture
def fake_sd(monkeypatch):
    fake = types.SimpleNamespace(OutputStream=FakeOutputStream, InputStream=FakeInputStream)
    monkeypatch.setattr(audio_output, "sd", fake)
    monkeypatch.setattr(audio_input, "sd", fake)
    monkeypatch.delenv("VOICEPIPE_NO_AUDIO", raising=False)
    FakeOutputStream.instances.clear()
    return fake


def test_player_writes_samples_then_silence(fake_sd):
    player = AudioPlayer(block_sec=0.01)
    samples = np.full(250, 0.5, dtype=np.float32)

    assert player.play(samples, 16000) is True

    stream = FakeOutputStream.instances[0]
    written = np.concatenate(stream.blocks).reshape(-1)
    assert stream.blocksize == 160
    assert np.allclose(written[:250], 0.5)
    assert np.allclose(written[250:], 0.0)
    assert player.is_playing is False


def test_player_skips_audio_when_disabled(monkeypatch):
    monkeypatch.setenv("VOICEPIPE_NO_AUDIO", "1")
    monkeypatch.setattr(audio_output, "sd", None)

    assert AudioPlayer().play(np.zeros(10, dtype=np.float32), 16000) is True


def test_player_without_portaudio_raises(monkeypatch):
    monkeypatch.delenv("VOICEPIPE_NO_AUDIO", raising=False)
    monkeypatch.setattr(audio_output, "sd", None)

    with pytest.raises(PlaybackFailed):
        AudioPlayer().play(np.zeros(10, dtype=np.float32), 16000)


def test_player_stream_failure_raises(monkeypatch):
    def broken_stream(**kwargs):
        raise OSError("no output device")

    monkeypatch.delenv("VOICEPIPE_NO_AUDIO", raising=False)
    monkeypatch.setattr(audio_output, "sd", types.SimpleNamespace(OutputStream=broken_stream))

    with pytest.raises(PlaybackFailed, match="no output device"):
        AudioPlayer().play(np.zeros(10, dtype=np.float32), 16000)


def test_interrupt_is_noop_when_idle():
    player = AudioPlayer()
    player.interrupt()
    assert player.get_playback_status()["interrupt_requested"] is False


def test_input_delivers_blocks_and_reports_lost_device(fake_sd):
    blocks, errors = [], []
    source = SoundDeviceInput(16000, 1, blocks.append, errors.append)
    source.start()

    stream = source._stream
    stream.callback(np.full((480, 1), 0.2, dtype=np.float32), 480, None, None)
    stream.finished_callback()

    assert stream.started
    assert len(blocks) == 1 and blocks[0].shape == (480, 1)
    assert len(errors) == 1


def test_input_requested_stop_is_not_an_error(fake_sd):
    errors = []
    source = SoundDeviceInput(16000, 1, lambda block: None, errors.append)
    source.start()
    stream = source._stream

    source.stop()
    source.close()

    assert errors == []
    assert stream.closed


def test_input_without_portaudio_is_denied(monkeypatch):
    monkeypatch.setattr(audio_input, "sd", None)

    with pytest.raises(PermissionDenied):
        SoundDeviceInput(16000, 1, lambda block: None).start()


def test_input_open_failure_is_denied(monkeypatch):
    def refused(**kwargs):
        raise OSError("Permission denied")

    monkeypatch.setattr(audio_input, "sd", types.SimpleNamespace(InputStream=refused))

    with pytest.raises(PermissionDenied, match="Permission denied"):
        SoundDeviceInput(16000, 1, lambda block: None).start()


def test_player_honours_cancel_raised_before_start(fake_sd):
    player = AudioPlayer(block_sec=0.01)
    cancelled = threading.Event()
    cancelled.set()
    player.interrupt()

    assert player.play(np.full(250, 0.5, dtype=np.float32), 16000, cancelled=cancelled) is False
    assert FakeOutputStream.instances == []
    assert player.is_playing is False


def test_player_stops_when_cancelled_mid_stream(fake_sd):
    cancelled = threading.Event()

    class CancelAfterFirstBlock(AudioPlayer):
        def _audio_callback(self, outdata, frames, time_info, status):
            super()._audio_callback(outdata, frames, time_info, status)
            cancelled.set()

    player = CancelAfterFirstBlock(block_sec=0.01)

    assert player.play(np.full(1600, 0.5, dtype=np.float32), 16000, cancelled=cancelled) is False
    written = np.concatenate(FakeOutputStream.instances[0].blocks).reshape(-1)
    assert np.allclose(written[:160], 0.5)
    assert np.allclose(written[160:], 0.0)
