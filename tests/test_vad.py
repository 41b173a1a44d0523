import os
import sys

import numpy as np
import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from voicepipe.vad import FrequencyAnalyser, VoiceActivityDetector


def test_detector_ignores_silence_before_minimum_duration():
    detector = VoiceActivityDetector(silence_threshold=25, silence_timeout_ms=1500, min_recording_duration_ms=800)
    detector.reset(0.0)

    for now in range(0, 800, 50):
        assert detector.update(0.0, float(now)) is False
    assert detector.silence_started_ms is None


def test_detector_fires_once_after_silence_timeout():
    detector = VoiceActivityDetector(silence_threshold=25, silence_timeout_ms=1500, min_recording_duration_ms=800)
    detector.reset(0.0)

    assert detector.update(60.0, 500.0) is False
    assert detector.update(10.0, 900.0) is False
    assert detector.silence_started_ms == 900.0
    assert detector.update(10.0, 2399.0) is False
    assert detector.update(10.0, 2400.0) is True
    assert detector.update(10.0, 2500.0) is False
    assert detector.triggered


def test_speech_resets_silence_window():
    detector = VoiceActivityDetector(silence_threshold=25, silence_timeout_ms=1500, min_recording_duration_ms=800)
    detector.reset(0.0)

    detector.update(0.0, 1000.0)
    assert detector.update(40.0, 2000.0) is False
    assert detector.silence_started_ms is None
    detector.update(0.0, 2100.0)

    assert detector.update(0.0, 2600.0) is False
    assert detector.update(0.0, 3600.0) is True


def test_level_at_threshold_counts_as_speech():
    detector = VoiceActivityDetector(silence_threshold=25, silence_timeout_ms=100, min_recording_duration_ms=0)
    detector.reset(0.0)

    assert detector.update(25.0, 0.0) is False
    assert detector.update(25.0, 500.0) is False
    assert detector.silence_started_ms is None


def test_analyser_silence_is_zero():
    analyser = FrequencyAnalyser(fft_size=512)
    analyser.push(np.zeros(1024, dtype=np.float32))

    data = analyser.byte_frequency_data()

    assert data.dtype == np.uint8
    assert len(data) == analyser.frequency_bin_count == 256
    assert analyser.mean_level() == 0.0


def test_analyser_noise_is_above_default_threshold():
    rng = np.random.default_rng(1234)
    analyser = FrequencyAnalyser(fft_size=512)
    analyser.push(rng.normal(0.0, 0.3, 2048).astype(np.float32))

    assert analyser.mean_level() > 25.0


def test_analyser_peak_follows_tone_frequency():
    sample_rate = 16000
    t = np.arange(2048) / sample_rate
    analyser = FrequencyAnalyser(fft_size=512)
    analyser.push(0.1 * np.sin(2 * np.pi * 1000.0 * t))

    data = analyser.byte_frequency_data()

    assert int(np.argmax(data)) == 32


def test_analyser_reset_clears_window():
    rng = np.random.default_rng(7)
    analyser = FrequencyAnalyser(fft_size=256)
    analyser.push(rng.normal(0.0, 0.3, 256))
    assert analyser.mean_level() > 0

    analyser.reset()

    assert analyser.mean_level() == 0.0


def test_analyser_averages_channels():
    analyser = FrequencyAnalyser(fft_size=256)
    stereo = np.stack([np.ones(256), -np.ones(256)], axis=1)
    analyser.push(stereo)

    assert analyser.mean_level() == 0.0


@pytest.mark.parametrize("kwargs", [
    {"fft_size": 500},
    {"fft_size": 16},
    {"smoothing": 1.0},
    {"min_decibels": -30.0, "max_decibels": -100.0},
])
def test_analyser_rejects_bad_parameters(kwargs):
    with pytest.raises(ValueError):
        FrequencyAnalyser(**kwargs)
