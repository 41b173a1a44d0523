"""
Centralized configuration loader and accessors for voicepipe.

Loads YAML from `config/config.yaml` (or the file named by VOICEPIPE_CONFIG)
and provides typed getters aligned with the documented schema
(api.*, recorder.*, tts.*, audio.*, storage.*, assistant.*).
"""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import yaml

from .error_handler import ConfigurationError


_CONFIG_PATH = os.environ.get(
    "VOICEPIPE_CONFIG",
    os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "config", "config.yaml")),
)
_CFG: Dict[str, Any] = {}
_LOADED = False

_BOOL_TRUE_VALUES = frozenset({"true", "1", "yes", "y", "on"})
_BOOL_FALSE_VALUES = frozenset({"false", "0", "no", "n", "off"})

_KNOWN_MIME_TYPES = frozenset({"audio/ogg;codecs=opus", "audio/ogg", "audio/flac", "audio/wav"})


def _load() -> None:
    global _CFG, _LOADED
    if _LOADED:
        return
    if os.path.exists(_CONFIG_PATH):
        with open(_CONFIG_PATH, "r") as f:
            _CFG = yaml.safe_load(f) or {}
    else:
        _CFG = {}

    _validate_config(_CFG)
    _LOADED = True


def _positive(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration values and provide helpful error messages"""
    errors = []
    warnings = []

    api_cfg = config.get("api") or {}
    if isinstance(api_cfg, dict):
        if "base_url" in api_cfg:
            url = api_cfg["base_url"]
            if not isinstance(url, str) or urlparse(url).scheme not in ("http", "https"):
                errors.append("api.base_url must be an http(s) URL")
        if "timeout" in api_cfg and not _positive(api_cfg["timeout"]):
            errors.append("api.timeout must be a positive number")
        if api_cfg.get("token"):
            warnings.append("api.token is set in the config file; prefer VOICEPIPE_API_TOKEN")

    rec_cfg = config.get("recorder") or {}
    if isinstance(rec_cfg, dict):
        if "sample_rate" in rec_cfg:
            sr = rec_cfg["sample_rate"]
            if not _positive(sr):
                errors.append("recorder.sample_rate must be a positive number")
            elif sr not in [8000, 12000, 16000, 24000, 48000]:
                warnings.append("recorder.sample_rate is not an Opus rate; Opus encoding will be skipped")

        for key in ("min_recording_duration_ms", "silence_timeout_ms", "max_recording_duration_ms", "tick_hz"):
            if key in rec_cfg and not _positive(rec_cfg[key]):
                errors.append(f"recorder.{key} must be a positive number")

        min_ms = rec_cfg.get("min_recording_duration_ms")
        max_ms = rec_cfg.get("max_recording_duration_ms")
        if _positive(min_ms) and _positive(max_ms) and min_ms >= max_ms:
            warnings.append("recorder.min_recording_duration_ms >= max_recording_duration_ms; VAD will never stop a recording")

        if "silence_threshold" in rec_cfg:
            threshold = rec_cfg["silence_threshold"]
            if not isinstance(threshold, (int, float)) or threshold < 0 or threshold > 255:
                errors.append("recorder.silence_threshold must be between 0 and 255")

        if "smoothing" in rec_cfg:
            smoothing = rec_cfg["smoothing"]
            if not isinstance(smoothing, (int, float)) or smoothing < 0 or smoothing >= 1:
                errors.append("recorder.smoothing must be in [0, 1)")

        if "fft_size" in rec_cfg:
            fft_size = rec_cfg["fft_size"]
            if not isinstance(fft_size, int) or fft_size < 32 or fft_size & (fft_size - 1):
                errors.append("recorder.fft_size must be a power of two >= 32")

        if "format_preferences" in rec_cfg:
            prefs = rec_cfg["format_preferences"]
            if not isinstance(prefs, list):
                errors.append("recorder.format_preferences must be a list")
            else:
                for mime in prefs:
                    if not isinstance(mime, str):
                        errors.append("recorder.format_preferences items must be strings")
                    elif mime not in _KNOWN_MIME_TYPES:
                        warnings.append(f"Unknown MIME type in recorder.format_preferences: {mime}")

    tts_cfg = config.get("tts") or {}
    if isinstance(tts_cfg, dict):
        if "max_chunk_length" in tts_cfg:
            max_len = tts_cfg["max_chunk_length"]
            if not isinstance(max_len, int) or max_len < 1:
                errors.append("tts.max_chunk_length must be a positive integer")
        if "min_audio_bytes" in tts_cfg:
            min_bytes = tts_cfg["min_audio_bytes"]
            if not isinstance(min_bytes, int) or min_bytes < 0:
                errors.append("tts.min_audio_bytes must be a non-negative integer")

    assistant_cfg = config.get("assistant") or {}
    if isinstance(assistant_cfg, dict):
        for key in ("max_context_messages", "max_stored_messages"):
            if key in assistant_cfg:
                value = assistant_cfg[key]
                if not isinstance(value, int) or value < 1:
                    errors.append(f"assistant.{key} must be a positive integer")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
        raise ConfigurationError(error_msg, component="config", operation="validate")

    if warnings:
        for warning in warnings:
            print(f"Config warning: {warning}")


def get(path: str, default: Any = None) -> Any:
    """Dot-path getter from loaded config.

    Example: get("recorder.silence_timeout_ms", 1500)
    """
    _load()
    cur: Any = _CFG
    for part in path.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return default
    return cur


def get_typed(path: str, default: Any, cast_type: type) -> Any:
    """Get a configuration value with type casting and default fallback.

    Args:
        path: Dot-separated configuration path
        default: Default value if path not found or casting fails
        cast_type: Type to cast the value to

    Returns:
        The cast value or default
    """
    val = get(path, default)

    if cast_type is bool:
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            normalized = val.strip().lower()
            if normalized in _BOOL_TRUE_VALUES:
                return True
            if normalized in _BOOL_FALSE_VALUES:
                return False
            return default
        try:
            return bool(val)
        except (TypeError, ValueError):
            return default

    if isinstance(val, cast_type):
        return val

    try:
        return cast_type(val)
    except (TypeError, ValueError):
        return default


# API
def get_api_base_url() -> str:
    return str(get("api.base_url", "http://localhost:8787/api")).rstrip("/")

def get_api_timeout() -> float:
    return get_typed("api.timeout", 30.0, float)

def get_api_token() -> Optional[str]:
    """Bearer token for the AI API; environment first, config file second."""
    token = os.getenv("VOICEPIPE_API_TOKEN", "").strip()
    if token:
        return token
    token = str(get("api.token", "") or "").strip()
    return token or None


# Recorder / VAD
def get_recorder_sample_rate() -> int:
    return get_typed("recorder.sample_rate", 16000, int)

def get_recorder_channels() -> int:
    return get_typed("recorder.channels", 1, int)

def get_min_recording_duration_ms() -> float:
    return get_typed("recorder.min_recording_duration_ms", 800.0, float)

def get_silence_timeout_ms() -> float:
    return get_typed("recorder.silence_timeout_ms", 1500.0, float)

def get_silence_threshold() -> float:
    return get_typed("recorder.silence_threshold", 25.0, float)

def get_max_recording_duration_ms() -> float:
    return get_typed("recorder.max_recording_duration_ms", 30000.0, float)

def get_vad_fft_size() -> int:
    return get_typed("recorder.fft_size", 512, int)

def get_vad_smoothing() -> float:
    return get_typed("recorder.smoothing", 0.3, float)

def get_vad_tick_interval() -> float:
    """Seconds between VAD ticks, derived from recorder.tick_hz."""
    hz = get_typed("recorder.tick_hz", 60.0, float)
    return 1.0 / hz if hz > 0 else 1.0 / 60.0

def get_format_preferences() -> Optional[List[str]]:
    prefs = get("recorder.format_preferences")
    return list(prefs) if prefs else None

def get_audio_input_device():
    """Return configured input device (int index or str name) or None."""
    return get("recorder.input_device", None)


# TTS / playback
def get_tts_voice() -> Optional[str]:
    voice = get("tts.voice")
    return str(voice) if voice else None

def get_max_chunk_length() -> int:
    return get_typed("tts.max_chunk_length", 200, int)

def get_min_audio_bytes() -> int:
    return get_typed("tts.min_audio_bytes", 100, int)

def get_audio_output_device():
    """Return configured output device (int index or str name) or None."""
    return get("audio.output_device", None)


# Storage / assistant
def get_storage_path() -> str:
    return os.path.expanduser(str(get("storage.path", "~/.voicepipe/state.json")))

def get_max_context_messages() -> int:
    return get_typed("assistant.max_context_messages", 10, int)

def get_max_stored_messages() -> int:
    return get_typed("assistant.max_stored_messages", 50, int)


def validate_config_silent() -> tuple[bool, List[str]]:
    """Validate configuration without raising exceptions

    Returns:
        tuple: (is_valid, list_of_warnings)
    """
    try:
        if not _LOADED:
            _load()
        _validate_config(_CFG)
        return True, []
    except ConfigurationError as e:
        return False, [str(e)]
    except Exception as e:
        return False, [f"Validation error: {e}"]


def get_all() -> Dict[str, Any]:
    """Get the entire configuration dictionary"""
    _load()
    return _CFG.copy()


def load_config_file(path: str) -> None:
    """Point the loader at another YAML file and load it."""
    global _CONFIG_PATH
    _CONFIG_PATH = os.path.abspath(path)
    reload_config()


def reload_config() -> None:
    """Reload configuration from file"""
    global _CFG, _LOADED
    _LOADED = False
    _CFG = {}
    _load()
