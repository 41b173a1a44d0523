"""
Audio container selection, encoding of captured fragments, and decoding of
synthesized speech, all through libsndfile (soundfile).
"""
import io
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import soundfile as sf

from .error_handler import PlaybackFailed, RecordingFailed
from .logging_utils import setup_logger

logger = setup_logger("voicepipe.encoding")


@dataclass(frozen=True)
class AudioFormat:
    mime_type: str
    container: str
    subtype: str
    extension: str


OGG_OPUS = AudioFormat("audio/ogg;codecs=opus", "OGG", "OPUS", "ogg")
OGG_VORBIS = AudioFormat("audio/ogg", "OGG", "VORBIS", "ogg")
FLAC = AudioFormat("audio/flac", "FLAC", "PCM_16", "flac")
WAV = AudioFormat("audio/wav", "WAV", "PCM_16", "wav")

FORMAT_PREFERENCES: Tuple[AudioFormat, ...] = (OGG_OPUS, OGG_VORBIS, FLAC)
DEFAULT_FORMAT = WAV

KNOWN_FORMATS = {fmt.mime_type: fmt for fmt in (OGG_OPUS, OGG_VORBIS, FLAC, WAV)}

# Opus only encodes at these rates.
_OPUS_SAMPLE_RATES = frozenset({8000, 12000, 16000, 24000, 48000})


@dataclass(frozen=True)
class AudioBlob:
    """An encoded recording ready to upload."""
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        fmt = KNOWN_FORMATS.get(self.mime_type)
        return fmt.extension if fmt else "bin"


def is_format_supported(audio_format: AudioFormat, sample_rate: Optional[int] = None) -> bool:
    """Whether the installed libsndfile can write this container/subtype."""
    if audio_format.subtype == "OPUS" and sample_rate is not None and sample_rate not in _OPUS_SAMPLE_RATES:
        return False
    try:
        return bool(sf.check_format(audio_format.container, audio_format.subtype))
    except (TypeError, ValueError):
        return False


def resolve_formats(preferences: Iterable[Union[str, AudioFormat]]) -> List[AudioFormat]:
    """Turn MIME strings (from config) into formats, skipping unknown ones."""
    resolved = []
    for pref in preferences:
        if isinstance(pref, AudioFormat):
            resolved.append(pref)
            continue
        fmt = KNOWN_FORMATS.get(str(pref).strip())
        if fmt is None:
            logger.warning(f"Unknown audio format preference {pref!r}; skipping")
            continue
        resolved.append(fmt)
    return resolved


def select_audio_format(
    preferences: Optional[Sequence[Union[str, AudioFormat]]] = None,
    supported: Callable[[AudioFormat], bool] = is_format_supported,
) -> AudioFormat:
    """First supported entry of the preference list, else the encoder default."""
    candidates = resolve_formats(preferences) if preferences is not None else list(FORMAT_PREFERENCES)
    for fmt in candidates:
        if supported(fmt):
            return fmt
    return DEFAULT_FORMAT


def encode_fragments(
    fragments: Sequence[np.ndarray],
    sample_rate: int,
    audio_format: AudioFormat = DEFAULT_FORMAT,
    channels: int = 1,
) -> AudioBlob:
    """Concatenate captured fragments in order and encode them as one blob."""
    if fragments:
        samples = np.concatenate([np.asarray(f, dtype=np.float32).reshape(-1, channels) for f in fragments])
    else:
        samples = np.zeros((0, channels), dtype=np.float32)
    if channels == 1:
        samples = samples.reshape(-1)

    buf = io.BytesIO()
    try:
        sf.write(buf, samples, sample_rate, format=audio_format.container, subtype=audio_format.subtype)
    except (RuntimeError, TypeError, ValueError) as e:
        raise RecordingFailed(
            f"Encoding to {audio_format.mime_type} failed: {e}",
            component="encoding",
            operation="encode_fragments",
        ) from e

    return AudioBlob(data=buf.getvalue(), mime_type=audio_format.mime_type)


def decode_audio(data: bytes) -> Tuple[np.ndarray, int]:
    """Decode synthesized audio bytes into mono float32 samples."""
    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=False)
    except (RuntimeError, TypeError, ValueError) as e:
        raise PlaybackFailed(
            f"Could not decode {len(data)} bytes of audio: {e}",
            component="encoding",
            operation="decode_audio",
        ) from e

    if samples.ndim > 1:
        samples = samples.mean(axis=1).astype(np.float32)
    return samples, int(sample_rate)


__all__ = [
    "AudioFormat", "AudioBlob", "FORMAT_PREFERENCES", "DEFAULT_FORMAT", "KNOWN_FORMATS",
    "OGG_OPUS", "OGG_VORBIS", "FLAC", "WAV",
    "is_format_supported", "resolve_formats", "select_audio_format",
    "encode_fragments", "decode_audio",
]
