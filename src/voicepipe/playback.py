#!/usr/bin/env python3
"""
Chunked speech playback.

Chunks are synthesized by the remote TTS endpoint and played strictly in
order. While chunk i plays, chunk i+1 is already being fetched on a
one-worker pool, so the network round trip for the next chunk overlaps the
current chunk's audio.

Per-chunk failures (empty audio, undecodable audio, a failed request) skip
that chunk. A rate-limit refusal aborts the rest of the sequence and sets the
persisted daily flag. stop_playback() is cooperative: it is checked before
each chunk and before each prefetch, and it cuts the audio that is playing.
"""
import threading
import uuid
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set, Tuple

import numpy as np

from .audio_output import AudioPlayer
from .encoding import decode_audio
from .error_handler import (
    EmptyAudioResponse,
    ErrorSeverity,
    PlaybackFailed,
    RateLimited,
    TTSRequestError,
    handle_error,
    is_rate_limit_error,
)
from .logging_utils import setup_logger
from .preferences import TTSPreferences

logger = setup_logger("voicepipe.playback")

MIN_AUDIO_BYTES = 100

Synthesizer = Callable[[str, Optional[str]], bytes]
Decoder = Callable[[bytes], Tuple[np.ndarray, int]]


class PlayableAudio:
    """Decoded audio held only for as long as it is being played."""

    def __init__(self, samples: np.ndarray, sample_rate: int):
        self.id = uuid.uuid4().hex[:8]
        self.samples: Optional[np.ndarray] = samples
        self.sample_rate = sample_rate

    @property
    def released(self) -> bool:
        return self.samples is None

    def release(self) -> None:
        self.samples = None


@dataclass
class PlaybackSession:
    chunks: List[str]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    index: int = 0
    cancelled: threading.Event = field(default_factory=threading.Event)
    prefetch: Optional[Future] = None
    handles: Set[PlayableAudio] = field(default_factory=set)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def track(self, handle: PlayableAudio) -> None:
        with self.lock:
            self.handles.add(handle)

    def untrack(self, handle: PlayableAudio) -> None:
        handle.release()
        with self.lock:
            self.handles.discard(handle)

    def drain(self) -> int:
        """Release every live handle; returns how many were still held."""
        with self.lock:
            handles = list(self.handles)
            self.handles.clear()
        for handle in handles:
            handle.release()
        return len(handles)


@dataclass
class PlaybackSummary:
    total: int = 0
    played: int = 0
    skipped: int = 0
    rate_limited: bool = False
    cancelled: bool = False


class PlaybackController:
    """Plays chunk sequences through TTS with one-ahead prefetch."""

    def __init__(
        self,
        synthesize: Synthesizer,
        preferences: TTSPreferences,
        player: Optional[AudioPlayer] = None,
        decoder: Decoder = decode_audio,
        voice: Optional[str] = None,
        min_audio_bytes: int = MIN_AUDIO_BYTES,
    ):
        self._synthesize = synthesize
        self.preferences = preferences
        self.player = player or AudioPlayer()
        self._decoder = decoder
        self.voice = voice
        self.min_audio_bytes = min_audio_bytes

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tts-prefetch")
        self._lock = threading.Lock()
        self._session: Optional[PlaybackSession] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._session is not None

    @property
    def is_tts_enabled(self) -> bool:
        return self.preferences.is_tts_enabled()

    @property
    def is_rate_limited(self) -> bool:
        return self.preferences.is_rate_limited()

    def toggle_tts(self) -> bool:
        return self.preferences.toggle_tts()

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def play_chunks(self, chunks: Sequence[str]) -> PlaybackSummary:
        """Speak ``chunks`` in order; blocks until done, cancelled, or aborted."""
        summary = PlaybackSummary(total=len(chunks))
        if not chunks:
            return summary
        if self.preferences.is_rate_limited():
            logger.info("TTS rate limited today; not playing")
            summary.rate_limited = True
            return summary

        session = self._begin_session(list(chunks))
        logger.info(f"Playback session {session.id} started with {len(chunks)} chunks")
        try:
            self._run(session, summary)
        finally:
            self._end_session(session)
        logger.info(
            f"Playback session {session.id} finished: played={summary.played} skipped={summary.skipped} "
            f"rate_limited={summary.rate_limited} cancelled={summary.cancelled}"
        )
        return summary

    def play_single_chunk(self, text: str) -> PlaybackSummary:
        if not text or not text.strip():
            return PlaybackSummary()
        return self.play_chunks([text])

    def stop_playback(self) -> None:
        """Cancel the active sequence and cut the audio that is playing."""
        with self._lock:
            session = self._session
        if session is None:
            return
        self._cancel(session)
        logger.info(f"Playback session {session.id} stopped")

    def close(self) -> None:
        self.stop_playback()
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin_session(self, chunks: List[str]) -> PlaybackSession:
        session = PlaybackSession(chunks=chunks)
        with self._lock:
            previous, self._session = self._session, session
        if previous is not None:
            logger.info(f"Replacing playback session {previous.id}")
            self._cancel(previous)
        return session

    def _end_session(self, session: PlaybackSession) -> None:
        with session.lock:
            pending, session.prefetch = session.prefetch, None
        if pending is not None:
            pending.cancel()
        session.drain()
        with self._lock:
            if self._session is session:
                self._session = None

    def _cancel(self, session: PlaybackSession) -> None:
        session.cancelled.set()
        self.player.interrupt()
        with session.lock:
            pending = session.prefetch
        if pending is not None:
            pending.cancel()
        session.drain()

    def _run(self, session: PlaybackSession, summary: PlaybackSummary) -> None:
        chunks = session.chunks
        for index, chunk in enumerate(chunks):
            if session.cancelled.is_set():
                summary.cancelled = True
                return
            session.index = index

            with session.lock:
                pending, session.prefetch = session.prefetch, None

            try:
                data = pending.result() if pending is not None else self._fetch(chunk)
                if session.cancelled.is_set():
                    summary.cancelled = True
                    return
                if len(data) < self.min_audio_bytes:
                    raise EmptyAudioResponse(
                        f"Empty audio response ({len(data)} bytes)",
                        component="playback",
                        operation="play_chunks",
                        chunk_index=index,
                    )

                if index + 1 < len(chunks) and not session.cancelled.is_set():
                    with session.lock:
                        session.prefetch = self._executor.submit(self._fetch, chunks[index + 1])

                if self._play(session, data):
                    summary.played += 1
            except CancelledError:
                # The prefetch was dropped by stop_playback().
                summary.cancelled = True
                return
            except RateLimited as e:
                handle_error(e, component="playback", operation="play_chunks", severity=ErrorSeverity.MEDIUM,
                             session_id=session.id)
                self.preferences.mark_rate_limited()
                summary.rate_limited = True
                return
            except (EmptyAudioResponse, PlaybackFailed, TTSRequestError) as e:
                handle_error(e, component="playback", operation="play_chunks", severity=ErrorSeverity.LOW,
                             session_id=session.id, metadata={"chunk_index": index})
                summary.skipped += 1

        if session.cancelled.is_set():
            summary.cancelled = True

    def _fetch(self, text: str) -> bytes:
        """One TTS call, with failures normalized to the playback taxonomy."""
        try:
            return self._synthesize(text, self.voice)
        except Exception as e:
            if is_rate_limit_error(e):
                raise RateLimited(f"TTS rate limit: {e}", component="playback", operation="fetch") from e
            if isinstance(e, (TTSRequestError, EmptyAudioResponse, PlaybackFailed)):
                raise
            raise TTSRequestError(f"TTS request failed: {e}", component="playback", operation="fetch") from e

    def _play(self, session: PlaybackSession, data: bytes) -> bool:
        """Decode and play one chunk; True when it played to the end."""
        samples, sample_rate = self._decoder(data)
        handle = PlayableAudio(samples, sample_rate)
        session.track(handle)
        try:
            if session.cancelled.is_set():
                return False
            return bool(self.player.play(handle.samples, handle.sample_rate, cancelled=session.cancelled))
        finally:
            session.untrack(handle)


__all__ = ["PlaybackController", "PlaybackSession", "PlaybackSummary", "PlayableAudio", "MIN_AUDIO_BYTES"]
