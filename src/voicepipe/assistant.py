#!/usr/bin/env python3
"""
Voice chat assistant.

Wires the recorder, the AI client, and chunked playback into one
conversation: a voice turn is recorded, transcribed, sent to chat with the
recent context, and the reply is spoken when TTS is enabled. The history is
kept in the key-value store so a conversation survives restarts.
"""
import json
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .api_client import AIClient
from .encoding import AudioBlob
from .error_handler import ErrorSeverity, ValidationError, handle_error
from .logging_utils import log_error_with_context, setup_logger
from .playback import PlaybackController, PlaybackSummary
from .preferences import TTSPreferences
from .recorder import VoiceRecorder
from .storage import KeyValueStore, MemoryStore
from .text_chunker import DEFAULT_MAX_CHUNK_LENGTH, chunk_text
from .validation import validate_audio_blob, validate_chat_message

logger = setup_logger("voicepipe.assistant")

CHAT_HISTORY_KEY = "ai-chat-history"
CHAT_ERROR_MESSAGE = "I'm sorry, I couldn't process that request. Please try again."
TRANSCRIPTION_ERROR_MESSAGE = "I couldn't transcribe that audio. Please try again or type your message."


@dataclass
class ChatMessage:
    """Message in the chat history"""
    role: str  # "user" or "assistant"
    content: str
    timestamp: float = field(default_factory=time.time)

    def to_context(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=str(data["role"]),
            content=str(data["content"]),
            timestamp=float(data.get("timestamp") or time.time()),
        )


class VoiceAssistant:
    """Text and voice chat with optional spoken replies."""

    def __init__(
        self,
        client: AIClient,
        recorder: Optional[VoiceRecorder] = None,
        playback: Optional[PlaybackController] = None,
        preferences: Optional[TTSPreferences] = None,
        store: Optional[KeyValueStore] = None,
        max_context_messages: int = 10,
        max_stored_messages: int = 50,
        max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH,
        speak_in_background: bool = True,
    ):
        """
        Args:
            client: Chat, STT and TTS endpoints
            recorder: Voice input; its auto-stop callback is taken over
            playback: Spoken replies; None keeps the assistant text-only
            preferences: TTS toggle, defaults to the playback controller's
            store: Where the history is persisted
            max_context_messages: Messages sent as context with each turn
            max_stored_messages: Messages kept in the store
            speak_in_background: Speak replies on a worker thread
        """
        self.client = client
        self.recorder = recorder
        self.playback = playback
        self.store = store or MemoryStore()
        if preferences is None:
            preferences = playback.preferences if playback is not None else TTSPreferences(self.store)
        self.preferences = preferences
        self.max_context_messages = max_context_messages
        self.max_stored_messages = max_stored_messages
        self.max_chunk_length = max_chunk_length
        self.speak_in_background = speak_in_background

        self._lock = threading.RLock()
        self._speech_thread: Optional[threading.Thread] = None
        self.messages: List[ChatMessage] = self._load_history()

        if self.recorder is not None:
            self.recorder.on_auto_stop = self._on_auto_stop

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _load_history(self) -> List[ChatMessage]:
        raw = self.store.get(CHAT_HISTORY_KEY)
        if not raw:
            return []
        try:
            messages = [ChatMessage.from_dict(item) for item in json.loads(raw)]
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Discarding unreadable chat history: {e}")
            self.store.remove(CHAT_HISTORY_KEY)
            return []
        logger.info(f"Restored {len(messages)} chat messages")
        return messages[-self.max_stored_messages:]

    def _save_history(self) -> None:
        with self._lock:
            recent = [asdict(m) for m in self.messages[-self.max_stored_messages:]]
        self.store.set(CHAT_HISTORY_KEY, json.dumps(recent))

    def _append(self, role: str, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        with self._lock:
            self.messages.append(message)
        self._save_history()
        return message

    def context_messages(self) -> List[Dict[str, str]]:
        with self._lock:
            return [m.to_context() for m in self.messages[-self.max_context_messages:]]

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def send_message(self, text: str) -> Optional[ChatMessage]:
        """Send a user turn; returns the assistant message that answered it."""
        try:
            text = validate_chat_message(text)
        except ValidationError as e:
            handle_error(e, component="assistant", operation="send_message", severity=ErrorSeverity.LOW)
            return None

        self._append("user", text)
        try:
            reply = self.client.chat(self.context_messages())
        except Exception as e:
            log_error_with_context(logger, e, "Chat request failed", component="assistant")
            return self._append("assistant", CHAT_ERROR_MESSAGE)

        message = self._append("assistant", reply)
        if self.playback is not None and self.preferences.is_tts_enabled():
            self.speak(reply)
        return message

    def handle_mic_click(self) -> Optional[ChatMessage]:
        """Start recording, or stop it and send what was said."""
        if self.recorder is None:
            logger.warning("No recorder configured; voice input unavailable")
            return None

        if self.recorder.is_recording:
            blob = self.recorder.stop_recording()
            if blob is None:
                logger.warning(f"Recording produced no audio: {self.recorder.error}")
                return None
            return self.handle_recording(blob)

        if self.playback is not None and self.playback.is_playing:
            self.playback.stop_playback()
        if not self.recorder.start_recording():
            logger.error(f"Could not start recording: {self.recorder.error}")
        return None

    def handle_recording(self, blob: AudioBlob) -> Optional[ChatMessage]:
        """Transcribe a finished recording and send it as a user turn."""
        try:
            text = self.client.stt(validate_audio_blob(blob))
        except Exception as e:
            log_error_with_context(logger, e, "Transcription failed", component="assistant")
            return self._append("assistant", TRANSCRIPTION_ERROR_MESSAGE)

        if not text.strip():
            logger.info("Transcription was empty; nothing to send")
            return None
        return self.send_message(text)

    def _on_auto_stop(self, blob: AudioBlob) -> None:
        self.handle_recording(blob)

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    def speak(self, content: str) -> Optional[PlaybackSummary]:
        """Chunk ``content`` and play it; None when it runs in the background."""
        if self.playback is None:
            return None
        chunks = chunk_text(content, self.max_chunk_length)
        if not chunks:
            return None
        if not self.speak_in_background:
            return self.playback.play_chunks(chunks)

        thread = threading.Thread(target=self.playback.play_chunks, args=(chunks,), name="assistant-speech", daemon=True)
        with self._lock:
            self._speech_thread = thread
        thread.start()
        return None

    def play_message(self, content: str) -> Optional[PlaybackSummary]:
        """Speak a message, or stop if something is already being spoken."""
        if self.playback is None:
            return None
        if self.playback.is_playing:
            self.playback.stop_playback()
            return None
        return self.speak(content)

    def wait_for_speech(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._speech_thread
        if thread is not None:
            thread.join(timeout)

    def clear_chat(self) -> None:
        with self._lock:
            self.messages = []
        self.store.remove(CHAT_HISTORY_KEY)
        if self.playback is not None:
            self.playback.stop_playback()
        logger.info("Chat history cleared")

    def close(self) -> None:
        if self.recorder is not None:
            self.recorder.close()
        if self.playback is not None:
            self.playback.close()
        self.wait_for_speech(timeout=1.0)


__all__ = [
    "VoiceAssistant",
    "ChatMessage",
    "CHAT_HISTORY_KEY",
    "CHAT_ERROR_MESSAGE",
    "TRANSCRIPTION_ERROR_MESSAGE",
]
