"""
HTTP client for the AI endpoints the voice pipeline talks to.

Authentication is passed in: an ApiSession is built with a token provider
and asks it for a fresh bearer token on every request, so nothing global has
to be set before the client can be used.
"""
from typing import Any, Callable, Dict, List, Optional

import requests

from .encoding import AudioBlob
from .error_handler import ApiError, SpeechToTextError, TTSRequestError
from .logging_utils import setup_logger

logger = setup_logger("voicepipe.api_client")

TokenProvider = Callable[[], Optional[str]]


class ApiSession:
    """requests.Session bound to a base URL with per-request bearer auth."""

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self.http = session or requests.Session()

    def auth_headers(self) -> Dict[str, str]:
        if self.token_provider is None:
            return {}
        token = self.token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = {**self.auth_headers(), **kwargs.pop("headers", {})}
        kwargs.setdefault("timeout", self.timeout)
        url = f"{self.base_url}/{path.lstrip('/')}"
        return self.http.request(method, url, headers=headers, **kwargs)

    def post(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", path, **kwargs)

    def close(self) -> None:
        self.http.close()


def _error_message(response: requests.Response, default: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return default


class AIClient:
    """Text-to-speech, speech-to-text, and chat calls."""

    def __init__(self, session: ApiSession):
        self.session = session

    def tts(self, text: str, voice: Optional[str] = None) -> bytes:
        """Synthesize ``text``; returns the raw audio bytes."""
        try:
            response = self.session.post("/ai/tts", json={"text": text, "voice": voice})
        except requests.RequestException as e:
            raise TTSRequestError(f"TTS request failed: {e}", component="api_client", operation="tts") from e

        if not response.ok:
            message = _error_message(response, "TTS request failed")
            logger.warning(f"TTS request failed with HTTP {response.status_code}: {message}")
            raise TTSRequestError(message, status_code=response.status_code, component="api_client", operation="tts")
        return response.content

    def stt(self, blob: AudioBlob) -> str:
        """Transcribe an encoded recording."""
        files = {"audio": (f"recording.{blob.extension}", blob.data, blob.mime_type)}
        try:
            response = self.session.post("/ai/stt", files=files)
        except requests.RequestException as e:
            raise SpeechToTextError(f"STT request failed: {e}", component="api_client", operation="stt") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.ok:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise SpeechToTextError(
                str(message or "STT request failed"),
                status_code=response.status_code,
                component="api_client",
                operation="stt",
            )
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise SpeechToTextError("STT response missing data", status_code=response.status_code,
                                    component="api_client", operation="stt")
        return str(data.get("text") or "")

    def chat(self, messages: List[Dict[str, str]]) -> str:
        """Send the conversation context; returns the assistant reply text."""
        try:
            response = self.session.post("/ai/chat", json={"messages": messages})
        except requests.RequestException as e:
            raise ApiError(f"Chat request failed: {e}", component="api_client", operation="chat") from e

        if not response.ok:
            raise ApiError(
                _error_message(response, "Chat request failed"),
                status_code=response.status_code,
                component="api_client",
                operation="chat",
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError("Chat response was not JSON", status_code=response.status_code,
                           component="api_client", operation="chat") from e
        data = payload.get("data") if isinstance(payload, dict) else None
        return str((data or {}).get("response") or "")

    def close(self) -> None:
        self.session.close()


__all__ = ["ApiSession", "AIClient", "TokenProvider"]
