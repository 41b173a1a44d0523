"""
voicepipe - voice capture and spoken replies for AI chat

VAD-gated microphone recording, chunked text-to-speech playback with
one-ahead prefetch, and a daily rate-limit guard for the TTS service.
"""

__version__ = "1.0.0"
__author__ = "voicepipe Team"
__email__ = "info@voicepipe.local"

from .cli import main

__all__ = ["main"]
