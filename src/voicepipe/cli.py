#!/usr/bin/env python3
"""
voicepipe CLI - Command Line Interface for the voice pipeline
"""
import argparse
import logging
import os
import sys
import time
from typing import List, Optional

from . import config
from .api_client import AIClient, ApiSession
from .assistant import VoiceAssistant
from .audio_output import AudioPlayer
from .playback import PlaybackController
from .preferences import TTSPreferences
from .recorder import VoiceRecorder
from .storage import JSONFileStore
from .text_chunker import chunk_text
from .validation import validate_audio_blob


def build_preferences() -> TTSPreferences:
    return TTSPreferences(JSONFileStore(config.get_storage_path()))


def build_client() -> AIClient:
    session = ApiSession(
        config.get_api_base_url(),
        token_provider=config.get_api_token,
        timeout=config.get_api_timeout(),
    )
    return AIClient(session)


def build_playback(client: AIClient, preferences: TTSPreferences) -> PlaybackController:
    return PlaybackController(
        client.tts,
        preferences,
        player=AudioPlayer(output_device=config.get_audio_output_device()),
        voice=config.get_tts_voice(),
        min_audio_bytes=config.get_min_audio_bytes(),
    )


def build_recorder() -> VoiceRecorder:
    return VoiceRecorder(
        sample_rate=config.get_recorder_sample_rate(),
        channels=config.get_recorder_channels(),
        min_recording_duration_ms=config.get_min_recording_duration_ms(),
        silence_timeout_ms=config.get_silence_timeout_ms(),
        silence_threshold=config.get_silence_threshold(),
        max_recording_duration_ms=config.get_max_recording_duration_ms(),
        fft_size=config.get_vad_fft_size(),
        smoothing=config.get_vad_smoothing(),
        tick_interval=config.get_vad_tick_interval(),
        format_preferences=config.get_format_preferences(),
        input_device=config.get_audio_input_device(),
    )


def record_once(recorder: VoiceRecorder, poll: float = 0.05):
    """Record until silence or the ceiling; Ctrl+C stops manually."""
    blobs = []
    previous_callback, recorder.on_auto_stop = recorder.on_auto_stop, blobs.append
    try:
        if not recorder.start_recording():
            raise RuntimeError(recorder.error or "Could not start recording")
        print("Recording... (stops on silence, Ctrl+C to stop now)")
        try:
            while recorder.is_recording:
                time.sleep(poll)
        except KeyboardInterrupt:
            blob = recorder.stop_recording()
            if blob is not None:
                blobs.append(blob)
    finally:
        recorder.on_auto_stop = previous_callback
    if not blobs:
        raise RuntimeError(recorder.error or "Recording produced no audio")
    return blobs[0]


def cmd_chunk(args) -> int:
    text = " ".join(args.text) if args.text else sys.stdin.read()
    for chunk in chunk_text(text, args.max_len or config.get_max_chunk_length()):
        print(chunk)
    return 0


def cmd_say(args) -> int:
    preferences = build_preferences()
    client = build_client()
    playback = build_playback(client, preferences)
    try:
        chunks = chunk_text(" ".join(args.text), config.get_max_chunk_length())
        summary = playback.play_chunks(chunks)
    finally:
        playback.close()
        client.close()

    if summary.rate_limited:
        print("Text-to-speech is rate limited for today.")
        return 1
    print(f"Played {summary.played}/{summary.total} chunks ({summary.skipped} skipped)")
    return 0


def cmd_record(args) -> int:
    with build_recorder() as recorder:
        blob = record_once(recorder)

    print(f"Captured {blob.size} bytes of {blob.mime_type}")
    if args.output:
        with open(args.output, "wb") as f:
            f.write(blob.data)
        print(f"Saved to {args.output}")
    if args.transcribe:
        client = build_client()
        try:
            print(client.stt(validate_audio_blob(blob)))
        finally:
            client.close()
    return 0


def cmd_chat(args) -> int:
    preferences = build_preferences()
    client = build_client()
    assistant = VoiceAssistant(
        client,
        recorder=build_recorder(),
        playback=build_playback(client, preferences),
        preferences=preferences,
        store=preferences.store,
        max_context_messages=config.get_max_context_messages(),
        max_stored_messages=config.get_max_stored_messages(),
        max_chunk_length=config.get_max_chunk_length(),
        speak_in_background=False,
    )
    print("voicepipe chat. Commands: /mic, /tts, /clear, /quit")
    try:
        while True:
            try:
                line = input("you> ").strip()
            except EOFError:
                break
            if not line:
                continue
            if line in ("/quit", "/exit"):
                break
            if line == "/clear":
                assistant.clear_chat()
                print("(history cleared)")
                continue
            if line == "/tts":
                print(f"(tts {'on' if preferences.toggle_tts() else 'off'})")
                continue
            if line == "/mic":
                try:
                    blob = record_once(assistant.recorder)
                except RuntimeError as e:
                    print(f"(mic: {e})")
                    continue
                reply = assistant.handle_recording(blob)
            else:
                reply = assistant.send_message(line)
            if reply is not None:
                print(f"assistant> {reply.content}")
    finally:
        assistant.close()
        client.close()
    return 0


def cmd_tts(args) -> int:
    preferences = build_preferences()
    if args.action == "on":
        preferences.set_tts_enabled(True)
    elif args.action == "off":
        preferences.set_tts_enabled(False)
    elif args.action == "reset":
        preferences.clear_rate_limit()

    print(f"TTS enabled: {preferences.is_tts_enabled()}")
    print(f"Rate limited today: {preferences.is_rate_limited()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voicepipe",
        description="voicepipe - voice capture and spoken replies for AI chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voicepipe chunk "Some long reply..."   # Show how a reply is split for TTS
  voicepipe say "Hello there."           # Speak text through the TTS endpoint
  voicepipe record --transcribe          # Record one turn and transcribe it
  voicepipe chat                         # Interactive chat
  voicepipe tts status                   # Show TTS preference state
        """
    )
    parser.add_argument('--config', help='Path to configuration file')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('chunk', help='Print TTS chunks for text (argument or stdin)')
    p.add_argument('text', nargs='*')
    p.add_argument('--max-len', type=int, default=None)
    p.set_defaults(func=cmd_chunk)

    p = sub.add_parser('say', help='Chunk and speak text')
    p.add_argument('text', nargs='+')
    p.set_defaults(func=cmd_say)

    p = sub.add_parser('record', help='Record one VAD-gated utterance')
    p.add_argument('--output', help='Write the encoded recording to this file')
    p.add_argument('--transcribe', action='store_true', help='Send the recording to speech-to-text')
    p.set_defaults(func=cmd_record)

    p = sub.add_parser('chat', help='Interactive chat; /mic records a voice turn')
    p.set_defaults(func=cmd_chat)

    p = sub.add_parser('tts', help='Show or change the TTS preference')
    p.add_argument('action', choices=['on', 'off', 'status', 'reset'], nargs='?', default='status')
    p.set_defaults(func=cmd_tts)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    args = build_parser().parse_args(argv)

    if args.debug:
        os.environ['DEBUG'] = '1'
        for name in list(logging.root.manager.loggerDict):
            if name.startswith('voicepipe'):
                logging.getLogger(name).setLevel(logging.DEBUG)

    try:
        if args.config:
            config.load_config_file(args.config)
        return args.func(args)
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
