"""Application entrypoint: a terminal front-end over ChatSession and CallRateLimiter."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

import structlog

from backend import BackendClient
from call_client import CallClient
from capture import CAPTURE_SECONDS, CapturePipeline
from config import Config, ConfigError, get_config, init_config
from errors import AssistantError, UploadFailedError
from logging_setup import configure_logging
from models import CallStatus, Message, Sender, SessionState
from rate_limiter import COUNTRY_CODES, CallRateLimiter, format_countdown
from recorder import SoundDeviceRecorder
from session_controller import ChatSession
from store import JsonStateStore
from synthesis import AudioPlayer, SynthesisPipeline

logger = structlog.get_logger(__name__)

HELP_TEXT = (
    "Commands: /record  /send  /play N  /retry N  /new  /quit\n"
    "Anything else is sent as a question."
)
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def _say(text: str = "") -> None:
    print(text, flush=True)


async def _prompt(label: str) -> str:
    return await asyncio.to_thread(input, label)


def _read_document(path: Path) -> bytes:
    if not path.is_file():
        raise ValueError(f"{path} does not exist")
    if path.suffix.lower() != ".pdf":
        raise ValueError("Please choose a PDF document")
    data = path.read_bytes()
    if not data:
        raise ValueError("The document is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValueError("The document is too large")
    return data


class ChatApp:
    def __init__(self, config: Config) -> None:
        self.config = config
        self.backend = BackendClient(
            config.backend_url,
            language_code=config.language_code,
            speaker=config.tts_speaker,
            timeout_s=config.request_timeout_seconds,
        )
        self.player = AudioPlayer()
        capture = CapturePipeline(
            recorder=SoundDeviceRecorder(sample_rate=config.sample_rate),
            transcriber=self.backend,
            capture_seconds=CAPTURE_SECONDS,
            on_status_change=lambda _f, t: _say(f"[mic: {t.value.lower()}]"),
        )
        self.session = ChatSession(
            indexer=self.backend,
            responder=self.backend,
            synthesizer=SynthesisPipeline(self.backend) if config.synthesize_answers else None,
            capture=capture,
            on_state_change=self._on_state_change,
            on_message=self._on_message,
            on_error=self._on_error,
        )

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        if to_state == SessionState.UPLOADING:
            _say("Reading & indexing... this might take a few seconds.")
        logger.debug("Session state", from_state=from_state.value, to_state=to_state.value)

    def _on_message(self, index: int, message: Message) -> None:
        if message.sender == Sender.USER:
            return
        if message.audio_handle is not None:
            _say(f"[{index}] audio ready, /play {index}")
            return
        _say(f"[{index}] assistant: {message.text}")

    def _on_error(self, code: str, message: str) -> None:
        _say(f"! {code}: {message}")

    # ------------------------------------------------------------------
    # Flow
    # ------------------------------------------------------------------

    async def _upload_until_indexed(self, path: Optional[Path]) -> bool:
        while self.session.state != SessionState.INDEXED:
            if path is None:
                raw = (await _prompt("Path to PDF (empty to quit): ")).strip()
                if not raw:
                    return False
                path = Path(raw).expanduser()
            try:
                data = _read_document(path)
                await self.session.upload(path.name, data)
            except (ValueError, OSError) as exc:
                _say(f"Cannot upload: {exc}")
            except UploadFailedError as exc:
                _say(f"Upload failed: {exc.message}")
            path = None
        return True

    async def run(self, path: Optional[Path]) -> int:
        try:
            if not await self._upload_until_indexed(path):
                return 0
            _say(HELP_TEXT)
            while True:
                line = (await _prompt("> ")).strip()
                if not await self._handle_line(line):
                    return 0
        finally:
            self.session.reset()
            await self.backend.aclose()

    async def _handle_line(self, line: str) -> bool:
        command, _, arg = line.partition(" ")
        try:
            if command == "/quit":
                return False
            if command == "/new":
                self.session.reset()
                return await self._upload_until_indexed(None)
            if command == "/record":
                transcript = await self.session.record()
                if transcript:
                    _say(f"Heard: {transcript}  (/send to ask it)")
                return True
            if command == "/send":
                await self.session.submit_turn()
                return True
            if command == "/play":
                handle = self.session.messages[int(arg)].audio_handle
                if handle is None:
                    _say("No audio for that message. Try /retry.")
                else:
                    await self.player.play(handle)
                return True
            if command == "/retry":
                if await self.session.retry_synthesis(int(arg)) is None:
                    _say("Audio is still unavailable.")
                return True
            if line:
                await self.session.submit_turn(line)
            return True
        except (ValueError, IndexError):
            _say(HELP_TEXT)
        except AssistantError as exc:
            _say(f"! {exc.code}: {exc.message}")
        return True


class CallApp:
    def __init__(self, config: Config) -> None:
        self.client = CallClient(config.call_service_url, timeout_s=config.request_timeout_seconds)
        self.limiter = CallRateLimiter(
            dispatcher=self.client,
            store=JsonStateStore(config.resolved_state_path),
            cooldown_seconds=config.cooldown_seconds,
            status_reset_seconds=config.status_reset_seconds,
            on_status_change=self._on_status_change,
        )

    def _on_status_change(self, status: CallStatus, message: str) -> None:
        if message:
            _say(message)

    async def run(self, phone_number: str, country_code: str) -> int:
        try:
            remaining = await self.limiter.start()
            if remaining > 0:
                _say(f"Next call available in {format_countdown(remaining)}")
                return 1
            outcome = await self.limiter.request_call(phone_number, country_code)
            if outcome.dispatched:
                _say("Note: 5 min cooldown applies between calls.")
                return 0
            return 1
        finally:
            await self.limiter.close()
            await self.client.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with a document or place an outbound call.")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Upload a PDF and chat about it")
    chat.add_argument("document", nargs="?", type=Path)

    call = sub.add_parser("call", help="Place an outbound voice call")
    call.add_argument("number", help="10-digit phone number")
    call.add_argument("--country-code", default="+91", choices=COUNTRY_CODES)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(get_config().log_level)
    try:
        config = init_config()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "chat":
        return asyncio.run(ChatApp(config).run(args.document))
    return asyncio.run(CallApp(config).run(args.number, args.country_code))


if __name__ == "__main__":
    raise SystemExit(main())
