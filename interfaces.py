"""Protocol interfaces used by ChatSession and CallRateLimiter."""

from __future__ import annotations

from typing import Optional, Protocol

from models import AudioClip, AudioHandle


class Recorder(Protocol):
    def start(self) -> None: ...

    def stop(self) -> AudioClip: ...


class Transcriber(Protocol):
    async def transcribe(self, wav_bytes: bytes) -> str: ...


class DocumentIndexer(Protocol):
    async def upload_document(self, filename: str, data: bytes) -> str: ...


class TurnResponder(Protocol):
    async def ask(self, question: str, context_id: str) -> str: ...


class Synthesizer(Protocol):
    async def synthesize(self, text: str) -> Optional[AudioHandle]: ...


class CallDispatcher(Protocol):
    async def dispatch(self, to_number: str) -> None: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...
