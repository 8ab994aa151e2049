"""Speech synthesis for assistant answers, plus local playback."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import structlog

from errors import TransportError
from models import AudioHandle

try:
    import sounddevice as sd
except OSError:  # pragma: no cover - PortAudio library missing
    sd = None  # type: ignore

logger = structlog.get_logger(__name__)


class AudioSource(Protocol):
    async def synthesize_bytes(self, text: str) -> bytes: ...


class SynthesisPipeline:
    """
    Turns answer text into an ``AudioHandle``.

    Failures never propagate: a transport error or a non-audio response is
    logged and ``None`` is returned, so the answer stays text-only.
    """

    def __init__(self, source: AudioSource, directory: Optional[Path] = None) -> None:
        self._source = source
        self._directory = directory

    async def synthesize(self, text: str) -> Optional[AudioHandle]:
        if not text or not text.strip():
            return None
        try:
            audio = await self._source.synthesize_bytes(text)
        except TransportError as exc:
            logger.warning("Synthesis failed", code=exc.code, error=exc.message)
            return None
        if not audio:
            logger.warning("Synthesis returned no audio")
            return None
        try:
            return self._write_handle(audio)
        except OSError as exc:
            logger.warning("Could not store synthesized audio", error=str(exc))
            return None

    def _write_handle(self, audio: bytes) -> AudioHandle:
        fd, name = tempfile.mkstemp(
            prefix="answer-",
            suffix=".mp3",
            dir=str(self._directory) if self._directory else None,
        )
        with os.fdopen(fd, "wb") as fh:
            fh.write(audio)
        return AudioHandle(path=Path(name))


class AudioPlayer:
    """Plays an AudioHandle through the default output device."""

    async def play(self, handle: AudioHandle) -> None:
        if handle.released:
            raise ValueError("audio handle was already released")
        await asyncio.to_thread(self._play_blocking, handle.path)

    def _play_blocking(self, path: Path) -> None:
        import soundfile as sf  # Local import keeps libsndfile off the import path

        if sd is None:
            raise RuntimeError("PortAudio is not available")
        data, samplerate = sf.read(str(path), dtype="float32")
        sd.play(data, samplerate)
        sd.wait()
