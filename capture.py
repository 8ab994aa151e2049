"""Capture & transcription pipeline.

Records a fixed-length clip from the microphone, packages it as WAV and sends
it to the remote transcription service in one request::

    IDLE -> CAPTURING -> TRANSCRIBING -> IDLE

The capture window is a hard deadline measured from start. There is no
silence detection and no early stop.
"""

from __future__ import annotations

import asyncio
import io
import wave
from typing import Awaitable, Callable, Optional

import structlog

from errors import DeviceError, RecordingBusyError
from interfaces import Recorder, Transcriber
from models import AudioClip, RecordingStatus

logger = structlog.get_logger(__name__)

CAPTURE_SECONDS = 4.0

StatusCallback = Callable[[RecordingStatus, RecordingStatus], None]
Sleep = Callable[[float], Awaitable[None]]


def pcm_to_wav(clip: AudioClip, sample_width: int = 2) -> bytes:
    """Wrap raw PCM16 bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(clip.channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(clip.sample_rate)
        wf.writeframes(clip.pcm16_bytes)
    return buf.getvalue()


class CapturePipeline:
    def __init__(
        self,
        recorder: Recorder,
        transcriber: Transcriber,
        capture_seconds: float = CAPTURE_SECONDS,
        sleep: Sleep = asyncio.sleep,
        on_status_change: Optional[StatusCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._transcriber = transcriber
        self._capture_seconds = capture_seconds
        self._sleep = sleep
        self._on_status_change = on_status_change
        self._status = RecordingStatus.IDLE

    @property
    def status(self) -> RecordingStatus:
        return self._status

    @property
    def busy(self) -> bool:
        return self._status != RecordingStatus.IDLE

    async def record_and_transcribe(self) -> str:
        if self._status != RecordingStatus.IDLE:
            raise RecordingBusyError(f"recording already in progress ({self._status.value})")

        self._transition(RecordingStatus.CAPTURING)
        try:
            self._recorder.start()
        except Exception as exc:
            self._transition(RecordingStatus.IDLE)
            logger.warning("Microphone unavailable", error=str(exc))
            raise DeviceError(f"microphone unavailable: {exc}") from exc

        try:
            await self._sleep(self._capture_seconds)
        except BaseException:
            self._recorder.stop()
            self._transition(RecordingStatus.IDLE)
            raise
        clip = self._recorder.stop()

        self._transition(RecordingStatus.TRANSCRIBING)
        try:
            logger.debug("Clip captured", seconds=round(clip.duration_s, 2), size=len(clip.pcm16_bytes))
            transcript = await self._transcriber.transcribe(pcm_to_wav(clip))
        finally:
            self._transition(RecordingStatus.IDLE)
        return transcript.strip()

    def _transition(self, to_status: RecordingStatus) -> None:
        from_status = self._status
        if from_status == to_status:
            return
        self._status = to_status
        if self._on_status_change:
            self._on_status_change(from_status, to_status)
