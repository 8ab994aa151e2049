"""Core data models for the assistant session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class SessionState(str, Enum):
    AWAITING_UPLOAD = "AWAITING_UPLOAD"
    UPLOADING = "UPLOADING"
    INDEXED = "INDEXED"


class UploadStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"


class RecordingStatus(str, Enum):
    IDLE = "IDLE"
    CAPTURING = "CAPTURING"
    TRANSCRIBING = "TRANSCRIBING"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "bot"


class CallStatus(str, Enum):
    IDLE = "idle"
    CALLING = "calling"
    SUCCESS = "success"
    ERROR = "error"


class CallOutcome(str, Enum):
    DISPATCHED = "dispatched"
    INVALID_NUMBER = "invalid_number"
    COOLDOWN_ACTIVE = "cooldown_active"
    BUSY = "busy"
    FAILED = "failed"

    @property
    def dispatched(self) -> bool:
        return self is CallOutcome.DISPATCHED


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class AudioClip:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1

    @property
    def duration_s(self) -> float:
        frame_bytes = 2 * self.channels
        if not self.sample_rate or not frame_bytes:
            return 0.0
        return len(self.pcm16_bytes) / frame_bytes / self.sample_rate


@dataclass
class AudioHandle:
    """Temporary local file holding one synthesized answer."""

    path: Path
    content_type: str = "audio/mpeg"
    released: bool = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


@dataclass
class Message:
    text: str
    sender: Sender
    audio_handle: Optional[AudioHandle] = None

    def attach_audio(self, handle: AudioHandle) -> None:
        self.audio_handle = handle


@dataclass
class UploadJob:
    filename: str
    data: bytes
    status: UploadStatus = UploadStatus.IDLE
    context_id: str = ""
    reason: str = ""


@dataclass
class CooldownRecord:
    end_timestamp_ms: int

    def remaining_seconds(self, now_ms: int) -> int:
        remaining_ms = self.end_timestamp_ms - now_ms
        if remaining_ms <= 0:
            return 0
        return -(-remaining_ms // 1000)
