"""Microphone recorder adapter."""

from __future__ import annotations

import threading
import time
from typing import Any

import numpy as np
import structlog

from models import AudioClip, AudioFrame

try:
    import sounddevice as sd
except OSError:  # pragma: no cover - PortAudio library missing
    sd = None  # type: ignore

logger = structlog.get_logger(__name__)


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._frames: list[AudioFrame] = []

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("PortAudio is not available")
            self._frames = []
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
            self._running = True
            logger.debug("Microphone opened", sample_rate=self.sample_rate, channels=self.channels)

    def stop(self) -> AudioClip:
        with self._lock:
            if self._running:
                self._running = False
                if self._stream is not None:
                    self._stream.stop()
                    self._stream.close()
                    self._stream = None
            frames, self._frames = self._frames, []

        pcm = b"".join(frame.pcm16_bytes for frame in frames)
        return AudioClip(pcm16_bytes=pcm, sample_rate=self.sample_rate, channels=self.channels)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input stream status", status=str(status))
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        frame = AudioFrame(
            pcm16_bytes=payload,
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        with self._lock:
            if not self._running:
                return
            self._frames.append(frame)
