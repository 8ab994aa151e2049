"""Tests for SoundDeviceRecorder."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from recorder import SoundDeviceRecorder


def _make_fake_audio_data(n_samples: int = 1600) -> np.ndarray:
    return np.ones((n_samples, 1), dtype=np.int16)


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_creates_stream_and_runs(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    recorder.start()

    mock_sd.InputStream.assert_called_once()
    assert mock_sd.InputStream.call_args.kwargs["blocksize"] == 1600
    mock_stream.start.assert_called_once()
    assert recorder.is_running is True

    clip = recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert clip.pcm16_bytes == b""
    assert recorder.is_running is False


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    recorder.start()
    recorder.start()  # second call should be no-op

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_is_idempotent(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    recorder.start()
    recorder.stop()
    clip = recorder.stop()  # second stop: should not raise

    assert mock_stream.close.call_count == 1
    assert clip.pcm16_bytes == b""


# ---------------------------------------------------------------
# Audio callback accumulates frames
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_frames_are_joined_into_clip(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000, channels=1, chunk_ms=100)
    recorder.start()

    # Simulate two callback invocations (like sounddevice would do)
    recorder._on_audio(_make_fake_audio_data(1600), frames=1600, time_info=None, status=None)
    recorder._on_audio(_make_fake_audio_data(1600), frames=1600, time_info=None, status=None)

    clip = recorder.stop()
    assert clip.sample_rate == 16000
    assert clip.channels == 1
    assert len(clip.pcm16_bytes) == 2 * 1600 * 2  # 16-bit = 2 bytes per sample
    assert clip.duration_s == pytest.approx(0.2)


@patch("recorder.sd")
def test_restart_discards_previous_clip(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    recorder.start()
    recorder._on_audio(_make_fake_audio_data(160), frames=160, time_info=None, status=None)
    recorder.stop()

    recorder.start()
    clip = recorder.stop()
    assert clip.pcm16_bytes == b""


# ---------------------------------------------------------------
# Device unavailable
# ---------------------------------------------------------------

def test_start_raises_without_portaudio(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    with pytest.raises(RuntimeError, match="PortAudio is not available"):
        recorder.start()


@patch("recorder.sd")
def test_stream_open_failure_propagates(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = OSError("Error querying device -1")

    recorder = SoundDeviceRecorder()
    with pytest.raises(OSError):
        recorder.start()
    assert recorder.is_running is False


# ---------------------------------------------------------------
# Callback after stop is a no-op
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    recorder.start()
    recorder.stop()

    recorder._on_audio(_make_fake_audio_data(1600), frames=1600, time_info=None, status=None)
    assert recorder.stop().pcm16_bytes == b""
