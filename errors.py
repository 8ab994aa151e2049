"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

EMPTY_INPUT = "EMPTY_INPUT"
INVALID_PHONE = "INVALID_PHONE"
NETWORK_ERROR = "NETWORK_ERROR"
PROTOCOL_ERROR = "PROTOCOL_ERROR"
DEVICE_ERROR = "DEVICE_ERROR"
CONTENT_TYPE_ERROR = "CONTENT_TYPE_ERROR"
UPLOAD_FAILED = "UPLOAD_FAILED"
ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"

ERROR_MESSAGES = {
    EMPTY_INPUT: "Please type a question first.",
    INVALID_PHONE: "Please enter a valid 10-digit number.",
    NETWORK_ERROR: "Network failed, please retry.",
    PROTOCOL_ERROR: "Server response format is invalid.",
    DEVICE_ERROR: "Microphone is unavailable or permission was denied.",
    CONTENT_TYPE_ERROR: "Audio could not be generated for this answer.",
    UPLOAD_FAILED: "Upload failed.",
    ILLEGAL_TRANSITION: "That action is not available right now.",
}


class AssistantError(Exception):
    code = PROTOCOL_ERROR

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        super().__init__(self.message)


class ValidationError(AssistantError):
    code = EMPTY_INPUT


class TransportError(AssistantError):
    code = NETWORK_ERROR


class ContentTypeError(TransportError):
    code = CONTENT_TYPE_ERROR


class UploadFailedError(AssistantError):
    code = UPLOAD_FAILED


class DeviceError(AssistantError):
    code = DEVICE_ERROR


class IllegalTransitionError(AssistantError):
    code = ILLEGAL_TRANSITION


class RecordingBusyError(IllegalTransitionError):
    """A capture is already outstanding."""
