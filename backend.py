"""HTTP client for the document assistant backend.

One ``httpx.AsyncClient`` covers the four endpoints the chat session needs:
document indexing, turn exchange, speech synthesis and transcription. Every
failure is mapped to ``TransportError`` (or one of its subclasses) so callers
only deal with the error taxonomy in ``errors``.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from errors import (
    NETWORK_ERROR,
    PROTOCOL_ERROR,
    ContentTypeError,
    TransportError,
    UploadFailedError,
)

logger = structlog.get_logger(__name__)

AUDIO_MIME_TYPE = "audio/mpeg"


class BackendClient:
    def __init__(
        self,
        base_url: str,
        language_code: str = "en-IN",
        speaker: str = "anushka",
        timeout_s: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._language_code = language_code
        self._speaker = speaker
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def upload_document(self, filename: str, data: bytes) -> str:
        """Upload a document for indexing and return its context identifier."""
        files = {"file": (filename, data, "application/pdf")}
        try:
            resp = await self._client.post(f"{self._base_url}/document-upload", files=files)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Document upload failed", filename=filename, error=str(exc))
            raise UploadFailedError(str(exc) or "Upload failed") from exc

        if resp.is_error:
            reason = _error_detail(resp) or "Upload failed"
            logger.warning("Document upload rejected", status=resp.status_code, reason=reason)
            raise UploadFailedError(reason)

        body = _json_or_none(resp)
        if not isinstance(body, dict) or body.get("success") is not True:
            raise UploadFailedError("Upload was not accepted by the server")
        context_id = body.get("index_name")
        if not isinstance(context_id, str) or not context_id:
            raise UploadFailedError("Server did not return a document index")

        logger.info("Document indexed", filename=filename, context_id=context_id)
        return context_id

    async def ask(self, question: str, context_id: str) -> str:
        payload = {"question": question, "index_name": context_id}
        resp = await self._send("POST", "/chat", json=payload)
        body = _json_or_none(resp)
        answer = body.get("answer") if isinstance(body, dict) else None
        if not isinstance(answer, str):
            raise TransportError("chat response has no answer", code=PROTOCOL_ERROR)
        return answer

    async def synthesize_bytes(self, text: str) -> bytes:
        params = {
            "text": text,
            "language_code": self._language_code,
            "speaker": self._speaker,
        }
        resp = await self._send("GET", "/tts", params=params)
        content_type = (resp.headers.get("content-type") or "").split(";")[0].strip().lower()
        if content_type != AUDIO_MIME_TYPE:
            raise ContentTypeError(f"unexpected content type: {content_type or 'none'}")
        return resp.content

    async def transcribe(self, wav_bytes: bytes) -> str:
        files = {"file": ("speech.wav", wav_bytes, "audio/wav")}
        resp = await self._send(
            "POST",
            "/stt",
            params={"language_code": self._language_code},
            files=files,
        )
        body = _json_or_none(resp)
        transcript = body.get("transcript") if isinstance(body, dict) else None
        if not isinstance(transcript, str):
            raise TransportError("transcription response has no transcript", code=PROTOCOL_ERROR)
        return transcript

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(str(exc) or type(exc).__name__, code=NETWORK_ERROR) from exc
        if resp.is_error:
            detail = _error_detail(resp)
            raise TransportError(
                f"{path} returned {resp.status_code}" + (f": {detail}" if detail else ""),
                code=NETWORK_ERROR,
            )
        return resp


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _error_detail(resp: httpx.Response) -> str:
    body = _json_or_none(resp)
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return ""
