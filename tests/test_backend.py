"""Tests for BackendClient and CallClient against a mocked transport."""

from __future__ import annotations

import json

import httpx
import pytest

from backend import BackendClient
from call_client import CallClient
from errors import (
    CONTENT_TYPE_ERROR,
    NETWORK_ERROR,
    PROTOCOL_ERROR,
    ContentTypeError,
    TransportError,
    UploadFailedError,
)


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _backend(handler) -> BackendClient:  # noqa: ANN001
    return BackendClient("https://api.test/", client=_client(handler))


@pytest.mark.asyncio
async def test_upload_document_returns_index_name() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "index_name": "doc-42"})

    backend = _backend(handler)
    assert await backend.upload_document("policy.pdf", b"%PDF-1.4") == "doc-42"

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/document-upload"
    assert request.headers["content-type"].startswith("multipart/form-data")
    body = request.read()
    assert b'name="file"; filename="policy.pdf"' in body
    assert b"%PDF-1.4" in body


@pytest.mark.asyncio
async def test_upload_document_non_2xx_uses_detail() -> None:
    backend = _backend(lambda r: httpx.Response(413, json={"detail": "File too large"}))

    with pytest.raises(UploadFailedError, match="File too large"):
        await backend.upload_document("big.pdf", b"x")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{"success": False}, {"success": True}, {"success": True, "index_name": ""}, ["not", "a", "dict"]],
)
async def test_upload_document_rejects_incomplete_success(body) -> None:  # noqa: ANN001
    backend = _backend(lambda r: httpx.Response(200, json=body))

    with pytest.raises(UploadFailedError):
        await backend.upload_document("a.pdf", b"x")


@pytest.mark.asyncio
async def test_upload_document_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UploadFailedError, match="connection refused"):
        await _backend(handler).upload_document("a.pdf", b"x")


@pytest.mark.asyncio
async def test_upload_document_invalid_url_is_upload_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid port")

    with pytest.raises(UploadFailedError, match="Invalid port"):
        await _backend(handler).upload_document("a.pdf", b"x")


@pytest.mark.asyncio
async def test_ask_invalid_url_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid port")

    with pytest.raises(TransportError) as info:
        await _backend(handler).ask("q", "doc-42")
    assert info.value.code == NETWORK_ERROR


@pytest.mark.asyncio
async def test_ask_sends_question_and_context() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.read()))
        return httpx.Response(200, json={"answer": "Refunds within 30 days."})

    answer = await _backend(handler).ask("What is the refund policy?", "doc-42")

    assert answer == "Refunds within 30 days."
    assert seen == [{"question": "What is the refund policy?", "index_name": "doc-42"}]


@pytest.mark.asyncio
async def test_ask_malformed_body_is_protocol_error() -> None:
    backend = _backend(lambda r: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(TransportError) as info:
        await backend.ask("q", "doc-42")
    assert info.value.code == PROTOCOL_ERROR


@pytest.mark.asyncio
async def test_ask_server_error_is_transport_error() -> None:
    with pytest.raises(TransportError):
        await _backend(lambda r: httpx.Response(500)).ask("q", "doc-42")


@pytest.mark.asyncio
async def test_synthesize_bytes_checks_content_type() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"ID3audio", headers={"content-type": "audio/mpeg"})

    audio = await _backend(handler).synthesize_bytes("Hello there")

    assert audio == b"ID3audio"
    params = seen[0].url.params
    assert seen[0].url.path == "/tts"
    assert params["text"] == "Hello there"
    assert params["language_code"] == "en-IN"
    assert params["speaker"] == "anushka"


@pytest.mark.asyncio
async def test_synthesize_bytes_rejects_non_audio() -> None:
    backend = _backend(lambda r: httpx.Response(200, json={"error": "quota"}))

    with pytest.raises(ContentTypeError) as info:
        await backend.synthesize_bytes("Hello")
    assert info.value.code == CONTENT_TYPE_ERROR


@pytest.mark.asyncio
async def test_transcribe_posts_wav_with_locale() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"transcript": "hello"})

    text = await _backend(handler).transcribe(b"RIFFdata")

    assert text == "hello"
    assert seen[0].url.path == "/stt"
    assert seen[0].url.params["language_code"] == "en-IN"
    assert b'filename="speech.wav"' in seen[0].read()


@pytest.mark.asyncio
async def test_transcribe_missing_transcript() -> None:
    with pytest.raises(TransportError):
        await _backend(lambda r: httpx.Response(200, json={})).transcribe(b"RIFF")


@pytest.mark.asyncio
async def test_call_client_dispatch() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/outbound-call"
        seen.append(json.loads(request.read()))
        return httpx.Response(200, json={"status": "queued"})

    client = CallClient("https://calls.test", client=_client(handler))
    await client.dispatch("+919876543210")

    assert seen == [{"to_number": "+919876543210"}]


@pytest.mark.asyncio
async def test_call_client_error_carries_detail() -> None:
    client = CallClient(
        "https://calls.test",
        client=_client(lambda r: httpx.Response(400, json={"detail": "Number unreachable"})),
    )

    with pytest.raises(TransportError, match="Number unreachable"):
        await client.dispatch("+919876543210")


@pytest.mark.asyncio
async def test_call_client_invalid_url_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid port")

    client = CallClient("https://calls.test", client=_client(handler))

    with pytest.raises(TransportError) as info:
        await client.dispatch("+919876543210")
    assert info.value.code == NETWORK_ERROR
