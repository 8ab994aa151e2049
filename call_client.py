"""HTTP client for the outbound call service."""

from __future__ import annotations

from typing import Optional

import httpx
import structlog

from errors import NETWORK_ERROR, TransportError

logger = structlog.get_logger(__name__)


class CallClient:
    def __init__(
        self,
        base_url: str,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def dispatch(self, to_number: str) -> None:
        try:
            resp = await self._client.post(
                f"{self._base_url}/outbound-call",
                json={"to_number": to_number},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(str(exc) or type(exc).__name__, code=NETWORK_ERROR) from exc

        if resp.is_error:
            detail = ""
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                detail = str(body.get("detail") or "")
            raise TransportError(detail or "Call failed", code=NETWORK_ERROR)

        logger.info("Outbound call dispatched", status=resp.status_code)
