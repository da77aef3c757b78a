from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from app.core.config import settings


class SlipParserClient:
    """Thin async wrapper around the slip parser function endpoint."""

    def __init__(
        self,
        *,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_url = url or (str(settings.slip_parser_url) if settings.slip_parser_url else None)
        if not resolved_url:
            raise ValueError("SLIP_PARSER_URL is not configured")
        self.url = resolved_url
        self.api_key = api_key if api_key is not None else settings.slip_parser_api_key
        self.timeout = timeout or settings.extraction_timeout_seconds
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self.client = httpx.AsyncClient(timeout=self.timeout, headers=headers, transport=transport)

    @staticmethod
    def _build_body(image_base64: str, model: str | None) -> dict[str, Any]:
        body: dict[str, Any] = {"imageBase64": image_base64}
        if model:
            body["model"] = model
        return body

    async def parse_slip(self, image_base64: str, *, model: str | None = None) -> tuple[int, dict[str, Any]]:
        """POST the image and return ``(status_code, json_body)``."""

        logger.info("Slip parser POST {} model={} bytes={}", self.url, model, len(image_base64))
        response = await self.client.post(self.url, json=self._build_body(image_base64, model))
        try:
            payload = response.json()
        except ValueError:
            payload = {"error": response.text or f"HTTP {response.status_code}"}
        if not isinstance(payload, dict):
            payload = {"error": "Unexpected slip parser payload"}
        return response.status_code, payload

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "SlipParserClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
