"""Extraction through the hosted slip parser function."""

from __future__ import annotations

import httpx
from loguru import logger
from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.schemas import BackendResponse, RawSlip
from ingestion.client import SlipParserClient
from ingestion.errors import BackendFailure

from .base import ModelTier, error_response


class EdgeFunctionBackend:
    """Speaks the ``{imageBase64, model}`` -> ``{success, data, error}`` contract."""

    name = "edge"

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client: SlipParserClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> SlipParserClient:
        if self._client is None:
            url = self.settings.slip_parser_url
            if not url:
                raise BackendFailure("SLIP_PARSER_URL is not configured")
            self._client = SlipParserClient(
                url=str(url),
                api_key=self.settings.slip_parser_api_key,
                timeout=self.settings.extraction_timeout_seconds,
            )
        return self._client

    async def parse(self, image_base64: str, *, model: ModelTier = "primary") -> BackendResponse:
        try:
            status_code, payload = await self.client.parse_slip(image_base64, model=model)
        except httpx.TimeoutException as exc:
            raise TimeoutError("Slip parser timed out") from exc
        except httpx.HTTPError as exc:
            raise BackendFailure(f"Slip parser request failed: {exc}") from exc

        if status_code >= 400:
            logger.warning("Slip parser returned status={} error={}", status_code, payload.get("error"))
            return error_response(status_code, payload.get("error"))
        try:
            data = payload.get("data")
            return BackendResponse(
                success=bool(payload.get("success")),
                data=RawSlip.model_validate(data) if isinstance(data, dict) else None,
                error=payload.get("error"),
                status_code=status_code,
            )
        except ValidationError as exc:
            return BackendResponse(success=False, error=f"Slip parser payload invalid: {exc}", status_code=status_code)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


__all__ = ["EdgeFunctionBackend"]
