from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.schemas import BackendResponse, RawSlip
from ingestion.images import ImagePayload


class FakeBackend:
    """Scripted backend: each call consumes the next step.

    A step is a ``BackendResponse``, an exception to raise, or a zero-argument
    coroutine function whose result is used.
    """

    name = "fake"

    def __init__(self, *steps: Any) -> None:
        self.steps = list(steps)
        self.calls: list[str] = []
        self.closed = False

    async def parse(self, image_base64: str, *, model: str = "primary") -> BackendResponse:
        self.calls.append(model)
        step = self.steps.pop(0) if self.steps else BackendResponse(success=False, error="no more steps")
        if callable(step) and not isinstance(step, BackendResponse):
            step = await step()
        if isinstance(step, BaseException):
            raise step
        return step

    async def aclose(self) -> None:
        self.closed = True


def slip_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "mandante": {"value": "FLAMENGO", "confidence": "high"},
        "visitante": {"value": "PALMEIRAS", "confidence": "high"},
        "dataHora": {"value": None, "confidence": "none"},
        "esporte": {"value": "Futebol", "confidence": "high"},
        "mercado": {"value": "Total de Gols", "confidence": "high"},
        "selecao": {"value": "Mais de 2.5", "confidence": "medium"},
        "odd": {"value": "1.85", "confidence": "high"},
        "stake": {"value": "100,00", "confidence": "high"},
        "retorno": {"value": None, "confidence": "none"},
        "resultado": {"value": None, "confidence": "none"},
        "bookmakerNome": {"value": "Bet365", "confidence": "high"},
    }
    for key, value in overrides.items():
        payload[key] = value
    return payload


def ok_response(**overrides: Any) -> BackendResponse:
    return BackendResponse(success=True, data=RawSlip.model_validate(slip_payload(**overrides)))


def slow(seconds: float, response: BackendResponse | None = None):
    async def _step() -> BackendResponse:
        await asyncio.sleep(seconds)
        return response or ok_response()

    return _step


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        gateway_api_key="test-key",
        slip_parser_url="https://parser.test/functions/parse-slip",
        slip_parser_api_key="parser-key",
        extraction_timeout_seconds=0.2,
        submit_debounce_seconds=0.0,
        min_image_bytes=16,
        coordinator_mode="independent",
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def png_image() -> ImagePayload:
    return ImagePayload(data=b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048, content_type="image/png")
