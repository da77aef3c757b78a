"""Contracts shared by slip extraction backends."""

from __future__ import annotations

from typing import Literal, Protocol

from app.schemas import BackendResponse

ModelTier = Literal["primary", "backup"]

RATE_LIMIT_MESSAGE = "Limite de requisições excedido. Tente novamente em alguns segundos."
QUOTA_MESSAGE = "Créditos de IA insuficientes."


class ExtractionBackend(Protocol):
    """Interface implemented by extraction backend adapters."""

    name: str

    async def parse(self, image_base64: str, *, model: ModelTier = "primary") -> BackendResponse:
        """Read a slip image and return per-field values with confidences.

        Expected failures (rate limits, quota, unreadable answers) come back as
        ``success=False`` responses; transport faults may raise.
        """

    async def aclose(self) -> None:
        """Release any network resources held by the backend."""


def status_code_from_exception(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    if response is not None:
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
    return None


def exception_summary(exc: Exception) -> str:
    parts = [exc.__class__.__name__]
    status = status_code_from_exception(exc)
    if isinstance(status, int):
        parts.append(f"status={status}")
    message = str(exc)
    if message:
        parts.append(message)
    return ": ".join([parts[0], " ".join(parts[1:])]) if len(parts) > 1 else parts[0]


def error_response(status_code: int | None, message: str | None) -> BackendResponse:
    """Map HTTP-style failures onto the messages callers key off."""

    if status_code == 429:
        return BackendResponse(success=False, error=RATE_LIMIT_MESSAGE, status_code=429)
    if status_code == 402:
        return BackendResponse(success=False, error=QUOTA_MESSAGE, status_code=402)
    return BackendResponse(success=False, error=message or "Unknown error", status_code=status_code)


__all__ = [
    "ExtractionBackend",
    "ModelTier",
    "QUOTA_MESSAGE",
    "RATE_LIMIT_MESSAGE",
    "error_response",
    "exception_summary",
    "status_code_from_exception",
]
