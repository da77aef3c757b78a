from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class SlipPipelineError(Exception):
    """Base class for failures surfaced by the slip recognition pipeline."""


class ImageValidationError(SlipPipelineError, ValueError):
    """Raised synchronously when an image is rejected before a job is created."""


class UnknownExtractionBackendError(SlipPipelineError, LookupError):
    """Raised when configuration names an unregistered extraction backend."""


@dataclass(slots=True)
class ExtractionAttempt:
    """Diagnostics captured for one call against an extraction tier."""

    tier: str
    outcome: str
    error: str | None = None
    status_code: int | None = None
    elapsed_seconds: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "outcome": self.outcome,
            "error": self.error,
            "status_code": self.status_code,
            "elapsed_seconds": self.elapsed_seconds,
        }


class ExtractionFailed(SlipPipelineError):
    """Raised when neither extraction tier produced a usable slip."""

    default_reason = "Não foi possível ler o boletim. Tente outra imagem."

    def __init__(
        self,
        reason: str | None = None,
        *,
        attempts: list[ExtractionAttempt] | None = None,
    ) -> None:
        self.reason = reason or self.default_reason
        self.attempts = list(attempts or [])
        super().__init__(self.reason)


class ExtractionTimeout(ExtractionFailed):
    default_reason = "Servidor lento. Tente novamente em instantes."


class ExtractionRateLimited(ExtractionFailed):
    default_reason = "Limite de requisições excedido. Aguarde alguns segundos."


class ExtractionQuotaExhausted(ExtractionFailed):
    default_reason = "Créditos de IA insuficientes."


class ExtractionInvalidResponse(ExtractionFailed):
    """Both tiers answered, but neither answer carried a recognizable slip."""


class ExtractionCancelled(ExtractionFailed):
    default_reason = "Leitura cancelada."


class NormalizationAmbiguous(SlipPipelineError):
    """Raised when a value only matched through an alias or fallback."""

    def __init__(self, raw: str, candidate: str) -> None:
        self.raw = raw
        self.candidate = candidate
        super().__init__(f"'{raw}' only loosely matches '{candidate}'")


class DateAnomalyUnconfirmed(SlipPipelineError):
    """Raised when a slot with a flagged settlement date is committed unconfirmed."""

    def __init__(self, slot_index: int, detail: str | None = None) -> None:
        self.slot_index = slot_index
        message = f"Slot {slot_index} has an unconfirmed date anomaly"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class BackendFailure(SlipPipelineError):
    """Raised by backends for transport-level failures with an HTTP status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code})"
        return self.message


class UnknownSlotError(SlipPipelineError, IndexError):
    """Raised when an operation names a slot the ticket does not have."""

    def __init__(self, slot_index: int, legs: int) -> None:
        self.slot_index = slot_index
        super().__init__(f"Slot {slot_index} does not exist on a {legs}-leg ticket")
