from __future__ import annotations

import asyncio
import time
from typing import Callable

from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import Confidence, SlipExtractionResult
from app.schemas import BackendResponse, RawSlip
from app.services.extraction import ExtractionBackend, ModelTier, get_backend
from app.services.extraction.base import exception_summary, status_code_from_exception

from .errors import (
    BackendFailure,
    ExtractionAttempt,
    ExtractionCancelled,
    ExtractionFailed,
    ExtractionInvalidResponse,
    ExtractionQuotaExhausted,
    ExtractionRateLimited,
    ExtractionTimeout,
)
from .normalize import build_event_field
from .taxonomy import normalize_text

FALLBACK_NOTICE = "Tentando alternativa..."

# Fields that prove the backend actually read a slip.
_SIGNAL_FIELDS = ("odd", "stake", "home", "away", "selection")
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "limite de requisi")
_QUOTA_MARKERS = ("credit", "quota", "payment required", "insufficient funds")


def is_valid_response(response: BackendResponse | None) -> bool:
    if response is None or not response.success or response.data is None:
        return False
    return any(
        getattr(response.data, name).confidence is not Confidence.NONE for name in _SIGNAL_FIELDS
    )


def build_result(raw: RawSlip) -> SlipExtractionResult:
    """Convert a validated payload into a result with its event derived."""

    home = raw.home.to_field()
    away = raw.away.to_field()
    event = build_event_field(home, away) if home.has_value or away.has_value else raw.event.to_field()
    return SlipExtractionResult(
        home=home,
        away=away,
        event=event,
        kickoff=raw.kickoff.to_field(),
        sport=raw.sport.to_field(),
        market=raw.market.to_field(),
        selection=raw.selection.to_field(),
        odd=raw.odd.to_field(),
        stake=raw.stake.to_field(),
        return_amount=raw.return_amount.to_field(),
        outcome=raw.outcome.to_field(),
        bookmaker=raw.bookmaker.to_field(),
    )


def _has_marker(attempt: ExtractionAttempt, code: int, markers: tuple[str, ...]) -> bool:
    if attempt.status_code == code:
        return True
    text = normalize_text(attempt.error)
    return any(marker in text for marker in markers)


def failure_for(attempts: list[ExtractionAttempt]) -> ExtractionFailed:
    """Pick the single user-facing failure for a set of failed attempts."""

    if attempts and all(attempt.outcome == "timeout" for attempt in attempts):
        return ExtractionTimeout(attempts=attempts)
    if any(_has_marker(attempt, 429, _RATE_LIMIT_MARKERS) for attempt in attempts):
        return ExtractionRateLimited(attempts=attempts)
    if any(_has_marker(attempt, 402, _QUOTA_MARKERS) for attempt in attempts):
        return ExtractionQuotaExhausted(attempts=attempts)
    return ExtractionInvalidResponse(attempts=attempts)


class ExtractionOrchestrator:
    """Primary-then-backup extraction under a hard per-call timeout."""

    def __init__(
        self,
        backend: ExtractionBackend,
        *,
        backup_backend: ExtractionBackend | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.backend = backend
        self.backup_backend = backup_backend
        self.settings = settings or get_settings()

    async def _attempt(
        self,
        backend: ExtractionBackend,
        image_base64: str,
        tier: ModelTier,
        cancel_event: asyncio.Event | None = None,
    ) -> tuple[BackendResponse | None, ExtractionAttempt]:
        started = time.monotonic()

        def _elapsed() -> float:
            return round(time.monotonic() - started, 3)

        parse_task = asyncio.ensure_future(backend.parse(image_base64, model=tier))
        waiters = {parse_task}
        if cancel_event is not None:
            waiters.add(asyncio.ensure_future(cancel_event.wait()))
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.settings.extraction_timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in waiters:
                task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if parse_task not in done and cancel_event is not None and cancel_event.is_set():
            logger.debug("Extraction on {} tier cancelled after {}s", tier, _elapsed())
            return None, ExtractionAttempt(tier=tier, outcome="cancelled", elapsed_seconds=_elapsed())

        try:
            if parse_task not in done:
                raise asyncio.TimeoutError
            response = parse_task.result()
        except (asyncio.TimeoutError, TimeoutError):
            return None, ExtractionAttempt(
                tier=tier,
                outcome="timeout",
                error=f"No answer within {self.settings.extraction_timeout_seconds}s",
                elapsed_seconds=_elapsed(),
            )
        except BackendFailure as exc:
            return None, ExtractionAttempt(
                tier=tier,
                outcome="error",
                error=exc.message,
                status_code=exc.status_code,
                elapsed_seconds=_elapsed(),
            )
        except Exception as exc:  # noqa: BLE001 - a backend fault only ends this attempt
            return None, ExtractionAttempt(
                tier=tier,
                outcome="error",
                error=exception_summary(exc),
                status_code=status_code_from_exception(exc),
                elapsed_seconds=_elapsed(),
            )

        if not response.success:
            return response, ExtractionAttempt(
                tier=tier,
                outcome="error",
                error=response.error,
                status_code=response.status_code,
                elapsed_seconds=_elapsed(),
            )
        if not is_valid_response(response):
            return response, ExtractionAttempt(
                tier=tier,
                outcome="invalid",
                error="Response carried no recognizable slip fields",
                elapsed_seconds=_elapsed(),
            )
        return response, ExtractionAttempt(tier=tier, outcome="ok", elapsed_seconds=_elapsed())

    async def extract(
        self,
        image_base64: str,
        *,
        on_fallback: Callable[[str], None] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SlipExtractionResult:
        """Return the extracted slip or raise :class:`ExtractionFailed`."""

        attempts: list[ExtractionAttempt] = []
        tiers: tuple[tuple[ExtractionBackend, ModelTier], ...] = (
            (self.backend, "primary"),
            (self.backup_backend or self.backend, "backup"),
        )
        for index, (backend, tier) in enumerate(tiers):
            if index > 0:
                logger.warning(
                    "Primary extraction failed ({}: {}); trying backup",
                    attempts[-1].outcome,
                    attempts[-1].error,
                )
                if on_fallback is not None:
                    on_fallback(FALLBACK_NOTICE)
            if cancel_event is not None and cancel_event.is_set():
                raise ExtractionCancelled(attempts=attempts)

            response, attempt = await self._attempt(backend, image_base64, tier, cancel_event)
            attempts.append(attempt)
            if attempt.outcome == "cancelled":
                raise ExtractionCancelled(attempts=attempts)
            if attempt.outcome == "ok" and response is not None and response.data is not None:
                logger.info(
                    "Slip extracted by {} tier via {} in {}s",
                    tier,
                    getattr(backend, "name", type(backend).__name__),
                    attempt.elapsed_seconds,
                )
                return build_result(response.data)

        failure = failure_for(attempts)
        logger.error(
            "Slip extraction failed: {} attempts={}",
            failure.reason,
            [attempt.as_dict() for attempt in attempts],
        )
        raise failure


def build_orchestrator(settings: Settings | None = None) -> ExtractionOrchestrator:
    resolved = settings or get_settings()
    return ExtractionOrchestrator(get_backend(settings=resolved), settings=resolved)


__all__ = [
    "FALLBACK_NOTICE",
    "ExtractionOrchestrator",
    "build_orchestrator",
    "build_result",
    "failure_for",
    "is_valid_response",
]
