"""Ticket-level session: slots, shared context and the job coordinator."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque

from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import (
    Confidence,
    DateAnomaly,
    DateAnomalyLogEntry,
    DateDecision,
    ExtractionField,
    MarketClassification,
    OddCalculation,
    OddMethod,
    PendingNormalization,
    SlipExtractionResult,
)
from ingestion.dates import anomaly_log_entry, detect_date_anomaly
from ingestion.errors import DateAnomalyUnconfirmed, ExtractionFailed, UnknownSlotError
from ingestion.images import ImagePayload
from ingestion.inference import apply_inference_rules
from ingestion.normalize import normalize_slip, resolve_market_for_sport
from ingestion.odds import compute_real_odd
from ingestion.service import ExtractionOrchestrator, build_orchestrator

from .context import SharedTicketContext
from .coordinator import CoordinatorMode, JobCoordinator, JobNotice, ProcessingJob
from .cross_leg import LegSnapshot, infer_sibling_legs

MAX_NOTICES = 50


@dataclass(slots=True)
class SlotState:
    """Everything the ticket knows about one leg."""

    index: int
    result: SlipExtractionResult | None = None
    is_inferred: bool = False
    inferred_from_slot: int | None = None
    pending: PendingNormalization | None = None
    classification: MarketClassification | None = None
    odd_calculation: OddCalculation | None = None
    date_anomaly: DateAnomaly | None = None
    date_confirmed: bool = False
    date_log: list[DateAnomalyLogEntry] = field(default_factory=list)
    resolved_market: str | None = None
    last_error: str | None = None

    @property
    def has_data(self) -> bool:
        return self.result is not None and self.result.has_data

    @property
    def needs_date_confirmation(self) -> bool:
        return bool(self.date_anomaly and self.date_anomaly.is_anomalous and not self.date_confirmed)

    def reset(self) -> None:
        self.result = None
        self.is_inferred = False
        self.inferred_from_slot = None
        self.pending = None
        self.classification = None
        self.odd_calculation = None
        self.date_anomaly = None
        self.date_confirmed = False
        self.date_log = []
        self.resolved_market = None
        self.last_error = None


@dataclass(slots=True, frozen=True)
class SlipFormValues:
    """Plain values a caller copies into its bet form."""

    event: str
    market: str
    selection: str
    odd: str
    stake: str
    return_amount: str
    date: str


@dataclass(slots=True, frozen=True)
class ProcessedSlip:
    result: SlipExtractionResult
    pending: PendingNormalization
    classification: MarketClassification | None
    odd_calculation: OddCalculation
    date_anomaly: DateAnomaly


class TicketSession:
    """Drives slip recognition for a ticket of one or more legs."""

    def __init__(
        self,
        legs: int = 1,
        *,
        orchestrator: ExtractionOrchestrator | None = None,
        mode: CoordinatorMode | str | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        if legs < 1:
            raise ValueError("A ticket needs at least one leg")
        self.settings = settings or get_settings()
        self.orchestrator = orchestrator or build_orchestrator(self.settings)
        self.slots = [SlotState(index) for index in range(legs)]
        self.context = SharedTicketContext()
        self.notices: Deque[JobNotice] = deque(maxlen=MAX_NOTICES)
        self._now = now
        resolved_mode = mode or (CoordinatorMode.EXCLUSIVE if legs == 1 else self.settings.coordinator_mode)
        self.coordinator: JobCoordinator[SlipExtractionResult] = JobCoordinator(
            self._extract,
            mode=resolved_mode,
            settings=self.settings,
            on_result=self._on_result,
            on_error=self._on_error,
            on_notice=self.notices.append,
            clock=clock,
        )

    @property
    def legs(self) -> int:
        return len(self.slots)

    @property
    def mode(self) -> CoordinatorMode:
        return self.coordinator.mode

    def slot(self, slot_index: int) -> SlotState:
        if not 0 <= slot_index < len(self.slots):
            raise UnknownSlotError(slot_index, len(self.slots))
        return self.slots[slot_index]

    def slot_status(self, slot_index: int) -> str:
        job = self.coordinator.current_job(self.slot(slot_index).index)
        return job.status.value if job is not None else "idle"

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    async def submit(self, image: ImagePayload) -> ProcessingJob | None:
        return await self.submit_leg(0, image)

    async def submit_leg(self, slot_index: int, image: ImagePayload) -> ProcessingJob | None:
        self.slot(slot_index)
        return await self.coordinator.submit(slot_index, image)

    async def _extract(
        self,
        job: ProcessingJob,
        on_fallback: Callable[[str], None],
    ) -> SlipExtractionResult:
        return await self.orchestrator.extract(
            job.image.to_base64(),
            on_fallback=on_fallback,
            cancel_event=job.cancel_event,
        )

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------
    def _with_context(self, result: SlipExtractionResult) -> SlipExtractionResult:
        changes: dict[str, ExtractionField] = {}
        if not result.sport.has_value and self.context.sport:
            changes["sport"] = ExtractionField(self.context.sport, Confidence.MEDIUM)
        if not result.event.has_value and self.context.event:
            changes["event"] = ExtractionField(self.context.event, Confidence.MEDIUM)
        return result.with_fields(**changes) if changes else result

    def process(self, result: SlipExtractionResult) -> ProcessedSlip:
        """Run inference, normalization, odd reconciliation and the date check."""

        result = apply_inference_rules(result)
        normalized = normalize_slip(result)
        result = normalized.result
        odd_calculation = compute_real_odd(
            result.return_amount, result.stake, result.odd, settings=self.settings
        )
        changes: dict[str, ExtractionField] = {}
        if odd_calculation.return_field != result.return_amount:
            changes["return_amount"] = odd_calculation.return_field
        if odd_calculation.method is OddMethod.ODD_DERIVED_FROM_RETURN:
            changes["odd"] = odd_calculation.odd_field
        if changes:
            result = result.with_fields(**changes)
        anomaly = detect_date_anomaly(result.kickoff.value, self._now(), settings=self.settings)
        return ProcessedSlip(
            result=result,
            pending=normalized.pending,
            classification=normalized.classification,
            odd_calculation=odd_calculation,
            date_anomaly=anomaly,
        )

    def _store(self, slot: SlotState, processed: ProcessedSlip) -> None:
        slot.reset()
        slot.result = processed.result
        slot.pending = processed.pending
        slot.classification = processed.classification
        slot.odd_calculation = processed.odd_calculation
        slot.date_anomaly = processed.date_anomaly
        if processed.date_anomaly.is_anomalous:
            slot.date_log.append(
                anomaly_log_entry(
                    processed.result.kickoff.value or "",
                    processed.date_anomaly,
                    decision=DateDecision.PENDING,
                    now=self._now(),
                )
            )

    def _on_result(self, job: ProcessingJob, result: SlipExtractionResult) -> None:
        slot = self.slot(job.slot_index)
        processed = self.process(self._with_context(result))
        self._store(slot, processed)
        logger.info(
            "Slot {} updated from job {} (market={}, selection={})",
            slot.index,
            job.id,
            processed.result.market.value,
            processed.result.selection.value,
        )

        self.context.claim("sport", processed.result.sport.value)
        self.context.claim("event", processed.result.event.value)
        self.context.claim("market", processed.pending.market_intent or processed.result.market.value)

        if self.legs > 1:
            self._infer_siblings(slot.index)

    def _on_error(self, job: ProcessingJob, exc: ExtractionFailed) -> None:
        self.slot(job.slot_index).last_error = exc.reason

    def _infer_siblings(self, source_index: int) -> None:
        snapshots = [
            LegSnapshot(
                result=slot.result,
                is_inferred=slot.is_inferred,
                busy=self.coordinator.is_busy(slot.index),
            )
            for slot in self.slots
        ]
        source = self.slots[source_index]
        for inferred in infer_sibling_legs(source_index, snapshots, source.classification):
            target = self.slots[inferred.slot_index]
            self._store(target, self.process(inferred.result))
            target.is_inferred = True
            target.inferred_from_slot = inferred.source_slot

    # ------------------------------------------------------------------
    # Caller operations
    # ------------------------------------------------------------------
    def apply_result(self, slot_index: int) -> SlipFormValues:
        slot = self.slot(slot_index)
        result = slot.result or SlipExtractionResult()
        market = slot.resolved_market
        if market is None and slot.pending is not None:
            market = resolve_market_for_sport(slot.pending, result.selection.value, result.sport.value)
        return SlipFormValues(
            event=result.event.value or "",
            market=market or result.market.value or "",
            selection=result.selection.value or "",
            odd=result.odd.value or "",
            stake=result.stake.value or "",
            return_amount=result.return_amount.value or "",
            date=result.kickoff.value or "",
        )

    def resolve_market_for_sport(
        self,
        slot_index: int,
        sport: str,
        options: list[str] | None = None,
    ) -> str:
        """Re-resolve the slot's market after the caller picked ``sport``."""

        slot = self.slot(slot_index)
        if slot.pending is None or slot.result is None:
            return ""
        market = resolve_market_for_sport(slot.pending, slot.result.selection.value, sport, options)
        slot.resolved_market = market or None
        return market

    def accept_inference(self, slot_index: int) -> None:
        slot = self.slot(slot_index)
        if slot.is_inferred:
            slot.is_inferred = False
            slot.inferred_from_slot = None

    def reject_inference(self, slot_index: int) -> None:
        if self.slot(slot_index).is_inferred:
            self.clear_slot(slot_index)

    def clear_slot(self, slot_index: int) -> None:
        slot = self.slot(slot_index)
        self.coordinator.invalidate(slot_index)
        slot.reset()
        for sibling in self.slots:
            if sibling.is_inferred and sibling.inferred_from_slot == slot_index:
                sibling.reset()
        if not any(other.has_data for other in self.slots):
            self.context.reset()

    def clear_all(self) -> None:
        for slot in self.slots:
            self.coordinator.invalidate(slot.index)
            slot.reset()
        self.context.reset()
        self.notices.clear()

    def confirm_date_anomaly(
        self,
        slot_index: int,
        decision: DateDecision | str = DateDecision.CONFIRMED,
        corrected_to: str | None = None,
    ) -> None:
        slot = self.slot(slot_index)
        decision = DateDecision(decision)
        if decision is DateDecision.PENDING:
            raise ValueError("A date decision must be confirmed or corrected")
        if decision is DateDecision.CORRECTED and not corrected_to:
            raise ValueError("A corrected date needs the corrected value")
        if slot.result is None or slot.date_anomaly is None or not slot.date_anomaly.is_anomalous:
            return

        slot.date_log.append(
            anomaly_log_entry(
                slot.result.kickoff.value or "",
                slot.date_anomaly,
                decision=decision,
                origin="user",
                corrected_to=corrected_to,
                now=self._now(),
            )
        )
        if decision is DateDecision.CORRECTED:
            slot.result = slot.result.with_fields(kickoff=ExtractionField(corrected_to, Confidence.HIGH))
        slot.date_confirmed = True
        logger.info("Slot {} date anomaly {}", slot_index, decision.value)

    def review_flags(self, slot_index: int) -> dict[str, bool]:
        slot = self.slot(slot_index)
        return slot.result.review_flags() if slot.result is not None else {}

    def is_commit_ready(self, slot_index: int) -> bool:
        slot = self.slot(slot_index)
        return (
            slot.has_data
            and not self.coordinator.is_busy(slot_index)
            and not slot.needs_date_confirmation
        )

    def ensure_commit_ready(self, slot_index: int) -> None:
        slot = self.slot(slot_index)
        if slot.needs_date_confirmation:
            raise DateAnomalyUnconfirmed(slot_index, slot.date_anomaly.reason)  # type: ignore[union-attr]

    def is_processing_any(self) -> bool:
        return self.coordinator.is_processing_any()


__all__ = ["ProcessedSlip", "SlipFormValues", "SlotState", "TicketSession"]
