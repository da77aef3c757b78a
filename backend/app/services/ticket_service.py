"""In-memory ticket store plus the mapping from sessions to API schemas."""

from __future__ import annotations

import uuid
from typing import Callable, Dict

from loguru import logger

from app.core.config import Settings, get_settings
from app.schemas import (
    DateAnomalyOut,
    FieldOut,
    NoticeOut,
    OddCalculationOut,
    SlotOut,
    TicketContextOut,
    TicketOut,
)
from pipelines.ticket import SlotState, TicketSession


class TicketNotFoundError(LookupError):
    def __init__(self, ticket_id: str) -> None:
        self.ticket_id = ticket_id
        super().__init__(f"Ticket '{ticket_id}' not found")


SessionFactory = Callable[..., TicketSession]


class TicketService:
    """Keeps live ticket sessions for the lifetime of the process."""

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory or TicketSession
        self._tickets: Dict[str, TicketSession] = {}

    def create(self, legs: int = 1, mode: str | None = None) -> tuple[str, TicketSession]:
        ticket_id = uuid.uuid4().hex
        session = self._session_factory(legs, mode=mode, settings=self.settings)
        self._tickets[ticket_id] = session
        logger.info("Created ticket {} with {} leg(s) in {} mode", ticket_id, legs, session.mode.value)
        return ticket_id, session

    def get(self, ticket_id: str) -> TicketSession:
        try:
            return self._tickets[ticket_id]
        except KeyError as exc:
            raise TicketNotFoundError(ticket_id) from exc

    def delete(self, ticket_id: str) -> None:
        self.get(ticket_id).clear_all()
        del self._tickets[ticket_id]

    def __len__(self) -> int:
        return len(self._tickets)


def slot_out(session: TicketSession, slot: SlotState) -> SlotOut:
    odd = slot.odd_calculation
    anomaly = slot.date_anomaly
    return SlotOut(
        slot_index=slot.index,
        status=session.slot_status(slot.index),
        has_data=slot.has_data,
        is_inferred=slot.is_inferred,
        inferred_from_slot=slot.inferred_from_slot,
        last_error=slot.last_error,
        fields=(
            {name: FieldOut.from_field(value) for name, value in slot.result.fields().items()}
            if slot.result is not None
            else {}
        ),
        market_intent=slot.pending.market_intent if slot.pending else None,
        odd_calculation=(
            OddCalculationOut(
                method=odd.method.value,
                displayed_odd=odd.displayed_odd,
                real_odd=odd.real_odd,
                confidence=odd.confidence,
                has_hidden_decimal=odd.has_hidden_decimal,
                delta=odd.delta,
            )
            if odd is not None
            else None
        ),
        date_anomaly=(
            DateAnomalyOut(
                is_anomalous=anomaly.is_anomalous,
                severity=anomaly.severity.value,
                kind=anomaly.kind.value,
                reason=anomaly.reason,
                suggested_action=anomaly.suggested_action,
                difference_in_days=anomaly.difference_in_days,
                detected_date=anomaly.detected_date,
                confirmed=slot.date_confirmed,
            )
            if anomaly is not None
            else None
        ),
        commit_ready=session.is_commit_ready(slot.index),
    )


def ticket_out(ticket_id: str, session: TicketSession) -> TicketOut:
    return TicketOut(
        ticket_id=ticket_id,
        legs=session.legs,
        mode=session.mode.value,
        processing=session.is_processing_any(),
        context=TicketContextOut(**session.context.as_dict()),
        slots=[slot_out(session, slot) for slot in session.slots],
        notices=[
            NoticeOut(kind=notice.kind, slot_index=notice.slot_index, message=notice.message)
            for notice in session.notices
        ],
    )


__all__ = ["TicketNotFoundError", "TicketService", "slot_out", "ticket_out"]
