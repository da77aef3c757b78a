from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from . import schemas
from .core.config import get_settings, settings
from .services.ticket_service import TicketNotFoundError, TicketService, ticket_out
from ingestion.errors import DateAnomalyUnconfirmed, ImageValidationError, UnknownSlotError
from ingestion.images import ImagePayload
from pipelines.ticket import TicketSession

app = FastAPI(title="Slip Reader API", version="0.1.0", debug=settings.debug)


@app.exception_handler(TicketNotFoundError)
@app.exception_handler(UnknownSlotError)
async def _not_found(_: Request, exc: LookupError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ImageValidationError)
async def _invalid_image(_: Request, exc: ImageValidationError) -> JSONResponse:
    logger.info("Rejected image upload: {}", exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(DateAnomalyUnconfirmed)
async def _unconfirmed_date(_: Request, exc: DateAnomalyUnconfirmed) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "slot_index": exc.slot_index})


@lru_cache
def _ticket_service() -> TicketService:
    """Provide the process-wide ticket store."""

    return TicketService(get_settings())


def _session(ticket_id: str, service: TicketService = Depends(_ticket_service)) -> TicketSession:
    return service.get(ticket_id)


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


@app.post("/tickets", response_model=schemas.TicketOut, status_code=201, tags=["tickets"])
def create_ticket(payload: schemas.TicketCreate, service: TicketService = Depends(_ticket_service)):
    """Open a ticket with one slot per leg."""

    ticket_id, session = service.create(payload.legs, payload.mode)
    return ticket_out(ticket_id, session)


@app.get("/tickets/{ticket_id}", response_model=schemas.TicketOut, tags=["tickets"])
def get_ticket(ticket_id: str, session: TicketSession = Depends(_session)):
    return ticket_out(ticket_id, session)


@app.post("/tickets/{ticket_id}/legs/{slot_index}/image", response_model=schemas.TicketOut, tags=["legs"])
async def submit_image(
    ticket_id: str,
    slot_index: int,
    payload: schemas.ImageSubmission,
    session: TicketSession = Depends(_session),
):
    """Read a slip image into the given leg and return the updated ticket."""

    image = ImagePayload.from_base64(payload.image_base64, payload.content_type)
    await session.submit_leg(slot_index, image)
    return ticket_out(ticket_id, session)


@app.get("/tickets/{ticket_id}/legs/{slot_index}/form", response_model=schemas.FormValues, tags=["legs"])
def leg_form(slot_index: int, session: TicketSession = Depends(_session)):
    values = session.apply_result(slot_index)
    return schemas.FormValues(
        event=values.event,
        market=values.market,
        selection=values.selection,
        odd=values.odd,
        stake=values.stake,
        return_amount=values.return_amount,
        date=values.date,
    )


@app.post(
    "/tickets/{ticket_id}/legs/{slot_index}/market",
    response_model=schemas.MarketResolveResponse,
    tags=["legs"],
)
def resolve_market(
    slot_index: int,
    payload: schemas.MarketResolveRequest,
    session: TicketSession = Depends(_session),
):
    """Snap the leg's market onto the options offered for ``sport``."""

    market = session.resolve_market_for_sport(slot_index, payload.sport, payload.options or None)
    return schemas.MarketResolveResponse(market=market)


@app.post("/tickets/{ticket_id}/legs/{slot_index}/accept", response_model=schemas.TicketOut, tags=["legs"])
def accept_inference(ticket_id: str, slot_index: int, session: TicketSession = Depends(_session)):
    session.accept_inference(slot_index)
    return ticket_out(ticket_id, session)


@app.post("/tickets/{ticket_id}/legs/{slot_index}/reject", response_model=schemas.TicketOut, tags=["legs"])
def reject_inference(ticket_id: str, slot_index: int, session: TicketSession = Depends(_session)):
    session.reject_inference(slot_index)
    return ticket_out(ticket_id, session)


@app.post("/tickets/{ticket_id}/legs/{slot_index}/clear", response_model=schemas.TicketOut, tags=["legs"])
def clear_leg(ticket_id: str, slot_index: int, session: TicketSession = Depends(_session)):
    session.clear_slot(slot_index)
    return ticket_out(ticket_id, session)


@app.post(
    "/tickets/{ticket_id}/legs/{slot_index}/confirm-date",
    response_model=schemas.TicketOut,
    tags=["legs"],
)
def confirm_date(
    ticket_id: str,
    slot_index: int,
    payload: schemas.DateConfirmation,
    session: TicketSession = Depends(_session),
):
    """Record the caller's decision on a flagged settlement date."""

    session.confirm_date_anomaly(slot_index, payload.decision, payload.corrected_to)
    return ticket_out(ticket_id, session)


@app.post("/tickets/{ticket_id}/legs/{slot_index}/commit", response_model=schemas.FormValues, tags=["legs"])
def commit_leg(slot_index: int, session: TicketSession = Depends(_session)):
    """Return the final form values once the leg passes the commit gate."""

    session.ensure_commit_ready(slot_index)
    return leg_form(slot_index, session)


@app.delete("/tickets/{ticket_id}/legs", response_model=schemas.TicketOut, tags=["legs"])
def clear_legs(ticket_id: str, session: TicketSession = Depends(_session)):
    session.clear_all()
    return ticket_out(ticket_id, session)
