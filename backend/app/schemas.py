from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from app.domain import Confidence, ExtractionField


class RawField(BaseModel):
    value: str | None = None
    confidence: Confidence = Confidence.NONE

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        if not text or text.lower() in {"null", "none", "n/a"}:
            return None
        return text

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> Confidence:
        return Confidence.coerce(value)

    def to_field(self) -> ExtractionField:
        if self.value is None:
            return ExtractionField.empty()
        return ExtractionField(self.value, self.confidence)


def _raw(*names: str) -> Any:
    return Field(default_factory=RawField, validation_alias=AliasChoices(*names))


class RawSlip(BaseModel):
    """Backend payload; accepts the Portuguese wire keys or the English field names."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    home: RawField = _raw("mandante", "home")
    away: RawField = _raw("visitante", "away")
    event: RawField = _raw("evento", "event")
    kickoff: RawField = _raw("dataHora", "kickoff")
    sport: RawField = _raw("esporte", "sport")
    market: RawField = _raw("mercado", "market")
    selection: RawField = _raw("selecao", "selection")
    odd: RawField = _raw("odd")
    stake: RawField = _raw("stake")
    return_amount: RawField = _raw("retorno", "return_amount")
    outcome: RawField = _raw("resultado", "outcome")
    bookmaker: RawField = _raw("bookmakerNome", "bookmaker")

    @field_validator("*", mode="before")
    @classmethod
    def _wrap_bare_values(cls, value: Any) -> Any:
        # Some models answer "odd": "2.10" instead of an object.
        if value is None:
            return RawField()
        if isinstance(value, (str, int, float)):
            return {"value": value, "confidence": Confidence.LOW}
        return value


class BackendResponse(BaseModel):
    success: bool = False
    data: RawSlip | None = None
    error: str | None = None
    status_code: int | None = None


class FieldOut(BaseModel):
    value: str | None
    confidence: Confidence
    needs_review: bool

    @classmethod
    def from_field(cls, field: ExtractionField) -> "FieldOut":
        return cls(value=field.value, confidence=field.confidence, needs_review=field.needs_review)


class OddCalculationOut(BaseModel):
    method: str
    displayed_odd: float | None = None
    real_odd: float | None = None
    confidence: Confidence
    has_hidden_decimal: bool
    delta: float | None = None


class DateAnomalyOut(BaseModel):
    is_anomalous: bool
    severity: str
    kind: str
    reason: str | None = None
    suggested_action: str | None = None
    difference_in_days: int | None = None
    detected_date: datetime | None = None
    confirmed: bool = False


class SlotOut(BaseModel):
    slot_index: int
    status: str
    has_data: bool
    is_inferred: bool
    inferred_from_slot: int | None = None
    last_error: str | None = None
    fields: dict[str, FieldOut] = Field(default_factory=dict)
    market_intent: str | None = None
    odd_calculation: OddCalculationOut | None = None
    date_anomaly: DateAnomalyOut | None = None
    commit_ready: bool


class TicketContextOut(BaseModel):
    sport: str | None = None
    event: str | None = None
    market: str | None = None


class NoticeOut(BaseModel):
    kind: str
    slot_index: int
    message: str


class TicketOut(BaseModel):
    ticket_id: str
    legs: int
    mode: str
    processing: bool
    context: TicketContextOut
    slots: list[SlotOut]
    notices: list[NoticeOut] = Field(default_factory=list)


class TicketCreate(BaseModel):
    legs: int = Field(default=1, ge=1, le=3)
    mode: Literal["exclusive", "independent", "concurrent"] | None = None


class ImageSubmission(BaseModel):
    image_base64: str = Field(validation_alias=AliasChoices("imageBase64", "image_base64"))
    content_type: str | None = Field(
        default=None, validation_alias=AliasChoices("contentType", "content_type")
    )

    model_config = {"populate_by_name": True}


class FormValues(BaseModel):
    event: str
    market: str
    selection: str
    odd: str
    stake: str
    return_amount: str
    date: str


class MarketResolveRequest(BaseModel):
    sport: str
    options: list[str] = Field(default_factory=list)


class MarketResolveResponse(BaseModel):
    market: str


class DateConfirmation(BaseModel):
    decision: Literal["confirmed", "corrected"] = "confirmed"
    corrected_to: str | None = None

    @model_validator(mode="after")
    def _require_correction(self) -> "DateConfirmation":
        if self.decision == "corrected" and not (self.corrected_to or "").strip():
            raise ValueError("corrected_to is required when the decision is 'corrected'")
        return self
