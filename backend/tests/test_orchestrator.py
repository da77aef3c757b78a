from __future__ import annotations

import asyncio

import pytest
from conftest import FakeBackend, ok_response, slow

from app.domain import Confidence, ExtractionField
from app.schemas import BackendResponse, RawSlip
from ingestion.errors import (
    BackendFailure,
    ExtractionAttempt,
    ExtractionCancelled,
    ExtractionInvalidResponse,
    ExtractionQuotaExhausted,
    ExtractionRateLimited,
    ExtractionTimeout,
)
from ingestion.service import (
    FALLBACK_NOTICE,
    ExtractionOrchestrator,
    build_result,
    failure_for,
    is_valid_response,
)

EMPTY = BackendResponse(success=True, data=RawSlip())


def _run(orchestrator: ExtractionOrchestrator, **kwargs):
    return asyncio.run(orchestrator.extract("aW1hZ2U=", **kwargs))


def test_build_result_derives_event_from_teams():
    raw = RawSlip.model_validate(
        {
            "mandante": {"value": "A", "confidence": "high"},
            "visitante": {"value": "B", "confidence": "low"},
            "evento": {"value": "ignored", "confidence": "high"},
        }
    )

    result = build_result(raw)

    assert result.event == ExtractionField("A x B", Confidence.LOW)


def test_build_result_keeps_raw_event_without_teams():
    result = build_result(RawSlip.model_validate({"evento": {"value": "Final da Copa", "confidence": "medium"}}))

    assert result.event == ExtractionField("Final da Copa", Confidence.MEDIUM)


def test_valid_response_needs_a_meaningful_field():
    assert is_valid_response(ok_response()) is True
    assert is_valid_response(EMPTY) is False
    assert is_valid_response(BackendResponse(success=False, error="boom")) is False
    only_bookmaker = BackendResponse(
        success=True, data=RawSlip.model_validate({"bookmakerNome": {"value": "Bet365", "confidence": "high"}})
    )
    assert is_valid_response(only_bookmaker) is False


def test_primary_success_skips_backup(test_settings):
    backend = FakeBackend(ok_response())
    notices: list[str] = []

    result = _run(ExtractionOrchestrator(backend, settings=test_settings), on_fallback=notices.append)

    assert backend.calls == ["primary"]
    assert notices == []
    assert result.home.value == "FLAMENGO"
    assert result.event.value == "FLAMENGO x PALMEIRAS"


def test_timeout_then_valid_backup_returns_backup_result(test_settings):
    backup = ok_response(selecao={"value": "Menos de 3.5", "confidence": "high"})
    backend = FakeBackend(slow(5), backup)
    notices: list[str] = []

    result = _run(ExtractionOrchestrator(backend, settings=test_settings), on_fallback=notices.append)

    assert backend.calls == ["primary", "backup"]
    assert notices == [FALLBACK_NOTICE]
    assert result.selection.value == "Menos de 3.5"


def test_empty_primary_response_triggers_backup(test_settings):
    backend = FakeBackend(EMPTY, ok_response())

    result = _run(ExtractionOrchestrator(backend, settings=test_settings))

    assert backend.calls == ["primary", "backup"]
    assert result.odd.value == "1.85"


def test_separate_backup_backend_is_used(test_settings):
    primary = FakeBackend(BackendFailure("connection reset"))
    backup = FakeBackend(ok_response())

    _run(ExtractionOrchestrator(primary, backup_backend=backup, settings=test_settings))

    assert primary.calls == ["primary"]
    assert backup.calls == ["backup"]


def test_both_timeouts_report_slow_server(test_settings):
    backend = FakeBackend(slow(5), TimeoutError("gateway timed out"))

    with pytest.raises(ExtractionTimeout) as excinfo:
        _run(ExtractionOrchestrator(backend, settings=test_settings))

    assert [attempt.outcome for attempt in excinfo.value.attempts] == ["timeout", "timeout"]
    assert excinfo.value.reason == ExtractionTimeout.default_reason


def test_rate_limit_outranks_quota_and_invalid(test_settings):
    backend = FakeBackend(
        BackendResponse(success=False, error="Créditos de IA insuficientes.", status_code=402),
        BackendResponse(success=False, error="Too Many Requests", status_code=429),
    )

    with pytest.raises(ExtractionRateLimited):
        _run(ExtractionOrchestrator(backend, settings=test_settings))


def test_quota_signal_in_message(test_settings):
    backend = FakeBackend(EMPTY, BackendResponse(success=False, error="insufficient credits on account"))

    with pytest.raises(ExtractionQuotaExhausted):
        _run(ExtractionOrchestrator(backend, settings=test_settings))


def test_generic_failure_is_invalid_response(test_settings):
    backend = FakeBackend(EMPTY, RuntimeError("unexpected"))

    with pytest.raises(ExtractionInvalidResponse) as excinfo:
        _run(ExtractionOrchestrator(backend, settings=test_settings))

    assert excinfo.value.attempts[1].error.startswith("RuntimeError")


def test_cancellation_before_backup_skips_it(test_settings):
    cancel = asyncio.Event()
    backend = FakeBackend(EMPTY, ok_response())

    def _cancel_on_fallback(_: str) -> None:
        cancel.set()

    orchestrator = ExtractionOrchestrator(backend, settings=test_settings)
    with pytest.raises(ExtractionCancelled):
        asyncio.run(orchestrator.extract("aW1hZ2U=", cancel_event=cancel, on_fallback=_cancel_on_fallback))

    assert backend.calls == ["primary"]


def test_cancellation_interrupts_the_call_in_flight(test_settings):
    settings = test_settings.model_copy(update={"extraction_timeout_seconds": 5.0})
    backend = FakeBackend(slow(5), ok_response())
    orchestrator = ExtractionOrchestrator(backend, settings=settings)

    async def scenario():
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.02, cancel.set)
        started = asyncio.get_running_loop().time()
        with pytest.raises(ExtractionCancelled) as excinfo:
            await orchestrator.extract("aW1hZ2U=", cancel_event=cancel)
        return asyncio.get_running_loop().time() - started, excinfo.value

    elapsed, error = asyncio.run(scenario())

    assert elapsed < 1.0
    assert backend.calls == ["primary"]
    assert [attempt.outcome for attempt in error.attempts] == ["cancelled"]


@pytest.mark.parametrize(
    ("attempts", "expected"),
    [
        ([ExtractionAttempt("primary", "timeout"), ExtractionAttempt("backup", "timeout")], ExtractionTimeout),
        (
            [ExtractionAttempt("primary", "timeout"), ExtractionAttempt("backup", "error", "limite de requisições")],
            ExtractionRateLimited,
        ),
        ([ExtractionAttempt("primary", "error", "quota exceeded")], ExtractionQuotaExhausted),
        ([ExtractionAttempt("primary", "invalid"), ExtractionAttempt("backup", "timeout")], ExtractionInvalidResponse),
    ],
)
def test_failure_priority(attempts, expected):
    assert type(failure_for(attempts)) is expected
