"""Runtime registry for slip extraction backends."""

from __future__ import annotations

from typing import Callable, Dict

from app.core.config import Settings, get_settings
from ingestion.errors import UnknownExtractionBackendError

from .base import ExtractionBackend

BackendFactory = Callable[[Settings], ExtractionBackend]

_BACKENDS: Dict[str, BackendFactory] = {}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Register or replace an extraction backend factory."""

    _BACKENDS[name.lower()] = factory


def get_backend(name: str | None = None, *, settings: Settings | None = None) -> ExtractionBackend:
    """Build the backend registered under ``name`` (defaults to configuration)."""

    resolved = settings or get_settings()
    key = (name or resolved.extraction_backend).lower()
    try:
        factory = _BACKENDS[key]
    except KeyError as exc:
        raise UnknownExtractionBackendError(
            f"Extraction backend '{key}' is not registered"
        ) from exc
    return factory(resolved)


def available_backends() -> tuple[str, ...]:
    """Return the tuple of registered backend names."""

    return tuple(sorted(_BACKENDS))


# Register built-in backends at import time.
from .edge import EdgeFunctionBackend  # noqa: E402
from .gateway import GatewayBackend  # noqa: E402

register_backend("gateway", lambda settings: GatewayBackend(settings=settings))
register_backend("edge", lambda settings: EdgeFunctionBackend(settings=settings))


__all__ = [
    "UnknownExtractionBackendError",
    "available_backends",
    "get_backend",
    "register_backend",
]
