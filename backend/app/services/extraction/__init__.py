"""Extraction backend registry exposed to the orchestrator."""

from .base import ExtractionBackend, ModelTier
from .registry import (
    available_backends,
    get_backend,
    register_backend,
)

__all__ = [
    "ExtractionBackend",
    "ModelTier",
    "available_backends",
    "get_backend",
    "register_backend",
]
