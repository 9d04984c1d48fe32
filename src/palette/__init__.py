"""Palette types, error taxonomy and the model-output normalizer."""

from .errors import (
    EmptyColors,
    EmptyModelOutput,
    InvalidRequest,
    MalformedOutput,
    MissingColors,
    MissingInput,
    ModelInvocationError,
    PaletteError,
    ServerError,
    StoreUnavailable,
)
from .normalizer import normalize_completion
from .types import HistoryRecord, Palette

__all__ = [
    "EmptyColors",
    "EmptyModelOutput",
    "HistoryRecord",
    "InvalidRequest",
    "MalformedOutput",
    "MissingColors",
    "MissingInput",
    "ModelInvocationError",
    "Palette",
    "PaletteError",
    "ServerError",
    "StoreUnavailable",
    "normalize_completion",
]
