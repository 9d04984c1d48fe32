"""Classified failures raised while generating, normalizing or storing palettes.

Every error carries the HTTP status it maps to and a stable ``error`` string;
:meth:`PaletteError.to_payload` renders the JSON body returned to callers.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

PREVIEW_CHARS = 200


class PaletteError(Exception):
    """Base class for every failure that is reported to API callers."""

    status_code: int = 500
    error: str = "Server Error"

    def __init__(self, message: Optional[str] = None, *, details: Optional[str] = None) -> None:
        super().__init__(message or self.error)
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class MissingInput(PaletteError):
    status_code = 400
    error = "Missing text input"


class InvalidRequest(PaletteError):
    status_code = 400
    error = "Invalid request body"


class ModelInvocationError(PaletteError):
    error = "Model invocation failed"


class EmptyModelOutput(PaletteError):
    error = "Model returned no output"


class MalformedOutput(PaletteError):
    """The completion text could not be decoded as JSON."""

    error = "AI generation failed format"

    def __init__(self, attempted: str, *, details: Optional[str] = None) -> None:
        super().__init__(f"Could not decode model output: {details or 'invalid JSON'}", details=details)
        self.raw = attempted[:PREVIEW_CHARS]

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["raw"] = self.raw
        return payload


class MissingColors(PaletteError):
    """The decoded value has no ``colors`` list."""

    error = "AI output is missing colors"

    def __init__(self, received: Any) -> None:
        super().__init__("Decoded model output has no 'colors' list")
        self.received = received

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["received"] = self.received
        return payload


class EmptyColors(PaletteError):
    error = "AI output has no colors"


class StoreUnavailable(PaletteError):
    """The history store could not be read or written."""

    status_code = 503
    error = "History store unavailable"

    def __init__(self, details: Optional[str] = None, *, status: int = 503) -> None:
        super().__init__(details or self.error, details=details)
        self.status_code = status

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["status"] = self.status_code
        return payload


class ServerError(PaletteError):
    pass
