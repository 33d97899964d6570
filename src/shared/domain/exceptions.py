"""Base class for errors raised by the service layer.

Every domain error carries a stable ``code``, the HTTP status the API layer
should answer with, and a ``details`` dict with enough structure for a client
to render a precise message (current vs. requested status, required vs.
actual role, expected vs. received amount, ...).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Root of the engine's error taxonomy."""

    code = "domain_error"
    http_status = 400

    def __init__(
        self, message: str = "", attr: Optional[str] = None, **details: Any
    ) -> None:
        default = (self.__class__.__doc__ or self.code).strip()
        super().__init__(message or default)
        self.message = message or default
        self.attr = attr
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Optional[Any]]:
        data: Dict[str, Optional[Any]] = {"code": self.code, "detail": self.message}
        if self.attr:
            data["attr"] = self.attr
        data["meta"] = self.details or None
        return data


class ValidationError(DomainError):
    """The request is malformed or out of range."""

    code = "validation_error"
    http_status = 400


class NotFound(DomainError):
    """The requested resource does not exist."""

    code = "not_found"
    http_status = 404


class Forbidden(DomainError):
    """The actor lacks the role required for this operation."""

    code = "forbidden"
    http_status = 403


class InvalidTransition(DomainError):
    """The requested status change is not allowed from the current status."""

    code = "invalid_transition"
    http_status = 409


class TerminalState(InvalidTransition):
    """The order is in a terminal status and cannot change anymore."""

    code = "terminal_state"


class InvalidState(InvalidTransition):
    """The order is not in the status this operation requires."""

    code = "invalid_state"


class ConcurrentUpdate(InvalidTransition):
    """Another request changed the order first; reload and retry."""

    code = "concurrent_update"
