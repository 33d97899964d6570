"""DRF exception handler producing one error envelope for the whole API.

Response shape::

    {
        "type": "validation_error" | "client_error" | "server_error",
        "errors": [{"code": "...", "detail": "...", "attr": "...", "meta": {...}}]
    }

Domain errors raised by the service layer are rendered with their own HTTP
status and structured ``meta`` so the calling surface can show a precise
message (current vs. requested status, required vs. actual role, ...).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from shared.domain.exceptions import DomainError
from shared.domain.exceptions import ValidationError as DomainValidationError

logger = structlog.get_logger(__name__)


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    if isinstance(exc, DomainError):
        logger.warning(
            "api.domain_error",
            code=exc.code,
            detail=exc.message,
            meta=exc.details,
        )
        return Response(
            {"type": _error_type(exc.http_status, exc), "errors": [exc.to_dict()]},
            status=exc.http_status,
        )

    if isinstance(exc, PydanticValidationError):
        errors = [
            {
                "code": "invalid",
                "detail": err["msg"],
                "attr": ".".join(str(part) for part in err["loc"]) or None,
            }
            for err in exc.errors()
        ]
        return Response(
            {"type": "validation_error", "errors": errors},
            status=status.HTTP_400_BAD_REQUEST,
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        errors = _flatten_validation_errors(response.data)
    else:
        detail = response.data.get("detail", response.data) if isinstance(response.data, dict) else response.data
        errors = [
            {
                "code": getattr(getattr(exc, "detail", None), "code", None)
                or getattr(exc, "default_code", "error"),
                "detail": str(detail),
            }
        ]
    response.data = {"type": _error_type(response.status_code, exc), "errors": errors}
    return response


def _error_type(status_code: int, exc: Exception) -> str:
    if isinstance(exc, (exceptions.ValidationError, DomainValidationError)):
        return "validation_error"
    if status_code >= 500:
        return "server_error"
    return "client_error"


def _flatten_validation_errors(data: Any, prefix: str = "") -> List[Dict[str, Any]]:
    errors: List[Dict[str, Any]] = []
    if isinstance(data, dict):
        for key, value in data.items():
            attr = f"{prefix}.{key}" if prefix else str(key)
            errors.extend(_flatten_validation_errors(value, attr))
    elif isinstance(data, list):
        for index, value in enumerate(data):
            if isinstance(value, (dict, list)):
                errors.extend(_flatten_validation_errors(value, f"{prefix}.{index}" if prefix else str(index)))
            else:
                errors.extend(_flatten_validation_errors(value, prefix))
    else:
        errors.append(
            {
                "code": getattr(data, "code", "invalid"),
                "detail": str(data),
                "attr": None if prefix in ("", "non_field_errors") else prefix,
            }
        )
    return errors
