"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  These are the
contracts between the API layer (DRF Serializers) and the Service layer.
DTOs are immutable (``frozen=True``).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.orders.constants import (
    DISPUTE_DESCRIPTION_MIN_LENGTH,
    WAIT_TIME_MAX_DAYS,
    WAIT_TIME_MIN_DAYS,
    BuyerWaitResponse,
    DisputeResolution,
    DisputeType,
    OrderStatus,
)

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class TransitionDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    extra: Optional[Dict[str, Any]] = None


class MarkNotAvailableDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str = Field(min_length=1)
    wait_time_days: Optional[int] = Field(
        default=None, ge=WAIT_TIME_MIN_DAYS, le=WAIT_TIME_MAX_DAYS
    )

    @field_validator("reason")
    @classmethod
    def reason_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason must not be blank.")
        return v.strip()


class AvailabilityResponseDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: BuyerWaitResponse


class OpenDisputeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: DisputeType
    description: str

    @field_validator("description")
    @classmethod
    def description_must_be_long_enough(cls, v: str) -> str:
        if len(v.strip()) < DISPUTE_DESCRIPTION_MIN_LENGTH:
            raise ValueError(
                f"Description must be at least {DISPUTE_DESCRIPTION_MIN_LENGTH} "
                f"characters."
            )
        return v.strip()


class ResolveDisputeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    resolution: DisputeResolution
    refund_amount: Optional[int] = Field(default=None, gt=0)
    notes: str = ""
