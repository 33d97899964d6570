"""Refund DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.refunds.models import RefundMethod, RefundStatus


class IssueRefundDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    amount: int = Field(gt=0)
    reason: str
    method: RefundMethod = RefundMethod.ORIGINAL_PAYMENT

    @field_validator("reason")
    @classmethod
    def reason_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason must not be blank.")
        return v.strip()


class RefundStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: RefundStatus
