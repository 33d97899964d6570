"""Payment verification DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CartItemDTO(BaseModel):
    """One cart line as submitted by the storefront.

    ``unit_price`` is in minor units.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(min_length=1)
    seller_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    unit_price: int = Field(gt=0)
    quantity: int = Field(ge=1)


class VerifyPaymentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    reference: str = Field(min_length=1, max_length=128)
    claimed_total: int = Field(gt=0)
    items: List[CartItemDTO]
    delivery_info: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("reference")
    @classmethod
    def strip_reference(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Reference must not be blank.")
        return v

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[CartItemDTO]) -> List[CartItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v
