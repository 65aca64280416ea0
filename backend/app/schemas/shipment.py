"""Pydantic schemas for shipments (one vehicle each)."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from app.models.shipment import PaymentMode, PaymentStatus, ShipmentStatus
from app.schemas.common import CamelModel
from app.schemas.validators import validate_money


class ShipmentCreate(CamelModel):
    """Payload for POST /api/shipments."""
    user_id: str
    vehicle_year: int | None = Field(None, ge=1900, le=2100)
    vehicle_make: str | None = Field(None, max_length=100)
    vehicle_model: str | None = Field(None, max_length=100)
    vehicle_vin: str | None = Field(None, max_length=17)
    price: Decimal = Field(Decimal("0.00"), ge=0)
    insurance_value: Decimal = Field(Decimal("0.00"), ge=0)
    payment_mode: PaymentMode | None = None
    notes: str | None = None

    @field_validator("price", "insurance_value")
    @classmethod
    def amount_in_cents(cls, v: Decimal) -> Decimal:
        return validate_money(v)

    @field_validator("vehicle_vin", mode="before")
    @classmethod
    def vin_upper(cls, v):
        # Normalised before the length check so padded VINs pass
        return v.strip().upper() if isinstance(v, str) else v


class ShipmentOut(CamelModel):
    id: str
    user_id: str
    vehicle_year: int | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_vin: str | None = None
    price: Decimal
    insurance_value: Decimal
    amount_paid: Decimal
    container_id: str | None = None
    status: ShipmentStatus
    payment_status: PaymentStatus
    payment_mode: PaymentMode | None = None
    notes: str | None = None
    created_at: datetime
