"""Pydantic schemas for containers and their child records."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from app.models.container import ContainerStatus
from app.models.tracking_event import TrackingSource
from app.schemas.common import CamelModel
from app.schemas.invoice import UserInvoiceSummary
from app.schemas.shipment import ShipmentOut
from app.schemas.validators import naive_utc, validate_money

_DATETIME_FIELDS = (
    "loading_date", "departure_date", "estimated_arrival", "actual_arrival",
)


class _ShippingMetadata(CamelModel):
    tracking_number: str | None = Field(None, max_length=100)
    vessel_name: str | None = Field(None, max_length=255)
    voyage_number: str | None = Field(None, max_length=100)
    shipping_line: str | None = Field(None, max_length=255)
    booking_number: str | None = Field(None, max_length=100)
    loading_port: str | None = Field(None, max_length=255)
    destination_port: str | None = Field(None, max_length=255)
    transshipment_ports: list[str] | None = None
    current_location: str | None = Field(None, max_length=255)
    loading_date: datetime | None = None
    departure_date: datetime | None = None
    estimated_arrival: datetime | None = None
    actual_arrival: datetime | None = None
    notes: str | None = None

    @field_validator(*_DATETIME_FIELDS)
    @classmethod
    def to_naive_utc(cls, v: datetime | None) -> datetime | None:
        return naive_utc(v)


# ── Create / update ───────────────────────────────────────────

class ContainerCreate(_ShippingMetadata):
    """Payload for POST /api/containers."""
    container_number: str = Field(..., min_length=11, max_length=13)
    max_capacity: int = Field(4, ge=1)
    progress: Any = None


class ContainerUpdate(_ShippingMetadata):
    """Payload for PATCH /api/containers/{id}; only sent fields change."""
    status: ContainerStatus | None = None
    progress: Any = None
    max_capacity: int | None = Field(None, ge=1)


class AssignShipmentsRequest(CamelModel):
    """Payload for POST /api/containers/{id}/shipments."""
    shipment_ids: list[str] = Field(..., min_length=1)


# ── Child records ─────────────────────────────────────────────

class ExpenseCreate(CamelModel):
    type: str = Field(..., min_length=1, max_length=50)
    amount: Decimal
    currency: str | None = Field(None, min_length=3, max_length=3)
    date: datetime | None = None
    vendor: str | None = Field(None, max_length=255)
    invoice_number: str | None = Field(None, max_length=100)
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_in_cents(cls, v: Decimal) -> Decimal:
        return validate_money(v)

    @field_validator("date")
    @classmethod
    def date_naive_utc(cls, v: datetime | None) -> datetime | None:
        return naive_utc(v)


class ExpenseOut(CamelModel):
    id: str
    container_id: str
    type: str
    amount: Decimal
    currency: str
    date: datetime
    vendor: str | None = None
    invoice_number: str | None = None
    notes: str | None = None
    created_at: datetime


class ContainerInvoiceCreate(CamelModel):
    amount: Decimal
    invoice_number: str | None = Field(None, max_length=50)
    currency: str | None = Field(None, min_length=3, max_length=3)
    vendor: str | None = Field(None, max_length=255)
    date: datetime | None = None
    due_date: datetime | None = None
    status: str | None = Field(None, pattern="^(PENDING|PAID|CANCELLED)$")
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_in_cents(cls, v: Decimal) -> Decimal:
        return validate_money(v)

    @field_validator("date", "due_date")
    @classmethod
    def dates_naive_utc(cls, v: datetime | None) -> datetime | None:
        return naive_utc(v)


class ContainerInvoiceOut(CamelModel):
    id: str
    container_id: str
    invoice_number: str
    amount: Decimal
    currency: str
    vendor: str | None = None
    date: datetime
    due_date: datetime | None = None
    status: str
    notes: str | None = None


class TrackingEventCreate(CamelModel):
    """Payload for POST /api/containers/{id}/tracking.

    `containerStatus` / `progress` optionally move the container as well.
    """
    status: str = Field(..., min_length=1, max_length=100)
    location: str | None = Field(None, max_length=255)
    vessel_name: str | None = Field(None, max_length=255)
    description: str | None = None
    event_date: datetime | None = None
    source: TrackingSource = TrackingSource.MANUAL
    completed: bool = False
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    container_status: ContainerStatus | None = None
    progress: Any = None

    @field_validator("event_date")
    @classmethod
    def event_date_naive_utc(cls, v: datetime | None) -> datetime | None:
        return naive_utc(v)


class TrackingEventOut(CamelModel):
    id: str
    status: str
    location: str | None = None
    vessel_name: str | None = None
    description: str | None = None
    event_date: datetime
    source: str
    completed: bool
    latitude: float | None = None
    longitude: float | None = None


class DocumentCreate(CamelModel):
    document_type: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=1000)
    file_type: str | None = Field(None, max_length=100)
    file_size: int | None = Field(None, ge=0)
    notes: str | None = None


class DocumentOut(CamelModel):
    id: str
    document_type: str
    name: str
    file_url: str
    file_type: str | None = None
    file_size: int | None = None
    notes: str | None = None
    uploaded_by: str | None = None
    uploaded_at: datetime


class AuditLogOut(CamelModel):
    id: str
    action: str
    description: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    details: dict | None = None
    performed_by: str
    timestamp: datetime


# ── Container views ───────────────────────────────────────────

class ContainerTotalsOut(CamelModel):
    expenses: Decimal
    invoices: Decimal
    net_profit: Decimal


class ContainerDeleted(CamelModel):
    id: str
    container_number: str
    deleted: bool


class ContainerSummary(CamelModel):
    id: str
    container_number: str
    status: str
    progress: int
    max_capacity: int
    current_count: int
    vessel_name: str | None = None
    shipping_line: str | None = None
    loading_port: str | None = None
    destination_port: str | None = None
    estimated_arrival: datetime | None = None
    created_at: datetime


class ContainerDetail(ContainerSummary):
    tracking_number: str | None = None
    voyage_number: str | None = None
    booking_number: str | None = None
    transshipment_ports: list[str] | None = None
    current_location: str | None = None
    loading_date: datetime | None = None
    departure_date: datetime | None = None
    actual_arrival: datetime | None = None
    notes: str | None = None
    created_by: str | None = None
    updated_at: datetime | None = None

    shipments: list[ShipmentOut] = []
    expenses: list[ExpenseOut] = []
    invoices: list[ContainerInvoiceOut] = []
    user_invoices: list[UserInvoiceSummary] = []
    documents: list[DocumentOut] = []
    tracking_events: list[TrackingEventOut] = []
    audit_logs: list[AuditLogOut] = []
    totals: ContainerTotalsOut | None = None
