"""Aggregate model imports for Alembic auto-detection."""

from app.models.user import User  # noqa: F401

# Containers
from app.models.container import Container, ContainerStatus  # noqa: F401
from app.models.shipment import Shipment, ShipmentStatus, PaymentStatus, PaymentMode  # noqa: F401
from app.models.expense import ContainerExpense  # noqa: F401
from app.models.container_invoice import ContainerInvoice  # noqa: F401
from app.models.document import ContainerDocument  # noqa: F401
from app.models.tracking_event import TrackingEvent, TrackingSource  # noqa: F401
from app.models.audit_log import ContainerAuditLog, AuditAction  # noqa: F401

# Billing & ledger
from app.models.user_invoice import UserInvoice, InvoiceLineItem, InvoiceStatus, LineItemType  # noqa: F401
from app.models.ledger_entry import LedgerEntry, EntryType  # noqa: F401
