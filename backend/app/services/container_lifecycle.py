"""Container state machine.

    CREATED → WAITING_FOR_LOADING → LOADED → IN_TRANSIT → ARRIVED_PORT
            → CUSTOMS_CLEARANCE → RELEASED → CLOSED

Operators may jump to any status; only these rules are enforced:

  - a container with shipments cannot be deleted (CONTAINER_HAS_SHIPMENTS)
  - progress is clamped to 0..100; garbage keeps the last known value
  - every actual status change and every ETA change is audited

Side effects of entering a status:

  LOADED / IN_TRANSIT   assigned shipments become IN_TRANSIT
  RELEASED / CLOSED     invoices are generated (idempotent) when enabled
  CLOSED                shipments are released as DELIVERED
"""

import logging
import math
import re
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.audit_log import AuditAction, ContainerAuditLog
from app.models.container import Container, ContainerStatus
from app.models.container_invoice import ContainerInvoice
from app.models.document import ContainerDocument
from app.models.expense import ContainerExpense
from app.models.shipment import Shipment, ShipmentStatus
from app.models.tracking_event import TrackingEvent, TrackingSource
from app.models.user_invoice import UserInvoice
from app.services import invoicing
from app.utils.activity import log_container_event
from app.utils.locks import lock_container

logger = logging.getLogger("freightledger.containers")

CONTAINER_NUMBER_RE = re.compile(r"^[A-Z]{4}\d{7}$")

IN_TRANSIT_STATUSES = {ContainerStatus.LOADED, ContainerStatus.IN_TRANSIT}
INVOICING_STATUSES = {ContainerStatus.RELEASED, ContainerStatus.CLOSED}

# Shipping metadata an operator may edit freely
EDITABLE_FIELDS = (
    "tracking_number", "vessel_name", "voyage_number", "shipping_line",
    "booking_number", "loading_port", "destination_port", "transshipment_ports",
    "current_location", "loading_date", "departure_date", "actual_arrival",
    "max_capacity", "notes",
)


def normalize_container_number(raw: str) -> str:
    number = re.sub(r"[\s-]", "", raw or "").upper()
    if not CONTAINER_NUMBER_RE.match(number):
        raise ValidationFailedError(
            f"Invalid container number '{raw}': expected 4 letters followed by 7 digits",
            error_code="INVALID_CONTAINER_NUMBER",
        )
    return number


def normalize_progress(value, current: int | None = None) -> int:
    """Clamp `value` to 0..100; unusable input keeps `current` (or 0)."""
    fallback = current if current is not None else 0
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if math.isnan(number) or math.isinf(number):
        return fallback
    return int(round(min(100.0, max(0.0, number))))


# ── Reads ────────────────────────────────────────────────────

async def get_container(db: AsyncSession, container_id: str) -> Container:
    result = await db.execute(
        select(Container)
        .where(Container.id == container_id)
        .execution_options(populate_existing=True)
    )
    container = result.scalar_one_or_none()
    if not container:
        raise ResourceNotFoundError("Container", container_id)
    return container


async def list_containers(
    db: AsyncSession,
    *,
    status: ContainerStatus | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Container], int]:
    stmt = select(Container)
    count_stmt = select(func.count(Container.id))
    if status:
        stmt = stmt.where(Container.status == status.value)
        count_stmt = count_stmt.where(Container.status == status.value)
    if search:
        pattern = f"%{search}%"
        cond = (
            Container.container_number.ilike(pattern)
            | Container.vessel_name.ilike(pattern)
            | Container.booking_number.ilike(pattern)
        )
        stmt = stmt.where(cond)
        count_stmt = count_stmt.where(cond)

    total = (await db.execute(count_stmt)).scalar() or 0
    result = await db.execute(
        stmt.order_by(Container.created_at.desc()).limit(limit).offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


# ── Create / update / delete ─────────────────────────────────

async def create_container(db: AsyncSession, data: dict, actor: str) -> Container:
    number = normalize_container_number(data["container_number"])
    existing = await db.execute(
        select(Container.id).where(Container.container_number == number)
    )
    if existing.scalar_one_or_none():
        raise ConflictError(
            f"Container {number} already exists",
            error_code="DUPLICATE_CONTAINER_NUMBER",
        )

    max_capacity = data.get("max_capacity") or 4
    if max_capacity < 1:
        raise ValidationFailedError("max_capacity must be at least 1", error_code="INVALID_CAPACITY")

    container = Container(
        container_number=number,
        status=ContainerStatus.CREATED.value,
        progress=normalize_progress(data.get("progress"), 0),
        max_capacity=max_capacity,
        current_count=0,
        estimated_arrival=data.get("estimated_arrival"),
        created_by=actor,
        **{k: data[k] for k in EDITABLE_FIELDS if k in data and k != "max_capacity"},
    )
    db.add(container)
    await db.flush()

    log_container_event(
        db, container.id, actor,
        action=AuditAction.CREATED,
        description=f"Container {number} created",
        new_value=ContainerStatus.CREATED.value,
    )
    logger.info("Container %s created", number, extra={"container_id": container.id, "actor": actor})
    return container


async def update_container(db: AsyncSession, container_id: str, changes: dict, actor: str) -> Container:
    """Apply an operator edit; `changes` holds only the fields sent."""
    container = await lock_container(db, container_id)

    if "max_capacity" in changes:
        capacity = changes["max_capacity"]
        if capacity is None or capacity < 1 or capacity < container.current_count:
            raise ConflictError(
                f"max_capacity {capacity} is below the {container.current_count} shipment(s) loaded",
                error_code="CONTAINER_CAPACITY_EXCEEDED",
            )

    for name in EDITABLE_FIELDS:
        if name in changes:
            setattr(container, name, changes[name])

    if "progress" in changes:
        container.progress = normalize_progress(changes["progress"], container.progress)

    if "estimated_arrival" in changes and changes["estimated_arrival"] != container.estimated_arrival:
        old_eta = container.estimated_arrival
        container.estimated_arrival = changes["estimated_arrival"]
        log_container_event(
            db, container.id, actor,
            action=AuditAction.ETA_UPDATED,
            description="Estimated arrival updated",
            old_value=old_eta.isoformat() if old_eta else None,
            new_value=container.estimated_arrival.isoformat() if container.estimated_arrival else None,
        )

    new_status = changes.get("status")
    if new_status:
        await transition(db, container, ContainerStatus(new_status), actor)

    await db.flush()
    return await get_container(db, container.id)


async def transition(db: AsyncSession, container: Container, new_status: ContainerStatus, actor: str) -> bool:
    """Move `container` to `new_status`; returns False when nothing changed.

    The caller must hold the container lock.
    """
    old_status = container.status
    if old_status == new_status.value:
        return False

    container.status = new_status.value
    log_container_event(
        db, container.id, actor,
        action=AuditAction.STATUS_CHANGE,
        description=f"Status changed from {old_status} to {new_status.value}",
        old_value=old_status,
        new_value=new_status.value,
    )
    logger.info(
        "Container %s: %s → %s", container.container_number, old_status, new_status.value,
        extra={"container_id": container.id, "actor": actor},
    )

    if new_status in IN_TRANSIT_STATUSES:
        await db.execute(
            update(Shipment)
            .where(Shipment.container_id == container.id)
            .values(status=ShipmentStatus.IN_TRANSIT.value)
        )

    await db.flush()

    if new_status in INVOICING_STATUSES and settings.auto_invoice_on_release:
        if await _shipment_count(db, container.id) > 0:
            result = await invoicing.generate_invoices(db, container.id, actor=actor)
            if result.failed:
                logger.warning(
                    "Automatic invoicing for %s left %d customer(s) uninvoiced",
                    container.container_number, len(result.failed),
                    extra={"container_id": container.id, "failed": result.failed},
                )

    if new_status == ContainerStatus.CLOSED:
        await _release_shipments(db, container, actor)

    return True


async def _shipment_count(db: AsyncSession, container_id: str) -> int:
    result = await db.execute(
        select(func.count(Shipment.id)).where(Shipment.container_id == container_id)
    )
    return result.scalar() or 0


async def _release_shipments(db: AsyncSession, container: Container, actor: str) -> None:
    result = await db.execute(
        select(Shipment).where(Shipment.container_id == container.id)
    )
    shipments = list(result.scalars().all())
    if not shipments:
        return
    for shipment in shipments:
        shipment.container_id = None
        shipment.status = ShipmentStatus.DELIVERED.value
    container.current_count = 0
    log_container_event(
        db, container.id, actor,
        action=AuditAction.SHIPMENTS_RELEASED,
        description=f"{len(shipments)} shipment(s) delivered on close",
        details={"shipmentIds": [s.id for s in shipments]},
    )
    await db.flush()


async def delete_container(db: AsyncSession, container_id: str, actor: str) -> dict:
    """Delete an empty container with its expenses, invoices, documents,
    tracking and audit rows; customer invoices are detached, not deleted."""
    container = await lock_container(db, container_id)

    loaded = await _shipment_count(db, container.id)
    if container.current_count > 0 or loaded > 0:
        raise ConflictError(
            f"Container {container.container_number} still holds "
            f"{max(container.current_count, loaded)} shipment(s); remove them first",
            error_code="CONTAINER_HAS_SHIPMENTS",
        )

    for model in (ContainerExpense, ContainerInvoice, ContainerDocument, TrackingEvent, ContainerAuditLog):
        await db.execute(delete(model).where(model.container_id == container.id))
    await db.execute(
        update(UserInvoice)
        .where(UserInvoice.container_id == container.id)
        .values(container_id=None)
    )
    await db.delete(container)
    await db.flush()
    logger.info(
        "Container %s deleted", container.container_number,
        extra={"container_id": container.id, "actor": actor},
    )
    return {"id": container.id, "container_number": container.container_number, "deleted": True}


# ── Shipments ────────────────────────────────────────────────

async def assign_shipments(
    db: AsyncSession,
    container_id: str,
    shipment_ids: list[str],
    actor: str,
) -> Container:
    container = await lock_container(db, container_id)
    if container.status == ContainerStatus.CLOSED.value:
        raise ConflictError(
            f"Container {container.container_number} is closed",
            error_code="CONTAINER_CLOSED",
        )

    wanted = list(dict.fromkeys(shipment_ids))
    if not wanted:
        raise ValidationFailedError("No shipments selected", error_code="INVALID_SHIPMENT_SELECTION")

    result = await db.execute(
        select(Shipment)
        .where(Shipment.id.in_(wanted))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    shipments = list(result.scalars().all())
    missing = sorted(set(wanted) - {s.id for s in shipments})
    if missing:
        raise ResourceNotFoundError("Shipment", ", ".join(missing))

    unavailable = [s.id for s in shipments if s.status != ShipmentStatus.ON_HAND.value or s.container_id]
    if unavailable:
        raise ConflictError(
            "Only ON_HAND shipments can be assigned to a container",
            error_code="SHIPMENT_NOT_AVAILABLE",
            details={"shipmentIds": unavailable},
        )

    if container.current_count + len(shipments) > container.max_capacity:
        raise ConflictError(
            f"Container {container.container_number} has room for "
            f"{container.max_capacity - container.current_count} more shipment(s), "
            f"{len(shipments)} requested",
            error_code="CONTAINER_CAPACITY_EXCEEDED",
        )

    for shipment in shipments:
        shipment.container_id = container.id
        shipment.status = ShipmentStatus.IN_TRANSIT.value
    container.current_count += len(shipments)

    log_container_event(
        db, container.id, actor,
        action=AuditAction.SHIPMENTS_ASSIGNED,
        description=f"{len(shipments)} shipment(s) assigned",
        new_value=str(container.current_count),
        details={"shipmentIds": [s.id for s in shipments]},
    )
    await db.flush()
    return await get_container(db, container.id)


async def remove_shipment(db: AsyncSession, container_id: str, shipment_id: str, actor: str) -> Container:
    container = await lock_container(db, container_id)
    result = await db.execute(
        select(Shipment)
        .where(Shipment.id == shipment_id, Shipment.container_id == container.id)
        .with_for_update()
    )
    shipment = result.scalar_one_or_none()
    if not shipment:
        raise ResourceNotFoundError("Shipment", shipment_id)

    shipment.container_id = None
    shipment.status = ShipmentStatus.ON_HAND.value
    container.current_count = max(0, container.current_count - 1)

    log_container_event(
        db, container.id, actor,
        action=AuditAction.SHIPMENT_REMOVED,
        description=f"Shipment {shipment.vehicle_label} removed",
        old_value=shipment.id,
        details={"shipmentId": shipment.id},
    )
    await db.flush()
    return await get_container(db, container.id)


# ── Tracking & documents ─────────────────────────────────────

async def add_tracking_event(db: AsyncSession, container_id: str, data: dict, actor: str) -> TrackingEvent:
    """Record a milestone; an attached status/progress goes through the
    same rules as an operator edit."""
    container = await lock_container(db, container_id)

    event = TrackingEvent(
        container_id=container.id,
        status=data["status"],
        location=data.get("location"),
        vessel_name=data.get("vessel_name"),
        description=data.get("description"),
        event_date=data.get("event_date") or datetime.utcnow(),
        source=TrackingSource(data.get("source") or TrackingSource.MANUAL).value,
        completed=bool(data.get("completed", False)),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
    )
    db.add(event)
    await db.flush()

    log_container_event(
        db, container.id, actor,
        action=AuditAction.TRACKING_EVENT,
        description=f"{event.status}" + (f" at {event.location}" if event.location else ""),
        details={"trackingEventId": event.id, "source": event.source},
    )

    if data.get("location"):
        container.current_location = data["location"]
    if data.get("progress") is not None:
        container.progress = normalize_progress(data["progress"], container.progress)
    if data.get("container_status"):
        await transition(db, container, ContainerStatus(data["container_status"]), actor)

    await db.flush()
    return event


async def add_document(db: AsyncSession, container_id: str, data: dict, actor: str) -> ContainerDocument:
    container = await lock_container(db, container_id)
    document = ContainerDocument(
        container_id=container.id,
        document_type=data["document_type"],
        name=data["name"],
        file_url=data["file_url"],
        file_type=data.get("file_type"),
        file_size=data.get("file_size"),
        notes=data.get("notes"),
        uploaded_by=actor,
    )
    db.add(document)
    await db.flush()

    log_container_event(
        db, container.id, actor,
        action=AuditAction.DOCUMENT_ADDED,
        description=f"{document.document_type} '{document.name}' attached",
        details={"documentId": document.id},
    )
    return document
