"""Shipment router.

Endpoints:
    POST  /api/shipments   Register a vehicle for a customer (ON_HAND)
    GET   /api/shipments   List shipments (with filters)
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_request_timeout
from app.database import get_db, run_bounded
from app.middleware.exceptions import ResourceNotFoundError
from app.models.shipment import PaymentStatus, Shipment, ShipmentStatus
from app.models.user import User
from app.schemas.common import PaginatedResponse
from app.schemas.shipment import ShipmentCreate, ShipmentOut

logger = logging.getLogger("freightledger.shipments")

router = APIRouter()


# ── POST /api/shipments ──────────────────────────────────────

@router.post("", response_model=ShipmentOut, status_code=201)
async def create_shipment(
    body: ShipmentCreate,
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        user = (
            await db.execute(select(User).where(User.id == body.user_id))
        ).scalar_one_or_none()
        if not user:
            raise ResourceNotFoundError("User", body.user_id)

        shipment = Shipment(
            user_id=user.id,
            vehicle_year=body.vehicle_year,
            vehicle_make=body.vehicle_make,
            vehicle_model=body.vehicle_model,
            vehicle_vin=body.vehicle_vin,
            price=body.price,
            insurance_value=body.insurance_value,
            payment_mode=body.payment_mode.value if body.payment_mode else None,
            notes=body.notes,
            status=ShipmentStatus.ON_HAND.value,
            payment_status=PaymentStatus.PENDING.value,
        )
        db.add(shipment)
        await db.flush()
        await db.refresh(shipment)
        logger.info(
            "Shipment %s registered for user %s", shipment.vehicle_label, user.id,
            extra={"shipment_id": shipment.id},
        )
        return shipment

    return await run_bounded(work(), timeout, "create_shipment")


# ── GET /api/shipments ───────────────────────────────────────

@router.get("", response_model=PaginatedResponse[ShipmentOut])
async def list_shipments(
    user_id: str | None = Query(None, alias="userId"),
    container_id: str | None = Query(None, alias="containerId"),
    status: ShipmentStatus | None = Query(None),
    payment_status: PaymentStatus | None = Query(None, alias="paymentStatus"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        conditions = []
        if user_id:
            conditions.append(Shipment.user_id == user_id)
        if container_id:
            conditions.append(Shipment.container_id == container_id)
        if status:
            conditions.append(Shipment.status == status.value)
        if payment_status:
            conditions.append(Shipment.payment_status == payment_status.value)

        total = (
            await db.execute(select(func.count(Shipment.id)).where(*conditions))
        ).scalar() or 0
        result = await db.execute(
            select(Shipment)
            .where(*conditions)
            .order_by(Shipment.created_at.desc(), Shipment.id)
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return PaginatedResponse[ShipmentOut](
            items=[ShipmentOut.model_validate(s) for s in result.scalars().all()],
            total=total,
            page=page,
            limit=limit,
        )

    return await run_bounded(work(), timeout, "list_shipments")
