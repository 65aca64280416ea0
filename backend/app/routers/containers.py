"""Container management router.

Endpoints:
    POST    /api/containers                                 Create an empty container
    GET     /api/containers                                 List containers (with filters)
    GET     /api/containers/{container_id}                  Detail with children + totals
    PATCH   /api/containers/{container_id}                  Update status / metadata
    DELETE  /api/containers/{container_id}                  Delete with children (409 while loaded)
    POST    /api/containers/{container_id}/shipments        Assign shipments
    DELETE  /api/containers/{container_id}/shipments/{sid}  Remove a shipment
    GET     /api/containers/{container_id}/expenses         List expenses
    POST    /api/containers/{container_id}/expenses         Add an expense
    DELETE  /api/containers/{container_id}/expenses/{eid}   Remove an expense
    GET     /api/containers/{container_id}/invoices         List container invoices
    POST    /api/containers/{container_id}/invoices         Add a container invoice
    POST    /api/containers/{container_id}/tracking         Record a tracking event
    POST    /api/containers/{container_id}/documents        Attach document metadata
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor, get_request_timeout
from app.database import get_db, run_bounded
from app.models.container import ContainerStatus
from app.schemas.common import PaginatedResponse
from app.schemas.container import (
    AssignShipmentsRequest,
    ContainerCreate,
    ContainerDeleted,
    ContainerDetail,
    ContainerInvoiceCreate,
    ContainerInvoiceOut,
    ContainerSummary,
    ContainerTotalsOut,
    ContainerUpdate,
    DocumentCreate,
    DocumentOut,
    ExpenseCreate,
    ExpenseOut,
    TrackingEventCreate,
    TrackingEventOut,
)
from app.services import container_lifecycle, costs

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

async def _container_detail(db: AsyncSession, container_id: str) -> ContainerDetail:
    container = await container_lifecycle.get_container(db, container_id)
    totals = await costs.container_totals(db, container.id)
    detail = ContainerDetail.model_validate(container)
    detail.totals = ContainerTotalsOut(
        expenses=totals.expenses,
        invoices=totals.invoices,
        net_profit=totals.net_profit,
    )
    return detail


# ── POST /api/containers ─────────────────────────────────────

@router.post("", response_model=ContainerDetail, status_code=201)
async def create_container(
    body: ContainerCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    """Create an empty container in status CREATED."""
    async def work():
        container = await container_lifecycle.create_container(
            db, body.model_dump(exclude_unset=True), actor,
        )
        return await _container_detail(db, container.id)

    return await run_bounded(work(), timeout, "create_container")


# ── GET /api/containers ──────────────────────────────────────

@router.get("", response_model=PaginatedResponse[ContainerSummary])
async def list_containers(
    status: ContainerStatus | None = Query(None),
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    items, total = await run_bounded(
        container_lifecycle.list_containers(db, status=status, search=search, page=page, limit=limit),
        timeout, "list_containers",
    )
    return PaginatedResponse[ContainerSummary](
        items=[ContainerSummary.model_validate(c) for c in items],
        total=total,
        page=page,
        limit=limit,
    )


# ── GET /api/containers/{container_id} ───────────────────────

@router.get("/{container_id}", response_model=ContainerDetail)
async def get_container(
    container_id: str,
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    """Container with shipments, expenses, invoices, documents, tracking,
    audit trail and cost totals."""
    return await run_bounded(_container_detail(db, container_id), timeout, "get_container")


# ── PATCH /api/containers/{container_id} ─────────────────────

@router.patch("/{container_id}", response_model=ContainerDetail)
async def update_container(
    container_id: str,
    body: ContainerUpdate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        await container_lifecycle.update_container(
            db, container_id, body.model_dump(exclude_unset=True), actor,
        )
        return await _container_detail(db, container_id)

    return await run_bounded(work(), timeout, "update_container")


# ── DELETE /api/containers/{container_id} ────────────────────

@router.delete("/{container_id}", response_model=ContainerDeleted)
async def delete_container(
    container_id: str,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    deleted = await run_bounded(
        container_lifecycle.delete_container(db, container_id, actor),
        timeout, "delete_container",
    )
    return ContainerDeleted.model_validate(deleted)


# ── Shipments ────────────────────────────────────────────────

@router.post("/{container_id}/shipments", response_model=ContainerDetail)
async def assign_shipments(
    container_id: str,
    body: AssignShipmentsRequest,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        await container_lifecycle.assign_shipments(db, container_id, body.shipment_ids, actor)
        return await _container_detail(db, container_id)

    return await run_bounded(work(), timeout, "assign_shipments")


@router.delete("/{container_id}/shipments/{shipment_id}", response_model=ContainerDetail)
async def remove_shipment(
    container_id: str,
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        await container_lifecycle.remove_shipment(db, container_id, shipment_id, actor)
        return await _container_detail(db, container_id)

    return await run_bounded(work(), timeout, "remove_shipment")


# ── Expenses ─────────────────────────────────────────────────

@router.get("/{container_id}/expenses", response_model=list[ExpenseOut])
async def list_expenses(
    container_id: str,
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        await container_lifecycle.get_container(db, container_id)
        return await costs.list_expenses(db, container_id)

    return await run_bounded(work(), timeout, "list_expenses")


@router.post("/{container_id}/expenses", response_model=ExpenseOut, status_code=201)
async def add_expense(
    container_id: str,
    body: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    return await run_bounded(
        costs.add_expense(db, container_id, body.model_dump(exclude_unset=True), actor),
        timeout, "add_expense",
    )


@router.delete("/{container_id}/expenses/{expense_id}", status_code=204)
async def remove_expense(
    container_id: str,
    expense_id: str,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    await run_bounded(
        costs.remove_expense(db, container_id, expense_id, actor),
        timeout, "remove_expense",
    )
    return Response(status_code=204)


# ── Container invoices ───────────────────────────────────────

@router.get("/{container_id}/invoices", response_model=list[ContainerInvoiceOut])
async def list_container_invoices(
    container_id: str,
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        await container_lifecycle.get_container(db, container_id)
        return await costs.list_container_invoices(db, container_id)

    return await run_bounded(work(), timeout, "list_container_invoices")


@router.post("/{container_id}/invoices", response_model=ContainerInvoiceOut, status_code=201)
async def add_container_invoice(
    container_id: str,
    body: ContainerInvoiceCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    return await run_bounded(
        costs.add_container_invoice(db, container_id, body.model_dump(exclude_unset=True), actor),
        timeout, "add_container_invoice",
    )


# ── Tracking & documents ─────────────────────────────────────

@router.post("/{container_id}/tracking", response_model=TrackingEventOut, status_code=201)
async def add_tracking_event(
    container_id: str,
    body: TrackingEventCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    """Record a milestone; `containerStatus` / `progress` move the container too."""
    return await run_bounded(
        container_lifecycle.add_tracking_event(db, container_id, body.model_dump(exclude_unset=True), actor),
        timeout, "add_tracking_event",
    )


@router.post("/{container_id}/documents", response_model=DocumentOut, status_code=201)
async def add_document(
    container_id: str,
    body: DocumentCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    return await run_bounded(
        container_lifecycle.add_document(db, container_id, body.model_dump(exclude_unset=True), actor),
        timeout, "add_document",
    )
