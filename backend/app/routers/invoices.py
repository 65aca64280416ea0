"""Customer invoice router.

Endpoints:
    POST   /api/invoices/generate       Generate missing invoices for a container
    GET    /api/invoices                List invoices (with filters)
    GET    /api/invoices/{invoice_id}   Invoice with line items
    PATCH  /api/invoices/{invoice_id}   Update status / dates / discount / tax
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor, get_request_timeout
from app.database import get_db, run_bounded
from app.models.user_invoice import InvoiceStatus
from app.schemas.invoice import (
    GenerationFailure,
    GenerationSummary,
    InvoiceGenerateRequest,
    InvoiceGenerateResponse,
    InvoiceUpdate,
    UserInvoiceOut,
    UserInvoiceSummary,
)
from app.services import invoicing

router = APIRouter()


# ── POST /api/invoices/generate ──────────────────────────────

@router.post("/generate", response_model=InvoiceGenerateResponse)
async def generate_invoices(
    body: InvoiceGenerateRequest,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    """Create one invoice per customer with vehicles in the container.

    Safe to repeat: customers that already have a live invoice for the
    container are reported under `skippedExisting` and left untouched.
    """
    options = invoicing.GenerationOptions(
        send_email=body.send_email,
        due_date=body.due_date,
        discount_percent=body.discount_percent,
        tax_percent=body.tax_percent,
    )

    async def work():
        result = await invoicing.generate_invoices(
            db, body.container_id,
            actor=actor,
            options=options,
            notifier=invoicing.log_invoice_notification,
        )
        return InvoiceGenerateResponse(
            summary=GenerationSummary(**result.summary),
            invoices=[UserInvoiceOut.model_validate(inv) for inv in result.created],
            skipped=[UserInvoiceSummary.model_validate(inv) for inv in result.skipped],
            failures=[GenerationFailure(**f) for f in result.failed],
        )

    return await run_bounded(work(), timeout, "generate_invoices")


# ── GET /api/invoices ────────────────────────────────────────

@router.get("", response_model=list[UserInvoiceOut])
async def list_invoices(
    user_id: str | None = Query(None, alias="userId"),
    container_id: str | None = Query(None, alias="containerId"),
    status: InvoiceStatus | None = Query(None),
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    return await run_bounded(
        invoicing.list_invoices(db, user_id=user_id, container_id=container_id, status=status),
        timeout, "list_invoices",
    )


# ── GET /api/invoices/{invoice_id} ───────────────────────────

@router.get("/{invoice_id}", response_model=UserInvoiceOut)
async def get_invoice(
    invoice_id: str,
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    return await run_bounded(invoicing.get_invoice(db, invoice_id), timeout, "get_invoice")


# ── PATCH /api/invoices/{invoice_id} ─────────────────────────

@router.patch("/{invoice_id}", response_model=UserInvoiceOut)
async def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    """Edit an invoice.  Total changes and cancellations post to the ledger."""
    return await run_bounded(
        invoicing.update_invoice(db, invoice_id, body.model_dump(exclude_unset=True), actor),
        timeout, "update_invoice",
    )
