"""Reporting router.

Endpoints:
    GET  /api/reports/due-aging   Outstanding shipment dues bucketed by age
    GET  /api/reports/financial   Ledger totals (?type=summary|user-wise)
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_request_timeout
from app.database import get_db, run_bounded
from app.schemas.report import DueAgingReport, FinancialReport
from app.services import reports

router = APIRouter()


@router.get("/due-aging", response_model=DueAgingReport)
async def due_aging(
    user_id: str | None = Query(None, alias="userId"),
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    report = await run_bounded(reports.due_aging(db, user_id=user_id), timeout, "due_aging")
    return DueAgingReport.model_validate(report)


@router.get("/financial", response_model=FinancialReport, response_model_exclude_none=True)
async def financial(
    report_type: str = Query("summary", alias="type"),
    user_id: str | None = Query(None, alias="userId"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    report = await run_bounded(
        reports.financial_report(
            db, report_type, user_id=user_id, start_date=start_date, end_date=end_date,
        ),
        timeout, "financial_report",
    )
    return FinancialReport.model_validate(report)
