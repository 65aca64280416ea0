import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.exceptions import register_exception_handlers
from app.routers import containers, health, invoices, ledger, reports, shipments

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="FreightLedger",
    description="Container billing and customer ledger engine for vehicle freight forwarding",
    version="0.1.0",
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(containers.router, prefix="/api/containers", tags=["containers"])
app.include_router(shipments.router, prefix="/api/shipments", tags=["shipments"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["invoices"])
app.include_router(ledger.router, prefix="/api/ledger", tags=["ledger"])
app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
