"""
Supply-Chain Tracker — FastAPI Application Entry Point
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from alembic.config import Config
from alembic import command as alembic_command

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.database import DATABASE_URL
from api.routes import products
from ledger.client import LedgerClient
from ledger.config import LedgerSettings
from ledger.errors import InvalidReference, InvalidStatusCode, LedgerError, LedgerTimeout
from sync.coordinator import ChainIdSource
from sync.errors import (
    DeletionIncomplete,
    DesyncAfterLedgerCommit,
    InvalidStatus,
    NotFound,
    NotLinked,
    SyncError,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parent.parent
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
RUN_MIGRATIONS = os.environ.get("RUN_MIGRATIONS", "true").lower() in ("1", "true", "yes")


def run_migrations() -> None:
    alembic_cfg = Config(str(ROOT_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT_DIR / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
    alembic_command.upgrade(alembic_cfg, "head")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Step 0: Run database migrations ───────────────────────────────────────
    if RUN_MIGRATIONS:
        try:
            run_migrations()
            logger.info("Database migrations applied successfully")
        except Exception as e:
            logger.error("Migration failed: %s", e)
            raise

    # ── Step 1: Ledger client with the process-wide signing identity ──────────
    app.state.ledger = LedgerClient.from_settings(LedgerSettings.from_env())
    app.state.chain_id_source = ChainIdSource.from_env()
    logger.info("Supply-chain API starting up (chain id source: %s)", app.state.chain_id_source.value)
    yield
    logger.info("Supply-chain API shutting down")


app = FastAPI(
    title="Supply Chain Blockchain API",
    description="Product tracking mirrored to an Ethereum smart contract",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Routers
app.include_router(products.router, prefix="/api/products", tags=["Products"])


# ── Error translation ─────────────────────────────────────────────────────────

def _error(status_code: int, message: str, exc: Exception, **extra) -> JSONResponse:
    body = {"message": message, "error": str(exc)}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(NotFound)
def handle_not_found(request: Request, exc: NotFound):
    return _error(404, "Product not found", exc)


@app.exception_handler(InvalidStatus)
@app.exception_handler(InvalidStatusCode)
def handle_invalid_status(request: Request, exc: Exception):
    return _error(400, "Invalid status. Must be Created, InTransit, or Delivered", exc)


@app.exception_handler(NotLinked)
@app.exception_handler(InvalidReference)
def handle_missing_reference(request: Request, exc: Exception):
    return _error(400, "Product does not have a valid blockchain ID", exc)


@app.exception_handler(RequestValidationError)
def handle_validation(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request", exc, detail=jsonable_errors(exc))


@app.exception_handler(LedgerTimeout)
def handle_ledger_timeout(request: Request, exc: LedgerTimeout):
    return _error(
        500, "Blockchain transaction outcome unknown", exc,
        transaction_hash=exc.transaction_hash, outcome="unknown",
    )


@app.exception_handler(LedgerError)
def handle_ledger_error(request: Request, exc: LedgerError):
    return _error(500, "Blockchain transaction failed", exc)


@app.exception_handler(DesyncAfterLedgerCommit)
def handle_desync(request: Request, exc: DesyncAfterLedgerCommit):
    return _error(
        500, "Blockchain updated but database write failed", exc,
        transaction_hash=exc.transaction_hash, operation=exc.operation,
    )


@app.exception_handler(DeletionIncomplete)
def handle_deletion_incomplete(request: Request, exc: DeletionIncomplete):
    return _error(
        500, "Error deleting product", exc,
        ledger_deleted=exc.ledger_deleted, store_deleted=exc.store_deleted,
    )


@app.exception_handler(SyncError)
def handle_sync_error(request: Request, exc: SyncError):
    return _error(500, "Error processing product", exc)


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "Internal server error", exc)


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
        for err in exc.errors()
    ]


@app.get("/api/health", tags=["Health"])
def health(request: Request):
    ledger = getattr(request.app.state, "ledger", None)
    return {
        "status": "ok",
        "service": "supplychain-api",
        "version": "1.0.0",
        "ledger": ledger.network_info() if ledger is not None else None,
    }
