"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from invest_ledger.api.dependencies import get_request_id
from invest_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from invest_ledger.api.v1 import admin, earnings, investments, plans, referrals, transactions, wallet, webhooks
from invest_ledger.domain.exceptions import ErrorCode, LedgerError
from invest_ledger.infrastructure.observability.logging import setup_logging
from invest_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)

STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_PLAN: 400,
    ErrorCode.AMOUNT_OUT_OF_RANGE: 400,
    ErrorCode.NO_WITHDRAWABLE_EARNINGS: 400,
    ErrorCode.INSUFFICIENT_EARNINGS: 400,
    ErrorCode.INSUFFICIENT_BALANCE: 400,
    ErrorCode.WALLET_NOT_FOUND: 404,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_STATE_TRANSITION: 409,
    ErrorCode.CONCURRENCY_CONFLICT: 409,
    ErrorCode.CHAIN_API_ERROR: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def error_body(code: ErrorCode, message: str, details: dict | None = None) -> dict:
    return {"error": {"code": code.value, "message": message, "details": details or {}}}


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status = STATUS_BY_CODE.get(exc.code, 500)
    log = logging.warning if status < 500 else logging.error
    log(
        f"Request refused: {exc.message}",
        extra={"request_id": get_request_id(request), "code": exc.code.value, "path": request.url.path},
    )
    return JSONResponse(status_code=status, content=error_body(exc.code, exc.message, exc.details))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body(ErrorCode.VALIDATION_ERROR, "Validation failed", {"errors": errors}),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.error(f"Unexpected error: {exc}", extra={"request_id": get_request_id(request)})
    return JSONResponse(status_code=500, content=error_body(ErrorCode.INTERNAL_ERROR, "Internal server error"))


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Invest Ledger",
        description="Investment plans, daily earnings accrual, referral bonuses and withdrawals",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(wallet.router, prefix="/v1", tags=["wallet"])
    app.include_router(earnings.router, prefix="/v1", tags=["earnings"])
    app.include_router(investments.router, prefix="/v1", tags=["investments"])
    app.include_router(plans.router, prefix="/v1", tags=["plans"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(referrals.router, prefix="/v1", tags=["referrals"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])

    return app


app = create_app()
