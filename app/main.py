"""
HTTP Trigger for Ledger Recalc

A single endpoint that a scheduler calls once a day:

    POST /api/run-daily        header: x-webhook-secret: <secret>

Responses:
    200 {"ok": true, "run": {...summary...}}
    401 {"ok": false, "error": "unauthorized"}     secret missing or wrong
    405 {"ok": false, "error": "Method Not Allowed"}
    500 {"ok": false, "error": "internal error"}   details go to the log only

DESIGN DECISION: An empty configured secret rejects every request.
The endpoint never runs unauthenticated.

Run with:
    uvicorn app.main:app
"""

import hmac
from typing import AsyncIterator

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ledger_recalc.audit import configure_logging
from ledger_recalc.config import WebhookSettings, get_settings
from ledger_recalc.orchestrator import DailyRecalcFlow, create_app_components


logger = structlog.get_logger(__name__)


def get_webhook_settings() -> WebhookSettings:
    return get_settings().webhook


async def get_recalc_flow() -> AsyncIterator[DailyRecalcFlow]:
    """Build a flow for this request and close its store afterwards."""
    try:
        flow, store = create_app_components()
    except Exception:
        logger.exception("recalc_flow_unavailable")
        raise HTTPException(status_code=500, detail="internal error")
    try:
        yield flow
    finally:
        await store.close()


def verify_webhook_secret(
    request: Request,
    settings: WebhookSettings = Depends(get_webhook_settings),
) -> None:
    provided = request.headers.get(settings.header_name, "")
    if not settings.secret or not hmac.compare_digest(
        provided.encode("utf-8"), settings.secret.encode("utf-8")
    ):
        logger.warning("webhook_unauthorized", path=request.url.path)
        raise HTTPException(status_code=401, detail="unauthorized")


def create_app() -> FastAPI:
    app_settings = get_settings().app
    configure_logging(
        level=app_settings.log_level,
        json_output=not app_settings.debug_mode,
    )

    api = FastAPI(title="Ledger Recalc", version="1.0.0")

    @api.exception_handler(StarletteHTTPException)
    async def http_error_envelope(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @api.post("/api/run-daily", dependencies=[Depends(verify_webhook_secret)])
    async def run_daily(flow: DailyRecalcFlow = Depends(get_recalc_flow)) -> JSONResponse:
        try:
            result = await flow.run_daily_recalc()
        except Exception:
            logger.exception("run_daily_failed")
            return JSONResponse(
                status_code=500,
                content={"ok": False, "error": "internal error"},
            )
        return JSONResponse(status_code=200, content={"ok": True, "run": result.summary()})

    return api


app = create_app()
