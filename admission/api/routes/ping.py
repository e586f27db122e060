from __future__ import annotations

from fastapi import APIRouter, Request

from admission.core.context import ensure_transaction

router = APIRouter(tags=["Probe"])


@router.get("/ping")
def ping(request: Request) -> dict:
    """Rate-limited probe that reuses the request's transaction logger."""

    ctx = ensure_transaction(request)
    ctx.logger.info("ping.handled")
    return {"status": "ok", "transaction_id": ctx.transaction_id}
