"""Per-request transaction context.

Every request gets exactly one ``TransactionContext``: a transaction id
(reused from the inbound correlation header or freshly generated) and a
logger bound to it. The context lives on ``request.state``, so stacked
admission middleware, routes and the exception handlers all share it.

Usage in a route:
    ctx = ensure_transaction(request)
    ctx.logger.info("post.created", extra={"post_id": post.id})
"""

from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

from admission.core.config import settings
from admission.core.logging import (
    TransactionLogger,
    create_transaction_logger,
    new_transaction_id,
)

_STATE_ATTR = "transaction"


@dataclass(frozen=True)
class TransactionContext:
    transaction_id: str
    logger: TransactionLogger


def get_transaction(request: Request) -> TransactionContext | None:
    return getattr(request.state, _STATE_ATTR, None)


def begin_transaction(request: Request) -> TransactionContext:
    """Return the request's transaction context, creating it on first use.

    The first caller reads the inbound correlation header so ids stay stable
    across services; later callers get the same instance back.
    """

    ctx = get_transaction(request)
    if ctx is not None:
        return ctx

    header_name = settings.log.transaction_id_header
    transaction_id = request.headers.get(header_name) or new_transaction_id()
    ctx = TransactionContext(
        transaction_id=transaction_id,
        logger=create_transaction_logger(transaction_id),
    )
    setattr(request.state, _STATE_ATTR, ctx)
    return ctx


# Errors raised before any admission middleware ran have no context yet.
ensure_transaction = begin_transaction
