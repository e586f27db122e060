"""Structured logging for the admission pipeline.

Records are correlated by transaction id in two ways:
- ``TransactionLogger`` binds the id explicitly, for code holding the
  request's ``TransactionContext``.
- ``transaction_scope`` publishes the id in a context variable for the
  duration of a request; ``TransactionIdFilter`` stamps it onto records from
  plain module loggers (store adapters, limiter).

The filter is the only place the context variable is read. Formatters only
render what is already on the record.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, MutableMapping

from admission.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "token",
        "redis_token",
        "password",
        "secret",
    }
)

# Standard LogRecord attributes; everything else on a record is an extra.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_current_transaction_id: ContextVar[str | None] = ContextVar(
    "admission_transaction_id", default=None
)

_transaction_base_logger = logging.getLogger("admission.transaction")


def get_transaction_id() -> str | None:
    """Transaction id of the request currently being handled, if any."""

    return _current_transaction_id.get()


@contextmanager
def transaction_scope(transaction_id: str) -> Iterator[str]:
    """Publish ``transaction_id`` to module loggers until the block exits.

    Scopes nest: an inner scope restores the outer id on exit.
    """

    token = _current_transaction_id.set(transaction_id)
    try:
        yield transaction_id
    finally:
        _current_transaction_id.reset(token)


class TransactionLogger(logging.LoggerAdapter):
    """Logger adapter that tags every record with a transaction id.

    Call-site ``extra`` is merged with the bound fields instead of replacing
    them; the bound ``transaction_id`` always wins.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(kwargs.get("extra") or {}), **(self.extra or {})}
        return msg, kwargs

    @property
    def transaction_id(self) -> str:
        return self.extra["transaction_id"]  # type: ignore[index]


def new_transaction_id() -> str:
    return str(uuid.uuid4())


def create_transaction_logger(transaction_id: str | None = None) -> TransactionLogger:
    """Bind the transaction logger to ``transaction_id`` (generated when omitted)."""

    return TransactionLogger(
        _transaction_base_logger,
        {"transaction_id": transaction_id or new_transaction_id()},
    )


def redact(value: Any, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> Any:
    """Replace values under sensitive keys, recursing into mappings and sequences.

    Keys match case-insensitively so raw header names are covered.
    """

    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item, sensitive_keys) for item in value)
    return value


def record_extras(record: LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class TransactionIdFilter(logging.Filter):
    """Stamp the scoped transaction id on records that carry none."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "transaction_id", None) is None:
            transaction_id = get_transaction_id()
            if transaction_id is not None:
                record.transaction_id = transaction_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive extras in place before any formatter sees them."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(
            key.lower() for key in (sensitive_keys or SENSITIVE_KEYS_DEFAULT)
        )

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in redact(record_extras(record), self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: envelope fields first, then extras."""

    def __init__(self, *, ensure_ascii: bool = True) -> None:
        super().__init__()
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(record_extras(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output == "file":
        file_path = Path(log_settings.file_path or "logs/admission.log")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if log_settings.max_bytes:
            return RotatingFileHandler(
                file_path,
                maxBytes=log_settings.max_bytes,
                backupCount=log_settings.backup_count,
                encoding="utf-8",
            )
        return logging.FileHandler(file_path, encoding="utf-8")

    return logging.StreamHandler(sys.stdout)


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the single root handler: transaction tagging, redaction, format.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(TransactionIdFilter())
    handler.addFilter(SensitiveDataFilter())

    if cfg.format == "plain":
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s [%(transaction_id)s] %(message)s",
                defaults={"transaction_id": "-"},
            )
        )
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
