"""Per-service audit and fraud log files."""
from __future__ import annotations

import logging
from pathlib import Path
from time import perf_counter

from fastapi import FastAPI, Request

from .config import get_settings
from .rate_limit import client_key

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _file_logger(name: str, filename: str, level: int) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    log_dir = Path(get_settings().log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / filename)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.setLevel(level)
    logger.addHandler(handler)
    return logger


def configure_fraud_log(service_name: str) -> logging.Logger:
    """Route token reuse alerts to ``<service>.fraud.log`` for operators."""
    return _file_logger("booking_engine.fraud", f"{service_name}.fraud.log", logging.WARNING)


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    audit = _file_logger(f"audit.{service_name}", f"{service_name}.log", logging.INFO)

    @app.middleware("http")
    async def audit_requests(request: Request, call_next):  # type: ignore[override]
        started = perf_counter()
        response = await call_next(request)
        audit.info(
            "%s %s | status=%s | client=%s | duration=%.2fms",
            request.method,
            request.url.path,
            response.status_code,
            client_key(request),
            (perf_counter() - started) * 1000,
        )
        return response
