"""Audit logging for the booking HTTP adapter.

One line per request goes to ``<log_dir>/<service>.log``; client and server
errors are logged at WARNING/ERROR so a rejected booking stands out.
"""
from __future__ import annotations

import logging
from pathlib import Path
from time import time

from fastapi import FastAPI, Request

from .config import get_settings
from .errors import LedgerError


def build_audit_logger(service_name: str) -> logging.Logger:
    logger = logging.getLogger(f"audit.{service_name}")
    if logger.handlers:
        return logger

    log_dir = Path(get_settings().log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.setLevel(logging.INFO)
    handler = logging.FileHandler(log_dir / f"{service_name}.log")
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)
    return logger


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


def log_ledger_failure(logger: logging.Logger, request: Request, exc: LedgerError, status_code: int) -> None:
    logger.log(
        _level_for(status_code),
        "%s %s | rejected=%s | retryable=%s | %s",
        request.method,
        request.url.path,
        exc.kind,
        exc.retryable,
        exc.message,
    )


def add_audit_middleware(app: FastAPI, service_name: str) -> logging.Logger:
    logger = build_audit_logger(service_name)

    @app.middleware("http")
    async def audit_logger(request: Request, call_next):  # type: ignore[override]
        start = time()
        response = await call_next(request)
        duration_ms = (time() - start) * 1000
        client_ip = request.client.host if request.client else "unknown"
        logger.log(
            _level_for(response.status_code),
            "%s %s | status=%s | client=%s | duration=%.2fms",
            request.method,
            request.url.path,
            response.status_code,
            client_ip,
            duration_ms,
        )
        return response

    return logger
