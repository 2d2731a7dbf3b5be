# =============================================
# File: shopassist/utils/slog.py
# Purpose: One-line JSON request/turn events on the stdlib "shopassist" logger
# =============================================
from __future__ import annotations
import json
import logging
import os
import re
import uuid
import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

LOGGER_NAME = "shopassist"
REQUEST_ID_HEADER = "X-Request-ID"
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    _logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(_handler)
    _logger.propagate = True  # pytest caplog

def qhash(text: str) -> str:
    """Short hash of a normalized user message (messages themselves are not logged)."""
    norm = " ".join((text or "").strip().lower().split())
    return hashlib.sha256(norm.encode("utf-8")).hexdigest()[:10]

def request_id_from(headers: Mapping[str, str]) -> str:
    """Reuse a caller-supplied request id when it looks sane, otherwise mint one."""
    incoming = (headers.get(REQUEST_ID_HEADER) or "").strip()
    if _SAFE_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex

def _emit(level: int, payload: Dict[str, Any]) -> None:
    _logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))

def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    rec: Dict[str, Any] = {"event": event, "ts": datetime.now(timezone.utc).isoformat()}
    rec.update(fields)
    _emit(level, rec)

def finalize_request_log(
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: int,
    client_ip: str | None,
    ctx: Dict[str, Any] | None = None,
) -> None:
    # route context (qhash, session_id, intent, outcome) first; core fields win on clashes
    payload: Dict[str, Any] = dict(ctx or {})
    payload.update(
        event="request.completed",
        ts=datetime.now(timezone.utc).isoformat(),
        request_id=request_id,
        method=method,
        path=path,
        status=status,
        latency_ms=latency_ms,
        client_ip=client_ip or "",
    )
    _emit(logging.WARNING if status >= 500 else logging.INFO, payload)
