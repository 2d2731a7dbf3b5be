# =============================================
# File: shopassist/routers/metrics.py
# Purpose: Operational endpoints: liveness + in-process metrics as JSON
# =============================================
from __future__ import annotations
from fastapi import APIRouter, Depends

from shopassist.dependencies import get_session_store
from shopassist.services.sessions import SessionStore
from shopassist.utils.metrics import snapshot

router = APIRouter(tags=["ops"])

@router.get("/health")
def health(store: SessionStore = Depends(get_session_store)):
    return {"status": "ok", "sessions": len(store)}

@router.get("/metrics")
def get_metrics():
    """Return in-process metrics (JSON)."""
    return snapshot()
