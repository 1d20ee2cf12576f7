"""Health and readiness endpoints."""
from __future__ import annotations

from datetime import datetime, timezone
from fastapi import APIRouter

from ..providers import PROVIDERS

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict:
    """Liveness probe endpoint; the provider registry is loaded and validated at import."""
    return {
        "status": "ok",
        "providers": len(PROVIDERS),
        "time": datetime.now(timezone.utc).isoformat(),
    }
