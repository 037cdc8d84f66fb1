from datetime import datetime, timezone

from fastapi import APIRouter

from app.core.config import get_settings


router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    return {
        "ok": True,
        "service": get_settings().app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
