from fastapi import APIRouter

from ..config import settings
from ..db import db_ping

router = APIRouter(tags=["core"])

@router.get("/healthz")
def healthz():
    return {
        "status": "ok",
        "db": "up" if db_ping() else "down",
        "challenges": settings.CHALLENGE_BACKEND,
    }

# Gateway proxy compat: /api/healthz -> /healthz
@router.get("/api/healthz")
def healthz_alias():
    return healthz()

@router.get("/api/v1/health")
def api_health():
    return {"status": "ok", "scope": "api-v1"}
