from fastapi import APIRouter

from app.db.postgres import ping

router = APIRouter(prefix="", tags=["health"])


@router.get("/health")
def health_check():
    return {"status": "ok", "database": ping()}
