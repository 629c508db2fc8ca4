"""
Health check route.
"""
from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}
