"""
Health check and version endpoints
"""
from fastapi import APIRouter
from app.core.config import settings

router = APIRouter()

SERVICE_NAME = "leave-ledger"


@router.get("/health")
async def health_check():
    """
    Health check endpoint

    Returns service status.
    """
    return {
        "status": "ok",
        "service": SERVICE_NAME,
    }


@router.get("/version")
async def get_version():
    """Application version and environment"""
    return {
        "service": SERVICE_NAME,
        "version": settings.VERSION or "1.0.0",
        "env": settings.APP_ENV,
    }
