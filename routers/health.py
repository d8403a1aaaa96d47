"""Liveness endpoint used by the hosting platform."""

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    return {"status": "OK", "message": "Server is running"}
