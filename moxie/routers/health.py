"""Health check endpoint."""

from fastapi import APIRouter

from moxie import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}
