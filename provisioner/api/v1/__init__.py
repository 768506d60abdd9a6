"""
API v1

All routers are mounted under /api/v1.
"""

from fastapi import APIRouter

from provisioner.api.v1.endpoints import config, enrollment, peers

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(enrollment.router)
api_router.include_router(peers.router)
api_router.include_router(config.router)

__all__ = ["api_router"]
