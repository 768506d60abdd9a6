"""
FastAPI application entrypoint

Registers the API routers and prepares the provisioning service.
"""

import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from provisioner import __version__
from provisioner.api.v1 import api_router
from provisioner.api.v1.deps import get_provisioning_service
from provisioner.config import configure_logging, get_settings

configure_logging(get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="WireGuard Provisioner",
    description="Peer enrollment and credential lifecycle for a WireGuard interface",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(api_router)


@app.on_event("startup")
async def startup():
    service = get_provisioning_service()
    service.reconcile_enrollments()
    service.revocations.cleanup_expired()
    logger.info(
        f"Provisioner ready: interface={service.interface_name}, "
        f"network={service.ip_pool.network}"
    )


@app.get("/api/v1/health", tags=["Health"])
async def health():
    return {
        "status": "ok",
        "timestamp": int(time.time()),
        "version": __version__,
    }
