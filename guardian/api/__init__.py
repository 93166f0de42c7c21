"""Routes API / API routes."""

from fastapi import APIRouter

from guardian.api import (
    check_ins,
    connections,
    emergency,
    tracking,
)

api_router = APIRouter(prefix="/api")

api_router.include_router(tracking.router, prefix="/tracking", tags=["tracking"])
api_router.include_router(emergency.router, prefix="/emergency", tags=["emergency"])
api_router.include_router(connections.router, prefix="/connections", tags=["connections"])
api_router.include_router(check_ins.router, prefix="/check-ins", tags=["check-ins"])
api_router.include_router(check_ins.push_router, prefix="/push-tokens", tags=["push-tokens"])
