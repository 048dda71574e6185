"""
VoIP routers: provider, trunk and inbound route settings, calling and
recordings.
"""
from fastapi import APIRouter

from ispecia.api.v1.voip.providers import router as providers_router
from ispecia.api.v1.voip.trunks import router as trunks_router
from ispecia.api.v1.voip.inbound_routes import router as inbound_routes_router
from ispecia.api.v1.voip.recordings import router as recordings_router
from ispecia.api.v1.voip.calls import router as calls_router

voip_router = APIRouter()

voip_router.include_router(providers_router, prefix="/providers", tags=["voip"])
voip_router.include_router(trunks_router, prefix="/trunks", tags=["voip"])
voip_router.include_router(inbound_routes_router, prefix="/inbound-routes", tags=["voip"])
voip_router.include_router(recordings_router, prefix="/recordings", tags=["voip"])
voip_router.include_router(calls_router, tags=["voip"])

__all__ = ["voip_router"]
