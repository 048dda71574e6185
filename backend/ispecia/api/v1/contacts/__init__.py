"""
Contact routers: persons and organizations.
"""
from fastapi import APIRouter

from ispecia.api.v1.contacts.persons import router as persons_router
from ispecia.api.v1.contacts.organizations import router as organizations_router

contacts_router = APIRouter()

contacts_router.include_router(persons_router, prefix="/persons", tags=["persons"])
contacts_router.include_router(organizations_router, prefix="/organizations", tags=["organizations"])

__all__ = ["contacts_router"]
