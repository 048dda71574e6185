"""
API v1 router.
"""
from fastapi import APIRouter

from ispecia.api.v1.auth import router as auth_router
from ispecia.api.v1.roles import router as roles_router
from ispecia.api.v1.contacts import contacts_router
from ispecia.api.v1.sales import sales_router
from ispecia.api.v1.pipelines import router as pipelines_router
from ispecia.api.v1.tasks import router as tasks_router
from ispecia.api.v1.notifications import router as notifications_router
from ispecia.api.v1.analytics import router as analytics_router
from ispecia.api.v1.email import email_router
from ispecia.api.v1.tracking import router as tracking_router
from ispecia.api.v1.voip import voip_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(roles_router, prefix="/roles", tags=["roles"])
api_router.include_router(contacts_router)
api_router.include_router(sales_router)
api_router.include_router(pipelines_router, prefix="/pipelines", tags=["pipelines"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
api_router.include_router(analytics_router, prefix="/analytics", tags=["analytics"])
api_router.include_router(email_router)
api_router.include_router(tracking_router, prefix="/track", tags=["tracking"])
api_router.include_router(voip_router, prefix="/voip")
