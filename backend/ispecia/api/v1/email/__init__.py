"""
Email routers: mailbox accounts, stored messages and templates.
"""
from fastapi import APIRouter

from ispecia.api.v1.email.accounts import router as accounts_router
from ispecia.api.v1.email.emails import router as emails_router
from ispecia.api.v1.email.templates import router as templates_router

email_router = APIRouter()

email_router.include_router(accounts_router, prefix="/email-accounts", tags=["email"])
email_router.include_router(emails_router, prefix="/emails", tags=["email"])
email_router.include_router(templates_router, prefix="/email-templates", tags=["email"])

__all__ = ["email_router"]
