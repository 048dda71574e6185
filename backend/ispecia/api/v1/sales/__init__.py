"""
Sales routers: products, quotes, leads, deals and activities.
"""
from fastapi import APIRouter

from ispecia.api.v1.sales.products import router as products_router
from ispecia.api.v1.sales.quotes import router as quotes_router
from ispecia.api.v1.sales.leads import router as leads_router
from ispecia.api.v1.sales.deals import router as deals_router
from ispecia.api.v1.sales.activities import router as activities_router

sales_router = APIRouter()

sales_router.include_router(products_router, prefix="/products", tags=["products"])
sales_router.include_router(quotes_router, prefix="/quotes", tags=["quotes"])
sales_router.include_router(leads_router, prefix="/leads", tags=["leads"])
sales_router.include_router(deals_router, prefix="/deals", tags=["deals"])
sales_router.include_router(activities_router, prefix="/activities", tags=["activities"])

__all__ = ["sales_router"]
