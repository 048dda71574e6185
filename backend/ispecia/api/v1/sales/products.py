"""
Product catalogue endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.product import Product
from ispecia.models.user import User
from ispecia.schemas.common import PaginatedResponse
from ispecia.schemas.product import ProductCreate, ProductUpdate, ProductResponse

router = APIRouter()


async def _get_product(db: AsyncSession, product_id: str) -> Product:
    product = await db.get(Product, product_id)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )
    return product


async def _check_sku(db: AsyncSession, sku: str, exclude_id: Optional[str] = None) -> None:
    query = select(Product.id).where(Product.sku == sku)
    if exclude_id:
        query = query.where(Product.id != exclude_id)
    if (await db.execute(query)).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Product with this SKU already exists"
        )


@router.get("", response_model=PaginatedResponse[ProductResponse])
async def list_products(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search name or SKU"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products"))
):
    query = select(Product)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

    products, meta = await paginate(db, query.order_by(Product.created.desc()), page, perPage)
    return PaginatedResponse[ProductResponse](
        **meta,
        items=[ProductResponse.model_validate(p) for p in products]
    )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products", "create"))
):
    await _check_sku(db, product_data.sku)

    product = Product(**product_data.model_dump())
    db.add(product)
    await db.flush()
    return product


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products"))
):
    return await _get_product(db, product_id)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    product_data: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products", "edit"))
):
    product = await _get_product(db, product_id)
    update_data = {k: v for k, v in product_data.model_dump(exclude_unset=True).items()
                   if v is not None or k == "description"}

    if "sku" in update_data and update_data["sku"] != product.sku:
        await _check_sku(db, update_data["sku"], exclude_id=product.id)

    for field, value in update_data.items():
        setattr(product, field, value)

    await db.flush()
    return product


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products", "delete"))
):
    product = await _get_product(db, product_id)
    await db.delete(product)
    await db.flush()
