"""
Quote endpoints.

A quote's totals are always derived from its line items:
sub_total = sum(quantity * price), grand_total = sub_total - discount + tax.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.deal import Deal
from ispecia.models.person import Person
from ispecia.models.product import Product
from ispecia.models.quote import Quote, QuoteItem
from ispecia.models.user import User
from ispecia.schemas.common import PaginatedResponse
from ispecia.schemas.product import QuoteCreate, QuoteResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def generate_quote_number() -> str:
    """QUO-<YYYYMMDD>-<6 hex>"""
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"QUO-{today}-{uuid.uuid4().hex[:6].upper()}"


def _quote_query():
    return select(Quote).options(selectinload(Quote.person), selectinload(Quote.items))


async def _load_quote(db: AsyncSession, quote_id: str) -> Quote:
    result = await db.execute(
        _quote_query().where(Quote.id == quote_id).execution_options(populate_existing=True)
    )
    quote = result.scalar_one_or_none()
    if quote is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Quote not found"
        )
    return quote


@router.get("", response_model=PaginatedResponse[QuoteResponse])
async def list_quotes(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("quotes"))
):
    quotes, meta = await paginate(db, _quote_query().order_by(Quote.created.desc()), page, perPage)
    return PaginatedResponse[QuoteResponse](
        **meta,
        items=[QuoteResponse.model_validate(q) for q in quotes]
    )


@router.post("", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def create_quote(
    quote_data: QuoteCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("quotes", "create"))
):
    if await db.get(Person, quote_data.person_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Person not found"
        )
    if quote_data.deal_id and await db.get(Deal, quote_data.deal_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Deal not found"
        )

    items = []
    sub_total = Decimal("0")
    for item in quote_data.items:
        product = await db.get(Product, item.product_id)
        if product is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Product {item.product_id} not found"
            )
        amount = item.price * item.quantity
        sub_total += amount
        items.append(QuoteItem(
            product_id=product.id,
            name=product.name,
            quantity=item.quantity,
            price=item.price,
            amount=amount,
        ))

    quote = Quote(
        quote_number=generate_quote_number(),
        subject=quote_data.subject,
        description=quote_data.description,
        person_id=quote_data.person_id,
        deal_id=quote_data.deal_id,
        user_id=current_user.id,
        sub_total=sub_total,
        discount_amount=quote_data.discount_amount,
        tax_amount=quote_data.tax_amount,
        grand_total=sub_total - quote_data.discount_amount + quote_data.tax_amount,
        expired_at=quote_data.expired_at,
        items=items,
    )
    db.add(quote)
    await db.flush()
    logger.info("Quote %s created (%s)", quote.quote_number, quote.grand_total)

    return QuoteResponse.model_validate(await _load_quote(db, quote.id))


@router.get("/{quote_id}", response_model=QuoteResponse)
async def get_quote(
    quote_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("quotes"))
):
    return QuoteResponse.model_validate(await _load_quote(db, quote_id))


@router.delete("/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quote(
    quote_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("quotes", "delete"))
):
    quote = await _load_quote(db, quote_id)
    await db.delete(quote)
    await db.flush()
