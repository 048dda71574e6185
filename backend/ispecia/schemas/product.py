"""
Pydantic schemas for products and quotes.
"""
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel, Field

from ispecia.schemas.common import NamedRef


class ProductCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    quantity: int = Field(default=0, ge=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class ProductUpdate(BaseModel):
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0)


class ProductResponse(BaseModel):
    id: str
    sku: str
    name: str
    description: Optional[str] = None
    quantity: int
    price: Decimal
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class QuoteItemCreate(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)


class QuoteCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    person_id: str
    deal_id: Optional[str] = None
    items: list[QuoteItemCreate] = Field(..., min_length=1)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    expired_at: Optional[date] = None


class QuoteItemResponse(BaseModel):
    id: str
    product_id: Optional[str] = None
    name: str
    quantity: int
    price: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class QuoteResponse(BaseModel):
    id: str
    quote_number: str
    subject: str
    description: Optional[str] = None
    person_id: str
    deal_id: Optional[str] = None
    user_id: Optional[str] = None
    sub_total: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal
    expired_at: Optional[date] = None
    person: Optional[NamedRef] = None
    items: list[QuoteItemResponse] = []
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True
