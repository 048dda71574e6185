"""
Quote models.
"""
from typing import Optional, TYPE_CHECKING
from decimal import Decimal
from datetime import date
from sqlalchemy import String, Text, Integer, Numeric, Date, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.person import Person
    from ispecia.models.deal import Deal
    from ispecia.models.product import Product


class Quote(BaseModel):
    """Sales quote sent to a person, optionally tied to a deal."""
    __tablename__ = "quotes"

    quote_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    person_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    deal_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("deals.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    sub_total: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    expired_at: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    person: Mapped["Person"] = relationship("Person")
    deal: Mapped[Optional["Deal"]] = relationship("Deal")
    items: Mapped[list["QuoteItem"]] = relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Quote {self.quote_number}>"


class QuoteItem(BaseModel):
    __tablename__ = "quote_items"

    quote_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    quote: Mapped["Quote"] = relationship("Quote", back_populates="items")
    product: Mapped[Optional["Product"]] = relationship("Product")
