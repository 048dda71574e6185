"""
Common schemas used across the application.
"""
from typing import Generic, TypeVar, Optional
from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated list response."""
    page: int
    perPage: int
    totalItems: int
    totalPages: int
    items: list[T]


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str


class UserSummary(BaseModel):
    """Minimal user info for expansion in responses."""
    id: str
    name: str
    email: str

    class Config:
        from_attributes = True


class NamedRef(BaseModel):
    """Minimal {id, name} reference."""
    id: str
    name: str

    class Config:
        from_attributes = True


class CountResponse(BaseModel):
    count: int


class LabeledValue(BaseModel):
    """Labelled email address or phone number."""
    value: str
    label: Optional[str] = None
