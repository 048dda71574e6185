"""
Pydantic schemas for email accounts, messages and tracking.
"""
from typing import Optional, Union
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from ispecia.models.email import EmailProvider, EmailFolder, TrackingEventType


class EmailAccountCreate(BaseModel):
    email: EmailStr
    display_name: Optional[str] = Field(None, max_length=200)
    provider: EmailProvider = EmailProvider.SMTP_IMAP
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, gt=0, lt=65536)
    imap_host: Optional[str] = None
    imap_port: Optional[int] = Field(None, gt=0, lt=65536)
    username: Optional[str] = None
    password: Optional[str] = None


class EmailAccountUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=200)
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, gt=0, lt=65536)
    imap_host: Optional[str] = None
    imap_port: Optional[int] = Field(None, gt=0, lt=65536)
    username: Optional[str] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None


class EmailAccountResponse(BaseModel):
    """Account settings; the stored password is never returned."""
    id: str
    user_id: str
    email: str
    display_name: Optional[str] = None
    provider: EmailProvider
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    imap_host: Optional[str] = None
    imap_port: Optional[int] = None
    username: Optional[str] = None
    has_password: bool = False
    is_active: bool
    is_default: bool = False
    last_synced_at: Optional[datetime] = None
    created: datetime
    updated: datetime


class EmailMessageCreate(BaseModel):
    # Falls back to the caller's default account
    account_id: Optional[str] = None
    folder: EmailFolder = EmailFolder.SENT
    subject: Optional[str] = Field(None, max_length=998)
    to: list[Union[str, dict]] = Field(default_factory=list)
    cc: list[Union[str, dict]] = Field(default_factory=list)
    bcc: list[Union[str, dict]] = Field(default_factory=list)
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: list[str] = Field(default_factory=list)
    message_id: Optional[str] = None


class EmailMessageResponse(BaseModel):
    id: str
    account_id: str
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    folder: EmailFolder
    subject: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    to: list = []
    cc: list = []
    bcc: list = []
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    sent_at: datetime
    is_read: bool
    is_starred: bool = False
    person_id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_id: Optional[str] = None
    is_unknown: bool
    created: datetime

    class Config:
        from_attributes = True


class EmailMessageUpdate(BaseModel):
    is_read: Optional[bool] = None
    is_starred: Optional[bool] = None
    folder: Optional[EmailFolder] = None


class FolderCounts(BaseModel):
    inbox: int = 0
    draft: int = 0
    outbox: int = 0
    sent: int = 0
    archive: int = 0
    trash: int = 0


class LinkResult(BaseModel):
    linked: Optional[dict] = None
    is_unknown: bool
    email_addresses: list[str] = []


class TrackingEventResponse(BaseModel):
    id: str
    event_type: TrackingEventType
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    link_url: Optional[str] = None
    tracked_at: datetime

    class Config:
        from_attributes = True


class TrackingStats(BaseModel):
    total_opens: int
    unique_opens: int
    first_opened_at: Optional[datetime] = None
    last_opened_at: Optional[datetime] = None
    total_clicks: int
    unique_clicks: int
    clicked_urls: dict[str, int] = {}
    events: list[TrackingEventResponse] = []


class EmailTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=998)
    body: str = Field(..., min_length=1)
    description: Optional[str] = None
    variables: list[str] = Field(default_factory=list)
    is_shared: bool = False


class EmailTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    subject: Optional[str] = Field(None, min_length=1, max_length=998)
    body: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    variables: Optional[list[str]] = None
    is_shared: Optional[bool] = None


class EmailTemplateResponse(BaseModel):
    id: str
    user_id: str
    name: str
    subject: str
    body: str
    description: Optional[str] = None
    variables: list = []
    is_shared: bool
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True
