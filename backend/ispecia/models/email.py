"""
Email models: connected mailbox accounts, stored messages and tracking events.
"""
from typing import Optional, TYPE_CHECKING
from enum import Enum
from datetime import datetime
from sqlalchemy import String, Text, Integer, Boolean, DateTime, JSON, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel, utcnow

if TYPE_CHECKING:
    from ispecia.models.user import User


class EmailProvider(str, Enum):
    GMAIL = "gmail"
    OUTLOOK = "outlook"
    SMTP_IMAP = "smtp_imap"


class EmailFolder(str, Enum):
    INBOX = "inbox"
    SENT = "sent"
    DRAFT = "draft"
    OUTBOX = "outbox"
    ARCHIVE = "archive"
    TRASH = "trash"


class TrackingEventType(str, Enum):
    OPEN = "open"
    CLICK = "click"


class EmailAccount(BaseModel):
    __tablename__ = "email_accounts"

    user_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    provider: Mapped[EmailProvider] = mapped_column(
        SQLEnum(
            EmailProvider,
            name="emailprovider",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=False
    )
    smtp_host: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    smtp_port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    imap_host: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    imap_port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Encrypted with EncryptionService; never returned by the API
    encrypted_password: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Used when a message is composed without an explicit account
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User")
    messages: Mapped[list["EmailMessage"]] = relationship(
        "EmailMessage",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<EmailAccount {self.email}>"


class EmailMessage(BaseModel):
    __tablename__ = "email_messages"

    account_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("email_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # RFC 5322 Message-ID and threading headers
    message_id: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, index=True)
    in_reply_to: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    references: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    folder: Mapped[EmailFolder] = mapped_column(
        SQLEnum(
            EmailFolder,
            name="emailfolder",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=EmailFolder.INBOX,
        nullable=False,
        index=True
    )
    subject: Mapped[Optional[str]] = mapped_column(String(998), nullable=True)
    from_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    from_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Recipient lists: strings or {"email": ..., "name": ...}
    to: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    cc: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    bcc: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    body_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_starred: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    person_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("leads.id", ondelete="SET NULL"), nullable=True, index=True
    )
    deal_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("deals.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_unknown: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    account: Mapped["EmailAccount"] = relationship("EmailAccount", back_populates="messages")
    tracking_events: Mapped[list["EmailTracking"]] = relationship(
        "EmailTracking",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<EmailMessage {self.subject!r}>"


class EmailTracking(BaseModel):
    __tablename__ = "email_tracking"

    message_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("email_messages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[TrackingEventType] = mapped_column(
        SQLEnum(
            TrackingEventType,
            name="trackingeventtype",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=False
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    link_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    message: Mapped["EmailMessage"] = relationship("EmailMessage", back_populates="tracking_events")


class EmailTemplate(BaseModel):
    """Reusable message body; shared templates are visible to every user."""
    __tablename__ = "email_templates"

    user_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(String(998), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Placeholder names such as "first_name" used in subject/body
    variables: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    is_shared: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<EmailTemplate {self.name}>"
