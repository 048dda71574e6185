"""
VoIP models: telephony provider credentials, SIP trunks, inbound routes and
call logs.
"""
from typing import Optional, TYPE_CHECKING
from enum import Enum
from datetime import datetime
from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel, utcnow

if TYPE_CHECKING:
    from ispecia.models.user import User


class VoipProviderType(str, Enum):
    TWILIO = "twilio"
    TELNYX = "telnyx"
    SIP = "sip"


class CallDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class SipTransport(str, Enum):
    UDP = "UDP"
    TCP = "TCP"
    TLS = "TLS"


class SipAuthMethod(str, Enum):
    USERNAME = "username"
    IP = "ip"


class RouteDestination(str, Enum):
    USER = "user"
    QUEUE = "queue"
    IVR = "ivr"
    VOICEMAIL = "voicemail"


class VoipProvider(BaseModel):
    __tablename__ = "voip_providers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    provider_type: Mapped[VoipProviderType] = mapped_column(
        SQLEnum(
            VoipProviderType,
            name="voipprovidertype",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=VoipProviderType.TWILIO,
        nullable=False
    )
    account_sid: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    auth_token_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_key_sid: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    api_key_secret_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    twiml_app_sid: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    from_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<VoipProvider {self.name} ({self.provider_type.value})>"


class VoipTrunk(BaseModel):
    __tablename__ = "voip_trunks"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    provider_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("voip_providers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sip_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    sip_port: Mapped[int] = mapped_column(Integer, default=5060, nullable=False)
    transport_protocol: Mapped[SipTransport] = mapped_column(
        SQLEnum(
            SipTransport,
            name="siptransport",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=SipTransport.UDP,
        nullable=False
    )
    auth_method: Mapped[SipAuthMethod] = mapped_column(
        SQLEnum(
            SipAuthMethod,
            name="sipauthmethod",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=SipAuthMethod.USERNAME,
        nullable=False
    )
    sip_username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Encrypted with EncryptionService; never returned by the API
    sip_password_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    registration_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    options_context: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    provider: Mapped["VoipProvider"] = relationship("VoipProvider")
    inbound_routes: Mapped[list["InboundRoute"]] = relationship(
        "InboundRoute",
        back_populates="trunk",
        cascade="all, delete-orphan",
        order_by="InboundRoute.priority"
    )

    def __repr__(self) -> str:
        return f"<VoipTrunk {self.name} ({self.sip_domain})>"


class InboundRoute(BaseModel):
    """Sends calls to a DID on a trunk to a user, queue, IVR or voicemail box."""
    __tablename__ = "inbound_routes"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    did_pattern: Mapped[str] = mapped_column(String(100), nullable=False)
    destination_type: Mapped[RouteDestination] = mapped_column(
        SQLEnum(
            RouteDestination,
            name="routedestination",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=False
    )
    destination_id: Mapped[str] = mapped_column(String(100), nullable=False)
    trunk_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("voip_trunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Lower numbers are tried first
    priority: Mapped[int] = mapped_column(Integer, default=1, nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    trunk: Mapped["VoipTrunk"] = relationship("VoipTrunk", back_populates="inbound_routes")

    def __repr__(self) -> str:
        return f"<InboundRoute {self.name} ({self.did_pattern})>"


class CallLog(BaseModel):
    __tablename__ = "call_logs"

    call_sid: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    provider_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("voip_providers.id", ondelete="SET NULL"), nullable=True
    )
    direction: Mapped[CallDirection] = mapped_column(
        SQLEnum(
            CallDirection,
            name="calldirection",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=False
    )
    from_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # Twilio call status: initiated, ringing, in-progress, completed, busy, failed, no-answer, canceled
    status: Mapped[str] = mapped_column(String(30), default="initiated", nullable=False, index=True)

    user_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    person_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("persons.id", ondelete="SET NULL"), nullable=True
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    answered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # seconds
    recording_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    provider: Mapped[Optional["VoipProvider"]] = relationship("VoipProvider")
    user: Mapped[Optional["User"]] = relationship("User")

    def __repr__(self) -> str:
        return f"<CallLog {self.call_sid} ({self.status})>"
