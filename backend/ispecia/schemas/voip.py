"""
Pydantic schemas for VoIP providers, trunks, inbound routes and calls.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from ispecia.models.voip import VoipProviderType, CallDirection, SipTransport, SipAuthMethod, RouteDestination
from ispecia.schemas.common import NamedRef, UserSummary


class VoipProviderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    provider_type: VoipProviderType = VoipProviderType.TWILIO
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    api_key_sid: Optional[str] = None
    api_key_secret: Optional[str] = None
    twiml_app_sid: Optional[str] = None
    from_number: Optional[str] = None
    active: bool = True


class VoipProviderUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    api_key_sid: Optional[str] = None
    api_key_secret: Optional[str] = None
    twiml_app_sid: Optional[str] = None
    from_number: Optional[str] = None
    active: Optional[bool] = None


class VoipProviderResponse(BaseModel):
    """Provider settings with secrets masked."""
    id: str
    name: str
    provider_type: VoipProviderType
    account_sid: Optional[str] = None
    api_key_sid: Optional[str] = None
    twiml_app_sid: Optional[str] = None
    from_number: Optional[str] = None
    active: bool
    has_auth_token: bool
    has_api_key_secret: bool
    created: datetime
    updated: datetime


class VoipTrunkCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    provider_id: str
    sip_domain: str = Field(..., min_length=1, max_length=255)
    sip_port: int = Field(5060, gt=0, lt=65536)
    transport_protocol: SipTransport = SipTransport.UDP
    auth_method: SipAuthMethod = SipAuthMethod.USERNAME
    sip_username: Optional[str] = None
    sip_password: Optional[str] = None
    registration_required: bool = False
    options_context: Optional[str] = None
    active: bool = True


class VoipTrunkUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    provider_id: Optional[str] = None
    sip_domain: Optional[str] = Field(None, min_length=1, max_length=255)
    sip_port: Optional[int] = Field(None, gt=0, lt=65536)
    transport_protocol: Optional[SipTransport] = None
    auth_method: Optional[SipAuthMethod] = None
    sip_username: Optional[str] = None
    sip_password: Optional[str] = None
    registration_required: Optional[bool] = None
    options_context: Optional[str] = None
    active: Optional[bool] = None


class InboundRouteSummary(BaseModel):
    id: str
    name: str
    did_pattern: str
    destination_type: RouteDestination
    destination_id: str
    trunk_id: str
    priority: int
    active: bool

    class Config:
        from_attributes = True


class VoipTrunkResponse(BaseModel):
    """Trunk settings; the SIP password is masked."""
    id: str
    name: str
    provider_id: str
    provider: Optional[NamedRef] = None
    sip_domain: str
    sip_port: int
    transport_protocol: SipTransport
    auth_method: SipAuthMethod
    sip_username: Optional[str] = None
    has_sip_password: bool
    registration_required: bool
    options_context: Optional[str] = None
    active: bool
    inbound_routes: list[InboundRouteSummary] = []
    created: datetime
    updated: datetime


class InboundRouteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    did_pattern: str = Field(..., min_length=1, max_length=100)
    destination_type: RouteDestination
    destination_id: str = Field(..., min_length=1, max_length=100)
    trunk_id: str
    priority: int = Field(1, ge=0)
    active: bool = True


class InboundRouteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    did_pattern: Optional[str] = Field(None, min_length=1, max_length=100)
    destination_type: Optional[RouteDestination] = None
    destination_id: Optional[str] = Field(None, min_length=1, max_length=100)
    trunk_id: Optional[str] = None
    priority: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None


class InboundRouteResponse(InboundRouteSummary):
    trunk: Optional[NamedRef] = None
    created: datetime
    updated: datetime


class CallCreate(BaseModel):
    provider_id: str
    to: str = Field(..., min_length=3, max_length=50)
    from_number: Optional[str] = None
    person_id: Optional[str] = None
    lead_id: Optional[str] = None


class CallLogResponse(BaseModel):
    id: str
    call_sid: str
    provider_id: Optional[str] = None
    direction: CallDirection
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    status: str
    user_id: Optional[str] = None
    person_id: Optional[str] = None
    lead_id: Optional[str] = None
    started_at: datetime
    answered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration: Optional[int] = None
    recording_url: Optional[str] = None

    class Config:
        from_attributes = True


class VoiceTokenResponse(BaseModel):
    token: str
    identity: str
    expires_in: int


class CallRecordingResponse(BaseModel):
    id: str
    call_sid: str
    direction: CallDirection
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    user_id: Optional[str] = None
    user: Optional[UserSummary] = None
    person_id: Optional[str] = None
    lead_id: Optional[str] = None
    started_at: datetime
    duration: Optional[int] = None
    recording_url: str

    class Config:
        from_attributes = True
