"""
Twilio voice integration.

Credentials live on VoipProvider rows (secrets encrypted at rest). Every call
placed through the API gets a CallLog row that Twilio status webhooks keep
up to date.
"""
import logging
from functools import partial
from typing import Optional
from urllib.parse import urlparse

import anyio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.base.exceptions import TwilioException
from twilio.jwt.access_token import AccessToken
from twilio.jwt.access_token.grants import VoiceGrant
from twilio.request_validator import RequestValidator
from twilio.rest import Client

from ispecia.core.config import settings
from ispecia.core.errors import AppError
from ispecia.models.base import utcnow
from ispecia.models.voip import VoipProvider, VoipProviderType, CallLog, CallDirection
from ispecia.services.encryption import EncryptionService, EncryptionError, encryption_service

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 3600
STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]
ANSWERED_STATUSES = ("in-progress", "answered")


class VoipError(AppError):
    status_code = 400


class TwilioService:
    def __init__(self, encryption: Optional[EncryptionService] = None, client_factory=None):
        self.encryption = encryption or encryption_service
        self.client_factory = client_factory or Client

    def _callback_url(self, path: str) -> str:
        return f"{settings.API_URL.rstrip('/')}{settings.API_V1_PREFIX}/voip{path}"

    def _decrypt(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            return self.encryption.decrypt(value)
        except EncryptionError as exc:
            raise VoipError("Twilio credentials could not be decrypted") from exc

    async def get_provider(self, db: AsyncSession, provider_id: str) -> VoipProvider:
        provider = await db.get(VoipProvider, provider_id)
        if provider is None or not provider.active:
            raise VoipError("VoIP provider not found or inactive")
        if provider.provider_type != VoipProviderType.TWILIO:
            raise VoipError("Provider is not a Twilio provider")
        return provider

    async def get_client(self, db: AsyncSession, provider_id: str) -> Client:
        provider = await self.get_provider(db, provider_id)
        auth_token = self._decrypt(provider.auth_token_encrypted)
        if not provider.account_sid or not auth_token:
            raise VoipError("Twilio credentials not configured")
        return self.client_factory(provider.account_sid, auth_token)

    async def make_call(
        self,
        db: AsyncSession,
        provider_id: str,
        to: str,
        from_: Optional[str] = None,
        user_id: Optional[str] = None,
        person_id: Optional[str] = None,
        lead_id: Optional[str] = None,
    ) -> CallLog:
        """Place an outbound call and record it as initiated."""
        client = await self.get_client(db, provider_id)
        provider = await db.get(VoipProvider, provider_id)
        from_number = from_ or provider.from_number
        if not from_number:
            raise VoipError("No caller number configured")

        create = partial(
            client.calls.create,
            to=to,
            from_=from_number,
            url=self._callback_url("/twiml/outbound"),
            status_callback=self._callback_url("/webhooks/status"),
            status_callback_event=STATUS_CALLBACK_EVENTS,
            status_callback_method="POST",
            record=True,
        )
        try:
            call = await anyio.to_thread.run_sync(create)
        except TwilioException as exc:
            logger.error("Twilio call creation failed: %s", exc)
            raise VoipError("Failed to initiate call") from exc

        call_log = CallLog(
            call_sid=str(call.sid),
            provider_id=provider_id,
            direction=CallDirection.OUTBOUND,
            from_number=from_number,
            to_number=to,
            status="initiated",
            user_id=user_id,
            person_id=person_id,
            lead_id=lead_id,
            started_at=utcnow(),
        )
        db.add(call_log)
        await db.flush()
        logger.info("Outbound call %s to %s initiated by user %s", call_log.call_sid, to, user_id)
        return call_log

    async def generate_token(self, db: AsyncSession, provider_id: str, identity: str) -> str:
        """Browser calling token carrying a voice grant."""
        provider = await self.get_provider(db, provider_id)
        api_key_secret = self._decrypt(provider.api_key_secret_encrypted)
        if not provider.account_sid or not provider.api_key_sid or not api_key_secret:
            raise VoipError("Twilio API credentials not configured")

        token = AccessToken(
            provider.account_sid,
            provider.api_key_sid,
            api_key_secret,
            identity=identity,
            ttl=TOKEN_TTL_SECONDS,
        )
        token.add_grant(
            VoiceGrant(
                outgoing_application_sid=provider.twiml_app_sid,
                incoming_allow=True,
            )
        )
        jwt = token.to_jwt()
        return jwt.decode("utf-8") if isinstance(jwt, bytes) else str(jwt)

    async def get_call(self, db: AsyncSession, call_sid: str) -> Optional[CallLog]:
        result = await db.execute(select(CallLog).where(CallLog.call_sid == call_sid))
        return result.scalar_one_or_none()

    async def end_call(self, db: AsyncSession, call_sid: str) -> CallLog:
        call_log = await self.get_call(db, call_sid)
        if call_log is None:
            raise VoipError("Call not found", status_code=404)
        if not call_log.provider_id:
            raise VoipError("VoIP provider not found or inactive")

        client = await self.get_client(db, call_log.provider_id)
        try:
            await anyio.to_thread.run_sync(partial(client.calls(call_sid).update, status="completed"))
        except TwilioException as exc:
            logger.error("Twilio failed to end call %s: %s", call_sid, exc)
            raise VoipError("Failed to end call") from exc

        call_log.status = "completed"
        call_log.ended_at = utcnow()
        await db.flush()
        return call_log

    async def validate_request(
        self,
        db: AsyncSession,
        provider_id: Optional[str],
        url: str,
        params: dict,
        signature: Optional[str],
    ) -> bool:
        """
        Check X-Twilio-Signature against the provider's auth token.

        Twilio signs the public URL it called, which differs from the URL seen
        behind a proxy, so the API_URL form of the same path is tried as well.
        """
        if not settings.TWILIO_VALIDATE_SIGNATURE:
            return True
        if not signature or not provider_id:
            return False

        provider = await db.get(VoipProvider, provider_id)
        if provider is None:
            return False
        try:
            auth_token = self._decrypt(provider.auth_token_encrypted)
        except VoipError as exc:
            logger.error("Cannot validate Twilio signature for provider %s: %s", provider_id, exc.message)
            return False
        if not auth_token:
            return False

        parsed = urlparse(url)
        public_url = f"{settings.API_URL.rstrip('/')}{parsed.path}"
        if parsed.query:
            public_url = f"{public_url}?{parsed.query}"

        validator = RequestValidator(auth_token)
        form = {str(k): str(v) for k, v in params.items()}
        return any(validator.validate(candidate, form, signature) for candidate in dict.fromkeys([url, public_url]))

    async def update_call_status(
        self,
        db: AsyncSession,
        call_sid: str,
        status: str,
        duration: Optional[int] = None,
        recording_url: Optional[str] = None,
    ) -> Optional[CallLog]:
        """Apply a status webhook. Unknown calls are logged and ignored."""
        call_log = await self.get_call(db, call_sid)
        if call_log is None:
            logger.warning("Status update for unknown call %s (%s)", call_sid, status)
            return None

        call_log.status = status
        now = utcnow()
        if status in ANSWERED_STATUSES and call_log.answered_at is None:
            call_log.answered_at = now
        if status == "completed":
            call_log.ended_at = now
            if duration is not None:
                call_log.duration = duration
        if recording_url:
            call_log.recording_url = recording_url

        await db.flush()
        logger.info("Call %s status -> %s", call_sid, status)
        return call_log


twilio_service = TwilioService()
