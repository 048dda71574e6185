"""
Tests for VoIP providers, calls and the Twilio callbacks.

Twilio's REST client is replaced with a recording fake; access tokens are
built for real since they are signed locally.
"""
import threading
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.base.exceptions import TwilioException
from twilio.request_validator import RequestValidator

from ispecia.core.config import settings
from ispecia.models.voip import CallLog, CallDirection, VoipProvider, VoipProviderType, VoipTrunk
from ispecia.services.encryption import encryption_service
from ispecia.services.voip import twilio_service
from tests.conftest import headers_for


class FakeCall:
    def __init__(self, sid):
        self.sid = sid


class FakeCallContext:
    def __init__(self, client, sid):
        self.client = client
        self.sid = sid

    def update(self, **kwargs):
        self.client.updates.append((self.sid, kwargs))
        self.client.threads.append(threading.get_ident())
        return FakeCall(self.sid)


class FakeCalls:
    def __init__(self, client):
        self.client = client

    def __call__(self, sid):
        return FakeCallContext(self.client, sid)

    def create(self, **kwargs):
        if self.client.fail:
            raise TwilioException("boom")
        self.client.created.append(kwargs)
        self.client.threads.append(threading.get_ident())
        return FakeCall(f"CA{len(self.client.created):032d}")


class FakeTwilioClient:
    def __init__(self):
        self.credentials = None
        self.created = []
        self.updates = []
        self.threads = []
        self.fail = False
        self.calls = FakeCalls(self)

    def __call__(self, account_sid, auth_token):
        self.credentials = (account_sid, auth_token)
        return self


STATUS_URL = "http://test/api/v1/voip/webhooks/status"


def twilio_signature(url: str, data: dict, auth_token: str = "auth-token") -> dict:
    return {"X-Twilio-Signature": RequestValidator(auth_token).compute_signature(url, data)}


@pytest.fixture
def fake_twilio(monkeypatch) -> FakeTwilioClient:
    fake = FakeTwilioClient()
    monkeypatch.setattr(twilio_service, "client_factory", fake)
    return fake


@pytest_asyncio.fixture
async def provider(db_session: AsyncSession, seeded) -> VoipProvider:
    provider = VoipProvider(
        name="Main line",
        account_sid="AC" + "0" * 32,
        auth_token_encrypted=encryption_service.encrypt("auth-token"),
        api_key_sid="SK" + "1" * 32,
        api_key_secret_encrypted=encryption_service.encrypt("api-secret"),
        twiml_app_sid="AP" + "2" * 32,
        from_number="+15550000000",
    )
    db_session.add(provider)
    await db_session.flush()
    return provider


class TestProviders:

    @pytest.mark.asyncio
    async def test_secrets_are_encrypted(self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession):
        response = await client.post("/api/v1/voip/providers", json={
            "name": "Twilio",
            "account_sid": "AC123",
            "auth_token": "plain-token",
        }, headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["has_auth_token"] is True
        assert data["has_api_key_secret"] is False
        assert "plain-token" not in response.text

        stored = await db_session.get(VoipProvider, data["id"])
        assert encryption_service.decrypt(stored.auth_token_encrypted) == "plain-token"

    @pytest.mark.asyncio
    async def test_update_keeps_secret_when_omitted(self, client: AsyncClient, auth_headers: dict, provider):
        response = await client.patch(
            f"/api/v1/voip/providers/{provider.id}", json={"name": "Renamed"}, headers=auth_headers
        )
        assert response.json()["name"] == "Renamed"
        assert response.json()["has_auth_token"] is True

    @pytest.mark.asyncio
    async def test_twilio_is_the_default_type(self, provider):
        assert provider.provider_type == VoipProviderType.TWILIO

    @pytest.mark.asyncio
    async def test_update_ignores_nulls(self, client: AsyncClient, auth_headers: dict, provider):
        response = await client.patch(
            f"/api/v1/voip/providers/{provider.id}",
            json={"name": None, "active": None, "from_number": "+15559999999"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Main line"
        assert data["active"] is True
        assert data["from_number"] == "+15559999999"

    @pytest.mark.asyncio
    async def test_requires_permission(self, client: AsyncClient, employee_user, provider):
        response = await client.get("/api/v1/voip/providers", headers=headers_for(employee_user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, auth_headers: dict, provider):
        response = await client.delete(f"/api/v1/voip/providers/{provider.id}", headers=auth_headers)
        assert response.json() == {"message": "VoIP provider deleted"}
        response = await client.get(f"/api/v1/voip/providers/{provider.id}", headers=auth_headers)
        assert response.status_code == 404


class TestVoiceToken:

    @pytest.mark.asyncio
    async def test_token_carries_identity(self, client: AsyncClient, employee_user, provider):
        response = await client.get(
            f"/api/v1/voip/token?provider_id={provider.id}", headers=headers_for(employee_user)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["identity"] == employee_user.id
        assert data["expires_in"] == 3600

        claims = jwt.get_unverified_claims(data["token"])
        assert claims["grants"]["identity"] == employee_user.id
        assert claims["grants"]["voice"]["outgoing"]["application_sid"] == provider.twiml_app_sid

    @pytest.mark.asyncio
    async def test_inactive_provider(self, client: AsyncClient, auth_headers: dict, db_session, provider):
        provider.active = False
        await db_session.flush()
        response = await client.get(f"/api/v1/voip/token?provider_id={provider.id}", headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"status": "error", "message": "VoIP provider not found or inactive"}


class TestCalls:

    @pytest.mark.asyncio
    async def test_make_call(self, client: AsyncClient, employee_user, provider, fake_twilio):
        response = await client.post("/api/v1/voip/calls", json={
            "provider_id": provider.id, "to": "+15551234567",
        }, headers=headers_for(employee_user))
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "initiated"
        assert data["direction"] == "outbound"
        assert data["from_number"] == "+15550000000"
        assert data["user_id"] == employee_user.id

        assert fake_twilio.credentials == (provider.account_sid, "auth-token")
        created = fake_twilio.created[0]
        assert created["to"] == "+15551234567"
        assert created["url"].endswith("/api/v1/voip/twiml/outbound")
        assert created["status_callback"].endswith("/api/v1/voip/webhooks/status")
        assert fake_twilio.threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_twilio_failure(self, client: AsyncClient, auth_headers: dict, provider, fake_twilio):
        fake_twilio.fail = True
        response = await client.post("/api/v1/voip/calls", json={
            "provider_id": provider.id, "to": "+15551234567",
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Failed to initiate call"

    @pytest.mark.asyncio
    async def test_end_call(self, client: AsyncClient, employee_user, provider, fake_twilio):
        headers = headers_for(employee_user)
        created = await client.post("/api/v1/voip/calls", json={
            "provider_id": provider.id, "to": "+15551234567",
        }, headers=headers)
        call_sid = created.json()["call_sid"]

        response = await client.post(f"/api/v1/voip/calls/{call_sid}/end", headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["ended_at"] is not None
        assert fake_twilio.updates == [(call_sid, {"status": "completed"})]

    @pytest.mark.asyncio
    async def test_cannot_end_someone_elses_call(
        self, client: AsyncClient, auth_headers: dict, employee_user, provider, fake_twilio
    ):
        created = await client.post("/api/v1/voip/calls", json={
            "provider_id": provider.id, "to": "+15551234567",
        }, headers=auth_headers)
        response = await client.post(
            f"/api/v1/voip/calls/{created.json()['call_sid']}/end", headers=headers_for(employee_user)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_end_unknown_call(self, client: AsyncClient, auth_headers: dict, provider, fake_twilio):
        response = await client.post("/api/v1/voip/calls/CAunknown/end", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Call not found"


class TestCallHistory:

    @pytest_asyncio.fixture
    async def history(self, db_session: AsyncSession, provider, employee_user, manager_user) -> list[CallLog]:
        calls = [
            CallLog(call_sid="CA1", provider_id=provider.id, direction=CallDirection.OUTBOUND,
                    status="completed", user_id=employee_user.id),
            CallLog(call_sid="CA2", provider_id=provider.id, direction=CallDirection.INBOUND,
                    status="ringing", user_id=employee_user.id),
            CallLog(call_sid="CA3", provider_id=provider.id, direction=CallDirection.OUTBOUND,
                    status="completed", user_id=manager_user.id),
        ]
        db_session.add_all(calls)
        await db_session.flush()
        return calls

    @pytest.mark.asyncio
    async def test_own_calls_only(self, client: AsyncClient, employee_user, history):
        headers = headers_for(employee_user)
        response = await client.get("/api/v1/voip/calls", headers=headers)
        assert {c["call_sid"] for c in response.json()["items"]} == {"CA1", "CA2"}

        response = await client.get("/api/v1/voip/calls?direction=inbound", headers=headers)
        assert [c["call_sid"] for c in response.json()["items"]] == ["CA2"]

        response = await client.get("/api/v1/voip/calls?status=completed", headers=headers)
        assert [c["call_sid"] for c in response.json()["items"]] == ["CA1"]

    @pytest.mark.asyncio
    async def test_all_calls_needs_permission(self, client: AsyncClient, employee_user, manager_user, history):
        response = await client.get("/api/v1/voip/calls?all_calls=true", headers=headers_for(employee_user))
        assert response.status_code == 403

        response = await client.get("/api/v1/voip/calls?all_calls=true", headers=headers_for(manager_user))
        assert response.json()["totalItems"] == 3

    @pytest.mark.asyncio
    async def test_get_call_visibility(self, client: AsyncClient, employee_user, manager_user, history):
        manager_call = history[2]
        response = await client.get(f"/api/v1/voip/calls/{manager_call.id}", headers=headers_for(employee_user))
        assert response.status_code == 404
        response = await client.get(f"/api/v1/voip/calls/{history[0].id}", headers=headers_for(manager_user))
        assert response.status_code == 200


class TestTwilioCallbacks:

    @pytest.mark.asyncio
    async def test_outbound_twiml(self, client: AsyncClient):
        response = await client.post("/api/v1/voip/twiml/outbound", data={
            "To": "+15551234567", "From": "+15550000000",
        })
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert '<Dial callerId="+15550000000"><Number>+15551234567</Number></Dial>' in response.text

    @pytest.mark.asyncio
    async def test_outbound_twiml_without_number(self, client: AsyncClient):
        response = await client.post("/api/v1/voip/twiml/outbound", data={})
        assert "<Say>No destination number was provided.</Say>" in response.text
        assert "<Hangup />" in response.text

    @pytest.mark.asyncio
    async def test_status_webhook(self, client: AsyncClient, db_session: AsyncSession, provider):
        call = CallLog(call_sid="CAhook", provider_id=provider.id, direction=CallDirection.OUTBOUND)
        db_session.add(call)
        await db_session.flush()

        ringing = {"CallSid": "CAhook", "CallStatus": "in-progress"}
        await client.post(
            "/api/v1/voip/webhooks/status", data=ringing, headers=twilio_signature(STATUS_URL, ringing)
        )
        completed = {
            "CallSid": "CAhook",
            "CallStatus": "completed",
            "CallDuration": "42",
            "RecordingUrl": "https://api.twilio.com/recordings/RE1",
        }
        response = await client.post(
            "/api/v1/voip/webhooks/status", data=completed, headers=twilio_signature(STATUS_URL, completed)
        )
        assert response.json() == {"message": "ok"}

        await db_session.refresh(call)
        assert call.status == "completed"
        assert call.duration == 42
        assert call.answered_at is not None
        assert call.ended_at is not None
        assert call.recording_url == "https://api.twilio.com/recordings/RE1"

    @pytest.mark.asyncio
    async def test_status_webhook_rejects_bad_signatures(
        self, client: AsyncClient, db_session: AsyncSession, provider
    ):
        call = CallLog(call_sid="CAforged", provider_id=provider.id, direction=CallDirection.OUTBOUND)
        db_session.add(call)
        await db_session.flush()
        forged = {
            "CallSid": "CAforged",
            "CallStatus": "completed",
            "CallDuration": "9999",
            "RecordingUrl": "https://evil.example/x.mp3",
        }

        response = await client.post("/api/v1/voip/webhooks/status", data=forged)
        assert response.status_code == 403
        assert response.json()["detail"] == "Invalid Twilio signature"

        response = await client.post(
            "/api/v1/voip/webhooks/status",
            data=forged,
            headers=twilio_signature(STATUS_URL, forged, auth_token="someone-elses-token"),
        )
        assert response.status_code == 403

        await db_session.refresh(call)
        assert call.status == "initiated"
        assert call.duration is None
        assert call.recording_url is None

    @pytest.mark.asyncio
    async def test_status_webhook_signed_for_public_url(
        self, client: AsyncClient, db_session: AsyncSession, provider
    ):
        call = CallLog(call_sid="CAproxied", provider_id=provider.id, direction=CallDirection.OUTBOUND)
        db_session.add(call)
        await db_session.flush()
        data = {"CallSid": "CAproxied", "CallStatus": "ringing"}
        public_url = f"{settings.API_URL}/api/v1/voip/webhooks/status"

        response = await client.post(
            "/api/v1/voip/webhooks/status", data=data, headers=twilio_signature(public_url, data)
        )
        assert response.status_code == 200
        await db_session.refresh(call)
        assert call.status == "ringing"

    @pytest.mark.asyncio
    async def test_status_webhook_unknown_call(self, client: AsyncClient, seeded):
        response = await client.post("/api/v1/voip/webhooks/status", data={
            "CallSid": "CAmissing", "CallStatus": "ringing",
        })
        assert response.status_code == 200


@pytest_asyncio.fixture
async def trunk_id(client: AsyncClient, auth_headers: dict, provider) -> str:
    response = await client.post("/api/v1/voip/trunks", json={
        "name": "Primary SIP",
        "provider_id": provider.id,
        "sip_domain": "sip.example.com",
        "sip_username": "office",
        "sip_password": "sip-secret",
    }, headers=auth_headers)
    assert response.status_code == 201
    return response.json()["id"]


class TestTrunks:

    @pytest.mark.asyncio
    async def test_create_defaults_and_masking(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, provider, trunk_id
    ):
        response = await client.get(f"/api/v1/voip/trunks/{trunk_id}", headers=auth_headers)
        data = response.json()
        assert (data["sip_port"], data["transport_protocol"], data["auth_method"]) == (5060, "UDP", "username")
        assert data["provider"] == {"id": provider.id, "name": "Main line"}
        assert data["has_sip_password"] is True
        assert "sip-secret" not in response.text
        assert data["inbound_routes"] == []

        stored = await db_session.get(VoipTrunk, trunk_id)
        assert encryption_service.decrypt(stored.sip_password_encrypted) == "sip-secret"

    @pytest.mark.asyncio
    async def test_validation(self, client: AsyncClient, auth_headers: dict, provider):
        response = await client.post("/api/v1/voip/trunks", json={"name": "No domain", "provider_id": provider.id},
                                     headers=auth_headers)
        assert response.status_code == 422

        response = await client.post("/api/v1/voip/trunks", json={
            "name": "Orphan", "provider_id": "missing", "sip_domain": "sip.example.com",
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "VoIP provider not found"

    @pytest.mark.asyncio
    async def test_update(self, client: AsyncClient, auth_headers: dict, trunk_id):
        response = await client.patch(f"/api/v1/voip/trunks/{trunk_id}", json={
            "transport_protocol": "TLS", "sip_port": 5061, "name": None, "active": None,
        }, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert (data["name"], data["transport_protocol"], data["sip_port"], data["active"]) == (
            "Primary SIP", "TLS", 5061, True,
        )
        assert data["has_sip_password"] is True

    @pytest.mark.asyncio
    async def test_requires_permission(self, client: AsyncClient, manager_user, trunk_id):
        response = await client.get("/api/v1/voip/trunks", headers=headers_for(manager_user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_removes_routes(self, client: AsyncClient, auth_headers: dict, trunk_id):
        route = await client.post("/api/v1/voip/inbound-routes", json={
            "name": "Sales line", "did_pattern": "+1555*", "destination_type": "queue",
            "destination_id": "sales", "trunk_id": trunk_id,
        }, headers=auth_headers)

        response = await client.delete(f"/api/v1/voip/trunks/{trunk_id}", headers=auth_headers)
        assert response.json() == {"message": "VoIP trunk deleted"}
        response = await client.get(f"/api/v1/voip/inbound-routes/{route.json()['id']}", headers=auth_headers)
        assert response.status_code == 404


class TestInboundRoutes:

    @pytest.mark.asyncio
    async def test_ordered_by_priority(self, client: AsyncClient, auth_headers: dict, trunk_id):
        for name, priority in (("Fallback", 9), ("Support", 2), ("Reception", 1)):
            response = await client.post("/api/v1/voip/inbound-routes", json={
                "name": name, "did_pattern": "+1555*", "destination_type": "user",
                "destination_id": "u1", "trunk_id": trunk_id, "priority": priority,
            }, headers=auth_headers)
            assert response.status_code == 201

        response = await client.get("/api/v1/voip/inbound-routes", headers=auth_headers)
        routes = response.json()
        assert [r["name"] for r in routes] == ["Reception", "Support", "Fallback"]
        assert routes[0]["trunk"]["name"] == "Primary SIP"

        trunk = (await client.get(f"/api/v1/voip/trunks/{trunk_id}", headers=auth_headers)).json()
        assert [r["priority"] for r in trunk["inbound_routes"]] == [1, 2, 9]

    @pytest.mark.asyncio
    async def test_unknown_trunk(self, client: AsyncClient, auth_headers: dict, seeded):
        response = await client.post("/api/v1/voip/inbound-routes", json={
            "name": "Lost", "did_pattern": "+1", "destination_type": "voicemail",
            "destination_id": "box", "trunk_id": "missing",
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Trunk not found"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client: AsyncClient, auth_headers: dict, trunk_id):
        created = await client.post("/api/v1/voip/inbound-routes", json={
            "name": "Main", "did_pattern": "+15550000000", "destination_type": "ivr",
            "destination_id": "menu", "trunk_id": trunk_id,
        }, headers=auth_headers)
        route_id = created.json()["id"]

        response = await client.patch(f"/api/v1/voip/inbound-routes/{route_id}", json={
            "destination_type": "voicemail", "priority": 5, "name": None,
        }, headers=auth_headers)
        data = response.json()
        assert (data["name"], data["destination_type"], data["priority"]) == ("Main", "voicemail", 5)

        response = await client.patch(f"/api/v1/voip/inbound-routes/{route_id}", json={"trunk_id": "missing"},
                                      headers=auth_headers)
        assert response.status_code == 400

        response = await client.delete(f"/api/v1/voip/inbound-routes/{route_id}", headers=auth_headers)
        assert response.json() == {"message": "Inbound route deleted"}


class TestCallRecordings:

    @pytest_asyncio.fixture
    async def recorded(self, db_session: AsyncSession, provider, employee_user, manager_user) -> list[CallLog]:
        calls = [
            CallLog(call_sid="CA1", provider_id=provider.id, direction=CallDirection.OUTBOUND,
                    status="completed", user_id=employee_user.id, duration=60,
                    started_at=datetime(2026, 3, 1, 9, tzinfo=timezone.utc),
                    recording_url="https://api.twilio.com/recordings/RE1"),
            CallLog(call_sid="CA2", provider_id=provider.id, direction=CallDirection.INBOUND,
                    status="completed", user_id=employee_user.id,
                    started_at=datetime(2026, 3, 5, 9, tzinfo=timezone.utc),
                    recording_url="https://api.twilio.com/recordings/RE2"),
            CallLog(call_sid="CA3", provider_id=provider.id, direction=CallDirection.OUTBOUND,
                    status="no-answer", user_id=employee_user.id),
            CallLog(call_sid="CA4", provider_id=provider.id, direction=CallDirection.OUTBOUND,
                    status="completed", user_id=manager_user.id,
                    started_at=datetime(2026, 3, 3, 9, tzinfo=timezone.utc),
                    recording_url="https://api.twilio.com/recordings/RE4"),
        ]
        db_session.add_all(calls)
        await db_session.flush()
        return calls

    @pytest.mark.asyncio
    async def test_only_recorded_calls(self, client: AsyncClient, manager_user, recorded):
        response = await client.get("/api/v1/voip/recordings", headers=headers_for(manager_user))
        assert response.status_code == 200
        items = response.json()["items"]
        assert [r["call_sid"] for r in items] == ["CA2", "CA4", "CA1"]
        assert items[2]["user"]["email"] == "employee@example.com"

    @pytest.mark.asyncio
    async def test_filters(self, client: AsyncClient, manager_user, employee_user, recorded):
        headers = headers_for(manager_user)
        response = await client.get("/api/v1/voip/recordings?direction=inbound", headers=headers)
        assert [r["call_sid"] for r in response.json()["items"]] == ["CA2"]

        response = await client.get(f"/api/v1/voip/recordings?user_id={employee_user.id}", headers=headers)
        assert [r["call_sid"] for r in response.json()["items"]] == ["CA2", "CA1"]

        response = await client.get(
            "/api/v1/voip/recordings",
            params={"from_date": "2026-03-02T00:00:00Z", "to_date": "2026-03-04T00:00:00Z"},
            headers=headers,
        )
        assert [r["call_sid"] for r in response.json()["items"]] == ["CA4"]

    @pytest.mark.asyncio
    async def test_own_recordings_without_all_calls(self, client: AsyncClient, employee_user, recorded):
        headers = headers_for(employee_user)
        response = await client.get("/api/v1/voip/recordings", headers=headers)
        assert {r["call_sid"] for r in response.json()["items"]} == {"CA1", "CA2"}

        response = await client.get(f"/api/v1/voip/recordings/{recorded[3].id}", headers=headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Call recording not found"

        response = await client.get(f"/api/v1/voip/recordings/{recorded[2].id}", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_keeps_call_log(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, employee_user, recorded
    ):
        response = await client.delete(f"/api/v1/voip/recordings/{recorded[0].id}",
                                       headers=headers_for(employee_user))
        assert response.status_code == 403

        response = await client.delete(f"/api/v1/voip/recordings/{recorded[0].id}", headers=auth_headers)
        assert response.json() == {"message": "Call recording deleted"}

        call_log = await db_session.get(CallLog, recorded[0].id)
        assert call_log.recording_url is None
        response = await client.get(f"/api/v1/voip/recordings/{recorded[0].id}", headers=auth_headers)
        assert response.status_code == 404
