"""
Tests for mailbox accounts, stored messages, CRM linking and tracking.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.models.email import (
    EmailAccount, EmailMessage, EmailFolder, EmailProvider, EmailTracking, TrackingEventType,
)
from ispecia.models.lead import Lead
from ispecia.models.organization import Organization
from ispecia.models.person import Person
from ispecia.services.crm_contacts import get_crm_contact_emails, is_email_in_crm, has_any_crm_email
from ispecia.services.email_linking import auto_link_email, extract_email_addresses
from ispecia.services.email_tracking import (
    TRACKING_PIXEL,
    add_email_tracking,
    decode_tracking_id,
    encode_tracking_id,
    wrap_links_with_tracking,
)
from ispecia.services.encryption import encryption_service
from tests.conftest import headers_for


@pytest_asyncio.fixture
async def mailbox(db_session: AsyncSession, admin_user) -> EmailAccount:
    account = EmailAccount(
        user_id=admin_user.id,
        email="admin@example.com",
        display_name="Admin",
        provider=EmailProvider.SMTP_IMAP,
    )
    db_session.add(account)
    await db_session.flush()
    return account


@pytest_asyncio.fixture
async def contacts(db_session: AsyncSession, admin_user) -> dict:
    organization = Organization(name="Acme", email="info@acme.com", address=[])
    db_session.add(organization)
    await db_session.flush()
    person = Person(
        name="Jane Doe",
        emails=[{"value": "Jane@Acme.com", "label": "Work"}],
        contact_numbers=[],
        organization_id=organization.id,
    )
    lead = Lead(title="Acme expansion", primary_email="buyer@acme.com")
    db_session.add_all([person, lead])
    await db_session.flush()
    return {"organization": organization, "person": person, "lead": lead}


class TestCrmContacts:

    @pytest.mark.asyncio
    async def test_collects_all_sources(self, db_session: AsyncSession, contacts):
        emails = await get_crm_contact_emails(db_session)
        assert "jane@acme.com" in emails
        assert "info@acme.com" in emails
        assert "admin@example.com" in emails
        assert len(emails) == len(set(emails))

    @pytest.mark.asyncio
    async def test_membership(self, db_session: AsyncSession, contacts):
        assert await is_email_in_crm(db_session, " JANE@acme.com ")
        assert not await is_email_in_crm(db_session, "stranger@nowhere.io")
        assert not await is_email_in_crm(db_session, "")
        assert await has_any_crm_email(db_session, ["stranger@nowhere.io", "info@acme.com"])
        assert not await has_any_crm_email(db_session, [])


class TestExtractAddresses:

    def test_sender_and_recipients(self):
        addresses = extract_email_addresses({
            "from_email": "Boss@Example.com",
            "to": ["a@x.io", {"email": "B@x.io", "name": "B"}],
            "cc": [{"address": "c@x.io"}],
            "bcc": ["a@x.io"],
        })
        assert addresses == ["boss@example.com", "a@x.io", "b@x.io", "c@x.io"]

    def test_ignores_malformed(self):
        assert extract_email_addresses({"to": "not-a-list", "cc": [42, {}]}) == []


class TestAutoLink:

    @pytest.mark.asyncio
    async def test_links_person_and_lead(self, db_session: AsyncSession, mailbox, contacts):
        message = EmailMessage(
            account_id=mailbox.id,
            folder=EmailFolder.INBOX,
            from_email="jane@acme.com",
            to=["admin@example.com", "buyer@acme.com"],
        )
        db_session.add(message)
        await db_session.flush()

        result = await auto_link_email(db_session, message.id, exclude_emails=["admin@example.com"])
        assert result["is_unknown"] is False
        assert result["email_addresses"] == ["jane@acme.com", "buyer@acme.com"]
        assert result["linked"]["persons"] == [contacts["person"].id]
        assert result["linked"]["leads"] == [contacts["lead"].id]
        assert message.person_id == contacts["person"].id
        assert message.lead_id == contacts["lead"].id

    @pytest.mark.asyncio
    async def test_organization_only_is_unknown(self, db_session: AsyncSession, mailbox, contacts):
        message = EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX, from_email="info@acme.com")
        db_session.add(message)
        await db_session.flush()

        result = await auto_link_email(db_session, message.id)
        assert result["linked"]["organizations"] == [contacts["organization"].id]
        assert result["is_unknown"] is True
        assert message.person_id is None

    @pytest.mark.asyncio
    async def test_previously_contacted_is_known(self, db_session: AsyncSession, mailbox):
        db_session.add(EmailMessage(account_id=mailbox.id, folder=EmailFolder.SENT, to=["new@prospect.io"]))
        message = EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX, from_email="new@prospect.io")
        db_session.add(message)
        await db_session.flush()

        result = await auto_link_email(db_session, message.id)
        assert result["is_unknown"] is False

    @pytest.mark.asyncio
    async def test_reply_to_stored_message_is_known(self, db_session: AsyncSession, mailbox):
        original = EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX, message_id="<abc@mail>")
        reply = EmailMessage(
            account_id=mailbox.id,
            folder=EmailFolder.INBOX,
            from_email="someone@else.io",
            in_reply_to="<abc@mail>",
        )
        db_session.add_all([original, reply])
        await db_session.flush()

        result = await auto_link_email(db_session, reply.id)
        assert result["is_unknown"] is False

    @pytest.mark.asyncio
    async def test_no_addresses(self, db_session: AsyncSession, mailbox):
        message = EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX)
        db_session.add(message)
        await db_session.flush()

        result = await auto_link_email(db_session, message.id)
        assert result == {"linked": None, "is_unknown": True, "email_addresses": []}

    @pytest.mark.asyncio
    async def test_missing_message(self, db_session: AsyncSession, seeded):
        assert await auto_link_email(db_session, "missing") is None


class TestTrackingHelpers:

    def test_tracking_id_round_trip(self):
        assert decode_tracking_id(encode_tracking_id("abc123def456789")) == "abc123def456789"

    def test_invalid_tracking_id(self):
        assert decode_tracking_id("!!!") is None
        assert decode_tracking_id(encode_tracking_id("../etc")) is None

    def test_wraps_links(self):
        html = '<p><a href="https://example.com/page">Go</a> <a href="mailto:x@y.io">Mail</a></p>'
        wrapped = wrap_links_with_tracking(html, "msg1")
        assert "/api/v1/track/click/" in wrapped
        assert "url=https%3A%2F%2Fexample.com%2Fpage" in wrapped
        assert 'href="mailto:x@y.io"' in wrapped
        assert wrap_links_with_tracking(wrapped, "msg1") == wrapped

    def test_pixel_goes_before_body_end(self):
        html = add_email_tracking("<html><body>Hi</body></html>", "msg1")
        assert html.endswith("</body></html>")
        assert "/api/v1/track/pixel/msg1" in html


class TestEmailAccountsApi:

    @pytest.mark.asyncio
    async def test_connect_account(self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession):
        response = await client.post("/api/v1/email-accounts", json={
            "email": "Sales@Example.com",
            "smtp_host": "smtp.example.com",
            "smtp_port": 587,
            "password": "mailbox-pass",
        }, headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "sales@example.com"
        assert data["has_password"] is True
        assert "password" not in data and "encrypted_password" not in data

        account = await db_session.get(EmailAccount, data["id"])
        assert encryption_service.decrypt(account.encrypted_password) == "mailbox-pass"

        response = await client.post("/api/v1/email-accounts", json={
            "email": "sales@example.com",
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Email account already connected"

    @pytest.mark.asyncio
    async def test_accounts_are_private(self, client: AsyncClient, auth_headers: dict, mailbox, employee_user):
        headers = headers_for(employee_user)
        response = await client.get(f"/api/v1/email-accounts/{mailbox.id}", headers=headers)
        assert response.status_code == 404
        response = await client.get("/api/v1/email-accounts", headers=headers)
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client: AsyncClient, auth_headers: dict, mailbox):
        response = await client.patch(
            f"/api/v1/email-accounts/{mailbox.id}", json={"display_name": "Sales Desk"}, headers=auth_headers
        )
        assert response.json()["display_name"] == "Sales Desk"

        response = await client.delete(f"/api/v1/email-accounts/{mailbox.id}", headers=auth_headers)
        assert response.json() == {"message": "Email account deleted"}

    @pytest.mark.asyncio
    async def test_default_account(self, client: AsyncClient, auth_headers: dict, employee_user):
        first = await client.post("/api/v1/email-accounts", json={"email": "one@example.com"}, headers=auth_headers)
        second = await client.post("/api/v1/email-accounts", json={"email": "two@example.com"}, headers=auth_headers)
        assert first.json()["is_default"] is True
        assert second.json()["is_default"] is False

        response = await client.put(f"/api/v1/email-accounts/{second.json()['id']}/default", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["is_default"] is True

        accounts = (await client.get("/api/v1/email-accounts", headers=auth_headers)).json()
        assert {a["email"]: a["is_default"] for a in accounts} == {
            "one@example.com": False, "two@example.com": True,
        }

        response = await client.put(
            f"/api/v1/email-accounts/{first.json()['id']}/default", headers=headers_for(employee_user)
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Email account not found"


class TestEmailsApi:

    @pytest.mark.asyncio
    async def test_compose_adds_tracking_and_links(
        self, client: AsyncClient, auth_headers: dict, mailbox, contacts
    ):
        response = await client.post("/api/v1/emails", json={
            "account_id": mailbox.id,
            "subject": "Proposal",
            "to": ["jane@acme.com"],
            "body_html": '<html><body><a href="https://acme.com/offer">Offer</a></body></html>',
        }, headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["folder"] == "sent"
        assert data["from_email"] == "admin@example.com"
        assert data["from_name"] == "Admin"
        assert data["is_read"] is True
        assert f"/api/v1/track/pixel/{data['id']}" in data["body_html"]
        assert "/api/v1/track/click/" in data["body_html"]
        assert data["person_id"] == contacts["person"].id
        assert data["is_unknown"] is False

        response = await client.get(f"/api/v1/persons/{contacts['person'].id}/emails", headers=auth_headers)
        assert [m["subject"] for m in response.json()] == ["Proposal"]

    @pytest.mark.asyncio
    async def test_compose_rejects_inbox(self, client: AsyncClient, auth_headers: dict, mailbox):
        response = await client.post("/api/v1/emails", json={
            "account_id": mailbox.id, "folder": "inbox",
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Only sent or draft messages can be created"

    @pytest.mark.asyncio
    async def test_compose_with_foreign_account(self, client: AsyncClient, mailbox, employee_user):
        response = await client.post("/api/v1/emails", json={
            "account_id": mailbox.id, "subject": "Hijack",
        }, headers=headers_for(employee_user))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_filters(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, mailbox, contacts
    ):
        db_session.add_all([
            EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX, from_email="jane@acme.com",
                         subject="From Jane"),
            EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX, from_email="spam@nowhere.io",
                         subject="Spam"),
            EmailMessage(account_id=mailbox.id, folder=EmailFolder.DRAFT, subject="Draft"),
        ])
        await db_session.flush()

        response = await client.get("/api/v1/emails", headers=auth_headers)
        assert response.json()["totalItems"] == 3

        response = await client.get("/api/v1/emails?folder=inbox", headers=auth_headers)
        assert response.json()["totalItems"] == 2

        response = await client.get("/api/v1/emails?folder=inbox&crm_only=true", headers=auth_headers)
        data = response.json()
        assert data["totalItems"] == 1
        assert data["items"][0]["subject"] == "From Jane"

    @pytest.mark.asyncio
    async def test_relink(self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, mailbox, contacts):
        message = EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX, from_email="buyer@acme.com")
        db_session.add(message)
        await db_session.flush()

        response = await client.post(f"/api/v1/emails/{message.id}/link", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["linked"]["leads"] == [contacts["lead"].id]
        assert data["is_unknown"] is False

    @pytest.mark.asyncio
    async def test_missing_email(self, client: AsyncClient, auth_headers: dict, mailbox):
        response = await client.get("/api/v1/emails/missing", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Email not found"

    @pytest.mark.asyncio
    async def test_compose_from_default_account(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, mailbox
    ):
        response = await client.post("/api/v1/emails", json={"subject": "Hello"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "No default email account"

        mailbox.is_default = True
        await db_session.flush()
        response = await client.post("/api/v1/emails", json={"subject": "Hello"}, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["account_id"] == mailbox.id

    @pytest.mark.asyncio
    async def test_folder_counts(self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, mailbox):
        db_session.add_all([
            EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX),
            EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX),
            EmailMessage(account_id=mailbox.id, folder=EmailFolder.ARCHIVE),
            EmailMessage(account_id=mailbox.id, folder=EmailFolder.TRASH),
        ])
        await db_session.flush()

        response = await client.get("/api/v1/emails/folder-counts", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"inbox": 2, "draft": 0, "outbox": 0, "sent": 0, "archive": 1, "trash": 1}

    @pytest.mark.asyncio
    async def test_update_and_delete(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, mailbox, employee_user
    ):
        message = EmailMessage(account_id=mailbox.id, folder=EmailFolder.INBOX, subject="Invoice")
        db_session.add(message)
        await db_session.flush()

        response = await client.patch(f"/api/v1/emails/{message.id}", json={
            "is_read": True, "is_starred": True, "folder": "archive",
        }, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert (data["is_read"], data["is_starred"], data["folder"]) == (True, True, "archive")

        response = await client.patch(f"/api/v1/emails/{message.id}", json={"folder": None}, headers=auth_headers)
        assert response.json()["folder"] == "archive"

        response = await client.delete(f"/api/v1/emails/{message.id}", headers=headers_for(employee_user))
        assert response.status_code == 404

        response = await client.delete(f"/api/v1/emails/{message.id}", headers=auth_headers)
        assert response.json() == {"message": "Email deleted"}
        response = await client.get(f"/api/v1/emails/{message.id}", headers=auth_headers)
        assert response.status_code == 404


class TestTrackingEndpoints:

    @pytest_asyncio.fixture
    async def sent(self, db_session: AsyncSession, mailbox) -> EmailMessage:
        message = EmailMessage(account_id=mailbox.id, folder=EmailFolder.SENT, to=["x@y.io"], subject="Hello")
        db_session.add(message)
        await db_session.flush()
        return message

    @pytest.mark.asyncio
    async def test_pixel_records_open(self, client: AsyncClient, db_session: AsyncSession, sent):
        response = await client.get(
            f"/api/v1/track/pixel/{sent.id}", headers={"x-forwarded-for": "203.0.113.9, 10.0.0.1"}
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"].startswith("no-store")
        assert response.content == TRACKING_PIXEL

        events = (await db_session.execute(select(EmailTracking))).scalars().all()
        assert len(events) == 1
        assert events[0].event_type == TrackingEventType.OPEN
        assert events[0].ip_address == "203.0.113.9"

    @pytest.mark.asyncio
    async def test_pixel_for_unknown_message(self, client: AsyncClient, db_session: AsyncSession, seeded):
        response = await client.get("/api/v1/track/pixel/unknown")
        assert response.status_code == 200
        assert response.content == TRACKING_PIXEL
        assert (await db_session.execute(select(EmailTracking))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_click_redirects(self, client: AsyncClient, db_session: AsyncSession, sent):
        tracking_id = encode_tracking_id(sent.id)
        response = await client.get(
            f"/api/v1/track/click/{tracking_id}", params={"url": "https://example.com/a?b=1"}
        )
        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/a?b=1"

        events = (await db_session.execute(select(EmailTracking))).scalars().all()
        assert [(e.event_type, e.link_url) for e in events] == [
            (TrackingEventType.CLICK, "https://example.com/a?b=1"),
        ]

    @pytest.mark.asyncio
    async def test_click_errors(self, client: AsyncClient, sent):
        response = await client.get(f"/api/v1/track/click/{encode_tracking_id(sent.id)}")
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing url parameter"

        response = await client.get("/api/v1/track/click/!!!", params={"url": "https://example.com"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid tracking id"

    @pytest.mark.asyncio
    async def test_tracking_stats(self, client: AsyncClient, auth_headers: dict, sent):
        for ip in ("198.51.100.1", "198.51.100.1", "198.51.100.2"):
            await client.get(f"/api/v1/track/pixel/{sent.id}", headers={"x-forwarded-for": ip})
        tracking_id = encode_tracking_id(sent.id)
        for _ in range(2):
            await client.get(f"/api/v1/track/click/{tracking_id}", params={"url": "https://example.com"})

        response = await client.get(f"/api/v1/emails/{sent.id}/tracking", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total_opens"] == 3
        assert data["unique_opens"] == 2
        assert data["total_clicks"] == 2
        assert data["clicked_urls"] == {"https://example.com": 2}
        assert data["first_opened_at"] is not None
        assert len(data["events"]) == 5
