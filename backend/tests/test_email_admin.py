"""
Integration tests for the admin email endpoints under /api/email.
"""

import os
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, patch

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test.anon.key")

from fastapi.testclient import TestClient

from app.models.email_automation import (
    EmailEvent,
    EmailEventListItem,
    EmailSender,
    EmailStatus,
    EmailTemplate,
)
from app.routers.email_admin import compute_event_stats, period_start
from app.services.email_dispatcher import EmailSendError


AUTH = {"Authorization": "Bearer admin-token"}


@pytest.fixture()
def client():
    from app.main import app
    return TestClient(app)


@pytest.fixture()
def admin():
    with patch("app.auth.supabase") as mock_auth_sb, patch("app.auth.supabase_admin") as mock_admin_sb:
        mock_auth_sb.auth.get_user.return_value = Mock(user=Mock(id="admin-1"))
        mock_admin_sb.rpc.return_value.execute.return_value = Mock(data=True)
        yield mock_admin_sb


@pytest.fixture()
def store():
    with patch("app.routers.email_admin.email_store") as mock_store:
        mock_store.MAX_EVENTS = 100
        yield mock_store


def _event(status: str, recipient: str = "a@z.com", **extra) -> EmailEventListItem:
    return EmailEventListItem(
        recipient_email=recipient,
        subject=extra.pop("subject", "Hello"),
        status=status,
        **extra,
    )


class TestHelpers:

    def test_period_start(self):
        now = datetime(2024, 5, 10, 15, 30, tzinfo=timezone.utc)
        assert period_start("all", now) is None
        assert period_start("today", now) == datetime(2024, 5, 10, tzinfo=timezone.utc)
        assert period_start("week", now) == datetime(2024, 5, 3, 15, 30, tzinfo=timezone.utc)
        assert period_start("month", now) == datetime(2024, 4, 10, 15, 30, tzinfo=timezone.utc)

    def test_stats(self):
        events = [_event("sent"), _event("sent"), _event("failed")]
        stats = compute_event_stats(events)

        assert (stats.total, stats.sent, stats.failed, stats.pending) == (3, 2, 1, 0)
        assert stats.success_rate == 66.7

    def test_stats_empty(self):
        assert compute_event_stats([]).success_rate == 0.0


class TestAdminAccess:

    def test_non_admin_is_forbidden(self, client, admin, store):
        admin.rpc.return_value.execute.return_value = Mock(data=False)

        response = client.get("/api/email/events", headers=AUTH)

        assert response.status_code == 403
        store.list_email_events.assert_not_called()

    def test_role_check_failure_returns_500(self, client, admin, store):
        admin.rpc.side_effect = Exception("rpc failed")

        response = client.get("/api/email/events", headers=AUTH)

        assert response.status_code == 500

    def test_requires_auth(self, client):
        assert client.get("/api/email/events").status_code == 401


class TestListEvents:

    def test_returns_events(self, client, admin, store):
        store.list_email_events.return_value = [
            _event("sent", template_name="Contact", rule_name="Notify"),
        ]

        response = client.get("/api/email/events?status=sent&period=week&limit=20", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data[0]["template_name"] == "Contact"
        assert data[0]["status"] == "sent"
        kwargs = store.list_email_events.call_args.kwargs
        assert kwargs["status"] == "sent"
        assert kwargs["limit"] == 20
        assert kwargs["since"] is not None

    def test_search_filters_names_and_recipients(self, client, admin, store):
        store.list_email_events.return_value = [
            _event("sent", recipient="jane@x.com"),
            _event("sent", recipient="bob@x.com", rule_name="Careers Jane"),
            _event("sent", recipient="bob@x.com"),
        ]

        response = client.get("/api/email/events?search=JANE", headers=AUTH)

        assert len(response.json()) == 2

    def test_invalid_period_rejected(self, client, admin, store):
        response = client.get("/api/email/events?period=year", headers=AUTH)
        assert response.status_code == 422

    def test_store_error_returns_500(self, client, admin, store):
        store.list_email_events.side_effect = Exception("db down")

        response = client.get("/api/email/events", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to load email events"


class TestEventStats:

    def test_stats_endpoint(self, client, admin, store):
        store.list_email_events.return_value = [_event("sent"), _event("failed"), _event("pending")]

        response = client.get("/api/email/events/stats", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "total": 3, "sent": 1, "failed": 1, "pending": 1, "success_rate": 33.3,
        }


class TestSetDefaultSender:

    def test_sets_default(self, client, admin, store):
        store.set_default_sender.return_value = EmailSender(
            id="s1", from_email="hello@ziratech.com", is_default=True
        )

        response = client.post("/api/email/senders/s1/default", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["is_default"] is True
        store.set_default_sender.assert_called_once_with("s1")

    def test_unknown_sender_returns_404(self, client, admin, store):
        store.set_default_sender.return_value = None

        response = client.post("/api/email/senders/missing/default", headers=AUTH)

        assert response.status_code == 404


class TestSendTestEmail:

    @pytest.fixture()
    def send(self):
        with patch("app.routers.email_admin.ResendEmailProvider") as provider_cls, \
                patch("app.routers.email_admin.ResendDomainVerifier") as verifier_cls:
            verifier_cls.return_value.is_verified.return_value = False
            yield provider_cls.return_value.send

    def _settings(self, store, senders=None):
        settings = MagicMock()
        settings.active_senders.return_value = senders or []
        settings.get_setting.return_value = None
        store.SupabaseSettingsProvider.return_value = settings
        return settings

    def test_builtin_body_when_no_template(self, client, admin, store, send):
        self._settings(store)
        send.return_value = "msg-1"

        response = client.post("/api/email/test", json={"test_email": "me@ziratech.com"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "success": True, "message": "Test email sent successfully", "email_id": "msg-1",
        }
        params = send.call_args[0][0]
        assert params["to"] == ["me@ziratech.com"]
        assert params["subject"] == "Test Email from Zira Technologies"
        assert "{{" not in params["html"]

        event = store.insert_email_event.call_args[0][0]
        assert event.status == EmailStatus.SENT
        assert event.metadata["test_email"] is True
        assert event.metadata["resend_id"] == "msg-1"

    def test_template_subject_is_prefixed(self, client, admin, store, send):
        self._settings(store)
        store.fetch_template.return_value = EmailTemplate(
            id="tpl-1", subject="Welcome {{name}}", content="<p>Hi {{name}} from {{company}}</p>"
        )
        send.return_value = "msg-1"

        response = client.post(
            "/api/email/test", json={"test_email": "me@ziratech.com", "template_id": "tpl-1"}, headers=AUTH
        )

        assert response.status_code == 200
        params = send.call_args[0][0]
        assert params["subject"] == "[TEST] Welcome Test User"
        assert "Hi Test User from Test Company" in params["html"]
        assert store.insert_email_event.call_args[0][0].template_id == "tpl-1"

    def test_blank_address_rejected(self, client, admin, store, send):
        response = client.post("/api/email/test", json={"test_email": "  "}, headers=AUTH)

        assert response.status_code == 400
        send.assert_not_called()

    def test_provider_failure_logged_and_502(self, client, admin, store, send):
        self._settings(store)
        send.side_effect = EmailSendError("Domain not verified")

        response = client.post("/api/email/test", json={"test_email": "me@ziratech.com"}, headers=AUTH)

        assert response.status_code == 502
        assert "Domain not verified" in response.json()["detail"]
        event = store.insert_email_event.call_args[0][0]
        assert event.status == EmailStatus.FAILED
        assert event.error_message == "Domain not verified"
