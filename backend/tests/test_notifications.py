"""
Tests for the team-add email notification.

The Brevo API is never contacted: httpx.post is replaced with a recorder.
"""

import logging

import httpx
import pytest

from services import notifications

logger = logging.getLogger(__name__)


class RecordingPost:
    def __init__(self, status_code: int = 201):
        self.status_code = status_code
        self.calls = []

    def __call__(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        return httpx.Response(self.status_code, json={}, request=httpx.Request("POST", url))


@pytest.fixture
def brevo_env(monkeypatch):
    monkeypatch.setenv("BREVO_API_KEY", "test-api-key")
    monkeypatch.setenv("BREVO_SENDER_EMAIL", "noreply@example.com")
    monkeypatch.delenv("BREVO_SENDER_NAME", raising=False)
    monkeypatch.delenv("BREVO_SANDBOX", raising=False)


def test_message_escapes_html_and_names_inviter(monkeypatch):
    monkeypatch.setenv("BREVO_SANDBOX", "TRUE")

    message = notifications.build_added_to_team_message(
        "new@example.com", "<R&D>", "noreply@example.com", "Task App",
        to_name="New Person", inviter_email="boss@example.com",
    )

    assert message["subject"] == "Added to team: <R&D>"
    assert message["to"] == [{"email": "new@example.com", "name": "New Person"}]
    assert 'You were added to the team "<R&D>" by boss@example.com.' in message["textContent"]
    assert "&lt;R&amp;D&gt;" in message["htmlContent"]
    assert "<R&D>" not in message["htmlContent"]
    assert message["headers"] == {"X-Sib-Sandbox": "drop"}


def test_send_posts_to_brevo(monkeypatch, brevo_env):
    recorder = RecordingPost()
    monkeypatch.setattr(notifications.httpx, "post", recorder)

    notifications.send_added_to_team_email("new@example.com", "Platform")

    assert len(recorder.calls) == 1
    call = recorder.calls[0]
    assert call["url"] == notifications.BREVO_SMTP_EMAIL_URL
    assert call["headers"]["api-key"] == "test-api-key"
    assert call["json"]["sender"] == {"email": "noreply@example.com", "name": "Task App"}
    assert call["json"]["to"] == [{"email": "new@example.com"}]
    assert "headers" not in call["json"]


def test_send_raises_on_error_status(monkeypatch, brevo_env):
    monkeypatch.setattr(notifications.httpx, "post", RecordingPost(status_code=500))

    with pytest.raises(httpx.HTTPStatusError):
        notifications.send_added_to_team_email("new@example.com", "Platform")


def test_notify_swallows_failures(monkeypatch, brevo_env):
    """Test that delivery problems never escape the background task."""
    recorder = RecordingPost(status_code=400)
    monkeypatch.setattr(notifications.httpx, "post", recorder)

    notifications.notify_member_added("new@example.com", "Platform")

    assert len(recorder.calls) == 1


def test_notify_skips_when_not_configured(monkeypatch):
    recorder = RecordingPost()
    monkeypatch.setattr(notifications.httpx, "post", recorder)

    notifications.notify_member_added("new@example.com", "Platform")

    assert recorder.calls == []


def test_adding_member_schedules_notification(
    client, monkeypatch, brevo_env, team, owner_user, outsider_user, auth_headers_for
):
    """Test that adding a member sends one email naming the inviter."""
    recorder = RecordingPost()
    monkeypatch.setattr(notifications.httpx, "post", recorder)

    response = client.post(
        f"/teams/{team.id}/members",
        json={"email": "outsider@example.com"},
        headers=auth_headers_for(owner_user)
    )

    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    assert len(recorder.calls) == 1
    sent = recorder.calls[0]["json"]
    assert sent["to"] == [{"email": "outsider@example.com"}]
    assert "by owner@example.com" in sent["textContent"]
    logger.info("✓ Notification scheduled on member add")


def test_failed_notification_does_not_affect_membership(
    client, monkeypatch, brevo_env, team, owner_user, outsider_user, auth_headers_for
):
    monkeypatch.setattr(notifications.httpx, "post", RecordingPost(status_code=503))

    response = client.post(
        f"/teams/{team.id}/members",
        json={"email": "outsider@example.com"},
        headers=auth_headers_for(owner_user)
    )

    assert response.status_code == 201
    assert response.json()["member"]["user"]["email"] == "outsider@example.com"
