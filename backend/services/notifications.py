"""
Outbound email notifications sent through the Brevo transactional email API.

Configuration (read on every send so it can change without a restart):
    BREVO_API_KEY       API key (required)
    BREVO_SENDER_EMAIL  sender address (required)
    BREVO_SENDER_NAME   sender display name, defaults to "Task App"
    BREVO_SANDBOX       "true" makes Brevo validate and drop the message
"""

import html
import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

BREVO_SMTP_EMAIL_URL = "https://api.brevo.com/v3/smtp/email"
DEFAULT_SENDER_NAME = "Task App"
REQUEST_TIMEOUT_SECONDS = 10.0


class NotificationNotConfigured(RuntimeError):
    """Raised when a required Brevo setting is missing."""


def _required_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise NotificationNotConfigured(f"{name} is not configured")
    return value


def is_sandbox_enabled() -> bool:
    return os.environ.get("BREVO_SANDBOX", "false").strip().lower() == "true"


def build_added_to_team_message(
    to_email: str,
    team_name: str,
    sender_email: str,
    sender_name: str,
    to_name: Optional[str] = None,
    inviter_email: Optional[str] = None,
) -> dict:
    """Build the Brevo request body for the "added to team" email."""
    if inviter_email:
        intro = f'You were added to the team "{team_name}" by {inviter_email}.'
    else:
        intro = f'You were added to the team "{team_name}".'
    outro = "You can now access team resources in Task App."

    recipient = {"email": to_email}
    if to_name:
        recipient["name"] = to_name

    message = {
        "sender": {"email": sender_email, "name": sender_name},
        "to": [recipient],
        "subject": f"Added to team: {team_name}",
        "textContent": f"{intro}\n\n{outro}",
        "htmlContent": f"<p>{html.escape(intro, quote=True)}</p><p>{outro}</p>",
    }
    if is_sandbox_enabled():
        message["headers"] = {"X-Sib-Sandbox": "drop"}
    return message


def send_added_to_team_email(
    to_email: str,
    team_name: str,
    to_name: Optional[str] = None,
    inviter_email: Optional[str] = None,
) -> None:
    """
    Send the "added to team" email.

    Raises:
        NotificationNotConfigured: API key or sender address missing
        httpx.HTTPError: transport failure or a non-2xx answer from Brevo
    """
    api_key = _required_env("BREVO_API_KEY")
    sender_email = _required_env("BREVO_SENDER_EMAIL")
    sender_name = os.environ.get("BREVO_SENDER_NAME", "").strip() or DEFAULT_SENDER_NAME

    message = build_added_to_team_message(
        to_email, team_name, sender_email, sender_name,
        to_name=to_name, inviter_email=inviter_email,
    )

    response = httpx.post(
        BREVO_SMTP_EMAIL_URL,
        json=message,
        headers={"api-key": api_key, "Content-Type": "application/json"},
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if response.is_error:
        logger.error(
            f"Brevo API request failed ({response.status_code}): {response.text or 'empty response'}"
        )
    response.raise_for_status()
    logger.info(f"Team notification sent to {to_email} for team '{team_name}'")


def notify_member_added(
    to_email: str,
    team_name: str,
    to_name: Optional[str] = None,
    inviter_email: Optional[str] = None,
) -> None:
    """Best-effort wrapper run as a background task; failures are logged and dropped."""
    try:
        send_added_to_team_email(to_email, team_name, to_name=to_name, inviter_email=inviter_email)
    except NotificationNotConfigured as e:
        logger.info(f"Skipping team notification to {to_email}: {e}")
    except Exception:
        logger.exception(f"Failed to send team notification to {to_email}")
