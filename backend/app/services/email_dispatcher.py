"""
Email dispatch through Resend and delivery logging.

dispatch() sends one rendered email for one rule and records exactly one
email_events row for the attempt:
  success: status 'sent', sent_at, metadata {form_data, resend_id};
            then the rule's sent_count is incremented
  failure: status 'failed' with the provider/exception message;
            sent_count untouched

There are no retries here; failed rows can be replayed by a scheduler.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import resend

from app.models.email_automation import AutomationRule, EmailEvent, EmailStatus, RecipientType
from app.models.form_submission import FormSubmission
from app.services import email_store
from app.services.sender_resolver import SenderIdentity
from app.services.template_renderer import RenderedEmail

logger = logging.getLogger(__name__)

resend.api_key = os.getenv("RESEND_API_KEY")


class EmailSendError(Exception):
    """The provider rejected the message or returned no message id."""


class ResendEmailProvider:
    """Thin wrapper around ``resend.Emails.send`` returning the message id."""

    def send(self, params: dict[str, Any]) -> str:
        result = resend.Emails.send(params)

        if isinstance(result, dict):
            if result.get("error"):
                error = result["error"]
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise EmailSendError(message or "Unknown provider error")
            message_id = result.get("id")
        else:
            message_id = getattr(result, "id", None)

        if not message_id:
            raise EmailSendError("Provider returned no message id")
        return str(message_id)


def build_send_params(
    rendered: RenderedEmail,
    recipient: str,
    sender: SenderIdentity,
    track: bool = True,
    scheduled_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Assemble the Resend send payload."""
    params: dict[str, Any] = {
        "from": sender.formatted_from,
        "to": [recipient],
        "subject": rendered.subject,
        "html": rendered.html,
        "text": rendered.text,
        "reply_to": sender.reply_to,
        "tracking": {"click": track, "open": track},
    }
    if scheduled_at is not None:
        params["scheduled_at"] = scheduled_at.isoformat()
    return params


def dispatch(
    rule: AutomationRule,
    rendered: RenderedEmail,
    recipient: str,
    sender: SenderIdentity,
    submission: FormSubmission,
    provider: Optional[ResendEmailProvider] = None,
) -> EmailEvent:
    """
    Send one rule's email and record the attempt.

    Submitter-facing confirmations go out with click/open tracking off.
    A rule with ``delay_minutes`` is handed to Resend as a scheduled send.
    Never raises for provider failures.
    """
    provider = provider or ResendEmailProvider()
    now = datetime.now(timezone.utc)
    track = rule.recipient_type != RecipientType.SUBMITTER
    scheduled_at = now + timedelta(minutes=rule.delay_minutes) if rule.delay_minutes > 0 else None

    params = build_send_params(rendered, recipient, sender, track=track, scheduled_at=scheduled_at)
    template_id = rule.template_id or (rule.email_template.id if rule.email_template else None)
    metadata: dict[str, Any] = {"form_data": submission.fields}

    try:
        message_id = provider.send(params)
    except Exception as e:
        logger.error(f"Error sending email for rule {rule.name!r} to {recipient}: {e}")
        failed = EmailEvent(
            template_id=template_id,
            rule_id=rule.id,
            recipient_email=recipient,
            subject=rendered.subject,
            status=EmailStatus.FAILED,
            error_message=str(e) or e.__class__.__name__,
            metadata=metadata,
        )
        return email_store.insert_email_event(failed)

    logger.info(f"Email sent for rule {rule.name!r} to {recipient} (resend id {message_id})")

    metadata["resend_id"] = message_id
    if scheduled_at is not None:
        metadata["scheduled_at"] = scheduled_at.isoformat()

    sent = EmailEvent(
        template_id=template_id,
        rule_id=rule.id,
        recipient_email=recipient,
        subject=rendered.subject,
        status=EmailStatus.SENT,
        sent_at=now.isoformat(),
        metadata=metadata,
    )
    stored = email_store.insert_email_event(sent)
    email_store.increment_rule_sent_count(rule, now)
    return stored


def record_failure(
    rule: AutomationRule,
    reason: str,
    submission: FormSubmission,
    recipient: str = "",
    subject: str = "",
) -> EmailEvent:
    """Record a failed attempt that never reached the provider."""
    template_id = rule.template_id or (rule.email_template.id if rule.email_template else None)
    event = EmailEvent(
        template_id=template_id,
        rule_id=rule.id,
        recipient_email=recipient,
        subject=subject,
        status=EmailStatus.FAILED,
        error_message=reason,
        metadata={"form_data": submission.fields},
    )
    return email_store.insert_email_event(event)
