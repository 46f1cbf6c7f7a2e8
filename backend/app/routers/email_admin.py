"""
Email back-office router.

Admin-only endpoints behind the email automation screens: the delivery
activity log, its summary stats, default-sender selection and test sends.

Endpoints:
  GET  /events                      — recent email events (auth: admin)
  GET  /events/stats                — sent/failed/pending totals (auth: admin)
  POST /senders/{sender_id}/default — make a sender the only default (auth: admin)
  POST /test                        — send a test email (auth: admin)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.auth import require_admin
from app.models.email_automation import (
    EmailEvent,
    EmailEventListItem,
    EmailEventStats,
    EmailSender,
    EmailStatus,
    EmailTemplate,
    SendTestEmailRequest,
    SendTestEmailResponse,
)
from app.models.form_submission import FormSubmission
from app.services import email_store
from app.services.email_dispatcher import ResendEmailProvider, build_send_params
from app.services.sender_resolver import ResendDomainVerifier, resolve_sender
from app.services.template_renderer import RenderedEmail, html_to_text, render_template

logger = logging.getLogger(__name__)

router = APIRouter()

Period = Literal["all", "today", "week", "month"]

TEST_SUBJECT_PREFIX = "[TEST] "

_DEFAULT_TEST_SUBJECT = "Test Email from Zira Technologies"
_DEFAULT_TEST_CONTENT = (
    "<h1>Test Email</h1>"
    "<p>This is a test email sent from your Zira Technologies email automation system.</p>"
    "<p>If you received this email, your email configuration is working correctly!</p>"
    "<p>Test sent at: {{sent_at}}</p>"
    "<hr>"
    '<p style="color: #666; font-size: 12px;">This email was sent from the email automation system.</p>'
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def period_start(period: Period, now: Optional[datetime] = None) -> Optional[datetime]:
    """Lower bound on created_at for an activity-log period filter."""
    now = now or datetime.now(timezone.utc)
    if period == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now - timedelta(days=30)
    return None


def _matches_search(event: EmailEventListItem, term: str) -> bool:
    term = term.lower()
    haystack = [event.recipient_email, event.subject, event.template_name, event.rule_name]
    return any(term in (value or "").lower() for value in haystack)


def compute_event_stats(events: List[EmailEvent]) -> EmailEventStats:
    total = len(events)
    sent = sum(1 for e in events if e.status == EmailStatus.SENT)
    failed = sum(1 for e in events if e.status == EmailStatus.FAILED)
    pending = sum(1 for e in events if e.status == EmailStatus.PENDING)
    success_rate = round(sent / total * 100, 1) if total else 0.0
    return EmailEventStats(
        total=total,
        sent=sent,
        failed=failed,
        pending=pending,
        success_rate=success_rate,
    )


def _load_events(
    status: Optional[EmailStatus],
    period: Period,
    search: Optional[str],
    limit: int,
) -> List[EmailEventListItem]:
    try:
        events = email_store.list_email_events(
            status=status.value if status else None,
            since=period_start(period),
            limit=limit,
        )
    except Exception as e:
        logger.error(f"Failed to load email events: {e}")
        raise HTTPException(status_code=500, detail="Failed to load email events")

    if search:
        events = [e for e in events if _matches_search(e, search)]
    return events


def _sample_submission(test_email: str) -> FormSubmission:
    return FormSubmission(
        form_type="contact",
        fields={
            "name": "Test User",
            "email": test_email,
            "company": "Test Company",
            "message": "This is a test message",
            "phone": "+1234567890",
            "sent_at": datetime.now(timezone.utc).isoformat(),
        },
    )


def _render_test_email(
    template: Optional[EmailTemplate],
    submission: FormSubmission,
) -> RenderedEmail:
    if template is None:
        template = EmailTemplate(
            id="builtin-test",
            subject=_DEFAULT_TEST_SUBJECT,
            content=_DEFAULT_TEST_CONTENT,
        )
        return render_template(template, submission)

    rendered = render_template(template, submission)
    return RenderedEmail(
        subject=TEST_SUBJECT_PREFIX + rendered.subject,
        html=rendered.html,
        text=html_to_text(rendered.html),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/events")
async def list_events(
    status: Optional[EmailStatus] = None,
    period: Period = "all",
    search: Optional[str] = None,
    limit: int = Query(default=email_store.MAX_EVENTS, ge=1, le=500),
    _admin: str = Depends(require_admin),
) -> List[EmailEventListItem]:
    """Recent email events, newest first, with template and rule names."""
    return _load_events(status, period, search, limit)


@router.get("/events/stats")
async def event_stats(
    status: Optional[EmailStatus] = None,
    period: Period = "all",
    search: Optional[str] = None,
    limit: int = Query(default=email_store.MAX_EVENTS, ge=1, le=500),
    _admin: str = Depends(require_admin),
) -> EmailEventStats:
    """Totals and success rate over the same window the activity log shows."""
    return compute_event_stats(_load_events(status, period, search, limit))


@router.post("/senders/{sender_id}/default")
async def make_default_sender(
    sender_id: str,
    _admin: str = Depends(require_admin),
) -> EmailSender:
    """
    Make one sender the default.

    Every other sender loses its default flag first, so at most one sender
    is the default afterwards.
    """
    try:
        sender = email_store.set_default_sender(sender_id)
    except Exception as e:
        logger.error(f"Failed to set default sender {sender_id!r}: {e}")
        raise HTTPException(status_code=500, detail="Failed to set default sender")

    if sender is None:
        raise HTTPException(status_code=404, detail="Sender not found")
    return sender


@router.post("/test")
async def send_test_email(
    body: SendTestEmailRequest,
    _admin: str = Depends(require_admin),
) -> SendTestEmailResponse:
    """
    Send a test email to ``body.test_email``.

    Uses the given template (subject prefixed with ``[TEST] ``) or a
    built-in test body, and the given sender or the normal sender
    resolution. The attempt is logged to email_events with
    ``metadata.test_email = true`` whether it succeeds or not.
    """
    if not body.test_email.strip():
        raise HTTPException(status_code=400, detail="Test email address is required")

    template: Optional[EmailTemplate] = None
    if body.template_id:
        try:
            template = email_store.fetch_template(body.template_id)
        except Exception as e:
            logger.error(f"Error loading template {body.template_id!r}: {e}")
        if template is None:
            logger.warning(f"Template {body.template_id!r} not found; using built-in test body")

    submission = _sample_submission(body.test_email)
    rendered = _render_test_email(template, submission)

    settings = email_store.SupabaseSettingsProvider()
    try:
        sender = resolve_sender(
            settings.active_senders(),
            ResendDomainVerifier(),
            settings,
            preferred_sender_id=body.sender_id,
        )
    except Exception as e:
        logger.error(f"Error resolving sender for test email: {e}")
        raise HTTPException(status_code=500, detail="Failed to resolve sender")

    params = build_send_params(rendered, body.test_email, sender)
    metadata = {"test_email": True, "sender": sender.formatted_from}

    try:
        message_id = ResendEmailProvider().send(params)
    except Exception as e:
        logger.error(f"Test email to {body.test_email} failed: {e}")
        email_store.insert_email_event(
            EmailEvent(
                template_id=template.id if template else None,
                recipient_email=body.test_email,
                subject=rendered.subject,
                status=EmailStatus.FAILED,
                error_message=str(e),
                metadata=metadata,
            )
        )
        raise HTTPException(status_code=502, detail=f"Email sending failed: {e}")

    email_store.insert_email_event(
        EmailEvent(
            template_id=template.id if template else None,
            recipient_email=body.test_email,
            subject=rendered.subject,
            status=EmailStatus.SENT,
            sent_at=datetime.now(timezone.utc).isoformat(),
            metadata={**metadata, "resend_id": message_id},
        )
    )

    return SendTestEmailResponse(
        success=True,
        message="Test email sent successfully",
        email_id=message_id,
    )
