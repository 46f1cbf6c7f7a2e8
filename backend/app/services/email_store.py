"""
Supabase access for the email automation tables.

Tables:
  email_automation_rules  — rules, loaded with their email_templates embed
  email_templates         — subject / HTML content
  email_senders           — configured From identities
  email_settings          — key/value JSON (sender_info, sender_information, smtp)
  company_settings        — key/value JSON (admin_recipients)
  email_events            — append-only delivery audit trail

All functions use the service-role client; tests patch
``app.services.email_store.supabase_admin``.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from app.db import supabase_admin
from app.models.email_automation import (
    AutomationRule,
    EmailEvent,
    EmailEventListItem,
    EmailSender,
    EmailTemplate,
    TriggerType,
)

logger = logging.getLogger(__name__)

RULES_TABLE = "email_automation_rules"
TEMPLATES_TABLE = "email_templates"
SENDERS_TABLE = "email_senders"
EVENTS_TABLE = "email_events"
EMAIL_SETTINGS_TABLE = "email_settings"
COMPANY_SETTINGS_TABLE = "company_settings"

# Setting keys stored in company_settings; everything else lives in email_settings
COMPANY_SETTING_KEYS = frozenset({"admin_recipients"})

MAX_EVENTS = 100


def _client():
    if not supabase_admin:
        raise ValueError("SUPABASE_SERVICE_KEY is required for email automation")
    return supabase_admin


# ---------------------------------------------------------------------------
# Configuration reads
# ---------------------------------------------------------------------------

def fetch_form_submission_rules(canonical_form_type: str) -> list[AutomationRule]:
    """
    Load active form-submission rules whose conditions name ``canonical_form_type``.

    Rows that fail validation (e.g. a custom rule without an address) are
    logged and skipped. Database errors propagate to the caller.
    """
    result = (
        _client().table(RULES_TABLE)
        .select("*, email_templates (*)")
        .eq("is_active", True)
        .eq("trigger_type", TriggerType.FORM_SUBMISSION.value)
        .contains("conditions", {"form_type": canonical_form_type})
        .execute()
    )

    rules: list[AutomationRule] = []
    for row in result.data or []:
        try:
            rules.append(AutomationRule.model_validate(row))
        except ValidationError as e:
            logger.error(f"Skipping invalid automation rule {row.get('id')!r}: {e}")
    return rules


def fetch_active_senders() -> list[EmailSender]:
    """Active senders, default first, then newest first."""
    result = (
        _client().table(SENDERS_TABLE)
        .select("*")
        .eq("is_active", True)
        .order("is_default", desc=True)
        .order("created_at", desc=True)
        .execute()
    )
    return [EmailSender.model_validate(row) for row in result.data or []]


def fetch_sender(sender_id: str) -> Optional[EmailSender]:
    result = _client().table(SENDERS_TABLE).select("*").eq("id", sender_id).execute()
    if not result.data:
        return None
    return EmailSender.model_validate(result.data[0])


def fetch_template(template_id: str) -> Optional[EmailTemplate]:
    result = _client().table(TEMPLATES_TABLE).select("*").eq("id", template_id).execute()
    if not result.data:
        return None
    return EmailTemplate.model_validate(result.data[0])


def fetch_setting_value(table: str, key: str) -> Optional[Any]:
    """Return the newest ``setting_value`` for ``key`` in a settings table."""
    result = (
        _client().table(table)
        .select("setting_value")
        .eq("setting_key", key)
        .order("updated_at", desc=True)
        .limit(1)
        .execute()
    )
    if not result.data:
        return None
    return result.data[0].get("setting_value")


class SupabaseSettingsProvider:
    """
    Settings reads for one submission.

    Values are cached for the lifetime of the instance so a submission that
    fans out to several rules reads each setting once.
    """

    def __init__(self) -> None:
        self._settings: dict[str, Optional[Any]] = {}
        self._senders: Optional[list[EmailSender]] = None

    def get_setting(self, key: str) -> Optional[Any]:
        if key not in self._settings:
            table = COMPANY_SETTINGS_TABLE if key in COMPANY_SETTING_KEYS else EMAIL_SETTINGS_TABLE
            self._settings[key] = fetch_setting_value(table, key)
        return self._settings[key]

    def active_senders(self) -> list[EmailSender]:
        if self._senders is None:
            self._senders = fetch_active_senders()
        return self._senders


# ---------------------------------------------------------------------------
# Audit trail and counters
# ---------------------------------------------------------------------------

def insert_email_event(event: EmailEvent) -> EmailEvent:
    """
    Persist ``event`` and return the stored row.

    Insert failures are logged and the unsaved event is returned: the audit
    write never changes the outcome of a send.
    """
    row = event.model_dump(mode="json", exclude_none=True)
    try:
        result = _client().table(EVENTS_TABLE).insert(row).execute()
    except Exception as e:
        logger.error(f"Failed to record email event for {event.recipient_email!r}: {e}")
        return event

    if not result.data:
        logger.error("email_events insert returned no data")
        return event
    return EmailEvent.model_validate(result.data[0])


def increment_rule_sent_count(rule: AutomationRule, sent_at: datetime) -> None:
    """
    Bump ``sent_count`` on a rule by read-then-write.

    Concurrent sends for the same rule can under-count; the counter is a
    dashboard figure only.
    """
    try:
        (
            _client().table(RULES_TABLE)
            .update({
                "sent_count": rule.sent_count + 1,
                "last_sent_at": sent_at.isoformat(),
            })
            .eq("id", rule.id)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to update sent_count for rule {rule.id!r}: {e}")


# ---------------------------------------------------------------------------
# Back-office reads and writes
# ---------------------------------------------------------------------------

def list_email_events(
    status: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = MAX_EVENTS,
) -> list[EmailEventListItem]:
    """Newest email events with template and rule names joined in."""
    query = (
        _client().table(EVENTS_TABLE)
        .select("*, email_templates (name), email_automation_rules (name)")
        .order("created_at", desc=True)
        .limit(limit)
    )
    if status:
        query = query.eq("status", status)
    if since is not None:
        query = query.gte("created_at", since.isoformat())

    result = query.execute()

    events: list[EmailEventListItem] = []
    for row in result.data or []:
        template = row.get("email_templates") or {}
        rule = row.get("email_automation_rules") or {}
        try:
            events.append(
                EmailEventListItem(
                    **row,
                    template_name=template.get("name"),
                    rule_name=rule.get("name"),
                )
            )
        except ValidationError as e:
            logger.error(f"Skipping unreadable email event {row.get('id')!r}: {e}")
    return events


def set_default_sender(sender_id: str) -> Optional[EmailSender]:
    """
    Make ``sender_id`` the only default sender.

    Clears ``is_default`` on every other sender first. Returns None when the
    sender does not exist.
    """
    if fetch_sender(sender_id) is None:
        return None

    client = _client()
    client.table(SENDERS_TABLE).update({"is_default": False}).neq("id", sender_id).execute()
    result = (
        client.table(SENDERS_TABLE)
        .update({"is_default": True})
        .eq("id", sender_id)
        .execute()
    )
    if not result.data:
        return None
    return EmailSender.model_validate(result.data[0])
