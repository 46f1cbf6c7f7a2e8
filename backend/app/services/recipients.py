"""
Recipient resolution for automation rules.

Policy per rule.recipient_type:
  submitter — the submission's own ``email`` field (raises MissingSubmitterEmail)
  custom    — rule.custom_recipient, falling through to the admin chain
  admin     — ordered fallback chain, always yields an address:
                1. rule.custom_recipient
                2. company_settings.admin_recipients (comma/newline list)
                3. active email_senders reply_to / from_email, default first
                4. email_settings.sender_info.reply_to
                5. FALLBACK_ADMIN_EMAIL

Every tier skips addresses on the provider's sandbox domain: Resend's
``@resend.dev`` test sender does not reliably accept mail.
"""

import logging
import os
import re
from typing import Any, Callable, Iterable, Optional, Protocol

from app.models.email_automation import AutomationRule, EmailSender, RecipientType
from app.models.form_submission import FormSubmission

logger = logging.getLogger(__name__)

SANDBOX_DOMAIN = "resend.dev"

FALLBACK_ADMIN_EMAIL = os.getenv("FALLBACK_ADMIN_EMAIL", "support@ziratech.com")

ADMIN_RECIPIENTS_KEY = "admin_recipients"
SENDER_INFO_KEY = "sender_info"

_RECIPIENT_SPLIT = re.compile(r"[,\n]")


class NoRecipientFound(Exception):
    """No destination address could be determined for a rule."""


class MissingSubmitterEmail(NoRecipientFound):
    """A submitter-facing rule fired for a submission without an email."""


class SettingsProvider(Protocol):
    """Read-only access to the settings the resolvers depend on."""

    def get_setting(self, key: str) -> Optional[Any]:
        ...

    def active_senders(self) -> list[EmailSender]:
        ...


# ---------------------------------------------------------------------------
# Address helpers
# ---------------------------------------------------------------------------

def is_sandbox_address(address: str) -> bool:
    """Return True for addresses on the provider's sandbox domain."""
    return address.strip().lower().endswith("@" + SANDBOX_DOMAIN)


def is_usable_address(address: Optional[str]) -> bool:
    if not address or not address.strip():
        return False
    return not is_sandbox_address(address)


def first_usable(candidates: Iterable[Optional[str]]) -> Optional[str]:
    """Return the first non-empty, non-sandbox address in ``candidates``."""
    for candidate in candidates:
        if is_usable_address(candidate):
            return candidate.strip()
    return None


def split_recipient_list(raw: str) -> list[str]:
    """Split a comma/newline separated address list into trimmed addresses."""
    return [part.strip() for part in _RECIPIENT_SPLIT.split(raw) if "@" in part]


# ---------------------------------------------------------------------------
# Admin-chain tiers
# ---------------------------------------------------------------------------

AdminTier = Callable[[AutomationRule, SettingsProvider], Optional[str]]


def rule_custom_recipient(rule: AutomationRule, settings: SettingsProvider) -> Optional[str]:
    return first_usable([rule.custom_recipient])


def company_admin_recipients(rule: AutomationRule, settings: SettingsProvider) -> Optional[str]:
    value = settings.get_setting(ADMIN_RECIPIENTS_KEY)
    if not isinstance(value, dict):
        return None
    emails = value.get("emails")
    if not isinstance(emails, str) or not emails.strip():
        return None
    return first_usable(split_recipient_list(emails))


def sender_reply_to(rule: AutomationRule, settings: SettingsProvider) -> Optional[str]:
    senders = sorted(settings.active_senders(), key=lambda s: not s.is_default)
    return first_usable(s.reply_to or s.from_email for s in senders if s.is_active)


def settings_reply_to(rule: AutomationRule, settings: SettingsProvider) -> Optional[str]:
    value = settings.get_setting(SENDER_INFO_KEY)
    if not isinstance(value, dict):
        return None
    return first_usable([value.get("reply_to")])


ADMIN_TIERS: list[AdminTier] = [
    rule_custom_recipient,
    company_admin_recipients,
    sender_reply_to,
    settings_reply_to,
]


def resolve_admin_recipient(
    rule: AutomationRule,
    settings: SettingsProvider,
    tiers: Optional[list[AdminTier]] = None,
) -> str:
    """
    Walk the admin fallback chain and return the first usable address.

    A tier that fails (e.g. a settings read error) is logged and treated as
    empty. Never raises: the organisational fallback always applies.
    """
    for tier in tiers if tiers is not None else ADMIN_TIERS:
        try:
            address = tier(rule, settings)
        except Exception as e:
            logger.error(f"Admin recipient tier {tier.__name__} failed: {e}")
            continue
        if is_usable_address(address):
            logger.info(f"Using admin recipient from {tier.__name__}: {address}")
            return address

    logger.info(f"Using fallback admin recipient: {FALLBACK_ADMIN_EMAIL}")
    return FALLBACK_ADMIN_EMAIL


def resolve_recipient(
    rule: AutomationRule,
    submission: FormSubmission,
    settings: SettingsProvider,
) -> str:
    """
    Return the destination address for ``rule``.

    Raises:
        MissingSubmitterEmail: submitter policy and the submission has no email.
    """
    if rule.recipient_type == RecipientType.SUBMITTER:
        if not submission.email:
            raise MissingSubmitterEmail(
                f"Rule {rule.name!r} targets the submitter but the submission has no email"
            )
        return submission.email

    if rule.recipient_type == RecipientType.CUSTOM:
        custom = first_usable([rule.custom_recipient])
        if custom:
            return custom
        logger.warning(
            f"Custom recipient for rule {rule.name!r} is unusable; "
            "falling back to admin recipients"
        )

    return resolve_admin_recipient(rule, settings)
