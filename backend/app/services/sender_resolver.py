"""
Sender (From identity) resolution.

A configured sender is only used when its domain is verified with Resend;
otherwise mail goes out from Resend's sandbox sender while keeping the
configured display name and reply-to.

Precedence:
  1. the sender pinned on the rule (rule.sender_id), if active
  2. senders flagged is_default (newest first when several are flagged)
  3. remaining active senders (newest first)
  4. SANDBOX_FROM_EMAIL with the configured from_name / reply_to
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import resend

from app.models.email_automation import EmailSender
from app.services.recipients import FALLBACK_ADMIN_EMAIL, SettingsProvider, is_sandbox_address

logger = logging.getLogger(__name__)

SANDBOX_FROM_EMAIL = "onboarding@resend.dev"
DEFAULT_FROM_NAME = os.getenv("DEFAULT_FROM_NAME", "Zira Technologies")

# email_settings keys merged (in order) into the fallback identity
SENDER_SETTING_KEYS = ("sender_information", "sender_info", "smtp")


@dataclass(frozen=True)
class SenderIdentity:
    from_name: str
    from_email: str
    reply_to: str
    verified: bool = False

    @property
    def formatted_from(self) -> str:
        return f"{self.from_name} <{self.from_email}>"


def extract_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].strip().lower()


class ResendDomainVerifier:
    """
    Answers "is this domain verified with Resend?".

    Lists the account's domains once per instance; a listing failure means
    no domain counts as verified.
    """

    def __init__(self) -> None:
        self._statuses: Optional[dict[str, str]] = None

    def _load(self) -> dict[str, str]:
        try:
            response = resend.Domains.list()
        except Exception as e:
            logger.error(f"Error listing Resend domains: {e}")
            return {}

        domains = response.get("data", []) if isinstance(response, dict) else response
        return {
            str(d.get("name", "")).lower(): str(d.get("status", ""))
            for d in domains or []
        }

    def is_verified(self, domain: str) -> bool:
        if self._statuses is None:
            self._statuses = self._load()
        return self._statuses.get(domain.lower()) == "verified"


def order_senders(
    senders: list[EmailSender],
    preferred_sender_id: Optional[str] = None,
) -> list[EmailSender]:
    """Active senders in resolution order: pinned, defaults, the rest; newest first within each."""
    active = [s for s in senders if s.is_active]
    newest_first = sorted(active, key=lambda s: s.created_at or "", reverse=True)
    return sorted(
        newest_first,
        key=lambda s: (s.id != preferred_sender_id, not s.is_default),
    )


def _configured_identity(
    ordered: list[EmailSender],
    settings: SettingsProvider,
) -> dict[str, str]:
    identity = {"from_name": DEFAULT_FROM_NAME, "reply_to": FALLBACK_ADMIN_EMAIL}
    if ordered:
        top = ordered[0]
        if top.from_name:
            identity["from_name"] = top.from_name
        if top.reply_to and not is_sandbox_address(top.reply_to):
            identity["reply_to"] = top.reply_to
    for key in SENDER_SETTING_KEYS:
        try:
            value = settings.get_setting(key)
        except Exception as e:
            logger.error(f"Error reading sender setting {key!r}: {e}")
            continue
        if isinstance(value, dict):
            for field in ("from_name", "reply_to"):
                if value.get(field):
                    identity[field] = str(value[field])
    return identity


def resolve_sender(
    senders: list[EmailSender],
    verifier: ResendDomainVerifier,
    settings: SettingsProvider,
    preferred_sender_id: Optional[str] = None,
) -> SenderIdentity:
    """Pick the From identity for an outgoing email."""
    ordered = order_senders(senders, preferred_sender_id)
    for sender in ordered:
        if not sender.from_email or is_sandbox_address(sender.from_email):
            continue
        domain = extract_domain(sender.from_email)
        if verifier.is_verified(domain):
            logger.info(f"Using verified sender {sender.from_email} (default: {sender.is_default})")
            return SenderIdentity(
                from_name=sender.from_name or DEFAULT_FROM_NAME,
                from_email=sender.from_email,
                reply_to=sender.reply_to or sender.from_email,
                verified=True,
            )
        logger.info(f"Domain {domain} not verified, skipping sender {sender.from_email}")

    identity = _configured_identity(ordered, settings)
    logger.info(f"No verified custom domain; sending from {SANDBOX_FROM_EMAIL}")
    return SenderIdentity(
        from_name=identity["from_name"],
        from_email=SANDBOX_FROM_EMAIL,
        reply_to=identity["reply_to"],
    )
