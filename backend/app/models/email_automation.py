"""
Pydantic models for email automation configuration and the delivery audit trail.

Rows come straight from Supabase (PostgREST) so every model ignores unknown
columns and tolerates the nullable columns the tables actually have.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class TriggerType(str, Enum):
    FORM_SUBMISSION = "form_submission"
    USER_SIGNUP = "user_signup"
    TIME_BASED = "time_based"
    MANUAL = "manual"


class RecipientType(str, Enum):
    SUBMITTER = "submitter"
    ADMIN = "admin"
    CUSTOM = "custom"


class EmailStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    PENDING = "pending"


# ---------------------------------------------------------------------------
# Configuration rows (admin-managed, read-only to the pipeline)
# ---------------------------------------------------------------------------

class EmailTemplate(BaseModel):
    """Row from email_templates."""
    model_config = {"extra": "ignore"}

    id: str
    name: Optional[str] = None
    subject: str = ""
    content: str = ""
    variables: list[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("variables", mode="before")
    @classmethod
    def _null_variables(cls, value: Any) -> Any:
        return value or []


class AutomationRule(BaseModel):
    """
    Row from email_automation_rules.

    ``email_template`` is populated when the rule is loaded with the
    ``email_templates (*)`` embed. Older rows store the submitter policy as
    ``user``; it is read as ``submitter``.
    """
    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str
    name: str = ""
    trigger_type: TriggerType = TriggerType.FORM_SUBMISSION
    is_active: bool = False
    conditions: dict[str, Any] = Field(default_factory=dict)
    template_id: Optional[str] = None
    recipient_type: RecipientType = RecipientType.ADMIN
    custom_recipient: Optional[str] = None
    delay_minutes: int = Field(default=0, ge=0)
    sent_count: int = Field(default=0, ge=0)
    sender_id: Optional[str] = None
    email_template: Optional[EmailTemplate] = Field(default=None, alias="email_templates")

    @field_validator("recipient_type", mode="before")
    @classmethod
    def _legacy_user_recipient(cls, value: Any) -> Any:
        if value == "user":
            return RecipientType.SUBMITTER
        return value

    @field_validator("conditions", mode="before")
    @classmethod
    def _null_conditions(cls, value: Any) -> Any:
        return value or {}

    @field_validator("delay_minutes", "sent_count", mode="before")
    @classmethod
    def _null_counters(cls, value: Any) -> Any:
        return 0 if value is None else value

    @model_validator(mode="after")
    def _custom_requires_address(self) -> "AutomationRule":
        if self.recipient_type == RecipientType.CUSTOM and not (self.custom_recipient or "").strip():
            raise ValueError("recipient_type 'custom' requires custom_recipient")
        return self


class EmailSender(BaseModel):
    """Row from email_senders."""
    model_config = {"extra": "ignore"}

    id: str
    from_name: str = ""
    from_email: str
    reply_to: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

class EmailEvent(BaseModel):
    """Row in email_events: one per (rule, submission) dispatch attempt."""
    model_config = {"extra": "ignore"}

    id: Optional[str] = None
    template_id: Optional[str] = None
    rule_id: Optional[str] = None
    recipient_email: str = ""
    subject: str = ""
    status: EmailStatus
    error_message: Optional[str] = None
    sent_at: Optional[str] = None
    created_at: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return value or {}

    @field_validator("recipient_email", "subject", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value


class EmailEventListItem(EmailEvent):
    """
    Activity-log entry returned by GET /api/email/events.

    Adds the template and rule names joined from email_templates and
    email_automation_rules.
    """
    template_name: Optional[str] = None
    rule_name: Optional[str] = None


class EmailEventStats(BaseModel):
    """Delivery totals shown on the activity-log screen."""

    total: int
    sent: int
    failed: int
    pending: int
    success_rate: float


# ---------------------------------------------------------------------------
# Admin request bodies
# ---------------------------------------------------------------------------

class SendTestEmailRequest(BaseModel):
    """Request body for POST /api/email/test."""

    test_email: str
    template_id: Optional[str] = None
    sender_id: Optional[str] = None


class SendTestEmailResponse(BaseModel):
    """Response body for POST /api/email/test."""

    success: bool
    message: str
    email_id: Optional[str] = None
