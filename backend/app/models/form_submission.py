"""
Pydantic models for inbound form submissions.

Models:
  NormalizedFormType  — canonical form type + optional product key
  FormSubmission      — stringified field bag handed to the email pipeline
  FormEmailResponse   — response body for POST /api/form-emails/send
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, Field


class NormalizedFormType(BaseModel):
    """Result of mapping a free-text form type onto the canonical set."""

    canonical: str
    product_key: Optional[str] = None


class FormSubmission(BaseModel):
    """
    A single form submission as seen by the email pipeline.

    ``fields`` is always ``dict[str, str]``: values are stringified once at
    the boundary (see ``from_payload``) so templating never deals with
    numbers, booleans or nulls.
    """

    form_type: str
    product_key: Optional[str] = None
    fields: dict[str, str] = Field(default_factory=dict)

    @property
    def email(self) -> str:
        return (self.fields.get("email") or "").strip()

    @classmethod
    def from_payload(cls, payload: dict) -> "FormSubmission":
        """
        Build a submission from the raw JSON body posted by the website.

        Accepts both ``form_type`` and the legacy camelCase ``formType``
        (camelCase wins, matching the website's newer forms). Missing type
        defaults to ``contact``.
        """
        # Imported here to keep models free of service-layer imports at load time
        from app.services.form_types import normalize_form_type

        raw_type = payload.get("formType") or payload.get("form_type") or "contact"
        normalized = normalize_form_type(raw_type)

        fields: dict[str, str] = {}
        for key, value in payload.items():
            text = _stringify(value)
            if text is not None:
                fields[str(key)] = text

        return cls(
            form_type=normalized.canonical,
            product_key=normalized.product_key,
            fields=fields,
        )


def _stringify(value: Any) -> Optional[str]:
    """Coerce a JSON value to text; ``None`` means the field is dropped."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


class FormEmailResponse(BaseModel):
    """Aggregate outcome returned to the website after rule processing."""

    success: bool = True
    message: str
    form_type: str
    product_key: Optional[str] = None
    rules_matched: int
    rules_processed: int
    sent: int
    failed: int
    skipped: int
