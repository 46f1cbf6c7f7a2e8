"""
Form-type normalisation.

The website posts many free-text form types ("career_form",
"job_application", "zira_web_contact", "demo-booking", ...). Automation
rules are keyed on a small canonical set, so every raw type is mapped to
one canonical value plus an optional product key before matching.

Public API:
  normalize_form_type(raw) -> NormalizedFormType
"""

import re
from typing import Any, Optional

from app.models.form_submission import NormalizedFormType

CONTACT = "contact"
CAREER_APPLICATION = "career_application"

CANONICAL_FORM_TYPES = (CONTACT, CAREER_APPLICATION)

# (substrings, product key); first hit wins
_PRODUCT_PATTERNS: list[tuple[tuple[str, ...], str]] = [
    (("zira_web", "ziraweb"), "zira_web"),
    (("zira_sms", "zirasms"), "zira_sms"),
    (("zira_homes", "zirahomes"), "zira_homes"),
    (("zira_lock", "ziralock"), "zira_lock"),
]

PRODUCT_KEYS = tuple(key for _, key in _PRODUCT_PATTERNS)

_CAREER_MARKERS = ("career", "job", "application")

_NON_TYPE_CHARS = re.compile(r"[^a-z_]")


def _extract_product_key(normalized: str) -> Optional[str]:
    for needles, product_key in _PRODUCT_PATTERNS:
        if any(needle in normalized for needle in needles):
            return product_key
    return None


def normalize_form_type(raw: Any) -> NormalizedFormType:
    """
    Map a raw form type onto ``contact`` or ``career_application``.

    Lower-cases the input and drops every character outside ``[a-z_]``
    before looking for product and career markers. Anything that is not a
    career form is treated as a contact form, so the mapping is total.
    """
    if not raw or not isinstance(raw, str):
        return NormalizedFormType(canonical=CONTACT)

    normalized = _NON_TYPE_CHARS.sub("", raw.lower())
    product_key = _extract_product_key(normalized)

    if any(marker in normalized for marker in _CAREER_MARKERS):
        return NormalizedFormType(canonical=CAREER_APPLICATION, product_key=product_key)

    return NormalizedFormType(canonical=CONTACT, product_key=product_key)
