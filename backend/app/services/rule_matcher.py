"""
Rule matching: which active automation rules fire for a submission.

Pure filter over rules already loaded from email_automation_rules. No I/O.
"""

import logging

from app.models.email_automation import AutomationRule, TriggerType
from app.models.form_submission import FormSubmission

logger = logging.getLogger(__name__)


def rule_matches(rule: AutomationRule, submission: FormSubmission) -> bool:
    """
    Return True when ``rule`` should fire for ``submission``.

    A rule with no ``form_product`` condition is product-agnostic; one with
    a product condition only fires for submissions of that product.
    """
    if not rule.is_active:
        return False
    if rule.trigger_type != TriggerType.FORM_SUBMISSION:
        return False
    if rule.conditions.get("form_type") != submission.form_type:
        return False

    form_product = rule.conditions.get("form_product")
    if form_product:
        return form_product == submission.product_key

    return True


def match_rules(
    submission: FormSubmission,
    rules: list[AutomationRule],
) -> list[AutomationRule]:
    """Return every rule in ``rules`` that fires for ``submission``."""
    matched = [rule for rule in rules if rule_matches(rule, submission)]
    logger.info(
        "Matched %d of %d rules for %s%s",
        len(matched),
        len(rules),
        submission.form_type,
        f" ({submission.product_key})" if submission.product_key else "",
    )
    return matched
