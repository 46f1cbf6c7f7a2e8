"""
Form-submission email pipeline.

    submission → match rules → for each rule:
        resolve recipient → render template → resolve sender → dispatch → log

Each rule is an isolated unit of work: whatever happens to one rule
(missing template, missing submitter email, provider error) is recorded in
its RuleOutcome and never stops the others.

Public API:
  process_form_submission(submission, ...) -> PipelineResult
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from app.models.email_automation import AutomationRule, EmailEvent, EmailStatus, RecipientType
from app.models.form_submission import FormSubmission
from app.services import email_store
from app.services.email_dispatcher import ResendEmailProvider, dispatch, record_failure
from app.services.recipients import NoRecipientFound, SettingsProvider, resolve_recipient
from app.services.rule_matcher import match_rules
from app.services.sender_resolver import ResendDomainVerifier, resolve_sender
from app.services.template_renderer import render_template

logger = logging.getLogger(__name__)


@dataclass
class RuleOutcome:
    """Result of running one rule: an event, or the reason it was skipped."""

    rule_id: str
    rule_name: str
    event: Optional[EmailEvent] = None
    skipped_reason: Optional[str] = None

    @property
    def status(self) -> str:
        if self.event is None:
            return "skipped"
        return self.event.status.value


@dataclass
class PipelineResult:
    rules_matched: int = 0
    outcomes: list[RuleOutcome] = field(default_factory=list)

    @property
    def events(self) -> list[EmailEvent]:
        return [o.event for o in self.outcomes if o.event is not None]

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if o.status == EmailStatus.SENT.value)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == EmailStatus.FAILED.value)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "skipped")

    @property
    def rules_processed(self) -> int:
        return self.rules_matched - self.skipped


def process_rule(
    rule: AutomationRule,
    submission: FormSubmission,
    settings: SettingsProvider,
    verifier: ResendDomainVerifier,
    provider: ResendEmailProvider,
) -> RuleOutcome:
    """Run resolve → render → dispatch for a single rule."""
    outcome = RuleOutcome(rule_id=rule.id, rule_name=rule.name)

    template = rule.email_template
    if template is None:
        logger.warning(f"No template found for rule {rule.name!r}; skipping")
        outcome.skipped_reason = "no_template"
        return outcome

    try:
        recipient = resolve_recipient(rule, submission, settings)
    except NoRecipientFound as e:
        logger.error(f"No recipient for rule {rule.name!r}: {e}")
        outcome.event = record_failure(rule, str(e), submission)
        return outcome

    rendered = render_template(
        template,
        submission,
        include_field_dump=rule.recipient_type == RecipientType.ADMIN,
    )
    sender = resolve_sender(
        settings.active_senders(),
        verifier,
        settings,
        preferred_sender_id=rule.sender_id,
    )
    outcome.event = dispatch(rule, rendered, recipient, sender, submission, provider=provider)
    return outcome


def process_form_submission(
    submission: FormSubmission,
    rules: Optional[list[AutomationRule]] = None,
    settings: Optional[SettingsProvider] = None,
    verifier: Optional[ResendDomainVerifier] = None,
    provider: Optional[ResendEmailProvider] = None,
) -> PipelineResult:
    """
    Send every automation email a submission triggers.

    ``rules`` defaults to the active rules for the submission's canonical
    form type, fetched once. Loading rules is the only step whose failure
    propagates; per-rule failures are captured in the result.
    """
    if rules is None:
        rules = email_store.fetch_form_submission_rules(submission.form_type)
    settings = settings or email_store.SupabaseSettingsProvider()
    verifier = verifier or ResendDomainVerifier()
    provider = provider or ResendEmailProvider()

    matched = match_rules(submission, rules)
    result = PipelineResult(rules_matched=len(matched))

    for rule in matched:
        try:
            outcome = process_rule(rule, submission, settings, verifier, provider)
        except Exception as e:
            logger.exception(f"Unexpected error processing rule {rule.name!r}")
            outcome = RuleOutcome(
                rule_id=rule.id,
                rule_name=rule.name,
                event=record_failure(rule, str(e) or e.__class__.__name__, submission),
            )
        result.outcomes.append(outcome)

    logger.info(
        f"Processed {result.rules_processed} of {result.rules_matched} rules "
        f"({result.sent} sent, {result.failed} failed, {result.skipped} skipped)"
    )
    return result
