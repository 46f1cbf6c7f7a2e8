"""
Form email router.

Receives form submissions from the website and runs the email automation
pipeline for them.

Environment variables
---------------------
FORM_ALLOWED_ORIGINS            Comma-separated origins allowed to post
                                submissions (default: local Vite dev server).
FORM_RATE_LIMIT_MAX             Requests allowed per caller per window (default: 5).
FORM_RATE_LIMIT_WINDOW_SECONDS  Window length in seconds (default: 3600).

Endpoints:
  POST /send   — run automation rules for a submission (auth: JWT)
"""

import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from app.auth import get_current_user
from app.models.form_submission import FormEmailResponse, FormSubmission
from app.services.form_email_pipeline import process_form_submission
from app.services.rate_limit import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter()

_DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

rate_limiter = SlidingWindowRateLimiter(
    max_calls=int(os.getenv("FORM_RATE_LIMIT_MAX", "5")),
    window_seconds=float(os.getenv("FORM_RATE_LIMIT_WINDOW_SECONDS", "3600")),
)


def get_allowed_origins() -> List[str]:
    """Origins allowed to submit forms, from FORM_ALLOWED_ORIGINS or the dev defaults."""
    configured = os.getenv("FORM_ALLOWED_ORIGINS", "").strip()
    if not configured:
        return list(_DEFAULT_ALLOWED_ORIGINS)
    return [o.strip().rstrip("/") for o in configured.split(",") if o.strip()]


def is_allowed_origin(origin: Optional[str], referer: Optional[str]) -> bool:
    """
    Accept an exact Origin match, or a Referer on an allowed origin.

    A Referer must be the origin itself or continue with a path, so
    ``http://localhost:5173.evil.tld`` does not pass for
    ``http://localhost:5173``. Requests carrying neither header are rejected.
    """
    allowed = get_allowed_origins()
    if origin and origin.rstrip("/") in allowed:
        return True
    if referer:
        return any(referer == a or referer.startswith(a + "/") for a in allowed)
    return False


def _enforce_rate_limit(user_id: str = Depends(get_current_user)) -> str:
    if not rate_limiter.allow(user_id):
        logger.warning(f"Rate limit exceeded for user {user_id}")
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
        )
    return user_id


def _verify_origin(
    origin: Optional[str] = Header(None),
    referer: Optional[str] = Header(None),
) -> None:
    if not is_allowed_origin(origin, referer):
        raise HTTPException(status_code=403, detail="Invalid request origin.")


@router.post("/send", response_model=FormEmailResponse)
async def send_form_emails(
    payload: dict,
    user_id: str = Depends(_enforce_rate_limit),
    _: None = Depends(_verify_origin),
) -> FormEmailResponse:
    """
    Run every active automation rule that matches the submitted form.

    Email delivery is best-effort: the response is 200 once rules are
    processed, with per-rule results summarised in the counts. Only a
    failure to load the rules themselves returns 500.
    """
    submission = FormSubmission.from_payload(payload)
    logger.info(
        f"Form submission from user {user_id}: {submission.form_type}"
        f" (product: {submission.product_key or 'none'})"
    )

    try:
        result = process_form_submission(submission)
    except Exception as e:
        logger.error(f"Failed to fetch email automation rules: {e}")
        raise HTTPException(
            status_code=500,
            detail="Failed to fetch email automation rules",
        )

    return FormEmailResponse(
        message=f"Processed {result.rules_processed} of {result.rules_matched} rules",
        form_type=submission.form_type,
        product_key=submission.product_key,
        rules_matched=result.rules_matched,
        rules_processed=result.rules_processed,
        sent=result.sent,
        failed=result.failed,
        skipped=result.skipped,
    )
