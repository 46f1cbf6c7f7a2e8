"""
Email template rendering.

Turns an EmailTemplate plus a FormSubmission into the subject, HTML body
and plain-text body that get sent.

- ``{{field}}`` placeholders are replaced with the HTML-escaped submission
  value; unknown placeholders render as empty strings.
- ``{{service}}`` and ``{{service_interest}}`` stand in for each other.
- For admin recipients ``{{all_fields}}`` expands to a table of every
  submitted field. When the template has no such token the table is
  injected before the last ``</div>`` so admins always see the full
  submission.

Public API:
  render_template(template, submission, include_field_dump) -> RenderedEmail
  build_fields_table(fields) -> str
  html_to_text(html) -> str
"""

import logging
import re
from dataclasses import dataclass

from app.models.email_automation import EmailTemplate
from app.models.form_submission import FormSubmission

logger = logging.getLogger(__name__)

ALL_FIELDS_TOKEN = "{{all_fields}}"

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

_FIELD_ALIASES = {
    "service_interest": "service",
    "service": "service_interest",
}

# Never listed in the field dump
EXCLUDED_FIELD_KEYS = frozenset({"form_type", "formType", "all_fields"})

FIELD_LABELS: dict[str, str] = {
    "name": "Full Name",
    "email": "Email Address",
    "phone": "Phone Number",
    "company": "Company/Organization",
    "message": "Message/Comments",
    "position": "Position Applied",
    "service_interest": "Service Interest",
    "website_type": "Website Type",
    "budget_range": "Budget Range",
    "timeline": "Project Timeline",
    "features_needed": "Features Needed",
    "business_type": "Business Type",
    "monthly_volume": "Monthly SMS Volume",
    "device_type": "Device Type",
    "volume": "Volume",
    "use_case": "Use Case",
    "role": "Role/Position",
    "number_of_units": "Number of Units",
    "country": "Country",
    "cv_file_url": "CV/Resume File",
}

LONG_MESSAGE_THRESHOLD = 100

_LABEL_CELL_STYLE = (
    "padding: 8px 12px; border-bottom: 1px solid #e2e8f0; font-weight: 600; "
    "color: #1e293b; vertical-align: top; width: 30%;"
)
_VALUE_CELL_STYLE = "padding: 8px 12px; border-bottom: 1px solid #e2e8f0; color: #475569;"
_TABLE_STYLE = (
    "width: 100%; border-collapse: collapse; background-color: #ffffff; "
    "border-radius: 6px; overflow: hidden; border: 1px solid #e2e8f0;"
)
_BLOCKQUOTE_STYLE = (
    "margin: 0; background-color: #ffffff; padding: 12px; border-radius: 4px; "
    "border-left: 3px solid #f97316; font-style: italic;"
)
_DETAILS_BLOCK_STYLE = (
    "margin-top: 25px; padding: 20px; background-color: #f1f5f9; border-radius: 8px;"
)

_NO_DETAILS_HTML = '<p style="color: #64748b; font-style: italic;">No additional details provided.</p>'


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


# ---------------------------------------------------------------------------
# Escaping and substitution
# ---------------------------------------------------------------------------

def escape_html(value: str) -> str:
    """Escape the five HTML-significant characters in user-supplied text."""
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
    )


def _lookup_field(name: str, fields: dict[str, str]) -> str:
    value = fields.get(name)
    if value:
        return value
    alias = _FIELD_ALIASES.get(name)
    if alias and fields.get(alias):
        return fields[alias]
    return value or ""


def replace_variables(content: str, fields: dict[str, str]) -> str:
    """Substitute every ``{{name}}`` in ``content`` from ``fields``."""
    return _PLACEHOLDER.sub(
        lambda m: escape_html(_lookup_field(m.group(1), fields)),
        content,
    )


# ---------------------------------------------------------------------------
# Field dump table
# ---------------------------------------------------------------------------

def field_label(key: str) -> str:
    """Human-readable label for a submission field key."""
    if key in FIELD_LABELS:
        return FIELD_LABELS[key]
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def _field_row(label: str, value_html: str) -> str:
    return (
        "<tr>"
        f'<td style="{_LABEL_CELL_STYLE}">{label}:</td>'
        f'<td style="{_VALUE_CELL_STYLE}">{value_html}</td>'
        "</tr>"
    )


def build_fields_table(fields: dict[str, str]) -> str:
    """
    Render every non-empty submission field as a label/value table.

    ``cv_file_url`` becomes a link and long ``message`` values are shown
    in a blockquote rather than inline.
    """
    rows: list[str] = []
    for key, value in fields.items():
        if key in EXCLUDED_FIELD_KEYS or not value or not value.strip():
            continue

        label = escape_html(field_label(key))
        display_value = escape_html(value)

        if key == "cv_file_url":
            value_html = (
                f'<a href="{display_value}" style="color: #f97316; text-decoration: none; '
                'font-weight: 600;">View CV/Resume</a>'
            )
        elif key == "message" and len(value) > LONG_MESSAGE_THRESHOLD:
            value_html = f'<blockquote style="{_BLOCKQUOTE_STYLE}">{display_value}</blockquote>'
        else:
            value_html = display_value

        rows.append(_field_row(label, value_html))

    if not rows:
        return _NO_DETAILS_HTML

    logger.debug("Built details table with %d fields", len(rows))
    return f'<table style="{_TABLE_STYLE}">{"".join(rows)}</table>'


def inject_fields_table(html: str, table_html: str) -> str:
    """
    Insert a "Submission Details" block before the last ``</div>``.

    Templates without any ``</div>`` get the block appended at the end.
    """
    block = (
        f'<div style="{_DETAILS_BLOCK_STYLE}">'
        '<h3 style="color: #1e293b; margin: 0 0 15px 0; font-size: 18px;">Submission Details</h3>'
        f"{table_html}"
        "</div>"
    )
    injection_point = html.rfind("</div>")
    if injection_point == -1:
        return html + block
    return html[:injection_point] + block + html[injection_point:]


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

_BR = re.compile(r"<br\s*/?>", re.IGNORECASE)
_BLOCK_END = re.compile(r"</(?:p|div|h[1-6])>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_INLINE_SPACE = re.compile(r"[ \t\r\f\v]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")


def html_to_text(html: str) -> str:
    """
    Best-effort plain-text version of an HTML body.

    ``<br>`` becomes a newline, closing ``p``/``div``/``h1-6`` tags become a
    blank line, remaining tags are dropped and whitespace is collapsed.
    """
    text = _BR.sub("\n", html)
    text = _BLOCK_END.sub("\n\n", text)
    text = _TAG.sub("", text)
    text = _INLINE_SPACE.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _EXTRA_NEWLINES.sub("\n\n", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def render_template(
    template: EmailTemplate,
    submission: FormSubmission,
    include_field_dump: bool = False,
) -> RenderedEmail:
    """
    Render ``template`` for ``submission``.

    Args:
        template: Template row (subject and HTML content).
        submission: Normalised submission whose fields fill the placeholders.
        include_field_dump: True for admin-facing emails; expands or injects
            the submitted-fields table.
    """
    fields = submission.fields
    content = template.content

    if include_field_dump:
        table_html = build_fields_table(fields)
        if ALL_FIELDS_TOKEN in content:
            # Substitute around the token so submitted text inside the table is never re-expanded
            parts = [replace_variables(part, fields) for part in content.split(ALL_FIELDS_TOKEN)]
            html = table_html.join(parts)
        else:
            html = inject_fields_table(replace_variables(content, fields), table_html)
    else:
        html = replace_variables(content.replace(ALL_FIELDS_TOKEN, ""), fields)

    subject = replace_variables(template.subject, fields)

    return RenderedEmail(subject=subject, html=html, text=html_to_text(html))
