"""
Unit tests for the template renderer.
"""

import os
import pytest

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test.anon.key")

from app.models.email_automation import EmailTemplate
from app.models.form_submission import FormSubmission
from app.services.template_renderer import (
    ALL_FIELDS_TOKEN,
    build_fields_table,
    escape_html,
    field_label,
    html_to_text,
    inject_fields_table,
    render_template,
    replace_variables,
)


def _make_template(content: str, subject: str = "New enquiry from {{name}}") -> EmailTemplate:
    return EmailTemplate(id="tpl-1", name="Enquiry", subject=subject, content=content)


def _make_submission(**fields) -> FormSubmission:
    return FormSubmission(form_type="contact", fields=fields)


class TestEscapeAndReplace:

    def test_escapes_all_significant_characters(self):
        assert escape_html("<a href=\"x\">Tom & Jerry's</a>") == (
            "&lt;a href=&quot;x&quot;&gt;Tom &amp; Jerry&#039;s&lt;/a&gt;"
        )

    def test_replaces_known_placeholders(self):
        assert replace_variables("Hi {{name}}, re: {{company}}", {"name": "Jane", "company": "Acme"}) == (
            "Hi Jane, re: Acme"
        )

    def test_unknown_placeholder_renders_empty(self):
        assert replace_variables("Hi {{name}}{{missing}}!", {"name": "Jane"}) == "Hi Jane!"

    def test_values_are_escaped(self):
        result = replace_variables("<p>{{message}}</p>", {"message": "<script>alert(1)</script>"})
        assert "<script>" not in result
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in result

    def test_service_and_service_interest_are_aliases(self):
        assert replace_variables("{{service}}", {"service_interest": "SMS"}) == "SMS"
        assert replace_variables("{{service_interest}}", {"service": "Web"}) == "Web"

    def test_direct_value_beats_alias(self):
        fields = {"service": "Web", "service_interest": "SMS"}
        assert replace_variables("{{service}}", fields) == "Web"

    def test_substituted_text_is_not_expanded_again(self):
        assert replace_variables("{{message}}", {"message": "{{name}}", "name": "Jane"}) == "{{name}}"


class TestFieldLabels:

    def test_known_label(self):
        assert field_label("cv_file_url") == "CV/Resume File"
        assert field_label("monthly_volume") == "Monthly SMS Volume"

    def test_unknown_key_is_title_cased(self):
        assert field_label("preferred_contact_time") == "Preferred Contact Time"


class TestBuildFieldsTable:

    def test_lists_fields_with_labels(self):
        html = build_fields_table({"name": "Jane", "email": "jane@x.com"})
        assert "Full Name:" in html
        assert "Email Address:" in html
        assert "jane@x.com" in html
        assert html.startswith("<table")

    def test_excluded_and_empty_fields_are_skipped(self):
        html = build_fields_table({
            "name": "Jane",
            "form_type": "contact",
            "formType": "contact",
            "company": "",
            "phone": "   ",
        })
        assert "contact" not in html
        assert "Company/Organization" not in html
        assert "Phone Number" not in html

    def test_no_fields_renders_placeholder(self):
        assert "No additional details provided." in build_fields_table({})
        assert "No additional details provided." in build_fields_table({"form_type": "contact"})

    def test_cv_url_is_a_link(self):
        html = build_fields_table({"cv_file_url": "https://files.example.com/cv.pdf?a=1&b=2"})
        assert 'href="https://files.example.com/cv.pdf?a=1&amp;b=2"' in html
        assert "View CV/Resume" in html

    def test_long_message_uses_blockquote(self):
        html = build_fields_table({"message": "x" * 101})
        assert "<blockquote" in html

    def test_short_message_is_inline(self):
        html = build_fields_table({"message": "x" * 100})
        assert "<blockquote" not in html

    def test_values_are_escaped(self):
        html = build_fields_table({"<b>key</b>": "<img src=x>"})
        assert "<img" not in html
        assert "<b>" not in html
        assert "&lt;img src=x&gt;" in html


class TestInjectFieldsTable:

    def test_injects_before_last_closing_div(self):
        html = inject_fields_table("<div><div>a</div>b</div>", "<table></table>")
        assert html.startswith("<div><div>a</div>b<div")
        assert html.endswith("<table></table></div></div>")
        assert "Submission Details" in html

    def test_appends_when_no_div(self):
        html = inject_fields_table("<p>Hello</p>", "<table></table>")
        assert html.startswith("<p>Hello</p><div")
        assert html.endswith("<table></table></div>")


class TestHtmlToText:

    def test_converts_breaks_and_blocks(self):
        text = html_to_text("<h1>Title</h1><p>Line one<br>Line two</p><div>End</div>")
        assert text == "Title\n\nLine one\nLine two\n\nEnd"

    def test_strips_tags_and_collapses_spaces(self):
        assert html_to_text("<p>  Hello   <strong>there</strong>  </p>") == "Hello there"

    def test_limits_blank_lines(self):
        assert html_to_text("<p>a</p><p></p><p></p><p>b</p>") == "a\n\nb"

    def test_no_tags_left(self):
        text = html_to_text('<table style="x"><tr><td>Name:</td><td>Jane</td></tr></table>')
        assert "<" not in text
        assert "Name:" in text and "Jane" in text


class TestRenderTemplate:

    def test_subject_is_rendered(self):
        rendered = render_template(_make_template("<p>Hi</p>"), _make_submission(name="Jane"))
        assert rendered.subject == "New enquiry from Jane"

    def test_submitter_email_has_no_table(self):
        template = _make_template("<div><p>Thanks {{name}}</p>{{all_fields}}</div>")
        rendered = render_template(template, _make_submission(name="Jane", company="Acme"))

        assert ALL_FIELDS_TOKEN not in rendered.html
        assert "Submission Details" not in rendered.html
        assert "<table" not in rendered.html
        assert "Thanks Jane" in rendered.html

    def test_admin_token_expands_to_table(self):
        template = _make_template("<p>New lead</p>{{all_fields}}<p>Bye</p>")
        rendered = render_template(template, _make_submission(name="Jane"), include_field_dump=True)

        assert ALL_FIELDS_TOKEN not in rendered.html
        assert rendered.html.startswith("<p>New lead</p><table")
        assert rendered.html.endswith("</table><p>Bye</p>")
        assert "Submission Details" not in rendered.html

    def test_admin_without_token_gets_injected_block(self):
        template = _make_template("<div><p>New lead from {{name}}</p></div>")
        rendered = render_template(template, _make_submission(name="Jane"), include_field_dump=True)

        assert "Submission Details" in rendered.html
        assert "Full Name:" in rendered.html
        assert rendered.html.endswith("</div></div>")

    def test_every_field_appears_in_admin_email(self):
        fields = {
            "name": "Jane",
            "email": "jane@x.com",
            "company": "Acme",
            "budget_range": "$5k-$10k",
            "preferred_contact_time": "Mornings",
        }
        rendered = render_template(_make_template("<div>{{name}}</div>"), _make_submission(**fields), True)

        for value in ("Jane", "jane@x.com", "Acme", "$5k-$10k", "Mornings"):
            assert value in rendered.html

    def test_field_value_with_placeholder_is_not_expanded_in_table(self):
        template = _make_template("<div>{{all_fields}}</div>")
        rendered = render_template(
            template,
            _make_submission(name="Jane", message="{{email}}", email="jane@x.com"),
            include_field_dump=True,
        )
        assert "{{email}}" in rendered.html

    @pytest.mark.parametrize("include_field_dump", [True, False])
    def test_no_raw_tokens_remain(self, include_field_dump):
        template = _make_template("<div>{{name}} {{unknown}} {{all_fields}}</div>", subject="{{company}}")
        rendered = render_template(template, _make_submission(name="Jane"), include_field_dump)

        assert "{{" not in rendered.html
        assert "{{" not in rendered.subject

    def test_text_body_matches_html(self):
        rendered = render_template(_make_template("<p>Hello {{name}}</p>"), _make_submission(name="Jane"))
        assert rendered.text == "Hello Jane"

    def test_ampersand_is_escaped_and_empty_slot_leaves_nothing(self):
        template = _make_template("<p>Hello {{name}}</p>", subject="Hi")

        with_name = render_template(template, _make_submission(name="A&B"))
        without_name = render_template(template, _make_submission())

        assert "A&amp;B" in with_name.html
        assert without_name.html == "<p>Hello </p>"

    def test_details_table_lands_before_final_div(self):
        rendered = render_template(
            _make_template("<div>Hello</div>"),
            _make_submission(name="Jane"),
            include_field_dump=True,
        )

        assert rendered.html.startswith("<div>Hello<div")
        assert rendered.html.endswith("</table></div></div>")
