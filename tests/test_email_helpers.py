from datetime import date

import pytest

from helpers.email_helpers import (
    convert_to_html,
    extract_email_template,
    extract_variables,
    fill_template,
    generate_variable_question,
    get_missing_variables,
    known_variables,
    normalize_bracket_variables,
    validate_email,
)

DRAFT = (
    "Here's an email you can send:\n\n"
    "**Subject:** Attendance Follow-up\n\n"
    "Hi [Employee Name],\n\n"
    "We noticed you were absent on [Dates] without notice.\n\n"
    "Best regards,\n"
    "[Your Name]\n\n"
    "**Documentation Tips:** Keep a copy in their file.\n\n"
    "Let me know if you want to adjust the tone."
)


def test_extract_variables_keeps_first_appearance_order():
    assert extract_variables("{{b}} and {{a}} then {{b}}") == ["b", "a"]


def test_fill_template_leaves_unknown_placeholders():
    assert fill_template("Hi {{name}}, see {{other}}", {"name": "Sam"}) == "Hi Sam, see {{other}}"


def test_get_missing_variables():
    assert get_missing_variables("{{a}} {{b}} {{c}}", {"b": "x"}) == ["a", "c"]


@pytest.mark.parametrize("address,valid", [
    ("sarah@example.com", True),
    (" sarah@example.com ", True),
    ("sarah@example", False),
    ("sarah at example.com", False),
    ("", False),
])
def test_validate_email(address, valid):
    assert validate_email(address) is valid


def test_normalize_bracket_variables():
    assert normalize_bracket_variables("Hi [Employee Name], on [ Incident Date ]") == (
        "Hi {{employee_name}}, on {{incident_date}}"
    )


def test_variable_questions():
    assert generate_variable_question("deadline") == "What is the deadline for compliance?"
    assert generate_variable_question("manager_phone") == "What is the Manager Phone?"


def test_known_variables():
    values = known_variables("Sarah Johnson", "sarah@example.com", None, today=date(2025, 7, 1))

    assert values["employee_name"] == "Sarah Johnson"
    assert values["manager_name"] == "Manager"
    assert values["your_name"] == "Manager"
    assert values["today"] == "07/01/2025"


def test_extract_email_template():
    template = extract_email_template(DRAFT)

    assert template.subject == "Attendance Follow-up"
    assert template.body.startswith("Hi [Employee Name],")
    assert template.body.endswith("Best regards,")
    assert "Documentation Tips" not in template.body


def test_extract_email_template_without_subject():
    template = extract_email_template("Dear [Employee Name],\n\nPlease call me.\n\nSincerely,")

    assert template.subject is None
    assert template.body == "Dear [Employee Name],\n\nPlease call me.\n\nSincerely,"


def test_reply_without_draft_has_no_template():
    assert extract_email_template("You should send them an email about the policy.") is None


def test_convert_to_html():
    html = convert_to_html("Hi Sam,\n\nSee you.\n")

    assert "Hi Sam,<br><br>See you." in html
    assert html.startswith("<html>")


def test_bracket_labels_with_punctuation_become_fillable_placeholders():
    text = normalize_bracket_variables("You missed [Date(s) of Absence].\n[Manager's Name]")

    assert text == "You missed {{dates_of_absence}}.\n{{managers_name}}"
    assert extract_variables(text) == ["dates_of_absence", "managers_name"]
    assert get_missing_variables(text, known_variables("Sarah", "s@example.com", "Dana")) == ["dates_of_absence"]


def test_bracket_without_letters_is_left_alone():
    assert normalize_bracket_variables("Option [?]") == "Option [?]"
