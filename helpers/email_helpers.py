import re
from datetime import date
from typing import Dict, List, Optional

from conversation_manager.types import EmailTemplate

VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")
BRACKET_PATTERN = re.compile(r"\[([^\]]+)\]")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

VARIABLE_QUESTIONS = {
    "employee_name": "What is the employee's full name?",
    "employee_email": "What is the employee's email address?",
    "dates": "What are the specific dates or date range?",
    "incident_date": "What date did the incident occur?",
    "policy_reference": "What is the policy reference number or section?",
    "warning_type": "What type of warning is this? (verbal, written, final)",
    "violation_description": "Please describe the policy violation:",
    "next_steps": "What are the next steps or expectations?",
    "deadline": "What is the deadline for compliance?",
}

# Guidance the model writes for the manager, never meant for the employee
INTERNAL_SECTION_PATTERNS = [
    re.compile(rf"{marker}[\s\S]*?(?=\n\n(?:[A-Z]|$))", re.IGNORECASE)
    for marker in (
        r"\*\*Documentation Tips:\*\*",
        r"\*\*Coaching Notes:\*\*",
        r"\*\*Next Steps:\*\*",
        r"\*\*Important:\*\*",
        r"\*\*Caution:\*\*",
        "⚠️",
        "🚩",
    )
]

SUBJECT_PATTERNS = [
    re.compile(r"\*\*Subject Line:\*\*\s*(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"\*\*Subject:\*\*\s*(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"Subject:\s*(.+?)(?:\n|$)", re.IGNORECASE),
]

BODY_PATTERN = re.compile(
    r"((?:Hi|Dear)\s+\[[\s\S]+?(?:Best regards|Sincerely|Thank you)[^\n]*)",
    re.IGNORECASE,
)


def extract_variables(content: str) -> List[str]:
    """Return the {{placeholder}} names in order of first appearance."""
    return list(dict.fromkeys(VARIABLE_PATTERN.findall(content)))


def fill_template(template: str, variables: Dict[str, str]) -> str:
    def replace(match: re.Match) -> str:
        return variables.get(match.group(1), match.group(0))

    return VARIABLE_PATTERN.sub(replace, template)


def get_missing_variables(content: str, provided: Dict[str, str]) -> List[str]:
    return [name for name in extract_variables(content) if name not in provided]


def validate_email(address: str) -> bool:
    return bool(EMAIL_PATTERN.match(address.strip()))


def variable_slug(label: str) -> str:
    """Slug for a bracket label, e.g. Manager's Name -> managers_name."""
    words = re.sub(r"[^a-z0-9\s]", "", label.lower()).split()
    return "_".join(words)


def normalize_bracket_variables(text: str) -> str:
    """Turn '[Employee Name]' into '{{employee_name}}'."""
    def replace(match: re.Match) -> str:
        slug = variable_slug(match.group(1))
        return "{{" + slug + "}}" if slug else match.group(0)

    return BRACKET_PATTERN.sub(replace, text)


def format_variable_name(name: str) -> str:
    return " ".join(word.capitalize() for word in name.split("_") if word)


def generate_variable_question(name: str) -> str:
    return VARIABLE_QUESTIONS.get(name.lower(), f"What is the {format_variable_name(name)}?")


def known_variables(
    recipient_name: Optional[str],
    recipient_email: Optional[str],
    manager_name: Optional[str],
    today: Optional[date] = None,
) -> Dict[str, str]:
    """Placeholder values the assistant can fill without asking the manager."""
    today_str = (today or date.today()).strftime("%m/%d/%Y")
    manager = manager_name or "Manager"
    return {
        "employee_name": recipient_name or "",
        "employees_name": recipient_name or "",
        "EMPLOYEE_NAME": recipient_name or "",
        "employee_email": recipient_email or "",
        "EMPLOYEE_EMAIL": recipient_email or "",
        "manager_name": manager,
        "managers_name": manager,
        "MANAGER_NAME": manager,
        "your_name": manager,
        "today": today_str,
        "current_date": today_str,
    }


def extract_email_template(response: str) -> Optional[EmailTemplate]:
    """
    Pull a sendable email out of a generated HR reply.

    The body runs from a bracketed salutation ("Hi [Employee Name]") to the
    sign-off line. Returns None when no such body exists, so a malformed
    draft is never offered for sending. The subject is None when the reply
    carries no subject marker.
    """
    cleaned = response
    for pattern in INTERNAL_SECTION_PATTERNS:
        cleaned = pattern.sub("", cleaned)

    subject = None
    for pattern in SUBJECT_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            subject = match.group(1).strip().strip("*").strip() or None
            cleaned = cleaned.replace(match.group(0), "", 1).strip()
            break

    body_match = BODY_PATTERN.search(cleaned)
    if not body_match:
        return None
    return EmailTemplate(subject=subject, body=body_match.group(1).strip())


def convert_to_html(text: str) -> str:
    lines = [line.strip() for line in text.split("\n")]
    html_body = "<br><br>".join(line for line in lines if line)
    return (
        "<html>\n"
        '  <body style="font-family: Arial, sans-serif; font-size: 14px; line-height: 1.6; color: #333;">\n'
        f"    {html_body}\n"
        "  </body>\n"
        "</html>"
    )
