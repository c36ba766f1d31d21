from unittest.mock import Mock

import pytest

from conversation_manager.errors import CollaboratorError
from conversation_manager.types import MailMessage
from services.mail_service import MailService

MAILBOX = "manager@example.com"


@pytest.fixture
def client():
    return Mock()


def message(**overrides):
    values = {
        "to": "sarah@example.com",
        "to_name": "Sarah Johnson",
        "subject": "Attendance Follow-up",
        "body": "Hi Sarah,\n\nPlease see the policy.\n\nBest regards,",
    }
    values.update(overrides)
    return MailMessage(**values)


def test_send_mail_posts_html_message(client):
    service = MailService(client=client, skip_sending=False)

    result = service.send_mail(MAILBOX, message())

    assert result.success is True
    path = client.post.call_args.args[0]
    payload = client.post.call_args.kwargs["json"]
    assert path == "/users/manager@example.com/sendMail"
    assert payload["message"]["toRecipients"][0]["emailAddress"] == {
        "address": "sarah@example.com",
        "name": "Sarah Johnson",
    }
    assert "<br><br>" in payload["message"]["body"]["content"]


def test_skip_sending_never_calls_graph(client):
    service = MailService(client=client, skip_sending=True)

    assert service.send_mail(MAILBOX, message()).success is True
    client.post.assert_not_called()


def test_invalid_recipient_is_rejected(client):
    service = MailService(client=client, skip_sending=False)

    result = service.send_mail(MAILBOX, message(to="not-an-address"))

    assert result.success is False
    assert "Invalid email address" in result.error
    client.post.assert_not_called()


def test_unfilled_placeholders_are_rejected(client):
    service = MailService(client=client, skip_sending=False)

    result = service.send_mail(MAILBOX, message(body="Hi {{employee_name}}, see you on {{dates}}."))

    assert result.success is False
    assert result.error == "Missing required variables: employee_name, dates"


def test_graph_error_is_reported(client):
    client.post.side_effect = CollaboratorError("Microsoft Graph timed out after 10s")
    service = MailService(client=client, skip_sending=False)

    result = service.send_mail(MAILBOX, message())

    assert result.success is False
    assert "timed out" in result.error
