import logging
from typing import Optional

from conversation_manager.errors import CollaboratorError
from conversation_manager.types import MailMessage, SendMailResult
from helpers.email_helpers import convert_to_html, extract_variables, validate_email
from services.graph_client import GraphClient, graph_client
import config

logger = logging.getLogger(__name__)


class MailService:
    """Sends mail from the manager's mailbox through Graph sendMail."""

    def __init__(self, client: Optional[GraphClient] = None, skip_sending: Optional[bool] = None):
        self.client = client or graph_client
        self.skip_sending = config.SKIP_SENDING_EMAILS if skip_sending is None else skip_sending

    def send_mail(self, mailbox_id: str, message: MailMessage) -> SendMailResult:
        """
        Send a filled-in message. Never raises; failures come back in the result.

        Args:
            mailbox_id: the sending manager's mailbox (user id or address)
            message: subject and body with every placeholder already filled
        """
        if not validate_email(message.to):
            return SendMailResult(success=False, error=f"Invalid email address: {message.to}")

        unresolved = extract_variables(f"{message.subject}\n{message.body}")
        if unresolved:
            return SendMailResult(success=False, error=f"Missing required variables: {', '.join(unresolved)}")

        if self.skip_sending:
            logger.info("[SKIP_SENDING_EMAILS] Would have sent email to %s with subject: %s", message.to, message.subject)
            logger.debug("[SKIP_SENDING_EMAILS] Email body: %s", message.body)
            return SendMailResult(success=True)

        payload = {
            "message": {
                "subject": message.subject,
                "body": {"contentType": "html", "content": convert_to_html(message.body)},
                "toRecipients": [{
                    "emailAddress": {"address": message.to, "name": message.to_name or message.to},
                }],
            },
            "saveToSentItems": True,
        }
        try:
            self.client.post(f"/users/{mailbox_id}/sendMail", json=payload)
        except CollaboratorError as e:
            logger.error("Error sending email to %s: %s", message.to, e)
            return SendMailResult(success=False, error=str(e))

        logger.info("Email sent to %s.", message.to)
        return SendMailResult(success=True)


# Create a singleton instance
mail_service = MailService()
