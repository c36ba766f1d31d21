import logging
from typing import Callable, Dict, List, Optional

from conversation_manager.flow_controller import FlowController, anything_else, is_cancel
from conversation_manager.types import EmailFlowState, EmailStep, MailMessage
from helpers.email_helpers import (
    fill_template,
    generate_variable_question,
    get_missing_variables,
    known_variables,
    normalize_bracket_variables,
    validate_email,
)
from repositories.state_repository import ConversationStateStore
from services.mail_service import MailService, mail_service
import config

logger = logging.getLogger(__name__)

CONFIRM_WORDS = {"yes", "y", "send", "send it"}

StepHandler = Callable[[str, str, EmailFlowState, str, Optional[str], Optional[str]], List[str]]


class EmailFlowController(FlowController):
    """
    Walks the manager through sending a drafted email to an employee.

    [awaiting_subject] -> awaiting_employee_name -> awaiting_employee_email
    -> [awaiting_variable ...] -> awaiting_confirmation -> completed.
    """

    def __init__(self, store: Optional[ConversationStateStore] = None,
                 mail: Optional[MailService] = None):
        super().__init__(store)
        self.mail = mail or mail_service
        self._handlers: Dict[EmailStep, StepHandler] = {
            EmailStep.AWAITING_SUBJECT: self._handle_subject,
            EmailStep.AWAITING_EMPLOYEE_NAME: self._handle_employee_name,
            EmailStep.AWAITING_EMPLOYEE_EMAIL: self._handle_employee_email,
            EmailStep.AWAITING_VARIABLE: self._handle_variable,
            EmailStep.AWAITING_CONFIRMATION: self._handle_confirmation,
        }

    def start(self, conversation_id: str, subject: Optional[str], body: str) -> List[str]:
        state = self.store.start_email_flow(conversation_id, subject, body)
        if state.step == EmailStep.AWAITING_SUBJECT:
            return ["I can help you send that email. First, what should the subject line be?"]
        return ["I can help you send that email. First, what is the employee's full name?"]

    def handle(
        self,
        conversation_id: str,
        user_input: str,
        mailbox_id: str,
        first_name: Optional[str] = None,
        manager_name: Optional[str] = None,
    ) -> Optional[List[str]]:
        state = self.store.get(conversation_id)
        if not isinstance(state, EmailFlowState) or state.step == EmailStep.COMPLETED:
            return None

        if is_cancel(user_input):
            self.store.clear(conversation_id)
            logger.info("Email flow cancelled for %s at %s", conversation_id, state.step.value)
            return [f"Email cancelled. {anything_else(first_name)}"]

        handler = self._handlers[state.step]
        return handler(conversation_id, user_input.strip(), state, mailbox_id, first_name, manager_name)

    def _handle_subject(self, conversation_id: str, text: str, state: EmailFlowState,
                        mailbox_id: str, first_name: Optional[str], manager_name: Optional[str]) -> List[str]:
        if not text:
            return ["What should the subject line be?"]
        self.store.update_email_state(conversation_id, subject=text, step=EmailStep.AWAITING_EMPLOYEE_NAME)
        return ["Got it. What is the employee's full name?"]

    def _handle_employee_name(self, conversation_id: str, text: str, state: EmailFlowState,
                              mailbox_id: str, first_name: Optional[str], manager_name: Optional[str]) -> List[str]:
        if not text:
            return ["What is the employee's full name?"]
        self.store.update_email_state(conversation_id, recipient_name=text, step=EmailStep.AWAITING_EMPLOYEE_EMAIL)
        return [f"What is {text}'s email address?"]

    def _handle_employee_email(self, conversation_id: str, text: str, state: EmailFlowState,
                               mailbox_id: str, first_name: Optional[str], manager_name: Optional[str]) -> List[str]:
        if not validate_email(text):
            return [f'"{text}" doesn\'t look like a valid email address. Please provide a valid email address.']

        variables = {
            **state.variables,
            **known_variables(state.recipient_name, text, manager_name or config.MANAGER_NAME),
        }
        subject = normalize_bracket_variables(state.subject or "")
        body = normalize_bracket_variables(state.body or "")
        missing = get_missing_variables(f"{subject}\n{body}", variables)

        if missing:
            self.store.update_email_state(
                conversation_id,
                recipient_email=text,
                subject=subject,
                body=body,
                variables=variables,
                missing_variables=missing,
                current_variable_index=0,
                step=EmailStep.AWAITING_VARIABLE,
            )
            return [generate_variable_question(missing[0])]

        updated = self.store.update_email_state(
            conversation_id,
            recipient_email=text,
            subject=subject,
            body=body,
            variables=variables,
            step=EmailStep.AWAITING_CONFIRMATION,
        )
        return [format_email_preview(updated)]

    def _handle_variable(self, conversation_id: str, text: str, state: EmailFlowState,
                         mailbox_id: str, first_name: Optional[str], manager_name: Optional[str]) -> List[str]:
        current = self.store.next_missing_variable(conversation_id)
        if current is not None:
            self.store.record_variable(conversation_id, current, text)

        following = self.store.next_missing_variable(conversation_id)
        if following is not None:
            return [generate_variable_question(following)]

        updated = self.store.update_email_state(conversation_id, step=EmailStep.AWAITING_CONFIRMATION)
        return [format_email_preview(updated)]

    def _handle_confirmation(self, conversation_id: str, text: str, state: EmailFlowState,
                             mailbox_id: str, first_name: Optional[str], manager_name: Optional[str]) -> List[str]:
        if text.lower() not in CONFIRM_WORDS:
            return ['Please reply "yes" to send the email or "no" to cancel.']

        message = MailMessage(
            to=state.recipient_email or "",
            to_name=state.recipient_name,
            subject=fill_template(state.subject or "", state.variables),
            body=fill_template(state.body or "", state.variables),
        )
        try:
            result = self.mail.send_mail(mailbox_id, message)
        except Exception as e:
            logger.error("Unexpected error sending email for %s: %s", conversation_id, e)
            self.store.clear(conversation_id)
            return [f"❌ Failed to send email: {e}\n\n"
                    "Please try again or contact IT support if the issue persists."]

        if not result.success:
            self.store.clear(conversation_id)
            return [f"❌ Failed to send email: {result.error}\n\n"
                    "Please try again or contact IT support if the issue persists."]

        self.store.update_email_state(conversation_id, step=EmailStep.COMPLETED)
        logger.info("Email flow completed for %s", conversation_id)
        return [f"✅ Email sent successfully to {state.recipient_email}!\n\n{anything_else(first_name)}"]


def format_email_preview(state: EmailFlowState) -> str:
    subject = fill_template(state.subject or "", state.variables)
    body = fill_template(state.body or "", state.variables)
    return (
        "📧 **Email Preview**\n\n"
        f"**To:** {state.recipient_name} <{state.recipient_email}>\n"
        f"**Subject:** {subject}\n\n"
        f"**Message:**\n{body}\n\n"
        "---\n"
        'Would you like me to send this email? (Reply "yes" to send, or "no" to cancel)'
    )
