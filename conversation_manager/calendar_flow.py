import logging
import re
from typing import Callable, Dict, List, Optional

from conversation_manager.flow_controller import FlowController, anything_else, is_cancel, name_suffix
from conversation_manager.types import AvailableSlot, BookingDetails, CalendarFlowState, CalendarStep
from helpers.booking_helpers import select_slots
from repositories.state_repository import ConversationStateStore
from services.calendar_service import CalendarService, calendar_service
import config

logger = logging.getLogger(__name__)

CONFIRM_WORDS = {"yes", "y", "book", "book it"}
SKIP_WORDS = {"skip", "none", "n/a"}

StepHandler = Callable[[str, str, CalendarFlowState, str, Optional[str]], List[str]]


class CalendarFlowController(FlowController):
    """
    Books a call with an employee on the manager's calendar.

    awaiting_time_selection -> awaiting_employee_name -> awaiting_employee_phone
    -> awaiting_confirmation -> completed. A cancel word at any step clears
    the flow; any calendar failure clears it and explains.
    """

    def __init__(self, store: Optional[ConversationStateStore] = None,
                 calendar: Optional[CalendarService] = None):
        super().__init__(store)
        self.calendar = calendar or calendar_service
        self._handlers: Dict[CalendarStep, StepHandler] = {
            CalendarStep.AWAITING_TIME_SELECTION: self._handle_time_selection,
            CalendarStep.AWAITING_EMPLOYEE_NAME: self._handle_employee_name,
            CalendarStep.AWAITING_EMPLOYEE_PHONE: self._handle_employee_phone,
            CalendarStep.AWAITING_CONFIRMATION: self._handle_confirmation,
        }

    def start(
        self,
        conversation_id: str,
        mailbox_id: str,
        topic: str = config.DEFAULT_TOPIC,
        client_timezone: Optional[str] = None,
        first_name: Optional[str] = None,
    ) -> List[str]:
        """Open the flow and offer the soonest free slots."""
        self.store.start_calendar_flow(conversation_id, topic)
        messages = [
            f"I'll help you schedule that call{name_suffix(first_name)}. "
            "Let me check your calendar for available times..."
        ]

        try:
            timezone_name = self.calendar.resolve_manager_timezone(mailbox_id, client_timezone)
            self.store.update_calendar_state(conversation_id, manager_timezone=timezone_name)
            slots = self.calendar.get_available_slots(mailbox_id, config.CALENDAR_DAYS_AHEAD, timezone_name)
        except Exception as e:
            logger.error("Error fetching calendar availability for %s: %s", conversation_id, e)
            self.store.clear(conversation_id)
            messages.append(
                f"I encountered an error checking your calendar: {e}\n\n"
                "Please ensure I have permission to access your calendar."
            )
            return messages

        if not slots:
            self.store.clear(conversation_id)
            messages.append(
                f"I couldn't find any available time slots in the next {config.CALENDAR_DAYS_AHEAD} days. "
                "Your calendar might be fully booked. Please free up some time and try again."
            )
            return messages

        top_slots = select_slots(slots)
        self.store.update_calendar_state(
            conversation_id,
            available_slots=top_slots,
            step=CalendarStep.AWAITING_TIME_SELECTION,
        )
        messages.append(format_slot_list(top_slots))
        return messages

    def handle(
        self,
        conversation_id: str,
        user_input: str,
        mailbox_id: str,
        first_name: Optional[str] = None,
        manager_name: Optional[str] = None,
    ) -> Optional[List[str]]:
        state = self.store.get(conversation_id)
        if not isinstance(state, CalendarFlowState) or state.step == CalendarStep.COMPLETED:
            return None

        if is_cancel(user_input):
            self.store.clear(conversation_id)
            logger.info("Calendar flow cancelled for %s at %s", conversation_id, state.step.value)
            return [f"Booking cancelled. {anything_else(first_name)}"]

        handler = self._handlers[state.step]
        return handler(conversation_id, user_input.strip(), state, mailbox_id, first_name)

    def _handle_time_selection(self, conversation_id: str, text: str, state: CalendarFlowState,
                               mailbox_id: str, first_name: Optional[str]) -> List[str]:
        slot_count = len(state.available_slots or [])
        if not re.fullmatch(r"\d+", text) or not 1 <= int(text) <= slot_count:
            return [f"Please enter a valid number (1-{slot_count})."]

        self.store.update_calendar_state(
            conversation_id,
            selected_slot_index=int(text) - 1,
            step=CalendarStep.AWAITING_EMPLOYEE_NAME,
        )
        return ["Great! What is the employee's name for this call?"]

    def _handle_employee_name(self, conversation_id: str, text: str, state: CalendarFlowState,
                              mailbox_id: str, first_name: Optional[str]) -> List[str]:
        if not text:
            return ["What is the employee's name for this call?"]
        self.store.update_calendar_state(
            conversation_id,
            employee_name=text,
            step=CalendarStep.AWAITING_EMPLOYEE_PHONE,
        )
        return [f'What is {text}\'s phone number? (Or type "skip" if you don\'t have it)']

    def _handle_employee_phone(self, conversation_id: str, text: str, state: CalendarFlowState,
                               mailbox_id: str, first_name: Optional[str]) -> List[str]:
        phone = None if text.lower() in SKIP_WORDS or not text else text
        updated = self.store.update_calendar_state(
            conversation_id,
            employee_phone=phone,
            step=CalendarStep.AWAITING_CONFIRMATION,
        )
        slot = selected_slot(updated)
        if slot is None:
            self.store.clear(conversation_id)
            return ["Error: Selected time slot not found. Please start over."]
        return [format_booking_preview(updated, slot)]

    def _handle_confirmation(self, conversation_id: str, text: str, state: CalendarFlowState,
                             mailbox_id: str, first_name: Optional[str]) -> List[str]:
        if text.lower() not in CONFIRM_WORDS:
            return ['Please reply "yes" to book the event or "no" to cancel.']

        slot = selected_slot(state)
        if slot is None:
            self.store.clear(conversation_id)
            return ["Error: Selected time slot not found. Please start over."]

        details = BookingDetails(
            employee_name=state.employee_name,
            employee_phone=state.employee_phone,
            topic=state.topic,
            start=slot.start,
            end=slot.end,
            reminder_minutes=config.REMINDER_MINUTES,
        )
        try:
            result = self.calendar.book_event(
                mailbox_id, details, state.manager_timezone or config.DEFAULT_TIMEZONE
            )
        except Exception as e:
            logger.error("Unexpected booking error for %s: %s", conversation_id, e)
            self.store.clear(conversation_id)
            return [f"❌ Failed to book calendar event: {e}\n\n"
                    "Please try again or contact IT support if the issue persists."]

        if not result.success:
            self.store.clear(conversation_id)
            return [f"❌ Failed to book calendar event: {result.error}\n\n"
                    "Please try again or contact IT support if the issue persists."]

        self.store.update_calendar_state(
            conversation_id,
            step=CalendarStep.COMPLETED,
            booked_time=slot.formatted,
            event_id=result.event_id,
        )
        logger.info("Calendar flow completed for %s", conversation_id)
        return [
            f"✅ Calendar event booked successfully!\n\n"
            f"**{state.employee_name} - {state.topic}**\n{slot.formatted}\n\n"
            f"You'll receive a reminder {config.REMINDER_MINUTES} minutes before.\n\n"
            f"{anything_else(first_name)}"
        ]


def selected_slot(state: CalendarFlowState) -> Optional[AvailableSlot]:
    slots = state.available_slots or []
    index = state.selected_slot_index
    if index is None or not 0 <= index < len(slots):
        return None
    return slots[index]


def format_slot_list(slots: List[AvailableSlot]) -> str:
    lines = ["📅 **Available Times:**", ""]
    lines.extend(f"{i}. {slot.formatted}" for i, slot in enumerate(slots, 1))
    lines.extend(["", "Which time works best? (Reply with the number)"])
    return "\n".join(lines)


def format_booking_preview(state: CalendarFlowState, slot: AvailableSlot) -> str:
    preview = (
        "📅 **Calendar Booking Preview**\n\n"
        f"**Employee:** {state.employee_name}\n"
        f"**Time:** {slot.formatted}\n"
        f"**Topic:** {state.topic}\n"
    )
    if state.employee_phone:
        preview += f"**Phone:** {state.employee_phone}\n"
    preview += '\n---\nShould I book this on your calendar? (Reply "yes" to confirm, or "no" to cancel)'
    return preview
