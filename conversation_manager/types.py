from datetime import datetime
from enum import StrEnum
from typing import Annotated, Dict, List, Literal, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str


class FlowType(StrEnum):
    """
    The side-effecting actions the assistant can drive.

    Example usage:
        guard.should_trigger(FlowType.CALENDAR, response, history, state)
    """
    EMAIL = "email"
    CALENDAR = "calendar"


class EmailStep(StrEnum):
    AWAITING_SUBJECT = "awaiting_subject"
    AWAITING_EMPLOYEE_NAME = "awaiting_employee_name"
    AWAITING_EMPLOYEE_EMAIL = "awaiting_employee_email"
    AWAITING_VARIABLE = "awaiting_variable"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"


class CalendarStep(StrEnum):
    AWAITING_TIME_SELECTION = "awaiting_time_selection"
    AWAITING_EMPLOYEE_NAME = "awaiting_employee_name"
    AWAITING_EMPLOYEE_PHONE = "awaiting_employee_phone"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"


class AvailableSlot(BaseModel):
    start: datetime   # Timezone-aware
    end: datetime
    formatted: str    # Label shown to the manager


class IdleState(BaseModel):
    model_config = ConfigDict(extra='forbid')

    type: Literal["idle"] = "idle"


class EmailFlowState(BaseModel):
    model_config = ConfigDict(extra='forbid')

    type: Literal["email"] = "email"
    step: EmailStep = EmailStep.AWAITING_EMPLOYEE_NAME
    subject: Optional[str] = None
    body: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)
    missing_variables: List[str] = Field(default_factory=list)
    current_variable_index: int = 0


class CalendarFlowState(BaseModel):
    model_config = ConfigDict(extra='forbid')

    type: Literal["calendar"] = "calendar"
    step: CalendarStep = CalendarStep.AWAITING_TIME_SELECTION
    topic: str = "HR Discussion"
    manager_timezone: Optional[str] = None
    available_slots: Optional[List[AvailableSlot]] = None
    selected_slot_index: Optional[int] = None
    employee_name: Optional[str] = None
    employee_phone: Optional[str] = None
    booked_time: Optional[str] = None  # Formatted time kept for follow-up references
    event_id: Optional[str] = None


ConversationState = Annotated[
    Union[IdleState, EmailFlowState, CalendarFlowState],
    Field(discriminator="type"),
]


class Confidence(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DetectionMethod(StrEnum):
    HEURISTIC = "heuristic"
    MODEL = "model"


class IntentDetectionResult(BaseModel):
    should_trigger: bool
    confidence: Confidence
    reasoning: str
    method: DetectionMethod
    latency_ms: float = 0.0


# --- Collaborator payloads ---

class BookingDetails(BaseModel):
    employee_name: str
    employee_phone: Optional[str] = None
    topic: str
    start: datetime
    end: datetime
    reminder_minutes: int = 15

    @property
    def subject(self) -> str:
        return f"Call: {self.employee_name} - {self.topic}"


class BookingResult(BaseModel):
    success: bool
    event_id: Optional[str] = None
    error: Optional[str] = None


class MailMessage(BaseModel):
    to: str
    to_name: Optional[str] = None
    subject: str
    body: str


class SendMailResult(BaseModel):
    success: bool
    error: Optional[str] = None


class EmailTemplate(BaseModel):
    subject: Optional[str] = None
    body: str


class SearchResult(BaseModel):
    content: str
    similarity: float = 0.0
    title: Optional[str] = None
    category: Optional[str] = None


class SearchContext(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    avg_similarity: float = 0.0


class ContextRetriever(Protocol):
    """Search collaborator: returns policy excerpts relevant to a query."""

    def get_context(self, query: str) -> SearchContext:
        ...


class TurnState(BaseModel):
    """State carried through the Q&A turn graph for one inbound message."""
    conversation_id: str
    user_input: str
    first_name: str = "there"
    history: List[ConversationTurn] = Field(default_factory=list)
    flow_state: ConversationState = Field(default_factory=IdleState)

    # Determined during the run
    is_greeting: bool = False
    is_ending: bool = False
    query_for_search: Optional[str] = None
    search_context: Optional[SearchContext] = None
    generation_history: List[ConversationTurn] = Field(default_factory=list)
    completed_flow_consumed: bool = False  # Controller clears the stored completed flow
    response_text: Optional[str] = None
    email_trigger: bool = False
    calendar_trigger: bool = False
    email_template: Optional[EmailTemplate] = None
    topic: Optional[str] = None
    error_message: Optional[str] = None
