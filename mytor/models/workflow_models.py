from enum import Enum
from typing import Optional, List
import datetime as dt
from pydantic import BaseModel, ConfigDict, Field


class WorkflowStep(str, Enum):
    SERVICE_SELECTION = "service_selection"
    DATE_SELECTION = "date_selection"
    TIME_SELECTION = "time_selection"
    CONTACT_DETAILS = "contact_details"
    VERIFICATION = "verification"
    COMMITTED = "committed"
    ABANDONED = "abandoned"


# Forward order of the interactive steps
STEP_ORDER = [
    WorkflowStep.SERVICE_SELECTION,
    WorkflowStep.DATE_SELECTION,
    WorkflowStep.TIME_SELECTION,
    WorkflowStep.CONTACT_DETAILS,
    WorkflowStep.VERIFICATION,
]

TERMINAL_STEPS = frozenset({WorkflowStep.COMMITTED, WorkflowStep.ABANDONED})


class ContactDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    note: Optional[str] = None


class BookingDraft(BaseModel):
    """
    Client-held state of one booking attempt.
    Transitions never mutate a draft; they return an updated copy.
    """
    model_config = ConfigDict(frozen=True)

    business_slug: str
    state: WorkflowStep = WorkflowStep.SERVICE_SELECTION
    service_id: Optional[str] = None
    service_duration: Optional[int] = None
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    available_slots: List[str] = Field(default_factory=list)
    contact: Optional[ContactDetails] = None
    channel: str = "sms"
    code_attempt: Optional[str] = None
    booking_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STEPS


class WorkflowError(BaseModel):
    kind: str
    message: str
    retry_after: Optional[int] = None


class WorkflowResult(BaseModel):
    draft: BookingDraft
    error: Optional[WorkflowError] = None

    @property
    def state(self) -> WorkflowStep:
        return self.draft.state

    @property
    def ok(self) -> bool:
        return self.error is None
