import datetime

from pydantic import BaseModel
from typing import Any, Dict, List, Literal, Optional


Phase = Literal["idle", "submitting", "succeeded"]


# Payloads handed to the submission effect once every rule has passed.

class DemoBookingIn(BaseModel):
    name: str
    email: str
    company: str
    phone: Optional[str] = None
    date: datetime.date
    time: str
    additionalNotes: Optional[str] = None


class ContactIn(BaseModel):
    name: str
    email: str
    company: Optional[str] = None
    message: str


# HTTP bodies

class FieldValueIn(BaseModel):
    value: Any = None


class FieldOut(BaseModel):
    name: str
    kind: str
    required: bool
    default: Any = None


class TimeSlotOut(BaseModel):
    value: str
    label: str


class FormSummaryOut(BaseModel):
    id: str
    title: str


class FormOut(FormSummaryOut):
    fields: List[FieldOut]
    timeSlots: Optional[List[TimeSlotOut]] = None


class SubmitErrorOut(BaseModel):
    message: str
    retryable: bool


class FormStateOut(BaseModel):
    sessionId: str
    formId: str
    phase: Phase
    values: Dict[str, Any]
    errors: Dict[str, str]
    valid: bool
    inputsDisabled: bool
    submitError: Optional[SubmitErrorOut] = None
    redirectTo: Optional[str] = None


class SubmitOut(FormStateOut):
    accepted: bool
