from __future__ import annotations

from typing import Dict

from siteforms.rules import (
    CHOICE,
    DATE,
    OPTIONAL_TEXT,
    TEXT,
    FieldSpec,
    FormSchema,
    coerce_date,
    email_address,
    min_length,
    not_before_today,
    optional_text,
    required_date,
    time_slot,
)
from siteforms.schemas import ContactIn, DemoBookingIn


class UnknownFormError(KeyError):
    pass


_name = FieldSpec("name", rule=min_length(2, "Name must be at least 2 characters"))
_email = FieldSpec("email", rule=email_address("Please enter a valid email address"))


BOOKING_FORM = FormSchema(
    id="book-demo",
    title="Schedule a Demo",
    fields=(
        _name,
        _email,
        FieldSpec("company", rule=min_length(2, "Company name is required")),
        FieldSpec("phone", kind=OPTIONAL_TEXT, rule=optional_text, required=False),
        FieldSpec(
            "date",
            kind=DATE,
            rule=required_date("Please select a date"),
            default=None,
            coerce=coerce_date,
        ),
        FieldSpec(
            "time",
            kind=CHOICE,
            rule=time_slot("Please select a time", "Please select a valid time slot"),
        ),
        FieldSpec("additionalNotes", kind=OPTIONAL_TEXT, rule=optional_text, required=False),
    ),
    payload_model=DemoBookingIn,
    constraints=(not_before_today("date", "Date must be today or in the future"),),
)

CONTACT_FORM = FormSchema(
    id="contact",
    title="Get in Touch",
    fields=(
        _name,
        _email,
        FieldSpec("company", kind=OPTIONAL_TEXT, rule=optional_text, required=False),
        FieldSpec(
            "message",
            kind=TEXT,
            rule=min_length(10, "Message must be at least 10 characters"),
        ),
    ),
    payload_model=ContactIn,
)

FORMS: Dict[str, FormSchema] = {f.id: f for f in (BOOKING_FORM, CONTACT_FORM)}


def get_form(form_id: str) -> FormSchema:
    try:
        return FORMS[form_id]
    except KeyError:
        raise UnknownFormError(form_id) from None
