from fastapi import APIRouter, HTTPException
from typing import List

from siteforms.catalog import BOOKING_FORM, FORMS, UnknownFormError, get_form
from siteforms.schemas import FieldOut, FormOut, FormSummaryOut, TimeSlotOut
from siteforms.slots import TIME_SLOTS

router = APIRouter(prefix="/api/forms", tags=["forms"])


def _slots_out() -> List[TimeSlotOut]:
    return [TimeSlotOut(value=s.value, label=s.label) for s in TIME_SLOTS]


@router.get("", response_model=List[FormSummaryOut])
async def list_forms():
    return [FormSummaryOut(id=f.id, title=f.title) for f in FORMS.values()]


@router.get("/book-demo/slots", response_model=List[TimeSlotOut])
async def list_time_slots():
    """Selectable demo times, 9 AM to 5 PM."""
    return _slots_out()


@router.get("/{form_id}", response_model=FormOut)
async def get_form_schema(form_id: str):
    try:
        schema = get_form(form_id)
    except UnknownFormError:
        raise HTTPException(status_code=404, detail="Form not found")

    fields = [
        FieldOut(name=f.name, kind=f.kind, required=f.required, default=f.default)
        for f in schema.fields
    ]
    time_slots = _slots_out() if schema.id == BOOKING_FORM.id else None
    return FormOut(id=schema.id, title=schema.title, fields=fields, timeSlots=time_slots)
