from fastapi import APIRouter, Depends, HTTPException

from siteforms.catalog import UnknownFormError
from siteforms.form_state import FormStateMachine, SubmissionPhase
from siteforms.rules import UnknownFieldError
from siteforms.schemas import FieldValueIn, FormStateOut, SubmitErrorOut, SubmitOut
from siteforms.sessions import SessionNotFoundError, SessionRegistry, get_registry

router = APIRouter(prefix="/api", tags=["sessions"])


def _state(session_id: str, machine: FormStateMachine) -> dict:
    error = machine.submit_error
    return {
        "sessionId": session_id,
        "formId": machine.schema.id,
        "phase": machine.phase.value,
        "values": dict(machine.snapshot.values),
        "errors": machine.visible_errors,
        "valid": machine.is_valid,
        "inputsDisabled": machine.inputs_disabled,
        "submitError": SubmitErrorOut(message=error.message, retryable=error.retryable) if error else None,
        "redirectTo": machine.redirect_to,
    }


def _get_machine(registry: SessionRegistry, session_id: str) -> FormStateMachine:
    try:
        return registry.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post("/forms/{form_id}/sessions", response_model=FormStateOut, status_code=201)
async def open_session(form_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Start a fresh, empty instance of a form."""
    try:
        session_id, machine = registry.create(form_id)
    except UnknownFormError:
        raise HTTPException(status_code=404, detail="Form not found")
    return FormStateOut(**_state(session_id, machine))


@router.get("/sessions/{session_id}", response_model=FormStateOut)
async def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    machine = _get_machine(registry, session_id)
    return FormStateOut(**_state(session_id, machine))


@router.put("/sessions/{session_id}/fields/{field_name}", response_model=FormStateOut)
async def set_field(
    session_id: str,
    field_name: str,
    body: FieldValueIn,
    registry: SessionRegistry = Depends(get_registry),
):
    machine = _get_machine(registry, session_id)
    try:
        changed = machine.set_field_value(field_name, body.value)
    except UnknownFieldError:
        raise HTTPException(status_code=404, detail=f"Unknown field: {field_name}")

    if not changed:
        if machine.phase is SubmissionPhase.SUBMITTING:
            detail = "Inputs are disabled while submitting"
        else:
            detail = "Form already submitted; reset to start over"
        raise HTTPException(status_code=409, detail=detail)
    return FormStateOut(**_state(session_id, machine))


@router.post("/sessions/{session_id}/submit", response_model=SubmitOut, status_code=202)
async def submit_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """
    Dispatch the submission effect if the form is idle and valid.

    Returns immediately; poll the session to see it reach "succeeded".
    """
    machine = _get_machine(registry, session_id)
    task = machine.request_submit()
    return SubmitOut(accepted=task is not None, **_state(session_id, machine))


@router.post("/sessions/{session_id}/reset", response_model=FormStateOut)
async def reset_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    machine = _get_machine(registry, session_id)
    if not machine.reset():
        raise HTTPException(status_code=409, detail="Cannot reset while submitting")
    return FormStateOut(**_state(session_id, machine))


@router.post("/sessions/{session_id}/home")
async def go_home(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Skip the post-success delay and go home now. Ends the session."""
    machine = _get_machine(registry, session_id)
    if not machine.navigate_home():
        raise HTTPException(status_code=409, detail="Form has not been submitted")
    return {"status": "ok", "sessionId": session_id, "redirectTo": machine.redirect_to}


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    try:
        registry.close(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "ok", "sessionId": session_id}
