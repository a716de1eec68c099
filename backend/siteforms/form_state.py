from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Set

from pydantic import BaseModel

from siteforms.effects import SubmissionEffect, SubmissionError
from siteforms.rules import FormSchema, RuleContext, ValidationResult, all_passed, evaluate_rules
from siteforms.slots import slot_values

logger = logging.getLogger(__name__)

UNEXPECTED_FAILURE_MESSAGE = "Something went wrong. Please try again later."


class SubmissionPhase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class FormSnapshot:
    values: Mapping[str, Any]
    validity: Mapping[str, ValidationResult]

    @classmethod
    def build(cls, schema: FormSchema, values: Mapping[str, Any], context: RuleContext) -> "FormSnapshot":
        values = dict(values)
        return cls(
            values=MappingProxyType(values),
            validity=MappingProxyType(evaluate_rules(schema, values, context)),
        )

    @property
    def is_valid(self) -> bool:
        return all_passed(self.validity)

    @property
    def errors(self) -> Dict[str, str]:
        return {name: r.message for name, r in self.validity.items() if not r.ok}


@dataclass(frozen=True)
class SubmitFailure:
    message: str
    retryable: bool


class FormStateMachine:
    """
    Lifecycle of one form instance: Idle -> Submitting -> Succeeded.

    Field values live in an immutable FormSnapshot that is rebuilt (and fully
    revalidated) on every change. Only one submission effect can be in flight:
    inputs and submit are ignored outside the idle phase.

    After success the form is cleared and, once ``redirect_delay`` seconds
    have passed, ``navigate(home_route)`` is called. ``close()`` cancels that
    timer along with any in-flight effect.
    """

    def __init__(
        self,
        schema: FormSchema,
        effect: SubmissionEffect,
        *,
        redirect_delay: float = 3.0,
        home_route: str = "/",
        navigate: Optional[Callable[[str], None]] = None,
        today: Callable[[], date] = date.today,
    ):
        self.schema = schema
        self.redirect_delay = redirect_delay
        self.home_route = home_route
        self._effect = effect
        self._navigate = navigate
        self._today = today

        self._phase = SubmissionPhase.IDLE
        self._snapshot = self._rebuild(schema.defaults())
        self._touched: Set[str] = set()
        self._submit_error: Optional[SubmitFailure] = None
        self._redirect_to: Optional[str] = None
        self._effect_task: Optional[asyncio.Task] = None
        self._redirect_task: Optional[asyncio.Task] = None

    # ---------- read side ----------

    @property
    def phase(self) -> SubmissionPhase:
        return self._phase

    @property
    def snapshot(self) -> FormSnapshot:
        return self._snapshot

    @property
    def errors(self) -> Dict[str, str]:
        return self._snapshot.errors

    @property
    def visible_errors(self) -> Dict[str, str]:
        """Errors for fields the user has touched (all of them after a submit attempt)."""
        return {name: msg for name, msg in self._snapshot.errors.items() if name in self._touched}

    @property
    def is_valid(self) -> bool:
        return self._snapshot.is_valid

    @property
    def inputs_disabled(self) -> bool:
        return self._phase is SubmissionPhase.SUBMITTING

    @property
    def submit_error(self) -> Optional[SubmitFailure]:
        return self._submit_error

    @property
    def redirect_to(self) -> Optional[str]:
        return self._redirect_to

    # ---------- events ----------

    def set_field_value(self, name: str, value: Any) -> bool:
        field = self.schema.get_field(name)
        if self._phase is not SubmissionPhase.IDLE:
            logger.debug("%s: ignoring change to %r while %s", self.schema.id, name, self._phase.value)
            return False

        if field.coerce is not None:
            value = field.coerce(value)

        values = dict(self._snapshot.values)
        values[name] = value
        self._snapshot = self._rebuild(values)
        self._touched.add(name)
        self._submit_error = None
        return True

    def request_submit(self) -> Optional["asyncio.Task[bool]"]:
        """
        Start a submission if the form is idle and valid.

        Must be called from a running event loop. Returns the task running the
        submission effect, or None when nothing was dispatched.
        """
        if self._phase is not SubmissionPhase.IDLE:
            logger.debug("%s: submit ignored while %s", self.schema.id, self._phase.value)
            return None

        # revalidate: "today" may have moved since the last change
        self._snapshot = self._rebuild(self._snapshot.values)
        self._touched = set(self.schema.field_names)
        if not self._snapshot.is_valid:
            logger.info("%s: submit blocked, invalid fields: %s", self.schema.id, sorted(self._snapshot.errors))
            return None

        payload = self.schema.build_payload(self._snapshot.values)
        self._submit_error = None
        self._phase = SubmissionPhase.SUBMITTING
        self._effect_task = asyncio.get_running_loop().create_task(self._run_effect(payload))
        return self._effect_task

    async def submit(self) -> bool:
        """Submit and wait for the effect. True iff this call reached Succeeded."""
        task = self.request_submit()
        if task is None:
            return False
        return await task

    def reset(self) -> bool:
        if self._phase is SubmissionPhase.SUBMITTING:
            return False
        self._cancel_redirect()
        self._phase = SubmissionPhase.IDLE
        self._snapshot = self._rebuild(self.schema.defaults())
        self._touched.clear()
        self._submit_error = None
        self._redirect_to = None
        return True

    def navigate_home(self) -> bool:
        """Redirect now instead of waiting out the success-screen delay."""
        if self._phase is not SubmissionPhase.SUCCEEDED or self._redirect_to is not None:
            return False
        self._cancel_redirect()
        self._go_home()
        return True

    def close(self) -> None:
        """Tear down: nothing scheduled by this instance runs afterwards."""
        if self._effect_task is not None and not self._effect_task.done():
            self._effect_task.cancel()
        self._effect_task = None
        if self._phase is SubmissionPhase.SUBMITTING:
            self._phase = SubmissionPhase.IDLE
        self._cancel_redirect()

    # ---------- internals ----------

    def _context(self) -> RuleContext:
        return RuleContext(today=self._today(), time_slots=slot_values())

    def _rebuild(self, values: Mapping[str, Any]) -> FormSnapshot:
        return FormSnapshot.build(self.schema, values, self._context())

    async def _run_effect(self, payload: BaseModel) -> bool:
        try:
            await self._effect(payload)
        except asyncio.CancelledError:
            self._phase = SubmissionPhase.IDLE
            raise
        except SubmissionError as e:
            logger.warning("%s: submission failed (retryable=%s): %s", self.schema.id, e.retryable, e)
            self._fail(str(e) or UNEXPECTED_FAILURE_MESSAGE, e.retryable)
            return False
        except Exception:
            logger.exception("%s: submission effect raised", self.schema.id)
            self._fail(UNEXPECTED_FAILURE_MESSAGE, retryable=False)
            return False
        finally:
            self._effect_task = None

        self._phase = SubmissionPhase.SUCCEEDED
        self._snapshot = self._rebuild(self.schema.defaults())
        self._touched.clear()
        logger.info("%s: submitted, redirecting to %s in %.1fs", self.schema.id, self.home_route, self.redirect_delay)
        self._redirect_task = asyncio.get_running_loop().create_task(self._redirect_later())
        return True

    def _fail(self, message: str, retryable: bool) -> None:
        # entered values are kept so the user can retry or fix them
        self._phase = SubmissionPhase.IDLE
        self._submit_error = SubmitFailure(message=message, retryable=retryable)

    async def _redirect_later(self) -> None:
        await asyncio.sleep(self.redirect_delay)
        self._redirect_task = None
        self._go_home()

    def _go_home(self) -> None:
        self._redirect_to = self.home_route
        if self._navigate is not None:
            self._navigate(self.home_route)

    def _cancel_redirect(self) -> None:
        if self._redirect_task is not None and not self._redirect_task.done():
            self._redirect_task.cancel()
        self._redirect_task = None
