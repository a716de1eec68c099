from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Type

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel


TEXT = "text"
OPTIONAL_TEXT = "optional_text"
DATE = "date"
CHOICE = "choice"


class UnknownFieldError(KeyError):
    pass


@dataclass(frozen=True)
class ValidationResult:
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.message is None


OK = ValidationResult()


def error(message: str) -> ValidationResult:
    return ValidationResult(message=message)


@dataclass(frozen=True)
class RuleContext:
    """What a rule may look at besides the value itself."""

    today: date
    time_slots: FrozenSet[str] = frozenset()


ValidationRule = Callable[[Any, RuleContext], ValidationResult]
# returns {field name: message} for every field it rejects
Constraint = Callable[[Mapping[str, Any], RuleContext], Dict[str, str]]


# ---------- field rules ----------

def unconstrained(value: Any, context: RuleContext) -> ValidationResult:
    return OK


def optional_text(value: Any, context: RuleContext) -> ValidationResult:
    if value is None or isinstance(value, str):
        return OK
    return error("Expected text")


def min_length(length: int, message: str) -> ValidationRule:
    def rule(value: Any, context: RuleContext) -> ValidationResult:
        if not isinstance(value, str) or len(value) < length:
            return error(message)
        return OK

    return rule


def email_address(message: str) -> ValidationRule:
    def rule(value: Any, context: RuleContext) -> ValidationResult:
        if not isinstance(value, str):
            return error(message)
        try:
            # syntax only; never hit DNS from a keystroke
            validate_email(value, check_deliverability=False)
        except EmailNotValidError:
            return error(message)
        return OK

    return rule


def required_date(message: str) -> ValidationRule:
    def rule(value: Any, context: RuleContext) -> ValidationResult:
        if isinstance(value, date) and not isinstance(value, datetime):
            return OK
        return error(message)

    return rule


def time_slot(missing_message: str, invalid_message: str) -> ValidationRule:
    def rule(value: Any, context: RuleContext) -> ValidationResult:
        if not value:
            return error(missing_message)
        if not isinstance(value, str) or value not in context.time_slots:
            return error(invalid_message)
        return OK

    return rule


# ---------- constraints ----------

def not_before_today(field_name: str, message: str) -> Constraint:
    def constraint(values: Mapping[str, Any], context: RuleContext) -> Dict[str, str]:
        value = values.get(field_name)
        if isinstance(value, date) and value < context.today:
            return {field_name: message}
        return {}

    return constraint


# ---------- coercion ----------

def coerce_date(value: Any) -> Any:
    """Accept a date, a datetime or an ISO string (``YYYY-MM-DD`` or a full
    ``YYYY-MM-DDTHH:MM...`` timestamp).

    Aware datetimes are converted to local time first. Anything else is
    returned untouched so the date rule can reject it.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        if "T" in text:
            try:
                return coerce_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
            except ValueError:
                return value
    return value


# ---------- schema ----------

@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str = TEXT
    rule: ValidationRule = unconstrained
    required: bool = True
    default: Any = ""
    coerce: Optional[Callable[[Any], Any]] = None


@dataclass(frozen=True)
class FormSchema:
    id: str
    title: str
    fields: Tuple[FieldSpec, ...]
    payload_model: Type[BaseModel]
    constraints: Tuple[Constraint, ...] = ()

    def __post_init__(self):
        seen = set()
        for f in self.fields:
            if f.name in seen:
                raise ValueError(f"Duplicate field {f.name!r} in form {self.id!r}")
            seen.add(f.name)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def get_field(self, name: str) -> FieldSpec:
        for f in self.fields:
            if f.name == name:
                return f
        raise UnknownFieldError(name)

    def defaults(self) -> Dict[str, Any]:
        return {f.name: f.default for f in self.fields}

    def build_payload(self, values: Mapping[str, Any]) -> BaseModel:
        return self.payload_model(**values)


def evaluate_rules(
    schema: FormSchema,
    values: Mapping[str, Any],
    context: RuleContext,
) -> Dict[str, ValidationResult]:
    """
    Returns {field name: ValidationResult} for every field of the schema.

    Field rules run first; a constraint can only fail a field that its own
    rule let through, so the more basic message is the one shown.
    """
    results: Dict[str, ValidationResult] = {}
    for f in schema.fields:
        results[f.name] = f.rule(values.get(f.name), context)

    for constraint in schema.constraints:
        for name, message in constraint(values, context).items():
            if results.get(name, OK).ok:
                results[name] = error(message)

    return results


def all_passed(results: Mapping[str, ValidationResult]) -> bool:
    return all(r.ok for r in results.values())
