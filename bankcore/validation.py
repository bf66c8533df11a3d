"""
Input Validation Module

Rule pipelines for signup, login and funding payloads. Each pipeline turns a
raw mapping into a typed, normalized value or an ordered list of field
errors. Malformed input is a normal outcome here and never raises; callers
that want an exception use ValidationResult.raise_for_errors().
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from .currency import Money, to_decimal
from .errors import FieldError, ValidationError
from .transactions import FundingSource, FundingSourceType

T = TypeVar("T")

MINIMUM_AGE = 18

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,6}$')
SSN_PATTERN = re.compile(r'^[0-9]{9}$')
ZIP_PATTERN = re.compile(r'^[0-9]{5}$')

US_STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
})


@dataclass
class ValidationResult(Generic[T]):
    """Typed value on success, ordered field errors on failure"""
    value: Optional[T] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> T:
        """Return the value, or raise ValidationError listing every violation"""
        if self.errors:
            raise ValidationError(self.errors)
        return self.value


@dataclass(frozen=True)
class SignupData:
    email: str
    password: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: date
    ssn: str
    address: str
    city: str
    state: str
    zip_code: str


@dataclass(frozen=True)
class LoginData:
    email: str
    password: str


@dataclass(frozen=True)
class FundingRequest:
    amount: Money
    source: FundingSource
    description: Optional[str] = None


# Helpers

def luhn_checksum_valid(number: str) -> bool:
    """
    Luhn check: double every second digit from the right, subtract 9 from
    doubled values above 9, and require the total to be divisible by 10.
    """
    if not number or not number.isascii() or not number.isdigit():
        return False

    total = 0
    for index, char in enumerate(reversed(number)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def calculate_age(date_of_birth: date, today: date) -> int:
    """Whole years between two calendar dates"""
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def normalize_phone_number(value: str, default_region: str = "US") -> str:
    """
    Parse and format a phone number as E.164.

    Raises:
        ValueError: If the number cannot be parsed or is not a valid number
    """
    try:
        parsed = phonenumbers.parse(value, default_region)
    except NumberParseException:
        raise ValueError("Must be valid phone number")

    if not phonenumbers.is_valid_number(parsed):
        raise ValueError("Must be valid phone number")

    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)


def _as_text(value: Any, label: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{label} must be text")
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise ValueError("Invalid date of birth")


# Rule pipeline

Check = Callable[[Any], bool]


@dataclass
class FieldSpec:
    """
    How one field is validated: coerce the raw value (ValueError message
    becomes the field error), then run checks in order and stop at the first
    failure.
    """
    name: str
    label: str
    coerce: Callable[[Any], Any]
    checks: Sequence[Tuple[Check, str]] = ()


def run_pipeline(payload: Mapping[str, Any], specs: Sequence[FieldSpec]) -> Tuple[Dict[str, Any], List[FieldError]]:
    """Evaluate every field spec, collecting normalized values and errors in order"""
    values: Dict[str, Any] = {}
    errors: List[FieldError] = []

    if not isinstance(payload, Mapping):
        errors.append(FieldError("payload", "Request body must be an object"))
        return values, errors

    for spec in specs:
        raw = payload.get(spec.name)
        if raw is None:
            errors.append(FieldError(spec.name, f"{spec.label} is required"))
            continue

        try:
            value = spec.coerce(raw)
        except ValueError as e:
            errors.append(FieldError(spec.name, str(e)))
            continue

        for check, message in spec.checks:
            if not check(value):
                errors.append(FieldError(spec.name, message))
                break
        else:
            values[spec.name] = value

    return values, errors


def _email_spec() -> FieldSpec:
    def coerce(raw: Any) -> str:
        return _as_text(raw, "Email").lower()

    return FieldSpec("email", "Email", coerce, [
        (lambda v: bool(EMAIL_PATTERN.match(v)), "Invalid email format"),
        (lambda v: len(v.rsplit(".", 1)[-1]) >= 2, "Invalid email format"),
    ])


def _password_spec() -> FieldSpec:
    def coerce(raw: Any) -> str:
        # Passwords are not stripped; whitespace is part of the secret
        if not isinstance(raw, str):
            raise ValueError("Password must be text")
        if not raw.strip():
            raise ValueError("Password is required")
        return raw

    return FieldSpec("password", "Password", coerce, [
        (lambda v: len(v) >= 8, "Password must be at least 8 characters long"),
        (lambda v: re.search(r'[A-Z]', v) is not None, "Password must contain at least one uppercase letter"),
        (lambda v: re.search(r'[a-z]', v) is not None, "Password must contain at least one lowercase letter"),
        (lambda v: re.search(r'[0-9]', v) is not None, "Password must contain at least one number"),
        (lambda v: re.search(r'[^a-zA-Z0-9]', v) is not None, "Password must contain at least one special character"),
    ])


def _text_spec(name: str, label: str) -> FieldSpec:
    return FieldSpec(name, label, lambda raw: _as_text(raw, label))


def validate_signup(payload: Mapping[str, Any], today: Optional[date] = None,
                    default_region: str = "US") -> ValidationResult[SignupData]:
    """Validate and normalize a signup payload"""
    today = today or date.today()

    def coerce_confirm(raw: Any) -> str:
        if not isinstance(raw, str):
            raise ValueError("Confirm password must be text")
        return raw

    def coerce_phone(raw: Any) -> str:
        return normalize_phone_number(_as_text(raw, "Phone number"), default_region)

    def coerce_state(raw: Any) -> str:
        return _as_text(raw, "State").upper()

    specs = [
        _email_spec(),
        _password_spec(),
        FieldSpec("confirm_password", "Confirm password", coerce_confirm),
        _text_spec("first_name", "First Name"),
        _text_spec("last_name", "Last Name"),
        FieldSpec("phone_number", "Phone number", coerce_phone),
        FieldSpec("date_of_birth", "Date of birth", _as_date, [
            (lambda v: v < today, "Date of birth must be in the past"),
            (lambda v: calculate_age(v, today) >= MINIMUM_AGE,
             f"You must be at least {MINIMUM_AGE} years old to sign up"),
        ]),
        FieldSpec("ssn", "SSN", lambda raw: _as_text(raw, "SSN"), [
            (lambda v: bool(SSN_PATTERN.match(v)), "Must be valid 9 digit SSN"),
        ]),
        _text_spec("address", "Address"),
        _text_spec("city", "City"),
        FieldSpec("state", "State", coerce_state, [
            (lambda v: v in US_STATE_CODES, "Must be a valid US state code"),
        ]),
        FieldSpec("zip_code", "Zip code", lambda raw: _as_text(raw, "Zip code"), [
            (lambda v: bool(ZIP_PATTERN.match(v)), "Must be valid 5 digit zip code"),
        ]),
    ]

    values, errors = run_pipeline(payload, specs)

    # Cross-field checks
    if "password" in values and "confirm_password" in values:
        if values["password"] != values["confirm_password"]:
            errors.append(FieldError("confirm_password", "Passwords do not match"))

    if errors:
        order = {spec.name: i for i, spec in enumerate(specs)}
        errors.sort(key=lambda e: order.get(e.field, len(order)))
        return ValidationResult(errors=errors)

    values.pop("confirm_password")
    return ValidationResult(value=SignupData(**values))


def validate_login(payload: Mapping[str, Any]) -> ValidationResult[LoginData]:
    """Validate a login payload; the password format is not re-checked"""
    def coerce_password(raw: Any) -> str:
        if not isinstance(raw, str) or not raw:
            raise ValueError("Password is required")
        return raw

    values, errors = run_pipeline(payload, [
        _email_spec(),
        FieldSpec("password", "Password", coerce_password),
    ])
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(value=LoginData(**values))


def _coerce_funding_source(raw: Any) -> FundingSource:
    if isinstance(raw, FundingSource):
        source_type, account_number, routing_number = raw.type, raw.account_number, raw.routing_number
    elif isinstance(raw, Mapping):
        source_type = raw.get("type")
        account_number = raw.get("account_number")
        routing_number = raw.get("routing_number")
    else:
        raise ValueError("Invalid funding source")

    try:
        source_type = FundingSourceType(source_type)
    except ValueError:
        raise ValueError("Funding source type must be 'card' or 'bank'")

    account_number = _as_text(account_number, "Account number")

    if isinstance(routing_number, str):
        routing_number = routing_number.strip() or None
    elif routing_number is not None:
        raise ValueError("Routing number must be text")

    if source_type == FundingSourceType.CARD:
        if not luhn_checksum_valid(account_number):
            raise ValueError("Invalid card number")
    elif routing_number is None:
        raise ValueError("Routing number is required")

    return FundingSource(source_type, account_number, routing_number)


def validate_funding(amount: Any, funding_source: Any,
                     description: Optional[str] = None) -> ValidationResult[FundingRequest]:
    """Validate a deposit amount and its funding source"""
    def coerce_amount(raw: Any) -> Money:
        try:
            value = to_decimal(raw)
        except ValueError:
            raise ValueError("Amount must be a number")
        return Money(value)

    def coerce_description(raw: Any) -> Optional[str]:
        if not isinstance(raw, str):
            raise ValueError("Description must be text")
        return raw.strip() or None

    specs = [
        FieldSpec("amount", "Amount", coerce_amount, [
            (lambda v: v.is_positive(), "Amount must be greater than 0"),
        ]),
        FieldSpec("funding_source", "Funding source", _coerce_funding_source),
    ]
    payload: Dict[str, Any] = {"amount": amount, "funding_source": funding_source}
    if description is not None:
        specs.append(FieldSpec("description", "Description", coerce_description))
        payload["description"] = description

    values, errors = run_pipeline(payload, specs)
    if errors:
        return ValidationResult(errors=errors)

    return ValidationResult(value=FundingRequest(
        amount=values["amount"],
        source=values["funding_source"],
        description=values.get("description"),
    ))


def validate_page(limit: Any, cursor: Any, max_limit: int = 100) -> ValidationResult[Tuple[int, int]]:
    """Validate history pagination arguments"""
    errors = []
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= max_limit:
        errors.append(FieldError("limit", f"Limit must be between 1 and {max_limit}"))
    if isinstance(cursor, bool) or not isinstance(cursor, int) or cursor < 0:
        errors.append(FieldError("cursor", "Cursor must be a non-negative integer"))
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(value=(limit, cursor))
