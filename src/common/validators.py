from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


OK = ValidationResult(True)


def _fail(message: str) -> ValidationResult:
    return ValidationResult(False, message)


_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
_PO_BOX_RE = re.compile(r"\bp\.?\s*o\.?\s*box\b", re.IGNORECASE)

MAX_AUTHORIZED_SHARES = 1_000_000_000
MAX_PAR_VALUE = Decimal("1000")


def validate_required(value: Optional[str], what: str = "This field") -> ValidationResult:
    if not value or not value.strip():
        return _fail(f"{what} is required")
    return OK


def validate_company_name(name: Optional[str]) -> ValidationResult:
    """Base name only; the entity ending is added separately."""
    if not name or not name.strip():
        return _fail("Company name cannot be empty")
    cleaned = name.strip()
    if len(cleaned) < 3:
        return _fail("Company name must be at least 3 characters")
    if len(cleaned) > 200:
        return _fail("Company name is too long (max 200 characters for base name)")
    if _INVALID_NAME_CHARS.search(cleaned):
        return _fail('Company name contains invalid characters. Please avoid: < > : " / \\ | ? *')
    return OK


def validate_person_name(name: Optional[str], *, full: bool = False) -> ValidationResult:
    if not name or not name.strip():
        return _fail("Name is required")
    if len(name.strip()) < 2:
        return _fail("Please enter a valid name")
    if full and len(name.split()) < 2:
        return _fail("Please enter first and last name")
    return OK


def validate_email(email: Optional[str]) -> ValidationResult:
    if not email or not email.strip():
        return _fail("Email address is required")
    if not _EMAIL_RE.match(email.strip()):
        return _fail("Please enter a valid email address (e.g., john@example.com)")
    return OK


def validate_phone(phone: Optional[str]) -> ValidationResult:
    if not phone or not phone.strip():
        return _fail("Phone number is required")
    digits = re.sub(r"[\s\-().]", "", phone)
    if not re.fullmatch(r"\d{10}", digits):
        return _fail("Please enter a valid 10-digit US phone number (e.g., 555-123-4567)")
    return OK


def validate_street_address(street: Optional[str]) -> ValidationResult:
    if not street or not street.strip():
        return _fail("Street address is required")
    if _PO_BOX_RE.search(street):
        return _fail("P.O. Box addresses are not allowed")
    if len(street.strip()) < 5:
        return _fail("Please enter a complete street address (e.g., 123 Main St)")
    return OK


def validate_city(city: Optional[str]) -> ValidationResult:
    if not city or not city.strip():
        return _fail("City is required")
    if not re.fullmatch(r"[A-Za-z][A-Za-z .'\-]*", city.strip()):
        return _fail("City may only contain letters, spaces, periods, apostrophes and hyphens")
    return OK


def validate_state_code(state: Optional[str]) -> ValidationResult:
    if not state or not re.fullmatch(r"[A-Za-z]{2}", state.strip()):
        return _fail("Please enter a two-letter state code (e.g., DE)")
    return OK


def validate_zip_code(zip_code: Optional[str]) -> ValidationResult:
    if not zip_code or not _ZIP_RE.match(zip_code.strip()):
        return _fail("Please enter a valid ZIP code (e.g., 19958 or 19958-1234)")
    return OK


def parse_decimal(raw: Optional[str]) -> Optional[Decimal]:
    """Parse a user-entered number; returns None when it is not a finite decimal."""
    if raw is None:
        return None
    try:
        value = Decimal(str(raw).strip().replace(",", ""))
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def validate_ownership_percent(raw: Optional[str]) -> ValidationResult:
    value = parse_decimal(raw)
    if value is None:
        return _fail("Please enter a valid number")
    if value <= 0 or value > 100:
        return _fail("Ownership percentage must be between 0.01 and 100")
    return OK


def validate_party_count(raw: Optional[str]) -> ValidationResult:
    value = parse_decimal(raw)
    if value is None or value != value.to_integral_value():
        return _fail("Please enter a whole number")
    if value < 1:
        return _fail("Must have at least one")
    if value > 100:
        return _fail("Maximum 100 allowed")
    return OK


def validate_authorized_shares(raw: Optional[str]) -> ValidationResult:
    value = parse_decimal(raw)
    if value is None or value != value.to_integral_value() or value < 1:
        return _fail("Must be a positive whole number")
    if value > MAX_AUTHORIZED_SHARES:
        return _fail("Maximum 1 billion shares")
    return OK


def validate_par_value(raw: Optional[str]) -> ValidationResult:
    value = parse_decimal(raw)
    if value is None or value < 0:
        return _fail("Must be a positive number or zero")
    if value > MAX_PAR_VALUE:
        return _fail("Par value seems too high (usually under $1)")
    return OK


__all__ = [
    "ValidationResult",
    "parse_decimal",
    "validate_required",
    "validate_company_name",
    "validate_person_name",
    "validate_email",
    "validate_phone",
    "validate_street_address",
    "validate_city",
    "validate_state_code",
    "validate_zip_code",
    "validate_ownership_percent",
    "validate_party_count",
    "validate_authorized_shares",
    "validate_par_value",
]
