"""
Field validation shared by the managers.

A Validator collects every failing rule for a request and raises one
ValidationError whose message joins them with "; ".
"""

import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .errors import ValidationError
from .money import to_money


NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\d{10}$')
PASSWORD_PATTERN = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$')
PIN_PATTERN = re.compile(r'^\d{4,6}$')
IFSC_PATTERN = re.compile(r'^[A-Z]{4}0[A-Z0-9]{6}$')

PASSWORD_RULES = ("Password must contain at least one uppercase letter, one lowercase letter, "
                  "one number, and one special character")


def is_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


def is_valid_ifsc(code: Optional[str]) -> bool:
    return bool(code) and len(code) == 11 and bool(IFSC_PATTERN.match(code))


class Validator:
    """Accumulates field errors"""

    def __init__(self):
        self.errors: List[Dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self.errors.append({"field": field, "msg": message})

    def name(self, value: Optional[str], field: str = "name") -> None:
        value = (value or "").strip()
        if not 2 <= len(value) <= 50:
            self.add(field, "Name must be between 2 and 50 characters")
        elif not NAME_PATTERN.match(value):
            self.add(field, "Name can only contain letters, spaces, hyphens, and apostrophes")

    def email(self, value: Optional[str], field: str = "email") -> None:
        if not is_email(value or ""):
            self.add(field, "Please provide a valid email")

    def phone(self, value: Optional[str], field: str = "phone") -> None:
        if not PHONE_PATTERN.match(value or ""):
            self.add(field, "Phone number must be 10 digits")

    def password(self, value: Optional[str], field: str = "password",
                 label: str = "Password") -> None:
        if len(value or "") < 8:
            self.add(field, f"{label} must be at least 8 characters long")
        elif not PASSWORD_PATTERN.match(value):
            self.add(field, PASSWORD_RULES)

    def required(self, value: Any, field: str, message: str) -> None:
        if value is None or (isinstance(value, str) and not value.strip()):
            self.add(field, message)

    def length(self, value: Optional[str], field: str, minimum: int, maximum: int,
               message: str) -> None:
        length = len((value or "").strip())
        if not minimum <= length <= maximum:
            self.add(field, message)

    def choice(self, value: Any, choices: Iterable[str], field: str, message: str) -> None:
        if value not in set(choices):
            self.add(field, message)

    def amount(self, value: Any, field: str = "amount", minimum: Decimal = Decimal("0.01"),
               message: str = "Amount must be greater than 0") -> Optional[Decimal]:
        if isinstance(value, bool):
            self.add(field, message)
            return None
        try:
            amount = to_money(value)
        except ValueError:
            self.add(field, message)
            return None
        # Minimum applies to the unrounded value
        if Decimal(str(value)) < minimum:
            self.add(field, message)
            return None
        return amount

    def pin(self, value: Optional[str], field: str = "pin") -> None:
        if not PIN_PATTERN.match(value or ""):
            self.add(field, "PIN must be 4-6 digits")

    def raise_if_invalid(self) -> None:
        if self.errors:
            message = "; ".join(error["msg"] for error in self.errors)
            raise ValidationError(message or "Validation failed", details={"details": self.errors})
