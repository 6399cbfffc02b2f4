"""Field checks for consultation requests.

Each check returns (is_valid, message) so callers can collect every problem
before reporting.
"""
import re
from typing import Optional, Tuple

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^[\d\s\-+()]+$')
MIN_PHONE_DIGITS = 7


def validate_email(email: Optional[str]) -> Tuple[bool, str]:
    """
    Validate email address shape (local@domain.tld).

    Args:
        email: Email to validate

    Returns:
        Tuple of (is_valid, message)
    """
    if not email or not email.strip():
        return (False, "Patient email is required")
    if not EMAIL_PATTERN.match(email.strip()):
        return (False, "Please enter a valid email address")
    return (True, "ok")


def validate_phone(phone: Optional[str]) -> Tuple[bool, str]:
    """
    Validate an optional phone number.

    Empty values pass; the phone is not required.
    """
    if not phone:
        return (True, "ok")
    digits = re.sub(r'\D', '', phone)
    if not PHONE_PATTERN.match(phone) or len(digits) < MIN_PHONE_DIGITS:
        return (False, f"Please enter a valid phone number (at least {MIN_PHONE_DIGITS} digits)")
    return (True, "ok")


def validate_patient_name(name: Optional[str]) -> Tuple[bool, str]:
    if not name or not name.strip():
        return (False, "Patient name is required")
    return (True, "ok")
