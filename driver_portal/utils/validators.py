import re
from typing import Optional

from driver_portal.exceptions import ValidationError

PIN_LENGTH = 4


def validate_email(email: str) -> bool:
    """Check e-mail address format"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email or "") is not None


def validate_pin_format(pin: Optional[str]) -> bool:
    """A PIN is exactly four ASCII digits"""
    return pin is not None and re.fullmatch(r'[0-9]{4}', pin) is not None


def validate_subnet_prefix(subnet: str) -> bool:
    """Three dotted octets, e.g. ``192.168.1``"""
    parts = (subnet or "").split(".")
    if len(parts) != 3:
        return False
    return all(part.isdigit() and 0 <= int(part) <= 255 for part in parts)


def require_new_pin(new_pin: str, confirm_pin: str, label: str = "PIN") -> str:
    """
    Validate a new PIN and its confirmation.

    Raises:
        ValidationError: with the message shown to the driver
    """
    if new_pin is None or len(new_pin) != PIN_LENGTH:
        raise ValidationError(f"{label} must be exactly 4 digits")

    if new_pin != confirm_pin:
        raise ValidationError(f"{label}s do not match")

    if not validate_pin_format(new_pin):
        raise ValidationError("PIN must contain only numbers")

    return new_pin


def require_non_empty(value: Optional[str], message: str) -> str:
    """Return the trimmed value or raise with the given message"""
    if value is None or not value.strip():
        raise ValidationError(message)
    return value.strip()
