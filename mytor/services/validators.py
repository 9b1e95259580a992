import re

from mytor.core.config import settings
from mytor.core.exceptions import ValidationError


def normalize_phone(phone: str) -> str:
    """Strips spaces and dashes ("050-123 4567" -> "0501234567")."""
    return re.sub(r"[\s\-]", "", phone or "")


def validate_phone(phone: str) -> str:
    clean = normalize_phone(phone)
    if not clean:
        raise ValidationError("Phone number is required")
    if not re.match(settings.PHONE_PATTERN, clean):
        raise ValidationError("Phone number is not valid")
    return clean


def validate_name(name: str) -> str:
    clean = " ".join((name or "").split())
    if not clean:
        raise ValidationError("Name is required")
    return clean
