import re
from typing import Optional

from .database import SCHOOL_LEVELS
from .errors import ValidationError

_BARCODE_RE = re.compile(r"^[A-Za-z0-9_\-.:/]{1,64}$")


class BarcodeValidator:
    """Barcodes printed on library cards and book spines."""

    @staticmethod
    def normalize_barcode(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        # scanners often append CR/LF or pad with spaces
        return raw.strip()

    @staticmethod
    def is_valid_barcode(barcode: Optional[str]) -> bool:
        if not barcode:
            return False
        return bool(_BARCODE_RE.match(BarcodeValidator.normalize_barcode(barcode)))

    @staticmethod
    def require(raw: Optional[str], what: str = "Barcode") -> str:
        barcode = BarcodeValidator.normalize_barcode(raw)
        if not BarcodeValidator.is_valid_barcode(barcode):
            raise ValidationError(f"{what} is required and may only contain letters, digits and - _ . : /")
        return barcode


class TextValidator:
    """Basic text validations and sanitization."""

    @staticmethod
    def validate_name(text: Optional[str]) -> bool:
        if text is None:
            return False
        t = text.strip()
        if not t:
            return False
        return any(c.isalpha() for c in t)

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        # strip tags and inline script handlers
        cleaned = re.sub(r"<[^>]*>", "", text)
        cleaned = re.sub(r"(?i)javascript:|onerror|onload", "", cleaned)
        return cleaned.strip()

    @staticmethod
    def require_name(text: Optional[str], what: str = "Name") -> str:
        if not TextValidator.validate_name(text):
            raise ValidationError(f"{what} is required")
        return TextValidator.sanitize_text(text)


def require_password(password: Optional[str]) -> str:
    if not password or len(password) < 6:
        raise ValidationError("Password must be at least 6 characters")
    return password


def require_school_level(level: Optional[str]) -> str:
    if level not in SCHOOL_LEVELS:
        raise ValidationError(f"School level must be one of: {', '.join(SCHOOL_LEVELS)}")
    return level


def require_quantity(quantity) -> int:
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a whole number") from None
    if value < 0:
        raise ValidationError("Quantity must be a positive number")
    return value
