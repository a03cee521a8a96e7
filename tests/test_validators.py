import pytest

from school_library.errors import ValidationError
from school_library.validators import (
    BarcodeValidator,
    TextValidator,
    require_password,
    require_quantity,
    require_school_level,
)


@pytest.mark.parametrize("raw", ["STU_P1", "BK-001", "978.0/1:2", "a" * 64])
def test_valid_barcodes(raw):
    assert BarcodeValidator.is_valid_barcode(raw)


@pytest.mark.parametrize("raw", ["", None, "has space", "a" * 65, "semi;colon"])
def test_invalid_barcodes(raw):
    assert not BarcodeValidator.is_valid_barcode(raw)


def test_barcode_is_trimmed():
    assert BarcodeValidator.require("  STU_P1\r\n") == "STU_P1"
    with pytest.raises(ValidationError):
        BarcodeValidator.require("   ")


def test_text_sanitizing():
    assert TextValidator.sanitize_text("<b>Ada</b> ") == "Ada"
    assert TextValidator.require_name("  Grace Hopper ") == "Grace Hopper"
    with pytest.raises(ValidationError):
        TextValidator.require_name("1234")


def test_password_length():
    assert require_password("secret") == "secret"
    with pytest.raises(ValidationError):
        require_password("short")


def test_school_level_and_quantity():
    assert require_school_level("Secondary") == "Secondary"
    with pytest.raises(ValidationError):
        require_school_level("primary")
    assert require_quantity("3") == 3
    with pytest.raises(ValidationError):
        require_quantity(-2)
