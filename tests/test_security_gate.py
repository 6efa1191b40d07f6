"""
Tests for the pre-processing security gate.

The gate must reject bad input before a single data row is read, and the
rejection reason must say which check failed.
"""

import pytest

from inventory_import.domain.imports.exceptions import SecurityValidationError
from inventory_import.domain.imports.security import SecurityGate

VALID_CSV = "name,quantity,price\nWidget,10,9.99\n"


def test_valid_file_returns_resolved_path(gate, write_csv):
    path = write_csv(VALID_CSV)

    assert gate.validate(str(path)) == path.resolve()


def test_missing_file_is_rejected(gate, tmp_path):
    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(tmp_path / "missing.csv"))

    assert exc_info.value.reason.startswith("File not found")


def test_oversized_file_is_rejected(tmp_path, write_csv):
    path = write_csv(VALID_CSV)
    gate = SecurityGate(max_file_size=10, allowed_dirs=[str(tmp_path)])

    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(path))

    assert exc_info.value.reason.startswith("File too large")


def test_file_exactly_at_limit_is_accepted(tmp_path, write_csv):
    path = write_csv(VALID_CSV)
    gate = SecurityGate(max_file_size=path.stat().st_size, allowed_dirs=[str(tmp_path)])

    assert gate.validate(str(path)) == path.resolve()


@pytest.mark.parametrize("name", ["inventory.txt", "inventory.xlsx", "inventory"])
def test_non_csv_extension_is_rejected(gate, write_csv, name):
    path = write_csv(VALID_CSV, name=name)

    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(path))

    assert exc_info.value.reason.startswith("Invalid file type")


def test_uppercase_extension_is_accepted(gate, write_csv):
    path = write_csv(VALID_CSV, name="INVENTORY.CSV")

    assert gate.validate(str(path)) == path.resolve()


def test_missing_required_headers_are_listed(gate, write_csv):
    path = write_csv("name,sku\nWidget,W-1\n")

    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(path))

    assert exc_info.value.missing_headers == ["quantity", "price"]
    assert exc_info.value.reason == "Missing required headers: quantity, price"


def test_header_check_ignores_case_and_whitespace(gate, write_csv):
    path = write_csv(" Name , QUANTITY ,Price,Color\nWidget,10,9.99,red\n")

    assert gate.validate(str(path)) == path.resolve()


def test_byte_order_mark_is_tolerated(gate, write_csv):
    path = write_csv(b"\xef\xbb\xbfname,quantity,price\nWidget,10,9.99\n")

    assert gate.validate(str(path)) == path.resolve()


def test_undecodable_header_is_rejected(gate, write_csv):
    path = write_csv(b"\xffname,quantity,price\nWidget,10,9.99\n")

    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(path))

    assert exc_info.value.reason.startswith("File is not valid UTF-8 CSV")


def test_empty_file_is_rejected(gate, write_csv):
    path = write_csv("")

    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(path))

    assert exc_info.value.reason.startswith("Invalid CSV")


def test_file_outside_allowed_directories_is_rejected(tmp_path, write_csv):
    path = write_csv(VALID_CSV)
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    gate = SecurityGate(allowed_dirs=[str(uploads)])

    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(path))

    assert exc_info.value.reason.startswith("Path traversal detected")


def test_dot_dot_segments_cannot_escape_allowed_directory(tmp_path, write_csv):
    write_csv(VALID_CSV, name="secret.csv")
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    gate = SecurityGate(allowed_dirs=[str(uploads)])

    with pytest.raises(SecurityValidationError) as exc_info:
        gate.validate(str(uploads / ".." / "secret.csv"))

    assert "outside allowed directories" in exc_info.value.reason


def test_security_errors_are_not_retryable():
    assert SecurityValidationError("File not found: x.csv").retryable is False
