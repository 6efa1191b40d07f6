from decimal import Decimal

import pytest

from inventory_import.db.models import (
    InvalidStatusError,
    Inventory,
    InventoryStatus,
    determine_operation_type,
)
from inventory_import.domain.imports.validators import (
    coerce_decimal,
    coerce_integer,
    validate_with_preset,
)


def test_integer_coercion_accepts_integral_input():
    assert coerce_integer("15") == 15
    assert coerce_integer(" 1,200 ") == 1200
    assert coerce_integer(7.0) == 7
    assert coerce_integer("3.00") == 3


def test_integer_coercion_keeps_fractional_and_unparseable_input():
    assert coerce_integer("2.5") == Decimal("2.5")
    assert coerce_integer("ten") == "ten"
    assert coerce_integer("") is None
    assert coerce_integer(None) is None


def test_decimal_coercion_handles_formatted_numbers():
    assert coerce_decimal("$9.99") == Decimal("9.99")
    assert coerce_decimal("1,234.50") == Decimal("1234.50")
    assert coerce_decimal("(5.00)") == Decimal("-5.00")
    assert coerce_decimal("free") == "free"
    assert coerce_decimal("  ") is None


def test_valid_inventory_has_no_errors():
    item = Inventory(name="Widget", quantity="10", price="9.99", sku="W-001", barcode="4006381333931")

    assert item.validation_errors() == []
    assert item.is_valid()
    assert item.quantity == 10
    assert item.price == Decimal("9.99")


def test_validation_messages():
    item = Inventory(name="", quantity="ten", price="-1")

    assert item.validation_errors() == [
        "Name can't be blank",
        "Quantity is not a number",
        "Price must be greater than or equal to 0",
    ]


def test_missing_numbers_are_reported_as_blank():
    item = Inventory(name="Widget")

    assert item.validation_errors() == ["Quantity can't be blank", "Price can't be blank"]


def test_fractional_and_negative_quantity():
    assert Inventory(name="A", quantity="2.5", price="1").validation_errors() == ["Quantity must be an integer"]
    assert Inventory(name="A", quantity="-3", price="1").validation_errors() == [
        "Quantity must be greater than or equal to 0"
    ]


def test_name_length_limit():
    errors = Inventory(name="x" * 256, quantity=1, price=1).validation_errors()

    assert errors == ["Name is too long (maximum is 255 characters)"]


def test_identifier_formats_are_checked():
    errors = Inventory(name="A", quantity=1, price=1, sku="bad sku!", barcode="123").validation_errors()

    assert len(errors) == 2
    assert errors[0].startswith("Sku 'bad sku!' is not a valid")
    assert errors[1].startswith("Barcode '123' is not a valid")


def test_preset_validation_allows_blank_values():
    assert validate_with_preset("", "sku") == (True, None)
    assert validate_with_preset(None, "barcode", allow_null=False) == (False, "can't be blank")


@pytest.mark.parametrize("raw, expected", [
    ("active", InventoryStatus.ACTIVE.value),
    ("ARCHIVED", InventoryStatus.ARCHIVED.value),
    ("", InventoryStatus.ACTIVE.value),
    (None, InventoryStatus.ACTIVE.value),
])
def test_status_values(raw, expected):
    assert Inventory(name="A", status=raw).status == expected


def test_unknown_status_raises_at_assignment():
    with pytest.raises(InvalidStatusError) as exc_info:
        Inventory(name="A", quantity=1, price=1, status="discontinued")

    assert str(exc_info.value) == "'discontinued' is not a valid status"


def test_importable_attributes_default_status():
    item = Inventory(name="A", quantity=1, price=1)

    attributes = item.importable_attributes()

    assert attributes["status"] == "active"
    assert set(attributes) == {"name", "quantity", "price", "status", "code", "sku", "barcode"}


@pytest.mark.parametrize("delta, expected", [(5, "add"), (-2, "remove"), (0, "adjust")])
def test_operation_type_follows_delta_sign(delta, expected):
    assert determine_operation_type(delta) == expected


@pytest.mark.parametrize("column", ["code", "sku", "barcode"])
def test_blank_identifiers_are_stored_as_null(column):
    assert getattr(Inventory(**{column: ""}), column) is None
    assert getattr(Inventory(**{column: "   "}), column) is None


def test_identifiers_are_trimmed():
    item = Inventory(code=" C-7 ", sku=" W-001 ", barcode=12345678)

    assert (item.code, item.sku, item.barcode) == ("C-7", "W-001", "12345678")


def test_quantity_beyond_integer_column_is_rejected():
    errors = Inventory(name="A", quantity="99999999999999999999", price="1").validation_errors()

    assert errors == ["Quantity must be less than or equal to 2147483647"]


def test_quantity_at_integer_column_limit_is_accepted():
    assert Inventory(name="A", quantity=2**31 - 1, price="1").validation_errors() == []


def test_price_beyond_numeric_column_is_rejected():
    errors = Inventory(name="A", quantity=1, price="10000000000.00").validation_errors()

    assert errors == ["Price must be less than or equal to 9999999999.99"]


def test_code_and_sku_length_limits():
    errors = Inventory(name="A", quantity=1, price=1, code="c" * 101, sku="s" * 101).validation_errors()

    assert errors == [
        "Code is too long (maximum is 100 characters)",
        "Sku is too long (maximum is 100 characters)",
    ]
    assert Inventory(name="A", quantity=1, price=1, code="c" * 100).validation_errors() == []
