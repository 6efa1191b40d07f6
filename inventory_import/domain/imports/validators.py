"""
Value coercion and domain validation rules for inventory records.

CSV cells arrive as strings. The model layer coerces numeric columns with the
helpers below as attributes are assigned, keeping the raw value when it cannot
be interpreted, so that ``validate_inventory`` can report a readable
"is not a number" message instead of failing at construction time.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple


# Format checks for identifier columns
PRESET_PATTERNS = {
    "sku": r"^[A-Za-z0-9\-_.]+$",
    "barcode": r"^\d{8,14}$",  # EAN-8 through GTIN-14
}

PRESET_DESCRIPTIONS = {
    "sku": "Product SKU (alphanumeric with hyphens/underscores/dots)",
    "barcode": "Barcode (8 to 14 digits)",
}

# Storage limits of the inventories columns (Integer, Numeric(12, 2), String(n))
QUANTITY_MAX = 2**31 - 1
PRICE_MAX = Decimal("9999999999.99")
NAME_MAX_LENGTH = 255
CODE_MAX_LENGTH = 100
SKU_MAX_LENGTH = 100


def normalize_numeric_string(value: str) -> str:
    """Strip thousands separators, a leading currency sign and accounting parentheses."""
    normalized = value.strip().replace(",", "")
    if normalized.startswith("$"):
        normalized = normalized[1:]
    if normalized.startswith("(") and normalized.endswith(")"):
        normalized = f"-{normalized[1:-1]}"
    return normalized


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        normalized = normalize_numeric_string(value)
        if not normalized:
            return None
        try:
            parsed = Decimal(normalized)
        except InvalidOperation:
            return None
        if not parsed.is_finite():
            return None
        return parsed
    return None


def coerce_integer(value: Any) -> Any:
    """
    Coerce a raw value for an integer column.

    Returns an ``int`` for integral input, a ``Decimal`` for numeric but
    fractional input, ``None`` for blanks and the untouched value otherwise.
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    parsed = _to_decimal(value)
    if parsed is None:
        return value
    if parsed == parsed.to_integral():
        return int(parsed)
    return parsed


def coerce_decimal(value: Any) -> Any:
    """Coerce a raw value for a decimal column, keeping unparseable input as-is."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    parsed = _to_decimal(value)
    return value if parsed is None else parsed


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_with_preset(
    value: Any,
    preset_name: str,
    allow_null: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Validate a value against a preset pattern.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if is_blank(value):
        if allow_null:
            return True, None
        return False, "can't be blank"

    pattern = PRESET_PATTERNS.get(preset_name)
    if pattern is None:
        return False, f"has unknown format '{preset_name}'"

    str_val = str(value).strip()
    if not re.match(pattern, str_val):
        description = PRESET_DESCRIPTIONS.get(preset_name, preset_name)
        return False, f"'{str_val}' is not a valid {description}"
    return True, None


def _numeric_errors(label: str, value: Any, *, integer: bool, maximum: Any) -> List[str]:
    if value is None:
        return [f"{label} can't be blank"]
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        return [f"{label} is not a number"]
    errors = []
    if integer and not isinstance(value, int):
        errors.append(f"{label} must be an integer")
    if value < 0:
        errors.append(f"{label} must be greater than or equal to 0")
    elif value > maximum:
        errors.append(f"{label} must be less than or equal to {maximum}")
    return errors


def _length_error(label: str, value: Any, limit: int) -> Optional[str]:
    if value is not None and len(str(value)) > limit:
        return f"{label} is too long (maximum is {limit} characters)"
    return None


def validate_inventory(record: Any) -> List[str]:
    """
    Run the inventory domain rules against a model instance.

    Returns a list of human-readable messages; an empty list means valid.
    """
    errors: List[str] = []

    if is_blank(record.name):
        errors.append("Name can't be blank")
    else:
        too_long = _length_error("Name", record.name, NAME_MAX_LENGTH)
        if too_long:
            errors.append(too_long)

    errors.extend(_numeric_errors("Quantity", record.quantity, integer=True, maximum=QUANTITY_MAX))
    errors.extend(_numeric_errors("Price", record.price, integer=False, maximum=PRICE_MAX))

    too_long = _length_error("Code", record.code, CODE_MAX_LENGTH)
    if too_long:
        errors.append(too_long)

    for column in ("sku", "barcode"):
        valid, message = validate_with_preset(getattr(record, column), column)
        if not valid:
            errors.append(f"{column.capitalize()} {message}")
        elif column == "sku":
            too_long = _length_error("Sku", record.sku, SKU_MAX_LENGTH)
            if too_long:
                errors.append(too_long)

    return errors
