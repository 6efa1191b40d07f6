import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from inventory_import.db.models import IMPORTABLE_COLUMNS
from inventory_import.schemas import TransformerFailurePolicy, ValueTransformer

from .context import ImportContext
from .processors.csv_processor import SourceRow

logger = logging.getLogger(__name__)

MAPPING_ERROR = "mapping_error"
TRANSFORMER_ERROR = "transformer_error"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def to_snake_case(header: str) -> str:
    """Normalize a CSV header into an attribute-style name ("Unit Price" -> "unit_price")."""
    return _NON_ALNUM.sub("_", str(header).strip().lower()).strip("_")


def _build_mapping_error(
    *,
    error_type: str,
    message: str,
    column: Optional[str] = None,
    value: Optional[Any] = None,
    record_number: Optional[int] = None,
) -> Dict[str, Any]:
    """Create a structured error payload for downstream processing."""
    error_payload: Dict[str, Any] = {
        "type": error_type,
        "message": message
    }
    if column is not None:
        error_payload["column"] = column
    if record_number is not None:
        error_payload["record_number"] = record_number
    if value is not None:
        if isinstance(value, (int, float, str, bool)):
            error_payload["value"] = value
        else:
            error_payload["value"] = str(value)
    return error_payload


@dataclass
class MappedRow:
    """Attributes produced from one SourceRow, plus any problems found while mapping."""
    attributes: Dict[str, Any]
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def error_type(self) -> Optional[str]:
        return self.errors[0]["type"] if self.errors else None

    @property
    def messages(self) -> List[str]:
        return [error["message"] for error in self.errors]

    @property
    def ok(self) -> bool:
        return not self.errors


class RowMapper:
    """
    Converts raw CSV rows into inventory attribute maps.

    Header resolution order: the explicit ``column_mapping`` entry for the
    lower-cased header, then the snake-case form of the header. Anything that
    does not name an importable column is dropped.
    """

    def __init__(
        self,
        *,
        model_columns: Iterable[str] = IMPORTABLE_COLUMNS,
        transformer_failure_policy: TransformerFailurePolicy = TransformerFailurePolicy.KEEP_RAW,
    ):
        self.model_columns = frozenset(model_columns)
        self.transformer_failure_policy = transformer_failure_policy

    def resolve_attribute(self, header: str, column_mapping: Mapping[str, str]) -> str:
        header_key = str(header).strip().lower()
        return column_mapping.get(header_key) or to_snake_case(header_key)

    def map(
        self,
        row: SourceRow,
        column_mapping: Mapping[str, str],
        value_transformers: Mapping[str, ValueTransformer],
        context: ImportContext,
    ) -> MappedRow:
        attributes: Dict[str, Any] = {}
        errors: List[Dict[str, Any]] = []

        for header, raw_value in row.items():
            attribute = self.resolve_attribute(header, column_mapping)
            if attribute not in self.model_columns:
                continue

            value: Any = raw_value
            transformer = value_transformers.get(attribute)
            if transformer is not None:
                try:
                    value = transformer(raw_value)
                except Exception as e:
                    logger.error(
                        "Run %s: value transformer for '%s' failed on value %r (record %d): %s",
                        context.run_id, attribute, raw_value, row.record_number, e,
                    )
                    if self.transformer_failure_policy == TransformerFailurePolicy.REJECT_ROW:
                        errors.append(_build_mapping_error(
                            error_type=TRANSFORMER_ERROR,
                            message=f"Transformer for '{attribute}' failed on value '{raw_value}': {e}",
                            column=attribute,
                            value=raw_value,
                            record_number=row.record_number,
                        ))
                    value = raw_value
            attributes[attribute] = value

        if not attributes and row.has_content():
            message = f"Row resulted in empty attributes after mapping. CSV row: {row.to_dict()}"
            logger.warning("Run %s: %s", context.run_id, message)
            errors.append(_build_mapping_error(
                error_type=MAPPING_ERROR,
                message=message,
                record_number=row.record_number,
            ))

        return MappedRow(attributes=attributes, errors=errors)
