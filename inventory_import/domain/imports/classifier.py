import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import InstrumentedAttribute

from inventory_import.db.models import InvalidStatusError, Inventory
from inventory_import.schemas import ImportJob, UniqueKey

from .context import ImportContext
from .mapper import MappedRow
from .processors.csv_processor import SourceRow
from .validators import is_blank

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "validation_error"
ARGUMENT_ERROR = "argument_error"


class Bucket(str, enum.Enum):
    INSERTABLE = "insertable"
    UPDATABLE = "updatable"
    INVALID = "invalid"


# Each allowed unique key resolves to a typed column accessor; nothing else can
# reach the lookup query.
UNIQUE_KEY_ACCESSORS: Dict[UniqueKey, Callable[[], InstrumentedAttribute]] = {
    UniqueKey.NAME: lambda: Inventory.name,
    UniqueKey.CODE: lambda: Inventory.code,
    UniqueKey.SKU: lambda: Inventory.sku,
    UniqueKey.BARCODE: lambda: Inventory.barcode,
}


@dataclass
class CandidateRecord:
    bucket: Bucket
    row: SourceRow
    record: Optional[Inventory] = None
    errors: List[str] = field(default_factory=list)
    error_type: Optional[str] = None


class RecordClassifier:
    """Sorts mapped rows into insertable, updatable and invalid buckets."""

    def __init__(self, session: Session):
        self.session = session

    def classify(
        self,
        mapped: MappedRow,
        row: SourceRow,
        job: ImportJob,
        context: ImportContext,
    ) -> CandidateRecord:
        if not mapped.ok:
            return CandidateRecord(
                bucket=Bucket.INVALID,
                row=row,
                errors=mapped.messages,
                error_type=mapped.error_type,
            )

        attributes = mapped.attributes
        existing = None
        if job.update_existing:
            existing = self.find_existing(job.unique_key, self._key_value(row, attributes, job.unique_key))

        if existing is not None:
            return self._classify_update(existing, attributes, row, context)
        return self._classify_insert(attributes, row, context)

    def find_existing(self, unique_key: UniqueKey, value: Any) -> Optional[Inventory]:
        if is_blank(value):
            return None
        column = UNIQUE_KEY_ACCESSORS[unique_key]()
        lookup_value = value.strip() if isinstance(value, str) else value
        statement = select(Inventory).where(column == lookup_value).order_by(Inventory.id).limit(1)
        return self.session.execute(statement).scalars().first()

    @staticmethod
    def _key_value(row: SourceRow, attributes: Dict[str, Any], unique_key: UniqueKey) -> Any:
        if unique_key.value in attributes:
            return attributes[unique_key.value]
        # Fall back to a raw header literally named after the key.
        for header, value in row.items():
            if header.strip().lower() == unique_key.value:
                return value
        return None

    def _classify_insert(self, attributes: Dict[str, Any], row: SourceRow, context: ImportContext) -> CandidateRecord:
        try:
            record = Inventory(**attributes)
        except InvalidStatusError as e:
            logger.info("Run %s: record %d rejected: %s", context.run_id, row.record_number, e)
            return CandidateRecord(bucket=Bucket.INVALID, row=row, errors=[str(e)], error_type=ARGUMENT_ERROR)

        errors = record.validation_errors()
        if errors:
            logger.info(
                "Run %s: record %d failed validation: %s", context.run_id, row.record_number, ", ".join(errors)
            )
            return CandidateRecord(bucket=Bucket.INVALID, row=row, errors=errors, error_type=VALIDATION_ERROR)
        return CandidateRecord(bucket=Bucket.INSERTABLE, row=row, record=record)

    def _classify_update(
        self,
        existing: Inventory,
        attributes: Dict[str, Any],
        row: SourceRow,
        context: ImportContext,
    ) -> CandidateRecord:
        previous = {attribute: getattr(existing, attribute) for attribute in attributes}
        try:
            for attribute, value in attributes.items():
                setattr(existing, attribute, value)
        except InvalidStatusError as e:
            self._restore(existing, previous)
            logger.info("Run %s: update for record %d rejected: %s", context.run_id, row.record_number, e)
            return CandidateRecord(bucket=Bucket.INVALID, row=row, errors=[str(e)], error_type=ARGUMENT_ERROR)

        errors = existing.validation_errors()
        if errors:
            self._restore(existing, previous)
            logger.info(
                "Run %s: update for record %d failed validation: %s",
                context.run_id, row.record_number, ", ".join(errors),
            )
            return CandidateRecord(bucket=Bucket.INVALID, row=row, errors=errors, error_type=VALIDATION_ERROR)
        return CandidateRecord(bucket=Bucket.UPDATABLE, row=row, record=existing)

    @staticmethod
    def _restore(record: Inventory, previous: Dict[str, Any]) -> None:
        """Put back the values a rejected update overwrote so it is never flushed."""
        for attribute, value in previous.items():
            setattr(record, attribute, value)
