"""
Audit-log correlation for set-oriented inventory inserts.

A bulk INSERT does not fire ORM hooks, so the pipeline has to work out which
generated id belongs to which submitted attribute map before it can write one
``InventoryLog`` entry per new record. Strategies:

``returning``
    The insert returns ids sorted by parameter order; ids are zipped with the
    submitted maps. Exact.
``per_row``
    One INSERT per record, each yielding its primary key. Exact on every
    backend, slowest.
``baseline``
    ``max(id)`` is read before the insert; afterwards the first N rows above
    it (ordered by id) are zipped with the N maps. Best effort: correct only
    when nothing else inserts into ``inventories`` between the baseline read
    and the lookup. Each pair is checked on name and quantity so interleaved
    rows surface as correlation warnings rather than wrong audit entries.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, insert, select
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Session

from inventory_import.db.models import Inventory, InventoryLog, OperationType
from inventory_import.schemas import CorrelationStrategy

from .context import ImportContext
from .exceptions import CorrelationWarning

logger = logging.getLogger(__name__)

IMPORT_NOTE = "Created by CSV import"


def supports_ordered_returning(dialect: Dialect) -> bool:
    """True when an executemany INSERT can hand back generated ids."""
    return bool(getattr(dialect, "insert_executemany_returning", False))


def resolve_strategy(dialect: Dialect, requested: CorrelationStrategy) -> CorrelationStrategy:
    if requested != CorrelationStrategy.AUTO:
        if requested == CorrelationStrategy.RETURNING and not supports_ordered_returning(dialect):
            logger.warning(
                "Dialect '%s' cannot return ids from a bulk insert; using the baseline strategy instead",
                dialect.name,
            )
            return CorrelationStrategy.BASELINE
        return requested
    if supports_ordered_returning(dialect):
        return CorrelationStrategy.RETURNING
    return CorrelationStrategy.BASELINE


@dataclass
class InsertResponse:
    """What the database told us about one set-oriented insert."""
    strategy: CorrelationStrategy
    batch_number: int
    inserted_ids: Optional[List[int]] = None
    baseline_id: Optional[int] = None


@dataclass
class InsertedRecord:
    id: int
    attributes: Dict[str, Any]


@dataclass
class CorrelationOutcome:
    inserted: List[InsertedRecord] = field(default_factory=list)
    warnings: List[CorrelationWarning] = field(default_factory=list)


class AuditCorrelator:
    def __init__(self, session: Session):
        self.session = session

    def read_baseline(self) -> int:
        """Highest inventory id visible to this transaction (0 for an empty table)."""
        return self.session.execute(select(func.max(Inventory.id))).scalar() or 0

    def correlate(self, batch_attributes: Sequence[Dict[str, Any]], response: InsertResponse) -> CorrelationOutcome:
        if response.strategy == CorrelationStrategy.BASELINE:
            return self._correlate_by_baseline(batch_attributes, response)
        return self._correlate_by_ids(batch_attributes, response)

    def _correlate_by_ids(self, batch_attributes, response: InsertResponse) -> CorrelationOutcome:
        ids = list(response.inserted_ids or [])
        outcome = CorrelationOutcome()
        for position, attributes in enumerate(batch_attributes, start=1):
            if position > len(ids) or ids[position - 1] is None:
                outcome.warnings.append(
                    self._warn(response.batch_number, position, "database returned no id for this record")
                )
                continue
            outcome.inserted.append(InsertedRecord(id=ids[position - 1], attributes=attributes))
        if len(ids) > len(batch_attributes):
            logger.warning(
                "Batch %d: database returned %d ids for %d records; extra ids ignored",
                response.batch_number, len(ids), len(batch_attributes),
            )
        return outcome

    def _correlate_by_baseline(self, batch_attributes, response: InsertResponse) -> CorrelationOutcome:
        baseline = response.baseline_id or 0
        statement = (
            select(Inventory.id, Inventory.name, Inventory.quantity)
            .where(Inventory.id > baseline)
            .order_by(Inventory.id)
            .limit(len(batch_attributes))
        )
        candidates = self.session.execute(statement).all()

        outcome = CorrelationOutcome()
        for position, attributes in enumerate(batch_attributes, start=1):
            if position > len(candidates):
                outcome.warnings.append(
                    self._warn(response.batch_number, position, f"no row above baseline id {baseline} left to match")
                )
                continue
            candidate = candidates[position - 1]
            if candidate.name != attributes.get("name") or candidate.quantity != attributes.get("quantity"):
                outcome.warnings.append(
                    self._warn(
                        response.batch_number,
                        position,
                        f"row {candidate.id} ({candidate.name!r}, {candidate.quantity}) does not match "
                        f"the submitted record ({attributes.get('name')!r}, {attributes.get('quantity')})",
                    )
                )
                continue
            outcome.inserted.append(InsertedRecord(id=candidate.id, attributes=attributes))
        return outcome

    @staticmethod
    def _warn(batch_number: int, position: int, reason: str) -> CorrelationWarning:
        warning = CorrelationWarning(batch_number, position, reason)
        logger.warning("Correlation warning: %s", warning)
        return warning

    def build_entries(self, inserted: Sequence[InsertedRecord], context: ImportContext) -> List[Dict[str, Any]]:
        now = datetime.now(timezone.utc)
        entries = []
        for record in inserted:
            quantity = record.attributes["quantity"]
            entries.append({
                "inventory_id": record.id,
                "delta": quantity,
                "operation_type": OperationType.ADD.value,
                "previous_quantity": 0,
                "current_quantity": quantity,
                "user_id": context.requester_id,
                "note": IMPORT_NOTE,
                "created_at": now,
                "updated_at": now,
            })
        return entries

    def write_entries(self, inserted: Sequence[InsertedRecord], context: ImportContext) -> int:
        """Write one audit entry per inserted record with a single set-oriented insert."""
        entries = self.build_entries(inserted, context)
        if not entries:
            return 0
        self.session.execute(insert(InventoryLog), entries)
        return len(entries)
