import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_import.db.models import SYSTEM_COLUMNS, Inventory
from inventory_import.schemas import CorrelationStrategy

from .audit import AuditCorrelator, InsertResponse, InsertedRecord, resolve_strategy
from .context import IMPORT_CONTEXT_KEY, ImportContext
from .exceptions import BatchWriteError, CorrelationWarning

logger = logging.getLogger(__name__)


@dataclass
class WriteStats:
    inserted: int = 0
    updated: int = 0
    audit_entries: int = 0
    insert_batches: int = 0
    update_batches: int = 0
    warnings: List[CorrelationWarning] = field(default_factory=list)


class BatchWriter:
    """
    Buffers classified records and writes them in batches inside the caller's transaction.

    Insertable records go out as one set-oriented INSERT per batch followed by
    audit correlation. Updatable records are saved one by one through the ORM
    so the ``after_update`` quantity hook on ``Inventory`` fires.
    The writer never commits or rolls back; the orchestrator owns the
    transaction for the whole run.
    """

    def __init__(
        self,
        session: Session,
        context: ImportContext,
        *,
        batch_size: int = 1000,
        correlation_strategy: CorrelationStrategy = CorrelationStrategy.AUTO,
    ):
        self.session = session
        self.context = context
        self.batch_size = batch_size
        self.strategy = resolve_strategy(session.get_bind().dialect, correlation_strategy)
        self.correlator = AuditCorrelator(session)
        self.stats = WriteStats()
        self._insert_buffer: List[Inventory] = []
        self._update_buffer: List[Inventory] = []
        # ORM hooks fired by per-record saves read the requester from here.
        self.session.info[IMPORT_CONTEXT_KEY] = context
        logger.info("Run %s: correlating bulk inserts with the '%s' strategy", context.run_id, self.strategy.value)

    def add_insertable(self, record: Inventory) -> List[InsertedRecord]:
        self._insert_buffer.append(record)
        if len(self._insert_buffer) >= self.batch_size:
            return self.flush_inserts()
        return []

    def add_updatable(self, record: Inventory) -> None:
        self._update_buffer.append(record)
        if len(self._update_buffer) >= self.batch_size:
            self.flush_updates()

    def flush(self) -> List[InsertedRecord]:
        """Write whatever is still buffered on both paths."""
        inserted = self.flush_inserts()
        self.flush_updates()
        return inserted

    def close(self) -> None:
        self.session.info.pop(IMPORT_CONTEXT_KEY, None)

    @staticmethod
    def _insert_attributes(record: Inventory, timestamp: datetime) -> Dict[str, Any]:
        attributes = {
            key: value for key, value in record.importable_attributes().items() if key not in SYSTEM_COLUMNS
        }
        attributes["created_at"] = timestamp
        attributes["updated_at"] = timestamp
        return attributes

    def flush_inserts(self) -> List[InsertedRecord]:
        if not self._insert_buffer:
            return []

        self.stats.insert_batches += 1
        batch_number = self.stats.insert_batches
        timestamp = datetime.now(timezone.utc)
        rows = [self._insert_attributes(record, timestamp) for record in self._insert_buffer]
        self._insert_buffer = []

        try:
            response = self._execute_insert(rows, batch_number)
            outcome = self.correlator.correlate(rows, response)
            written = self.correlator.write_entries(outcome.inserted, self.context)
        except (SQLAlchemyError, OverflowError) as e:
            logger.error("Run %s: insert batch %d failed: %s", self.context.run_id, batch_number, e)
            raise BatchWriteError("insert", batch_number, len(rows), e) from e

        self.stats.inserted += len(rows)
        self.stats.audit_entries += written
        self.stats.warnings.extend(outcome.warnings)
        logger.info(
            "Run %s: batch %d inserted %d records, %d audit entries",
            self.context.run_id, batch_number, len(rows), written,
        )
        return outcome.inserted

    def _execute_insert(self, rows: List[Dict[str, Any]], batch_number: int) -> InsertResponse:
        if self.strategy == CorrelationStrategy.RETURNING:
            statement = insert(Inventory).returning(Inventory.id, sort_by_parameter_order=True)
            ids = list(self.session.execute(statement, rows).scalars().all())
            return InsertResponse(strategy=self.strategy, batch_number=batch_number, inserted_ids=ids)

        if self.strategy == CorrelationStrategy.PER_ROW:
            ids = []
            for row in rows:
                result = self.session.execute(insert(Inventory.__table__).values(**row))
                ids.append(result.inserted_primary_key[0])
            return InsertResponse(strategy=self.strategy, batch_number=batch_number, inserted_ids=ids)

        baseline = self.correlator.read_baseline()
        self.session.execute(insert(Inventory), rows)
        return InsertResponse(strategy=self.strategy, batch_number=batch_number, baseline_id=baseline)

    def flush_updates(self) -> None:
        if not self._update_buffer:
            return

        self.stats.update_batches += 1
        batch_number = self.stats.update_batches
        records = self._update_buffer
        self._update_buffer = []

        try:
            for record in records:
                self.session.add(record)
                self.session.flush([record])
        except (SQLAlchemyError, OverflowError) as e:
            logger.error("Run %s: update batch %d failed: %s", self.context.run_id, batch_number, e)
            raise BatchWriteError("update", batch_number, len(records), e) from e

        self.stats.updated += len(records)
        logger.info("Run %s: batch %d updated %d records", self.context.run_id, batch_number, len(records))
