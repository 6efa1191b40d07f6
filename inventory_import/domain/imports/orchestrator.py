"""
Inventory CSV import orchestration.

``run_import`` is the entry point a job framework calls. One run validates
the file, then streams its rows through mapping, classification and batched
writes inside a single database transaction: either every insert, update and
audit entry from the file is committed, or none is.
"""

import logging
import time
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from inventory_import.core.config import settings
from inventory_import.core.logging_config import configure_logging
from inventory_import.db.models import create_tables
from inventory_import.db.session import get_session_local
from inventory_import.schemas import ImportJob, ImportResult, InvalidRecord

from .classifier import Bucket, RecordClassifier
from .context import ImportContext
from .exceptions import SecurityValidationError
from .mapper import RowMapper
from .processors.csv_processor import count_data_rows, iter_source_rows
from .progress import LoggingProgressReporter, ProgressReporter, ProgressTracker
from .security import SecurityGate
from .writer import BatchWriter

logger = logging.getLogger(__name__)


def run_job(
    job: ImportJob,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    security_gate: Optional[SecurityGate] = None,
    reporter: Optional[ProgressReporter] = None,
) -> ImportResult:
    """
    Execute one import run described by ``job``.

    Raises:
        SecurityValidationError: the file failed pre-processing checks (nothing read or written).
        MalformedCsvError: the file stopped parsing mid-way (run rolled back).
        BatchWriteError: a batch failed to write (run rolled back).
    """
    start_time = time.time()
    context = ImportContext(requester_id=job.requester_id, run_id=job.run_id)
    tracker = ProgressTracker(
        reporter or LoggingProgressReporter(),
        job.run_id,
        total_rows=0,
        interval=settings.import_progress_interval,
    )

    logger.info("CSV import started: run=%s file=%s requester=%s", job.run_id, job.file_path, job.requester_id)

    try:
        gate = security_gate or SecurityGate()
        file_path = str(gate.validate(job.file_path))
    except SecurityValidationError as e:
        logger.error("CSV import rejected: run=%s reason=%s", job.run_id, e.reason)
        tracker.fail(e.reason)
        raise

    try:
        tracker.total_rows = count_data_rows(file_path)
        tracker.start()
        result = _process_file(job, file_path, context, tracker, session_factory or get_session_local())
    except Exception as e:
        logger.error("CSV import failed: run=%s error=%s", job.run_id, e)
        tracker.fail(str(e))
        raise

    result.duration_seconds = round(time.time() - start_time, 3)
    tracker.complete({
        "valid_count": result.valid_count,
        "update_count": result.update_count,
        "invalid_count": result.invalid_count,
        "processed_rows": result.processed_rows,
        "duration_seconds": result.duration_seconds,
    })
    logger.info(
        "CSV import completed: run=%s processed=%d valid=%d updated=%d invalid=%d audit_entries=%d duration=%.2fs",
        job.run_id,
        result.processed_rows,
        result.valid_count,
        result.update_count,
        result.invalid_count,
        result.audit_entries_created,
        result.duration_seconds,
    )
    return result


def _process_file(
    job: ImportJob,
    file_path: str,
    context: ImportContext,
    tracker: ProgressTracker,
    session_factory: Callable[[], Session],
) -> ImportResult:
    result = ImportResult(run_id=job.run_id)
    mapper = RowMapper(transformer_failure_policy=job.transformer_failure_policy)

    with session_factory() as session:
        create_tables(session.get_bind())
        writer = None
        try:
            with session.begin():
                classifier = RecordClassifier(session)
                writer = BatchWriter(
                    session,
                    context,
                    batch_size=job.batch_size,
                    correlation_strategy=job.correlation_strategy,
                )

                for row in iter_source_rows(file_path, chunk_size=job.batch_size):
                    result.processed_rows += 1
                    mapped = mapper.map(row, job.column_mapping, job.value_transformers, context)
                    candidate = classifier.classify(mapped, row, job, context)

                    if candidate.bucket == Bucket.INSERTABLE:
                        result.valid_count += 1
                        writer.add_insertable(candidate.record)
                    elif candidate.bucket == Bucket.UPDATABLE:
                        result.update_count += 1
                        writer.add_updatable(candidate.record)
                    else:
                        result.invalid_records.append(InvalidRecord(
                            row=row.to_dict(),
                            errors=candidate.errors,
                            type=candidate.error_type,
                            line=row.record_number,
                        ))

                    tracker.advance(result.processed_rows)

                writer.flush()
        finally:
            if writer is not None:
                writer.close()

    result.audit_entries_created = writer.stats.audit_entries
    result.correlation_warnings = [str(warning) for warning in writer.stats.warnings]
    return result


def run_import(
    file_reference: str,
    requester_id: Optional[Any] = None,
    run_id: Optional[str] = None,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    security_gate: Optional[SecurityGate] = None,
    reporter: Optional[ProgressReporter] = None,
    **job_options: Any,
) -> ImportResult:
    """
    Import an inventory CSV file.

    Args:
        file_reference: Path to the uploaded CSV file.
        requester_id: Identity of whoever started the import (recorded on audit entries).
        run_id: Identifier for progress events; generated when omitted.
        **job_options: Any other ``ImportJob`` field (batch_size, column_mapping,
            value_transformers, update_existing, unique_key, ...).

    Returns:
        ImportResult with counts and the rejected rows.
    """
    job = ImportJob(
        file_path=str(file_reference),
        requester_id=str(requester_id) if requester_id is not None else None,
        run_id=run_id,
        **job_options,
    )
    return run_job(job, session_factory=session_factory, security_gate=security_gate, reporter=reporter)


def perform(file_reference: str, requester_id: Optional[Any] = None, run_id: Optional[str] = None, **job_options: Any) -> dict:
    """Job-framework adapter: configure logging, run the import and return a JSON-safe result."""
    configure_logging(settings.log_level, log_sql=settings.log_sql)
    result = run_import(file_reference, requester_id, run_id, **job_options)
    return result.model_dump(mode="json")
