import pytest

from inventory_import.core import logging_config
from inventory_import.core.config import Settings
from inventory_import.domain.imports.progress import ProgressTracker
from inventory_import.schemas import CorrelationStrategy, ImportJob, TransformerFailurePolicy, UniqueKey


def test_settings_defaults(monkeypatch):
    for name in ("IMPORT_BATCH_SIZE", "UPLOAD_MAX_FILE_SIZE_MB", "IMPORT_CORRELATION_STRATEGY"):
        monkeypatch.delenv(name, raising=False)

    config = Settings(_env_file=None)

    assert config.import_batch_size == 1000
    assert config.upload_max_file_size_bytes == 100 * 1024 * 1024
    assert config.import_required_headers == ["name", "quantity", "price"]
    assert config.import_correlation_strategy == "auto"


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("IMPORT_BATCH_SIZE", "250")
    monkeypatch.setenv("UPLOAD_MAX_FILE_SIZE_MB", "5")

    config = Settings(_env_file=None)

    assert config.import_batch_size == 250
    assert config.upload_max_file_size_bytes == 5 * 1024 * 1024


def test_import_job_defaults_come_from_settings():
    job = ImportJob(file_path="inventory.csv")

    assert job.unique_key == UniqueKey.NAME
    assert job.correlation_strategy == CorrelationStrategy.AUTO
    assert job.transformer_failure_policy == TransformerFailurePolicy.KEEP_RAW
    assert job.update_existing is False
    assert job.run_id


def test_import_job_normalizes_inputs():
    job = ImportJob(file_path="inventory.csv", unique_key=" SKU ", column_mapping={" Product ": "name"}, run_id="")

    assert job.unique_key == UniqueKey.SKU
    assert job.column_mapping == {"product": "name"}
    assert job.run_id


def test_import_job_rejects_bad_batch_size():
    with pytest.raises(ValueError):
        ImportJob(file_path="inventory.csv", batch_size=0)


def test_configure_logging_runs_once(monkeypatch):
    calls = []
    monkeypatch.setattr(logging_config, "_is_configured", False)
    monkeypatch.setattr(logging_config, "dictConfig", calls.append)

    logging_config.configure_logging("debug")
    logging_config.configure_logging("warning")

    assert len(calls) == 1
    assert calls[0]["root"]["level"] == "DEBUG"
    assert calls[0]["loggers"]["inventory_import"]["level"] == "DEBUG"


def test_sql_statements_are_quiet_unless_requested():
    quiet = logging_config.build_logging_config("INFO")
    verbose = logging_config.build_logging_config("INFO", log_sql=True)

    assert quiet["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
    assert verbose["loggers"]["sqlalchemy.engine"]["level"] == "INFO"


def test_unknown_log_level_is_rejected(monkeypatch):
    monkeypatch.setattr(logging_config, "_is_configured", False)
    monkeypatch.setattr(logging_config, "dictConfig", lambda config: None)

    with pytest.raises(ValueError):
        logging_config.configure_logging("chatty")


class _Recorder:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)


def test_progress_tracker_reports_every_interval():
    recorder = _Recorder()
    tracker = ProgressTracker(recorder, "run-1", total_rows=200, interval=25)

    tracker.start()
    for processed in range(1, 201):
        tracker.advance(processed)
    tracker.complete({"valid_count": 200})

    assert [(event.type, event.progress) for event in recorder.events] == [
        ("progress", 0),
        ("progress", 25),
        ("progress", 50),
        ("progress", 75),
        ("complete", 100),
    ]


def test_progress_tracker_failure_keeps_last_progress():
    recorder = _Recorder()
    tracker = ProgressTracker(recorder, "run-1", total_rows=10, interval=10)

    tracker.start()
    tracker.advance(3)
    tracker.fail("Insert batch 1 failed", {"batch_number": 1})

    last = recorder.events[-1].to_message()
    assert last["type"] == "error"
    assert last["progress"] == 30
    assert last["message"] == "Insert batch 1 failed"
    assert last["batch_number"] == 1
