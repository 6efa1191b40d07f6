"""
Progress reporting seam for import runs.

The pipeline only produces coarse progress events; delivering them to users
(pub/sub, websockets, a job-status store) belongs to whatever implements
``ProgressReporter``.
"""
import logging
from typing import Any, Dict, List, Optional

from typing_extensions import Protocol

from inventory_import.schemas import ProgressEvent

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    def publish(self, event: ProgressEvent) -> None:
        ...


class LoggingProgressReporter:
    """Default reporter: writes each event to the log."""

    def publish(self, event: ProgressEvent) -> None:
        if event.type == "error":
            logger.error("Import %s failed at %d%%: %s", event.run_id, event.progress, event.payload.get("message"))
        elif event.type == "complete":
            logger.info("Import %s complete: %s", event.run_id, event.payload)
        else:
            logger.debug("Import %s progress: %d%%", event.run_id, event.progress)


class CollectingProgressReporter:
    """Keeps events in memory; handy for callers that poll and for tests."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return [event.to_message() for event in self.events]


class ProgressTracker:
    """Turns row counts into progress events every ``interval`` percent."""

    def __init__(self, reporter: ProgressReporter, run_id: str, total_rows: int, interval: int = 10):
        self.reporter = reporter
        self.run_id = run_id
        self.total_rows = total_rows
        self.interval = max(1, interval)
        self._last_reported = 0

    def _publish(self, event_type: str, progress: int, payload: Optional[Dict[str, Any]] = None) -> None:
        event = ProgressEvent(type=event_type, progress=progress, run_id=self.run_id, payload=payload or {})
        try:
            self.reporter.publish(event)
        except Exception as e:
            # Reporter failures never abort the import.
            logger.warning("Progress reporter failed for run %s: %s", self.run_id, e)

    def start(self) -> None:
        self._publish("progress", 0, {"total_rows": self.total_rows})

    def advance(self, processed_rows: int) -> None:
        if self.total_rows <= 0:
            return
        # Hold 100 back for the completion event.
        percent = min(99, processed_rows * 100 // self.total_rows)
        if percent - self._last_reported >= self.interval:
            self._last_reported = percent - (percent % self.interval)
            self._publish("progress", self._last_reported, {"processed_rows": processed_rows})

    def complete(self, payload: Dict[str, Any]) -> None:
        self._publish("complete", 100, payload)

    def fail(self, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
        data = {"message": message}
        data.update(payload or {})
        self._publish("error", self._last_reported, data)
