"""
Explicit per-run request context.

Who started an import is passed down the pipeline as a value
instead of being read from ambient, thread-local state. The batch writer also
stores it on the SQLAlchemy session's ``info`` under ``IMPORT_CONTEXT_KEY`` so
ORM hooks fired by per-record saves can attribute their audit entries.
"""
from dataclasses import dataclass
from typing import Optional

IMPORT_CONTEXT_KEY = "import_context"


@dataclass(frozen=True)
class ImportContext:
    requester_id: Optional[str]
    run_id: str
