"""
Pytest configuration and fixtures for the inventory import tests.

Every test that touches the database gets its own SQLite file under
``tmp_path``, so tests never share rows and never need a running PostgreSQL.
CSV fixtures are written into the same temporary directory, which is also the
only directory the test security gate accepts.
"""

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from inventory_import.db.models import Inventory, InventoryLog, create_tables
from inventory_import.domain.imports.context import ImportContext
from inventory_import.domain.imports.orchestrator import run_import
from inventory_import.domain.imports.security import SecurityGate


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'inventory.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def import_context():
    return ImportContext(requester_id="user-42", run_id="run-test")


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV text (or raw bytes) into the allowed import directory."""

    def _write(content, name="inventory.csv"):
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def gate(tmp_path):
    return SecurityGate(allowed_dirs=[str(tmp_path)])


@pytest.fixture
def run(session_factory, gate):
    """Run the pipeline against the test database with the test gate."""

    def _run(path, **options):
        options.setdefault("requester_id", "user-42")
        options.setdefault("security_gate", gate)
        return run_import(str(path), session_factory=session_factory, **options)

    return _run


@pytest.fixture
def fetch(session_factory):
    """Small query helpers for asserting on committed state."""

    class _Fetch:
        def inventories(self):
            with session_factory() as session:
                return session.execute(select(Inventory).order_by(Inventory.id)).scalars().all()

        def logs(self):
            with session_factory() as session:
                return session.execute(select(InventoryLog).order_by(InventoryLog.id)).scalars().all()

        def count(self, model):
            with session_factory() as session:
                return session.execute(select(func.count()).select_from(model)).scalar()

    return _Fetch()
