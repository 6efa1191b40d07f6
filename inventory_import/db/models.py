"""
Inventory persistence models.

``Inventory`` rows are what the CSV import pipeline writes; ``InventoryLog``
rows form the audit trail of quantity changes. Ordinary ORM saves of an
inventory record log quantity changes through the ``after_update`` hook at the
bottom of this module. Set-oriented inserts bypass that hook, which is why the
import pipeline correlates and writes audit entries for new rows itself.
"""
import enum
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import column_property, object_session, relationship, validates

from inventory_import.db.session import Base
from inventory_import.domain.imports.context import IMPORT_CONTEXT_KEY
from inventory_import.domain.imports.validators import (
    CODE_MAX_LENGTH,
    NAME_MAX_LENGTH,
    SKU_MAX_LENGTH,
    coerce_decimal,
    coerce_integer,
    is_blank,
    validate_inventory,
)

logger = logging.getLogger(__name__)

QUANTITY_CHANGE_NOTE = "Automatic record: quantity change"


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class InventoryStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class OperationType(str, enum.Enum):
    ADD = "add"
    REMOVE = "remove"
    ADJUST = "adjust"
    SHIP = "ship"
    RECEIVE = "receive"


class InvalidStatusError(ValueError):
    """Raised when an inventory status outside ``InventoryStatus`` is assigned."""


# Attributes a CSV row may populate; identity and timestamps are managed here.
IMPORTABLE_COLUMNS = ("name", "quantity", "price", "status", "code", "sku", "barcode")
SYSTEM_COLUMNS = ("id", "created_at", "updated_at")


class Inventory(Base):
    """A stocked product."""
    __tablename__ = "inventories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(NAME_MAX_LENGTH), nullable=False, index=True)
    # Previous value is loaded on assignment so the quantity hook always sees a delta.
    quantity = column_property(Column(Integer, nullable=False, default=0), active_history=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=InventoryStatus.ACTIVE.value)
    code = Column(String(CODE_MAX_LENGTH), index=True)
    sku = Column(String(SKU_MAX_LENGTH), unique=True)
    barcode = Column(String(32), index=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    logs = relationship("InventoryLog", back_populates="inventory", passive_deletes=True)

    @validates("status")
    def _validate_status(self, key, value):
        if is_blank(value):
            return InventoryStatus.ACTIVE.value
        normalized = str(value).strip().lower()
        try:
            return InventoryStatus(normalized).value
        except ValueError:
            raise InvalidStatusError(f"'{value}' is not a valid status") from None

    @validates("code", "sku", "barcode")
    def _normalize_identifier(self, key, value):
        # Blanks become NULL; the unique sku index only constrains non-NULL values.
        if is_blank(value):
            return None
        return str(value).strip()

    @validates("quantity")
    def _coerce_quantity(self, key, value):
        return coerce_integer(value)

    @validates("price")
    def _coerce_price(self, key, value):
        return coerce_decimal(value)

    def validation_errors(self) -> List[str]:
        return validate_inventory(self)

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def importable_attributes(self) -> dict:
        """Column values a set-oriented insert needs, without identity/timestamps."""
        status = self.status if self.status is not None else InventoryStatus.ACTIVE.value
        values = {column: getattr(self, column) for column in IMPORTABLE_COLUMNS}
        values["status"] = status
        return values

    def __repr__(self) -> str:
        return f"<Inventory id={self.id} name={self.name!r} quantity={self.quantity}>"


class InventoryLog(Base):
    """One quantity delta for one inventory record."""
    __tablename__ = "inventory_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inventory_id = Column(
        Integer,
        ForeignKey("inventories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    delta = Column(Integer, nullable=False)
    operation_type = Column(String(20), nullable=False)
    previous_quantity = Column(Integer, nullable=False, default=0)
    current_quantity = Column(Integer, nullable=False, default=0)
    user_id = Column(String(255))
    note = Column(Text)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    inventory = relationship("Inventory", back_populates="logs")


def determine_operation_type(delta: int) -> str:
    if delta > 0:
        return OperationType.ADD.value
    if delta < 0:
        return OperationType.REMOVE.value
    return OperationType.ADJUST.value


def create_tables(engine: Engine) -> None:
    """Create the inventory tables if they don't exist."""
    Base.metadata.create_all(bind=engine, tables=[Inventory.__table__, InventoryLog.__table__])


@event.listens_for(Inventory, "after_update")
def _log_quantity_change(mapper, connection, target: Inventory) -> None:
    """Write an audit entry whenever a save changes an inventory quantity."""
    history = inspect(target).attrs.quantity.history
    if not history.has_changes():
        return

    previous_quantity = history.deleted[0] if history.deleted else 0
    previous_quantity = previous_quantity or 0
    current_quantity = target.quantity or 0
    delta = current_quantity - previous_quantity

    session = object_session(target)
    context = session.info.get(IMPORT_CONTEXT_KEY) if session is not None else None
    now = _utcnow()

    connection.execute(
        InventoryLog.__table__.insert().values(
            inventory_id=target.id,
            delta=delta,
            operation_type=determine_operation_type(delta),
            previous_quantity=previous_quantity,
            current_quantity=current_quantity,
            user_id=context.requester_id if context is not None else None,
            note=QUANTITY_CHANGE_NOTE,
            created_at=now,
            updated_at=now,
        )
    )
    logger.debug(
        "Logged quantity change for inventory %s: %s -> %s",
        target.id,
        previous_quantity,
        current_quantity,
    )
