import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inventory_import.core.config import settings


class UniqueKey(str, Enum):
    """Columns an update-mode import may use to find an existing record."""
    NAME = "name"
    CODE = "code"
    SKU = "sku"
    BARCODE = "barcode"


class CorrelationStrategy(str, Enum):
    """How new inventory ids are matched back to the rows that produced them."""
    AUTO = "auto"
    RETURNING = "returning"
    BASELINE = "baseline"
    PER_ROW = "per_row"


class TransformerFailurePolicy(str, Enum):
    KEEP_RAW = "keep_raw"
    REJECT_ROW = "reject_row"


ValueTransformer = Callable[[Any], Any]


class ImportJob(BaseModel):
    """Configuration of one pipeline run; immutable for the run's duration."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    file_path: str
    requester_id: Optional[str] = None
    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    batch_size: int = Field(default_factory=lambda: settings.import_batch_size, ge=1)
    column_mapping: Dict[str, str] = Field(default_factory=dict)  # CSV header -> attribute
    value_transformers: Dict[str, ValueTransformer] = Field(default_factory=dict)  # attribute -> callable
    update_existing: bool = False
    unique_key: UniqueKey = Field(default_factory=lambda: UniqueKey(settings.import_default_unique_key))
    transformer_failure_policy: TransformerFailurePolicy = Field(
        default_factory=lambda: TransformerFailurePolicy(settings.import_transformer_failure_policy)
    )
    correlation_strategy: CorrelationStrategy = Field(
        default_factory=lambda: CorrelationStrategy(settings.import_correlation_strategy)
    )

    @field_validator("unique_key", mode="before")
    def normalize_unique_key(cls, value: Any) -> Any:
        """Reject key names outside the allow-list when the job is built."""
        if isinstance(value, str):
            normalized = value.strip().lower()
            allowed = [key.value for key in UniqueKey]
            if normalized not in allowed:
                raise ValueError(f"unique_key '{value}' is not allowed; expected one of {allowed}")
            return normalized
        return value

    @field_validator("column_mapping")
    def normalize_column_mapping(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {str(header).strip().lower(): str(attribute).strip() for header, attribute in value.items()}

    @field_validator("run_id", mode="before")
    def default_blank_run_id(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return str(uuid.uuid4())
        return value


class InvalidRecord(BaseModel):
    """A rejected CSV row and the reasons it was rejected."""
    row: Dict[str, Any]
    errors: List[str]
    type: str  # mapping_error, transformer_error, validation_error, argument_error
    line: Optional[int] = None


class ImportResult(BaseModel):
    run_id: str
    valid_count: int = 0
    update_count: int = 0
    invalid_records: List[InvalidRecord] = Field(default_factory=list)
    processed_rows: int = 0
    audit_entries_created: int = 0
    correlation_warnings: List[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def invalid_count(self) -> int:
        return len(self.invalid_records)


class ProgressEvent(BaseModel):
    type: Literal["progress", "complete", "error"]
    progress: int = Field(ge=0, le=100)
    run_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_message(self) -> Dict[str, Any]:
        """Flatten into the wire shape consumed by progress notifiers."""
        message = {
            "type": self.type,
            "progress": self.progress,
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
        }
        message.update(self.payload)
        return message
