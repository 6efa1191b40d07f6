"""
Pre-processing checks for CSV files handed to the import pipeline.

The gate runs before any data row is read. It only ever reads the header line
and never writes anything.
"""
import csv
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from inventory_import.core.config import settings

from .exceptions import SecurityValidationError
from .processors.csv_processor import read_header

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".csv",)


def _format_size(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):.1f} MB"


class SecurityGate:
    """Validates an import file's location, size, type and header shape."""

    def __init__(
        self,
        *,
        max_file_size: Optional[int] = None,
        required_headers: Optional[Iterable[str]] = None,
        allowed_dirs: Optional[Iterable[str]] = None,
    ):
        self.max_file_size = max_file_size if max_file_size is not None else settings.upload_max_file_size_bytes
        self.required_headers = [
            header.strip().lower()
            for header in (required_headers if required_headers is not None else settings.import_required_headers)
        ]
        self.allowed_dirs = [
            Path(directory).expanduser().resolve()
            for directory in (allowed_dirs if allowed_dirs is not None else settings.import_allowed_dirs)
        ]

    def validate(self, file_reference: str) -> Path:
        """
        Run every check in order, stopping at the first failure.

        Returns:
            The resolved absolute path of the validated file.

        Raises:
            SecurityValidationError: with a human-readable reason.
        """
        path = Path(file_reference)

        if not path.is_file():
            raise SecurityValidationError(f"File not found: {file_reference}")

        size = path.stat().st_size
        if size > self.max_file_size:
            raise SecurityValidationError(
                f"File too large: {_format_size(size)} exceeds the {_format_size(self.max_file_size)} limit"
            )

        if path.suffix.lower() not in ALLOWED_EXTENSIONS:
            raise SecurityValidationError(
                f"Invalid file type '{path.suffix or '(none)'}': only {', '.join(ALLOWED_EXTENSIONS)} files are accepted"
            )

        self._check_headers(path)

        resolved = path.resolve()
        if not self._is_allowed(resolved):
            logger.warning("Rejected import outside allowed directories: %s", resolved)
            raise SecurityValidationError(f"Path traversal detected: {file_reference} is outside allowed directories")

        logger.info("Import file passed security checks: %s (%s)", resolved, _format_size(size))
        return resolved

    def _check_headers(self, path: Path) -> None:
        try:
            headers = read_header(str(path))
        except (UnicodeDecodeError, csv.Error) as e:
            raise SecurityValidationError(f"File is not valid UTF-8 CSV: {e}") from e
        except ValueError as e:
            raise SecurityValidationError(f"Invalid CSV: {e}") from e

        present = {header.lower() for header in headers}
        missing: List[str] = [header for header in self.required_headers if header not in present]
        if missing:
            raise SecurityValidationError(
                f"Missing required headers: {', '.join(missing)}",
                missing_headers=missing,
            )

    def _is_allowed(self, resolved: Path) -> bool:
        for directory in self.allowed_dirs:
            try:
                resolved.relative_to(directory)
            except ValueError:
                continue
            return True
        return False
