import csv
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple

import pandas as pd

from ..exceptions import MalformedCsvError

logger = logging.getLogger(__name__)

CSV_ENCODING = "utf-8-sig"  # Tolerates a UTF-8 byte order mark from spreadsheet exports


@dataclass
class SourceRow:
    """One CSV data record: ordered fields plus the header names they sit under."""
    headers: Tuple[str, ...]
    fields: Tuple[str, ...]
    record_number: int  # 1-based position among data rows

    def items(self) -> Iterator[Tuple[str, str]]:
        return zip(self.headers, self.fields)

    def has_content(self) -> bool:
        return any(field.strip() for field in self.fields)

    def to_dict(self) -> Dict[str, str]:
        return dict(self.items())


def read_header(file_path: str) -> List[str]:
    """
    Read only the header row of a CSV file.

    Raises ``UnicodeDecodeError``/``csv.Error`` for undecodable or unparsable
    input and ``ValueError`` for a file without a header row.
    """
    with open(file_path, newline="", encoding=CSV_ENCODING) as handle:
        reader = csv.reader(handle)
        for row in reader:
            if row:
                return [header.strip() for header in row]
    raise ValueError("CSV file has no header row")


def count_data_rows(file_path: str) -> int:
    """Count non-empty data rows (header excluded) for progress reporting."""
    try:
        with open(file_path, newline="", encoding=CSV_ENCODING) as handle:
            total = sum(1 for row in csv.reader(handle) if row)
    except (csv.Error, UnicodeDecodeError) as e:
        raise MalformedCsvError(file_path, str(e)) from e
    return max(total - 1, 0)


def iter_source_rows(file_path: str, chunk_size: int = 1000) -> Iterator[SourceRow]:
    """
    Yield the file's data rows in order, reading ``chunk_size`` rows at a time.

    Every value is kept as a string; missing trailing cells become ``""``.
    """
    record_number = 0
    try:
        reader = pd.read_csv(
            file_path,
            dtype=str,
            keep_default_na=False,
            encoding=CSV_ENCODING,
            index_col=False,
            chunksize=chunk_size,
        )
        with reader:
            for chunk in reader:
                headers = tuple(str(column).strip() for column in chunk.columns)
                chunk = chunk.fillna("")
                for values in chunk.itertuples(index=False, name=None):
                    record_number += 1
                    yield SourceRow(
                        headers=headers,
                        fields=tuple(str(value) for value in values),
                        record_number=record_number,
                    )
    except pd.errors.EmptyDataError:
        logger.info("CSV file '%s' contains no data rows", file_path)
        return
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        logger.error("Error parsing CSV '%s' after %d rows: %s", file_path, record_number, e)
        raise MalformedCsvError(file_path, str(e)) from e
