"""
CSV parser - returns a ParsedDocument.
"""
import csv
from pathlib import Path
from typing import Optional

import pandas as pd

from ingestion.parsers import (
    ParsedDocument,
    detect_document_type,
    find_header_row,
    frame_to_rows,
    rows_to_text,
)


def _column_count(file_path: str, encoding: str) -> int:
    """Widest row in the file; title rows above the header are often narrower."""
    with open(file_path, newline="", encoding=encoding) as f:
        return max((len(row) for row in csv.reader(f)), default=0)


def _read_csv_resilient(file_path: str) -> pd.DataFrame:
    """Try utf-8 then latin-1 encoding; every row is kept as data."""
    raw: Optional[pd.DataFrame] = None

    for enc in ("utf-8", "latin-1"):
        try:
            width = _column_count(file_path, enc)
            if width == 0:
                return pd.DataFrame()
            raw = pd.read_csv(
                file_path,
                header=None,
                names=list(range(width)),
                encoding=enc,
                dtype=object,
                skip_blank_lines=False,
            )
            break
        except UnicodeDecodeError:
            continue
        except pd.errors.EmptyDataError:
            return pd.DataFrame()

    return raw if raw is not None else pd.DataFrame()


def parse_csv(file_path: str) -> ParsedDocument:
    """
    Parse a CSV file and return a ParsedDocument.

    Args:
        file_path: Path to the CSV file.

    Returns:
        ParsedDocument with raw rows, detected header row and document_type.
    """
    path = Path(file_path)
    rows = frame_to_rows(_read_csv_resilient(str(path)))
    raw_text = rows_to_text(rows)

    return ParsedDocument(
        file_name=path.name,
        file_type="csv",
        raw_text=raw_text,
        rows=rows,
        header_row=find_header_row(rows),
        document_type=detect_document_type(path.name, raw_text[:2000]),
    )
