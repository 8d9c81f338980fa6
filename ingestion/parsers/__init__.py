"""
ingestion.parsers - multi-format document parsers returning ParsedDocument.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

import pandas as pd


@dataclass
class ParsedDocument:
    """Normalised result returned by every parser."""
    file_name: str
    file_type: str
    raw_text: str
    rows: List[List[Any]] = field(default_factory=list)
    header_row: Optional[int] = None
    sheet_name: Optional[str] = None
    document_type: Optional[str] = None  # rent_roll | financials | legal | unknown

    @property
    def is_tabular(self) -> bool:
        return bool(self.rows)

    @property
    def header(self) -> List[Any]:
        if self.header_row is None:
            return []
        return self.rows[self.header_row]

    @property
    def data_rows(self) -> List[List[Any]]:
        """Rows after the header (all rows when no header was detected)"""
        if self.header_row is None:
            return list(self.rows)
        return self.rows[self.header_row + 1:]


def detect_document_type(file_name: str, content: str = "") -> str:
    """
    Heuristic document-type detection.

    Returns one of: "rent_roll", "financials", "legal", "unknown".
    """
    text = (file_name + " " + content).lower()
    if "rent roll" in text or "rent_roll" in text:
        return "rent_roll"
    if any(k in text for k in ("income statement", "operating statement", "t12")):
        return "financials"
    if any(k in text for k in ("regulatory agreement", "lura", "legal", "deed")):
        return "legal"
    return "unknown"


def frame_to_rows(df: pd.DataFrame) -> List[List[Any]]:
    """Convert a header-less DataFrame to lists of cells, None for blanks."""
    if df is None or df.empty:
        return []
    cleaned = df.astype(object).where(pd.notna(df), None)
    return [list(row) for row in cleaned.itertuples(index=False, name=None)]


def rows_to_text(rows: Iterable[List[Any]]) -> str:
    lines = []
    for row in rows:
        cells = [str(c).strip() for c in row if c is not None and str(c).strip()]
        if cells:
            lines.append(" | ".join(cells))
    return "\n".join(lines)


def find_header_row(
    rows: List[List[Any]],
    keywords: Optional[List[str]] = None,
    scan_rows: Optional[int] = None,
    min_matches: Optional[int] = None,
) -> Optional[int]:
    """
    Index of the first row (within the first ``scan_rows``) whose cells
    mention at least ``min_matches`` distinct header keywords.
    """
    from config import settings

    keywords = keywords or settings.HEADER_KEYWORDS
    scan_rows = scan_rows if scan_rows is not None else settings.HEADER_SCAN_ROWS
    min_matches = min_matches if min_matches is not None else settings.HEADER_MIN_MATCHES

    for idx, row in enumerate(rows[:scan_rows]):
        text = " ".join(str(c).lower() for c in row if c is not None)
        matches = sum(1 for keyword in keywords if keyword in text)
        if matches >= min_matches:
            return idx
    return None
