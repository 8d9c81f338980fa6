"""
Excel parser (.xlsx / .xls) - returns a ParsedDocument.
"""
from pathlib import Path
from typing import List

import pandas as pd

from ingestion.parsers import (
    ParsedDocument,
    detect_document_type,
    find_header_row,
    frame_to_rows,
    rows_to_text,
)

FINANCIAL_SHEET_HINTS = ["income", "financial", "t12", "statement"]


def choose_sheet(sheet_names: List[str], financial_hint: bool = False) -> str:
    """
    First sheet whose name mentions a financial keyword when asked for
    financials, otherwise the first sheet.
    """
    if financial_hint:
        for name in sheet_names:
            if any(hint in str(name).lower() for hint in FINANCIAL_SHEET_HINTS):
                return name
    return sheet_names[0]


def parse_excel(file_path: str, financial_hint: bool = False) -> ParsedDocument:
    """
    Parse an Excel file (.xlsx or .xls) and return a ParsedDocument.
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    engine = "openpyxl" if ext == ".xlsx" else "xlrd"
    with pd.ExcelFile(str(path), engine=engine) as workbook:
        sheet_name = choose_sheet(workbook.sheet_names, financial_hint)
        df = pd.read_excel(workbook, sheet_name=sheet_name, header=None, dtype=object)

    rows = frame_to_rows(df)
    raw_text = rows_to_text(rows)
    doc_type = detect_document_type(f"{path.name} {sheet_name}", raw_text[:2000])

    return ParsedDocument(
        file_name=path.name,
        file_type=ext.lstrip("."),
        raw_text=raw_text,
        rows=rows,
        header_row=find_header_row(rows),
        sheet_name=str(sheet_name),
        document_type=doc_type,
    )
