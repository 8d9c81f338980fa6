"""
PDF parser - returns a ParsedDocument.
"""
from pathlib import Path

import pdfplumber

from ingestion.parsers import ParsedDocument, detect_document_type


def parse_pdf(file_path: str) -> ParsedDocument:
    """
    Parse a PDF file using pdfplumber and return a ParsedDocument.
    Page text becomes raw_text; table rows are kept as rows.
    """
    path = Path(file_path)
    all_text_parts: list[str] = []
    all_rows: list[list] = []

    with pdfplumber.open(str(path)) as pdf:
        for page in pdf.pages:
            text = page.extract_text()
            if text:
                all_text_parts.append(text)

            for tbl in page.extract_tables():
                for row in tbl or []:
                    all_rows.append([cell if cell not in ("", None) else None for cell in row])

    raw_text = "\n".join(all_text_parts)
    doc_type = detect_document_type(path.name, raw_text[:2000])

    return ParsedDocument(
        file_name=path.name,
        file_type="pdf",
        raw_text=raw_text,
        rows=all_rows,
        document_type=doc_type,
    )
