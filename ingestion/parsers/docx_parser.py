"""
DOCX parser - returns a ParsedDocument.
"""
from pathlib import Path

from ingestion.parsers import ParsedDocument, detect_document_type


def parse_docx(file_path: str) -> ParsedDocument:
    """
    Parse a Word (.docx) file using python-docx and return a ParsedDocument.
    Extracts all paragraphs and table cell text as raw_text.
    """
    from docx import Document  # python-docx

    path = Path(file_path)
    doc = Document(str(path))

    text_parts: list[str] = [para.text.strip() for para in doc.paragraphs if para.text.strip()]

    rows: list[list] = []
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() or None for cell in row.cells]
            rows.append(cells)
            row_text = " | ".join(c for c in cells if c)
            if row_text:
                text_parts.append(row_text)

    raw_text = "\n".join(text_parts)

    return ParsedDocument(
        file_name=path.name,
        file_type="docx",
        raw_text=raw_text,
        rows=rows,
        document_type=detect_document_type(path.name, raw_text[:2000]),
    )
