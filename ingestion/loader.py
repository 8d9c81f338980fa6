"""
Unified file loader - routes files to appropriate parsers.
Returns (bool, str, Optional[ParsedDocument]) and never raises.
"""
import logging
from pathlib import Path
from typing import Optional, Tuple

from ingestion.parsers import ParsedDocument, detect_document_type
from ingestion.parsers.csv_parser import parse_csv
from ingestion.parsers.excel_parser import parse_excel
from ingestion.parsers.pdf_parser import parse_pdf
from ingestion.parsers.docx_parser import parse_docx
from utils.validations import validate_file_extension

logger = logging.getLogger(__name__)


def parse_text(file_path: str) -> ParsedDocument:
    """Plain-text documents (memos, exported notes)"""
    path = Path(file_path)
    try:
        raw_text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raw_text = path.read_text(encoding="latin-1")

    return ParsedDocument(
        file_name=path.name,
        file_type=path.suffix.lower().lstrip("."),
        raw_text=raw_text,
        document_type=detect_document_type(path.name, raw_text[:2000]),
    )


class FileLoader:
    """
    Unified file loader that routes files to the appropriate parser
    based on file extension.
    """

    SUPPORTED_EXTENSIONS = {
        "pdf": parse_pdf,
        "xlsx": parse_excel,
        "xls": parse_excel,
        "csv": parse_csv,
        "docx": parse_docx,
        "txt": parse_text,
        "md": parse_text,
    }

    TABULAR_EXTENSIONS = ["xlsx", "xls", "csv"]

    def load_file(
        self,
        file_path: str,
        financial_hint: bool = False,
    ) -> Tuple[bool, str, Optional[ParsedDocument]]:
        """
        Load a file and return a ParsedDocument.

        Args:
            file_path: Path to the file to load.
            financial_hint: Prefer an income-statement sheet in workbooks.

        Returns:
            (success: bool, message: str, parsed_doc: Optional[ParsedDocument])
        """
        path = Path(file_path)
        if not path.exists():
            return False, f"File not found: {file_path}", None

        if not self.is_supported(path.name):
            supported = ", ".join(self.SUPPORTED_EXTENSIONS.keys())
            extension = path.suffix.lower().lstrip(".")
            return (
                False,
                f"Unsupported file type: {extension}. Supported types: {supported}",
                None,
            )

        parser_fn = self.SUPPORTED_EXTENSIONS[path.suffix.lower().lstrip(".")]

        try:
            if parser_fn is parse_excel:
                parsed_doc = parse_excel(str(path), financial_hint=financial_hint)
            else:
                parsed_doc = parser_fn(str(path))
            return True, f"Successfully loaded {path.name}", parsed_doc

        except Exception as e:
            logger.warning("Could not parse %s: %s", path, e)
            return False, f"Error loading {path.name}: {str(e)}", None

    @classmethod
    def get_supported_extensions(cls) -> list:
        """Get list of supported file extensions."""
        return list(cls.SUPPORTED_EXTENSIONS.keys())

    @classmethod
    def is_supported(cls, filename: str) -> bool:
        """Check if a filename has a supported extension."""
        return validate_file_extension(filename, cls.get_supported_extensions())

    @classmethod
    def is_tabular(cls, filename: str) -> bool:
        return validate_file_extension(filename, cls.TABULAR_EXTENSIONS)
