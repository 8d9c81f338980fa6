"""
T12 / operating statement extraction
"""
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import settings
from ingestion.catalog import load_mappings
from ingestion.loader import FileLoader
from ingestion.parsers import ParsedDocument
from models.deal import EXPENSE_CATEGORIES, FinancialSummary
from utils.helpers import cell_text, parse_date, parse_number

logger = logging.getLogger(__name__)

T12_NAME_KEYWORDS = ["income statement", "t12", "operating statement"]

_YEAR_PATTERN = re.compile(r"(20\d{2})")


def row_value(row: List[Any]) -> Optional[float]:
    """First nonzero numeric cell after the label column"""
    for cell in row[1:]:
        value = parse_number(cell)
        if value:
            return value
    return None


def match_line_item(label: str, mappings: Dict) -> Optional[str]:
    """
    Field name for a T12 row label, or None.
    Income items are checked before expenses, expenses before debt.
    """
    for section in ('income_items', 'expense_items', 'debt_items'):
        for field_name, keywords in mappings[section].items():
            if field_name == 'taxes' and 'income' in label:
                continue
            if any(keyword in label for keyword in keywords):
                return field_name
    return None


def period_label(file_name: str, sheet_name: Optional[str]) -> str:
    text = f"{file_name} {sheet_name or ''}".lower()
    if 't12' in text:
        return 'T12'
    match = _YEAR_PATTERN.search(text)
    if match:
        return match.group(1)
    return 'T12'


def _period_dates(doc: ParsedDocument):
    dates = []
    for row in doc.rows[:settings.HEADER_SCAN_ROWS]:
        for cell in row[1:]:
            parsed = parse_date(cell) if cell is not None else None
            if parsed:
                dates.append(parsed)
    if not dates:
        return settings.TBD, settings.TBD
    return min(dates).isoformat(), max(dates).isoformat()


def summary_from_document(doc: ParsedDocument, mappings: Optional[Dict] = None) -> FinancialSummary:
    """
    Build a FinancialSummary from T12 rows. Derived fields (NOI, ratios,
    occupancy) are left for engine.financial_metrics.
    """
    mappings = mappings or load_mappings()
    values: Dict[str, float] = {}
    matched = set()

    for row in doc.rows:
        if not row:
            continue
        label = cell_text(row[0]).lower()
        if not label:
            continue

        field_name = match_line_item(label, mappings)
        if field_name is None:
            continue

        value = row_value(row)
        if value is None:
            continue

        # Subtotal rows replace the line items summed so far
        if label.startswith('total') or field_name in ('totalRevenue', 'totalExpenses'):
            values[field_name] = value
        else:
            values[field_name] = values.get(field_name, 0.0) + value
        matched.add(field_name)

    summary = FinancialSummary(period=period_label(doc.file_name, doc.sheet_name))
    summary.period_start, summary.period_end = _period_dates(doc)

    summary.rental_income = values.get('rentalIncome', 0.0)
    summary.commercial_income = values.get('commercialIncome', 0.0)
    summary.other_income = values.get('otherIncome', 0.0)
    summary.debt_service = abs(values.get('debtService', 0.0))

    for category in EXPENSE_CATEGORIES:
        summary.operating_expenses[category] = abs(values.get(category, 0.0))

    if 'totalRevenue' in matched:
        summary.total_revenue = values['totalRevenue']
    else:
        summary.total_revenue = summary.rental_income + summary.commercial_income + summary.other_income

    categorized = sum(summary.operating_expenses.values())
    if 'totalExpenses' in matched:
        summary.total_expenses = abs(values['totalExpenses'])
        summary.operating_expenses['other'] = max(summary.total_expenses - categorized, 0.0)
    else:
        summary.total_expenses = categorized

    return summary


class FinancialsExtractor:
    """
    Finds and parses the T12 income statement inside a due-diligence folder
    """

    def __init__(self, loader: Optional[FileLoader] = None, mappings: Optional[Dict] = None):
        self.loader = loader or FileLoader()
        self.mappings = mappings or load_mappings()

    def _is_t12(self, path: Path) -> bool:
        name = path.name.lower().replace('_', ' ')
        return (
            path.is_file()
            and self.loader.is_tabular(path.name)
            and any(keyword in name for keyword in T12_NAME_KEYWORDS)
        )

    def find_t12(self, folder: Path) -> Optional[Path]:
        for directory in settings.FINANCIALS_DIRS:
            base = folder / directory
            if not base.is_dir():
                continue
            for path in sorted(base.iterdir()):
                if self._is_t12(path):
                    return path

        for path in sorted(folder.rglob('*')):
            if self._is_t12(path):
                return path
        return None

    def extract(self, folder: Path) -> FinancialSummary:
        path = self.find_t12(folder)
        if path is None:
            logger.warning("No T12 income statement found in %s; financials default to zero", folder)
            return FinancialSummary()

        ok, message, doc = self.loader.load_file(str(path), financial_hint=True)
        if not ok or doc is None:
            logger.warning("%s; financials default to zero", message)
            return FinancialSummary()

        summary = summary_from_document(doc, self.mappings)
        logger.info(
            "Extracted %s financials from %s: revenue=%.2f expenses=%.2f",
            summary.period, path.name, summary.total_revenue, summary.total_expenses,
        )
        return summary
