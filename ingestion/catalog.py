"""
Keyword mappings and source-document cataloging
"""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from models.deal import SourceDocument

logger = logging.getLogger(__name__)

MAPPINGS_PATH = Path(__file__).resolve().parent.parent / "config" / "mappings.yaml"

DEFAULT_MAPPINGS: Dict = {
    'document_categories': {
        'Financial': ['financials', 'income', 't12', 'operating statement'],
        'Rent Roll': ['rent', 'tenant'],
        'Legal': ['legal', 'lease', 'title', 'deed', 'regulatory agreement', 'lura'],
        'Property': ['property', 'physical', 'inspection', 'pca', 'environmental'],
        'Structured Data': ['.json', '.yaml', '.yml'],
        'Documentation': ['.md', '.txt', 'readme', 'memo'],
    },
    'income_items': {
        'rentalIncome': ['rental income', 'rent income', 'gross potential rent'],
        'commercialIncome': ['commercial income', 'retail income'],
        'otherIncome': ['other income', 'miscellaneous'],
        'totalRevenue': ['total income', 'gross income', 'total revenue', 'effective gross income'],
    },
    'expense_items': {
        'management': ['management fee'],
        'maintenance': ['maintenance', 'repair'],
        'utilities': ['utilities'],
        'insurance': ['insurance'],
        'taxes': ['tax'],
        'marketing': ['marketing', 'advertising'],
        'administrative': ['administrative', 'payroll'],
        'totalExpenses': ['total expense', 'total operating'],
    },
    'debt_items': {
        'debtService': ['debt service', 'mortgage payment'],
    },
    'compliance_keywords': ['violation', 'non-compliance', 'noncompliance', '8823'],
}

OTHER_CATEGORY = 'Other'


@lru_cache(maxsize=None)
def _load_mappings_file(path: str) -> Dict:
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def load_mappings(path: Optional[Path] = None) -> Dict:
    """
    Keyword tables from mappings.yaml, section by section falling back
    to the built-in defaults.
    """
    path = Path(path or MAPPINGS_PATH)
    try:
        loaded = _load_mappings_file(str(path))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not read mappings from %s (%s); using defaults", path, e)
        loaded = {}

    mappings = dict(DEFAULT_MAPPINGS)
    for section, value in loaded.items():
        if value:
            mappings[section] = value
    return mappings


def categorize(relative_path: str, mappings: Optional[Dict] = None) -> str:
    """Category of a file by lowercase path substring, first category wins"""
    mappings = mappings or load_mappings()
    path_str = relative_path.lower()
    for category, keywords in mappings['document_categories'].items():
        if any(keyword in path_str for keyword in keywords):
            return category
    return OTHER_CATEGORY


def catalog_documents(folder: Path, mappings: Optional[Dict] = None) -> List[SourceDocument]:
    """Every file below ``folder`` (recursively), sorted by path"""
    mappings = mappings or load_mappings()
    documents: List[SourceDocument] = []

    for path in sorted(folder.rglob('*')):
        if not path.is_file():
            continue
        try:
            stat = path.stat()
        except OSError as e:
            logger.warning("Skipping unreadable file %s: %s", path, e)
            continue

        relative = path.relative_to(folder).as_posix()
        documents.append(SourceDocument(
            file_name=path.name,
            category=categorize(relative, mappings),
            path=relative,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            .isoformat(timespec='seconds').replace('+00:00', 'Z'),
        ))

    return documents
