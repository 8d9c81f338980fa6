"""
Helper utility functions
"""
from datetime import datetime, date, timezone
from pathlib import Path
from typing import Any, Optional, Union
import os
import re
import tempfile


def format_currency(amount: float) -> str:
    """Format a number as currency"""
    if amount < 0:
        return f"-${abs(amount):,.2f}"
    return f"${amount:,.2f}"


def format_whole_currency(amount: float) -> str:
    """Format a number as currency without cents (e.g. "$45,000")"""
    if amount < 0:
        return f"-${abs(amount):,.0f}"
    return f"${amount:,.0f}"


def format_percentage(value: float) -> str:
    """Format a value that is already a percentage (e.g. 75.0 -> "75.0%")"""
    return f"{value:.1f}%"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision"""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a spreadsheet cell to float.
    Returns None for blanks and non-numeric text.
    Examples: 1250, "$1,250.00", "(500)", " 42 "
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        # NaN never equals itself
        if value != value:
            return None
        return float(value)

    text = str(value).strip()
    if text in ['', '-', 'N/A', 'n/a']:
        return None

    text = text.replace('$', '').replace(',', '').strip()

    # Handle parentheses as negative
    if text.startswith('(') and text.endswith(')'):
        text = '-' + text[1:-1]

    try:
        return float(text)
    except ValueError:
        return None


def parse_date(date_str: Any) -> Optional[date]:
    """
    Parse various date formats to a date object
    """
    if not date_str:
        return None

    if isinstance(date_str, datetime):
        return date_str.date()

    if isinstance(date_str, date):
        return date_str

    formats = [
        "%Y-%m-%d",  # 2026-02-01
        "%Y-%m-%d %H:%M:%S",  # 2026-02-01 00:00:00
        "%m/%d/%Y",  # 02/01/2026
        "%m/%d/%y",  # 02/01/26
        "%Y/%m/%d",  # 2026/02/01
        "%b %d, %Y",  # Feb 01, 2026
        "%B %d, %Y",  # February 01, 2026
        "%b %Y",  # Feb 2026
        "%B %Y",  # February 2026
    ]

    for fmt in formats:
        try:
            return datetime.strptime(str(date_str).strip(), fmt).date()
        except ValueError:
            continue

    return None


def cell_text(value: Any) -> str:
    """Render a spreadsheet cell as stripped text ('' for blanks)"""
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:
            return ""
        if value.is_integer():
            return str(int(value))
    if isinstance(value, (datetime, date)):
        return parse_date(value).isoformat()
    return str(value).strip()


def clean_unit_number(unit_str: Any) -> str:
    """
    Clean and standardize unit number
    Examples: "Unit 0205" -> "0205", "#205" -> "205", 101.0 -> "101"
    """
    unit = cell_text(unit_str)
    if not unit:
        return ""

    # Remove common prefixes
    unit = re.sub(r'^(Unit|Apt|Apartment|#)\s*', '', unit, flags=re.IGNORECASE)

    return unit.strip()


def slugify(text: str) -> str:
    """Lowercase, hyphen-separated identifier (e.g. "The Frank" -> "the-frank")"""
    slug = re.sub(r'[^a-z0-9]+', '-', str(text).lower()).strip('-')
    return slug or 'deal'


def generate_deal_id(property_name: str, reanalysis: bool = False, now: Optional[datetime] = None) -> str:
    """Generate a deal id from the property name and a timestamp"""
    from config import settings

    stamp = (now or utc_now()).strftime(settings.TIMESTAMP_ID_FORMAT)
    deal_id = f"{slugify(property_name)}-{stamp}"
    if reanalysis:
        return f"reanalysis-{deal_id}"
    return deal_id


def atomic_write_text(path: Union[str, Path], content: str):
    """Write a file by replacing it with a fully written temp file"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def append_text(path: Union[str, Path], content: str):
    """Append to a text file, creating it if needed"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'a', encoding='utf-8') as f:
        f.write(content)
