"""
Rent roll extraction - maps rent roll rows to Tenant records
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import settings
from ingestion.loader import FileLoader
from ingestion.parsers import ParsedDocument
from models.deal import Tenant
from utils.helpers import cell_text, clean_unit_number, parse_date, parse_number
from utils.validations import validate_occupancy_status

logger = logging.getLogger(__name__)


def map_columns(header: List[Any]) -> Dict[str, int]:
    """
    Map header cells to semantic fields by substring.
    The first matching branch wins for a cell; the first cell wins for a field.
    """
    columns: Dict[str, int] = {}

    for idx, cell in enumerate(header):
        name = cell_text(cell).lower()
        if not name:
            continue

        if 'unit' in name and 'type' not in name:
            field_name = 'unit_number'
        elif 'unit' in name and 'type' in name:
            field_name = 'unit_type'
        elif 'bedroom' in name or name == 'br' or name.startswith('br '):
            field_name = 'bedrooms'
        elif 'rent' in name and 'market' not in name:
            field_name = 'monthly_rent'
        elif 'market' in name and 'rent' in name:
            field_name = 'market_rent'
        elif ('tenant' in name or 'resident' in name) and 'type' not in name:
            field_name = 'tenant_name'
        elif 'sqft' in name or 'sq ft' in name or 'sq. ft' in name:
            field_name = 'sqft'
        elif 'lease' in name and 'start' in name:
            field_name = 'lease_start'
        elif 'lease' in name and 'end' in name:
            field_name = 'lease_end'
        elif 'status' in name or 'occupancy' in name:
            field_name = 'status'
        elif 'deposit' in name:
            field_name = 'security_deposit'
        elif 'ami' in name:
            field_name = 'ami_level'
        else:
            continue

        columns.setdefault(field_name, idx)

    return columns


def occupancy_status(status_cell: Any, tenant_name: str) -> str:
    """
    Explicit status column wins; otherwise a named tenant means occupied.
    """
    status = cell_text(status_cell).lower()
    if status:
        if status in ['vacant', 'v'] or status.startswith('vacant'):
            return 'vacant'
        if 'ntv' in status or 'notice' in status:
            return 'notice'
        if validate_occupancy_status(status):
            return status
        return 'occupied'

    if tenant_name and tenant_name.lower() != 'vacant':
        return 'occupied'
    return 'vacant'


def _date_text(value: Any) -> str:
    parsed = parse_date(value)
    if parsed:
        return parsed.isoformat()
    return cell_text(value) or settings.TBD


def _ami_level(value: Any) -> Optional[int]:
    text = cell_text(value).replace('%', '')
    number = parse_number(text)
    if number is None or number <= 0:
        return None
    # 0.6 style fractions
    if number <= 1:
        number *= 100
    return int(round(number))


def _unit_type(row: List[Any], columns: Dict[str, int]) -> str:
    if 'unit_type' in columns:
        text = cell_text(_cell(row, columns['unit_type']))
        if text:
            return text
    if 'bedrooms' in columns:
        bedrooms = parse_number(_cell(row, columns['bedrooms']))
        if bedrooms is not None:
            return 'Studio' if bedrooms == 0 else f"{int(bedrooms)}BR"
    return 'Unknown'


def _cell(row: List[Any], idx: Optional[int]) -> Any:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def tenants_from_document(doc: ParsedDocument) -> List[Tenant]:
    """Build Tenant records from a parsed rent roll. Rows without a unit number are skipped."""
    if doc.header_row is None:
        logger.warning("No header row found in rent roll %s", doc.file_name)
        return []

    columns = map_columns(doc.header)
    if 'unit_number' not in columns:
        logger.warning("Rent roll %s has no unit column", doc.file_name)
        return []

    tenants: List[Tenant] = []
    for row in doc.data_rows:
        unit_number = clean_unit_number(_cell(row, columns['unit_number']))
        if not unit_number or unit_number.lower().startswith('total'):
            continue

        tenant_name = cell_text(_cell(row, columns.get('tenant_name')))
        market_rent = parse_number(_cell(row, columns.get('market_rent')))
        ami_level = _ami_level(_cell(row, columns.get('ami_level')))

        tenants.append(Tenant(
            unit_number=unit_number,
            unit_type=_unit_type(row, columns),
            sqft=parse_number(_cell(row, columns.get('sqft'))) or 0.0,
            monthly_rent=parse_number(_cell(row, columns.get('monthly_rent'))) or 0.0,
            market_rent=market_rent,
            security_deposit=parse_number(_cell(row, columns.get('security_deposit'))) or 0.0,
            tenant_name=tenant_name or settings.TBD,
            lease_start=_date_text(_cell(row, columns.get('lease_start'))),
            lease_end=_date_text(_cell(row, columns.get('lease_end'))),
            occupancy_status=occupancy_status(_cell(row, columns.get('status')), tenant_name),
            lihtc_qualified=ami_level is not None,
            ami_level=ami_level,
        ))

    return tenants


def placeholder_tenants(count: Optional[int] = None) -> List[Tenant]:
    """TBD tenant records used when no rent roll is available"""
    count = count if count is not None else settings.PLACEHOLDER_UNIT_COUNT
    return [
        Tenant(
            unit_number=str(i),
            unit_type=settings.TBD,
            tenant_name=settings.TBD,
            occupancy_status='occupied',
        )
        for i in range(1, count + 1)
    ]


class RentRollExtractor:
    """
    Finds and parses the rent roll inside a due-diligence folder
    """

    def __init__(self, loader: Optional[FileLoader] = None):
        self.loader = loader or FileLoader()

    def find_rent_roll(self, folder: Path) -> Optional[Path]:
        """Known candidate paths first, then any tabular file named like a rent roll"""
        for candidate in settings.RENT_ROLL_CANDIDATES:
            path = folder / candidate
            if path.is_file():
                return path

        for path in sorted(folder.rglob('*')):
            name = path.name.lower()
            if not path.is_file() or not self.loader.is_tabular(name):
                continue
            if 'rent roll' in name or 'rent_roll' in name or 'rentroll' in name:
                return path

        return None

    def extract_units(self, folder: Path) -> Optional[List[Tenant]]:
        """Units from the rent roll, or None when no usable rent roll exists"""
        path = self.find_rent_roll(folder)
        if path is None:
            logger.warning("No rent roll found in %s", folder)
            return None

        ok, message, doc = self.loader.load_file(str(path))
        if not ok or doc is None:
            logger.warning(message)
            return None

        tenants = tenants_from_document(doc)
        if not tenants:
            logger.warning("Rent roll %s yielded no units", path.name)
            return None

        logger.info("Extracted %d units from %s", len(tenants), path.name)
        return tenants

    def extract(self, folder: Path) -> List[Tenant]:
        tenants = self.extract_units(folder)
        if tenants is None:
            logger.warning("Using %d placeholder units", settings.PLACEHOLDER_UNIT_COUNT)
            return placeholder_tenants()
        return tenants
