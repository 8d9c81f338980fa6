"""
Document extractor - turns a due-diligence folder into typed deal records.

Missing or malformed source files never raise here; they degrade to TBD or
zero values and a logged warning.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from config import settings
from ingestion.catalog import categorize, load_mappings
from ingestion.financials import FinancialsExtractor
from ingestion.loader import FileLoader
from ingestion.rent_roll import RentRollExtractor, placeholder_tenants
from models.deal import (
    Address,
    Approvals,
    BasicInfo,
    Deal,
    FinancialSummary,
    LihtcInfo,
    Tenant,
)
from utils.helpers import parse_number

logger = logging.getLogger(__name__)

LEGAL_SCAN_EXTENSIONS = ['.pdf', '.docx', '.txt']
MAX_VIOLATIONS_PER_FILE = 5


@dataclass
class ExtractionResult:
    """Typed output of one extraction pass"""
    deal: Deal
    tenants: List[Tenant]
    financial_summary: FinancialSummary
    rent_roll_found: bool = False
    facts_found: bool = False


def _first(data: Dict, *keys: str, default: Any = None) -> Any:
    """First present key, accepting camelCase and snake_case spellings"""
    if not isinstance(data, dict):
        return default
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _block(facts: Dict, *keys: str) -> Dict:
    """Nested facts mapping; anything else is ignored with a warning"""
    value = _first(facts, *keys, default={})
    if isinstance(value, dict):
        return value
    logger.warning("Deal facts '%s' is not a mapping; ignoring", keys[0])
    return {}


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    if isinstance(value, dict):
        logger.warning("Violation history is a mapping; ignoring")
        return []
    return [str(value)]


def _optional_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _optional_flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _as_int(value: Any, default: int = 0) -> int:
    number = parse_number(value)
    return int(number) if number is not None else default


class DocumentExtractor:
    """
    Extracts deal facts, tenant rows, T12 financials and compliance findings
    from a due-diligence folder
    """

    def __init__(self, loader: Optional[FileLoader] = None, mappings: Optional[Dict] = None):
        self.loader = loader or FileLoader()
        self.mappings = mappings or load_mappings()
        self.rent_roll = RentRollExtractor(self.loader)
        self.financials = FinancialsExtractor(self.loader, self.mappings)

    def extract(self, folder_path: str) -> ExtractionResult:
        folder = Path(folder_path)
        if not folder.is_dir():
            logger.warning("Due-diligence folder %s does not exist; using placeholder values", folder)

        facts = self.load_deal_facts(folder)
        deal = self.build_deal(folder, facts)

        try:
            tenants = self.rent_roll.extract_units(folder)
        except Exception as e:
            logger.warning("Rent roll extraction failed for %s: %s", folder, e)
            tenants = None

        rent_roll_found = tenants is not None
        if tenants is None:
            logger.warning("Using %d placeholder units for %s", settings.PLACEHOLDER_UNIT_COUNT, folder.name)
            tenants = placeholder_tenants()

        try:
            financial_summary = self.financials.extract(folder)
        except Exception as e:
            logger.warning("Financial extraction failed for %s: %s", folder, e)
            financial_summary = FinancialSummary()

        violations = self.scan_legal_documents(folder)
        if violations:
            deal.lihtc_info.violation_history = deal.lihtc_info.violation_history + violations
            deal.lihtc_info.currently_compliant = False

        if deal.basic_info.total_units <= 0 and rent_roll_found:
            deal.basic_info.total_units = len(tenants)

        return ExtractionResult(
            deal=deal,
            tenants=tenants,
            financial_summary=financial_summary,
            rent_roll_found=rent_roll_found,
            facts_found=bool(facts),
        )

    def load_deal_facts(self, folder: Path) -> Dict:
        """Optional deal.yaml (or property.yaml) in the folder root"""
        for name in settings.DEAL_FACTS_FILES:
            path = folder / name
            if not path.is_file():
                continue
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Could not read deal facts from %s: %s", path, e)
                return {}
            if not isinstance(data, dict):
                logger.warning("Deal facts in %s are not a mapping; ignoring", path)
                return {}
            logger.info("Loaded deal facts from %s", path.name)
            return data
        return {}

    def build_deal(self, folder: Path, facts: Dict) -> Deal:
        """Deal record from facts, settings defaults for everything missing"""
        property_name = str(_first(facts, 'propertyName', 'property_name', 'name', default=folder.name))

        address = Address.from_dict(facts.get('address') if isinstance(facts.get('address'), dict) else None)

        basic_info = BasicInfo(
            total_units=_as_int(_first(facts, 'totalUnits', 'total_units', 'units')),
            year_built=_as_int(_first(facts, 'yearBuilt', 'year_built')),
            property_type=str(_first(facts, 'propertyType', 'property_type',
                                     default=settings.DEFAULT_PROPERTY_TYPE)),
            asking_price=parse_number(_first(facts, 'askingPrice', 'asking_price', 'price')) or 0.0,
        )

        lihtc = _block(facts, 'lihtcInfo', 'lihtc')
        lihtc_info = LihtcInfo(
            currently_lihtc=bool(_first(lihtc, 'currentlyLIHTC', 'currently_lihtc', default=False)),
            placed_in_service_date=str(_first(lihtc, 'placedInServiceDate', 'placed_in_service_date',
                                              default=settings.TBD)),
            compliance_period_end=str(_first(lihtc, 'compliancePeriodEnd', 'compliance_period_end',
                                             default=settings.TBD)),
            extended_use_end=str(_first(lihtc, 'extendedUseEnd', 'extended_use_end', default=settings.TBD)),
            ami_restriction=_as_int(_first(lihtc, 'amiRestriction', 'ami_restriction'),
                                    default=settings.DEFAULT_AMI_RESTRICTION),
            set_aside_requirement=str(_first(lihtc, 'setAsideRequirement', 'set_aside_requirement',
                                             default=settings.DEFAULT_SET_ASIDE)),
            currently_compliant=bool(_first(lihtc, 'currentlyCompliant', 'currently_compliant', default=False)),
            violation_history=_string_list(_first(lihtc, 'violationHistory', 'violation_history')),
        )

        approvals = _block(facts, 'approvals')

        return Deal(
            id='',
            property_name=property_name,
            address=address,
            basic_info=basic_info,
            lihtc_info=lihtc_info,
            approvals=Approvals(
                ic_decision=_optional_text(_first(approvals, 'icDecision', 'ic_decision')),
                final_approval=_optional_text(_first(approvals, 'finalApproval', 'final_approval')),
                financing_status=_optional_text(_first(approvals, 'financingStatus', 'financing_status')),
                funds_ready=_optional_flag(_first(approvals, 'fundsReady', 'funds_ready')),
            ),
        )

    def scan_legal_documents(self, folder: Path) -> List[str]:
        """Lines mentioning compliance keywords in Legal pdf/docx/txt files"""
        if not folder.is_dir():
            return []

        keywords = [k.lower() for k in self.mappings['compliance_keywords']]
        findings: List[str] = []

        for path in sorted(folder.rglob('*')):
            if not path.is_file() or path.suffix.lower() not in LEGAL_SCAN_EXTENSIONS:
                continue
            relative = path.relative_to(folder).as_posix()
            if categorize(relative, self.mappings) != 'Legal':
                continue

            ok, message, doc = self.loader.load_file(str(path))
            if not ok or doc is None:
                logger.warning("Skipping legal document: %s", message)
                continue

            hits = 0
            for line in doc.raw_text.splitlines():
                text = line.strip()
                if text and any(k in text.lower() for k in keywords):
                    findings.append(f"{path.name}: {text}")
                    hits += 1
                    if hits >= MAX_VIOLATIONS_PER_FILE:
                        break

        if findings:
            logger.warning("Found %d compliance mentions in legal documents", len(findings))
        return findings
