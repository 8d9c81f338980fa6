"""
JSON persistence for the per-deal folder layout:

    <deal>/Structured/{deal,tenants,financialSummary,sourceDocuments}.json
    <deal>/AnalysisJourney.md
    <deal>/Outputs/<stage report>.md
    <deal>/<stage>-analysis.json
"""
import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from config import settings
from models.deal import Deal, FinancialSummary, SourceDocument, Tenant
from utils.errors import DealNotFoundError, PipelineIOError
from utils.helpers import append_text, atomic_write_text

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def write_json(path: PathLike, data: Any):
    """Atomically write JSON; I/O failures become PipelineIOError"""
    try:
        atomic_write_text(path, json.dumps(data, indent=2) + "\n")
    except OSError as e:
        raise PipelineIOError(f"Could not write {path}: {e}", {'path': str(path)}) from e


def read_json(path: PathLike) -> Any:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


class DealStore:
    """
    Reads and writes one deal folder
    """

    def __init__(self, deal_path: PathLike):
        self.deal_path = Path(deal_path)

    @property
    def structured_dir(self) -> Path:
        return self.deal_path / settings.STRUCTURED_DIR

    @property
    def deal_file(self) -> Path:
        return self.structured_dir / settings.DEAL_FILE

    @property
    def journey_file(self) -> Path:
        return self.deal_path / settings.JOURNEY_FILE

    @property
    def outputs_dir(self) -> Path:
        return self.deal_path / settings.OUTPUTS_DIR

    def exists(self) -> bool:
        return self.deal_file.is_file()

    # ------------------------------------------------------------------
    # Structured triple
    # ------------------------------------------------------------------

    def save_structure(
        self,
        deal: Deal,
        tenants: List[Tenant],
        financial_summary: FinancialSummary,
        source_documents: List[SourceDocument],
    ):
        write_json(self.deal_file, deal.to_dict())
        write_json(self.structured_dir / settings.TENANTS_FILE, [t.to_dict() for t in tenants])
        write_json(self.structured_dir / settings.FINANCIALS_FILE, financial_summary.to_dict())
        write_json(self.structured_dir / settings.SOURCE_DOCUMENTS_FILE, [d.to_dict() for d in source_documents])
        logger.info("Saved structured deal data to %s", self.structured_dir)

    def save_deal(self, deal: Deal):
        write_json(self.deal_file, deal.to_dict())

    def load_deal(self) -> Deal:
        """The deal record; a missing record is a precondition failure"""
        if not self.exists():
            raise DealNotFoundError(
                f"No deal record at {self.deal_file}",
                {'path': str(self.deal_path)},
            )
        try:
            return Deal.from_dict(read_json(self.deal_file))
        except (OSError, ValueError) as e:
            raise PipelineIOError(f"Could not read {self.deal_file}: {e}", {'path': str(self.deal_file)}) from e

    def load_deal_or_none(self) -> Optional[Deal]:
        if not self.exists():
            return None
        return self.load_deal()

    def load_tenants(self) -> List[Tenant]:
        """Tenant records, empty when the file is missing or unreadable"""
        path = self.structured_dir / settings.TENANTS_FILE
        if not path.is_file():
            return []
        try:
            return [Tenant.from_dict(t) for t in read_json(path)]
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Could not read tenants from %s: %s", path, e)
            return []

    def load_financials(self) -> FinancialSummary:
        """Financial summary, all-zero when the file is missing or unreadable"""
        path = self.structured_dir / settings.FINANCIALS_FILE
        if not path.is_file():
            return FinancialSummary()
        try:
            return FinancialSummary.from_dict(read_json(path))
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Could not read financial summary from %s: %s", path, e)
            return FinancialSummary()

    # ------------------------------------------------------------------
    # Markdown and analysis outputs
    # ------------------------------------------------------------------

    def write_journey(self, content: str):
        try:
            atomic_write_text(self.journey_file, content)
        except OSError as e:
            raise PipelineIOError(f"Could not write {self.journey_file}: {e}") from e

    def append_journey(self, content: str):
        try:
            append_text(self.journey_file, content)
        except OSError as e:
            raise PipelineIOError(f"Could not append to {self.journey_file}: {e}") from e

    def write_output(self, file_name: str, content: str) -> Path:
        path = self.outputs_dir / file_name
        try:
            atomic_write_text(path, content)
        except OSError as e:
            raise PipelineIOError(f"Could not write {path}: {e}", {'path': str(path)}) from e
        return path

    def save_stage_analysis(self, file_name: str, data: dict) -> Path:
        path = self.deal_path / file_name
        write_json(path, data)
        return path
