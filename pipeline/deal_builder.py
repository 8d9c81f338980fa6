"""
Deal structure builder - turns a due-diligence folder into a persisted deal
"""
import logging
from pathlib import Path
from typing import Optional, Union

from config import settings
from engine.financial_metrics import apply_to_deal, recompute_summary
from engine.reports import ReportRenderer
from ingestion.catalog import catalog_documents
from ingestion.extractor import DocumentExtractor, ExtractionResult
from models.deal import Deal, DealStructure
from storage.deal_store import DealStore
from utils.errors import PipelineIOError
from utils.helpers import generate_deal_id, utc_now_iso

logger = logging.getLogger(__name__)


def _carry_forward(deal: Deal, prior: Deal):
    """Keep a re-processed deal's known facts when no facts file is present"""
    deal.property_name = prior.property_name
    deal.address = prior.address
    deal.basic_info.total_units = prior.basic_info.total_units or deal.basic_info.total_units
    deal.basic_info.year_built = prior.basic_info.year_built
    deal.basic_info.property_type = prior.basic_info.property_type
    deal.basic_info.asking_price = prior.basic_info.asking_price
    deal.lihtc_info = prior.lihtc_info
    deal.approvals = prior.approvals


class DealStructureBuilder:
    """
    Extracts, derives and persists the deal triple for one folder.
    Every run creates a new deal id and output directory.
    """

    def __init__(
        self,
        processed_deals_path: Union[str, Path, None] = None,
        extractor: Optional[DocumentExtractor] = None,
    ):
        self.processed_deals_path = Path(processed_deals_path or settings.PROCESSED_DEALS_PATH)
        self.extractor = extractor or DocumentExtractor()

    def create_output_dir(self, deal_id: str) -> Path:
        output_path = self.processed_deals_path / deal_id
        try:
            output_path.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise PipelineIOError(
                f"Could not create output directory {output_path}: {e}",
                {'dealId': deal_id, 'path': str(output_path)},
            ) from e
        return output_path

    @staticmethod
    def _reuse_prior_structure(result: ExtractionResult, prior_store: DealStore):
        """A processed deal folder has no source files; fall back to its structured data"""
        prior = prior_store.load_deal_or_none()
        if prior is not None and not result.facts_found:
            _carry_forward(result.deal, prior)

        if not result.rent_roll_found:
            prior_tenants = prior_store.load_tenants()
            if any(t.unit_type != settings.TBD for t in prior_tenants):
                result.tenants = prior_tenants
                result.rent_roll_found = True

        if result.financial_summary.total_revenue == 0:
            result.financial_summary = prior_store.load_financials()

    def process_folder(self, folder_path: Union[str, Path]) -> DealStructure:
        folder = Path(folder_path)
        logger.info("Processing deal from %s", folder)

        result: ExtractionResult = self.extractor.extract(str(folder))
        deal = result.deal

        prior_store = DealStore(folder)
        reanalysis = prior_store.exists()
        if reanalysis:
            self._reuse_prior_structure(result, prior_store)

        deal.id = generate_deal_id(deal.property_name, reanalysis=reanalysis)
        now = utc_now_iso()
        deal.status = 'incoming'
        deal.created_at = now
        deal.updated_at = now

        output_path = self.create_output_dir(deal.id)

        occupancy_tenants = result.tenants if result.rent_roll_found else []
        summary = recompute_summary(result.financial_summary, occupancy_tenants, deal.basic_info.total_units)
        apply_to_deal(deal, summary)

        source_documents = catalog_documents(folder, self.extractor.mappings)

        store = DealStore(output_path)
        store.save_structure(deal, result.tenants, summary, source_documents)
        store.write_journey(ReportRenderer.journey_header(deal, result.tenants, summary, source_documents))

        logger.info("Deal %s created at %s (%d units, %d documents)",
                    deal.id, output_path, deal.basic_info.total_units, len(source_documents))

        return DealStructure(
            deal=deal,
            tenants=result.tenants,
            financial_summary=summary,
            source_documents=source_documents,
            output_path=str(output_path),
        )
