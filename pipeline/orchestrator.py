"""
Underwriting orchestrator - entry point tying the extractor, builder,
stage processor and audit log together
"""
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from config import settings
from models.audit import AuditLog, AuditStatus, Decision
from models.deal import DealStructure
from models.stages import Stage
from pipeline.deal_builder import DealStructureBuilder
from pipeline.mover import SnapshotRegistry
from pipeline.stage_processor import StageProcessor, StageResult
from storage.audit_log import AuditLogStore
from storage.deal_store import DealStore
from storage.locks import deal_lock
from utils.errors import DealNotFoundError, PreconditionError, UnderwritingError
from utils.helpers import utc_now_iso
from utils.validations import validate_deal_status

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TERMINAL_STATUSES = (AuditStatus.COMPLETED, AuditStatus.REJECTED)


class UnderwritingOrchestrator:
    """
    Runs deals through the canonical stages one stage at a time
    """

    def __init__(
        self,
        processed_deals_path: Optional[PathLike] = None,
        pipeline_root: Optional[PathLike] = None,
        builder: Optional[DealStructureBuilder] = None,
        processor: Optional[StageProcessor] = None,
        audit_store: Optional[AuditLogStore] = None,
        registry: Optional[SnapshotRegistry] = None,
    ):
        self.processed_deals_path = Path(processed_deals_path or settings.PROCESSED_DEALS_PATH)
        self.audit_store = audit_store or AuditLogStore()
        self.builder = builder or DealStructureBuilder(self.processed_deals_path)
        self.processor = processor or StageProcessor(audit_store=self.audit_store)
        self.registry = registry or SnapshotRegistry(pipeline_root or settings.PIPELINE_PATH)

    def resolve_deal_path(self, deal_ref: PathLike) -> Path:
        """
        A deal folder path, or a deal id looked up in the snapshot registry
        and then under the processed-deals directory
        """
        path = Path(deal_ref)
        if path.is_dir():
            return path

        canonical = self.registry.canonical_path(str(deal_ref))
        if canonical is not None and canonical.is_dir():
            return canonical

        processed = self.processed_deals_path / str(deal_ref)
        if processed.is_dir():
            return processed

        raise DealNotFoundError(f"Deal not found: {deal_ref}", {'deal': str(deal_ref)})

    def process_folder(self, folder_path: PathLike) -> DealStructure:
        return self.builder.process_folder(folder_path)

    def current_stage(self, deal_path: PathLike) -> int:
        """Last recorded canonical stage number, 0 when nothing is recorded"""
        return self._stage_number(self.audit_store.load(deal_path))

    @staticmethod
    def _stage_number(log: Optional[AuditLog]) -> int:
        if log is None or log.last_entry is None:
            return 0
        try:
            return int(log.current_stage)
        except (TypeError, ValueError):
            raise PreconditionError(
                f"Audit log is at pipeline stage {log.current_stage}, not a numeric stage",
                {'stage': log.current_stage},
            )

    def resume_stage(self, deal_path: PathLike) -> Optional[int]:
        """
        Stage the next run starts at.

        One past the last recorded stage when it advanced, the same stage again
        when it was held or sent back for more information, and None once the
        deal is completed or rejected.
        """
        log = self.audit_store.load(deal_path)
        current = self._stage_number(log)
        if current == 0:
            return 1
        if log.current_status in TERMINAL_STATUSES:
            return None
        if log.last_entry.decision.audit_value is Decision.ADVANCE:
            return current + 1
        return current

    def process_to_stage(self, deal_ref: PathLike, target_stage: Any) -> List[StageResult]:
        """
        Run every stage from the resume point up to ``target_stage``.
        Stops at the first stage that does not advance. Completed and
        rejected deals are left untouched.
        """
        deal_path = self.resolve_deal_path(deal_ref)
        target = StageProcessor.canonical_stage(target_stage)
        start = self.resume_stage(deal_path)

        results: List[StageResult] = []
        if start is None:
            status = self.audit_store.load(deal_path).current_status
            logger.info("%s is %s; nothing to process", deal_path.name, status.value)
            return results
        if start > target.number:
            logger.info("%s is already past stage %d", deal_path.name, target.number)
            return results

        self._set_status(deal_path, 'processing')

        for number in range(start, target.number + 1):
            try:
                result = self.processor.process_stage(deal_path, number)
            except UnderwritingError as e:
                logger.error("Stage %d failed for %s: %s", number, deal_path.name, e)
                raise
            results.append(result)

            if result.decision.recommendation is Decision.REJECT:
                self._set_status(deal_path, 'rejected')
                logger.info("%s rejected at stage %d", result.deal_id, number)
                break
            if result.decision.recommendation is not Decision.ADVANCE:
                logger.info("%s stopped at stage %d with %s",
                            result.deal_id, number, result.decision.recommendation.value)
                break
            if result.stage.is_final:
                self._set_status(deal_path, 'completed')

        return results

    def process_all_stages(self, deal_ref: PathLike) -> List[StageResult]:
        return self.process_to_stage(deal_ref, Stage.FINAL_APPROVAL)

    def status(self, deal_ref: PathLike) -> Optional[dict]:
        return self.audit_store.status(self.resolve_deal_path(deal_ref))

    def summary(self, deal_ref: PathLike) -> Optional[str]:
        return self.audit_store.summarize(self.resolve_deal_path(deal_ref))

    @staticmethod
    def _set_status(deal_path: Path, status: str):
        if not validate_deal_status(status):
            raise ValueError(f"Invalid deal status: {status}")
        store = DealStore(deal_path)
        with deal_lock(deal_path):
            deal = store.load_deal()
            if deal.status == status:
                return
            deal.status = status
            deal.updated_at = utc_now_iso()
            store.save_deal(deal)
