"""
Folder pipeline processor - drives deals through the lettered stages.

Layout: <pipeline>/<stage>/<substate>/<deal folder>
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from config import settings
from engine.reports import ReportRenderer
from engine.rules import FolderPipelinePolicy, StageDecision
from models.audit import Decision
from models.stages import PipelineStage, resolve_pipeline_stage
from pipeline.mover import PipelineMover, SnapshotRegistry
from storage.audit_log import AuditLogStore
from storage.deal_store import DealStore
from storage.locks import deal_lock
from utils.errors import PipelineIOError
from utils.helpers import utc_now_iso

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class DealLocation:
    """A deal folder found in a pipeline bucket"""
    stage: PipelineStage
    substate: str
    path: Path


@dataclass
class FolderResult:
    deal_id: str
    stage: PipelineStage
    decision: StageDecision
    source: Path
    destination: Path


@dataclass
class PipelineRun:
    processed: List[FolderResult] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


class FolderPipelineProcessor:
    """
    Scans pending buckets, decides with the folder-pipeline policy and
    moves each deal to its next bucket
    """

    def __init__(
        self,
        pipeline_root: Optional[PathLike] = None,
        policy: Optional[FolderPipelinePolicy] = None,
        audit_store: Optional[AuditLogStore] = None,
        mover: Optional[PipelineMover] = None,
    ):
        self.pipeline_root = Path(pipeline_root or settings.PIPELINE_PATH)
        self.policy = policy or FolderPipelinePolicy()
        self.audit_store = audit_store or AuditLogStore()
        self.mover = mover or PipelineMover(self.pipeline_root, SnapshotRegistry(self.pipeline_root))

    def _is_current(self, path: Path) -> bool:
        """Skip closed deals and snapshots that are no longer canonical"""
        try:
            deal = DealStore(path).load_deal_or_none()
        except PipelineIOError as e:
            # surfaced as a failure when the deal is processed
            logger.warning("Unreadable deal record in %s: %s", path, e)
            return True
        if deal is None:
            logger.warning("Skipping %s: no deal record", path)
            return False
        if deal.status in ['completed', 'rejected']:
            return False
        canonical = self.mover.registry.canonical_path(deal.id)
        return canonical is None or canonical.resolve() == path.resolve()

    def scan_pending(self) -> List[DealLocation]:
        """Deals waiting in not-started or in-progress buckets, in stage order"""
        pending: List[DealLocation] = []
        for stage in PipelineStage:
            for substate in settings.PENDING_SUBSTATES:
                bucket = self.pipeline_root / stage.value / substate
                if not bucket.is_dir():
                    continue
                for path in sorted(bucket.iterdir()):
                    if path.is_dir() and not path.name.startswith('.') and self._is_current(path):
                        pending.append(DealLocation(stage=stage, substate=substate, path=path))
        return pending

    def process_location(self, location: DealLocation) -> FolderResult:
        stage = resolve_pipeline_stage(location.stage)
        store = DealStore(location.path)
        deal = store.load_deal()
        tenants = store.load_tenants()
        financials = store.load_financials()

        logger.info("Analyzing %s at %s", deal.id, stage.value)
        decision = self.policy.decide(stage, deal, tenants, financials)
        timestamp = utc_now_iso()
        entry = decision.to_audit_entry(timestamp=timestamp, documentation=[stage.report_file_name])

        with deal_lock(location.path):
            analysis = dict(decision.to_dict(), dealId=deal.id, timestamp=timestamp)
            store.save_stage_analysis(stage.report_file_name, analysis)
            if not self.audit_store.exists(location.path):
                self.audit_store.initialize(
                    location.path, deal.id, deal.property_name, first_stage=PipelineStage.INITIAL_INTAKE,
                )
            self.audit_store.append(location.path, entry)
            store.append_journey(ReportRenderer.journey_stage_section(entry))

        destination = self._route(location, deal.id, decision)
        return FolderResult(
            deal_id=deal.id,
            stage=stage,
            decision=decision,
            source=location.path,
            destination=destination,
        )

    def _route(self, location: DealLocation, deal_id: str, decision: StageDecision) -> Path:
        stage = location.stage
        recommendation = decision.recommendation

        if recommendation is Decision.ADVANCE:
            next_stage = stage.next()
            if next_stage is None:
                self._mark_completed(location.path)
                logger.info("%s completed the pipeline at %s", deal_id, stage.value)
                return location.path
            return self.mover.move(location.path, stage, next_stage, recommendation)

        return self.mover.move(location.path, stage, stage, recommendation)

    @staticmethod
    def _mark_completed(deal_path: Path):
        store = DealStore(deal_path)
        with deal_lock(deal_path):
            deal = store.load_deal()
            deal.status = 'completed'
            deal.updated_at = utc_now_iso()
            store.save_deal(deal)

    def process_all_pending(self) -> PipelineRun:
        """Process every pending deal; a failing deal does not stop the others"""
        run = PipelineRun()
        for location in self.scan_pending():
            try:
                run.processed.append(self.process_location(location))
            except Exception as e:
                logger.error("Failed to process %s at %s: %s", location.path, location.stage.value, e)
                run.failed.append((str(location.path), str(e)))

        logger.info("Pipeline run complete: %d processed, %d failed", len(run.processed), len(run.failed))
        return run
