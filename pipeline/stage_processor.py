"""
Stage processor - runs one canonical stage against a processed deal folder
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from engine.reports import ReportRenderer
from engine.rules import CanonicalStagePolicy, StageDecision
from models.audit import AuditLogEntry
from models.stages import Stage, resolve_stage
from storage.audit_log import AuditLogStore
from storage.deal_store import DealStore
from storage.locks import deal_lock
from utils.errors import UnknownStageError
from utils.helpers import utc_now_iso

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class StageResult:
    """Outcome of one processed stage"""
    deal_id: str
    stage: Stage
    decision: StageDecision
    entry: AuditLogEntry
    entry_id: str
    report_path: Path

    @property
    def recommendation(self):
        return self.decision.recommendation


class StageProcessor:
    """
    Decides a stage with the canonical policy and records the outcome:
    audit entry, stage report and journey section.
    """

    def __init__(
        self,
        policy: Optional[CanonicalStagePolicy] = None,
        audit_store: Optional[AuditLogStore] = None,
    ):
        self.policy = policy or CanonicalStagePolicy()
        self.audit_store = audit_store or AuditLogStore()

    @staticmethod
    def canonical_stage(stage_number) -> Stage:
        stage = resolve_stage(stage_number)
        if not isinstance(stage, Stage):
            raise UnknownStageError(f"Not a numeric stage: {stage_number}", {'stage': str(stage_number)})
        return stage

    def process_stage(self, deal_path: PathLike, stage_number) -> StageResult:
        stage = self.canonical_stage(stage_number)
        store = DealStore(deal_path)

        deal = store.load_deal()
        tenants = store.load_tenants()
        financials = store.load_financials()

        logger.info("Analyzing %s at stage %d: %s", deal.id, stage.number, stage.display_name)
        decision = self.policy.decide(stage, deal, tenants, financials)
        entry = decision.to_audit_entry(
            timestamp=utc_now_iso(),
            documentation=[stage.report_file_name],
        )

        with deal_lock(deal_path):
            if not self.audit_store.exists(deal_path):
                self.audit_store.initialize(deal_path, deal.id, deal.property_name)
            entry_id = self.audit_store.append(deal_path, entry)
            report_path = store.write_output(stage.report_file_name, ReportRenderer.stage_report(deal.id, entry))
            store.append_journey(ReportRenderer.journey_stage_section(entry))

        logger.info("Stage %d decision for %s: %s (confidence %d)",
                    stage.number, deal.id, decision.recommendation.value, decision.confidence)

        return StageResult(
            deal_id=deal.id,
            stage=stage,
            decision=decision,
            entry=entry,
            entry_id=entry_id,
            report_path=report_path,
        )

    def rebuild_outputs(self, deal_path: PathLike) -> List[Path]:
        """
        Re-render every canonical stage report from the audit log.
        The latest entry per stage wins.
        """
        store = DealStore(deal_path)
        written: List[Path] = []

        with deal_lock(deal_path):
            log = self.audit_store.load(deal_path)
            if log is None:
                return written

            latest = {}
            for entry in log.entries:
                try:
                    stage = resolve_stage(entry.stage)
                except UnknownStageError:
                    logger.warning("Skipping entry with unknown stage %s", entry.stage)
                    continue
                if isinstance(stage, Stage):
                    latest[stage] = entry

            for stage in sorted(latest, key=lambda s: s.number):
                report = ReportRenderer.stage_report(log.deal_id, latest[stage])
                written.append(store.write_output(stage.report_file_name, report))

        logger.info("Rebuilt %d stage reports for %s", len(written), log.deal_id)
        return written
