"""
Tests for the stage processor and the underwriting orchestrator.
"""
import pytest

from config import settings
from models.audit import AuditStatus, Decision
from models.deal import Approvals
from models.stages import Stage
from pipeline.orchestrator import UnderwritingOrchestrator
from pipeline.stage_processor import StageProcessor
from storage.audit_log import AuditLogStore
from storage.deal_store import DealStore, write_json
from utils.errors import DealNotFoundError, PipelineIOError, UnknownStageError


@pytest.fixture
def orchestrator(processed_root, pipeline_root):
    return UnderwritingOrchestrator(processed_deals_path=processed_root, pipeline_root=pipeline_root)


def _patch_financials(deal_path, occupancy_rate, net_operating_income):
    store = DealStore(deal_path)
    financials = store.load_financials()
    financials.occupancy_metrics.occupancy_rate = occupancy_rate
    financials.net_operating_income = net_operating_income
    write_json(store.structured_dir / settings.FINANCIALS_FILE, financials.to_dict())


# ---------------------------------------------------------------------------
# Stage processor
# ---------------------------------------------------------------------------

def test_process_stage_records_decision(deal_dir_factory):
    deal_path = deal_dir_factory(asking_price=5000000, occupancy_rate=95.0)
    result = StageProcessor().process_stage(deal_path, 1)

    assert result.recommendation is Decision.ADVANCE
    assert result.entry_id == "test-deal:1"
    assert result.report_path == deal_path / settings.OUTPUTS_DIR / "Stage01_StrategicQualification.md"

    report = result.report_path.read_text()
    assert "# Strategic Qualification (Stage 1)" in report
    assert "**Decision**: ADVANCE" in report
    assert "## Stage Objectives" in report

    log = AuditLogStore().load(deal_path)
    assert len(log.entries) == 1
    assert log.entries[0].documentation == ["Stage01_StrategicQualification.md"]

    journey = DealStore(deal_path).journey_file.read_text()
    assert "### Stage 1: Strategic Qualification" in journey


def test_process_stage_requires_deal(tmp_path):
    with pytest.raises(DealNotFoundError):
        StageProcessor().process_stage(tmp_path, 1)


def test_process_stage_rejects_lettered_stage(deal_dir_factory):
    with pytest.raises(UnknownStageError):
        StageProcessor().process_stage(deal_dir_factory(), "A-initial-intake")


def test_rebuild_outputs_restores_reports(deal_dir_factory):
    deal_path = deal_dir_factory(asking_price=5000000, occupancy_rate=95.0)
    processor = StageProcessor()
    first = processor.process_stage(deal_path, 1)
    processor.process_stage(deal_path, 2)
    original = first.report_path.read_text()
    first.report_path.unlink()

    written = processor.rebuild_outputs(deal_path)

    assert [p.name for p in written] == ["Stage01_StrategicQualification.md", "Stage02_MarketIntelligence.md"]
    assert first.report_path.read_text() == original


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def test_end_to_end_advance_at_stage_one(orchestrator, sparse_dd_folder):
    structure = orchestrator.process_folder(sparse_dd_folder)
    assert structure.deal.basic_info.price_per_unit == 0

    _patch_financials(structure.output_path, occupancy_rate=75.0, net_operating_income=30000.0)
    results = orchestrator.process_to_stage(structure.output_path, 1)

    assert len(results) == 1
    assert results[0].recommendation is Decision.ADVANCE
    assert orchestrator.status(structure.output_path)['status'] == "ACTIVE"


def test_end_to_end_reject_on_low_occupancy(orchestrator, sparse_dd_folder):
    structure = orchestrator.process_folder(sparse_dd_folder)
    _patch_financials(structure.output_path, occupancy_rate=65.0, net_operating_income=30000.0)

    results = orchestrator.process_to_stage(structure.output_path, 6)

    assert len(results) == 1
    assert results[0].recommendation is Decision.REJECT
    assert "occupancy" in results[0].decision.reasoning.lower()
    assert orchestrator.status(structure.output_path)['status'] == "REJECTED"
    assert DealStore(structure.output_path).load_deal().status == "rejected"


def test_full_run_completes_deal(orchestrator, dd_folder):
    structure = orchestrator.process_folder(dd_folder)
    results = orchestrator.process_all_stages(structure.deal_id)

    assert [r.stage for r in results] == list(Stage)
    assert all(r.recommendation is Decision.ADVANCE for r in results)
    assert results[2].decision.red_flags

    log = AuditLogStore().load(structure.output_path)
    assert log.current_status is AuditStatus.COMPLETED
    assert DealStore(structure.output_path).load_deal().status == "completed"
    for stage in Stage:
        assert (DealStore(structure.output_path).outputs_dir / stage.report_file_name).is_file()


def test_process_to_stage_resumes_after_last_stage(orchestrator, dd_folder):
    structure = orchestrator.process_folder(dd_folder)
    orchestrator.process_to_stage(structure.output_path, 2)

    results = orchestrator.process_to_stage(structure.output_path, 4)
    assert [r.stage.number for r in results] == [3, 4]


def test_already_past_target_does_nothing(orchestrator, dd_folder):
    structure = orchestrator.process_folder(dd_folder)
    orchestrator.process_to_stage(structure.output_path, 3)

    assert orchestrator.process_to_stage(structure.output_path, 2) == []
    assert len(AuditLogStore().load(structure.output_path).entries) == 3


def test_hold_stops_the_run(orchestrator, deal_dir_factory):
    deal_path = deal_dir_factory(
        asking_price=5000000,
        occupancy_rate=95.0,
        approvals=Approvals(ic_decision="changes_requested"),
    )
    results = orchestrator.process_to_stage(deal_path, 6)

    assert [r.stage.number for r in results] == [1, 2, 3, 4, 5]
    assert results[-1].recommendation is Decision.HOLD
    assert orchestrator.status(deal_path)['status'] == "ON_HOLD"


def test_held_deal_resumes_at_the_held_stage(orchestrator, deal_dir_factory):
    deal_path = deal_dir_factory(
        asking_price=5000000,
        occupancy_rate=95.0,
        approvals=Approvals(ic_decision="changes_requested"),
    )
    orchestrator.process_to_stage(deal_path, 6)
    assert orchestrator.resume_stage(deal_path) == 5

    store = DealStore(deal_path)
    deal = store.load_deal()
    deal.approvals = Approvals(ic_decision="approved")
    store.save_deal(deal)

    results = orchestrator.process_to_stage(deal_path, 6)

    assert [r.stage.number for r in results] == [5, 6]
    assert orchestrator.status(deal_path)['status'] == "COMPLETED"
    assert store.load_deal().status == "completed"


def test_rejected_deal_is_not_reprocessed(orchestrator, deal_dir_factory):
    deal_path = deal_dir_factory(
        asking_price=5000000,
        occupancy_rate=95.0,
        approvals=Approvals(ic_decision="rejected"),
    )
    first = orchestrator.process_to_stage(deal_path, 6)
    assert first[-1].recommendation is Decision.REJECT

    assert orchestrator.resume_stage(deal_path) is None
    assert orchestrator.process_to_stage(deal_path, 6) == []

    log = AuditLogStore().load(deal_path)
    assert len(log.entries) == 5
    assert log.current_status is AuditStatus.REJECTED
    assert DealStore(deal_path).load_deal().status == "rejected"


def test_completed_deal_is_not_reprocessed(orchestrator, dd_folder):
    structure = orchestrator.process_folder(dd_folder)
    orchestrator.process_all_stages(structure.deal_id)

    assert orchestrator.process_all_stages(structure.deal_id) == []
    assert len(AuditLogStore().load(structure.output_path).entries) == 6
    assert DealStore(structure.output_path).load_deal().status == "completed"


def test_corrupt_deal_record_propagates(orchestrator, tmp_path):
    deal_path = tmp_path / "broken"
    (deal_path / settings.STRUCTURED_DIR).mkdir(parents=True)
    (deal_path / settings.STRUCTURED_DIR / settings.DEAL_FILE).write_text("{broken")

    with pytest.raises(PipelineIOError):
        orchestrator.process_to_stage(deal_path, 1)


def test_summary_by_deal_id(orchestrator, dd_folder):
    structure = orchestrator.process_folder(dd_folder)
    assert orchestrator.summary(structure.deal_id) is None

    orchestrator.process_to_stage(structure.deal_id, 1)
    summary = orchestrator.summary(structure.deal_id)
    assert "Strategic Qualification" in summary


def test_unknown_deal_raises(orchestrator):
    with pytest.raises(DealNotFoundError):
        orchestrator.status("no-such-deal")
