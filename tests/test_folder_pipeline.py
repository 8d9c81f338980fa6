"""
Tests for the lettered folder pipeline processor.
"""
import json

import pytest

from config import settings
from models.audit import AuditStatus, Decision
from models.stages import PipelineStage
from pipeline.folder_pipeline import FolderPipelineProcessor
from storage.audit_log import AuditLogStore
from storage.deal_store import DealStore


@pytest.fixture
def processor(pipeline_root):
    return FolderPipelineProcessor(pipeline_root=pipeline_root)


@pytest.fixture
def intake(deal_dir_factory, pipeline_root):
    """Drop a deal into A-initial-intake/not-started; defaults pass every gate."""
    def _make(deal_id="test-deal", **kwargs):
        params = dict(
            asking_price=5000000,
            occupancy_rate=95.0,
            total_revenue=100000.0,
            net_operating_income=60000.0,
        )
        params.update(kwargs)
        path = pipeline_root / PipelineStage.INITIAL_INTAKE.value / settings.SUBSTATE_NOT_STARTED / deal_id
        return deal_dir_factory(path=path, deal_id=deal_id, **params)

    return _make


def _bucket(pipeline_root, stage, substate, deal_id="test-deal"):
    return pipeline_root / stage.value / substate / deal_id


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

def test_scan_finds_pending_deals(processor, intake):
    path = intake()
    pending = processor.scan_pending()

    assert len(pending) == 1
    assert pending[0].stage is PipelineStage.INITIAL_INTAKE
    assert pending[0].substate == settings.SUBSTATE_NOT_STARTED
    assert pending[0].path == path


def test_scan_of_missing_root_is_empty(tmp_path):
    assert FolderPipelineProcessor(pipeline_root=tmp_path / "nowhere").scan_pending() == []


def test_scan_skips_folders_without_deal_record(processor, pipeline_root):
    (pipeline_root / PipelineStage.INITIAL_INTAKE.value / settings.SUBSTATE_NOT_STARTED / "stray").mkdir(parents=True)
    assert processor.scan_pending() == []


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

def test_advance_moves_to_next_stage(processor, intake, pipeline_root):
    source = intake()
    run = processor.process_all_pending()

    assert run.failed == []
    assert len(run.processed) == 1
    result = run.processed[0]
    assert result.decision.recommendation is Decision.ADVANCE
    assert result.destination == _bucket(pipeline_root, PipelineStage.PRELIMINARY_ANALYSIS,
                                         settings.SUBSTATE_NOT_STARTED)

    analysis = json.loads((result.destination / "A-initial-intake-analysis.json").read_text())
    assert analysis['recommendation'] == "ADVANCE"
    assert analysis['dealId'] == "test-deal"

    log = AuditLogStore().load(result.destination)
    assert log.current_stage == "A-initial-intake"
    assert len(log.entries) == 1

    assert DealStore(source).exists()
    pending = processor.scan_pending()
    assert [p.path for p in pending] == [result.destination]


def test_deal_runs_through_every_stage(processor, intake, pipeline_root):
    intake()
    for _ in PipelineStage:
        run = processor.process_all_pending()
        assert len(run.processed) == 1

    final = _bucket(pipeline_root, PipelineStage.CLOSING, settings.SUBSTATE_NOT_STARTED)
    assert run.processed[0].destination == final
    assert DealStore(final).load_deal().status == "completed"

    log = AuditLogStore().load(final)
    assert log.current_status is AuditStatus.COMPLETED
    assert [e.stage for e in log.entries] == [s.value for s in PipelineStage]

    assert processor.scan_pending() == []


def test_small_deal_is_rejected_at_intake(processor, intake, pipeline_root):
    intake(total_units=3, asking_price=300000)
    run = processor.process_all_pending()

    result = run.processed[0]
    assert result.decision.recommendation is Decision.REJECT
    rejected = _bucket(pipeline_root, PipelineStage.INITIAL_INTAKE, settings.SUBSTATE_REJECTED)
    assert result.destination == rejected
    assert DealStore(rejected).load_deal().status == "rejected"
    assert AuditLogStore().load(rejected).current_status is AuditStatus.REJECTED

    assert processor.scan_pending() == []


def test_low_occupancy_needs_more_info(processor, intake, pipeline_root):
    intake(occupancy_rate=75.0)
    run = processor.process_all_pending()

    result = run.processed[0]
    assert result.decision.recommendation is Decision.REQUEST_MORE_INFO
    in_progress = _bucket(pipeline_root, PipelineStage.INITIAL_INTAKE, settings.SUBSTATE_IN_PROGRESS)
    assert result.destination == in_progress
    assert DealStore(in_progress).load_deal().status == "processing"

    pending = processor.scan_pending()
    assert [(p.substate, p.path) for p in pending] == [(settings.SUBSTATE_IN_PROGRESS, in_progress)]


def test_high_expense_ratio_requires_revisions(processor, intake, pipeline_root):
    intake(net_operating_income=52000.0)
    for _ in range(3):
        run = processor.process_all_pending()

    result = run.processed[0]
    assert result.stage is PipelineStage.FULL_UNDERWRITING
    assert result.decision.recommendation is Decision.REVISIONS_REQUIRED
    assert result.destination == _bucket(pipeline_root, PipelineStage.FULL_UNDERWRITING,
                                         settings.SUBSTATE_IN_PROGRESS)
    assert AuditLogStore().load(result.destination).entries[-1].decision is Decision.REQUEST_MORE_INFO


def test_failing_deal_does_not_stop_the_run(processor, intake, pipeline_root):
    intake()
    broken = pipeline_root / PipelineStage.INITIAL_INTAKE.value / settings.SUBSTATE_NOT_STARTED / "broken"
    (broken / settings.STRUCTURED_DIR).mkdir(parents=True)
    (broken / settings.STRUCTURED_DIR / settings.DEAL_FILE).write_text("{broken")

    run = processor.process_all_pending()

    assert [r.deal_id for r in run.processed] == ["test-deal"]
    assert len(run.failed) == 1
    assert run.failed[0][0] == str(broken)
