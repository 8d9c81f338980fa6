"""
Tests for storage.audit_log.
"""
import json

import pytest

from models.audit import AuditLogEntry, AuditStatus, Decision
from storage.audit_log import AuditLogStore
from utils.errors import (
    AuditLogConflictError,
    AuditLogExistsError,
    AuditLogNotInitializedError,
    PipelineIOError,
)


@pytest.fixture
def store():
    return AuditLogStore()


@pytest.fixture
def deal_path(tmp_path):
    path = tmp_path / "deal"
    path.mkdir()
    return path


def _entry(stage, decision=Decision.ADVANCE, timestamp="2026-01-01T00:00:00.000Z"):
    return AuditLogEntry(
        stage=stage,
        stage_name=f"Stage {stage}",
        decision=decision,
        reasoning=f"{decision.value} at stage {stage}",
        key_findings=["finding"],
        next_action="next",
        timestamp=timestamp,
    )


def test_initialize_creates_active_log(store, deal_path):
    log = store.initialize(deal_path, "deal-1", "Sunset Apartments")
    assert log.current_stage == 1
    assert log.current_status is AuditStatus.ACTIVE
    assert log.entries == []

    on_disk = json.loads(store.path_for(deal_path).read_text())
    assert on_disk['dealId'] == "deal-1"
    assert on_disk['entries'] == []


def test_initialize_never_overwrites(store, deal_path):
    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    store.append(deal_path, _entry(1))

    with pytest.raises(AuditLogExistsError):
        store.initialize(deal_path, "deal-1", "Sunset Apartments")
    assert len(store.load(deal_path).entries) == 1


def test_append_without_initialize_raises_and_writes_nothing(store, deal_path):
    with pytest.raises(AuditLogNotInitializedError):
        store.append(deal_path, _entry(1))
    assert not store.path_for(deal_path).exists()
    assert not store.path_for(deal_path).parent.exists()


def test_entries_are_appended_in_order(store, deal_path):
    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    ids = [store.append(deal_path, _entry(stage)) for stage in (1, 2, 3)]

    log = store.load(deal_path)
    assert ids == ["deal-1:1", "deal-1:2", "deal-1:3"]
    assert [e.stage for e in log.entries] == [1, 2, 3]
    assert log.current_stage == log.entries[-1].stage
    assert log.revision == 3


def test_reject_marks_log_rejected(store, deal_path):
    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    store.append(deal_path, _entry(1, Decision.REJECT))
    assert store.load(deal_path).current_status is AuditStatus.REJECTED


def test_status_follows_last_entry_only(store, deal_path):
    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    store.append(deal_path, _entry(1, Decision.HOLD))
    assert store.load(deal_path).current_status is AuditStatus.ON_HOLD

    store.append(deal_path, _entry(2, Decision.ADVANCE))
    assert store.load(deal_path).current_status is AuditStatus.ACTIVE


def test_final_stage_advance_completes(store, deal_path):
    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    store.append(deal_path, _entry(6))
    assert store.load(deal_path).current_status is AuditStatus.COMPLETED


def test_lettered_log_starts_at_intake(store, deal_path):
    store.initialize(deal_path, "deal-1", "Sunset Apartments", first_stage="A-initial-intake")
    store.append(deal_path, _entry("G-closing"))
    log = store.load(deal_path)
    assert log.current_stage == "G-closing"
    assert log.current_status is AuditStatus.COMPLETED


def test_append_stamps_missing_timestamp(store, deal_path):
    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    store.append(deal_path, _entry(1, timestamp=""))
    entry = store.load(deal_path).entries[0]
    assert entry.timestamp.endswith("Z")


def test_append_retries_on_conflict(store, deal_path, monkeypatch):
    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    original = store._save
    calls = {'count': 0}

    def flaky_save(path, log, expected_revision):
        calls['count'] += 1
        if calls['count'] == 1:
            raise AuditLogConflictError("simulated concurrent write")
        return original(path, log, expected_revision)

    monkeypatch.setattr(store, "_save", flaky_save)
    store.append(deal_path, _entry(1))

    assert calls['count'] == 2
    assert len(store.load(deal_path).entries) == 1


def test_append_gives_up_after_retries(deal_path, monkeypatch):
    store = AuditLogStore(retries=1)
    store.initialize(deal_path, "deal-1", "Sunset Apartments")

    def always_conflict(path, log, expected_revision):
        raise AuditLogConflictError("simulated concurrent write")

    monkeypatch.setattr(store, "_save", always_conflict)
    with pytest.raises(AuditLogConflictError) as excinfo:
        store.append(deal_path, _entry(1))
    assert excinfo.value.retryable


def test_save_detects_stale_revision(store, deal_path):
    log = store.initialize(deal_path, "deal-1", "Sunset Apartments")
    store.append(deal_path, _entry(1))
    with pytest.raises(AuditLogConflictError):
        store._save(deal_path, log, expected_revision=0)


def test_status_and_summary(store, deal_path):
    assert store.status(deal_path) is None
    assert store.summarize(deal_path) is None

    store.initialize(deal_path, "deal-1", "Sunset Apartments")
    store.append(deal_path, _entry(1))
    store.append(deal_path, _entry(2, Decision.HOLD))

    status = store.status(deal_path)
    assert status['stage'] == 2
    assert status['status'] == "ON_HOLD"
    assert status['lastEntry']['decision'] == "HOLD"

    summary = store.summarize(deal_path)
    assert "# Audit Trail Summary" in summary
    assert summary.index("Stage 1") < summary.index("Stage 2")


def test_corrupt_log_raises_io_error(store, deal_path):
    path = store.path_for(deal_path)
    path.parent.mkdir(parents=True)
    path.write_text("{not json")
    with pytest.raises(PipelineIOError):
        store.load(deal_path)
