"""
Tests for the data models: stages, decisions, audit entries and deals.
"""
import pytest

from models.audit import AuditLog, AuditLogEntry, AuditStatus, Decision, derive_status
from models.deal import Deal, FinancialSummary, Tenant
from models.stages import PipelineStage, Stage, get_stage_definition, resolve_pipeline_stage, resolve_stage
from utils.errors import UnknownStageError


@pytest.mark.parametrize("value,expected", [
    (3, Stage.DUE_DILIGENCE),
    ("3", Stage.DUE_DILIGENCE),
    ("Stage 4", Stage.FINANCIAL_UNDERWRITING),
    (Stage.IC_REVIEW, Stage.IC_REVIEW),
    ("C-full-underwriting", PipelineStage.FULL_UNDERWRITING),
    ("g-closing", PipelineStage.CLOSING),
])
def test_resolve_stage(value, expected):
    assert resolve_stage(value) is expected


@pytest.mark.parametrize("value", [0, 7, "Z-unknown", "", True])
def test_resolve_stage_unknown(value):
    with pytest.raises(UnknownStageError):
        resolve_stage(value)


def test_resolve_pipeline_stage_rejects_numbers():
    with pytest.raises(UnknownStageError):
        resolve_pipeline_stage(2)


def test_stage_report_file_names():
    assert Stage.STRATEGIC_QUALIFICATION.report_file_name == "Stage01_StrategicQualification.md"
    assert Stage.DUE_DILIGENCE.report_file_name == "Stage03_DueDiligence.md"
    assert PipelineStage.INITIAL_INTAKE.report_file_name == "A-initial-intake-analysis.json"


def test_stage_ordering():
    assert Stage.IC_REVIEW.next() is Stage.FINAL_APPROVAL
    assert Stage.FINAL_APPROVAL.next() is None
    assert PipelineStage.INITIAL_INTAKE.next() is PipelineStage.PRELIMINARY_ANALYSIS
    assert PipelineStage.CLOSING.next() is None
    assert PipelineStage.CLOSING.ordinal == 7


def test_stage_definition_lookup():
    definition = get_stage_definition("Stage 1")
    assert definition.stage_name == "Strategic Qualification"
    assert definition.to_dict()['decisionCriteria']['rejectConditions']
    with pytest.raises(UnknownStageError):
        get_stage_definition("B-preliminary-analysis")


def test_decision_parse_and_audit_value():
    assert Decision.parse("request-more-info") is Decision.REQUEST_MORE_INFO
    assert Decision.parse("advance") is Decision.ADVANCE
    assert Decision.REVISIONS_REQUIRED.audit_value is Decision.REQUEST_MORE_INFO
    with pytest.raises(ValueError):
        Decision.parse("maybe")


def _entry(stage, decision):
    return AuditLogEntry(stage=stage, stage_name="Test", decision=decision, reasoning="r")


@pytest.mark.parametrize("decision,is_final,expected", [
    (Decision.REJECT, False, AuditStatus.REJECTED),
    (Decision.HOLD, False, AuditStatus.ON_HOLD),
    (Decision.ADVANCE, True, AuditStatus.COMPLETED),
    (Decision.ADVANCE, False, AuditStatus.ACTIVE),
    (Decision.REQUEST_MORE_INFO, True, AuditStatus.ACTIVE),
])
def test_derive_status(decision, is_final, expected):
    assert derive_status(_entry(1, decision), is_final) is expected


def test_audit_entry_serializes_revisions_as_more_info():
    entry = AuditLogEntry(
        stage="C-full-underwriting",
        stage_name="Full Underwriting",
        decision=Decision.REVISIONS_REQUIRED,
        reasoning="Underwriting needs revision.",
        confidence_score=70,
        red_flags=["Occupancy 88.0% is below 90.0%"],
    )
    data = entry.to_dict()
    assert data['decision'] == "REQUEST_MORE_INFO"
    assert data['confidenceScore'] == 70

    restored = AuditLogEntry.from_dict(data)
    assert restored.decision is Decision.REQUEST_MORE_INFO
    assert restored.red_flags == entry.red_flags


def test_audit_log_defaults_from_sparse_dict():
    log = AuditLog.from_dict({'dealId': 'abc', 'propertyName': 'P'})
    assert log.current_stage == 1
    assert log.current_status is AuditStatus.ACTIVE
    assert log.entries == []
    assert log.last_entry is None


def test_deal_from_dict_fills_defaults():
    deal = Deal.from_dict({'id': 'abc', 'propertyName': 'Sunset', 'basicInfo': {'totalUnits': 12}})
    assert deal.basic_info.total_units == 12
    assert deal.address.city == "TBD"
    assert deal.status == "incoming"
    assert deal.approvals.funds_ready is None
    assert deal.to_dict()['basicInfo']['totalUnits'] == 12


def test_tenant_from_dict_tolerates_nulls():
    tenant = Tenant.from_dict({'unitNumber': '101', 'marketRent': None, 'sqft': None})
    assert tenant.market_rent is None
    assert tenant.sqft == 0.0
    assert tenant.is_occupied


def test_financial_summary_keeps_all_expense_categories():
    summary = FinancialSummary.from_dict({'operatingExpenses': {'taxes': 12000}})
    assert summary.operating_expenses['taxes'] == 12000
    assert summary.operating_expenses['insurance'] == 0.0
