"""
Markdown rendering for stage reports, the analysis journey and audit summaries.

Every renderer is a pure function of its inputs; stage reports are rendered
from the appended audit entry so they can be rebuilt from the log alone.
"""
from typing import Any, List

from models.audit import AuditLog, AuditLogEntry
from models.deal import Deal, FinancialSummary, SourceDocument, Tenant
from models.stages import Stage, get_stage_definition, resolve_stage
from utils.errors import UnknownStageError
from utils.helpers import format_currency, format_percentage, format_whole_currency


def format_metric(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if value is None:
        return "not recorded"
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(value)


def _bullets(items: List[str]) -> str:
    return "".join(f"- {item}\n" for item in items)


def _objectives(stage_label: Any) -> List[str]:
    """Objectives of a canonical stage; lettered stages have none"""
    try:
        stage = resolve_stage(stage_label)
    except UnknownStageError:
        return []
    if not isinstance(stage, Stage):
        return []
    return get_stage_definition(stage).objectives


class ReportRenderer:
    """
    Generates human-readable markdown for deals and their decisions
    """

    FOOTER = "*Generated by the LIHTC underwriting pipeline*"

    @staticmethod
    def stage_report(deal_id: str, entry: AuditLogEntry) -> str:
        """Per-stage report written to Outputs/"""
        md = f"# {entry.stage_name} (Stage {entry.stage})\n\n"
        md += f"**Deal**: {deal_id}\n"
        md += f"**Date**: {entry.timestamp}\n"
        md += f"**Decision**: {entry.decision.value}\n"
        if entry.confidence_score is not None:
            md += f"**Confidence**: {entry.confidence_score}\n"
        md += "\n"

        md += "## Executive Summary\n\n"
        md += f"{entry.reasoning}\n\n"

        objectives = _objectives(entry.stage)
        if objectives:
            md += "## Stage Objectives\n\n"
            md += _bullets(objectives) + "\n"

        md += "## Key Findings\n\n"
        md += _bullets(entry.key_findings) + "\n"

        if entry.metrics:
            md += "## Key Metrics\n\n"
            for key, value in entry.metrics.items():
                md += f"- **{key}**: {format_metric(value)}\n"
            md += "\n"

        if entry.red_flags:
            md += "## Risks Identified\n\n"
            md += _bullets(entry.red_flags) + "\n"

        if entry.next_steps:
            md += "## Recommendations\n\n"
            md += _bullets(entry.next_steps) + "\n"

        md += "## Next Action\n\n"
        md += f"{entry.next_action}\n\n"
        md += "---\n"
        md += f"{ReportRenderer.FOOTER}\n"
        return md

    @staticmethod
    def journey_header(
        deal: Deal,
        tenants: List[Tenant],
        financials: FinancialSummary,
        source_documents: List[SourceDocument],
    ) -> str:
        """Initial AnalysisJourney.md written when a deal is created"""
        occupancy = financials.occupancy_metrics
        md = f"# Analysis Journey: {deal.property_name}\n\n"
        md += f"**Deal ID**: {deal.id}\n"
        md += f"**Created**: {deal.created_at}\n"
        md += f"**Status**: {deal.status}\n\n"

        md += "## Deal Overview\n\n"
        address = deal.address
        md += f"- **Address**: {address.street}, {address.city}, {address.state} {address.zip}\n"
        md += f"- **Property Type**: {deal.basic_info.property_type}\n"
        md += f"- **Total Units**: {deal.basic_info.total_units}\n"
        md += f"- **Year Built**: {deal.basic_info.year_built or 'TBD'}\n"
        if deal.basic_info.asking_price > 0:
            md += f"- **Asking Price**: {format_whole_currency(deal.basic_info.asking_price)}\n"
            md += f"- **Price per Unit**: {format_whole_currency(deal.basic_info.price_per_unit)}\n"
        else:
            md += "- **Asking Price**: TBD\n"
        md += f"- **Currently LIHTC**: {'Yes' if deal.lihtc_info.currently_lihtc else 'No'}\n\n"

        md += "## Extracted Data\n\n"
        md += f"- **Tenant Records**: {len(tenants)}\n"
        md += f"- **Occupancy**: {format_percentage(occupancy.occupancy_rate)}\n"
        md += f"- **Financial Period**: {financials.period} ({financials.period_start} to {financials.period_end})\n"
        md += f"- **Total Revenue**: {format_currency(financials.total_revenue)}\n"
        md += f"- **Total Expenses**: {format_currency(financials.total_expenses)}\n"
        md += f"- **Net Operating Income**: {format_currency(financials.net_operating_income)}\n"
        md += f"- **Expense Ratio**: {format_percentage(financials.key_metrics.expense_ratio)}\n\n"

        md += "## Source Documents\n\n"
        if source_documents:
            for doc in source_documents:
                md += f"- {doc.path} ({doc.category})\n"
        else:
            md += "- none found\n"
        md += "\n## Stage History\n\n"
        return md

    @staticmethod
    def journey_stage_section(entry: AuditLogEntry) -> str:
        """Section appended to the journey after each stage decision"""
        md = f"### Stage {entry.stage}: {entry.stage_name}\n\n"
        md += f"- **Date**: {entry.timestamp}\n"
        md += f"- **Decision**: {entry.decision.value}\n"
        if entry.confidence_score is not None:
            md += f"- **Confidence**: {entry.confidence_score}\n"
        md += f"- **Reasoning**: {entry.reasoning}\n"
        md += f"- **Next Action**: {entry.next_action}\n"
        if entry.documentation:
            md += f"- **Report**: {', '.join(entry.documentation)}\n"
        return md + "\n"

    @staticmethod
    def journey_move_record(
        from_stage: str,
        to_stage: str,
        decision: str,
        destination: str,
        timestamp: str,
    ) -> str:
        """Pipeline Move record appended to the journey at the new location"""
        md = "### Pipeline Move\n\n"
        md += f"- **Date**: {timestamp}\n"
        md += f"- **From**: {from_stage}\n"
        md += f"- **To**: {to_stage}\n"
        md += f"- **Decision**: {decision}\n"
        md += f"- **Location**: {destination}\n"
        return md + "\n"

    @staticmethod
    def audit_summary(log: AuditLog) -> str:
        """Chronological history, one section per entry"""
        md = "# Audit Trail Summary\n\n"
        md += f"**Deal**: {log.property_name} ({log.deal_id})\n"
        md += f"**Status**: {log.current_status.value}\n"
        md += f"**Current Stage**: {log.current_stage}\n"
        md += f"**Started**: {log.created_at}\n"
        md += f"**Last Updated**: {log.last_updated}\n\n"

        md += "## Stage History\n\n"
        if not log.entries:
            md += "No stage decisions recorded yet.\n"
            return md

        for entry in log.entries:
            md += f"### {entry.stage_name} (Stage {entry.stage})\n"
            md += f"- **Decision**: {entry.decision.value}\n"
            md += f"- **Date**: {entry.timestamp}\n"
            md += f"- **Reasoning**: {entry.reasoning}\n"
            if entry.key_findings:
                md += "- **Key Findings**:\n"
                md += "".join(f"  - {finding}\n" for finding in entry.key_findings)
            if entry.red_flags:
                md += "- **Red Flags**:\n"
                md += "".join(f"  - {flag}\n" for flag in entry.red_flags)
            md += "\n"
        return md
