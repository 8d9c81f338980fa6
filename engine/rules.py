"""
Stage rule engine - maps (stage, deal, tenants, financials) to a decision.

Two policies share the StagePolicy interface:
  CanonicalStagePolicy  numeric stages 1-6 (stage processor)
  FolderPipelinePolicy  lettered stages A-G (folder pipeline)

Policies are pure: no I/O and no clock, so identical inputs always give an
identical decision with identical finding order.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from config import settings
from engine.financial_metrics import (
    debt_service_coverage,
    market_rent_coverage,
    noi_per_unit,
    price_per_unit,
)
from models.audit import AuditLogEntry, Decision
from models.deal import Deal, FinancialSummary, Tenant
from models.stages import AnyStage, PipelineStage, Stage, resolve_stage
from utils.errors import UnknownStageError
from utils.helpers import format_percentage, format_whole_currency


@dataclass
class StageDecision:
    """Analysis and recommendation for one stage"""
    stage: AnyStage
    stage_name: str
    recommendation: Decision
    confidence: int
    reasoning: str
    key_findings: List[str] = field(default_factory=list)
    red_flags: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    next_action: str = ""
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'stage': self.stage.label,
            'stageName': self.stage_name,
            'recommendation': self.recommendation.value,
            'confidence': self.confidence,
            'reasoning': self.reasoning,
            'keyFindings': list(self.key_findings),
            'redFlags': list(self.red_flags),
            'nextSteps': list(self.next_steps),
            'nextAction': self.next_action,
            'metrics': dict(self.metrics),
        }

    def to_audit_entry(
        self,
        timestamp: str = "",
        analyst: Optional[str] = settings.ANALYST_ID,
        documentation: Optional[List[str]] = None,
    ) -> AuditLogEntry:
        return AuditLogEntry(
            stage=self.stage.label,
            stage_name=self.stage_name,
            decision=self.recommendation.audit_value,
            reasoning=self.reasoning,
            key_findings=list(self.key_findings),
            next_action=self.next_action,
            timestamp=timestamp,
            confidence_score=self.confidence,
            red_flags=list(self.red_flags),
            analyst=analyst,
            metrics=dict(self.metrics),
            next_steps=list(self.next_steps),
            documentation=list(documentation or []),
        )


@dataclass
class DealFacts:
    """Metric inputs shared by the rules, read once from the deal triple"""
    total_units: int
    asking_price: float
    price_per_unit: float
    occupancy_rate: float
    net_operating_income: float
    noi_per_unit: float
    expense_ratio: float
    total_revenue: float
    debt_service: float

    @classmethod
    def gather(cls, deal: Deal, financials: FinancialSummary) -> 'DealFacts':
        units = deal.basic_info.total_units or financials.occupancy_metrics.total_units
        ppu = deal.basic_info.price_per_unit or price_per_unit(deal.basic_info.asking_price, units)
        noi = financials.net_operating_income or deal.financial_data.net_operating_income
        revenue = financials.total_revenue or deal.financial_data.annual_gross_rent
        return cls(
            total_units=units,
            asking_price=deal.basic_info.asking_price,
            price_per_unit=ppu,
            occupancy_rate=financials.occupancy_metrics.occupancy_rate or deal.financial_data.occupancy_rate,
            net_operating_income=noi,
            noi_per_unit=noi_per_unit(noi, units),
            expense_ratio=financials.key_metrics.expense_ratio or deal.financial_data.expense_ratio,
            total_revenue=revenue,
            debt_service=financials.debt_service,
        )

    @property
    def price_known(self) -> bool:
        """Price 0 means the asking price is still TBD"""
        return self.price_per_unit > 0

    @property
    def occupancy_known(self) -> bool:
        return self.occupancy_rate > 0


def _price_text(facts: DealFacts) -> str:
    if not facts.price_known:
        return "TBD (asking price not provided)"
    return format_whole_currency(facts.price_per_unit)


def price_band_violation(facts: DealFacts) -> Optional[str]:
    """Reject reason when a known price per unit is outside the acquisition band"""
    if not facts.price_known:
        return None
    if facts.price_per_unit < settings.MIN_PRICE_PER_UNIT:
        return (f"price per unit {format_whole_currency(facts.price_per_unit)} is below the "
                f"{format_whole_currency(settings.MIN_PRICE_PER_UNIT)} minimum")
    if facts.price_per_unit > settings.MAX_PRICE_PER_UNIT:
        return (f"price per unit {format_whole_currency(facts.price_per_unit)} is above the "
                f"{format_whole_currency(settings.MAX_PRICE_PER_UNIT)} maximum")
    return None


def _sentence(text: str) -> str:
    return text[:1].upper() + text[1:]


def _join(reasons: List[str]) -> str:
    return "; ".join(reasons)


class StagePolicy:
    """
    Common interface for stage rule sets
    """

    name = "base"
    stage_type: type = Stage

    def stages(self) -> List[AnyStage]:
        return list(self.stage_type)

    def supports(self, stage: Any) -> bool:
        try:
            return isinstance(resolve_stage(stage), self.stage_type)
        except UnknownStageError:
            return False

    def resolve(self, stage: Any) -> AnyStage:
        resolved = resolve_stage(stage)
        if not isinstance(resolved, self.stage_type):
            raise UnknownStageError(
                f"Stage {resolved.label} is not handled by the {self.name} policy",
                {'stage': resolved.label, 'policy': self.name},
            )
        return resolved

    def decide(
        self,
        stage: Any,
        deal: Deal,
        tenants: List[Tenant],
        financials: FinancialSummary,
    ) -> StageDecision:
        raise NotImplementedError


class CanonicalStagePolicy(StagePolicy):
    """
    Reference policy for numeric stages 1-6.
    Within a stage REJECT conditions are checked before HOLD before ADVANCE.
    """

    name = "canonical"
    stage_type = Stage

    def __init__(self, estimated_irr: Optional[float] = None, estimated_dscr: Optional[float] = None):
        self.estimated_irr = estimated_irr if estimated_irr is not None else settings.DEFAULT_ESTIMATED_IRR
        self.estimated_dscr = estimated_dscr if estimated_dscr is not None else settings.DEFAULT_ESTIMATED_DSCR
        self._rules: Dict[Stage, Callable] = {
            Stage.STRATEGIC_QUALIFICATION: self.check_strategic_qualification,
            Stage.MARKET_INTELLIGENCE: self.check_market_intelligence,
            Stage.DUE_DILIGENCE: self.check_due_diligence,
            Stage.FINANCIAL_UNDERWRITING: self.check_financial_underwriting,
            Stage.IC_REVIEW: self.check_ic_review,
            Stage.FINAL_APPROVAL: self.check_final_approval,
        }

    def decide(self, stage, deal, tenants, financials) -> StageDecision:
        resolved = self.resolve(stage)
        facts = DealFacts.gather(deal, financials)
        return self._rules[resolved](resolved, deal, tenants, financials, facts)

    def _finish(
        self,
        stage: Stage,
        reject: List[str],
        hold: List[str],
        advance_reasoning: str,
        findings: List[str],
        red_flags: List[str],
        next_steps: List[str],
        metrics: Dict[str, Any],
    ) -> StageDecision:
        """Apply the REJECT > HOLD > ADVANCE tie-break and build the decision"""
        if reject:
            recommendation = Decision.REJECT
            reasoning = f"Rejected at {stage.display_name}: {_join(reject)}."
        elif hold:
            recommendation = Decision.HOLD
            reasoning = f"On hold at {stage.display_name}: {_join(hold)}."
        else:
            recommendation = Decision.ADVANCE
            reasoning = advance_reasoning

        confidence = settings.CONFIDENCE_WITH_RED_FLAGS if red_flags else settings.CONFIDENCE_CLEAN

        return StageDecision(
            stage=stage,
            stage_name=stage.display_name,
            recommendation=recommendation,
            confidence=confidence,
            reasoning=reasoning,
            key_findings=findings,
            red_flags=red_flags,
            next_steps=next_steps,
            next_action=self.next_action(stage, recommendation),
            metrics=metrics,
        )

    @staticmethod
    def next_action(stage: Stage, recommendation: Decision) -> str:
        if recommendation is Decision.REJECT:
            return "Archive deal and notify the acquisitions team"
        if recommendation is Decision.HOLD:
            return f"Resolve hold conditions and re-run Stage {stage.number}"
        nxt = stage.next()
        if nxt is None:
            return "Proceed to closing"
        return f"Proceed to Stage {nxt.number}: {nxt.display_name}"

    def check_strategic_qualification(self, stage, deal, tenants, financials, facts: DealFacts):
        """
        Stage 1: Strategic Qualification
        REJECT  price/unit outside $30k-$200k (known prices only), occupancy < 70%
        HOLD    NOI/unit < $500
        """
        metrics = {
            'totalUnits': facts.total_units,
            'askingPrice': facts.asking_price,
            'pricePerUnit': facts.price_per_unit,
            'occupancyRate': facts.occupancy_rate,
            'noiPerUnit': facts.noi_per_unit,
            'currentlyLIHTC': deal.lihtc_info.currently_lihtc,
        }
        findings = [
            f"Total units: {facts.total_units}",
            f"Price per unit: {_price_text(facts)}",
            f"Occupancy rate: {format_percentage(facts.occupancy_rate)}",
            f"NOI per unit: {format_whole_currency(facts.noi_per_unit)}",
            f"Currently LIHTC: {'Yes' if deal.lihtc_info.currently_lihtc else 'No'}",
        ]
        red_flags: List[str] = []
        next_steps: List[str] = []
        reject: List[str] = []
        hold: List[str] = []

        price_issue = price_band_violation(facts)
        if price_issue:
            reject.append(price_issue)
            red_flags.append(_sentence(price_issue))
        elif not facts.price_known:
            next_steps.append("Obtain asking price from seller")
        elif facts.price_per_unit > settings.HIGH_PRICE_PER_UNIT:
            findings.append(
                f"Price per unit above {format_whole_currency(settings.HIGH_PRICE_PER_UNIT)} market threshold"
            )

        if facts.occupancy_rate < settings.MIN_OCCUPANCY_RATE:
            issue = (f"occupancy rate {format_percentage(facts.occupancy_rate)} is below the "
                     f"{format_percentage(settings.MIN_OCCUPANCY_RATE)} minimum")
            reject.append(issue)
            red_flags.append(_sentence(issue))
        elif facts.occupancy_rate >= settings.STRONG_OCCUPANCY_RATE:
            findings.append("Strong occupancy supports stabilized operations")
        elif facts.occupancy_rate < settings.AVERAGE_OCCUPANCY_RATE:
            next_steps.append("Review lease-up plan for below-average occupancy")

        if facts.noi_per_unit < settings.MIN_NOI_PER_UNIT:
            issue = (f"NOI per unit {format_whole_currency(facts.noi_per_unit)} is below the "
                     f"{format_whole_currency(settings.MIN_NOI_PER_UNIT)} minimum")
            hold.append(issue)
            red_flags.append(_sentence(issue))

        if not reject and not hold:
            next_steps.append("Begin market intelligence review")

        price_note = ("price per unit TBD" if not facts.price_known
                      else f"price per unit {format_whole_currency(facts.price_per_unit)} within range")
        advance = (f"Deal meets strategic qualification criteria: {price_note}, occupancy "
                   f"{format_percentage(facts.occupancy_rate)}, NOI per unit "
                   f"{format_whole_currency(facts.noi_per_unit)}.")

        return self._finish(stage, reject, hold, advance, findings, red_flags, next_steps, metrics)

    def check_market_intelligence(self, stage, deal, tenants, financials, facts: DealFacts):
        """
        Stage 2: Market Intelligence
        coverage >= 80% ADVANCE, < 60% REJECT, otherwise HOLD
        """
        coverage = market_rent_coverage(tenants)
        reporting = [t for t in tenants if t.market_rent and t.monthly_rent > 0]
        findings: List[str] = []
        next_steps: List[str] = []

        if coverage is None:
            coverage = settings.DEFAULT_MARKET_RENT_COVERAGE
            findings.append(
                f"No market rent data in rent roll; assumed coverage of {format_percentage(coverage)}"
            )
            next_steps.append("Commission a market rent survey to replace the assumed coverage")
        else:
            avg_rent = sum(t.monthly_rent for t in reporting) / len(reporting)
            avg_market = sum(t.market_rent for t in reporting) / len(reporting)
            findings.append(f"Units with market rent data: {len(reporting)} of {len(tenants)}")
            findings.append(f"Average in-place rent: {format_whole_currency(avg_rent)}")
            findings.append(f"Average market rent: {format_whole_currency(avg_market)}")

        findings.insert(0, f"Market rent coverage: {format_percentage(coverage)}")

        metrics = {
            'marketRentCoverage': coverage,
            'unitsWithMarketData': len(reporting),
            'assumedCoverage': not reporting,
        }
        red_flags: List[str] = []
        reject: List[str] = []
        hold: List[str] = []

        if coverage < settings.MARKET_RENT_COVERAGE_REJECT:
            issue = (f"market rent coverage {format_percentage(coverage)} is below "
                     f"{format_percentage(settings.MARKET_RENT_COVERAGE_REJECT)}")
            reject.append(issue)
            red_flags.append(_sentence(issue))
        elif coverage < settings.MARKET_RENT_COVERAGE_ADVANCE:
            issue = (f"market rent coverage {format_percentage(coverage)} is between "
                     f"{format_percentage(settings.MARKET_RENT_COVERAGE_REJECT)} and "
                     f"{format_percentage(settings.MARKET_RENT_COVERAGE_ADVANCE)}")
            hold.append(issue)
            red_flags.append(_sentence(issue))
            next_steps.append("Gather additional market comps")

        advance = (f"Market rent coverage of {format_percentage(coverage)} meets the "
                   f"{format_percentage(settings.MARKET_RENT_COVERAGE_ADVANCE)} requirement.")

        return self._finish(stage, reject, hold, advance, findings, red_flags, next_steps, metrics)

    def check_due_diligence(self, stage, deal, tenants, financials, facts: DealFacts):
        """
        Stage 3: Due Diligence
        No material-defect detection yet, so this stage always advances.
        Recorded violations are surfaced as red flags.
        """
        violations = deal.lihtc_info.violation_history
        metrics = {
            'violationCount': len(violations),
            'currentlyCompliant': deal.lihtc_info.currently_compliant,
            'currentlyLIHTC': deal.lihtc_info.currently_lihtc,
        }
        findings = [
            f"LIHTC violation history entries: {len(violations)}",
            f"Currently compliant: {'Yes' if deal.lihtc_info.currently_compliant else 'No'}",
            f"Currently LIHTC: {'Yes' if deal.lihtc_info.currently_lihtc else 'No'}",
        ]
        red_flags: List[str] = []
        next_steps = ["Complete physical inspection", "Confirm title and regulatory agreement"]

        if violations:
            red_flags.append(f"{len(violations)} compliance mention(s) found in legal documents")
            red_flags.extend(violations)
            next_steps.insert(0, "Have counsel review recorded compliance issues")
            advance = ("No material structural defects identified; compliance mentions "
                       "flagged for legal review.")
        else:
            advance = "No material legal or structural defects identified."

        return self._finish(stage, [], [], advance, findings, red_flags, next_steps, metrics)

    def check_financial_underwriting(self, stage, deal, tenants, financials, facts: DealFacts):
        """
        Stage 4: Financial Underwriting
        REJECT  IRR < 6% or DSCR < 1.10
        ADVANCE IRR >= 8% and DSCR >= 1.15
        HOLD    otherwise
        """
        irr = self.estimated_irr
        measured_dscr = debt_service_coverage(facts.net_operating_income, facts.debt_service)
        dscr = measured_dscr if measured_dscr is not None else self.estimated_dscr

        findings = [f"Estimated IRR: {format_percentage(irr)} (underwriting assumption)"]
        if measured_dscr is None:
            findings.append(f"DSCR: {dscr:.2f}x (assumed; debt service not provided)")
        else:
            findings.append(f"DSCR: {dscr:.2f}x")
            findings.append(
                f"Cash flow after debt service: "
                f"{format_whole_currency(facts.net_operating_income - facts.debt_service)}"
            )
        findings.append(f"Net operating income: {format_whole_currency(facts.net_operating_income)}")

        metrics = {
            'estimatedIRR': irr,
            'dscr': dscr,
            'dscrAssumed': measured_dscr is None,
            'netOperatingIncome': facts.net_operating_income,
            'debtService': facts.debt_service,
        }
        red_flags: List[str] = []
        next_steps: List[str] = []
        reject: List[str] = []
        hold: List[str] = []

        if irr < settings.IRR_REJECT:
            reject.append(f"IRR {format_percentage(irr)} is below {format_percentage(settings.IRR_REJECT)}")
        if dscr < settings.DSCR_REJECT:
            reject.append(f"DSCR {dscr:.2f}x is below {settings.DSCR_REJECT:.2f}x")

        if not reject:
            if irr < settings.IRR_ADVANCE:
                hold.append(f"IRR {format_percentage(irr)} is below the "
                            f"{format_percentage(settings.IRR_ADVANCE)} target")
            if dscr < settings.DSCR_ADVANCE:
                hold.append(f"DSCR {dscr:.2f}x is below the {settings.DSCR_ADVANCE:.2f}x target")

        for issue in reject + hold:
            red_flags.append(issue)
        if hold:
            next_steps.append("Optimize financing structure and re-run returns")
        if measured_dscr is None:
            next_steps.append("Obtain loan documents to confirm debt service")

        advance = (f"Returns meet underwriting targets: IRR {format_percentage(irr)}, "
                   f"DSCR {dscr:.2f}x.")

        return self._finish(stage, reject, hold, advance, findings, red_flags, next_steps, metrics)

    def check_ic_review(self, stage, deal, tenants, financials, facts: DealFacts):
        """
        Stage 5: IC Review
        rejected -> REJECT, changes_requested -> HOLD, approved or not recorded -> ADVANCE
        """
        ic_decision = (deal.approvals.ic_decision or '').strip().lower() or None
        metrics = {'icDecision': ic_decision}
        findings = [f"IC decision: {ic_decision or 'not recorded'}"]
        red_flags: List[str] = []
        next_steps: List[str] = []
        reject: List[str] = []
        hold: List[str] = []

        if ic_decision == 'rejected':
            reject.append("the Investment Committee rejected the deal")
            red_flags.append("Investment Committee rejection")
        elif ic_decision == 'changes_requested':
            hold.append("the Investment Committee requested changes")
            next_steps.append("Address IC comments and resubmit")
        elif ic_decision is None:
            next_steps.append("Record the IC decision")

        if ic_decision == 'approved':
            advance = "Investment Committee approval recorded."
        else:
            advance = "No IC objection recorded; advancing on prior-stage results."

        return self._finish(stage, reject, hold, advance, findings, red_flags, next_steps, metrics)

    def check_final_approval(self, stage, deal, tenants, financials, facts: DealFacts):
        """
        Stage 6: Final Approval
        withdrawn approval or failed financing -> REJECT, delays -> HOLD
        """
        approvals = deal.approvals
        final_approval = (approvals.final_approval or '').strip().lower() or None
        financing = (approvals.financing_status or '').strip().lower() or None

        metrics = {
            'finalApproval': final_approval,
            'financingStatus': financing,
            'fundsReady': approvals.funds_ready,
        }
        findings = [
            f"Final approval: {final_approval or 'not recorded'}",
            f"Financing status: {financing or 'not recorded'}",
            f"Funds ready: {'not recorded' if approvals.funds_ready is None else ('Yes' if approvals.funds_ready else 'No')}",
        ]
        red_flags: List[str] = []
        next_steps: List[str] = []
        reject: List[str] = []
        hold: List[str] = []

        if final_approval == 'withdrawn':
            reject.append("final approval was withdrawn")
        if financing == 'failed':
            reject.append("financing fell through")
        if final_approval == 'delayed':
            hold.append("final approval is delayed")
        if approvals.funds_ready is False:
            hold.append("closing funds are not yet available")

        red_flags.extend(_sentence(issue) for issue in reject)
        if not reject and not hold:
            next_steps.append("Schedule closing")

        advance = "All recorded approvals are in place; ready for closing."

        return self._finish(stage, reject, hold, advance, findings, red_flags, next_steps, metrics)


class FolderPipelinePolicy(StagePolicy):
    """
    Less strict policy for the lettered folder pipeline (A-G).
    Only the first three stages carry real gates.
    """

    name = "folder-pipeline"
    stage_type = PipelineStage

    def __init__(self):
        self._rules: Dict[PipelineStage, Callable] = {
            PipelineStage.INITIAL_INTAKE: self.check_initial_intake,
            PipelineStage.PRELIMINARY_ANALYSIS: self.check_preliminary_analysis,
            PipelineStage.FULL_UNDERWRITING: self.check_full_underwriting,
        }

    def decide(self, stage, deal, tenants, financials) -> StageDecision:
        resolved = self.resolve(stage)
        facts = DealFacts.gather(deal, financials)
        rule = self._rules.get(resolved, self.check_generic)
        return rule(resolved, deal, facts)

    @staticmethod
    def next_action(stage: PipelineStage, recommendation: Decision) -> str:
        if recommendation is Decision.REJECT:
            return f"Move to {stage.value}/{settings.SUBSTATE_REJECTED}"
        if recommendation is Decision.REQUEST_MORE_INFO:
            return "Request additional information from seller"
        if recommendation is Decision.REVISIONS_REQUIRED:
            return "Revise underwriting and resubmit"
        nxt = stage.next()
        if nxt is None:
            return "Deal closed"
        return f"Move to {nxt.value}"

    def _build(self, stage, recommendation, confidence, reasoning, findings, red_flags, next_steps, metrics):
        return StageDecision(
            stage=stage,
            stage_name=stage.display_name,
            recommendation=recommendation,
            confidence=confidence,
            reasoning=reasoning,
            key_findings=findings,
            red_flags=red_flags,
            next_steps=next_steps,
            next_action=self.next_action(stage, recommendation),
            metrics=metrics,
        )

    @staticmethod
    def _base_metrics(facts: DealFacts) -> Dict[str, Any]:
        return {
            'totalUnits': facts.total_units,
            'pricePerUnit': facts.price_per_unit,
            'occupancyRate': facts.occupancy_rate,
            'expenseRatio': facts.expense_ratio,
        }

    @staticmethod
    def _base_findings(facts: DealFacts) -> List[str]:
        return [
            f"Total units: {facts.total_units}",
            f"Price per unit: {_price_text(facts)}",
            f"Occupancy rate: {format_percentage(facts.occupancy_rate) if facts.occupancy_known else 'unknown'}",
            f"Expense ratio: {format_percentage(facts.expense_ratio)}",
        ]

    def check_initial_intake(self, stage, deal: Deal, facts: DealFacts) -> StageDecision:
        """
        A-initial-intake
        REJECT  fewer than 5 units, known price/unit outside $30k-$200k
        MORE INFO  known occupancy < 80%, more than two data gaps
        """
        gaps = []
        if deal.address.street == settings.TBD or deal.address.city == settings.TBD:
            gaps.append("property address")
        if facts.asking_price <= 0:
            gaps.append("asking price")
        if facts.total_revenue <= 0:
            gaps.append("operating revenue")

        metrics = self._base_metrics(facts)
        metrics['dataGaps'] = len(gaps)
        findings = self._base_findings(facts)
        findings.append(f"Data gaps: {', '.join(gaps) if gaps else 'none'}")

        reject: List[str] = []
        more_info: List[str] = []
        if facts.total_units < settings.INTAKE_MIN_UNITS:
            reject.append(f"{facts.total_units} units is below the {settings.INTAKE_MIN_UNITS}-unit minimum")
        price_issue = price_band_violation(facts)
        if price_issue:
            reject.append(price_issue)
        if facts.occupancy_known and facts.occupancy_rate < settings.INTAKE_MIN_OCCUPANCY:
            more_info.append(f"occupancy {format_percentage(facts.occupancy_rate)} is below "
                             f"{format_percentage(settings.INTAKE_MIN_OCCUPANCY)}")
        if len(gaps) > settings.INTAKE_MAX_DATA_GAPS:
            more_info.append(f"missing {', '.join(gaps)}")

        red_flags = [_sentence(issue) for issue in reject + more_info]
        confidence = settings.CONFIDENCE_WITH_RED_FLAGS if red_flags else settings.CONFIDENCE_CLEAN

        if reject:
            return self._build(stage, Decision.REJECT, confidence,
                               f"Rejected at intake: {_join(reject)}.",
                               findings, red_flags, [], metrics)
        if more_info:
            return self._build(stage, Decision.REQUEST_MORE_INFO, confidence,
                               f"More information needed: {_join(more_info)}.",
                               findings, red_flags, [f"Request {g} from seller" for g in gaps], metrics)
        return self._build(stage, Decision.ADVANCE, confidence,
                           "Deal passes initial intake screening.",
                           findings, red_flags, ["Begin preliminary analysis"], metrics)

    def check_preliminary_analysis(self, stage, deal: Deal, facts: DealFacts) -> StageDecision:
        """
        B-preliminary-analysis
        REJECT  price/unit > $150k
        MORE INFO  expense ratio > 50%, known occupancy < 85%
        """
        metrics = self._base_metrics(facts)
        findings = self._base_findings(facts)

        reject: List[str] = []
        more_info: List[str] = []
        if facts.price_per_unit > settings.PRELIM_MAX_PRICE_PER_UNIT:
            reject.append(f"price per unit {format_whole_currency(facts.price_per_unit)} exceeds "
                          f"{format_whole_currency(settings.PRELIM_MAX_PRICE_PER_UNIT)}")
        if facts.expense_ratio > settings.PRELIM_MAX_EXPENSE_RATIO:
            more_info.append(f"expense ratio {format_percentage(facts.expense_ratio)} exceeds "
                             f"{format_percentage(settings.PRELIM_MAX_EXPENSE_RATIO)}")
        if facts.occupancy_known and facts.occupancy_rate < settings.PRELIM_MIN_OCCUPANCY:
            more_info.append(f"occupancy {format_percentage(facts.occupancy_rate)} is below "
                             f"{format_percentage(settings.PRELIM_MIN_OCCUPANCY)}")

        red_flags = [_sentence(issue) for issue in reject + more_info]
        confidence = settings.CONFIDENCE_WITH_RED_FLAGS if red_flags else settings.CONFIDENCE_GENERIC

        if reject:
            return self._build(stage, Decision.REJECT, confidence,
                               f"Rejected in preliminary analysis: {_join(reject)}.",
                               findings, red_flags, [], metrics)
        if more_info:
            return self._build(stage, Decision.REQUEST_MORE_INFO, confidence,
                               f"More information needed: {_join(more_info)}.",
                               findings, red_flags, ["Request expense detail and occupancy history"], metrics)
        return self._build(stage, Decision.ADVANCE, confidence,
                           "Preliminary metrics are within screening thresholds.",
                           findings, red_flags, ["Begin full underwriting"], metrics)

    def check_full_underwriting(self, stage, deal: Deal, facts: DealFacts) -> StageDecision:
        """
        C-full-underwriting
        REVISIONS REQUIRED  expense ratio > 45%, known occupancy < 90%
        """
        metrics = self._base_metrics(facts)
        findings = self._base_findings(facts)

        revisions: List[str] = []
        if facts.expense_ratio > settings.UNDERWRITING_MAX_EXPENSE_RATIO:
            revisions.append(f"expense ratio {format_percentage(facts.expense_ratio)} exceeds "
                             f"{format_percentage(settings.UNDERWRITING_MAX_EXPENSE_RATIO)}")
        if facts.occupancy_known and facts.occupancy_rate < settings.UNDERWRITING_MIN_OCCUPANCY:
            revisions.append(f"occupancy {format_percentage(facts.occupancy_rate)} is below "
                             f"{format_percentage(settings.UNDERWRITING_MIN_OCCUPANCY)}")

        red_flags = [_sentence(issue) for issue in revisions]
        confidence = settings.CONFIDENCE_WITH_RED_FLAGS if red_flags else settings.CONFIDENCE_UNDERWRITING

        if revisions:
            return self._build(stage, Decision.REVISIONS_REQUIRED, confidence,
                               f"Underwriting needs revision: {_join(revisions)}.",
                               findings, red_flags, ["Revise operating assumptions"], metrics)
        return self._build(stage, Decision.ADVANCE, confidence,
                           "Full underwriting supports the investment thesis.",
                           findings, red_flags, ["Prepare IC memo"], metrics)

    def check_generic(self, stage, deal: Deal, facts: DealFacts) -> StageDecision:
        """D-G: placeholder review that always advances"""
        findings = [
            f"{stage.display_name} review completed",
            f"Property: {deal.property_name}",
            f"Total units: {facts.total_units}",
        ]
        return self._build(stage, Decision.ADVANCE, settings.CONFIDENCE_GENERIC,
                           f"{stage.display_name} criteria satisfied.",
                           findings, [], [], {'totalUnits': facts.total_units})
