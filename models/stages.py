"""
Stage identity and static stage definitions
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from utils.errors import UnknownStageError


class Stage(Enum):
    """Canonical numeric underwriting stages"""
    STRATEGIC_QUALIFICATION = 1
    MARKET_INTELLIGENCE = 2
    DUE_DILIGENCE = 3
    FINANCIAL_UNDERWRITING = 4
    IC_REVIEW = 5
    FINAL_APPROVAL = 6

    @property
    def number(self) -> int:
        return self.value

    @property
    def label(self) -> Union[int, str]:
        """Value written to the audit log"""
        return self.value

    @property
    def display_name(self) -> str:
        return STAGE_DEFINITIONS[self.value].stage_name

    @property
    def report_file_name(self) -> str:
        return f"Stage0{self.value}_{self.display_name.replace(' ', '')}.md"

    @property
    def is_final(self) -> bool:
        return self is Stage.FINAL_APPROVAL

    def next(self) -> Optional['Stage']:
        if self.is_final:
            return None
        return Stage(self.value + 1)


class PipelineStage(Enum):
    """Lettered folder-pipeline stages"""
    INITIAL_INTAKE = "A-initial-intake"
    PRELIMINARY_ANALYSIS = "B-preliminary-analysis"
    FULL_UNDERWRITING = "C-full-underwriting"
    IC_REVIEW = "D-ic-review"
    LOI_PSA = "E-loi-psa"
    FINAL_APPROVAL = "F-final-approval"
    CLOSING = "G-closing"

    @property
    def label(self) -> Union[int, str]:
        return self.value

    @property
    def ordinal(self) -> int:
        return list(PipelineStage).index(self) + 1

    @property
    def display_name(self) -> str:
        return PIPELINE_STAGE_NAMES[self]

    @property
    def report_file_name(self) -> str:
        return f"{self.value}-analysis.json"

    @property
    def is_final(self) -> bool:
        return self is PipelineStage.CLOSING

    def next(self) -> Optional['PipelineStage']:
        if self.is_final:
            return None
        return list(PipelineStage)[self.ordinal]


PIPELINE_STAGE_NAMES: Dict[PipelineStage, str] = {
    PipelineStage.INITIAL_INTAKE: 'Initial Intake',
    PipelineStage.PRELIMINARY_ANALYSIS: 'Preliminary Analysis',
    PipelineStage.FULL_UNDERWRITING: 'Full Underwriting',
    PipelineStage.IC_REVIEW: 'IC Review',
    PipelineStage.LOI_PSA: 'LOI/PSA',
    PipelineStage.FINAL_APPROVAL: 'Final Approval',
    PipelineStage.CLOSING: 'Closing',
}


AnyStage = Union[Stage, PipelineStage]


def resolve_stage(value: Any) -> AnyStage:
    """
    Map any external stage representation to its enum member.
    Accepts members, ints, numeric strings ("3", "Stage 3") and
    lettered folder ids ("C-full-underwriting").
    """
    if isinstance(value, (Stage, PipelineStage)):
        return value

    if isinstance(value, bool):
        raise UnknownStageError(f"Unknown stage: {value!r}")

    if isinstance(value, int):
        try:
            return Stage(value)
        except ValueError:
            raise UnknownStageError(f"Unknown stage: {value}", {'stage': value})

    text = str(value).strip()
    lowered = text.lower()
    if lowered.startswith('stage'):
        lowered = lowered[len('stage'):].strip()

    if lowered.isdigit():
        try:
            return Stage(int(lowered))
        except ValueError:
            raise UnknownStageError(f"Unknown stage: {text}", {'stage': text})

    for member in PipelineStage:
        if lowered == member.value.lower():
            return member

    raise UnknownStageError(f"Unknown stage: {text}", {'stage': text})


def resolve_pipeline_stage(value: Any) -> PipelineStage:
    """Like resolve_stage, but only lettered folder ids are accepted"""
    stage = resolve_stage(value)
    if not isinstance(stage, PipelineStage):
        raise UnknownStageError(f"Not a pipeline stage: {value}", {'stage': str(value)})
    return stage


@dataclass
class DecisionCriteria:
    advance_requirements: List[str] = field(default_factory=list)
    reject_conditions: List[str] = field(default_factory=list)
    hold_conditions: List[str] = field(default_factory=list)


@dataclass
class StageDefinition:
    """Static description of a canonical stage"""
    stage_number: int
    stage_name: str
    description: str
    objectives: List[str]
    required_inputs: List[str]
    decision_criteria: DecisionCriteria
    output_format: str = "markdown"

    def to_dict(self) -> dict:
        return {
            'stageNumber': self.stage_number,
            'stageName': self.stage_name,
            'description': self.description,
            'objectives': list(self.objectives),
            'requiredInputs': list(self.required_inputs),
            'decisionCriteria': {
                'advanceRequirements': list(self.decision_criteria.advance_requirements),
                'rejectConditions': list(self.decision_criteria.reject_conditions),
                'holdConditions': list(self.decision_criteria.hold_conditions),
            },
            'outputFormat': self.output_format,
        }


STAGE_DEFINITIONS: Dict[int, StageDefinition] = {
    1: StageDefinition(
        stage_number=1,
        stage_name='Strategic Qualification',
        description='Initial qualification of deal alignment with acquisition strategy',
        objectives=[
            'Validate LIHTC preservation opportunity',
            'Confirm basic financial viability',
            'Assess strategic fit with portfolio',
        ],
        required_inputs=['deal.json', 'tenants.json', 'financialSummary.json'],
        decision_criteria=DecisionCriteria(
            advance_requirements=[
                'Price per unit $30k-$200k',
                'Occupancy rate >=70%',
                'NOI >=$500/unit/year',
            ],
            reject_conditions=[
                'Price per unit >$200k or <$30k',
                'Occupancy rate <70%',
            ],
            hold_conditions=[
                'NOI <$500/unit/year',
                'Missing critical financial data',
            ],
        ),
    ),
    2: StageDefinition(
        stage_number=2,
        stage_name='Market Intelligence',
        description='Market analysis and competitive positioning',
        objectives=[
            'Analyze local market conditions',
            'Compare in-place rents to market rents',
        ],
        required_inputs=['deal.json', 'tenants.json'],
        decision_criteria=DecisionCriteria(
            advance_requirements=['Market rent coverage >=80%'],
            reject_conditions=['Market rent coverage <60%'],
            hold_conditions=['Market rent coverage 60-80%', 'Need additional market research'],
        ),
    ),
    3: StageDefinition(
        stage_number=3,
        stage_name='Due Diligence',
        description='Property and legal due diligence',
        objectives=[
            'Validate property condition',
            'Review legal compliance',
            'Assess operational risks',
        ],
        required_inputs=['deal.json', 'sourceDocuments.json'],
        decision_criteria=DecisionCriteria(
            advance_requirements=['No material legal or structural defects'],
            reject_conditions=['Major structural or legal violation'],
            hold_conditions=['Minor issues pending resolution'],
        ),
    ),
    4: StageDefinition(
        stage_number=4,
        stage_name='Financial Underwriting',
        description='Financial modeling and return analysis',
        objectives=[
            'Validate return assumptions',
            'Confirm debt service coverage',
        ],
        required_inputs=['deal.json', 'financialSummary.json'],
        decision_criteria=DecisionCriteria(
            advance_requirements=['IRR >=8%', 'DSCR >=1.15'],
            reject_conditions=['IRR <6%', 'DSCR <1.10'],
            hold_conditions=['IRR 6-8%', 'DSCR 1.10-1.15'],
        ),
    ),
    5: StageDefinition(
        stage_number=5,
        stage_name='IC Review',
        description='Investment Committee review and recommendation',
        objectives=[
            'Present investment thesis',
            'Finalize investment terms',
        ],
        required_inputs=['all-prior-stages', 'approvals.icDecision'],
        decision_criteria=DecisionCriteria(
            advance_requirements=['IC approval received'],
            reject_conditions=['IC rejection'],
            hold_conditions=['IC requests changes'],
        ),
    ),
    6: StageDefinition(
        stage_number=6,
        stage_name='Final Approval',
        description='Final approvals and closing preparation',
        objectives=[
            'Complete final approvals',
            'Confirm financing and funds',
        ],
        required_inputs=['approvals.finalApproval', 'approvals.financingStatus', 'approvals.fundsReady'],
        decision_criteria=DecisionCriteria(
            advance_requirements=['All approvals received', 'Funds available'],
            reject_conditions=['Approval withdrawn', 'Financing falls through'],
            hold_conditions=['Minor closing delays'],
        ),
    ),
}


def get_stage_definition(stage: Any) -> StageDefinition:
    """Look up the static definition of a canonical stage"""
    resolved = resolve_stage(stage)
    if not isinstance(resolved, Stage):
        raise UnknownStageError(f"No stage definition for pipeline stage: {resolved.value}")
    return STAGE_DEFINITIONS[resolved.value]
