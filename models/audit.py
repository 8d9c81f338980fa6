"""
Audit log data models
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from config import settings


class Decision(str, Enum):
    """Stage decision outcomes"""
    ADVANCE = "ADVANCE"
    REJECT = "REJECT"
    HOLD = "HOLD"
    REQUEST_MORE_INFO = "REQUEST_MORE_INFO"
    REVISIONS_REQUIRED = "REVISIONS_REQUIRED"

    @property
    def audit_value(self) -> 'Decision':
        """The decision as recorded in the audit log"""
        if self is Decision.REVISIONS_REQUIRED:
            return Decision.REQUEST_MORE_INFO
        return self

    @classmethod
    def parse(cls, value: Union[str, 'Decision']) -> 'Decision':
        if isinstance(value, Decision):
            return value
        return cls(str(value).strip().upper().replace('-', '_').replace(' ', '_'))


class AuditStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    ON_HOLD = "ON_HOLD"


StageLabel = Union[int, str]


@dataclass(frozen=True)
class AuditLogEntry:
    """One recorded stage decision. Never modified after it is appended."""
    stage: StageLabel
    stage_name: str
    decision: Decision
    reasoning: str
    key_findings: List[str] = field(default_factory=list)
    next_action: str = ""
    timestamp: str = ""
    confidence_score: Optional[int] = None
    red_flags: List[str] = field(default_factory=list)
    analyst: Optional[str] = settings.ANALYST_ID
    metrics: Dict[str, Any] = field(default_factory=dict)
    next_steps: List[str] = field(default_factory=list)
    documentation: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            'stage': self.stage,
            'stageName': self.stage_name,
            'timestamp': self.timestamp,
            'decision': self.decision.audit_value.value,
            'reasoning': self.reasoning,
            'keyFindings': list(self.key_findings),
            'nextAction': self.next_action,
            'redFlags': list(self.red_flags),
            'metrics': dict(self.metrics),
            'nextSteps': list(self.next_steps),
            'documentation': list(self.documentation),
        }
        if self.confidence_score is not None:
            data['confidenceScore'] = self.confidence_score
        if self.analyst:
            data['analyst'] = self.analyst
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'AuditLogEntry':
        return cls(
            stage=data['stage'],
            stage_name=data.get('stageName', ''),
            decision=Decision.parse(data['decision']),
            reasoning=data.get('reasoning', ''),
            key_findings=list(data.get('keyFindings') or []),
            next_action=data.get('nextAction', ''),
            timestamp=data.get('timestamp', ''),
            confidence_score=data.get('confidenceScore'),
            red_flags=list(data.get('redFlags') or []),
            analyst=data.get('analyst'),
            metrics=dict(data.get('metrics') or {}),
            next_steps=list(data.get('nextSteps') or []),
            documentation=list(data.get('documentation') or []),
        )


@dataclass
class AuditLog:
    """Append-only decision history for one deal"""
    deal_id: str
    property_name: str
    entries: List[AuditLogEntry] = field(default_factory=list)
    current_stage: StageLabel = 1
    current_status: AuditStatus = AuditStatus.ACTIVE
    created_at: str = ""
    last_updated: str = ""
    revision: int = 0

    @property
    def last_entry(self) -> Optional[AuditLogEntry]:
        return self.entries[-1] if self.entries else None

    def to_dict(self) -> dict:
        return {
            'dealId': self.deal_id,
            'propertyName': self.property_name,
            'entries': [e.to_dict() for e in self.entries],
            'currentStage': self.current_stage,
            'currentStatus': self.current_status.value,
            'createdAt': self.created_at,
            'lastUpdated': self.last_updated,
            'revision': self.revision,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuditLog':
        return cls(
            deal_id=data.get('dealId', ''),
            property_name=data.get('propertyName', ''),
            entries=[AuditLogEntry.from_dict(e) for e in data.get('entries') or []],
            current_stage=data.get('currentStage', 1),
            current_status=AuditStatus(data.get('currentStatus', AuditStatus.ACTIVE.value)),
            created_at=data.get('createdAt', ''),
            last_updated=data.get('lastUpdated', ''),
            revision=int(data.get('revision', 0)),
        )


def derive_status(entry: AuditLogEntry, is_final_stage: bool) -> AuditStatus:
    """Status is a function of the last entry only"""
    decision = entry.decision.audit_value
    if decision is Decision.REJECT:
        return AuditStatus.REJECTED
    if decision is Decision.HOLD:
        return AuditStatus.ON_HOLD
    if is_final_stage and decision is Decision.ADVANCE:
        return AuditStatus.COMPLETED
    return AuditStatus.ACTIVE
