"""
Append-only audit trail stored at <deal>/AnalysisJourney/auditLog.json

The file on disk is the only source of truth: every operation re-reads it.
Read-modify-write cycles run under the per-deal lock and are checked against
the stored revision counter.
"""
import dataclasses
import logging
from pathlib import Path
from typing import Any, Optional, Union

from config import settings
from engine.reports import ReportRenderer
from models.audit import AuditLog, AuditLogEntry, derive_status
from models.stages import resolve_stage
from storage.deal_store import read_json, write_json
from storage.locks import deal_lock
from utils.errors import (
    AuditLogConflictError,
    AuditLogExistsError,
    AuditLogNotInitializedError,
    PipelineIOError,
)
from utils.helpers import utc_now_iso

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class AuditLogStore:
    """
    Maintains the decision history of each deal folder
    """

    def __init__(self, retries: Optional[int] = None, lock_timeout: Optional[float] = None):
        self.retries = settings.AUDIT_APPEND_RETRIES if retries is None else retries
        self.lock_timeout = lock_timeout

    @staticmethod
    def path_for(deal_path: PathLike) -> Path:
        return Path(deal_path) / settings.JOURNEY_DIR / settings.AUDIT_LOG_FILE

    def exists(self, deal_path: PathLike) -> bool:
        return self.path_for(deal_path).is_file()

    def load(self, deal_path: PathLike) -> Optional[AuditLog]:
        """The persisted log, or None when the deal has none yet"""
        path = self.path_for(deal_path)
        if not path.is_file():
            return None
        try:
            return AuditLog.from_dict(read_json(path))
        except (OSError, ValueError, KeyError) as e:
            raise PipelineIOError(f"Could not read audit log {path}: {e}", {'path': str(path)}) from e

    def _save(self, deal_path: PathLike, log: AuditLog, expected_revision: Optional[int]):
        """Write the log if the stored revision is still ``expected_revision``"""
        current = self.load(deal_path)
        current_revision = current.revision if current is not None else None
        if current_revision != expected_revision:
            raise AuditLogConflictError(
                "Audit log changed during update",
                {'path': str(deal_path), 'expected': expected_revision, 'found': current_revision},
            )
        log.revision = 0 if expected_revision is None else expected_revision + 1
        write_json(self.path_for(deal_path), log.to_dict())

    def initialize(
        self,
        deal_path: PathLike,
        deal_id: str,
        property_name: str,
        first_stage: Any = 1,
    ) -> AuditLog:
        """Create an empty ACTIVE log; never overwrites an existing one"""
        stage = resolve_stage(first_stage)
        with deal_lock(deal_path, timeout=self.lock_timeout):
            if self.exists(deal_path):
                raise AuditLogExistsError(
                    "Audit log already exists",
                    {'path': str(self.path_for(deal_path)), 'dealId': deal_id},
                )
            now = utc_now_iso()
            log = AuditLog(
                deal_id=deal_id,
                property_name=property_name,
                current_stage=stage.label,
                created_at=now,
                last_updated=now,
            )
            self._save(deal_path, log, expected_revision=None)

        logger.info("Initialized audit log for %s", deal_id)
        return log

    def append(self, deal_path: PathLike, entry: AuditLogEntry) -> str:
        """
        Append an entry and recompute stage and status from it.
        Returns the entry id. Conflicts are retried a bounded number of times.
        """
        stage = resolve_stage(entry.stage)
        if not entry.timestamp:
            entry = dataclasses.replace(entry, timestamp=utc_now_iso())

        last_error: Optional[AuditLogConflictError] = None
        for attempt in range(self.retries + 1):
            try:
                return self._append_once(deal_path, entry, stage.is_final)
            except AuditLogConflictError as e:
                last_error = e
                logger.warning("Audit log conflict on attempt %d for %s", attempt + 1, deal_path)
        raise last_error

    def _append_once(self, deal_path: PathLike, entry: AuditLogEntry, is_final_stage: bool) -> str:
        if not self.exists(deal_path):
            raise AuditLogNotInitializedError(
                "Audit log not found - initialize first",
                {'path': str(self.path_for(deal_path))},
            )
        with deal_lock(deal_path, timeout=self.lock_timeout):
            log = self.load(deal_path)
            if log is None:
                raise AuditLogNotInitializedError(
                    "Audit log not found - initialize first",
                    {'path': str(self.path_for(deal_path))},
                )

            expected = log.revision
            log.entries.append(entry)
            log.current_stage = entry.stage
            log.current_status = derive_status(entry, is_final_stage)
            log.last_updated = entry.timestamp
            self._save(deal_path, log, expected_revision=expected)

        entry_id = f"{log.deal_id}:{len(log.entries)}"
        logger.info(
            "Logged %s at stage %s for %s (status %s)",
            entry.decision.value, entry.stage, log.deal_id, log.current_status.value,
        )
        return entry_id

    def status(self, deal_path: PathLike) -> Optional[dict]:
        """{stage, status, lastEntry} or None when there is no log"""
        log = self.load(deal_path)
        if log is None:
            return None
        last = log.last_entry
        return {
            'stage': log.current_stage,
            'status': log.current_status.value,
            'lastEntry': last.to_dict() if last else None,
        }

    def summarize(self, deal_path: PathLike) -> Optional[str]:
        """Markdown history of every entry, oldest first"""
        log = self.load(deal_path)
        if log is None:
            return None
        return ReportRenderer.audit_summary(log)
