"""
Pipeline mover - copies a deal folder into a stage/substate bucket.

Moves are copies: the source folder stays behind as a historical snapshot.
The snapshot registry records every copy of a deal in order; the last
recorded snapshot is the canonical one.
"""
import logging
import shutil
from pathlib import Path
from typing import Any, List, Optional, Union

from config import settings
from engine.reports import ReportRenderer
from models.audit import Decision
from models.stages import PipelineStage, resolve_pipeline_stage
from storage.deal_store import DealStore, read_json, write_json
from storage.locks import deal_lock
from utils.errors import DealNotFoundError, PipelineIOError, PreconditionError
from utils.helpers import utc_now_iso
from utils.validations import sanitize_filename

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SUBSTATE_FOR_DECISION = {
    Decision.ADVANCE: settings.SUBSTATE_NOT_STARTED,
    Decision.REJECT: settings.SUBSTATE_REJECTED,
    Decision.REQUEST_MORE_INFO: settings.SUBSTATE_IN_PROGRESS,
    Decision.REVISIONS_REQUIRED: settings.SUBSTATE_IN_PROGRESS,
    Decision.HOLD: settings.SUBSTATE_IN_PROGRESS,
}


def parse_decision(decision: Any) -> Decision:
    try:
        return Decision.parse(decision)
    except ValueError:
        raise PreconditionError(f"Unknown decision: {decision}", {'decision': str(decision)})


def substate_for(decision: Any) -> str:
    return SUBSTATE_FOR_DECISION[parse_decision(decision)]


class SnapshotRegistry:
    """
    Ordered list of {stagePath, stage, substate, copiedAt} per deal,
    stored at <pipeline>/.registry/<dealId>.json
    """

    def __init__(self, pipeline_root: Optional[PathLike] = None):
        self.pipeline_root = Path(pipeline_root or settings.PIPELINE_PATH)
        self.registry_dir = self.pipeline_root / settings.REGISTRY_DIR

    def _path(self, deal_id: str) -> Path:
        return self.registry_dir / f"{sanitize_filename(deal_id)}.json"

    def snapshots(self, deal_id: str) -> List[dict]:
        path = self._path(deal_id)
        if not path.is_file():
            return []
        try:
            return list(read_json(path).get('snapshots', []))
        except (OSError, ValueError) as e:
            raise PipelineIOError(f"Could not read snapshot registry {path}: {e}") from e

    def record(self, deal_id: str, stage_path: PathLike, stage: str, substate: str) -> dict:
        snapshot = {
            'stagePath': str(stage_path),
            'stage': stage,
            'substate': substate,
            'copiedAt': utc_now_iso(),
        }
        try:
            self.registry_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PipelineIOError(f"Could not create snapshot registry {self.registry_dir}: {e}") from e
        with deal_lock(self.registry_dir):
            snapshots = self.snapshots(deal_id)
            snapshots.append(snapshot)
            write_json(self._path(deal_id), {'dealId': deal_id, 'snapshots': snapshots})
        return snapshot

    def canonical(self, deal_id: str) -> Optional[dict]:
        snapshots = self.snapshots(deal_id)
        return snapshots[-1] if snapshots else None

    def canonical_path(self, deal_id: str) -> Optional[Path]:
        snapshot = self.canonical(deal_id)
        return Path(snapshot['stagePath']) if snapshot else None


class PipelineMover:
    """
    Relocates deals between pipeline stage/substate folders
    """

    def __init__(self, pipeline_root: Optional[PathLike] = None, registry: Optional[SnapshotRegistry] = None):
        self.pipeline_root = Path(pipeline_root or settings.PIPELINE_PATH)
        self.registry = registry or SnapshotRegistry(self.pipeline_root)

    def destination(self, deal_path: PathLike, to_stage: PipelineStage, substate: str) -> Path:
        return self.pipeline_root / to_stage.value / substate / Path(deal_path).name

    def move(self, deal_path: PathLike, from_stage: Any, to_stage: Any, decision: Any) -> Path:
        """
        Copy the deal into <to_stage>/<substate>/, patch the copy's status and
        journey, and register the copy as the canonical snapshot.
        """
        source = Path(deal_path)
        origin = resolve_pipeline_stage(from_stage)
        target = resolve_pipeline_stage(to_stage)
        parsed = parse_decision(decision)
        substate = SUBSTATE_FOR_DECISION[parsed]

        if not DealStore(source).exists():
            raise DealNotFoundError(f"No deal record in {source}", {'path': str(source)})

        dest = self.destination(source, target, substate)
        now = utc_now_iso()

        with deal_lock(source):
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                if dest.resolve() != source.resolve():
                    shutil.copytree(
                        source,
                        dest,
                        ignore=shutil.ignore_patterns(settings.LOCK_FILE_NAME, settings.LOCK_FILE_NAME + '.*'),
                        dirs_exist_ok=True,
                    )
            except OSError as e:
                raise PipelineIOError(
                    f"Could not copy deal to {dest}: {e}",
                    {'source': str(source), 'destination': str(dest)},
                ) from e

        with deal_lock(dest):
            store = DealStore(dest)
            deal = store.load_deal()
            deal.status = 'rejected' if parsed is Decision.REJECT else 'processing'
            deal.updated_at = now
            store.save_deal(deal)
            store.append_journey(ReportRenderer.journey_move_record(
                origin.value, f"{target.value}/{substate}", parsed.value, str(dest), now,
            ))

        self.registry.record(deal.id, dest, target.value, substate)
        logger.info("Moved %s from %s to %s/%s", deal.id, origin.value, target.value, substate)
        return dest
