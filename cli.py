"""
Command line entry point for the LIHTC underwriting pipeline
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from config import settings
from pipeline.folder_pipeline import FolderPipelineProcessor
from pipeline.mover import PipelineMover
from pipeline.orchestrator import UnderwritingOrchestrator
from utils.errors import UnderwritingError
from utils.helpers import format_currency, format_percentage
from utils.validations import validate_stage_number

logger = logging.getLogger(__name__)


def cmd_process(args) -> int:
    orchestrator = UnderwritingOrchestrator(processed_deals_path=args.output)
    structure = orchestrator.process_folder(args.folder)
    deal = structure.deal
    summary = structure.tenant_summary

    print(f"Deal ID: {deal.id}")
    print(f"Property: {deal.property_name}")
    print(f"Output: {structure.output_path}")
    print(f"Units: {deal.basic_info.total_units} ({summary['occupiedUnits']} occupied, {summary['vacantUnits']} vacant)")
    print(f"Occupancy: {format_percentage(deal.financial_data.occupancy_rate)}")
    print(f"NOI: {format_currency(deal.financial_data.net_operating_income)}")
    print(f"Source documents: {len(structure.source_documents)}")
    return 0


def cmd_advance(args) -> int:
    if not validate_stage_number(args.stage, settings.CANONICAL_FINAL_STAGE):
        print(f"Error: stage must be 1-{settings.CANONICAL_FINAL_STAGE}, got {args.stage}", file=sys.stderr)
        return 2

    orchestrator = UnderwritingOrchestrator(processed_deals_path=args.output, pipeline_root=args.pipeline_root)
    results = orchestrator.process_to_stage(args.deal, int(args.stage))
    if not results:
        print(f"Nothing to do: deal is finished or already past stage {args.stage}")
        return 0

    for result in results:
        print(f"Stage {result.stage.number} ({result.stage.display_name}): "
              f"{result.recommendation.value} (confidence {result.decision.confidence}%)")
        print(f"  {result.decision.reasoning}")
        print(f"  Report: {result.report_path}")
    return 0


def cmd_status(args) -> int:
    orchestrator = UnderwritingOrchestrator(processed_deals_path=args.output, pipeline_root=args.pipeline_root)
    status = orchestrator.status(args.deal)
    if status is None:
        print("No audit log yet")
        return 0
    print(json.dumps(status, indent=2))
    return 0


def cmd_summary(args) -> int:
    orchestrator = UnderwritingOrchestrator(processed_deals_path=args.output, pipeline_root=args.pipeline_root)
    summary = orchestrator.summary(args.deal)
    if summary is None:
        print("No audit log yet")
        return 0
    print(summary)
    return 0


def cmd_pipeline(args) -> int:
    processor = FolderPipelineProcessor(pipeline_root=args.pipeline_root)
    run = processor.process_all_pending()

    for result in run.processed:
        print(f"{result.deal_id}: {result.stage.value} -> {result.decision.recommendation.value} "
              f"({result.destination})")
    for path, error in run.failed:
        print(f"FAILED {path}: {error}", file=sys.stderr)

    print(f"Processed {len(run.processed)} deal(s), {len(run.failed)} failed")
    return 1 if run.failed else 0


def cmd_move(args) -> int:
    mover = PipelineMover(pipeline_root=args.pipeline_root)
    dest = mover.move(args.deal, args.from_stage, args.to_stage, args.decision)
    print(f"Moved to {dest}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='underwriter',
        description='LIHTC deal underwriting pipeline',
    )
    parser.add_argument('--log-level', default=settings.LOG_LEVEL, help='Logging level (default: %(default)s)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    p = subparsers.add_parser('process', help='Extract a due-diligence folder into a new deal')
    p.add_argument('folder', help='Due-diligence folder')
    p.add_argument('--output', default=None, help='Processed deals directory')
    p.set_defaults(func=cmd_process)

    p = subparsers.add_parser('advance', help='Run canonical stages up to a target stage')
    p.add_argument('deal', help='Deal folder or deal id')
    p.add_argument('stage', help='Target stage (1-6)')
    p.add_argument('--pipeline-root', default=None)
    p.add_argument('--output', default=None, help='Processed deals directory used to resolve deal ids')
    p.set_defaults(func=cmd_advance)

    p = subparsers.add_parser('status', help='Show the current stage and status of a deal')
    p.add_argument('deal', help='Deal folder or deal id')
    p.add_argument('--pipeline-root', default=None)
    p.add_argument('--output', default=None, help='Processed deals directory used to resolve deal ids')
    p.set_defaults(func=cmd_status)

    p = subparsers.add_parser('summary', help='Print the audit history of a deal')
    p.add_argument('deal', help='Deal folder or deal id')
    p.add_argument('--pipeline-root', default=None)
    p.add_argument('--output', default=None, help='Processed deals directory used to resolve deal ids')
    p.set_defaults(func=cmd_summary)

    p = subparsers.add_parser('pipeline', help='Process every pending deal in the folder pipeline')
    p.add_argument('--pipeline-root', default=None)
    p.set_defaults(func=cmd_pipeline)

    p = subparsers.add_parser('move', help='Copy a deal into another pipeline stage')
    p.add_argument('deal', help='Deal folder')
    p.add_argument('from_stage', help='Source stage, e.g. A-initial-intake')
    p.add_argument('to_stage', help='Destination stage, e.g. B-preliminary-analysis')
    p.add_argument('decision', help='ADVANCE, REJECT, HOLD, REQUEST_MORE_INFO or REVISIONS_REQUIRED')
    p.add_argument('--pipeline-root', default=None)
    p.set_defaults(func=cmd_move)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=settings.LOG_FORMAT)

    try:
        return args.func(args)
    except UnderwritingError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
