#!/usr/bin/env python3
# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
TP → Canvas Calendar Sync command line

Usage:
    tp-canvas-sync [--dry-run] [--verbose] <command> [args]

Commands:
    full SEMESTER                       Sync every TP course of a semester
    course COURSE SEMESTER TERMNR       Sync one course
    remove COURSE SEMESTER TERMNR       Remove our events for one course
    structure SEMESTER                  Detect Canvas courses added or removed
    compare SIS_COURSE_ID               Compare one course between two Canvas environments
    consume                             Sync courses as change notifications arrive
    delete-event EVENT_ID               Delete one Canvas event
    mapping COURSE SEMESTER TERMNR      Show how a course maps onto Canvas courses
    scheduler                           Run full syncs every SYNC_INTERVAL_MIN minutes
"""

import argparse
import json
import logging
import sys

from context import SyncContext
from errors import SyncError
from sync.orchestrator import SyncOrchestrator
from sync.scheduler import SyncScheduler
from sync.trigger import ChangeTrigger
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='tp-canvas-sync', description='Sync TP timetables into Canvas calendars')
    parser.add_argument('--dry-run', action='store_true', default=None,
                        help='Log what would change without changing anything')
    parser.add_argument('--verbose', action='store_true', help='Show detailed logging')

    commands = parser.add_subparsers(dest='command', metavar='command')
    commands.required = True

    full = commands.add_parser('full', help='Sync every TP course of a semester')
    full.add_argument('semester')

    for name, help_text in (('course', 'Sync one course'),
                            ('remove', 'Remove our events for one course'),
                            ('mapping', 'Show how a course maps onto Canvas courses')):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument('course')
        sub.add_argument('semester')
        sub.add_argument('termnr', type=int)

    structure = commands.add_parser('structure', help='Detect Canvas courses added or removed')
    structure.add_argument('semester')

    compare = commands.add_parser('compare', help='Compare one course between two Canvas environments')
    compare.add_argument('sis_course_id')

    commands.add_parser('consume', help='Sync courses as change notifications arrive')

    delete_event = commands.add_parser('delete-event', help='Delete one Canvas event')
    delete_event.add_argument('event_id', type=int)

    commands.add_parser('scheduler', help='Run full syncs every SYNC_INTERVAL_MIN minutes')
    return parser


def print_report(report):
    print(json.dumps(report, indent=2, ensure_ascii=False, default=str))


def run_command(args, context: SyncContext) -> bool:
    orchestrator = SyncOrchestrator(context)

    if args.command == 'full':
        summary = orchestrator.full_sync(args.semester)
        print_report(summary)
        return summary['success']

    if args.command == 'course':
        return orchestrator.sync_course(args.course, args.semester, args.termnr)

    if args.command == 'remove':
        return orchestrator.remove_course(args.course, args.semester, args.termnr)

    if args.command == 'structure':
        report = orchestrator.check_structure_change(args.semester)
        print_report(report)
        return not report['errors']

    if args.command == 'compare':
        report = orchestrator.compare_environments(args.sis_course_id, context.compare_canvas())
        print_report(report)
        return True

    if args.command == 'consume':
        ChangeTrigger(orchestrator, context.ledger, context.settings).run()
        return True

    if args.command == 'delete-event':
        return orchestrator.delete_single_event(args.event_id)

    if args.command == 'mapping':
        print_report(orchestrator.course_mapping(args.course, args.semester, args.termnr))
        return True

    if args.command == 'scheduler':
        settings = context.settings
        SyncScheduler(orchestrator, settings.sync_semesters, settings.sync_interval_min).run_forever()
        return True

    raise ValueError(f"Unknown command {args.command}")


def main(argv=None, context_factory=SyncContext.from_config) -> int:
    """Entry point. Returns 0 on success and 1 on failure; argparse exits 2 on usage errors."""
    args = build_parser().parse_args(argv)

    setup_logging(level='DEBUG' if args.verbose else None)

    context = context_factory(dry_run=args.dry_run)
    if context.settings.dry_run:
        logger.info("🧪 DRY RUN MODE - nothing will be changed in Canvas")

    try:
        success = run_command(args, context)
    except SyncError as e:
        logger.error(f"❌ {args.command} failed: {e}")
        return 1
    finally:
        context.close()

    if success:
        logger.info(f"✅ {args.command} completed")
        return 0
    logger.error(f"❌ {args.command} completed with failures")
    return 1


if __name__ == "__main__":
    sys.exit(main())
