"""Command line entry point for topic analysis and maintenance."""

import argparse
import asyncio
import sys
from typing import List, Optional

from posttopics.core.db import create_all
from posttopics.core.logging import get_logger, setup_logging
from posttopics.core.settings import get_settings
from .models import AnalysisResult, ReconcileReport
from .service import create_service

logger = get_logger(__name__)


async def run_analyze(post_id: str, force: bool = False) -> AnalysisResult:
    """Analyze a single post with a freshly wired service."""
    service = create_service(get_settings())
    try:
        return await service.analyze(post_id, force=force)
    finally:
        await service.aclose()


async def run_init_db() -> None:
    """Create the posttopics tables on the configured database."""
    import posttopics.core.models  # noqa: F401  registers tables
    await create_all()


async def run_reconcile() -> ReconcileReport:
    """Run the duplicate topic set cleanup once."""
    service = create_service(get_settings())
    try:
        return await service.cleanup_duplicates()
    finally:
        await service.aclose()


def print_analysis(post_id: str, result: AnalysisResult) -> None:
    print(f"\n=== Topic Analysis: {post_id} ===")
    print(f"Success: {result.success}")
    print(f"Method: {result.method}")
    print(f"Topics: {result.topic_count}")
    print(f"Processing time: {result.processing_time_ms}ms")
    if result.error:
        print(f"Error: {result.error}")


def print_reconcile(report: ReconcileReport) -> None:
    print("\n=== Topic Cleanup Results ===")
    print(f"Posts with topics: {report.total_posts}")
    print(f"Posts with duplicates: {report.duplicate_posts}")
    print(f"Posts cleaned: {report.cleaned_posts}")
    print(f"Rows deleted: {report.deleted_records}")

    if report.errors:
        print(f"\nErrors ({len(report.errors)}):")
        for error in report.errors[:10]:  # Show first 10 errors
            print(f"  - {error}")
        if len(report.errors) > 10:
            print(f"  ... and {len(report.errors) - 10} more")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Post comment topic extraction')
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    analyze = subparsers.add_parser('analyze', help='Extract and store topics for a post')
    analyze.add_argument('post_id', help='Post identifier')
    analyze.add_argument(
        '--force',
        action='store_true',
        help='Re-analyze even if topics are already stored'
    )

    subparsers.add_parser('reconcile', help='Remove duplicate topic sets')
    subparsers.add_parser('init-db', help='Create database tables')

    serve = subparsers.add_parser('serve', help='Run the HTTP service')
    serve.add_argument(
        '--reload',
        action='store_true',
        help='Reload on code changes'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging("posttopics-cli", level="DEBUG" if args.verbose else None)
    logger.debug(f"Running command {args.command}")

    if args.command == 'analyze':
        result = asyncio.run(run_analyze(args.post_id, force=args.force))
        print_analysis(args.post_id, result)
        return 0 if result.success else 1

    if args.command == 'reconcile':
        report = asyncio.run(run_reconcile())
        print_reconcile(report)
        return 0 if not report.errors else 1

    if args.command == 'init-db':
        asyncio.run(run_init_db())
        print("Database tables created")
        return 0

    from .app import run_server
    run_server(reload=args.reload or None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
