"""CLI entry point for podcatch.

Actions can be combined in one invocation and always run in the order
import, poll, download:
- Importing an OPML subscription list
- Polling all subscriptions for new episodes
- Downloading pending episodes
- Viewing catalog statistics
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from podcatch.config import Config, parse_log_level
from podcatch.db.factory import create_repository
from podcatch.errors import CatalogError
from podcatch.logging_setup import configure_logging
from podcatch.workflow.orchestrator import RunOrchestrator, RunStats

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer")
    if number < 1:
        raise argparse.ArgumentTypeError(f"{number} must be >= 1")
    return number


def print_run_summary(args, stats: RunStats) -> None:
    """Print the user-visible summary of a run."""
    if args.import_path:
        print("\nImport complete:")
        print(f"  Added: {stats.subscriptions_added}")
        print(f"  Updated: {stats.subscriptions_updated}")

    if args.update and "poll" in stats.phase_results:
        poll = stats.phase_results["poll"]
        print(f"\nFound {stats.new_episodes} new episodes")
        print(f"  Subscriptions synced: {poll.processed}")
        print(f"  Subscriptions failed: {poll.failed}")
        if poll.skipped:
            print(f"  Subscriptions skipped: {poll.skipped}")

    if args.download and "download" in stats.phase_results:
        download = stats.phase_results["download"]
        print("\nDownload complete:")
        print(f"  Downloaded: {download.processed}")
        print(f"  Failed: {download.failed}")
        if download.skipped:
            print(f"  Skipped: {download.skipped}")

    if stats.aborted_phase:
        print(f"\nRun aborted during {stats.aborted_phase} (see log)")
    elif stats.cancelled:
        print("\nRun cancelled")


def show_status(repository, config: Config) -> None:
    """Print catalog statistics for the configured owner."""
    stats = repository.get_catalog_stats(config.OWNER_ID)

    print("\nCatalog Statistics:")
    print(f"  Subscriptions: {stats['subscriptions']}")
    print(f"  Episodes: {stats['episodes']}")
    print(f"    Downloaded: {stats['downloaded']}")
    print(f"    Pending download: {stats['pending_download']}")
    print(f"  Archived versions: {stats['archived']}")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="podcatch",
        description="Podcast subscription catalog and downloader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  podcatch --import subscriptions.opml\n"
            "  podcatch --update --download\n"
        ),
    )

    parser.add_argument(
        "--import",
        dest="import_path",
        metavar="PATH",
        help="Import subscriptions from an OPML file",
    )
    parser.add_argument(
        "--update",
        action="store_true",
        help="Poll all subscriptions for new episodes",
    )
    parser.add_argument(
        "--download",
        action="store_true",
        help="Download all pending episodes",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show catalog statistics",
    )
    parser.add_argument(
        "--async",
        dest="async_mode",
        action="store_true",
        help="Use async download mode",
    )
    parser.add_argument(
        "--max-downloads",
        type=_positive_int,
        metavar="N",
        help="Number of concurrent downloads (overrides PODCATCH_MAX_DOWNLOADS)",
    )
    parser.add_argument(
        "--env-file",
        help="Path to .env file",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warn", "error"],
        help="Minimum log severity (overrides PODCATCH_LOG_LEVEL)",
    )

    return parser


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not (args.import_path or args.update or args.download or args.status):
        parser.print_help()
        sys.exit(1)

    try:
        config = Config(env_file=args.env_file)
    except CatalogError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    level = parse_log_level(args.log_level) if args.log_level else config.LOG_LEVEL
    configure_logging(level=level, log_time=config.LOG_TIME)

    if args.max_downloads:
        config.MAX_CONCURRENT_DOWNLOADS = args.max_downloads

    try:
        repository = create_repository(
            database_url=config.DATABASE_URL,
            echo=config.DB_ECHO,
        )
    except CatalogError as e:
        logger.error(f"Cannot open catalog: {e}")
        sys.exit(1)

    try:
        stats = None
        if args.import_path or args.update or args.download:
            orchestrator = RunOrchestrator(
                config=config,
                repository=repository,
                use_async=args.async_mode,
            )
            stats = orchestrator.run(
                import_path=args.import_path,
                poll=args.update,
                download=args.download,
            )
            print_run_summary(args, stats)

        if args.status:
            try:
                show_status(repository, config)
            except CatalogError as e:
                logger.error(f"Cannot read catalog statistics: {e}")
                sys.exit(1)

    finally:
        repository.close()

    if stats is not None and not stats.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
