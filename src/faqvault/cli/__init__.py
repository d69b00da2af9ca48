"""Command-line interface for the FAQ Vault guide store."""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from faqvault.api import FaqVaultAPI, FaqVaultConfig
from faqvault.cli.query import add_query_commands
from faqvault.models import InitStage, InitStatus
from faqvault.storage.database import GuideDatabase


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_config() -> FaqVaultConfig:
    """Load configuration from environment variables.

    Returns:
        FaqVaultConfig built from the environment (and .env, if present)
    """
    load_dotenv()
    return FaqVaultConfig()


def cmd_init(args: argparse.Namespace) -> int:
    """Download, extract and import the guide archive into an empty store.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    last_stage = None

    def print_transition(status: InitStatus) -> None:
        nonlocal last_stage
        if status.stage != last_stage:
            last_stage = status.stage
            print(f"[{status.stage.value}] {status.progress}% {status.message}")

    config = load_config()
    with FaqVaultAPI(config) as api:
        api.subscribe(print_transition)
        status = api.initialize()

    if status.stage == InitStage.ERROR:
        logger.error(f"Initialization failed: {status.error}")
        return 1

    logger.info(f"{status.guide_count:,} guides, {status.game_count:,} games available")
    return 0


def cmd_import_dir(args: argparse.Namespace) -> int:
    """Import all guide files from a directory.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    dir_path = Path(args.directory_path)
    if not dir_path.is_dir():
        logger.error(f"Directory not found: {dir_path}")
        return 1

    config = load_config()
    try:
        with FaqVaultAPI(config) as api:
            stats = api.import_directory(
                str(dir_path),
                delete_source_files=not args.keep_files,
                batch_size=args.batch_size,
            )
    except Exception as e:
        logger.error(f"Error during directory import: {e}", exc_info=args.verbose)
        return 1

    logger.info(
        f"Import complete: {stats.imported} imported, "
        f"{stats.skipped} skipped, {stats.errors} failed"
    )
    return 0 if stats.errors == 0 else 1


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply pending schema migrations.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    config = load_config()
    db = GuideDatabase(config.db_path)
    try:
        applied = db.run_migrations()
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=args.verbose)
        return 1
    finally:
        db.close()

    if applied:
        logger.info(f"Applied migrations: {', '.join(f'v{v}' for v in applied)}")
    else:
        logger.info("Schema already up to date")
    return 0


def main() -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="FAQ Vault: searchable archive of text game guides",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose (DEBUG) logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    parser_init = subparsers.add_parser(
        "init", help="Download and import the guide archive if the store is empty"
    )
    parser_init.set_defaults(func=cmd_init)

    # import-dir command
    parser_dir = subparsers.add_parser(
        "import-dir", help="Import all guide files from a directory"
    )
    parser_dir.add_argument("directory_path", help="Directory containing guide files")
    parser_dir.add_argument(
        "--keep-files", action="store_true", help="Do not delete files after import"
    )
    parser_dir.add_argument(
        "--batch-size", type=int, default=None, help="Files per transaction (default: 100)"
    )
    parser_dir.set_defaults(func=cmd_import_dir)

    # migrate command
    parser_migrate = subparsers.add_parser("migrate", help="Apply pending schema migrations")
    parser_migrate.set_defaults(func=cmd_migrate)

    # Add query commands
    add_query_commands(subparsers)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
