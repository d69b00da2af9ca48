"""CLI commands for searching and inspecting the guide store."""

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from faqvault.api import FaqVaultAPI, FaqVaultConfig
from faqvault.exceptions import FaqVaultError
from faqvault.parsing.guide_parser import GuideParser

load_dotenv()

CONTENT_PREVIEW_LENGTH = 500


def _configure_output(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
    )


def _print_guide(index: int, guide) -> None:
    print(f"Result {index}:")
    print(f"  Title: {guide.title}")
    print(f"  ID: {guide.id}")
    if guide.tags:
        print(f"  Tags: {', '.join(guide.tags)}")
    print(f"  File: {guide.file_path}")
    print()


def cmd_search(args: argparse.Namespace) -> int:
    """Search guide titles, tags and content.

    Args:
        args: Command-line arguments

    Returns:
        Exit code
    """
    _configure_output(args.verbose)

    try:
        with FaqVaultAPI(FaqVaultConfig()) as api:
            results = api.search(args.query, limit=args.limit)
    except FaqVaultError as e:
        print(f"Error: {e.message}")
        return 1

    if not results.meta_matches and not results.content_only_matches:
        print("No results found.")
        return 0

    print(f"\nTitle/tag matches: {len(results.meta_matches)}\n")
    for i, guide in enumerate(results.meta_matches, 1):
        _print_guide(i, guide)

    print(f"Content-only matches: {len(results.content_only_matches)}\n")
    for i, guide in enumerate(results.content_only_matches, 1):
        _print_guide(i, guide)

    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse a guide file and print what would be stored, without importing it.

    Args:
        args: Command-line arguments

    Returns:
        Exit code
    """
    _configure_output(args.verbose)

    parser = GuideParser()
    try:
        parsed = parser.parse_guide(args.file_path)
    except FaqVaultError as e:
        print(f"Error: {e.message}")
        return 1

    info = parser.extract_game_info_from_path(args.file_path)
    tags = parser.generate_tags(parsed.content, Path(args.file_path).name)

    print(
        json.dumps(
            {
                "title": parsed.title,
                "format": parsed.format.value,
                "metadata": parsed.metadata,
                "tags": tags,
                "game": info.model_dump(),
                "content_length": len(parsed.content),
                "content": parsed.content[:CONTENT_PREVIEW_LENGTH],
            },
            indent=2,
        )
    )
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Print aggregate store statistics.

    Args:
        args: Command-line arguments

    Returns:
        Exit code
    """
    _configure_output(args.verbose)

    with FaqVaultAPI(FaqVaultConfig()) as api:
        stats = api.db.get_aggregate_stats()

    print(json.dumps(stats, indent=2))
    return 0


def add_query_commands(subparsers):
    """Add query-related commands to CLI.

    Args:
        subparsers: Argparse subparsers object
    """
    parser_search = subparsers.add_parser("search", help="Full-text search over guides")
    parser_search.add_argument("query", help="Search query (FTS5 syntax accepted)")
    parser_search.add_argument(
        "-l", "--limit", type=int, default=20, help="Maximum results per index (default: 20)"
    )
    parser_search.set_defaults(func=cmd_search)

    parser_parse = subparsers.add_parser(
        "parse", help="Parse a guide file and show the inferred title, metadata and tags"
    )
    parser_parse.add_argument("file_path", help="Path to a guide file")
    parser_parse.set_defaults(func=cmd_parse)

    parser_stats = subparsers.add_parser("stats", help="Show guide and game counts")
    parser_stats.set_defaults(func=cmd_stats)
