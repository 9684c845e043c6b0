"""
zotero-md-export command line

Export Zotero PDF annotations to Markdown, grouped by highlight color.

Usage:
    zotero-md-export ping                      # Check that Zotero is reachable
    zotero-md-export search transformer        # Find item keys
    zotero-md-export export ABCD1234           # Write @citekey.md and images
    zotero-md-export export ABCD1234 --dry-run # Preview without writing
    zotero-md-export init-config               # Create ~/.zotero-md-export/config.toml
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from zotero_md_export.config import CONFIG_FILE, ExportSettings, create_default_config
from zotero_md_export.exceptions import ZoteroExportError
from zotero_md_export.exporter import Exporter, format_summary
from zotero_md_export.source import AnnotationSource


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zotero-md-export",
        description="Export Zotero PDF annotations to Markdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s search "attention"
      List matching items with their keys

  %(prog)s export ABCD1234 EFGH5678
      Export two items to the configured Markdown directory

  %(prog)s export ABCD1234 --dry-run
      Show the target paths and the rendered Markdown only

Configuration:
  Config file: ~/.zotero-md-export/config.toml
  Environment: ZOTERO_SQLITE_PATH, ZOTERO_BBT_SQLITE_PATH
        """
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        type=Path,
        help=f"Config file (default: {CONFIG_FILE})"
    )
    parser.add_argument(
        "--base-url",
        metavar="URL",
        help="Zotero local API base URL (overrides config)"
    )
    parser.add_argument(
        "--api-key",
        metavar="KEY",
        help="Zotero API key sent with local API requests (overrides config)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging, including backend fallbacks"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("ping", help="Check whether Zotero is reachable")

    search_parser = subparsers.add_parser("search", help="Search top-level library items")
    search_parser.add_argument("query", nargs="?", default="", help="Title, creator or year")

    export_parser = subparsers.add_parser("export", help="Export items to Markdown")
    export_parser.add_argument("item_keys", nargs="+", metavar="KEY", help="Zotero item key(s)")
    export_parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Show what would be written without writing anything"
    )
    export_parser.add_argument(
        "--markdown-dir",
        metavar="DIR",
        help="Directory for @citekey.md files (overrides config)"
    )
    export_parser.add_argument(
        "--attachment-dir",
        metavar="DIR",
        help="Base directory for attachment/<citekey>/ images (overrides config)"
    )

    subparsers.add_parser("init-config", help="Create a default config file")

    return parser


def load_settings(args: argparse.Namespace) -> ExportSettings:
    """Config file values with command-line overrides applied."""
    settings = ExportSettings.load(args.config)
    if args.base_url:
        settings.zotero_base_url = args.base_url.strip()
    if args.api_key:
        settings.zotero_api_key = args.api_key.strip()
    if getattr(args, "markdown_dir", None):
        settings.markdown_dir = args.markdown_dir
    if getattr(args, "attachment_dir", None):
        settings.attachment_base_dir = args.attachment_dir
    return settings


def run_ping(source: AnnotationSource) -> int:
    if source.ping():
        print("Connected")
        return 0
    print("Disconnected")
    return 1


def run_search(source: AnnotationSource, query: str) -> int:
    results = source.search_items(query)
    if not results:
        print("No matching items.")
        return 0
    for item in results:
        print(item.display_str())
    return 0


def run_export(source: AnnotationSource, settings: ExportSettings,
               item_keys: List[str], dry_run: bool) -> int:
    if not settings.is_configured():
        print(
            "Error: markdown and attachment directories must be set. "
            "Use --markdown-dir/--attachment-dir or run init-config.",
            file=sys.stderr,
        )
        return 1

    exporter = Exporter(source, settings)
    summary = exporter.export_items(item_keys, dry_run=dry_run, progress_callback=print)

    if dry_run:
        for result in summary.results:
            if result.preview:
                print(f"\n{result.preview}")
        print("Dry run complete. No files were written.")

    print(f"\n{format_summary(summary)}")
    return 1 if summary.failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init-config":
        path = args.config or CONFIG_FILE
        if path.exists():
            print(f"Config already exists: {path}")
            return 0
        create_default_config(path)
        print(f"Created default config: {path}")
        return 0

    try:
        settings = load_settings(args)
    except (OSError, ValueError) as e:
        print(f"Error: could not read config: {e}", file=sys.stderr)
        return 1

    source = AnnotationSource.from_settings(settings)

    try:
        if args.command == "ping":
            return run_ping(source)
        if args.command == "search":
            return run_search(source, args.query)
        return run_export(source, settings, args.item_keys, args.dry_run)
    except (ZoteroExportError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
