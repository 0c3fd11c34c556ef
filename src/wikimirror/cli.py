"""Command-line interface for the wiki mirror."""

import argparse
import sqlite3
import sys

from wikimirror.config import MirrorConfig
from wikimirror.engine import build_engine
from wikimirror.errors import StoreError
from wikimirror.extractor import STRATEGY_NAMES, get_link_strategy
from wikimirror.logging_config import setup_mirror_logging
from wikimirror.store import get_page_store


def load_config(args) -> MirrorConfig:
    """Build the configuration from --config or the environment, then apply flags."""
    if getattr(args, "config", None):
        config = MirrorConfig.from_file(args.config)
    else:
        config = MirrorConfig.from_env()

    overrides = {
        "start_page": getattr(args, "start_page", None),
        "store_backend": getattr(args, "store", None),
        "database_url": getattr(args, "db", None),
        "mirror_root": getattr(args, "root", None),
        "link_strategy": getattr(args, "strategy", None),
        "max_workers": getattr(args, "workers", None),
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config


def open_store(config: MirrorConfig):
    if config.store_backend == "files":
        return get_page_store("files", root=config.mirror_root)
    return get_page_store(config.store_backend, db_url=config.database_url)


def crawl_command(args, config: MirrorConfig) -> int:
    """Crawl the wiki from the start page."""
    try:
        store = open_store(config)
    except (ValueError, OSError, sqlite3.Error) as e:
        print(f"Error: cannot open page store: {e}", file=sys.stderr)
        return 1

    with store:
        engine = build_engine(config, store=store)
        try:
            ctx = engine.run(config.start_page)
        finally:
            engine.fetcher.close()

    stats = ctx.stats
    print(f"\n{'=' * 60}")
    print(f"Mirror of {config.base_url} from {config.start_page}")
    print(f"{'=' * 60}")
    print(f"  Resolved pages: {len(ctx.resolved)}")
    print(f"  Fetched:        {stats.fetched}")
    print(f"  From store:     {stats.loaded}")
    print(f"  Failed:         {stats.failed}")
    if stats.store_errors:
        print(f"  Store errors:   {stats.store_errors}")
    print(f"  Sweeps:         {stats.sweeps}")
    if ctx.failed:
        print("\nFailed pages (retried on the next run):")
        for identifier in sorted(ctx.failed):
            print(f"  • {identifier}")
    return 0


def stats_command(args, config: MirrorConfig) -> int:
    """Print page and edge counts of the store."""
    try:
        store = open_store(config)
    except (ValueError, OSError, sqlite3.Error) as e:
        print(f"Error: cannot open page store: {e}", file=sys.stderr)
        return 1

    with store:
        print(f"Pages: {store.page_count()}")
        print(f"Template edges: {store.edge_count()}")
    return 0


def show_command(args, config: MirrorConfig) -> int:
    """Print a stored page's templates and extracted links."""
    try:
        store = open_store(config)
    except (ValueError, OSError, sqlite3.Error) as e:
        print(f"Error: cannot open page store: {e}", file=sys.stderr)
        return 1

    with store:
        try:
            stored = store.exists_or_load(args.identifier)
        except StoreError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
    if stored is None:
        print(f"{args.identifier} is not in the store")
        return 1

    strategy = get_link_strategy(config.link_strategy, config.anchor_prefix)
    links = strategy.extract(stored.identifier, stored.content)

    print(f"{stored.identifier} ({len(stored.content)} characters)")
    print(f"\nTemplates ({len(stored.templates)}):")
    for template in sorted(stored.templates):
        print(f"  • {template}")
    print(f"\nLinks ({len(links)}):")
    for link in sorted(links):
        print(f"  • {link}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="wikimirror - Incrementally mirror a documentation wiki"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging verbosity (default: log_level from the configuration, INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console (default: log_file from the configuration)",
    )
    parser.add_argument(
        "--config",
        help="JSON configuration file (default: WIKIMIRROR_* environment variables)",
    )

    store_flags = argparse.ArgumentParser(add_help=False)
    store_flags.add_argument(
        "--store",
        choices=["sqlite", "files"],
        help="Page store backend",
    )
    store_flags.add_argument(
        "--db",
        help="SQLite database URL (sqlite:///path/to/db.db)",
    )
    store_flags.add_argument(
        "--root",
        help="Mirror root directory for the files backend",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    crawl_parser = subparsers.add_parser(
        "crawl", parents=[store_flags], help="Crawl the wiki from the start page."
    )
    crawl_parser.add_argument(
        "--start-page",
        help="Page identifier to start from (default: Main_Page)",
    )
    crawl_parser.add_argument(
        "--strategy",
        choices=STRATEGY_NAMES,
        help="Link extraction strategy (default: brackets)",
    )
    crawl_parser.add_argument(
        "--workers",
        type=int,
        help="Concurrent page fetches (default: 1)",
    )
    crawl_parser.set_defaults(func=crawl_command)

    stats_parser = subparsers.add_parser(
        "stats", parents=[store_flags], help="Show page and edge counts of the store."
    )
    stats_parser.set_defaults(func=stats_command)

    show_parser = subparsers.add_parser(
        "show", parents=[store_flags], help="Show a stored page's templates and links."
    )
    show_parser.add_argument("identifier", help="Page identifier, e.g. cpp/language/noreturn")
    show_parser.add_argument(
        "--strategy",
        choices=STRATEGY_NAMES,
        help="Link extraction strategy used to list links",
    )
    show_parser.set_defaults(func=show_command)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return

    config = load_config(args)
    setup_mirror_logging(config, level=args.log_level, log_file=args.log_file)

    sys.exit(args.func(args, config))


if __name__ == "__main__":
    main()
