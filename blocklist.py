#!/usr/bin/env python3
"""
Maintains the malicious IP list (main.txt) and its details table (details.csv):
ingests new events, cleans up non-public/invalid entries, and removes
addresses by criteria or by whitelist.
"""
import argparse
import json
import logging
import os
import sys

from dotenv import load_dotenv

from criteria import CRITERIA_FIELDS, validate_criteria
from errors import BlocklistError, ConfigurationError, StoreConsistencyError
from log_parser import select_best_per_ip, stream_log_events
import report
import sources
from store import DualStoreManager
from whitelist import load_whitelist_file

# Logging configuration
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LIST_FILE_NAME = 'main.txt'
TABLE_FILE_NAME = 'details.csv'


def setup_logging(log_file=None, log_level=logging.INFO):
    """
    Configure the logging system.

    Args:
        log_file (str, optional): Path to the log file
        log_level (int): Logging level
    """
    handlers = []

    # Console handler writes to stderr; stdout is reserved for the summary
    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    handlers.append(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True
    )


def build_parser():
    script_dir = os.path.dirname(os.path.abspath(__file__))
    default_lists_dir = os.path.join(script_dir, 'lists')

    parser = argparse.ArgumentParser(
        description='Maintains the malicious IP list and its details table.',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    # --- Operations (exactly one per run) ---
    operations = parser.add_mutually_exclusive_group(required=True)
    operations.add_argument(
        '--update', action='store_true',
        help=f'Fetch the latest events from the log API (needs {sources.API_KEY_ENV}) and ingest them.'
    )
    operations.add_argument(
        '--ingest-json', metavar='FILE',
        help='Ingest events from a JSON file (a list, or an object with a "logs" list).'
    )
    operations.add_argument(
        '--ingest-log', metavar='FILE',
        help='Ingest events parsed from a raw DDoS log file.'
    )
    operations.add_argument(
        '--cleanup', action='store_true',
        help='Drop non-public, invalid and duplicate addresses and sort the list.'
    )
    operations.add_argument(
        '--remove-by', choices=sorted(CRITERIA_FIELDS), metavar='FIELD',
        help=f'Remove addresses whose records match --pattern in FIELD ({", ".join(sorted(CRITERIA_FIELDS))}).'
    )
    operations.add_argument(
        '--remove-whitelisted', action='store_true',
        help='Remove addresses covered by the whitelist(s).'
    )
    # --- Store Args ---
    parser.add_argument(
        '--lists-dir', default=default_lists_dir,
        help='Directory holding main.txt and details.csv.'
    )
    parser.add_argument('--list-file', help='Path of the address list (overrides --lists-dir).')
    parser.add_argument('--table-file', help='Path of the details table (overrides --lists-dir).')
    # --- Operation Args ---
    parser.add_argument(
        '--pattern', '-p',
        help='Case-sensitive substring searched by --remove-by.'
    )
    parser.add_argument(
        '--best-per-ip', action='store_true',
        help='With --ingest-log, keep only the most informative event per IP.'
    )
    parser.add_argument(
        '--whitelist', '-w', action='append', default=[],
        help='Whitelist file with IPs/subnets (repeatable).'
    )
    parser.add_argument(
        '--whitelist-url', action='append', default=[],
        help=f'Whitelist URL (repeatable). Defaults to {sources.DEFAULT_WHITELIST_URLS} when no whitelist is given.'
    )
    parser.add_argument(
        '--whitelist-googlebot', action='store_true',
        help='Add the published Googlebot and special crawler ranges to the whitelist.'
    )
    parser.add_argument(
        '--workers', type=int, default=None,
        help='Worker processes for the whitelist scan (default: CPU count).'
    )
    parser.add_argument(
        '--worker-timeout', type=float, default=None,
        help='Seconds to wait for all whitelist workers before aborting.'
    )
    parser.add_argument(
        '--api-url', default=sources.DEFAULT_API_URL,
        help='Log API endpoint used by --update.'
    )
    # --- Output Args ---
    parser.add_argument(
        '--log-file', help='File to save execution logs.'
    )
    parser.add_argument(
        '--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], default='INFO',
        help='Log detail level.'
    )
    parser.add_argument(
        '--silent', action='store_true',
        help='Only show warnings and errors on the console (the summary is still printed).'
    )
    return parser


def load_events_json(path):
    """Reads events from a JSON file: a list, or an object with a 'logs' list."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read events from {path}: {e}") from e
    events = data.get('logs', []) if isinstance(data, dict) else data
    if not isinstance(events, list):
        raise ConfigurationError(f"{path} does not contain a list of events.")
    return events


def collect_whitelist(args):
    """Whitelist entries from the given files and URLs (default URLs if none given)."""
    entries = []
    for path in args.whitelist:
        if not os.path.exists(path):
            raise ConfigurationError(f"Whitelist file not found: {path}")
        entries.extend(load_whitelist_file(path))
    urls = args.whitelist_url
    if not urls and not args.whitelist and not args.whitelist_googlebot:
        urls = sources.DEFAULT_WHITELIST_URLS
    if urls:
        entries.extend(sources.fetch_whitelists(urls))
    if args.whitelist_googlebot:
        entries.extend(sources.fetch_json_ranges(sources.GOOGLEBOT_RANGE_URLS))
    return entries


def run(args, manager):
    """
    Runs the selected operation.

    Returns:
        list: Summary lines for stdout.
    """
    logger = logging.getLogger('blocklist.main')

    if args.cleanup:
        logger.info("Starting cleanup of both stores...")
        stats = manager.cleanup()
        return (
            report.format_cleanup_stats(os.path.basename(manager.list_path), stats['list'])
            + ['']
            + report.format_cleanup_stats(os.path.basename(manager.table_path), stats['table'])
        )

    if args.remove_by:
        # Validate before any I/O
        validate_criteria(args.remove_by, args.pattern)
        logger.info(f"Removing addresses with {args.remove_by} containing '{args.pattern}'...")
        stats = manager.remove_by_criteria(args.remove_by, args.pattern)
        return report.format_summary(f"Remove by {args.remove_by}", stats)

    if args.remove_whitelisted:
        entries = collect_whitelist(args)
        stats = manager.remove_whitelisted(entries)
        return report.format_summary("Remove whitelisted", stats)

    if args.update:
        api_key = os.environ.get(sources.API_KEY_ENV)
        if not api_key:
            raise ConfigurationError(f"{sources.API_KEY_ENV} environment variable not set")
        events = sources.fetch_log_events(api_key, api_url=args.api_url)
    elif args.ingest_json:
        events = load_events_json(args.ingest_json)
    else:
        if not os.path.exists(args.ingest_log):
            raise ConfigurationError(f"Log file not found: {args.ingest_log}")
        events = stream_log_events(args.ingest_log)
        if args.best_per_ip:
            events = select_best_per_ip(events)

    stats = manager.ingest(events)
    return report.format_summary("Ingest", stats)


def main(argv=None):
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.remove_by and not args.pattern:
        parser.error("--remove-by requires --pattern")

    # --- Logging Setup ---
    log_level = getattr(logging, args.log_level)
    setup_logging(args.log_file, log_level)
    logger = logging.getLogger('blocklist.main')

    if args.silent and log_level < logging.WARNING:
        for handler in logging.root.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(logging.WARNING)

    list_path = args.list_file or os.path.join(args.lists_dir, LIST_FILE_NAME)
    table_path = args.table_file or os.path.join(args.lists_dir, TABLE_FILE_NAME)
    manager = DualStoreManager(
        list_path, table_path,
        workers=args.workers,
        worker_timeout=args.worker_timeout,
    )

    try:
        lines = run(args, manager)
    except StoreConsistencyError as e:
        logger.critical(str(e))
        sys.exit(1)
    except BlocklistError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)

    report.print_lines(lines)
    return 0


if __name__ == "__main__":
    main()
