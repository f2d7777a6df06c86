#!/usr/bin/env python3
"""
Dual store: the flat address list (main.txt) and the details table (details.csv).

The state functions below are pure: they take a StoreState and return a new
one plus counters. DualStoreManager wraps them with reading and writing the
two files.
"""
import csv
import logging
import os
from collections import namedtuple
from dataclasses import replace

import pandas as pd

from criteria import cascade_addresses, filter_by_criteria, validate_criteria
from errors import StoreConsistencyError, StoreError
from ip_utils import CLASS_INVALID, CLASS_NON_PUBLIC, CLASS_PUBLIC, classify_ip, parse_ip, sort_ips
from records import TABLE_COLUMNS, AddressRecord, utc_now_iso
from whitelist import find_whitelisted, parse_whitelist_lines

# Logger for this module
logger = logging.getLogger('blocklist.store')

StoreState = namedtuple('StoreState', ['addresses', 'records'])


def _empty_counts():
    return {'total': 0, CLASS_PUBLIC: 0, CLASS_NON_PUBLIC: 0, CLASS_INVALID: 0, 'duplicates': 0}


# --- Pure state functions ---

def table_addresses(state):
    """Distinct addresses referenced by the details table."""
    return {record.address for record in state.records if record.address}


def ingest_candidates(state, candidates, ingested_at=None):
    """
    Adds new addresses and records. Never removes anything.

    Args:
        state (StoreState): Current stores.
        candidates (iterable): Log events (dict) or AddressRecord objects.
        ingested_at (str, optional): Timestamp for the 'Added' column of new records.

    Returns:
        tuple: (StoreState, stats dict)
    """
    ingested_at = ingested_at or utc_now_iso()
    known_addresses = set(state.addresses)
    known_events = {record.event_id for record in state.records}
    new_addresses = []
    new_records = []
    stats = {
        'processed': 0,
        'added_addresses': 0,
        'added_records': 0,
        'skipped_duplicate_event': 0,
        'skipped_invalid': 0,
    }

    for candidate in candidates:
        stats['processed'] += 1
        if isinstance(candidate, AddressRecord):
            record = replace(candidate, address=candidate.address.strip(), event_id=candidate.event_id.strip())
        else:
            record = AddressRecord.from_event(candidate, ingested_at=ingested_at)

        if not record.event_id or parse_ip(record.address) is None:
            logger.debug(f"Skipping candidate with missing event id or invalid address: {record}")
            stats['skipped_invalid'] += 1
            continue

        if record.address not in known_addresses:
            known_addresses.add(record.address)
            new_addresses.append(record.address)
            stats['added_addresses'] += 1

        if record.event_id in known_events:
            stats['skipped_duplicate_event'] += 1
        else:
            known_events.add(record.event_id)
            new_records.append(record)
            stats['added_records'] += 1

    # The batch is sorted once; existing entries keep their position
    addresses = list(state.addresses) + sort_ips(new_addresses)
    return StoreState(addresses, list(state.records) + new_records), stats


def cleanup_state(state):
    """
    Drops non-public and invalid addresses from both stores, deduplicates and
    sorts the list. Duplicate addresses in the table are kept (it is a log)
    and only counted.

    Returns:
        tuple: (StoreState, list_counts, table_counts)
    """
    list_counts = _empty_counts()
    seen = set()
    public_addresses = []
    for raw in state.addresses:
        address = raw.strip()
        if not address:
            continue
        list_counts['total'] += 1
        kind = classify_ip(address)
        if kind != CLASS_PUBLIC:
            list_counts[kind] += 1
        elif address in seen:
            list_counts['duplicates'] += 1
        else:
            seen.add(address)
            public_addresses.append(address)
            list_counts[CLASS_PUBLIC] += 1

    table_counts = _empty_counts()
    seen = set()
    kept_records = []
    for record in state.records:
        table_counts['total'] += 1
        kind = classify_ip(record.address)
        if kind != CLASS_PUBLIC:
            table_counts[kind] += 1
            continue
        if record.address in seen:
            table_counts['duplicates'] += 1
        seen.add(record.address)
        kept_records.append(record)
        table_counts[CLASS_PUBLIC] += 1

    return StoreState(sort_ips(public_addresses), kept_records), list_counts, table_counts


def remove_addresses(state, addresses):
    """
    Removes every listed address from the list and every record carrying it
    from the table.

    Returns:
        tuple: (StoreState, list_removed, table_removed)
    """
    targets = {a.strip() for a in addresses}
    kept_addresses = [a for a in state.addresses if a.strip() not in targets]
    kept_records = [r for r in state.records if r.address not in targets]
    return (
        StoreState(kept_addresses, kept_records),
        len(state.addresses) - len(kept_addresses),
        len(state.records) - len(kept_records),
    )


# --- File I/O ---

def read_address_list(list_path):
    """Reads main.txt. A missing file is an empty list."""
    try:
        with open(list_path, 'r', encoding='utf-8') as f:
            lines = [line.strip() for line in f]
    except FileNotFoundError:
        logger.info(f"Address list {list_path} not found. Starting empty.")
        return []
    except OSError as e:
        raise StoreError(f"Cannot read address list {list_path}: {e}") from e
    addresses = [line for line in lines if line]
    logger.info(f"Read {len(addresses)} addresses from {list_path}.")
    return addresses


def read_address_table(table_path):
    """Reads details.csv into AddressRecord objects. A missing or empty file is an empty table."""
    try:
        df = pd.read_csv(table_path, dtype=str, keep_default_na=False, na_filter=False, skip_blank_lines=True)
    except FileNotFoundError:
        logger.info(f"Details table {table_path} not found. Starting empty.")
        return []
    except pd.errors.EmptyDataError:
        return []
    except (OSError, pd.errors.ParserError) as e:
        raise StoreError(f"Cannot read details table {table_path}: {e}") from e

    missing = [column for column in TABLE_COLUMNS if column not in df.columns]
    if missing:
        logger.warning(f"Details table {table_path} lacks columns {missing}. Filling with empty values.")
        for column in missing:
            df[column] = ''
    records = [AddressRecord.from_row(row) for row in df[TABLE_COLUMNS].to_dict('records')]
    logger.info(f"Read {len(records)} records from {table_path}.")
    return records


def _atomic_write(path, write_func):
    """Writes via a temporary file and os.replace, so the target is never half-written."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    temp_path = path + ".tmp"
    try:
        write_func(temp_path)
        os.replace(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError as rm_err:
                logger.error(f"Could not remove temporary file {temp_path}: {rm_err}")
        raise


def write_address_list(list_path, addresses):
    def _write(temp_path):
        with open(temp_path, 'w', encoding='utf-8', newline='\n') as f:
            if addresses:
                f.write('\n'.join(addresses) + '\n')
    _atomic_write(list_path, _write)
    logger.info(f"Wrote {len(addresses)} addresses to {list_path}.")


def write_address_table(table_path, records):
    """
    Writes the details table. Delimiters, quotes and line breaks get minimal
    quoting; a row holding a value with leading or trailing whitespace is
    written fully quoted so readers that trim unquoted fields keep it intact.
    """
    rows = [record.to_row() for record in records]

    def _write(temp_path):
        with open(temp_path, 'w', encoding='utf-8', newline='') as f:
            minimal = csv.DictWriter(f, fieldnames=TABLE_COLUMNS, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')
            padded = csv.DictWriter(f, fieldnames=TABLE_COLUMNS, quoting=csv.QUOTE_ALL, lineterminator='\n')
            minimal.writeheader()
            for row in rows:
                if any(value != value.strip() for value in row.values()):
                    padded.writerow(row)
                else:
                    minimal.writerow(row)
    _atomic_write(table_path, _write)
    logger.info(f"Wrote {len(records)} records to {table_path}.")


class DualStoreManager:
    """
    Owns the address list and the details table. Each public operation reads
    both files, computes the new state, then writes both files.
    """

    def __init__(self, list_path, table_path, workers=None, worker_timeout=None, executor_factory=None):
        self.list_path = list_path
        self.table_path = table_path
        self.workers = workers
        self.worker_timeout = worker_timeout
        self.executor_factory = executor_factory

    def load(self):
        return StoreState(read_address_list(self.list_path), read_address_table(self.table_path))

    def save(self, state):
        """
        Writes the list, then the table.

        Raises:
            StoreError: The list could not be written (nothing changed on disk).
            StoreConsistencyError: The list was written but the table was not.
        """
        try:
            write_address_list(self.list_path, state.addresses)
        except OSError as e:
            raise StoreError(f"Cannot write address list {self.list_path}: {e}") from e
        try:
            write_address_table(self.table_path, state.records)
        except Exception as e:
            raise StoreConsistencyError(self.list_path, self.table_path, e) from e

    def ingest(self, candidates):
        state = self.load()
        new_state, stats = ingest_candidates(state, candidates)
        if stats['added_addresses'] or stats['added_records']:
            self.save(new_state)
        else:
            logger.info("Nothing new to ingest.")
        logger.info(
            f"Ingest: {stats['processed']} processed, {stats['added_addresses']} new addresses, "
            f"{stats['added_records']} new records, {stats['skipped_duplicate_event']} duplicate events, "
            f"{stats['skipped_invalid']} invalid."
        )
        return stats

    def cleanup(self):
        state = self.load()
        new_state, list_counts, table_counts = cleanup_state(state)
        self.save(new_state)
        return {'list': list_counts, 'table': table_counts}

    def remove_by_criteria(self, field, needle):
        """
        Removes every address whose records match the criteria, together with
        all records of those addresses (also the ones that did not match).
        """
        validate_criteria(field, needle)
        state = self.load()
        match = filter_by_criteria(state.records, field, needle)
        targets = cascade_addresses(match.matched)
        stats = {
            'matched_records': len(match.matched),
            'removed_addresses': len(targets),
            'list_removed': 0,
            'table_removed': 0,
        }
        if not targets:
            logger.warning(f"No records with {field} containing '{needle}'. Nothing removed.")
            return stats

        new_state, stats['list_removed'], stats['table_removed'] = remove_addresses(state, targets)
        self.save(new_state)
        return stats

    def remove_whitelisted(self, whitelist_entries):
        """Removes whitelisted addresses from both stores. An empty whitelist is a no-op."""
        entries = parse_whitelist_lines(whitelist_entries)
        stats = {
            'whitelist_entries': len(entries),
            'removed_addresses': 0,
            'list_removed': 0,
            'table_removed': 0,
        }
        if not entries:
            logger.warning("No whitelist entries. Nothing removed.")
            return stats

        state = self.load()
        candidates = set(state.addresses) | table_addresses(state)
        targets = find_whitelisted(
            candidates, entries,
            workers=self.workers,
            timeout=self.worker_timeout,
            executor_factory=self.executor_factory,
        )
        stats['removed_addresses'] = len(targets)
        if not targets:
            logger.warning("No whitelisted addresses found in the stores.")
            return stats

        new_state, stats['list_removed'], stats['table_removed'] = remove_addresses(state, targets)
        self.save(new_state)
        return stats
