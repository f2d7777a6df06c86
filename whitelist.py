#!/usr/bin/env python3
"""
Whitelist handling: CIDR-aware membership tests and the parallel scan that
finds whitelisted addresses in the stores.
"""
import ipaddress
import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed

import psutil

from errors import AggregationError
from ip_utils import parse_ip

# Logger for this module
logger = logging.getLogger('blocklist.whitelist')


def parse_whitelist_lines(lines):
    """Strips lines, drops blanks and '#' comments, deduplicates (first occurrence order kept)."""
    entries = []
    seen = set()
    for line in lines:
        entry = line.strip()
        if not entry or entry.startswith('#') or entry in seen:
            continue
        seen.add(entry)
        entries.append(entry)
    return entries


def load_whitelist_file(whitelist_file):
    """
    Loads whitelist entries (addresses or CIDRs) from a file.

    Returns:
        list: Entries in file order. Empty if the file does not exist.
    """
    if not os.path.exists(whitelist_file):
        logger.error(f"Whitelist file not found: {whitelist_file}")
        return []
    with open(whitelist_file, 'r', encoding='utf-8', errors='ignore') as f:
        entries = parse_whitelist_lines(f)
    logger.info(f"{len(entries)} entries loaded from {whitelist_file}.")
    return entries


def is_member(address, whitelist_entry):
    """
    Tests one address against one whitelist entry.

    A literal entry matches on string equality or address equality; a CIDR
    entry matches addresses of the same family inside the network. An
    unparseable candidate or a malformed CIDR never matches.
    """
    ip_obj = parse_ip(address)
    if ip_obj is None:
        return False
    entry = whitelist_entry.strip()

    if '/' not in entry:
        if address.strip() == entry:
            return True
        return ip_obj == parse_ip(entry)

    try:
        network = ipaddress.ip_network(entry, strict=False)
    except ValueError:
        return False
    return ip_obj.version == network.version and ip_obj in network


def is_whitelisted(address, whitelist_set):
    """Exact string lookup first, then a scan of the CIDR entries."""
    if parse_ip(address) is None:
        return False
    if address.strip() in whitelist_set:
        return True
    for entry in whitelist_set:
        if is_member(address, entry):
            return True
    return False


class Whitelist:
    """
    Whitelist compiled once: literals as a string set and an address set,
    CIDRs as network objects. contains() gives the same answer as
    is_whitelisted() without re-parsing entries per address.
    """

    def __init__(self, entries):
        self.entries = frozenset(e.strip() for e in entries if e and e.strip())
        self.addresses = set()
        self.networks = []
        self.invalid_entries = 0

        for entry in self.entries:
            if '/' in entry:
                try:
                    self.networks.append(ipaddress.ip_network(entry, strict=False))
                except ValueError:
                    self.invalid_entries += 1
                    logger.debug(f"Ignoring malformed CIDR whitelist entry: {entry}")
            else:
                ip_obj = parse_ip(entry)
                if ip_obj is None:
                    # Still usable as an exact string match
                    self.invalid_entries += 1
                    logger.debug(f"Whitelist entry is not a valid address: {entry}")
                else:
                    self.addresses.add(ip_obj)

    def __len__(self):
        return len(self.entries)

    def contains(self, address):
        ip_obj = parse_ip(address)
        if ip_obj is None:
            return False
        if address.strip() in self.entries or ip_obj in self.addresses:
            return True
        for network in self.networks:
            if network.version == ip_obj.version and ip_obj in network:
                return True
        return False


def default_worker_count():
    """Logical CPU count, at least 1."""
    return max(1, psutil.cpu_count(logical=True) or 1)


def partition(items, parts):
    """Round-robin split into `parts` chunks (at least one). Every item lands in exactly one chunk."""
    parts = max(1, int(parts))
    chunks = [[] for _ in range(parts)]
    for i, item in enumerate(items):
        chunks[i % parts].append(item)
    return chunks


def scan_chunk(chunk, whitelist_entries):
    """Worker body: returns the addresses of `chunk` that the whitelist covers."""
    whitelist = Whitelist(whitelist_entries)
    return [address for address in chunk if whitelist.contains(address)]


def _abort_executor(executor):
    """Stops a failed scan: kills worker processes still running and drops queued chunks."""
    # Thread pools have no _processes; their threads cannot be killed
    processes = list((getattr(executor, '_processes', None) or {}).values())
    for process in processes:
        if process.is_alive():
            logger.warning(f"Terminating whitelist worker pid={process.pid}")
            process.terminate()
    executor.shutdown(wait=False, cancel_futures=True)
    for process in processes:
        process.join(timeout=5)


def find_whitelisted(addresses, whitelist_entries, workers=None, timeout=None, executor_factory=None):
    """
    Finds every whitelisted address, scanning chunks in parallel.

    Args:
        addresses (iterable): Addresses from both stores; duplicates are fine.
        whitelist_entries (iterable): Literal addresses and/or CIDRs.
        workers (int, optional): Pool width. Defaults to the logical CPU count.
        timeout (float, optional): Seconds to wait for all workers.
        executor_factory (callable, optional): Executor class taking max_workers.
                                               Defaults to ProcessPoolExecutor.

    Returns:
        set: Whitelisted addresses. Empty if the whitelist is empty.

    Raises:
        AggregationError: If any worker fails or the timeout expires. Partial
                          results are discarded.
    """
    entries = frozenset(parse_whitelist_lines(whitelist_entries))
    if not entries:
        logger.warning("Whitelist is empty. Nothing to match.")
        return set()

    items = sorted(set(a.strip() for a in addresses if a and a.strip()))
    if not items:
        logger.info("No addresses to check against the whitelist.")
        return set()

    worker_count = min(workers or default_worker_count(), len(items))
    chunks = partition(items, worker_count)
    factory = executor_factory or ProcessPoolExecutor
    logger.info(f"Checking {len(items)} addresses against {len(entries)} whitelist entries using {worker_count} workers.")

    removed = set()
    executor = factory(max_workers=worker_count)
    try:
        futures = {executor.submit(scan_chunk, chunk, entries): index for index, chunk in enumerate(chunks)}
        for future in as_completed(futures, timeout=timeout):
            matched = future.result()
            logger.debug(f"Worker {futures[future]}: {len(matched)} of {len(chunks[futures[future]])} addresses whitelisted.")
            removed.update(matched)
    except Exception as e:
        _abort_executor(executor)
        raise AggregationError(f"Whitelist scan aborted, no changes applied: {e!r}") from e
    executor.shutdown(wait=True)

    logger.info(f"All {worker_count} workers done. {len(removed)} whitelisted addresses found.")
    return removed
