#!/usr/bin/env python3
"""
Module for parsing raw DDoS logs into candidate events for ingestion.

Expected line format:
    HH:MM:SS.mmm DD.MM.YYYY: [tag] <endpoint> - <user agent> - <ip> "<referer>" ...
"""
import hashlib
import ipaddress
import logging
import re

# Logger for this module
logger = logging.getLogger('blocklist.parser')

# Pre-compile log pattern for efficiency
LOG_PATTERN = re.compile(
    r'^(?P<time>\d{2}:\d{2}:\d{2}\.\d{3})\s+(?P<date>\d{2}\.\d{2}\.\d{4}):\s+\[.*?]\s+'
    r'(?P<endpoint>\S+)\s+-\s+(?P<useragent>.*?)\s+-\s+(?P<ip>[\da-fA-F:.]+)\s+"(?P<referer>[^"]*)".*$'
)

DEFAULT_ACTION = 'ddos'


def make_event_id(line):
    """Deterministic event id for a raw log line, so re-ingesting a file adds nothing."""
    return 'log-' + hashlib.sha1(line.encode('utf-8')).hexdigest()[:16]


def parse_log_line(line, action=DEFAULT_ACTION):
    """
    Parses one log line.

    Returns:
        dict or None: Event with keys eventId, ip, timestamp, endpoint, userAgent,
                      referer, action, country; None if the line does not match
                      or carries an invalid IP.
    """
    clean_line = line.replace('\r', '').strip()
    if not clean_line:
        return None
    match = LOG_PATTERN.match(clean_line)
    if not match:
        return None

    data = match.groupdict()
    ip = data['ip'].strip()
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return None

    day, month, year = data['date'].split('.')
    return {
        'eventId': make_event_id(clean_line),
        'ip': ip,
        'timestamp': f"{year}-{month}-{day}T{data['time']}Z",
        'endpoint': data['endpoint'].strip(),
        'userAgent': data['useragent'].strip(),
        'referer': data['referer'].strip(),
        'action': action,
        'country': '',
    }


def stream_log_events(log_file, action=DEFAULT_ACTION):
    """
    Reads a log file and yields parsed events one by one.

    Args:
        log_file (str): Path to the log file.
        action (str): Value for the 'Action taken' column.

    Yields:
        dict: Parsed event (see parse_log_line).
    """
    total_lines = 0
    parsed_lines = 0
    invalid_lines = 0
    ipv4 = set()
    ipv6 = set()

    with open(log_file, 'r', encoding='utf-8', errors='ignore') as f:
        for line in f:
            total_lines += 1
            if not line.strip():
                continue
            event = parse_log_line(line, action=action)
            if event is None:
                invalid_lines += 1
                continue

            parsed_lines += 1
            if ':' in event['ip']:
                ipv6.add(event['ip'])
            else:
                ipv4.add(event['ip'])
            yield event

            # Log progress periodically
            if total_lines % 10000 == 0:
                logger.info(f"Processed {total_lines} lines...")

    logger.info(f"Finished reading {log_file}. Parsed & total lines: {parsed_lines}/{total_lines}, invalid: {invalid_lines}")
    logger.info(f"IPv4 addresses: {len(ipv4)}, IPv6 addresses: {len(ipv6)}")


def event_score(event):
    """Longer user agent + referer means a more informative sample."""
    ua = event.get('userAgent') or ''
    referer = event.get('referer') or ''
    ua_length = len(ua) if ua != '-' else 0
    referer_length = len(referer) if referer != '-' else 0
    return ua_length + referer_length


def select_best_per_ip(events):
    """Keeps one event per IP: the one with the highest score (first seen wins ties)."""
    best = {}
    for event in events:
        existing = best.get(event['ip'])
        if existing is None or event_score(event) > event_score(existing):
            best[event['ip']] = event
    return list(best.values())
