#!/usr/bin/env python3
"""
Remote sources: whitelist URLs and the WAF log API.
"""
import logging

import requests

from errors import SourceError
from whitelist import parse_whitelist_lines

# Logger for this module
logger = logging.getLogger('blocklist.sources')

DEFAULT_API_URL = 'https://api.sefinek.net/api/v2/cloudflare-waf-abuseipdb'
DEFAULT_WHITELIST_URLS = [
    'https://raw.githubusercontent.com/sefinek/GoodBots-IP-Whitelist/main/lists/all-safe-ips.txt',
]
GOOGLEBOT_RANGE_URLS = [
    'https://developers.google.com/search/apis/ipranges/googlebot.json',
    'https://developers.google.com/search/apis/ipranges/special-crawlers.json',
]
API_KEY_ENV = 'MALICIOUS_IPS_LIST_SECRET'
REQUEST_TIMEOUT = 25
USER_AGENT = 'Mozilla/5.0 (compatible; Malicious-IP-Addresses/1.0; +https://github.com/sefinek/Malicious-IP-Addresses)'


def create_session():
    session = requests.Session()
    session.headers.update({
        'User-Agent': USER_AGENT,
        'Accept': 'application/json',
        'Cache-Control': 'no-cache',
    })
    return session


def _get(session, url, **kwargs):
    try:
        response = session.get(url, timeout=REQUEST_TIMEOUT, **kwargs)
    except requests.RequestException as e:
        raise SourceError(f"Request to {url} failed: {e}") from e
    if response.status_code != 200:
        raise SourceError(f"Request to {url} failed with status code {response.status_code}")
    return response


def fetch_whitelists(urls, session=None):
    """
    Downloads every whitelist and merges them.

    Args:
        urls (list): Plain-text whitelist URLs (one address or CIDR per line).

    Returns:
        list: Unique entries, comments and blank lines removed.

    Raises:
        SourceError: If any URL cannot be fetched.
    """
    session = session or create_session()
    lines = []
    for url in urls:
        response = _get(session, url)
        fetched = parse_whitelist_lines(response.text.splitlines())
        logger.info(f"Fetched {len(fetched)} whitelist entries from {url}")
        lines.extend(fetched)
    entries = parse_whitelist_lines(lines)
    logger.info(f"Whitelist has {len(entries)} unique entries from {len(urls)} sources.")
    return entries


def fetch_json_ranges(urls, session=None):
    """
    Downloads published crawler ranges (Googlebot style JSON) as whitelist entries.

    Each body looks like {"prefixes": [{"ipv4Prefix": "66.249.64.0/27"}, {"ipv6Prefix": "2001:4860:4801:10::/64"}]}.

    Returns:
        list: Unique CIDR entries in the order they were published.

    Raises:
        SourceError: If any URL cannot be fetched or its body is not a prefix list.
    """
    session = session or create_session()
    prefixes = []
    for url in urls:
        response = _get(session, url)
        try:
            body = response.json()
        except ValueError as e:
            raise SourceError(f"Invalid JSON from {url}: {e}") from e
        items = body.get('prefixes') if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise SourceError(f"Unexpected response shape from {url}: 'prefixes' is not a list")
        fetched = [item.get('ipv4Prefix') or item.get('ipv6Prefix') for item in items if isinstance(item, dict)]
        fetched = [prefix for prefix in fetched if prefix]
        logger.info(f"Fetched {len(fetched)} ranges from {url}")
        prefixes.extend(fetched)
    entries = parse_whitelist_lines(prefixes)
    logger.info(f"{len(entries)} unique ranges from {len(urls)} sources.")
    return entries


def fetch_log_events(api_key, api_url=DEFAULT_API_URL, session=None):
    """
    Fetches the latest WAF log events.

    Returns:
        list: Event dicts (rayId, ip, endpoint, userAgent, action, country, timestamp).

    Raises:
        SourceError: On network failure, non-200 status or a malformed body.
    """
    session = session or create_session()
    response = _get(session, api_url, headers={'X-API-Key': api_key})
    try:
        body = response.json()
    except ValueError as e:
        raise SourceError(f"Invalid JSON from {api_url}: {e}") from e

    logs = body.get('logs') if isinstance(body, dict) else body
    if logs is None:
        logs = []
    if not isinstance(logs, list):
        raise SourceError(f"Unexpected response shape from {api_url}: 'logs' is not a list")
    logger.info(f"Fetched {len(logs)} log events from {api_url}")
    return logs
