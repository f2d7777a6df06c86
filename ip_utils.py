#!/usr/bin/env python3
"""
Address helpers: public/non-public classification and canonical ordering.
"""
import ipaddress
import logging
from functools import cmp_to_key

# Logger for this module
logger = logging.getLogger('blocklist.ip_utils')

# Named special-purpose ranges, checked in order (first match wins).
# Anything that matches none of them is 'unicast'.
IPV4_RANGES = [
    ('unspecified', ['0.0.0.0/8']),
    ('broadcast', ['255.255.255.255/32']),
    ('multicast', ['224.0.0.0/4']),
    ('linkLocal', ['169.254.0.0/16']),
    ('loopback', ['127.0.0.0/8']),
    ('carrierGradeNat', ['100.64.0.0/10']),
    ('private', ['10.0.0.0/8', '172.16.0.0/12', '192.168.0.0/16']),
    ('as112', ['192.175.48.0/24', '192.31.196.0/24']),
    ('amt', ['192.52.193.0/24']),
    ('benchmarking', ['198.18.0.0/15']),
    ('reserved', [
        '192.0.0.0/24', '192.0.2.0/24', '192.88.99.0/24',
        '198.51.100.0/24', '203.0.113.0/24', '240.0.0.0/4',
    ]),
]

IPV6_RANGES = [
    ('unspecified', ['::/128']),
    ('linkLocal', ['fe80::/10']),
    ('multicast', ['ff00::/8']),
    ('loopback', ['::1/128']),
    ('uniqueLocal', ['fc00::/7']),
    ('ipv4Mapped', ['::ffff:0:0/96']),
    ('discard', ['100::/64']),
    ('rfc6145', ['::ffff:0:0:0/96']),
    ('rfc6052', ['64:ff9b::/96']),
    ('6to4', ['2002::/16']),
    ('teredo', ['2001::/32']),
    ('benchmarking', ['2001:2::/48']),
    ('amt', ['2001:3::/32']),
    ('as112v6', ['2001:4:112::/48', '2620:4f:8000::/48']),
    ('deprecated', ['2001:10::/28']),
    ('orchid2', ['2001:20::/28']),
    ('droneRemoteIdProtocolEntityTags', ['2001:30::/28']),
    ('reserved', ['2001::/23', '2001:db8::/32']),
]

# Ranges that are not publicly routable
NON_PUBLIC_RANGES = frozenset([
    'unspecified', 'multicast', 'linkLocal', 'loopback', 'reserved', 'benchmarking',
    'amt', 'broadcast', 'carrierGradeNat', 'private', 'as112', 'uniqueLocal',
    'ipv4Mapped', 'rfc6145', '6to4', 'teredo', 'as112v6', 'orchid2', 'droneRemoteIdProtocolEntityTags',
])

CLASS_PUBLIC = 'public'
CLASS_NON_PUBLIC = 'nonPublic'
CLASS_INVALID = 'invalid'


def _compile_ranges(table):
    return [(name, [ipaddress.ip_network(cidr) for cidr in cidrs]) for name, cidrs in table]

_COMPILED_RANGES = {
    4: _compile_ranges(IPV4_RANGES),
    6: _compile_ranges(IPV6_RANGES),
}


def parse_ip(address):
    """
    Parses an address string into an ipaddress object.

    Returns:
        IPv4Address | IPv6Address | None: None if the string is not a valid address.
    """
    if not isinstance(address, str):
        return None
    try:
        return ipaddress.ip_address(address.strip())
    except ValueError:
        return None


def get_range_name(ip_obj):
    """Returns the name of the special-purpose range containing ip_obj, or 'unicast'."""
    for name, networks in _COMPILED_RANGES[ip_obj.version]:
        for network in networks:
            if ip_obj in network:
                return name
    return 'unicast'


def classify_ip(address):
    """
    Classifies an address as public, non-public or invalid.

    Args:
        address (str): IPv4 or IPv6 textual address.

    Returns:
        str: 'public', 'nonPublic' or 'invalid'.
    """
    ip_obj = parse_ip(address)
    if ip_obj is None:
        return CLASS_INVALID
    if get_range_name(ip_obj) in NON_PUBLIC_RANGES:
        return CLASS_NON_PUBLIC
    return CLASS_PUBLIC


def compare_ips(ip_a, ip_b):
    """
    Total order over addresses: byte-wise comparison of the packed form,
    shorter (IPv4) addresses padded with zero bytes. Falls back to plain
    string comparison when either side is not a valid address. Never raises.

    Returns:
        int: -1, 0 or 1.
    """
    parsed_a = parse_ip(ip_a)
    parsed_b = parse_ip(ip_b)
    if parsed_a is None or parsed_b is None:
        a, b = str(ip_a), str(ip_b)
        return (a > b) - (a < b)

    bytes_a = parsed_a.packed
    bytes_b = parsed_b.packed
    for i in range(max(len(bytes_a), len(bytes_b))):
        byte_a = bytes_a[i] if i < len(bytes_a) else 0
        byte_b = bytes_b[i] if i < len(bytes_b) else 0
        if byte_a != byte_b:
            return -1 if byte_a < byte_b else 1
    return 0


ip_sort_key = cmp_to_key(compare_ips)


def sort_ips(addresses):
    """Returns a new list with the addresses in canonical order."""
    return sorted(addresses, key=ip_sort_key)
