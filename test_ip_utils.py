import ipaddress

from ip_utils import classify_ip, compare_ips, get_range_name, sort_ips


def test_classification_table():
    assert classify_ip("8.8.8.8") == "public"
    assert classify_ip("192.168.1.1") == "nonPublic"
    assert classify_ip("not-an-ip") == "invalid"
    assert classify_ip("::1") == "nonPublic"


def test_classification_edge_cases():
    assert classify_ip(" 8.8.8.8 ") == "public"
    assert classify_ip("") == "invalid"
    assert classify_ip(None) == "invalid"
    assert classify_ip("999.1.1.1") == "invalid"
    assert classify_ip("100.64.1.1") == "nonPublic"
    assert classify_ip("203.0.113.7") == "nonPublic"
    assert classify_ip("255.255.255.255") == "nonPublic"
    assert classify_ip("::ffff:8.8.8.8") == "nonPublic"
    assert classify_ip("2001:db8::1") == "nonPublic"
    assert classify_ip("2002:808:808::1") == "nonPublic"
    assert classify_ip("2606:4700:4700::1111") == "public"
    # NAT64 and the deprecated ORCHID block are not in the non-public set
    assert classify_ip("64:ff9b::808:808") == "public"
    assert classify_ip("2001:10::1") == "public"


def test_range_names_prefer_specific_blocks():
    assert get_range_name(ipaddress.ip_address("2001::1")) == "teredo"
    assert get_range_name(ipaddress.ip_address("2001:db8::1")) == "reserved"
    assert get_range_name(ipaddress.ip_address("172.20.0.1")) == "private"
    assert get_range_name(ipaddress.ip_address("1.1.1.1")) == "unicast"


def _packed_key(address):
    packed = ipaddress.ip_address(address).packed
    return packed + b"\x00" * (16 - len(packed))


def test_sort_matches_packed_byte_order():
    addresses = [
        "8.8.8.8", "1.1.1.1", "10.0.0.1", "2606:4700::1111", "::1",
        "1.1.1.2", "255.255.255.255", "2001:db8::1", "9.9.9.9", "fe80::1",
    ]
    assert sort_ips(addresses) == sorted(addresses, key=_packed_key)


def test_sort_is_numeric_not_lexicographic():
    assert sort_ips(["10.0.0.10", "10.0.0.2", "9.255.255.255"]) == ["9.255.255.255", "10.0.0.2", "10.0.0.10"]


def test_compare_falls_back_to_string_order():
    assert compare_ips("abc", "abd") == -1
    assert compare_ips("x", "1.1.1.1") == 1
    assert compare_ips("1.1.1.1", "1.1.1.1") == 0
    assert compare_ips("::1", "0.0.0.2") == -1
