#!/usr/bin/env python3
"""
Criteria filter: selects details-table records whose field contains a search term.
"""
import logging
from collections import namedtuple

from errors import ConfigurationError
from records import RECORD_FIELDS

# Logger for this module
logger = logging.getLogger('blocklist.criteria')

# Criteria name (as used on the command line) -> AddressRecord attribute
CRITERIA_FIELDS = {
    'ip': 'address',
    'address': 'address',
    'endpoint': 'endpoint',
    'userAgent': 'user_agent',
    'action': 'action',
    'country': 'country',
    'eventId': 'event_id',
    'rayId': 'event_id',
}

CriteriaMatch = namedtuple('CriteriaMatch', ['matched', 'remaining'])


def resolve_field(field):
    """
    Maps a criteria name to a record attribute.

    Raises:
        ConfigurationError: If the field is unknown.
    """
    attribute = CRITERIA_FIELDS.get(field)
    if attribute is None and field in RECORD_FIELDS:
        attribute = field
    if attribute is None:
        known = ', '.join(sorted(CRITERIA_FIELDS))
        raise ConfigurationError(f"Unknown criteria field '{field}'. Known fields: {known}")
    return attribute


def validate_criteria(field, needle):
    """Checks field and needle before any store is read. Returns the record attribute."""
    attribute = resolve_field(field)
    if not needle:
        raise ConfigurationError("A non-empty search term is required for criteria removal.")
    return attribute


def filter_by_criteria(records, field, needle):
    """
    Splits records by case-sensitive substring match on one field.

    Args:
        records (iterable of AddressRecord): Details table rows.
        field (str): Criteria name ('ip', 'endpoint', 'userAgent', ...).
        needle (str): Search term.

    Returns:
        CriteriaMatch: (matched, remaining) lists, original order preserved.
    """
    attribute = validate_criteria(field, needle)
    matched = []
    remaining = []
    for record in records:
        value = getattr(record, attribute)
        if value and needle in value:
            matched.append(record)
        else:
            remaining.append(record)
    logger.debug(f"Criteria {field}~'{needle}': {len(matched)} matched, {len(remaining)} remaining.")
    return CriteriaMatch(matched, remaining)


def cascade_addresses(matched):
    """Distinct addresses of the matched records. Every record with one of them must go."""
    return {record.address for record in matched if record.address}
