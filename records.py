#!/usr/bin/env python3
"""
AddressRecord: one observation of a malicious address, as stored in the details table.
"""
from dataclasses import dataclass, fields
from datetime import datetime, timezone

import pandas as pd

# Header of the details table, in column order
TABLE_COLUMNS = ['Added', 'Date', 'RayID', 'IP', 'Endpoint', 'User-Agent', 'Action taken', 'Country']

# Table column -> record attribute
COLUMN_TO_FIELD = {
    'Added': 'ingested_at',
    'Date': 'observed_at',
    'RayID': 'event_id',
    'IP': 'address',
    'Endpoint': 'endpoint',
    'User-Agent': 'user_agent',
    'Action taken': 'action',
    'Country': 'country',
}


def _clean(value):
    if value is None:
        return ''
    if isinstance(value, float) and pd.isna(value):
        return ''
    return str(value).strip()


def format_timestamp(value):
    """
    Normalizes an ISO string, epoch milliseconds or datetime to
    'YYYY-MM-DDTHH:MM:SS.mmmZ' (UTC). Unparseable values are returned as text.
    """
    if value is None or value == '':
        return ''
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            ts = pd.to_datetime(value, unit='ms', utc=True)
        else:
            ts = pd.to_datetime(value, utc=True)
    except (ValueError, TypeError, OverflowError):
        return _clean(value)
    if pd.isna(ts):
        return ''
    return ts.strftime('%Y-%m-%dT%H:%M:%S.') + f"{ts.microsecond // 1000:03d}Z"


def utc_now_iso():
    return format_timestamp(datetime.now(timezone.utc))


@dataclass(frozen=True)
class AddressRecord:
    ingested_at: str = ''
    observed_at: str = ''
    event_id: str = ''
    address: str = ''
    endpoint: str = ''
    user_agent: str = ''
    action: str = ''
    country: str = ''

    @classmethod
    def from_event(cls, event, ingested_at=None):
        """
        Builds a record from a log API event. Missing keys become ''.

        Args:
            event (dict): Keys rayId|eventId|RayID, ip|IP, endpoint, userAgent,
                          action, country, timestamp.
            ingested_at (str, optional): Ingestion timestamp; defaults to now.
        """
        event_id = event.get('rayId') or event.get('eventId') or event.get('RayID')
        address = event.get('ip') or event.get('IP')
        return cls(
            ingested_at=ingested_at or utc_now_iso(),
            observed_at=format_timestamp(event.get('timestamp')),
            event_id=_clean(event_id),
            address=_clean(address),
            endpoint=_clean(event.get('endpoint')),
            user_agent=_clean(event.get('userAgent')),
            action=_clean(event.get('action')),
            country=_clean(event.get('country')),
        )

    @classmethod
    def from_row(cls, row):
        """Builds a record from a details table row (dict keyed by TABLE_COLUMNS)."""
        values = {COLUMN_TO_FIELD[column]: row.get(column, '') for column in TABLE_COLUMNS}
        values = {key: ('' if value is None else str(value)) for key, value in values.items()}
        # The IP column is the join key with the address list
        values['address'] = values['address'].strip()
        values['event_id'] = values['event_id'].strip()
        return cls(**values)

    def to_row(self):
        return {column: getattr(self, COLUMN_TO_FIELD[column]) for column in TABLE_COLUMNS}


RECORD_FIELDS = tuple(f.name for f in fields(AddressRecord))
