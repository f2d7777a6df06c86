#!/usr/bin/env python3
"""
Exceptions raised by the list consolidation tools.
"""


class BlocklistError(Exception):
    """Base class for every error the tools raise on purpose."""


class ConfigurationError(BlocklistError):
    """Invalid or missing configuration. Raised before any store is touched."""


class AggregationError(BlocklistError):
    """A whitelist worker failed or timed out. No store was modified."""


class SourceError(BlocklistError):
    """A remote source (log API, whitelist URL) could not be fetched."""


class StoreError(BlocklistError):
    """Unexpected I/O failure while reading or writing a store file."""


class StoreConsistencyError(StoreError):
    """
    The address list was written but the details table was not.
    The two files may now disagree and need operator attention.
    """

    def __init__(self, list_path, table_path, cause):
        self.list_path = list_path
        self.table_path = table_path
        self.cause = cause
        super().__init__(
            f"{list_path} was updated but writing {table_path} failed ({cause}). "
            f"The two stores may now be inconsistent."
        )
