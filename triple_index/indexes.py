"""Counting permutation indexes and the existence index.

A permutation index maps a two-term key to the values seen with it. Each
value is stored under ``key ++ ordinal`` where ordinals are dense and
zero-based per key, and a companion counter table holds the number of
ordinals issued so far. Counting is a single read of the counter; picking
the k-th value is a single read of the data table.
"""

import logging

from triple_index.codec import decode_counter, ordinal_key
from triple_index.errors import CodecError, IndexCorruptionError
from triple_index.kvstore import KeyValueStore
from triple_index.pattern import Permutation

logger = logging.getLogger(__name__)

EMPTY_VALUE = b""


class CounterTable:
    """Per-key counters kept in one table of the key-value store."""

    def __init__(self, store: KeyValueStore, table: str) -> None:
        self.store = store
        self.table = table

    def read(self, key: bytes) -> int:
        """Return the counter for ``key``, 0 if it has never been incremented.

        Raises:
            IndexCorruptionError: If a stored counter is zero or malformed
        """
        raw = self.store.get(self.table, key)
        if raw is None:
            return 0
        try:
            value = decode_counter(raw)
        except CodecError as e:
            raise IndexCorruptionError(f"Malformed counter for {key!r} in {self.table}") from e
        if value <= 0:
            msg = f"Counter for {key!r} in {self.table} was persisted as {value}"
            raise IndexCorruptionError(msg)
        return value

    def next_ordinal(self, key: bytes) -> int:
        """Atomically claim the next ordinal for ``key``.

        Returns:
            The pre-increment counter value, so the first claim gets 0
        """
        return self.store.increment(self.table, key) - 1


class PermutationIndex:
    """Ordinal-addressed values under two-term keys, with their counters."""

    def __init__(self, store: KeyValueStore, permutation: Permutation, table_prefix: str = "") -> None:
        """Initialize permutation index.

        Args:
            store: Backing key-value store
            permutation: Which two positions form the key
            table_prefix: Prefix for the data and count table names
        """
        self.store = store
        self.permutation = permutation
        self.data_table = table_prefix + permutation.data_table
        self.counts = CounterTable(store, table_prefix + permutation.count_table)

    @property
    def tables(self) -> tuple[str, str]:
        return self.data_table, self.counts.table

    def count(self, prefix: bytes) -> int:
        """Number of values appended under ``prefix``."""
        return self.counts.read(prefix)

    def append(self, prefix: bytes, value: bytes) -> int:
        """Add ``value`` under ``prefix`` at the next free ordinal.

        The counter increment and the data write are two separate store
        operations. Between them the counter already includes an ordinal
        whose entry is not readable yet.

        Returns:
            The ordinal the value was written at
        """
        ordinal = self.counts.next_ordinal(prefix)
        key = ordinal_key(prefix, ordinal)
        logger.debug("Inserting %r -> %r to table %s", key, value, self.data_table)
        self.store.put(self.data_table, key, value)
        return ordinal

    def get(self, prefix: bytes, ordinal: int) -> bytes | None:
        """Return the value at ``ordinal`` under ``prefix``, or None."""
        key = ordinal_key(prefix, ordinal)
        value = self.store.get(self.data_table, key)
        logger.debug("Getting %r from table %s -> %r", key, self.data_table, value)
        return value


class ExistenceIndex:
    """Full spo keys with empty values, used for membership tests only."""

    def __init__(self, store: KeyValueStore, table_prefix: str = "") -> None:
        self.store = store
        self.table = table_prefix + "spo_data"

    def mark(self, key: bytes) -> None:
        self.store.put(self.table, key, EMPTY_VALUE)

    def contains(self, key: bytes) -> bool:
        # An empty value is still a present row
        return self.store.get(self.table, key) is not None
