"""Exceptions raised by the triple index."""


class TripleIndexError(Exception):
    """Base class for all triple index errors."""


class PatternError(TripleIndexError, ValueError):
    """A query pattern does not have exactly one wildcard."""


class CodecError(TripleIndexError, ValueError):
    """A term cannot be encoded, or a byte sequence cannot be decoded."""


class StoreError(TripleIndexError):
    """Base class for key-value store failures."""


class StoreUnavailableError(StoreError):
    """The key-value store could not complete an operation."""


class StoreClosedError(StoreError):
    """An operation was attempted on a store that is not open."""


class CounterOverflowError(TripleIndexError):
    """A counter would exceed the 64-bit range for its key."""

    def __init__(self, table: str, key: bytes) -> None:
        """Initialize overflow error.

        Args:
            table: Name of the counter table
            key: Index key whose counter overflowed
        """
        super().__init__(f"Too many values for key {key!r} in table {table}")
        self.table = table
        self.key = key


class IndexCorruptionError(TripleIndexError):
    """Stored index data violates an index invariant."""


class PartialInsertError(TripleIndexError):
    """A triple was written to some of its tables but not all of them."""

    def __init__(self, failures: dict[str, Exception]) -> None:
        """Initialize partial insert error.

        Args:
            failures: Failed writes keyed by index name
        """
        names = ", ".join(sorted(failures))
        super().__init__(f"Insert failed for: {names}")
        self.failures = failures
