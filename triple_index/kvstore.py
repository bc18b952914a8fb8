"""Key-value store adapters.

The index needs very little from its backing store: named tables of raw
bytes, point get/put, and an atomic increment-and-return on counters.
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

import lmdb

from triple_index.codec import MAX_COUNTER, decode_counter, encode_counter
from triple_index.errors import (
    CodecError,
    CounterOverflowError,
    IndexCorruptionError,
    StoreClosedError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Sorted key-value store with named tables."""

    #: Whether a read always observes the writes that completed before it.
    read_your_writes: bool = True

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            msg = f"{type(self).__name__} is closed"
            raise StoreClosedError(msg)

    @staticmethod
    def _add_counter(table: str, key: bytes, current: bytes | None, amount: int) -> int:
        try:
            value = (decode_counter(current) if current is not None else 0) + amount
        except CodecError as e:
            raise IndexCorruptionError(f"Malformed counter for {key!r} in {table}") from e
        if value > MAX_COUNTER:
            raise CounterOverflowError(table, key)
        return value

    @abstractmethod
    def table_exists(self, table: str) -> bool:
        """Return True if ``table`` exists."""

    @abstractmethod
    def create_table(self, table: str) -> None:
        """Create ``table``. Creating an existing table is a no-op."""

    @abstractmethod
    def drop_table(self, table: str) -> None:
        """Disable and delete ``table`` with all of its rows."""

    @abstractmethod
    def get(self, table: str, key: bytes) -> bytes | None:
        """Return the value stored at ``key``, or None."""

    @abstractmethod
    def put(self, table: str, key: bytes, value: bytes) -> None:
        """Store ``value`` at ``key``."""

    @abstractmethod
    def increment(self, table: str, key: bytes, amount: int = 1) -> int:
        """Atomically add ``amount`` to the counter at ``key``.

        A missing counter starts from zero.

        Returns:
            The post-increment value

        Raises:
            CounterOverflowError: If the result does not fit in 64 bits
            IndexCorruptionError: If the stored counter is malformed
        """

    def close(self) -> None:
        """Release the store. Later calls raise StoreClosedError."""
        self._closed = True

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store for tests and transient data.

    All operations run under one lock, which makes ``increment`` atomic.
    """

    def __init__(self) -> None:
        super().__init__()
        self._tables: dict[str, dict[bytes, bytes]] = {}
        self._lock = threading.Lock()

    def _table(self, table: str) -> dict[bytes, bytes]:
        self._check_open()
        try:
            return self._tables[table]
        except KeyError:
            msg = f"No such table: {table}"
            raise StoreUnavailableError(msg) from None

    def table_exists(self, table: str) -> bool:
        self._check_open()
        return table in self._tables

    def create_table(self, table: str) -> None:
        self._check_open()
        with self._lock:
            self._tables.setdefault(table, {})

    def drop_table(self, table: str) -> None:
        self._check_open()
        with self._lock:
            self._tables.pop(table, None)

    def get(self, table: str, key: bytes) -> bytes | None:
        with self._lock:
            return self._table(table).get(key)

    def put(self, table: str, key: bytes, value: bytes) -> None:
        with self._lock:
            self._table(table)[key] = bytes(value)

    def increment(self, table: str, key: bytes, amount: int = 1) -> int:
        with self._lock:
            rows = self._table(table)
            value = self._add_counter(table, key, rows.get(key), amount)
            rows[key] = encode_counter(value)
            return value

    def keys(self, table: str) -> list[bytes]:
        """Return the keys of ``table`` in sorted order."""
        with self._lock:
            return sorted(self._table(table))


class LmdbKeyValueStore(KeyValueStore):
    """LMDB-backed store with one named sub-database per table.

    LMDB allows a single write transaction at a time per environment, so a
    read-add-write inside one write transaction is atomic for all threads
    and processes sharing the environment.
    """

    def __init__(self, path: str | Path, map_size: int = 1 << 30, max_tables: int = 32) -> None:
        """Open (or create) an LMDB environment.

        Args:
            path: Directory holding the LMDB environment
            map_size: Maximum size of the environment in bytes
            max_tables: Maximum number of named tables in the environment
        """
        super().__init__()
        self.path = Path(path)
        self.path.mkdir(parents=True, exist_ok=True)
        try:
            self._env = lmdb.open(str(self.path), map_size=map_size, max_dbs=max_tables)
        except lmdb.Error as e:
            raise StoreUnavailableError(f"Could not open LMDB environment at {self.path}") from e
        self._dbs: dict[str, object] = {}
        self._lock = threading.Lock()

    def _db(self, table: str, create: bool = False) -> object:
        self._check_open()
        db = self._dbs.get(table)
        if db is not None:
            return db
        with self._lock:
            try:
                db = self._env.open_db(table.encode("utf-8"), create=create)
            except lmdb.NotFoundError:
                msg = f"No such table: {table}"
                raise StoreUnavailableError(msg) from None
            except lmdb.Error as e:
                raise StoreUnavailableError(f"Could not open table {table}") from e
            self._dbs[table] = db
            return db

    def table_exists(self, table: str) -> bool:
        self._check_open()
        if table in self._dbs:
            return True
        try:
            with self._env.begin() as txn:
                return txn.get(table.encode("utf-8")) is not None
        except lmdb.Error as e:
            raise StoreUnavailableError(f"Could not check table {table}") from e

    def create_table(self, table: str) -> None:
        if not self.table_exists(table):
            logger.info("Creating table %s in %s", table, self.path)
        self._db(table, create=True)

    def drop_table(self, table: str) -> None:
        if not self.table_exists(table):
            return
        db = self._db(table)
        try:
            with self._env.begin(write=True) as txn:
                txn.drop(db, delete=True)
        except lmdb.Error as e:
            raise StoreUnavailableError(f"Could not drop table {table}") from e
        finally:
            self._dbs.pop(table, None)

    def get(self, table: str, key: bytes) -> bytes | None:
        db = self._db(table)
        try:
            with self._env.begin(db=db) as txn:
                return txn.get(key)
        except lmdb.Error as e:
            raise StoreUnavailableError(f"Could not read from table {table}") from e

    def put(self, table: str, key: bytes, value: bytes) -> None:
        db = self._db(table)
        try:
            with self._env.begin(db=db, write=True) as txn:
                txn.put(key, value)
        except lmdb.Error as e:
            raise StoreUnavailableError(f"Could not write to table {table}") from e

    def increment(self, table: str, key: bytes, amount: int = 1) -> int:
        db = self._db(table)
        try:
            with self._env.begin(db=db, write=True) as txn:
                value = self._add_counter(table, key, txn.get(key), amount)
                txn.put(key, encode_counter(value))
                return value
        except lmdb.Error as e:
            raise StoreUnavailableError(f"Could not increment counter in table {table}") from e

    def close(self) -> None:
        if not self._closed:
            self._env.close()
            self._dbs.clear()
        super().close()
