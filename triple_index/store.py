"""Triple store facade over the permutation and existence indexes.

The store keeps seven tables: data and count tables for the sp, po and so
permutations, and the spo existence table. An insert appends the missing
term to each permutation and marks the full triple as present. These four
writes are independent; a failure part way leaves the triple partially
indexed, which is reported through :class:`InsertResult`.
"""

import logging
import random
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from triple_index.codec import RDFTerm, Triple, decode, encode, hash_encoded, triple_key
from triple_index.config import StoreConfig
from triple_index.errors import (
    CodecError,
    CounterOverflowError,
    IndexCorruptionError,
    PartialInsertError,
    StoreClosedError,
    StoreError,
)
from triple_index.indexes import ExistenceIndex, PermutationIndex
from triple_index.kvstore import KeyValueStore
from triple_index.pattern import Permutation, QueryPattern

logger = logging.getLogger(__name__)

EXISTENCE = "spo"


class StoreState(Enum):
    UNINITIALIZED = "uninitialized"
    OPEN = "open"
    CLOSED = "closed"


class Answer(Enum):
    """Three-valued answer to an existence check."""

    YES = "yes"
    NO = "no"
    # The store could not be read, so the triple may or may not be present
    MAYBE = "maybe"


@dataclass
class InsertResult:
    """Outcome of the four independent writes of one insert.

    Attributes:
        triple: The inserted triple
        written: Names of the indexes that were updated ("sp", "po", "so", "spo")
        failures: Exceptions of the writes that failed, keyed by index name
    """

    triple: Triple
    written: list[str] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failures

    @property
    def partial(self) -> bool:
        """True when some, but not all, of the writes succeeded."""
        return bool(self.written) and bool(self.failures)

    def raise_for_failure(self) -> None:
        """Raise PartialInsertError if any write failed."""
        if self.failures:
            raise PartialInsertError(self.failures)


class TripleStore:
    """Count, sample and membership queries over triples in a key-value store."""

    def __init__(self, kv: KeyValueStore, config: StoreConfig | None = None) -> None:
        """Initialize triple store. Call :meth:`open` before use.

        Args:
            kv: Backing key-value store; closed together with this store
            config: Store settings (defaults apply when omitted)
        """
        self.kv = kv
        self.config = config or StoreConfig()
        self.state = StoreState.UNINITIALIZED
        self.random = random.Random(self.config.seed)
        prefix = self.config.table_prefix
        self.indexes: dict[Permutation, PermutationIndex] = {
            permutation: PermutationIndex(kv, permutation, prefix) for permutation in Permutation
        }
        self.existence = ExistenceIndex(kv, prefix)

    @classmethod
    def from_config(cls, config: StoreConfig) -> "TripleStore":
        """Open the configured backend and return an open store on it."""
        store = cls(config.open_backend(), config)
        store.open()
        return store

    @property
    def tables(self) -> list[str]:
        """Names of all seven tables used by this store."""
        names = [name for index in self.indexes.values() for name in index.tables]
        names.append(self.existence.table)
        return names

    def open(self) -> None:
        """Ensure all tables exist and make the store usable.

        Opening an already open store is a no-op.

        Raises:
            StoreClosedError: If the store was closed
        """
        if self.state is StoreState.CLOSED:
            msg = "Cannot reopen a closed triple store"
            raise StoreClosedError(msg)
        if self.state is StoreState.OPEN:
            return
        self._initialise_tables()
        self.state = StoreState.OPEN

    def _initialise_tables(self) -> None:
        for table in self.tables:
            if not self.kv.table_exists(table):
                self.kv.create_table(table)
                logger.info("Created table: %s", table)
        logger.info("Tables initialised")

    def close(self) -> None:
        """Close the store and its backend. Closing is final."""
        if self.state is StoreState.CLOSED:
            return
        self.state = StoreState.CLOSED
        self.kv.close()

    def __enter__(self) -> "TripleStore":
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _check_open(self) -> None:
        if self.state is not StoreState.OPEN:
            msg = f"Triple store is {self.state.value}"
            raise StoreClosedError(msg)

    def insert(self, subject: RDFTerm, predicate: RDFTerm, obj: RDFTerm) -> InsertResult:
        """Index one triple.

        Each permutation gets the term missing from its key: sp stores the
        object, po the subject and so the predicate. Store failures do not
        raise; they are logged and collected in the returned result, and the
        remaining writes are still attempted.

        Raises:
            StoreClosedError: If the store is not open
            CodecError: If a term cannot be encoded
        """
        self._check_open()
        logger.debug("Inserting: %s %s %s", subject, predicate, obj)
        triple = (subject, predicate, obj)
        encoded = tuple(encode(t) for t in triple)
        hashed = tuple(hash_encoded(e) for e in encoded)
        result = InsertResult(triple)

        for permutation, index in self.indexes.items():
            name = permutation.label
            prefix = hashed[permutation.first] + hashed[permutation.second]
            try:
                index.append(prefix, encoded[permutation.stored])
            except CounterOverflowError as e:
                logger.error("%s; triple not added to the %s index", e, name)
                result.failures[name] = e
            except (StoreError, IndexCorruptionError) as e:
                logger.error("Could not insert triple into %s index", name, exc_info=True)
                result.failures[name] = e
            else:
                result.written.append(name)

        try:
            self.existence.mark(b"".join(hashed))
        except StoreError as e:
            logger.error("Could not mark triple as existing", exc_info=True)
            result.failures[EXISTENCE] = e
        else:
            result.written.append(EXISTENCE)

        if result.partial:
            logger.error("Triple %s %s %s only partially indexed: %s", *triple, sorted(result.failures))
        return result

    def insert_many(self, triples: Iterable[Triple]) -> list[InsertResult]:
        """Insert several triples one at a time."""
        return [self.insert(*triple) for triple in triples]

    def count_matches(self, pattern: QueryPattern) -> int:
        """Number of values stored for the pattern's two bound terms.

        Raises:
            PatternError: If the pattern does not have exactly one wildcard
            StoreClosedError: If the store is not open
            StoreUnavailableError: If the counter could not be read
        """
        self._check_open()
        return self.indexes[pattern.permutation].count(pattern.index_key())

    def sample_match(
        self,
        pattern: QueryPattern,
        rng: random.Random | None = None,
        attempts: int = 1,
    ) -> RDFTerm | None:
        """Pick a uniformly random term matching the pattern's wildcard.

        Every ordinal under the pattern's key is equally likely, so a term
        inserted twice under the same key is twice as likely.

        Args:
            pattern: Pattern with exactly one wildcard
            rng: Random source with ``randrange``; the store's own by default
            attempts: Number of draws to try when a drawn ordinal is not yet
                readable (a concurrent insert is between its two writes)

        Returns:
            A matching term, or None if nothing matches or no draw succeeded

        Raises:
            PatternError: If the pattern does not have exactly one wildcard
            StoreClosedError: If the store is not open
            StoreUnavailableError: If the store could not be read
        """
        self._check_open()
        rng = rng or self.random
        index = self.indexes[pattern.permutation]
        prefix = pattern.index_key()

        count = index.count(prefix)
        if count == 0:
            return None
        for _ in range(max(attempts, 1)):
            ordinal = rng.randrange(count)
            value = index.get(prefix, ordinal)
            if value is not None:
                try:
                    return decode(value)
                except CodecError as e:
                    raise IndexCorruptionError(f"Undecodable value at ordinal {ordinal} for {pattern}") from e
            logger.debug("Ordinal %d of %d not yet written for %s", ordinal, count, pattern)
        return None

    def exists(self, subject: RDFTerm, predicate: RDFTerm, obj: RDFTerm) -> Answer:
        """Check whether a triple has been inserted.

        Returns:
            Answer.YES or Answer.NO, or Answer.MAYBE if the store could not be read

        Raises:
            StoreClosedError: If the store is not open
        """
        self._check_open()
        key = triple_key(subject, predicate, obj)
        try:
            return Answer.YES if self.existence.contains(key) else Answer.NO
        except StoreError:
            logger.error("Could not check existence for %s , %s , %s", subject, predicate, obj, exc_info=True)
            return Answer.MAYBE

    def clear(self) -> None:
        """Drop and recreate every table, leaving the store empty.

        Must not run concurrently with any other operation on the store.
        """
        self._check_open()
        logger.info("Clearing tables")
        for table in self.tables:
            self.kv.drop_table(table)
        self._initialise_tables()
        logger.info("Tables cleared")

    def wait_for_visibility(self) -> None:
        """Wait until recent writes can be read back.

        Returns at once when the backend has read-your-writes consistency,
        otherwise sleeps for the configured visibility delay.
        """
        if self.kv.read_your_writes:
            return
        time.sleep(self.config.visibility_delay)
