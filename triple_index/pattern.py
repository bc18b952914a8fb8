"""Single-wildcard query patterns and the permutation each one selects."""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Final

from triple_index.codec import RDFTerm, index_key
from triple_index.errors import PatternError

# Like HDT and rdflib searches, None stands for "any" in a pattern slot
WILDCARD: Final = None


class Position(IntEnum):
    """Slot of a term within a triple."""

    SUBJECT = 0
    PREDICATE = 1
    OBJECT = 2


class Permutation(Enum):
    """A permutation index, named by the two positions forming its key."""

    SP = ("sp", Position.SUBJECT, Position.PREDICATE, Position.OBJECT)
    PO = ("po", Position.PREDICATE, Position.OBJECT, Position.SUBJECT)
    SO = ("so", Position.SUBJECT, Position.OBJECT, Position.PREDICATE)

    def __init__(self, label: str, first: Position, second: Position, stored: Position) -> None:
        self.label = label
        self.first = first
        self.second = second
        # Position of the term kept as the indexed value
        self.stored = stored

    @classmethod
    def for_wildcard(cls, position: Position) -> "Permutation":
        """Return the permutation that answers a wildcard at ``position``."""
        for permutation in cls:
            if permutation.stored == position:
                return permutation
        msg = f"No permutation for wildcard at {position!r}"
        raise PatternError(msg)

    @property
    def data_table(self) -> str:
        return f"{self.label}_data"

    @property
    def count_table(self) -> str:
        return f"{self.label}_counts"

    def key_for(self, terms: tuple[RDFTerm | None, ...]) -> bytes:
        """Build this permutation's index key from a triple or pattern."""
        return index_key(terms[self.first], terms[self.second])


@dataclass(frozen=True, slots=True)
class QueryPattern:
    """A triple pattern with exactly one wildcard slot.

    Attributes:
        subject: Subject term or WILDCARD
        predicate: Predicate term or WILDCARD
        object: Object term or WILDCARD
    """

    subject: RDFTerm | None
    predicate: RDFTerm | None
    object: RDFTerm | None

    def __iter__(self) -> Iterator[RDFTerm | None]:
        yield self.subject
        yield self.predicate
        yield self.object

    def __str__(self) -> str:
        return " ".join("?" if t is WILDCARD else t.n3() for t in self)

    @property
    def wildcard_position(self) -> Position:
        """Position of the single wildcard.

        Raises:
            PatternError: If the pattern has no wildcard or more than one
        """
        positions = [Position(i) for i, term in enumerate(self) if term is WILDCARD]
        if len(positions) != 1:
            msg = f"Query pattern must have exactly one wildcard, got {len(positions)}: {self}"
            raise PatternError(msg)
        return positions[0]

    @property
    def permutation(self) -> Permutation:
        """Permutation index holding the answers to this pattern."""
        return Permutation.for_wildcard(self.wildcard_position)

    def index_key(self) -> bytes:
        """Encode the two bound terms as the permutation's index key."""
        return self.permutation.key_for(tuple(self))
