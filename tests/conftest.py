"""Pytest fixtures, a mock HDTDocument and a failure-injecting store."""

from collections.abc import Iterator
from typing import TypeAlias, cast

import pytest
from rdflib import BNode, Graph, Literal, URIRef

from triple_index.errors import StoreUnavailableError
from triple_index.kvstore import KeyValueStore, LmdbKeyValueStore, MemoryKeyValueStore
from triple_index.store import TripleStore

RDFTerm: TypeAlias = URIRef | Literal | BNode
Triple: TypeAlias = tuple[RDFTerm, RDFTerm, RDFTerm]
PatternTerm: TypeAlias = URIRef | Literal


class MockHDTDocument:
    """Mock HDTDocument that works with in-memory RDF graphs.

    Mimics the parts of rdflib_hdt.HDTDocument used for loading: ``search``
    with None as wildcard and ``total_triples``.
    """

    def __init__(self, graph: Graph) -> None:
        """Initialize mock document from an RDF graph.

        Args:
            graph: RDFLib graph containing triples to serve
        """
        self.graph = graph
        self._triples: list[Triple] = [cast(Triple, (s, p, o)) for s, p, o in graph]

    def search(
        self, pattern: tuple[PatternTerm | None, PatternTerm | None, PatternTerm | None]
    ) -> tuple[Iterator[Triple], int]:
        """Search for triples matching the given pattern.

        Args:
            pattern: Tuple of (subject, predicate, object) filters (None for any)

        Returns:
            Tuple of (iterator over matching triples, count of matches)
        """
        subject, predicate, obj = pattern
        matches: list[Triple] = []
        for s, p, o in self._triples:
            if subject is not None and s != subject:
                continue
            if predicate is not None and p != predicate:
                continue
            if obj is not None and o != obj:
                continue
            matches.append((s, p, o))
        return iter(matches), len(matches)

    @property
    def total_triples(self) -> int:
        """Get total number of triples."""
        return len(self._triples)


class FailingKeyValueStore(MemoryKeyValueStore):
    """Memory store that fails selected operations on selected tables.

    ``fail`` maps an operation name ("get", "put", "increment") to the set of
    table names on which that operation raises StoreUnavailableError.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail: dict[str, set[str]] = {}

    def _maybe_fail(self, operation: str, table: str) -> None:
        if table in self.fail.get(operation, set()):
            msg = f"Injected {operation} failure on {table}"
            raise StoreUnavailableError(msg)

    def get(self, table: str, key: bytes) -> bytes | None:
        self._maybe_fail("get", table)
        return super().get(table, key)

    def put(self, table: str, key: bytes, value: bytes) -> None:
        self._maybe_fail("put", table)
        super().put(table, key, value)

    def increment(self, table: str, key: bytes, amount: int = 1) -> int:
        self._maybe_fail("increment", table)
        return super().increment(table, key, amount)


@pytest.fixture
def ex() -> str:
    """Example namespace prefix."""
    return "http://example.org/"


@pytest.fixture(params=["memory", "lmdb"])
def kv(request, tmp_path) -> Iterator[KeyValueStore]:
    """Key-value store, once per backend."""
    if request.param == "memory":
        store: KeyValueStore = MemoryKeyValueStore()
    else:
        store = LmdbKeyValueStore(tmp_path / "lmdb", map_size=1 << 26)
    yield store
    store.close()


@pytest.fixture
def store(kv) -> Iterator[TripleStore]:
    """Open triple store on each backend."""
    triple_store = TripleStore(kv)
    triple_store.open()
    yield triple_store
    triple_store.close()


@pytest.fixture
def failing_kv() -> FailingKeyValueStore:
    """Memory store with injectable failures."""
    return FailingKeyValueStore()


@pytest.fixture
def failing_store(failing_kv) -> Iterator[TripleStore]:
    """Open triple store on a failure-injecting backend."""
    triple_store = TripleStore(failing_kv)
    triple_store.open()
    yield triple_store
    triple_store.close()


@pytest.fixture
def create_document():
    """Factory for creating mock HDT documents from graphs."""

    def _create(graph: Graph) -> MockHDTDocument:
        return MockHDTDocument(graph)

    return _create
