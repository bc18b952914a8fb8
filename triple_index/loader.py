"""Bulk loading of triples from HDT and other RDF files."""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from rdflib import Graph

from triple_index.codec import Triple
from triple_index.store import TripleStore

logger = logging.getLogger(__name__)


class SearchableDocument(Protocol):
    """Anything searchable like ``rdflib_hdt.HDTDocument``."""

    def search(self, pattern: tuple[Any, Any, Any]) -> tuple[Iterator[Triple], int]: ...

    @property
    def total_triples(self) -> int: ...


class HDTReader:
    """Streams every triple of an HDT file for bulk loading."""

    def __init__(self, hdt_path: str | Path) -> None:
        # Optional dependency, installed with the "hdt" extra
        from rdflib_hdt import HDTDocument

        self.hdt_path = Path(hdt_path)
        self.document: SearchableDocument = HDTDocument(str(self.hdt_path))

    def __len__(self) -> int:
        # HDT keeps the triple count in its header, no scan needed
        return self.document.total_triples

    def __iter__(self) -> Iterator[Triple]:
        triples, _ = self.document.search((None, None, None))
        yield from triples

    def __enter__(self) -> "HDTReader":
        return self

    def __exit__(self, *args: object) -> None:
        # HDTDocument has no close method, the mapping is released with the object
        del self.document


@dataclass
class LoadReport:
    """Counts from a bulk load.

    Attributes:
        inserted: Triples for which an insert was issued
        partial: Inserts where at least one index write failed
    """

    inserted: int = 0
    partial: int = 0


def load_triples(
    store: TripleStore,
    triples: Iterable[Triple],
    progress_fn: Callable[[str], None] | None = None,
    progress_every: int = 100_000,
) -> LoadReport:
    """Insert every triple of ``triples`` into ``store``.

    Args:
        store: Open triple store
        triples: Triples to insert
        progress_fn: Optional callback for progress reporting, receives a message string
        progress_every: Report progress after this many triples

    Returns:
        LoadReport with the number of inserted and partially inserted triples
    """
    report = LoadReport()
    for subject, predicate, obj in triples:
        result = store.insert(subject, predicate, obj)
        report.inserted += 1
        if not result.complete:
            report.partial += 1
        if report.inserted % progress_every == 0:
            message = f"  Loaded {report.inserted:,} triples ({report.partial:,} partial)"
            logger.info(message)
            if progress_fn:
                progress_fn(message)
    logger.info("Loaded %d triples, %d partial", report.inserted, report.partial)
    return report


def load_document(
    store: TripleStore,
    document: SearchableDocument,
    progress_fn: Callable[[str], None] | None = None,
    progress_every: int = 100_000,
) -> LoadReport:
    """Load every triple of an HDT document (or a look-alike) into ``store``."""
    triples, cardinality = document.search((None, None, None))
    if progress_fn:
        progress_fn(f"  Triples to load: {cardinality:,}")
    return load_triples(store, triples, progress_fn, progress_every)


def iter_graph_triples(path: str | Path, format: str | None = None) -> Iterator[Triple]:
    """Parse an RDF file with rdflib and iterate over its triples.

    Args:
        path: RDF file in any format rdflib can parse
        format: rdflib format name; guessed from the file name when None
    """
    graph = Graph()
    graph.parse(str(path), format=format)
    yield from graph


def load_file(
    store: TripleStore,
    path: str | Path,
    format: str | None = None,
    progress_fn: Callable[[str], None] | None = None,
    progress_every: int = 100_000,
) -> LoadReport:
    """Load an RDF file into ``store``.

    Files ending in ``.hdt`` are read through rdflib-hdt, everything else
    through rdflib's parsers.
    """
    path = Path(path)
    logger.info("Loading %s", path)
    if format == "hdt" or (format is None and path.suffix.lower() == ".hdt"):
        with HDTReader(path) as reader:
            if progress_fn:
                progress_fn(f"  Triples to load: {len(reader):,}")
            return load_triples(store, reader, progress_fn, progress_every)
    return load_triples(store, iter_graph_triples(path, format), progress_fn, progress_every)
