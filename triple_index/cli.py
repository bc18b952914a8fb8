"""Command-line interface for triple-index."""

import logging
import random
import sys
from collections.abc import Callable
from functools import update_wrapper
from pathlib import Path
from typing import Any

import click
from rdflib import BNode, Literal, URIRef
from rdflib.util import from_n3

from triple_index.codec import RDFTerm
from triple_index.config import StoreConfig
from triple_index.errors import TripleIndexError
from triple_index.loader import load_file
from triple_index.pattern import WILDCARD, QueryPattern
from triple_index.store import Answer, TripleStore

EXIT_CODES = {Answer.YES: 0, Answer.NO: 1, Answer.MAYBE: 2}


def parse_term(value: str) -> RDFTerm | None:
    """Parse a term given in N3 syntax; ``?`` is the wildcard.

    Bare IRIs such as ``http://example.org/a`` are accepted without angle brackets.
    """
    if value == "?":
        return WILDCARD
    if "://" in value and not value.startswith(("<", '"')):
        return URIRef(value)
    try:
        term = from_n3(value)
    except Exception as e:
        raise click.BadParameter(f"Cannot parse term {value!r}: {e}") from e
    if not isinstance(term, URIRef | BNode | Literal):
        raise click.BadParameter(f"Unsupported term {value!r}")
    return term


def _pattern(subject: str, predicate: str, obj: str) -> QueryPattern:
    return QueryPattern(parse_term(subject), parse_term(predicate), parse_term(obj))


def _triple(subject: str, predicate: str, obj: str) -> tuple[RDFTerm, RDFTerm, RDFTerm]:
    terms = (parse_term(subject), parse_term(predicate), parse_term(obj))
    if any(t is WILDCARD for t in terms):
        raise click.BadParameter("Wildcards are not allowed here")
    return terms  # type: ignore[return-value]


def pass_store(f: Callable[..., Any]) -> Callable[..., Any]:
    """Open the configured store and pass it as the first argument.

    The store is opened only once a subcommand runs, so --help works without
    a store path.
    """

    def new_func(*args: Any, **kwargs: Any) -> Any:
        ctx = click.get_current_context()
        config = ctx.find_object(StoreConfig)
        if config is None or config.path is None:
            raise click.UsageError("Missing option '--path' (or TRIPLE_INDEX_PATH).")
        try:
            store = TripleStore.from_config(config)
        except TripleIndexError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        ctx.call_on_close(store.close)
        return f(store, *args, **kwargs)

    return update_wrapper(new_func, f)


@click.group()
@click.option(
    "--path",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="TRIPLE_INDEX_PATH",
    help="Directory of the LMDB store",
)
@click.option(
    "--map-size",
    type=int,
    envvar="TRIPLE_INDEX_MAP_SIZE",
    default=1 << 30,
    show_default=True,
    help="Maximum store size in bytes",
)
@click.option(
    "--table-prefix",
    envvar="TRIPLE_INDEX_TABLE_PREFIX",
    default="",
    help="Prefix for the table names",
)
@click.option("-v", "--verbose", count=True, help="Log more (repeat for debug output)")
@click.pass_context
def main(ctx: click.Context, path: Path, map_size: int, table_prefix: str, verbose: int) -> None:
    """Index RDF triples in a key-value store for O(1) counts and random samples.

    Terms are written in N3 syntax (<iri>, _:bnode, "literal"@lang) and ? marks the wildcard.
    """
    level = logging.WARNING if verbose == 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    ctx.obj = StoreConfig(path=path, map_size=map_size, table_prefix=table_prefix)


@main.command()
@click.argument("rdf_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--format", "rdf_format", default=None, help="rdflib format name, or 'hdt'")
@pass_store
def load(store: TripleStore, rdf_file: Path, rdf_format: str | None) -> None:
    """Load RDF_FILE (HDT or any format rdflib parses) into the store."""
    click.echo(f"Loading: {rdf_file}")
    try:
        report = load_file(store, rdf_file, format=rdf_format, progress_fn=click.echo)
    except TripleIndexError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Inserted {report.inserted} triples ({report.partial} partial)")


@main.command()
@click.argument("subject")
@click.argument("predicate")
@click.argument("obj", metavar="OBJECT")
@pass_store
def count(store: TripleStore, subject: str, predicate: str, obj: str) -> None:
    """Count the matches of a single-wildcard pattern."""
    try:
        click.echo(store.count_matches(_pattern(subject, predicate, obj)))
    except TripleIndexError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("subject")
@click.argument("predicate")
@click.argument("obj", metavar="OBJECT")
@click.option("-n", "samples", type=click.IntRange(min=1), default=1, show_default=True, help="Number of samples")
@click.option("--seed", type=int, default=None, help="Seed for the random source")
@click.option("--attempts", type=click.IntRange(min=1), default=3, show_default=True, help="Draws per sample")
@pass_store
def sample(
    store: TripleStore,
    subject: str,
    predicate: str,
    obj: str,
    samples: int,
    seed: int | None,
    attempts: int,
) -> None:
    """Print random matches of a single-wildcard pattern."""
    rng = random.Random(seed)
    try:
        pattern = _pattern(subject, predicate, obj)
        for _ in range(samples):
            term = store.sample_match(pattern, rng, attempts=attempts)
            if term is None:
                click.echo("No match", err=True)
                sys.exit(1)
            click.echo(term.n3())
    except TripleIndexError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("subject")
@click.argument("predicate")
@click.argument("obj", metavar="OBJECT")
@pass_store
def exists(store: TripleStore, subject: str, predicate: str, obj: str) -> None:
    """Check whether a triple is stored: YES (exit 0), NO (1) or MAYBE (2)."""
    answer = store.exists(*_triple(subject, predicate, obj))
    click.echo(answer.name)
    sys.exit(EXIT_CODES[answer])


@main.command()
@click.confirmation_option(prompt="Delete every triple in the store?")
@pass_store
def clear(store: TripleStore) -> None:
    """Drop and recreate all tables."""
    store.clear()
    click.echo("Tables cleared")


@main.command()
@click.option("--count", "nb_pairs", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--seed", type=int, default=0, show_default=True)
@pass_store
def verify(store: TripleStore, nb_pairs: int, seed: int) -> None:
    """Self check. CLEARS THE STORE, writes triples and reads them back.

    Writes NB_PAIRS pairs (s, p, o) and (s, p, o2), then checks that each
    single-wildcard pattern of (s, p, o) returns a stored term.
    """
    store.clear()

    def generate(rng: random.Random) -> tuple[URIRef, BNode, Literal, Literal]:
        return (
            URIRef(f"http://{rng.getrandbits(63)}"),
            BNode(f"b{rng.getrandbits(63)}"),
            Literal(str(rng.getrandbits(63)), lang="no"),
            Literal(str(rng.getrandbits(63)), lang="no"),
        )

    writer = random.Random(seed)
    for _ in range(nb_pairs):
        s, p, o, o2 = generate(writer)
        store.insert(s, p, o)
        store.insert(s, p, o2)
    store.wait_for_visibility()

    # Same seed, same terms
    reader = random.Random(seed)
    sampler = random.Random()
    failures = 0
    for _ in range(nb_pairs):
        s, p, o, o2 = generate(reader)
        checks = [
            (QueryPattern(s, p, WILDCARD), {o, o2}),
            (QueryPattern(WILDCARD, p, o), {s}),
            (QueryPattern(s, WILDCARD, o), {p}),
        ]
        for pattern, expected in checks:
            if store.sample_match(pattern, sampler) not in expected:
                failures += 1
                click.echo(f"Retrieval failed for {pattern}", err=True)

    click.echo(f"Checked {nb_pairs * 3} patterns, {failures} failures")
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
