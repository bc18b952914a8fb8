"""Tests for the command-line interface."""

import pytest
from click.testing import CliRunner
from rdflib import BNode, Literal, URIRef

from triple_index.cli import main, parse_term
from triple_index.pattern import WILDCARD

NT = """\
<http://example.org/s> <http://example.org/p> <http://example.org/o1> .
<http://example.org/s> <http://example.org/p> <http://example.org/o2> .
<http://example.org/t> <http://example.org/p> "hello"@en .
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def db(tmp_path) -> list[str]:
    """Common options pointing at a fresh LMDB store."""
    return ["--path", str(tmp_path / "db"), "--map-size", str(1 << 24)]


@pytest.fixture
def loaded(runner, db, tmp_path) -> list[str]:
    """Options for a store loaded with three triples."""
    data = tmp_path / "data.nt"
    data.write_text(NT)
    result = runner.invoke(main, [*db, "load", str(data)])
    assert result.exit_code == 0, result.output
    return db


class TestParseTerm:
    """Terms on the command line."""

    def test_terms(self):
        """N3 terms, bare IRIs and the wildcard are understood."""
        assert parse_term("?") is WILDCARD
        assert parse_term("<http://example.org/a>") == URIRef("http://example.org/a")
        assert parse_term("http://example.org/a") == URIRef("http://example.org/a")
        assert parse_term("_:b1") == BNode("b1")
        assert parse_term('"hello"@en') == Literal("hello", lang="en")


class TestCommands:
    """Each subcommand against a real LMDB store."""

    def test_load(self, runner, db, tmp_path):
        """Loading reports the number of triples."""
        data = tmp_path / "data.nt"
        data.write_text(NT)
        result = runner.invoke(main, [*db, "load", str(data)])
        assert result.exit_code == 0
        assert "Inserted 3 triples (0 partial)" in result.output

    def test_count(self, runner, loaded):
        """count prints the number of matches."""
        result = runner.invoke(main, [*loaded, "count", "http://example.org/s", "http://example.org/p", "?"])
        assert result.exit_code == 0
        assert result.output.strip() == "2"

    def test_count_bad_pattern(self, runner, loaded):
        """A pattern without exactly one wildcard is an error."""
        result = runner.invoke(main, [*loaded, "count", "?", "?", "http://example.org/o1"])
        assert result.exit_code == 1
        assert "exactly one wildcard" in result.output

    def test_sample(self, runner, loaded):
        """sample prints matching terms in N3 syntax."""
        result = runner.invoke(
            main, [*loaded, "sample", "?", "http://example.org/p", '"hello"@en', "-n", "3", "--seed", "1"]
        )
        assert result.exit_code == 0
        assert result.output.splitlines() == ["<http://example.org/t>"] * 3

    def test_sample_no_match(self, runner, loaded):
        """sample exits with 1 when nothing matches."""
        result = runner.invoke(main, [*loaded, "sample", "http://example.org/none", "?", "http://example.org/o1"])
        assert result.exit_code == 1

    def test_exists(self, runner, loaded):
        """exists prints YES or NO and sets the exit code."""
        args = ["exists", "http://example.org/s", "http://example.org/p"]
        yes = runner.invoke(main, [*loaded, *args, "http://example.org/o1"])
        no = runner.invoke(main, [*loaded, *args, "http://example.org/o3"])
        assert (yes.exit_code, yes.output.strip()) == (0, "YES")
        assert (no.exit_code, no.output.strip()) == (1, "NO")

    def test_clear(self, runner, loaded):
        """clear --yes empties the store."""
        result = runner.invoke(main, [*loaded, "clear", "--yes"])
        assert result.exit_code == 0
        count = runner.invoke(main, [*loaded, "count", "http://example.org/s", "http://example.org/p", "?"])
        assert count.output.strip() == "0"

    def test_verify(self, runner, db):
        """verify writes triples and reads every pattern back."""
        result = runner.invoke(main, [*db, "verify", "--count", "20"])
        assert result.exit_code == 0, result.output
        assert "Checked 60 patterns, 0 failures" in result.output


class TestStorePath:
    """The store is only opened by commands that use it."""

    def test_help_without_path(self, runner):
        """Subcommand help works with no store configured."""
        result = runner.invoke(main, ["count", "--help"], env={"TRIPLE_INDEX_PATH": None})
        assert result.exit_code == 0
        assert "single-wildcard pattern" in result.output

    def test_command_without_path(self, runner):
        """Running a command with no store path is a usage error."""
        result = runner.invoke(
            main, ["count", "?", "http://example.org/p", "http://example.org/o"], env={"TRIPLE_INDEX_PATH": None}
        )
        assert result.exit_code == 2
        assert "--path" in result.output

    def test_path_from_environment(self, runner, tmp_path):
        """TRIPLE_INDEX_PATH stands in for --path."""
        result = runner.invoke(
            main,
            ["--map-size", str(1 << 24), "count", "?", "http://example.org/p", "http://example.org/o"],
            env={"TRIPLE_INDEX_PATH": str(tmp_path / "db")},
        )
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "0"
