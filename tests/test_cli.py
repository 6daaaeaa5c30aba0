"""Tests for the library-cli commands."""

import re

import pytest
from typer.testing import CliRunner

from library_system.cli import app

runner = CliRunner()


@pytest.fixture
def base_args(tmp_path) -> list[str]:
    return ["--storage-dir", str(tmp_path), "--latency-scale", "0"]


def test_seed_is_persistent_and_idempotent(base_args):
    first = runner.invoke(app, [*base_args, "seed"])
    assert first.exit_code == 0, first.output
    assert "Seeded 3 users and 3 books" in first.output

    second = runner.invoke(app, [*base_args, "seed"])
    assert second.exit_code == 0, second.output
    assert "Seeded 0 users and 0 books" in second.output


def test_stats_after_seed(base_args):
    runner.invoke(app, [*base_args, "seed"])

    result = runner.invoke(app, [*base_args, "stats"])

    assert result.exit_code == 0, result.output
    assert re.search(r"Total users\D+3", result.output)
    assert re.search(r"Total books\D+3", result.output)


def test_stats_on_empty_storage(base_args):
    result = runner.invoke(app, [*base_args, "stats"])

    assert result.exit_code == 0, result.output
    assert re.search(r"Total books\D+0", result.output)


def test_search_by_title(base_args):
    runner.invoke(app, [*base_args, "seed"])

    result = runner.invoke(app, [*base_args, "search", "--title", "clean"])

    assert result.exit_code == 0, result.output
    assert "Clean Code" in result.output
    assert "Pragmatic" not in result.output


def test_search_unavailable_finds_nothing(base_args):
    runner.invoke(app, [*base_args, "seed"])

    result = runner.invoke(app, [*base_args, "search", "--unavailable"])

    assert result.exit_code == 0, result.output
    assert "No books found" in result.output


def test_demo(base_args):
    result = runner.invoke(app, [*base_args, "demo"])

    assert result.exit_code == 0, result.output
    assert "book.borrowed" in result.output
    assert "book.returned" in result.output
    assert "late fee $0.00" in result.output


def test_invalid_log_level(base_args):
    result = runner.invoke(app, [*base_args, "--log-level", "verbose", "stats"])

    assert result.exit_code == 2
    assert "Invalid option" in result.output
