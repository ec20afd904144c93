"""Shared fixtures: a scripted database instance and scrape helpers."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import pymysql
import pytest
from packaging.version import Version

from mysqld_exporter.instance import Flavor, Rows, parse_server_version
from mysqld_exporter.metrics import MetricSink, Sample
from mysqld_exporter.query import sanitize_query
from mysqld_exporter.scraper import ScrapeContext, Scraper

@dataclass
class ExpectedQuery:
    sql: str
    columns: Sequence[str] = ()
    rows: Sequence[Sequence[Any]] = ()
    error: Optional[BaseException] = None
    args: List[Any] = field(default_factory=list)

class FakeInstance:
    """Instance stand-in answering queries from an ordered script.

    Queries are compared after whitespace normalization; an unexpected
    statement fails the test.
    """

    def __init__(self, version: str = '8.0.30'):
        self.version_string = version
        self.version = parse_server_version(version)
        self.flavor = Flavor.from_version_string(version)
        self.expected: List[ExpectedQuery] = []
        self.executed: List[str] = []

    def expect(
        self,
        sql: str,
        columns: Sequence[str] = (),
        rows: Sequence[Sequence[Any]] = (),
        error: Optional[BaseException] = None
    ) -> ExpectedQuery:
        expected = ExpectedQuery(sanitize_query(sql), columns, rows, error)
        self.expected.append(expected)
        return expected

    def expect_error(self, sql: str, code: int, message: str = "error") -> ExpectedQuery:
        return self.expect(sql, error=pymysql.err.OperationalError(code, message))

    def supports(self, min_version: Version) -> bool:
        return self.version is None or self.version >= min_version

    @contextmanager
    def query(self, ctx: ScrapeContext, sql: str, args: Any = None):
        ctx.check()
        normalized = sanitize_query(sql)
        self.executed.append(normalized)
        assert self.expected, f"Unexpected query: {normalized}"
        expected = self.expected.pop(0)
        assert expected.sql == normalized, f"Expected {expected.sql!r}, got {normalized!r}"
        expected.args.append(args)
        if expected.error is not None:
            raise expected.error
        yield Rows(expected.columns, expected.rows, ctx)

    def assert_all_executed(self) -> None:
        assert not self.expected, f"Queries never executed: {[e.sql for e in self.expected]}"

@pytest.fixture
def instance() -> FakeInstance:
    return FakeInstance()

@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger('mysqld_exporter.test')

@pytest.fixture
def run_scraper(logger):
    """Run a scraper against an instance and return its samples in order."""

    def run(scraper: Scraper, instance, ctx: Optional[ScrapeContext] = None) -> List[Sample]:
        sink = MetricSink(capacity=100000)
        scraper.scrape(ctx or ScrapeContext(), instance, sink, logger)
        sink.close()
        return list(sink)

    return run

def summarize(samples: Sequence[Sample]) -> List[tuple]:
    """(name, labels, value, kind) tuples for compact assertions."""
    return [
        (sample.name, sample.labels, sample.value, sample.descriptor.kind.value)
        for sample in samples
    ]

@pytest.fixture
def as_tuples():
    return summarize
