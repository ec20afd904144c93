"""Collector for the Percona query response time distribution."""

import logging
from typing import Dict

import pymysql

from mysqld_exporter.metrics import MetricDescriptor, MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_status, to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

INFORMATION_SCHEMA = 'info_schema'

QUERY_RESPONSE_CHECK_QUERY = "SELECT @@query_response_time_stats"

# Upper case table names, otherwise the read and write tables return the totals
QUERY_RESPONSE_TIME_QUERIES = (
    "SELECT TIME, COUNT, TOTAL FROM INFORMATION_SCHEMA.QUERY_RESPONSE_TIME",
    "SELECT TIME, COUNT, TOTAL FROM INFORMATION_SCHEMA.QUERY_RESPONSE_TIME_READ",
    "SELECT TIME, COUNT, TOTAL FROM INFORMATION_SCHEMA.QUERY_RESPONSE_TIME_WRITE",
)

QUERY_RESPONSE_TIME_DESCS = (
    new_desc(
        INFORMATION_SCHEMA, 'query_response_time_seconds',
        "The number of all queries by duration they took to execute.",
        kind=ValueKind.HISTOGRAM,
    ),
    new_desc(
        INFORMATION_SCHEMA, 'read_query_response_time_seconds',
        "The number of read queries by duration they took to execute.",
        kind=ValueKind.HISTOGRAM,
    ),
    new_desc(
        INFORMATION_SCHEMA, 'write_query_response_time_seconds',
        "The number of write queries by duration they took to execute.",
        kind=ValueKind.HISTOGRAM,
    ),
)

def _number(raw) -> float:
    value, ok = parse_status(to_text(raw).strip())
    return value if ok else 0.0

class ScrapeQueryResponseTime(Scraper):
    """Histograms of query durations when query_response_time_stats is ON."""

    name = 'info_schema.query_response_time'
    help = "Collect query response time distribution if query_response_time_stats is ON."
    min_version = '5.5'

    def _histogram(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        query: str,
        desc: MetricDescriptor
    ) -> None:
        count = 0.0
        total = 0.0
        buckets: Dict[float, float] = {}

        with instance.query(ctx, query) as rows:
            for length, row_count, row_total in rows:
                length = _number(length)
                count += float(row_count or 0)
                total += _number(row_total)
                # The "TOO LONG" row only adds to the count and sum
                if length == 0:
                    continue
                buckets[length] = count

        sink.send(desc.sample(total, buckets=buckets, count=count))

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        try:
            with instance.query(ctx, QUERY_RESPONSE_CHECK_QUERY) as rows:
                row = rows.first()
        except pymysql.err.Error as e:
            logger.debug(f"Query response time distribution is not available: {e}")
            return

        enabled, ok = parse_status(row[0] if row else None)
        if not ok or enabled == 0:
            logger.debug("MySQL variable is OFF: query_response_time_stats")
            return

        for index, (query, desc) in enumerate(zip(QUERY_RESPONSE_TIME_QUERIES, QUERY_RESPONSE_TIME_DESCS)):
            try:
                self._histogram(ctx, instance, sink, query, desc)
            except pymysql.err.Error as e:
                # Only Percona Server 5.6 and 5.7 have the read and write tables
                if index == 0:
                    raise
                logger.debug(f"Skipping {desc.name}: {e}")
