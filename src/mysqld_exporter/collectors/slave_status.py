"""Collector for SHOW SLAVE STATUS."""

import logging
from contextlib import ExitStack
from typing import List, Optional

import pymysql

from mysqld_exporter.instance import Flavor, Rows
from mysqld_exporter.metrics import MetricSink
from mysqld_exporter.parsing import parse_status, to_text
from mysqld_exporter.query import untyped_descriptor
from mysqld_exporter.scraper import ScrapeContext, Scraper

SLAVE_STATUS = 'slave_status'

# Only MariaDB knows SHOW ALL SLAVES STATUS, which covers every connection
SLAVE_STATUS_QUERIES = ("SHOW SLAVE STATUS",)
MARIADB_SLAVE_STATUS_QUERIES = ("SHOW ALL SLAVES STATUS", "SHOW SLAVE STATUS")
# Lock-free variants, tried when the plain statement fails
SLAVE_STATUS_QUERY_SUFFIXES = (" NONBLOCKING", " NOLOCK")

SLAVE_STATUS_LABELS = ('master_host', 'master_uuid', 'channel_name', 'connection_name')

def slave_status_candidates(flavor: Flavor) -> List[str]:
    """Statements to try in order for a server flavor."""
    queries = MARIADB_SLAVE_STATUS_QUERIES if flavor is Flavor.MARIADB else SLAVE_STATUS_QUERIES
    candidates = []
    for query in queries:
        candidates.append(query)
        candidates.extend(query + suffix for suffix in SLAVE_STATUS_QUERY_SUFFIXES)
    return candidates

def column_value(columns: List[str], row, name: str) -> str:
    """Text of a named column, empty when the server does not report it."""
    try:
        return to_text(row[columns.index(name)])
    except ValueError:
        return ''

class ScrapeSlaveStatus(Scraper):
    """Collects from SHOW SLAVE STATUS."""

    name = SLAVE_STATUS
    help = "Collect from SHOW SLAVE STATUS"
    min_version = '5.1'

    def _open(self, ctx: ScrapeContext, instance, stack: ExitStack, logger: logging.Logger) -> Rows:
        last_error: Optional[pymysql.err.Error] = None
        for query in slave_status_candidates(instance.flavor):
            try:
                return stack.enter_context(instance.query(ctx, query))
            except pymysql.err.Error as e:
                logger.debug(f"{query} failed: {e}")
                last_error = e
        raise last_error

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with ExitStack() as stack:
            rows = self._open(ctx, instance, stack, logger)
            columns = rows.columns
            descriptors = [
                untyped_descriptor(
                    SLAVE_STATUS, column.lower(),
                    "Generic metric from SHOW SLAVE STATUS.",
                    SLAVE_STATUS_LABELS,
                )
                for column in columns
            ]

            for row in rows:
                labels = (
                    column_value(columns, row, 'Master_Host'),
                    column_value(columns, row, 'Master_UUID'),
                    column_value(columns, row, 'Channel_Name'),      # MySQL and Percona
                    column_value(columns, row, 'Connection_name'),   # MariaDB
                )
                for desc, raw in zip(descriptors, row):
                    value, ok = parse_status(raw)
                    if ok:
                        sink.send(desc.sample(value, *labels))
