"""Collector for performance_schema.table_io_waits_summary_by_table."""

import logging
from typing import Any, List, Sequence, Tuple

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import PICO_SECONDS, parse_status, to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

PERFORMANCE_SCHEMA = 'perf_schema'

TABLE_IO_WAITS_QUERY = """
    SELECT
        OBJECT_SCHEMA, OBJECT_NAME,
        COUNT_FETCH, COUNT_INSERT, COUNT_UPDATE, COUNT_DELETE,
        SUM_TIMER_FETCH, SUM_TIMER_INSERT, SUM_TIMER_UPDATE, SUM_TIMER_DELETE
      FROM performance_schema.table_io_waits_summary_by_table
      WHERE OBJECT_SCHEMA NOT IN ('mysql', 'performance_schema')
"""

IO_OPERATIONS = ('fetch', 'insert', 'update', 'delete')

TABLE_IO_WAITS_DESC = new_desc(
    PERFORMANCE_SCHEMA, 'table_io_waits_total',
    "The total number of table I/O wait events for each table and operation.",
    ('schema', 'name', 'operation'), ValueKind.COUNTER,
)
TABLE_IO_WAITS_TIME_DESC = new_desc(
    PERFORMANCE_SCHEMA, 'table_io_waits_seconds_total',
    "The total time of table I/O wait events for each table and operation.",
    ('schema', 'name', 'operation'), ValueKind.COUNTER,
)

def operation_values(row: Sequence[Any]) -> List[Tuple[str, float, float]]:
    """(operation, count, seconds) for the four count and four timer columns."""
    counts, timers = row[:4], row[4:8]
    return [
        (operation, parse_status(count)[0], parse_status(timer)[0] / PICO_SECONDS)
        for operation, count, timer in zip(IO_OPERATIONS, counts, timers)
    ]

class ScrapePerfTableIOWaits(Scraper):
    """Per table I/O wait counts and times."""

    name = 'perf_schema.tableiowaits'
    help = "Collect metrics from performance_schema.table_io_waits_summary_by_table"
    min_version = '5.6'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, TABLE_IO_WAITS_QUERY) as rows:
            for row in rows:
                schema, name = to_text(row[0]), to_text(row[1])
                for operation, count, seconds in operation_values(row[2:]):
                    sink.send(TABLE_IO_WAITS_DESC.sample(count, schema, name, operation))
                    sink.send(TABLE_IO_WAITS_TIME_DESC.sample(seconds, schema, name, operation))
