"""Collector for performance_schema.table_io_waits_summary_by_index_usage."""

import logging

from mysqld_exporter.collectors.perf_schema_table_io_waits import PERFORMANCE_SCHEMA, operation_values
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

INDEX_IO_WAITS_QUERY = """
    SELECT
        OBJECT_SCHEMA, OBJECT_NAME, ifnull(INDEX_NAME, 'NONE') as INDEX_NAME,
        COUNT_FETCH, COUNT_INSERT, COUNT_UPDATE, COUNT_DELETE,
        SUM_TIMER_FETCH, SUM_TIMER_INSERT, SUM_TIMER_UPDATE, SUM_TIMER_DELETE
      FROM performance_schema.table_io_waits_summary_by_index_usage
      WHERE OBJECT_SCHEMA NOT IN ('mysql', 'performance_schema')
"""

# Rows without an index carry the inserts, which never use one
NO_INDEX = 'NONE'

INDEX_IO_WAITS_DESC = new_desc(
    PERFORMANCE_SCHEMA, 'index_io_waits_total',
    "The total number of index I/O wait events for each index and operation.",
    ('schema', 'name', 'index', 'operation'), ValueKind.COUNTER,
)
INDEX_IO_WAITS_TIME_DESC = new_desc(
    PERFORMANCE_SCHEMA, 'index_io_waits_seconds_total',
    "The total time of index I/O wait events for each index and operation.",
    ('schema', 'name', 'index', 'operation'), ValueKind.COUNTER,
)

class ScrapePerfIndexIOWaits(Scraper):
    """Per index I/O wait counts and times."""

    name = 'perf_schema.indexiowaits'
    help = "Collect metrics from performance_schema.table_io_waits_summary_by_index_usage"
    min_version = '5.6'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, INDEX_IO_WAITS_QUERY) as rows:
            for row in rows:
                schema, name, index = (to_text(value) for value in row[:3])
                for operation, count, seconds in operation_values(row[3:]):
                    if operation == 'insert' and index != NO_INDEX:
                        continue
                    sink.send(INDEX_IO_WAITS_DESC.sample(count, schema, name, index, operation))
                    sink.send(INDEX_IO_WAITS_TIME_DESC.sample(seconds, schema, name, index, operation))
