"""Collector for information_schema.innodb_cmpmem."""

import logging

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import MILLI_SECONDS
from mysqld_exporter.query import ColumnMetric, DispatchTable
from mysqld_exporter.scraper import ScrapeContext, Scraper

INFORMATION_SCHEMA = 'info_schema'

INNODB_CMPMEM_QUERY = """
    SELECT
      page_size, buffer_pool_instance, pages_used, pages_free, relocation_ops, relocation_time
      FROM information_schema.innodb_cmpmem
"""

CMPMEM_LABELS = ('page_size', 'buffer_pool')

def _counter(stem: str, help: str, divisor: float = 1.0) -> ColumnMetric:
    return ColumnMetric(
        new_desc(INFORMATION_SCHEMA, f"innodb_cmpmem_{stem}", help, CMPMEM_LABELS, ValueKind.COUNTER),
        divisor=divisor,
    )

INNODB_CMPMEM_TABLE = DispatchTable(
    INFORMATION_SCHEMA,
    label_columns=('page_size', 'buffer_pool_instance'),
    labels=CMPMEM_LABELS,
    columns={
        'pages_used': _counter(
            'pages_used_total',
            "Number of blocks of the size PAGE_SIZE that are currently in use."),
        'pages_free': _counter(
            'pages_free_total',
            "Number of blocks of the size PAGE_SIZE that are currently available for allocation."),
        'relocation_ops': _counter(
            'relocation_ops_total',
            "Number of times a block of the size PAGE_SIZE has been relocated."),
        # relocation_time is reported in milliseconds
        'relocation_time': _counter(
            'relocation_time_seconds_total',
            "Total time in seconds spent in relocating blocks.",
            divisor=MILLI_SECONDS),
    },
)

class ScrapeInnodbCmpMem(Scraper):
    """Collects buffer pool compression memory counters."""

    name = 'info_schema.innodb_cmpmem'
    help = "Collect metrics from information_schema.innodb_cmpmem"
    min_version = '5.5'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, INNODB_CMPMEM_QUERY) as rows:
            INNODB_CMPMEM_TABLE.emit(rows, sink)
