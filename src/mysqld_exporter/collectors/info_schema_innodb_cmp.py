"""Collector for information_schema.innodb_cmp."""

import logging

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.query import ColumnMetric, DispatchTable
from mysqld_exporter.scraper import ScrapeContext, Scraper

INFORMATION_SCHEMA = 'info_schema'

INNODB_CMP_QUERY = """
    SELECT
      page_size, compress_ops, compress_ops_ok, compress_time, uncompress_ops, uncompress_time
      FROM information_schema.innodb_cmp
"""

def _counter(stem: str, help: str) -> ColumnMetric:
    return ColumnMetric(new_desc(
        INFORMATION_SCHEMA, f"innodb_cmp_{stem}", help, ('page_size',), ValueKind.COUNTER
    ))

INNODB_CMP_TABLE = DispatchTable(
    INFORMATION_SCHEMA,
    label_columns=('page_size',),
    labels=('page_size',),
    columns={
        'compress_ops': _counter(
            'compress_ops_total',
            "Number of times a B-tree page of the size PAGE_SIZE has been compressed."),
        'compress_ops_ok': _counter(
            'compress_ops_ok_total',
            "Number of times a B-tree page of the size PAGE_SIZE has been successfully compressed."),
        'compress_time': _counter(
            'compress_time_seconds_total',
            "Total time in seconds spent in attempts to compress B-tree pages."),
        'uncompress_ops': _counter(
            'uncompress_ops_total',
            "Number of times a B-tree page of the size PAGE_SIZE has been uncompressed."),
        'uncompress_time': _counter(
            'uncompress_time_seconds_total',
            "Total time in seconds spent in uncompressing B-tree pages."),
    },
)

class ScrapeInnodbCmp(Scraper):
    """Collects compression counters per page size."""

    name = 'info_schema.innodb_cmp'
    help = "Collect metrics from information_schema.innodb_cmp"
    min_version = '5.5'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, INNODB_CMP_QUERY) as rows:
            INNODB_CMP_TABLE.emit(rows, sink)
