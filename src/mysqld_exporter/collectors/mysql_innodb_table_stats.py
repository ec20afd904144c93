"""Collector for mysql.innodb_table_stats."""

import logging

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.query import ColumnMetric, DispatchTable
from mysqld_exporter.scraper import ScrapeContext, Scraper

MYSQL = 'mysql'

TABLE_STATS_QUERY = """
    SELECT
      database_name,
      table_name,
      n_rows,
      clustered_index_size,
      sum_of_other_index_sizes
    FROM mysql.innodb_table_stats
"""

TABLE_STAT_LABELS = ('database_name', 'table_name')
TABLE_STAT_HELP = "Stores data related to particular InnoDB Persistent Statistics."

TABLE_STATS_TABLE = DispatchTable(
    MYSQL,
    label_columns=TABLE_STAT_LABELS,
    labels=TABLE_STAT_LABELS,
    columns={
        column: ColumnMetric(new_desc(
            MYSQL, f"innodb_table_stats_{column}", TABLE_STAT_HELP,
            TABLE_STAT_LABELS, ValueKind.GAUGE,
        ))
        for column in ('n_rows', 'clustered_index_size', 'sum_of_other_index_sizes')
    },
)

class ScrapeMysqlTableStats(Scraper):
    """Collects InnoDB persistent statistics per table."""

    name = 'mysql.innodb_table_stats'
    help = "Collect data from mysql.innodb_table_stats"
    min_version = '5.6'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, TABLE_STATS_QUERY) as rows:
            TABLE_STATS_TABLE.emit(rows, sink)
