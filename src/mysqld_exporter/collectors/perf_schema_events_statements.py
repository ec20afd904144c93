"""Collector for performance_schema.events_statements_summary_by_digest."""

import logging

from mysqld_exporter.args import ArgDefinition, ArgKind
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import PICO_SECONDS
from mysqld_exporter.query import ColumnMetric, DispatchTable
from mysqld_exporter.scraper import ConfigurableScraper, ScrapeContext

PERFORMANCE_SCHEMA = 'perf_schema'

EVENTS_STATEMENTS_QUERY = """
    SELECT
        ifnull(SCHEMA_NAME, 'NONE') as SCHEMA_NAME,
        DIGEST,
        LEFT(DIGEST_TEXT, %d) as DIGEST_TEXT,
        COUNT_STAR,
        SUM_TIMER_WAIT,
        SUM_ERRORS,
        SUM_WARNINGS,
        SUM_ROWS_AFFECTED,
        SUM_ROWS_SENT,
        SUM_ROWS_EXAMINED,
        SUM_CREATED_TMP_DISK_TABLES,
        SUM_CREATED_TMP_TABLES,
        SUM_SORT_MERGE_PASSES,
        SUM_SORT_ROWS,
        SUM_NO_INDEX_USED
      FROM (
        SELECT *
        FROM performance_schema.events_statements_summary_by_digest
        WHERE SCHEMA_NAME NOT IN ('mysql', 'performance_schema', 'information_schema')
          AND LAST_SEEN > DATE_SUB(NOW(), INTERVAL %d SECOND)
        ORDER BY LAST_SEEN DESC
      )Q
      GROUP BY
        Q.SCHEMA_NAME,
        Q.DIGEST,
        Q.DIGEST_TEXT,
        Q.COUNT_STAR,
        Q.SUM_TIMER_WAIT,
        Q.SUM_ERRORS,
        Q.SUM_WARNINGS,
        Q.SUM_ROWS_AFFECTED,
        Q.SUM_ROWS_SENT,
        Q.SUM_ROWS_EXAMINED,
        Q.SUM_CREATED_TMP_DISK_TABLES,
        Q.SUM_CREATED_TMP_TABLES,
        Q.SUM_SORT_MERGE_PASSES,
        Q.SUM_SORT_ROWS,
        Q.SUM_NO_INDEX_USED
      ORDER BY SUM_TIMER_WAIT DESC
      LIMIT %d
"""

DIGEST_LABELS = ('schema', 'digest', 'digest_text')

def _counter(stem: str, help: str, divisor: float = 1.0) -> ColumnMetric:
    return ColumnMetric(
        new_desc(PERFORMANCE_SCHEMA, f"events_statements_{stem}", help, DIGEST_LABELS, ValueKind.COUNTER),
        divisor=divisor,
    )

EVENTS_STATEMENTS_TABLE = DispatchTable(
    PERFORMANCE_SCHEMA,
    label_columns=('SCHEMA_NAME', 'DIGEST', 'DIGEST_TEXT'),
    labels=DIGEST_LABELS,
    columns={
        'COUNT_STAR': _counter(
            'total', "The total count of events statements by digest."),
        # Timers are reported in picoseconds
        'SUM_TIMER_WAIT': _counter(
            'seconds_total', "The total time of events statements by digest.", PICO_SECONDS),
        'SUM_ERRORS': _counter(
            'errors_total', "The errors of events statements by digest."),
        'SUM_WARNINGS': _counter(
            'warnings_total', "The warnings of events statements by digest."),
        'SUM_ROWS_AFFECTED': _counter(
            'rows_affected_total', "The total rows affected of events statements by digest."),
        'SUM_ROWS_SENT': _counter(
            'rows_sent_total', "The total rows sent of events statements by digest."),
        'SUM_ROWS_EXAMINED': _counter(
            'rows_examined_total', "The total rows examined of events statements by digest."),
        'SUM_CREATED_TMP_DISK_TABLES': _counter(
            'tmp_disk_tables_total', "The total tmp disk tables of events statements by digest."),
        'SUM_CREATED_TMP_TABLES': _counter(
            'tmp_tables_total', "The total tmp tables of events statements by digest."),
        'SUM_SORT_MERGE_PASSES': _counter(
            'sort_merge_passes_total',
            "The total number of merge passes by the sort algorithm performed by digest."),
        'SUM_SORT_ROWS': _counter(
            'sort_rows_total', "The total number of sorted rows by digest."),
        'SUM_NO_INDEX_USED': _counter(
            'no_index_used_total',
            "The total number of statements that used full table scans by digest."),
    },
)

class ScrapePerfEventsStatements(ConfigurableScraper):
    """Statement digests ordered by total wait time."""

    name = 'perf_schema.eventsstatements'
    help = "Collect metrics from performance_schema.events_statements_summary_by_digest"
    min_version = '5.6'

    ARG_DEFINITIONS = (
        ArgDefinition(
            'limit',
            "Limit the number of events statements digests by response time",
            250, ArgKind.INT,
        ),
        ArgDefinition(
            'timelimit',
            "Limit how old the 'last_seen' events statements can be, in seconds",
            86400, ArgKind.INT,
        ),
        ArgDefinition(
            'digest_text_limit',
            "Maximum length of the normalized statement text",
            120, ArgKind.INT,
        ),
    )

    def query(self) -> str:
        return EVENTS_STATEMENTS_QUERY % (
            self.arg_value('digest_text_limit'),
            self.arg_value('timelimit'),
            self.arg_value('limit'),
        )

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, self.query()) as rows:
            EVENTS_STATEMENTS_TABLE.emit(rows, sink)
