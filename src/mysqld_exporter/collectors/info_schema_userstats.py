"""Collector for information_schema.user_statistics."""

import logging

import pymysql

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import to_text
from mysqld_exporter.query import ColumnMetric, DispatchTable
from mysqld_exporter.scraper import ScrapeContext, Scraper

INFORMATION_SCHEMA = 'info_schema'

USERSTAT_CHECK_QUERY = """
    SHOW GLOBAL VARIABLES WHERE Variable_Name='userstat'
      OR Variable_Name='userstat_running'
"""
USER_STAT_QUERY = "SELECT * FROM information_schema.user_statistics"

def _metric(stem: str, help: str, kind: ValueKind = ValueKind.COUNTER) -> ColumnMetric:
    return ColumnMetric(new_desc(
        INFORMATION_SCHEMA, f"user_statistics_{stem}", help, ('user',), kind
    ))

# Known columns; anything else is reported untyped
USER_STATISTICS_TABLE = DispatchTable(
    INFORMATION_SCHEMA,
    label_columns=('USER',),
    labels=('user',),
    columns={
        'TOTAL_CONNECTIONS': _metric(
            'total_connections',
            "The number of connections created for this user."),
        'CONCURRENT_CONNECTIONS': _metric(
            'concurrent_connections',
            "The number of concurrent connections for this user.",
            ValueKind.GAUGE),
        'CONNECTED_TIME': _metric(
            'connected_time_seconds_total',
            "The cumulative number of seconds elapsed while there were connections from this user."),
        'BUSY_TIME': _metric(
            'busy_seconds_total',
            "The cumulative number of seconds there was activity on connections from this user."),
        'CPU_TIME': _metric(
            'cpu_time_seconds_total',
            "The cumulative CPU time elapsed, in seconds, while servicing this user's connections."),
        'BYTES_RECEIVED': _metric(
            'bytes_received_total',
            "The number of bytes received from this user's connections."),
        'BYTES_SENT': _metric(
            'bytes_sent_total',
            "The number of bytes sent to this user's connections."),
        'BINLOG_BYTES_WRITTEN': _metric(
            'binlog_bytes_written_total',
            "The number of bytes written to the binary log from this user's connections."),
        'ROWS_READ': _metric(
            'rows_read_total',
            "The number of rows read by this user's connections."),
        'ROWS_SENT': _metric(
            'rows_sent_total',
            "The number of rows sent by this user's connections."),
        'ROWS_DELETED': _metric(
            'rows_deleted_total',
            "The number of rows deleted by this user's connections."),
        'ROWS_INSERTED': _metric(
            'rows_inserted_total',
            "The number of rows inserted by this user's connections."),
        'ROWS_FETCHED': _metric(
            'rows_fetched_total',
            "The number of rows fetched by this user's connections."),
        'ROWS_UPDATED': _metric(
            'rows_updated_total',
            "The number of rows updated by this user's connections."),
        'TABLE_ROWS_READ': _metric(
            'table_rows_read_total',
            "The number of rows read from tables by this user's connections. (It may be different from ROWS_FETCHED.)"),
        'SELECT_COMMANDS': _metric(
            'select_commands_total',
            "The number of SELECT commands executed from this user's connections."),
        'UPDATE_COMMANDS': _metric(
            'update_commands_total',
            "The number of UPDATE commands executed from this user's connections."),
        'OTHER_COMMANDS': _metric(
            'other_commands_total',
            "The number of other commands executed from this user's connections."),
        'COMMIT_TRANSACTIONS': _metric(
            'commit_transactions_total',
            "The number of COMMIT commands issued by this user's connections."),
        'ROLLBACK_TRANSACTIONS': _metric(
            'rollback_transactions_total',
            "The number of ROLLBACK commands issued by this user's connections."),
        'DENIED_CONNECTIONS': _metric(
            'denied_connections_total',
            "The number of connections denied to this user."),
        'LOST_CONNECTIONS': _metric(
            'lost_connections_total',
            "The number of this user's connections that were terminated uncleanly."),
        'ACCESS_DENIED': _metric(
            'access_denied_total',
            "The number of times this user's connections issued commands that were denied."),
        'EMPTY_QUERIES': _metric(
            'empty_queries_total',
            "The number of times this user's connections sent empty queries to the server."),
        'TOTAL_SSL_CONNECTIONS': _metric(
            'total_ssl_connections_total',
            "The number of times this user's connections connected using SSL to the server."),
    },
    fallback_prefix='user_statistics_',
    fallback_help="Unsupported metric from column {column}",
)

class ScrapeUserStat(Scraper):
    """Per-user statistics from Percona and MariaDB userstat."""

    name = 'info_schema.userstats'
    help = "If running with userstat=1, set to true to collect user statistics"
    min_version = '5.1'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        try:
            with instance.query(ctx, USERSTAT_CHECK_QUERY) as rows:
                row = rows.first()
        except pymysql.err.Error as e:
            logger.debug(f"Detailed user stats are not available: {e}")
            return

        if row is None:
            logger.debug("Detailed user stats are not available")
            return
        if to_text(row[1]).upper() == 'OFF':
            logger.debug(f"MySQL variable is OFF: {to_text(row[0])}")
            return

        with instance.query(ctx, USER_STAT_QUERY) as rows:
            USER_STATISTICS_TABLE.emit(rows, sink)
