"""Collector for pt-heartbeat style replication timestamps."""

import logging

from mysqld_exporter.args import ArgDefinition, ArgKind
from mysqld_exporter.errors import ScrapeError
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_float, to_text
from mysqld_exporter.scraper import ConfigurableScraper, ScrapeContext

HEARTBEAT = 'heartbeat'

# The second column reads the server clock in the same statement as the row
HEARTBEAT_QUERY = "SELECT UNIX_TIMESTAMP(ts), UNIX_TIMESTAMP({now}), server_id from {database}.{table}"

HEARTBEAT_STORED_DESC = new_desc(
    HEARTBEAT, 'stored_timestamp_seconds',
    "Timestamp stored in the heartbeat table.",
    ('server_id',), ValueKind.GAUGE,
)
HEARTBEAT_NOW_DESC = new_desc(
    HEARTBEAT, 'now_timestamp_seconds',
    "Timestamp of the current server.",
    ('server_id',), ValueKind.GAUGE,
)

def quote_identifier(name: str) -> str:
    return '`' + name.replace('`', '``') + '`'

class ScrapeHeartbeat(ConfigurableScraper):
    """Reads the timestamp written by pt-heartbeat and the server clock."""

    name = 'heartbeat'
    help = "Collect from heartbeat"
    min_version = '5.1'

    ARG_DEFINITIONS = (
        ArgDefinition(
            'database',
            "Database from where to collect heartbeat data",
            'heartbeat', ArgKind.STRING,
        ),
        ArgDefinition(
            'table',
            "Table from where to collect heartbeat data",
            'heartbeat', ArgKind.STRING,
        ),
        ArgDefinition(
            'utc',
            "Use UTC for timestamps of the current server (pt-heartbeat is called with --utc)",
            False, ArgKind.BOOL,
        ),
    )

    def query(self) -> str:
        return HEARTBEAT_QUERY.format(
            now='UTC_TIMESTAMP(6)' if self.arg_value('utc') else 'NOW(6)',
            database=quote_identifier(self.arg_value('database')),
            table=quote_identifier(self.arg_value('table')),
        )

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, self.query()) as rows:
            for stored, now, server_id in rows:
                stored_value = parse_float(to_text(stored).strip())
                now_value = parse_float(to_text(now).strip())
                if stored_value is None or now_value is None:
                    raise ScrapeError(f"Invalid heartbeat timestamps: {stored!r}, {now!r}")

                server_id = to_text(server_id)
                sink.send(HEARTBEAT_NOW_DESC.sample(now_value, server_id))
                sink.send(HEARTBEAT_STORED_DESC.sample(stored_value, server_id))
