"""Collector for SHOW SLAVE HOSTS."""

import logging
import uuid

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

SLAVE_HOSTS_QUERY = "SHOW SLAVE HOSTS"

# Named under the heartbeat subsystem for compatibility with existing dashboards
SLAVE_HOSTS_INFO_DESC = new_desc(
    'heartbeat', 'mysql_slave_hosts_info',
    "Information about running slaves",
    ('server_id', 'slave_host', 'port', 'master_id', 'slave_uuid'), ValueKind.GAUGE,
)

def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True

class ScrapeSlaveHosts(Scraper):
    """One info sample per replica registered with this source.

    Newer servers report Server_id, Host, Port, Master_id, Slave_UUID;
    older ones Server_id, Host, Port, Rpl_recovery_rank, Master_id.
    """

    name = 'slave_hosts'
    help = "Scrape information from 'SHOW SLAVE HOSTS'"
    min_version = '5.1'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, SLAVE_HOSTS_QUERY) as rows:
            for row in rows:
                values = [to_text(value) for value in row[:5]]
                values.extend([''] * (5 - len(values)))
                server_id, host, port, fourth, fifth = values
                if is_uuid(fifth):
                    master_id, slave_uuid = fourth, fifth
                else:
                    master_id, slave_uuid = fifth, ''
                sink.send(SLAVE_HOSTS_INFO_DESC.sample(1, server_id, host, port, master_id, slave_uuid))
