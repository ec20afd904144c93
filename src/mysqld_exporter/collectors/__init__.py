"""Built-in collectors, their default enabled state and resolution sets."""

from functools import partial
from typing import Callable, Dict, FrozenSet, List, Tuple

from mysqld_exporter.collectors.binlog import ScrapeBinlogSize
from mysqld_exporter.collectors.custom_query import ScrapeCustomQuery
from mysqld_exporter.collectors.engine_innodb_status import ScrapeEngineInnodbStatus
from mysqld_exporter.collectors.global_status import ScrapeGlobalStatus
from mysqld_exporter.collectors.global_variables import ScrapeGlobalVariables
from mysqld_exporter.collectors.heartbeat import ScrapeHeartbeat
from mysqld_exporter.collectors.info_schema_auto_increment import ScrapeAutoIncrementColumns
from mysqld_exporter.collectors.info_schema_innodb_cmp import ScrapeInnodbCmp
from mysqld_exporter.collectors.info_schema_innodb_cmpmem import ScrapeInnodbCmpMem
from mysqld_exporter.collectors.info_schema_innodb_metrics import ScrapeInnodbMetrics
from mysqld_exporter.collectors.info_schema_processlist import ScrapeProcesslist
from mysqld_exporter.collectors.info_schema_query_response_time import ScrapeQueryResponseTime
from mysqld_exporter.collectors.info_schema_tables import ScrapeTableSchema
from mysqld_exporter.collectors.info_schema_userstats import ScrapeUserStat
from mysqld_exporter.collectors.mysql_innodb_table_stats import ScrapeMysqlTableStats
from mysqld_exporter.collectors.mysql_user import ScrapeUser
from mysqld_exporter.collectors.perf_schema_events_statements import ScrapePerfEventsStatements
from mysqld_exporter.collectors.perf_schema_index_io_waits import ScrapePerfIndexIOWaits
from mysqld_exporter.collectors.perf_schema_replication_group_members import (
    ScrapePerfReplicationGroupMembers
)
from mysqld_exporter.collectors.perf_schema_table_io_waits import ScrapePerfTableIOWaits
from mysqld_exporter.collectors.slave_hosts import ScrapeSlaveHosts
from mysqld_exporter.collectors.slave_status import ScrapeSlaveStatus
from mysqld_exporter.collectors.standard import StandardProcess, StandardPython
from mysqld_exporter.registry import Registry
from mysqld_exporter.scraper import Scraper

DEFAULT_SCRAPERS: List[Tuple[Callable[[], Scraper], bool]] = [
    (ScrapeGlobalStatus, True),
    (ScrapeGlobalVariables, True),
    (ScrapeSlaveStatus, True),
    (ScrapeInnodbMetrics, False),
    (ScrapeBinlogSize, False),
    (ScrapeProcesslist, False),
    (ScrapeInnodbCmp, False),
    (ScrapeInnodbCmpMem, False),
    (ScrapeQueryResponseTime, False),
    (ScrapeUserStat, False),
    (ScrapeTableSchema, False),
    (ScrapeAutoIncrementColumns, False),
    (ScrapeMysqlTableStats, False),
    (ScrapeUser, False),
    (ScrapePerfEventsStatements, False),
    (ScrapePerfTableIOWaits, False),
    (ScrapePerfIndexIOWaits, False),
    (ScrapePerfReplicationGroupMembers, False),
    (ScrapeEngineInnodbStatus, False),
    (ScrapeHeartbeat, False),
    (ScrapeSlaveHosts, False),
    (partial(ScrapeCustomQuery, 'hr'), False),
    (partial(ScrapeCustomQuery, 'mr'), False),
    (partial(ScrapeCustomQuery, 'lr'), False),
    (StandardProcess, True),
    (StandardPython, True),
]

# Collectors served on <telemetry path>-<resolution>, for scraping fast
# changing metrics often and expensive ones rarely
RESOLUTIONS: Dict[str, FrozenSet[str]] = {
    'hr': frozenset({
        'global_status',
        'info_schema.innodb_metrics',
        'custom_query.hr',
        'standard.process',
        'standard.python',
    }),
    'mr': frozenset({
        'slave_status',
        'info_schema.processlist',
        'info_schema.query_response_time',
        'engine_innodb_status',
        'info_schema.innodb_cmp',
        'info_schema.innodb_cmpmem',
        'custom_query.mr',
    }),
    'lr': frozenset({
        'global_variables',
        'info_schema.tables',
        'auto_increment.columns',
        'binlog_size',
        'perf_schema.tableiowaits',
        'perf_schema.indexiowaits',
        'info_schema.userstats',
        'perf_schema.eventsstatements',
        'heartbeat',
        'custom_query.lr',
    }),
}

def register_defaults(registry: Registry) -> None:
    """Register a fresh instance of every built-in collector."""
    for factory, enabled in DEFAULT_SCRAPERS:
        registry.must_register_with_defaults(factory(), enabled)
