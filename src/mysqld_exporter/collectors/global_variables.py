"""Collector for SHOW GLOBAL VARIABLES."""

import logging
import re

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_status, sanitize_metric_fragment, to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

GLOBAL_VARIABLES = 'global_variables'
GLOBAL_VARIABLES_QUERY = "SHOW GLOBAL VARIABLES"

GENERIC_HELP = "Generic gauge metric from SHOW GLOBAL VARIABLES."

# Help for well-known variables, everything else gets GENERIC_HELP
VARIABLE_HELP = {
    'max_connections': "The maximum permitted number of simultaneous client connections.",
    'innodb_buffer_pool_size': "The size in bytes of the InnoDB buffer pool.",
    'innodb_log_file_size': "The size in bytes of each log file in a log group.",
    'table_open_cache': "The number of open tables for all threads.",
    'thread_cache_size': "How many threads the server should cache for reuse.",
    'long_query_time': "Queries taking longer than this many seconds are logged as slow.",
    'read_only': "Whether the server is in read-only mode.",
    'rocksdb_block_cache_size': "Size of the LRU block cache in RocksDB.",
    'rocksdb_max_open_files': "Sets a limit on the maximum number of file handles opened by RocksDB.",
}

VERSION_INFO_DESC = new_desc(
    'version', 'info',
    "MySQL version and distribution.",
    ('innodb_version', 'version', 'version_comment'), ValueKind.GAUGE,
)
GALERA_VARIABLES_INFO_DESC = new_desc(
    'galera', 'variables_info',
    "PXC/Galera variables information.",
    ('wsrep_cluster_name',), ValueKind.GAUGE,
)
GALERA_GCACHE_SIZE_DESC = new_desc(
    'galera', 'gcache_size_bytes',
    "PXC/Galera gcache size.",
    kind=ValueKind.GAUGE,
)

TEXT_ITEMS = (
    'innodb_version',
    'version',
    'version_comment',
    'wsrep_cluster_name',
    'wsrep_provider_options',
)

_GCACHE_SIZE_RE = re.compile(r'gcache\.size = (\d+)([MG]?);')
_GCACHE_UNITS = {'': 1, 'M': 1024 ** 2, 'G': 1024 ** 3}

def parse_gcache_size(options: str) -> float:
    """gcache.size from wsrep_provider_options in bytes, 0 when missing."""
    match = _GCACHE_SIZE_RE.search(options)
    if not match:
        return 0.0
    return float(match.group(1)) * _GCACHE_UNITS[match.group(2)]

class ScrapeGlobalVariables(Scraper):
    """Collects from SHOW GLOBAL VARIABLES."""

    name = GLOBAL_VARIABLES
    help = "Collect from SHOW GLOBAL VARIABLES"

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        text_items = dict.fromkeys(TEXT_ITEMS, '')

        with instance.query(ctx, GLOBAL_VARIABLES_QUERY) as rows:
            for raw_key, raw_value in rows:
                key = sanitize_metric_fragment(to_text(raw_key))
                value, ok = parse_status(raw_value)
                if ok:
                    desc = new_desc(
                        GLOBAL_VARIABLES, key,
                        VARIABLE_HELP.get(key, GENERIC_HELP),
                        kind=ValueKind.GAUGE,
                    )
                    sink.send(desc.sample(value))
                elif key in text_items:
                    text_items[key] = to_text(raw_value)

        sink.send(VERSION_INFO_DESC.sample(
            1,
            text_items['innodb_version'],
            text_items['version'],
            text_items['version_comment'],
        ))

        if text_items['wsrep_cluster_name']:
            sink.send(GALERA_VARIABLES_INFO_DESC.sample(1, text_items['wsrep_cluster_name']))

        if text_items['wsrep_provider_options']:
            sink.send(GALERA_GCACHE_SIZE_DESC.sample(
                parse_gcache_size(text_items['wsrep_provider_options'])
            ))
