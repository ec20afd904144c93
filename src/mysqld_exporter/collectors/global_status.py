"""Collector for SHOW GLOBAL STATUS."""

import logging

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import (
    parse_composite_status, parse_status, sanitize_metric_fragment, to_text
)
from mysqld_exporter.query import StatusKeyMatcher, StatusPrefix, untyped_descriptor
from mysqld_exporter.scraper import ScrapeContext, Scraper

GLOBAL_STATUS = 'global_status'
GLOBAL_STATUS_QUERY = "SHOW GLOBAL STATUS"

COMMANDS_DESC = new_desc(
    GLOBAL_STATUS, 'commands_total',
    "Total number of executed MySQL commands.",
    ('command',), ValueKind.COUNTER,
)
HANDLERS_DESC = new_desc(
    GLOBAL_STATUS, 'handlers_total',
    "Total number of executed MySQL handlers.",
    ('handler',), ValueKind.COUNTER,
)
CONNECTION_ERRORS_DESC = new_desc(
    GLOBAL_STATUS, 'connection_errors_total',
    "Total number of MySQL connection errors.",
    ('error',), ValueKind.COUNTER,
)
BUFFER_POOL_PAGES_DESC = new_desc(
    GLOBAL_STATUS, 'buffer_pool_pages',
    "Innodb buffer pool pages by state.",
    ('state',), ValueKind.GAUGE,
)
BUFFER_POOL_DIRTY_PAGES_DESC = new_desc(
    GLOBAL_STATUS, 'buffer_pool_dirty_pages',
    "Innodb buffer pool dirty pages.",
    kind=ValueKind.GAUGE,
)
BUFFER_POOL_PAGE_CHANGES_DESC = new_desc(
    GLOBAL_STATUS, 'buffer_pool_page_changes_total',
    "Innodb buffer pool page state changes.",
    ('operation',), ValueKind.COUNTER,
)
INNODB_ROW_OPS_DESC = new_desc(
    GLOBAL_STATUS, 'innodb_row_ops_total',
    "Total number of MySQL InnoDB row operations.",
    ('operation',), ValueKind.COUNTER,
)
PERFORMANCE_SCHEMA_LOST_DESC = new_desc(
    GLOBAL_STATUS, 'performance_schema_lost_total',
    "Total number of MySQL instrumentations that could not be loaded or created due to memory constraints.",
    ('instrumentation',), ValueKind.COUNTER,
)
GALERA_STATUS_INFO_DESC = new_desc(
    'galera', 'status_info',
    "PXC/Galera status information.",
    ('wsrep_local_state_uuid', 'wsrep_cluster_state_uuid', 'wsrep_provider_version'),
    ValueKind.GAUGE,
)

# wsrep_evs_repl_latency is reported as min/avg/max/stdev/sample_size
GALERA_EVS_REPL_LATENCY_DESCS = tuple(
    new_desc('galera_evs_repl_latency', stem, help, kind=ValueKind.GAUGE)
    for stem, help in (
        ('min_seconds', "PXC/Galera group communication latency. Min value."),
        ('avg_seconds', "PXC/Galera group communication latency. Avg value."),
        ('max_seconds', "PXC/Galera group communication latency. Max value."),
        ('stdev', "PXC/Galera group communication latency. Standard Deviation."),
        ('sample_size', "PXC/Galera group communication latency. Sample Size."),
    )
)

STATUS_KEYS = StatusKeyMatcher([
    StatusPrefix('com_', COMMANDS_DESC),
    StatusPrefix('handler_', HANDLERS_DESC),
    StatusPrefix('connection_errors_', CONNECTION_ERRORS_DESC),
    StatusPrefix('innodb_buffer_pool_pages_', BUFFER_POOL_PAGE_CHANGES_DESC),
    StatusPrefix('innodb_rows_', INNODB_ROW_OPS_DESC),
    StatusPrefix('performance_schema_', PERFORMANCE_SCHEMA_LOST_DESC),
])

BUFFER_POOL_PAGE_STATES = frozenset({'data', 'free', 'misc', 'old'})

TEXT_ITEMS = (
    'wsrep_local_state_uuid',
    'wsrep_cluster_state_uuid',
    'wsrep_provider_version',
    'wsrep_evs_repl_latency',
)

class ScrapeGlobalStatus(Scraper):
    """Collects from SHOW GLOBAL STATUS."""

    name = GLOBAL_STATUS
    help = "Collect from SHOW GLOBAL STATUS"

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        text_items = {}

        with instance.query(ctx, GLOBAL_STATUS_QUERY) as rows:
            for raw_key, raw_value in rows:
                key = sanitize_metric_fragment(to_text(raw_key))
                value, ok = parse_status(raw_value)
                if not ok:
                    # Unparsable values are skipped unless needed as text
                    if key in TEXT_ITEMS:
                        text_items[key] = to_text(raw_value)
                    continue

                match = STATUS_KEYS.match(key)
                if match is None:
                    sink.send(untyped_descriptor(
                        GLOBAL_STATUS, key, "Generic metric from SHOW GLOBAL STATUS."
                    ).sample(value))
                    continue

                if match.descriptor is BUFFER_POOL_PAGE_CHANGES_DESC:
                    self._send_buffer_pool_pages(sink, match.label_value, value)
                else:
                    sink.send(match.descriptor.sample(value, match.label_value))

        if text_items.get('wsrep_local_state_uuid'):
            sink.send(GALERA_STATUS_INFO_DESC.sample(
                1,
                text_items['wsrep_local_state_uuid'],
                text_items.get('wsrep_cluster_state_uuid', ''),
                text_items.get('wsrep_provider_version', ''),
            ))

        latency = parse_composite_status(text_items.get('wsrep_evs_repl_latency'))
        if latency is not None:
            if len(latency) == len(GALERA_EVS_REPL_LATENCY_DESCS):
                for desc, value in zip(GALERA_EVS_REPL_LATENCY_DESCS, latency):
                    sink.send(desc.sample(value))
            else:
                logger.debug(f"Unexpected wsrep_evs_repl_latency format: {latency}")

    @staticmethod
    def _send_buffer_pool_pages(sink: MetricSink, suffix: str, value: float) -> None:
        if suffix in BUFFER_POOL_PAGE_STATES:
            sink.send(BUFFER_POOL_PAGES_DESC.sample(value, suffix))
        elif suffix == 'dirty':
            sink.send(BUFFER_POOL_DIRTY_PAGES_DESC.sample(value))
        elif suffix != 'total':
            sink.send(BUFFER_POOL_PAGE_CHANGES_DESC.sample(value, suffix))
