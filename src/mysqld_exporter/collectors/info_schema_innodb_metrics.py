"""Collector for information_schema.innodb_metrics."""

import logging
import re

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_status, sanitize_metric_fragment, to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

INFORMATION_SCHEMA = 'info_schema'

INNODB_METRICS_QUERY = """
    SELECT
      name, subsystem, type, comment,
      count
      FROM information_schema.innodb_metrics
      WHERE status = 'enabled'
"""

BUFFER_RE = re.compile(r'^buffer_(pool_pages)_(.*)$')
BUFFER_PAGE_RE = re.compile(r'^buffer_page_(read|written)_(.*)$')

# MySQL names counters both ways
COUNTER_TYPES = ('counter', 'status_counter')

BUFFER_PAGE_READ_DESC = new_desc(
    INFORMATION_SCHEMA, 'innodb_metrics_buffer_page_read_total',
    "Total number of buffer pages read total.",
    ('type',), ValueKind.COUNTER,
)
BUFFER_PAGE_WRITTEN_DESC = new_desc(
    INFORMATION_SCHEMA, 'innodb_metrics_buffer_page_written_total',
    "Total number of buffer pages written total.",
    ('type',), ValueKind.COUNTER,
)
BUFFER_POOL_PAGES_DESC = new_desc(
    INFORMATION_SCHEMA, 'innodb_metrics_buffer_pool_pages',
    "Total number of buffer pool pages by state.",
    ('state',), ValueKind.GAUGE,
)
BUFFER_POOL_DIRTY_PAGES_DESC = new_desc(
    INFORMATION_SCHEMA, 'innodb_metrics_buffer_pool_dirty_pages',
    "Total number of dirty pages in the buffer pool.",
    kind=ValueKind.GAUGE,
)

class ScrapeInnodbMetrics(Scraper):
    """Collects every enabled InnoDB monitor counter.

    Buffer page IO and buffer pool page counts are folded into labelled
    metrics; everything else gets a metric of its own named after its
    subsystem and name.
    """

    name = 'info_schema.innodb_metrics'
    help = "Collect metrics from information_schema.innodb_metrics"
    min_version = '5.6'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, INNODB_METRICS_QUERY) as rows:
            for name, subsystem, metric_type, comment, count in rows:
                value, ok = parse_status(count)
                if not ok:
                    continue
                self._emit(
                    sink, logger, to_text(name), to_text(subsystem),
                    to_text(metric_type), to_text(comment), value,
                )

    def _emit(
        self,
        sink: MetricSink,
        logger: logging.Logger,
        name: str,
        subsystem: str,
        metric_type: str,
        comment: str,
        value: float
    ) -> None:
        if subsystem == 'buffer_page_io':
            match = BUFFER_PAGE_RE.match(name)
            if not match:
                logger.warning(f"innodb_metrics subsystem buffer_page_io returned an invalid name: {name}")
                return
            desc = BUFFER_PAGE_READ_DESC if match.group(1) == 'read' else BUFFER_PAGE_WRITTEN_DESC
            sink.send(desc.sample(value, match.group(2)))
            return

        if subsystem == 'buffer':
            match = BUFFER_RE.match(name)
            if match:
                state = match.group(2)
                if state == 'dirty':
                    sink.send(BUFFER_POOL_DIRTY_PAGES_DESC.sample(value))
                elif state != 'total':
                    # total is the sum of the other states
                    sink.send(BUFFER_POOL_PAGES_DESC.sample(value, state))
                return

        stem = sanitize_metric_fragment(f"innodb_metrics_{subsystem}_{name}")
        # Some servers report negative counters
        if metric_type in COUNTER_TYPES and value >= 0:
            desc = new_desc(INFORMATION_SCHEMA, f"{stem}_total", comment, kind=ValueKind.COUNTER)
        else:
            desc = new_desc(INFORMATION_SCHEMA, stem, comment, kind=ValueKind.GAUGE)
        sink.send(desc.sample(value))
