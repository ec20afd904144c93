"""Collector for SHOW ENGINE INNODB STATUS."""

import logging
import re

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

ENGINE_INNODB = 'engine_innodb'

ENGINE_INNODB_STATUS_QUERY = "SHOW ENGINE INNODB STATUS"

QUERIES_RE = re.compile(r'(\d+) queries inside InnoDB, (\d+) queries in queue')
READ_VIEWS_RE = re.compile(r'(\d+) read views open inside InnoDB')

QUERIES_INSIDE_DESC = new_desc(
    ENGINE_INNODB, 'queries_inside_innodb', "Queries inside InnoDB.", kind=ValueKind.GAUGE,
)
QUERIES_IN_QUEUE_DESC = new_desc(
    ENGINE_INNODB, 'queries_in_queue', "Queries in queue.", kind=ValueKind.GAUGE,
)
READ_VIEWS_DESC = new_desc(
    ENGINE_INNODB, 'read_views_open_inside_innodb', "Read views open inside InnoDB.", kind=ValueKind.GAUGE,
)

class ScrapeEngineInnodbStatus(Scraper):
    """Reads queue and read view counts from the InnoDB monitor output."""

    name = 'engine_innodb_status'
    help = "Collect from SHOW ENGINE INNODB STATUS"
    min_version = '5.1'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, ENGINE_INNODB_STATUS_QUERY) as rows:
            # Type, Name, Status; only the first row is meaningful
            row = rows.first()
        if row is None or len(row) < 3:
            return

        for line in to_text(row[2]).splitlines():
            match = QUERIES_RE.search(line)
            if match:
                sink.send(QUERIES_INSIDE_DESC.sample(float(match.group(1))))
                sink.send(QUERIES_IN_QUEUE_DESC.sample(float(match.group(2))))
                continue
            match = READ_VIEWS_RE.search(line)
            if match:
                sink.send(READ_VIEWS_DESC.sample(float(match.group(1))))
