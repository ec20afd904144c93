"""Collector for the size of the binary logs."""

import logging

from mysqld_exporter.errors import ScrapeError
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_status, to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

BINLOG = 'binlog'
LOGBIN_QUERY = "SELECT @@log_bin"
BINLOG_QUERY = "SHOW BINARY LOGS"

BINLOG_SIZE_DESC = new_desc(
    BINLOG, 'size_bytes',
    "Combined size of all registered binlog files.",
    kind=ValueKind.GAUGE,
)
BINLOG_FILES_DESC = new_desc(
    BINLOG, 'files',
    "Number of registered binlog files.",
    kind=ValueKind.GAUGE,
)
BINLOG_FILE_NUMBER_DESC = new_desc(
    BINLOG, 'file_number',
    "The last binlog file number.",
    kind=ValueKind.GAUGE,
)

class ScrapeBinlogSize(Scraper):
    """Sums the sizes reported by SHOW BINARY LOGS."""

    name = 'binlog_size'
    help = "Collect the current size of all registered binlog files"
    min_version = '5.1'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, LOGBIN_QUERY) as rows:
            row = rows.first()
        log_bin, ok = parse_status(row[0] if row else None)
        if not ok or log_bin == 0:
            # SHOW BINARY LOGS fails when binary logging is off
            logger.debug("Binary logging is disabled, skipping binlog size")
            return

        size = 0.0
        count = 0
        filename = ''
        with instance.query(ctx, BINLOG_QUERY) as rows:
            # Log_name, File_size and, on newer servers, Encrypted
            if len(rows.columns) not in (2, 3):
                raise ScrapeError(f"Invalid number of columns: {len(rows.columns)}")
            for row in rows:
                filename = to_text(row[0])
                size += float(row[1] or 0)
                count += 1

        sink.send(BINLOG_SIZE_DESC.sample(size))
        sink.send(BINLOG_FILES_DESC.sample(count))

        # The last row names the newest binlog file
        file_number, ok = parse_status(filename)
        sink.send(BINLOG_FILE_NUMBER_DESC.sample(file_number if ok else 0.0))
