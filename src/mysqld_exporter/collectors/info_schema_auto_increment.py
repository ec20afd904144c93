"""Collector for auto_increment columns from information_schema."""

import logging

from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_status, to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

INFORMATION_SCHEMA = 'info_schema'

# max_int is the largest value the column type can hold
AUTO_INCREMENT_QUERY = """
    SELECT table_schema, table_name, column_name, auto_increment,
      pow(2, case data_type
        when 'tinyint'   then 7
        when 'smallint'  then 15
        when 'mediumint' then 23
        when 'int'       then 31
        when 'bigint'    then 63
        end+(column_type like '% unsigned'))-1 as max_int
      FROM information_schema.tables t
      JOIN information_schema.columns c USING (table_schema,table_name)
      WHERE c.extra = 'auto_increment' AND t.auto_increment IS NOT NULL
"""

COLUMN_LABELS = ('schema', 'table', 'column')

AUTO_INCREMENT_DESC = new_desc(
    INFORMATION_SCHEMA, 'auto_increment_column',
    "The current value of an auto_increment column from information_schema.",
    COLUMN_LABELS, ValueKind.GAUGE,
)
AUTO_INCREMENT_MAX_DESC = new_desc(
    INFORMATION_SCHEMA, 'auto_increment_column_max',
    "The max value of an auto_increment column from information_schema.",
    COLUMN_LABELS, ValueKind.GAUGE,
)

class ScrapeAutoIncrementColumns(Scraper):
    """Current and maximum value of every auto_increment column."""

    name = 'auto_increment.columns'
    help = "Collect auto_increment columns and max values from information_schema"
    min_version = '5.1'

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        with instance.query(ctx, AUTO_INCREMENT_QUERY) as rows:
            for schema, table, column, value, max_value in rows:
                labels = (to_text(schema), to_text(table), to_text(column))
                current, ok = parse_status(value)
                if ok:
                    sink.send(AUTO_INCREMENT_DESC.sample(current, *labels))
                maximum, ok = parse_status(max_value)
                if ok:
                    sink.send(AUTO_INCREMENT_MAX_DESC.sample(maximum, *labels))
