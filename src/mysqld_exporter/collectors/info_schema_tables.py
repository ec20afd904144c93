"""Collector for table sizes from information_schema.tables."""

import logging
from typing import List

from mysqld_exporter.args import ArgDefinition, ArgKind
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_status, to_text
from mysqld_exporter.scraper import ConfigurableScraper, ScrapeContext

INFORMATION_SCHEMA = 'info_schema'

TABLE_SCHEMA_QUERY = """
    SELECT
        TABLE_SCHEMA,
        TABLE_NAME,
        TABLE_TYPE,
        ifnull(ENGINE, 'NONE') as ENGINE,
        ifnull(VERSION, '0') as VERSION,
        ifnull(ROW_FORMAT, 'NONE') as ROW_FORMAT,
        ifnull(TABLE_ROWS, '0') as TABLE_ROWS,
        ifnull(DATA_LENGTH, '0') as DATA_LENGTH,
        ifnull(INDEX_LENGTH, '0') as INDEX_LENGTH,
        ifnull(DATA_FREE, '0') as DATA_FREE,
        ifnull(CREATE_OPTIONS, 'NONE') as CREATE_OPTIONS
      FROM information_schema.tables
      WHERE TABLE_SCHEMA = %s
"""
DB_LIST_QUERY = """
    SELECT
        SCHEMA_NAME
      FROM information_schema.schemata
      WHERE SCHEMA_NAME NOT IN ('mysql', 'performance_schema', 'information_schema')
"""

TABLE_VERSION_DESC = new_desc(
    INFORMATION_SCHEMA, 'table_version',
    "The version number of the table's .frm file",
    ('schema', 'table', 'type', 'engine', 'row_format', 'create_options'), ValueKind.GAUGE,
)
TABLE_ROWS_DESC = new_desc(
    INFORMATION_SCHEMA, 'table_rows',
    "The estimated number of rows in the table from information_schema.tables",
    ('schema', 'table'), ValueKind.GAUGE,
)
TABLE_SIZE_DESC = new_desc(
    INFORMATION_SCHEMA, 'table_size',
    "The size of the table components from information_schema.tables",
    ('schema', 'table', 'component'), ValueKind.GAUGE,
)

def _number(raw) -> float:
    value, ok = parse_status(raw)
    return value if ok else 0.0

class ScrapeTableSchema(ConfigurableScraper):
    """Row counts and sizes of every table in the selected databases."""

    name = 'info_schema.tables'
    help = "Collect metrics from information_schema.tables"
    min_version = '5.1'

    ARG_DEFINITIONS = (
        ArgDefinition(
            'databases',
            "The list of databases to collect table stats for, or '*' for all",
            '*', ArgKind.STRING,
        ),
    )

    def _databases(self, ctx: ScrapeContext, instance) -> List[str]:
        databases = self.arg_value('databases')
        if databases != '*':
            return [name.strip() for name in databases.split(',') if name.strip()]
        with instance.query(ctx, DB_LIST_QUERY) as rows:
            return [to_text(row[0]) for row in rows]

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        for database in self._databases(ctx, instance):
            with instance.query(ctx, TABLE_SCHEMA_QUERY, (database,)) as rows:
                for row in rows:
                    (schema, table, table_type, engine, version, row_format,
                     table_rows, data_length, index_length, data_free, create_options) = row
                    schema, table = to_text(schema), to_text(table)

                    sink.send(TABLE_VERSION_DESC.sample(
                        _number(version), schema, table, to_text(table_type),
                        to_text(engine), to_text(row_format), to_text(create_options),
                    ))
                    sink.send(TABLE_ROWS_DESC.sample(_number(table_rows), schema, table))
                    sink.send(TABLE_SIZE_DESC.sample(_number(data_length), schema, table, 'data_length'))
                    sink.send(TABLE_SIZE_DESC.sample(_number(index_length), schema, table, 'index_length'))
                    sink.send(TABLE_SIZE_DESC.sample(_number(data_free), schema, table, 'data_free'))
