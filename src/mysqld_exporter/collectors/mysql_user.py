"""Collector for account limits and privileges from mysql.user."""

import logging

from mysqld_exporter.args import ArgDefinition, ArgKind
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import parse_privilege, parse_status, to_text
from mysqld_exporter.scraper import ConfigurableScraper, ScrapeContext

MYSQL = 'mysql'

PRIVILEGE_COLUMNS = (
    'Select_priv', 'Insert_priv', 'Update_priv', 'Delete_priv', 'Create_priv',
    'Drop_priv', 'Reload_priv', 'Shutdown_priv', 'Process_priv', 'File_priv',
    'Grant_priv', 'References_priv', 'Index_priv', 'Alter_priv', 'Show_db_priv',
    'Super_priv', 'Create_tmp_table_priv', 'Lock_tables_priv', 'Execute_priv',
    'Repl_slave_priv', 'Repl_client_priv', 'Create_view_priv', 'Show_view_priv',
    'Create_routine_priv', 'Alter_routine_priv', 'Create_user_priv', 'Event_priv',
    'Trigger_priv', 'Create_tablespace_priv',
)
LIMIT_COLUMNS = ('max_questions', 'max_updates', 'max_connections', 'max_user_connections')

MYSQL_USER_QUERY = "SELECT user, host, {columns} FROM mysql.user".format(
    columns=', '.join(PRIVILEGE_COLUMNS + LIMIT_COLUMNS),
)

USER_LABELS = ('mysql_user', 'hostmask')

LIMIT_DESCS = {
    column: new_desc(MYSQL, column, f"The number of {column} by user.", USER_LABELS, ValueKind.GAUGE)
    for column in LIMIT_COLUMNS
}
PRIVILEGE_DESCS = {
    column: new_desc(MYSQL, column.lower(), f"{column} by user.", USER_LABELS, ValueKind.GAUGE)
    for column in PRIVILEGE_COLUMNS
}

class ScrapeUser(ConfigurableScraper):
    """Per account resource limits, and optionally Y/N privileges as 1/0."""

    name = 'mysql.user'
    help = "Collect data from mysql.user"
    min_version = '5.1'

    ARG_DEFINITIONS = (
        ArgDefinition(
            'privileges',
            "Enable collecting user privileges from mysql.user",
            False, ArgKind.BOOL,
        ),
    )

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        privileges = self.arg_value('privileges')
        with instance.query(ctx, MYSQL_USER_QUERY) as rows:
            for row in rows:
                labels = (to_text(row[0]), to_text(row[1]))
                values = dict(zip(PRIVILEGE_COLUMNS + LIMIT_COLUMNS, row[2:]))

                if privileges:
                    for column in PRIVILEGE_COLUMNS:
                        # Unparsable values are skipped
                        value, ok = parse_privilege(values.get(column))
                        if ok:
                            sink.send(PRIVILEGE_DESCS[column].sample(value, *labels))

                for column in LIMIT_COLUMNS:
                    value, ok = parse_status(values.get(column))
                    if ok:
                        sink.send(LIMIT_DESCS[column].sample(value, *labels))
