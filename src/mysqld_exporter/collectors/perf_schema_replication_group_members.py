"""Collector for performance_schema.replication_group_members."""

import logging

import pymysql
from packaging.version import Version

from mysqld_exporter.instance import ER_BAD_FIELD, mysql_error_code
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import to_text
from mysqld_exporter.scraper import ScrapeContext, Scraper

PERFORMANCE_SCHEMA = 'perf_schema'

REPLICATION_GROUP_MEMBERS_QUERY = """
    SELECT CHANNEL_NAME,MEMBER_ID,MEMBER_HOST,MEMBER_PORT,MEMBER_STATE,MEMBER_ROLE,MEMBER_VERSION
      FROM performance_schema.replication_group_members
"""
# MEMBER_ROLE and MEMBER_VERSION exist from MySQL 8.0.2 on
MEMBER_ROLE_VERSION = Version('8.0.2')
REPLICATION_GROUP_MEMBERS_QUERY_57 = """
    SELECT CHANNEL_NAME,MEMBER_ID,MEMBER_HOST,MEMBER_PORT,MEMBER_STATE
      FROM performance_schema.replication_group_members
"""

MEMBER_LABELS = (
    'channel_name', 'member_id', 'member_host', 'member_port',
    'member_state', 'member_role', 'member_version',
)

REPLICATION_GROUP_MEMBER_DESC = new_desc(
    PERFORMANCE_SCHEMA, 'replication_group_member',
    "Information about the replication group member: "
    "channel_name, member_id, member_host, member_port, member_state, member_role, member_version. ",
    MEMBER_LABELS, ValueKind.GAUGE,
)

class ScrapePerfReplicationGroupMembers(Scraper):
    """One info sample per group replication member."""

    name = 'perf_schema.replication_group_members'
    help = "Collect metrics from performance_schema.replication_group_members"
    min_version = '5.7'

    def _emit(self, ctx: ScrapeContext, instance, sink: MetricSink, query: str) -> None:
        with instance.query(ctx, query) as rows:
            for row in rows:
                labels = [to_text(value) for value in row]
                # Columns missing on older servers are reported empty
                labels.extend([''] * (len(MEMBER_LABELS) - len(labels)))
                sink.send(REPLICATION_GROUP_MEMBER_DESC.sample(1, *labels))

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        if not instance.supports(MEMBER_ROLE_VERSION):
            self._emit(ctx, instance, sink, REPLICATION_GROUP_MEMBERS_QUERY_57)
            return

        try:
            self._emit(ctx, instance, sink, REPLICATION_GROUP_MEMBERS_QUERY)
        except pymysql.err.Error as e:
            if mysql_error_code(e) != ER_BAD_FIELD:
                raise
            logger.debug(f"Falling back to the query without member role and version: {e}")
            self._emit(ctx, instance, sink, REPLICATION_GROUP_MEMBERS_QUERY_57)
