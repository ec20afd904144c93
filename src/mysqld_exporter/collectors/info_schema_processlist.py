"""Collector for thread states from information_schema.processlist."""

import logging
from collections import defaultdict
from typing import Dict, Tuple

from mysqld_exporter.args import ArgDefinition, ArgKind
from mysqld_exporter.metrics import MetricSink, ValueKind, new_desc
from mysqld_exporter.parsing import sanitize_state, to_text
from mysqld_exporter.scraper import ConfigurableScraper, ScrapeContext

INFORMATION_SCHEMA = 'info_schema'

PROCESSLIST_QUERY = """
    SELECT
      user,
      SUBSTRING_INDEX(host, ':', 1) AS host,
      COALESCE(command, '') AS command,
      COALESCE(state, '') AS state,
      COUNT(*) AS processes,
      SUM(time) AS seconds
    FROM information_schema.processlist
    WHERE ID != connection_id()
      AND TIME >= %d
    GROUP BY user, SUBSTRING_INDEX(host, ':', 1), command, state
"""

PROCESSLIST_COUNT_DESC = new_desc(
    INFORMATION_SCHEMA, 'processlist_threads',
    "The number of threads split by current state.",
    ('command', 'state'), ValueKind.GAUGE,
)
PROCESSLIST_TIME_DESC = new_desc(
    INFORMATION_SCHEMA, 'processlist_seconds',
    "The number of seconds threads have used split by current state.",
    ('command', 'state'), ValueKind.GAUGE,
)
PROCESSES_BY_USER_DESC = new_desc(
    INFORMATION_SCHEMA, 'processlist_processes_by_user',
    "The number of processes by user.",
    ('mysql_user',), ValueKind.GAUGE,
)
PROCESSES_BY_HOST_DESC = new_desc(
    INFORMATION_SCHEMA, 'processlist_processes_by_host',
    "The number of processes by host.",
    ('client_host',), ValueKind.GAUGE,
)

class ScrapeProcesslist(ConfigurableScraper):
    """Thread counts and time per (command, state), user and client host."""

    name = 'info_schema.processlist'
    help = "Collect current thread state counts from the information_schema.processlist"
    min_version = '5.1'

    ARG_DEFINITIONS = (
        ArgDefinition(
            'min_time',
            "Minimum time a thread must be in each state to be counted",
            0, ArgKind.INT,
        ),
        ArgDefinition(
            'processes_by_user',
            "Enable collecting the number of processes by user",
            True, ArgKind.BOOL,
        ),
        ArgDefinition(
            'processes_by_host',
            "Enable collecting the number of processes by host",
            True, ArgKind.BOOL,
        ),
    )

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        query = PROCESSLIST_QUERY % self.arg_value('min_time')

        state_counts: Dict[Tuple[str, str], float] = defaultdict(float)
        state_time: Dict[Tuple[str, str], float] = defaultdict(float)
        host_counts: Dict[str, float] = defaultdict(float)
        user_counts: Dict[str, float] = defaultdict(float)

        with instance.query(ctx, query) as rows:
            for user, host, command, state, processes, seconds in rows:
                key = (sanitize_state(to_text(command)), sanitize_state(to_text(state)))
                host = to_text(host) or 'unknown'
                user = to_text(user)
                processes = float(processes or 0)

                state_counts[key] += processes
                state_time[key] += float(seconds or 0)
                host_counts[host] += processes
                user_counts[user] += processes

        for key in sorted(state_counts):
            sink.send(PROCESSLIST_COUNT_DESC.sample(state_counts[key], *key))
            sink.send(PROCESSLIST_TIME_DESC.sample(state_time[key], *key))

        if self.arg_value('processes_by_host'):
            for host in sorted(host_counts):
                sink.send(PROCESSES_BY_HOST_DESC.sample(host_counts[host], host))

        if self.arg_value('processes_by_user'):
            for user in sorted(user_counts):
                sink.send(PROCESSES_BY_USER_DESC.sample(user_counts[user], user))
