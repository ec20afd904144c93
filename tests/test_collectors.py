"""Collector tests against scripted result sets."""

import pytest

from mysqld_exporter.args import Arg
from mysqld_exporter.collectors.binlog import BINLOG_QUERY, LOGBIN_QUERY, ScrapeBinlogSize
from mysqld_exporter.collectors.engine_innodb_status import ENGINE_INNODB_STATUS_QUERY, ScrapeEngineInnodbStatus
from mysqld_exporter.collectors.global_status import GLOBAL_STATUS_QUERY, ScrapeGlobalStatus
from mysqld_exporter.collectors.global_variables import (
    GLOBAL_VARIABLES_QUERY, ScrapeGlobalVariables, parse_gcache_size
)
from mysqld_exporter.collectors.heartbeat import ScrapeHeartbeat
from mysqld_exporter.collectors.info_schema_auto_increment import (
    AUTO_INCREMENT_QUERY, ScrapeAutoIncrementColumns
)
from mysqld_exporter.collectors.info_schema_innodb_cmp import INNODB_CMP_QUERY, ScrapeInnodbCmp
from mysqld_exporter.collectors.info_schema_innodb_cmpmem import INNODB_CMPMEM_QUERY, ScrapeInnodbCmpMem
from mysqld_exporter.collectors.info_schema_innodb_metrics import INNODB_METRICS_QUERY, ScrapeInnodbMetrics
from mysqld_exporter.collectors.info_schema_processlist import PROCESSLIST_QUERY, ScrapeProcesslist
from mysqld_exporter.collectors.info_schema_query_response_time import (
    QUERY_RESPONSE_CHECK_QUERY, QUERY_RESPONSE_TIME_QUERIES, ScrapeQueryResponseTime
)
from mysqld_exporter.collectors.info_schema_tables import (
    DB_LIST_QUERY, TABLE_SCHEMA_QUERY, ScrapeTableSchema
)
from mysqld_exporter.collectors.info_schema_userstats import (
    USER_STAT_QUERY, USERSTAT_CHECK_QUERY, ScrapeUserStat
)
from mysqld_exporter.collectors.mysql_innodb_table_stats import TABLE_STATS_QUERY, ScrapeMysqlTableStats
from mysqld_exporter.collectors.mysql_user import (
    LIMIT_COLUMNS, MYSQL_USER_QUERY, PRIVILEGE_COLUMNS, ScrapeUser
)
from mysqld_exporter.collectors.perf_schema_events_statements import ScrapePerfEventsStatements
from mysqld_exporter.collectors.perf_schema_index_io_waits import INDEX_IO_WAITS_QUERY, ScrapePerfIndexIOWaits
from mysqld_exporter.collectors.perf_schema_replication_group_members import (
    REPLICATION_GROUP_MEMBERS_QUERY, REPLICATION_GROUP_MEMBERS_QUERY_57,
    ScrapePerfReplicationGroupMembers
)
from mysqld_exporter.collectors.perf_schema_table_io_waits import TABLE_IO_WAITS_QUERY, ScrapePerfTableIOWaits
from mysqld_exporter.collectors.slave_hosts import SLAVE_HOSTS_QUERY, ScrapeSlaveHosts
from mysqld_exporter.collectors.slave_status import ScrapeSlaveStatus, slave_status_candidates
from mysqld_exporter.collectors.standard import StandardPython
from mysqld_exporter.errors import ScrapeCancelledError, ScrapeError
from mysqld_exporter.instance import Flavor
from mysqld_exporter.scraper import ScrapeContext

from conftest import FakeInstance

ER_PARSE_ERROR = 1064
ER_BAD_FIELD = 1054
ER_NO_SUCH_TABLE = 1146
ER_UNKNOWN_TABLE = 1109

class TestGlobalStatus:

    def test_labelled_and_generic_keys(self, instance, run_scraper, as_tuples):
        instance.expect(GLOBAL_STATUS_QUERY, ('Variable_name', 'Value'), [
            ('Com_select', '3'),
            ('Slave_running', 'OFF'),
            ('Uptime', '18'),
        ])
        samples = run_scraper(ScrapeGlobalStatus(), instance)
        assert as_tuples(samples) == [
            ('mysql_global_status_commands_total', {'command': 'select'}, 3.0, 'counter'),
            ('mysql_global_status_slave_running', {}, 0.0, 'untyped'),
            ('mysql_global_status_uptime', {}, 18.0, 'untyped'),
        ]
        instance.assert_all_executed()

    def test_buffer_pool_pages(self, instance, run_scraper, as_tuples):
        instance.expect(GLOBAL_STATUS_QUERY, ('Variable_name', 'Value'), [
            ('Innodb_buffer_pool_pages_data', '100'),
            ('Innodb_buffer_pool_pages_dirty', '5'),
            ('Innodb_buffer_pool_pages_flushed', '7'),
            ('Innodb_buffer_pool_pages_total', '200'),
            ('Innodb_rows_read', '8'),
        ])
        assert as_tuples(run_scraper(ScrapeGlobalStatus(), instance)) == [
            ('mysql_global_status_buffer_pool_pages', {'state': 'data'}, 100.0, 'gauge'),
            ('mysql_global_status_buffer_pool_dirty_pages', {}, 5.0, 'gauge'),
            ('mysql_global_status_buffer_pool_page_changes_total', {'operation': 'flushed'}, 7.0, 'counter'),
            ('mysql_global_status_innodb_row_ops_total', {'operation': 'read'}, 8.0, 'counter'),
        ]

    def test_galera(self, instance, run_scraper, as_tuples):
        instance.expect(GLOBAL_STATUS_QUERY, ('Variable_name', 'Value'), [
            ('wsrep_local_state_uuid', 'e2c9a15e-5485-11e0-0800-6bbb637e7211'),
            ('wsrep_cluster_state_uuid', 'e2c9a15e-5485-11e0-0800-6bbb637e7211'),
            ('wsrep_provider_version', '3.25(rac090bc)'),
            ('wsrep_evs_repl_latency', '0.000227664/0.00034135/0.000544298/6.03708e-05/212'),
        ])
        samples = as_tuples(run_scraper(ScrapeGlobalStatus(), instance))
        assert samples[0] == (
            'mysql_galera_status_info',
            {
                'wsrep_local_state_uuid': 'e2c9a15e-5485-11e0-0800-6bbb637e7211',
                'wsrep_cluster_state_uuid': 'e2c9a15e-5485-11e0-0800-6bbb637e7211',
                'wsrep_provider_version': '3.25(rac090bc)',
            },
            1.0, 'gauge',
        )
        assert [(name, value) for name, _, value, _ in samples[1:]] == [
            ('mysql_galera_evs_repl_latency_min_seconds', 0.000227664),
            ('mysql_galera_evs_repl_latency_avg_seconds', 0.00034135),
            ('mysql_galera_evs_repl_latency_max_seconds', 0.000544298),
            ('mysql_galera_evs_repl_latency_stdev', 6.03708e-05),
            ('mysql_galera_evs_repl_latency_sample_size', 212.0),
        ]

    def test_query_error_propagates(self, instance, run_scraper):
        instance.expect_error(GLOBAL_STATUS_QUERY, 1227, "Access denied")
        with pytest.raises(Exception):
            run_scraper(ScrapeGlobalStatus(), instance)

class TestGlobalVariables:

    def test_values_and_info(self, instance, run_scraper, as_tuples):
        instance.expect(GLOBAL_VARIABLES_QUERY, ('Variable_name', 'Value'), [
            ('max_connections', '151'),
            ('innodb_version', '8.0.30'),
            ('version', '8.0.30'),
            ('version_comment', 'MySQL Community Server - GPL'),
            ('wsrep_cluster_name', 'galera-cluster'),
            ('wsrep_provider_options', 'base_dir = /var/lib/mysql/; gcache.size = 128M; gcache.page_size = 128M;'),
            ('sql_mode', 'STRICT_TRANS_TABLES'),
        ])
        samples = as_tuples(run_scraper(ScrapeGlobalVariables(), instance))
        assert samples == [
            ('mysql_global_variables_max_connections', {}, 151.0, 'gauge'),
            ('mysql_version_info', {
                'innodb_version': '8.0.30',
                'version': '8.0.30',
                'version_comment': 'MySQL Community Server - GPL',
            }, 1.0, 'gauge'),
            ('mysql_galera_variables_info', {'wsrep_cluster_name': 'galera-cluster'}, 1.0, 'gauge'),
            ('mysql_galera_gcache_size_bytes', {}, 128.0 * 1024 * 1024, 'gauge'),
        ]

    def test_known_and_generic_help(self, instance, run_scraper):
        instance.expect(GLOBAL_VARIABLES_QUERY, ('Variable_name', 'Value'), [
            ('max_connections', '151'),
            ('wait_timeout', '28800'),
        ])
        samples = run_scraper(ScrapeGlobalVariables(), instance)
        assert samples[0].descriptor.help.startswith("The maximum permitted number")
        assert samples[1].descriptor.help == "Generic gauge metric from SHOW GLOBAL VARIABLES."

    @pytest.mark.parametrize("options, expected", [
        ('gcache.size = 1024;', 1024.0),
        ('gcache.size = 2G; gcache.page_size = 128M;', 2.0 * 1024 ** 3),
        ('base_dir = /var/lib/mysql/;', 0.0),
    ])
    def test_parse_gcache_size(self, options, expected):
        assert parse_gcache_size(options) == expected

class TestSlaveStatus:

    COLUMNS = ('Master_Host', 'Read_Master_Log_Pos', 'Slave_IO_Running', 'Slave_SQL_Running', 'Seconds_Behind_Master')

    def test_falls_back_to_supported_statement(self, run_scraper, as_tuples):
        instance = FakeInstance('10.6.12-MariaDB')
        for query in slave_status_candidates(Flavor.MARIADB)[:3]:
            instance.expect_error(query, ER_PARSE_ERROR, "You have an error in your SQL syntax")
        instance.expect('SHOW SLAVE STATUS', self.COLUMNS, [
            ('127.0.0.1', '1', 'Connecting', 'Yes', '2'),
        ])
        labels = {'master_host': '127.0.0.1', 'master_uuid': '', 'channel_name': '', 'connection_name': ''}
        assert as_tuples(run_scraper(ScrapeSlaveStatus(), instance)) == [
            ('mysql_slave_status_read_master_log_pos', labels, 1.0, 'untyped'),
            ('mysql_slave_status_slave_io_running', labels, 0.0, 'untyped'),
            ('mysql_slave_status_slave_sql_running', labels, 1.0, 'untyped'),
            ('mysql_slave_status_seconds_behind_master', labels, 2.0, 'untyped'),
        ]
        instance.assert_all_executed()

    def test_mysql_tries_lock_free_variant(self, instance, run_scraper):
        instance.expect_error('SHOW SLAVE STATUS', 1205, "Lock wait timeout exceeded")
        instance.expect('SHOW SLAVE STATUS NONBLOCKING', self.COLUMNS, [])
        assert run_scraper(ScrapeSlaveStatus(), instance) == []
        instance.assert_all_executed()

    def test_candidate_order(self):
        assert slave_status_candidates(Flavor.MARIADB) == [
            'SHOW ALL SLAVES STATUS',
            'SHOW ALL SLAVES STATUS NONBLOCKING',
            'SHOW ALL SLAVES STATUS NOLOCK',
            'SHOW SLAVE STATUS',
            'SHOW SLAVE STATUS NONBLOCKING',
            'SHOW SLAVE STATUS NOLOCK',
        ]
        assert slave_status_candidates(Flavor.MYSQL) == [
            'SHOW SLAVE STATUS',
            'SHOW SLAVE STATUS NONBLOCKING',
            'SHOW SLAVE STATUS NOLOCK',
        ]

    def test_not_a_replica(self, instance, run_scraper):
        instance.expect('SHOW SLAVE STATUS', self.COLUMNS, [])
        assert run_scraper(ScrapeSlaveStatus(), instance) == []

    def test_every_statement_fails(self, instance, run_scraper):
        for query in slave_status_candidates(instance.flavor):
            instance.expect_error(query, 1227, "Access denied")
        with pytest.raises(Exception, match="Access denied"):
            run_scraper(ScrapeSlaveStatus(), instance)

class TestBinlogSize:

    def test_sizes(self, instance, run_scraper, as_tuples):
        instance.expect(LOGBIN_QUERY, ('@@log_bin',), [(1,)])
        instance.expect(BINLOG_QUERY, ('Log_name', 'File_size', 'Encrypted'), [
            ('centos6-bin.000001', 1813, 'No'),
            ('centos6-bin.000002', 120, 'No'),
            ('centos6-bin.000444', 573009, 'No'),
        ])
        assert as_tuples(run_scraper(ScrapeBinlogSize(), instance)) == [
            ('mysql_binlog_size_bytes', {}, 574942.0, 'gauge'),
            ('mysql_binlog_files', {}, 3.0, 'gauge'),
            ('mysql_binlog_file_number', {}, 444.0, 'gauge'),
        ]

    def test_binary_logging_off(self, instance, run_scraper):
        instance.expect(LOGBIN_QUERY, ('@@log_bin',), [(0,)])
        assert run_scraper(ScrapeBinlogSize(), instance) == []
        instance.assert_all_executed()

    def test_unexpected_columns(self, instance, run_scraper):
        instance.expect(LOGBIN_QUERY, ('@@log_bin',), [(1,)])
        instance.expect(BINLOG_QUERY, ('Log_name',), [('bin.000001',)])
        with pytest.raises(ScrapeError, match="Invalid number of columns"):
            run_scraper(ScrapeBinlogSize(), instance)

class TestProcesslist:

    COLUMNS = ('user', 'host', 'command', 'state', 'processes', 'seconds')
    ROWS = [
        ('manager', '10.0.7.234', 'Sleep', '', 10, 87),
        ('foobar', '10.0.7.154', 'Sleep', '', 8, 842),
        ('root', '10.0.7.253', 'Sleep', '', 1, 20),
        ('feedback', '10.0.7.179', 'Sleep', '', 2, 14),
        ('system user', '', 'Connect', 'waiting for handler commit', 1, 7271248),
        ('message', '10.0.7.234', 'Sleep', '', 4, 62),
        ('system user', '', 'Query', 'Slave has read all relay log; waiting for more updates', 1, 7271248),
        ('event_scheduler', 'localhost', 'Daemon', 'Waiting on empty queue', 1, 7271248),
    ]

    def test_aggregation(self, instance, run_scraper, as_tuples):
        instance.expect(PROCESSLIST_QUERY % 0, self.COLUMNS, self.ROWS)
        samples = as_tuples(run_scraper(ScrapeProcesslist(), instance))

        threads = 'mysql_info_schema_processlist_threads'
        seconds = 'mysql_info_schema_processlist_seconds'
        relay = 'slave_has_read_all_relay_log_waiting_for_more_updates'
        assert samples[:8] == [
            (threads, {'command': 'connect', 'state': 'waiting_for_handler_commit'}, 1.0, 'gauge'),
            (seconds, {'command': 'connect', 'state': 'waiting_for_handler_commit'}, 7271248.0, 'gauge'),
            (threads, {'command': 'daemon', 'state': 'waiting_on_empty_queue'}, 1.0, 'gauge'),
            (seconds, {'command': 'daemon', 'state': 'waiting_on_empty_queue'}, 7271248.0, 'gauge'),
            (threads, {'command': 'query', 'state': relay}, 1.0, 'gauge'),
            (seconds, {'command': 'query', 'state': relay}, 7271248.0, 'gauge'),
            (threads, {'command': 'sleep', 'state': 'unknown'}, 25.0, 'gauge'),
            (seconds, {'command': 'sleep', 'state': 'unknown'}, 1025.0, 'gauge'),
        ]

        by_host = [(labels['client_host'], value) for _, labels, value, _ in samples[8:14]]
        assert by_host == [
            ('10.0.7.154', 8.0), ('10.0.7.179', 2.0), ('10.0.7.234', 14.0),
            ('10.0.7.253', 1.0), ('localhost', 1.0), ('unknown', 2.0),
        ]
        by_user = [(labels['mysql_user'], value) for _, labels, value, _ in samples[14:]]
        assert by_user == [
            ('event_scheduler', 1.0), ('feedback', 2.0), ('foobar', 8.0), ('manager', 10.0),
            ('message', 4.0), ('root', 1.0), ('system user', 2.0),
        ]
        assert len(samples) == 21
        assert {kind for _, _, _, kind in samples} == {'gauge'}

    def test_min_time_and_tallies_disabled(self, instance, run_scraper):
        scraper = ScrapeProcesslist()
        scraper.configure(
            Arg('min_time', 30), Arg('processes_by_user', False), Arg('processes_by_host', False)
        )
        instance.expect(PROCESSLIST_QUERY % 30, self.COLUMNS, self.ROWS)
        samples = run_scraper(scraper, instance)
        assert len(samples) == 8
        instance.assert_all_executed()

class TestInnodbCompression:

    def test_cmp(self, instance, run_scraper, as_tuples):
        instance.expect(
            INNODB_CMP_QUERY,
            ('page_size', 'compress_ops', 'compress_ops_ok', 'compress_time', 'uncompress_ops', 'uncompress_time'),
            [('1024', 10, 20, 30, 40, 50)],
        )
        labels = {'page_size': '1024'}
        assert as_tuples(run_scraper(ScrapeInnodbCmp(), instance)) == [
            ('mysql_info_schema_innodb_cmp_compress_ops_total', labels, 10.0, 'counter'),
            ('mysql_info_schema_innodb_cmp_compress_ops_ok_total', labels, 20.0, 'counter'),
            ('mysql_info_schema_innodb_cmp_compress_time_seconds_total', labels, 30.0, 'counter'),
            ('mysql_info_schema_innodb_cmp_uncompress_ops_total', labels, 40.0, 'counter'),
            ('mysql_info_schema_innodb_cmp_uncompress_time_seconds_total', labels, 50.0, 'counter'),
        ]

    def test_cmpmem(self, instance, run_scraper, as_tuples):
        instance.expect(
            INNODB_CMPMEM_QUERY,
            ('page_size', 'buffer_pool_instance', 'pages_used', 'pages_free', 'relocation_ops', 'relocation_time'),
            [('1024', '0', 30, 40, 50, 6000)],
        )
        labels = {'page_size': '1024', 'buffer_pool': '0'}
        assert as_tuples(run_scraper(ScrapeInnodbCmpMem(), instance)) == [
            ('mysql_info_schema_innodb_cmpmem_pages_used_total', labels, 30.0, 'counter'),
            ('mysql_info_schema_innodb_cmpmem_pages_free_total', labels, 40.0, 'counter'),
            ('mysql_info_schema_innodb_cmpmem_relocation_ops_total', labels, 50.0, 'counter'),
            ('mysql_info_schema_innodb_cmpmem_relocation_time_seconds_total', labels, 6.0, 'counter'),
        ]

class TestTableStats:

    def test_persistent_statistics(self, instance, run_scraper, as_tuples):
        instance.expect(
            TABLE_STATS_QUERY,
            ('database_name', 'table_name', 'n_rows', 'clustered_index_size', 'sum_of_other_index_sizes'),
            [('mysql', 'gtid_slave_pos', 0, 1, 0)],
        )
        labels = {'database_name': 'mysql', 'table_name': 'gtid_slave_pos'}
        assert as_tuples(run_scraper(ScrapeMysqlTableStats(), instance)) == [
            ('mysql_mysql_innodb_table_stats_n_rows', labels, 0.0, 'gauge'),
            ('mysql_mysql_innodb_table_stats_clustered_index_size', labels, 1.0, 'gauge'),
            ('mysql_mysql_innodb_table_stats_sum_of_other_index_sizes', labels, 0.0, 'gauge'),
        ]

class TestQueryResponseTime:

    def test_histograms(self, instance, run_scraper):
        instance.expect(QUERY_RESPONSE_CHECK_QUERY, ('@@query_response_time_stats',), [(1,)])
        instance.expect(QUERY_RESPONSE_TIME_QUERIES[0], ('TIME', 'COUNT', 'TOTAL'), [
            ('0.000001', 124, '0.000000'),
            ('0.000010', 179, '0.000797'),
            ('0.000100', 2859, '0.107321'),
            ('1000000.000000', 0, '0.000000'),
            ('TOO LONG', 0, 'TOO LONG'),
        ])
        instance.expect_error(QUERY_RESPONSE_TIME_QUERIES[1], ER_UNKNOWN_TABLE, "Unknown table")
        instance.expect_error(QUERY_RESPONSE_TIME_QUERIES[2], ER_UNKNOWN_TABLE, "Unknown table")

        samples = run_scraper(ScrapeQueryResponseTime(), instance)
        assert len(samples) == 1
        sample = samples[0]
        assert sample.name == 'mysql_info_schema_query_response_time_seconds'
        assert sample.count == 3162.0
        assert sample.value == pytest.approx(0.108118)
        assert sample.buckets == ((1e-06, 124.0), (1e-05, 303.0), (0.0001, 3162.0), (1e6, 3162.0))
        instance.assert_all_executed()

    def test_disabled(self, instance, run_scraper):
        instance.expect(QUERY_RESPONSE_CHECK_QUERY, ('@@query_response_time_stats',), [('OFF',)])
        assert run_scraper(ScrapeQueryResponseTime(), instance) == []

    def test_variable_missing(self, instance, run_scraper):
        instance.expect_error(QUERY_RESPONSE_CHECK_QUERY, 1193, "Unknown system variable")
        assert run_scraper(ScrapeQueryResponseTime(), instance) == []

    def test_main_table_error_propagates(self, instance, run_scraper):
        instance.expect(QUERY_RESPONSE_CHECK_QUERY, ('@@query_response_time_stats',), [(1,)])
        instance.expect_error(QUERY_RESPONSE_TIME_QUERIES[0], ER_UNKNOWN_TABLE, "Unknown table")
        with pytest.raises(Exception, match="Unknown table"):
            run_scraper(ScrapeQueryResponseTime(), instance)

class TestUserStat:

    def test_known_and_unknown_columns(self, instance, run_scraper, as_tuples):
        instance.expect(USERSTAT_CHECK_QUERY, ('Variable_name', 'Value'), [('userstat', 'ON')])
        instance.expect(
            USER_STAT_QUERY,
            ('USER', 'TOTAL_CONNECTIONS', 'CONCURRENT_CONNECTIONS', 'CUSTOM_COUNTER'),
            [('user_test', 1002, 0, 7)],
        )
        labels = {'user': 'user_test'}
        assert as_tuples(run_scraper(ScrapeUserStat(), instance)) == [
            ('mysql_info_schema_user_statistics_total_connections', labels, 1002.0, 'counter'),
            ('mysql_info_schema_user_statistics_concurrent_connections', labels, 0.0, 'gauge'),
            ('mysql_info_schema_user_statistics_custom_counter', labels, 7.0, 'untyped'),
        ]

    def test_userstat_off(self, instance, run_scraper):
        instance.expect(USERSTAT_CHECK_QUERY, ('Variable_name', 'Value'), [('userstat', 'OFF')])
        assert run_scraper(ScrapeUserStat(), instance) == []
        instance.assert_all_executed()

    def test_variable_absent(self, instance, run_scraper):
        instance.expect(USERSTAT_CHECK_QUERY, ('Variable_name', 'Value'), [])
        assert run_scraper(ScrapeUserStat(), instance) == []

class TestTableSchema:

    COLUMNS = (
        'TABLE_SCHEMA', 'TABLE_NAME', 'TABLE_TYPE', 'ENGINE', 'VERSION', 'ROW_FORMAT',
        'TABLE_ROWS', 'DATA_LENGTH', 'INDEX_LENGTH', 'DATA_FREE', 'CREATE_OPTIONS',
    )

    def test_all_databases(self, instance, run_scraper, as_tuples):
        instance.expect(DB_LIST_QUERY, ('SCHEMA_NAME',), [('app',)])
        table_query = instance.expect(TABLE_SCHEMA_QUERY, self.COLUMNS, [
            ('app', 'users', 'BASE TABLE', 'InnoDB', 10, 'Dynamic', 100, 16384, 32768, 4096, ''),
        ])
        samples = as_tuples(run_scraper(ScrapeTableSchema(), instance))
        assert table_query.args == [('app',)]
        assert samples == [
            ('mysql_info_schema_table_version', {
                'schema': 'app', 'table': 'users', 'type': 'BASE TABLE',
                'engine': 'InnoDB', 'row_format': 'Dynamic', 'create_options': '',
            }, 10.0, 'gauge'),
            ('mysql_info_schema_table_rows', {'schema': 'app', 'table': 'users'}, 100.0, 'gauge'),
            ('mysql_info_schema_table_size', {'schema': 'app', 'table': 'users', 'component': 'data_length'}, 16384.0, 'gauge'),
            ('mysql_info_schema_table_size', {'schema': 'app', 'table': 'users', 'component': 'index_length'}, 32768.0, 'gauge'),
            ('mysql_info_schema_table_size', {'schema': 'app', 'table': 'users', 'component': 'data_free'}, 4096.0, 'gauge'),
        ]

    def test_named_databases(self, instance, run_scraper):
        scraper = ScrapeTableSchema()
        scraper.configure(Arg('databases', 'app, billing'))
        first = instance.expect(TABLE_SCHEMA_QUERY, self.COLUMNS, [])
        second = instance.expect(TABLE_SCHEMA_QUERY, self.COLUMNS, [])
        assert run_scraper(scraper, instance) == []
        assert first.args == [('app',)]
        assert second.args == [('billing',)]

class TestEventsStatements:

    COLUMNS = (
        'SCHEMA_NAME', 'DIGEST', 'DIGEST_TEXT', 'COUNT_STAR', 'SUM_TIMER_WAIT', 'SUM_ERRORS',
        'SUM_WARNINGS', 'SUM_ROWS_AFFECTED', 'SUM_ROWS_SENT', 'SUM_ROWS_EXAMINED',
        'SUM_CREATED_TMP_DISK_TABLES', 'SUM_CREATED_TMP_TABLES', 'SUM_SORT_MERGE_PASSES',
        'SUM_SORT_ROWS', 'SUM_NO_INDEX_USED',
    )

    def test_query_uses_args(self):
        scraper = ScrapePerfEventsStatements()
        scraper.configure(Arg('limit', 500), Arg('digest_text_limit', 64))
        query = scraper.query()
        assert 'LEFT(DIGEST_TEXT, 64)' in query
        assert 'INTERVAL 86400 SECOND' in query
        assert query.rstrip().endswith('LIMIT 500')

    def test_digest_counters(self, instance, run_scraper, as_tuples):
        scraper = ScrapePerfEventsStatements()
        instance.expect(scraper.query(), self.COLUMNS, [
            ('app', 'abc123', 'SELECT * FROM `users`', 12, 2500000000000, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10),
        ])
        samples = as_tuples(run_scraper(scraper, instance))
        labels = {'schema': 'app', 'digest': 'abc123', 'digest_text': 'SELECT * FROM `users`'}
        assert samples[0] == ('mysql_perf_schema_events_statements_total', labels, 12.0, 'counter')
        assert samples[1] == ('mysql_perf_schema_events_statements_seconds_total', labels, 2.5, 'counter')
        assert samples[-1] == ('mysql_perf_schema_events_statements_no_index_used_total', labels, 10.0, 'counter')
        assert len(samples) == 12

class TestReplicationGroupMembers:

    def test_members(self, instance, run_scraper, as_tuples):
        instance.expect(
            REPLICATION_GROUP_MEMBERS_QUERY,
            ('CHANNEL_NAME', 'MEMBER_ID', 'MEMBER_HOST', 'MEMBER_PORT', 'MEMBER_STATE', 'MEMBER_ROLE', 'MEMBER_VERSION'),
            [('group_replication_applier', 'uuid-1', 'db1', 3306, 'ONLINE', 'PRIMARY', '8.0.30')],
        )
        assert as_tuples(run_scraper(ScrapePerfReplicationGroupMembers(), instance)) == [
            ('mysql_perf_schema_replication_group_member', {
                'channel_name': 'group_replication_applier', 'member_id': 'uuid-1',
                'member_host': 'db1', 'member_port': '3306', 'member_state': 'ONLINE',
                'member_role': 'PRIMARY', 'member_version': '8.0.30',
            }, 1.0, 'gauge'),
        ]

    def test_falls_back_without_role_and_version(self, instance, run_scraper, as_tuples):
        instance.expect_error(REPLICATION_GROUP_MEMBERS_QUERY, ER_BAD_FIELD, "Unknown column 'MEMBER_ROLE'")
        instance.expect(
            REPLICATION_GROUP_MEMBERS_QUERY_57,
            ('CHANNEL_NAME', 'MEMBER_ID', 'MEMBER_HOST', 'MEMBER_PORT', 'MEMBER_STATE'),
            [('group_replication_applier', 'uuid-1', 'db1', 3306, 'ONLINE')],
        )
        (sample,) = as_tuples(run_scraper(ScrapePerfReplicationGroupMembers(), instance))
        assert sample[1]['member_role'] == ''
        assert sample[1]['member_version'] == ''
        assert sample[1]['member_state'] == 'ONLINE'

    def test_older_servers_skip_role_and_version(self, run_scraper, as_tuples):
        instance = FakeInstance('5.7.38-log')
        instance.expect(
            REPLICATION_GROUP_MEMBERS_QUERY_57,
            ('CHANNEL_NAME', 'MEMBER_ID', 'MEMBER_HOST', 'MEMBER_PORT', 'MEMBER_STATE'),
            [('group_replication_applier', 'uuid-1', 'db1', 3306, 'RECOVERING')],
        )
        (sample,) = as_tuples(run_scraper(ScrapePerfReplicationGroupMembers(), instance))
        assert sample[1]['member_state'] == 'RECOVERING'
        assert sample[1]['member_role'] == ''
        instance.assert_all_executed()

    def test_other_errors_propagate(self, instance, run_scraper):
        instance.expect_error(REPLICATION_GROUP_MEMBERS_QUERY, ER_NO_SUCH_TABLE, "Table doesn't exist")
        with pytest.raises(Exception, match="doesn't exist"):
            run_scraper(ScrapePerfReplicationGroupMembers(), instance)

class TestHeartbeat:

    def test_timestamps(self, instance, run_scraper, as_tuples):
        instance.expect(
            "SELECT UNIX_TIMESTAMP(ts), UNIX_TIMESTAMP(NOW(6)), server_id from `heartbeat`.`heartbeat`",
            ('UNIX_TIMESTAMP(ts)', 'UNIX_TIMESTAMP(NOW(6))', 'server_id'),
            [('1487597613.001320', '1487598113.448042', 1)],
        )
        assert as_tuples(run_scraper(ScrapeHeartbeat(), instance)) == [
            ('mysql_heartbeat_now_timestamp_seconds', {'server_id': '1'}, 1487598113.448042, 'gauge'),
            ('mysql_heartbeat_stored_timestamp_seconds', {'server_id': '1'}, 1487597613.00132, 'gauge'),
        ]

    def test_utc_and_quoting(self):
        scraper = ScrapeHeartbeat()
        scraper.configure(Arg('database', 'pt`hb'), Arg('table', 'beats'), Arg('utc', True))
        assert scraper.query() == (
            "SELECT UNIX_TIMESTAMP(ts), UNIX_TIMESTAMP(UTC_TIMESTAMP(6)), server_id from `pt``hb`.`beats`"
        )

    def test_invalid_timestamp(self, instance, run_scraper):
        scraper = ScrapeHeartbeat()
        instance.expect(scraper.query(), ('ts', 'now', 'server_id'), [(None, '1487598113.448042', 1)])
        with pytest.raises(ScrapeError):
            run_scraper(scraper, instance)

class TestStandard:

    def test_runtime_metrics(self, instance, run_scraper):
        samples = run_scraper(StandardPython(), instance)
        by_name = {sample.name: sample for sample in samples}
        assert by_name['python_info'].descriptor.kind.value == 'gauge'
        assert 'implementation' in by_name['python_info'].labels
        assert instance.executed == []

class TestCancellation:

    def test_cancelled_context_stops_scrape(self, instance, run_scraper):
        ctx = ScrapeContext()
        ctx.cancel("deadline exceeded")
        with pytest.raises(ScrapeCancelledError):
            run_scraper(ScrapeGlobalStatus(), instance, ctx)

class TestEngineInnodbStatus:

    STATUS = (
        "=====================================\n"
        "2024-01-09 10:13:48 INNODB MONITOR OUTPUT\n"
        "--------------\n"
        "ROW OPERATIONS\n"
        "--------------\n"
        "2 queries inside InnoDB, 5 queries in queue\n"
        "3 read views open inside InnoDB\n"
        "Process ID=1, Main thread ID=140, state: sleeping\n"
    )

    def test_queue_and_read_views(self, instance, run_scraper, as_tuples):
        instance.expect(ENGINE_INNODB_STATUS_QUERY, ('Type', 'Name', 'Status'), [
            ('InnoDB', '', self.STATUS),
        ])
        assert as_tuples(run_scraper(ScrapeEngineInnodbStatus(), instance)) == [
            ('mysql_engine_innodb_queries_inside_innodb', {}, 2.0, 'gauge'),
            ('mysql_engine_innodb_queries_in_queue', {}, 5.0, 'gauge'),
            ('mysql_engine_innodb_read_views_open_inside_innodb', {}, 3.0, 'gauge'),
        ]

    def test_empty_result(self, instance, run_scraper):
        instance.expect(ENGINE_INNODB_STATUS_QUERY, ('Type', 'Name', 'Status'), [])
        assert run_scraper(ScrapeEngineInnodbStatus(), instance) == []

class TestInnodbMetrics:

    COLUMNS = ('name', 'subsystem', 'type', 'comment', 'count')

    def test_buffer_folding_and_generic_names(self, instance, run_scraper, as_tuples):
        instance.expect(INNODB_METRICS_QUERY, self.COLUMNS, [
            ('lock_timeouts', 'lock', 'counter', 'Number of lock timeouts', 4),
            ('buffer_pool_pages_total', 'buffer', 'value', 'Total buffer pool size in pages', 8191),
            ('buffer_pool_pages_dirty', 'buffer', 'value', 'Buffer pages currently dirty', 12),
            ('buffer_pool_pages_free', 'buffer', 'value', 'Buffer pages currently free', 7200),
            ('buffer_page_read_index_leaf', 'buffer_page_io', 'counter', 'Index leaf pages read', 31),
            ('buffer_page_written_undo_log', 'buffer_page_io', 'counter', 'Undo log pages written', 3),
            ('buffer_page_bogus', 'buffer_page_io', 'counter', 'Not a page counter', 1),
            ('trx_rseg_history_len', 'transaction', 'value', 'Length of the TRX_RSEG_HISTORY list', 30),
            ('os_log_pending_writes', 'os', 'counter', 'Number of pending log file writes', -1),
        ])
        samples = as_tuples(run_scraper(ScrapeInnodbMetrics(), instance))
        assert samples == [
            ('mysql_info_schema_innodb_metrics_lock_lock_timeouts_total', {}, 4.0, 'counter'),
            ('mysql_info_schema_innodb_metrics_buffer_pool_dirty_pages', {}, 12.0, 'gauge'),
            ('mysql_info_schema_innodb_metrics_buffer_pool_pages', {'state': 'free'}, 7200.0, 'gauge'),
            ('mysql_info_schema_innodb_metrics_buffer_page_read_total', {'type': 'index_leaf'}, 31.0, 'counter'),
            ('mysql_info_schema_innodb_metrics_buffer_page_written_total', {'type': 'undo_log'}, 3.0, 'counter'),
            ('mysql_info_schema_innodb_metrics_transaction_trx_rseg_history_len', {}, 30.0, 'gauge'),
            ('mysql_info_schema_innodb_metrics_os_os_log_pending_writes', {}, -1.0, 'gauge'),
        ]

class TestTableIOWaits:

    def test_counts_and_seconds(self, instance, run_scraper, as_tuples):
        instance.expect(TABLE_IO_WAITS_QUERY, (), [
            ('app', 'users', 10, 2, 3, 1, 2000000000000, 1000000000000, 0, 500000000000),
        ])
        labels = {'schema': 'app', 'name': 'users'}
        assert as_tuples(run_scraper(ScrapePerfTableIOWaits(), instance)) == [
            ('mysql_perf_schema_table_io_waits_total', {**labels, 'operation': 'fetch'}, 10.0, 'counter'),
            ('mysql_perf_schema_table_io_waits_seconds_total', {**labels, 'operation': 'fetch'}, 2.0, 'counter'),
            ('mysql_perf_schema_table_io_waits_total', {**labels, 'operation': 'insert'}, 2.0, 'counter'),
            ('mysql_perf_schema_table_io_waits_seconds_total', {**labels, 'operation': 'insert'}, 1.0, 'counter'),
            ('mysql_perf_schema_table_io_waits_total', {**labels, 'operation': 'update'}, 3.0, 'counter'),
            ('mysql_perf_schema_table_io_waits_seconds_total', {**labels, 'operation': 'update'}, 0.0, 'counter'),
            ('mysql_perf_schema_table_io_waits_total', {**labels, 'operation': 'delete'}, 1.0, 'counter'),
            ('mysql_perf_schema_table_io_waits_seconds_total', {**labels, 'operation': 'delete'}, 0.5, 'counter'),
        ]

class TestIndexIOWaits:

    def test_inserts_only_without_index(self, instance, run_scraper, as_tuples):
        instance.expect(INDEX_IO_WAITS_QUERY, (), [
            ('app', 'users', 'PRIMARY', 10, 0, 3, 1, 0, 0, 0, 0),
            ('app', 'users', 'NONE', 0, 4, 0, 0, 0, 4000000000000, 0, 0),
        ])
        samples = as_tuples(run_scraper(ScrapePerfIndexIOWaits(), instance))
        counts = {
            (labels['index'], labels['operation']): value
            for name, labels, value, _ in samples
            if name == 'mysql_perf_schema_index_io_waits_total'
        }
        assert ('PRIMARY', 'insert') not in counts
        assert counts[('PRIMARY', 'fetch')] == 10.0
        assert counts[('NONE', 'insert')] == 4.0
        assert len(counts) == 7
        assert (
            'mysql_perf_schema_index_io_waits_seconds_total',
            {'schema': 'app', 'name': 'users', 'index': 'NONE', 'operation': 'insert'},
            4.0, 'counter',
        ) in samples

class TestSlaveHosts:

    def test_both_layouts(self, instance, run_scraper, as_tuples):
        instance.expect('SHOW SLAVE HOSTS', (), [
            (192168010, '192.168.1.100', 3306, 192168012, '7f1f5d38-7f54-11e7-9be8-0242ac110002'),
            (192168011, 'replica2', 3306, 0, 192168012),
        ])
        assert SLAVE_HOSTS_QUERY == 'SHOW SLAVE HOSTS'
        assert as_tuples(run_scraper(ScrapeSlaveHosts(), instance)) == [
            ('mysql_heartbeat_mysql_slave_hosts_info', {
                'server_id': '192168010', 'slave_host': '192.168.1.100', 'port': '3306',
                'master_id': '192168012', 'slave_uuid': '7f1f5d38-7f54-11e7-9be8-0242ac110002',
            }, 1.0, 'gauge'),
            ('mysql_heartbeat_mysql_slave_hosts_info', {
                'server_id': '192168011', 'slave_host': 'replica2', 'port': '3306',
                'master_id': '192168012', 'slave_uuid': '',
            }, 1.0, 'gauge'),
        ]

class TestAutoIncrement:

    def test_current_and_max(self, instance, run_scraper, as_tuples):
        instance.expect(AUTO_INCREMENT_QUERY, (), [
            ('app', 'users', 'id', 42, 2147483647.0),
            ('app', 'events', 'id', 7, None),
        ])
        labels = {'schema': 'app', 'table': 'users', 'column': 'id'}
        assert as_tuples(run_scraper(ScrapeAutoIncrementColumns(), instance)) == [
            ('mysql_info_schema_auto_increment_column', labels, 42.0, 'gauge'),
            ('mysql_info_schema_auto_increment_column_max', labels, 2147483647.0, 'gauge'),
            ('mysql_info_schema_auto_increment_column', {**labels, 'table': 'events'}, 7.0, 'gauge'),
        ]

class TestMysqlUser:

    COLUMNS = ('user', 'host') + PRIVILEGE_COLUMNS + LIMIT_COLUMNS

    def row(self):
        privileges = tuple('N' if column == 'Super_priv' else 'Y' for column in PRIVILEGE_COLUMNS)
        return ('exporter', '%') + privileges + (0, 0, 0, 10)

    def test_limits_by_default(self, instance, run_scraper, as_tuples):
        instance.expect(MYSQL_USER_QUERY, self.COLUMNS, [self.row()])
        labels = {'mysql_user': 'exporter', 'hostmask': '%'}
        assert as_tuples(run_scraper(ScrapeUser(), instance)) == [
            ('mysql_mysql_max_questions', labels, 0.0, 'gauge'),
            ('mysql_mysql_max_updates', labels, 0.0, 'gauge'),
            ('mysql_mysql_max_connections', labels, 0.0, 'gauge'),
            ('mysql_mysql_max_user_connections', labels, 10.0, 'gauge'),
        ]

    def test_privileges(self, instance, run_scraper, as_tuples):
        scraper = ScrapeUser()
        scraper.configure(Arg('privileges', True))
        instance.expect(MYSQL_USER_QUERY, self.COLUMNS, [self.row()])
        values = {name: value for name, _, value, _ in as_tuples(run_scraper(scraper, instance))}
        assert values['mysql_mysql_select_priv'] == 1.0
        assert values['mysql_mysql_super_priv'] == 0.0
        assert values['mysql_mysql_max_user_connections'] == 10.0
        assert len(values) == len(PRIVILEGE_COLUMNS) + len(LIMIT_COLUMNS)
