"""Tests for log formatting and logger setup."""

import json
import logging

import pytest

from mysqld_exporter.logger import JsonFormatter, LogfmtFormatter, LogSettings, ProgramLogger, collector_logger

def make_record(msg, level=logging.INFO):
    return logging.LogRecord('mysqld_exporter', level, __file__, 42, msg, None, None)

class TestFormatters:

    def test_logfmt_quotes_values(self):
        line = LogfmtFormatter().format(make_record('Listening on http://0.0.0.0:9104'))
        assert 'level=info' in line
        assert 'logger=mysqld_exporter' in line
        assert 'msg="Listening on http://0.0.0.0:9104"' in line

    def test_logfmt_escapes(self):
        line = LogfmtFormatter().format(make_record('bad "value"'))
        assert 'msg="bad \\"value\\""' in line

    def test_json(self):
        payload = json.loads(JsonFormatter().format(make_record('hello', logging.WARNING)))
        assert payload['level'] == 'warning'
        assert payload['msg'] == 'hello'
        assert payload['ts'].endswith('Z')

class TestProgramLogger:

    def test_level_and_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv('INVOCATION_ID', raising=False)
        log_file = tmp_path / 'exporter.log'
        program_logger = ProgramLogger(
            LogSettings(level='debug', format='json', file=str(log_file)),
            name='mysqld_exporter_logger_test',
        )
        try:
            assert program_logger.level == 'DEBUG'
            assert set(program_logger.handlers) == {'console', 'file'}
            collector_logger(program_logger.logger, 'global_status').info("scraped")
        finally:
            program_logger.close()
        assert 'scraped' in log_file.read_text()

    def test_verbose_level(self, monkeypatch):
        monkeypatch.delenv('INVOCATION_ID', raising=False)
        program_logger = ProgramLogger(LogSettings(level='verbose'), name='mysqld_exporter_verbose_test')
        try:
            calls = []
            program_logger.logger.verbose(lambda: calls.append(1) or "expensive")
            program_logger.set_level('info')
            program_logger.logger.verbose(lambda: calls.append(2) or "skipped")
            assert calls == [1]
        finally:
            program_logger.close()

    @pytest.mark.parametrize("settings", [LogSettings(level='trace'), LogSettings(format='xml')])
    def test_rejects_unknown_settings(self, settings):
        with pytest.raises(ValueError):
            ProgramLogger(settings, name='mysqld_exporter_invalid_test')
