#!/usr/bin/env python3
"""
Unit tests for logging configuration and the audit trail.
"""

import json
import logging
import logging.handlers

import pytest

from authshared.exceptions import ErrorCode, NetworkError
from authshared.logging_config import (
    AuditEventType, AuditLogger, DetailedFormatter, LogFormat, LogLevel,
    StructuredFormatter, log_structured_error, redact, setup_logging
)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo handlers and levels installed by setup_logging()."""
    root_logger = logging.getLogger()
    audit_logger = logging.getLogger('audit')
    saved_level = root_logger.level
    saved_propagate = audit_logger.propagate
    saved_disabled = audit_logger.disabled

    yield

    installed_types = (logging.StreamHandler, logging.handlers.RotatingFileHandler)
    for logger in (root_logger, audit_logger):
        for handler in logger.handlers[:]:
            if type(handler) in installed_types:
                logger.removeHandler(handler)
                handler.close()

    root_logger.setLevel(saved_level)
    audit_logger.propagate = saved_propagate
    audit_logger.disabled = saved_disabled


def make_record(message="hello", **extra):
    record = logging.LogRecord('authclient.test', logging.ERROR, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_structured_formatter_outputs_json(self):
        record = make_record(request_id='abc')

        entry = json.loads(StructuredFormatter().format(record))

        assert entry['level'] == 'ERROR'
        assert entry['logger'] == 'authclient.test'
        assert entry['message'] == 'hello'
        assert entry['extra'] == {'request_id': 'abc'}

    def test_structured_formatter_includes_error(self):
        error = NetworkError("Connection refused", ErrorCode.NETWORK_CONNECTION_FAILED)
        record = make_record(error_info=error)

        entry = json.loads(StructuredFormatter().format(record))

        assert entry['error']['code'] == ErrorCode.NETWORK_CONNECTION_FAILED.value
        assert entry['error']['recovery_actions'] == ['retry', 'reconnect']

    def test_detailed_formatter_appends_error(self):
        error = NetworkError("Timed out", ErrorCode.NETWORK_TIMEOUT, context={'url': 'http://x'})
        output = DetailedFormatter().format(make_record(error_info=error))

        assert 'code=NET-202 severity=medium' in output
        assert 'recovery=retry,reconnect' in output

    def test_secrets_are_masked(self):
        record = make_record(payload={'access': 'a.b.c', 'refresh': 'd.e.f', 'username': 'alice'})

        entry = json.loads(StructuredFormatter().format(record))

        assert entry['extra']['payload'] == {'access': '***', 'refresh': '***', 'username': 'alice'}

    def test_redact_nested(self):
        data = {'outer': [{'Password': 'pw', 'email': 'a@x.com'}], 'accessToken': ''}

        assert redact(data) == {'outer': [{'Password': '***', 'email': 'a@x.com'}], 'accessToken': ''}


class TestAuditLogger:

    def test_authentication_event(self, caplog):
        audit = AuditLogger('audit.test')

        with caplog.at_level(logging.INFO, logger='audit.test'):
            audit.log_authentication('alice', success=False, failure_reason='rejected')

        record = caplog.records[-1]
        assert record.audit_info['event_type'] == AuditEventType.AUTHENTICATION.value
        assert record.audit_info['username'] == 'alice'
        assert record.audit_info['result'] == 'failure'
        assert record.audit_info['context'] == {'failure_reason': 'rejected'}

    def test_logout_event_has_no_username(self, caplog):
        audit = AuditLogger('audit.test')

        with caplog.at_level(logging.INFO, logger='audit.test'):
            audit.log_logout(was_authenticated=True)

        record = caplog.records[-1]
        assert 'username' not in record.audit_info
        assert record.audit_info['context'] == {'was_authenticated': True}

    def test_session_restore_event(self, caplog):
        audit = AuditLogger('audit.test')

        with caplog.at_level(logging.INFO, logger='audit.test'):
            audit.log_session_restore(False)

        assert caplog.records[-1].audit_info['result'] == 'unauthenticated'


class TestSetupLogging:

    def test_console_and_file_handlers(self, tmp_path):
        log_file = tmp_path / 'logs' / 'client.log'

        loggers = setup_logging(LogLevel.DEBUG, LogFormat.DETAILED, log_file=str(log_file))

        root_logger = loggers['root']
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 2
        assert all(isinstance(h.formatter, DetailedFormatter) for h in root_logger.handlers)

        logging.getLogger('authclient.test').info("written to file")
        for handler in root_logger.handlers:
            handler.flush()
        assert 'written to file' in log_file.read_text()

    def test_audit_file_receives_json(self, tmp_path):
        audit_file = tmp_path / 'audit.log'

        setup_logging(LogLevel.WARNING, enable_console=False, audit_file=str(audit_file))
        AuditLogger().log_registration('bob')
        for handler in logging.getLogger('audit').handlers:
            handler.flush()

        entry = json.loads(audit_file.read_text().splitlines()[-1])
        assert entry['audit']['event_type'] == 'registration'
        assert entry['audit']['username'] == 'bob'

    def test_audit_disabled(self):
        loggers = setup_logging(enable_console=False, enable_audit=False)

        assert 'audit' not in loggers
        assert logging.getLogger('audit').disabled is True

    def test_log_structured_error(self, caplog):
        logger = logging.getLogger('authclient.test')
        error = NetworkError("Connection refused", ErrorCode.NETWORK_CONNECTION_FAILED)

        with caplog.at_level(logging.WARNING, logger='authclient.test'):
            log_structured_error(logger, error, level=logging.WARNING)

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.error_info is error
