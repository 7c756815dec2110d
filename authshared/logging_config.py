"""
Logging setup for the Auth Session Client.

Console and rotating-file output in one of three formats, plus a separate
``audit`` logger recording session events (login, registration, logout,
session restore). Secret-looking fields are masked before anything is
written.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional
from enum import Enum

from authshared.exceptions import AuthSessionError


class LogLevel(Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(Enum):
    """Log format enumeration."""
    STANDARD = "standard"
    JSON = "json"
    DETAILED = "detailed"


class AuditEventType(Enum):
    """Session events written to the audit log."""
    AUTHENTICATION = "authentication"
    REGISTRATION = "registration"
    LOGOUT = "logout"
    SESSION_RESTORE = "session_restore"


AUDIT_LOGGER_NAME = "audit"

REDACTED = "***"
SENSITIVE_KEYS = frozenset([
    'password', 'access', 'refresh', 'token', 'access_token', 'refresh_token',
    'accesstoken', 'refreshtoken', 'authorization'
])

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord('', 0, '', 0, '', None, None).__dict__
) | {'message', 'asctime', 'error_info', 'audit_info', 'taskName'}


def redact(value: Any) -> Any:
    """Return a copy of ``value`` with secret-looking dict entries masked."""
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS and item else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, include_extra_fields: bool = True):
        super().__init__()
        self.include_extra_fields = include_extra_fields

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}.{record.funcName}:{record.lineno}",
            'pid': os.getpid()
        }

        if record.exc_info and record.exc_info[0]:
            entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        error = getattr(record, 'error_info', None)
        if isinstance(error, AuthSessionError):
            error_data = error.to_dict()
            error_data['context'] = redact(error_data['context'])
            entry['error'] = error_data

        audit_info = getattr(record, 'audit_info', None)
        if audit_info is not None:
            entry['audit'] = redact(audit_info)

        if self.include_extra_fields:
            extra = {
                key: value for key, value in record.__dict__.items()
                if key not in _RECORD_ATTRIBUTES
            }
            if extra:
                entry['extra'] = redact(extra)

        return json.dumps(entry, default=str, ensure_ascii=False)


class DetailedFormatter(logging.Formatter):
    """Column-aligned text with error and audit details on indented lines."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)-28s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        lines = [super().format(record)]

        error = getattr(record, 'error_info', None)
        if isinstance(error, AuthSessionError):
            lines.append(f"    code={error.error_code.value} severity={error.severity.value}")
            if error.recovery_actions:
                lines.append("    recovery=" + ",".join(a.value for a in error.recovery_actions))
            if error.context:
                lines.append(f"    context={json.dumps(redact(error.context), default=str, sort_keys=True)}")

        audit_info = getattr(record, 'audit_info', None)
        if audit_info is not None:
            lines.append(f"    audit={json.dumps(redact(audit_info), default=str, sort_keys=True)}")

        return "\n".join(lines)


class AuditLogger:
    """
    Writes session events to the ``audit`` logger.

    Each record carries an ``audit_info`` dict with the event type, the
    account involved and the outcome. Credentials never appear in it.
    """

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self.logger = logging.getLogger(logger_name)

    def log_event(
        self,
        event_type: AuditEventType,
        message: str,
        username: Optional[str] = None,
        result: Optional[str] = None,
        additional_context: Optional[Dict[str, Any]] = None
    ):
        """
        Write one audit record.

        Args:
            event_type: Kind of session event
            message: Text for human readers
            username: Account involved, if any
            result: Outcome such as success or failure
            additional_context: Extra fields, secrets are masked
        """
        audit_info: Dict[str, Any] = {
            'event_type': event_type.value,
            'timestamp': datetime.now().isoformat()
        }
        if username is not None:
            audit_info['username'] = username
        if result is not None:
            audit_info['result'] = result
        audit_info['context'] = redact(additional_context or {})

        self.logger.info(message, extra={'audit_info': audit_info})

    def _log_outcome(self, event_type: AuditEventType, action: str, username: str,
                     success: bool, failure_reason: Optional[str]):
        outcome = "succeeded" if success else "failed"
        self.log_event(
            event_type=event_type,
            message=f"{action} {outcome} for user: {username}",
            username=username,
            result="success" if success else "failure",
            additional_context={'failure_reason': failure_reason} if failure_reason else None
        )

    def log_authentication(self, username: str, success: bool = True, failure_reason: Optional[str] = None):
        """Record a login attempt."""
        self._log_outcome(AuditEventType.AUTHENTICATION, "Login", username, success, failure_reason)

    def log_registration(self, username: str, success: bool = True, failure_reason: Optional[str] = None):
        """Record an account registration attempt."""
        self._log_outcome(AuditEventType.REGISTRATION, "Registration", username, success, failure_reason)

    def log_logout(self, was_authenticated: bool):
        self.log_event(
            event_type=AuditEventType.LOGOUT,
            message="Session logged out",
            result="success",
            additional_context={'was_authenticated': was_authenticated}
        )

    def log_session_restore(self, restored: bool):
        self.log_event(
            event_type=AuditEventType.SESSION_RESTORE,
            message="Session restored from storage" if restored else "No session to restore",
            result="authenticated" if restored else "unauthenticated"
        )


def _build_formatter(log_format: LogFormat) -> logging.Formatter:
    if log_format == LogFormat.JSON:
        return StructuredFormatter()
    if log_format == LogFormat.DETAILED:
        return DetailedFormatter()
    return logging.Formatter(
        fmt='%(asctime)s %(levelname)s [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def _rotating_file_handler(path: str, formatter: logging.Formatter,
                           max_file_size: int, backup_count: int) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: LogLevel = LogLevel.INFO,
    log_format: LogFormat = LogFormat.STANDARD,
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    enable_console: bool = True,
    enable_audit: bool = True,
    audit_file: Optional[str] = None
) -> Dict[str, logging.Logger]:
    """
    Configure the root and audit loggers.

    Existing handlers on both loggers are replaced, so calling this again
    reconfigures logging instead of duplicating output.

    Args:
        log_level: Root logger level
        log_format: Format for console and log file output
        log_file: Rotating log file, none by default
        max_file_size: Bytes before a log file is rotated
        backup_count: Rotated files to keep
        enable_console: Log to stderr
        enable_audit: Emit audit records at all
        audit_file: Separate JSON audit file; without it audit records go
            through the root handlers

    Returns:
        Mapping of names to the configured loggers
    """
    formatter = _build_formatter(log_format)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.value))

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        root_logger.addHandler(_rotating_file_handler(log_file, formatter, max_file_size, backup_count))

    loggers = {
        'root': root_logger,
        'auth': logging.getLogger('authclient.auth'),
        'api': logging.getLogger('authclient.api_client'),
    }

    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)

    audit_logger.disabled = not enable_audit
    if not enable_audit:
        return loggers

    audit_logger.setLevel(logging.INFO)
    if audit_file:
        audit_logger.addHandler(
            _rotating_file_handler(audit_file, StructuredFormatter(), max_file_size, backup_count)
        )
        audit_logger.propagate = False
    else:
        audit_logger.propagate = True

    loggers['audit'] = audit_logger
    return loggers


def log_structured_error(
    logger: logging.Logger,
    error: AuthSessionError,
    level: int = logging.ERROR
):
    """Log ``error`` with its code, severity and context attached to the record."""
    logger.log(level, error.message, extra={'error_info': error})
