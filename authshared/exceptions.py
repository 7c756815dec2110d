"""
Error types for the Auth Session Client.

Transport, storage and configuration faults are raised as AuthSessionError
subclasses carrying a stable code, a severity and the actions a caller can
take. The session manager turns them into result values; the CLI prints
their user message.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple, Type
from enum import Enum


class ErrorCode(Enum):
    """Stable identifiers for every failure the client reports."""

    # Credential exchange
    AUTH_INVALID_CREDENTIALS = "AUTH-101"
    AUTH_INCOMPLETE_CREDENTIALS = "AUTH-102"
    AUTH_REGISTRATION_FAILED = "AUTH-103"

    # Transport
    NETWORK_CONNECTION_FAILED = "NET-201"
    NETWORK_TIMEOUT = "NET-202"
    NETWORK_INVALID_RESPONSE = "NET-203"

    # Key-value store
    STORAGE_READ_FAILED = "STORE-301"
    STORAGE_WRITE_FAILED = "STORE-302"
    STORAGE_DELETE_FAILED = "STORE-303"

    # Configuration
    CONFIG_INVALID_FORMAT = "CONF-502"
    CONFIG_INVALID_VALUE = "CONF-503"

    INTERNAL_UNEXPECTED_ERROR = "INTERNAL-901"


class ErrorSeverity(Enum):
    """How badly an error affects the session."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecoveryAction(Enum):
    """What a caller can do about an error."""
    RETRY = "retry"
    RECONNECT = "reconnect"
    REAUTHENTICATE = "reauthenticate"
    USER_INTERVENTION = "user_intervention"


class AuthSessionError(Exception):
    """
    Base class for every error raised inside the client.

    ``context`` holds machine-readable details (URL, storage key, config key).
    When ``cause`` is given its type and message are copied into ``context``
    so the error stays serializable after the cause is gone.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context = dict(context) if context else {}
        self.recovery_actions = list(recovery_actions) if recovery_actions else []
        self.cause = cause
        self.user_message = user_message or message
        self.timestamp = datetime.now()

        if cause is not None:
            self.context.setdefault('cause_type', type(cause).__name__)
            self.context.setdefault('cause_message', str(cause))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON output and audit records."""
        return {
            'code': self.error_code.value,
            'message': self.message,
            'user_message': self.user_message,
            'severity': self.severity.value,
            'recovery_actions': [action.value for action in self.recovery_actions],
            'context': self.context,
            'timestamp': self.timestamp.isoformat()
        }


class AuthenticationError(AuthSessionError):
    """The auth service refused the credentials or returned an unusable token pair."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.AUTH_INVALID_CREDENTIALS, **kwargs):
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        kwargs.setdefault('recovery_actions', [RecoveryAction.REAUTHENTICATE])
        super().__init__(message, error_code, **kwargs)


class NetworkError(AuthSessionError):
    """The auth service could not be reached or answered garbage."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NETWORK_CONNECTION_FAILED, **kwargs):
        kwargs.setdefault('recovery_actions', [RecoveryAction.RETRY, RecoveryAction.RECONNECT])
        kwargs.setdefault('user_message', "network error")
        super().__init__(message, error_code, **kwargs)


class StorageError(AuthSessionError):
    """A key-value store backend failed."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
                 key: Optional[str] = None, **kwargs):
        context = dict(kwargs.pop('context', None) or {})
        if key:
            context['key'] = key

        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        kwargs.setdefault('recovery_actions', [RecoveryAction.RETRY])
        super().__init__(message, error_code, context=context, **kwargs)


class ConfigurationError(AuthSessionError):
    """A configuration value is missing, unreadable or out of range."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.CONFIG_INVALID_VALUE,
                 config_key: Optional[str] = None, **kwargs):
        context = dict(kwargs.pop('context', None) or {})
        if config_key:
            context['config_key'] = config_key

        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        kwargs.setdefault('recovery_actions', [RecoveryAction.USER_INTERVENTION])
        super().__init__(message, error_code, context=context, **kwargs)


# Checked in order; the first isinstance match wins.
_EXCEPTION_MAPPING: List[Tuple[Type[BaseException], ErrorCode, Type[AuthSessionError]]] = [
    (TimeoutError, ErrorCode.NETWORK_TIMEOUT, NetworkError),
    (ConnectionError, ErrorCode.NETWORK_CONNECTION_FAILED, NetworkError),
]


def handle_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    default_error_code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED_ERROR
) -> AuthSessionError:
    """
    Wrap any exception in an AuthSessionError.

    Errors that already are AuthSessionError are returned unchanged.
    Builtin connection and timeout errors (and their subclasses) become
    NetworkError; anything else, ValueError included, gets
    ``default_error_code``.
    """
    if isinstance(exception, AuthSessionError):
        return exception

    for exception_type, error_code, error_class in _EXCEPTION_MAPPING:
        if isinstance(exception, exception_type):
            return error_class(str(exception), error_code=error_code, context=context, cause=exception)

    return AuthSessionError(
        str(exception),
        default_error_code,
        severity=ErrorSeverity.HIGH,
        context=context,
        cause=exception
    )
