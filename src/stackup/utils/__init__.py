"""Utility modules for logging, errors, polling, and AWS client management."""

from stackup.utils.aws_client import AWSClientManager, build_retry_config
from stackup.utils.polling import Poller, DEFAULT_POLL_INTERVAL
from stackup.utils.errors import (
    ErrorCategory,
    ErrorContext,
    StackupError,
    UsageError,
    SourceReadError,
    ServiceError,
    CredentialError,
    InvalidStateError,
    EmptyChangeSetError,
    NameConflictError,
    WaitTimeoutError,
    RenderError,
    ErrorHandler,
    error_handler
)
from stackup.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',
    'build_retry_config',

    # Polling
    'Poller',
    'DEFAULT_POLL_INTERVAL',

    # Errors
    'ErrorCategory',
    'ErrorContext',
    'StackupError',
    'UsageError',
    'SourceReadError',
    'ServiceError',
    'CredentialError',
    'InvalidStateError',
    'EmptyChangeSetError',
    'NameConflictError',
    'WaitTimeoutError',
    'RenderError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
