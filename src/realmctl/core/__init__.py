"""Core framework components for realmctl."""

from realmctl.core.exceptions import (
    RealmCtlError,
    ConfigurationError,
    ValidationError,
    InvalidPortError,
    InvalidAddressError,
    FormatError,
    ConflictError,
    ApiError,
    AuthError,
    MutationFailedError,
    FetchError,
    ServiceError,
)

from realmctl.core.context import ExecutionContext, create_context
from realmctl.core.output import console, Console, Verbosity
from realmctl.core.config import AppConfig, RealmCtlConfig
from realmctl.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult

__all__ = [
    # Exceptions
    "RealmCtlError",
    "ConfigurationError",
    "ValidationError",
    "InvalidPortError",
    "InvalidAddressError",
    "FormatError",
    "ConflictError",
    "ApiError",
    "AuthError",
    "MutationFailedError",
    "FetchError",
    "ServiceError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "RealmCtlConfig",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
]
