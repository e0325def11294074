"""
Collaborator contracts (config, status, audit) and reference implementations.
"""

from .base import AuditSink, ConfigStore, StatusStore
from .json_status import JsonFileStatusStore
from .memory import (
    InMemoryAuditSink,
    InMemoryConfigStore,
    InMemoryStatusStore,
    LoggingAuditSink,
)
from .toml_config import TomlConfigStore

__all__ = [
    "AuditSink",
    "ConfigStore",
    "StatusStore",
    "InMemoryAuditSink",
    "InMemoryConfigStore",
    "InMemoryStatusStore",
    "JsonFileStatusStore",
    "LoggingAuditSink",
    "TomlConfigStore",
]
