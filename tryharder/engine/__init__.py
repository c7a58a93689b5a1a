"""
TryHarder Engine Components

Contains the probe engine, egress client, scheduler and classification core.
"""

from tryharder.engine.engine import ProbeEngine
from tryharder.engine.errors import ConfigurationError, ToolBusyError, UnknownToolError
from tryharder.engine.models import Finding, FindingKind, RunStatus, Severity, ToolRun
from tryharder.engine.requester import EgressClient, HttpTransport
from tryharder.engine.scheduler import CancelToken
from tryharder.engine.store import ResultStore

__all__ = [
    'ProbeEngine', 'EgressClient', 'HttpTransport', 'CancelToken', 'ResultStore',
    'Finding', 'FindingKind', 'RunStatus', 'Severity', 'ToolRun',
    'ConfigurationError', 'ToolBusyError', 'UnknownToolError'
]
