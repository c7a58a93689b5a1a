"""
Core data model for TryHarder.

Probe descriptors describe what to send, response records describe what
came back, and findings describe what it means. All three are immutable
once built; a ToolRun owns the findings of one tool invocation.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


class Severity(Enum):
    """Finding severity levels."""
    CRITICAL = 'critical'
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'
    INFO = 'info'

    @property
    def rank(self) -> int:
        """Sort rank, critical first."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO]


class FindingKind(Enum):
    """What a finding describes."""
    VULNERABILITY = 'vulnerability'
    WARNING = 'warning'
    INFO = 'info'
    SECRET = 'secret'
    ENDPOINT = 'endpoint'
    DOMAIN = 'domain'
    PORT = 'port'
    SERVICE = 'service'
    PARAMETER = 'parameter'


class ProbePurpose(Enum):
    """Why a candidate request is sent."""
    BASELINE = 'baseline'
    PATH_DISCOVERY = 'path-discovery'
    HEADER_BYPASS = 'header-bypass'
    PAYLOAD_INJECTION = 'payload-injection'
    PARAMETER_DISCOVERY = 'parameter-discovery'
    ID_SUBSTITUTION = 'id-substitution'
    METHOD_OVERRIDE = 'method-override'
    PATH_VARIATION = 'path-variation'
    PORT_PROBE = 'port-probe'
    HOST_PROBE = 'host-probe'
    SERVICE_PROBE = 'service-probe'
    LOOKUP = 'lookup'
    FINGERPRINT = 'fingerprint'
    CACHE_PROBE = 'cache-probe'
    SCRIPT_FETCH = 'script-fetch'
    INTROSPECTION = 'introspection'


class RunStatus(Enum):
    """ToolRun lifecycle states."""
    RUNNING = 'running'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


@dataclass(frozen=True)
class ProbeDescriptor:
    """
    One candidate request.

    Header keys are unique within a descriptor. ``meta`` carries
    tool-specific context (parameter name, payload, port) that the
    classifier needs to interpret the response.
    """
    url: str
    method: str = 'GET'
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    purpose: ProbePurpose = ProbePurpose.PATH_DISCOVERY
    timeout_ms: Optional[int] = None
    meta: Mapping[str, Any] = field(default_factory=dict)
    id: str = ''

    @property
    def key(self) -> Tuple:
        """Identity used for candidate deduplication."""
        header_set = tuple(sorted((k.lower(), v) for k, v in self.headers.items()))
        return (self.method.upper(), self.url, header_set)

    def with_id(self, descriptor_id: str) -> 'ProbeDescriptor':
        return replace(self, id=descriptor_id)


@dataclass(frozen=True)
class ResponseRecord:
    """
    Normalized outcome of one dispatch.

    A failed record always has status 0 and an empty body. Header names
    are lower-cased.
    """
    success: bool
    status: int = 0
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ''
    final_url: str = ''
    elapsed_ms: int = 0
    error: Optional[str] = None
    descriptor_id: str = ''

    @classmethod
    def failure(cls, error: str, url: str = '', elapsed_ms: int = 0,
                descriptor_id: str = '') -> 'ResponseRecord':
        """Build a failure record."""
        return cls(
            success=False,
            final_url=url,
            elapsed_ms=elapsed_ms,
            error=error,
            descriptor_id=descriptor_id
        )

    @property
    def length(self) -> int:
        return len(self.body)

    @property
    def content_type(self) -> str:
        return self.headers.get('content-type', '').lower()

    @property
    def is_html(self) -> bool:
        return 'text/html' in self.content_type

    def header(self, name: str, default: str = '') -> str:
        """Get header value (case-insensitive)."""
        return self.headers.get(name.lower(), default)

    @property
    def header_text(self) -> str:
        """Headers rendered one ``name: value`` per line, for signature matching."""
        return '\n'.join(f"{k}: {v}" for k, v in self.headers.items())


@dataclass(frozen=True)
class Baseline:
    """A named reference response captured before probing."""
    name: str
    records: Tuple[ResponseRecord, ...]

    @property
    def primary(self) -> ResponseRecord:
        return self.records[0]

    @property
    def status(self) -> int:
        return self.primary.status

    @property
    def length(self) -> int:
        return self.primary.length

    @property
    def reachable(self) -> bool:
        return self.primary.success


@dataclass(frozen=True)
class Finding:
    """
    A classified observation.

    Two findings with the same tool, kind and value are the same finding.
    """
    tool: str
    kind: FindingKind
    title: str
    value: str
    severity: Severity
    subtitle: str = ''
    details: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, FindingKind, str]:
        return (self.tool, self.kind, self.value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'tool': self.tool,
            'type': self.kind.value,
            'title': self.title,
            'value': self.value,
            'subtitle': self.subtitle,
            'severity': self.severity.value,
            'details': dict(self.details)
        }


def by_category(finding: Finding) -> str:
    return finding.details.get('category', '')


def group_findings(findings: List[Finding], key: Callable[[Finding], Any]) -> Dict[Any, List[Finding]]:
    """Group findings by ``key``, keeping their order inside each group."""
    groups: Dict[Any, List[Finding]] = {}
    for finding in findings:
        groups.setdefault(key(finding), []).append(finding)
    return groups


@dataclass
class ToolRun:
    """
    One invocation of a tool.

    Created in RUNNING; moves exactly once to a terminal state and is not
    mutated afterwards.
    """
    tool: str
    target: str
    status: RunStatus = RunStatus.RUNNING
    findings: List[Finding] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    message: str = ''
    error: Optional[str] = None
    dispatched: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING

    def finish(self, status: RunStatus, findings: List[Finding], message: str = '',
               error: Optional[str] = None):
        """Move the run to its terminal state."""
        if self.is_terminal:
            raise RuntimeError(f"Run for '{self.tool}' already finished as {self.status.value}")
        self.status = status
        self.findings = list(findings)
        self.message = message
        self.error = error
        self.finished_at = datetime.now(timezone.utc)

    def summary(self) -> Dict[str, int]:
        """Count findings per severity."""
        counts = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        counts['total'] = len(self.findings)
        return counts

    def grouped(self, key: Callable[[Finding], Any] = by_category) -> Dict[Any, List[Finding]]:
        """Findings grouped by category, or by ``key``. A read-only view."""
        return group_findings(self.findings, key)

    def to_dict(self) -> Dict[str, Any]:
        duration = None
        if self.finished_at:
            duration = (self.finished_at - self.started_at).total_seconds()
        return {
            'tool': self.tool,
            'target': self.target,
            'status': self.status.value,
            'message': self.message,
            'error': self.error,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration': duration,
            'dispatched': self.dispatched,
            'findings': [f.to_dict() for f in self.findings],
            'summary': self.summary()
        }
