"""
Base Tool for TryHarder

Every reconnaissance tool is a strategy the generic engine drives. A tool
declares how to validate its target, which candidates to send, how a
response is scored, and how its findings break ties. Optional hooks cover
baseline capture, follow-up phases, skip rules and end-of-run summaries.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
import logging

from tryharder.config import Settings
from tryharder.engine.candidates import ensure_scheme
from tryharder.engine.classifier import classify, scan_limit
from tryharder.engine.comparator import DiffSignals, compare
from tryharder.engine.errors import ConfigurationError
from tryharder.engine.models import (
    Baseline, Finding, FindingKind, ProbeDescriptor, ResponseRecord, Severity
)
from tryharder.engine.parser import PageContent
from tryharder.engine.requester import EgressClient
from tryharder.engine.scheduler import SchedulerPolicy
from tryharder.engine.signatures import SignatureRegistry

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything a tool may read or record during one run."""
    tool: str
    target: str
    options: Dict[str, Any]
    settings: Settings
    client: EgressClient
    registry: SignatureRegistry
    page: Optional[PageContent] = None
    baselines: Dict[str, Baseline] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)
    message: str = ''
    aborted: bool = False

    async def capture(
            self,
            name: str,
            url: str,
            method: str = 'GET',
            headers: Optional[Mapping[str, str]] = None,
            timeout_ms: Optional[int] = None
    ) -> Baseline:
        """Fetch and store a named baseline."""
        response = await self.client.send(method, url, headers=headers, timeout_ms=timeout_ms)
        baseline = Baseline(name=name, records=(response,))
        self.baselines[name] = baseline
        return baseline

    def abort(self, message: str):
        """Stop before probing; the run completes with no findings."""
        self.aborted = True
        self.message = message


class BaseTool(ABC):
    """
    Abstract base class for tool strategies.

    Each tool must implement:
    - name: Tool id, also the result store key
    - candidates(): The first dispatch phase
    - classify() or evaluate(): Scoring of responses
    """

    name: str = 'base'
    title: str = 'Base Tool'
    description: str = ''
    target_option: str = 'url'
    defaults: Dict[str, Any] = {}
    batchable: bool = False
    signature_category: Optional[str] = None
    baseline_name: Optional[str] = None

    def __init__(self):
        """Initialize the tool."""
        self.logger = logging.getLogger(f"tryharder.tool.{self.name}")

    # Configuration

    def resolve_options(self, options: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Tool defaults overlaid with caller options."""
        resolved = dict(self.defaults)
        resolved.update(options or {})
        return resolved

    def normalize_target(self, value: str) -> str:
        return ensure_scheme(value)

    def validate(self, options: Mapping[str, Any]) -> str:
        """
        Check and normalize the target input.

        Raises:
            ConfigurationError: When the target is missing or unusable
        """
        value = options.get(self.target_option)
        if value is None or not str(value).strip():
            raise ConfigurationError(f"Please enter a {self.target_option} for {self.title}")
        target = self.normalize_target(str(value))
        if not target:
            raise ConfigurationError(f"Invalid {self.target_option}: {value}")
        return target

    def policy(self, settings: Settings) -> SchedulerPolicy:
        return SchedulerPolicy(
            batchable=self.batchable,
            concurrency=settings.concurrent if self.batchable else 1,
            delay_ms=settings.delay
        )

    # Run phases

    async def prepare(self, ctx: RunContext):
        """Capture baselines or load collaborators before probing."""

    @abstractmethod
    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        """First phase of candidates."""

    def follow_up(self, ctx: RunContext) -> List[ProbeDescriptor]:
        """Further candidates derived from earlier responses. Empty ends the run."""
        return []

    def should_skip(self, ctx: RunContext, descriptor: ProbeDescriptor) -> bool:
        """Checked right before dispatch."""
        return False

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor,
                 response: ResponseRecord) -> List[Finding]:
        """Turn one response into zero or more findings."""
        baseline = ctx.baselines.get(self.baseline_name) if self.baseline_name else None
        diff = compare(response, baseline)
        matches: Set[Tuple[str, str]] = set()
        if self.signature_category and response.success:
            matches = ctx.registry.match(self.signature_category, response.body, scan_limit(response))
        finding = classify(self, descriptor, response, diff, matches, ctx)
        return [finding] if finding else []

    def classify(self, descriptor: ProbeDescriptor, response: ResponseRecord,
                 diff: Optional[DiffSignals], matches: Set[Tuple[str, str]],
                 ctx: Optional[RunContext]) -> Optional[Finding]:
        """Single-finding scoring rule."""
        return None

    def finalize(self, ctx: RunContext) -> List[Finding]:
        """Summary findings once every phase has been dispatched."""
        return []

    def sort_key(self, finding: Finding) -> Tuple:
        """Tie-break within a severity level. Default keeps insertion order."""
        return ()

    # Helpers

    def create_finding(
            self,
            kind: FindingKind,
            title: str,
            value: str,
            severity: Severity,
            subtitle: str = '',
            **details
    ) -> Finding:
        """Helper to create a Finding owned by this tool."""
        return Finding(
            tool=self.name,
            kind=kind,
            title=title,
            value=value,
            severity=severity,
            subtitle=subtitle,
            details=details
        )

    @staticmethod
    def truncate(text: str, max_length: int = 50) -> str:
        """Truncate text to maximum length, ellipsis included."""
        if len(text) <= max_length:
            return text
        return text[:max_length - 3] + '...'
