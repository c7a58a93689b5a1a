"""
Finding Sink for TryHarder

Collects findings for one run. Duplicates (same tool, kind and value)
are dropped on insert; the first one wins. ``drain`` returns findings
ordered by severity and then by the tool's tie-break key, and is
idempotent: draining twice without adding returns the same sequence.
"""

from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging

from tryharder.engine.models import Finding, group_findings

logger = logging.getLogger(__name__)

TieBreak = Callable[[Finding], Tuple]


class FindingSink:
    """Deduplicating, ordering finding collector."""

    def __init__(self, tie_break: Optional[TieBreak] = None,
                 on_finding: Optional[Callable[[Finding], None]] = None):
        self._findings: 'OrderedDict[Tuple, Finding]' = OrderedDict()
        self._tie_break = tie_break or (lambda finding: ())
        self._on_finding = on_finding

    def __len__(self) -> int:
        return len(self._findings)

    def __contains__(self, key: Tuple) -> bool:
        return key in self._findings

    def add(self, finding: Optional[Finding]) -> bool:
        """Add a finding. Returns False when it was empty or a duplicate."""
        if finding is None or finding.key in self._findings:
            return False
        self._findings[finding.key] = finding
        if self._on_finding:
            self._on_finding(finding)
        return True

    def extend(self, findings: Iterable[Optional[Finding]]) -> int:
        return sum(1 for f in findings if self.add(f))

    def drain(self) -> List[Finding]:
        """Findings, severity first, then tie-break key, then insertion order."""
        return sorted(
            self._findings.values(),
            key=lambda f: (f.severity.rank, self._tie_break(f))
        )

    def grouped(self, key: Callable[[Finding], Any]) -> Dict[Any, List[Finding]]:
        """Ordered findings grouped by ``key``. A view; the sink is unchanged."""
        return group_findings(self.drain(), key)
