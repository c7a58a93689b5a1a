"""
Classifier for TryHarder

``classify`` applies a tool's scoring rule to one response. The rule
functions below are the building blocks tools share: injection error
fingerprints, auth bypass status flips, IDOR data checks, discovery
tables, weighted fingerprints, port inference and parameter scoring.

Classification never raises. A rule that blows up is logged and the
response is treated as uninteresting.
"""

from typing import Iterable, Optional, Sequence, Set, Tuple, TYPE_CHECKING
import logging

from tryharder.engine.comparator import DiffSignals
from tryharder.engine.models import Finding, ProbeDescriptor, ResponseRecord, Severity

if TYPE_CHECKING:
    from tryharder.tools.base import BaseTool, RunContext

logger = logging.getLogger(__name__)

# Pattern input caps
CODE_SCAN_LIMIT = 100000
MARKUP_SCAN_LIMIT = 50000

BYPASS_BASELINE_STATUSES = (401, 403)
IDOR_MIN_LENGTH = 100
IDOR_DENIAL_MARKERS = ('not found', 'unauthorized', 'forbidden')

# Fingerprint weights per evidence source
FINGERPRINT_WEIGHTS = {'body': 30, 'headers': 40, 'scripts': 30}
FINGERPRINT_CAP = 100

FAST_FAILURE_MS = 1500
REFUSAL_MARKERS = (
    'refused', 'connect call failed', 'cannot connect', 'timed out', 'timeout',
    'name or service not known', 'nodename nor servname', 'no route to host',
    'network is unreachable', 'temporary failure in name resolution',
)


def classify(
        tool: 'BaseTool',
        descriptor: ProbeDescriptor,
        response: ResponseRecord,
        diff: Optional[DiffSignals] = None,
        matches: Optional[Set[Tuple[str, str]]] = None,
        ctx: Optional['RunContext'] = None
) -> Optional[Finding]:
    """
    Score one response with the tool's rule.

    Args:
        tool: Tool strategy providing the rule
        descriptor: The probe that produced the response
        response: Normalized response
        diff: Signals against the relevant baseline
        matches: Registry matches for the tool's signature category
        ctx: Per-run context (baselines, scratch state)

    Returns:
        A Finding, or None when the response is not interesting
    """
    try:
        return tool.classify(descriptor, response, diff, matches or set(), ctx)
    except Exception as e:
        logger.error(f"{tool.name} classification error on {descriptor.url}: {e}")
        return None


def scan_limit(response: ResponseRecord) -> int:
    """Character cap for pattern scans: larger for code, smaller for markup."""
    content_type = response.content_type
    if 'javascript' in content_type or 'json' in content_type:
        return CODE_SCAN_LIMIT
    return MARKUP_SCAN_LIMIT


def header_bypass_rule(baseline_status: int, status: int) -> bool:
    """A denied baseline that flips to 200 under a spoofed header."""
    return baseline_status in BYPASS_BASELINE_STATUSES and status == 200


def idor_rule(response: ResponseRecord, min_length: int = IDOR_MIN_LENGTH) -> bool:
    """A substituted ID that returned real-looking data instead of a denial page."""
    if not response.success or response.status != 200:
        return False
    if len(response.body) <= min_length:
        return False
    body = response.body.lower()
    return not any(marker in body for marker in IDOR_DENIAL_MARKERS)


def discovery_rule(path: str, body: str,
                   table: Sequence[Tuple[Sequence[str], Sequence[str], str, Severity, str]],
                   default: Tuple[str, Severity, str]) -> Tuple[str, Severity, str]:
    """
    Categorize a discovered path.

    ``table`` rows are (path keywords, body keywords, label, severity, kind)
    and are checked in order; the first hit wins.
    """
    path_lower = path.lower()
    body_lower = body.lower()
    for path_keys, body_keys, label, severity, kind in table:
        if any(k in path_lower for k in path_keys) or any(k in body_lower for k in body_keys):
            return label, severity, kind
    return default


def fingerprint_confidence(body_hits: int = 0, header_hits: int = 0, script_hits: int = 0) -> int:
    """Weighted confidence for a technology, capped at 100."""
    score = (body_hits * FINGERPRINT_WEIGHTS['body']
             + header_hits * FINGERPRINT_WEIGHTS['headers']
             + script_hits * FINGERPRINT_WEIGHTS['scripts'])
    return min(score, FINGERPRINT_CAP)


def port_open_rule(response: ResponseRecord, fast_ms: int = FAST_FAILURE_MS) -> bool:
    """
    HTTP-level open-port inference.

    Any HTTP response means open. A failure that came back quickly and is
    not a refusal, resolution error or timeout (for instance a protocol
    error from a non-HTTP service) is also taken as open.
    """
    if response.success:
        return True
    if response.elapsed_ms >= fast_ms:
        return False
    error = (response.error or '').lower()
    return not any(marker in error for marker in REFUSAL_MARKERS)


def parameter_score(diff: DiffSignals, status: int, token: str, name: str) -> int:
    """
    Hidden-parameter score.

    +3 status changed to something other than 404, +2 token reflected,
    +1 length delta over 100 bytes, +1 parameter name echoed without the
    token.
    """
    score = 0
    if diff.status_changed and status != 404:
        score += 3
    reflected = diff.reflects(token)
    if reflected:
        score += 2
    if diff.abs_length_delta > 100:
        score += 1
    if not reflected and name.lower() in diff.body.lower():
        score += 1
    return score


def parameter_severity(score: int) -> Severity:
    if score >= 4:
        return Severity.HIGH
    if score >= 3:
        return Severity.MEDIUM
    return Severity.LOW


def first_family(matches: Iterable[Tuple[str, str]], ordered_ids: Sequence[str]) -> Optional[str]:
    """Signature id among ``matches`` that comes first in bank order."""
    matched = {sig_id for sig_id, _ in matches}
    for sig_id in ordered_ids:
        if sig_id in matched:
            return sig_id
    return None
