"""
CachePoison - Web cache poisoning detection

Tests:
- Cache layer detection from indicator headers
- Unkeyed header reflection with a unique marker
- Duplicate parameter (pollution) handling
- Fat GET body reflection

Every request carries a ``thcb`` cache buster so a poisoned entry never
reaches real users.
"""

import re
import time
from typing import List
from urllib.parse import urlsplit

from tryharder.engine.candidates import with_query
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


CACHE_BUSTER = 'thcb'

UNKEYED_HEADERS = [
    'X-Forwarded-Host',
    'X-Forwarded-Proto',
    'X-Original-URL',
    'X-Host',
    'X-Forwarded-Server'
]

POLLUTION_MARKERS = ('test=2', 'test=poison')
STATUS_HEADERS = ('x-cache', 'cf-cache-status', 'x-cache-status', 'x-cache-hit')
LONG_CACHE_SECONDS = 86400
MAX_AGE_PATTERN = re.compile(r'max-age=(\d+)')
PROBE_TIMEOUT_MS = 10000


def pollution_cases(buster: str) -> List[str]:
    return [
        f"?{CACHE_BUSTER}={buster}&test=1&test=2",
        f"?test=normal&{CACHE_BUSTER}={buster}&test=poison",
        f"?{CACHE_BUSTER}={buster}&callback=test&callback=<script>",
    ]


class CachePoison(BaseTool):
    """Cache behaviour and poisoning vectors."""

    name = 'cachepoison'
    title = 'CachePoison'
    description = 'Web cache poisoning detection'
    defaults = {'detectCache': True, 'unkeyedHeaders': True, 'paramPollution': True, 'fatGet': True}

    async def prepare(self, ctx: RunContext):
        ctx.state['buster'] = str(int(time.time() * 1000))
        ctx.state['polluted'] = False

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        options = ctx.options
        buster = ctx.state['buster']
        busted = with_query(ctx.target, f"{CACHE_BUSTER}={buster}")
        result = []

        if options.get('detectCache'):
            result.append(ProbeDescriptor(
                url=busted, purpose=ProbePurpose.CACHE_PROBE, timeout_ms=PROBE_TIMEOUT_MS,
                meta={'test': 'detect'}
            ))

        if options.get('unkeyedHeaders'):
            for i, header in enumerate(UNKEYED_HEADERS):
                marker = f"poison-test-{buster}{i}"
                result.append(ProbeDescriptor(
                    url=busted, headers={header: marker}, purpose=ProbePurpose.CACHE_PROBE,
                    timeout_ms=PROBE_TIMEOUT_MS, meta={'test': 'unkeyed', 'header': header, 'marker': marker}
                ))

        if options.get('paramPollution'):
            parts = urlsplit(ctx.target)
            base = f"{parts.scheme}://{parts.netloc}{parts.path}"
            for case in pollution_cases(buster):
                result.append(ProbeDescriptor(
                    url=base + case, purpose=ProbePurpose.CACHE_PROBE, timeout_ms=PROBE_TIMEOUT_MS,
                    meta={'test': 'pollution'}
                ))

        if options.get('fatGet'):
            marker = f"poisoned{buster}"
            result.append(ProbeDescriptor(
                url=busted,
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                body=f"test={marker}",
                purpose=ProbePurpose.CACHE_PROBE,
                timeout_ms=PROBE_TIMEOUT_MS,
                meta={'test': 'fatget', 'marker': marker}
            ))

        return result

    def should_skip(self, ctx: RunContext, descriptor: ProbeDescriptor) -> bool:
        return descriptor.meta['test'] == 'pollution' and ctx.state['polluted']

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if not response.success:
            return []

        test = descriptor.meta['test']
        if test == 'detect':
            return self.detect_caching(ctx, response)

        if not response.body:
            return []

        if test == 'unkeyed':
            return self.unkeyed_header(descriptor, response)

        if test == 'pollution':
            if not any(marker in response.body for marker in POLLUTION_MARKERS):
                return []
            ctx.state['polluted'] = True
            return [self.create_finding(
                FindingKind.WARNING, 'Parameter Pollution Possible', descriptor.url, Severity.MEDIUM,
                'Duplicate parameters may cause issues'
            )]

        if test == 'fatget' and descriptor.meta['marker'] in response.body:
            return [self.create_finding(
                FindingKind.WARNING, 'Fat GET Body Reflected', descriptor.url, Severity.MEDIUM,
                'GET request body influences the response'
            )]
        return []

    def detect_caching(self, ctx: RunContext, response) -> List[Finding]:
        detected = [value for _, value in ctx.registry.scan('cache_headers', response.header_text)]
        if not detected:
            return [self.create_finding(
                FindingKind.INFO, 'No Cache Headers', 'No obvious cache layer detected', Severity.INFO,
                'May still have caching (check behavior)'
            )]

        findings = [self.create_finding(
            FindingKind.INFO,
            'Cache Layer Detected',
            ', '.join(detected[:3]),
            Severity.INFO,
            f"{len(detected)} cache-related headers found",
            headers=detected
        )]

        cache_status = next((response.header(h) for h in STATUS_HEADERS if response.header(h)), '')
        status = cache_status.lower()
        if 'hit' in status:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Cache HIT', cache_status, Severity.INFO, 'Response served from cache'
            ))
        elif 'miss' in status:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Cache MISS', cache_status, Severity.INFO,
                'Response not cached (or first request)'
            ))

        cache_control = response.header('cache-control')
        if cache_control:
            findings.extend(self.analyze_cache_control(cache_control))
        return findings

    def analyze_cache_control(self, value: str) -> List[Finding]:
        findings = []
        directives = [d.strip() for d in value.lower().split(',')]

        if 'no-store' in directives:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Cache-Control: no-store', value, Severity.INFO,
                'Response should not be cached'
            ))
        elif 'private' in directives:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Cache-Control: private', value, Severity.INFO,
                'Only browser cache, not CDN/proxy'
            ))
        elif 'public' in directives:
            findings.append(self.create_finding(
                FindingKind.WARNING, 'Cache-Control: public', value, Severity.LOW,
                'Response can be cached by proxies'
            ))

        max_age = MAX_AGE_PATTERN.search(value)
        if max_age and int(max_age.group(1)) > LONG_CACHE_SECONDS:
            seconds = int(max_age.group(1))
            findings.append(self.create_finding(
                FindingKind.INFO, 'Long Cache Duration', f"max-age={seconds} ({round(seconds / 3600)}h)",
                Severity.INFO, 'Extended cache duration'
            ))
        return findings

    def unkeyed_header(self, descriptor: ProbeDescriptor, response) -> List[Finding]:
        header = descriptor.meta['header']
        if descriptor.meta['marker'] in response.body:
            return [self.create_finding(
                FindingKind.VULNERABILITY, 'Unkeyed Header Reflected', header, Severity.HIGH,
                'Header value reflected in response - potential cache poisoning!'
            )]

        body = response.body.lower()
        if 'poison-test-' in body or 'href="http://poison' in body or "href='http://poison" in body:
            return [self.create_finding(
                FindingKind.WARNING, 'Possible Unkeyed Header', header, Severity.MEDIUM,
                'Header may influence response content'
            )]
        return []
