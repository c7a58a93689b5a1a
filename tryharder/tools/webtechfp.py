"""
WebTechFP - Web technology fingerprinting

Weighted detection of frameworks, CMS platforms, servers/CDNs, WAFs and
analytics from page markup (+30 per pattern), response headers (+40 per
header) and script references (+30 per script), capped at 100. Also
reports meta generator tags, CDN usage, external script domains and
version-disclosing headers.
"""

from collections import defaultdict
from typing import Dict, List
from urllib.parse import urljoin, urlsplit

from tryharder.engine.classifier import MARKUP_SCAN_LIMIT, fingerprint_confidence
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.engine.parser import HTMLPage
from tryharder.tools.base import BaseTool, RunContext


CATEGORIES = {
    'frameworks': 'Framework',
    'cms': 'CMS/Platform',
    'servers': 'Server/CDN',
    'security': 'Security/WAF',
    'analytics': 'Analytics',
}

EVIDENCE_PREFIX = {'body': 'Pattern', 'headers': 'Header', 'scripts': 'Script'}

CDNS = [
    ('cdnjs.cloudflare.com', 'cdnjs'),
    ('unpkg.com', 'unpkg'),
    ('jsdelivr.net', 'jsDelivr'),
    ('maxcdn.bootstrapcdn.com', 'Bootstrap CDN'),
    ('ajax.googleapis.com', 'Google CDN'),
    ('code.jquery.com', 'jQuery CDN'),
]

VERSION_HEADERS = [
    'x-aspnet-version', 'x-aspnetmvc-version', 'x-runtime',
    'x-version', 'x-generator', 'x-cms'
]


PAGE_TIMEOUT_MS = 15000


class WebTechFP(BaseTool):
    """Technology stack fingerprinting from one page fetch."""

    name = 'webtechfp'
    title = 'WebTechFP'
    description = 'Web technology fingerprinting'
    defaults = {'frameworks': True, 'cms': True, 'servers': True, 'security': True, 'analytics': True}

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        return [ProbeDescriptor(url=ctx.target, purpose=ProbePurpose.FINGERPRINT, timeout_ms=PAGE_TIMEOUT_MS)]

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if not response.success:
            ctx.message = 'target unreachable'
            return []

        html = response.body
        page = HTMLPage(html, response.final_url or descriptor.url)
        script_text = '\n'.join(page.script_sources())

        findings = []
        findings.extend(self.detect_technologies(ctx, html, response.header_text, script_text))
        findings.extend(self.meta_info(page))
        findings.extend(self.script_domains(page))
        findings.extend(self.header_info(response))
        return findings

    def detect_technologies(self, ctx: RunContext, html: str, header_text: str,
                            script_text: str) -> List[Finding]:
        texts = {'body': html, 'headers': header_text, 'scripts': script_text}
        hits: Dict[tuple, Dict[str, set]] = defaultdict(lambda: defaultdict(set))
        evidence: Dict[tuple, List[str]] = defaultdict(list)

        for source, text in texts.items():
            for signature, value in ctx.registry.scan(f"tech.{source}", text, MARKUP_SCAN_LIMIT):
                tech = (signature.family, signature.label)
                if signature.id in hits[tech][source]:
                    continue
                hits[tech][source].add(signature.id)
                evidence[tech].append(f"{EVIDENCE_PREFIX[source]}: {value}")

        findings = []
        for group, category in CATEGORIES.items():
            if not ctx.options.get(group):
                continue
            for (family, tech_name), sources in hits.items():
                if family != group:
                    continue
                confidence = fingerprint_confidence(
                    len(sources.get('body', ())),
                    len(sources.get('headers', ())),
                    len(sources.get('scripts', ()))
                )
                tech_evidence = evidence[(family, tech_name)]
                findings.append(self.create_finding(
                    FindingKind.INFO,
                    category,
                    tech_name,
                    Severity.INFO,
                    f"Confidence: {confidence}% | {', '.join(tech_evidence[:2])}",
                    category=category,
                    confidence=confidence,
                    evidence=tech_evidence
                ))
        return findings

    def meta_info(self, page: HTMLPage) -> List[Finding]:
        findings = []
        meta = page.meta_tags()

        generator = meta.get('generator')
        if generator:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Generator', f"Generator: {generator}", Severity.INFO,
                'From meta generator tag', category='Meta'
            ))

        powered = meta.get('powered-by')
        if powered:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Powered By', f"Powered-By: {powered}", Severity.INFO,
                'From meta tag', category='Meta'
            ))

        for pattern, cdn in CDNS:
            if pattern in page.html:
                findings.append(self.create_finding(
                    FindingKind.INFO, 'CDN Used', cdn, Severity.INFO, pattern, category='CDN'
                ))
        return findings

    def script_domains(self, page: HTMLPage) -> List[Finding]:
        domains = []
        for src in page.script_sources():
            if not src.startswith(('http', '//')):
                continue
            hostname = urlsplit(urljoin('https://example.com', src)).hostname
            if hostname and hostname not in domains:
                domains.append(hostname)

        if not domains:
            return []
        return [self.create_finding(
            FindingKind.INFO,
            'External Script Domains',
            f"{len(domains)} domains",
            Severity.INFO,
            ', '.join(domains[:5]),
            category='Scripts',
            domains=domains
        )]

    def header_info(self, response) -> List[Finding]:
        findings = []

        server = response.header('server')
        if server:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Server', f"Server: {server}", Severity.INFO,
                'From Server header', category='Headers'
            ))

        powered_by = response.header('x-powered-by')
        if powered_by:
            findings.append(self.create_finding(
                FindingKind.INFO, 'X-Powered-By', f"X-Powered-By: {powered_by}", Severity.LOW,
                'Technology disclosure', category='Headers'
            ))

        for name in VERSION_HEADERS:
            value = response.header(name)
            if value:
                findings.append(self.create_finding(
                    FindingKind.WARNING, f"Header: {name}", f"{name}: {value}", Severity.LOW,
                    'Version disclosure', category='Headers'
                ))

        powered_lower = powered_by.lower()
        language = 'PHP' if 'php' in powered_lower else 'ASP.NET' if 'asp.net' in powered_lower else None
        if language:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Programming Language', language, Severity.INFO,
                'Detected from headers', category='Language'
            ))
        return findings
