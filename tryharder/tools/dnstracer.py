"""
DNSTracer - DNS record enumeration & analysis

All lookups go through Google's DNS-over-HTTPS JSON API.

Checks:
- A, AAAA, CNAME, MX, TXT, NS, SOA, SRV and CAA records
- Weak SPF, DMARC policy and verification TXT records
- CNAMEs pointing at takeover-prone services
- DNSSEC and missing DMARC
- Common subdomains that resolve
"""

import json
from typing import Dict, List, Optional
from urllib.parse import quote

from tryharder.engine.candidates import normalize_domain, split_list
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


RESOLVE_URL = 'https://dns.google/resolve?name={name}&type={type}'

RECORD_TYPES = ['A', 'AAAA', 'CNAME', 'MX', 'TXT', 'NS', 'SOA', 'SRV', 'CAA']

COMMON_SUBDOMAINS = [
    'www', 'mail', 'ftp', 'admin', 'api', 'dev', 'staging', 'test',
    'app', 'blog', 'shop', 'store', 'secure', 'vpn', 'remote',
    'portal', 'cdn', 'static', 'assets', 'img', 'images', 'media',
    'ns1', 'ns2', 'mx', 'smtp', 'pop', 'imap', 'webmail'
]

VERIFICATION_MARKERS = ('google-site-verification', 'facebook-domain-verification', 'ms=')

RECORD_TITLES = {
    'NS': ('Name Server (NS)', 'Authoritative DNS server'),
    'SOA': ('SOA Record', 'Start of Authority'),
    'CAA': ('CAA Record', 'Certificate Authority Authorization'),
    'SRV': ('SRV Record', 'Service location record'),
}

QUERY_TIMEOUT_MS = 10000
SUBDOMAIN_TIMEOUT_MS = 5000


def resolve_url(name: str, record_type: str) -> str:
    return RESOLVE_URL.format(name=quote(name), type=record_type)


def parse_answer(body: str) -> Optional[Dict]:
    """DoH JSON document, or None when the body is not JSON."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class DNSTracer(BaseTool):
    """DNS enumeration over DoH."""

    name = 'dnstracer'
    title = 'DNSTracer'
    description = 'DNS record enumeration & analysis'
    target_option = 'domain'
    defaults = {
        'records': True,
        'recordTypes': None,
        'zoneTransfer': True,
        'security': True,
        'subdomains': True,
    }

    def normalize_target(self, value: str) -> str:
        return normalize_domain(value)

    def record_types(self, options) -> List[str]:
        types = options.get('recordTypes')
        if isinstance(types, str):
            types = split_list(types, ',')
        return [t.upper() for t in types] if types else list(RECORD_TYPES)

    async def prepare(self, ctx: RunContext):
        ctx.state['resolved'] = []

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        domain = ctx.target
        options = ctx.options
        result = []

        if options.get('records'):
            for record_type in self.record_types(options):
                result.append(self._query(domain, record_type, {'check': 'record', 'type': record_type}))

        if options.get('security'):
            result.append(self._query(domain, 'DNSKEY', {'check': 'dnssec'}))
            result.append(self._query(f"_dmarc.{domain}", 'TXT', {'check': 'dmarc'}))

        if options.get('subdomains'):
            for sub in COMMON_SUBDOMAINS:
                name = f"{sub}.{domain}"
                result.append(self._query(name, 'A', {'check': 'subdomain', 'name': name},
                                          SUBDOMAIN_TIMEOUT_MS))
        return result

    @staticmethod
    def _query(name: str, record_type: str, meta, timeout_ms: int = QUERY_TIMEOUT_MS) -> ProbeDescriptor:
        return ProbeDescriptor(
            url=resolve_url(name, record_type),
            purpose=ProbePurpose.LOOKUP,
            timeout_ms=timeout_ms,
            meta=meta
        )

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if not response.success or not response.body:
            return []

        data = parse_answer(response.body)
        if data is None:
            self.logger.debug(f"Unreadable DoH response from {descriptor.url}")
            return []

        answers = data.get('Answer') or []
        check = descriptor.meta['check']

        if check == 'record':
            return [self.analyze_record(ctx, descriptor.meta['type'], record) for record in answers]

        if check == 'dnssec':
            if data.get('AD'):
                return [self.create_finding(
                    FindingKind.INFO, 'DNSSEC Enabled', 'Authenticated Data', Severity.INFO,
                    'Domain has DNSSEC validation'
                )]
            if answers:
                return [self.create_finding(
                    FindingKind.INFO, 'DNSSEC Keys Found', f"{len(answers)} DNSKEY records", Severity.INFO,
                    'DNSSEC is configured'
                )]
            return [self.create_finding(
                FindingKind.WARNING, 'DNSSEC Not Enabled', ctx.target, Severity.LOW,
                'Domain lacks DNSSEC protection'
            )]

        if check == 'dmarc':
            if answers:
                return []
            return [self.create_finding(
                FindingKind.WARNING, 'Missing DMARC', f"_dmarc.{ctx.target}", Severity.MEDIUM,
                'No DMARC record found - email spoofing possible'
            )]

        if check == 'subdomain' and answers:
            ctx.state['resolved'].append({'subdomain': descriptor.meta['name'], 'ip': answers[0].get('data')})
        return []

    def analyze_record(self, ctx: RunContext, record_type: str, record: Dict) -> Finding:
        """One finding per answer record."""
        data = str(record.get('data') or '')
        ttl = record.get('TTL')
        kind = FindingKind.INFO
        title = f"{record_type} Record"
        value = data
        subtitle = f"TTL: {ttl if ttl is not None else 'N/A'}"
        severity = Severity.INFO

        if record_type in ('A', 'AAAA'):
            subtitle = f"IP Address (TTL: {ttl}s)"

        elif record_type == 'MX':
            parts = data.split(' ')
            title = 'Mail Server (MX)'
            subtitle = f"Priority: {parts[0] or 'N/A'}"
            value = ' '.join(parts[1:]) or data

        elif record_type == 'TXT':
            txt = data.lower()
            if 'v=spf' in txt:
                title = 'SPF Record'
                if '+all' in txt:
                    severity = Severity.HIGH
                    subtitle = 'Weak SPF: +all allows any sender!'
                elif '~all' in txt:
                    severity = Severity.MEDIUM
                    subtitle = 'Soft fail SPF (~all)'
            elif 'v=dmarc' in txt:
                title = 'DMARC Record'
                if 'p=none' in txt:
                    severity = Severity.MEDIUM
                    subtitle = 'DMARC policy set to none'
            elif 'v=dkim' in txt:
                title = 'DKIM Record'
            elif any(marker in txt for marker in VERIFICATION_MARKERS):
                title = 'Domain Verification'
                subtitle = 'Third-party service verification'

        elif record_type == 'CNAME':
            title = 'CNAME Record'
            subtitle = 'Alias for another domain'
            target = ctx.registry.first('takeover_cnames', data)
            if target:
                kind = FindingKind.VULNERABILITY
                severity = Severity.HIGH
                subtitle = 'Potential subdomain takeover!'

        elif record_type in RECORD_TITLES:
            title, subtitle = RECORD_TITLES[record_type]

        return self.create_finding(kind, title, value, severity, subtitle, record_type=record_type, ttl=ttl)

    def finalize(self, ctx: RunContext) -> List[Finding]:
        findings = []

        if ctx.options.get('zoneTransfer'):
            findings.append(self.create_finding(
                FindingKind.INFO, 'Zone Transfer Check', 'Limited check (DNS-over-HTTPS)', Severity.INFO,
                'Full AXFR check requires specialized tools'
            ))

        resolved = ctx.state['resolved']
        if resolved:
            findings.append(self.create_finding(
                FindingKind.DOMAIN,
                'Subdomains Found (DNS)',
                f"{len(resolved)} subdomains resolved",
                Severity.INFO,
                ', '.join(r['subdomain'] for r in resolved[:5]),
                subdomains=resolved
            ))
        return findings
