"""
CertWatch - SSL/TLS certificate analysis & subdomain discovery

Checks:
- Certificates logged in crt.sh, grouped by issuer
- Wildcard certificates and names from Certificate Transparency
- HSTS, Expect-CT and HPKP on the live HTTPS endpoint
"""

import json
import re
from collections import OrderedDict
from typing import List
from urllib.parse import quote

from tryharder.engine.candidates import normalize_domain
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


CRTSH_URL = 'https://crt.sh/?q={domain}&output=json'
CRTSH_TIMEOUT_MS = 30000
HTTPS_TIMEOUT_MS = 10000

ONE_YEAR = 31536000
MAX_AGE_PATTERN = re.compile(r'max-age=(\d+)', re.IGNORECASE)
MAX_ISSUER_LENGTH = 60
MAX_LISTED_DOMAINS = 100


class CertWatch(BaseTool):
    """Certificate transparency and HTTPS hardening review."""

    name = 'certwatch'
    title = 'CertWatch'
    description = 'SSL/TLS certificate analysis & subdomain discovery'
    target_option = 'domain'
    defaults = {'certificates': True, 'ctLogs': True, 'analyze': True}

    def normalize_target(self, value: str) -> str:
        return normalize_domain(value)

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        result = []
        if ctx.options.get('certificates'):
            result.append(ProbeDescriptor(
                url=CRTSH_URL.format(domain=quote(ctx.target)),
                purpose=ProbePurpose.LOOKUP,
                timeout_ms=CRTSH_TIMEOUT_MS,
                meta={'check': 'certificates'}
            ))
        if ctx.options.get('analyze'):
            result.append(ProbeDescriptor(
                url=f"https://{ctx.target}/",
                purpose=ProbePurpose.FINGERPRINT,
                timeout_ms=HTTPS_TIMEOUT_MS,
                meta={'check': 'analyze'}
            ))
        return result

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if descriptor.meta['check'] == 'certificates':
            if not response.success or not response.body:
                return []
            try:
                certs = json.loads(response.body)
            except ValueError as e:
                self.logger.warning(f"Unreadable crt.sh response for {ctx.target}: {e}")
                return []
            if not isinstance(certs, list):
                return []
            return self.summarize_certificates(certs)

        if not response.success:
            return [self.create_finding(
                FindingKind.WARNING, 'Certificate Check Failed', ctx.target, Severity.MEDIUM,
                'Could not connect via HTTPS'
            )]
        return self.analyze_headers(ctx.target, response)

    def summarize_certificates(self, certs: list) -> List[Finding]:
        issuers = OrderedDict()
        domains = OrderedDict()

        for cert in certs:
            if not isinstance(cert, dict):
                continue
            issuer = cert.get('issuer_name') or 'Unknown'
            issuers[issuer] = issuers.get(issuer, 0) + 1

            if cert.get('common_name'):
                domains[cert['common_name'].lower()] = True
            for name in (cert.get('name_value') or '').split('\n'):
                name = name.lower().strip()
                if name:
                    domains[name] = True

        findings = [self.create_finding(
            FindingKind.INFO, 'Certificates Found', f"{len(certs)} certificates", Severity.INFO,
            f"From {len(issuers)} different issuers"
        )]

        for issuer, count in issuers.items():
            findings.append(self.create_finding(
                FindingKind.INFO,
                'Certificate Issuer',
                self.truncate(issuer, MAX_ISSUER_LENGTH + 3),
                Severity.INFO,
                f"{count} certificates issued"
            ))

        wildcards = [d for d in domains if d.startswith('*')]
        if wildcards:
            findings.append(self.create_finding(
                FindingKind.WARNING, 'Wildcard Certificates', ', '.join(wildcards[:5]), Severity.LOW,
                f"{len(wildcards)} wildcard certificates found"
            ))

        names = [d for d in domains if not d.startswith('*')]
        findings.append(self.create_finding(
            FindingKind.DOMAIN,
            'Subdomains from CT Logs',
            f"{len(names)} unique domains",
            Severity.INFO,
            'Discovered via Certificate Transparency',
            domains=names[:MAX_LISTED_DOMAINS]
        ))
        return findings

    def analyze_headers(self, domain: str, response) -> List[Finding]:
        findings = []

        hsts = response.header('strict-transport-security')
        if hsts:
            match = MAX_AGE_PATTERN.search(hsts)
            max_age = int(match.group(1)) if match else 0
            if max_age < ONE_YEAR:
                findings.append(self.create_finding(
                    FindingKind.WARNING, 'HSTS max-age Too Short', f"{max_age} seconds", Severity.MEDIUM,
                    f"Should be at least {ONE_YEAR} (1 year)"
                ))
            else:
                findings.append(self.create_finding(
                    FindingKind.INFO, 'HSTS Configured', hsts, Severity.INFO, 'HTTPS enforced via HSTS'
                ))

            if 'includesubdomains' not in hsts.lower():
                findings.append(self.create_finding(
                    FindingKind.WARNING, 'HSTS Missing includeSubDomains', hsts, Severity.LOW,
                    'Subdomains may not be protected'
                ))
            if 'preload' not in hsts.lower():
                findings.append(self.create_finding(
                    FindingKind.INFO, 'HSTS Preload Not Set', domain, Severity.INFO,
                    'Consider adding preload directive'
                ))
        else:
            findings.append(self.create_finding(
                FindingKind.WARNING, 'Missing HSTS Header', domain, Severity.HIGH,
                'HTTPS not enforced via HSTS'
            ))

        expect_ct = response.header('expect-ct')
        if expect_ct:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Expect-CT Header', expect_ct, Severity.INFO,
                'Certificate Transparency enforcement'
            ))

        hpkp = response.header('public-key-pins')
        if hpkp:
            findings.append(self.create_finding(
                FindingKind.WARNING, 'HPKP Header Found', hpkp[:100], Severity.MEDIUM,
                'Deprecated and can cause issues'
            ))
        return findings

    def finalize(self, ctx: RunContext) -> List[Finding]:
        if not ctx.options.get('ctLogs'):
            return []
        return [self.create_finding(
            FindingKind.INFO, 'CT Log Sources', 'crt.sh queried', Severity.INFO,
            'Certificate Transparency logs checked'
        )]
