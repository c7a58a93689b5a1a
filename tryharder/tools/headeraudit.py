"""
HeaderAudit - Security headers analysis and recommendations

Checks:
- Missing, weak and present security headers
- Headers that disclose server software
- Cookie flags and CORS configuration
"""

import re
from typing import Callable, Dict, List, Tuple

from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


SECURITY_HEADERS = {
    'strict-transport-security': {
        'name': 'Strict-Transport-Security (HSTS)',
        'description': 'Enforces HTTPS connections',
        'severity': Severity.HIGH,
        'recommendation': 'Add: Strict-Transport-Security: max-age=31536000; includeSubDomains; preload',
    },
    'content-security-policy': {
        'name': 'Content-Security-Policy (CSP)',
        'description': 'Prevents XSS and data injection attacks',
        'severity': Severity.HIGH,
        'recommendation': 'Add a strict CSP header to control resource loading',
    },
    'x-content-type-options': {
        'name': 'X-Content-Type-Options',
        'description': 'Prevents MIME type sniffing',
        'severity': Severity.MEDIUM,
        'recommendation': 'Add: X-Content-Type-Options: nosniff',
    },
    'x-frame-options': {
        'name': 'X-Frame-Options',
        'description': 'Prevents clickjacking attacks',
        'severity': Severity.MEDIUM,
        'recommendation': 'Add: X-Frame-Options: DENY or SAMEORIGIN',
    },
    'x-xss-protection': {
        'name': 'X-XSS-Protection',
        'description': 'Legacy XSS filter (use CSP instead)',
        'severity': Severity.LOW,
        'recommendation': 'Add: X-XSS-Protection: 1; mode=block (or rely on CSP)',
    },
    'referrer-policy': {
        'name': 'Referrer-Policy',
        'description': 'Controls referrer information leakage',
        'severity': Severity.LOW,
        'recommendation': 'Add: Referrer-Policy: strict-origin-when-cross-origin',
    },
    'permissions-policy': {
        'name': 'Permissions-Policy',
        'description': 'Controls browser features and APIs',
        'severity': Severity.LOW,
        'recommendation': 'Add: Permissions-Policy: geolocation=(), camera=(), microphone=()',
    },
    'cache-control': {
        'name': 'Cache-Control',
        'description': 'Controls caching of sensitive data',
        'severity': Severity.LOW,
        'recommendation': 'For sensitive pages: Cache-Control: no-store, no-cache, must-revalidate',
    },
}

INFO_LEAK_HEADERS = [
    'server', 'x-powered-by', 'x-aspnet-version', 'x-aspnetmvc-version',
    'x-generator', 'x-drupal-cache', 'x-varnish', 'via'
]

# header -> (is problematic, title, subtitle)
INTERESTING_HEADERS: List[Tuple[str, Callable[[str], bool], str, str]] = [
    ('set-cookie',
     lambda v: 'httponly' not in v.lower() or 'secure' not in v.lower(),
     'Cookie Security Issue', 'Cookie missing HttpOnly or Secure flag'),
    ('access-control-allow-origin',
     lambda v: v == '*',
     'CORS Wildcard', 'Access-Control-Allow-Origin allows any origin'),
    ('access-control-allow-credentials',
     lambda v: v.lower() == 'true',
     'CORS Credentials', 'Credentials allowed with CORS'),
]

ONE_YEAR = 31536000
MAX_AGE_PATTERN = re.compile(r'max-age=(\d+)')
PAGE_TIMEOUT_MS = 10000


def analyze_header_value(name: str, value: str) -> List[str]:
    """Weaknesses in a present security header."""
    issues = []
    lower = value.lower()

    if name == 'strict-transport-security':
        if 'max-age' not in lower:
            issues.append('Missing max-age directive')
        else:
            match = MAX_AGE_PATTERN.search(lower)
            if int(match.group(1) if match else 0) < ONE_YEAR:
                issues.append(f"max-age should be at least 1 year ({ONE_YEAR})")
        if 'includesubdomains' not in lower:
            issues.append('Consider adding includeSubDomains')

    elif name == 'content-security-policy':
        if "'unsafe-inline'" in lower:
            issues.append("Contains 'unsafe-inline' which weakens XSS protection")
        if "'unsafe-eval'" in lower:
            issues.append("Contains 'unsafe-eval' which allows code execution")
        if '*' in lower:
            issues.append('Contains wildcard (*) which is too permissive')

    elif name == 'x-frame-options':
        if lower not in ('deny', 'sameorigin'):
            issues.append('Should be DENY or SAMEORIGIN')

    elif name == 'x-content-type-options':
        if lower != 'nosniff':
            issues.append('Value should be "nosniff"')

    return issues


class HeaderAudit(BaseTool):
    """Single-request response header audit."""

    name = 'headeraudit'
    title = 'HeaderAudit'
    description = 'Security headers analysis and recommendations'

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        return [ProbeDescriptor(url=ctx.target, purpose=ProbePurpose.FINGERPRINT, timeout_ms=PAGE_TIMEOUT_MS)]

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if not response.success:
            ctx.message = 'Failed to reach target'
            return []

        headers: Dict[str, str] = dict(response.headers)
        findings = []

        for header, config in SECURITY_HEADERS.items():
            value = headers.get(header)
            if value is None:
                findings.append(self.create_finding(
                    FindingKind.WARNING,
                    f"Missing: {config['name']}",
                    config['recommendation'],
                    config['severity'],
                    config['description'],
                    header=header
                ))
                continue

            issues = analyze_header_value(header, value)
            if issues:
                findings.append(self.create_finding(
                    FindingKind.WARNING, f"Weak: {config['name']}", value, Severity.MEDIUM,
                    '; '.join(issues), header=header
                ))
            else:
                findings.append(self.create_finding(
                    FindingKind.INFO, f"Present: {config['name']}", value, Severity.INFO,
                    'Header is configured', header=header
                ))

        for header in INFO_LEAK_HEADERS:
            if header in headers:
                findings.append(self.create_finding(
                    FindingKind.WARNING,
                    f"Info Leak: {header}",
                    f"{header}: {headers[header]}",
                    Severity.LOW,
                    'This header reveals server information',
                    header=header
                ))

        for header, is_problem, title, subtitle in INTERESTING_HEADERS:
            value = headers.get(header)
            if value is not None and is_problem(value):
                findings.append(self.create_finding(
                    FindingKind.WARNING, title, value, Severity.MEDIUM, subtitle, header=header
                ))

        return findings
