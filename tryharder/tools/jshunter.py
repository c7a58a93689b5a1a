"""
JSHunter - Extract endpoints, secrets, and sensitive data from JavaScript

Sources:
- Inline <script> bodies of the page
- The page markup itself
- External scripts (deep scan, fetched through the engine)

Extracts API endpoints, secret and token shapes, domains, paths,
e-mail addresses and IP addresses.
"""

from typing import List, Optional

from tryharder.engine.classifier import CODE_SCAN_LIMIT, MARKUP_SCAN_LIMIT
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.engine.parser import HTMLPage
from tryharder.tools.base import BaseTool, RunContext


# (value prefix, secret type); first match wins
SECRET_TYPES = [
    ('AKIA', 'AWS Access Key'),
    ('ghp_', 'GitHub Token'),
    ('gho_', 'GitHub Token'),
    ('github_pat_', 'GitHub Token'),
    ('sk-', 'OpenAI API Key'),
    ('sk_live_', 'Stripe Live Key'),
    ('sk_test_', 'Stripe Test Key'),
    ('eyJ', 'JWT Token'),
    ('xox', 'Slack Token'),
    ('SG.', 'SendGrid Key'),
]

# Grouped-view labels
GROUPS = {
    'endpoints': 'API Endpoints',
    'secrets': 'Secrets & Keys',
    'domains': 'Domains',
    'paths': 'Paths',
    'emails': 'Emails',
    'ips': 'IP Addresses',
}

# Category -> option that can switch it off
CATEGORY_OPTIONS = {
    'endpoints': 'extractEndpoints',
    'secrets': 'extractSecrets',
    'domains': 'extractDomains',
    'paths': 'extractPaths',
}

MIN_SECRET_LENGTH = 8
MIN_PATH_LENGTH = 4
PAGE_TIMEOUT_MS = 15000


def secret_type(value: str) -> str:
    for prefix, label in SECRET_TYPES:
        if value.startswith(prefix):
            return label
    return 'Potential Secret'


class JSHunter(BaseTool):
    """Static analysis of a page's scripts and markup."""

    name = 'jshunter'
    title = 'JSHunter'
    description = 'Extract endpoints, secrets, and sensitive data from JavaScript'
    defaults = {
        'deepScan': False,
        'extractEndpoints': True,
        'extractSecrets': True,
        'extractDomains': True,
        'extractPaths': True,
    }

    async def prepare(self, ctx: RunContext):
        page = ctx.page
        if page is None:
            response = await ctx.client.send('GET', ctx.target, timeout_ms=PAGE_TIMEOUT_MS)
            if not response.success:
                ctx.abort('target unreachable')
                return
            page = HTMLPage(response.body, response.final_url or ctx.target)
            ctx.page = page

        scripts = page.get_scripts()
        if not scripts:
            ctx.abort('No scripts found on page')
            return
        ctx.state['scripts'] = scripts
        self.logger.info(f"{len(scripts)} scripts on {ctx.target}")

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        if not ctx.options.get('deepScan'):
            return []
        return [
            ProbeDescriptor(
                url=script.src,
                purpose=ProbePurpose.SCRIPT_FETCH,
                meta={'source': script.src}
            )
            for script in ctx.state['scripts']
            if script.src and not script.inline
        ]

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if not response.success:
            self.logger.debug(f"Could not fetch {descriptor.url}: {response.error}")
            return []
        return self.analyze(ctx, response.body, descriptor.meta['source'], CODE_SCAN_LIMIT)

    def finalize(self, ctx: RunContext) -> List[Finding]:
        findings = []
        for script in ctx.state['scripts']:
            if script.inline and script.content:
                findings.extend(self.analyze(ctx, script.content, 'inline', CODE_SCAN_LIMIT))

        info = ctx.page.get_page_info()
        if info.document_element:
            findings.extend(self.analyze(ctx, info.document_element, 'HTML', MARKUP_SCAN_LIMIT))
        return findings

    def analyze(self, ctx: RunContext, content: str, source: str, limit: int) -> List[Finding]:
        """Findings for every category in one piece of content."""
        if not content:
            return []

        findings = []
        for category in GROUPS:
            option = CATEGORY_OPTIONS.get(category)
            if option and ctx.options.get(option) is False:
                continue
            for _, value in ctx.registry.scan(category, content, limit):
                finding = self._build(category, value, source)
                if finding:
                    findings.append(finding)
        return findings

    def _build(self, category: str, value: str, source: str) -> Optional[Finding]:
        subtitle = f"Found in {source}"
        group = GROUPS[category]

        if category == 'endpoints':
            return self.create_finding(FindingKind.ENDPOINT, 'API Endpoint', value, Severity.INFO,
                                       subtitle, category=group)

        if category == 'secrets':
            if len(value) < MIN_SECRET_LENGTH:
                return None
            kind = secret_type(value)
            return self.create_finding(
                FindingKind.SECRET,
                kind,
                self.truncate(value, 50),
                Severity.MEDIUM if kind == 'JWT Token' else Severity.HIGH,
                subtitle,
                category=group
            )

        if category == 'domains':
            cleaned = value.strip('"\'`')
            for scheme in ('https://', 'http://'):
                if cleaned.startswith(scheme):
                    cleaned = cleaned[len(scheme):]
            if not cleaned:
                return None
            return self.create_finding(FindingKind.DOMAIN, 'Domain', cleaned, Severity.INFO,
                                       subtitle, category=group)

        if category == 'paths':
            if len(value) < MIN_PATH_LENGTH:
                return None
            return self.create_finding(FindingKind.ENDPOINT, 'Path', value, Severity.INFO,
                                       subtitle, category=group)

        if category == 'emails':
            return self.create_finding(FindingKind.INFO, 'Email Address', value, Severity.LOW,
                                       subtitle, category=group)

        if category == 'ips':
            if value.startswith(('0.', '127.')):
                return None
            return self.create_finding(FindingKind.INFO, 'IP Address', value, Severity.LOW,
                                       subtitle, category=group)

        return None
