"""
SubRecon - Subdomain enumeration

Sources:
- Certificate transparency (crt.sh JSON API)
- Built-in prefix word list

Optionally checks each subdomain for a live web server (HTTPS first, then
HTTP) and for unclaimed-hosting takeover fingerprints.
"""

import json
from typing import List, Optional

from tryharder.engine.candidates import normalize_domain, union
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


WORDLIST = [
    'www', 'mail', 'ftp', 'admin', 'blog', 'shop', 'store', 'api', 'dev', 'staging',
    'test', 'beta', 'alpha', 'demo', 'app', 'apps', 'mobile', 'm', 'cdn', 'static',
    'assets', 'images', 'img', 'media', 'video', 'download', 'downloads', 'upload',
    'portal', 'login', 'auth', 'secure', 'ssl', 'vpn', 'remote', 'gateway',
    'dashboard', 'panel', 'control', 'console', 'manage', 'management',
    'support', 'help', 'docs', 'documentation', 'wiki', 'forum', 'community',
    'status', 'monitor', 'health', 'metrics', 'analytics', 'stats',
    'smtp', 'pop', 'imap', 'webmail', 'email', 'mx', 'ns', 'dns',
    'db', 'database', 'mysql', 'postgres', 'mongo', 'redis', 'cache',
    'web', 'web1', 'web2', 'server', 'server1', 'server2', 'node', 'node1',
    'prod', 'production', 'stage', 'uat', 'qa', 'sandbox', 'internal',
    'git', 'gitlab', 'github', 'bitbucket', 'jenkins', 'ci', 'build',
    'aws', 'azure', 'cloud', 'gcp', 's3', 'storage', 'backup',
    'api1', 'api2', 'v1', 'v2', 'graphql', 'rest', 'soap', 'rpc',
    'news', 'events', 'calendar', 'jobs', 'careers', 'about', 'contact',
    'payment', 'pay', 'checkout', 'cart', 'order', 'orders', 'invoice',
    'crm', 'erp', 'hr', 'finance', 'sales', 'marketing',
    'proxy', 'edge', 'lb', 'loadbalancer', 'nginx', 'apache',
    'search', 'elastic', 'solr', 'kibana', 'grafana', 'prometheus'
]

CRTSH_URL = 'https://crt.sh/?q=%25.{domain}&output=json'
CRTSH_TIMEOUT_MS = 15000
ALIVE_TIMEOUT_MS = 5000


def parse_crtsh(body: str, domain: str) -> List[str]:
    """Subdomain names from a crt.sh JSON response. Wildcards are dropped."""
    names = []
    for entry in json.loads(body):
        for name in entry['name_value'].split('\n'):
            name = name.lower().strip()
            if name.endswith(domain) and not name.startswith('*'):
                names.append(name)
    return union(names)


class SubRecon(BaseTool):
    """Subdomain enumeration with alive and takeover checks."""

    name = 'subrecon'
    title = 'SubRecon'
    description = 'Subdomain enumeration via CT logs and word list'
    target_option = 'domain'
    defaults = {'crtsh': True, 'wordlist': True, 'aliveCheck': True, 'takeover': True}

    def normalize_target(self, value: str) -> str:
        return normalize_domain(value)

    async def prepare(self, ctx: RunContext):
        ctx.state['ct_names'] = []
        ctx.state['alive'] = {}
        ctx.state['phase'] = None

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        if ctx.options.get('crtsh'):
            ctx.state['phase'] = 'lookup'
            return [ProbeDescriptor(
                url=CRTSH_URL.format(domain=ctx.target),
                purpose=ProbePurpose.LOOKUP,
                timeout_ms=CRTSH_TIMEOUT_MS
            )]
        return self._host_phase(ctx)

    def follow_up(self, ctx: RunContext) -> List[ProbeDescriptor]:
        if ctx.state['phase'] == 'lookup':
            return self._host_phase(ctx)
        if ctx.state['phase'] == 'https':
            # HTTP only for hosts that did not answer over HTTPS
            ctx.state['phase'] = 'http'
            return [
                self._alive_probe(sub, 'http')
                for sub in self.subdomains(ctx)
                if sub not in ctx.state['alive']
            ]
        return []

    def subdomains(self, ctx: RunContext) -> List[str]:
        prefixes = [f"{prefix}.{ctx.target}" for prefix in WORDLIST] if ctx.options.get('wordlist') else []
        return union(ctx.state['ct_names'], prefixes)

    def _host_phase(self, ctx: RunContext) -> List[ProbeDescriptor]:
        if not ctx.options.get('aliveCheck'):
            ctx.state['phase'] = 'done'
            return []
        ctx.state['phase'] = 'https'
        return [self._alive_probe(sub, 'https') for sub in self.subdomains(ctx)]

    @staticmethod
    def _alive_probe(subdomain: str, scheme: str) -> ProbeDescriptor:
        return ProbeDescriptor(
            url=f"{scheme}://{subdomain}",
            purpose=ProbePurpose.HOST_PROBE,
            timeout_ms=ALIVE_TIMEOUT_MS,
            meta={'subdomain': subdomain, 'scheme': scheme}
        )

    def classify(self, descriptor, response, diff, matches, ctx) -> Optional[Finding]:
        if descriptor.purpose == ProbePurpose.LOOKUP:
            self._record_lookup(ctx, response)
            return None

        if not response.success:
            return None

        subdomain = descriptor.meta['subdomain']
        ctx.state['alive'][subdomain] = response.status

        provider = None
        if ctx.options.get('takeover') and response.body:
            signature = ctx.registry.first('takeover', response.body)
            provider = signature.label if signature else None

        subtitle = f"{response.status} - No IP"
        if provider:
            subtitle += ' [TAKEOVER POSSIBLE]'

        return self.create_finding(
            FindingKind.DOMAIN,
            subdomain,
            subdomain,
            Severity.HIGH if provider else Severity.INFO,
            subtitle,
            subdomain=subdomain,
            alive=True,
            status=response.status,
            takeover=bool(provider),
            takeoverService=provider
        )

    def _record_lookup(self, ctx: RunContext, response):
        if not response.success or not response.body:
            self.logger.warning(f"crt.sh query failed: {response.error or 'empty response'}")
            return
        try:
            ctx.state['ct_names'] = parse_crtsh(response.body, ctx.target)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self.logger.warning(f"crt.sh response not parseable: {e}")
            return
        self.logger.info(f"crt.sh returned {len(ctx.state['ct_names'])} names")

    def finalize(self, ctx: RunContext) -> List[Finding]:
        if ctx.options.get('aliveCheck'):
            return []
        return [
            self.create_finding(FindingKind.DOMAIN, sub, sub, Severity.INFO, 'Not checked')
            for sub in self.subdomains(ctx)
        ]

    def sort_key(self, finding: Finding):
        return (finding.title,)
