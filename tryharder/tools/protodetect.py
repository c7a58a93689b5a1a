"""
ProtoDetect - Protocol & service detection on non-standard ports

Checks:
- Which HTTP(S) protocol answers on default and custom ports
- Admin and management interfaces (phpMyAdmin, Jenkins, Kibana, ...)
- Common service endpoints (Elasticsearch, Consul, etcd, ...)
- WebSocket upgrade support

A URL that several checks need is requested once and every check reads
the same response.
"""

from typing import Dict, List, Optional

from tryharder.engine.candidates import normalize_host, parse_ports, union
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


DEFAULT_PORTS = [80, 443, 8080, 8443, 3000, 5000, 8000, 8888, 9000, 9090]

ADMIN_INTERFACES = {
    'phpMyAdmin': {
        'paths': ['/phpmyadmin/', '/pma/', '/mysql/', '/db/'],
        'signatures': ['phpMyAdmin', 'pma_'],
    },
    'Adminer': {
        'paths': ['/adminer/', '/adminer.php'],
        'signatures': ['Adminer', 'adminer'],
    },
    'pgAdmin': {
        'paths': ['/pgadmin/', '/pgadmin4/'],
        'signatures': ['pgAdmin', 'pgadmin'],
    },
    'Kibana': {
        'paths': ['/', '/_plugin/kibana/'],
        'ports': [5601],
        'signatures': ['kibana', 'kbn-name'],
    },
    'Jenkins': {
        'paths': ['/', '/jenkins/'],
        'ports': [8080],
        'signatures': ['Jenkins', 'jenkins-session', 'X-Jenkins'],
    },
    'Grafana': {
        'paths': ['/login', '/'],
        'ports': [3000],
        'signatures': ['grafana', 'Grafana'],
    },
    'Prometheus': {
        'paths': ['/metrics', '/graph'],
        'ports': [9090],
        'signatures': ['prometheus', 'Prometheus'],
    },
    'RabbitMQ': {
        'paths': ['/', '/api/'],
        'ports': [15672],
        'signatures': ['RabbitMQ', 'rabbitmq'],
    },
    'Docker': {
        'paths': ['/v1.40/containers/json', '/version', '/_ping'],
        'ports': [2375, 2376],
        'signatures': ['docker', 'Docker', 'ApiVersion'],
    },
    'Kubernetes': {
        'paths': ['/api', '/api/v1', '/healthz'],
        'ports': [6443, 8443, 10250],
        'signatures': ['kubernetes', 'k8s'],
    },
}
ADMIN_DEFAULT_PORTS = [80, 443, 8080]

COMMON_SERVICES = [
    ('Elasticsearch', 9200, '/'),
    ('Kibana', 5601, '/'),
    ('Grafana', 3000, '/login'),
    ('Prometheus', 9090, '/graph'),
    ('Jenkins', 8080, '/'),
    ('RabbitMQ Management', 15672, '/'),
    ('CouchDB', 5984, '/'),
    ('Consul', 8500, '/v1/agent/self'),
    ('etcd', 2379, '/version'),
    ('Memcached Stats', 11211, '/'),
    ('Redis Commander', 8081, '/'),
    ('Mongo Express', 8081, '/'),
    ('Traefik Dashboard', 8080, '/dashboard/'),
    ('Portainer', 9000, '/'),
    ('Kubernetes Dashboard', 8443, '/'),
]

WEBSOCKET_PATHS = ['/', '/ws', '/websocket', '/socket.io/', '/sockjs/']
WEBSOCKET_PORTS = [80, 443, 8080, 3000]
WEBSOCKET_HEADERS = {
    'Upgrade': 'websocket',
    'Connection': 'Upgrade',
    'Sec-WebSocket-Key': 'dGhlIHNhbXBsZSBub25jZQ==',
    'Sec-WebSocket-Version': '13',
}

TLS_ONLY_PORTS = {443, 8443}
PROTOCOL_TIMEOUT_MS = 5000
ADMIN_TIMEOUT_MS = 5000
SERVICE_TIMEOUT_MS = 3000
WEBSOCKET_TIMEOUT_MS = 3000


def scheme_for(port: int) -> str:
    return 'https' if port in TLS_ONLY_PORTS else 'http'


def identify_service(body: str, header_text: str, port: int) -> Dict[str, object]:
    """Name, description and severity of whatever answered on a port."""
    body_lower = body.lower()
    headers_lower = header_text.lower()

    for name, interface in ADMIN_INTERFACES.items():
        if port not in interface.get('ports', []):
            continue
        for sig in interface['signatures']:
            if sig.lower() in body_lower or sig.lower() in headers_lower:
                return {'name': name, 'description': 'Management interface detected',
                        'severity': Severity.HIGH}

    if 'cluster_name' in body_lower and 'version' in body_lower:
        return {'name': 'Elasticsearch', 'description': 'Search engine API', 'severity': Severity.HIGH}

    if '"status"' in body_lower or '"data"' in body_lower or '"error"' in body_lower:
        return {'name': 'API Endpoint', 'description': 'JSON API detected', 'severity': Severity.MEDIUM}

    return {'name': 'HTTP Service', 'description': f"Web service on port {port}", 'severity': Severity.INFO}


class ProtoDetect(BaseTool):
    """Service detection over HTTP(S)."""

    name = 'protodetect'
    title = 'ProtoDetect'
    description = 'Protocol & service detection on non-standard ports'
    target_option = 'host'
    defaults = {
        'ports': '',
        'detectProtocols': True,
        'adminInterfaces': True,
        'commonServices': True,
        'websocket': True,
    }

    def normalize_target(self, value: str) -> str:
        return normalize_host(value)

    async def prepare(self, ctx: RunContext):
        ctx.state['protocol_ports'] = set()
        ctx.state['websocket_ports'] = set()

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        host = ctx.target
        options = ctx.options
        checks = []

        if options.get('detectProtocols'):
            for port in union(parse_ports(options.get('ports')), DEFAULT_PORTS):
                protocols = ['https'] if port in TLS_ONLY_PORTS else ['http', 'https']
                for protocol in protocols:
                    checks.append((f"{protocol}://{host}:{port}/", {}, PROTOCOL_TIMEOUT_MS,
                                   {'type': 'protocol', 'port': port, 'protocol': protocol}))

        if options.get('adminInterfaces'):
            for name, interface in ADMIN_INTERFACES.items():
                for port in interface.get('ports', ADMIN_DEFAULT_PORTS):
                    for path in interface['paths']:
                        checks.append((f"{scheme_for(port)}://{host}:{port}{path}", {}, ADMIN_TIMEOUT_MS,
                                       {'type': 'admin', 'name': name}))

        if options.get('commonServices'):
            for name, port, path in COMMON_SERVICES:
                checks.append((f"{scheme_for(port)}://{host}:{port}{path}", {}, SERVICE_TIMEOUT_MS,
                               {'type': 'service', 'name': name, 'port': port}))

        if options.get('websocket'):
            for port in WEBSOCKET_PORTS:
                secure = port == 443
                for path in WEBSOCKET_PATHS:
                    http_url = f"{'https' if secure else 'http'}://{host}:{port}{path}"
                    ws_url = f"{'wss' if secure else 'ws'}://{host}:{port}{path}"
                    checks.append((http_url, WEBSOCKET_HEADERS, WEBSOCKET_TIMEOUT_MS,
                                   {'type': 'websocket', 'port': port, 'ws_url': ws_url}))

        return self._merge(checks)

    @staticmethod
    def _merge(checks) -> List[ProbeDescriptor]:
        """One descriptor per distinct request, carrying every check that needs it."""
        merged: Dict[tuple, dict] = {}
        for url, headers, timeout_ms, check in checks:
            key = (url, tuple(sorted(headers.items())))
            entry = merged.setdefault(key, {'url': url, 'headers': headers, 'timeout': 0, 'checks': []})
            entry['timeout'] = max(entry['timeout'], timeout_ms)
            entry['checks'].append(check)

        return [
            ProbeDescriptor(
                url=entry['url'],
                headers=entry['headers'],
                purpose=ProbePurpose.SERVICE_PROBE,
                timeout_ms=entry['timeout'],
                meta={'checks': tuple(entry['checks'])}
            )
            for entry in merged.values()
        ]

    def should_skip(self, ctx: RunContext, descriptor: ProbeDescriptor) -> bool:
        return all(self._settled(ctx, check) for check in descriptor.meta['checks'])

    @staticmethod
    def _settled(ctx: RunContext, check) -> bool:
        # Protocol and WebSocket checks stop at the first hit per port
        if check['type'] == 'protocol':
            return check['port'] in ctx.state['protocol_ports']
        if check['type'] == 'websocket':
            return check['port'] in ctx.state['websocket_ports']
        return False

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if not response.success:
            return []

        findings = []
        for check in descriptor.meta['checks']:
            if self._settled(ctx, check):
                continue
            try:
                finding = self._check(ctx, check, descriptor, response)
            except Exception as e:
                self.logger.error(f"{check['type']} check failed on {descriptor.url}: {e}")
                continue
            if finding:
                findings.append(finding)
        return findings

    def _check(self, ctx: RunContext, check, descriptor, response) -> Optional[Finding]:
        check_type = check['type']

        if check_type == 'protocol':
            port = check['port']
            ctx.state['protocol_ports'].add(port)
            service = identify_service(response.body, response.header_text, port)
            return self.create_finding(
                FindingKind.SERVICE,
                service['name'],
                f"{ctx.target}:{port}",
                service['severity'],
                f"{check['protocol'].upper()} - {service['description']}",
                port=port,
                protocol=check['protocol'],
                service=service['name']
            )

        if check_type == 'admin':
            if response.status != 200:
                return None
            signatures = ADMIN_INTERFACES[check['name']]['signatures']
            body = response.body.lower()
            if not any(sig.lower() in body for sig in signatures):
                return None
            return self.create_finding(
                FindingKind.VULNERABILITY,
                check['name'],
                descriptor.url,
                Severity.CRITICAL,
                'Admin interface exposed!'
            )

        if check_type == 'service':
            if response.status != 200:
                return None
            return self.create_finding(
                FindingKind.SERVICE,
                check['name'],
                descriptor.url,
                Severity.MEDIUM,
                f"Service accessible on port {check['port']}"
            )

        if check_type == 'websocket':
            if 'upgrade' not in response.headers and response.status != 101:
                return None
            ctx.state['websocket_ports'].add(check['port'])
            return self.create_finding(
                FindingKind.SERVICE,
                'WebSocket Endpoint',
                check['ws_url'],
                Severity.INFO,
                'WebSocket service detected'
            )

        return None
