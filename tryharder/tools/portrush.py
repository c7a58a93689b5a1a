"""
PortRush - Fast async port probing over HTTP(S)

Port state is inferred, not measured: a port counts as open when it
answers HTTP, or when the request fails quickly for a reason other than a
refusal, a resolution error or a timeout. Ports are probed in concurrent
batches.
"""

from typing import List, Optional

from tryharder.engine.candidates import normalize_host, parse_ports
from tryharder.engine.classifier import port_open_rule
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


PRESETS = {
    'common': [21, 22, 23, 25, 53, 80, 110, 111, 135, 139, 143, 443, 445, 993, 995,
               1723, 3306, 3389, 5432, 8080],
    'web': [80, 443, 8080, 8443, 8000, 8888, 9000, 9090, 9443, 3000, 5000],
    'top100': [
        7, 9, 13, 21, 22, 23, 25, 26, 37, 53, 79, 80, 81, 88, 106, 110, 111, 113, 119, 135,
        139, 143, 144, 179, 199, 389, 427, 443, 444, 445, 465, 513, 514, 515, 543, 544, 548,
        554, 587, 631, 646, 873, 990, 993, 995, 1025, 1026, 1027, 1028, 1029, 1110, 1433, 1720,
        1723, 1755, 1900, 2000, 2001, 2049, 2121, 2717, 3000, 3128, 3306, 3389, 3986, 4899, 5000,
        5009, 5051, 5060, 5101, 5190, 5357, 5432, 5631, 5666, 5800, 5900, 6000, 6001, 6646, 7070,
        8000, 8008, 8009, 8080, 8081, 8443, 8888, 9100, 9999, 10000, 32768, 49152, 49153, 49154
    ],
}

SERVICES = {
    21: 'FTP', 22: 'SSH', 23: 'Telnet', 25: 'SMTP', 53: 'DNS', 80: 'HTTP',
    110: 'POP3', 111: 'RPC', 135: 'MSRPC', 139: 'NetBIOS', 143: 'IMAP',
    443: 'HTTPS', 445: 'SMB', 993: 'IMAPS', 995: 'POP3S', 1433: 'MSSQL',
    1521: 'Oracle', 3306: 'MySQL', 3389: 'RDP', 5432: 'PostgreSQL', 5900: 'VNC',
    6379: 'Redis', 8080: 'HTTP-Proxy', 8443: 'HTTPS-Alt', 27017: 'MongoDB',
}

# Remote shells, admin consoles and unauthenticated stores
HIGH_RISK_PORTS = {21, 22, 23, 3389, 5900, 6379, 27017}
DATABASE_PORTS = {1433, 1521, 3306, 5432}
WEB_PORTS = {80, 443, 8080, 8443}

TLS_ONLY_PORTS = {443, 8443}
PROBE_TIMEOUT_MS = 2000


def port_severity(port: int) -> Severity:
    if port in HIGH_RISK_PORTS:
        return Severity.HIGH
    if port in DATABASE_PORTS:
        return Severity.MEDIUM
    if port in WEB_PORTS:
        return Severity.INFO
    return Severity.LOW


class PortRush(BaseTool):
    """HTTP-level port probing."""

    name = 'portrush'
    title = 'PortRush'
    description = 'Fast async port scanning (HTTP-inferred)'
    target_option = 'host'
    defaults = {'preset': 'common', 'customPorts': ''}
    batchable = True

    def normalize_target(self, value: str) -> str:
        return normalize_host(value)

    def ports(self, options) -> List[int]:
        preset = options.get('preset') or 'common'
        if preset == 'custom':
            return parse_ports(options.get('customPorts'))
        return list(PRESETS.get(preset, PRESETS['common']))

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        ports = self.ports(ctx.options)
        if not ports:
            ctx.message = 'No ports to scan'
            return []

        ctx.state['open'] = set()
        result = []
        for port in ports:
            protocols = ['https'] if port in TLS_ONLY_PORTS else ['http', 'https']
            for protocol in protocols:
                result.append(ProbeDescriptor(
                    url=f"{protocol}://{ctx.target}:{port}/",
                    purpose=ProbePurpose.PORT_PROBE,
                    timeout_ms=PROBE_TIMEOUT_MS,
                    meta={'port': port, 'protocol': protocol}
                ))
        return result

    def should_skip(self, ctx: RunContext, descriptor: ProbeDescriptor) -> bool:
        # HTTPS is not needed once HTTP already proved the port open
        return descriptor.meta['port'] in ctx.state['open']

    def classify(self, descriptor, response, diff, matches, ctx) -> Optional[Finding]:
        if not port_open_rule(response):
            return None

        port = descriptor.meta['port']
        protocol = descriptor.meta['protocol']
        ctx.state['open'].add(port)

        service = SERVICES.get(port, 'Unknown')
        if response.status:
            service = f"HTTP ({response.status})"

        return self.create_finding(
            FindingKind.PORT,
            f"Port {port} - {service}",
            f"{ctx.target}:{port}",
            port_severity(port),
            protocol.upper(),
            port=port,
            open=True,
            service=service,
            protocol=protocol.upper()
        )

    def sort_key(self, finding: Finding):
        return (finding.details.get('port', 0),)
