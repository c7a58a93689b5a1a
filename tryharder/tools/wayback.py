"""
Wayback - Mine historical URLs from the Wayback Machine

One CDX query returns every archived URL for the domain and its
subdomains. From those records the tool reports archived URLs, query
parameter names, sensitive file extensions and API endpoints.
"""

import json
from collections import OrderedDict
from typing import Dict, List
from urllib.parse import parse_qsl, urlsplit

from tryharder.engine.candidates import normalize_domain
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


CDX_URL = ('https://web.archive.org/cdx/search/cdx?url=*.{domain}/*&output=json'
           '&fl=original,timestamp,statuscode,mimetype&collapse=urlkey&limit=5000')
ARCHIVE_URL = 'https://web.archive.org/web/{timestamp}/{url}'

SENSITIVE_EXTENSIONS = [
    '.sql', '.bak', '.backup', '.old', '.orig', '.temp', '.tmp',
    '.log', '.logs', '.conf', '.config', '.cfg', '.ini', '.env',
    '.json', '.xml', '.yaml', '.yml', '.toml',
    '.pem', '.key', '.crt', '.cer', '.p12', '.pfx',
    '.zip', '.tar', '.gz', '.rar', '.7z',
    '.dump', '.db', '.sqlite', '.mdb',
    '.php~', '.swp', '.swo', '.DS_Store', '.git'
]

API_MARKERS = ('/api/', '/v1/', '/v2/', '/graphql', '/rest/')

MAX_URLS = 100
MAX_ENDPOINTS = 50
LOOKUP_TIMEOUT_MS = 30000


def parse_cdx(body: str) -> List[List[str]]:
    """
    Records of a CDX JSON response, header row dropped.

    Raises:
        ValueError: When the body is not a CDX JSON table
    """
    data = json.loads(body)
    if not isinstance(data, list):
        raise ValueError('CDX response is not a list')
    return [row for row in data[1:] if isinstance(row, list) and len(row) >= 2]


def sensitive_extension(url: str):
    lower = url.lower()
    for ext in SENSITIVE_EXTENSIONS:
        if ext.lower() in lower:
            return ext
    return None


class Wayback(BaseTool):
    """Archived URL mining."""

    name = 'wayback'
    title = 'WaybackMiner'
    description = 'Mine historical data from Wayback Machine'
    target_option = 'domain'
    defaults = {'urls': True, 'params': True, 'files': True, 'endpoints': True}

    def normalize_target(self, value: str) -> str:
        return normalize_domain(value)

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        return [ProbeDescriptor(
            url=CDX_URL.format(domain=ctx.target),
            purpose=ProbePurpose.LOOKUP,
            timeout_ms=LOOKUP_TIMEOUT_MS
        )]

    def evaluate(self, ctx: RunContext, descriptor: ProbeDescriptor, response) -> List[Finding]:
        if not response.success or not response.body:
            ctx.message = 'Failed to query Wayback Machine'
            return []

        try:
            records = parse_cdx(response.body)
        except ValueError as e:
            self.logger.warning(f"Unreadable CDX response for {ctx.target}: {e}")
            ctx.message = 'Failed to parse Wayback Machine response'
            return []

        self.logger.info(f"{len(records)} archived records for {ctx.target}")
        return self.mine(ctx.options, records)

    def mine(self, options, records: List[List[str]]) -> List[Finding]:
        """Findings for every enabled group in record order."""
        urls: List[str] = []
        params: Dict[str, set] = OrderedDict()
        files = []
        endpoints: List[str] = []

        for record in records:
            url, timestamp = record[0], record[1]
            archived = ARCHIVE_URL.format(timestamp=timestamp, url=url)

            if options.get('urls'):
                urls.append(url)

            if options.get('params'):
                for param, _ in parse_qsl(urlsplit(url).query, keep_blank_values=True):
                    params.setdefault(param, set()).add(url)

            if options.get('files'):
                ext = sensitive_extension(url)
                if ext:
                    files.append((url, ext, archived))

            if options.get('endpoints') and any(marker in url for marker in API_MARKERS):
                endpoints.append(url)

        findings = []
        for url in list(OrderedDict.fromkeys(urls))[:MAX_URLS]:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Archived URL', url, Severity.INFO, 'Found in Wayback Machine'
            ))

        for param, found_in in params.items():
            findings.append(self.create_finding(
                FindingKind.PARAMETER, f"Parameter: {param}", param, Severity.LOW,
                f"Found in {len(found_in)} URLs"
            ))

        for url, ext, archived in files:
            findings.append(self.create_finding(
                FindingKind.SECRET, f"Sensitive File: {ext}", archived, Severity.MEDIUM, url
            ))

        for url in list(OrderedDict.fromkeys(endpoints))[:MAX_ENDPOINTS]:
            findings.append(self.create_finding(
                FindingKind.ENDPOINT, 'API Endpoint', url, Severity.INFO, 'Found in Wayback Machine'
            ))

        return findings
