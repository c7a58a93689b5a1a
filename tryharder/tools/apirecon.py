"""
APIRecon - API endpoint discovery

Detects:
- Swagger / OpenAPI documentation
- GraphQL endpoints and enabled introspection
- Spring Actuator, debug, metrics and configuration endpoints
- Generic API paths, optionally across versions v1-v5
"""

import json
from typing import List, Optional

from tryharder.engine.candidates import build_paths, expand_versions, origin, ensure_scheme, union
from tryharder.engine.classifier import discovery_rule
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


SWAGGER_PATHS = [
    '/swagger.json', '/swagger/v1/swagger.json', '/swagger/v2/swagger.json',
    '/api-docs', '/api-docs.json', '/v1/api-docs', '/v2/api-docs', '/v3/api-docs',
    '/openapi.json', '/openapi.yaml', '/openapi/v1.json', '/openapi/v2.json',
    '/docs', '/documentation', '/api/docs', '/api/documentation',
    '/swagger-ui.html', '/swagger-ui/', '/swagger-ui/index.html',
    '/redoc', '/api/swagger', '/api/openapi'
]

GRAPHQL_PATHS = [
    '/graphql', '/graphiql', '/v1/graphql', '/api/graphql',
    '/playground', '/graphql/playground', '/altair',
    '/graphql-explorer', '/__graphql'
]

API_PATHS = [
    '/api', '/api/v1', '/api/v2', '/api/v3',
    '/v1', '/v2', '/v3',
    '/rest', '/rest/v1', '/rest/v2',
    '/json', '/jsonapi',
    '/api/health', '/api/status', '/health', '/status', '/ping',
    '/api/version', '/version', '/api/info', '/info',
    '/api/users', '/api/user', '/users', '/user',
    '/api/admin', '/admin', '/admin/api',
    '/api/config', '/config', '/configuration',
    '/api/debug', '/debug', '/_debug',
    '/api/metrics', '/metrics', '/_metrics',
    '/actuator', '/actuator/health', '/actuator/info', '/actuator/env'
]

INTROSPECTION_ENDPOINTS = ['/graphql', '/api/graphql', '/v1/graphql']
INTROSPECTION_QUERY = {'query': '{ __schema { types { name } } }'}

# (path keywords, body keywords, label, severity, kind); first hit wins
ENDPOINT_CATEGORIES = [
    (('swagger', 'openapi'), ('"swagger"', '"openapi"'), 'Swagger/OpenAPI', Severity.HIGH, FindingKind.ENDPOINT),
    (('graphql', 'graphiql'), ('graphql', '__schema'), 'GraphQL', Severity.HIGH, FindingKind.ENDPOINT),
    (('actuator',), (), 'Spring Actuator', Severity.HIGH, FindingKind.WARNING),
    (('debug',), (), 'Debug Endpoint', Severity.HIGH, FindingKind.WARNING),
    (('health', 'status', 'ping'), (), 'Health Check', Severity.INFO, FindingKind.INFO),
    (('metrics',), (), 'Metrics', Severity.MEDIUM, FindingKind.WARNING),
    (('config', 'env'), (), 'Configuration', Severity.HIGH, FindingKind.SECRET),
]
DEFAULT_CATEGORY = ('API Endpoint', Severity.INFO, FindingKind.ENDPOINT)

DESCRIPTIONS = {
    'Swagger/OpenAPI': 'API documentation found',
    'GraphQL': 'GraphQL endpoint found',
    'Spring Actuator': 'Management endpoint exposed',
    'Debug Endpoint': 'Debug interface accessible',
    'Health Check': 'Service health endpoint',
    'Metrics': 'Metrics endpoint accessible',
    'Configuration': 'Configuration endpoint exposed',
    'API Endpoint': 'API path accessible',
}

PROBE_TIMEOUT_MS = 5000


class APIRecon(BaseTool):
    """API documentation and endpoint discovery."""

    name = 'apirecon'
    title = 'APIRecon'
    description = 'API endpoint discovery & documentation detection'
    defaults = {'swagger': True, 'graphql': True, 'common': True, 'versions': False}

    def normalize_target(self, value: str) -> str:
        return origin(ensure_scheme(value))

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        lists = []
        if ctx.options.get('swagger'):
            lists.append(SWAGGER_PATHS)
        if ctx.options.get('graphql'):
            lists.append(GRAPHQL_PATHS)
        if ctx.options.get('common'):
            lists.append(API_PATHS)

        paths = union(*lists)
        if ctx.options.get('versions'):
            paths = union(paths, expand_versions(paths))

        self.logger.info(f"Checking {len(paths)} paths on {ctx.target}")
        return build_paths(ctx.target, paths, ProbePurpose.PATH_DISCOVERY, PROBE_TIMEOUT_MS)

    def follow_up(self, ctx: RunContext) -> List[ProbeDescriptor]:
        if not ctx.options.get('graphql') or ctx.state.get('introspection_sent'):
            return []
        ctx.state['introspection_sent'] = True
        body = json.dumps(INTROSPECTION_QUERY)
        return [
            ProbeDescriptor(
                url=ctx.target + endpoint,
                method='POST',
                headers={'Content-Type': 'application/json'},
                body=body,
                purpose=ProbePurpose.INTROSPECTION,
                timeout_ms=PROBE_TIMEOUT_MS,
                meta={'path': endpoint}
            )
            for endpoint in INTROSPECTION_ENDPOINTS
        ]

    def should_skip(self, ctx: RunContext, descriptor: ProbeDescriptor) -> bool:
        # Introspection is reported once, on the first endpoint that allows it
        return descriptor.purpose == ProbePurpose.INTROSPECTION and ctx.state.get('introspection_found', False)

    def classify(self, descriptor, response, diff, matches, ctx) -> Optional[Finding]:
        if descriptor.purpose == ProbePurpose.INTROSPECTION:
            if response.success and '__schema' in response.body:
                ctx.state['introspection_found'] = True
                return self.create_finding(
                    FindingKind.VULNERABILITY,
                    'GraphQL Introspection Enabled',
                    descriptor.url,
                    Severity.HIGH,
                    'Full schema introspection is possible'
                )
            return None

        if not response.success or response.status != 200:
            return None

        path = descriptor.meta.get('path', '')
        label, severity, kind = discovery_rule(
            path, response.body[:1000], ENDPOINT_CATEGORIES, DEFAULT_CATEGORY
        )
        return self.create_finding(
            kind,
            label,
            descriptor.url,
            severity,
            f"{response.status} - {DESCRIPTIONS[label]}",
            path=path,
            category=label
        )
