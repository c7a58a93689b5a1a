"""
ParamFuzz - Hidden parameter discovery

Appends candidate parameter names to a clean URL and scores each response
against a plain baseline: status change, value reflection, length change
and the parameter name echoed back.
"""

from typing import List, Optional
from urllib.parse import quote, urlsplit

from tryharder.engine.candidates import ensure_scheme, split_list, union, with_query
from tryharder.engine.classifier import parameter_score, parameter_severity
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose
from tryharder.tools.base import BaseTool, RunContext


WORDLISTS = {
    'common': [
        'id', 'page', 'limit', 'offset', 'sort', 'order', 'filter', 'search', 'query', 'q',
        'name', 'email', 'user', 'username', 'password', 'pass', 'token', 'key', 'api_key',
        'file', 'path', 'url', 'redirect', 'return', 'callback', 'next', 'ref', 'source',
        'type', 'action', 'cmd', 'command', 'exec', 'method', 'function', 'func',
        'data', 'content', 'body', 'message', 'text', 'title', 'description', 'comment',
        'category', 'tag', 'status', 'state', 'mode', 'format', 'output', 'response',
        'start', 'end', 'from', 'to', 'date', 'time', 'year', 'month', 'day',
        'min', 'max', 'count', 'total', 'size', 'length', 'width', 'height',
        'include', 'exclude', 'fields', 'select', 'columns', 'expand', 'embed',
        'version', 'v', 'lang', 'language', 'locale', 'country', 'region',
        'access_token', 'auth', 'authorization', 'bearer', 'jwt', 'session', 'sid',
        'price', 'amount', 'quantity', 'qty', 'value', 'cost', 'discount', 'coupon'
    ],
    'admin': [
        'admin', 'administrator', 'root', 'superuser', 'system', 'internal', 'private',
        'debug', 'test', 'dev', 'development', 'staging', 'production', 'prod',
        'config', 'configuration', 'settings', 'options', 'preferences', 'params',
        'role', 'roles', 'permission', 'permissions', 'privilege', 'privileges', 'access',
        'bypass', 'skip', 'override', 'force', 'ignore', 'disable', 'enable', 'allow',
        'hidden', 'secret', 'confidential', 'restricted', 'internal_only',
        'backdoor', 'master', 'god', 'sudo', 'elevation', 'escalate',
        'export', 'import', 'backup', 'restore', 'reset', 'delete', 'purge', 'truncate',
        'sql', 'query', 'execute', 'raw', 'direct', 'inject', 'payload',
        'shell', 'console', 'terminal', 'exec', 'run', 'spawn', 'process',
        'upload', 'download', 'read', 'write', 'create', 'modify', 'update'
    ],
    'debug': [
        'debug', 'verbose', 'trace', 'log', 'logging', 'logger', 'error', 'errors',
        'exception', 'exceptions', 'stacktrace', 'stack', 'dump', 'print', 'show',
        'display', 'reveal', 'expose', 'profile', 'profiler', 'profiling',
        'benchmark', 'performance', 'timing', 'cache', 'nocache', 'no_cache',
        'clear_cache', 'refresh', 'reload', 'mock', 'fake', 'stub', 'simulate',
        'emulate', 'dry_run', 'dryrun', 'preview', 'test_mode', 'sandbox',
        'env', 'environment', 'context', 'scope', 'namespace'
    ],
    'api': [
        'api_version', 'api_key', 'api_secret', 'api_token', 'app_id', 'app_key',
        'client_id', 'client_secret', 'consumer_key', 'consumer_secret',
        'grant_type', 'scope', 'scopes', 'audience', 'resource', 'response_type',
        'redirect_uri', 'state', 'nonce', 'code_challenge',
        'per_page', 'page_size', 'cursor', 'after', 'before', 'since', 'until',
        'include_deleted', 'include_hidden', 'show_all', 'all',
        'webhook', 'webhook_url', 'callback_url', 'notify_url', 'return_url',
        'signature', 'sig', 'hash', 'checksum', 'hmac', 'digest'
    ],
}

TEST_VALUE = 'test123'
MIN_SCORE = 2
PROBE_TIMEOUT_MS = 5000


class ParamFuzz(BaseTool):
    """Hidden parameter discovery by differential scoring."""

    name = 'paramfuzz'
    title = 'ParamFuzz'
    description = 'Hidden parameter discovery'
    defaults = {
        'method': 'GET',
        'common': True,
        'admin': False,
        'debug': False,
        'api': False,
        'customList': '',
    }
    baseline_name = 'plain'

    def normalize_target(self, value: str) -> str:
        # Existing query string is dropped for clean fuzzing
        parts = urlsplit(ensure_scheme(value))
        return f"{parts.scheme}://{parts.netloc}{parts.path}"

    def wordlist(self, options) -> List[str]:
        lists = [WORDLISTS[name] for name in ('common', 'admin', 'debug', 'api') if options.get(name)]
        return union(*lists, split_list(options.get('customList'), '\n'))

    async def prepare(self, ctx: RunContext):
        words = self.wordlist(ctx.options)
        if not words:
            ctx.abort('No parameters to test')
            return
        ctx.state['words'] = words

        baseline = await ctx.capture('plain', ctx.target, method=ctx.options.get('method') or 'GET',
                                     timeout_ms=PROBE_TIMEOUT_MS)
        if not baseline.reachable:
            ctx.abort('target unreachable')

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        method = ctx.options.get('method') or 'GET'
        return [
            ProbeDescriptor(
                url=with_query(ctx.target, f"{quote(param, safe='')}={TEST_VALUE}"),
                method=method,
                purpose=ProbePurpose.PARAMETER_DISCOVERY,
                timeout_ms=PROBE_TIMEOUT_MS,
                meta={'param': param}
            )
            for param in ctx.state['words']
        ]

    def classify(self, descriptor, response, diff, matches, ctx) -> Optional[Finding]:
        if not response.success:
            return None

        param = descriptor.meta['param']
        score = parameter_score(diff, response.status, TEST_VALUE, param)
        if score < MIN_SCORE:
            return None

        reflected = diff.reflects(TEST_VALUE)
        reasons = []
        if diff.status_changed and response.status != 404:
            reasons.append(f"Status changed: {diff.baseline_status} -> {response.status}")
        if reflected:
            reasons.append('Value reflected in response')
        if diff.abs_length_delta > 100:
            reasons.append(f"Length diff: {diff.abs_length_delta} bytes")
        if not reflected and param.lower() in response.body.lower():
            reasons.append('Param name found in response')

        return self.create_finding(
            FindingKind.PARAMETER,
            f"Parameter: {param}",
            descriptor.url,
            parameter_severity(score),
            ', '.join(reasons),
            param=param,
            score=score,
            status=response.status,
            lengthDiff=diff.abs_length_delta,
            hasReflection=reflected
        )

    def sort_key(self, finding: Finding):
        return (-finding.details.get('score', 0),)
