"""
Signature Registry for TryHarder

Named banks of compiled patterns, grouped by category:
- SQL error fingerprints per database family
- Secret and token shapes
- Endpoint, domain, path, e-mail and IP extraction
- Subdomain takeover fingerprints (page bodies and CNAME targets)
- Cache-layer indicator headers
- Technology fingerprints split by evidence source (body, headers, scripts)

Banks are built once at import and never change while a tool runs.
Matching is case-insensitive except for vendor secret prefixes, which
are matched exactly.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Set, Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Signature:
    """One compiled pattern inside a category."""
    id: str
    pattern: Pattern
    label: str
    family: str = ''

    def extract(self, match) -> str:
        """Value of a match: first capture group when present, else the whole match."""
        if self.pattern.groups:
            value = match.group(1)
            if value is not None:
                return value
        return match.group(0)


# SQL error fingerprints, checked in family order
SQL_ERRORS = {
    'MySQL': [
        r'SQL syntax.*MySQL', r'Warning.*mysql_', r'MySqlException',
        r'valid MySQL result', r'check the manual that corresponds to your (MySQL|MariaDB)',
        r'MySqlClient', r'com\.mysql\.jdbc'
    ],
    'PostgreSQL': [
        r'PostgreSQL.*ERROR', r'Warning.*pg_', r'valid PostgreSQL result',
        r'Npgsql', r'PG::SyntaxError', r'org\.postgresql\.util\.PSQLException'
    ],
    'MSSQL': [
        r'Driver.* SQL[\-\_\ ]*Server', r'OLE DB.* SQL Server', r'SQLServer JDBC',
        r'Microsoft SQL Native Client', r'ODBC SQL Server Driver', r'SQLSrv',
        r'Unclosed quotation mark'
    ],
    'Oracle': [
        r'ORA-[0-9]+', r'Oracle error', r'Oracle.*Driver', r'Warning.*oci_',
        r'quoted string not properly terminated'
    ],
    'SQLite': [
        r'SQLite.*Exception', r'System\.Data\.SQLite\.SQLiteException',
        r'Warning.*sqlite_', r'SQLite error', r'sqlite3\.OperationalError', r'SQLITE_ERROR'
    ],
    'Generic': [
        r'SQL error', r'SQL syntax', r'unclosed quotation', r'unterminated string',
        r'syntax error', r'query failed', r'unexpected end of SQL', r'invalid query'
    ]
}

# (id, pattern, case_sensitive)
SECRETS = [
    ('api-key', r'["\'`]?(?:api[_-]?key|apikey)["\'`]?\s*[:=]\s*["\'`]([a-zA-Z0-9_\-]{20,})["\'`]', False),
    ('secret-key', r'["\'`]?(?:secret[_-]?key|secretkey)["\'`]?\s*[:=]\s*["\'`]([a-zA-Z0-9_\-]{20,})["\'`]', False),
    ('access-token', r'["\'`]?(?:access[_-]?token|accesstoken)["\'`]?\s*[:=]\s*["\'`]([a-zA-Z0-9_\-\.]{20,})["\'`]', False),
    ('auth-token', r'["\'`]?(?:auth[_-]?token|authtoken)["\'`]?\s*[:=]\s*["\'`]([a-zA-Z0-9_\-\.]{20,})["\'`]', False),
    ('private-key', r'["\'`]?(?:private[_-]?key|privatekey)["\'`]?\s*[:=]\s*["\'`]([^"\'`]{20,})["\'`]', False),
    ('password', r'["\'`]?password["\'`]?\s*[:=]\s*["\'`]([^"\'`]{6,})["\'`]', False),
    ('aws-access-key-id', r'(?:aws[_-]?access[_-]?key[_-]?id)\s*[:=]\s*["\'`]?(AKIA[A-Z0-9]{16})["\'`]?', False),
    ('aws-secret-access-key', r'(?:aws[_-]?secret[_-]?access[_-]?key)\s*[:=]\s*["\'`]?([a-zA-Z0-9+/]{40})["\'`]?', False),
    ('github-pat', r'ghp_[a-zA-Z0-9]{36}', True),
    ('github-oauth', r'gho_[a-zA-Z0-9]{36}', True),
    ('github-fine-grained-pat', r'github_pat_[a-zA-Z0-9]{22}_[a-zA-Z0-9]{59}', True),
    ('openai-key', r'sk-[a-zA-Z0-9]{48}', True),
    ('stripe-live-key', r'sk_live_[a-zA-Z0-9]{24}', True),
    ('stripe-test-key', r'sk_test_[a-zA-Z0-9]{24}', True),
    ('square-token', r'sq0csp-[a-zA-Z0-9_\-]{43}', True),
    ('sendgrid-key', r'SG\.[a-zA-Z0-9_\-]{22}\.[a-zA-Z0-9_\-]{43}', True),
    ('slack-token', r'xox[baprs]-[a-zA-Z0-9\-]{10,}', True),
    ('google-oauth', r'ya29\.[a-zA-Z0-9_\-]{68,}', True),
    ('jwt', r'eyJ[a-zA-Z0-9_\-]*\.eyJ[a-zA-Z0-9_\-]*\.[a-zA-Z0-9_\-]*', True),
]

ENDPOINTS = [
    r'["\'`](/api/[^"\'`\s<>]+)["\'`]',
    r'["\'`](/v[0-9]+/[^"\'`\s<>]+)["\'`]',
    r'["\'`](/graphql[^"\'`\s<>]*)["\'`]',
    r'["\'`](/rest/[^"\'`\s<>]+)["\'`]',
    r'["\'`](/ajax/[^"\'`\s<>]+)["\'`]',
    r'["\'`](/json/[^"\'`\s<>]+)["\'`]',
    r'fetch\s*\(\s*["\'`]([^"\'`]+)["\'`]',
    r'axios\s*[\.\(]\s*(?:get|post|put|delete|patch)\s*\(\s*["\'`]([^"\'`]+)["\'`]',
    r'\$\.(?:ajax|get|post)\s*\(\s*["\'`]([^"\'`]+)["\'`]',
    r'\.open\s*\(\s*["\'`](?:GET|POST|PUT|DELETE)["\'`]\s*,\s*["\'`]([^"\'`]+)["\'`]',
    r'url\s*[:=]\s*["\'`]([^"\'`]+api[^"\'`]+)["\'`]',
]

DOMAINS = [
    r'https?://(?:[a-zA-Z0-9][-a-zA-Z0-9]*\.)+[a-zA-Z]{2,}',
    r'["\'`]((?:[a-zA-Z0-9][-a-zA-Z0-9]*\.)+(?:com|org|net|io|co|dev|app|xyz|cloud|ai))["\'`]',
]

PATHS = [
    r'["\'`](/[a-zA-Z0-9_\-]+(?:/[a-zA-Z0-9_\-]+)+)["\'`]',
]

EMAILS = [
    r'[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}',
]

IPS = [
    r'\b(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\b',
]

# Page-body fingerprints of unclaimed hosting
TAKEOVER = {
    'GitHub': ["There isn't a GitHub Pages site here"],
    'Heroku': ['No such app', 'no-such-app'],
    'AWS S3': ['NoSuchBucket', 'The specified bucket does not exist'],
    'Azure': ['404 Web Site not found'],
    'Shopify': ['Sorry, this shop is currently unavailable'],
    'Tumblr': ["There's nothing here"],
    'WordPress': ['Do you want to register'],
    'Ghost': ['The thing you were looking for is no longer here'],
    'Surge': ['project not found'],
    'Bitbucket': ['Repository not found'],
    'Pantheon': ['The gods are wise'],
    'Fastly': ['Fastly error: unknown domain'],
    'Zendesk': ['Help Center Closed'],
}

# CNAME targets that are commonly claimable
TAKEOVER_CNAMES = [
    'amazonaws.com', 's3.amazonaws.com', 's3-website',
    'cloudfront.net', 'azurewebsites.net', 'blob.core.windows.net',
    'cloudapp.net', 'azureedge.net', 'trafficmanager.net',
    'herokuapp.com', 'herokudns.com',
    'wordpress.com', 'pantheonsite.io',
    'domains.tumblr.com', 'ghost.io',
    'myshopify.com', 'shopify.com',
    'surge.sh', 'bitbucket.io',
    'ghost.org', 'helpjuice.com',
    'helpscoutdocs.com', 'feedpress.me',
    'freshdesk.com', 'readme.io',
    'statuspage.io', 'uservoice.com',
    'desk.com', 'teamwork.com',
    'unbounce.com', 'tictail.com',
    'bigcartel.com', 'cargo.site',
]

CACHE_HEADERS = [
    'cache-control', 'x-cache', 'x-cache-hit', 'cf-cache-status', 'x-varnish',
    'x-proxy-cache', 'age', 'x-served-by', 'x-cache-status', 'x-fastly-request-id',
    'x-amz-cf-pop',
]

# Technology fingerprints: group -> name -> source -> literal patterns
TECHNOLOGIES = {
    'frameworks': {
        'React': {
            'body': ['react', '_reactRootContainer', '__REACT_DEVTOOLS_GLOBAL_HOOK__'],
            'scripts': ['react.js', 'react.min.js', 'react.production.min.js'],
        },
        'Vue.js': {
            'body': ['__vue__', '__VUE__', 'Vue.config'],
            'scripts': ['vue.js', 'vue.min.js', 'vue.runtime'],
        },
        'Angular': {
            'body': ['ng-version', 'ng-app', '__ng_'],
            'scripts': ['angular.js', 'angular.min.js', '@angular/core'],
        },
        'jQuery': {
            'body': ['jquery'],
            'scripts': ['jquery.js', 'jquery.min.js', 'jquery-'],
        },
        'Next.js': {
            'body': ['__NEXT_DATA__', '_next/static', 'next/router'],
            'headers': ['x-nextjs-cache', 'x-nextjs-matched-path'],
            'scripts': ['_next/'],
        },
        'Nuxt.js': {
            'body': ['__NUXT__', '_nuxt/'],
            'scripts': ['_nuxt/'],
        },
        'Svelte': {
            'body': ['svelte-'],
            'scripts': ['svelte'],
        },
    },
    'cms': {
        'WordPress': {
            'body': ['wp-content', 'wp-includes', 'wp-json'],
            'headers': ['x-powered-by: wp', 'rel="https://api.w.org/"'],
            'scripts': ['wp-includes', 'wp-content'],
        },
        'Drupal': {
            'body': ['Drupal.settings', 'drupal.js', '/sites/default/'],
            'headers': ['x-drupal-cache', 'x-generator: drupal'],
            'scripts': ['drupal'],
        },
        'Joomla': {
            'body': ['/components/com_', '/media/jui/', 'Joomla!'],
            'scripts': ['joomla'],
        },
        'Shopify': {
            'body': ['Shopify.theme', 'cdn.shopify.com', 'myshopify.com'],
            'headers': ['x-shopify-stage'],
            'scripts': ['cdn.shopify.com'],
        },
        'Magento': {
            'body': ['Mage.Cookies', '/static/version', 'mage/'],
            'scripts': ['mage/', 'magento'],
        },
        'Ghost': {
            'body': ['ghost-', 'ghost/'],
            'headers': ['x-ghost-'],
            'scripts': ['ghost'],
        },
    },
    'servers': {
        'nginx': {'headers': ['server: nginx']},
        'Apache': {'headers': ['server: apache']},
        'IIS': {'headers': ['server: microsoft-iis', 'x-powered-by: asp.net']},
        'Cloudflare': {'headers': ['server: cloudflare', 'cf-ray']},
        'AWS': {'headers': ['x-amz-', 'x-amzn-', 'server: amazons3']},
        'Vercel': {'headers': ['x-vercel-', 'server: vercel']},
        'Netlify': {'headers': ['x-nf-', 'server: netlify']},
    },
    'security': {
        'Cloudflare WAF': {'headers': ['cf-ray', 'cf-cache-status']},
        'AWS WAF': {'headers': ['x-amzn-waf']},
        'Akamai': {'headers': ['x-akamai-', 'akamai-']},
        'Sucuri': {'headers': ['x-sucuri-']},
        'Imperva': {'headers': ['x-iinfo']},
    },
    'analytics': {
        'Google Analytics': {
            'body': ['google-analytics.com/analytics.js', 'gtag(', 'ga('],
            'scripts': ['google-analytics.com', 'googletagmanager.com'],
        },
        'Google Tag Manager': {
            'body': ['googletagmanager.com/gtm.js'],
            'scripts': ['googletagmanager.com'],
        },
        'Facebook Pixel': {
            'body': ['connect.facebook.net', 'fbq('],
            'scripts': ['connect.facebook.net'],
        },
        'Hotjar': {
            'body': ['hotjar.com', 'hj('],
            'scripts': ['static.hotjar.com'],
        },
        'Mixpanel': {
            'body': ['mixpanel.com', 'mixpanel.init'],
            'scripts': ['cdn.mxpnl.com'],
        },
    },
}

TECH_SOURCES = ('body', 'headers', 'scripts')


def _compile(pattern: str, case_sensitive: bool = False) -> Pattern:
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(pattern, flags)


def _build_default_banks() -> Dict[str, List[Signature]]:
    banks: Dict[str, List[Signature]] = {}

    banks['sql_errors'] = [
        Signature(f"{family.lower()}-{i}", _compile(p), family, family)
        for family, patterns in SQL_ERRORS.items()
        for i, p in enumerate(patterns)
    ]

    banks['secrets'] = [
        Signature(sig_id, _compile(p, case_sensitive), sig_id)
        for sig_id, p, case_sensitive in SECRETS
    ]

    for category, patterns in (('endpoints', ENDPOINTS), ('domains', DOMAINS), ('paths', PATHS),
                               ('emails', EMAILS), ('ips', IPS)):
        banks[category] = [
            Signature(f"{category}-{i}", _compile(p), category)
            for i, p in enumerate(patterns)
        ]

    banks['takeover'] = [
        Signature(f"{provider.lower().replace(' ', '-')}-{i}", _compile(re.escape(s)), provider)
        for provider, strings in TAKEOVER.items()
        for i, s in enumerate(strings)
    ]

    banks['takeover_cnames'] = [
        Signature(f"cname-{i}", _compile(re.escape(target)), target)
        for i, target in enumerate(TAKEOVER_CNAMES)
    ]

    # header text is matched one "name: value" line at a time
    banks['cache_headers'] = [
        Signature(name, re.compile(r'^' + re.escape(name) + r':[^\n]*', re.IGNORECASE | re.MULTILINE), name)
        for name in CACHE_HEADERS
    ]

    for source in TECH_SOURCES:
        banks[f"tech.{source}"] = [
            Signature(f"{group}/{name}/{source}/{i}", _compile(re.escape(literal)), name, group)
            for group, technologies in TECHNOLOGIES.items()
            for name, sources in technologies.items()
            for i, literal in enumerate(sources.get(source, []))
        ]

    return banks


class SignatureRegistry:
    """
    Named pattern banks.

    ``match`` is the lookup contract: it returns the set of
    ``(signature_id, matched_substring)`` pairs found in the text. An
    unknown category yields an empty result.
    """

    def __init__(self, banks: Optional[Dict[str, Iterable[Signature]]] = None):
        if banks is None:
            banks = _build_default_banks()
        self._banks: Dict[str, List[Signature]] = {k: list(v) for k, v in banks.items()}
        self._index: Dict[Tuple[str, str], Signature] = {
            (category, sig.id): sig
            for category, sigs in self._banks.items()
            for sig in sigs
        }

    @property
    def categories(self) -> List[str]:
        return list(self._banks)

    def signatures(self, category: str) -> List[Signature]:
        return list(self._banks.get(category, []))

    def get(self, category: str, signature_id: str) -> Optional[Signature]:
        return self._index.get((category, signature_id))

    def scan(self, category: str, text: str, limit: Optional[int] = None) -> List[Tuple[Signature, str]]:
        """
        Ordered matches for a category.

        Args:
            category: Bank name
            text: Text to scan
            limit: Only the first ``limit`` characters are scanned

        Returns:
            (signature, value) pairs in bank order, each pair once
        """
        if not text:
            return []
        if limit is not None:
            text = text[:limit]

        seen: Set[Tuple[str, str]] = set()
        results = []
        for sig in self._banks.get(category, []):
            for m in sig.pattern.finditer(text):
                value = sig.extract(m)
                if not value or (sig.id, value) in seen:
                    continue
                seen.add((sig.id, value))
                results.append((sig, value))
        return results

    def match(self, category: str, text: str, limit: Optional[int] = None) -> Set[Tuple[str, str]]:
        """Set of (signature_id, matched_substring) pairs."""
        return {(sig.id, value) for sig, value in self.scan(category, text, limit)}

    def first(self, category: str, text: str, limit: Optional[int] = None) -> Optional[Signature]:
        """First signature in bank order that matches, if any."""
        if not text:
            return None
        if limit is not None:
            text = text[:limit]
        for sig in self._banks.get(category, []):
            if sig.pattern.search(text):
                return sig
        return None


_default_registry: Optional[SignatureRegistry] = None


def default_registry() -> SignatureRegistry:
    """Shared registry built from the built-in banks."""
    global _default_registry
    if _default_registry is None:
        _default_registry = SignatureRegistry()
    return _default_registry
