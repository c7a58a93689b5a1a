"""
GitLeaks - Exposed repository, config, env and backup file detection

Checks:
- .git folder files (HEAD, config, index, logs, refs)
- Application config files
- .env variants
- Database dumps, archives, .htpasswd, phpinfo and other leftovers

When .git/HEAD leaks, the current branch and commit log size are reported.
"""

import re
from typing import List, Optional, Tuple

from tryharder.engine.candidates import build_paths, ensure_scheme, origin
from tryharder.engine.models import Finding, FindingKind, ProbeDescriptor, ProbePurpose, Severity
from tryharder.tools.base import BaseTool, RunContext


GIT_PATHS = [
    '/.git/HEAD', '/.git/config', '/.git/index', '/.git/logs/HEAD',
    '/.git/COMMIT_EDITMSG', '/.git/description', '/.git/info/exclude',
    '/.git/objects/', '/.git/refs/heads/master', '/.git/refs/heads/main'
]

CONFIG_PATHS = [
    '/.gitignore', '/.gitmodules', '/.gitattributes',
    '/config.php', '/config.json', '/config.yml', '/config.yaml',
    '/settings.json', '/settings.yml', '/application.properties',
    '/application.yml', '/database.yml', '/secrets.yml', '/credentials.json',
    '/wp-config.php', '/wp-config.php.bak', '/configuration.php', '/LocalSettings.php'
]

ENV_PATHS = [
    '/.env', '/.env.local', '/.env.development', '/.env.production',
    '/.env.staging', '/.env.example', '/.env.bak', '/.env.old',
    '/env.js', '/env.json'
]

BACKUP_PATHS = [
    '/backup.sql', '/backup.zip', '/backup.tar.gz', '/dump.sql',
    '/database.sql', '/db.sql', '/data.sql',
    '/.htaccess', '/.htpasswd', '/web.config',
    '/phpinfo.php', '/info.php', '/test.php', '/debug.php',
    '/admin.php.bak', '/index.php.bak', '/robots.txt', '/sitemap.xml'
]

PATH_LISTS = [
    ('gitFolder', GIT_PATHS),
    ('configFiles', CONFIG_PATHS),
    ('envFiles', ENV_PATHS),
    ('backupFiles', BACKUP_PATHS),
]

BRANCH_PATTERN = re.compile(r'ref: refs/heads/(.+)')
PROBE_TIMEOUT_MS = 5000

Leak = Tuple[FindingKind, str, str, Severity]


def analyze_leak(path: str, body: str, content_type: str) -> Optional[Leak]:
    """
    Decide whether a 200 response is a real leak.

    Returns:
        (kind, title, description, severity), or None for soft-404s and
        harmless content
    """
    lower_path = path.lower()
    body_lower = body.lower()
    is_html = 'text/html' in content_type

    if '.git/' in lower_path:
        if 'head' in lower_path and body.startswith('ref: refs/'):
            return (FindingKind.VULNERABILITY, 'Git Repository Exposed',
                    'Full .git folder accessible - source code leak!', Severity.CRITICAL)
        if 'config' in lower_path and '[core]' in body:
            return (FindingKind.SECRET, 'Git Config Exposed',
                    'Git configuration with potential credentials', Severity.HIGH)
        if body and not is_html:
            return (FindingKind.WARNING, 'Git File Exposed',
                    f"Git file accessible: {path}", Severity.HIGH)
        return None

    if '.env' in lower_path:
        if body and '=' in body and not is_html:
            return (FindingKind.SECRET, 'Environment File Exposed',
                    'Environment file with potential secrets', Severity.CRITICAL)
        return None

    if 'config' in lower_path or 'settings' in lower_path:
        if body and not is_html and any(k in body_lower for k in ('password', 'secret', 'key', 'database')):
            return (FindingKind.SECRET, 'Config File Exposed',
                    'Configuration file with sensitive data', Severity.HIGH)
        return None

    if '.sql' in lower_path or 'backup' in lower_path or 'dump' in lower_path:
        if body and ('insert into' in body_lower or 'create table' in body_lower
                     or 'application/' in content_type or len(body) > 1000):
            return (FindingKind.SECRET, 'Database Backup Exposed',
                    'Database dump file accessible', Severity.CRITICAL)
        return None

    if 'phpinfo' in lower_path or 'info.php' in lower_path:
        if 'php version' in body_lower or 'configuration' in body_lower:
            return (FindingKind.WARNING, 'PHPInfo Exposed',
                    'PHP configuration information leaked', Severity.MEDIUM)
        return None

    if '.htpasswd' in lower_path:
        if body and ':' in body:
            return (FindingKind.SECRET, '.htpasswd Exposed',
                    'Password hash file accessible', Severity.CRITICAL)
        return None

    if len(body) > 100 and not is_html:
        return (FindingKind.INFO, 'File Exposed', f"File accessible: {path}", Severity.LOW)
    return None


class GitLeaks(BaseTool):
    """Sensitive file exposure checks."""

    name = 'gitleaks'
    title = 'GitLeaks'
    description = 'Exposed .git, config, env and backup file detection'
    defaults = {'gitFolder': True, 'configFiles': True, 'envFiles': True, 'backupFiles': True}

    def normalize_target(self, value: str) -> str:
        return origin(ensure_scheme(value))

    def candidates(self, ctx: RunContext) -> List[ProbeDescriptor]:
        paths = []
        for option, path_list in PATH_LISTS:
            if ctx.options.get(option):
                paths.extend(path_list)
        return build_paths(ctx.target, paths, ProbePurpose.PATH_DISCOVERY, PROBE_TIMEOUT_MS)

    def classify(self, descriptor, response, diff, matches, ctx) -> Optional[Finding]:
        if not response.success:
            return None

        path = descriptor.meta['path']
        # Kept for branch and commit extraction
        if path in ('/.git/HEAD', '/.git/logs/HEAD') and response.body:
            ctx.state[path] = response.body

        if response.status != 200:
            return None

        leak = analyze_leak(path, response.body, response.content_type)
        if leak is None:
            return None

        kind, title, description, severity = leak
        if '.git/HEAD' in path:
            ctx.state['head_found'] = True
        return self.create_finding(kind, title, descriptor.url, severity, description,
                                   path=path, size=response.length)

    def finalize(self, ctx: RunContext) -> List[Finding]:
        if not ctx.options.get('gitFolder') or not ctx.state.get('head_found'):
            return []

        findings = []
        branch = BRANCH_PATTERN.search(ctx.state.get('/.git/HEAD', ''))
        if branch:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Git Branch', branch.group(1).strip(), Severity.INFO,
                'Current branch name'
            ))

        commits = [line for line in ctx.state.get('/.git/logs/HEAD', '').split('\n') if line.strip()]
        if commits:
            findings.append(self.create_finding(
                FindingKind.INFO, 'Git Commits Found', f"{len(commits)} commits in log", Severity.MEDIUM,
                'Commit history accessible'
            ))
        return findings
