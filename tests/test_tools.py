"""
Tool tests against the fake target

Each test stands up just enough of a target to trigger (or not trigger)
the tool's classification rules, then runs the tool through the engine.
"""

import json
from urllib.parse import unquote_plus

from tryharder.config import Settings
from tryharder.engine import FindingKind, ProbeEngine, RunStatus, Severity
from tryharder.engine.parser import HTMLPage
from tryharder.tools import available_tools, get_tool
from tryharder.tools.dnstracer import resolve_url
from tryharder.tools.wayback import CDX_URL

from fake_target import page, refused

GITHUB_TOKEN = 'ghp_' + 'Zx9Yw8Vu7T' * 3 + 'ab12CD'


def titles(run):
    return [f.title for f in run.findings]


# Registry

def test_all_tools_registered():
    ids = [tool['id'] for tool in available_tools()]

    assert len(ids) == 15
    assert {'jshunter', 'apirecon', 'subrecon', 'paramfuzz', 'authbypass', 'sqlidetect',
            'webtechfp', 'headeraudit', 'gitleaks', 'portrush', 'protodetect',
            'cachepoison', 'wayback', 'certwatch', 'dnstracer'} == set(ids)
    assert get_tool('portrush').target_option == 'host'


# SQLiDetect

def mysql_on_quote(url, options):
    if "'" in unquote_plus(url):
        return page('You have an error in your SQL syntax; check the manual that corresponds '
                    'to your MySQL server version', 500)
    return page('<html>item 1</html>')


async def test_sqlidetect_error_based_stops_at_first_hit(engine, target):
    target.route('http://target.test/item', mysql_on_quote)

    run = await engine.run('sqlidetect', {
        'url': 'http://target.test/item?id=1',
        'boolBased': False,
        'union': False,
    })

    assert run.status == RunStatus.COMPLETED
    assert len(run.findings) == 1
    finding = run.findings[0]
    assert finding.title == 'SQL Injection (Error-Based) - id'
    assert finding.severity == Severity.CRITICAL
    assert finding.subtitle == 'Database: MySQL'
    # baseline plus the single-quote payload
    assert len(target.calls) == 2


def boolean_site(url, options):
    if "'1'='2" in unquote_plus(url):
        return page('no results')
    return page('<html>' + 'row ' * 100 + '</html>')


async def test_sqlidetect_boolean_pair(engine, target):
    target.route('http://target.test/item', boolean_site)

    run = await engine.run('sqlidetect', {
        'url': 'http://target.test/item?id=1',
        'errorBased': False,
        'union': False,
    })

    assert titles(run) == ['SQL Injection (Boolean-Based) - id']
    assert run.findings[0].severity == Severity.HIGH


async def test_sqlidetect_boolean_pair_on_empty_parameter(engine, target):
    # With q empty, the false condition is the same request as an error payload
    target.route('http://target.test/search', boolean_site)

    run = await engine.run('sqlidetect', {'url': 'http://target.test/search?q=', 'union': False})

    false_requests = [url for url in target.urls if "'1'='2" in unquote_plus(url)]
    assert len(false_requests) == 1
    assert titles(run) == ['SQL Injection (Boolean-Based) - q']
    assert run.findings[0].details['falseLength'] == len('no results')


async def test_sqlidetect_without_parameters(engine, target):
    run = await engine.run('sqlidetect', {'url': 'http://target.test/item'})

    assert run.status == RunStatus.COMPLETED
    assert run.findings == []
    assert run.message == 'No parameters found in URL'
    assert target.calls == []


# AuthBypass

def admin_behind_proxy(url, options):
    if options['headers'].get('X-Forwarded-For') == '127.0.0.1':
        return page('<html>Admin dashboard</html>')
    return page('Unauthorized', 401)


async def test_authbypass_header_bypass(engine, target):
    target.route('http://target.test/admin', admin_behind_proxy)

    run = await engine.run('authbypass', {
        'url': 'http://target.test/admin',
        'idorTest': False,
        'methodTest': False,
        'pathTest': False,
    })

    assert len(run.findings) == 1
    finding = run.findings[0]
    assert finding.title == 'Header-Based Auth Bypass: X-Forwarded-For'
    assert finding.value == 'X-Forwarded-For: 127.0.0.1'
    assert finding.severity == Severity.CRITICAL


async def test_authbypass_skips_headers_when_not_denied(engine, target):
    target.default = page('public page')

    run = await engine.run('authbypass', {
        'url': 'http://target.test/admin',
        'idorTest': False,
        'methodTest': False,
        'pathTest': False,
    })

    assert run.findings == []
    # three baselines, no header fan-out
    assert len(target.calls) == 3


async def test_authbypass_idor_with_low_privilege_token(engine, target):
    record = json.dumps({'id': 1, 'email': 'first.user@shop.test', 'address': '1 Main Street, Springfield',
                         'notes': 'Prefers delivery after 5pm on weekdays'})
    target.default = page('User not found', 404)
    target.route('http://target.test/api/users/5', page(record))
    target.route('http://target.test/api/users/1', page(record))

    run = await engine.run('authbypass', {
        'url': 'http://target.test/api/users/5',
        'tokenB': 'Bearer low',
        'methodTest': False,
        'headerTest': False,
        'pathTest': False,
    })

    assert [f.value for f in run.findings] == ['http://target.test/api/users/1']
    assert run.findings[0].severity == Severity.HIGH
    idor_calls = [opts for url, opts in target.calls if url.endswith('/users/0')]
    assert idor_calls[0]['headers']['Authorization'] == 'Bearer low'


async def test_authbypass_unreachable(engine, target):
    run = await engine.run('authbypass', {'url': 'http://down.test/admin'})

    assert run.status == RunStatus.COMPLETED
    assert run.message == 'target unreachable'
    assert run.findings == []


# PortRush

async def test_portrush_custom_ports(engine, target):
    target.route('http://target.test:80/', page('hello'))

    run = await engine.run('portrush', {'host': 'target.test', 'preset': 'custom', 'customPorts': '22,80,9999'})

    assert [f.value for f in run.findings] == ['target.test:80']
    assert run.findings[0].severity == Severity.INFO
    assert run.findings[0].title == 'Port 80 - HTTP (200)'


async def test_portrush_skips_https_once_http_answers(store, target):
    target.route('http://target.test:80/', page('hello'))
    engine = ProbeEngine(store=store, settings=Settings(delay=0, concurrent=1), transport=target)

    await engine.run('portrush', {'host': 'http://target.test/', 'preset': 'custom', 'customPorts': '80'})

    assert target.urls == ['http://target.test:80/']


async def test_portrush_no_ports(engine, target):
    run = await engine.run('portrush', {'host': 'target.test', 'preset': 'custom', 'customPorts': '100-90'})

    assert run.status == RunStatus.COMPLETED
    assert run.message == 'No ports to scan'
    assert target.calls == []


# ProtoDetect

JENKINS = page('<html><title>Dashboard [Jenkins]</title></html>', headers={'X-Jenkins': '2.426'})


async def test_protodetect_identifies_service(engine, target):
    target.route('http://target.test:8080/', JENKINS)

    run = await engine.run('protodetect', {
        'host': 'target.test',
        'adminInterfaces': False,
        'commonServices': False,
        'websocket': False,
    })

    assert len(run.findings) == 1
    assert run.findings[0].title == 'Jenkins'
    assert run.findings[0].value == 'target.test:8080'
    assert run.findings[0].severity == Severity.HIGH
    assert 'https://target.test:8080/' not in target.urls


async def test_protodetect_shared_url_requested_once(engine, target):
    target.route('http://target.test:8080/', JENKINS)

    run = await engine.run('protodetect', {'host': 'target.test', 'websocket': False})

    assert target.urls.count('http://target.test:8080/') == 1
    critical = [f for f in run.findings if f.severity == Severity.CRITICAL]
    assert [f.title for f in critical] == ['Jenkins']
    assert any(f.kind == FindingKind.SERVICE and f.value == 'http://target.test:8080/' for f in run.findings)


# JSHunter

async def test_jshunter_inline_scripts(engine, target):
    html = (
        '<html><head><title>App</title></head><body>'
        f'<script>const gh = "{GITHUB_TOKEN}"; fetch(\'/api/users/list\');</script>'
        '</body></html>'
    )

    run = await engine.run('jshunter', {'url': 'http://t.test/'}, page=HTMLPage(html, 'http://t.test/'))

    assert target.calls == []
    assert len(run.findings) == 2
    secret, endpoint = run.findings
    assert secret.title == 'GitHub Token'
    assert secret.severity == Severity.HIGH
    assert secret.value == GITHUB_TOKEN
    assert endpoint.value == '/api/users/list'
    assert endpoint.details['category'] == 'API Endpoints'


async def test_jshunter_deep_scan_fetches_external_scripts(engine, target):
    target.route('http://t.test/', page('<html><script src="/static/app.js"></script></html>'))
    target.route('http://t.test/static/app.js', page('axios.get("/v2/orders")',
                                                     headers={'Content-Type': 'application/javascript'}))

    run = await engine.run('jshunter', {'url': 'http://t.test/', 'deepScan': True})

    assert target.urls == ['http://t.test/', 'http://t.test/static/app.js']
    assert [f.value for f in run.findings] == ['/v2/orders']
    assert run.findings[0].subtitle == 'Found in http://t.test/static/app.js'


async def test_jshunter_page_without_scripts(engine, target):
    target.route('http://t.test/', page('<html><p>static</p></html>'))

    run = await engine.run('jshunter', {'url': 'http://t.test/'})

    assert run.findings == []
    assert run.message == 'No scripts found on page'


# HeaderAudit

async def test_headeraudit(engine, target):
    target.route('http://t.test/', page('ok', headers={
        'Strict-Transport-Security': 'max-age=600',
        'X-Frame-Options': 'DENY',
        'Server': 'nginx/1.18',
        'Access-Control-Allow-Origin': '*',
    }))

    run = await engine.run('headeraudit', {'url': 'http://t.test/'})

    assert len(run.findings) == 10
    assert run.findings[0].title == 'Missing: Content-Security-Policy (CSP)'
    by_title = {f.title: f for f in run.findings}
    assert by_title['Weak: Strict-Transport-Security (HSTS)'].severity == Severity.MEDIUM
    assert by_title['Present: X-Frame-Options'].severity == Severity.INFO
    assert by_title['Info Leak: server'].value == 'server: nginx/1.18'
    assert by_title['CORS Wildcard'].severity == Severity.MEDIUM


async def test_headeraudit_unreachable(engine):
    run = await engine.run('headeraudit', {'url': 'http://down.test/'})

    assert run.findings == []
    assert run.message == 'Failed to reach target'


# ParamFuzz

def param_site(url, options):
    if 'beta=' in url:
        return page('Internal error near beta=test123', 500)
    if 'alpha=' in url:
        return page('x' * 50 + 'test123')
    return page('x' * 50)


async def test_paramfuzz_scores_parameters(engine, target):
    target.route('http://t.test/search', param_site)

    run = await engine.run('paramfuzz', {
        'url': 'http://t.test/search?q=old',
        'common': False,
        'customList': 'alpha\nbeta\ngamma',
    })

    assert [(f.details['param'], f.severity) for f in run.findings] == [
        ('beta', Severity.HIGH),
        ('alpha', Severity.LOW),
    ]
    assert run.findings[0].value == 'http://t.test/search?beta=test123'
    # baseline without the original query, then one probe per word
    assert target.urls[0] == 'http://t.test/search'
    assert len(target.calls) == 4


async def test_paramfuzz_empty_wordlist(engine, target):
    run = await engine.run('paramfuzz', {'url': 'http://t.test/', 'common': False})

    assert run.message == 'No parameters to test'
    assert target.calls == []


# GitLeaks

async def test_gitleaks_git_folder(engine, target):
    target.default = page('Not Found', 404)
    target.route('http://t.test/.git/HEAD', page('ref: refs/heads/main\n'))
    target.route('http://t.test/.git/config', page('[core]\n\trepositoryformatversion = 0\n'))
    target.route('http://t.test/.git/logs/HEAD', page('0000 a1b2 dev 1700000000 commit: first\n'
                                                      'a1b2 c3d4 dev 1700000100 commit: second\n'))

    run = await engine.run('gitleaks', {
        'url': 'http://t.test/some/page',
        'configFiles': False,
        'envFiles': False,
        'backupFiles': False,
    })

    assert titles(run) == [
        'Git Repository Exposed',
        'Git Config Exposed',
        'Git File Exposed',
        'Git Commits Found',
        'Git Branch',
    ]
    assert run.findings[0].severity == Severity.CRITICAL
    assert run.findings[3].value == '2 commits in log'
    assert run.findings[4].value == 'main'


async def test_gitleaks_soft_404_is_ignored(engine, target):
    target.default = page('<html>Page not found</html>', headers={'Content-Type': 'text/html'})

    run = await engine.run('gitleaks', {'url': 'http://t.test'})

    assert run.findings == []


async def test_gitleaks_env_file(engine, target):
    target.default = page('Not Found', 404)
    target.route('http://t.test/.env', page('DB_PASSWORD=hunter2\nAPP_KEY=base64:abc\n'))

    run = await engine.run('gitleaks', {'url': 'http://t.test'})

    assert titles(run) == ['Environment File Exposed']
    assert run.findings[0].kind == FindingKind.SECRET


# WebTechFP

WORDPRESS_PAGE = (
    '<html><head>'
    '<meta name="generator" content="WordPress 6.4">'
    '<script src="https://code.jquery.com/jquery-3.7.1.min.js"></script>'
    '<link rel="stylesheet" href="/wp-content/themes/site/style.css">'
    '</head><body>hello</body></html>'
)


async def test_webtechfp(engine, target):
    target.route('http://t.test/', page(WORDPRESS_PAGE, headers={
        'Server': 'nginx/1.24',
        'X-Powered-By': 'PHP/8.2',
    }))

    run = await engine.run('webtechfp', {'url': 'http://t.test/'})

    by_value = {f.value: f for f in run.findings}
    assert set(by_value) == {
        'jQuery', 'WordPress', 'nginx',
        'Generator: WordPress 6.4', 'jQuery CDN', '1 domains',
        'Server: nginx/1.24', 'X-Powered-By: PHP/8.2', 'PHP',
    }
    assert by_value['jQuery'].details['confidence'] == 60
    assert by_value['nginx'].details['confidence'] == 40
    assert by_value['WordPress'].title == 'CMS/Platform'
    assert run.findings[0].value == 'X-Powered-By: PHP/8.2'


async def test_webtechfp_reads_meta_tags_in_any_attribute_order(engine, target):
    html = ('<html><head>'
            '<meta content="Hugo 0.120" name="Generator">'
            '<meta name="powered-by" content="Netlify">'
            '</head><body></body></html>')
    target.route('http://t.test/', page(html))

    run = await engine.run('webtechfp', {'url': 'http://t.test/'})

    values = [f.value for f in run.findings]
    assert 'Generator: Hugo 0.120' in values
    assert 'Powered-By: Netlify' in values


async def test_webtechfp_findings_grouped_by_category(engine, target):
    target.route('http://t.test/', page(WORDPRESS_PAGE, headers={'Server': 'nginx/1.24'}))

    run = await engine.run('webtechfp', {'url': 'http://t.test/'})
    groups = run.grouped()

    assert [f.value for f in groups['CMS/Platform']] == ['WordPress']
    assert [f.value for f in groups['Meta']] == ['Generator: WordPress 6.4']
    assert 'Server: nginx/1.24' in [f.value for f in groups['Headers']]
    assert sum(len(v) for v in groups.values()) == len(run.findings)
    # a view: the run itself is untouched
    assert run.grouped(lambda f: f.severity)[Severity.INFO][0] is run.findings[0]


async def test_webtechfp_respects_groups(engine, target):
    target.route('http://t.test/', page(WORDPRESS_PAGE, headers={'Server': 'nginx/1.24'}))

    run = await engine.run('webtechfp', {'url': 'http://t.test/', 'cms': False, 'frameworks': False})

    values = [f.value for f in run.findings]
    assert 'WordPress' not in values
    assert 'jQuery' not in values
    assert 'nginx' in values


# Wayback

CDX_BODY = json.dumps([
    ['original', 'timestamp', 'statuscode', 'mimetype'],
    ['http://example.test/api/users?id=1', '20200101000000', '200', 'application/json'],
    ['http://example.test/backup.sql', '20200102000000', '200', 'text/plain'],
    ['http://example.test/about', '20200103000000', '200', 'text/html'],
])


async def test_wayback_mines_records(engine, target):
    target.route(CDX_URL.format(domain='example.test'), page(CDX_BODY))

    run = await engine.run('wayback', {'domain': 'https://www.example.test/'})

    assert len(run.findings) == 6
    secret = run.findings[0]
    assert secret.kind == FindingKind.SECRET
    assert secret.value == 'https://web.archive.org/web/20200102000000/http://example.test/backup.sql'
    assert secret.subtitle == 'http://example.test/backup.sql'
    assert run.findings[1].title == 'Parameter: id'
    assert run.findings[1].subtitle == 'Found in 1 URLs'
    assert any(f.kind == FindingKind.ENDPOINT for f in run.findings)


async def test_wayback_unparseable_response(engine, target):
    target.route(CDX_URL.format(domain='example.test'), page('<html>Service Unavailable</html>'))

    run = await engine.run('wayback', {'domain': 'example.test'})

    assert run.status == RunStatus.COMPLETED
    assert run.findings == []
    assert run.message == 'Failed to parse Wayback Machine response'


# DNSTracer

def doh(answers=None, **extra):
    data = dict(extra, Status=0)
    if answers is not None:
        data['Answer'] = answers
    return page(json.dumps(data), headers={'Content-Type': 'application/dns-json'})


async def test_dnstracer(engine, target):
    target.route(resolve_url('example.test', 'TXT'), doh([{'data': '"v=spf1 include:_spf.example.test +all"', 'TTL': 300}]))
    target.route(resolve_url('example.test', 'CNAME'), doh([{'data': 'shop-old.herokuapp.com.', 'TTL': 60}]))
    target.route(resolve_url('example.test', 'DNSKEY'), doh())
    target.route(resolve_url('_dmarc.example.test', 'TXT'), page('<html>rate limited</html>'))

    run = await engine.run('dnstracer', {
        'domain': 'example.test',
        'recordTypes': 'txt, cname',
        'zoneTransfer': False,
        'subdomains': False,
    })

    assert len(run.findings) == 3
    by_title = {f.title: f for f in run.findings}
    assert by_title['SPF Record'].severity == Severity.HIGH
    assert by_title['CNAME Record'].kind == FindingKind.VULNERABILITY
    assert by_title['DNSSEC Not Enabled'].severity == Severity.LOW


async def test_dnstracer_missing_dmarc_and_subdomains(engine, target):
    target.route(resolve_url('example.test', 'DNSKEY'), doh(AD=True))
    target.route(resolve_url('_dmarc.example.test', 'TXT'), doh())
    target.route(resolve_url('api.example.test', 'A'), doh([{'data': '203.0.113.10', 'TTL': 60}]))
    target.default = doh()

    run = await engine.run('dnstracer', {'domain': 'example.test', 'records': False})

    values = {f.title: f.value for f in run.findings}
    assert values['Missing DMARC'] == '_dmarc.example.test'
    assert values['DNSSEC Enabled'] == 'Authenticated Data'
    assert values['Subdomains Found (DNS)'] == '1 subdomains resolved'
    assert 'Zone Transfer Check' in values


# CachePoison

def reflect_forwarded_host(url, options):
    host = options['headers'].get('X-Forwarded-Host', '')
    return page(f'<link rel="canonical" href="http://{host}/">welcome')


async def test_cachepoison_unkeyed_header(engine, target):
    target.route('http://shop.test/', reflect_forwarded_host)

    run = await engine.run('cachepoison', {'url': 'http://shop.test/', 'paramPollution': False, 'fatGet': False})

    assert titles(run) == ['Unkeyed Header Reflected', 'No Cache Headers']
    assert run.findings[0].value == 'X-Forwarded-Host'
    assert run.findings[0].severity == Severity.HIGH
    assert all('thcb=' in url for url in target.urls)


async def test_cachepoison_detects_cache_layer(engine, target):
    target.route('http://shop.test/', page('ok', headers={
        'X-Cache': 'HIT',
        'Cache-Control': 'public, max-age=172800',
    }))

    run = await engine.run('cachepoison', {
        'url': 'http://shop.test/',
        'unkeyedHeaders': False,
        'paramPollution': False,
        'fatGet': False,
    })

    assert set(titles(run)) == {'Cache Layer Detected', 'Cache HIT', 'Cache-Control: public', 'Long Cache Duration'}
    assert run.findings[0].title == 'Cache-Control: public'


async def test_cachepoison_pollution_stops_after_first_hit(engine, target):
    target.route('http://shop.test/', lambda url, options: page(f'echo {unquote_plus(url)}'))

    run = await engine.run('cachepoison', {
        'url': 'http://shop.test/',
        'detectCache': False,
        'unkeyedHeaders': False,
        'fatGet': False,
    })

    assert titles(run) == ['Parameter Pollution Possible']
    assert len(target.calls) == 1


async def test_cachepoison_fat_get(engine, target):
    target.route('http://shop.test/', lambda url, options: page(f"body was {options.get('body')}"))

    run = await engine.run('cachepoison', {
        'url': 'http://shop.test/',
        'detectCache': False,
        'unkeyedHeaders': False,
        'paramPollution': False,
    })

    assert titles(run) == ['Fat GET Body Reflected']
    assert target.calls[0][1]['method'] == 'GET'


# CertWatch

CRTSH_BODY = json.dumps([
    {'issuer_name': "C=US, O=Let's Encrypt, CN=R3", 'common_name': 'example.test',
     'name_value': 'example.test\n*.example.test'},
    {'issuer_name': "C=US, O=Let's Encrypt, CN=R3", 'common_name': 'api.example.test',
     'name_value': 'api.example.test'},
])


async def test_certwatch_missing_hsts(engine, target):
    target.route('https://example.test/', page('ok'))

    run = await engine.run('certwatch', {'domain': 'example.test', 'certificates': False, 'ctLogs': False})

    assert titles(run) == ['Missing HSTS Header']
    assert run.findings[0].severity == Severity.HIGH


async def test_certwatch_hsts_without_preload(engine, target):
    target.route('https://example.test/', page('ok', headers={
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains'
    }))

    run = await engine.run('certwatch', {'domain': 'example.test', 'certificates': False, 'ctLogs': False})

    assert titles(run) == ['HSTS Configured', 'HSTS Preload Not Set']


async def test_certwatch_certificates(engine, target):
    target.route('https://crt.sh/?q=example.test&output=json', page(CRTSH_BODY))

    run = await engine.run('certwatch', {'domain': 'example.test', 'analyze': False})

    assert titles(run) == [
        'Wildcard Certificates',
        'Certificates Found',
        'Certificate Issuer',
        'Subdomains from CT Logs',
        'CT Log Sources',
    ]
    assert run.findings[3].value == '2 unique domains'


async def test_certwatch_https_unreachable(engine, target):
    run = await engine.run('certwatch', {'domain': 'example.test', 'certificates': False, 'ctLogs': False})

    assert titles(run) == ['Certificate Check Failed']


# SubRecon

CT_NAMES = json.dumps([
    {'name_value': 'api.example.test\n*.example.test'},
    {'name_value': 'old.example.test'},
])


async def test_subrecon_alive_and_takeover(engine, target):
    target.route('https://crt.sh/?q=%25.example.test&output=json', page(CT_NAMES))
    target.route('https://api.example.test', page('ok'))
    target.route('http://old.example.test', page("There isn't a GitHub Pages site here", 404))

    run = await engine.run('subrecon', {'domain': 'example.test', 'wordlist': False})

    assert [(f.value, f.severity) for f in run.findings] == [
        ('old.example.test', Severity.HIGH),
        ('api.example.test', Severity.INFO),
    ]
    assert run.findings[0].details['takeoverService'] == 'GitHub'
    assert 'http://api.example.test' not in target.urls
    assert len(target.calls) == 4


async def test_subrecon_without_alive_check(engine, target):
    target.route('https://crt.sh/?q=%25.example.test&output=json', page(CT_NAMES))

    run = await engine.run('subrecon', {'domain': 'example.test', 'wordlist': False, 'aliveCheck': False})

    assert [f.value for f in run.findings] == ['api.example.test', 'old.example.test']
    assert all(f.subtitle == 'Not checked' for f in run.findings)
    assert len(target.calls) == 1


async def test_subrecon_failed_lookup(engine, target):
    target.route('https://crt.sh/?q=%25.example.test&output=json', refused('Request timed out'))

    run = await engine.run('subrecon', {'domain': 'example.test', 'wordlist': False})

    assert run.status == RunStatus.COMPLETED
    assert run.findings == []


# APIRecon

def graphql_endpoint(url, options):
    if options['method'] == 'POST':
        return page('{"data": {"__schema": {"types": [{"name": "Query"}]}}}')
    return page('Method Not Allowed', 405)


async def test_apirecon_docs_and_introspection(engine, target):
    target.default = page('Not Found', 404)
    target.route('http://api.test/swagger.json', page('{"swagger": "2.0", "paths": {}}'))
    target.route('http://api.test/graphql', graphql_endpoint)

    run = await engine.run('apirecon', {'url': 'http://api.test/app/', 'common': False})

    assert [(f.title, f.value) for f in run.findings] == [
        ('Swagger/OpenAPI', 'http://api.test/swagger.json'),
        ('GraphQL Introspection Enabled', 'http://api.test/graphql'),
    ]
    posts = [url for url, options in target.calls if options['method'] == 'POST']
    assert posts == ['http://api.test/graphql']


async def test_apirecon_common_paths(engine, target):
    target.default = page('Not Found', 404)
    target.route('https://api.test/actuator/env', page('{"activeProfiles": []}'))
    target.route('https://api.test/health', page('{"status": "UP"}'))

    run = await engine.run('apirecon', {'url': 'api.test', 'swagger': False, 'graphql': False})

    by_value = {f.value: f for f in run.findings}
    assert by_value['https://api.test/actuator/env'].title == 'Spring Actuator'
    assert by_value['https://api.test/health'].severity == Severity.INFO
