"""
Comparator and classifier rule tests
"""

from tryharder.engine.classifier import (
    discovery_rule, fingerprint_confidence, first_family, header_bypass_rule,
    idor_rule, parameter_score, parameter_severity, port_open_rule, scan_limit
)
from tryharder.engine.comparator import boolean_pair_signal, compare, timing_signal
from tryharder.engine.models import Baseline, ResponseRecord, Severity


def record(body='', status=200, elapsed_ms=0, headers=None):
    return ResponseRecord(success=True, status=status, body=body, elapsed_ms=elapsed_ms,
                          headers=headers or {})


def test_compare_against_baseline():
    baseline = Baseline(name='normal', records=(record('x' * 100, elapsed_ms=50),))

    diff = compare(record('x' * 30, status=500, elapsed_ms=5050), baseline)

    assert diff.status_changed
    assert diff.length_delta == -70
    assert diff.abs_length_delta == 70
    assert diff.elapsed_delta_ms == 5000
    assert diff.baseline_status == 200


def test_compare_without_baseline():
    diff = compare(record('hello'))

    assert diff.status_changed
    assert diff.length_delta == 5
    assert diff.reflects('ell')
    assert not diff.reflects('')


def test_boolean_pair_threshold_is_strict():
    assert not boolean_pair_signal(1050, 1000, 1000)
    assert boolean_pair_signal(1051, 1000, 1000)


def test_boolean_pair_requires_true_close_to_baseline():
    assert not boolean_pair_signal(1200, 1000, 1100)
    assert boolean_pair_signal(1199, 1000, 1100)


def test_timing_signal_threshold():
    assert timing_signal(4500)
    assert not timing_signal(4499)


def test_header_bypass_rule():
    assert header_bypass_rule(401, 200)
    assert header_bypass_rule(403, 200)
    assert not header_bypass_rule(200, 200)
    assert not header_bypass_rule(403, 302)


def test_idor_rule():
    assert idor_rule(record('{"email": "someone@shop.test", "orders": []}' * 5))
    assert not idor_rule(record('short'))
    assert not idor_rule(record('User not found. ' * 20))
    assert not idor_rule(record('x' * 200, status=403))


def test_port_open_rule():
    assert port_open_rule(record(status=404))
    assert port_open_rule(ResponseRecord.failure('Server disconnected', elapsed_ms=20))
    assert not port_open_rule(ResponseRecord.failure('Connection refused', elapsed_ms=20))
    assert not port_open_rule(ResponseRecord.failure('Request timed out', elapsed_ms=20))
    assert not port_open_rule(ResponseRecord.failure('Server disconnected', elapsed_ms=1500))


def test_fingerprint_confidence_is_capped():
    assert fingerprint_confidence(1, 0, 0) == 30
    assert fingerprint_confidence(0, 1, 0) == 40
    assert fingerprint_confidence(2, 1, 1) == 100


def test_parameter_score_and_severity():
    baseline = record('x' * 10, status=200)

    diff = compare(record('x' * 10 + ' echo th123 ', status=500), baseline)
    score = parameter_score(diff, 500, 'th123', 'debug')
    assert score == 5
    assert parameter_severity(score) == Severity.HIGH

    diff = compare(record('debug mode off', status=200), baseline)
    assert parameter_score(diff, 200, 'th123', 'debug') == 1
    assert parameter_severity(1) == Severity.LOW

    diff = compare(record('x', status=404), baseline)
    assert parameter_score(diff, 404, 'th123', 'debug') == 0


def test_discovery_rule_first_row_wins():
    table = [
        (['swagger'], ['"swagger"'], 'API Documentation', Severity.HIGH, 'warning'),
        (['admin'], [], 'Admin Endpoint', Severity.HIGH, 'vulnerability'),
    ]
    default = ('API Endpoint', Severity.MEDIUM, 'endpoint')

    assert discovery_rule('/admin/swagger', '', table, default)[0] == 'API Documentation'
    assert discovery_rule('/admin', '', table, default)[0] == 'Admin Endpoint'
    assert discovery_rule('/users', '{}', table, default) == default


def test_first_family_uses_bank_order():
    matches = {('postgresql-0', 'PostgreSQL ERROR'), ('mysql-0', 'SQL syntax MySQL')}

    assert first_family(matches, ['mysql-0', 'postgresql-0']) == 'mysql-0'
    assert first_family(set(), ['mysql-0']) is None


def test_scan_limit_depends_on_content_type():
    assert scan_limit(record(headers={'content-type': 'application/javascript'})) == 100000
    assert scan_limit(record(headers={'content-type': 'text/html'})) == 50000
