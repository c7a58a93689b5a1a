"""
Finding sink and result store tests
"""

import pytest

from tryharder.engine import ResultStore, RunStatus, ToolBusyError
from tryharder.engine.models import Finding, FindingKind, Severity
from tryharder.engine.sink import FindingSink


def finding(value, severity=Severity.INFO, kind=FindingKind.ENDPOINT, title='Endpoint', tool='apirecon'):
    return Finding(tool=tool, kind=kind, title=title, value=value, severity=severity)


def test_duplicate_keeps_first():
    sink = FindingSink()

    assert sink.add(finding('/api', title='First'))
    assert not sink.add(finding('/api', title='Second', severity=Severity.HIGH))
    assert not sink.add(None)

    drained = sink.drain()
    assert len(drained) == 1
    assert drained[0].title == 'First'


def test_same_value_different_kind_is_distinct():
    sink = FindingSink()
    sink.add(finding('/api', kind=FindingKind.ENDPOINT))
    sink.add(finding('/api', kind=FindingKind.WARNING))

    assert len(sink) == 2


def test_drain_orders_by_severity_then_insertion():
    sink = FindingSink()
    sink.extend([
        finding('a', Severity.INFO),
        finding('b', Severity.CRITICAL),
        finding('c', Severity.LOW),
        finding('d', Severity.CRITICAL),
    ])

    first = [f.value for f in sink.drain()]
    assert first == ['b', 'd', 'c', 'a']
    assert [f.value for f in sink.drain()] == first


def test_tie_break_within_severity():
    sink = FindingSink(tie_break=lambda f: (f.value,))
    sink.extend([finding('zeta'), finding('alpha'), finding('beta', Severity.HIGH)])

    assert [f.value for f in sink.drain()] == ['beta', 'alpha', 'zeta']


def test_finding_callback_sees_new_findings_only():
    seen = []
    sink = FindingSink(on_finding=seen.append)
    sink.extend([finding('a'), finding('a'), finding('b')])

    assert [f.value for f in seen] == ['a', 'b']


def test_grouped_is_a_view():
    sink = FindingSink()
    sink.extend([finding('a', title='Endpoint'), finding('b', Severity.HIGH, title='Secret')])

    groups = sink.grouped(lambda f: f.title)

    assert list(groups) == ['Secret', 'Endpoint']
    assert len(sink) == 2


def test_store_single_flight():
    store = ResultStore()
    run = store.begin('portrush', 'example.test')

    assert store.is_running('portrush')
    with pytest.raises(ToolBusyError):
        store.begin('portrush', 'example.test')

    # other tools are independent
    store.begin('dnstracer', 'example.test')

    run.finish(RunStatus.COMPLETED, [])
    assert not store.is_running('portrush')
    assert store.begin('portrush', 'other.test').target == 'other.test'


def test_store_reset_keeps_running_runs():
    store = ResultStore()
    done = store.begin('wayback', 'example.test')
    done.finish(RunStatus.COMPLETED, [])
    store.begin('certwatch', 'example.test')

    store.reset()

    assert store.latest('wayback') is None
    assert store.latest('certwatch') is not None


def test_run_finishes_once():
    store = ResultStore()
    run = store.begin('gitleaks', 'http://t.test')
    run.finish(RunStatus.CANCELLED, [finding('a')], message='Cancelled by user')

    with pytest.raises(RuntimeError):
        run.finish(RunStatus.COMPLETED, [])

    assert run.status == RunStatus.CANCELLED
    assert run.summary()['info'] == 1
    report = run.to_dict()
    assert report['status'] == 'cancelled'
    assert report['findings'][0]['type'] == 'endpoint'
