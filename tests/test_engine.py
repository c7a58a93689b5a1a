"""
Probe engine tests

Drives small purpose-built tools through the engine against the fake
target: lifecycle, single-flight, cancellation, phases and failure
handling.
"""

import asyncio

import pytest

from tryharder.engine import (
    ConfigurationError, FindingKind, ProbeEngine, RunStatus, Severity,
    ToolBusyError, UnknownToolError
)
from tryharder.engine.models import ProbeDescriptor
from tryharder.tools.base import BaseTool

from fake_target import FakeTarget, page


class CounterTool(BaseTool):
    """One endpoint finding per successful response, plus a summary."""

    name = 'counter'
    title = 'Counter'

    def candidates(self, ctx):
        return [ProbeDescriptor(url=f"{ctx.target}/p{i}") for i in range(10)]

    def evaluate(self, ctx, descriptor, response):
        ctx.state['seen'] = ctx.state.get('seen', 0) + 1
        if not response.success:
            return []
        return [self.create_finding(FindingKind.ENDPOINT, 'Endpoint', descriptor.url, Severity.INFO)]

    def finalize(self, ctx):
        return [self.create_finding(FindingKind.INFO, 'Summary', f"{ctx.state.get('seen', 0)} responses",
                                    Severity.LOW)]


class PhasedTool(CounterTool):
    """Second phase repeats one first-phase request and adds a new one."""

    name = 'phased'

    def candidates(self, ctx):
        return [ProbeDescriptor(url=f"{ctx.target}/a"), ProbeDescriptor(url=f"{ctx.target}/b")]

    def follow_up(self, ctx):
        if ctx.state.get('followed'):
            return []
        ctx.state['followed'] = True
        return [ProbeDescriptor(url=f"{ctx.target}/b"), ProbeDescriptor(url=f"{ctx.target}/c")]


class ExplodingTool(CounterTool):
    name = 'exploding'

    def evaluate(self, ctx, descriptor, response):
        if descriptor.url.endswith('/p3'):
            raise ValueError('bad body')
        return super().evaluate(ctx, descriptor, response)


class BrokenTool(CounterTool):
    name = 'broken'

    def candidates(self, ctx):
        raise RuntimeError('candidate generation failed')


class AbortingTool(CounterTool):
    name = 'aborting'

    async def prepare(self, ctx):
        ctx.abort('target unreachable')


@pytest.fixture
def site():
    return FakeTarget(default=page('ok'))


@pytest.fixture
def site_engine(store, settings, site):
    return ProbeEngine(store=store, settings=settings, transport=site)


async def test_completed_run(site_engine, site, store):
    run = await site_engine.run(CounterTool(), {'url': 'http://t.test'})

    assert run.status == RunStatus.COMPLETED
    assert run.dispatched == 10
    assert len(site.calls) == 10
    assert len(run.findings) == 11
    # LOW summary sorts ahead of INFO endpoints
    assert run.findings[0].value == '10 responses'
    assert run.findings[1].value == 'http://t.test/p0'
    assert store.latest('counter') is run


async def test_custom_headers_and_user_agent_reach_transport(store, site):
    from tryharder.config import Settings

    settings = Settings(delay=0, custom_headers={'Cookie': 'session=1'}, user_agent='UA-Test')
    engine = ProbeEngine(store=store, settings=settings, transport=site)

    await engine.run(CounterTool(), {'url': 'http://t.test'})

    _, options = site.calls[0]
    assert options['headers']['Cookie'] == 'session=1'
    assert options['headers']['User-Agent'] == 'UA-Test'


async def test_missing_target_fails_before_dispatch(site_engine, site, store):
    with pytest.raises(ConfigurationError):
        await site_engine.run(CounterTool(), {})

    assert site.calls == []
    assert store.latest('counter') is None


async def test_unknown_tool(site_engine):
    with pytest.raises(UnknownToolError):
        await site_engine.run('nope', {'url': 'http://t.test'})


async def test_tool_by_id(site_engine, site):
    run = await site_engine.run('headeraudit', {'url': 'http://t.test'})

    assert run.status == RunStatus.COMPLETED
    assert site.urls == ['http://t.test']


async def test_second_run_of_same_tool_is_refused(store, settings):
    gate = asyncio.Event()

    async def gated(url, options):
        await gate.wait()
        return page('ok')

    engine = ProbeEngine(store=store, settings=settings, transport=gated)
    first = asyncio.create_task(engine.run(CounterTool(), {'url': 'http://t.test'}))
    await asyncio.sleep(0)

    assert engine.is_running('counter')
    with pytest.raises(ToolBusyError):
        await engine.run(CounterTool(), {'url': 'http://t.test'})

    gate.set()
    run = await first

    assert run.status == RunStatus.COMPLETED
    assert len(run.findings) == 11
    assert not engine.is_running('counter')


async def test_cancel_stops_dispatch(site_engine, site):
    def on_progress(data):
        if data['dispatched'] == 3:
            site_engine.cancel('counter')

    site_engine.progress_callback = on_progress

    run = await site_engine.run(CounterTool(), {'url': 'http://t.test'})

    assert run.status == RunStatus.CANCELLED
    assert run.dispatched == 3
    assert len(site.calls) == 3
    assert len(run.findings) == 3
    assert all(f.title == 'Endpoint' for f in run.findings)
    assert run.message == 'Cancelled by user'


async def test_cancelled_task_ends_run_as_cancelled(store, settings):
    gate = asyncio.Event()
    calls = []

    async def stalls_after_three(url, options):
        calls.append(url)
        if len(calls) > 3 and not gate.is_set():
            await gate.wait()
        return page('ok')

    engine = ProbeEngine(store=store, settings=settings, transport=stalls_after_three)
    task = asyncio.create_task(engine.run(CounterTool(), {'url': 'http://t.test'}))
    while len(calls) < 4:
        await asyncio.sleep(0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    run = store.latest('counter')
    assert run.status == RunStatus.CANCELLED
    assert run.message == 'Task cancelled'
    assert [f.value for f in run.findings] == ['http://t.test/p0', 'http://t.test/p1', 'http://t.test/p2']
    assert not engine.is_running('counter')

    gate.set()
    rerun = await engine.run(CounterTool(), {'url': 'http://t.test'})

    assert rerun.status == RunStatus.COMPLETED


async def test_cancel_without_active_run(site_engine):
    assert site_engine.cancel('counter') is False


async def test_caller_token_cancelled_up_front(site_engine, site):
    from tryharder.engine import CancelToken

    token = CancelToken()
    token.cancel('stop')

    run = await site_engine.run(CounterTool(), {'url': 'http://t.test'}, cancel_token=token)

    assert run.status == RunStatus.CANCELLED
    assert run.findings == []
    assert site.calls == []


async def test_follow_up_phase_never_resends(site_engine, site):
    phases = []
    site_engine.progress_callback = lambda data: phases.append(data['phase'])

    run = await site_engine.run(PhasedTool(), {'url': 'http://t.test'})

    assert site.urls == ['http://t.test/a', 'http://t.test/b', 'http://t.test/c']
    assert phases == [1, 1, 2]
    assert run.dispatched == 3


async def test_evaluation_error_is_absorbed(site_engine):
    run = await site_engine.run(ExplodingTool(), {'url': 'http://t.test'})

    assert run.status == RunStatus.COMPLETED
    assert 'http://t.test/p3' not in [f.value for f in run.findings]
    assert len(run.findings) == 10


async def test_unexpected_error_fails_run(site_engine, store):
    run = await site_engine.run(BrokenTool(), {'url': 'http://t.test'})

    assert run.status == RunStatus.FAILED
    assert 'candidate generation failed' in run.error
    assert store.latest('broken') is run
    assert not site_engine.is_running('broken')


async def test_abort_in_prepare(site_engine, site):
    run = await site_engine.run(AbortingTool(), {'url': 'http://t.test'})

    assert run.status == RunStatus.COMPLETED
    assert run.findings == []
    assert run.message == 'target unreachable'
    assert site.calls == []


async def test_transport_exceptions_do_not_fail_run(store, settings):
    async def broken(url, options):
        raise ConnectionResetError('reset by peer')

    engine = ProbeEngine(store=store, settings=settings, transport=broken)

    run = await engine.run(CounterTool(), {'url': 'http://t.test'})

    assert run.status == RunStatus.COMPLETED
    assert [f.value for f in run.findings] == ['10 responses']


async def test_batched_dispatch_respects_width(store):
    from tryharder.config import Settings

    in_flight = 0
    peak = 0

    async def tracking(url, options):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        in_flight -= 1
        return page('ok')

    class BatchedCounter(CounterTool):
        name = 'batched'
        batchable = True

    engine = ProbeEngine(store=store, settings=Settings(delay=0, concurrent=4), transport=tracking)

    run = await engine.run(BatchedCounter(), {'url': 'http://t.test'})

    assert run.dispatched == 10
    assert peak == 4


async def test_reset_forgets_finished_runs(site_engine):
    await site_engine.run(CounterTool(), {'url': 'http://t.test'})

    site_engine.reset('counter')

    assert site_engine.latest('counter') is None
