"""
Settings and egress client tests
"""

import logging

from tryharder import configure_logging
from tryharder.config import BaseConfig, Settings, get_config
from tryharder.engine import EgressClient
from tryharder.engine.models import ProbeDescriptor

from fake_target import FakeTarget, page, refused


def test_from_mapping_clamps_and_accepts_aliases():
    settings = Settings.from_mapping({
        'delay': -50,
        'concurrent': 0,
        'followRedirects': False,
        'customHeaders': {'Authorization': 'Bearer abc'},
        'theme': 'dark',
    })

    assert settings.delay == 0
    assert settings.concurrent == 1
    assert settings.follow_redirects is False
    assert settings.custom_headers == {'Authorization': 'Bearer abc'}


def test_from_mapping_falls_back_to_base():
    base = Settings(delay=250, timeout=3000)

    settings = Settings.from_mapping({'timeout': None, 'concurrent': 8}, base=base)

    assert settings.delay == 250
    assert settings.timeout == 3000
    assert settings.concurrent == 8


def test_build_options_header_precedence():
    settings = Settings(custom_headers={'Authorization': 'Bearer abc', 'X-Team': 'red'},
                        user_agent='TryHarderTest', timeout=4000, follow_redirects=False)
    client = EgressClient(FakeTarget(), settings)

    options = client.build_options('POST', {'X-Team': 'blue'}, 'a=1', None)

    assert options['method'] == 'POST'
    assert options['headers'] == {
        'User-Agent': 'TryHarderTest',
        'Authorization': 'Bearer abc',
        'X-Team': 'blue',
    }
    assert options['timeout'] == 4000
    assert options['followRedirects'] is False
    assert options['body'] == 'a=1'

    assert 'body' not in client.build_options('GET', None, None, 1500)
    assert client.build_options('GET', None, None, 1500)['timeout'] == 1500


async def test_dispatch_normalizes_response():
    target = FakeTarget({'http://t.test/': page('<html></html>', 201, {'Content-Type': 'text/html'})})
    client = EgressClient(target, Settings(delay=0))

    response = await client.dispatch(ProbeDescriptor(url='http://t.test/', id='x-0001'))

    assert response.success
    assert response.status == 201
    assert response.header('Content-Type') == 'text/html'
    assert 'content-type' in response.headers
    assert response.is_html
    assert response.descriptor_id == 'x-0001'
    assert response.final_url == 'http://t.test/'


async def test_transport_failure_becomes_failure_record():
    client = EgressClient(FakeTarget(default=refused()), Settings(delay=0))

    response = await client.send('GET', 'http://down.test/')

    assert not response.success
    assert response.status == 0
    assert response.body == ''
    assert response.error == 'Connection refused'
    assert client.get_stats()['requests_failed'] == 1


async def test_raising_transport_is_absorbed():
    async def broken(url, options):
        raise OSError('socket exploded')

    client = EgressClient(broken, Settings(delay=0))

    response = await client.send('GET', 'http://t.test/')

    assert not response.success
    assert response.status == 0
    assert response.body == ''
    assert 'socket exploded' in response.error


def test_proxy_reaches_transport():
    settings = Settings.from_mapping({'proxy': 'http://127.0.0.1:8080'})

    client = EgressClient.from_settings(settings)

    assert client.transport.proxy == 'http://127.0.0.1:8080'
    assert EgressClient.from_settings(Settings.from_mapping({'proxy': ''})).transport.proxy is None


def test_proxy_from_config_class():
    class ProxiedConfig(BaseConfig):
        PROBE_PROXY = 'http://proxy.internal:3128'

    assert Settings.from_config(ProxiedConfig).proxy == 'http://proxy.internal:3128'


def test_log_level_follows_config():
    package_logger = logging.getLogger('tryharder')
    try:
        configure_logging(get_config('development'))
        assert package_logger.level == logging.DEBUG

        configure_logging(get_config('production'))
        assert package_logger.level == logging.WARNING
        assert not logging.getLogger('tryharder.engine.engine').isEnabledFor(logging.INFO)
    finally:
        configure_logging(get_config('testing'))


def test_unknown_environment_uses_base_config():
    assert get_config('staging') is BaseConfig
