"""
TryHarder Configuration Module

Class-based configuration loaded from the environment, plus the runtime
Settings value the egress client and scheduler read on every run.
"""

import json
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_headers(name: str) -> Dict[str, str]:
    raw = os.environ.get(name, '')
    if not raw:
        return {}
    return json.loads(raw)


class BaseConfig:
    """Base configuration with conservative defaults."""

    # Application
    APP_NAME = 'TryHarder'
    APP_VERSION = '1.0.0'

    # Egress
    PROBE_DELAY_MS = int(os.environ.get('TRYHARDER_DELAY', 100))
    PROBE_CONCURRENT = int(os.environ.get('TRYHARDER_CONCURRENT', 5))
    PROBE_TIMEOUT_MS = int(os.environ.get('TRYHARDER_TIMEOUT', 10000))
    PROBE_FOLLOW_REDIRECTS = _env_bool('TRYHARDER_FOLLOW_REDIRECTS', True)
    PROBE_CUSTOM_HEADERS = _env_headers('TRYHARDER_CUSTOM_HEADERS')
    PROBE_VERIFY_SSL = _env_bool('TRYHARDER_VERIFY_SSL', True)
    PROBE_USER_AGENT = os.environ.get(
        'TRYHARDER_USER_AGENT',
        'Mozilla/5.0 (compatible; TryHarder/1.0; +https://github.com/a0x194/tryharder)'
    )
    # HTTP proxy for all outbound requests, e.g. http://127.0.0.1:8080
    PROBE_PROXY = os.environ.get('TRYHARDER_PROXY') or None

    # Read body with size limit (10MB)
    PROBE_MAX_BODY_CHARS = 10 * 1024 * 1024

    LOG_LEVEL = os.environ.get('TRYHARDER_LOG_LEVEL', 'INFO')


class DevelopmentConfig(BaseConfig):
    """Development configuration."""

    LOG_LEVEL = 'DEBUG'


class TestingConfig(BaseConfig):
    """Testing configuration."""

    # No pacing for tests
    PROBE_DELAY_MS = 0
    PROBE_TIMEOUT_MS = 2000
    PROBE_CUSTOM_HEADERS: Dict[str, str] = {}


class ProductionConfig(BaseConfig):
    """Production configuration."""

    LOG_LEVEL = 'WARNING'


# Configuration dictionary for easy access
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': BaseConfig
}


@dataclass(frozen=True)
class Settings:
    """
    Runtime probe settings.

    Attributes:
        delay: Pause between sequential dispatches, in milliseconds
        concurrent: Batch width for batchable tools
        timeout: Default per-request timeout, in milliseconds
        follow_redirects: Whether the transport follows redirects
        custom_headers: Headers merged under every per-call header set
        proxy: HTTP proxy URL for the transport, or None
    """
    delay: int = 100
    concurrent: int = 5
    timeout: int = 10000
    follow_redirects: bool = True
    custom_headers: Mapping[str, str] = field(default_factory=dict)
    verify_ssl: bool = True
    user_agent: str = BaseConfig.PROBE_USER_AGENT
    max_body_chars: int = BaseConfig.PROBE_MAX_BODY_CHARS
    proxy: Optional[str] = None

    # Collaborator keys that differ from attribute names
    _ALIASES = {
        'followRedirects': 'follow_redirects',
        'customHeaders': 'custom_headers',
        'verifySsl': 'verify_ssl',
        'userAgent': 'user_agent',
    }

    @classmethod
    def from_config(cls, config_class=BaseConfig) -> 'Settings':
        """Build settings from a configuration class."""
        return cls(
            delay=config_class.PROBE_DELAY_MS,
            concurrent=config_class.PROBE_CONCURRENT,
            timeout=config_class.PROBE_TIMEOUT_MS,
            follow_redirects=config_class.PROBE_FOLLOW_REDIRECTS,
            custom_headers=dict(config_class.PROBE_CUSTOM_HEADERS),
            verify_ssl=config_class.PROBE_VERIFY_SSL,
            user_agent=config_class.PROBE_USER_AGENT,
            max_body_chars=config_class.PROBE_MAX_BODY_CHARS,
            proxy=config_class.PROBE_PROXY
        )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], base: Optional['Settings'] = None) -> 'Settings':
        """
        Build settings from a collaborator mapping.

        Accepts both attribute names and the camelCase keys used by stored
        settings (``followRedirects``, ``customHeaders``). Unknown keys are
        ignored; missing keys fall back to ``base`` or the defaults.
        """
        base = base or cls()
        known = {f.name for f in fields(cls)}
        values = {f.name: getattr(base, f.name) for f in fields(cls)}

        for key, value in mapping.items():
            name = cls._ALIASES.get(key, key)
            if name not in known or value is None:
                continue
            values[name] = value

        values['delay'] = max(0, int(values['delay']))
        values['concurrent'] = max(1, int(values['concurrent']))
        values['timeout'] = max(1, int(values['timeout']))
        values['follow_redirects'] = bool(values['follow_redirects'])
        values['custom_headers'] = dict(values['custom_headers'] or {})
        values['proxy'] = values['proxy'] or None
        return cls(**values)


def get_config(name: Optional[str] = None):
    """Configuration class for ``name``, or for ``TRYHARDER_ENV`` when omitted."""
    name = name or os.environ.get('TRYHARDER_ENV', 'default')
    return config.get(name, BaseConfig)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded once from the environment."""
    global _settings
    if _settings is None:
        _settings = Settings.from_config(get_config())
    return _settings


def configure(mapping: Optional[Mapping[str, Any]] = None, **overrides) -> Settings:
    """Replace the process-wide settings. Refresh happens only here."""
    global _settings
    merged = dict(mapping or {})
    merged.update(overrides)
    _settings = Settings.from_mapping(merged, base=get_settings())
    return _settings
