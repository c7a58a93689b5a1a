"""
Egress Client for TryHarder

The only path by which the engine reaches the network:
- ``HttpTransport`` implements the ``proxy_fetch(url, options)`` contract
  on top of an aiohttp session (connection pooling, SSL handling, hard
  per-request timeout, body size cap)
- ``EgressClient`` merges settings into each request, times it, and
  normalizes whatever the transport returns into a ResponseRecord

Any transport, including test doubles, can stand behind the client as long
as it is an awaitable ``(url, options) -> dict`` that never raises.
"""

import asyncio
import ssl
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
import logging

import aiohttp

from tryharder.config import Settings, get_settings
from tryharder.engine.models import ProbeDescriptor, ResponseRecord

logger = logging.getLogger(__name__)

Transport = Callable[[str, Dict[str, Any]], Awaitable[Dict[str, Any]]]


class HttpTransport:
    """
    aiohttp-backed ``proxy_fetch``.

    Returns ``{success, status, headers, body, url}`` on any HTTP response
    and ``{success: False, error}`` on connection failure or timeout.
    Response header names are lower-cased; on duplicates the last wins.
    A body that cannot be read becomes an empty string.
    """

    DEFAULT_HEADERS = {
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.5',
    }

    def __init__(
            self,
            verify_ssl: bool = True,
            max_body_chars: int = 10 * 1024 * 1024,
            max_connections: int = 20,
            proxy: Optional[str] = None
    ):
        self.verify_ssl = verify_ssl
        self.max_body_chars = max_body_chars
        self.max_connections = max_connections
        self.proxy = proxy
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the aiohttp session."""
        if self._session is None or self._session.closed:
            if self.verify_ssl:
                ssl_context = ssl.create_default_context()
            else:
                ssl_context = ssl.create_default_context()
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

            connector = aiohttp.TCPConnector(
                limit=self.max_connections,
                ssl=ssl_context,
                enable_cleanup_closed=True
            )

            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=self.DEFAULT_HEADERS,
                cookie_jar=aiohttp.DummyCookieJar()
            )

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __call__(self, url: str, options: Dict[str, Any]) -> Dict[str, Any]:
        if self._session is None:
            await self.start()

        timeout = aiohttp.ClientTimeout(total=options.get('timeout', 10000) / 1000)

        try:
            async with self._session.request(
                    options.get('method', 'GET'),
                    url,
                    headers=options.get('headers') or {},
                    data=options.get('body'),
                    allow_redirects=options.get('followRedirects', True),
                    timeout=timeout,
                    proxy=self.proxy
            ) as resp:
                try:
                    body = await resp.text(errors='ignore')
                except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError, LookupError) as e:
                    logger.debug(f"Body read failed for {url}: {e}")
                    body = ''
                if len(body) > self.max_body_chars:
                    body = body[:self.max_body_chars]

                headers = {}
                for name, value in resp.headers.items():
                    headers[name.lower()] = value

                return {
                    'success': True,
                    'status': resp.status,
                    'headers': headers,
                    'body': body,
                    'url': str(resp.url)
                }

        except asyncio.TimeoutError:
            return {'success': False, 'error': 'Request timed out'}

        except aiohttp.ClientError as e:
            return {'success': False, 'error': str(e) or e.__class__.__name__}

        except ValueError as e:
            # Malformed URL or header value
            return {'success': False, 'error': str(e)}


class EgressClient:
    """
    Dispatches one request and returns a ResponseRecord.

    Features:
    - Custom headers from settings merged under per-call headers
    - Redirect policy and default timeout from settings
    - Wall-clock timing of each dispatch
    - Transport failures (including a misbehaving transport) converted
      to failure records and logged; nothing is raised to the caller
    """

    def __init__(self, transport: Transport, settings: Optional[Settings] = None):
        self.transport = transport
        self.settings = settings or get_settings()
        self.stats = {
            'requests_made': 0,
            'requests_successful': 0,
            'requests_failed': 0,
            'total_bytes': 0
        }

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> 'EgressClient':
        """Client over a fresh aiohttp transport. Close it with ``close()``."""
        settings = settings or get_settings()
        transport = HttpTransport(
            verify_ssl=settings.verify_ssl,
            max_body_chars=settings.max_body_chars,
            max_connections=max(settings.concurrent * 2, 10),
            proxy=settings.proxy
        )
        return cls(transport, settings)

    async def close(self):
        close = getattr(self.transport, 'close', None)
        if close is not None:
            await close()

    def build_options(self, method: str, headers: Optional[Mapping[str, str]],
                      body: Optional[str], timeout_ms: Optional[int]) -> Dict[str, Any]:
        """Transport options for one call."""
        merged = {'User-Agent': self.settings.user_agent}
        merged.update(self.settings.custom_headers)
        if headers:
            merged.update(headers)

        options = {
            'method': method,
            'headers': merged,
            'timeout': timeout_ms or self.settings.timeout,
            'followRedirects': self.settings.follow_redirects,
        }
        if body is not None:
            options['body'] = body
        return options

    async def send(
            self,
            method: str,
            url: str,
            headers: Optional[Mapping[str, str]] = None,
            body: Optional[str] = None,
            timeout_ms: Optional[int] = None,
            descriptor_id: str = ''
    ) -> ResponseRecord:
        """
        Make one HTTP request through the transport.

        Args:
            method: HTTP method
            url: Target URL
            headers: Per-call headers, applied over the custom headers
            body: Optional request body
            timeout_ms: Hard timeout; defaults to the settings timeout
            descriptor_id: Id of the originating descriptor, if any

        Returns:
            ResponseRecord (a failure record when the transport fails)
        """
        options = self.build_options(method, headers, body, timeout_ms)
        self.stats['requests_made'] += 1

        start_time = time.monotonic()
        try:
            result = await self.transport(url, options)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            self.stats['requests_failed'] += 1
            logger.warning(f"Transport raised on {method} {url}: {e}")
            return ResponseRecord.failure(str(e), url, elapsed_ms, descriptor_id)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        if not result or not result.get('success'):
            error = (result or {}).get('error') or 'Request failed'
            self.stats['requests_failed'] += 1
            logger.debug(f"{method} {url} failed after {elapsed_ms}ms: {error}")
            return ResponseRecord.failure(error, url, elapsed_ms, descriptor_id)

        response_body = result.get('body') or ''
        self.stats['requests_successful'] += 1
        self.stats['total_bytes'] += len(response_body)

        return ResponseRecord(
            success=True,
            status=int(result.get('status') or 0),
            headers={k.lower(): v for k, v in (result.get('headers') or {}).items()},
            body=response_body,
            final_url=result.get('url') or url,
            elapsed_ms=elapsed_ms,
            descriptor_id=descriptor_id
        )

    async def dispatch(self, descriptor: ProbeDescriptor) -> ResponseRecord:
        """Send a probe descriptor."""
        return await self.send(
            descriptor.method,
            descriptor.url,
            headers=descriptor.headers,
            body=descriptor.body,
            timeout_ms=descriptor.timeout_ms,
            descriptor_id=descriptor.id
        )

    def get_stats(self) -> Dict[str, int]:
        """Get request statistics."""
        return self.stats.copy()
