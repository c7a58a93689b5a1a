"""
In-process fake target for TryHarder tests

Implements the ``(url, options) -> dict`` transport contract so every tool
can run end to end without a network. Routes map a URL (exact, or with the
query string stripped) to either a canned response or a handler
``(url, options) -> dict``. Unrouted URLs are refused.

Every call is logged so tests can assert on what was (not) sent.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import urlsplit

Handler = Union[Dict[str, Any], Callable[[str, Dict[str, Any]], Dict[str, Any]]]


def page(body: str = '', status: int = 200, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """A successful transport result."""
    return {
        'success': True,
        'status': status,
        'headers': dict(headers or {}),
        'body': body
    }


def refused(error: str = 'Connection refused') -> Dict[str, Any]:
    """A failed transport result."""
    return {'success': False, 'error': error}


class FakeTarget:
    """Routable stand-in for the aiohttp transport."""

    def __init__(self, routes: Optional[Dict[str, Handler]] = None, default: Optional[Handler] = None):
        self.routes: Dict[str, Handler] = dict(routes or {})
        self.default: Handler = default if default is not None else refused()
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def route(self, url: str, handler: Handler):
        self.routes[url] = handler

    @property
    def urls(self) -> List[str]:
        return [url for url, _ in self.calls]

    async def __call__(self, url: str, options: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((url, dict(options)))

        handler = self.routes.get(url)
        if handler is None:
            parts = urlsplit(url)
            handler = self.routes.get(f"{parts.scheme}://{parts.netloc}{parts.path}")
        if handler is None:
            handler = self.default

        if callable(handler):
            return handler(url, options)
        return dict(handler)
