"""
Candidate Generator for TryHarder

Turns a normalized target plus tool options into a finite, ordered,
duplicate-free list of probe descriptors. Everything here is pure: no
I/O, no clock, no shared state.
"""

import re
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlsplit, urlunsplit
import logging

from tryharder.engine.models import ProbeDescriptor, ProbePurpose

logger = logging.getLogger(__name__)

VERSION_RANGE = range(1, 6)
VERSION_TOKEN = re.compile(r'v\d')
NUMERIC_SEGMENT = re.compile(r'/(\d+)(?:/|$)')
DEFAULT_TEST_IDS = ['1', '0', '-1', '999999', 'admin', 'null', 'undefined']
MAX_PORTS = 1000
MAX_PORT = 65535


def union(*lists: Iterable[str]) -> List[str]:
    """Concatenate lists, keeping the first occurrence of each item."""
    seen = set()
    result = []
    for items in lists:
        for item in items:
            if item not in seen:
                seen.add(item)
                result.append(item)
    return result


def expand_versions(paths: Iterable[str], versions: Iterable[int] = VERSION_RANGE) -> List[str]:
    """
    Version variants for every path that carries a version token.

    Each such path yields one variant per version with the first token
    substituted, and one with ``/v{n}`` prefixed. Paths without a token
    yield nothing. The result is not deduplicated.
    """
    variants = []
    for path in paths:
        if not VERSION_TOKEN.search(path):
            continue
        for v in versions:
            variants.append(VERSION_TOKEN.sub(f"v{v}", path, count=1))
            variants.append(f"/v{v}{path}")
    return variants


def id_substitutions(url: str, supplied: Sequence[str] = ()) -> List[Tuple[str, str]]:
    """
    (test_id, test_url) pairs for numeric ID substitution.

    The first numeric path segment is replaced by each supplied ID and
    then each default test ID. The original ID itself is never emitted.
    Without a numeric segment the IDs are appended as a trailing segment,
    but only when the caller supplied IDs of their own.
    """
    parts = urlsplit(url)
    match = NUMERIC_SEGMENT.search(parts.path)
    if not match and not supplied:
        return []

    original_id = match.group(1) if match else None
    pairs = []
    for test_id in union(supplied, DEFAULT_TEST_IDS):
        if test_id == original_id:
            continue
        if match:
            path = parts.path[:match.start(1)] + test_id + parts.path[match.end(1):]
        else:
            path = parts.path.rstrip('/') + '/' + test_id
        pairs.append((test_id, urlunsplit(parts._replace(path=path))))
    return pairs


def header_fanout(url: str, table: Sequence[Tuple[str, str]],
                  purpose: ProbePurpose = ProbePurpose.HEADER_BYPASS,
                  method: str = 'GET') -> List[ProbeDescriptor]:
    """One descriptor per (header, value) entry, all against the same URL."""
    return [
        ProbeDescriptor(
            url=url,
            method=method,
            headers={name: value},
            purpose=purpose,
            meta={'header': name, 'value': value}
        )
        for name, value in table
    ]


def split_list(text: Optional[str], separator: str = '\n') -> List[str]:
    """Split user input, trimming entries and dropping empty ones."""
    if not text:
        return []
    return [item.strip() for item in text.split(separator) if item.strip()]


def parse_ports(spec: Optional[str], limit: int = MAX_PORTS) -> List[int]:
    """
    Parse a port specification such as ``22,80,8000-8100``.

    Ranges are inclusive and clipped to 65535; a range whose start exceeds
    its end contributes nothing. Unparseable parts are skipped. The result
    keeps first-seen order and is capped at ``limit`` entries.
    """
    ports: List[int] = []
    seen = set()

    def add(port: int):
        if port not in seen:
            seen.add(port)
            ports.append(port)

    for part in split_list(spec, ','):
        if '-' in part:
            start_text, _, end_text = part.partition('-')
            try:
                start, end = int(start_text), int(end_text)
            except ValueError:
                logger.debug(f"Skipping malformed port range: {part}")
                continue
            for port in range(max(start, 1), min(end, MAX_PORT) + 1):
                add(port)
                if len(ports) >= limit:
                    return ports
        else:
            try:
                port = int(part)
            except ValueError:
                logger.debug(f"Skipping malformed port: {part}")
                continue
            if 0 < port <= MAX_PORT:
                add(port)

    return ports[:limit]


def dedupe(descriptors: Iterable[ProbeDescriptor]) -> List[ProbeDescriptor]:
    """Drop descriptors whose method, URL and header set were already seen."""
    seen = set()
    result = []
    for descriptor in descriptors:
        if descriptor.key in seen:
            continue
        seen.add(descriptor.key)
        result.append(descriptor)
    return result


def finalize(tool: str, descriptors: Iterable[ProbeDescriptor], start: int = 0) -> List[ProbeDescriptor]:
    """Deduplicate and assign stable ids (``tool-0001`` ...)."""
    return [
        d.with_id(f"{tool}-{start + i + 1:04d}")
        for i, d in enumerate(dedupe(descriptors))
    ]


def origin(url: str) -> str:
    """``scheme://host[:port]`` of a URL."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def ensure_scheme(url: str, default: str = 'https') -> str:
    """Prefix a scheme when the input has none."""
    url = url.strip()
    if not url.startswith(('http://', 'https://')):
        url = f"{default}://{url}"
    return url


def normalize_host(value: str) -> str:
    """Strip scheme, path and port from a host input."""
    value = re.sub(r'^https?://', '', value.strip(), flags=re.IGNORECASE)
    value = value.split('/')[0]
    return value.split(':')[0]


def normalize_domain(value: str) -> str:
    """Strip scheme, path, port and a leading ``www.``; lower-case the rest."""
    host = normalize_host(value)
    if host.lower().startswith('www.'):
        host = host[4:]
    return host.lower()


def with_query(url: str, query: str) -> str:
    """Append a query fragment with the right separator."""
    return f"{url}&{query}" if '?' in url else f"{url}?{query}"


def build_paths(base: str, paths: Iterable[str], purpose: ProbePurpose,
                timeout_ms: Optional[int] = None,
                meta: Optional[Mapping] = None) -> List[ProbeDescriptor]:
    """GET descriptors for each path under a base origin."""
    return [
        ProbeDescriptor(
            url=base + path,
            purpose=purpose,
            timeout_ms=timeout_ms,
            meta=dict(meta or {}, path=path)
        )
        for path in paths
    ]
