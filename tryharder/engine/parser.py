"""
HTML page parsing for TryHarder

Provides the page-content collaborator used by content-analysis tools:
- Script inventory (inline bodies and external sources)
- Page information (URL parts, title, bounded outer markup)
- Meta tags and script references for fingerprinting
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlsplit
import logging

from bs4 import BeautifulSoup

from tryharder.engine.classifier import CODE_SCAN_LIMIT, MARKUP_SCAN_LIMIT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptInfo:
    """One <script> element."""
    index: int
    src: Optional[str]
    inline: bool
    content: Optional[str] = None
    type: str = 'text/javascript'


@dataclass(frozen=True)
class PageInfo:
    """Basic page information with bounded markup."""
    url: str
    origin: str
    hostname: str
    pathname: str
    search: str
    title: str
    document_element: str


class PageContent(ABC):
    """Collaborator that exposes a rendered page to content-analysis tools."""

    @abstractmethod
    def get_scripts(self) -> List[ScriptInfo]:
        pass

    @abstractmethod
    def get_page_info(self) -> PageInfo:
        pass


def make_soup(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, 'lxml')
    except Exception:
        # Fallback to html.parser if lxml fails
        return BeautifulSoup(html, 'html.parser')


class HTMLPage(PageContent):
    """
    Page-content collaborator built from fetched HTML.

    Inline script bodies are capped at 100 000 characters and the outer
    markup at 50 000, matching what a live page snapshot exposes.
    """

    def __init__(self, html: str, url: str):
        self.html = html or ''
        self.url = url
        self._soup: Optional[BeautifulSoup] = None

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = make_soup(self.html)
        return self._soup

    def get_scripts(self) -> List[ScriptInfo]:
        scripts = []
        for index, tag in enumerate(self.soup.find_all('script')):
            src = tag.get('src')
            if src:
                scripts.append(ScriptInfo(
                    index=index,
                    src=urljoin(self.url, src),
                    inline=False,
                    type=tag.get('type') or 'text/javascript'
                ))
            else:
                content = tag.string or tag.get_text() or ''
                scripts.append(ScriptInfo(
                    index=index,
                    src=None,
                    inline=True,
                    content=content[:CODE_SCAN_LIMIT],
                    type=tag.get('type') or 'text/javascript'
                ))
        return scripts

    def get_page_info(self) -> PageInfo:
        parts = urlsplit(self.url)
        title_tag = self.soup.find('title')
        title = title_tag.get_text(strip=True) if title_tag else ''
        return PageInfo(
            url=self.url,
            origin=f"{parts.scheme}://{parts.netloc}",
            hostname=parts.hostname or '',
            pathname=parts.path or '/',
            search=f"?{parts.query}" if parts.query else '',
            title=title,
            document_element=self.html[:MARKUP_SCAN_LIMIT]
        )

    def meta_tags(self) -> Dict[str, str]:
        """Meta tag content keyed by lower-cased name (or property)."""
        meta_tags = {}
        for meta in self.soup.find_all('meta'):
            name = meta.get('name', meta.get('property', ''))
            content = meta.get('content', '')
            if name and content:
                meta_tags[name.lower()] = content
        return meta_tags

    def script_sources(self) -> List[str]:
        """Raw src attribute of every external script, in page order."""
        return [tag['src'] for tag in self.soup.find_all('script', src=True)]
