"""
Sitemap discovery from robots.txt references and the conventional /sitemap.xml
"""
import asyncio
import logging
from typing import List, Optional, Set, Tuple
from urllib.parse import urlsplit

import aiohttp
from bs4 import BeautifulSoup

from url_frontier import get_domain, normalize, should_skip

logger = logging.getLogger(__name__)

DEFAULT_SITEMAP_PATHS = ["/sitemap.xml"]


def parse_robots_sitemaps(robots_txt: str) -> List[str]:
    """Sitemap URLs declared with Sitemap: lines"""
    sitemaps = []
    for line in (robots_txt or "").splitlines():
        line = line.split("#", 1)[0].strip()
        if line.lower().startswith("sitemap:"):
            url = line[len("sitemap:"):].strip()
            if url and url not in sitemaps:
                sitemaps.append(url)
    return sitemaps


def parse_sitemap(xml: str) -> Tuple[List[str], List[str]]:
    """
    Split a sitemap document into page URLs and child sitemap URLs.

    A <sitemapindex> lists child sitemaps; a <urlset> lists pages. Anything
    else yields two empty lists.
    """
    soup = BeautifulSoup(xml or "", "html.parser")
    pages: List[str] = []
    children: List[str] = []

    index = soup.find("sitemapindex")
    if index is not None:
        for entry in index.find_all("sitemap"):
            loc = entry.find("loc")
            if loc is not None and loc.get_text(strip=True):
                children.append(loc.get_text(strip=True))

    urlset = soup.find("urlset")
    if urlset is not None:
        for entry in urlset.find_all("url"):
            loc = entry.find("loc")
            if loc is not None and loc.get_text(strip=True):
                pages.append(loc.get_text(strip=True))

    return pages, children


class SitemapDiscovery:
    """
    Collects same-site page URLs from a site's sitemaps.

    Discovery fails open: unreachable or malformed sitemaps contribute no
    URLs and never raise.
    """

    def __init__(self, user_agent: str, timeout_ms: int = 10000, max_urls: int = 250,
                 max_child_sitemaps: int = 10, max_index_depth: int = 2):
        self.user_agent = user_agent
        self.timeout_ms = timeout_ms
        self.max_urls = max_urls
        self.max_child_sitemaps = max_child_sitemaps
        self.max_index_depth = max_index_depth

    async def discover(self, seed_url: str) -> List[str]:
        parts = urlsplit(seed_url)
        origin = f"{parts.scheme}://{parts.netloc}"
        timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000)

        async with aiohttp.ClientSession(timeout=timeout, headers={'User-Agent': self.user_agent}) as session:
            robots_txt = await self._get_text(session, f"{origin}/robots.txt")
            sitemap_urls = parse_robots_sitemaps(robots_txt or "")
            for path in DEFAULT_SITEMAP_PATHS:
                if f"{origin}{path}" not in sitemap_urls:
                    sitemap_urls.append(f"{origin}{path}")

            found: List[str] = []
            seen: Set[str] = set()
            for sitemap_url in sitemap_urls:
                await self._collect(session, sitemap_url, 0, seen, found)

        urls = self.filter_urls(found, seed_url)
        logger.info(f"Sitemaps of {origin} listed {len(urls)} crawlable URLs")
        return urls

    async def _collect(self, session, sitemap_url: str, depth: int, seen: Set[str], found: List[str]):
        if sitemap_url in seen or len(found) >= self.max_urls * 2:
            return
        seen.add(sitemap_url)

        xml = await self._get_text(session, sitemap_url)
        if not xml:
            return

        pages, children = parse_sitemap(xml)
        found.extend(pages)

        if children and depth >= self.max_index_depth:
            logger.debug(f"Not following sitemap index {sitemap_url} deeper than {self.max_index_depth}")
            return
        for child in children[:self.max_child_sitemaps]:
            await self._collect(session, child, depth + 1, seen, found)

    async def _get_text(self, session, url: str) -> Optional[str]:
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.debug(f"No sitemap data at {url} (HTTP {response.status})")
                    return None
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {url}: {e}")
            return None

    def filter_urls(self, urls: List[str], seed_url: str) -> List[str]:
        """Unique same-site URLs that pass the crawl filters, capped at max_urls"""
        domain = get_domain(seed_url)
        kept: List[str] = []
        for url in urls:
            try:
                url = normalize(url)
            except ValueError:
                continue
            if get_domain(url) != domain or should_skip(url) or url in kept:
                continue
            kept.append(url)
            if len(kept) >= self.max_urls:
                break
        return kept
