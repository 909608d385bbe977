"""
URL normalization, filtering and prioritization for the crawl frontier
"""
import heapq
import itertools
import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urljoin, urlsplit, urlunsplit

from models import CrawlTarget, CMSOptimizations

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}

# Admin, auth, commerce and feed paths never worth crawling for SEO signals
SKIP_PATH_PATTERN = re.compile(
    r"/(admin|administrator|wp-admin|wp-login\.php|login|logout|signin|sign-in|"
    r"signup|sign-up|register|account|my-account|cart|basket|checkout|"
    r"feed|rss|atom|wp-json|xmlrpc\.php|cgi-bin)(/|$)",
    re.IGNORECASE,
)

SKIP_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico", ".bmp",
    ".css", ".js", ".json", ".xml", ".txt",
    ".zip", ".gz", ".tar", ".rar", ".7z",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".mp3", ".mp4", ".avi", ".mov", ".woff", ".woff2", ".ttf", ".eot",
)

LOW_VALUE_PATTERNS = [
    (re.compile(r"/page/\d+"), 3),
    (re.compile(r"[?&](page|paged)="), 3),
    (re.compile(r"/search"), 3),
    (re.compile(r"/tag/"), 2),
    (re.compile(r"/author/"), 2),
    (re.compile(r"/archive"), 2),
    (re.compile(r"/category/"), 1),
    (re.compile(r"/blog/\d{4}/"), 1),
    (re.compile(r"/(privacy|terms|cookie)"), 1),
]

HIGH_VALUE_PATTERNS = [
    re.compile(r"/(contact|about|services?|products?|pricing|quote)"),
]


def _remove_dot_segments(path: str) -> str:
    output = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        if segment == "..":
            if len(output) > 1:
                output.pop()
            continue
        output.append(segment)

    result = "/".join(output)
    if path.endswith(("/.", "/..")) and not result.endswith("/"):
        result += "/"
    if not result.startswith("/"):
        result = "/" + result
    return result


def normalize(url: str, base: Optional[str] = None) -> str:
    """
    Canonicalize a URL.

    Lower-cases scheme and host, strips the default port and the fragment,
    resolves relative references against base and removes dot segments.
    Raises ValueError for URLs that are not http(s).
    """
    if url is None:
        raise ValueError("Invalid URL: None")

    url = url.strip()
    url = re.sub(r"^(https?://)+", r"\1", url, flags=re.IGNORECASE)

    if base and not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*:", url):
        url = urljoin(base, url)
    elif url.startswith("//"):
        url = "https:" + url
    elif not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url):
        url = "https://" + url

    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise ValueError(f"Invalid URL: {url}")

    host = parts.hostname
    if not host:
        raise ValueError(f"Invalid URL: {url}")
    if ":" in host:
        host = f"[{host}]"

    port = parts.port
    netloc = host if port is None or port == DEFAULT_PORTS[scheme] else f"{host}:{port}"
    path = _remove_dot_segments(parts.path or "/")

    return urlunsplit((scheme, netloc, path, parts.query, ""))


def get_domain(url: str) -> str:
    """Host of a URL without the www prefix"""
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def same_site(url: str, base_url: str) -> bool:
    return get_domain(url) == get_domain(base_url)


def path_segment_count(url: str) -> int:
    return len([segment for segment in urlsplit(url).path.split("/") if segment])


def _skip_patterns(cms_hints) -> Sequence[str]:
    if cms_hints is None:
        return ()
    if isinstance(cms_hints, CMSOptimizations):
        return cms_hints.skip_patterns
    return cms_hints


def should_skip(url: str, cms_hints: Union[CMSOptimizations, Iterable[str], None] = None) -> bool:
    """True when the URL points at admin/auth/cart/feed pages, binaries or CMS-specific noise"""
    try:
        parts = urlsplit(url)
    except ValueError:
        return True

    path = parts.path.lower()
    if path.endswith(SKIP_EXTENSIONS):
        return True
    if SKIP_PATH_PATTERN.search(path):
        return True

    target = path + ("?" + parts.query.lower() if parts.query else "")
    for pattern in _skip_patterns(cms_hints):
        if pattern.lower() in target:
            logger.debug(f"Skipping {url} (CMS pattern {pattern})")
            return True
    return False


def importance_penalty(url: str, priority_patterns: Sequence[str] = ()) -> int:
    """Lower is more important"""
    lowered = url.lower()
    penalty = 0
    for pattern, weight in LOW_VALUE_PATTERNS:
        if pattern.search(lowered):
            penalty = weight
            break
    if any(pattern.search(lowered) for pattern in HIGH_VALUE_PATTERNS):
        penalty -= 1
    if any(p.lower() in lowered for p in priority_patterns):
        penalty -= 1
    return penalty


def priority_key(target: CrawlTarget, priority_patterns: Sequence[str] = ()) -> Tuple:
    return (
        target.depth,
        path_segment_count(target.url),
        importance_penalty(target.url, priority_patterns),
        len(target.url),
        target.url,
    )


def prioritize(urls: Iterable[Union[CrawlTarget, str]], priority_patterns: Sequence[str] = ()) -> List:
    """Order URLs shallow first: depth, then path-segment count, then importance"""
    def key(item):
        target = item if isinstance(item, CrawlTarget) else CrawlTarget(item, 0, get_domain(item))
        return priority_key(target, priority_patterns)

    return sorted(urls, key=key)


class Frontier:
    """Priority queue of discovered-but-not-yet-fetched targets for one crawl"""

    def __init__(self, priority_patterns: Sequence[str] = ()):
        self.priority_patterns = list(priority_patterns)
        self._heap = []
        self._queued = set()
        self._counter = itertools.count()

    def push(self, target: CrawlTarget) -> bool:
        if target.url in self._queued:
            return False
        self._queued.add(target.url)
        heapq.heappush(self._heap, (priority_key(target, self.priority_patterns), next(self._counter), target))
        return True

    def pop(self) -> CrawlTarget:
        return heapq.heappop(self._heap)[2]

    def __contains__(self, url: str) -> bool:
        return url in self._queued

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)
