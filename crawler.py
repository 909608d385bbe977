"""
Breadth-first site crawling with dedup and CMS-aware filtering
"""
import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set

import cms_detector
from config import CrawlOptions, DEFAULT_SIMILARITY_THRESHOLD
from exceptions import FetchError
from extractor import extract, discover_links
from models import (
    CrawlTarget, CrawlResult, CrawlFailure, PageSnapshot, CMSOptimizations,
    CompetitorData, FetchResult
)
from similarity import ContentDeduplicator, content_hash
from url_frontier import Frontier, normalize, should_skip, get_domain

logger = logging.getLogger(__name__)

# CrawlFailure kinds besides the FetchError kinds
STORE_FAILURE = "store"
PROCESSING_FAILURE = "processing"


def seo_metadata(snapshot: PageSnapshot) -> dict:
    """Stored metadata record of a page snapshot"""
    signals = snapshot.signals
    return {
        'url': snapshot.url,
        'title': signals.title,
        'metaDescription': signals.meta_description,
        'h1Tags': signals.h1,
        'h2Tags': signals.h2,
        'h3Tags': signals.h3,
        'wordCount': signals.word_count,
        'readingTime': signals.reading_time,
        'textToHtmlRatio': signals.text_to_html_ratio,
        'loadTime': snapshot.load_time_ms,
        'statusCode': snapshot.status_code,
        'internalLinks': len(signals.internal_links),
        'externalLinks': len(signals.external_links),
        'contentHash': snapshot.content_hash,
        'crawledAt': snapshot.fetched_at,
    }


@dataclass
class CrawlSession:
    """State owned by a single crawl, discarded when it ends"""
    result: CrawlResult
    frontier: Frontier
    deduplicator: ContentDeduplicator
    max_pages: int
    max_depth: int
    visited: Set[str] = field(default_factory=set)
    optimizations: Optional[CMSOptimizations] = None
    sitemaps_checked: bool = False

    @property
    def done(self) -> bool:
        return len(self.result.snapshots) >= self.max_pages


class CrawlOrchestrator:
    """
    Crawls a site breadth-first in waves of max_concurrency fetches.

    Results of a wave are processed in dispatch order regardless of which
    fetch completes first. CMS detection runs on the first successful page
    and only affects URLs evaluated afterwards.
    """

    def __init__(self, fetcher, options: Optional[CrawlOptions] = None, store=None,
                 detector=cms_detector, robots=None, metrics=None, sitemaps=None,
                 similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD):
        self.fetcher = fetcher
        self.options = options or CrawlOptions()
        self.store = store
        self.detector = detector
        self.robots = robots
        self.sitemaps = sitemaps
        self.metrics = metrics
        self.similarity_threshold = similarity_threshold

    async def crawl(self, seed_url: str, max_pages: Optional[int] = None,
                    max_depth: Optional[int] = None) -> CrawlResult:
        """Crawl a site from seed_url until the frontier empties or max_pages snapshots exist"""
        max_pages = max_pages or self.options.max_pages
        max_depth = self.options.max_depth if max_depth is None else max_depth

        try:
            seed = normalize(seed_url)
        except ValueError as e:
            result = CrawlResult(seed_url=seed_url)
            result.failures.append(CrawlFailure(seed_url, "invalid", str(e)))
            result.finished_at = datetime.now().isoformat()
            logger.error(f"Cannot crawl invalid URL {seed_url}: {e}")
            return result

        session = CrawlSession(
            result=CrawlResult(seed_url=seed),
            frontier=Frontier(),
            deduplicator=ContentDeduplicator(self.similarity_threshold),
            max_pages=max_pages,
            max_depth=max_depth
        )
        session.frontier.push(CrawlTarget(url=seed, depth=0, domain=get_domain(seed)))

        logger.info(f"Starting crawl of {seed} (max {max_pages} pages, depth {max_depth})")

        while session.frontier and not session.done:
            wave = await self._next_wave(session)
            if not wave:
                break

            outcomes = await asyncio.gather(
                *(self.fetcher.fetch(target.url) for target in wave),
                return_exceptions=True
            )

            for target, outcome in zip(wave, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome
                if isinstance(outcome, Exception):
                    self._record_failure(session, target, outcome)
                    continue
                try:
                    self._process_page(session, target, outcome)
                except sqlite3.Error as e:
                    self._record_processing_failure(session, target, STORE_FAILURE, e)
                except Exception as e:
                    self._record_processing_failure(session, target, PROCESSING_FAILURE, e)

            if not session.sitemaps_checked:
                session.sitemaps_checked = True
                await self._enqueue_sitemap_urls(session, seed)

            if session.frontier and not session.done and self.options.delay_ms > 0:
                await asyncio.sleep(self.options.delay_ms / 1000)

        result = session.result
        result.finished_at = datetime.now().isoformat()
        logger.info(
            f"Crawl of {seed} finished: {len(result.snapshots)} pages, "
            f"{len(result.duplicates)} duplicates, {len(result.failures)} failures"
        )
        return result

    async def _next_wave(self, session: CrawlSession) -> List[CrawlTarget]:
        """Up to max_concurrency highest-priority targets that pass all filters"""
        wave: List[CrawlTarget] = []
        capacity = session.max_pages - len(session.result.snapshots)

        while session.frontier and len(wave) < min(self.options.max_concurrency, capacity):
            target = session.frontier.pop()

            if target.url in session.visited:
                continue
            if target.depth > session.max_depth:
                continue
            if should_skip(target.url, session.optimizations):
                session.result.skipped.append(target.url)
                continue
            if self.robots is not None and self.options.respect_robots:
                if not await self.robots.allowed(target.url):
                    logger.info(f"Disallowed by robots.txt: {target.url}")
                    session.result.skipped.append(target.url)
                    continue

            session.visited.add(target.url)
            wave.append(target)

        return wave

    def _record_failure(self, session: CrawlSession, target: CrawlTarget, error: Exception):
        if isinstance(error, FetchError):
            failure = CrawlFailure(target.url, error.kind, str(error), error.status)
        else:
            failure = CrawlFailure(target.url, FetchError.NETWORK, str(error))

        session.result.failures.append(failure)
        if self.metrics:
            self.metrics.record_fetch_error()
        logger.warning(f"Failed to fetch {target.url}: {failure.kind} {failure.message}")

    def _record_processing_failure(self, session: CrawlSession, target: CrawlTarget, kind: str, error: Exception):
        session.result.failures.append(CrawlFailure(target.url, kind, str(error)))
        logger.error(f"Failed to process {target.url} ({kind}): {error}")

    def _process_page(self, session: CrawlSession, target: CrawlTarget, fetched: FetchResult):
        if self.metrics:
            self.metrics.record_page_fetched(fetched.load_time_ms)

        if fetched.final_url:
            try:
                session.visited.add(normalize(fetched.final_url))
            except ValueError:
                logger.debug(f"Ignoring unparsable final URL {fetched.final_url}")

        if session.optimizations is None:
            self._apply_cms_detection(session, fetched)

        fingerprint = content_hash(fetched.html)
        match = session.deduplicator.check(target.url, fingerprint)
        if match.is_duplicate:
            session.result.duplicates.append(target.url)
            if self.metrics:
                self.metrics.record_duplicate()
            logger.info(f"Skipping {target.url}: {match.similarity:.0%} similar to {match.similar_url}")
            return

        signals = extract(fetched.html, target.url)
        snapshot = PageSnapshot(
            url=target.url,
            content_hash=fingerprint,
            signals=signals,
            load_time_ms=fetched.load_time_ms,
            fetched_at=datetime.now().isoformat(),
            status_code=fetched.status_code
        )
        # Only stored pages count towards max_pages
        self._persist(snapshot)
        session.result.snapshots.append(snapshot)

        if target.depth < session.max_depth:
            self._enqueue_links(session, target, discover_links(signals))

    def _apply_cms_detection(self, session: CrawlSession, fetched: FetchResult):
        fingerprint = self.detector.detect(fetched.html, fetched.headers, fetched.cookies)
        session.optimizations = self.detector.get_optimizations(fingerprint.platform)
        session.result.platform = fingerprint.platform
        session.frontier.priority_patterns = session.optimizations.priority_patterns
        session.max_depth = min(session.max_depth, session.optimizations.max_depth)

    def _enqueue_links(self, session: CrawlSession, parent: CrawlTarget, links: List[str]):
        for link in links:
            if len(session.frontier) >= session.max_pages:
                break
            if link in session.visited or link in session.frontier:
                continue
            session.frontier.push(CrawlTarget(
                url=link,
                depth=parent.depth + 1,
                domain=parent.domain,
                discovered_from=parent.url
            ))

    async def _enqueue_sitemap_urls(self, session: CrawlSession, seed: str):
        """After the seed page, queue sitemap-listed URLs at depth 1"""
        if self.sitemaps is None or not self.options.follow_sitemaps:
            return
        if not session.result.snapshots or session.max_depth < 1:
            return

        try:
            urls = await self.sitemaps.discover(seed)
        except Exception as e:
            logger.warning(f"Sitemap discovery failed for {seed}, continuing with links only: {e}")
            return

        root = CrawlTarget(url=seed, depth=0, domain=get_domain(seed))
        queued = len(session.frontier)
        self._enqueue_links(session, root, urls)
        logger.info(f"Queued {len(session.frontier) - queued} URLs from sitemaps of {seed}")

    def _persist(self, snapshot: PageSnapshot):
        if self.store is None:
            return
        self.store.save_snapshot(snapshot)
        self.store.save_content(
            "seo",
            url=snapshot.url,
            title=snapshot.signals.title,
            content=snapshot.signals.body_text,
            metadata=seo_metadata(snapshot),
            source=get_domain(snapshot.url)
        )

    async def crawl_multiple(self, urls: List[str], batch_size: Optional[int] = None,
                             batch_delay_ms: Optional[int] = None) -> List[CrawlResult]:
        """Single-page crawl of each URL in fixed-size batches with a delay between batches"""
        batch_size = batch_size or self.options.batch_size
        batch_delay_ms = self.options.batch_delay_ms if batch_delay_ms is None else batch_delay_ms
        results: List[CrawlResult] = []

        for start in range(0, len(urls), batch_size):
            batch = urls[start:start + batch_size]
            logger.info(f"Crawling batch {start // batch_size + 1}: {len(batch)} URLs")

            batch_results = await asyncio.gather(
                *(self.crawl(url, max_pages=1, max_depth=0) for url in batch)
            )
            results.extend(batch_results)

            if start + batch_size < len(urls) and batch_delay_ms > 0:
                await asyncio.sleep(batch_delay_ms / 1000)

        successful = sum(1 for result in results if result.success)
        logger.info(f"Batch crawl complete: {successful}/{len(urls)} URLs succeeded")
        return results

    async def crawl_competitor(self, domain: str, max_pages: int = 10) -> CompetitorData:
        """Crawl a competitor domain and record its pages as competitor content"""
        result = await self.crawl(domain, max_pages=max_pages)
        competitor = CompetitorData(
            domain=get_domain(result.seed_url) or domain,
            pages=result.snapshots,
            platform=result.platform,
            crawled_at=datetime.now().isoformat()
        )

        if self.store is not None and competitor.pages:
            try:
                self.store.save_content(
                    "competitor",
                    url=result.seed_url,
                    title=competitor.domain,
                    metadata={
                        'domain': competitor.domain,
                        'platform': competitor.platform,
                        'pageCount': len(competitor.pages),
                        'pages': [seo_metadata(snapshot) for snapshot in competitor.pages],
                        'avgWordCount': round(
                            sum(s.signals.word_count for s in competitor.pages) / len(competitor.pages)
                        ),
                        'crawledAt': competitor.crawled_at,
                    },
                    source=competitor.domain
                )
            except sqlite3.Error as e:
                logger.error(f"Failed to store competitor {competitor.domain}: {e}")

        logger.info(f"Competitor {competitor.domain}: {len(competitor.pages)} pages ({competitor.platform})")
        return competitor
