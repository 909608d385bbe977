"""
Selector-driven news source crawling
"""
import asyncio
import logging
import sqlite3
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from data_quality import ensure_valid
from exceptions import FetchError, ValidationError
from models import NewsArticle, NewsCrawlResult, NewsSource
from url_frontier import normalize

logger = logging.getLogger(__name__)

REQUIRED_SELECTORS = ("headlines", "links")
OPTIONAL_SELECTORS = ("dates", "descriptions", "authors", "categories")


def validate_source(source: NewsSource) -> List[str]:
    """Configuration errors for a news source, empty when usable"""
    errors = []

    if not (source.name or "").strip():
        errors.append("Source name is required")

    if not (source.url or "").strip():
        errors.append("Source URL is required")
    else:
        try:
            normalize(source.url)
        except ValueError:
            errors.append("Source URL must be a valid URL")

    for key in REQUIRED_SELECTORS:
        if not (source.selectors or {}).get(key, "").strip():
            errors.append(f"{key.capitalize()} selector is required")

    return errors


def parse_date(value: str) -> Optional[str]:
    """ISO timestamp for ISO-8601 or RFC 2822 dates; None when unparsable"""
    cleaned = " ".join(value.split())
    if not cleaned:
        return None

    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00")).isoformat()
    except ValueError:
        pass

    try:
        return parsedate_to_datetime(cleaned).isoformat()
    except (TypeError, ValueError):
        logger.debug(f"Unparsable article date: {value}")
        return None


def _select_texts(soup, selector: Optional[str]) -> List[str]:
    if not selector:
        return []
    return [element.get_text(" ", strip=True) for element in soup.select(selector)]


def _select_links(soup, selector: str) -> List[str]:
    links = []
    for element in soup.select(selector):
        href = element.get("href")
        if href is None:
            anchor = element.find("a", href=True)
            href = anchor["href"] if anchor else ""
        links.append(href.strip())
    return links


def parse_articles(html: str, source: NewsSource) -> List[NewsArticle]:
    """Zip selector matches into articles; headline and link are required"""
    soup = BeautifulSoup(html, "html.parser")
    selectors = source.selectors

    headlines = _select_texts(soup, selectors.get("headlines"))
    links = _select_links(soup, selectors["links"]) if selectors.get("links") else []
    optional: Dict[str, List[str]] = {key: _select_texts(soup, selectors.get(key)) for key in OPTIONAL_SELECTORS}

    def nth(values: List[str], index: int) -> Optional[str]:
        return values[index] if index < len(values) and values[index] else None

    articles = []
    crawled_at = datetime.now().isoformat()

    for index in range(min(len(headlines), len(links))):
        title, href = headlines[index], links[index]
        if not title or not href:
            continue
        try:
            url = normalize(href, base=source.url)
        except ValueError:
            logger.debug(f"Skipping article with invalid link {href}")
            continue

        published = nth(optional["dates"], index)
        articles.append(NewsArticle(
            title=title.strip(),
            url=url,
            source=source.name,
            crawled_at=crawled_at,
            description=nth(optional["descriptions"], index),
            published_at=parse_date(published) if published else None,
            author=nth(optional["authors"], index),
            category=nth(optional["categories"], index)
        ))

    return articles


class NewsCrawler:
    """Crawls configured news sources and stores their articles"""

    def __init__(self, fetcher, store=None, batch_size: int = 3, batch_delay_ms: int = 5000):
        self.fetcher = fetcher
        self.store = store
        self.batch_size = batch_size
        self.batch_delay_ms = batch_delay_ms

    async def crawl_source(self, source: NewsSource) -> NewsCrawlResult:
        """Fetch one source page and extract its articles"""
        errors = validate_source(source)
        if errors:
            return NewsCrawlResult(source=source.name, success=False, error="; ".join(errors))

        try:
            fetched = await self.fetcher.fetch(source.url)
        except FetchError as e:
            logger.error(f"Failed to crawl news source {source.name}: {e}")
            return NewsCrawlResult(source=source.name, success=False, error=str(e))

        articles = parse_articles(fetched.html, source)
        logger.info(f"News source {source.name}: {len(articles)} articles")
        return NewsCrawlResult(source=source.name, articles=articles, success=True)

    async def crawl_sources(self, sources: List[NewsSource]) -> List[NewsCrawlResult]:
        """Crawl sources in small batches, saving articles of successful ones"""
        results: List[NewsCrawlResult] = []

        for start in range(0, len(sources), self.batch_size):
            batch = sources[start:start + self.batch_size]
            outcomes = await asyncio.gather(*(self.crawl_source(s) for s in batch), return_exceptions=True)

            for source, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome
                if isinstance(outcome, Exception):
                    logger.error(f"News source {source.name} crashed: {outcome}")
                    outcome = NewsCrawlResult(source=source.name, success=False, error=str(outcome))
                if outcome.success:
                    try:
                        self.save_articles(source, outcome)
                    except Exception as e:
                        logger.error(f"Failed to save articles from {source.name}: {e}")
                        outcome.success = False
                        outcome.error = str(e)
                results.append(outcome)

            if start + self.batch_size < len(sources) and self.batch_delay_ms > 0:
                await asyncio.sleep(self.batch_delay_ms / 1000)

        successful = sum(1 for result in results if result.success)
        logger.info(f"News crawl completed: {successful}/{len(results)} sources successful")
        return results

    def save_articles(self, source: NewsSource, result: NewsCrawlResult):
        if self.store is None:
            return 0

        saved = 0
        for article in result.articles:
            metadata = {
                'title': article.title,
                'url': article.url,
                'description': article.description,
                'publishedAt': article.published_at,
                'author': article.author,
                'category': article.category,
                'source': article.source,
                'crawledAt': article.crawled_at,
            }
            try:
                ensure_valid(metadata, "news")
            except ValidationError as e:
                logger.warning(f"Skipping invalid article {article.url}: {e}")
                continue

            try:
                self.store.save_content(
                    "news",
                    url=article.url,
                    title=article.title,
                    content=article.description or "",
                    metadata=metadata,
                    source=article.source
                )
            except sqlite3.Error as e:
                logger.error(f"Failed to store article {article.url}: {e}")
                continue
            saved += 1

        logger.info(f"Saved {saved}/{len(result.articles)} articles from {source.name}")

        source.last_crawled = result.crawled_at
        try:
            self.store.save_news_source(source)
        except sqlite3.Error as e:
            logger.error(f"Failed to update news source {source.name}: {e}")
        return saved
