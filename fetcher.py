"""
Headless page fetching and robots.txt checks
"""
import asyncio
import logging
import time
from typing import Dict, Optional
from urllib import robotparser
from urllib.parse import urlsplit

import aiohttp
from playwright.async_api import async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config import CrawlOptions
from exceptions import FetchError
from models import FetchResult

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-blink-features=AutomationControlled',
    '--disable-extensions',
    '--disable-dev-shm-usage',
    '--disable-background-networking',
    '--disable-default-apps',
    '--disable-sync',
    '--mute-audio',
    '--no-first-run',
]

STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined,
    });
"""

# Extra time after DOMContentLoaded for client-side rendering to settle
SETTLE_TIMEOUT_MS = 5000


class PageFetcher:
    """
    Renders pages in a shared headless Chromium.

    One browser per fetcher, a fresh context per fetch, at most
    max_concurrency fetches in flight. No internal retry: failures are
    raised as FetchError and it is up to the caller to record them.
    """

    def __init__(self, options: Optional[CrawlOptions] = None):
        self.options = options or CrawlOptions()
        self.playwright = None
        self.browser = None
        self.semaphore = asyncio.Semaphore(self.options.max_concurrency)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Launch the browser"""
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.options.headless,
                args=BROWSER_ARGS
            )
            logger.info(f"Page fetcher started with {self.options.max_concurrency} concurrent contexts")
        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self.close()
            raise

    async def close(self):
        """Close browser and playwright"""
        try:
            if self.browser:
                await self.browser.close()
            if self.playwright:
                await self.playwright.stop()
            logger.info("Page fetcher closed")
        except PlaywrightError as e:
            logger.error(f"Error closing browser: {e}")
        finally:
            self.browser = None
            self.playwright = None

    async def fetch(self, url: str, timeout_ms: Optional[int] = None,
                    user_agent: Optional[str] = None) -> FetchResult:
        """Render url and return its final HTML, or raise FetchError"""
        if self.browser is None:
            raise FetchError(FetchError.NETWORK, url, "Browser not started")

        timeout_ms = timeout_ms or self.options.timeout_ms
        user_agent = user_agent or self.options.user_agent

        async with self.semaphore:
            start_time = time.time()
            try:
                result = await asyncio.wait_for(
                    self._render(url, timeout_ms, user_agent),
                    timeout=timeout_ms / 1000
                )
            except (asyncio.TimeoutError, PlaywrightTimeoutError):
                raise FetchError(FetchError.TIMEOUT, url, f"Timed out after {timeout_ms}ms fetching {url}")
            except PlaywrightError as e:
                raise FetchError(FetchError.NETWORK, url, f"Network error fetching {url}: {e}")

            result.load_time_ms = int((time.time() - start_time) * 1000)

        if result.status_code >= 400:
            raise FetchError.from_status(url, result.status_code)

        logger.debug(f"Fetched {url} ({result.status_code}) in {result.load_time_ms}ms")
        return result

    async def _render(self, url: str, timeout_ms: int, user_agent: str) -> FetchResult:
        context = await self.browser.new_context(
            user_agent=user_agent,
            viewport={'width': 1920, 'height': 1080},
            locale='en-US'
        )
        try:
            await context.add_init_script(STEALTH_SCRIPT)
            page = await context.new_page()

            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            try:
                await page.wait_for_load_state("networkidle", timeout=min(SETTLE_TIMEOUT_MS, timeout_ms))
            except PlaywrightTimeoutError:
                logger.debug(f"Network did not go idle for {url}, using current DOM")

            html = await page.content()
            headers = await response.all_headers() if response else {}
            cookies = await context.cookies()

            return FetchResult(
                url=url,
                html=html,
                load_time_ms=0,
                status_code=response.status if response else 200,
                final_url=page.url,
                headers=headers,
                cookies=[cookie.get("name", "") for cookie in cookies]
            )
        finally:
            await context.close()


class RobotsChecker:
    """robots.txt rules per origin, fetched once per checker"""

    def __init__(self, user_agent: str, timeout_ms: int = 10000):
        self.user_agent = user_agent
        self.timeout_ms = timeout_ms
        self._parsers: Dict[str, robotparser.RobotFileParser] = {}

    async def allowed(self, url: str) -> bool:
        parts = urlsplit(url)
        origin = f"{parts.scheme}://{parts.netloc}"
        if origin not in self._parsers:
            self._parsers[origin] = await self._load(origin)
        return self._parsers[origin].can_fetch(self.user_agent, url)

    async def _load(self, origin: str) -> robotparser.RobotFileParser:
        parser = robotparser.RobotFileParser(f"{origin}/robots.txt")
        timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000)

        try:
            async with aiohttp.ClientSession(timeout=timeout, headers={'User-Agent': self.user_agent}) as session:
                async with session.get(f"{origin}/robots.txt") as response:
                    if response.status in (401, 403):
                        parser.disallow_all = True
                    elif response.status >= 400:
                        parser.allow_all = True
                    else:
                        parser.parse((await response.text()).splitlines())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"robots.txt unreachable for {origin}, allowing crawl: {e}")
            parser.allow_all = True

        return parser
