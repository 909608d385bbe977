"""
Pytest configuration and shared fixtures
"""
import pytest
import os
import tempfile

# Add project root to path
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config import CrawlOptions, PipelineConfig
from database import ContentStore
from exceptions import FetchError
from models import FetchResult


# Enough distinct prose for stable MinHash estimates
ARTICLE_WORDS = (
    "Regular maintenance keeps a heating system efficient through the coldest months of the year. "
    "Technicians inspect burners, clean heat exchangers and test safety controls before the season starts. "
    "Homeowners who schedule an annual visit usually see lower energy bills and fewer emergency repairs. "
    "Filters should be replaced every few months because clogged filters restrict airflow and strain the blower. "
    "Thermostats with programmable schedules reduce wasted energy while nobody is at home during the day. "
    "Ductwork that leaks conditioned air into attics or crawl spaces can waste a surprising share of output. "
    "Sealing joints with mastic and insulating exposed runs improves comfort in rooms far from the furnace. "
    "Carbon monoxide detectors belong on every floor and near sleeping areas for basic household safety. "
    "Older equipment may still run, but replacement parts become expensive and efficiency ratings fall behind. "
    "A qualified contractor can calculate the correct system size instead of guessing from square footage alone. "
    "Oversized units cycle on and off too often, which wears components and leaves humidity uncomfortably high. "
    "Undersized units run constantly on the hottest and coldest days without ever reaching the set temperature. "
    "Heat pumps move heat rather than generating it, so they can deliver more energy than they consume. "
    "Geothermal systems use stable ground temperatures and cost more to install but less to operate over time. "
    "Zoning systems with motorized dampers let families heat bedrooms and living areas on separate schedules. "
    "Smart vents and room sensors help balance temperatures in houses with large windows or open floor plans. "
    "Rebates from utilities and manufacturers often offset part of the cost of high efficiency equipment. "
    "Financing plans spread the expense across several years while the savings start with the first bill. "
    "Warranty coverage depends on registration and documented maintenance, so keep every service receipt. "
    "Choosing a contractor with good reviews, proper licensing and clear written estimates avoids surprises."
)


def article_html(title: str, body: str = ARTICLE_WORDS, links=(), extra_head: str = "") -> str:
    """Plain HTML page with one heading, the body prose and optional links"""
    anchors = "".join(f'<a href="{href}">Link {i}</a> ' for i, href in enumerate(links))
    return (
        f"<html><head><title>{title}</title>{extra_head}</head>"
        f"<body><h1>{title}</h1><p>{body}</p><nav>{anchors}</nav></body></html>"
    )


@pytest.fixture
def temp_db():
    """Create a temporary database for testing"""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def store(temp_db):
    """Content store with temporary database"""
    return ContentStore(temp_db)


@pytest.fixture
def crawl_options():
    """Crawl options with politeness delays disabled"""
    return CrawlOptions(delay_ms=0, batch_delay_ms=0, max_concurrency=2, respect_robots=False)


@pytest.fixture
def test_config(temp_db, tmp_path):
    """Pipeline configuration with temporary database and no delays"""
    config = PipelineConfig(db_path=temp_db)
    config.crawl = CrawlOptions(delay_ms=0, batch_delay_ms=0, respect_robots=False, follow_sitemaps=False)
    config.news_crawl = CrawlOptions(
        delay_ms=0, batch_delay_ms=0, respect_robots=False, follow_sitemaps=False, max_pages=1
    )
    config.competitor_delay_ms = 0
    config.log_dir = str(tmp_path / "logs")
    return config


@pytest.fixture
def sample_html():
    """Well-formed page with the usual SEO signals"""
    return """
    <html lang="en">
        <head>
            <title>Furnace Repair Guide for Homeowners in 2024</title>
            <meta name="description" content="Learn how furnace repair works, what it costs and when to call a professional technician for help.">
            <meta name="keywords" content="furnace repair, heating">
            <meta name="robots" content="index,follow">
            <meta name="viewport" content="width=device-width, initial-scale=1">
            <meta property="og:title" content="Furnace Repair Guide">
            <meta name="twitter:card" content="summary">
            <link rel="canonical" href="https://example.com/furnace-repair">
            <script type="application/ld+json">{"@type": "Article", "headline": "Furnace Repair Guide"}</script>
            <script type="application/ld+json">{not valid json</script>
        </head>
        <body>
            <h1>Furnace Repair Guide</h1>
            <h2>Common Problems</h2>
            <h3>Ignition Failures</h3>
            <p>Furnace repair starts with a careful inspection of the ignition system and the filters.</p>
            <p>However, most problems are simple to fix when they are caught early.</p>
            <a href="/services">Our services</a>
            <a href="/contact#form">Contact us</a>
            <a href="https://www.example.com/about">About</a>
            <a href="https://other.org/guide">External guide</a>
            <a href="mailto:info@example.com">Email</a>
            <a href="javascript:void(0)">Menu</a>
            <a class="btn btn-primary" href="/quote">Get your free quote today</a>
            <button>Subscribe now</button>
            <img src="/images/furnace.webp" alt="Furnace" loading="lazy">
            <img src="/images/filter.jpg">
        </body>
    </html>
    """


class FakeFetcher:
    """Async fetcher serving canned pages; unknown URLs raise an HTTP 404 FetchError"""

    def __init__(self, pages=None, options=None):
        self.pages = dict(pages or {})
        self.options = options
        self.fetched = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def fetch(self, url, timeout_ms=None, user_agent=None):
        self.fetched.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchError.from_status(url, 404)
        if isinstance(page, Exception):
            raise page
        if isinstance(page, FetchResult):
            return page
        return FetchResult(url=url, html=page, load_time_ms=120, final_url=url)


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()
