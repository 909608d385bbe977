"""
Configuration for the SEO crawl pipeline
"""
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

DEFAULT_USER_AGENT = "RivalOutranker/1.0 (+https://rivaloutranker.com/bot)"

# Staleness window and near-duplicate threshold used across the pipeline
DEFAULT_STALE_DAYS = 7
DEFAULT_SIMILARITY_THRESHOLD = 0.9

ENV_PREFIX = "SEOPIPE_"


@dataclass
class CrawlOptions:
    """Per-crawl fetch settings"""

    delay_ms: int = 1500
    max_concurrency: int = 4
    timeout_ms: int = 45000
    user_agent: str = DEFAULT_USER_AGENT
    respect_robots: bool = True
    follow_sitemaps: bool = True
    headless: bool = True
    max_pages: int = 50
    max_depth: int = 3
    batch_size: int = 5
    batch_delay_ms: int = 3000


@dataclass
class PipelineConfig:
    """Configuration settings for the whole pipeline"""

    # Database settings
    db_path: str = "seo_pipeline.db"

    # Crawl settings
    crawl: CrawlOptions = field(default_factory=CrawlOptions)
    news_crawl: CrawlOptions = field(default_factory=lambda: CrawlOptions(
        delay_ms=2000, max_concurrency=3, timeout_ms=30000, max_pages=1
    ))
    competitor_delay_ms: int = 5000
    competitor_domains: List[str] = field(default_factory=list)

    # Dedup and data quality
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    stale_days: int = DEFAULT_STALE_DAYS
    cleanup_days: int = 30
    quality_sample_max: int = 100

    # Scheduler
    scheduler_workers: int = 4
    scheduler_poll_seconds: float = 1.0
    default_max_retries: int = 3

    # Scoring weight table, overrides merged into scoring.DEFAULT_WEIGHTS
    scoring_weights: Dict[str, float] = field(default_factory=dict)

    # Metric provider (optional)
    metrics_api_url: Optional[str] = None
    metrics_api_key: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_format: str = "%(asctime)s - %(levelname)s - %(message)s"


def _env(name: str) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}")


def load_config(**overrides) -> PipelineConfig:
    """Build a PipelineConfig from defaults, SEOPIPE_* environment variables and keyword overrides"""
    config = PipelineConfig()

    if _env("DB_PATH"):
        config.db_path = _env("DB_PATH")
    if _env("LOG_LEVEL"):
        config.log_level = _env("LOG_LEVEL").upper()
    if _env("LOG_DIR"):
        config.log_dir = _env("LOG_DIR")
    if _env("DELAY_MS"):
        config.crawl.delay_ms = int(_env("DELAY_MS"))
    if _env("MAX_CONCURRENCY"):
        config.crawl.max_concurrency = int(_env("MAX_CONCURRENCY"))
    if _env("TIMEOUT_MS"):
        config.crawl.timeout_ms = int(_env("TIMEOUT_MS"))
    if _env("USER_AGENT"):
        config.crawl.user_agent = _env("USER_AGENT")
    if _env("MAX_PAGES"):
        config.crawl.max_pages = int(_env("MAX_PAGES"))
    if _env("RESPECT_ROBOTS"):
        config.crawl.respect_robots = _env("RESPECT_ROBOTS").lower() in ("1", "true", "yes")
    if _env("FOLLOW_SITEMAPS"):
        config.crawl.follow_sitemaps = _env("FOLLOW_SITEMAPS").lower() in ("1", "true", "yes")
    if _env("METRICS_API_URL"):
        config.metrics_api_url = _env("METRICS_API_URL")
    if _env("METRICS_API_KEY"):
        config.metrics_api_key = _env("METRICS_API_KEY")
    if _env("COMPETITOR_DOMAINS"):
        config.competitor_domains = [d.strip() for d in _env("COMPETITOR_DOMAINS").split(",") if d.strip()]

    for key, value in overrides.items():
        if not hasattr(config, key):
            raise ValueError(f"Unknown configuration key: {key}")
        setattr(config, key, value)

    return config
