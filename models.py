"""
Data models for the SEO crawl pipeline
"""
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime


JOB_TYPES = ("seo", "news", "competitor")


@dataclass
class CrawlTarget:
    """A discovered URL waiting in the frontier"""
    url: str
    depth: int
    domain: str
    discovered_from: Optional[str] = None


@dataclass
class FetchResult:
    """Rendered page returned by the fetcher"""
    url: str
    html: str
    load_time_ms: int
    status_code: int = 200
    final_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: List[str] = field(default_factory=list)


@dataclass
class PageSignals:
    """Structured SEO signals extracted from one HTML document"""
    title: str = ""
    meta_description: str = ""
    meta_keywords: str = ""
    meta_robots: str = ""
    canonical_url: str = ""
    generator: str = ""
    lang: str = ""
    has_viewport: bool = False
    og: Dict[str, str] = field(default_factory=dict)
    twitter: Dict[str, str] = field(default_factory=dict)
    h1: List[str] = field(default_factory=list)
    h2: List[str] = field(default_factory=list)
    h3: List[str] = field(default_factory=list)
    schema_blocks: List[Any] = field(default_factory=list)
    internal_links: List[str] = field(default_factory=list)
    external_links: List[str] = field(default_factory=list)
    images: List[Dict[str, str]] = field(default_factory=list)
    paragraphs: List[str] = field(default_factory=list)
    cta_texts: List[str] = field(default_factory=list)
    body_text: str = ""
    word_count: int = 0
    reading_time: int = 0
    text_to_html_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageSignals":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class PageSnapshot:
    """Latest successful fetch of one normalized URL"""
    url: str
    content_hash: str
    signals: PageSignals
    load_time_ms: int
    fetched_at: str
    status_code: int = 200

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrawlFailure:
    """A page that could not be crawled"""
    url: str
    kind: str
    message: str
    status: Optional[int] = None


@dataclass
class CrawlResult:
    """Outcome of one site crawl"""
    seed_url: str
    snapshots: List[PageSnapshot] = field(default_factory=list)
    failures: List[CrawlFailure] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    platform: Optional[str] = None
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: Optional[str] = None

    @property
    def success(self) -> bool:
        return len(self.snapshots) > 0


@dataclass
class CMSFingerprint:
    """Detected platform of a target site"""
    platform: str
    confidence: float
    framework: Optional[str] = None
    evidence: List[str] = field(default_factory=list)


@dataclass
class CMSOptimizations:
    """Crawl filtering hints derived from the platform"""
    skip_patterns: List[str] = field(default_factory=list)
    priority_patterns: List[str] = field(default_factory=list)
    max_depth: int = 4


@dataclass
class CrawlJob:
    """A configured recurring crawl"""
    id: str
    name: str
    type: str  # 'seo', 'news', 'competitor'
    schedule: str
    is_active: bool = True
    last_run: Optional[str] = None
    retry_attempts: int = 0
    max_retries: int = 3
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class JobExecution:
    """One finished run of a scheduled job"""
    job_id: str
    started_at: str
    duration_ms: int
    success: bool
    error: Optional[str] = None


@dataclass
class QualityIssue:
    """A problem found by the data quality validator"""
    id: str
    type: str  # 'validation', 'duplicate', 'stale', 'integrity', 'content'
    severity: str  # 'low', 'medium', 'high', 'critical'
    message: str
    affected_records: int
    suggested_action: str


@dataclass
class QualityReport:
    """Data quality report over the content store"""
    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    duplicate_records: int = 0
    stale_records: int = 0
    quality_score: int = 0
    issues: List[QualityIssue] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    """Outcome of validating a single record"""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class CategoryResult:
    """Score of one analysis category"""
    score: int
    subscores: Dict[str, int] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    error: bool = False


@dataclass
class Annotation:
    """Rule-based suggestion for a piece of page content"""
    content: str
    issue: str
    suggestion: str
    severity: str  # 'high', 'medium', 'low'
    type: str  # 'structure', 'readability', 'semantics', 'engagement'


@dataclass
class AnalysisResult:
    """Multi-factor quality score for one page"""
    url: str
    timestamp: str
    category_scores: Dict[str, CategoryResult] = field(default_factory=dict)
    overall_score: int = 0
    recommendations: List[str] = field(default_factory=list)
    annotations: List[Annotation] = field(default_factory=list)
    is_default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class KeywordMetrics:
    """Search metrics for a keyword"""
    keyword: str
    volume: int
    difficulty: int
    cpc: float
    estimated: bool = False


@dataclass
class RankingData:
    """Ranking of a domain for a keyword"""
    keyword: str
    domain: str
    position: Optional[int]
    competitor_positions: Dict[str, int] = field(default_factory=dict)
    estimated: bool = False


@dataclass
class NewsSource:
    """A news site crawled through CSS selectors"""
    id: str
    name: str
    url: str
    selectors: Dict[str, str]
    is_active: bool = True
    last_crawled: Optional[str] = None


@dataclass
class NewsArticle:
    """Article headline scraped from a news source"""
    title: str
    url: str
    source: str
    crawled_at: str
    description: Optional[str] = None
    published_at: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None


@dataclass
class NewsCrawlResult:
    """Outcome of crawling one news source"""
    source: str
    articles: List[NewsArticle] = field(default_factory=list)
    success: bool = False
    error: Optional[str] = None
    crawled_at: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class CompetitorData:
    """Pages crawled from one competitor domain"""
    domain: str
    pages: List[PageSnapshot]
    platform: Optional[str]
    crawled_at: str
