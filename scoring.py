"""
Multi-factor page quality scoring
"""
import logging
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from textstat import flesch_reading_ease

import annotator
from extractor import extract
from metric_providers import FallbackMetricProvider
from models import AnalysisResult, CategoryResult, KeywordMetrics, PageSignals

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    'content': 1.5,
    'technical': 1.3,
    'keyword': 1.5,
    'links': 1.0,
    'images': 1.0,
}

MODERN_IMAGE_FORMATS = ('.webp', '.avif', '.svg')


@dataclass
class AnalysisTarget:
    """What a page is being scored against"""
    url: str
    primary_keyword: str = ""
    secondary_keywords: List[str] = field(default_factory=list)
    load_time_ms: Optional[int] = None
    status_code: int = 200
    keyword_metrics: Optional[KeywordMetrics] = None


def score_category(score: float) -> str:
    if score >= 80:
        return 'excellent'
    if score >= 60:
        return 'good'
    if score >= 40:
        return 'needs-work'
    return 'poor'


def _clamp(score: float) -> int:
    return max(0, min(100, round(score)))


def readability_score(text: str) -> float:
    """Flesch reading ease clamped to 0-100"""
    if not text.strip():
        return 0.0
    return max(0.0, min(100.0, flesch_reading_ease(text)))


def analyze_content(signals: PageSignals, target: AnalysisTarget) -> CategoryResult:
    result = CategoryResult(score=0)
    score = 50

    words = signals.word_count
    if words >= 300:
        score += 10
    if words >= 600:
        score += 10
    if words >= 1000:
        score += 5
    if words < 300:
        result.issues.append(f"Thin content ({words} words)")
        result.recommendations.append("Expand the page to at least 300 words of useful content")

    h1_count = len(signals.h1)
    if h1_count == 1:
        score += 10
    elif h1_count > 1:
        score += 5
        result.issues.append(f"{h1_count} H1 headings")
        result.recommendations.append("Use a single H1 heading per page")
    else:
        result.issues.append("No H1 heading")
        result.recommendations.append("Add an H1 heading that states the page topic")

    if signals.h2:
        score += 5
    else:
        result.recommendations.append("Break content into sections with H2 subheadings")
    if signals.h3:
        score += 3

    if len(signals.paragraphs) >= 5:
        score += 5

    readability = readability_score(signals.body_text)
    if readability >= 60:
        score += 5
    if readability >= 80:
        score += 5
    if readability < 60:
        result.recommendations.append("Use shorter sentences and simpler words to improve readability")

    if signals.images:
        score += 7

    result.score = _clamp(score)
    result.subscores = {
        'wordCount': words,
        'readability': round(readability),
        'paragraphs': len(signals.paragraphs),
    }
    return result


def analyze_technical(signals: PageSignals, target: AnalysisTarget) -> CategoryResult:
    result = CategoryResult(score=0)

    title_length = len(signals.title)
    description_length = len(signals.meta_description)
    load_time = target.load_time_ms

    # (points, passed, recommendation)
    checks = [
        (15, bool(signals.title), "Add a title tag"),
        (10, 30 <= title_length <= 60, "Keep the title between 30 and 60 characters"),
        (15, bool(signals.meta_description), "Add a meta description"),
        (10, 70 <= description_length <= 160, "Keep the meta description between 70 and 160 characters"),
        (10, bool(signals.canonical_url), "Add a canonical link"),
        (10, signals.has_viewport, "Add a responsive viewport meta tag"),
        (10, urlparse(target.url).scheme == 'https', "Serve the page over HTTPS"),
        (5, bool(signals.lang), "Declare the page language on the html element"),
        (5, bool(signals.schema_blocks), "Add structured data (JSON-LD)"),
        (5, target.status_code == 200, f"Page returned HTTP {target.status_code}"),
        (5, load_time is None or load_time < 3000, "Reduce page load time below 3 seconds"),
    ]

    score = 0
    for points, passed, recommendation in checks:
        if passed:
            score += points
        else:
            result.recommendations.append(recommendation)

    if 'noindex' in signals.meta_robots.lower():
        score -= 20
        result.issues.append("Page is marked noindex")

    result.score = _clamp(score)
    result.subscores = {
        'titleLength': title_length,
        'metaDescriptionLength': description_length,
        'structuredDataBlocks': len(signals.schema_blocks),
    }
    return result


def keyword_density(text: str, keyword: str) -> float:
    words = len(text.split())
    if not words or not keyword:
        return 0.0
    return round(text.lower().count(keyword.lower()) * len(keyword.split()) / words * 100, 2)


def analyze_keywords(signals: PageSignals, target: AnalysisTarget) -> CategoryResult:
    result = CategoryResult(score=0)
    keyword = target.primary_keyword.strip().lower()

    if not keyword:
        result.score = 50
        result.issues.append("No target keyword provided")
        return result

    first_words = " ".join(signals.body_text.split()[:100]).lower()
    slug = urlparse(target.url).path.lower().replace('-', ' ').replace('_', ' ')
    density = keyword_density(signals.body_text, keyword)

    # (points, passed, recommendation)
    checks = [
        (20, keyword in signals.title.lower(), "Include the target keyword in the title"),
        (15, keyword in signals.meta_description.lower(), "Include the target keyword in the meta description"),
        (20, any(keyword in h.lower() for h in signals.h1), "Include the target keyword in the H1 heading"),
        (15, keyword in first_words, "Mention the target keyword in the first 100 words"),
        (20, 0.5 <= density <= 2.5, "Aim for a keyword density between 0.5% and 2.5%"),
        (10, keyword in slug, "Include the target keyword in the URL"),
    ]

    score = 0
    for points, passed, recommendation in checks:
        if passed:
            score += points
        else:
            result.recommendations.append(recommendation)

    if density > 3:
        score -= 10
        result.issues.append(f"Possible keyword stuffing ({density}% density)")

    body = signals.body_text.lower()
    missing = [k for k in target.secondary_keywords if k.strip() and k.lower() not in body]
    if missing:
        result.recommendations.append(f"Cover secondary keywords: {', '.join(missing)}")

    result.subscores = {
        'density': round(density),
        'secondaryCovered': len(target.secondary_keywords) - len(missing),
    }

    metrics = target.keyword_metrics
    if metrics is not None:
        result.subscores['volume'] = metrics.volume
        result.subscores['difficulty'] = metrics.difficulty
        if metrics.difficulty > 70:
            result.recommendations.append("The target keyword is highly competitive; consider long-tail variants")
        if metrics.estimated:
            result.issues.append("Keyword metrics are estimated")

    result.score = _clamp(score)
    return result


def analyze_links(signals: PageSignals, target: AnalysisTarget) -> CategoryResult:
    result = CategoryResult(score=0)
    internal = len(signals.internal_links)
    external = len(signals.external_links)
    score = 50

    if internal >= 1:
        score += 10
    if internal >= 3:
        score += 10
    if internal >= 5:
        score += 5
    if internal < 3:
        result.recommendations.append("Add internal links to related pages")

    if external >= 1:
        score += 10
    else:
        result.recommendations.append("Link to authoritative external sources")

    if internal and external <= internal:
        score += 10

    if internal + external > 100:
        score -= 10
        result.issues.append(f"Excessive number of links ({internal + external})")

    result.score = _clamp(score)
    result.subscores = {'internal': internal, 'external': external}
    return result


def analyze_images(signals: PageSignals, target: AnalysisTarget) -> CategoryResult:
    result = CategoryResult(score=0)
    count = len(signals.images)
    score = 50

    if count == 0:
        result.recommendations.append("Add relevant images to support the content")
        result.score = score
        result.subscores = {'count': 0}
        return result

    score += 10

    with_alt = sum(1 for image in signals.images if (image.get('alt') or '').strip())
    alt_percentage = with_alt / count * 100
    if alt_percentage == 100:
        score += 25
    elif alt_percentage >= 75:
        score += 15
    elif alt_percentage >= 50:
        score += 10
    if with_alt < count:
        result.issues.append(f"{count - with_alt} images without alt text")
        result.recommendations.append("Add descriptive alt text to every image")

    optimized = sum(
        1 for image in signals.images
        if (image.get('src') or '').lower().split('?')[0].endswith(MODERN_IMAGE_FORMATS)
        or (image.get('loading') or '').lower() == 'lazy'
    )
    optimized_percentage = optimized / count * 100
    if optimized_percentage >= 75:
        score += 15
    elif optimized_percentage >= 50:
        score += 10
    elif optimized_percentage >= 25:
        score += 5
    else:
        result.recommendations.append("Use modern image formats or lazy loading")

    result.score = _clamp(score)
    result.subscores = {'count': count, 'withAlt': with_alt, 'optimized': optimized}
    return result


ANALYZERS: Dict[str, Callable[[PageSignals, AnalysisTarget], CategoryResult]] = {
    'content': analyze_content,
    'technical': analyze_technical,
    'keyword': analyze_keywords,
    'links': analyze_links,
    'images': analyze_images,
}


def default_result(url: str) -> AnalysisResult:
    """Placeholder result for pages that cannot be analyzed"""
    return AnalysisResult(
        url=url,
        timestamp=datetime.now().isoformat(),
        category_scores={name: CategoryResult(score=0, error=True) for name in ANALYZERS},
        overall_score=0,
        recommendations=["Page content could not be analyzed"],
        is_default=True
    )


class ScoringEngine:
    """
    Runs every category analyzer over a page and combines the scores.

    A failing analyzer scores 0 for its category; analyze() itself never
    raises.
    """

    def __init__(self, weights: Optional[Dict[str, float]] = None, metric_provider=None, store=None):
        self.weights = dict(DEFAULT_WEIGHTS)
        self.weights.update(weights or {})
        if metric_provider is not None and not isinstance(metric_provider, FallbackMetricProvider):
            metric_provider = FallbackMetricProvider(metric_provider)
        self.metric_provider = metric_provider
        self.store = store
        self.analyzers = dict(ANALYZERS)

    def analyze(self, page: Union[str, PageSignals], target: Optional[AnalysisTarget] = None) -> AnalysisResult:
        target = target or AnalysisTarget(url="")

        try:
            signals = self._signals(page, target)
            if signals is None:
                logger.warning(f"Nothing to analyze for {target.url or 'inline HTML'}")
                return default_result(target.url)

            target = self._with_keyword_metrics(target)
            result = self._score(signals, target)
        except Exception as e:
            logger.error(f"Analysis failed for {target.url}: {e}")
            return default_result(target.url)

        if self.store is not None and target.url:
            try:
                self.store.save_analysis(result)
            except sqlite3.Error as e:
                logger.error(f"Failed to save analysis for {target.url}: {e}")
        return result

    def _signals(self, page: Union[str, PageSignals], target: AnalysisTarget) -> Optional[PageSignals]:
        if isinstance(page, PageSignals):
            return page
        if not page or not page.strip():
            return None
        if BeautifulSoup(page, "html.parser").find() is None:
            return None
        return extract(page, target.url)

    def _with_keyword_metrics(self, target: AnalysisTarget) -> AnalysisTarget:
        if self.metric_provider is None or not target.primary_keyword or target.keyword_metrics:
            return target
        return replace(target, keyword_metrics=self.metric_provider.get_keyword_metrics(target.primary_keyword))

    def _score(self, signals: PageSignals, target: AnalysisTarget) -> AnalysisResult:
        category_scores: Dict[str, CategoryResult] = {}

        for name, analyzer in self.analyzers.items():
            try:
                category_scores[name] = analyzer(signals, target)
            except Exception as e:
                logger.error(f"{name} analyzer failed for {target.url}: {e}")
                category_scores[name] = CategoryResult(score=0, error=True, issues=[f"{name} analysis failed"])

        weighted = sum(result.score * self.weights.get(name, 1.0) for name, result in category_scores.items())
        total_weight = sum(self.weights.get(name, 1.0) for name in category_scores)
        overall = _clamp(weighted / total_weight) if total_weight else 0

        # Weakest categories first
        ordered = sorted(category_scores.values(), key=lambda result: result.score)
        recommendations = list(dict.fromkeys(
            recommendation for result in ordered for recommendation in result.recommendations
        ))

        return AnalysisResult(
            url=target.url,
            timestamp=datetime.now().isoformat(),
            category_scores=category_scores,
            overall_score=overall,
            recommendations=recommendations,
            annotations=annotator.generate_annotations(signals, target.primary_keyword)
        )
