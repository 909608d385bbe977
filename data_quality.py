"""
Validation and quality reporting for crawled content
"""
import json
import logging
import re
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from config import DEFAULT_STALE_DAYS
from exceptions import IntegrityError, ValidationError
from models import QualityIssue, QualityReport, ValidationResult

logger = logging.getLogger(__name__)

SPAM_PATTERNS = [
    re.compile(r"click here", re.IGNORECASE),
    re.compile(r"buy now", re.IGNORECASE),
    re.compile(r"free money", re.IGNORECASE),
    re.compile(r"guaranteed", re.IGNORECASE),
    re.compile(r"act now", re.IGNORECASE),
    re.compile(r"limited time", re.IGNORECASE),
    re.compile(r"\$\$\$"),
    re.compile(r"!!!"),
]


class NewsArticleRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = Field(min_length=1, max_length=500)
    url: HttpUrl
    description: Optional[str] = None
    publishedAt: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    source: str = Field(min_length=1)
    crawledAt: str


class SeoRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: HttpUrl
    title: Optional[str] = None
    metaDescription: Optional[str] = None
    h1Tags: List[str]
    h2Tags: List[str]
    h3Tags: List[str]
    wordCount: int = Field(ge=0)
    readingTime: int = Field(ge=0)
    textToHtmlRatio: float = Field(ge=0, le=100)
    loadTime: Optional[float] = None
    crawledAt: str


class CompetitorRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    domain: str = Field(min_length=1)
    pages: List[SeoRecord]
    domainAuthority: Optional[float] = Field(default=None, ge=0, le=100)
    backlinks: Optional[int] = None
    crawledAt: str


RECORD_MODELS = {
    'news': NewsArticleRecord,
    'seo': SeoRecord,
    'competitor': CompetitorRecord,
}


def contains_spam(text: str) -> bool:
    return any(pattern.search(text) for pattern in SPAM_PATTERNS)


def severity_for(affected: int, total: int) -> str:
    """Severity proportional to the share of affected records"""
    share = affected / total if total else 0
    if share > 0.5:
        return 'critical'
    if share > 0.2:
        return 'high'
    if share > 0.1:
        return 'medium'
    return 'low'


def _format_errors(error: pydantic.ValidationError) -> List[str]:
    messages = []
    for issue in error.errors():
        field = ".".join(str(part) for part in issue['loc']) or "record"
        messages.append(f"{field}: {issue['msg']}")
    return messages


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    # Compare naive local times
    return parsed.replace(tzinfo=None) if parsed.tzinfo is None else parsed.astimezone().replace(tzinfo=None)


def validate(record: Any, type_tag: str) -> ValidationResult:
    """
    Validate one crawled record against the schema for its content type.

    Dispatch is on the explicit type tag. Schema errors are reported as
    '<field>: <message>'; content heuristics add further errors or warnings.
    """
    result = ValidationResult()

    model = RECORD_MODELS.get(type_tag)
    if model is None:
        result.is_valid = False
        result.errors.append(f"type: Unknown data type '{type_tag}'")
        return result

    if not isinstance(record, dict):
        result.is_valid = False
        result.errors.append("record: Input should be an object")
        return result

    try:
        model.model_validate(record)
    except pydantic.ValidationError as e:
        result.is_valid = False
        result.errors.extend(_format_errors(e))

    if type_tag == 'news':
        _check_news(record, result)
    elif type_tag == 'seo':
        _check_seo(record, result)
    else:
        _check_competitor(record, result)

    return result


def _check_title(title: Any, result: ValidationResult):
    if not isinstance(title, str) or not title:
        return
    if len(title) < 10:
        result.warnings.append("title: Title is very short (less than 10 characters)")
    if len(title) > 200:
        result.warnings.append("title: Title is very long (more than 200 characters)")
    if contains_spam(title):
        result.is_valid = False
        result.errors.append("title: Title contains spam-like content")


def _check_news(record: Dict[str, Any], result: ValidationResult):
    _check_title(record.get('title'), result)

    published = record.get('publishedAt')
    if published:
        published_at = _parse_timestamp(published)
        if published_at is None:
            result.warnings.append("publishedAt: Unparsable publish date")
        else:
            now = datetime.now()
            if published_at > now:
                result.warnings.append("publishedAt: Article has future publish date")
            if published_at < now - timedelta(days=365):
                result.warnings.append("publishedAt: Article is more than one year old")


def _check_seo(record: Dict[str, Any], result: ValidationResult, prefix: str = ""):
    warnings = []

    word_count = record.get('wordCount')
    if isinstance(word_count, (int, float)):
        if word_count < 50:
            warnings.append("wordCount: Very low word count (less than 50 words)")
        if word_count > 10000:
            warnings.append("wordCount: Very high word count (more than 10,000 words)")

    ratio = record.get('textToHtmlRatio')
    if isinstance(ratio, (int, float)) and ratio < 5:
        warnings.append("textToHtmlRatio: Low text-to-HTML ratio (less than 5%)")

    load_time = record.get('loadTime')
    if isinstance(load_time, (int, float)) and load_time > 5000:
        warnings.append("loadTime: Slow page load time (more than 5 seconds)")

    if not record.get('title'):
        warnings.append("title: Missing page title")
    if not record.get('metaDescription'):
        warnings.append("metaDescription: Missing meta description")

    h1_tags = record.get('h1Tags')
    if isinstance(h1_tags, list):
        if len(h1_tags) == 0:
            warnings.append("h1Tags: No H1 tags found")
        elif len(h1_tags) > 1:
            warnings.append("h1Tags: Multiple H1 tags found")

    result.warnings.extend(prefix + warning for warning in warnings)

    title = record.get('title')
    if isinstance(title, str) and contains_spam(title):
        result.is_valid = False
        result.errors.append(f"{prefix}title: Title contains spam-like content")


def _check_competitor(record: Dict[str, Any], result: ValidationResult):
    pages = record.get('pages')
    if not isinstance(pages, list) or not pages:
        result.is_valid = False
        if pages is None or isinstance(pages, list):
            result.errors.append("pages: No pages found for competitor analysis")
        return

    for index, page in enumerate(pages):
        if isinstance(page, dict):
            _check_seo(page, result, prefix=f"Page {index + 1}: ")


def decode_metadata(row: Dict[str, Any]) -> Dict[str, Any]:
    """Metadata of a stored row; raises IntegrityError when corrupted"""
    raw = row.get('metadata')
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise IntegrityError(f"Corrupted metadata in record {row.get('id')}: {e}")
    if not isinstance(data, dict):
        raise IntegrityError(f"Metadata of record {row.get('id')} is not an object")
    return data


class DataQualityValidator:
    """Runs validation, duplicate, staleness and integrity checks over the content store"""

    def __init__(self, store, stale_days: int = DEFAULT_STALE_DAYS, sample_max: int = 100):
        self.store = store
        self.stale_days = stale_days
        self.sample_max = sample_max

    def validate(self, record: Any, type_tag: str) -> ValidationResult:
        return validate(record, type_tag)

    def sample_size(self, total: int) -> int:
        return min(self.sample_max, max(10, int(total * 0.1)))

    def generate_report(self) -> QualityReport:
        """Fresh quality report; never raises"""
        report = QualityReport()

        try:
            report.total_records = self.store.count_content()
            if report.total_records == 0:
                report.quality_score = 100
                return report

            self._check_duplicates(report)
            self._check_staleness(report)
            self._check_integrity(report)
            self._check_validation_issues(report)

            valid = report.total_records - report.invalid_records - report.duplicate_records
            report.valid_records = max(0, valid)
            report.quality_score = max(0, round(valid / report.total_records * 100))

        except (IntegrityError, sqlite3.Error) as e:
            logger.error(f"Failed to generate quality report: {e}")
            report.issues.append(QualityIssue(
                id='report-error',
                type='integrity',
                severity='critical',
                message=f"Failed to generate complete quality report: {e}",
                affected_records=0,
                suggested_action='Check database connectivity and data integrity'
            ))

        logger.info(f"Quality report: score {report.quality_score}, {len(report.issues)} issues")
        return report

    def _check_duplicates(self, report: QualityReport):
        groups = self.store.get_duplicate_url_groups()
        report.duplicate_records = sum(count - 1 for _, count in groups)

        if report.duplicate_records > 0:
            report.issues.append(QualityIssue(
                id='duplicates',
                type='duplicate',
                severity=severity_for(report.duplicate_records, report.total_records),
                message=f"Found {report.duplicate_records} duplicate records across {len(groups)} URLs",
                affected_records=report.duplicate_records,
                suggested_action='Remove duplicate entries to improve data quality'
            ))

    def _check_staleness(self, report: QualityReport):
        cutoff = (datetime.now() - timedelta(days=self.stale_days)).isoformat()
        report.stale_records = self.store.count_stale_content(cutoff)

        if report.stale_records > 0:
            report.issues.append(QualityIssue(
                id='stale-data',
                type='stale',
                severity=severity_for(report.stale_records, report.total_records),
                message=f"Found {report.stale_records} stale records (older than {self.stale_days} days)",
                affected_records=report.stale_records,
                suggested_action='Update or remove outdated content'
            ))

    def _check_integrity(self, report: QualityReport):
        integrity = self.validate_integrity()
        affected = integrity['corrupted_metadata'] + integrity['missing_urls']

        if affected > 0:
            report.issues.append(QualityIssue(
                id='integrity',
                type='integrity',
                severity=severity_for(affected, report.total_records),
                message=(
                    f"{integrity['corrupted_metadata']} records with corrupted metadata, "
                    f"{integrity['missing_urls']} records without URL"
                ),
                affected_records=affected,
                suggested_action='Re-crawl or remove corrupted records'
            ))

    def _check_validation_issues(self, report: QualityReport):
        """Validate a bounded random sample and extrapolate to the whole store"""
        sample = self.store.get_content_sample(self.sample_size(report.total_records))
        if not sample:
            return

        invalid_count = sum(1 for row in sample if not self._sampled_record_is_valid(row))

        report.invalid_records = round(invalid_count / len(sample) * report.total_records)

        if report.invalid_records > 0:
            report.issues.append(QualityIssue(
                id='validation-errors',
                type='validation',
                severity=severity_for(report.invalid_records, report.total_records),
                message=f"Approximately {report.invalid_records} records have validation issues",
                affected_records=report.invalid_records,
                suggested_action='Review and fix data validation errors'
            ))

    def _sampled_record_is_valid(self, row: Dict[str, Any]) -> bool:
        """Records that cannot be decoded or checked count as invalid"""
        try:
            return validate(decode_metadata(row), row.get('type')).is_valid
        except IntegrityError:
            return False
        except Exception as e:
            logger.warning(f"Could not validate record {row.get('id')}: {e}")
            return False

    def cleanup_duplicates(self) -> int:
        """Delete all but the most recently updated record per URL"""
        try:
            removed = self.store.delete_duplicate_content()
        except sqlite3.Error as e:
            raise IntegrityError(f"Duplicate cleanup failed: {e}")
        logger.info(f"Removed {removed} duplicate records")
        return removed

    def mark_stale(self, days: Optional[int] = None) -> int:
        days = self.stale_days if days is None else days
        cutoff = (datetime.now() - timedelta(days=days)).isoformat()
        try:
            marked = self.store.mark_stale_content(cutoff)
        except sqlite3.Error as e:
            raise IntegrityError(f"Marking stale content failed: {e}")
        logger.info(f"Marked {marked} records stale (older than {days} days)")
        return marked

    def validate_integrity(self) -> Dict[str, int]:
        integrity = {
            'missing_urls': self.store.count_missing_urls(),
            'corrupted_metadata': 0,
        }

        for row in self.store.get_content(limit=1000):
            try:
                decode_metadata(row)
            except IntegrityError:
                integrity['corrupted_metadata'] += 1

        return integrity

    def get_quality_metrics(self) -> Dict[str, Any]:
        """Content distribution, averages of SEO records and recent crawl activity"""
        word_counts = []
        load_times = []
        for row in self.store.get_content(content_type='seo', limit=1000):
            try:
                metadata = decode_metadata(row)
            except IntegrityError:
                continue
            if isinstance(metadata.get('wordCount'), (int, float)):
                word_counts.append(metadata['wordCount'])
            if isinstance(metadata.get('loadTime'), (int, float)):
                load_times.append(metadata['loadTime'])

        since = (datetime.now() - timedelta(days=7)).isoformat()
        return {
            'averageWordCount': round(sum(word_counts) / len(word_counts)) if word_counts else 0,
            'averageLoadTime': round(sum(load_times) / len(load_times)) if load_times else 0,
            'contentDistribution': self.store.count_content_by_type(),
            'recentCrawlActivity': self.store.content_activity_since(since),
        }

    def run_quality_check(self) -> QualityReport:
        """Scheduled check: dedupe, mark stale, then report and persist"""
        self.cleanup_duplicates()
        self.mark_stale()
        report = self.generate_report()
        self.store.save_quality_report(report)
        for issue in report.issues:
            self.store.save_quality_issue(issue)
        return report


def ensure_valid(record: Any, type_tag: str) -> ValidationResult:
    """Validate and raise ValidationError when the record has errors"""
    result = validate(record, type_tag)
    if not result.is_valid:
        raise ValidationError(result.errors)
    return result
