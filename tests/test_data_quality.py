"""
Tests for record validation and data quality reporting
"""
import sqlite3
from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import pytest

from data_quality import DataQualityValidator, decode_metadata, ensure_valid, severity_for, validate
from exceptions import IntegrityError, ValidationError


def news_record(i=1, **overrides):
    record = {
        'title': f"Local story number {i} for readers",
        'url': f"https://news.example.com/story-{i}",
        'source': "Example News",
        'crawledAt': datetime.now().isoformat(),
    }
    record.update(overrides)
    return record


def seo_record(**overrides):
    record = {
        'url': "https://example.com/furnace-repair",
        'title': "Furnace Repair Guide",
        'metaDescription': "Everything about furnace repair.",
        'h1Tags': ["Furnace Repair Guide"],
        'h2Tags': [],
        'h3Tags': [],
        'wordCount': 850,
        'readingTime': 5,
        'textToHtmlRatio': 22.5,
        'loadTime': 1200,
        'crawledAt': datetime.now().isoformat(),
    }
    record.update(overrides)
    return record


def save_news(store, i=1, updated_at=None, **overrides):
    record = news_record(i, **overrides)
    return store.save_content(
        "news", url=record['url'], title=record['title'], metadata=record,
        source=record['source'], updated_at=updated_at
    )


class TestValidateNews:
    """Test class for news record validation"""

    def test_valid_record(self):
        result = validate(news_record(), "news")
        assert result.is_valid
        assert result.errors == []

    def test_missing_required_field(self):
        record = news_record()
        del record['url']

        result = validate(record, "news")

        assert not result.is_valid
        assert "url: Field required" in result.errors

    def test_invalid_url(self):
        result = validate(news_record(url="not a url"), "news")
        assert not result.is_valid
        assert any(error.startswith("url:") for error in result.errors)

    def test_spam_title_is_an_error(self):
        result = validate(news_record(title="Click here for the best deals of the year"), "news")
        assert not result.is_valid
        assert "title: Title contains spam-like content" in result.errors

    def test_short_title_is_a_warning(self):
        result = validate(news_record(title="Update"), "news")
        assert result.is_valid
        assert "title: Title is very short (less than 10 characters)" in result.warnings

    def test_publish_date_warnings(self):
        future = (datetime.now() + timedelta(days=3)).isoformat()
        old = (datetime.now() - timedelta(days=400)).isoformat()

        assert "publishedAt: Article has future publish date" in validate(
            news_record(publishedAt=future), "news").warnings
        assert "publishedAt: Article is more than one year old" in validate(
            news_record(publishedAt=old), "news").warnings
        assert "publishedAt: Unparsable publish date" in validate(
            news_record(publishedAt="last week"), "news").warnings

    def test_unknown_type(self):
        result = validate(news_record(), "podcast")
        assert not result.is_valid
        assert result.errors == ["type: Unknown data type 'podcast'"]

    def test_non_object_record(self):
        assert not validate(["title"], "news").is_valid


class TestValidateSeoAndCompetitor:

    def test_valid_seo_record(self):
        result = validate(seo_record(), "seo")
        assert result.is_valid
        assert result.warnings == []

    def test_seo_warnings(self):
        result = validate(seo_record(
            wordCount=20, textToHtmlRatio=2.0, loadTime=8000,
            metaDescription="", h1Tags=["One", "Two"]
        ), "seo")

        assert result.is_valid
        assert "wordCount: Very low word count (less than 50 words)" in result.warnings
        assert "textToHtmlRatio: Low text-to-HTML ratio (less than 5%)" in result.warnings
        assert "loadTime: Slow page load time (more than 5 seconds)" in result.warnings
        assert "metaDescription: Missing meta description" in result.warnings
        assert "h1Tags: Multiple H1 tags found" in result.warnings

    def test_seo_range_errors(self):
        result = validate(seo_record(wordCount=-1, textToHtmlRatio=150), "seo")
        assert not result.is_valid
        assert any(error.startswith("wordCount:") for error in result.errors)
        assert any(error.startswith("textToHtmlRatio:") for error in result.errors)

    def test_competitor_without_pages(self):
        record = {'domain': "rival.com", 'pages': [], 'crawledAt': datetime.now().isoformat()}
        result = validate(record, "competitor")
        assert not result.is_valid
        assert "pages: No pages found for competitor analysis" in result.errors

    @pytest.mark.parametrize("pages", [5, "home", {'url': "https://rival.com"}])
    def test_competitor_pages_of_wrong_type(self, pages):
        record = {'domain': "rival.com", 'pages': pages, 'crawledAt': datetime.now().isoformat()}

        result = validate(record, "competitor")

        assert not result.is_valid
        assert any(error.startswith("pages") for error in result.errors)

    def test_competitor_page_warnings_are_prefixed(self):
        record = {
            'domain': "rival.com",
            'pages': [seo_record(), seo_record(h1Tags=[])],
            'crawledAt': datetime.now().isoformat(),
        }
        result = validate(record, "competitor")

        assert result.is_valid
        assert result.warnings == ["Page 2: h1Tags: No H1 tags found"]

    def test_competitor_nested_schema_errors(self):
        page = seo_record()
        del page['h1Tags']
        record = {'domain': "rival.com", 'pages': [page], 'crawledAt': datetime.now().isoformat()}

        result = validate(record, "competitor")

        assert not result.is_valid
        assert "pages.0.h1Tags: Field required" in result.errors


class TestHelpers:

    def test_ensure_valid_raises_with_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid(news_record(title="Buy now!!!"), "news")
        assert "title: Title contains spam-like content" in exc_info.value.errors

    def test_ensure_valid_returns_warnings(self):
        assert ensure_valid(news_record(title="Short"), "news").warnings

    @pytest.mark.parametrize("affected,total,expected", [
        (6, 10, 'critical'), (3, 10, 'high'), (2, 10, 'medium'), (1, 10, 'low'), (0, 0, 'low'),
    ])
    def test_severity_for(self, affected, total, expected):
        assert severity_for(affected, total) == expected

    def test_decode_metadata(self):
        assert decode_metadata({'id': "1", 'metadata': '{"a": 1}'}) == {'a': 1}
        assert decode_metadata({'id': "1", 'metadata': None}) == {}
        with pytest.raises(IntegrityError):
            decode_metadata({'id': "1", 'metadata': "{broken"})
        with pytest.raises(IntegrityError):
            decode_metadata({'id': "1", 'metadata': "[1, 2]"})


class TestQualityReport:
    """Test class for store-wide quality reports"""

    def test_empty_store_scores_100(self, store):
        report = DataQualityValidator(store).generate_report()
        assert report.total_records == 0
        assert report.quality_score == 100
        assert report.issues == []

    def test_clean_store(self, store):
        for i in range(4):
            save_news(store, i)

        report = DataQualityValidator(store).generate_report()

        assert report.total_records == 4
        assert report.valid_records == 4
        assert report.quality_score == 100
        assert report.issues == []

    def test_duplicates_lower_the_score(self, store):
        save_news(store, 1)
        save_news(store, 1)
        save_news(store, 2)
        save_news(store, 3)

        report = DataQualityValidator(store).generate_report()

        assert report.duplicate_records == 1
        assert report.quality_score == 75
        assert [issue.id for issue in report.issues] == ['duplicates']
        assert report.issues[0].severity == 'high'

    def test_stale_records_are_reported(self, store):
        save_news(store, 1)
        save_news(store, 2, updated_at=(datetime.now() - timedelta(days=10)).isoformat())

        report = DataQualityValidator(store, stale_days=7).generate_report()

        assert report.stale_records == 1
        assert 'stale-data' in [issue.id for issue in report.issues]

    def test_corrupted_metadata_counts_as_invalid(self, store):
        for i in range(3):
            save_news(store, i)
        broken = save_news(store, 9)
        store.save_raw_metadata(broken, "{not json")

        report = DataQualityValidator(store).generate_report()

        assert report.invalid_records == 1
        assert report.quality_score == 75
        issue_ids = [issue.id for issue in report.issues]
        assert 'integrity' in issue_ids
        assert 'validation-errors' in issue_ids

    def test_score_does_not_increase_when_invalid_record_added(self, store):
        for i in range(4):
            save_news(store, i)
        validator = DataQualityValidator(store)
        before = validator.generate_report().quality_score

        save_news(store, 5, title="Act now to win free money")

        assert validator.generate_report().quality_score <= before

    def test_malformed_competitor_record_counts_as_invalid(self, store):
        for i in range(3):
            save_news(store, i)
        store.save_content("competitor", url="https://rival.com/", title="rival.com",
                           metadata={'domain': "rival.com", 'pages': 5, 'crawledAt': datetime.now().isoformat()})

        report = DataQualityValidator(store).generate_report()

        assert report.invalid_records == 1
        assert report.quality_score == 75
        assert 'report-error' not in [issue.id for issue in report.issues]

    def test_validator_crash_counts_record_as_invalid(self, store):
        for i in range(4):
            save_news(store, i)

        with patch('data_quality.validate', side_effect=RuntimeError("unexpected")):
            report = DataQualityValidator(store).generate_report()

        assert report.invalid_records == 4
        assert report.quality_score == 0
        assert 'validation-errors' in [issue.id for issue in report.issues]

    def test_store_errors_produce_critical_issue(self):
        store = Mock()
        store.count_content.side_effect = sqlite3.OperationalError("database is locked")

        report = DataQualityValidator(store).generate_report()

        assert report.issues[0].id == 'report-error'
        assert report.issues[0].severity == 'critical'

    def test_sample_size_is_bounded(self, store):
        validator = DataQualityValidator(store, sample_max=100)
        assert validator.sample_size(5) == 10
        assert validator.sample_size(500) == 50
        assert validator.sample_size(5000) == 100


class TestMaintenance:

    def test_cleanup_keeps_most_recent_record(self, store):
        old = (datetime.now() - timedelta(days=2)).isoformat()
        save_news(store, 1, updated_at=old, title="Older version of the story")
        save_news(store, 1, title="Newer version of the story")

        removed = DataQualityValidator(store).cleanup_duplicates()

        rows = store.get_content()
        assert removed == 1
        assert [row['title'] for row in rows] == ["Newer version of the story"]

    def test_mark_stale(self, store):
        old = (datetime.now() - timedelta(days=30)).isoformat()
        save_news(store, 1, updated_at=old)
        save_news(store, 2)
        validator = DataQualityValidator(store)

        assert validator.mark_stale() == 1
        assert validator.mark_stale() == 0

    def test_validate_integrity(self, store):
        store.save_content("news", url="", title="No URL", metadata=news_record())
        broken = save_news(store, 2)
        store.save_raw_metadata(broken, "not json")

        assert DataQualityValidator(store).validate_integrity() == {'missing_urls': 1, 'corrupted_metadata': 1}

    def test_run_quality_check_persists_report(self, store):
        save_news(store, 1)
        save_news(store, 1)

        report = DataQualityValidator(store).run_quality_check()

        # Duplicates are removed before reporting
        assert report.duplicate_records == 0
        assert store.get_latest_quality_report()['quality_score'] == report.quality_score

    def test_quality_metrics(self, store):
        store.save_content("seo", url="https://example.com/a", title="A", metadata=seo_record(wordCount=400))
        store.save_content("seo", url="https://example.com/b", title="B", metadata=seo_record(wordCount=600))
        save_news(store, 1)

        metrics = DataQualityValidator(store).get_quality_metrics()

        assert metrics['averageWordCount'] == 500
        assert metrics['averageLoadTime'] == 1200
        assert metrics['contentDistribution'] == {'seo': 2, 'news': 1}
        assert metrics['recentCrawlActivity'][0]['count'] == 3
