"""
Tests for SEO signal extraction
"""
from extractor import discover_links, extract
from models import PageSignals

PAGE_URL = "https://example.com/furnace-repair"


class TestExtract:
    """Test class for HTML signal extraction"""

    def test_head_signals(self, sample_html):
        signals = extract(sample_html, PAGE_URL)

        assert signals.title == "Furnace Repair Guide for Homeowners in 2024"
        assert signals.meta_description.startswith("Learn how furnace repair works")
        assert signals.meta_keywords == "furnace repair, heating"
        assert signals.meta_robots == "index,follow"
        assert signals.canonical_url == "https://example.com/furnace-repair"
        assert signals.has_viewport
        assert signals.lang == "en"
        assert signals.og == {"title": "Furnace Repair Guide"}
        assert signals.twitter == {"card": "summary"}

    def test_headings(self, sample_html):
        signals = extract(sample_html, PAGE_URL)

        assert signals.h1 == ["Furnace Repair Guide"]
        assert signals.h2 == ["Common Problems"]
        assert signals.h3 == ["Ignition Failures"]

    def test_links_are_normalized_and_split_by_site(self, sample_html):
        signals = extract(sample_html, PAGE_URL)

        assert signals.internal_links == [
            "https://example.com/services",
            "https://example.com/contact",
            "https://www.example.com/about",
            "https://example.com/quote",
        ]
        assert signals.external_links == ["https://other.org/guide"]

    def test_non_navigable_links_are_ignored(self, sample_html):
        signals = extract(sample_html, PAGE_URL)
        all_links = signals.internal_links + signals.external_links

        assert not any(link.startswith(("mailto:", "javascript:")) for link in all_links)

    def test_images_and_schema(self, sample_html):
        signals = extract(sample_html, PAGE_URL)

        assert len(signals.images) == 2
        assert signals.images[0] == {
            "src": "/images/furnace.webp", "alt": "Furnace", "title": "", "loading": "lazy"
        }
        assert signals.images[1]["alt"] == ""
        # The invalid JSON-LD block is skipped
        assert signals.schema_blocks == [{"@type": "Article", "headline": "Furnace Repair Guide"}]

    def test_calls_to_action(self, sample_html):
        signals = extract(sample_html, PAGE_URL)
        assert signals.cta_texts == ["Subscribe now", "Get your free quote today"]

    def test_text_metrics(self, sample_html):
        signals = extract(sample_html, PAGE_URL)

        assert len(signals.paragraphs) == 2
        assert "ignition system" in signals.body_text
        assert "headline" not in signals.body_text
        assert signals.word_count == len(signals.body_text.split())
        assert signals.reading_time == 1
        assert 0 < signals.text_to_html_ratio < 100

    def test_deterministic(self, sample_html):
        assert extract(sample_html, PAGE_URL) == extract(sample_html, PAGE_URL)

    def test_empty_html(self):
        assert extract("", PAGE_URL) == PageSignals()

    def test_malformed_html_does_not_raise(self):
        signals = extract("<html><body><p>unclosed <div><a href='/x'>x</a></span>", PAGE_URL)
        assert isinstance(signals, PageSignals)
        assert "https://example.com/x" in signals.internal_links


class TestDiscoverLinks:

    def test_returns_internal_links_only(self, sample_html):
        links = discover_links(extract(sample_html, PAGE_URL))
        assert "https://other.org/guide" not in links
        assert "https://example.com/services" in links
