"""
Tests for MinHash fingerprints and near-duplicate detection
"""
from similarity import (
    NUM_SLOTS, SLOT_HEX_WIDTH, ContentDeduplicator, content_hash, is_duplicate, mask_numbers, similarity,
    strip_markup
)
from conftest import ARTICLE_WORDS, article_html


OTHER_WORDS = (
    "The city council approved a new budget for road repairs and public parks on Tuesday evening. "
    "Several residents spoke about traffic near the school and asked for additional crossing guards. "
    "Library hours will expand next spring after the renovation of the reading room is finished. "
    "A farmers market returns to the town square every Saturday morning from May through October. "
    "Volunteers are needed to plant trees along the river trail during the community cleanup weekend."
)


class TestContentHash:
    """Test class for fingerprint generation"""

    def test_fixed_width_hex_fingerprint(self):
        fingerprint = content_hash(article_html("Heating"))
        assert len(fingerprint) == NUM_SLOTS * SLOT_HEX_WIDTH
        int(fingerprint, 16)

    def test_deterministic(self):
        html = article_html("Heating")
        assert content_hash(html) == content_hash(html)

    def test_ignores_markup(self):
        plain = f"<p>{OTHER_WORDS}</p>"
        styled = f"<div class='x'><script>var a = 1;</script><p>{OTHER_WORDS}</p><!-- note --></div>"
        assert content_hash(plain) == content_hash(styled)

    def test_empty_content_still_hashes(self):
        assert len(content_hash("")) == NUM_SLOTS * SLOT_HEX_WIDTH

    def test_strip_markup_collapses_whitespace(self):
        assert strip_markup("<h1>Hello</h1>\n\n  <p>World&nbsp;Again</p>") == "hello world again"

    def test_strip_markup_ignores_attribute_values(self):
        assert strip_markup('<p title="a > b">Hello</p>') == "hello"

    def test_strip_markup_drops_scripts_and_comments(self):
        html = "<style>p { color: red }</style><p>Kept</p><script>if (a < b) {}</script><!-- gone -->"
        assert strip_markup(html) == "kept"

    def test_mask_numbers(self):
        assert mask_numbers("page 2 of 10 in 2024 route66") == "page 0 of 0 in 0 route66"


class TestPagination:
    """Pages differing only in a page counter"""

    def paginated(self, body, page):
        return article_html("Service area", f"{body} Page {page} of 10")

    def test_short_paginated_pages_are_duplicates(self):
        body = " ".join(OTHER_WORDS.split()[:40])
        first = content_hash(self.paginated(body, 1))
        second = content_hash(self.paginated(body, 2))

        assert similarity(first, second) > 0.9
        assert is_duplicate(second, [first])

    def test_different_text_is_still_distinct(self):
        first = content_hash(article_html("Service area", " ".join(OTHER_WORDS.split()[:40])))
        second = content_hash(article_html("Service area", " ".join(OTHER_WORDS.split()[40:80])))
        assert not is_duplicate(second, [first])


class TestSimilarity:

    def test_identical_fingerprints(self):
        fingerprint = content_hash(article_html("Heating"))
        assert similarity(fingerprint, fingerprint) == 1.0

    def test_near_duplicate_pages_are_similar(self):
        first = content_hash(article_html("Heating guide", ARTICLE_WORDS))
        second = content_hash(article_html("Heating guide", ARTICLE_WORDS + " Call today."))
        assert similarity(first, second) > 0.9

    def test_unrelated_pages_are_dissimilar(self):
        first = content_hash(article_html("Heating", ARTICLE_WORDS))
        second = content_hash(article_html("Council", OTHER_WORDS))
        assert similarity(first, second) < 0.2

    def test_symmetric(self):
        first = content_hash(article_html("Heating", ARTICLE_WORDS))
        second = content_hash(article_html("Heating", ARTICLE_WORDS[:600]))
        assert similarity(first, second) == similarity(second, first)

    def test_empty_or_mismatched_fingerprints(self):
        fingerprint = content_hash("some words here")
        assert similarity("", fingerprint) == 0.0
        assert similarity(fingerprint, fingerprint[:32]) == 0.0

    def test_threshold_is_strict(self):
        fingerprint = content_hash(article_html("Heating"))
        slots = [fingerprint[i:i + SLOT_HEX_WIDTH] for i in range(0, len(fingerprint), SLOT_HEX_WIDTH)]
        changed = ["f" * SLOT_HEX_WIDTH if i < 13 else slot for i, slot in enumerate(slots)]
        other = "".join(changed)

        # 115 of 128 slots equal
        assert similarity(fingerprint, other) == 115 / 128
        assert not is_duplicate(other, [fingerprint], threshold=115 / 128)
        assert is_duplicate(other, [fingerprint], threshold=0.89)


class TestContentDeduplicator:
    """Test class for per-crawl duplicate tracking"""

    def test_first_page_is_unique(self):
        dedup = ContentDeduplicator()
        assert not dedup.check("https://example.com/a", content_hash(article_html("A"))).is_duplicate
        assert len(dedup) == 1

    def test_near_duplicate_reports_original_url(self):
        dedup = ContentDeduplicator()
        dedup.check("https://example.com/a", content_hash(article_html("Heating guide")))

        match = dedup.check(
            "https://example.com/b",
            content_hash(article_html("Heating guide", ARTICLE_WORDS + " Call today."))
        )

        assert match.is_duplicate
        assert match.similar_url == "https://example.com/a"
        assert match.similarity > 0.9
        assert len(dedup) == 1

    def test_distinct_pages_are_both_recorded(self):
        dedup = ContentDeduplicator()
        dedup.check("https://example.com/a", content_hash(article_html("Heating", ARTICLE_WORDS)))
        match = dedup.check("https://example.com/b", content_hash(article_html("Council", OTHER_WORDS)))
        assert not match.is_duplicate
        assert len(dedup) == 2
