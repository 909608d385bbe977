"""
Tests for URL normalization, filtering and prioritization
"""
import pytest

from models import CrawlTarget, CMSOptimizations
from url_frontier import Frontier, get_domain, normalize, prioritize, same_site, should_skip


class TestNormalize:
    """Test class for URL canonicalization"""

    def test_lowercases_scheme_and_host_and_strips_default_port(self):
        assert normalize("HTTP://Example.COM:80/Path") == "http://example.com/Path"
        assert normalize("https://example.com:443") == "https://example.com/"

    def test_keeps_non_default_port(self):
        assert normalize("https://example.com:8080/x") == "https://example.com:8080/x"

    def test_strips_fragment_and_keeps_query(self):
        assert normalize("https://example.com/p?a=1&b=2#section") == "https://example.com/p?a=1&b=2"

    def test_removes_dot_segments(self):
        assert normalize("https://example.com/a/./b/../c") == "https://example.com/a/c"

    def test_resolves_relative_against_base(self):
        base = "https://example.com/blog/post"
        assert normalize("../about", base=base) == "https://example.com/about"
        assert normalize("/contact#form", base=base) == "https://example.com/contact"
        assert normalize("related", base=base) == "https://example.com/blog/related"

    def test_adds_scheme_when_missing(self):
        assert normalize("example.com/page") == "https://example.com/page"
        assert normalize("//cdn.example.com/x") == "https://cdn.example.com/x"

    def test_is_idempotent(self):
        once = normalize("HTTPS://WWW.Example.com:443/a/../b/?q=1#top")
        assert normalize(once) == once

    @pytest.mark.parametrize("url", ["ftp://example.com/file", "mailto:info@example.com", "https://", None])
    def test_rejects_non_http_urls(self, url):
        with pytest.raises(ValueError):
            normalize(url)


class TestDomain:

    def test_get_domain_strips_www(self):
        assert get_domain("https://www.Example.com/x") == "example.com"

    def test_same_site_ignores_www(self):
        assert same_site("https://www.example.com/a", "https://example.com/")
        assert not same_site("https://blog.example.com/a", "https://example.com/")


class TestShouldSkip:
    """Test class for crawl filtering"""

    @pytest.mark.parametrize("url", [
        "https://example.com/wp-admin/edit.php",
        "https://example.com/login",
        "https://example.com/cart",
        "https://example.com/checkout/step-1",
        "https://example.com/feed",
        "https://example.com/files/brochure.pdf",
        "https://example.com/images/logo.PNG",
    ])
    def test_skips_admin_commerce_feed_and_binary_urls(self, url):
        assert should_skip(url)

    def test_keeps_content_pages(self):
        assert not should_skip("https://example.com/blog/heating-tips")
        assert not should_skip("https://example.com/services")

    def test_applies_cms_patterns(self):
        hints = CMSOptimizations(skip_patterns=["?replytocom=", "/tag/"])
        assert should_skip("https://example.com/post?replytocom=5", hints)
        assert should_skip("https://example.com/tag/news", ["/tag/"])
        assert not should_skip("https://example.com/post", hints)


class TestPrioritize:

    def test_orders_by_path_depth(self):
        urls = ["https://example.com/a/b/c", "https://example.com/", "https://example.com/a"]
        assert prioritize(urls) == ["https://example.com/", "https://example.com/a", "https://example.com/a/b/c"]

    def test_low_value_pages_come_last_at_equal_depth(self):
        urls = ["https://example.com/page/2", "https://example.com/services/repair"]
        assert prioritize(urls)[0] == "https://example.com/services/repair"

    def test_crawl_depth_beats_path_depth(self):
        deep = CrawlTarget("https://example.com/x", depth=2, domain="example.com")
        shallow = CrawlTarget("https://example.com/a/b/c", depth=1, domain="example.com")
        assert prioritize([deep, shallow]) == [shallow, deep]


class TestFrontier:

    def test_push_rejects_queued_urls(self):
        frontier = Frontier()
        target = CrawlTarget("https://example.com/a", 1, "example.com")
        assert frontier.push(target)
        assert not frontier.push(CrawlTarget("https://example.com/a", 2, "example.com"))
        assert len(frontier) == 1
        assert "https://example.com/a" in frontier

    def test_pops_shallowest_first(self):
        frontier = Frontier()
        frontier.push(CrawlTarget("https://example.com/deep", 2, "example.com"))
        frontier.push(CrawlTarget("https://example.com/", 0, "example.com"))
        frontier.push(CrawlTarget("https://example.com/mid", 1, "example.com"))

        order = [frontier.pop().url for _ in range(3)]
        assert order == ["https://example.com/", "https://example.com/mid", "https://example.com/deep"]
        assert not frontier
