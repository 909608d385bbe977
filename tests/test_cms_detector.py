"""
Tests for CMS fingerprinting
"""
import cms_detector
from models import CMSFingerprint


class TestDetect:
    """Test class for platform detection"""

    def test_wordpress_from_generator_and_assets(self):
        html = (
            '<html><head><meta name="generator" content="WordPress 6.4">'
            '<link rel="stylesheet" href="/wp-content/themes/x/style.css"></head></html>'
        )
        fingerprint = cms_detector.detect(html)

        assert fingerprint.platform == "wordpress"
        assert fingerprint.confidence == 0.9
        assert "asset:/wp-content/" in fingerprint.evidence

    def test_shopify_from_headers(self):
        fingerprint = cms_detector.detect("<html></html>", headers={"X-ShopId": "123"})
        assert fingerprint.platform == "shopify"
        assert fingerprint.confidence == 0.4

    def test_wix_from_cookies(self):
        fingerprint = cms_detector.detect("<html></html>", cookies=["_wixCIDX"])
        assert fingerprint.platform == "wix"

    def test_accepts_cookie_dicts(self):
        fingerprint = cms_detector.detect("<html></html>", cookies=[{"name": "_shopify_y", "value": "1"}])
        assert fingerprint.platform == "shopify"

    def test_confidence_is_capped(self):
        html = (
            '<meta name="generator" content="WordPress">'
            '<script src="/wp-includes/js/wp-emoji.js"></script>'
        )
        fingerprint = cms_detector.detect(
            html, headers={"Link": "<https://x.com/wp-json/>"}, cookies=["wordpress_logged_in"]
        )
        assert fingerprint.confidence == 1.0

    def test_custom_when_nothing_matches(self):
        fingerprint = cms_detector.detect("<html><body><p>Hand written site</p></body></html>")
        assert fingerprint.platform == "custom"
        assert fingerprint.confidence == 0.0

    def test_framework_detection(self):
        fingerprint = cms_detector.detect('<script id="__NEXT_DATA__" type="application/json">{}</script>')
        assert fingerprint.framework == "Next.js"

    def test_empty_html(self):
        assert cms_detector.detect(None).platform == "custom"

    def test_unquoted_generator_attributes(self):
        fingerprint = cms_detector.detect('<meta name=generator content="WordPress 6.4">')
        assert fingerprint.platform == "wordpress"
        assert fingerprint.evidence == ["generator:wordpress 6.4"]

    def test_generator_with_content_before_name(self):
        fingerprint = cms_detector.detect('<meta content="Drupal 10 (https://www.drupal.org)" name="Generator">')
        assert fingerprint.platform == "drupal"

    def test_drupal_session_cookie(self):
        name = "SSESS" + "0123456789abcdef" * 2
        fingerprint = cms_detector.detect("<html></html>", cookies=[name])
        assert fingerprint.platform == "drupal"
        assert fingerprint.confidence == 0.3

    def test_generic_session_cookies_are_not_drupal(self):
        fingerprint = cms_detector.detect("<html></html>", cookies=["sessionid", "session", "sess_token"])
        assert fingerprint.platform == "custom"


class TestOptimizations:

    def test_wordpress_preset(self):
        hints = cms_detector.get_optimizations("wordpress")
        assert "?replytocom=" in hints.skip_patterns
        assert hints.max_depth == 3

    def test_accepts_fingerprint(self):
        hints = cms_detector.get_optimizations(CMSFingerprint(platform="wix", confidence=0.3))
        assert hints.max_depth == 2

    def test_unknown_platform_gets_generic_hints(self):
        hints = cms_detector.get_optimizations("custom")
        assert hints.max_depth == 4
        assert "/contact" in hints.priority_patterns

    def test_presets_are_copied(self):
        hints = cms_detector.get_optimizations("shopify")
        hints.skip_patterns.append("/mutated")
        assert "/mutated" not in cms_detector.get_optimizations("shopify").skip_patterns
