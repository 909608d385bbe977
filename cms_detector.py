"""
CMS and front-end framework fingerprinting
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Union

from bs4 import BeautifulSoup

from models import CMSFingerprint, CMSOptimizations

logger = logging.getLogger(__name__)

CUSTOM = "custom"

# Evidence weights; confidence is the capped sum of independent signals
GENERATOR_WEIGHT = 0.6
HEADER_WEIGHT = 0.4
COOKIE_WEIGHT = 0.3
ASSET_WEIGHT = 0.3

# Cookie entries are regexes matched at the start of lower-cased cookie names
PLATFORM_SIGNATURES = {
    "wordpress": {
        "generator": ["wordpress"],
        "assets": ["/wp-content/", "/wp-includes/", "wp-json", "wp-emoji"],
        "headers": {"x-powered-by": "wordpress", "link": "wp-json"},
        "cookies": ["wordpress_", "wp-settings"],
    },
    "shopify": {
        "generator": ["shopify"],
        "assets": ["cdn.shopify.com", "shopify.theme", "myshopify.com"],
        "headers": {"x-shopid": "", "x-shopify-stage": "", "powered-by": "shopify"},
        "cookies": ["_shopify_y", "_shopify_s", "cart_sig"],
    },
    "squarespace": {
        "generator": ["squarespace"],
        "assets": ["static1.squarespace.com", "assets.squarespace.com", "squarespace-cdn"],
        "headers": {"server": "squarespace"},
        "cookies": ["crumb", "ss_cvr"],
    },
    "wix": {
        "generator": ["wix.com"],
        "assets": ["static.wixstatic.com", "parastorage.com", "wix-code"],
        "headers": {"x-wix-request-id": ""},
        "cookies": ["_wixcidx", "_wix_browser_sess", "svsession"],
    },
    "joomla": {
        "generator": ["joomla"],
        "assets": ["/components/com_", "/media/jui/", "/media/system/js/"],
        "headers": {"x-content-encoded-by": "joomla"},
        "cookies": [],
    },
    "drupal": {
        "generator": ["drupal"],
        "assets": ["/sites/default/files/", "drupal.js", "drupal-settings-json"],
        "headers": {"x-generator": "drupal", "x-drupal-cache": ""},
        "cookies": [r"s?sess[0-9a-f]{32}"],
    },
    "magento": {
        "generator": ["magento"],
        "assets": ["/static/version", "mage/cookies", "text/x-magento-init"],
        "headers": {"x-magento-cache-debug": "", "x-magento-tags": ""},
        "cookies": ["mage-cache-storage", "mage-messages", "form_key"],
    },
}

FRAMEWORK_MARKERS = [
    ("Next.js", ["__next_data__", "/_next/static/"]),
    ("Nuxt", ["__nuxt", "/_nuxt/"]),
    ("React", ["data-reactroot", "_reactroot", "react-dom"]),
    ("Angular", ["ng-version", "ng-app"]),
    ("Vue.js", ["data-v-app", "vue.js", "vue.min.js", "__vue__"]),
]

BASE_PRIORITY = ["/contact", "/about", "/services"]

OPTIMIZATIONS = {
    "wordpress": CMSOptimizations(
        skip_patterns=[
            "/wp-admin", "/wp-content/uploads", "/wp-includes", "/feed",
            "?replytocom=", "?preview=", "/tag/", "/author/", "/page/", "?m=", "?paged=",
        ],
        priority_patterns=BASE_PRIORITY + ["/shop", "/blog"],
        max_depth=3,
    ),
    "shopify": CMSOptimizations(
        skip_patterns=[
            "/admin", "/cart", "/account", "/collections/all", "/search",
            "?sort_by=", "?page=", "/blogs/news/tagged/", "/checkouts/",
        ],
        priority_patterns=["/products", "/collections", "/pages/contact", "/pages/about"],
        max_depth=3,
    ),
    "squarespace": CMSOptimizations(
        skip_patterns=["/config", "/universal", "?format=json", "/cart", "/commerce/"],
        priority_patterns=BASE_PRIORITY + ["/work"],
        max_depth=3,
    ),
    "wix": CMSOptimizations(
        skip_patterns=["/_api/", "/wix-blog-backend", "/_partials/"],
        priority_patterns=list(BASE_PRIORITY),
        max_depth=2,
    ),
    "joomla": CMSOptimizations(
        skip_patterns=["/administrator", "?format=feed", "?tmpl=component", "/component/users/", "?print=1"],
        priority_patterns=list(BASE_PRIORITY),
        max_depth=3,
    ),
    "drupal": CMSOptimizations(
        skip_patterns=["/user/", "/node/add", "?destination=", "/filter/tips", "/taxonomy/term/"],
        priority_patterns=list(BASE_PRIORITY),
        max_depth=3,
    ),
    "magento": CMSOptimizations(
        skip_patterns=[
            "/checkout", "/customer/", "/wishlist", "/catalogsearch/",
            "/sendfriend/", "/review/product/", "?product_list_order=", "?p=",
        ],
        priority_patterns=BASE_PRIORITY + ["/products", "/catalog"],
        max_depth=3,
    ),
}


def _generator_content(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    tag = soup.find("meta", attrs={"name": re.compile(r"^generator$", re.IGNORECASE)})
    if tag is None:
        return ""
    return (tag.get("content") or "").strip().lower()


def _normalize_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {str(k).lower(): str(v).lower() for k, v in (headers or {}).items()}


def _normalize_cookies(cookies: Optional[Iterable]) -> List[str]:
    names = []
    for cookie in cookies or []:
        # Accept plain names or playwright cookie dicts
        name = cookie.get("name", "") if isinstance(cookie, dict) else str(cookie)
        names.append(name.lower())
    return names


def detect_framework(html_lower: str) -> Optional[str]:
    for framework, markers in FRAMEWORK_MARKERS:
        if any(marker in html_lower for marker in markers):
            return framework
    return None


def detect(html: str, headers: Optional[Dict[str, str]] = None,
           cookies: Optional[Iterable] = None) -> CMSFingerprint:
    """
    Fingerprint the platform of a site from its first page.

    Each platform collects evidence from the generator meta tag, asset paths,
    response headers and cookie names. The platform with the highest
    confidence wins; 'custom' when nothing matches.
    """
    html_lower = (html or "").lower()
    generator = _generator_content(html or "")
    header_map = _normalize_headers(headers)
    cookie_names = _normalize_cookies(cookies)

    best = CMSFingerprint(platform=CUSTOM, confidence=0.0)

    for platform, signature in PLATFORM_SIGNATURES.items():
        confidence = 0.0
        evidence = []

        if generator and any(token in generator for token in signature["generator"]):
            confidence += GENERATOR_WEIGHT
            evidence.append(f"generator:{generator}")

        matched_assets = [asset for asset in signature["assets"] if asset in html_lower]
        if matched_assets:
            confidence += ASSET_WEIGHT
            evidence.extend(f"asset:{asset}" for asset in matched_assets)

        for header, token in signature["headers"].items():
            if header in header_map and token in header_map[header]:
                confidence += HEADER_WEIGHT
                evidence.append(f"header:{header}")
                break

        for cookie_pattern in signature["cookies"]:
            if any(re.match(cookie_pattern, name) for name in cookie_names):
                confidence += COOKIE_WEIGHT
                evidence.append(f"cookie:{cookie_pattern}")
                break

        confidence = round(min(confidence, 1.0), 2)
        if confidence > best.confidence:
            best = CMSFingerprint(platform=platform, confidence=confidence, evidence=evidence)

    best.framework = detect_framework(html_lower)

    logger.info(
        f"Site fingerprint detected: {best.platform}"
        f"{f' ({best.framework})' if best.framework else ''} confidence={best.confidence}"
    )
    return best


def get_optimizations(platform: Union[CMSFingerprint, str, None]) -> CMSOptimizations:
    """Skip/priority patterns for a detected platform"""
    if isinstance(platform, CMSFingerprint):
        platform = platform.platform
    name = (platform or CUSTOM).lower()

    preset = OPTIMIZATIONS.get(name)
    if preset is None:
        return CMSOptimizations(
            skip_patterns=["/wp-admin", "/wp-content/uploads"],
            priority_patterns=list(BASE_PRIORITY),
            max_depth=4,
        )

    return CMSOptimizations(
        skip_patterns=list(preset.skip_patterns),
        priority_patterns=list(preset.priority_patterns),
        max_depth=preset.max_depth,
    )
