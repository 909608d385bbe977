"""
SEO signal extraction from rendered HTML
"""
import json
import logging
import math
from typing import List, Tuple

from bs4 import BeautifulSoup

from exceptions import ExtractionError
from models import PageSignals
from url_frontier import normalize, same_site

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200

NON_NAVIGABLE_PREFIXES = ("mailto:", "tel:", "javascript:", "data:", "#", "sms:", "ftp:")

CTA_CLASS_HINTS = ("btn", "button", "cta")


def extract(html: str, url: str) -> PageSignals:
    """
    Extract structured SEO signals from an HTML document.

    Pure and deterministic. Malformed markup never raises: whatever was
    extracted before the failure is returned.
    """
    signals = PageSignals()
    if not html:
        return signals

    try:
        soup = BeautifulSoup(html, "html.parser")

        signals.title = _extract_title(soup)
        signals.meta_description = _extract_meta(soup, "description")
        signals.meta_keywords = _extract_meta(soup, "keywords")
        signals.meta_robots = _extract_meta(soup, "robots")
        signals.generator = _extract_meta(soup, "generator")
        signals.canonical_url = _extract_canonical_url(soup)
        signals.has_viewport = _check_viewport(soup)
        signals.lang = _extract_lang(soup)
        signals.og = _extract_prefixed_meta(soup, "property", "og:")
        signals.twitter = _extract_prefixed_meta(soup, "name", "twitter:")

        signals.h1 = _extract_headings(soup, "h1")
        signals.h2 = _extract_headings(soup, "h2")
        signals.h3 = _extract_headings(soup, "h3")

        signals.internal_links, signals.external_links = _extract_links(soup, url)
        signals.images = _extract_images(soup)
        signals.schema_blocks = _extract_schema_blocks(soup)
        signals.cta_texts = _extract_cta_texts(soup)
        signals.paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
        signals.paragraphs = [p for p in signals.paragraphs if p]

        signals.body_text = _extract_clean_text(soup)
        signals.word_count = len(signals.body_text.split())
        signals.reading_time = math.ceil(signals.word_count / WORDS_PER_MINUTE)
        signals.text_to_html_ratio = round(len(signals.body_text) / len(html) * 100, 2)

    except Exception as e:
        error = ExtractionError(f"Partial extraction for {url}: {e}")
        logger.warning(str(error))

    return signals


def discover_links(signals: PageSignals) -> List[str]:
    """Normalized same-site links found on a page"""
    return list(signals.internal_links)


def _extract_title(soup) -> str:
    title = soup.find("title")
    return title.get_text().strip() if title else ""


def _extract_meta(soup, name: str) -> str:
    meta = soup.find("meta", attrs={"name": name})
    if meta is None:
        meta = soup.find("meta", attrs={"name": name.capitalize()})
    return meta.get("content", "").strip() if meta else ""


def _extract_canonical_url(soup) -> str:
    canonical = soup.find("link", rel="canonical")
    return canonical.get("href", "").strip() if canonical else ""


def _extract_lang(soup) -> str:
    html_tag = soup.find("html")
    return html_tag.get("lang", "").strip() if html_tag else ""


def _check_viewport(soup) -> bool:
    viewport = soup.find("meta", attrs={"name": "viewport"})
    return bool(viewport) and "width=device-width" in viewport.get("content", "")


def _extract_prefixed_meta(soup, attribute: str, prefix: str) -> dict:
    tags = {}
    for meta in soup.find_all("meta"):
        key = meta.get(attribute) or ""
        if key.startswith(prefix) and meta.get("content"):
            tags[key[len(prefix):]] = meta["content"].strip()
    return tags


def _extract_headings(soup, tag: str) -> List[str]:
    return [h.get_text(" ", strip=True) for h in soup.find_all(tag)]


def _extract_links(soup, base_url: str) -> Tuple[List[str], List[str]]:
    """Internal and external links, deduplicated in document order"""
    internal_links = []
    external_links = []
    seen = set()

    for link in soup.find_all("a", href=True):
        href = link["href"].strip()
        if not href or href.lower().startswith(NON_NAVIGABLE_PREFIXES):
            continue
        try:
            absolute = normalize(href, base=base_url)
        except ValueError:
            continue
        if absolute in seen:
            continue
        seen.add(absolute)

        if same_site(absolute, base_url):
            internal_links.append(absolute)
        else:
            external_links.append(absolute)

    return internal_links, external_links


def _extract_images(soup) -> List[dict]:
    return [
        {
            "src": img.get("src", ""),
            "alt": img.get("alt", ""),
            "title": img.get("title", ""),
            "loading": img.get("loading", ""),
        }
        for img in soup.find_all("img")
    ]


def _extract_schema_blocks(soup) -> list:
    """Parsed JSON-LD blocks; unparsable blocks are skipped"""
    blocks = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("Skipping invalid JSON-LD block")
            continue
        if isinstance(data, list):
            blocks.extend(item for item in data if isinstance(item, dict))
        elif isinstance(data, dict):
            blocks.append(data)
    return blocks


def _is_cta_link(link) -> bool:
    classes = " ".join(link.get("class") or []).lower()
    role = (link.get("role") or "").lower()
    return role == "button" or any(hint in classes for hint in CTA_CLASS_HINTS)


def _extract_cta_texts(soup) -> List[str]:
    texts = []
    for button in soup.find_all("button"):
        texts.append(button.get_text(" ", strip=True))
    for submit in soup.find_all("input", attrs={"type": ["submit", "button"]}):
        texts.append((submit.get("value") or "").strip())
    for link in soup.find_all("a"):
        if _is_cta_link(link):
            texts.append(link.get_text(" ", strip=True))

    unique = []
    for text in texts:
        if text and text not in unique:
            unique.append(text)
    return unique


def _extract_clean_text(soup) -> str:
    """Visible text with scripts and styles removed"""
    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()

    body = soup.find("body") or soup
    text = body.get_text(" ")

    lines = (line.strip() for line in text.splitlines())
    chunks = (phrase.strip() for line in lines for phrase in line.split("  "))
    return " ".join(chunk for chunk in chunks if chunk)

