"""
Near-duplicate content detection with shingle MinHash fingerprints
"""
import hashlib
import logging
import re
from typing import Dict, Iterable, List, NamedTuple, Optional

from bs4 import BeautifulSoup, Comment

from config import DEFAULT_SIMILARITY_THRESHOLD

logger = logging.getLogger(__name__)

NUM_SLOTS = 128
SHINGLE_SIZE = 3
SLOT_HEX_WIDTH = 16

_PRIME = (1 << 61) - 1
_MAX_HASH = _PRIME - 1


def _stable_hash(value: str, salt: bytes = b"") -> int:
    digest = hashlib.blake2b(value.encode("utf-8"), digest_size=8, key=salt).digest()
    return int.from_bytes(digest, "big")


def _slot_params() -> List[tuple]:
    params = []
    for slot in range(NUM_SLOTS):
        a = _stable_hash(f"a{slot}", b"minhash") % _MAX_HASH + 1
        b = _stable_hash(f"b{slot}", b"minhash") % _MAX_HASH
        params.append((a, b))
    return params


_SLOT_PARAMS = _slot_params()


def strip_markup(content: str) -> str:
    """Visible text of an HTML document, whitespace-collapsed and lower-cased"""
    soup = BeautifulSoup(content or "", "html.parser")
    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    return " ".join(soup.get_text(" ").split()).lower()


def mask_numbers(text: str) -> str:
    """Replace standalone numbers so paginated copies of a page share shingles"""
    return re.sub(r"\b\d+\b", "0", text)


def shingles(text: str, size: int = SHINGLE_SIZE) -> set:
    words = re.findall(r"\w+", text)
    if not words:
        return set()
    if len(words) < size:
        return {" ".join(words)}
    return {" ".join(words[i:i + size]) for i in range(len(words) - size + 1)}


def content_hash(content: str) -> str:
    """
    MinHash fingerprint of the visible text of content.

    Returns NUM_SLOTS fixed-width hex slots concatenated. Equal slot share
    between two fingerprints estimates the Jaccard similarity of their
    3-word shingle sets. Numbers are masked before shingling, so pages that
    differ only in a page counter or date fingerprint alike.
    """
    shingle_set = shingles(mask_numbers(strip_markup(content)))
    signature = [_MAX_HASH] * NUM_SLOTS

    for shingle in shingle_set:
        base = _stable_hash(shingle)
        for slot, (a, b) in enumerate(_SLOT_PARAMS):
            value = (a * base + b) % _PRIME
            if value < signature[slot]:
                signature[slot] = value

    return "".join(f"{value:0{SLOT_HEX_WIDTH}x}" for value in signature)


def _split_slots(fingerprint: str) -> List[str]:
    return [fingerprint[i:i + SLOT_HEX_WIDTH] for i in range(0, len(fingerprint), SLOT_HEX_WIDTH)]


def similarity(hash1: str, hash2: str) -> float:
    """Share of equal MinHash slots, in [0, 1]"""
    if not hash1 or not hash2:
        return 0.0
    if hash1 == hash2:
        return 1.0
    if len(hash1) != len(hash2):
        return 0.0

    slots1 = _split_slots(hash1)
    slots2 = _split_slots(hash2)
    matches = sum(1 for s1, s2 in zip(slots1, slots2) if s1 == s2)
    return matches / len(slots1)


def is_duplicate(new_hash: str, existing_hashes: Iterable[str],
                 threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    """True when any existing fingerprint is more similar than threshold"""
    return any(similarity(new_hash, existing) > threshold for existing in existing_hashes)


class SimilarityMatch(NamedTuple):
    is_duplicate: bool
    similar_url: Optional[str] = None
    similarity: float = 0.0


class ContentDeduplicator:
    """Fingerprints seen during one crawl, mapped to the URL that produced them"""

    def __init__(self, threshold: float = DEFAULT_SIMILARITY_THRESHOLD):
        self.threshold = threshold
        self.hashes: Dict[str, str] = {}

    def check(self, url: str, fingerprint: str) -> SimilarityMatch:
        """Compare against every recorded fingerprint; record it when unique"""
        if fingerprint in self.hashes:
            return SimilarityMatch(True, self.hashes[fingerprint], 1.0)

        for existing, existing_url in self.hashes.items():
            if existing_url == url:
                continue
            score = similarity(fingerprint, existing)
            if score > self.threshold:
                logger.debug(f"{url} is {score:.0%} similar to {existing_url}")
                return SimilarityMatch(True, existing_url, score)

        self.hashes[fingerprint] = url
        return SimilarityMatch(False)

    def __len__(self) -> int:
        return len(self.hashes)
