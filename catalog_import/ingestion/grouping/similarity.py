"""
Product Name Similarity
Decides whether two product names describe variants of the same product.
"""

import re
from typing import Set

from rapidfuzz import fuzz

COLOR_PATTERN = re.compile(
    r"\b(red|blue|green|yellow|black|white|grey|gray|brown|pink|purple|orange|silver|gold)\b",
    re.IGNORECASE,
)
SIZE_PATTERN = re.compile(
    r"\b(xs|sm|small|md|medium|lg|large|xl|xxl|xxxl|\d+cm|\d+mm|\d+inch|\d+\")(?=\s|$|\W)",
    re.IGNORECASE,
)
MEASUREMENT_PATTERN = re.compile(
    r"\d+(?:\.\d+)?\s*(?:ml|l|kg|g|oz|lb|cl|dl|cm|mm|inch|ft|m)\b", re.IGNORECASE
)
PACK_PATTERN = re.compile(r"\b(pack|set|piece|unit|pcs)\b", re.IGNORECASE)
DESCRIPTOR_PATTERN = re.compile(
    r"\b(mini|small|medium|large|extra|super|king|queen|single|double)\b", re.IGNORECASE
)
CONSERVATIVE_DESCRIPTOR_PATTERN = re.compile(
    r"\b(mini|extra|super|king|queen|single|double)\b", re.IGNORECASE
)

VARIANT_PATTERNS = [COLOR_PATTERN, SIZE_PATTERN, MEASUREMENT_PATTERN, PACK_PATTERN, DESCRIPTOR_PATTERN]
# Used for SKU groups, where color is usually part of the product identity
CONSERVATIVE_PATTERNS = [SIZE_PATTERN, MEASUREMENT_PATTERN, PACK_PATTERN, CONSERVATIVE_DESCRIPTOR_PATTERN]

VARIANT_WORDS: Set[str] = {
    "red", "blue", "green", "yellow", "black", "white", "grey", "gray", "brown",
    "pink", "purple", "orange", "silver", "gold", "small", "medium", "large",
    "xs", "sm", "md", "lg", "xl", "xxl", "mini", "pack", "set", "piece", "unit",
}

WORD_SIMILARITY_THRESHOLD = 0.7
STRING_SIMILARITY_THRESHOLD = 0.8
COMBINED_WORD_THRESHOLD = 0.5


def normalize_for_comparison(text: str) -> str:
    return re.sub(r"[^\w\s]", "", text).strip().lower()


def _strip(name: str, patterns) -> str:
    cleaned = name
    for pattern in patterns:
        cleaned = pattern.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned.strip())


def remove_variant_info(name: str) -> str:
    """Drop colors, sizes, measurements and pack descriptors."""
    return _strip(name, VARIANT_PATTERNS)


def remove_variant_info_conservative(name: str) -> str:
    """Drop sizes, measurements and pack descriptors, keep colors."""
    return _strip(name, CONSERVATIVE_PATTERNS)


def is_variant_word(word: str) -> bool:
    return word.lower() in VARIANT_WORDS


def word_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the word sets."""
    words1 = {w for w in text1.split(" ") if w}
    words2 = {w for w in text2.split(" ") if w}
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def string_similarity(text1: str, text2: str) -> float:
    """Character-level similarity in [0, 1]."""
    return fuzz.ratio(text1, text2) / 100


def are_products_similar(name1: str, name2: str) -> bool:
    """
    Same product family test.

    Exact match, or identical bases once variant tokens are removed, or word
    overlap >= 0.7, or character similarity >= 0.8 with word overlap >= 0.5.
    """
    if name1 == name2:
        return True

    normalized1 = normalize_for_comparison(name1)
    normalized2 = normalize_for_comparison(name2)

    base1 = remove_variant_info(normalized1)
    base2 = remove_variant_info(normalized2)
    if base1 == base2 and len(base1) > 3:
        return True

    words = word_similarity(normalized1, normalized2)
    if words >= WORD_SIMILARITY_THRESHOLD:
        return True
    return words >= COMBINED_WORD_THRESHOLD and string_similarity(normalized1, normalized2) >= STRING_SIMILARITY_THRESHOLD


class NameProfile:
    """Precomputed comparison forms of one name, for pairwise passes over many rows."""

    __slots__ = ("name", "normalized", "base", "words")

    def __init__(self, name: str):
        self.name = name
        self.normalized = normalize_for_comparison(name)
        self.base = remove_variant_info(self.normalized)
        self.words = {w for w in self.normalized.split(" ") if w}

    def similar_to(self, other: "NameProfile") -> bool:
        if self.name == other.name:
            return True
        if self.base == other.base and len(self.base) > 3:
            return True
        if not self.words or not other.words:
            return False

        words = len(self.words & other.words) / len(self.words | other.words)
        if words >= WORD_SIMILARITY_THRESHOLD:
            return True
        return (
            words >= COMBINED_WORD_THRESHOLD
            and string_similarity(self.normalized, other.normalized) >= STRING_SIMILARITY_THRESHOLD
        )
