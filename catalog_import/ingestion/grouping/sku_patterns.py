"""
SKU Pattern Extraction
Derives a parent key from a variant SKU using known catalog SKU layouts.
"""

import re
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

# Checked in priority order; the first match wins
SKU_PATTERNS: List[Tuple[str, "re.Pattern"]] = [
    ("numeric_pair", re.compile(r"^(\d{3})-\d{3}$")),  # 045-001 -> 045
    ("letters_digits", re.compile(r"^([A-Z]+)[A-Z]*(\d+)$")),  # MTMSAV225 -> MTMSAV
    ("digits_letters_suffix", re.compile(r"^\d+([A-Z]+-.+)$")),  # 45120RWST-White -> RWST-White
    ("digits_letters", re.compile(r"^\d+([A-Z]+)$")),  # 45120RWST -> RWST
]


def match_sku_pattern(sku: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Match a SKU against the known layouts.

    Returns:
        (pattern name, parent key) or None when no layout matches
    """
    if not sku:
        return None

    for name, pattern in SKU_PATTERNS:
        match = pattern.match(sku)
        if match:
            return name, match.group(1)
    return None


def extract_parent_key(sku: Optional[str]) -> Optional[str]:
    matched = match_sku_pattern(sku)
    return matched[1] if matched else None


def shared_parent_sku(skus: Iterable[Optional[str]]) -> Optional[str]:
    """Parent SKU only when every SKU resolves to the same key."""
    keys = set()
    for sku in skus:
        if not sku:
            continue
        key = extract_parent_key(sku)
        if key is None:
            return None
        keys.add(key)
    return keys.pop() if len(keys) == 1 else None


class SkuPatternAnalyzer:
    """Summarizes how well a SKU column fits the known layouts."""

    @staticmethod
    def analyze(skus: Iterable[Optional[str]]) -> Dict:
        """
        Pattern coverage report for a set of SKUs.

        Returns:
            Dict with total, matched, coverage, per-pattern counts, group
            count, complexity and a 0-1 confidence
        """
        values = [s for s in skus if s]
        if not values:
            return {
                "total": 0, "matched": 0, "coverage": 0.0, "patterns": {},
                "groups": 0, "complexity": "none", "confidence": 0.0,
            }

        pattern_counts: Counter = Counter()
        groups: Dict[str, List[str]] = defaultdict(list)
        for sku in values:
            matched = match_sku_pattern(sku)
            if matched:
                pattern_counts[matched[0]] += 1
                groups[matched[1]].append(sku)

        matched_total = sum(pattern_counts.values())
        coverage = matched_total / len(values)
        variety = len(groups) / len(values)
        confidence = min(1.0, coverage * 0.7 + variety * 0.3) if groups else 0.0

        if not groups:
            complexity = "none"
        elif len(groups) == 1:
            complexity = "simple"
        elif len(groups) <= 3:
            complexity = "moderate"
        else:
            complexity = "complex"

        return {
            "total": len(values),
            "matched": matched_total,
            "coverage": round(coverage, 4),
            "patterns": dict(pattern_counts),
            "groups": len(groups),
            "complexity": complexity,
            "confidence": round(confidence, 4),
        }
