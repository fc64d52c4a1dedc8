"""
Attribute Extractor
Pulls width, drop and color out of free-text product names.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from catalog_import.config.settings import ImportSettings, get_settings

logger = logging.getLogger(__name__)

UNIT = r"(cm|mm|in|ft|\"|')"

# (name, pattern, score); the best-scoring match wins
DIMENSION_PATTERNS: List[Tuple[str, "re.Pattern", int]] = [
    ("width_x_drop_with_units", re.compile(r"(\d+(?:\.\d+)?)\s*cm\s*[×xX]\s*(\d+(?:\.\d+)?)\s*cm", re.IGNORECASE), 100),
    ("labeled", re.compile(r"\b(width|drop|height|depth)\s*:?\s*(\d+(?:\.\d+)?)\s*" + UNIT + "?", re.IGNORECASE), 95),
    ("width_x_drop", re.compile(r"(\d+(?:\.\d+)?)\s*[×xX]\s*(\d+(?:\.\d+)?)", re.IGNORECASE), 90),
    ("single_with_unit", re.compile(r"(\d+(?:\.\d+)?)\s*" + UNIT + r"(?=\W|$)", re.IGNORECASE), 70),
]

COLOR_SCORES: Dict[str, int] = {
    # Primary
    "white": 100, "black": 100, "red": 100, "blue": 100, "green": 100, "yellow": 100,
    "brown": 100, "grey": 100, "gray": 100, "silver": 100, "gold": 100, "purple": 100,
    "pink": 100, "orange": 100,
    # Secondary
    "beige": 80, "cream": 80, "ivory": 80, "navy": 80, "teal": 80, "maroon": 80,
    "olive": 80, "lime": 80, "cyan": 80, "magenta": 80,
    # Compound
    "dark blue": 85, "light blue": 85, "dark green": 85, "light green": 85,
    "dark grey": 85, "light grey": 85, "dark gray": 85, "light gray": 85,
    "burnt orange": 85, "royal blue": 85, "forest green": 85,
    # Specific shades
    "aubergine": 70, "cappuccino": 70, "burgundy": 70, "charcoal": 70,
    "bronze": 70, "copper": 70, "pearl": 70, "champagne": 70,
}
COMPOUND_BONUS = 25
MIN_COLOR_SCORE = 50

MATERIAL_TERMS = {
    "aluminium", "aluminum", "wood", "wooden", "metal", "plastic", "vinyl", "pvc",
    "steel", "bamboo", "fabric", "cotton", "polyester", "linen", "silk", "leather",
    "glass", "acrylic", "faux", "grain", "natural", "composite", "synthetic",
    "artificial", "imitation", "stone", "marble", "granite", "ceramic", "porcelain",
}


def normalize_number(number: str) -> str:
    """Drop leading zeros, keep the decimal part."""
    return re.sub(r"^0+(?=\d)", "", number)


class AttributeExtractor:
    """
    Width/drop/color extraction from product names.

    A lone measurement is ambiguous. It is classified as drop when its value is
    at least settings.drop_threshold_cm and as width otherwise.
    """

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or get_settings()

    @property
    def drop_threshold(self) -> float:
        return self.settings.drop_threshold_cm

    def extract(self, name: Optional[str]) -> Dict[str, Optional[str]]:
        """
        Extract attributes from a product name.

        Returns:
            Dict with width, drop and color keys (None when not found)
        """
        result: Dict[str, Optional[str]] = {"width": None, "drop": None, "color": None}
        if not name:
            return result

        result.update(self.extract_dimensions(name))
        result["color"] = self.extract_color(name)
        return result

    def extract_dimensions(self, text: str) -> Dict[str, str]:
        best: Dict[str, str] = {}
        best_score = 0

        for pattern_name, pattern, score in DIMENSION_PATTERNS:
            match = pattern.search(text)
            if not match or score <= best_score:
                continue
            extracted = self._dimensions_from_match(pattern_name, match)
            if extracted:
                best, best_score = extracted, score

        return best

    def _dimensions_from_match(self, pattern_name: str, match: "re.Match") -> Dict[str, str]:
        if pattern_name in ("width_x_drop_with_units", "width_x_drop"):
            return {
                "width": normalize_number(match.group(1)) + "cm",
                "drop": normalize_number(match.group(2)) + "cm",
            }

        if pattern_name == "labeled":
            label = match.group(1).lower()
            value = normalize_number(match.group(2)) + (match.group(3) or "cm")
            return {"width": value} if label == "width" else {"drop": value}

        number = float(match.group(1))
        value = normalize_number(match.group(1)) + match.group(2)
        # Single-value heuristic, threshold is configurable
        if number >= self.drop_threshold:
            return {"drop": value}
        return {"width": value}

    def extract_color(self, text: str) -> Optional[str]:
        tokens = text.split()
        candidates: List[Tuple[int, str]] = []
        compound_words = set()

        for i in range(len(tokens) - 1):
            pair = f"{tokens[i]} {tokens[i + 1]}".lower()
            if pair in COLOR_SCORES:
                candidates.append((COLOR_SCORES[pair] + COMPOUND_BONUS, pair.title()))
                compound_words.update(pair.split(" "))

        for index, token in enumerate(tokens):
            word = token.lower()
            if word in MATERIAL_TERMS or word in compound_words or word not in COLOR_SCORES:
                continue

            score = COLOR_SCORES[word]
            if index <= 1:
                score += 5
            if index >= len(tokens) - 2:
                score += 8
            candidates.append((score, token.title()))

        if not candidates:
            return None

        score, color = max(candidates, key=lambda c: c[0])
        if score < MIN_COLOR_SCORE:
            return None

        logger.debug(f"Color '{color}' extracted from '{text}' (score {score})")
        return color
