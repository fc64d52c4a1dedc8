"""
Parent Grouping
Clusters variant rows under inferred parents, SKU layout first and name
similarity second, and derives each parent's name and SKU.
"""

import hashlib
import logging
from collections import Counter, OrderedDict
from typing import Dict, List, Optional, Sequence

from catalog_import.ingestion.grouping.similarity import (
    NameProfile,
    is_variant_word,
    remove_variant_info,
    remove_variant_info_conservative,
)
from catalog_import.ingestion.grouping.sku_patterns import extract_parent_key, shared_parent_sku
from catalog_import.models.imports import ParentGroup
from catalog_import.models.rows import TransformedRow

logger = logging.getLogger(__name__)

FALLBACK_PARENT_NAME = "Product Group"


def longest_common_substring(first: str, second: str) -> str:
    """Case-insensitive longest common substring, returned with first's casing."""
    a, b = first.lower(), second.lower()
    best_len, best_end = 0, 0
    previous = [0] * (len(b) + 1)
    for i in range(1, len(a) + 1):
        current = [0] * (len(b) + 1)
        for j in range(1, len(b) + 1):
            if a[i - 1] == b[j - 1]:
                current[j] = previous[j - 1] + 1
                if current[j] > best_len:
                    best_len, best_end = current[j], i
        previous = current
    return first[best_end - best_len : best_end].strip()


def common_words(names: Sequence[str]) -> str:
    """Words present in every name, in first-name order and casing."""
    word_sets = [set(name.lower().strip().split(" ")) for name in names[1:]]
    seen = set()
    result = []
    for word in names[0].strip().split(" "):
        key = word.lower()
        if key and key not in seen and all(key in s for s in word_sets):
            seen.add(key)
            result.append(word)
    return " ".join(result)


def common_name_candidate(names: Sequence[str], strip) -> str:
    """
    Shared-words name, falling back to the longest common substring and then
    to the first three words of the first name.
    """
    if not names:
        return FALLBACK_PARENT_NAME
    if len(names) == 1:
        return strip(names[0])

    shared = common_words(names)
    if len(shared) > 3:
        return shared.strip()

    prefix = names[0]
    for name in names[1:]:
        prefix = longest_common_substring(prefix, name)

    if len(prefix) < 3:
        prefix = " ".join(names[0].split(" ")[:3])

    return strip(prefix)


def frequent_words_name(names: Sequence[str], limit: int = 3) -> str:
    """Most frequent non-variant words, cased as in the first name."""
    frequency: Counter = Counter()
    for name in names:
        for word in name.lower().split(" "):
            if len(word) > 2 and not is_variant_word(word):
                frequency[word] += 1

    top = [word for word, _ in frequency.most_common(limit)]
    originals = {w.lower(): w for w in names[0].split(" ")} if names else {}
    return " ".join(originals[w] for w in top if w in originals)


def derive_parent_name(names: Sequence[str], conservative: bool = False) -> str:
    """
    Parent name for a group of variant names.

    SKU groups use the conservative cleanup, which keeps colors.
    """
    names = [n for n in names if n]
    if not names:
        return FALLBACK_PARENT_NAME

    if conservative:
        cleaned = common_name_candidate(names, remove_variant_info_conservative)
    else:
        cleaned = remove_variant_info(common_name_candidate(names, remove_variant_info))
        if len(cleaned) < 3:
            cleaned = frequent_words_name(names)

    cleaned = cleaned.strip()
    return cleaned or names[0] or FALLBACK_PARENT_NAME


def name_group_key(parent_name: str) -> str:
    return "name:" + hashlib.md5(parent_name.lower().encode("utf-8")).hexdigest()


class ParentGrouper:
    """
    Two-pass grouping over the whole row set.

    Pass 1 groups rows whose SKU matches a known layout. Pass 2 groups the
    remainder greedily by name similarity against each group's first row.
    The resulting row_index map (row position -> group key) is what the
    materialization phase resolves against.
    """

    def __init__(self):
        self.groups: "OrderedDict[str, ParentGroup]" = OrderedDict()
        self.row_index: Dict[int, str] = {}

    def group(self, rows: Sequence[TransformedRow]) -> List[ParentGroup]:
        """
        Assign every groupable row to exactly one ParentGroup.

        Rows with neither a matching SKU nor a product name stay ungrouped.

        Args:
            rows: Transformed variant rows in file order

        Returns:
            Groups in creation order
        """
        self.groups = OrderedDict()
        self.row_index = {}

        sku_members: "OrderedDict[str, List[int]]" = OrderedDict()
        for index, row in enumerate(rows):
            key = extract_parent_key(row.get("variant_sku"))
            if key is not None:
                sku_members.setdefault(key, []).append(index)

        for parent_key, members in sku_members.items():
            self._add_group(f"sku:{parent_key}", members, rows, method="sku_pattern")

        remaining = [i for i in range(len(rows)) if i not in self.row_index and rows[i].get("product_name")]
        profiles = {i: NameProfile(rows[i].get("product_name")) for i in remaining}
        unassigned = list(remaining)

        while unassigned:
            seed = unassigned.pop(0)
            members = [seed]
            rest = []
            for candidate in unassigned:
                if profiles[seed].similar_to(profiles[candidate]):
                    members.append(candidate)
                else:
                    rest.append(candidate)
            unassigned = rest

            names = [rows[i].get("product_name") for i in members]
            self._add_group(name_group_key(derive_parent_name(names)), members, rows, method="name")

        sku_groups = sum(1 for g in self.groups.values() if g.method == "sku_pattern")
        logger.info(
            f"Grouped {len(self.row_index)}/{len(rows)} rows into {len(self.groups)} parents "
            f"({sku_groups} by SKU pattern)"
        )
        return list(self.groups.values())

    def resolve(self, row_position: int) -> Optional[str]:
        return self.row_index.get(row_position)

    def _add_group(self, key: str, members: List[int], rows: Sequence[TransformedRow], method: str) -> None:
        unique_key = key
        suffix = 2
        while unique_key in self.groups:
            unique_key = f"{key}#{suffix}"
            suffix += 1

        member_rows = [rows[i] for i in members]
        names = [r.get("product_name") or "" for r in member_rows]
        parent_name = derive_parent_name(names, conservative=(method == "sku_pattern"))
        first = member_rows[0]

        attributes = {
            "name": parent_name,
            "parent_sku": shared_parent_sku(r.get("variant_sku") for r in member_rows),
            "description": first.get("description") or f"Parent product for {parent_name}",
        }

        self.groups[unique_key] = ParentGroup(
            group_key=unique_key,
            member_row_indices=list(members),
            inferred_parent_attributes=attributes,
            method=method,
        )
        for i in members:
            self.row_index[i] = unique_key

        logger.debug(f"Group {unique_key}: '{parent_name}' with {len(members)} row(s)")


def group_rows(rows: Sequence[TransformedRow]) -> List[ParentGroup]:
    return ParentGrouper().group(rows)
