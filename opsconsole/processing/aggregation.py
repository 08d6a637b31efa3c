"""Free-text survey answers bucketed into categories and counted.

Answers are matched against a per-field keyword catalog: each category has
phrases worth 3 points and single tokens worth 1 point, and the
highest-scoring category wins (ties go to the catalog order). Answers no
catalog entry matches are labelled by the most frequent phrase or word they
share with the other unmatched answers.

Operators can merge categories into named groups. Grouping dictionaries are
kept in the local store per field.
"""
from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from opsconsole.core.models import CategoryCount
from opsconsole.core.store import GROUPS_PREFIX, LocalStore
from opsconsole.core.utils import normalize_key
from opsconsole.processing.filters import to_ymd

logger = logging.getLogger(__name__)

PHRASE_SCORE = 3
TOKEN_SCORE = 1
NOT_SPECIFIED = "Not specified"
OTHER = "Other"

Catalog = Sequence[Tuple[str, Sequence[str], Sequence[str]]]

TASTE = ("Taste / Flavor", ["good taste", "great taste", "great flavor", "great flavour", "tastes good"],
         ["taste", "tasty", "flavor", "flavour", "delicious", "yummy"])
CONVENIENCE = ("Convenience / Easy to prepare", ["easy to prepare", "easy to make", "quick to make", "ready in minutes"],
               ["easy", "quick", "convenient", "instant", "simple"])
HEALTH = ("Health / Nutrition", ["good for health", "high protein", "weight loss", "weight gain"],
          ["health", "healthy", "nutrition", "nutritious", "protein", "fiber", "fibre", "energy", "diabetic"])
NATURAL = ("Natural ingredients", ["no sugar", "no preservatives", "natural ingredients", "no chemicals"],
           ["natural", "millet", "millets", "organic", "ingredients", "homemade", "traditional"])
FAMILY = ("Kids / Family", ["for my kids", "for my family"],
          ["kids", "children", "child", "family", "baby", "parents", "mother"])
PRICE = ("Price / Value", ["value for money", "good offer"],
         ["price", "value", "affordable", "cheap", "worth", "offer", "discount"])
QUALITY = ("Quality / Packaging", ["good quality"], ["quality", "packaging", "fresh", "freshness"])

LIKED_FEATURES: Catalog = (TASTE, CONVENIENCE, HEALTH, NATURAL, FAMILY, PRICE, QUALITY)

HEARD_FROM: Catalog = (
    ("Instagram", [], ["instagram", "insta", "reels", "reel"]),
    ("Facebook", [], ["facebook", "fb"]),
    ("YouTube", [], ["youtube", "yt"]),
    ("WhatsApp", [], ["whatsapp"]),
    ("Google / Website", ["google search"], ["google", "website", "search", "online"]),
    ("Marketplace", [], ["amazon", "flipkart", "meesho"]),
    ("Friends / Family", ["word of mouth"], ["friend", "friends", "family", "relative", "relatives", "neighbour", "colleague"]),
    ("Ads", [], ["ad", "ads", "advertisement", "advert"]),
)

PURCHASE_REASONS: Catalog = (
    HEALTH,
    TASTE,
    FAMILY,
    ("Recommendation", ["recommended by", "suggested by"], ["recommended", "recommend", "suggested", "doctor", "review", "reviews"]),
    ("Trial / Curiosity", ["wanted to try", "just to try"], ["try", "trying", "trial", "curious", "curiosity"]),
    ("Results / Satisfaction", ["saw results", "liked it"], ["results", "satisfied", "improvement", "better", "works"]),
    PRICE,
    CONVENIENCE,
)

KEYWORD_CATALOGS: Dict[str, Catalog] = {
    "liked_features": LIKED_FEATURES,
    "heard_from": HEARD_FROM,
    "first_time_reason": PURCHASE_REASONS,
    "reorder_reason": PURCHASE_REASONS,
    "new_product_expectation": LIKED_FEATURES,
}

STOPWORDS = frozenset(
    "a an and are as at be but by for from had has have i in is it its me my of on or our so that the "
    "their them they this to was we were with very you your just also more much not no yes it's".split()
)

_WORD = re.compile(r"[a-z0-9']+")


def _words(text: str) -> List[str]:
    return _WORD.findall(text.lower())


def field_value(record: Mapping[str, Any], field: str) -> Any:
    """Read ``field`` regardless of snake_case, camelCase or Title Case naming."""

    if field in record:
        return record[field]
    wanted = normalize_key(field)
    for key, value in record.items():
        if normalize_key(key) == wanted:
            return value
    return None


def has_field(records: Iterable[Mapping[str, Any]], field: str) -> bool:
    wanted = normalize_key(field)
    return any(normalize_key(key) == wanted for record in records for key in record)


def catalog_for(field: str) -> Catalog:
    for name, catalog in KEYWORD_CATALOGS.items():
        if normalize_key(name) == normalize_key(field):
            return catalog
    return ()


def classify_text(text: str, catalog: Catalog) -> Optional[str]:
    """Best-scoring catalog label for ``text``, or ``None`` when nothing matches."""

    words = _words(text)
    if not words:
        return None
    joined = " ".join(words)
    tokens = set(words)
    best_label, best_score = None, 0
    for label, phrases, keywords in catalog:
        score = sum(PHRASE_SCORE for phrase in phrases if phrase in joined)
        score += sum(TOKEN_SCORE for keyword in keywords if keyword in tokens)
        if score > best_score:
            best_label, best_score = label, score
    return best_label


def _content_words(text: str) -> List[str]:
    return [w for w in _words(text) if w not in STOPWORDS and len(w) > 2 and not w.isdigit()]


def _bigrams(words: Sequence[str]) -> List[str]:
    return [f"{a} {b}" for a, b in zip(words, words[1:])]


def dynamic_labels(texts: Sequence[str]) -> List[str]:
    """Label texts by the most frequent phrase, then word, they share with others.

    A phrase or word must occur in at least two texts to become a label;
    texts sharing nothing are labelled ``Other``.
    """

    words_per_text = [_content_words(text) for text in texts]
    phrase_counts: Counter = Counter()
    word_counts: Counter = Counter()
    for words in words_per_text:
        phrase_counts.update(set(_bigrams(words)))
        word_counts.update(set(words))

    def _best(candidates: Iterable[str], counts: Counter) -> Optional[str]:
        ranked = sorted((c for c in set(candidates) if counts[c] >= 2), key=lambda c: (-counts[c], c))
        return ranked[0] if ranked else None

    labels = []
    for words in words_per_text:
        label = _best(_bigrams(words), phrase_counts) or _best(words, word_counts)
        labels.append(label.title() if label else OTHER)
    return labels


def categorize(records: Sequence[Mapping[str, Any]], field: str, catalog: Optional[Catalog] = None) -> List[str]:
    """One category label per record, in input order."""

    catalog = catalog if catalog is not None else catalog_for(field)
    labels: List[Optional[str]] = []
    unmatched: List[int] = []
    for index, record in enumerate(records):
        text = str(field_value(record, field) or "").strip()
        if not text:
            labels.append(NOT_SPECIFIED)
            continue
        label = classify_text(text, catalog)
        if label is None:
            unmatched.append(index)
        labels.append(label)

    if unmatched:
        texts = [str(field_value(records[i], field)) for i in unmatched]
        for index, label in zip(unmatched, dynamic_labels(texts)):
            labels[index] = label
    return [label or OTHER for label in labels]


def filter_by_date(
    records: Iterable[Mapping[str, Any]],
    start_date: Any = None,
    end_date: Any = None,
    date_field: str = "created_at",
) -> List[Mapping[str, Any]]:
    """Keep records whose ``YYYY-MM-DD`` prefix lies within the inclusive range.

    Undated records are dropped while any bound is set.
    """

    start = to_ymd(start_date) if start_date else ""
    end = to_ymd(end_date) if end_date else ""
    if not start and not end:
        return list(records)
    kept = []
    for record in records:
        day = to_ymd(field_value(record, date_field))
        if not day:
            continue
        if start and day < start:
            continue
        if end and day > end:
            continue
        kept.append(record)
    return kept


def _count_table(labels: Iterable[str]) -> List[CategoryCount]:
    counts = Counter(labels)
    total = sum(counts.values())
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        CategoryCount(label=label, count=count, percentage=round(100.0 * count / total, 1) if total else 0.0)
        for label, count in ordered
    ]


def resolve_group(label: str, groups: Mapping[str, str]) -> str:
    if label in set(groups.values()):
        return label
    return groups.get(label, label)


def apply_groups(counts: Iterable[CategoryCount], groups: Optional[Mapping[str, str]]) -> List[CategoryCount]:
    """Re-bucket a frequency table through a ``{category: group}`` mapping.

    Group names are never remapped, so applying the same mapping twice gives
    the same table as applying it once.
    """

    counts = list(counts)
    if not groups:
        return counts
    merged: Counter = Counter()
    for row in counts:
        merged[resolve_group(row.label, groups)] += row.count
    return _count_table(merged.elements())


def frequency_table(
    records: Sequence[Mapping[str, Any]],
    field: str,
    start_date: Any = None,
    end_date: Any = None,
    date_field: str = "created_at",
    groups: Optional[Mapping[str, str]] = None,
    catalog: Optional[Catalog] = None,
) -> List[CategoryCount]:
    """Count categories of ``field`` over the records in the date range.

    Counts add up to the number of records in range and percentages are
    rounded to one decimal. A field that no record carries yields ``[]``.
    """

    if not has_field(records, field):
        logger.info("Field %s not present in %d records", field, len(records))
        return []
    in_range = filter_by_date(records, start_date, end_date, date_field)
    table = _count_table(categorize(in_range, field, catalog))
    return apply_groups(table, groups)


def drill_down(
    records: Sequence[Mapping[str, Any]],
    field: str,
    label: str,
    groups: Optional[Mapping[str, str]] = None,
    catalog: Optional[Catalog] = None,
) -> List[Mapping[str, Any]]:
    """Records behind one row of the frequency table."""

    labels = categorize(records, field, catalog)
    groups = groups or {}
    return [record for record, own in zip(records, labels) if resolve_group(own, groups) == label]


def paginate(rows: Sequence[Any], page: int, page_size: int) -> Tuple[List[Any], int]:
    """Slice ``rows`` for a 1-based page, clamping the page into range."""

    if page_size <= 0:
        raise ValueError("page_size must be positive")
    total_pages = max(1, math.ceil(len(rows) / page_size))
    page = min(max(1, page), total_pages)
    start = (page - 1) * page_size
    return list(rows[start:start + page_size]), total_pages


def load_groups(store: LocalStore, field: str) -> Dict[str, str]:
    groups = store.get_json(GROUPS_PREFIX + field, {})
    return {str(k): str(v) for k, v in groups.items()} if isinstance(groups, dict) else {}


def save_groups(store: LocalStore, field: str, groups: Mapping[str, str]) -> None:
    store.set_json(GROUPS_PREFIX + field, dict(groups))


def merge_categories(groups: Mapping[str, str], categories: Iterable[str], group_name: str) -> Dict[str, str]:
    """Return a new mapping with ``categories`` merged under ``group_name``.

    Selecting an existing group moves all of its members to the new group.
    """

    group_name = group_name.strip()
    if not group_name:
        raise ValueError("Group name is required")
    merged = dict(groups)
    existing_groups = set(merged.values())
    for category in categories:
        if category in existing_groups:
            for member, owner in list(merged.items()):
                if owner == category:
                    merged[member] = group_name
        elif category != group_name:
            merged[category] = group_name
    merged.pop(group_name, None)
    return merged


def remove_group(groups: Mapping[str, str], group_name: str) -> Dict[str, str]:
    return {member: owner for member, owner in groups.items() if owner != group_name}
