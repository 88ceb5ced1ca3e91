"""Keyword and hashtag tables used by the rule evaluators.

The tables are data: they can be replaced wholesale from a JSON file
(KEYWORD_TABLES_PATH) without touching evaluator code. Keyword entries
match whole words; an entry ending in ``*`` matches any word that starts
with it (``resp*`` matches "respiratory").
"""

import json
import logging
import re
from dataclasses import dataclass, field, fields
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

RESPIRATORY = "Respiratory"
GI = "GI"

# Trailing punctuation stripped from a whitespace token before tag lookup
TRAILING_PUNCTUATION = ".,!?;:"


@dataclass(frozen=True)
class KeywordTables:
    """All string-matching vocabularies the rules depend on."""

    respiratory: tuple[str, ...] = (
        "pneumonia", "uri", "bronchitis", "covid", "influenza", "rsv", "resp*",
    )
    gi: tuple[str, ...] = (
        "diarrhea", "gastroenteritis", "c. diff", "cdiff", "n/v", "vomit*", "gi",
    )
    urinary: tuple[str, ...] = (
        "uti", "urinary", "cystitis", "pyelonephritis", "urine",
    )
    device: tuple[str, ...] = (
        "foley", "catheter", "cath", "device",
    )
    symptom_watch: tuple[str, ...] = (
        "fever", "cough*", "antibiotic*", "infection*", "vomiting", "diarrhea",
    )
    trigger_tags: tuple[str, ...] = (
        "#cough", "#runnynose", "#fever", "#sorethroat", "#abdominalpain",
        "#diarrhea", "#sob", "#vomiting", "#nausea",
    )
    # Free-text phrases that also count as cluster signals in notes
    cluster_phrases: tuple[str, ...] = ("fever", "sore throat")
    # Cluster signal (tag or phrase) -> syndrome label
    cluster_syndromes: dict[str, str] = field(default_factory=lambda: {
        "#cough": RESPIRATORY,
        "#runnynose": RESPIRATORY,
        "#sorethroat": RESPIRATORY,
        "#sob": RESPIRATORY,
        "sore throat": RESPIRATORY,
        "#abdominalpain": GI,
        "#diarrhea": GI,
        "#vomiting": GI,
        "#nausea": GI,
        "#fever": "Fever",
        "fever": "Fever",
    })
    influenza_vaccines: tuple[str, ...] = ("influenza", "flu*")

    def syndrome_for_signal(self, signal: str) -> str:
        """Syndrome label for a note signal; unmapped signals are their own label."""
        return self.cluster_syndromes.get(signal, signal)

    @classmethod
    def from_dict(cls, data: dict) -> "KeywordTables":
        """Build tables from a dict, keeping defaults for missing keys."""
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name == "cluster_syndromes":
                kwargs[f.name] = {str(k).lower(): str(v) for k, v in dict(value).items()}
            else:
                kwargs[f.name] = tuple(str(v).lower() for v in value)
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            logger.warning(f"Ignoring unknown keyword tables: {sorted(unknown)}")
        return cls(**kwargs)


def load_keyword_tables(path: str | None = None) -> KeywordTables:
    """Load keyword tables from a JSON file, or the defaults when no path.

    Args:
        path: JSON file mapping table name to a list of entries

    Returns:
        KeywordTables instance
    """
    if not path:
        return KeywordTables()
    tables_path = Path(path).expanduser()
    with open(tables_path) as f:
        data = json.load(f)
    logger.info(f"Loaded keyword tables from {tables_path}")
    return KeywordTables.from_dict(data)


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> re.Pattern:
    if keyword.endswith("*"):
        return re.compile(r"(?<!\w)" + re.escape(keyword[:-1]))
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)")


def match_keywords(text: str | None, keywords: tuple[str, ...]) -> list[str]:
    """Keywords (in table order) that occur in the text, case-insensitively."""
    if not isinstance(text, str) or not text:
        return []
    lowered = text.lower()
    return [k for k in keywords if _keyword_pattern(k).search(lowered)]


def find_hashtags(text: str | None, tags: tuple[str, ...]) -> list[str]:
    """Unique trigger tags found in the text, in first-seen order.

    Tokens are split on whitespace and trailing punctuation is dropped, so
    "#fever." matches but "#feverish" does not.
    """
    if not isinstance(text, str) or not text:
        return []
    wanted = set(tags)
    found: list[str] = []
    for word in text.lower().split():
        clean = word.rstrip(TRAILING_PUNCTUATION)
        if clean in wanted and clean not in found:
            found.append(clean)
    return found


def syndrome_labels(text: str | None, tables: KeywordTables) -> list[str]:
    """Respiratory and/or GI labels for indication text."""
    labels = []
    if match_keywords(text, tables.respiratory):
        labels.append(RESPIRATORY)
    if match_keywords(text, tables.gi):
        labels.append(GI)
    return labels
