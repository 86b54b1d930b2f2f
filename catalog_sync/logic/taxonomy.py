"""Category path classification against a fixed keyword vocabulary."""

from __future__ import annotations

import logging
import pathlib
import re
from dataclasses import dataclass, field
from typing import Mapping

import yaml

logger = logging.getLogger(__name__)

CATEGORIES_PATH = pathlib.Path(__file__).with_name("categories.yml")

ALTERNATIVE_SEPARATOR = ";"
SEGMENT_SEPARATORS_RE = re.compile(r"[\\/>|]")
ESCAPED_SEPARATOR_RE = re.compile(r"\\([\\/>|])")


@dataclass(frozen=True, slots=True)
class CategoryVocabulary:
    """Ordered keyword -> category id table with a default for unmatched paths."""

    entries: tuple[tuple[str, str], ...]
    default: str
    _lookup: dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_lookup", dict(self.entries))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str], default: str) -> "CategoryVocabulary":
        entries: list[tuple[str, str]] = []
        seen: set[str] = set()
        for keyword, category_id in mapping.items():
            key = keyword.strip().casefold()
            if not key or key in seen:
                continue
            seen.add(key)
            entries.append((key, category_id))
        return cls(entries=tuple(entries), default=default)

    @property
    def category_ids(self) -> set[str]:
        return {category_id for _, category_id in self.entries} | {self.default}

    def exact(self, segment: str) -> str | None:
        return self._lookup.get(segment)

    def __len__(self) -> int:
        return len(self.entries)


def load_vocabulary(path: pathlib.Path = CATEGORIES_PATH) -> CategoryVocabulary:
    """Load a vocabulary table.

    The file holds a ``default`` id and a ``categories`` list; each item has an
    ``id`` and the ``keywords`` that map to it. Keyword order is preserved.
    """
    data = yaml.safe_load(path.read_text())
    mapping: dict[str, str] = {}
    for item in data.get("categories", []):
        for keyword in item.get("keywords", []):
            mapping.setdefault(keyword, item["id"])
    return CategoryVocabulary.from_mapping(mapping, default=data["default"])


def normalize_path(path: str) -> str:
    return ESCAPED_SEPARATOR_RE.sub(r"\1", path.strip().casefold())


def split_segments(normalized: str) -> list[str]:
    return [segment.strip() for segment in SEGMENT_SEPARATORS_RE.split(normalized) if segment.strip()]


def match_path(path: str, vocabulary: CategoryVocabulary) -> str | None:
    """Resolve one path, leaf segment first; None when nothing matches."""
    normalized = normalize_path(path)
    segments = split_segments(normalized)
    if not segments:
        return None
    for segment in reversed(segments):
        hit = vocabulary.exact(segment)
        if hit:
            return hit
        for keyword, category_id in vocabulary.entries:
            if keyword in segment or segment in keyword:
                return category_id
    for keyword, category_id in vocabulary.entries:
        if keyword in normalized:
            return category_id
    return None


class TaxonomyResolver:
    def __init__(self, vocabulary: CategoryVocabulary) -> None:
        self.vocabulary = vocabulary

    def resolve(self, path_string: str | None) -> str:
        if not path_string or not path_string.strip():
            return self.vocabulary.default
        for candidate in path_string.split(ALTERNATIVE_SEPARATOR):
            if not candidate.strip():
                continue
            category_id = match_path(candidate, self.vocabulary)
            if category_id:
                logger.debug("Category %s -> %s", candidate.strip(), category_id)
                return category_id
        logger.debug("No category match for %r, using default", path_string)
        return self.vocabulary.default
