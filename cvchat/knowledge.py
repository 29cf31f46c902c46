"""Knowledge base adapter for the hierarchical profile document."""

import json
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import numpy as np

from .config import config
from .errors import InvalidInputError
from .models import KnowledgeEntry

logger = config.get_logger(__name__)


class KnowledgeBase:
    """Flattened, read-only view over category -> key -> entry data."""

    def __init__(self, entries: list[KnowledgeEntry]) -> None:
        """Initialize KnowledgeBase.

        Args:
            entries: Entries in document order. Identifiers must be unique.

        Raises:
            InvalidInputError: If two entries share an identifier.
        """
        self._entries: tuple[KnowledgeEntry, ...] = tuple(entries)
        self._by_id: dict[str, KnowledgeEntry] = {}
        for entry in self._entries:
            if entry.id in self._by_id:
                msg = f"Duplicate knowledge entry id: {entry.id}"
                raise InvalidInputError(msg)
            self._by_id[entry.id] = entry

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "KnowledgeBase":
        """Build a knowledge base from the loader's hierarchical mapping.

        Accepts either ``{"sections": {category: {key: entry}}}`` or the bare
        category mapping.

        Returns:
            A KnowledgeBase with one entry per leaf.
        """
        sections = data.get("sections", data)
        if not isinstance(sections, Mapping):
            msg = "Knowledge base sections must be a mapping"
            raise InvalidInputError(msg)

        entries = []
        for category, category_data in sections.items():
            if not isinstance(category_data, Mapping):
                logger.warning("Skipping non-mapping category: %s", category)
                continue
            for key, raw_entry in category_data.items():
                if not isinstance(raw_entry, Mapping):
                    logger.warning("Skipping malformed entry %s.%s", category, key)
                    continue
                entries.append(cls._build_entry(category, key, raw_entry))

        logger.info("Loaded %d knowledge entries", len(entries))
        return cls(entries)

    @classmethod
    def load(cls, path: Path) -> "KnowledgeBase":
        """Load a knowledge base from a JSON file.

        Returns:
            The parsed KnowledgeBase.
        """
        try:
            with Path(path).open(encoding="utf-8") as file:
                data = json.load(file)
        except Exception:
            logger.exception("Error loading knowledge base %s", path)
            raise
        return cls.from_mapping(data)

    @staticmethod
    def _build_entry(
        category: str, key: str, raw: Mapping[str, Any]
    ) -> KnowledgeEntry:
        keywords = tuple(str(keyword) for keyword in raw.get("keywords") or ())
        responses = {
            str(style): str(text)
            for style, text in (raw.get("responses") or {}).items()
            if text
        }
        vector_raw = (
            raw.get("embedding") or raw.get("embeddings") or raw.get("vector")
        )
        vector = np.asarray(vector_raw, dtype=np.float32) if vector_raw else None

        source_text = raw.get("embeddingSourceText") or raw.get("search_text")
        if not source_text:
            source_text = " ".join([*keywords, *responses.values()])

        return KnowledgeEntry(
            id=str(raw.get("id") or f"{category}_{key}"),
            category=category,
            keywords=keywords,
            vector=vector,
            responses=MappingProxyType(responses),
            details=MappingProxyType(dict(raw.get("details") or {})),
            priority=int(raw.get("priority") or 3),
            confidence=float(raw.get("confidence", 1.0)),
            related_ids=tuple(
                raw.get("relatedSections") or raw.get("related_ids") or ()
            ),
            search_text=str(source_text).lower(),
        )

    def __iter__(self) -> Iterator[KnowledgeEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._by_id

    def get(self, entry_id: str) -> KnowledgeEntry | None:
        return self._by_id.get(entry_id)

    @property
    def entries(self) -> tuple[KnowledgeEntry, ...]:
        return self._entries

    @property
    def has_vectors(self) -> bool:
        """Whether any entry carries a vector representation."""
        return any(entry.vector is not None for entry in self._entries)

    def categories(self) -> list[str]:
        return list(dict.fromkeys(entry.category for entry in self._entries))
