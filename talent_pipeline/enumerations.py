"""
Enumeration resolution over the data_dictionary reference table.

Status and label values are operator-configured rows of
(dict_type, name, sort_order), optionally with a ``code`` alias. Code asks
for a symbolic name and gets back whatever canonical value is stored.
"""
import asyncio
import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from talent_pipeline.errors import MissingEnumerationDefault
from talent_pipeline.store import Store

logger = logging.getLogger(__name__)

DICTIONARY_TABLE = "data_dictionary"


class Category:
    CANDIDATE_STATUS = "candidate_status"
    INTERVIEW_STATUS = "interview_status"
    INTERVIEW_CONCLUSION = "interview_conclusion"
    INTERVIEW_METHOD = "interview_method"
    ASSESSMENT_STATUS = "assessment_status"
    BACKGROUND_STATUS = "background_status"
    OFFER_STATUS = "offer_status"


class EnumerationEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    dict_type: str
    name: str
    sort_order: int = 0
    code: Optional[str] = None


class EnumerationResolver:
    """Resolves symbolic names against a per-category cache of the reference table.

    A category is loaded in full on first use and served from memory until
    ``invalidate`` is called. Population is serialized per category so that
    concurrent callers trigger a single store query; a load that overlaps an
    invalidation is returned to its caller but not cached.
    """

    def __init__(self, store: Store):
        self.store = store
        self._entries: Dict[str, Tuple[EnumerationEntry, ...]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._generations: Counter = Counter()
        self.fallback_counts: Counter = Counter()

    async def _load(self, category: str) -> Tuple[EnumerationEntry, ...]:
        cached = self._entries.get(category)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(category, asyncio.Lock())
        async with lock:
            cached = self._entries.get(category)
            if cached is not None:
                return cached

            generation = self._generations[category]
            rows = await self.store.select_many(
                DICTIONARY_TABLE,
                {"dict_type": category},
                order_by=[("sort_order", True)],
            )
            entries = tuple(sorted(
                (EnumerationEntry(**row) for row in rows),
                key=lambda e: e.sort_order,
            ))
            if generation == self._generations[category]:
                self._entries[category] = entries
            else:
                logger.info(f"Enumeration category '{category}' invalidated while loading; not caching")
            return entries

    async def resolve_value(self, category: str, symbolic_name: str) -> str:
        entries = await self._load(category)
        for entry in entries:
            if entry.code == symbolic_name or entry.name == symbolic_name:
                return entry.name

        self.fallback_counts[(category, symbolic_name)] += 1
        logger.warning(
            f"Enumeration value not found: {category}:{symbolic_name}, "
            f"using the symbolic name as fallback"
        )
        return symbolic_name

    async def resolve_default(self, category: str) -> str:
        entries = await self._load(category)
        if not entries:
            logger.error(f"Missing enumeration default: category '{category}' has no entries configured")
            raise MissingEnumerationDefault(category)
        return entries[0].name

    async def resolve_all_values(self, category: str) -> List[str]:
        return [entry.name for entry in await self._load(category)]

    def invalidate(self, category: Optional[str] = None) -> None:
        if category is None:
            # categories with a lock may have a load in flight
            for known in set(self._entries) | set(self._locks):
                self._generations[known] += 1
            self._entries.clear()
            logger.info("Enumeration cache cleared")
        else:
            self._generations[category] += 1
            self._entries.pop(category, None)
            logger.info(f"Enumeration cache cleared for '{category}'")


# Reference rows seeded into a fresh database; the first entry of each
# category is its default.
DEFAULT_ENTRIES = {
    Category.CANDIDATE_STATUS: [
        "new", "pending_assessment", "assessment", "pending_interview", "interview",
        "background_check", "pending_offer", "offer", "hired", "rejected",
    ],
    Category.INTERVIEW_STATUS: ["scheduled", "in_progress", "completed", "cancelled"],
    Category.INTERVIEW_CONCLUSION: ["pass", "reject", "undecided"],
    Category.INTERVIEW_METHOD: ["onsite", "video", "phone"],
    Category.ASSESSMENT_STATUS: ["pending", "in_progress", "completed"],
    Category.BACKGROUND_STATUS: ["pending", "in_progress", "completed"],
    Category.OFFER_STATUS: ["pending", "sent", "accepted", "declined"],
}


def default_dictionary_rows() -> List[dict]:
    rows = []
    for category, names in DEFAULT_ENTRIES.items():
        for position, name in enumerate(names, start=1):
            rows.append({
                "entry_id": f"dict_{category}_{name}",
                "dict_type": category,
                "name": name,
                "code": name,
                "sort_order": position,
            })
    return rows
