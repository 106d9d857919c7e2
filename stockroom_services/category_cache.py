"""
stockroom_services.category_cache -- Category/family resolution cache.

Responsibility:
    Resolves a part's category to its family, validates categories at
    write time, and lists the categories of a family.  Backed by the
    categories list, rebuilt at most once per TTL.

Architecture position:
    Services layer.  Shared, read-mostly singleton per application.  Time
    comes from the injected kernel ``Clock``.

Invariants:
    - Lookups are trimmed and case-insensitive.
    - ``get_family_by_category`` never raises; unknown categories resolve
      to ``UNKNOWN_FAMILY``.
    - An index swap happens in one synchronous step, so readers see
      either the old index or the new one.
    - Parts mutations do not invalidate the index; only the TTL,
      ``invalidate()`` and ``load(force=True)`` do.

Failure modes:
    - A failed rebuild keeps the previous index and re-raises.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from stockroom_kernel.domain.clock import Clock, SystemClock
from stockroom_kernel.domain.entities import Entity, EntityType
from stockroom_kernel.domain.values import UNCATEGORIZED, UNKNOWN_FAMILY
from stockroom_kernel.exceptions import AuthenticationRequiredError
from stockroom_kernel.logging_config import get_logger
from stockroom_services.collaborators import IdentityProvider
from stockroom_services.list_store import RemoteListStore

logger = get_logger("services.category_cache")

DEFAULT_TTL_SECONDS = 15 * 60


def normalize_category(value: object) -> str:
    return str(value or "").strip().casefold()


@dataclass(frozen=True)
class CategoryFamilyIndex:
    """Forward ``category -> family`` and inverse ``family -> categories``."""

    by_category: Mapping[str, str] = field(default_factory=dict)
    by_family: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    display_names: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, rows: Iterable[Entity]) -> CategoryFamilyIndex:
        by_category: dict[str, str] = {}
        display: dict[str, str] = {}
        by_family: dict[str, list[str]] = {}
        for row in rows:
            name = str(row.get("category") or "").strip()
            if not name:
                continue
            key = normalize_category(name)
            family = str(row.get("family") or "").strip() or UNCATEGORIZED
            if key in by_category:
                logger.warning(
                    "duplicate_category_ignored",
                    extra={
                        "category": name,
                        "kept_family": by_category[key],
                        "ignored_family": family,
                    },
                )
                continue
            by_category[key] = family
            display[key] = name
            by_family.setdefault(family, []).append(name)
        return cls(
            by_category=MappingProxyType(by_category),
            by_family=MappingProxyType({f: tuple(c) for f, c in by_family.items()}),
            display_names=MappingProxyType(display),
        )

    def family_of(self, category: object) -> str | None:
        return self.by_category.get(normalize_category(category))

    def __len__(self) -> int:
        return len(self.by_category)


class CategoryFamilyCache:
    """TTL-bounded cache of the category list."""

    def __init__(
        self,
        store: RemoteListStore,
        identity: IdentityProvider,
        clock: Clock | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ):
        self._store = store
        self._identity = identity
        self._clock = clock or SystemClock()
        self._ttl = ttl_seconds
        self._index: CategoryFamilyIndex | None = None
        self._loaded_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def index(self) -> CategoryFamilyIndex:
        return self._index or CategoryFamilyIndex()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def is_populated(self) -> bool:
        return self._index is not None

    @property
    def age_seconds(self) -> float | None:
        if self._loaded_at is None:
            return None
        return self._clock.monotonic() - self._loaded_at

    @property
    def is_stale(self) -> bool:
        age = self.age_seconds
        return age is None or age >= self._ttl

    def invalidate(self) -> None:
        self._loaded_at = None

    async def load(self, force: bool = False) -> CategoryFamilyIndex:
        """Rebuild the index if forced, never built, or older than the TTL."""
        if not force and not self.is_stale:
            return self.index
        async with self._lock:
            # Another waiter may have rebuilt while we queued.
            if not force and not self.is_stale:
                return self.index
            credential = await self._identity.get_credential()
            if not credential:
                raise AuthenticationRequiredError("load_categories")
            try:
                rows = await self._store.get(EntityType.CATEGORIES, credential)
            except Exception:
                logger.warning(
                    "category_index_rebuild_failed",
                    extra={"kept_previous": self._index is not None},
                    exc_info=True,
                )
                raise
            index = CategoryFamilyIndex.build(rows)
            self._index = index
            self._loaded_at = self._clock.monotonic()
            logger.info(
                "category_index_rebuilt",
                extra={"category_count": len(index), "family_count": len(index.by_family)},
            )
            return index

    def get_family_by_category(self, category: object) -> str:
        return self.index.family_of(category) or UNKNOWN_FAMILY

    def validate_category(self, category: object) -> bool:
        return self.index.family_of(category) is not None

    def get_categories_in_family(self, family: str) -> tuple[str, ...]:
        return self.index.by_family.get(str(family or "").strip(), ())

    def families(self) -> tuple[str, ...]:
        return tuple(sorted(self.index.by_family))

    def category_names(self) -> tuple[str, ...]:
        return tuple(self.index.display_names.values())
