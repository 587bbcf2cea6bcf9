"""Key-normalized lookup from data rows to geographic features."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping

from .models import DataRow, GeoFeature, JoinEntry
from .strategies import NumberNormalizer, normalize_key, parse_number

_LOGGER = logging.getLogger("francemap.join")


@dataclass(slots=True)
class JoinStats:
    rows_total: int = 0
    rows_filtered: int = 0
    rows_without_key: int = 0
    rows_replaced: int = 0
    values_missing: int = 0


@dataclass(frozen=True, slots=True)
class JoinIndex:
    """Normalized territorial code -> joined row and numeric value."""

    entries: Mapping[str, JoinEntry]
    stats: JoinStats = field(default_factory=JoinStats)

    @classmethod
    def build(
        cls,
        rows: Iterable[DataRow],
        row_key: Callable[[DataRow], Any],
        value: Callable[[DataRow], Any],
        normalizer: NumberNormalizer,
        *,
        size: Callable[[DataRow], Any] | None = None,
        row_filter: Callable[[DataRow], bool] | None = None,
    ) -> JoinIndex:
        stats = JoinStats()
        entries: dict[str, JoinEntry] = {}
        for row in rows:
            stats.rows_total += 1
            if row_filter is not None and not row_filter(row):
                stats.rows_filtered += 1
                continue
            # Key strategies already normalize; re-normalizing is a no-op.
            key = normalize_key(row_key(row))
            if key is None:
                stats.rows_without_key += 1
                continue
            numeric = normalizer(value(row))
            if numeric is None:
                stats.values_missing += 1
            size_value = parse_number(size(row)) if size is not None else None
            if key in entries:
                stats.rows_replaced += 1
            entries[key] = JoinEntry(row=row, value=numeric, size=size_value)

        _LOGGER.debug(
            "Join index: %d keys from %d rows (filtered=%d, no_key=%d, replaced=%d, no_value=%d)",
            len(entries),
            stats.rows_total,
            stats.rows_filtered,
            stats.rows_without_key,
            stats.rows_replaced,
            stats.values_missing,
        )
        return cls(entries=entries, stats=stats)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and normalize_key(key) in self.entries

    def lookup(self, key: Any) -> JoinEntry | None:
        normalized = normalize_key(key)
        if normalized is None:
            return None
        return self.entries.get(normalized)

    def lookup_feature(
        self,
        feature: GeoFeature,
        feature_key: Callable[[GeoFeature], Any],
    ) -> JoinEntry | None:
        return self.lookup(feature_key(feature))

    def values(self) -> Iterator[float | None]:
        for entry in self.entries.values():
            yield entry.value

    def sizes(self) -> Iterator[float | None]:
        for entry in self.entries.values():
            yield entry.size
