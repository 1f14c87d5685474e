"""Matching topology features to connectivity records.

Boundary data and statistics come from independent sources with no common
join key, so a feature is matched by trying, in order:

1. its id as a direct key (ISO3 code, lowercase code or a configured alternate),
2. its id translated from a numeric M49 code to ISO3,
3. its display name against lowercase country names,
4. substring containment between names, then a table of special-case names.

The first hit wins. A feature that survives all four is simply unmatched.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from .aliases import ResolverTables
from .models import ConnectivityRecord, GeographicFeature, Resolution, ResolvedPair


STRATEGY_DIRECT = "direct_id"
STRATEGY_NUMERIC = "numeric_id"
STRATEGY_NAME = "name"
STRATEGY_SUBSTRING = "fuzzy_substring"
STRATEGY_SPECIAL = "special_name"
STRATEGY_NONE = "none"

STRATEGIES = (
    STRATEGY_DIRECT,
    STRATEGY_NUMERIC,
    STRATEGY_NAME,
    STRATEGY_SUBSTRING,
    STRATEGY_SPECIAL,
    STRATEGY_NONE,
)


@dataclass(frozen=True, slots=True)
class LookupTable:
    """Per-year keys for one slice of records.

    Both mappings keep insertion order, which fixes the order in which
    substring matching visits candidate names.
    """

    by_key: Mapping[str, ConnectivityRecord]
    by_name: Mapping[str, ConnectivityRecord]

    @classmethod
    def from_records(
        cls,
        records: Iterable[ConnectivityRecord],
        tables: ResolverTables,
    ) -> LookupTable:
        by_key: dict[str, ConnectivityRecord] = {}
        by_name: dict[str, ConnectivityRecord] = {}
        for record in records:
            code = record.country_code
            by_key[code] = record
            by_key[code.lower()] = record
            name = record.country.strip().lower()
            if name:
                by_name[name] = record
            for alt in tables.alternates_for(code):
                by_key[alt] = record
        return cls(by_key=MappingProxyType(by_key), by_name=MappingProxyType(by_name))

    def __len__(self) -> int:
        return len(self.by_name)


class IdentityResolver:
    """Stateless resolver: results depend only on the feature and the lookup table."""

    def __init__(self, tables: ResolverTables) -> None:
        self.tables = tables

    def lookup_for(self, records: Iterable[ConnectivityRecord]) -> LookupTable:
        return LookupTable.from_records(records, self.tables)

    def feature_name(self, feature: GeographicFeature) -> str | None:
        props = feature.properties
        if not isinstance(props, Mapping):
            return None
        for key in self.tables.name_properties:
            value = props.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    def resolve(self, feature: GeographicFeature, lookup: LookupTable) -> ConnectivityRecord | None:
        return self.resolve_with_strategy(feature, lookup).record

    def resolve_with_strategy(self, feature: GeographicFeature, lookup: LookupTable) -> Resolution:
        record = self._match_id(feature.id, lookup)
        if record is not None:
            return Resolution(record, STRATEGY_DIRECT)

        iso3 = self.tables.iso3_for_numeric(feature.id)
        if iso3 is not None:
            record = lookup.by_key.get(iso3)
            if record is not None:
                return Resolution(record, STRATEGY_NUMERIC)

        name = self.feature_name(feature)
        if name is None:
            return Resolution(None, STRATEGY_NONE)
        lowered = name.lower()

        record = lookup.by_name.get(lowered)
        if record is not None:
            return Resolution(record, STRATEGY_NAME)

        for key, candidate in lookup.by_name.items():
            if lowered in key or key in lowered:
                return Resolution(candidate, STRATEGY_SUBSTRING)

        canonical = self.tables.special_names.get(lowered)
        if canonical is not None:
            record = lookup.by_name.get(canonical)
            if record is not None:
                return Resolution(record, STRATEGY_SPECIAL)

        return Resolution(None, STRATEGY_NONE)

    def resolve_all(
        self,
        features: Sequence[GeographicFeature],
        lookup: LookupTable,
    ) -> tuple[ResolvedPair, ...]:
        pairs: list[ResolvedPair] = []
        for feature in features:
            resolution = self.resolve_with_strategy(feature, lookup)
            pairs.append(ResolvedPair(feature, resolution.record, resolution.strategy))
        return tuple(pairs)

    @staticmethod
    def _match_id(feature_id: Any, lookup: LookupTable) -> ConnectivityRecord | None:
        if feature_id is None or isinstance(feature_id, bool):
            return None
        key = str(feature_id).strip()
        if not key:
            return None
        record = lookup.by_key.get(key)
        if record is None:
            record = lookup.by_key.get(key.lower())
        return record
