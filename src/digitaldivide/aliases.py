"""Country alias tables used by identity resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml


DEFAULT_NAME_PROPERTIES = ("NAME", "name", "NAME_EN", "NAME_LONG", "ADMIN", "NAME_SORT")


def normalize_numeric_code(value: Any) -> str | None:
    """Return a three-digit M49 code for numeric ids, else None.

    Integer ids lose their leading zeros in some topology files, so 36 and
    "36" both normalize to "036".
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return f"{value:03d}" if value >= 0 else None
    text = str(value).strip()
    if not text.isdigit():
        return None
    return text.zfill(3)


def _str_key(value: Any, field_name: str, path: Path | None) -> str:
    where = f" in {path}" if path is not None else ""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(
            f"Expected non-empty string key for '{field_name}'{where} "
            "(quote numeric codes so YAML keeps leading zeros)"
        )
    return value.strip()


@dataclass(frozen=True, slots=True)
class ResolverTables:
    """Hand-curated lookup data, kept apart from the matching algorithm."""

    alternates: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    numeric_to_iso3: Mapping[str, str] = field(default_factory=dict)
    special_names: Mapping[str, str] = field(default_factory=dict)
    name_properties: tuple[str, ...] = DEFAULT_NAME_PROPERTIES

    def alternates_for(self, country_code: str) -> tuple[str, ...]:
        return self.alternates.get(country_code, ())

    def iso3_for_numeric(self, feature_id: Any) -> str | None:
        code = normalize_numeric_code(feature_id)
        if code is None:
            return None
        return self.numeric_to_iso3.get(code)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], path: Path | None = None) -> ResolverTables:
        alternates_raw = raw.get("alternates") or {}
        numeric_raw = raw.get("numeric_to_iso3") or {}
        special_raw = raw.get("special_names") or {}
        props_raw = raw.get("name_properties")

        if not isinstance(alternates_raw, Mapping):
            raise ValueError("Expected mapping for 'alternates'")
        if not isinstance(numeric_raw, Mapping):
            raise ValueError("Expected mapping for 'numeric_to_iso3'")
        if not isinstance(special_raw, Mapping):
            raise ValueError("Expected mapping for 'special_names'")

        alternates: dict[str, tuple[str, ...]] = {}
        for code_raw, values in alternates_raw.items():
            code = _str_key(code_raw, "alternates", path)
            if not isinstance(values, list):
                raise ValueError(f"Expected list of aliases for 'alternates.{code}'")
            alternates[code] = tuple(
                _str_key(item, f"alternates.{code}[]", path) for item in values
            )

        numeric: dict[str, str] = {}
        for numeric_raw_key, iso3_raw in numeric_raw.items():
            key = _str_key(numeric_raw_key, "numeric_to_iso3", path)
            code = normalize_numeric_code(key)
            if code is None:
                raise ValueError(f"Non-numeric key '{key}' in 'numeric_to_iso3'")
            iso3 = _str_key(iso3_raw, f"numeric_to_iso3.{key}", path).upper()
            if len(iso3) != 3 or not iso3.isalpha():
                raise ValueError(f"Invalid ISO3 '{iso3_raw}' for 'numeric_to_iso3.{key}'")
            numeric[code] = iso3

        special: dict[str, str] = {}
        for name_raw, canonical_raw in special_raw.items():
            name = _str_key(name_raw, "special_names", path).lower()
            special[name] = _str_key(canonical_raw, f"special_names.{name}", path).lower()

        if props_raw is None:
            name_properties = DEFAULT_NAME_PROPERTIES
        elif isinstance(props_raw, list) and props_raw:
            name_properties = tuple(
                _str_key(item, "name_properties[]", path) for item in props_raw
            )
        else:
            raise ValueError("Expected non-empty list for 'name_properties'")

        return cls(
            alternates=MappingProxyType(alternates),
            numeric_to_iso3=MappingProxyType(numeric),
            special_names=MappingProxyType(special),
            name_properties=name_properties,
        )


def load_resolver_tables(path: Path, *, missing_ok: bool = False) -> ResolverTables:
    """Load alias tables from YAML; `missing_ok` turns a missing file into empty tables."""
    if not path.exists():
        if missing_ok:
            return ResolverTables()
        raise FileNotFoundError(f"Country alias file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        return ResolverTables()
    if not isinstance(raw, dict):
        raise ValueError(f"Expected mapping in {path}")
    return ResolverTables.from_mapping(raw, path)
