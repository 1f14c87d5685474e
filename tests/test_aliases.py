from __future__ import annotations

from pathlib import Path

import pytest

from digitaldivide.aliases import (
    DEFAULT_NAME_PROPERTIES,
    ResolverTables,
    load_resolver_tables,
    normalize_numeric_code,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (840, "840"),
        (36, "036"),
        ("36", "036"),
        (" 076 ", "076"),
        ("USA", None),
        (None, None),
        (True, None),
        (-4, None),
    ],
)
def test_normalize_numeric_code(value: object, expected: str | None) -> None:
    assert normalize_numeric_code(value) == expected


def test_shipped_tables_cover_major_economies(alias_tables: ResolverTables) -> None:
    assert alias_tables.name_properties == DEFAULT_NAME_PROPERTIES
    assert len(alias_tables.alternates) == 15
    assert "840" in alias_tables.alternates_for("USA")
    assert alias_tables.alternates_for("XXX") == ()
    assert alias_tables.iso3_for_numeric(36) == "AUS"
    assert alias_tables.iso3_for_numeric("566") == "NGA"
    assert alias_tables.iso3_for_numeric("999999") is None
    assert alias_tables.special_names["russian federation"] == "russia"


def test_from_mapping_lowercases_special_names() -> None:
    tables = ResolverTables.from_mapping(
        {"special_names": {"Republic Of Korea": "South Korea"}}
    )
    assert dict(tables.special_names) == {"republic of korea": "south korea"}


def test_from_mapping_rejects_unquoted_numeric_keys() -> None:
    with pytest.raises(ValueError, match="quote numeric codes"):
        ResolverTables.from_mapping({"numeric_to_iso3": {840: "USA"}})


def test_from_mapping_rejects_bad_iso3() -> None:
    with pytest.raises(ValueError, match="Invalid ISO3"):
        ResolverTables.from_mapping({"numeric_to_iso3": {"840": "US1"}})


def test_from_mapping_requires_alias_lists() -> None:
    with pytest.raises(ValueError, match="alternates.USA"):
        ResolverTables.from_mapping({"alternates": {"USA": "US"}})


def test_load_resolver_tables_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_resolver_tables(tmp_path / "missing.yaml")
    tables = load_resolver_tables(tmp_path / "missing.yaml", missing_ok=True)
    assert tables.alternates == {}


def test_load_resolver_tables_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "aliases.yaml"
    path.write_text("", encoding="utf-8")
    tables = load_resolver_tables(path)
    assert tables.numeric_to_iso3 == {}
    assert tables.name_properties == DEFAULT_NAME_PROPERTIES
