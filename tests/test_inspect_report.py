from __future__ import annotations

import json
from pathlib import Path

import pytest

from digitaldivide.config import load_config
from digitaldivide.inspect_report import build_resolution_payload, generate_inspection_report
from digitaldivide.models import GeographicFeature, ResolvedPair
from digitaldivide.scenes import SceneFrame

from .conftest import make_record


def _frame() -> SceneFrame:
    usa = make_record("USA", country="United States", penetration=43.1)
    ind = make_record("IND", country="India", penetration=0.5)
    pairs = (
        ResolvedPair(GeographicFeature(id="840"), usa, "direct_id"),
        ResolvedPair(GeographicFeature(id=None, properties={"name": "India"}), ind, "name"),
        ResolvedPair(GeographicFeature(id="999999"), None, "none"),
    )
    return SceneFrame(year=2000, pairs=pairs)


def test_payload_summary_counts_strategies() -> None:
    records = [
        make_record("USA", country="United States"),
        make_record("IND", country="India"),
        make_record("BRA", country="Brazil", region="Latin America & Caribbean"),
    ]
    payload = build_resolution_payload(_frame(), records)
    summary = payload["summary"]
    assert summary["strategy_direct_id"] == 1
    assert summary["strategy_name"] == 1
    assert summary["strategy_none"] == 1
    assert summary["strategy_numeric_id"] == 0
    assert (summary["total"], summary["matched"], summary["unmatched_records"]) == (3, 2, 1)
    assert payload["unmatched_records"] == [
        {"country": "Brazil", "country_code": "BRA", "region": "Latin America & Caribbean"}
    ]
    assert payload["features"][0]["internet_penetration"] == 43.1
    assert payload["features"][2]["country_code"] is None


def test_strategy_filter_limits_rows_not_summary() -> None:
    payload = build_resolution_payload(_frame(), [], strategy_filters=["none"])
    assert [row["feature_id"] for row in payload["features"]] == ["999999"]
    assert payload["meta"]["features_in_report"] == 1
    assert payload["meta"]["filters"] == ["none"]
    assert payload["summary"]["matched"] == 2


def test_report_files_are_written(config_path: Path) -> None:
    cfg = load_config(config_path)
    html_path, json_path = generate_inspection_report(cfg, year=2000)
    assert html_path == cfg.paths.reports_dir / "inspect_2000.html"
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    assert payload["meta"]["year"] == 2000
    assert payload["summary"]["matched"] == 2
    assert {item["country_code"] for item in payload["unmatched_records"]} == {"IND", "NGA", "BRA"}
    html = html_path.read_text(encoding="utf-8")
    assert "Country Resolution Report (2000)" in html
    assert "Country 999999" in html


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"year": 1990}, "--year must be within"),
        ({"year": 2000, "strategy_filters": ["psychic"]}, "Unknown strategy"),
    ],
)
def test_invalid_requests_are_rejected(config_path: Path, kwargs: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        generate_inspection_report(load_config(config_path), **kwargs)
