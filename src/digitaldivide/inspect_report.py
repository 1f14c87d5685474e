"""Resolution inspection report: which strategy matched each map feature."""

from __future__ import annotations

import json
import math
from html import escape
from pathlib import Path
from typing import Any, Sequence

from .config import AppConfig
from .models import ConnectivityRecord
from .resolver import STRATEGIES, STRATEGY_NONE
from .scenes import SceneFrame
from .tour import TourData, load_tour_data
from .util import write_json


def generate_inspection_report(
    cfg: AppConfig,
    *,
    year: int,
    strategy_filters: Sequence[str] = (),
    data: TourData | None = None,
) -> tuple[Path, Path]:
    """Write an HTML + JSON report of how every feature resolved for `year`."""
    unknown = [s for s in strategy_filters if s not in STRATEGIES]
    if unknown:
        raise ValueError(
            f"Unknown strategy in --strategy filter: {', '.join(unknown)} "
            f"(expected one of: {', '.join(STRATEGIES)})"
        )
    if not cfg.dataset.first_year <= year <= cfg.dataset.last_year:
        raise ValueError(
            f"--year must be within {cfg.dataset.first_year}-{cfg.dataset.last_year}, got {year}"
        )
    if data is None:
        data = load_tour_data(cfg)

    frame = data.frame(year)
    payload = build_resolution_payload(
        frame,
        data.index.slice(year),
        strategy_filters=strategy_filters,
    )
    json_path = cfg.paths.reports_dir / f"inspect_{year}.json"
    html_path = cfg.paths.reports_dir / f"inspect_{year}.html"
    write_json(json_path, payload)
    _write_html_report(payload=payload, output_html=html_path)
    return (html_path, json_path)


def build_resolution_payload(
    frame: SceneFrame,
    records: Sequence[ConnectivityRecord],
    *,
    strategy_filters: Sequence[str] = (),
) -> dict[str, Any]:
    rows: list[dict[str, Any]] = []
    matched_codes: set[str] = set()
    for pair in frame.pairs:
        if pair.record is not None:
            matched_codes.add(pair.record.country_code)
        if strategy_filters and pair.strategy not in strategy_filters:
            continue
        rows.append(
            {
                "feature_id": None if pair.feature.id is None else str(pair.feature.id),
                "feature_label": pair.feature.label,
                "has_geometry": pair.feature.geometry is not None,
                "strategy": pair.strategy,
                "country": pair.record.country if pair.record else None,
                "country_code": pair.record.country_code if pair.record else None,
                "internet_penetration": _finite_or_none(
                    pair.record.internet_penetration if pair.record else math.nan
                ),
            }
        )

    unmatched_records = [
        {"country": record.country, "country_code": record.country_code, "region": record.region}
        for record in records
        if record.country_code not in matched_codes
    ]
    return {
        "meta": {
            "year": frame.year,
            "features_total": frame.total_count,
            "features_in_report": len(rows),
            "records_in_slice": len(records),
            "filters": sorted(strategy_filters),
        },
        "summary": _build_summary(frame, unmatched_records),
        "features": rows,
        "unmatched_records": unmatched_records,
    }


def _finite_or_none(value: float) -> float | None:
    return value if math.isfinite(value) else None


def _build_summary(frame: SceneFrame, unmatched_records: Sequence[Any]) -> dict[str, int]:
    summary = {f"strategy_{name}": 0 for name in STRATEGIES}
    for pair in frame.pairs:
        summary[f"strategy_{pair.strategy}"] += 1
    summary["total"] = frame.total_count
    summary["matched"] = frame.matched_count
    summary["unmatched_records"] = len(unmatched_records)
    return summary


def _write_html_report(*, payload: dict[str, Any], output_html: Path) -> None:
    summary = payload["summary"]
    meta = payload["meta"]

    table_rows: list[str] = []
    for row in payload["features"]:
        status = "miss" if row["strategy"] == STRATEGY_NONE else "matched"
        pct = row["internet_penetration"]
        details_json = json.dumps(row, ensure_ascii=False, indent=2)
        table_rows.append(
            "\n".join(
                [
                    "<tr>",
                    f"  <td>{escape(row['feature_id'] or '-')}</td>",
                    f"  <td>{escape(row['feature_label'])}</td>",
                    f"  <td class='{status}'>{escape(row['strategy'])}</td>",
                    f"  <td>{escape(row['country'] or '-')}</td>",
                    f"  <td>{escape(row['country_code'] or '-')}</td>",
                    f"  <td>{'-' if pct is None else f'{pct:.1f}%'}</td>",
                    "  <td><details><summary>details</summary>"
                    f"<pre>{escape(details_json)}</pre></details></td>",
                    "</tr>",
                ]
            )
        )
    unmatched_items = [
        f"      <li>{escape(item['country'])} ({escape(item['country_code'])})</li>"
        for item in payload["unmatched_records"]
    ]
    kpis = [
        f"      <div class='kpi'>{escape(name)}: {summary[f'strategy_{name}']}</div>"
        for name in STRATEGIES
    ]

    html = "\n".join(
        [
            "<!doctype html>",
            "<html lang='en'>",
            "<head>",
            "  <meta charset='utf-8'>",
            "  <meta name='viewport' content='width=device-width, initial-scale=1'>",
            f"  <title>digital-divide resolution report {meta['year']}</title>",
            "  <style>",
            "    body { font-family: Helvetica, Arial, sans-serif; margin: 24px auto; max-width: 1100px; color: #1a202c; }",
            "    h1 { font-size: 22px; } h2 { font-size: 16px; margin: 0 0 8px 0; }",
            "    section { margin-bottom: 20px; }",
            "    .kpis { display: flex; flex-wrap: wrap; gap: 6px; }",
            "    .kpi { background: #edf2f7; border-radius: 4px; padding: 6px 10px; }",
            "    table { border-collapse: collapse; width: 100%; font-size: 13px; }",
            "    th, td { border-bottom: 1px solid #e2e8f0; padding: 6px; text-align: left; vertical-align: top; }",
            "    thead th { background: #2d3748; color: #fff; }",
            "    td.matched { color: #2f855a; }",
            "    td.miss { color: #c53030; font-weight: 700; }",
            "    pre { white-space: pre-wrap; font-size: 12px; background: #f7fafc; padding: 6px; }",
            "  </style>",
            "</head>",
            "<body>",
            f"  <h1>Country Resolution Report ({meta['year']})</h1>",
            "  <section>",
            "    <h2>Scope</h2>",
            f"    <div>Map features: {meta['features_total']}</div>",
            f"    <div>Features in report: {meta['features_in_report']}</div>",
            f"    <div>Records in slice: {meta['records_in_slice']}</div>",
            f"    <div>Strategy filter: {escape(', '.join(meta['filters']) or 'none')}</div>",
            "  </section>",
            "  <section>",
            "    <h2>Strategies</h2>",
            "    <div class='kpis'>",
            f"      <div class='kpi'>Matched: {summary['matched']} / {summary['total']}</div>",
            *kpis,
            f"      <div class='kpi'>Records without a feature: {summary['unmatched_records']}</div>",
            "    </div>",
            "  </section>",
            "  <table>",
            "    <thead>",
            "      <tr>",
            "        <th>Feature Id</th>",
            "        <th>Feature</th>",
            "        <th>Strategy</th>",
            "        <th>Country</th>",
            "        <th>Code</th>",
            "        <th>Internet</th>",
            "        <th>Details</th>",
            "      </tr>",
            "    </thead>",
            "    <tbody>",
            *table_rows,
            "    </tbody>",
            "  </table>",
            "  <h2>Records without a map feature</h2>",
            "  <ul>",
            *unmatched_items,
            "  </ul>",
            "</body>",
            "</html>",
            "",
        ]
    )

    output_html.parent.mkdir(parents=True, exist_ok=True)
    output_html.write_text(html, encoding="utf-8")
