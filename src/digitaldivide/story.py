"""Narrative HTML page stitching the rendered scenes together."""

from __future__ import annotations

import os
from html import escape
from pathlib import Path
from typing import Any, Mapping, Sequence

from .annotations import Annotation, legend_stops, legend_title
from .config import AppConfig, ColorScaleConfig


def _relative_src(target: Path, base_dir: Path) -> str:
    return Path(os.path.relpath(target, base_dir)).as_posix()


def gradient_css(scale: ColorScaleConfig) -> str:
    """CSS linear-gradient matching the map's colour scale."""
    import matplotlib.colors as mcolors
    from matplotlib import colormaps

    cmap = colormaps[scale.cmap]
    norm = mcolors.Normalize(vmin=scale.vmin, vmax=scale.vmax)
    parts = [
        f"{mcolors.to_hex(cmap(norm(value)))} {offset:.0f}%"
        for offset, value in legend_stops(scale.vmax)
    ]
    return "linear-gradient(to right, " + ", ".join(parts) + ")"


def _annotation_html(annotation: Annotation | None) -> list[str]:
    if annotation is None:
        return []
    return [
        "    <div class='annotation'>",
        f"      <strong>{escape(annotation.title)}</strong>",
        *(f"      <div>{escape(line)}</div>" for line in annotation.lines),
        "    </div>",
    ]


def _legend_html(scale: ColorScaleConfig) -> list[str]:
    return [
        "    <div class='legend'>",
        f"      <div class='legend-title'>{escape(legend_title())}</div>",
        f"      <div class='legend-bar' style='background: {gradient_css(scale)}'></div>",
        "      <div class='legend-axis'>"
        f"<span>{scale.vmin:g}%</span><span>{scale.vmax:g}%</span></div>",
        "    </div>",
    ]


def _image_html(path: Path | None, alt: str, base_dir: Path) -> str:
    if path is None or not path.exists():
        return "    <div class='placeholder'>Scene not rendered</div>"
    return f"    <img src='{escape(_relative_src(path, base_dir))}' alt='{escape(alt)}'>"


def write_story_page(
    *,
    cfg: AppConfig,
    outputs: Mapping[str, Path],
    annotations: Mapping[str, Annotation],
    output_html: Path,
) -> Path:
    """Generate the three-scene narrative page next to the rendered scene files."""
    base_dir = output_html.parent
    sections: list[str] = []
    for number in cfg.scenes.numbers:
        scene = cfg.scenes.get(number)
        key = f"scene{number}"
        body: list[str] = [
            f"<section class='scene' id='{key}'>",
            f"  <h2>Scene {number}: {escape(scene.title)}</h2>",
            f"  <p class='description'>{escape(scene.description)}</p>",
            "  <div class='frame'>",
        ]
        if number == 3:
            body.extend(_scatter_gallery(outputs, base_dir, scene.title))
        else:
            body.append(_image_html(outputs.get(key), scene.title, base_dir))
            scale = cfg.render.map.static_scale if number == 1 else cfg.render.map.timeline_scale
            body.extend(_legend_html(scale))
        body.extend(_annotation_html(annotations.get(key)))
        body.extend(["  </div>", "</section>"])
        sections.append("\n".join(body))

    nav = " ".join(
        f"<a href='#scene{n}'>{n}. {escape(cfg.scenes.get(n).title)}</a>" for n in cfg.scenes.numbers
    )
    html = "\n".join(
        [
            "<!doctype html>",
            "<html lang='en'>",
            "<head>",
            "  <meta charset='utf-8'>",
            "  <meta name='viewport' content='width=device-width, initial-scale=1'>",
            f"  <title>{escape(cfg.project.title)}</title>",
            "  <style>",
            "    body { font-family: Arial, sans-serif; margin: 16px auto; max-width: 1000px; }",
            "    nav a { margin-right: 16px; }",
            "    .scene { margin: 32px 0; }",
            "    .description { color: #4a5568; }",
            "    .frame { position: relative; }",
            "    img { display: block; max-width: 100%; }",
            "    .annotation {",
            "      border: 1px solid #333;",
            "      border-radius: 6px;",
            "      background: rgba(255, 255, 255, 0.95);",
            "      padding: 8px 12px;",
            "      margin-top: 8px;",
            "      font-size: 13px;",
            "      display: inline-block;",
            "    }",
            "    .legend { width: 300px; margin-top: 8px; font-size: 12px; }",
            "    .legend-bar { height: 12px; border: 1px solid #ccc; }",
            "    .legend-axis { display: flex; justify-content: space-between; }",
            "    .gallery { display: grid; grid-template-columns: repeat(2, 1fr); gap: 12px; }",
            "    .gallery figcaption { font-size: 13px; color: #333; }",
            "    .placeholder {",
            "      border: 1px dashed #bbb;",
            "      color: #666;",
            "      border-radius: 6px;",
            "      padding: 12px;",
            "      background: #fafafa;",
            "    }",
            "  </style>",
            "</head>",
            "<body>",
            f"  <h1>{escape(cfg.project.title)}</h1>",
            f"  <nav>{nav}</nav>",
            *sections,
            "</body>",
            "</html>",
            "",
        ]
    )
    output_html.parent.mkdir(parents=True, exist_ok=True)
    output_html.write_text(html, encoding="utf-8")
    return output_html


def _scatter_gallery(outputs: Mapping[str, Path], base_dir: Path, title: str) -> Sequence[str]:
    entries = sorted(
        ((key.split(":", 1)[1], path) for key, path in outputs.items() if key.startswith("scene3:")),
        key=lambda item: (item[0] != "all", item[0]),
    )
    if not entries:
        return ["    <div class='placeholder'>Scene not rendered</div>"]
    lines: list[Any] = ["    <div class='gallery'>"]
    for name, path in entries:
        caption = "All Regions" if name == "all" else name.replace("-", " ").title()
        lines.extend(
            [
                "      <figure>",
                "  " + _image_html(path, f"{title} ({caption})", base_dir),
                f"        <figcaption>{escape(caption)}</figcaption>",
                "      </figure>",
            ]
        )
    lines.append("    </div>")
    return lines
