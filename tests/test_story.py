from __future__ import annotations

from pathlib import Path

import pytest

from digitaldivide.annotations import static_map_annotation, timeline_annotation
from digitaldivide.config import load_config
from digitaldivide.story import gradient_css, write_story_page

pytest.importorskip("matplotlib")


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x89PNG")
    return path


def test_gradient_css_spans_the_scale(config_path: Path) -> None:
    scale = load_config(config_path).render.map.static_scale
    css = gradient_css(scale)
    assert css.startswith("linear-gradient(to right, #")
    assert css.endswith(" 100%)")
    assert css.count("%") == 11


def test_story_page_links_scene_files(config_path: Path) -> None:
    cfg = load_config(config_path)
    scenes_dir = cfg.paths.scenes_dir
    outputs = {
        "scene1": _touch(scenes_dir / "scene1_2000.png"),
        "scene2": _touch(scenes_dir / "scene2_2000_2024.gif"),
        "scene3:all": _touch(scenes_dir / "scene3_2024_all.png"),
        "scene3:south-asia": _touch(scenes_dir / "scene3_2024_south-asia.png"),
    }
    annotations = {
        "scene1": static_map_annotation(2),
        "scene2": timeline_annotation(2024, 67.1),
    }
    out = write_story_page(
        cfg=cfg,
        outputs=outputs,
        annotations=annotations,
        output_html=cfg.paths.story_dir / "index.html",
    )
    html = out.read_text(encoding="utf-8")
    assert "<title>Test Tour</title>" in html
    assert "src='../scenes/scene1_2000.png'" in html
    assert "src='../scenes/scene2_2000_2024.gif'" in html
    assert "Scene 3: Today&#x27;s Digital Divide" in html
    assert "2 countries matched" in html
    assert "Global Average: 67.1%" in html
    assert html.index("scene3_2024_all.png") < html.index("scene3_2024_south-asia.png")
    assert "<figcaption>South Asia</figcaption>" in html
    assert "Scene not rendered" not in html


def test_missing_scenes_get_placeholders(config_path: Path) -> None:
    cfg = load_config(config_path)
    out = write_story_page(
        cfg=cfg,
        outputs={"scene1": cfg.paths.scenes_dir / "never-written.png"},
        annotations={},
        output_html=cfg.paths.story_dir / "index.html",
    )
    html = out.read_text(encoding="utf-8")
    assert html.count("Scene not rendered") == 3
