"""CLI entrypoint for the digital-divide scene builder."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .config import AppConfig, load_config
from .dataset import DataLoadFailure
from .inspect_report import generate_inspection_report
from .models import BuildManifest
from .render import format_render_lines, run_render_scenes
from .resolver import STRATEGIES
from .story import write_story_page
from .tour import load_tour_data
from .util import detect_git_commit, ensure_directories, sha256_file, setup_logging, write_json
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("digitaldivide.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="digitaldivide",
        description="Narrative visualization of global internet connectivity.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    build_p = subparsers.add_parser(
        "build",
        help="Validate inputs, render all scenes and write the story page.",
    )
    add_common(build_p)

    validate_p = subparsers.add_parser("validate", help="Validate config and input files.")
    add_common(validate_p)
    validate_p.add_argument(
        "--with-topology",
        action="store_true",
        help="Also load the map topology and report resolution coverage.",
    )

    render_p = subparsers.add_parser("render-scenes", help="Render scene files only.")
    add_common(render_p)
    render_p.add_argument(
        "--scene",
        type=int,
        action="append",
        default=[],
        help="Scene number to render (1-3). Can be repeated. Default: all scenes.",
    )

    inspect_p = subparsers.add_parser(
        "inspect",
        help="Generate HTML + JSON report of how map features matched the statistics.",
    )
    add_common(inspect_p)
    inspect_p.add_argument(
        "--year",
        type=int,
        default=None,
        help="Year slice to resolve against. Default: the scene 1 year.",
    )
    inspect_p.add_argument(
        "--strategy",
        action="append",
        default=[],
        choices=STRATEGIES,
        help="Only list features resolved by this strategy. Can be repeated.",
    )

    explore_p = subparsers.add_parser("explore", help="Open the interactive three-scene tour.")
    add_common(explore_p)

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    log_path = cfg.paths.logs_dir / "build.log"
    setup_logging(log_path, verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_validate(cfg: AppConfig, *, with_topology: bool) -> int:
    report = Validator(cfg).run(with_topology=with_topology)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_render_scenes(cfg: AppConfig, *, scenes: Sequence[int]) -> int:
    report = run_render_scenes(cfg, scenes=tuple(scenes) or cfg.scenes.numbers)
    for line in format_render_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_build(cfg: AppConfig) -> int:
    LOGGER.info("Starting build pipeline.")

    report = Validator(cfg).run()
    for line in format_report_lines(report):
        LOGGER.info(line)
    if not report.ok:
        LOGGER.error("Build aborted due to validation errors.")
        return 1

    data = load_tour_data(cfg)
    render_report = run_render_scenes(cfg, scenes=cfg.scenes.numbers, data=data)
    for line in format_render_lines(render_report):
        LOGGER.info(line)
    if not render_report.ok:
        LOGGER.error("Build aborted due to scene rendering errors.")
        return 1

    story_path: Path | None = None
    if cfg.build.write_story:
        story_path = write_story_page(
            cfg=cfg,
            outputs=render_report.outputs,
            annotations=render_report.annotations,
            output_html=cfg.paths.story_dir / "index.html",
        )
        LOGGER.info("Story page generated at %s", story_path)

    if cfg.build.write_manifest:
        artifacts = {key: str(path) for key, path in sorted(render_report.outputs.items())}
        artifacts["story"] = str(story_path) if story_path else ""
        artifacts["connectivity_csv_sha256"] = sha256_file(cfg.paths.connectivity_csv)
        manifest = BuildManifest.create(
            config_hash_sha256=sha256_file(cfg.source_path),
            git_commit=detect_git_commit(cfg.source_path.parent),
            steps={
                "validate": "ok",
                "render_scenes": "ok" if render_report.ok else "error",
                "story": "ok" if story_path else "skipped",
            },
            artifacts=artifacts,
        )
        manifest_path = cfg.paths.manifests_dir / "build_manifest.json"
        write_json(manifest_path, manifest.to_dict())
        LOGGER.info("Build manifest written to %s", manifest_path)

    LOGGER.info("Build finished.")
    return 0


def _run_inspect(cfg: AppConfig, *, year: int | None, strategies: Sequence[str]) -> int:
    try:
        html_path, json_path = generate_inspection_report(
            cfg,
            year=year if year is not None else cfg.scenes.get(1).year,
            strategy_filters=strategies,
        )
    except ValueError as exc:
        LOGGER.error("Inspection report failed: %s", exc)
        return 1
    LOGGER.info("Inspection HTML report written to %s", html_path)
    LOGGER.info("Inspection JSON report written to %s", json_path)
    return 0


def _run_explore(cfg: AppConfig) -> int:
    from .viewer import run_explorer

    return run_explorer(cfg)


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    try:
        if command == "build":
            return _run_build(cfg)
        if command == "validate":
            return _run_validate(cfg, with_topology=bool(args.with_topology))
        if command == "render-scenes":
            return _run_render_scenes(cfg, scenes=[int(item) for item in args.scene])
        if command == "inspect":
            return _run_inspect(
                cfg,
                year=args.year,
                strategies=[str(item) for item in args.strategy],
            )
        if command == "explore":
            return _run_explore(cfg)
    except DataLoadFailure as exc:
        LOGGER.error("Failed to load data: %s", exc)
        return 1
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
