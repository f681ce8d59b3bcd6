#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10.1",
#   "google-genai>=1.0",
#   "edge-tts>=6.1",
# ]
# ///
"""Generate short vertical videos: script, speech, captions and slides."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Sequence

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    PROJECT_NOT_FOUND_CODE,
    ShortsConfig,
    ShortsPipelineError,
    ShortsValidationError,
)
from service.asset_server import (
    DEFAULT_ASSET_HOST,
    DEFAULT_ASSET_PORT,
    start_asset_server,
)
from service.projects import (
    list_categories,
    list_images,
    list_images_in_dirs,
    load_category_pools,
    load_project_config,
)
from service.render_plan import render_plan_to_payload
from service.script_generation import GeminiTextGenerator
from service.shorts_pipeline import PreviewOptions, ShortsPipeline, ShortsRequest
from service.speech import EdgeSpeechSynthesizer

LOGGER = logging.getLogger("create_shorts")

LOG_LEVEL_ENV = "SHORTS_LOG_LEVEL"
API_KEY_ENV = "GEMINI_API_KEY"
DEFAULT_IMAGES_DIR = "assets/images"


def configure_logging(env: Mapping[str, str]) -> None:
    """Configure logging for CLI output from the environment."""
    level_name = env.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    level = logging.INFO
    if level_name == "DEBUG":
        level = logging.DEBUG
    elif level_name == "WARNING":
        level = logging.WARNING
    elif level_name == "ERROR":
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(message)s")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw_value = env.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value)
    except ValueError as exc:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, f"{name} must be an integer"
        ) from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw_value = env.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return float(raw_value)
    except ValueError as exc:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, f"{name} must be a number"
        ) from exc


def load_config(env: Mapping[str, str]) -> ShortsConfig:
    """Build the configuration from ``SHORTS_*`` environment variables."""
    defaults = ShortsConfig()
    return ShortsConfig(
        fps=_env_int(env, "SHORTS_FPS", defaults.fps),
        caption_max_chars=_env_int(
            env, "SHORTS_CAPTION_MAX_CHARS", defaults.caption_max_chars
        ),
        image_interval_seconds=_env_float(
            env, "SHORTS_IMAGE_INTERVAL_SECONDS", defaults.image_interval_seconds
        ),
        segment_count=_env_int(env, "SHORTS_SEGMENT_COUNT", defaults.segment_count),
        max_duration_seconds=_env_float(
            env, "SHORTS_MAX_DURATION_SECONDS", defaults.max_duration_seconds
        ),
        projects_dir=env.get("SHORTS_PROJECTS_DIR", defaults.projects_dir),
        categories_dir=env.get("SHORTS_CATEGORIES_DIR", defaults.categories_dir),
        temp_dir=env.get("SHORTS_TEMP_DIR", defaults.temp_dir),
        font_path=env.get("SHORTS_FONT_PATH", defaults.font_path),
        voice=env.get("SHORTS_VOICE", defaults.voice),
        model=env.get("SHORTS_MODEL", defaults.model),
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per workflow."""
    parser = argparse.ArgumentParser(prog="create_shorts.py", add_help=True)
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="generate a full video")
    create_parser.add_argument("topic")
    create_parser.add_argument("--images-dir", default=DEFAULT_IMAGES_DIR)
    create_parser.add_argument("--project-name", default=None)
    create_parser.add_argument("--max-duration", type=float, default=None)
    create_parser.add_argument("--segments", type=int, default=None)
    create_parser.add_argument("--image-interval", type=float, default=None)
    create_parser.add_argument("--font", default=None)

    script_parser = subparsers.add_parser("script", help="generate a script only")
    script_parser.add_argument("topic")
    script_parser.add_argument("--project-name", default=None)
    script_parser.add_argument("--max-duration", type=float, default=None)
    script_parser.add_argument("--segments", type=int, default=None)

    preview_parser = subparsers.add_parser(
        "preview", help="render a silent preview of a saved script"
    )
    preview_parser.add_argument("project_dir")
    preview_parser.add_argument("--images-dir", action="append", default=None)
    preview_parser.add_argument("--image-interval", type=float, default=None)

    plan_parser = subparsers.add_parser(
        "plan", help="print the render plan for a saved script"
    )
    plan_parser.add_argument("project_dir")
    plan_parser.add_argument("--images-dir", action="append", default=None)
    plan_parser.add_argument("--image-interval", type=float, default=None)

    subparsers.add_parser("categories", help="list image categories")

    serve_parser = subparsers.add_parser("serve", help="serve a folder over HTTP")
    serve_parser.add_argument("root_dir")
    serve_parser.add_argument("--host", default=DEFAULT_ASSET_HOST)
    serve_parser.add_argument("--port", type=int, default=DEFAULT_ASSET_PORT)
    return parser


def require_project_dir(raw_path: str) -> Path:
    project_dir = Path(raw_path)
    if not project_dir.is_dir():
        raise ShortsValidationError(
            PROJECT_NOT_FOUND_CODE, f"project folder not found: {raw_path}"
        )
    return project_dir


def run_create(
    args: argparse.Namespace, config: ShortsConfig, env: Mapping[str, str]
) -> int:
    images = list_images(args.images_dir)
    if not images:
        LOGGER.warning(
            "create_shorts.images.empty: no images in %s, rendering without slides",
            args.images_dir,
        )
    pipeline = ShortsPipeline(
        config,
        text_generator=GeminiTextGenerator(env.get(API_KEY_ENV, ""), config.model),
        synthesizer=EdgeSpeechSynthesizer(config.voice),
    )
    result = pipeline.create_shorts(
        ShortsRequest(
            topic=args.topic,
            images=tuple(images),
            images_by_category=load_category_pools(config.categories_dir),
            project_name=args.project_name,
            max_duration_seconds=args.max_duration,
            font_path=args.font,
            segment_count=args.segments,
            image_interval_seconds=args.image_interval,
        )
    )
    print(result.video_path)
    return 0


def run_script(
    args: argparse.Namespace, config: ShortsConfig, env: Mapping[str, str]
) -> int:
    pipeline = ShortsPipeline(
        config,
        text_generator=GeminiTextGenerator(env.get(API_KEY_ENV, ""), config.model),
    )
    result = pipeline.generate_script_only(
        args.topic,
        project_name=args.project_name,
        segment_count=args.segments,
        max_duration_seconds=args.max_duration,
        categories=list_categories(config.categories_dir),
    )
    print(result.script_path)
    return 0


def resolve_preview_images(
    project_dir: Path, image_dirs: Sequence[str] | None
) -> tuple[list[str], float, str, str]:
    project_config = load_project_config(project_dir, image_dirs or [DEFAULT_IMAGES_DIR])
    dirs = image_dirs or list(project_config.image_dirs)
    return (
        list_images_in_dirs(dirs),
        project_config.image_interval_seconds,
        project_config.title_main,
        project_config.title_sub,
    )


def run_preview(args: argparse.Namespace, config: ShortsConfig) -> int:
    project_dir = require_project_dir(args.project_dir)
    images, interval, title_main, title_sub = resolve_preview_images(
        project_dir, args.images_dir
    )
    result = ShortsPipeline(config).preview_from_script(
        project_dir,
        images,
        PreviewOptions(
            image_interval_seconds=args.image_interval or interval,
            title_main=title_main,
            title_sub=title_sub,
        ),
    )
    print(result.preview_path)
    return 0


def run_plan(args: argparse.Namespace, config: ShortsConfig) -> int:
    project_dir = require_project_dir(args.project_dir)
    images = list_images_in_dirs(args.images_dir) if args.images_dir else []
    _, plan = ShortsPipeline(config).plan_from_script(
        project_dir,
        images,
        args.image_interval,
        load_category_pools(config.categories_dir),
    )
    print(json.dumps(render_plan_to_payload(plan), ensure_ascii=False, indent=2))
    return 0


def run_categories(config: ShortsConfig) -> int:
    for category in list_categories(config.categories_dir):
        print(category)
    return 0


def run_serve(args: argparse.Namespace) -> int:
    server = start_asset_server(args.root_dir, host=args.host, port=args.port)
    print(server.base_url, flush=True)
    server.serve_until_interrupted()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    env = os.environ
    configure_logging(env)
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)

    try:
        config = load_config(env)
        if args.command == "create":
            return run_create(args, config, env)
        if args.command == "script":
            return run_script(args, config, env)
        if args.command == "preview":
            return run_preview(args, config)
        if args.command == "plan":
            return run_plan(args, config)
        if args.command == "categories":
            return run_categories(config)
        if args.command == "serve":
            return run_serve(args)
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, f"unknown command: {args.command}"
        )
    except ShortsValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except ShortsPipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("create_shorts.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
