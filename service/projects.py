"""Project folders and on-disk artifacts for create_shorts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import json
import logging
import os
import re
from pathlib import Path
from typing import Sequence, Tuple

from domain.shorts_video import (
    INPUT_FILE_CODE,
    INVALID_CONFIG_CODE,
    PROJECT_NOT_FOUND_CODE,
    ShortsScript,
    ShortsValidationError,
    parse_script,
    script_to_payload,
)
from service.render_plan import RenderPlan, render_plan_to_payload

LOGGER = logging.getLogger("create_shorts")

SCRIPT_FILE_NAME = "script.json"
PLAN_FILE_NAME = "plan.json"
CONFIG_FILE_NAME = "config.json"
VIDEO_FILE_NAME = "shorts.mp4"
PREVIEW_FILE_NAME = "preview.mp4"
CATEGORY_IMAGE_EXTENSIONS = (
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
    ".gif",
    ".bmp",
    ".heic",
    ".avif",
)
PREVIEW_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
DEFAULT_PREVIEW_INTERVAL_SECONDS = 2.5
UNSAFE_NAME_PATTERN = re.compile(r"[^0-9A-Za-z가-힣_-]")


@dataclass(frozen=True)
class ProjectConfig:
    """Per-project preview settings read from config.json."""

    image_dirs: Tuple[str, ...]
    image_interval_seconds: float
    title_main: str
    title_sub: str


def safe_project_name(name: str) -> str:
    """Replace characters that are unsafe in folder names."""
    return UNSAFE_NAME_PATTERN.sub("_", name.strip())


def create_project_folder(projects_dir: str, name: str, today: date) -> Path:
    """Create ``<projects_dir>/<YYYYMMDD>_<safe name>`` and return it."""
    if not name.strip():
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "project name must be non-empty"
        )
    folder = Path(projects_dir) / f"{today.strftime('%Y%m%d')}_{safe_project_name(name)}"
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def list_subdirectories(root_dir: str) -> list[str]:
    """List immediate subdirectory names, sorted."""
    root = Path(root_dir)
    if not root.is_dir():
        return []
    return sorted(entry.name for entry in root.iterdir() if entry.is_dir())


def list_categories(categories_dir: str) -> list[str]:
    """List image category folders."""
    return list_subdirectories(categories_dir)


def list_projects(projects_dir: str) -> list[str]:
    """List project folders."""
    return list_subdirectories(projects_dir)


def create_category_folder(categories_dir: str, category: str) -> Path:
    """Create an image folder for a category and return its absolute path."""
    if not category.strip():
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "category name must be non-empty"
        )
    folder = Path(categories_dir) / category.strip()
    folder.mkdir(parents=True, exist_ok=True)
    return folder.resolve()


def list_images(
    image_dir: str, extensions: Sequence[str] = CATEGORY_IMAGE_EXTENSIONS
) -> list[str]:
    """List image files in a folder as sorted absolute paths."""
    folder = Path(image_dir)
    if not folder.is_dir():
        return []
    return sorted(
        str(entry.resolve())
        for entry in folder.iterdir()
        if entry.is_file() and entry.suffix.lower() in extensions
    )


def list_category_images(categories_dir: str, category: str) -> list[str]:
    """List the images stored for a category."""
    return list_images(os.path.join(categories_dir, category))


def load_category_pools(categories_dir: str) -> dict[str, Tuple[str, ...]]:
    """Map every category folder to its images."""
    return {
        category: tuple(list_category_images(categories_dir, category))
        for category in list_categories(categories_dir)
    }


def list_images_in_dirs(image_dirs: Sequence[str]) -> list[str]:
    """Collect preview images from several folders, each sorted."""
    images: list[str] = []
    for image_dir in image_dirs:
        images.extend(list_images(image_dir, PREVIEW_IMAGE_EXTENSIONS))
    return images


def latest_project(projects_dir: str) -> Path | None:
    """Return the most recently modified project folder."""
    root = Path(projects_dir)
    if not root.is_dir():
        return None
    folders = [entry for entry in root.iterdir() if entry.is_dir()]
    if not folders:
        return None
    return max(folders, key=lambda entry: entry.stat().st_mtime)


def read_json_file(file_path: Path) -> object:
    """Read a UTF-8 JSON file."""
    try:
        with open(file_path, "r", encoding="utf-8") as file_handle:
            return json.load(file_handle)
    except FileNotFoundError as exc:
        raise ShortsValidationError(
            INPUT_FILE_CODE, f"file not found: {file_path}"
        ) from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ShortsValidationError(
            INPUT_FILE_CODE, f"file is not valid UTF-8 JSON: {file_path}"
        ) from exc


def write_json_file(file_path: Path, payload: object) -> Path:
    """Write a JSON payload with readable indentation."""
    with open(file_path, "w", encoding="utf-8") as file_handle:
        json.dump(payload, file_handle, ensure_ascii=False, indent=2)
    return file_path


def save_script(project_dir: Path, script: ShortsScript) -> Path:
    """Persist a script as script.json."""
    return write_json_file(project_dir / SCRIPT_FILE_NAME, script_to_payload(script))


def load_script(project_dir: Path) -> ShortsScript:
    """Load script.json from a project folder."""
    script_path = project_dir / SCRIPT_FILE_NAME
    if not script_path.is_file():
        raise ShortsValidationError(
            PROJECT_NOT_FOUND_CODE, f"script.json not found: {project_dir}"
        )
    return parse_script(read_json_file(script_path))


def save_render_plan(project_dir: Path, plan: RenderPlan) -> Path:
    """Persist a render plan as plan.json."""
    return write_json_file(project_dir / PLAN_FILE_NAME, render_plan_to_payload(plan))


def load_project_config(
    project_dir: Path, default_image_dirs: Sequence[str]
) -> ProjectConfig:
    """Read config.json, filling gaps from script.json and defaults."""
    config_path = project_dir / CONFIG_FILE_NAME
    raw: object = {}
    if config_path.is_file():
        raw = read_json_file(config_path)
    if not isinstance(raw, dict):
        raise ShortsValidationError(
            INPUT_FILE_CODE, f"config.json must be an object: {config_path}"
        )

    image_dirs = raw.get("imageDirs") or list(default_image_dirs)
    if not isinstance(image_dirs, list) or not all(
        isinstance(image_dir, str) for image_dir in image_dirs
    ):
        raise ShortsValidationError(
            INPUT_FILE_CODE, "config.json imageDirs must be a list of strings"
        )
    interval = raw.get("imageIntervalSeconds") or DEFAULT_PREVIEW_INTERVAL_SECONDS
    if isinstance(interval, bool) or not isinstance(interval, (int, float)):
        raise ShortsValidationError(
            INPUT_FILE_CODE, "config.json imageIntervalSeconds must be a number"
        )

    title_main = raw.get("titleMain") or ""
    title_sub = raw.get("titleSub") or ""
    if not title_main or not title_sub:
        script_path = project_dir / SCRIPT_FILE_NAME
        if script_path.is_file():
            script = parse_script(read_json_file(script_path))
            script_main, script_sub = script.display_titles()
            title_main = title_main or script_main
            title_sub = title_sub or script_sub

    return ProjectConfig(
        image_dirs=tuple(image_dirs),
        image_interval_seconds=float(interval),
        title_main=str(title_main),
        title_sub=str(title_sub),
    )


def cleanup_temp_files(temp_dir: str, pattern: str) -> int:
    """Delete files in ``temp_dir`` whose names contain ``pattern``."""
    folder = Path(temp_dir)
    if not folder.is_dir() or not pattern:
        return 0
    removed = 0
    for entry in folder.iterdir():
        if entry.is_file() and pattern in entry.name:
            entry.unlink()
            removed += 1
    LOGGER.info("create_shorts.cleanup: removed %s temp files", removed)
    return removed
