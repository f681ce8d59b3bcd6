"""Tests for project folders and artifacts."""

from __future__ import annotations

import json
import os
from datetime import date
from pathlib import Path

import pytest

from domain.shorts_video import (
    INPUT_FILE_CODE,
    PROJECT_NOT_FOUND_CODE,
    ScriptSegment,
    ShortsScript,
    ShortsValidationError,
    parse_category,
)
from service.projects import (
    DEFAULT_PREVIEW_INTERVAL_SECONDS,
    cleanup_temp_files,
    create_category_folder,
    create_project_folder,
    latest_project,
    list_categories,
    list_category_images,
    list_images_in_dirs,
    list_projects,
    load_category_pools,
    load_project_config,
    load_script,
    safe_project_name,
    save_render_plan,
    save_script,
)
from service.render_plan import SegmentTimeline, build_render_plan


def build_script() -> ShortsScript:
    return ShortsScript(
        title="레이 vs 캐스퍼\n승자는?",
        narration="전체",
        segments=(
            ScriptSegment(
                text="레이는 넓습니다.",
                duration_seconds=3.0,
                category=parse_category("ray"),
                captions=("레이는 넓습니다.",),
            ),
        ),
    )


def test_project_folder_is_dated_and_sanitized(tmp_path: Path) -> None:
    folder = create_project_folder(str(tmp_path), "레이 vs 캐스퍼!", date(2025, 1, 15))

    assert folder.name == "20250115_레이_vs_캐스퍼_"
    assert folder.is_dir()
    assert safe_project_name(" a/b ") == "a_b"


def test_blank_project_name_rejected(tmp_path: Path) -> None:
    with pytest.raises(ShortsValidationError):
        create_project_folder(str(tmp_path), " ", date(2025, 1, 15))


def test_category_listing_and_pools(tmp_path: Path) -> None:
    ray_dir = create_category_folder(str(tmp_path), "ray")
    create_category_folder(str(tmp_path), "casper")
    (ray_dir / "b.PNG").write_bytes(b"x")
    (ray_dir / "a.jpg").write_bytes(b"x")
    (ray_dir / "notes.txt").write_text("skip", encoding="utf-8")

    assert list_categories(str(tmp_path)) == ["casper", "ray"]
    assert list_category_images(str(tmp_path), "ray") == [
        str((ray_dir / "a.jpg").resolve()),
        str((ray_dir / "b.PNG").resolve()),
    ]
    assert load_category_pools(str(tmp_path))["casper"] == ()
    assert list_categories(str(tmp_path / "missing")) == []


def test_preview_images_skip_unsupported_extensions(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    (first / "2.png").write_bytes(b"x")
    (first / "1.webp").write_bytes(b"x")
    (second / "0.gif").write_bytes(b"x")
    (second / "3.jpeg").write_bytes(b"x")

    images = list_images_in_dirs([str(first), str(second)])

    assert [Path(image).name for image in images] == ["1.webp", "2.png", "3.jpeg"]


def test_script_round_trip(tmp_path: Path) -> None:
    script = build_script()

    save_script(tmp_path, script)
    stored = json.loads((tmp_path / "script.json").read_text(encoding="utf-8"))

    assert stored["segments"][0]["category"] == "ray"
    assert "레이는" in (tmp_path / "script.json").read_text(encoding="utf-8")
    assert load_script(tmp_path) == script


def test_load_script_missing(tmp_path: Path) -> None:
    with pytest.raises(ShortsValidationError) as exc_info:
        load_script(tmp_path)

    assert exc_info.value.code == PROJECT_NOT_FOUND_CODE


def test_load_script_invalid_json(tmp_path: Path) -> None:
    (tmp_path / "script.json").write_text("{broken", encoding="utf-8")

    with pytest.raises(ShortsValidationError) as exc_info:
        load_script(tmp_path)

    assert exc_info.value.code == INPUT_FILE_CODE


def test_save_render_plan(tmp_path: Path) -> None:
    plan = build_render_plan([SegmentTimeline(text="a", duration_seconds=1.0)])

    path = save_render_plan(tmp_path, plan)

    assert json.loads(path.read_text(encoding="utf-8"))["total_frames"] == 30


def test_project_config_defaults_to_script_titles(tmp_path: Path) -> None:
    save_script(tmp_path, build_script())

    config = load_project_config(tmp_path, ["assets/images"])

    assert config.image_dirs == ("assets/images",)
    assert config.image_interval_seconds == DEFAULT_PREVIEW_INTERVAL_SECONDS
    assert (config.title_main, config.title_sub) == ("레이 vs 캐스퍼", "승자는?")


def test_project_config_overrides(tmp_path: Path) -> None:
    save_script(tmp_path, build_script())
    (tmp_path / "config.json").write_text(
        json.dumps(
            {"imageDirs": ["x"], "imageIntervalSeconds": 4, "titleMain": "위"}
        ),
        encoding="utf-8",
    )

    config = load_project_config(tmp_path, ["assets/images"])

    assert config.image_dirs == ("x",)
    assert config.image_interval_seconds == 4.0
    assert (config.title_main, config.title_sub) == ("위", "승자는?")


def test_project_config_rejects_bad_interval(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text(
        json.dumps({"imageIntervalSeconds": "fast"}), encoding="utf-8"
    )

    with pytest.raises(ShortsValidationError) as exc_info:
        load_project_config(tmp_path, [])

    assert exc_info.value.code == INPUT_FILE_CODE


def test_latest_project_and_listing(tmp_path: Path) -> None:
    older = create_project_folder(str(tmp_path), "old", date(2025, 1, 1))
    newer = create_project_folder(str(tmp_path), "new", date(2025, 1, 2))
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    assert latest_project(str(tmp_path)) == newer
    assert list_projects(str(tmp_path)) == ["20250101_old", "20250102_new"]
    assert latest_project(str(tmp_path / "none")) is None


def test_cleanup_temp_files_matches_run_id(tmp_path: Path) -> None:
    (tmp_path / "123_segment_0.mp3").write_bytes(b"x")
    (tmp_path / "123_segment_1.mp3").write_bytes(b"x")
    (tmp_path / "456_segment_0.mp3").write_bytes(b"x")

    removed = cleanup_temp_files(str(tmp_path), "123")

    assert removed == 2
    assert [entry.name for entry in tmp_path.iterdir()] == ["456_segment_0.mp3"]
    assert cleanup_temp_files(str(tmp_path / "missing"), "123") == 0
