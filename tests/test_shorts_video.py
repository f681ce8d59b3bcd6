"""Tests for create_shorts domain types."""

from __future__ import annotations

import pytest

from domain.shorts_video import (
    INVALID_CATEGORY_CODE,
    INVALID_CONFIG_CODE,
    INVALID_DURATION_CODE,
    INVALID_SCRIPT_CODE,
    SHARED_CATEGORY,
    CategoryKind,
    SegmentAudio,
    SegmentCategory,
    ShortsConfig,
    ShortsValidationError,
    parse_category,
    parse_script,
    resolve_segment_images,
    script_to_payload,
)


@pytest.mark.parametrize("raw_value", [None, "", "  ", "both", "BOTH"])
def test_shared_category_tags(raw_value: object) -> None:
    assert parse_category(raw_value) == SHARED_CATEGORY


def test_named_category_tag() -> None:
    category = parse_category(" 캐스퍼 ")

    assert category == SegmentCategory(kind=CategoryKind.NAMED, name="캐스퍼")
    assert category.tag == "캐스퍼"
    assert SHARED_CATEGORY.tag == "both"


def test_non_string_category_rejected() -> None:
    with pytest.raises(ShortsValidationError) as exc_info:
        parse_category(3)

    assert exc_info.value.code == INVALID_CATEGORY_CODE


def test_named_category_requires_name() -> None:
    with pytest.raises(ShortsValidationError):
        SegmentCategory(kind=CategoryKind.NAMED)


def test_resolve_images_by_category() -> None:
    pools = {"ray": ("ray1.png", "ray2.png"), "empty": ()}
    global_images = ("g.png",)

    assert resolve_segment_images(SHARED_CATEGORY, global_images, pools) == (
        ("g.png",),
        False,
    )
    assert resolve_segment_images(parse_category("ray"), global_images, pools) == (
        ("ray1.png", "ray2.png"),
        False,
    )
    assert resolve_segment_images(parse_category("empty"), global_images, pools) == (
        ("g.png",),
        True,
    )
    assert resolve_segment_images(parse_category("morning"), global_images, pools) == (
        ("g.png",),
        True,
    )


def test_parse_script_accepts_legacy_keys() -> None:
    script = parse_script(
        {
            "title": "경차 대결\n레이 vs 캐스퍼",
            "script": "전체",
            "segments": [
                {"text": "첫 문장.", "duration": 3, "car": "ray"},
                {"text": "둘째.", "duration": 2.5, "captions": ["둘째."]},
            ],
        }
    )

    assert script.segments[0].category.tag == "ray"
    assert script.segments[1].category == SHARED_CATEGORY
    assert script.segments[1].captions == ("둘째.",)
    assert script.total_estimated_seconds == pytest.approx(5.5)
    assert script.display_titles() == ("경차 대결", "레이 vs 캐스퍼")


def test_explicit_title_lines_win() -> None:
    script = parse_script(
        {
            "title": "한 줄 제목",
            "titleMain": "위",
            "titleSub": "아래",
            "segments": [{"text": "a", "duration": 1}],
        }
    )

    assert script.display_titles() == ("위", "아래")


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"segments": [{"text": "a", "duration": 1}]},
        {"title": "t", "segments": []},
        {"title": "t", "segments": [{"text": "a", "duration": "1"}]},
        {"title": "t", "segments": [{"text": "a", "duration": True}]},
        {"title": "t", "segments": [{"duration": 1}]},
        {"title": "t", "segments": [{"text": "a", "duration": -1}]},
        {"title": "t", "segments": [{"text": "a", "duration": 1, "subtitles": [1]}]},
    ],
)
def test_malformed_script_rejected(payload: object) -> None:
    with pytest.raises(ShortsValidationError) as exc_info:
        parse_script(payload)

    assert exc_info.value.code == INVALID_SCRIPT_CODE


def test_script_payload_round_trip_keeps_categories() -> None:
    payload = {
        "title": "t",
        "script": "s",
        "titleMain": "m",
        "segments": [
            {"text": "a", "duration": 1.0, "category": "ray", "subtitles": ["a"]},
            {"text": "b", "duration": 2.0, "category": "both", "subtitles": []},
        ],
    }

    assert script_to_payload(parse_script(payload)) == payload


def test_segment_audio_rejects_non_positive_duration() -> None:
    with pytest.raises(ShortsValidationError) as exc_info:
        SegmentAudio(audio_path="a.mp3", duration_seconds=0.0)

    assert exc_info.value.code == INVALID_DURATION_CODE


@pytest.mark.parametrize(
    "overrides",
    [
        {"fps": 0},
        {"caption_max_chars": 0},
        {"image_interval_seconds": 0.0},
        {"segment_count": 0},
        {"max_duration_seconds": -1.0},
        {"temp_dir": " "},
        {"font_path": ""},
    ],
)
def test_config_validation(overrides: dict[str, object]) -> None:
    with pytest.raises(ShortsValidationError) as exc_info:
        ShortsConfig(**overrides)

    assert exc_info.value.code == INVALID_CONFIG_CODE


def test_config_allows_missing_font() -> None:
    assert ShortsConfig(font_path=None).font_path is None
