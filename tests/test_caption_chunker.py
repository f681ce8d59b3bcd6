"""Tests for caption chunking."""

from __future__ import annotations

import pytest

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    ScriptSegment,
    ShortsScript,
    ShortsValidationError,
)
from service.caption_chunker import (
    PunctuationKind,
    annotate_captions,
    chunk_captions,
    classify_punctuation_run,
    force_split,
    split_on_commas,
    split_sentences,
)

SAMPLE_TEXTS = (
    "이거 실화냐?! 진짜 미쳤어요.",
    "속도는 3.5초입니다.",
    "총 6,715대가 팔렸습니다. 놀랍죠?",
    "음... 그렇군요. 그런데, 이 차는 정말 대단합니다!",
    "빠르고, 조용하고, 저렴합니다.",
    "가" * 37,
    "Zero to sixty in 2.9 seconds, officially.",
)


def strip_whitespace(text_value: str) -> str:
    return "".join(text_value.split())


def test_terminator_run_stays_attached() -> None:
    assert chunk_captions("이거 실화냐?! 진짜 미쳤어요.", 10) == (
        "이거 실화냐?!",
        "진짜 미쳤어요.",
    )


def test_decimal_point_is_not_a_sentence_boundary() -> None:
    chunks = chunk_captions("속도는 3.5초입니다.", 10)

    assert chunks == ("속도는", "3.5초입니다.")
    assert not any(chunk.endswith("3.") for chunk in chunks)


def test_ellipsis_does_not_end_sentence() -> None:
    assert split_sentences("음... 그렇군요. 좋아요") == ("음... 그렇군요.", "좋아요")
    assert chunk_captions("음... 그렇군요.", 10) == ("음... 그렇군요.",)


def test_full_width_terminators_split_sentences() -> None:
    assert chunk_captions("안녕하세요。반갑습니다！", 10) == ("안녕하세요。", "반갑습니다！")


def test_long_sentence_splits_on_commas() -> None:
    assert chunk_captions("빠르고, 조용하고, 저렴합니다.", 10) == (
        "빠르고,",
        "조용하고,",
        "저렴합니다.",
    )


def test_thousands_separator_is_kept_intact() -> None:
    assert split_on_commas("총 6,715대가, 팔렸습니다") == ("총 6,715대가,", "팔렸습니다")
    assert chunk_captions("총 6,715대가 팔렸습니다.", 10) == (
        "총 6,715대가",
        "팔렸습니다.",
    )


def test_unsplittable_token_is_force_split() -> None:
    chunks = chunk_captions("가" * 80, 10)

    assert len(chunks) == 8
    assert all(len(chunk) == 10 for chunk in chunks)


def test_oversized_word_flushes_running_chunk_first() -> None:
    assert chunk_captions("가 " + "나" * 12, 10) == ("가", "나" * 10, "나" * 2)


def test_force_split_keeps_remainder() -> None:
    assert force_split("abcdefg", 3) == ("abc", "def", "g")


def test_empty_text_yields_no_chunks() -> None:
    assert chunk_captions("", 10) == ()
    assert chunk_captions("   ", 10) == ()


def test_punctuation_only_text_survives() -> None:
    assert chunk_captions("?!", 10) == ("?!",)
    assert chunk_captions("...", 10) == ("...",)


def test_invalid_max_chars_rejected() -> None:
    with pytest.raises(ShortsValidationError) as exc_info:
        chunk_captions("hello", 0)

    assert exc_info.value.code == INVALID_CONFIG_CODE


@pytest.mark.parametrize("text_value", SAMPLE_TEXTS)
@pytest.mark.parametrize("max_chars", [1, 4, 10, 25])
def test_chunks_respect_limit_and_preserve_characters(
    text_value: str, max_chars: int
) -> None:
    chunks = chunk_captions(text_value, max_chars)

    assert all(0 < len(chunk) <= max_chars for chunk in chunks)
    assert strip_whitespace("".join(chunks)) == strip_whitespace(text_value)


def test_classify_punctuation_runs() -> None:
    text_value = "3.5 끝. 음.. 와?!"

    assert classify_punctuation_run(text_value, 1, 2) == PunctuationKind.DECIMAL_POINT
    assert classify_punctuation_run(text_value, 5, 6) == PunctuationKind.TERMINATOR
    assert classify_punctuation_run(text_value, 8, 10) == PunctuationKind.ELLIPSIS
    assert classify_punctuation_run(text_value, 12, 14) == PunctuationKind.TERMINATOR


def test_four_periods_terminate() -> None:
    assert split_sentences("잠깐.... 다음") == ("잠깐....", "다음")


def test_annotate_captions_fills_every_segment() -> None:
    script = ShortsScript(
        title="제목",
        narration="이거 실화냐?! 진짜 미쳤어요. 좋아요.",
        segments=(
            ScriptSegment(text="이거 실화냐?! 진짜 미쳤어요.", duration_seconds=3.0),
            ScriptSegment(text="좋아요.", duration_seconds=1.0),
        ),
    )

    annotated = annotate_captions(script, 10)

    assert annotated.segments[0].captions == ("이거 실화냐?!", "진짜 미쳤어요.")
    assert annotated.segments[1].captions == ("좋아요.",)
    assert script.segments[0].captions == ()
