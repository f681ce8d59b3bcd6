"""Tests for speech synthesis helpers."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    INVALID_DURATION_CODE,
    InvalidDurationError,
    ShortsValidationError,
)
from service.speech import (
    AUDIO_FILE_CODE,
    EdgeSpeechSynthesizer,
    measure_durations,
    probe_audio_duration,
    synthesize_segments,
)


class FakeSynthesizer:
    """Write placeholder audio files."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def synthesize(self, text: str, output_path: str) -> str:
        self.calls.append((text, output_path))
        Path(output_path).write_bytes(text.encode("utf-8"))
        return output_path


def test_synthesize_segments_names_files_in_order(tmp_path: Path) -> None:
    synthesizer = FakeSynthesizer()
    temp_dir = tmp_path / "temp"

    paths = synthesize_segments(synthesizer, ["하나.", "둘."], str(temp_dir), "1700")

    assert paths == (
        str(temp_dir / "1700_segment_0.mp3"),
        str(temp_dir / "1700_segment_1.mp3"),
    )
    assert [text for text, _ in synthesizer.calls] == ["하나.", "둘."]
    assert all(Path(path).is_file() for path in paths)


def test_measure_durations_keeps_input_order() -> None:
    durations = {"a.mp3": 0.3, "b.mp3": 0.1, "c.mp3": 0.2}

    def probe(path: str) -> float:
        time.sleep(durations[path] / 10)
        return durations[path] * 10

    measured = measure_durations(["a.mp3", "b.mp3", "c.mp3"], probe=probe)

    assert [audio.audio_path for audio in measured] == ["a.mp3", "b.mp3", "c.mp3"]
    assert [audio.duration_seconds for audio in measured] == pytest.approx([3.0, 1.0, 2.0])


def test_measure_durations_rejects_zero_duration() -> None:
    with pytest.raises(InvalidDurationError) as exc_info:
        measure_durations(["a.mp3"], probe=lambda path: 0.0)

    assert exc_info.value.code == INVALID_DURATION_CODE


def test_measure_durations_empty_and_invalid_workers() -> None:
    assert measure_durations([], probe=lambda path: 1.0) == ()
    with pytest.raises(ShortsValidationError) as exc_info:
        measure_durations(["a.mp3"], probe=lambda path: 1.0, max_workers=0)

    assert exc_info.value.code == INVALID_CONFIG_CODE


def test_probe_missing_audio_file(tmp_path: Path) -> None:
    with pytest.raises(ShortsValidationError) as exc_info:
        probe_audio_duration(str(tmp_path / "missing.mp3"))

    assert exc_info.value.code == AUDIO_FILE_CODE


def test_edge_synthesizer_rejects_blank_input(tmp_path: Path) -> None:
    with pytest.raises(ShortsValidationError):
        EdgeSpeechSynthesizer(voice=" ")
    with pytest.raises(ShortsValidationError):
        EdgeSpeechSynthesizer().synthesize("  ", str(tmp_path / "out.mp3"))
