"""Speech synthesis and audio measurement for create_shorts."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import ModuleType
from typing import Callable, Protocol, Sequence, Tuple

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    InvalidDurationError,
    SegmentAudio,
    ShortsPipelineError,
    ShortsValidationError,
)

LOGGER = logging.getLogger("create_shorts")

AUDIO_FILE_CODE = "create_shorts.input.audio_track"
FFPROBE_NOT_FOUND_CODE = "create_shorts.ffmpeg.ffprobe_not_found"
FFPROBE_EXEC_CODE = "create_shorts.ffmpeg.exec_error"
FFPROBE_PROBE_CODE = "create_shorts.ffmpeg.probe_error"
SPEECH_SYNTHESIS_CODE = "create_shorts.speech.failed"
SPEECH_DEPENDENCY_CODE = "create_shorts.dependency.edge_tts"
DEFAULT_VOICE = "ko-KR-SunHiNeural"
DEFAULT_MEASURE_WORKERS = 4


class SpeechSynthesizer(Protocol):
    """Anything that writes spoken audio for text to a file."""

    def synthesize(self, text: str, output_path: str) -> str:
        ...


def load_edge_tts_module() -> ModuleType:
    """Import edge-tts."""
    try:
        import edge_tts
    except Exception as exc:
        raise ShortsPipelineError(
            SPEECH_DEPENDENCY_CODE, f"edge-tts is unavailable: {exc}"
        ) from exc
    return edge_tts


class EdgeSpeechSynthesizer:
    """Speech synthesizer using Microsoft Edge neural voices."""

    def __init__(
        self, voice: str = DEFAULT_VOICE, rate: str = "+0%", pitch: str = "+0Hz"
    ) -> None:
        if not voice.strip():
            raise ShortsValidationError(INVALID_CONFIG_CODE, "voice must be non-empty")
        self.voice = voice
        self.rate = rate
        self.pitch = pitch

    async def _save(self, text: str, output_path: str) -> None:
        edge_tts = load_edge_tts_module()
        communicate = edge_tts.Communicate(
            text=text, voice=self.voice, rate=self.rate, pitch=self.pitch
        )
        await communicate.save(output_path)

    def synthesize(self, text: str, output_path: str) -> str:
        if not text.strip():
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "cannot synthesize empty text"
            )
        try:
            asyncio.run(self._save(text, output_path))
        except ShortsPipelineError:
            raise
        except Exception as exc:
            raise ShortsPipelineError(
                SPEECH_SYNTHESIS_CODE, f"edge-tts failed: {exc}"
            ) from exc
        if not os.path.isfile(output_path):
            raise ShortsPipelineError(
                SPEECH_SYNTHESIS_CODE, f"edge-tts produced no audio: {output_path}"
            )
        return output_path


def synthesize_segments(
    synthesizer: SpeechSynthesizer,
    texts: Sequence[str],
    temp_dir: str,
    prefix: str,
) -> Tuple[str, ...]:
    """Synthesize one audio file per segment text, in script order."""
    Path(temp_dir).mkdir(parents=True, exist_ok=True)
    audio_paths: list[str] = []
    for index, text in enumerate(texts):
        output_path = os.path.join(temp_dir, f"{prefix}_segment_{index}.mp3")
        audio_paths.append(synthesizer.synthesize(text, output_path))
        LOGGER.info(
            "create_shorts.speech.segment: %s/%s -> %s",
            index + 1,
            len(texts),
            output_path,
        )
    return tuple(audio_paths)


def ensure_ffprobe_available() -> str:
    """Ensure ffprobe is installed and executable."""
    ffprobe_path = shutil.which("ffprobe")
    if not ffprobe_path:
        raise ShortsPipelineError(FFPROBE_NOT_FOUND_CODE, "ffprobe not on PATH")
    try:
        subprocess.run(
            [ffprobe_path, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except Exception as exc:
        raise ShortsPipelineError(
            FFPROBE_EXEC_CODE, "ffprobe exists but could not be executed"
        ) from exc
    return ffprobe_path


def probe_audio_duration(audio_path: str) -> float:
    """Return the audio duration in seconds for the provided file."""
    if not os.path.isfile(audio_path):
        raise ShortsValidationError(
            AUDIO_FILE_CODE, f"audio track not found: {audio_path}"
        )
    ffprobe_path = ensure_ffprobe_available()
    result = subprocess.run(
        [
            ffprobe_path,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            audio_path,
        ],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise ShortsPipelineError(
            FFPROBE_PROBE_CODE,
            f"ffprobe failed for audio track: {result.stderr.strip()}",
        )
    try:
        duration_seconds = float(result.stdout.strip())
    except ValueError as exc:
        raise ShortsValidationError(
            AUDIO_FILE_CODE, f"audio track duration unavailable: {audio_path}"
        ) from exc
    if duration_seconds <= 0:
        raise InvalidDurationError(f"audio track duration invalid: {audio_path}")
    return duration_seconds


def measure_durations(
    audio_paths: Sequence[str],
    probe: Callable[[str], float] = probe_audio_duration,
    max_workers: int = DEFAULT_MEASURE_WORKERS,
) -> Tuple[SegmentAudio, ...]:
    """Measure every audio file concurrently; results keep input order."""
    if max_workers <= 0:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "max_workers must be positive"
        )
    if not audio_paths:
        return ()
    with ThreadPoolExecutor(max_workers=min(max_workers, len(audio_paths))) as executor:
        durations = list(executor.map(probe, audio_paths))
    return tuple(
        SegmentAudio(audio_path=path, duration_seconds=duration)
        for path, duration in zip(audio_paths, durations)
    )
