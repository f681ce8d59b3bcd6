"""Domain types and parsing for create_shorts."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import math
from typing import Mapping, Sequence, Tuple

INVALID_CONFIG_CODE = "create_shorts.input.invalid_config"
INVALID_DURATION_CODE = "create_shorts.input.invalid_duration"
INVALID_SCRIPT_CODE = "create_shorts.input.invalid_script"
INVALID_CATEGORY_CODE = "create_shorts.input.invalid_category"
EMPTY_TEXT_CODE = "create_shorts.input.empty_text"
INPUT_FILE_CODE = "create_shorts.input.file_error"
PROJECT_NOT_FOUND_CODE = "create_shorts.input.project_not_found"

DEFAULT_FPS = 30
DEFAULT_CAPTION_MAX_CHARS = 10
DEFAULT_IMAGE_INTERVAL_SECONDS = 3.0
DEFAULT_SEGMENT_COUNT = 3
DEFAULT_MAX_DURATION_SECONDS = 60.0
SHARED_CATEGORY_TAG = "both"


class ShortsValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class InvalidDurationError(ShortsValidationError):
    """Raised when a duration cannot map to a non-empty frame range."""

    def __init__(self, message: str) -> None:
        super().__init__(INVALID_DURATION_CODE, message)


class ShortsPipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class CategoryKind(str, Enum):
    """Closed set of segment category variants."""

    SHARED = "shared"
    NAMED = "named"


@dataclass(frozen=True)
class SegmentCategory:
    """Image category a segment illustrates.

    SHARED segments use the global image pool. NAMED segments select the
    pool stored under ``name`` and fall back to the global pool when it is
    missing or empty.
    """

    kind: CategoryKind
    name: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, CategoryKind):
            raise ShortsValidationError(
                INVALID_CATEGORY_CODE, "category kind is invalid"
            )
        if self.kind == CategoryKind.NAMED:
            if self.name is None or not self.name.strip():
                raise ShortsValidationError(
                    INVALID_CATEGORY_CODE, "named category requires a name"
                )
        elif self.name is not None:
            raise ShortsValidationError(
                INVALID_CATEGORY_CODE, "shared category must not carry a name"
            )

    @property
    def tag(self) -> str:
        """Return the serialized tag for this category."""
        if self.kind == CategoryKind.NAMED and self.name is not None:
            return self.name
        return SHARED_CATEGORY_TAG


SHARED_CATEGORY = SegmentCategory(kind=CategoryKind.SHARED)


def parse_category(raw_value: object) -> SegmentCategory:
    """Parse a raw category tag into a SegmentCategory."""
    if raw_value is None:
        return SHARED_CATEGORY
    if not isinstance(raw_value, str):
        raise ShortsValidationError(
            INVALID_CATEGORY_CODE, f"category tag must be a string: {raw_value!r}"
        )
    normalized = raw_value.strip()
    if not normalized or normalized.lower() == SHARED_CATEGORY_TAG:
        return SHARED_CATEGORY
    return SegmentCategory(kind=CategoryKind.NAMED, name=normalized)


@dataclass(frozen=True)
class ScriptSegment:
    """One narration unit of a script."""

    text: str
    duration_seconds: float
    category: SegmentCategory = SHARED_CATEGORY
    captions: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise ShortsValidationError(
                INVALID_SCRIPT_CODE, "segment text must be a string"
            )
        if not math.isfinite(self.duration_seconds) or self.duration_seconds < 0:
            raise ShortsValidationError(
                INVALID_SCRIPT_CODE, "segment duration must be non-negative"
            )

    def with_captions(self, captions: Sequence[str]) -> "ScriptSegment":
        """Return a copy annotated with caption chunks."""
        return replace(self, captions=tuple(captions))


@dataclass(frozen=True)
class ShortsScript:
    """A generated narration script."""

    title: str
    narration: str
    segments: Tuple[ScriptSegment, ...]
    title_main: str = ""
    title_sub: str = ""

    def __post_init__(self) -> None:
        if not self.segments:
            raise ShortsValidationError(
                INVALID_SCRIPT_CODE, "script contains no segments"
            )

    @property
    def total_estimated_seconds(self) -> float:
        return sum(segment.duration_seconds for segment in self.segments)

    def display_titles(self) -> Tuple[str, str]:
        """Return the main and sub title lines."""
        if self.title_main:
            return self.title_main, self.title_sub
        parts = self.title.split("\n", 1)
        main = parts[0].strip()
        sub = parts[1].strip() if len(parts) > 1 else ""
        return main, sub

    def with_segments(self, segments: Sequence[ScriptSegment]) -> "ShortsScript":
        """Return a copy with replaced segments."""
        return replace(self, segments=tuple(segments))


@dataclass(frozen=True)
class SegmentAudio:
    """Synthesized speech for one segment with its measured duration."""

    audio_path: str
    duration_seconds: float

    def __post_init__(self) -> None:
        if not self.audio_path.strip():
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "audio_path must be non-empty"
            )
        if not math.isfinite(self.duration_seconds) or self.duration_seconds <= 0:
            raise InvalidDurationError(
                f"audio duration must be positive: {self.audio_path}"
            )


@dataclass(frozen=True)
class ShortsConfig:
    """Validated configuration for create_shorts."""

    fps: int = DEFAULT_FPS
    caption_max_chars: int = DEFAULT_CAPTION_MAX_CHARS
    image_interval_seconds: float = DEFAULT_IMAGE_INTERVAL_SECONDS
    segment_count: int = DEFAULT_SEGMENT_COUNT
    max_duration_seconds: float = DEFAULT_MAX_DURATION_SECONDS
    projects_dir: str = "assets/projects"
    categories_dir: str = "assets/vehicles"
    temp_dir: str = "temp"
    font_path: str | None = "assets/fonts/Jalnan2TTF.ttf"
    voice: str = "ko-KR-SunHiNeural"
    model: str = "gemini-2.5-flash"

    def __post_init__(self) -> None:
        if self.fps <= 0:
            raise ShortsValidationError(INVALID_CONFIG_CODE, "fps must be positive")
        if self.caption_max_chars <= 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "caption_max_chars must be positive"
            )
        if (
            not math.isfinite(self.image_interval_seconds)
            or self.image_interval_seconds <= 0
        ):
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "image_interval_seconds must be positive"
            )
        if self.segment_count <= 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "segment_count must be positive"
            )
        if self.max_duration_seconds <= 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "max_duration_seconds must be positive"
            )
        for label, value in (
            ("projects_dir", self.projects_dir),
            ("categories_dir", self.categories_dir),
            ("temp_dir", self.temp_dir),
            ("voice", self.voice),
            ("model", self.model),
        ):
            if not value.strip():
                raise ShortsValidationError(
                    INVALID_CONFIG_CODE, f"{label} must be non-empty"
                )
        if self.font_path is not None and not self.font_path.strip():
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "font_path must be non-empty"
            )


def resolve_segment_images(
    category: SegmentCategory,
    global_images: Sequence[str],
    images_by_category: Mapping[str, Sequence[str]],
) -> Tuple[Tuple[str, ...], bool]:
    """Select the image pool for a segment.

    Returns the pool and whether a NAMED category fell back to the global
    pool because no matching non-empty pool exists.
    """
    if category.kind == CategoryKind.SHARED:
        return tuple(global_images), False
    if category.kind == CategoryKind.NAMED:
        pool = images_by_category.get(category.name or "")
        if pool:
            return tuple(pool), False
        return tuple(global_images), True
    raise ShortsValidationError(
        INVALID_CATEGORY_CODE, f"unsupported category kind: {category.kind!r}"
    )


def _require_number(value: object, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE, f"{label} must be a number"
        )
    return float(value)


def _optional_string(payload: Mapping[str, object], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ShortsValidationError(INVALID_SCRIPT_CODE, f"{key} must be a string")
    return value


def parse_script_segment(payload: object, index: int) -> ScriptSegment:
    """Parse one segment record of a script payload."""
    if not isinstance(payload, Mapping):
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE, f"segment {index} must be an object"
        )
    text = payload.get("text")
    if not isinstance(text, str):
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE, f"segment {index} text must be a string"
        )
    duration = _require_number(payload.get("duration"), f"segment {index} duration")
    raw_category = payload.get("category", payload.get("car"))
    captions_value = payload.get("subtitles", payload.get("captions", ()))
    if captions_value is None:
        captions_value = ()
    if not isinstance(captions_value, (list, tuple)) or not all(
        isinstance(caption, str) for caption in captions_value
    ):
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE, f"segment {index} subtitles must be strings"
        )
    return ScriptSegment(
        text=text,
        duration_seconds=duration,
        category=parse_category(raw_category),
        captions=tuple(captions_value),
    )


def parse_script(payload: object) -> ShortsScript:
    """Parse a script JSON object into a ShortsScript."""
    if not isinstance(payload, Mapping):
        raise ShortsValidationError(INVALID_SCRIPT_CODE, "script must be an object")
    title = payload.get("title")
    if not isinstance(title, str):
        raise ShortsValidationError(INVALID_SCRIPT_CODE, "title must be a string")
    segments_value = payload.get("segments")
    if not isinstance(segments_value, list) or not segments_value:
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE, "segments must be a non-empty list"
        )
    segments = tuple(
        parse_script_segment(segment, index)
        for index, segment in enumerate(segments_value)
    )
    return ShortsScript(
        title=title,
        narration=_optional_string(payload, "script"),
        segments=segments,
        title_main=_optional_string(payload, "titleMain"),
        title_sub=_optional_string(payload, "titleSub"),
    )


def script_to_payload(script: ShortsScript) -> dict[str, object]:
    """Serialize a ShortsScript into the script.json layout."""
    payload: dict[str, object] = {
        "title": script.title,
        "script": script.narration,
        "segments": [
            {
                "text": segment.text,
                "duration": segment.duration_seconds,
                "category": segment.category.tag,
                "subtitles": list(segment.captions),
            }
            for segment in script.segments
        ],
    }
    if script.title_main:
        payload["titleMain"] = script.title_main
    if script.title_sub:
        payload["titleSub"] = script.title_sub
    return payload
