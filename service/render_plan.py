"""Render plan construction for create_shorts."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Sequence, Tuple

from domain.shorts_video import (
    DEFAULT_FPS,
    DEFAULT_IMAGE_INTERVAL_SECONDS,
    INVALID_CONFIG_CODE,
    InvalidDurationError,
    ShortsValidationError,
)

# Products such as 0.1 * 30 carry float noise; round before ceil/floor.
FRAME_ROUNDING_DIGITS = 6


@dataclass(frozen=True)
class SlideWindow:
    """An image shown over an absolute frame range."""

    start_frame: int
    frame_count: int
    image: str

    def __post_init__(self) -> None:
        if self.start_frame < 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "slide start_frame must be non-negative"
            )
        if self.frame_count <= 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "slide frame_count must be positive"
            )

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.frame_count


@dataclass(frozen=True)
class CaptionWindow:
    """Caption text shown over a frame range relative to its segment."""

    start_frame: int
    end_frame: int
    text: str

    def __post_init__(self) -> None:
        if self.start_frame < 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "caption start_frame must be non-negative"
            )
        if self.end_frame < self.start_frame:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "caption end_frame precedes start_frame"
            )


@dataclass(frozen=True)
class AudioWindow:
    """Audio track placed over an absolute frame range."""

    start_frame: int
    frame_count: int
    audio_path: str | None


@dataclass(frozen=True)
class PlannedSegment:
    """A segment placed on the shared frame axis."""

    index: int
    start_frame: int
    frame_count: int
    slides: Tuple[SlideWindow, ...]
    captions: Tuple[CaptionWindow, ...]
    audio: AudioWindow

    def __post_init__(self) -> None:
        if self.frame_count <= 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "segment frame_count must be positive"
            )

        cursor = self.start_frame
        for slide in self.slides:
            if slide.start_frame != cursor:
                raise ShortsValidationError(
                    INVALID_CONFIG_CODE, "slide windows must tile the segment"
                )
            cursor = slide.end_frame
        if self.slides and cursor != self.end_frame:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "slide windows must cover the segment"
            )

        if not self.captions:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "segment requires at least one caption window"
            )
        cursor = 0
        for caption in self.captions:
            if caption.start_frame != cursor:
                raise ShortsValidationError(
                    INVALID_CONFIG_CODE, "caption windows overlap or leave gaps"
                )
            cursor = caption.end_frame
        if cursor != self.frame_count:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "caption windows must cover the segment"
            )

        if (
            self.audio.start_frame != self.start_frame
            or self.audio.frame_count != self.frame_count
        ):
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "audio window must span the segment"
            )

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.frame_count


@dataclass(frozen=True)
class RenderPlan:
    """Frame-accurate schedule of slides, captions and audio."""

    fps: int
    total_frames: int
    segments: Tuple[PlannedSegment, ...]

    def __post_init__(self) -> None:
        if self.fps <= 0:
            raise ShortsValidationError(INVALID_CONFIG_CODE, "fps must be positive")
        if not self.segments:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "render plan has no segments"
            )
        cursor = 0
        for position, segment in enumerate(self.segments):
            if segment.index != position:
                raise ShortsValidationError(
                    INVALID_CONFIG_CODE, "segments must be in script order"
                )
            if segment.start_frame != cursor:
                raise ShortsValidationError(
                    INVALID_CONFIG_CODE, "segments must be contiguous"
                )
            cursor = segment.end_frame
        if cursor != self.total_frames:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "total_frames does not match segments"
            )

    @property
    def duration_seconds(self) -> float:
        return self.total_frames / self.fps

    @property
    def has_audio(self) -> bool:
        return any(segment.audio.audio_path for segment in self.segments)


@dataclass(frozen=True)
class SegmentTimeline:
    """Inputs needed to place one segment on the timeline."""

    text: str
    duration_seconds: float
    captions: Tuple[str, ...] = ()
    images: Tuple[str, ...] = ()
    audio_path: str | None = None


def seconds_to_frames_ceil(seconds: float, fps: int) -> int:
    """Convert seconds to frames, rounding up.

    The frame product is rounded to ``FRAME_ROUNDING_DIGITS`` places first, so
    an overshoot under a millionth of a frame snaps back to the whole frame:
    7.00000001 s at 30 fps is 210 frames, not 211. That keeps float noise such
    as ``0.1 * 30`` from adding a frame.
    """
    return int(math.ceil(round(seconds * fps, FRAME_ROUNDING_DIGITS)))


def seconds_to_frames_floor(seconds: float, fps: int) -> int:
    """Convert seconds to frames, rounding down."""
    return int(math.floor(round(seconds * fps, FRAME_ROUNDING_DIGITS)))


def segment_frame_count(duration_seconds: float, fps: int) -> int:
    """Return the frame length of a segment, rejecting unusable durations."""
    if not math.isfinite(duration_seconds) or duration_seconds <= 0:
        raise InvalidDurationError(
            f"segment duration must be positive: {duration_seconds!r}"
        )
    frame_count = seconds_to_frames_ceil(duration_seconds, fps)
    if frame_count <= 0:
        raise InvalidDurationError(
            f"segment duration produces zero frames: {duration_seconds!r}"
        )
    return frame_count


def build_slide_windows(
    start_frame: int,
    frame_count: int,
    images: Sequence[str],
    interval_frames: int,
) -> Tuple[SlideWindow, ...]:
    """Cycle images across a segment in fixed-interval windows."""
    if not images:
        return ()
    if interval_frames <= 0:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "image interval must span at least one frame"
        )

    slides: list[SlideWindow] = []
    end_frame = start_frame + frame_count
    cursor = start_frame
    image_index = 0
    while cursor < end_frame:
        slide_frames = min(interval_frames, end_frame - cursor)
        slides.append(
            SlideWindow(
                start_frame=cursor,
                frame_count=slide_frames,
                image=images[image_index % len(images)],
            )
        )
        cursor += slide_frames
        image_index += 1
    return tuple(slides)


def build_caption_windows(
    frame_count: int, captions: Sequence[str], fallback_text: str
) -> Tuple[CaptionWindow, ...]:
    """Split a segment into equal caption windows; the last absorbs the remainder."""
    texts = tuple(captions) if captions else (fallback_text,)
    caption_count = len(texts)
    frames_per_caption = frame_count // caption_count

    windows: list[CaptionWindow] = []
    for index, text in enumerate(texts):
        start = index * frames_per_caption
        end = (index + 1) * frames_per_caption
        if index == caption_count - 1:
            end = frame_count
        windows.append(CaptionWindow(start_frame=start, end_frame=end, text=text))
    return tuple(windows)


def build_render_plan(
    segments: Sequence[SegmentTimeline],
    fps: int = DEFAULT_FPS,
    image_interval_seconds: float = DEFAULT_IMAGE_INTERVAL_SECONDS,
) -> RenderPlan:
    """Place segments on one frame axis and derive their windows."""
    if fps <= 0:
        raise ShortsValidationError(INVALID_CONFIG_CODE, "fps must be positive")
    if not segments:
        raise ShortsValidationError(INVALID_CONFIG_CODE, "no segments to plan")
    if not math.isfinite(image_interval_seconds) or image_interval_seconds <= 0:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "image interval must be positive"
        )
    interval_frames = seconds_to_frames_floor(image_interval_seconds, fps)
    if interval_frames <= 0:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "image interval must span at least one frame"
        )

    planned: list[PlannedSegment] = []
    segment_start = 0
    for index, segment in enumerate(segments):
        frame_count = segment_frame_count(segment.duration_seconds, fps)
        planned.append(
            PlannedSegment(
                index=index,
                start_frame=segment_start,
                frame_count=frame_count,
                slides=build_slide_windows(
                    segment_start, frame_count, segment.images, interval_frames
                ),
                captions=build_caption_windows(
                    frame_count, segment.captions, segment.text
                ),
                audio=AudioWindow(
                    start_frame=segment_start,
                    frame_count=frame_count,
                    audio_path=segment.audio_path,
                ),
            )
        )
        segment_start += frame_count

    return RenderPlan(fps=fps, total_frames=segment_start, segments=tuple(planned))


def render_plan_to_payload(plan: RenderPlan) -> dict[str, object]:
    """Serialize a render plan for inspection."""
    return {
        "fps": plan.fps,
        "total_frames": plan.total_frames,
        "segments": [
            {
                "index": segment.index,
                "start_frame": segment.start_frame,
                "frame_count": segment.frame_count,
                "slides": [
                    {
                        "start_frame": slide.start_frame,
                        "frame_count": slide.frame_count,
                        "image": slide.image,
                    }
                    for slide in segment.slides
                ],
                "captions": [
                    {
                        "start_frame": caption.start_frame,
                        "end_frame": caption.end_frame,
                        "text": caption.text,
                    }
                    for caption in segment.captions
                ],
                "audio": {
                    "start_frame": segment.audio.start_frame,
                    "frame_count": segment.audio.frame_count,
                    "audio_path": segment.audio.audio_path,
                },
            }
            for segment in plan.segments
        ],
    }
