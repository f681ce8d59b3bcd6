"""Frame composition and encoding for create_shorts."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
import logging
import math
import os
import shutil
import subprocess
from pathlib import Path
from typing import Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    ShortsPipelineError,
    ShortsValidationError,
)
from service.render_plan import CaptionWindow, PlannedSegment, RenderPlan, SlideWindow

LOGGER = logging.getLogger("create_shorts")

IMAGE_FILE_CODE = "create_shorts.input.image_file"
FONT_LOAD_CODE = "create_shorts.input.font_unloadable"
FFMPEG_NOT_FOUND_CODE = "create_shorts.ffmpeg.not_found"
FFMPEG_EXEC_CODE = "create_shorts.ffmpeg.exec_error"
FFMPEG_PROCESS_CODE = "create_shorts.ffmpeg.process_failed"

H264_CODEC = "libx264"
H264_PIXEL_FORMAT = "yuv420p"
H264_CRF = "20"
H264_PRESET = "veryfast"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"
AUDIO_SAMPLE_RATE = 44100

BACKGROUND_RGBA = (0, 0, 0, 255)
TITLE_MAIN_RGBA = (255, 255, 255, 255)
TITLE_SUB_RGBA = (255, 215, 0, 255)
CAPTION_RGBA = (255, 255, 255, 255)
CAPTION_STROKE_RGBA = (0, 0, 0, 255)
TITLE_MAIN_FONT_SIZE = 72
TITLE_SUB_FONT_SIZE = 64
TITLE_LINE_GAP = 20
TITLE_PADDING_X = 60
CAPTION_FONT_SIZE = 80
CAPTION_STROKE_WIDTH = 4
CAPTION_MAX_WIDTH_RATIO = 0.9
CAPTION_MIN_FONT_SIZE = 24

KEN_BURNS_SCALE_END = 1.1
KEN_BURNS_SHIFT_X = -20.0
KEN_BURNS_SHIFT_Y = -10.0
CAPTION_POP_SCALE = 1.4
CAPTION_POP_DECAY_FRAMES = 2.0
CAPTION_FADE_IN_FRAMES = 2
CAPTION_FADE_OUT_FRAMES = 4
CAPTION_RISE_PIXELS = 20.0
CAPTION_RISE_FRAMES = 4


@dataclass(frozen=True)
class VideoLayout:
    """Vertical frame layout: title band, square image area, bottom band."""

    width: int = 1080
    height: int = 1920
    title_height: int = 630
    image_size: int = 1080
    bottom_height: int = 210

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "width and height must be positive"
            )
        if self.width % 2 or self.height % 2:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "width and height must be even for H.264"
            )
        if self.image_size <= 0 or self.image_size > self.width:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "image_size must fit within the frame width"
            )
        if self.title_height < 0 or self.bottom_height < 0:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "title and bottom bands must be non-negative"
            )
        if self.title_height + self.image_size + self.bottom_height != self.height:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "layout bands must add up to the frame height"
            )

    @property
    def image_origin(self) -> Tuple[int, int]:
        return (self.width - self.image_size) // 2, self.title_height


@dataclass(frozen=True)
class RenderOptions:
    """Output and styling options for one render."""

    output_path: str
    layout: VideoLayout = VideoLayout()
    font_path: str | None = None
    title_main: str = ""
    title_sub: str = ""

    def __post_init__(self) -> None:
        if not self.output_path.strip():
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "output_path must be non-empty"
            )
        if not self.output_path.lower().endswith(".mp4"):
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "output_path must end with .mp4"
            )


def clamp_float(value: float, min_value: float, max_value: float) -> float:
    """Clamp a float between min and max."""
    return max(min_value, min(max_value, value))


def load_font(
    font_path: str | None,
    font_size: int,
    cache: dict[Tuple[str | None, int], ImageFont.FreeTypeFont],
) -> ImageFont.FreeTypeFont:
    """Load a font by path and size, falling back to Pillow's default face."""
    cache_key = (font_path, font_size)
    cached_font = cache.get(cache_key)
    if cached_font is not None:
        return cached_font
    try:
        if font_path is None:
            font = ImageFont.load_default(size=font_size)
        else:
            font = ImageFont.truetype(font_path, size=font_size)
    except Exception as exc:
        raise ShortsValidationError(
            FONT_LOAD_CODE, f"failed to load font {font_path} at size {font_size}"
        ) from exc
    cache[cache_key] = font
    return font


def render_text_sprite(
    text_value: str,
    font: ImageFont.FreeTypeFont,
    fill_rgba: Tuple[int, int, int, int],
    stroke_rgba: Tuple[int, int, int, int] | None = None,
    stroke_width: int = 0,
) -> Image.Image:
    """Render text into a tightly cropped RGBA sprite."""
    probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = probe.textbbox(
        (0, 0), text_value, font=font, stroke_width=stroke_width, anchor="la"
    )
    sprite = Image.new(
        "RGBA", (max(1, right - left), max(1, bottom - top)), (0, 0, 0, 0)
    )
    ImageDraw.Draw(sprite).text(
        (-left, -top),
        text_value,
        font=font,
        fill=fill_rgba,
        stroke_width=stroke_width,
        stroke_fill=stroke_rgba,
        anchor="la",
    )
    return sprite


def load_slide_image(image_path: str, size: int) -> Image.Image:
    """Load an image and cover-fit it to a square of ``size`` pixels."""
    try:
        with Image.open(image_path) as source:
            image = source.convert("RGBA")
    except FileNotFoundError as exc:
        raise ShortsValidationError(
            IMAGE_FILE_CODE, f"image not found: {image_path}"
        ) from exc
    except Exception as exc:
        raise ShortsValidationError(
            IMAGE_FILE_CODE, f"failed to read image: {image_path}"
        ) from exc
    return ImageOps.fit(image, (size, size), method=Image.Resampling.LANCZOS)


def validate_plan_images(plan: RenderPlan) -> None:
    """Fail before encoding when a slide image is missing."""
    for segment in plan.segments:
        for slide in segment.slides:
            if not os.path.isfile(slide.image):
                raise ShortsValidationError(
                    IMAGE_FILE_CODE, f"image not found: {slide.image}"
                )


def ken_burns_transform(
    frame_in_slide: int, slide_frames: int
) -> Tuple[float, float, float]:
    """Return scale and pixel shift for a slow zoom across a slide."""
    progress = clamp_float(frame_in_slide / float(max(1, slide_frames)), 0.0, 1.0)
    scale = 1.0 + (KEN_BURNS_SCALE_END - 1.0) * progress
    return scale, KEN_BURNS_SHIFT_X * progress, KEN_BURNS_SHIFT_Y * progress


def caption_opacity(frame_in_caption: int, caption_frames: int) -> float:
    """Fade captions in quickly and out slightly slower."""
    fade_in = frame_in_caption / float(CAPTION_FADE_IN_FRAMES)
    fade_out = (caption_frames - frame_in_caption) / float(CAPTION_FADE_OUT_FRAMES)
    return clamp_float(min(fade_in, fade_out), 0.0, 1.0)


def caption_scale(frame_in_caption: int) -> float:
    """Pop captions in large and settle them to full size."""
    decay = math.exp(-frame_in_caption / CAPTION_POP_DECAY_FRAMES)
    return 1.0 + (CAPTION_POP_SCALE - 1.0) * decay


def caption_rise(frame_in_caption: int) -> float:
    """Vertical offset that eases captions up into place."""
    progress = clamp_float(frame_in_caption / float(CAPTION_RISE_FRAMES), 0.0, 1.0)
    eased = 1.0 - (1.0 - progress) ** 3
    return CAPTION_RISE_PIXELS * (1.0 - eased)


def find_active_caption(
    captions: Sequence[CaptionWindow], frame_in_segment: int
) -> CaptionWindow | None:
    """Return the caption window covering a segment-relative frame."""
    for caption in captions:
        if caption.start_frame <= frame_in_segment < caption.end_frame:
            return caption
    return None


def find_active_slide(
    slides: Sequence[SlideWindow], frame_index: int
) -> SlideWindow | None:
    """Return the slide window covering an absolute frame."""
    for slide in slides:
        if slide.start_frame <= frame_index < slide.end_frame:
            return slide
    return None


class FrameComposer:
    """Compose RGBA frames for a render plan."""

    def __init__(self, plan: RenderPlan, options: RenderOptions) -> None:
        self.plan = plan
        self.options = options
        self.layout = options.layout
        self._font_cache: dict[Tuple[str | None, int], ImageFont.FreeTypeFont] = {}
        self._slide_cache: dict[str, Image.Image] = {}
        self._caption_cache: dict[str, Image.Image] = {}
        self._segment_starts = [segment.start_frame for segment in plan.segments]
        self._base_frame = self._build_base_frame()

    def _build_base_frame(self) -> Image.Image:
        layout = self.layout
        frame = Image.new("RGBA", (layout.width, layout.height), BACKGROUND_RGBA)
        lines = []
        if self.options.title_main:
            font = load_font(
                self.options.font_path, TITLE_MAIN_FONT_SIZE, self._font_cache
            )
            lines.append(
                self._fit_sprite(self.options.title_main, font, TITLE_MAIN_RGBA)
            )
        if self.options.title_sub:
            font = load_font(
                self.options.font_path, TITLE_SUB_FONT_SIZE, self._font_cache
            )
            lines.append(
                self._fit_sprite(self.options.title_sub, font, TITLE_SUB_RGBA)
            )
        if not lines:
            return frame

        block_height = sum(line.height for line in lines) + TITLE_LINE_GAP * (
            len(lines) - 1
        )
        cursor_y = max(0, (layout.title_height - block_height) // 2)
        for line in lines:
            frame.alpha_composite(line, ((layout.width - line.width) // 2, cursor_y))
            cursor_y += line.height + TITLE_LINE_GAP
        return frame

    def _fit_sprite(
        self,
        text_value: str,
        font: ImageFont.FreeTypeFont,
        fill_rgba: Tuple[int, int, int, int],
    ) -> Image.Image:
        sprite = render_text_sprite(text_value, font, fill_rgba)
        max_width = max(1, self.layout.width - 2 * TITLE_PADDING_X)
        if sprite.width > max_width:
            ratio = max_width / float(sprite.width)
            sprite = sprite.resize(
                (max_width, max(1, int(sprite.height * ratio))),
                Image.Resampling.LANCZOS,
            )
        return sprite

    def _slide_image(self, image_path: str) -> Image.Image:
        cached = self._slide_cache.get(image_path)
        if cached is None:
            cached = load_slide_image(image_path, self.layout.image_size)
            self._slide_cache[image_path] = cached
        return cached

    def _caption_sprite(self, text_value: str) -> Image.Image:
        cached = self._caption_cache.get(text_value)
        if cached is not None:
            return cached
        max_width = int(self.layout.image_size * CAPTION_MAX_WIDTH_RATIO)
        font_size = CAPTION_FONT_SIZE
        while True:
            font = load_font(self.options.font_path, font_size, self._font_cache)
            sprite = render_text_sprite(
                text_value,
                font,
                CAPTION_RGBA,
                CAPTION_STROKE_RGBA,
                CAPTION_STROKE_WIDTH,
            )
            if sprite.width <= max_width or font_size <= CAPTION_MIN_FONT_SIZE:
                break
            font_size = max(CAPTION_MIN_FONT_SIZE, font_size - 4)
        self._caption_cache[text_value] = sprite
        return sprite

    def segment_at(self, frame_index: int) -> PlannedSegment:
        """Return the planned segment containing an absolute frame."""
        if frame_index < 0 or frame_index >= self.plan.total_frames:
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, f"frame index out of range: {frame_index}"
            )
        position = bisect.bisect_right(self._segment_starts, frame_index) - 1
        return self.plan.segments[position]

    def compose(self, frame_index: int) -> Image.Image:
        """Compose the frame at an absolute index."""
        segment = self.segment_at(frame_index)
        frame = self._base_frame.copy()
        image_area = Image.new(
            "RGBA", (self.layout.image_size, self.layout.image_size), BACKGROUND_RGBA
        )

        slide = find_active_slide(segment.slides, frame_index)
        if slide is not None:
            self._paint_slide(image_area, slide, frame_index)

        frame_in_segment = frame_index - segment.start_frame
        caption = find_active_caption(segment.captions, frame_in_segment)
        if caption is not None and caption.text.strip():
            self._paint_caption(image_area, caption, frame_in_segment)

        frame.alpha_composite(image_area, self.layout.image_origin)
        return frame

    def _paint_slide(
        self, image_area: Image.Image, slide: SlideWindow, frame_index: int
    ) -> None:
        base = self._slide_image(slide.image)
        size = self.layout.image_size
        scale, shift_x, shift_y = ken_burns_transform(
            frame_index - slide.start_frame, slide.frame_count
        )
        scaled_size = max(1, int(round(size * scale)))
        scaled = base.resize((scaled_size, scaled_size), Image.Resampling.BILINEAR)
        center = size / 2.0
        offset_x = int(round(center * (1.0 - scale) + scale * shift_x))
        offset_y = int(round(center * (1.0 - scale) + scale * shift_y))
        image_area.paste(scaled, (offset_x, offset_y))

    def _paint_caption(
        self, image_area: Image.Image, caption: CaptionWindow, frame_in_segment: int
    ) -> None:
        frame_in_caption = frame_in_segment - caption.start_frame
        caption_frames = caption.end_frame - caption.start_frame
        opacity = caption_opacity(frame_in_caption, caption_frames)
        if opacity <= 0.0:
            return
        sprite = self._caption_sprite(caption.text)
        scale = caption_scale(frame_in_caption)
        scaled = sprite.resize(
            (
                max(1, int(round(sprite.width * scale))),
                max(1, int(round(sprite.height * scale))),
            ),
            Image.Resampling.BILINEAR,
        )
        if opacity < 1.0:
            alpha = scaled.getchannel("A").point(lambda value: int(value * opacity))
            scaled.putalpha(alpha)
        size = self.layout.image_size
        position = (
            (size - scaled.width) // 2,
            (size - scaled.height) // 2 + int(round(caption_rise(frame_in_caption))),
        )
        overlay = Image.new("RGBA", image_area.size, (0, 0, 0, 0))
        overlay.paste(scaled, position)
        image_area.alpha_composite(overlay)


def build_audio_filter(plan: RenderPlan) -> Tuple[Tuple[str, ...], str] | None:
    """Build audio inputs and a filter graph that lays tracks on the timeline.

    Each segment's track is trimmed and padded to its exact frame span, so the
    concatenated audio stays frame-aligned with the video. Segments without a
    track get silence. Returns None when no segment carries audio.
    """
    if not plan.has_audio:
        return None

    audio_format = f"aformat=sample_fmts=fltp:sample_rates={AUDIO_SAMPLE_RATE}:channel_layouts=stereo"
    inputs: list[str] = []
    chains: list[str] = []
    labels: list[str] = []
    for segment in plan.segments:
        seconds = f"{segment.frame_count / plan.fps:.6f}"
        label = f"a{segment.index}"
        if segment.audio.audio_path:
            inputs.append(segment.audio.audio_path)
            source = f"[{len(inputs)}:a]aresample={AUDIO_SAMPLE_RATE},{audio_format}"
        else:
            source = f"anullsrc=r={AUDIO_SAMPLE_RATE}:cl=stereo,{audio_format}"
        chains.append(
            f"{source},atrim=end={seconds},apad=whole_dur={seconds},"
            f"asetpts=PTS-STARTPTS[{label}]"
        )
        labels.append(f"[{label}]")

    chains.append(f"{''.join(labels)}concat=n={len(labels)}:v=0:a=1[aout]")
    return tuple(inputs), ";".join(chains)


def build_ffmpeg_command(
    ffmpeg_path: str, plan: RenderPlan, options: RenderOptions
) -> list[str]:
    """Build the ffmpeg command for a raw RGBA frame stream."""
    layout = options.layout
    command = [
        ffmpeg_path,
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgba",
        "-s",
        f"{layout.width}x{layout.height}",
        "-r",
        str(plan.fps),
        "-i",
        "-",
    ]
    audio = build_audio_filter(plan)
    if audio is None:
        command.append("-an")
    else:
        audio_inputs, filter_graph = audio
        for audio_input in audio_inputs:
            command.extend(["-i", audio_input])
        command.extend(
            ["-filter_complex", filter_graph, "-map", "0:v:0", "-map", "[aout]"]
        )
    command.extend(
        [
            "-c:v",
            H264_CODEC,
            "-preset",
            H264_PRESET,
            "-crf",
            H264_CRF,
            "-pix_fmt",
            H264_PIXEL_FORMAT,
        ]
    )
    if audio is not None:
        command.extend(["-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE])
    command.extend(["-movflags", "+faststart", options.output_path])
    return command


def ensure_ffmpeg_available() -> str:
    """Ensure ffmpeg is installed and executable."""
    ffmpeg_path = shutil.which("ffmpeg")
    if not ffmpeg_path:
        raise ShortsPipelineError(FFMPEG_NOT_FOUND_CODE, "ffmpeg not on PATH")
    try:
        subprocess.run(
            [ffmpeg_path, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except Exception as exc:
        raise ShortsPipelineError(
            FFMPEG_EXEC_CODE, "ffmpeg exists but could not be executed"
        ) from exc
    return ffmpeg_path


def render_video(plan: RenderPlan, options: RenderOptions) -> str:
    """Render every frame of the plan and encode it to ``options.output_path``."""
    validate_plan_images(plan)
    ffmpeg_path = ensure_ffmpeg_available()
    Path(options.output_path).parent.mkdir(parents=True, exist_ok=True)
    composer = FrameComposer(plan, options)
    command = build_ffmpeg_command(ffmpeg_path, plan, options)

    LOGGER.info(
        "create_shorts.render.start: %s frames (%.2fs) -> %s",
        plan.total_frames,
        plan.duration_seconds,
        options.output_path,
    )
    try:
        ffmpeg_process = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ShortsPipelineError(FFMPEG_NOT_FOUND_CODE, "ffmpeg not found") from exc
    if not ffmpeg_process.stdin:
        raise ShortsPipelineError(FFMPEG_PROCESS_CODE, "ffmpeg stdin unavailable")

    try:
        for frame_index in range(plan.total_frames):
            ffmpeg_process.stdin.write(composer.compose(frame_index).tobytes())

        ffmpeg_process.stdin.close()
        stderr_bytes = ffmpeg_process.stderr.read() if ffmpeg_process.stderr else b""
        return_code = ffmpeg_process.wait()
        if return_code != 0:
            stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
            raise ShortsPipelineError(
                FFMPEG_PROCESS_CODE,
                f"ffmpeg failed with exit code {return_code}. {stderr_text}",
            )
    except BrokenPipeError as exc:
        stderr_bytes = ffmpeg_process.stderr.read() if ffmpeg_process.stderr else b""
        stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
        raise ShortsPipelineError(
            FFMPEG_PROCESS_CODE, f"ffmpeg closed its input early. {stderr_text}"
        ) from exc
    finally:
        try:
            if ffmpeg_process.stdin and not ffmpeg_process.stdin.closed:
                ffmpeg_process.stdin.close()
        except OSError:
            pass
        if ffmpeg_process.poll() is None:
            ffmpeg_process.kill()

    LOGGER.info("create_shorts.render.done: %s", options.output_path)
    return options.output_path
