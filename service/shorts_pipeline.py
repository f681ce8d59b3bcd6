"""End-to-end orchestration for create_shorts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging
import os
import time
from pathlib import Path
from typing import Callable, Mapping, Sequence, Tuple

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    SegmentAudio,
    ShortsConfig,
    ShortsPipelineError,
    ShortsScript,
    ShortsValidationError,
    resolve_segment_images,
)
from service.caption_chunker import annotate_captions
from service.projects import (
    PREVIEW_FILE_NAME,
    VIDEO_FILE_NAME,
    cleanup_temp_files,
    create_project_folder,
    load_script,
    save_render_plan,
    save_script,
)
from service.render_plan import RenderPlan, SegmentTimeline, build_render_plan
from service.script_generation import TextGenerator, generate_script
from service.speech import (
    SpeechSynthesizer,
    measure_durations,
    probe_audio_duration,
    synthesize_segments,
)
from service.video_renderer import RenderOptions, render_video

LOGGER = logging.getLogger("create_shorts")

MISSING_COLLABORATOR_CODE = "create_shorts.pipeline.missing_collaborator"

VideoRenderer = Callable[[RenderPlan, RenderOptions], str]


@dataclass(frozen=True)
class ShortsRequest:
    """A request to produce one video from a topic."""

    topic: str
    images: Tuple[str, ...]
    images_by_category: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    project_name: str | None = None
    max_duration_seconds: float | None = None
    font_path: str | None = None
    segment_count: int | None = None
    image_interval_seconds: float | None = None


@dataclass(frozen=True)
class ShortsResult:
    video_path: str
    project_path: str
    title: str
    script: ShortsScript
    plan: RenderPlan


@dataclass(frozen=True)
class ScriptOnlyResult:
    project_path: str
    script_path: str
    script: ShortsScript


@dataclass(frozen=True)
class PreviewOptions:
    image_interval_seconds: float | None = None
    title_main: str = ""
    title_sub: str = ""


@dataclass(frozen=True)
class PreviewResult:
    preview_path: str
    plan: RenderPlan


def default_id_factory() -> str:
    """Return a millisecond timestamp used to tag temp files."""
    return str(int(time.time() * 1000))


def build_segment_timelines(
    script: ShortsScript,
    durations: Sequence[float],
    global_images: Sequence[str],
    images_by_category: Mapping[str, Sequence[str]],
    audio_paths: Sequence[str | None] | None = None,
) -> Tuple[SegmentTimeline, ...]:
    """Pair each script segment with its duration, images and audio."""
    if len(durations) != len(script.segments):
        raise ShortsValidationError(
            INVALID_CONFIG_CODE,
            f"expected {len(script.segments)} durations, got {len(durations)}",
        )
    if audio_paths is not None and len(audio_paths) != len(script.segments):
        raise ShortsValidationError(
            INVALID_CONFIG_CODE,
            f"expected {len(script.segments)} audio paths, got {len(audio_paths)}",
        )
    paths: Sequence[str | None] = (
        audio_paths if audio_paths is not None else [None] * len(durations)
    )
    timelines: list[SegmentTimeline] = []
    for index, (segment, duration, audio_path) in enumerate(
        zip(script.segments, durations, paths)
    ):
        images, fell_back = resolve_segment_images(
            segment.category, global_images, images_by_category
        )
        if fell_back:
            LOGGER.warning(
                "create_shorts.images.category_fallback: segment %s category %r "
                "has no images; using the global pool",
                index + 1,
                segment.category.tag,
            )
        timelines.append(
            SegmentTimeline(
                text=segment.text,
                duration_seconds=duration,
                captions=segment.captions,
                images=images,
                audio_path=audio_path,
            )
        )
    return tuple(timelines)


class ShortsPipeline:
    """Script → captions → speech → render plan → video."""

    def __init__(
        self,
        config: ShortsConfig,
        text_generator: TextGenerator | None = None,
        synthesizer: SpeechSynthesizer | None = None,
        duration_probe: Callable[[str], float] = probe_audio_duration,
        renderer: VideoRenderer = render_video,
        clock: Callable[[], date] = date.today,
        id_factory: Callable[[], str] = default_id_factory,
    ) -> None:
        self.config = config
        self.text_generator = text_generator
        self.synthesizer = synthesizer
        self.duration_probe = duration_probe
        self.renderer = renderer
        self.clock = clock
        self.id_factory = id_factory

    def _require_text_generator(self) -> TextGenerator:
        if self.text_generator is None:
            raise ShortsPipelineError(
                MISSING_COLLABORATOR_CODE, "no text generator configured"
            )
        return self.text_generator

    def _require_synthesizer(self) -> SpeechSynthesizer:
        if self.synthesizer is None:
            raise ShortsPipelineError(
                MISSING_COLLABORATOR_CODE, "no speech synthesizer configured"
            )
        return self.synthesizer

    def resolve_font_path(self, font_path: str | None) -> str | None:
        """Return an existing font path or None to use the default face."""
        candidate = font_path or self.config.font_path
        if candidate is None:
            return None
        if not os.path.isfile(candidate):
            LOGGER.warning(
                "create_shorts.font.missing: %s not found, using default font",
                candidate,
            )
            return None
        LOGGER.info("create_shorts.font: %s", candidate)
        return os.path.abspath(candidate)

    def _write_script(
        self,
        topic: str,
        project_name: str | None,
        segment_count: int,
        max_duration_seconds: float,
        categories: Sequence[str],
    ) -> Tuple[Path, ShortsScript]:
        project_dir = create_project_folder(
            self.config.projects_dir, project_name or topic, self.clock()
        )
        LOGGER.info("create_shorts.project: %s", project_dir)
        script = generate_script(
            self._require_text_generator(),
            topic,
            segment_count,
            max_duration_seconds,
            categories,
        )
        script = annotate_captions(script, self.config.caption_max_chars)
        save_script(project_dir, script)
        LOGGER.info("create_shorts.script: %s", script.title)
        return project_dir, script

    def generate_script_only(
        self,
        topic: str,
        project_name: str | None = None,
        segment_count: int | None = None,
        max_duration_seconds: float | None = None,
        categories: Sequence[str] = (),
    ) -> ScriptOnlyResult:
        """Generate, caption and save a script for review before rendering."""
        project_dir, script = self._write_script(
            topic,
            project_name,
            segment_count or self.config.segment_count,
            max_duration_seconds or self.config.max_duration_seconds,
            categories,
        )
        return ScriptOnlyResult(
            project_path=str(project_dir),
            script_path=str(project_dir / "script.json"),
            script=script,
        )

    def create_shorts(self, request: ShortsRequest) -> ShortsResult:
        """Produce a finished video for a topic."""
        segment_count = request.segment_count or self.config.segment_count
        max_duration = request.max_duration_seconds or self.config.max_duration_seconds
        interval = request.image_interval_seconds or self.config.image_interval_seconds
        run_id = self.id_factory()

        LOGGER.info("create_shorts.step: [1/4] generating script for %s", request.topic)
        project_dir, script = self._write_script(
            request.topic,
            request.project_name,
            segment_count,
            max_duration,
            tuple(request.images_by_category.keys()),
        )

        try:
            plan, output_path = self._speak_and_render(
                request, script, project_dir, interval, run_id
            )
        finally:
            cleanup_temp_files(self.config.temp_dir, run_id)

        LOGGER.info("create_shorts.done: %s", output_path)
        return ShortsResult(
            video_path=output_path,
            project_path=str(project_dir),
            title=script.title,
            script=script,
            plan=plan,
        )

    def _speak_and_render(
        self,
        request: ShortsRequest,
        script: ShortsScript,
        project_dir: Path,
        interval: float,
        run_id: str,
    ) -> Tuple[RenderPlan, str]:
        LOGGER.info("create_shorts.step: [2/4] synthesizing speech")
        audio_paths = synthesize_segments(
            self._require_synthesizer(),
            [segment.text for segment in script.segments],
            self.config.temp_dir,
            run_id,
        )
        audios: Tuple[SegmentAudio, ...] = measure_durations(
            audio_paths, probe=self.duration_probe
        )

        LOGGER.info("create_shorts.step: [3/4] building render plan")
        timelines = build_segment_timelines(
            script,
            [audio.duration_seconds for audio in audios],
            request.images,
            request.images_by_category,
            [audio.audio_path for audio in audios],
        )
        plan = build_render_plan(timelines, self.config.fps, interval)
        save_render_plan(project_dir, plan)
        for segment, audio in zip(script.segments, audios):
            LOGGER.info(
                "create_shorts.segment: %.2fs, category %s",
                audio.duration_seconds,
                segment.category.tag,
            )

        LOGGER.info(
            "create_shorts.step: [4/4] rendering %s images every %gs",
            len(request.images),
            interval,
        )
        title_main, title_sub = script.display_titles()
        output_path = str(project_dir / VIDEO_FILE_NAME)
        self.renderer(
            plan,
            RenderOptions(
                output_path=output_path,
                font_path=self.resolve_font_path(request.font_path),
                title_main=title_main,
                title_sub=title_sub,
            ),
        )
        return plan, output_path

    def plan_from_script(
        self,
        project_dir: Path,
        images: Sequence[str],
        image_interval_seconds: float | None = None,
        images_by_category: Mapping[str, Sequence[str]] | None = None,
    ) -> Tuple[ShortsScript, RenderPlan]:
        """Plan a saved script using its estimated durations and no audio."""
        script = load_script(project_dir)
        if any(not segment.captions for segment in script.segments):
            script = annotate_captions(script, self.config.caption_max_chars)
        timelines = build_segment_timelines(
            script,
            [segment.duration_seconds for segment in script.segments],
            images,
            images_by_category or {},
        )
        plan = build_render_plan(
            timelines,
            self.config.fps,
            image_interval_seconds or self.config.image_interval_seconds,
        )
        return script, plan

    def preview_from_script(
        self,
        project_dir: Path,
        images: Sequence[str],
        options: PreviewOptions = PreviewOptions(),
    ) -> PreviewResult:
        """Render a silent preview of a saved script."""
        script, plan = self.plan_from_script(
            project_dir, images, options.image_interval_seconds
        )
        script_main, script_sub = script.display_titles()
        preview_path = str(project_dir / PREVIEW_FILE_NAME)
        self.renderer(
            plan,
            RenderOptions(
                output_path=preview_path,
                font_path=self.resolve_font_path(None),
                title_main=options.title_main or script_main,
                title_sub=options.title_sub or script_sub,
            ),
        )
        LOGGER.info("create_shorts.preview.done: %s", preview_path)
        return PreviewResult(preview_path=preview_path, plan=plan)
