"""Narration script generation for create_shorts."""

from __future__ import annotations

import json
import logging
import re
from types import ModuleType
from typing import Protocol, Sequence

from domain.shorts_video import (
    INVALID_CONFIG_CODE,
    INVALID_SCRIPT_CODE,
    ShortsPipelineError,
    ShortsScript,
    ShortsValidationError,
    parse_script,
)

LOGGER = logging.getLogger("create_shorts")

TEXT_GENERATION_CODE = "create_shorts.text_generation.failed"
TEXT_GENERATION_DEPENDENCY_CODE = "create_shorts.dependency.google_genai"
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


class TextGenerator(Protocol):
    """Anything that turns a prompt into model text."""

    def generate(self, prompt: str) -> str:
        ...


def load_genai_module() -> ModuleType:
    """Import the google-genai client module."""
    try:
        from google import genai
    except Exception as exc:
        raise ShortsPipelineError(
            TEXT_GENERATION_DEPENDENCY_CODE, f"google-genai is unavailable: {exc}"
        ) from exc
    return genai


class GeminiTextGenerator:
    """Text generator backed by the Gemini API."""

    def __init__(self, api_key: str, model: str) -> None:
        if not api_key.strip():
            raise ShortsValidationError(
                INVALID_CONFIG_CODE, "GEMINI_API_KEY is not configured"
            )
        genai = load_genai_module()
        self._client = genai.Client(api_key=api_key)
        self._model = model

    def generate(self, prompt: str) -> str:
        try:
            response = self._client.models.generate_content(
                model=self._model, contents=prompt
            )
        except Exception as exc:
            raise ShortsPipelineError(
                TEXT_GENERATION_CODE, f"Gemini request failed: {exc}"
            ) from exc
        text = getattr(response, "text", None)
        if not text:
            raise ShortsPipelineError(
                TEXT_GENERATION_CODE, "Gemini returned an empty response"
            )
        return text


def build_script_prompt(
    topic: str,
    segment_count: int,
    max_duration_seconds: float,
    categories: Sequence[str] = (),
) -> str:
    """Build the script-writing prompt sent to the text generator."""
    category_rule = ""
    category_field = ""
    if categories:
        allowed = ", ".join([*categories, "both"])
        category_field = ',\n      "category": "이 세그먼트가 보여줄 대상"'
        category_rule = (
            f"- category는 다음 중 하나여야 합니다: {allowed} "
            "(특정 대상이 아니면 both)\n"
        )
    return f"""
당신은 유튜브 숏츠 전문 스크립트 작가입니다.

주제: {topic}
세그먼트 수: {segment_count}개
목표 길이: {max_duration_seconds:g}초 이내

다음 JSON 형식으로 스크립트를 작성해주세요:
{{
  "title": "영상 제목 (호기심 유발, 15자 이내)",
  "titleMain": "제목 첫 줄",
  "titleSub": "제목 둘째 줄",
  "script": "전체 스크립트 (TTS용, 자연스러운 말투)",
  "segments": [
    {{
      "text": "세그먼트 나레이션",
      "duration": 예상 초 (숫자만){category_field}
    }}
  ]
}}

규칙:
- segments 배열의 길이는 정확히 {segment_count}개여야 합니다
- duration 합계가 {max_duration_seconds:g}초를 넘지 않도록 합니다
{category_rule}- 한국어로 작성하고, TTS가 읽기 좋은 자연스러운 문장으로 작성합니다
- 숏츠 특성상 첫 3초가 중요하므로 흥미로운 도입부를 작성합니다

JSON만 출력하세요.
"""


def extract_json_object(response_text: str) -> object:
    """Extract the outermost JSON object from model output."""
    match = JSON_OBJECT_PATTERN.search(response_text)
    if not match:
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE, "failed to find script JSON in model response"
        )
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE, f"script JSON is invalid: {exc.msg}"
        ) from exc


def parse_script_payload(
    payload: object, expected_segments: int, max_duration_seconds: float
) -> ShortsScript:
    """Validate a generated script against the requested shape."""
    script = parse_script(payload)
    if len(script.segments) != expected_segments:
        raise ShortsValidationError(
            INVALID_SCRIPT_CODE,
            f"expected {expected_segments} segments, got {len(script.segments)}",
        )
    total_seconds = script.total_estimated_seconds
    if total_seconds > max_duration_seconds:
        LOGGER.warning(
            "create_shorts.script.over_duration: estimated %.1fs exceeds %.1fs",
            total_seconds,
            max_duration_seconds,
        )
    return script


def generate_script(
    generator: TextGenerator,
    topic: str,
    segment_count: int,
    max_duration_seconds: float,
    categories: Sequence[str] = (),
) -> ShortsScript:
    """Ask the generator for a script and parse its response."""
    if not topic.strip():
        raise ShortsValidationError(INVALID_CONFIG_CODE, "topic must be non-empty")
    prompt = build_script_prompt(
        topic, segment_count, max_duration_seconds, categories
    )
    response_text = generator.generate(prompt)
    return parse_script_payload(
        extract_json_object(response_text), segment_count, max_duration_seconds
    )
