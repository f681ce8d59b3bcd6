"""Caption chunking for create_shorts."""

from __future__ import annotations

from enum import Enum
from typing import Tuple

from domain.shorts_video import (
    DEFAULT_CAPTION_MAX_CHARS,
    INVALID_CONFIG_CODE,
    ShortsScript,
    ShortsValidationError,
)

PERIOD_CHARACTERS = frozenset(".。．")
DECIMAL_POINT_CHARACTERS = frozenset(".．")
TERMINATOR_CHARACTERS = frozenset(".!?。．！？")
COMMA_CHARACTERS = frozenset(",，")
ELLIPSIS_LENGTHS = (2, 3)


class PunctuationKind(str, Enum):
    """Role of a run of sentence punctuation."""

    TERMINATOR = "terminator"
    DECIMAL_POINT = "decimal_point"
    ELLIPSIS = "ellipsis"


def classify_punctuation_run(text_value: str, start: int, end: int) -> PunctuationKind:
    """Classify the punctuation run ``text_value[start:end]``."""
    run = text_value[start:end]
    if all(character in PERIOD_CHARACTERS for character in run):
        if (
            len(run) == 1
            and run in DECIMAL_POINT_CHARACTERS
            and start > 0
            and end < len(text_value)
            and text_value[start - 1].isdigit()
            and text_value[end].isdigit()
        ):
            return PunctuationKind.DECIMAL_POINT
        if len(run) in ELLIPSIS_LENGTHS:
            return PunctuationKind.ELLIPSIS
    return PunctuationKind.TERMINATOR


def split_sentences(text_value: str) -> Tuple[str, ...]:
    """Split text after each terminator run, keeping the run attached."""
    fragments: list[str] = []
    current: list[str] = []
    index = 0
    length = len(text_value)

    while index < length:
        character = text_value[index]
        if character not in TERMINATOR_CHARACTERS:
            current.append(character)
            index += 1
            continue

        run_end = index
        while run_end < length and text_value[run_end] in TERMINATOR_CHARACTERS:
            run_end += 1
        current.append(text_value[index:run_end])
        if classify_punctuation_run(text_value, index, run_end) == PunctuationKind.TERMINATOR:
            fragments.append("".join(current))
            current = []
        index = run_end

    fragments.append("".join(current))
    return tuple(fragment.strip() for fragment in fragments if fragment.strip())


def is_thousands_separator(text_value: str, index: int) -> bool:
    """Return True when the comma at ``index`` sits between two digits."""
    return (
        0 < index < len(text_value) - 1
        and text_value[index - 1].isdigit()
        and text_value[index + 1].isdigit()
    )


def split_on_commas(fragment: str) -> Tuple[str, ...]:
    """Split a fragment after each comma, keeping the comma attached."""
    parts: list[str] = []
    start = 0
    for index, character in enumerate(fragment):
        if character in COMMA_CHARACTERS and not is_thousands_separator(fragment, index):
            parts.append(fragment[start : index + 1])
            start = index + 1
    parts.append(fragment[start:])
    return tuple(part.strip() for part in parts if part.strip())


def force_split(word: str, max_chars: int) -> Tuple[str, ...]:
    """Slice an unsplittable token into pieces of ``max_chars``."""
    return tuple(word[start : start + max_chars] for start in range(0, len(word), max_chars))


def pack_words(part: str, max_chars: int) -> Tuple[str, ...]:
    """Greedily pack whitespace-separated words into bounded chunks."""
    chunks: list[str] = []
    current = ""
    for word in part.split():
        if len(word) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(force_split(word, max_chars))
            continue
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= max_chars:
            current = f"{current} {word}"
        else:
            chunks.append(current)
            current = word
    if current:
        chunks.append(current)
    return tuple(chunks)


def chunk_captions(
    text_value: str, max_chars: int = DEFAULT_CAPTION_MAX_CHARS
) -> Tuple[str, ...]:
    """Split narration text into short caption chunks in display order."""
    if max_chars < 1:
        raise ShortsValidationError(
            INVALID_CONFIG_CODE, "caption max_chars must be at least 1"
        )

    chunks: list[str] = []
    for sentence in split_sentences(text_value):
        if len(sentence) <= max_chars:
            chunks.append(sentence)
            continue
        for part in split_on_commas(sentence):
            if len(part) <= max_chars:
                chunks.append(part)
            else:
                chunks.extend(pack_words(part, max_chars))

    return tuple(chunk.strip() for chunk in chunks if chunk.strip())


def annotate_captions(
    script: ShortsScript, max_chars: int = DEFAULT_CAPTION_MAX_CHARS
) -> ShortsScript:
    """Return a script whose segments carry caption chunks of their text."""
    return script.with_segments(
        [
            segment.with_captions(chunk_captions(segment.text, max_chars))
            for segment in script.segments
        ]
    )
