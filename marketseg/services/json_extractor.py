"""Salvage a JSON value from free-form model output.

Model responses are not guaranteed to be well-formed: they arrive wrapped in
markdown fences, prefixed with prose, with trailing commas, comments, raw
newlines inside strings, or cut off mid-value. Extraction runs an ordered
chain of named strategies over one or more candidate slices of the text and
returns the first value that parses.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from marketseg.errors import ParseError

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_STRAY_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_SEGMENTS_ANCHOR = re.compile(r'"segments"\s*:\s*\[')

PREVIEW_CHARS = 200


@dataclass(slots=True)
class StrategyResult:
    name: str
    ok: bool
    value: Any = None
    error: str | None = None


@dataclass(slots=True)
class ExtractionTrace:
    candidates: list[str] = field(default_factory=list)
    attempts: list[StrategyResult] = field(default_factory=list)


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text with stray fences removed."""
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return _STRAY_FENCE.sub("", text).strip()


def find_matching_bracket(text: str, start: int) -> int | None:
    """Index of the bracket closing ``text[start]``, honouring JSON string escapes."""
    opener = text[start]
    closer = "]" if opener == "[" else "}"
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
    return None


def _slice_from(text: str, start: int) -> str:
    end = find_matching_bracket(text, start)
    # Unterminated: keep the tail so truncation repair can close it.
    return text[start:] if end is None else text[start : end + 1]


def candidate_slices(text: str) -> list[str]:
    """Ordered candidate substrings that may hold the JSON value."""
    body = strip_code_fences(text)
    candidates: list[str] = []
    if body.startswith("["):
        candidates.append(_slice_from(body, 0))
    brace = body.find("{")
    if brace >= 0:
        candidates.append(_slice_from(body, brace))
    elif not candidates:
        candidates.append(body)

    deduped: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in deduped:
            deduped.append(candidate)
    return deduped


def _strip_comments_and_newlines(text: str) -> str:
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False
    escape = False
    while i < n:
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            out.append(" " if ch in "\r\n" else ch)
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue
        if text.startswith("//", i):
            newline = text.find("\n", i)
            i = n if newline == -1 else newline
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(" " if ch in "\r\n" else ch)
        i += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    escape = False
    n = len(text)
    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            out.append(ch)
            continue
        if ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def normalize_json_text(text: str) -> str:
    """Fix common LLM JSON defects: comments, trailing commas, raw newlines."""
    return _strip_trailing_commas(_strip_comments_and_newlines(text))


def close_truncated(text: str) -> str | None:
    """Close a truncated value's open brackets.

    The text is first closed where it stops, which keeps a final member that
    was complete but not followed by a comma. If that does not parse, it is
    cut back to the last member boundary before closing.
    """
    stack: list[str] = []
    in_string = False
    escape = False
    last_safe: tuple[int, tuple[str, ...]] | None = None
    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "[{":
            stack.append(ch)
        elif ch in "]}":
            if not stack:
                return None
            stack.pop()
            if not stack:
                return None
            last_safe = (i + 1, tuple(stack))
        elif ch == "," and stack:
            last_safe = (i, tuple(stack))

    if not stack:
        return None
    if not in_string:
        closed = text.rstrip().rstrip(",") + _closers(stack)
        try:
            json.loads(closed, strict=False)
            return closed
        except json.JSONDecodeError:
            pass
    if last_safe is None:
        return None
    cut, open_stack = last_safe
    return text[:cut].rstrip().rstrip(",") + _closers(open_stack)


def _closers(stack) -> str:
    return "".join("]" if c == "[" else "}" for c in reversed(stack))


# --- Strategies ---


def parse_raw(candidate: str) -> StrategyResult:
    try:
        return StrategyResult("raw", True, json.loads(candidate))
    except json.JSONDecodeError as e:
        return StrategyResult("raw", False, error=str(e))


def parse_normalized(candidate: str) -> StrategyResult:
    try:
        return StrategyResult("normalized", True, json.loads(normalize_json_text(candidate), strict=False))
    except json.JSONDecodeError as e:
        return StrategyResult("normalized", False, error=str(e))


def parse_segments_fragment(candidate: str) -> StrategyResult:
    text = normalize_json_text(candidate)
    match = _SEGMENTS_ANCHOR.search(text)
    end = find_matching_bracket(text, match.end() - 1) if match else None
    if end is None:
        return StrategyResult("segments_fragment", False, error="no segments array")
    try:
        segments = json.loads(text[match.end() - 1 : end + 1], strict=False)
    except json.JSONDecodeError as e:
        return StrategyResult("segments_fragment", False, error=str(e))
    return StrategyResult("segments_fragment", True, {"segments": segments})


def parse_truncated(candidate: str) -> StrategyResult:
    repaired = close_truncated(normalize_json_text(candidate))
    if repaired is None:
        return StrategyResult("truncation_repair", False, error="not truncated")
    try:
        return StrategyResult("truncation_repair", True, json.loads(repaired, strict=False))
    except json.JSONDecodeError as e:
        return StrategyResult("truncation_repair", False, error=str(e))


EXTRACTION_STRATEGIES: tuple[tuple[str, Callable[[str], StrategyResult]], ...] = (
    ("raw", parse_raw),
    ("normalized", parse_normalized),
    ("segments_fragment", parse_segments_fragment),
    ("truncation_repair", parse_truncated),
)


def extract_with_trace(text: str) -> tuple[Any, ExtractionTrace]:
    """Run every strategy over every candidate slice; return the first success."""
    trace = ExtractionTrace()
    if not isinstance(text, str) or not text.strip():
        raise ParseError("No JSON found in response", preview="")

    trace.candidates = candidate_slices(text.strip())
    for candidate in trace.candidates:
        for _, strategy in EXTRACTION_STRATEGIES:
            result = strategy(candidate)
            trace.attempts.append(result)
            if result.ok:
                if result.name != "raw":
                    logger.debug(f"[JSONExtractor] Recovered JSON via {result.name}")
                return result.value, trace

    attempted = trace.candidates[0] if trace.candidates else text
    preview = attempted[:PREVIEW_CHARS]
    last_error = next(
        (a.error for a in reversed(trace.attempts) if a.name == "normalized" and a.error),
        "no parsable JSON",
    )
    logger.warning(f"[JSONExtractor] All strategies failed. Attempted to parse: {preview}...")
    raise ParseError(
        f"Failed to parse JSON response: {last_error}. Response preview: {attempted[:100]}...",
        preview=preview,
    )


def extract_and_parse_json(text: str) -> Any:
    value, _ = extract_with_trace(text)
    return value
