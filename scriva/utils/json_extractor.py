"""
JSON extraction from model completions.

Models are asked for bare JSON but routinely wrap it in a fenced block or add
a sentence of preamble. This pulls out the object with delimiter-aware
parsing and balanced-brace scanning, then hands it to strict validation.
"""
import json
import logging
from typing import Optional, Type, TypeVar

from scriva.errors import MalformedUpdateError
from scriva.schemas.base import ScrivaModel

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=ScrivaModel)


def extract_json_object(text: str) -> Optional[dict]:
    """
    Extract a JSON object from a completion.

    Strategy (in order of reliability):
        1. The last fenced ``json`` code block.
        2. The whole text, when it already is an object.
        3. The last balanced ``{...}`` block that parses.

    Returns ``None`` when nothing usable is found.
    """
    if not text:
        return None

    strategies = (
        ("code_block", _extract_from_code_block),
        ("whole_text", _whole_text),
        ("brace_scan", _extract_by_brace_scan),
    )
    for name, strategy in strategies:
        raw = strategy(text)
        if raw is None:
            continue
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug("json_extract_miss | strategy=%s | error=%s", name, exc)
            continue
        if isinstance(parsed, dict):
            return parsed
        logger.debug("json_extract_miss | strategy=%s | type=%s", name, type(parsed).__name__)

    logger.warning(
        "json_extract_failed | text_len=%d | tail=%.200s", len(text), text[-200:],
    )
    return None


def extract_json_array(text: str) -> Optional[list]:
    """Extract a top-level JSON array from a fenced block or the bare completion."""
    if not text:
        return None
    for raw in (_extract_from_code_block(text), text.strip()):
        if not raw or not raw.startswith("["):
            continue
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug("json_extract_miss | strategy=array | error=%s", exc)
            continue
        if isinstance(parsed, list):
            return parsed
    logger.warning("json_extract_failed | expected=array | text_len=%d", len(text))
    return None


def parse_model_output(text: str, model: Type[M]) -> Optional[M]:
    """Extract and strictly validate *model* from a completion; ``None`` on any failure."""
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        return model.validate_proposal(data)
    except MalformedUpdateError as exc:
        logger.warning("ai_update_rejected | model=%s | reason=%s", model.__name__, exc)
        return None


# ---------------------------------------------------------------------------
# Extraction strategies
# ---------------------------------------------------------------------------

def _extract_from_code_block(text: str) -> Optional[str]:
    """Content of the **last** fenced block opened with ```json (or a bare ```)."""
    for marker in ("```json", "```"):
        idx = text.rfind(marker)
        if idx == -1:
            continue
        if marker == "```":
            # A bare fence: step back to the opening one.
            idx = text.rfind(marker, 0, idx)
            if idx == -1:
                return None
        start = idx + len(marker)
        end = text.find("```", start)
        candidate = text[start:].strip() if end == -1 else text[start:end].strip()
        return candidate or None
    return None


def _whole_text(text: str) -> Optional[str]:
    stripped = text.strip()
    return stripped if stripped.startswith("{") else None


def _extract_by_brace_scan(text: str) -> Optional[str]:
    """Find the last top-level balanced ``{...}`` block in *text* that parses as JSON.

    Scans forward and jumps past each accepted block, so an object nested
    inside a larger one is never returned on its own.
    """
    found = None
    open_idx = text.find("{")

    while open_idx != -1:
        close_idx = _find_matching_brace(text, open_idx)
        if close_idx is not None:
            candidate = text[open_idx:close_idx + 1]
            try:
                json.loads(candidate)
            except json.JSONDecodeError:
                pass
            else:
                found = candidate
                open_idx = text.find("{", close_idx + 1)
                continue
        open_idx = text.find("{", open_idx + 1)

    return found


def _find_matching_brace(text: str, start: int) -> Optional[int]:
    """Index of the ``}`` balancing the ``{`` at *start*, ignoring braces inside strings."""
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape:
            escape = False
            continue

        if ch == "\\":
            if in_string:
                escape = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i

    return None
