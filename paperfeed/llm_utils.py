from __future__ import annotations

import json
import logging
from typing import Optional

from paperfeed.constants import LLM_TEMPERATURE

logger = logging.getLogger(__name__)


def build_messages(contents: object | None) -> list[dict[str, str]]:
    if isinstance(contents, str):
        return [{"role": "user", "content": contents}]
    messages: list[dict[str, str]] = []
    if isinstance(contents, list):
        for item in contents:
            if isinstance(item, str):
                messages.append({"role": "user", "content": item})
            elif isinstance(item, dict) and isinstance(item.get("content"), str):
                role = item.get("role") if item.get("role") in ("user", "assistant") else "user"
                messages.append({"role": str(role), "content": item["content"]})
    return messages


def build_payload(
    model: str,
    contents: object | None,
    max_tokens: int,
    config: dict[str, object] | None = None,
) -> dict[str, object]:
    payload: dict[str, object] = {
        "model": model,
        "max_tokens": int(max_tokens),
        "messages": build_messages(contents),
        "temperature": config.get("temperature", LLM_TEMPERATURE)
        if config
        else LLM_TEMPERATURE,
    }
    if config and isinstance(config.get("system"), str):
        payload["system"] = config["system"]
    return payload


def extract_text(response: dict[str, object]) -> str:
    """Concatenate the text blocks of a Messages API response."""
    blocks = response.get("content")
    if not isinstance(blocks, list):
        return ""
    parts: list[str] = []
    for block in blocks:
        if isinstance(block, dict) and block.get("type", "text") == "text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
    return "".join(parts)


def _strip_code_fence(src: str) -> str:
    cleaned = src.strip()
    if not cleaned.startswith("```"):
        return cleaned
    lines = cleaned.splitlines()
    if lines and lines[0].strip().startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def extract_balanced(src: str, open_ch: str, close_ch: str) -> Optional[str]:
    """Return the first balanced ``open_ch``...``close_ch`` span, string-aware."""
    start = src.find(open_ch)
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(src)):
        ch = src[idx]
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
            continue
        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return src[start : idx + 1]
    return None


def parse_json_object(text: str) -> Optional[dict[str, object]]:
    """Parse a JSON object out of model output that may carry extra prose."""
    if not text:
        return None
    clean = _strip_code_fence(text)
    for candidate in (clean, extract_balanced(clean, "{", "}")):
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            logger.debug(f"JSON object decode failed: {e}")
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def parse_json_array(text: str) -> Optional[list[object]]:
    """Parse a JSON array out of model output that may carry extra prose."""
    if not text:
        return None
    clean = _strip_code_fence(text)
    for candidate in (clean, extract_balanced(clean, "[", "]")):
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            logger.debug(f"JSON array decode failed: {e}")
            continue
        if isinstance(parsed, list):
            return parsed
    return None
