"""extract and repair json from agent responses"""

from __future__ import annotations

import json
import re
from typing import Any, Dict

CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
LINE_COMMENT = re.compile(r"(?<![:\"'])//[^\n]*$", re.MULTILINE)
BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def repair_json(text: str) -> str:
    """remove comments and trailing commas"""
    for pattern, replacement in ((BLOCK_COMMENT, ""), (LINE_COMMENT, ""), (TRAILING_COMMA, r"\1")):
        text = pattern.sub(replacement, text)
    return text.strip()


def extract_json_payload(text: str) -> str:
    """the fenced block if present, then the outermost {...} inside it"""
    fenced = CODE_FENCE.search(text)
    candidate = fenced.group(1) if fenced else text
    braces = JSON_OBJECT.search(candidate)
    return braces.group(0) if braces else candidate.strip()


def safe_json_loads(text: str) -> Any:
    """parse model output as json, repairing only when the raw payload is invalid"""
    payload = extract_json_payload(text)
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(repair_json(payload))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse JSON payload: {exc}") from exc


def load_json_object(text: Any) -> Dict[str, Any]:
    """accept a dict or a text response and return the json object it carries"""
    if isinstance(text, dict):
        return text
    if not isinstance(text, str):
        raise ValueError(f"Unsupported response type: {type(text).__name__}")
    parsed = safe_json_loads(text)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed
