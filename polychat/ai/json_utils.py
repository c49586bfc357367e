"""Lenient JSON extraction from model output."""

import json
from typing import Any

import json_repair
from loguru import logger


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[-1].rsplit("```", 1)[0].strip()
    return cleaned


def parse_json_response(text: str | None) -> dict[str, Any]:
    """Extract a JSON object from a model reply.

    Models wrap JSON in fences, add chatter around it, leave trailing commas
    or get cut off by max_tokens. Tries a strict parse of the whole text, then
    of the outermost ``{...}``, then hands the text to json_repair.
    Raises ValueError when no object can be recovered.
    """
    if not text or not text.strip():
        raise ValueError("Empty model response")

    cleaned = strip_fences(text)

    try:
        result = json.loads(cleaned)
        if isinstance(result, dict):
            return result
    except json.JSONDecodeError:
        pass

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            result = json.loads(cleaned[start:end + 1])
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    fragment = cleaned[start:] if start != -1 else cleaned
    repaired = json_repair.loads(fragment)
    if isinstance(repaired, dict) and repaired:
        logger.debug("Repaired malformed JSON from model ({} chars)", len(text))
        return repaired

    logger.warning("JSON parse failed. Raw model text ({} chars): {}", len(text), text[:500])
    raise ValueError(f"Could not parse JSON from model response (length={len(text)})")
