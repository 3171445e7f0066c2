"""
Lenient JSON extraction from model output.

Models asked for JSON often wrap it in markdown fences or add a sentence
before or after. extract_json() strips the fences, takes everything from
the first "{" to the last "}" and parses that.
"""

from __future__ import annotations

import json
import re
from typing import Any

from document_qa.core.errors import ParseError

_FENCE = re.compile(r"```(?:json|JSON)?")


def strip_fences(text: str) -> str:
    """Remove markdown code fence markers, keeping their contents."""
    return _FENCE.sub("", text).strip()


def extract_json(text: str) -> dict[str, Any]:
    """
    Parse the outermost JSON object embedded in text.

    Raises:
        ParseError: No braces found, or the enclosed text is not valid JSON
    """
    if not text:
        raise ParseError("Empty response", raw_text=text)

    cleaned = strip_fences(text)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end < start:
        raise ParseError("No JSON object found in response", raw_text=text)

    try:
        return json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in response: {e.msg}", raw_text=text) from e
