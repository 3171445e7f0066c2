"""
Generation module - model calls with ordered fallback.
"""

from document_qa.generation.client import (
    OpenAIChatBackend,
    FallbackGenerationClient,
    get_generation_client,
)
from document_qa.generation.json_parser import extract_json, strip_fences

__all__ = [
    "OpenAIChatBackend",
    "FallbackGenerationClient",
    "get_generation_client",
    "extract_json",
    "strip_fences",
]
