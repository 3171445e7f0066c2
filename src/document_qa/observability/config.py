"""
Tracing settings for the document QA pipeline.

Environment Variables:
    PHOENIX_ENABLED: Turn tracing on (default: false)
    PHOENIX_PROJECT_NAME: Phoenix project the spans are filed under (default: document-qa)
    PHOENIX_COLLECTOR_ENDPOINT: OTLP/HTTP endpoint of a running collector;
        empty launches a local Phoenix app instead
    PHOENIX_CAPTURE_LLM_CONTENT: Attach prompts and answers to generation spans (default: false)

Prompts carry verbatim excerpts of the uploaded documents. Leave
PHOENIX_CAPTURE_LLM_CONTENT off unless those documents may leave the process.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = ("true", "1", "yes")


@dataclass(frozen=True)
class PhoenixConfig:
    """Where spans go and how much of the document they may contain."""

    enabled: bool = False
    project_name: str = "document-qa"
    collector_endpoint: str | None = None
    capture_llm_content: bool = False

    @property
    def uses_local_app(self) -> bool:
        return self.collector_endpoint is None

    @classmethod
    def from_env(cls) -> "PhoenixConfig":
        env = os.environ
        return cls(
            enabled=env.get("PHOENIX_ENABLED", "").lower() in _TRUTHY,
            project_name=env.get("PHOENIX_PROJECT_NAME") or cls.project_name,
            collector_endpoint=env.get("PHOENIX_COLLECTOR_ENDPOINT") or None,
            capture_llm_content=env.get("PHOENIX_CAPTURE_LLM_CONTENT", "").lower() in _TRUTHY,
        )


_config: PhoenixConfig | None = None


def get_config() -> PhoenixConfig:
    """Process-wide tracing settings, read from the environment on first use."""
    global _config
    if _config is None:
        _config = PhoenixConfig.from_env()
    return _config


def reset_config() -> None:
    global _config
    _config = None
