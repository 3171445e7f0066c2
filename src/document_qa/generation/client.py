"""
Generation client with an ordered model fallback chain.

FallbackGenerationClient holds a list of model names and tries them one
after the other through a ModelBackend:

- the first successful response short-circuits the chain
- the last error is remembered
- if every model fails, a GenerationFailure is RETURNED, not raised,
  so the synthesizer can answer with an apology instead of crashing

Attempts are sequential; a model is only tried after the previous one
failed. The chain keeps no memory between calls: a model that failed on
the last request is tried again first on the next one.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, TypeVar

from openai import OpenAI
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from document_qa.core.deadlines import Deadline
from document_qa.core.errors import ParseError, UpstreamGenerationExhausted, ValidationError
from document_qa.core.protocols import (
    GenerationConfig,
    GenerationFailure,
    GenerationResult,
    ModelBackend,
)
from document_qa.generation.json_parser import extract_json
from document_qa.observability import get_tracer, mark_degraded
from document_qa.observability.attributes import (
    GEN_AI_COMPLETION,
    GEN_AI_PROMPT,
    GEN_AI_REQUEST_MAX_TOKENS,
    GEN_AI_REQUEST_MODEL,
    GEN_AI_REQUEST_TEMPERATURE,
    generation_attributes,
)
from document_qa.observability.config import get_config as get_tracing_config

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ---------------------------------------------------------------------------
# BACKENDS
# ---------------------------------------------------------------------------


class OpenAIChatBackend:
    """Calls one OpenAI chat model per request."""

    def __init__(self, api_key: str | None = None, client: OpenAI | None = None):
        self._client = client or OpenAI(api_key=api_key or os.environ.get("OPENAI_API_KEY"))

    def complete(
        self,
        model: str,
        prompt: str,
        config: GenerationConfig,
        timeout: float | None = None,
    ) -> str:
        messages = []
        if config.system_prompt:
            messages.append({"role": "system", "content": config.system_prompt})
        messages.append({"role": "user", "content": prompt})

        request: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "max_tokens": config.max_output_tokens,
        }
        if timeout is not None:
            request["timeout"] = timeout

        response = self._client.chat.completions.create(**request)
        text = response.choices[0].message.content
        if not text:
            raise ValueError(f"Model {model} returned an empty response")
        return text


# ---------------------------------------------------------------------------
# FALLBACK CHAIN
# ---------------------------------------------------------------------------


class FallbackGenerationClient:
    """
    Tries each model in order until one succeeds.

    Args:
        models: Ordered model identifiers, most preferred first
        backend: ModelBackend that performs a single model call
    """

    def __init__(self, models: list[str], backend: ModelBackend):
        if not models:
            raise ValidationError("At least one generation model is required")
        self.models = list(models)
        self._backend = backend

    def generate(
        self,
        prompt: str,
        config: GenerationConfig | None = None,
        deadline: Deadline | None = None,
    ) -> GenerationResult | GenerationFailure:
        """Return the first model's text that succeeds, or a GenerationFailure."""
        config = config or GenerationConfig()
        attempted: list[str] = []
        last_error: str | None = None
        start = time.time()

        tracer = get_tracer()
        with tracer.start_span(
            "rag.generate",
            attributes={
                GEN_AI_REQUEST_TEMPERATURE: config.temperature,
                GEN_AI_REQUEST_MAX_TOKENS: config.max_output_tokens,
            },
        ) as span:
            for model in self.models:
                if deadline is not None and deadline.expired():
                    last_error = "generation budget exhausted"
                    logger.warning("Generation budget exhausted after %d attempts", len(attempted))
                    break

                attempted.append(model)
                span.set_attribute(GEN_AI_REQUEST_MODEL, model)
                try:
                    text = self._backend.complete(
                        model,
                        prompt,
                        config,
                        timeout=deadline.remaining() if deadline is not None else None,
                    )
                except Exception as e:
                    last_error = f"{type(e).__name__}: {e}"
                    logger.warning("Model %s failed: %s", model, last_error)
                    continue

                for key, value in generation_attributes(model, len(attempted), False).items():
                    span.set_attribute(key, value)
                if get_tracing_config().capture_llm_content:
                    span.set_attribute(GEN_AI_PROMPT, prompt)
                    span.set_attribute(GEN_AI_COMPLETION, text)
                return GenerationResult(
                    text=text,
                    model=model,
                    attempts=len(attempted),
                    latency_ms=(time.time() - start) * 1000,
                )

            for key, value in generation_attributes(None, len(attempted), True).items():
                span.set_attribute(key, value)
            mark_degraded(span, "all generation models failed")
            logger.error("All generation models failed; last error: %s", last_error)
            return GenerationFailure(attempted_models=attempted, last_error=last_error)

    def generate_json(
        self,
        prompt: str,
        config: GenerationConfig | None = None,
    ) -> dict[str, Any]:
        """
        Generate and leniently parse a JSON object.

        Raises:
            UpstreamGenerationExhausted: every model failed
            ParseError: the response held no parseable JSON object
        """
        outcome = self.generate(prompt, config)
        if isinstance(outcome, GenerationFailure):
            raise UpstreamGenerationExhausted(outcome.attempted_models, outcome.last_error)
        return extract_json(outcome.text)

    def generate_model(
        self,
        prompt: str,
        schema: type[ModelT],
        config: GenerationConfig | None = None,
    ) -> ModelT:
        """
        Generate JSON and validate it against a Pydantic schema.

        Raises:
            UpstreamGenerationExhausted: every model failed
            ParseError: no JSON object, or it does not match the schema
        """
        data = self.generate_json(prompt, config)
        try:
            return schema.model_validate(data)
        except PydanticValidationError as e:
            raise ParseError(
                f"Response does not match {schema.__name__}: {e.error_count()} errors",
                raw_text=str(data),
            ) from e


def get_generation_client(
    models: list[str],
    api_key: str | None = None,
) -> FallbackGenerationClient:
    """Factory: fallback chain over the OpenAI chat backend."""
    return FallbackGenerationClient(models, OpenAIChatBackend(api_key=api_key))
