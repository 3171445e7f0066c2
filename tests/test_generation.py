"""
Unit Tests for the Generation Client

STAFF ENGINEER PATTERNS:
------------------------
1. Backend is a MagicMock; side_effect lists script each model's outcome
2. The failure path is a RETURN value, tested without pytest.raises
3. JSON helpers raise typed errors, never json.JSONDecodeError
"""

from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel

from document_qa.core.deadlines import Deadline
from document_qa.core.errors import ParseError, UpstreamGenerationExhausted, ValidationError
from document_qa.core.protocols import (
    GenerationConfig,
    GenerationFailure,
    GenerationResult,
    ModelBackend,
)
from document_qa.generation import (
    FallbackGenerationClient,
    OpenAIChatBackend,
    extract_json,
    strip_fences,
)

MODELS = ["model-a", "model-b", "model-c"]


@pytest.fixture
def backend():
    return MagicMock()


# ---------------------------------------------------------------------------
# FALLBACK CHAIN
# ---------------------------------------------------------------------------


class TestFallbackChain:
    """Models are tried in order until one answers."""

    def test_first_success_short_circuits(self, backend):
        backend.complete.return_value = "answer"

        result = FallbackGenerationClient(MODELS, backend).generate("prompt")

        assert isinstance(result, GenerationResult)
        assert result.model == "model-a"
        assert result.attempts == 1
        assert backend.complete.call_count == 1

    def test_fails_over_to_third_model(self, backend):
        backend.complete.side_effect = [
            RuntimeError("overloaded"),
            TimeoutError("slow"),
            "third answer",
        ]

        result = FallbackGenerationClient(MODELS, backend).generate("prompt")

        assert backend.complete.call_count == 3
        assert [c.args[0] for c in backend.complete.call_args_list] == MODELS
        assert result.text == "third answer"
        assert result.model == "model-c"
        assert result.attempts == 3

    def test_all_models_failing_returns_sentinel(self, backend):
        backend.complete.side_effect = [
            RuntimeError("a"),
            RuntimeError("b"),
            RuntimeError("c"),
        ]

        result = FallbackGenerationClient(MODELS, backend).generate("prompt")

        assert isinstance(result, GenerationFailure)
        assert result.attempted_models == MODELS
        assert result.last_error == "RuntimeError: c"
        assert "model-a, model-b, model-c" in result.error_message

    def test_no_memory_between_calls(self, backend):
        backend.complete.side_effect = [RuntimeError("down"), "second", "fresh"]
        client = FallbackGenerationClient(MODELS, backend)

        client.generate("one")
        result = client.generate("two")

        assert result.model == "model-a"
        assert result.text == "fresh"

    def test_passes_config_to_backend(self, backend):
        backend.complete.return_value = "ok"
        config = GenerationConfig(temperature=0.1, top_p=0.8, max_output_tokens=2048)

        FallbackGenerationClient(MODELS, backend).generate("prompt", config)

        backend.complete.assert_called_once_with("model-a", "prompt", config, timeout=None)

    def test_deadline_caps_each_attempt(self, backend):
        now = [0.0]
        deadline = Deadline(10.0, clock=lambda: now[0])

        def complete(model, prompt, config, timeout=None):
            now[0] += 4.0
            raise RuntimeError("timed out")

        backend.complete.side_effect = complete

        result = FallbackGenerationClient(MODELS, backend).generate("prompt", deadline=deadline)

        assert isinstance(result, GenerationFailure)
        timeouts = [c.kwargs["timeout"] for c in backend.complete.call_args_list]
        assert timeouts == [10.0, 6.0, 2.0]

    def test_expired_deadline_stops_chain(self, backend):
        result = FallbackGenerationClient(MODELS, backend).generate(
            "prompt", deadline=Deadline(0.0)
        )

        assert isinstance(result, GenerationFailure)
        assert result.attempted_models == []
        backend.complete.assert_not_called()

    def test_empty_chain_rejected(self, backend):
        with pytest.raises(ValidationError):
            FallbackGenerationClient([], backend)


# ---------------------------------------------------------------------------
# STRUCTURED OUTPUT
# ---------------------------------------------------------------------------


class Flashcard(BaseModel):
    question: str
    answer: str


class TestStructuredOutput:
    """generate_json and generate_model raise instead of returning sentinels."""

    def test_generate_json(self, backend):
        backend.complete.return_value = 'Here you go:\n```json\n{"pages": [1, 3]}\n```'

        data = FallbackGenerationClient(MODELS, backend).generate_json("prompt")

        assert data == {"pages": [1, 3]}

    def test_generate_json_exhausted(self, backend):
        backend.complete.side_effect = RuntimeError("down")

        with pytest.raises(UpstreamGenerationExhausted) as exc_info:
            FallbackGenerationClient(MODELS, backend).generate_json("prompt")

        assert exc_info.value.attempted_models == MODELS

    def test_generate_json_unparseable(self, backend):
        backend.complete.return_value = "I cannot produce JSON today."

        with pytest.raises(ParseError):
            FallbackGenerationClient(MODELS, backend).generate_json("prompt")

    def test_generate_model_validates(self, backend):
        backend.complete.return_value = '{"question": "What is ATP?", "answer": "Energy currency"}'

        card = FallbackGenerationClient(MODELS, backend).generate_model("prompt", Flashcard)

        assert card == Flashcard(question="What is ATP?", answer="Energy currency")

    def test_generate_model_schema_mismatch(self, backend):
        backend.complete.return_value = '{"question": "What is ATP?"}'

        with pytest.raises(ParseError, match="Flashcard"):
            FallbackGenerationClient(MODELS, backend).generate_model("prompt", Flashcard)


# ---------------------------------------------------------------------------
# OPENAI BACKEND
# ---------------------------------------------------------------------------


class TestOpenAIChatBackend:
    """Request shape against a mocked OpenAI client."""

    def _client(self, content):
        client = MagicMock()
        client.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content=content))
        ]
        return client

    def test_is_model_backend(self):
        assert isinstance(OpenAIChatBackend(client=MagicMock()), ModelBackend)

    def test_sends_system_and_user_messages(self):
        client = self._client("answer")
        config = GenerationConfig(system_prompt="Cite pages.")

        text = OpenAIChatBackend(client=client).complete("gpt-4o-mini", "question", config)

        assert text == "answer"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [
            {"role": "system", "content": "Cite pages."},
            {"role": "user", "content": "question"},
        ]
        assert kwargs["temperature"] == 0.1
        assert kwargs["top_p"] == 0.8
        assert kwargs["max_tokens"] == 2048

    def test_no_system_prompt(self):
        client = self._client("answer")

        OpenAIChatBackend(client=client).complete("m", "question", GenerationConfig())

        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["user"]

    def test_timeout_forwarded_to_client(self):
        client = self._client("answer")

        OpenAIChatBackend(client=client).complete("m", "question", GenerationConfig(), timeout=2.5)

        assert client.chat.completions.create.call_args.kwargs["timeout"] == 2.5

    def test_no_timeout_keeps_client_default(self):
        client = self._client("answer")

        OpenAIChatBackend(client=client).complete("m", "question", GenerationConfig())

        assert "timeout" not in client.chat.completions.create.call_args.kwargs

    def test_empty_response_raises(self):
        client = self._client("")

        with pytest.raises(ValueError):
            OpenAIChatBackend(client=client).complete("m", "question", GenerationConfig())


# ---------------------------------------------------------------------------
# JSON PARSER
# ---------------------------------------------------------------------------


class TestJsonParser:
    """Lenient extraction of one JSON object from model text."""

    def test_plain_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_object(self):
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose(self):
        assert extract_json('Sure! {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}

    def test_strip_fences(self):
        assert strip_fences("```JSON\n[1]\n```") == "[1]"

    @pytest.mark.parametrize("text", ["", "no braces here", "} backwards {"])
    def test_no_object(self, text):
        with pytest.raises(ParseError):
            extract_json(text)

    def test_invalid_json_keeps_raw_text(self):
        with pytest.raises(ParseError) as exc_info:
            extract_json("{'single': 'quotes'}")

        assert exc_info.value.raw_text == "{'single': 'quotes'}"
