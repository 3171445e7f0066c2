"""
Unit Tests for Pipeline Configuration and Deadlines
"""

from unittest.mock import patch

from document_qa.core.config import (
    DEFAULT_GENERATION_MODELS,
    PipelineConfig,
    StageBudgets,
    get_config,
    reset_config,
)
from document_qa.core.deadlines import Deadline


class TestPipelineConfig:
    """Defaults and environment overrides."""

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            config = PipelineConfig.from_env()

        assert config.chunk_size == 1000
        assert config.chunk_overlap == 200
        assert config.embedding_batch_size == 10
        assert config.embedding_batch_delay_s == 0.1
        assert config.default_k == 5
        assert config.default_threshold == 0.3
        assert config.search_threshold == 0.7
        assert config.generation_models == DEFAULT_GENERATION_MODELS
        assert config.temperature == 0.1
        assert config.snippet_length == 200
        assert config.use_postgres is False
        assert config.budgets == StageBudgets()

    def test_env_overrides(self):
        env = {
            "DOCQA_CHUNK_SIZE": "500",
            "DOCQA_DEFAULT_K": "8",
            "DOCQA_DEFAULT_THRESHOLD": "0.45",
            "DOCQA_GENERATION_MODELS": "gpt-4o, gpt-4o-mini ,",
            "USE_POSTGRES": "yes",
            "DATABASE_URL": "postgresql://db/notes",
        }
        with patch.dict("os.environ", env, clear=True):
            config = PipelineConfig.from_env()

        assert config.chunk_size == 500
        assert config.default_k == 8
        assert config.default_threshold == 0.45
        assert config.generation_models == ["gpt-4o", "gpt-4o-mini"]
        assert config.use_postgres is True
        assert config.database_url == "postgresql://db/notes"

    def test_generation_models_not_shared_between_instances(self):
        first = PipelineConfig()
        first.generation_models.append("extra")

        assert PipelineConfig().generation_models == DEFAULT_GENERATION_MODELS

    def test_stage_budgets_zero_means_unlimited(self):
        env = {"DOCQA_STAGE_BUDGET_EMBED": "30", "DOCQA_STAGE_BUDGET_SEARCH": "0"}
        with patch.dict("os.environ", env, clear=True):
            budgets = StageBudgets.from_env()

        assert budgets.embed == 30.0
        assert budgets.search is None
        assert budgets.generate is None

    def test_get_config_singleton(self):
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first


class TestDeadline:
    """Monotonic deadlines with an injected clock."""

    def test_unlimited_never_expires(self):
        deadline = Deadline.unlimited()

        assert deadline.remaining() is None
        assert not deadline.expired()

    def test_remaining_counts_down(self):
        now = [100.0]
        deadline = Deadline(5.0, clock=lambda: now[0])

        now[0] = 102.0
        assert deadline.remaining() == 3.0
        assert not deadline.expired()

        now[0] = 106.0
        assert deadline.remaining() == 0.0
        assert deadline.expired()

    def test_zero_budget_is_expired(self):
        assert Deadline(0.0).expired()
