import pytest

from document_qa.core.config import reset_config as reset_pipeline_config
from document_qa.observability import reset_config as reset_phoenix_config
from document_qa.observability import reset_tracer


@pytest.fixture(autouse=True)
def _fresh_singletons():
    """Config and tracer singletons are rebuilt from env for every test."""
    reset_pipeline_config()
    reset_phoenix_config()
    reset_tracer()
    yield
    reset_pipeline_config()
    reset_phoenix_config()
    reset_tracer()
