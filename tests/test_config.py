# =============================================================================
# Unit Tests - Settings
# =============================================================================

import pytest
from pydantic import ValidationError

from ragchat.config import DEFAULT_CHUNK_SEPARATOR, Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.chunk_separator == DEFAULT_CHUNK_SEPARATOR
        assert settings.retrieval_similarity_threshold == 0.5
        assert settings.retrieval_top_k == 5
        assert settings.retrieval_failure_policy == "continue"

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_range_checked_at_load(self, threshold):
        with pytest.raises(ValidationError):
            Settings(retrieval_similarity_threshold=threshold)

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValidationError):
            Settings(retrieval_failure_policy="retry")

    def test_empty_separator_rejected(self):
        with pytest.raises(ValidationError):
            Settings(chunk_separator="")

    def test_completion_key_follows_provider(self):
        assert Settings(openai_api_key="sk-o", anthropic_api_key="sk-a").completion_api_key == "sk-o"
        assert Settings(
            llm_provider="anthropic", openai_api_key="sk-o", anthropic_api_key="sk-a",
        ).completion_api_key == "sk-a"
        assert Settings(llm_provider="anthropic", llm_api_key="sk-l").completion_api_key == "sk-l"
