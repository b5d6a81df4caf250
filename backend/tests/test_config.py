"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from question_engine.core.config import Settings


class TestSettings:
    """Tests for Settings parsing and validation."""

    def test_defaults(self):
        config = Settings(ENV="test")

        assert config.DIFFICULTY_EASY_RATIO == 0.3
        assert config.DIFFICULTY_MEDIUM_RATIO == 0.5
        assert config.POOL_RESET_THRESHOLD_RATIO == 0.1
        assert config.GUEST_STORAGE_PREFIX == "sabiprep_attempted_"

    def test_ratios_over_one_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ENV="test", DIFFICULTY_EASY_RATIO=0.6, DIFFICULTY_MEDIUM_RATIO=0.5)

    def test_zero_hard_share_allowed(self):
        config = Settings(ENV="test", DIFFICULTY_EASY_RATIO=0.5, DIFFICULTY_MEDIUM_RATIO=0.5)

        assert config.DIFFICULTY_EASY_RATIO + config.DIFFICULTY_MEDIUM_RATIO == 1.0

    def test_empty_guest_prefix_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ENV="test", GUEST_STORAGE_PREFIX="  ")

    def test_cache_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(ENV="test", POOL_CACHE_TTL_SECONDS=0)

    def test_cors_origins_from_comma_string(self):
        config = Settings(ENV="test", CORS_ORIGINS="http://a.test, http://b.test,")

        assert config.CORS_ORIGINS == ["http://a.test", "http://b.test"]

    def test_prod_requires_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(ValueError):
            Settings(ENV="prod", REDIS_ENABLED=False)
