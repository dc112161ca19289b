"""Tests for genrelay.core.config - configuration management.

Tests cover:
- Default values for provider, retry, and storage fields.
- Environment variable overrides via the GENRELAY_ prefix.
- The safety_disabled rule (explicit flag or non-production environment).
- Pydantic validation constraints (attempt bounds, port range, literals,
  sync_wait below http_timeout).
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from genrelay.core.config import GenRelayConfig

_ENV_VARS = (
    "GENRELAY_ENVIRONMENT",
    "GENRELAY_DISABLE_SAFETY",
    "GENRELAY_VIDEO_MODE",
    "GENRELAY_MAX_ATTEMPTS",
    "GENRELAY_SERVER_PORT",
    "GENRELAY_IMAGE_MODEL_ID",
    "GENRELAY_CALLBACK_URL",
    "GENRELAY_SYNC_WAIT",
    "GENRELAY_HTTP_TIMEOUT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigDefaults:
    """Verify that GenRelayConfig provides the deployment defaults."""

    def test_default_models(self, clean_env):
        cfg = GenRelayConfig(_env_file=None)
        assert cfg.image_model_id == "black-forest-labs/flux-dev"
        assert cfg.video_model_id == "kwaivgi/kling-v2.1"

    def test_default_video_mode_is_callback(self, clean_env):
        cfg = GenRelayConfig(_env_file=None)
        assert cfg.video_mode == "callback"
        assert cfg.callback_url is None

    def test_default_retry_policy(self, clean_env):
        """Two attempts total, with a jittered 200-600 ms pause."""
        cfg = GenRelayConfig(_env_file=None)
        assert cfg.max_attempts == 2
        assert cfg.backoff_min == pytest.approx(0.2)
        assert cfg.backoff_max == pytest.approx(0.6)

    def test_default_storage_settings(self, clean_env):
        cfg = GenRelayConfig(_env_file=None)
        assert cfg.storage_bucket == "characters"
        assert cfg.messages_table == "messages"
        assert cfg.record_references is True
        assert cfg.reference_failure_policy == "propagate"

    def test_default_server_settings(self, clean_env):
        cfg = GenRelayConfig(_env_file=None)
        assert cfg.server_host == "0.0.0.0"
        assert cfg.server_port == 3000
        assert cfg.serialize_generations is False


class TestSafetyDisabled:
    """Verify the safety checker rule."""

    def test_disabled_outside_production(self, clean_env):
        cfg = GenRelayConfig(_env_file=None, environment="development")
        assert cfg.safety_disabled is True

    def test_enabled_in_production(self, clean_env):
        cfg = GenRelayConfig(_env_file=None, environment="production")
        assert cfg.safety_disabled is False

    def test_environment_name_is_case_insensitive(self, clean_env):
        cfg = GenRelayConfig(_env_file=None, environment="Production")
        assert cfg.safety_disabled is False

    def test_explicit_flag_wins_in_production(self, clean_env):
        cfg = GenRelayConfig(_env_file=None, environment="production", disable_safety=True)
        assert cfg.safety_disabled is True


class TestEnvironmentOverrides:
    """Verify that GENRELAY_* environment variables override defaults."""

    def test_video_mode_override(self, clean_env):
        clean_env.setenv("GENRELAY_VIDEO_MODE", "sync")
        assert GenRelayConfig(_env_file=None).video_mode == "sync"

    def test_max_attempts_override(self, clean_env):
        clean_env.setenv("GENRELAY_MAX_ATTEMPTS", "4")
        assert GenRelayConfig(_env_file=None).max_attempts == 4

    def test_model_override(self, clean_env):
        clean_env.setenv("GENRELAY_IMAGE_MODEL_ID", "bytedance/seedream-3")
        assert GenRelayConfig(_env_file=None).image_model_id == "bytedance/seedream-3"

    def test_production_environment_from_env(self, clean_env):
        clean_env.setenv("GENRELAY_ENVIRONMENT", "production")
        assert GenRelayConfig(_env_file=None).safety_disabled is False


class TestConfigValidation:
    """Verify Pydantic validation constraints."""

    def test_zero_attempts_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            GenRelayConfig(_env_file=None, max_attempts=0)

    def test_invalid_video_mode_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            GenRelayConfig(_env_file=None, video_mode="poll")

    def test_invalid_reference_policy_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            GenRelayConfig(_env_file=None, reference_failure_policy="ignore")

    def test_privileged_port_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            GenRelayConfig(_env_file=None, server_port=80)

    def test_default_sync_wait_below_http_timeout(self, clean_env):
        cfg = GenRelayConfig(_env_file=None)
        assert cfg.sync_wait == 30
        assert cfg.sync_wait < cfg.http_timeout

    @pytest.mark.parametrize("http_timeout", [30.0, 20.0])
    def test_sync_wait_not_below_http_timeout_rejected(self, clean_env, http_timeout):
        with pytest.raises(ValidationError, match="sync_wait"):
            GenRelayConfig(_env_file=None, sync_wait=30, http_timeout=http_timeout)

    def test_sync_wait_from_environment(self, clean_env):
        clean_env.setenv("GENRELAY_SYNC_WAIT", "10")
        clean_env.setenv("GENRELAY_HTTP_TIMEOUT", "15")
        assert GenRelayConfig(_env_file=None).sync_wait == 10
