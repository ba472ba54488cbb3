"""Unit tests for configuration defaults and validation."""

from __future__ import annotations

import platformdirs
import pytest
from pydantic import ValidationError

from docserve.config import _DEFAULT_DATA_DIR, CacheSettings, PathSettings, Settings


class TestPlatformDefaults:
    """Verify path defaults use platformdirs instead of hardcoded Unix paths."""

    def test_default_data_dir_matches_platformdirs(self) -> None:
        assert platformdirs.user_data_dir("docserve") == _DEFAULT_DATA_DIR

    def test_paths_live_under_data_dir(self) -> None:
        paths = PathSettings()
        for value in paths.model_dump().values():
            assert value.startswith(_DEFAULT_DATA_DIR)


class TestCachingToggle:
    @pytest.mark.parametrize("environment", ["staging", "production"])
    def test_enabled_in_production_like_environments(self, environment: str) -> None:
        assert Settings(environment=environment).caching_enabled is True

    @pytest.mark.parametrize("environment", ["development", "test"])
    def test_disabled_elsewhere(self, environment: str) -> None:
        assert Settings(environment=environment).caching_enabled is False

    def test_explicit_setting_wins(self) -> None:
        assert Settings(environment="production", cache={"enabled": False}).caching_enabled is False
        assert Settings(environment="development", cache={"enabled": True}).caching_enabled is True


class TestEnvironmentOverrides:
    def test_nested_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCSERVE__CHECKOUT__MAX_WORKERS", "9")
        assert Settings().checkout.max_workers == 9

    def test_constructor_beats_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCSERVE__SERVER__PORT", "9090")
        assert Settings(server={"port": 7070}).server.port == 7070


class TestConfigValidation:
    def test_wrong_type_raises_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            Settings(server={"port": "not-a-number"})  # type: ignore[arg-type]

    def test_unknown_top_level_field_raises_validation_error(self) -> None:
        """A YAML typo at the top level (e.g. 'cach:' instead of 'cache:') is caught."""
        with pytest.raises(ValidationError):
            Settings(completely_unknown_field="oops")  # type: ignore[call-arg]

    def test_unknown_nested_field_raises_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            CacheSettings(enabeld=True)  # type: ignore[call-arg]

    def test_unknown_environment_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(environment="qa")  # type: ignore[arg-type]
