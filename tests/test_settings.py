"""Tests for configuration management."""

from pathlib import Path

import pytest

from money_conversations.config import (
    AppSettings,
    RemoteConfigSettings,
    ReportSettings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for settings defaults and environment overrides."""

    def test_app_defaults(self, monkeypatch):
        """Test documented defaults."""
        monkeypatch.delenv("MAX_IMAGE_DIMENSION", raising=False)
        settings = AppSettings(_env_file=None)
        assert settings.max_image_size_mb == 5
        assert settings.max_image_size_bytes == 5 * 1024 * 1024
        assert settings.max_image_dimension == 1024
        assert settings.items_per_page == 20
        assert settings.backup_format_version == "1.0"

    def test_log_level_normalized(self):
        """Test log levels are upper-cased and checked."""
        assert AppSettings(_env_file=None, log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValueError):
            AppSettings(_env_file=None, log_level="chatty")

    def test_store_env_prefix(self, monkeypatch, tmp_path):
        """Test store settings read the MONEYCONV_STORE_ prefix."""
        monkeypatch.setenv("MONEYCONV_STORE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("MONEYCONV_STORE_GRAPH_FILE_NAME", "journal.json")
        settings = StoreSettings()
        assert settings.graph_path == Path(tmp_path) / "journal.json"

    def test_graph_file_name_must_be_bare(self):
        """Test the graph file name cannot be a path."""
        with pytest.raises(ValueError):
            StoreSettings(graph_file_name="../elsewhere/graph.json")

    def test_remote_config_defaults(self, monkeypatch):
        """Test the redirect keys and timeouts."""
        monkeypatch.delenv("REMOTE_CONFIG_ENDPOINT", raising=False)
        settings = RemoteConfigSettings()
        assert settings.endpoint is None
        assert settings.target_url_key == "url_3"
        assert settings.cached_url_key == "url_2"
        assert settings.reachability_timeout_seconds == 10

    def test_report_env_prefix(self, monkeypatch):
        """Test report settings read the REPORT_ prefix."""
        monkeypatch.setenv("REPORT_MARGIN_PT", "54")
        monkeypatch.setenv("REPORT_COMPRESS_PAGES", "false")
        settings = ReportSettings()
        assert settings.margin_pt == 54
        assert settings.compress_pages is False
        assert settings.font_path is None

    def test_get_settings_is_cached(self):
        """Test the root settings object is shared."""
        assert get_settings() is get_settings()

    def test_validate_all_settings(self, monkeypatch):
        """Test a broken section is reported, not raised."""
        monkeypatch.setenv("REPORT_MARGIN_PT", "5")
        results = validate_all_settings()
        assert results["store"] is True
        assert results["report"] is False
        assert "report_error" in results
