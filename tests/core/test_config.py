"""
Tests for configuration loading, env overrides and round-tripping to TOML.
"""

import pytest

from sample_finder.core.config import (
    Config,
    get_data_dir,
    load_config,
    parse_config,
    save_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and config directory."""
    for name in ("OPENAI_API_KEY", "SAMPLE_FINDER_DATABASE_URL", "SAMPLE_FINDER_EMBEDDING_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config-home"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data-home"))


class TestParseConfig:
    def test_empty_document_gives_defaults(self):
        config = parse_config({})
        assert config.library.max_files == 50
        assert config.embeddings.provider == "openai"
        assert config.embeddings.model == "text-embedding-3-small"
        assert config.billing.app_name == "indie-sample-finder"
        assert config.sync.database_url == ""

    def test_reads_sections(self):
        config = parse_config(
            {
                "library": {"supported_formats": [".WAV", ".mp3"], "max_files": 10},
                "embeddings": {"provider": "http", "endpoint_url": "http://x/embed"},
                "sync": {"database_url": "sqlite:///remote.db"},
                "billing": {"pro_price_id": "price_pro"},
                "logging": {"level": "debug"},
            }
        )
        assert config.library.supported_formats == [".wav", ".mp3"]
        assert config.library.max_files == 10
        assert config.embeddings.provider == "http"
        assert config.embeddings.endpoint_url == "http://x/embed"
        assert config.sync.database_url == "sqlite:///remote.db"
        assert config.billing.pro_price_id == "price_pro"
        assert config.logging.level == "DEBUG"

    def test_invalid_provider_falls_back_to_defaults(self):
        config = parse_config({"embeddings": {"provider": "carrier-pigeon"}})
        assert config.embeddings.provider == "openai"

    def test_env_overrides_file_values(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("SAMPLE_FINDER_DATABASE_URL", "postgresql://db/samples")
        config = parse_config({"sync": {"database_url": "sqlite:///remote.db"}})
        assert config.embeddings.openai_api_key == "sk-test"
        assert config.sync.database_url == "postgresql://db/samples"


class TestLoadAndSave:
    def test_creates_default_file_when_missing(self, tmp_path):
        path = tmp_path / "config.toml"
        config = load_config(path)
        assert path.exists()
        assert isinstance(config, Config)
        # The written default must itself be loadable
        assert load_config(path).library.max_files == 50

    def test_invalid_toml_uses_defaults(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[library\nmax_files = ", encoding="utf-8")
        config = load_config(path)
        assert config.library.max_files == 50

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "config.toml"
        config = Config()
        config.library.max_files = 7
        config.library.data_dir = str(tmp_path / "data")
        config.embeddings.provider = "http"
        config.embeddings.endpoint_url = "http://localhost:9000/embed"
        config.sync.database_url = "sqlite:///remote.db"
        config.billing.pro_plus_price_id = "price_plus"

        assert save_config(config, path) is True
        loaded = load_config(path)

        assert loaded.library.max_files == 7
        assert loaded.library.data_dir == str(tmp_path / "data")
        assert loaded.embeddings.endpoint_url == "http://localhost:9000/embed"
        assert loaded.sync.database_url == "sqlite:///remote.db"
        assert loaded.billing.pro_plus_price_id == "price_plus"

    def test_save_never_writes_api_key(self, tmp_path):
        path = tmp_path / "config.toml"
        config = Config()
        config.embeddings.openai_api_key = "sk-secret"
        save_config(config, path)
        assert "sk-secret" not in path.read_text(encoding="utf-8")


class TestDataDir:
    def test_config_override(self, tmp_path):
        config = Config()
        config.library.data_dir = str(tmp_path / "custom")
        assert get_data_dir(config) == tmp_path / "custom"

    def test_xdg_default(self, tmp_path):
        assert get_data_dir() == tmp_path / "data-home" / "sample-finder"
