"""Tests for global configuration and logging setup."""

import logging
from pathlib import Path

import pytest

from qcgate.config import (
    GlobalConfig,
    get_config_path,
    get_qcgate_home,
    load_global_config,
    resolve_batch_store,
    resolve_product_registry,
    save_global_config,
)
from qcgate.logging import configure_logging


@pytest.fixture(autouse=True)
def qcgate_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point QCGATE_HOME at a temporary directory."""
    monkeypatch.setenv("QCGATE_HOME", str(tmp_path))
    monkeypatch.delenv("QCGATE_PRODUCT_REGISTRY", raising=False)
    monkeypatch.delenv("QCGATE_BATCH_STORE", raising=False)
    return tmp_path


class TestGlobalConfig:
    """Tests for loading and saving config.yaml."""

    def test_home_from_env(self, qcgate_home: Path) -> None:
        """Test QCGATE_HOME relocates the config directory."""
        assert get_qcgate_home() == qcgate_home
        assert get_config_path() == qcgate_home / "config.yaml"

    def test_defaults_without_file(self) -> None:
        """Test a missing config file yields defaults."""
        config = load_global_config()
        assert config == GlobalConfig()
        assert config.log_format == "console"
        assert config.legacy_average_fallback is None

    def test_round_trip(self) -> None:
        """Test a saved config loads back."""
        config = GlobalConfig(
            default_product_registry_path="/srv/registry",
            log_format="json",
            legacy_average_fallback=10.0,
        )
        path = save_global_config(config)
        assert path.exists()
        assert load_global_config() == config

    def test_empty_file(self, qcgate_home: Path) -> None:
        """Test an empty file yields defaults."""
        (qcgate_home / "config.yaml").write_text("")
        assert load_global_config() == GlobalConfig()

    def test_not_a_mapping(self, qcgate_home: Path) -> None:
        """Test a YAML list is rejected."""
        (qcgate_home / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_global_config()


class TestPathResolution:
    """Tests for registry and store path precedence."""

    def test_explicit_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an explicit path beats the environment."""
        monkeypatch.setenv("QCGATE_PRODUCT_REGISTRY", "/env/registry")
        assert resolve_product_registry(Path("/cli/registry")) == Path("/cli/registry")

    def test_env_beats_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the environment beats config.yaml."""
        save_global_config(GlobalConfig(default_batch_store_path="/config/batches"))
        monkeypatch.setenv("QCGATE_BATCH_STORE", "/env/batches")
        assert resolve_batch_store() == Path("/env/batches")

    def test_config_used(self) -> None:
        """Test config.yaml is used when nothing else is set."""
        save_global_config(GlobalConfig(default_product_registry_path="/config/registry"))
        assert resolve_product_registry() == Path("/config/registry")

    def test_fallbacks(self, qcgate_home: Path) -> None:
        """Test the built-in defaults."""
        assert resolve_product_registry() == Path("product-registry")
        assert resolve_batch_store() == qcgate_home / "batches"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_sets_level_and_handler(self) -> None:
        """Test the root logger gets one handler at the requested level."""
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("json", "debug")
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_unknown_level_defaults_to_info(self) -> None:
        """Test an unknown level name falls back to INFO."""
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("console", "chatty")
            assert root.level == logging.INFO
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
