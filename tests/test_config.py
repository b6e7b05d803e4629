"""
Tests for layered configuration loading.
"""

import pytest

from inquest.config import ConfigError, ConfigLoader, CSRFConfig, RequestConfig
from inquest.faults import ConfigInvalidFault


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep stray INQUEST_ variables out of the tests."""
    import os
    for key in list(os.environ):
        if key.startswith("INQUEST_"):
            monkeypatch.delenv(key)


class TestDefaults:

    def test_request_config_defaults(self):
        config = RequestConfig()
        assert config.max_field_count == 1000
        assert config.allowed_hosts is None
        assert config.csrf == CSRFConfig()

    def test_csrf_defaults(self):
        csrf = CSRFConfig()
        assert csrf.token_field == "csrf_token"
        assert csrf.session_key == "$.csrf_token"
        assert csrf.token_bytes == 6
        assert csrf.safe_methods == ("GET", "HEAD", "OPTIONS")

    def test_loader_without_sources(self):
        assert ConfigLoader.load().request_config() == RequestConfig()


class TestSources:

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("INQUEST_MAX_FIELD_COUNT", "50")
        monkeypatch.setenv("INQUEST_CSRF__TOKEN_FIELD", "_token")
        monkeypatch.setenv("INQUEST_CSRF__ENABLED", "false")
        monkeypatch.setenv("INQUEST_ALLOWED_HOSTS", '["example.com"]')

        config = ConfigLoader.load().request_config()

        assert config.max_field_count == 50
        assert config.csrf.token_field == "_token"
        assert config.csrf.enabled is False
        assert config.allowed_hosts == ["example.com"]

    def test_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "INQUEST_MAX_BODY_SIZE=2048\n"
            "INQUEST_UPLOAD_TEMPDIR=/var/tmp/uploads\n"
            "OTHER_SETTING=ignored\n"
        )
        loader = ConfigLoader.load(env_file=str(env_file))
        config = loader.request_config()

        assert config.max_body_size == 2048
        assert config.upload_tempdir == "/var/tmp/uploads"
        assert loader.get("other_setting") is None

    def test_precedence(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("INQUEST_MAX_FIELD_COUNT=10\nINQUEST_MAX_FILE_SIZE=99\n")
        monkeypatch.setenv("INQUEST_MAX_FIELD_COUNT", "20")

        loader = ConfigLoader.load(
            env_file=str(env_file),
            overrides={"max_field_count": 30, "csrf": {"token_bytes": 8}},
        )
        config = loader.request_config()

        assert config.max_field_count == 30
        assert config.max_file_size == 99
        assert config.csrf.token_bytes == 8
        assert loader.get("csrf.token_bytes") == 8

    def test_missing_env_file_ignored(self, tmp_path):
        loader = ConfigLoader.load(env_file=str(tmp_path / "missing.env"))
        assert loader.config_data == {}

    def test_safe_methods_list_becomes_tuple(self):
        config = ConfigLoader.load(
            overrides={"csrf": {"safe_methods": ["GET", "HEAD"]}}
        ).request_config()
        assert config.csrf.safe_methods == ("GET", "HEAD")


class TestValidation:

    def test_type_mismatch(self):
        loader = ConfigLoader.load(overrides={"max_field_count": "many"})
        with pytest.raises(ConfigError) as exc_info:
            loader.request_config()
        assert isinstance(exc_info.value, ConfigInvalidFault)
        assert exc_info.value.metadata["key"] == "max_field_count"

    def test_bool_is_not_int(self):
        loader = ConfigLoader.load(overrides={"max_body_size": True})
        with pytest.raises(ConfigError):
            loader.request_config()

    def test_nested_mismatch(self):
        loader = ConfigLoader.load(overrides={"csrf": {"enabled": "sometimes"}})
        with pytest.raises(ConfigError):
            loader.request_config()
