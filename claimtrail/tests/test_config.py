"""Tests for claimtrail.config module."""

import pytest
import yaml

from claimtrail.config import AppConfig, ConfigLoader, WebhookConfig, load_config, save_config
from claimtrail.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in [
        "CLAIMTRAIL_LOG_LEVEL",
        "CLAIMTRAIL_DATABASE_URL",
        "CLAIMTRAIL_WEBHOOK_SECRET",
        "CLAIMTRAIL_FRAUD_FLAG_THRESHOLD",
        "CLAIMTRAIL_CORS_ORIGINS",
        "CLAIMTRAIL_DEV_MODE",
        "CLAIMTRAIL_WEBHOOK_MAX_ATTEMPTS",
        "CLAIMTRAIL_LOG_FILE",
        "CLAIMTRAIL_LOG_JSON",
        "CLAIMTRAIL_DATABASE_ECHO",
        "CLAIMTRAIL_TIMELINE_WINDOW_DAYS",
    ]:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    def test_defaults(self):
        config = load_config()
        assert config.webhook.secret is None
        assert config.webhook.fraud_flag_threshold == 0.8
        assert config.webhook.payment_source == "payment-gateway"
        assert config.webhook.fraud_source == "fraud-service"
        assert config.webhook.document_source == "document-service"
        assert config.timeline.relative_window_days == 7
        assert config.api.database_url.startswith("sqlite")


class TestSources:
    def test_yaml(self, tmp_path):
        path = tmp_path / "claimtrail.yaml"
        path.write_text(yaml.safe_dump({"log_level": "DEBUG", "webhook": {"fraud_flag_threshold": 0.7}}))
        config = load_config(str(path))
        assert config.log_level == "DEBUG"
        assert config.webhook.fraud_flag_threshold == 0.7
        assert config.webhook.max_attempts == 3

    def test_missing_yaml_falls_back_to_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "missing.yaml"))
        assert config == AppConfig()

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "claimtrail.yaml"
        path.write_text(yaml.safe_dump({"webhook": {"secret": "from-yaml"}}))
        monkeypatch.setenv("CLAIMTRAIL_WEBHOOK_SECRET", "from-env")
        monkeypatch.setenv("CLAIMTRAIL_CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("CLAIMTRAIL_DEV_MODE", "false")

        config = load_config(str(path))

        assert config.webhook.secret == "from-env"
        assert config.api.cors_origins == ["https://a.example", "https://b.example"]
        assert config.api.dev_mode is False

    def test_override_dict_wins(self, monkeypatch):
        monkeypatch.setenv("CLAIMTRAIL_FRAUD_FLAG_THRESHOLD", "0.6")
        config = load_config(override_dict={"webhook": {"fraud_flag_threshold": 0.9}})
        assert config.webhook.fraud_flag_threshold == 0.9

    def test_bad_env_value_is_ignored(self, monkeypatch):
        monkeypatch.setenv("CLAIMTRAIL_WEBHOOK_MAX_ATTEMPTS", "many")
        assert load_config().webhook.max_attempts == 3


class TestValidation:
    @pytest.mark.parametrize(
        "override",
        [
            {"log_level": "LOUD"},
            {"webhook": {"fraud_flag_threshold": 1.5}},
            {"webhook": {"max_attempts": 0}},
            {"timeline": {"relative_window_days": 0}},
        ],
    )
    def test_invalid_values(self, override):
        with pytest.raises(ConfigurationError):
            load_config(override_dict=override)

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            load_config(override_dict={"webhook": {"sekret": "x"}})


class TestMerge:
    def test_deep_merge(self):
        merged = ConfigLoader.merge_configs({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})
        assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


class TestSave:
    def test_secret_not_written(self, tmp_path):
        config = AppConfig(webhook=WebhookConfig(secret="hunter2"))
        path = tmp_path / "out" / "config.yaml"

        save_config(config, str(path))

        text = path.read_text()
        assert "hunter2" not in text
        reloaded = load_config(str(path))
        assert reloaded.webhook.secret is None
        assert config.webhook.secret == "hunter2"
