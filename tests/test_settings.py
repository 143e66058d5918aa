from pathlib import Path

import pytest

from notelink.workflows import settings as settings_mod
from notelink.workflows.errors import RuleConfigError
from notelink.workflows.notelink_config import DEFAULT_RULES_PATH
from notelink.workflows.settings import load_settings, load_transformation_config
from notelink.workflows.url_transform import UrlTransformer

_ENV = [
    "NOTELINK_VAULT_ROOT",
    "NOTELINK_ACTIVE_NOTE",
    "NOTELINK_DEFAULT_FOLDER",
    "NOTELINK_OUTPUT_FOLDER",
    "NOTELINK_RULES_PATH",
    "NOTELINK_PROXY_TTL_MINUTES",
    "NOTELINK_PROXY_TIMEOUT_MS",
    "NOTELINK_FETCH_TIMEOUT",
    "NOTELINK_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = load_settings()
    assert settings.vault_root == Path(".")
    assert settings.rules_path == DEFAULT_RULES_PATH
    assert settings.default_folder == "Articles"
    assert settings.active_note is None
    assert settings.output_folder is None
    assert settings.fetch_timeout == 20.0
    assert settings.log_level == "WARNING"


def test_env_overrides_and_explicit_arguments_win(monkeypatch, tmp_path):
    monkeypatch.setenv("NOTELINK_VAULT_ROOT", str(tmp_path / "env-vault"))
    monkeypatch.setenv("NOTELINK_DEFAULT_FOLDER", "Reading")
    monkeypatch.setenv("NOTELINK_FETCH_TIMEOUT", "not-a-number")
    monkeypatch.setenv("NOTELINK_LOG_LEVEL", "debug")
    monkeypatch.setenv("NOTELINK_RULES_PATH", str(tmp_path / "env-rules.json"))

    settings = load_settings()
    assert settings.vault_root == tmp_path / "env-vault"
    assert settings.default_folder == "Reading"
    assert settings.fetch_timeout == 20.0
    assert settings.log_level == "DEBUG"
    assert settings.rules_path == tmp_path / "env-rules.json"

    explicit = load_settings(vault_root=tmp_path, rules_path=tmp_path / "cli.json")
    assert explicit.vault_root == tmp_path
    assert explicit.rules_path == tmp_path / "cli.json"


def test_packaged_rules_load():
    config = load_transformation_config()
    assert [rule.id for rule in config.rules] == ["jina-reader", "youtube-short", "archive-today"]
    assert [rule.id for rule in config.enabled_rules] == ["jina-reader", "youtube-short"]
    assert config.proxy_health_cache_ttl_minutes == 5.0
    assert config.proxy_health_timeout_ms == 3000


def test_missing_default_rule_file_disables_rewriting(monkeypatch, tmp_path):
    monkeypatch.setattr(settings_mod, "DEFAULT_RULES_PATH", tmp_path / "absent.json")
    assert load_transformation_config().rules == []


def test_missing_explicit_rule_file_is_an_error(tmp_path):
    with pytest.raises(RuleConfigError):
        load_transformation_config(tmp_path / "absent.json")


def test_invalid_json_is_an_error(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(RuleConfigError):
        load_transformation_config(path)


def test_env_overrides_proxy_settings(monkeypatch, tmp_path):
    path = tmp_path / "rules.json"
    path.write_text('{"proxyHealthCacheTtlMinutes": 1, "rules": []}', encoding="utf-8")
    monkeypatch.setenv("NOTELINK_PROXY_TTL_MINUTES", "0.5")
    monkeypatch.setenv("NOTELINK_PROXY_TIMEOUT_MS", "750")
    config = load_transformation_config(path)
    assert config.proxy_health_cache_ttl_minutes == 0.5
    assert config.proxy_health_timeout_ms == 750


def test_packaged_rules_only_rewrite_their_own_hosts():
    transformer = UrlTransformer(load_transformation_config(), probe=lambda base, timeout: True)

    for url in (
        "https://www.netflix.com/tudum/articles/foo",
        "https://www.dropbox.com/s/abc/file.pdf",
        "https://www.vox.com/2024/story",
        "https://notmedium.com/post",
        "https://example.com/?ref=youtu.be/abc",
    ):
        result = transformer.transform(url)
        assert result.applied_rule is None, url
        assert result.transformed_url == url

    for url in ("https://medium.com/@a/post", "https://blog.medium.com/post", "https://x.com/user/status/1"):
        assert transformer.transform(url).transformed_url == f"https://r.jina.ai/{url}"
    assert transformer.transform("https://youtu.be/abc").transformed_url == "https://www.youtube.com/watch?v=abc"
