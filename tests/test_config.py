from pathlib import Path

from atrium.config import load_config


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("ATRIUM_DEVELOPMENT", raising=False)
    config = load_config(tmp_path)

    assert config.domain == "localhost"
    assert config.views_dir == tmp_path / "views"
    assert config.cache_dir == tmp_path / ".cache"
    assert config.scripts_dir == tmp_path / "lib" / "scripts"
    assert config.styles_dir == tmp_path / "lib" / "css"
    assert config.development is False
    assert config.redis_url is None
    assert config.max_concurrency == 8


def test_yaml_overrides(tmp_path, monkeypatch):
    monkeypatch.delenv("ATRIUM_DEVELOPMENT", raising=False)
    (tmp_path / "atrium.yaml").write_text(
        "domain: example.com\n"
        "cache_dir: /var/cache/atrium\n"
        "development: true\n"
        "redis_url: redis://cache:6379\n"
        "default_language: fr\n"
        "max_concurrency: 0\n",
        encoding="utf-8",
    )
    config = load_config(tmp_path)

    assert config.domain == "example.com"
    assert config.cache_dir == Path("/var/cache/atrium")
    assert config.development is True
    assert config.redis_url == "redis://cache:6379"
    assert config.default_language == "fr"
    assert config.max_concurrency == 1


def test_non_mapping_yaml_is_ignored(tmp_path, monkeypatch):
    monkeypatch.delenv("ATRIUM_DEVELOPMENT", raising=False)
    (tmp_path / "atrium.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    assert load_config(tmp_path).domain == "localhost"


def test_environment_overrides_development(tmp_path, monkeypatch):
    (tmp_path / "atrium.yaml").write_text("development: false\n", encoding="utf-8")
    monkeypatch.setenv("ATRIUM_DEVELOPMENT", "1")
    assert load_config(tmp_path).development is True
    monkeypatch.setenv("ATRIUM_DEVELOPMENT", "no")
    assert load_config(tmp_path).development is False
