import pytest

from datacache.config import CacheConfig, load_config


def test_load_config_defaults(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("single_flight: true", encoding="utf-8")

    cfg = load_config(path)

    assert isinstance(cfg, CacheConfig)
    assert cfg.single_flight is True
    assert cfg.default_ttl_sec == 300
    assert cfg.stale_while_revalidate is True
    assert cfg.max_entries is None


def test_env_overrides(monkeypatch, tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("default_ttl_sec: 60\nnamespace: web", encoding="utf-8")

    monkeypatch.setenv("DATACACHE_DEFAULT_TTL_SEC", "12.5")
    monkeypatch.setenv("DATACACHE_STALE_WHILE_REVALIDATE", "off")
    monkeypatch.setenv("DATACACHE_MAX_ENTRIES", "1000")

    cfg = load_config(source)

    assert cfg.default_ttl_sec == 12.5
    assert cfg.stale_while_revalidate is False
    assert cfg.max_entries == 1000
    assert cfg.namespace == "web"


def test_bad_boolean_override(monkeypatch, tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("", encoding="utf-8")
    monkeypatch.setenv("DATACACHE_SINGLE_FLIGHT", "maybe")

    with pytest.raises(ValueError):
        load_config(source)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yml")


def test_shipped_defaults_load():
    from pathlib import Path

    cfg = load_config(Path(__file__).parent.parent / "config" / "datacache.defaults.yml")

    assert cfg == CacheConfig()


def test_invalid_values_rejected():
    with pytest.raises(ValueError):
        CacheConfig(default_ttl_sec=0)
    with pytest.raises(ValueError):
        CacheConfig.from_dict({"max_entries": 0})
