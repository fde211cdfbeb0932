import json

import pytest

from fetchcache import CacheConfig, ConfigError, load_config


def test_defaults():
    config = CacheConfig()

    assert config.cache_folder == ".cache"
    assert config.reset_cache is False
    assert config.refresh == "default"
    assert config.log_to_console is False


def test_merge_prefers_call_site_values():
    config = CacheConfig(cache_folder="base", refresh="once")

    merged = config.merge(cache_folder="other", logToConsole=True)

    assert merged == CacheConfig(cache_folder="other", refresh="once", log_to_console=True)
    assert config.cache_folder == "base"


def test_merge_legacy_aliases():
    config = CacheConfig()

    assert config.merge(avoidNetworkRequests=True).refresh == "never"
    assert config.merge(force_refresh=True).refresh == "force"
    assert config.merge(force_refresh=False).refresh == "default"
    assert config.merge(forceRefresh=True, refresh=60).refresh == 60


def test_merge_rejects_unknown_options():
    with pytest.raises(ConfigError, match="Unknown cache option: 'colour'"):
        CacheConfig().merge(colour="blue")


def test_merge_rejects_invalid_refresh():
    with pytest.raises(ConfigError):
        CacheConfig().merge(refresh="sometimes")


def test_load_missing_config(tmp_path):
    assert load_config(tmp_path / "config.json") == CacheConfig()


def test_load_config(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"cacheFolder": "crawl", "resetCache": True, "refresh": "3600", "logToConsole": True, "extra": 1})
    )

    with caplog.at_level("WARNING", logger="fetchcache"):
        config = load_config(path)

    assert config == CacheConfig(cache_folder="crawl", reset_cache=True, refresh=3600, log_to_console=True)
    assert "Ignoring the unknown cache option 'extra'." in caplog.messages


def test_load_config_legacy_keys(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"avoidNetworkRequests": True}))

    assert load_config(path).refresh == "never"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_load_invalid_config(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)

    with pytest.raises(ConfigError):
        load_config(path)


def test_load_config_from_working_directory(use_temp_dir):
    with open("config.json", "w") as f:
        json.dump({"refresh": "never"}, f)

    assert load_config().refresh == "never"
