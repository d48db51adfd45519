"""Tests for config persistence and load hardening."""

from __future__ import annotations

import json

import pytest

from crew_directory.config import _config_to_dict, _dict_to_config, load_config, save_config
from crew_directory.models import DEFAULT_BASE_URL, DirectoryConfig


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "crew-directory" / "config.json"
    monkeypatch.setattr("crew_directory.config.get_config_path", lambda: path)
    return path


def test_missing_file_returns_defaults(config_file) -> None:
    assert load_config() == DirectoryConfig()


def test_save_then_load(config_file) -> None:
    config = DirectoryConfig(
        base_url="https://api.example.com",
        page_size=50,
        rollback_on_failed_mutation=True,
        auth_token="secret",
    )

    assert save_config(config)

    assert load_config() == config
    assert not list(config_file.parent.glob(".config-*.tmp"))


@pytest.mark.parametrize("payload", [[], "oops", 123])
def test_non_dict_root_returns_default(payload, config_file) -> None:
    config_file.parent.mkdir(parents=True)
    config_file.write_text(json.dumps(payload), encoding="utf-8")

    assert load_config() == DirectoryConfig()


def test_invalid_json_returns_default(config_file) -> None:
    config_file.parent.mkdir(parents=True)
    config_file.write_text("{not json", encoding="utf-8")

    assert load_config() == DirectoryConfig()


def test_dict_to_config_validates_types_and_clamps() -> None:
    config = _dict_to_config(
        {
            "base_url": "https://api.example.com/",
            "page_size": 1000,
            "search_debounce_seconds": -1,
            "request_timeout_seconds": "30",
            "max_retries": True,
            "rollback_on_failed_mutation": "yes",
            "max_cached_keys": 0,
            "auth_token": 42,
        }
    )

    assert config.base_url == "https://api.example.com"
    assert config.page_size == 100
    assert config.search_debounce_seconds == 0.0
    assert config.request_timeout_seconds == 30
    assert config.max_retries == 1
    assert config.rollback_on_failed_mutation is False
    assert config.max_cached_keys == 1
    assert config.auth_token == ""


def test_empty_base_url_falls_back() -> None:
    assert _dict_to_config({"base_url": ""}).base_url == DEFAULT_BASE_URL


def test_config_to_dict_round_trips_defaults() -> None:
    assert _dict_to_config(_config_to_dict(DirectoryConfig())) == DirectoryConfig()
