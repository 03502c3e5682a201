"""
Game config catalog and environment-driven settings.
"""

import json

import pytest
from pydantic import ValidationError

from gatewars.models import GAME_CONFIG, CoordinatorSettings, GameSettings, RedisSettings
from gatewars.models.game_config import _CONFIG_PATH


def test_default_intervals():
    intervals = GAME_CONFIG.loop_intervals
    assert (intervals.resource_tick_seconds, intervals.reconcile_poll_seconds, intervals.persist_save_seconds) == (
        1.0,
        5.0,
        10.0,
    )


def test_ship_catalog_is_keyed_by_id():
    catalog = GAME_CONFIG.ship_catalog
    assert {"f302", "bc304", "hatak", "aurora", "cargo"} <= set(catalog)
    assert catalog["f302"].attack == 10
    assert catalog["aurora"].cost.to_vector().naquadah > 0


def test_battle_modifier_ranges_are_validated(tmp_path):
    data = json.loads(_CONFIG_PATH.read_text(encoding="utf-8"))
    data["battle_modifiers"]["luck_draw_minimum"] = 1.5
    path = tmp_path / "game_config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    with pytest.raises(ValidationError):
        GameSettings.load_json(path)


def test_coordinator_settings_from_environment(monkeypatch):
    monkeypatch.setenv("GATEWARS_USER_ID", "user-42")
    monkeypatch.setenv("RESOURCE_TICK_SECONDS", "2.5")
    monkeypatch.setenv("CHANGE_FEED_ENABLED", "true")
    settings = CoordinatorSettings()
    assert settings.user_id == "user-42"
    assert settings.resource_tick_seconds == 2.5
    assert settings.reconcile_poll_seconds == GAME_CONFIG.loop_intervals.reconcile_poll_seconds
    assert settings.change_feed_enabled is True


def test_non_positive_interval_is_rejected(monkeypatch):
    monkeypatch.setenv("PERSIST_SAVE_SECONDS", "0")
    with pytest.raises(ValidationError):
        CoordinatorSettings()


def test_redis_settings_from_environment(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6380/2")
    monkeypatch.setenv("CHANGE_STREAM", "gw:test")
    settings = RedisSettings()
    assert str(settings.redis_url) == "redis://cache:6380/2"
    assert settings.change_stream == "gw:test"
