"""
Tests for settings resolution: store, then environment, then default.
"""

from gamematch.services import settings_service


def test_store_value_wins(monkeypatch):
    monkeypatch.setenv("DEFAULT_COURTS_COUNT", "6")
    value = settings_service.get_setting_with_fallback({"courts_count": "3"}, "courts_count", "DEFAULT_COURTS_COUNT", "4")
    assert value == "3"


def test_env_then_default(monkeypatch):
    monkeypatch.setenv("DEFAULT_COURTS_COUNT", "6")
    assert settings_service.get_setting_with_fallback({}, "courts_count", "DEFAULT_COURTS_COUNT", "4") == "6"
    monkeypatch.delenv("DEFAULT_COURTS_COUNT")
    assert settings_service.get_setting_with_fallback(None, "courts_count", "DEFAULT_COURTS_COUNT", "4") == "4"


def test_int_setting_rejects_bad_values():
    assert settings_service.get_int_setting({"team_size": "many"}, "team_size", default=4) == 4
    assert settings_service.get_int_setting({"courts_count": "20"}, "courts_count", default=2, maximum=8) == 2
    assert settings_service.get_int_setting({"courts_count": "5"}, "courts_count", default=2, maximum=8) == 5


def test_bool_env(monkeypatch):
    monkeypatch.setenv("AUTO_SEAT_NEXT", "yes")
    assert settings_service.get_bool_env("AUTO_SEAT_NEXT", default=False) is True
    monkeypatch.delenv("AUTO_SEAT_NEXT")
    assert settings_service.get_bool_env("AUTO_SEAT_NEXT", default=False) is False


def test_session_values_only_reports_store_values():
    assert settings_service.session_values({}) == {}
    assert settings_service.session_values({"team_size": "3", "courts_count": "0"}) == {"team_size": 3}


def test_session_defaults_from_environment(monkeypatch):
    monkeypatch.setenv("DEFAULT_TEAM_SIZE", "6")
    defaults = settings_service.session_defaults()
    assert defaults["team_size"] == 6
    assert defaults["courts_count"] >= 1
