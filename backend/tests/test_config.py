"""Tests for YAML settings loading."""
import pytest
import yaml
from pydantic import ValidationError

from groupchat.config import AppSettings, ChatSettings, load_settings


def write_settings(tmp_path, data):
    path = tmp_path / "groupchat.settings.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_missing_file_yields_defaults(tmp_path):
    settings = load_settings(tmp_path / "nope.yaml")
    assert settings == AppSettings()
    assert settings.server.port == 3000
    assert settings.chat.anonymous_label == "Anonymous"
    assert settings.chat.typing_idle_seconds == 5.0


def test_empty_file_yields_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_settings(path) == AppSettings()


def test_sections_override_defaults(tmp_path):
    path = write_settings(tmp_path, {
        "server": {"port": 8080},
        "database": {"path": ":memory:", "seed_sample": False},
        "chat": {"anonymous_label": "Someone", "typing_idle_seconds": 2.5},
        "logging": {"level": "debug"},
    })

    settings = load_settings(path)

    assert settings.server.port == 8080
    assert settings.server.host == "0.0.0.0"
    assert settings.database.path == ":memory:"
    assert settings.database.seed_sample is False
    assert settings.chat.anonymous_label == "Someone"
    assert settings.chat.typing_idle_seconds == 2.5
    assert settings.chat.max_message_length == 2000
    assert settings.logging.level == "debug"


def test_env_var_selects_file(tmp_path, monkeypatch):
    path = write_settings(tmp_path, {"chat": {"default_room_id": 7}})
    monkeypatch.setenv("GROUPCHAT_SETTINGS", str(path))
    assert load_settings().chat.default_room_id == 7


@pytest.mark.parametrize("field,value", [
    ("typing_idle_seconds", 0),
    ("typing_idle_seconds", -1.0),
    ("max_message_length", 0),
    ("mailbox_size", 0),
])
def test_invalid_chat_settings_rejected(field, value):
    with pytest.raises(ValidationError):
        ChatSettings(**{field: value})


def test_invalid_file_values_rejected(tmp_path):
    path = write_settings(tmp_path, {"chat": {"typing_idle_seconds": 0}})
    with pytest.raises(ValidationError):
        load_settings(path)
