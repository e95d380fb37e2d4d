import json
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import config_manager


def _configure_paths(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    monkeypatch.setattr(config_manager, "CONFIG_FILE", str(config_path))
    return config_path


def test_first_run_writes_defaults(tmp_path, monkeypatch):
    config_path = _configure_paths(tmp_path, monkeypatch)
    cm = config_manager.ConfigManager()
    assert config_path.exists()
    assert cm.get_preferences()["update_interval"] == 3
    assert cm.get_profiles() == {}
    assert cm.get_default_profile() is None


def test_load_config_handles_corrupt_json(tmp_path, monkeypatch):
    config_path = _configure_paths(tmp_path, monkeypatch)
    config_path.write_text("{bad json", encoding="utf-8")
    cm = config_manager.ConfigManager()
    assert cm.get_preferences() == config_manager.DEFAULT_PREFERENCES
    # corrupt file is left for the user to inspect
    assert config_path.read_text(encoding="utf-8") == "{bad json"


def test_normalize_fills_missing_keys(tmp_path, monkeypatch):
    config_path = _configure_paths(tmp_path, monkeypatch)
    config_path.write_text(
        json.dumps({
            "preferences": {"update_interval": 10},
            "profiles": {"p1": {"name": "NAS", "host": "nas"}, "bad": "not a profile"},
            "default_profile": "p1",
        }),
        encoding="utf-8",
    )
    cm = config_manager.ConfigManager()
    prefs = cm.get_preferences()
    assert prefs["update_interval"] == 10
    assert prefs["request_timeout"] == 30
    assert list(cm.get_profiles()) == ["p1"]
    assert cm.get_profile("p1")["port"] == 9091
    assert cm.get_default_profile()["host"] == "nas"


def test_add_profile_becomes_default_and_persists(tmp_path):
    path = str(tmp_path / "cfg.json")
    cm = config_manager.ConfigManager(path)
    first = cm.add_profile("NAS", "nas.local", port=9092, auto_connect=True, bogus="ignored")
    second = cm.add_profile("Seedbox", "seed.example.com", ssl=True)

    reloaded = config_manager.ConfigManager(path)
    assert reloaded.get_default_profile_id() == first
    profile = reloaded.get_profile(first)
    assert profile["port"] == 9092
    assert profile["auto_connect"] is True
    assert "bogus" not in profile
    assert reloaded.get_profile(second)["ssl"] is True


def test_update_and_delete_profile(tmp_path):
    cm = config_manager.ConfigManager(str(tmp_path / "cfg.json"))
    pid = cm.add_profile("NAS", "nas")
    cm.update_profile(pid, host="nas2", user="admin")
    assert cm.get_profile(pid)["host"] == "nas2"
    assert cm.get_profile(pid)["user"] == "admin"

    cm.delete_profile(pid)
    assert cm.get_profile(pid) is None
    assert cm.get_default_profile_id() == ""


def test_set_preferences_merges(tmp_path):
    cm = config_manager.ConfigManager(str(tmp_path / "cfg.json"))
    cm.set_preferences({"start_paused": True})
    prefs = cm.get_preferences()
    assert prefs["start_paused"] is True
    assert prefs["update_interval"] == 3


def test_profile_url():
    assert config_manager.profile_url({"host": "nas"}) == "http://nas:9091/transmission/rpc"
    assert config_manager.profile_url(
        {"host": "seed", "port": 443, "ssl": True, "path": "rpc"}
    ) == "https://seed:443/rpc"
    assert config_manager.profile_url({"url": "http://x/y"}) == "http://x/y"
