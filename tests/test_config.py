from roster_engine.config import DEFAULTS, get_config, reset_config_cache


def _clear_env(monkeypatch):
    for key in DEFAULTS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch)

    cfg = get_config(tmp_path / "missing.yml")

    assert cfg.PLAYER_EDIT_WINDOW_MINUTES == 30
    assert cfg.LOCK_TIMEOUT_SECONDS == 2.0
    assert cfg.REQUIRE_ACTIVE_ROSTER is True
    assert cfg.NO_SHOW_ADMIN_NOTE == "Did not show up without excuse"


def test_env_overrides_yaml_overrides_defaults(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    cfg_path = tmp_path / "roster.yml"
    cfg_path.write_text(
        "\n".join(
            [
                "player_edit_window_minutes: 45",
                "lock_timeout_seconds: 1.5",
                "require_active_roster: 'no'",
                "cancel_no_show_note: Sick after all",
                "unknown_key: 1",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("LOCK_TIMEOUT_SECONDS", "5")

    cfg = get_config(cfg_path)

    assert cfg.PLAYER_EDIT_WINDOW_MINUTES == 45
    assert cfg.LOCK_TIMEOUT_SECONDS == 5.0
    assert cfg.REQUIRE_ACTIVE_ROSTER is False
    assert cfg.CANCEL_NO_SHOW_NOTE == "Sick after all"


def test_invalid_values_fall_back(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("PLAYER_EDIT_WINDOW_MINUTES", "soon")
    monkeypatch.setenv("REQUIRE_ACTIVE_ROSTER", "maybe")

    cfg = get_config(tmp_path / "missing.yml")

    assert cfg.PLAYER_EDIT_WINDOW_MINUTES == 30
    assert cfg.REQUIRE_ACTIVE_ROSTER is True


def test_broken_yaml_warns_and_uses_defaults(tmp_path, monkeypatch, capsys):
    _clear_env(monkeypatch)
    cfg_path = tmp_path / "roster.yml"
    cfg_path.write_text("player_edit_window_minutes: [unclosed", encoding="utf-8")

    cfg = get_config(cfg_path)

    assert cfg.PLAYER_EDIT_WINDOW_MINUTES == 30
    assert "[warn] config" in capsys.readouterr().out


def test_config_is_cached_until_reset(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    cfg_path = tmp_path / "roster.yml"
    cfg_path.write_text("player_edit_window_minutes: 10", encoding="utf-8")

    first = get_config(cfg_path)
    cfg_path.write_text("player_edit_window_minutes: 20", encoding="utf-8")

    assert get_config(cfg_path) is first
    reset_config_cache()
    assert get_config(cfg_path).PLAYER_EDIT_WINDOW_MINUTES == 20
