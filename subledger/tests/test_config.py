from subledger.config import get_settings, read_config_yaml


def test_yaml_values_and_unknown_keys_dropped(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("busy_timeout_s: 2.5\nlog_level: debug\nsomething_else: 1\n", encoding="utf-8")
    assert read_config_yaml(str(p)) == {"busy_timeout_s": 2.5, "log_level": "debug"}

    cfg = get_settings(str(p))
    assert cfg["busy_timeout_s"] == 2.5
    assert cfg["log_level"] == "DEBUG"


def test_env_overrides_yaml(tmp_path, monkeypatch):
    p = tmp_path / "config.yaml"
    p.write_text("db_path: /from/yaml.db\nbusy_timeout_s: 2\n", encoding="utf-8")
    monkeypatch.setenv("SUBLEDGER_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("SUBLEDGER_BUSY_TIMEOUT", "9")
    cfg = get_settings(str(p))
    assert cfg["db_path"] == str(tmp_path / "env.db")
    assert cfg["busy_timeout_s"] == 9.0


def test_test_db_path_used_under_pytest(tmp_path, monkeypatch):
    p = tmp_path / "config.yaml"
    p.write_text("db_path: /prod.db\ntest_db_path: /test.db\n", encoding="utf-8")
    monkeypatch.delenv("SUBLEDGER_DB_PATH", raising=False)
    assert get_settings(str(p))["db_path"] == "/test.db"


def test_missing_file_gives_defaults(tmp_path):
    assert read_config_yaml(str(tmp_path / "nope.yaml")) == {}
