from __future__ import annotations

# subledger/config.py
import os
from typing import Any

import yaml

# 配置解析顺序：
# 1) 环境变量 SUBLEDGER_*（最高优先级）
# 2) config.yaml（项目根目录）
# 3) DEFAULTS
_PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
_CONFIG_PATH = os.path.join(_PROJECT_ROOT, "config.yaml")

DEFAULTS: dict[str, Any] = {
    "db_path": os.path.join(_PROJECT_ROOT, "subledger.db"),
    "test_db_path": None,
    "busy_timeout_s": 5.0,
    "log_level": "INFO",
    "cors_origins": [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
}

_ENV_KEYS = {
    "db_path": "SUBLEDGER_DB_PATH",
    "busy_timeout_s": "SUBLEDGER_BUSY_TIMEOUT",
    "log_level": "SUBLEDGER_LOG_LEVEL",
}


def read_config_yaml(path: str | None = None) -> dict:
    cfg_path = path or _CONFIG_PATH
    if not os.path.exists(cfg_path):
        return {}
    with open(cfg_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"{cfg_path}: top level must be a mapping")
    return {k: v for k, v in cfg.items() if k in DEFAULTS}


def is_test_env() -> bool:
    return (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)


def get_settings(path: str | None = None) -> dict:
    """Merged settings: env > config.yaml > DEFAULTS."""
    out = dict(DEFAULTS)
    out.update(read_config_yaml(path))

    if is_test_env() and out.get("test_db_path"):
        out["db_path"] = out["test_db_path"]

    for key, env_name in _ENV_KEYS.items():
        v = os.environ.get(env_name)
        if v:
            out[key] = v

    out["busy_timeout_s"] = float(out["busy_timeout_s"])
    out["log_level"] = str(out["log_level"]).upper()
    return out


def get_db_path() -> str:
    path = get_settings()["db_path"]
    # 确保目录存在
    dirn = os.path.dirname(path) or "."
    os.makedirs(dirn, exist_ok=True)
    return path
