"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用的假 CLI 脚本
FAKE_CLI_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_cli.py"


@pytest.fixture
def fake_cli() -> list[str]:
    """运行假 CLI 的 argv 前缀（追加参数即可使用）。"""
    return [sys.executable, str(FAKE_CLI_PATH)]


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch: pytest.MonkeyPatch):
    """每个测试使用干净的 PIPEDRAIN_* 配置。"""
    from pipedrain.config import reload_config

    for key in (
        "PIPEDRAIN_TERM_TIMEOUT",
        "PIPEDRAIN_KILL_TIMEOUT",
        "PIPEDRAIN_READ_CHUNK_SIZE",
        "PIPEDRAIN_MAX_LINE_BYTES",
        "PIPEDRAIN_LOG_DEBUG",
    ):
        monkeypatch.delenv(key, raising=False)
    reload_config()
    yield
    reload_config()
