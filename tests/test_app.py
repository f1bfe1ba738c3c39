"""命令行应用测试。"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from unittest import mock

import pytest

from pipedrain.app import EXIT_LAUNCH_FAILED, _exit_status, build_envp, main
from pipedrain.runtime.environment import envp_to_mapping

IS_WINDOWS = sys.platform == "win32"


class TestBuildEnvp:
    """build_envp() 测试。"""

    def test_no_overrides_inherits(self):
        """无覆盖项时返回 None（继承环境）。"""
        assert build_envp([]) is None

    def test_clear_env(self):
        """--clear-env 从空环境开始。"""
        assert build_envp([], clear=True) == []
        assert build_envp(["FOO=bar"], clear=True) == ["FOO=bar"]

    def test_overrides_current_environment(self):
        """覆盖项按 key 替换当前环境中的值。"""
        with mock.patch.dict(os.environ, {"A": "1", "B": "2"}, clear=True):
            envp = build_envp(["B=20", "C=3"])

        assert envp is not None
        assert sorted(envp) == ["A=1", "B=20", "C=3"]

    def test_malformed_override(self):
        with pytest.raises(ValueError, match="Malformed"):
            build_envp(["NOEQUALS"])

    def test_same_rules_as_envp_parser(self):
        """覆盖项与 envp_to_mapping 使用同一套解析规则：后者覆盖前者，值可含 =。"""
        envp = build_envp(["B=2", "A=x=y", "B=3"], clear=True)

        assert envp == ["A=x=y", "B=3"]
        assert envp_to_mapping(envp) == {"A": "x=y", "B": "3"}

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError, match="Malformed"):
            build_envp(["=value"], clear=True)


class TestExitStatus:
    """退出码转换测试。"""

    @pytest.mark.parametrize("returncode, expected", [(0, 0), (3, 3), (255, 255), (-9, 137), (-15, 143)])
    def test_mapping(self, returncode: int, expected: int):
        assert _exit_status(returncode) == expected


class TestMain:
    """main() 测试。"""

    def test_exit_code_propagated(self, fake_cli: list[str]):
        assert main(["--quiet", "--", *fake_cli, "--exit-code", "6"]) == 6

    def test_without_separator(self, fake_cli: list[str]):
        """不带 -- 时，第一个位置参数之后的内容都属于子命令。"""
        assert main(["--quiet", *fake_cli, "--exit-code", "2"]) == 2

    def test_output_logged(self, fake_cli: list[str], caplog: pytest.LogCaptureFixture):
        """stdout 以 INFO 记录，stderr 以 WARNING 记录。"""
        with caplog.at_level(logging.INFO, logger="pipedrain"):
            code = main(
                ["--", *fake_cli, "--stdout-text", "hello out\n", "--stderr-text", "hello err\n"]
            )

        assert code == 0
        out_records = [r for r in caplog.records if r.getMessage().endswith("hello out")]
        err_records = [r for r in caplog.records if r.getMessage().endswith("hello err")]
        assert len(out_records) == 1 and out_records[0].levelno == logging.INFO
        assert len(err_records) == 1 and err_records[0].levelno == logging.WARNING

    def test_nonzero_exit_logged(self, fake_cli: list[str], caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.INFO, logger="pipedrain"):
            code = main(["--quiet", "--", *fake_cli, "--exit-code", "4"])

        assert code == 4
        assert any("exited with code 4" in r.getMessage() for r in caplog.records)

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX-specific test")
    def test_env_options(self, tmp_path: Path):
        """--clear-env 与 --env 组合只传递指定变量。"""
        out_file = tmp_path / "env.txt"
        code = main(
            [
                "--quiet",
                "--clear-env",
                "--env", f"OUT={out_file}",
                "--env", "FOO=bar",
                "--",
                "/bin/sh", "-c", 'echo "$FOO" > "$OUT"',
            ]
        )

        assert code == 0
        assert out_file.read_text().strip() == "bar"

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX-specific test")
    def test_signal_exit(self):
        """被信号杀死时退出码为 128 + 信号。"""
        assert main(["--quiet", "--", "/bin/sh", "-c", "kill -9 $$"]) == 137

    def test_launch_error(self, tmp_path: Path, caplog: pytest.LogCaptureFixture):
        """无法启动时记录错误并返回 127。"""
        missing = str(tmp_path / "no-such-program")
        with caplog.at_level(logging.INFO, logger="pipedrain"):
            code = main(["--", missing])

        assert code == EXIT_LAUNCH_FAILED
        assert any(
            r.levelno == logging.ERROR and "no-such-program" in r.getMessage()
            for r in caplog.records
        )

    def test_missing_command(self):
        """缺少程序时 argparse 以 2 退出。"""
        with pytest.raises(SystemExit) as exc_info:
            main(["--quiet"])
        assert exc_info.value.code == 2

    def test_malformed_env_option(self, fake_cli: list[str]):
        with pytest.raises(SystemExit) as exc_info:
            main(["--env", "BROKEN", "--", *fake_cli])
        assert exc_info.value.code == 2
