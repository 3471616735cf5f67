"""
tests/unit/test_main.py — Entry Point Tests
"""

from unittest.mock import AsyncMock

import pytest

from copypaist.main import _find_env_file, main, parse_args


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.command is None
        assert args.project_dir == "."
        assert args.config is None
        assert args.log_level is None

    def test_command_and_flags(self):
        args = parse_args(["refactor", "-d", "/tmp/proj", "--log-level", "DEBUG"])
        assert args.command == "refactor"
        assert args.project_dir == "/tmp/proj"
        assert args.log_level == "DEBUG"

    def test_unknown_command_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["deploy"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "copypaist" in capsys.readouterr().out


class TestFindEnvFile:
    def test_walks_upward(self, tmp_path):
        (tmp_path / ".env").write_text("API_URL=http://x:1\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert _find_env_file(nested) == tmp_path / ".env"

    def test_none_when_absent(self, tmp_path, monkeypatch):
        monkeypatch.setattr("pathlib.Path.is_file", lambda self: False)
        assert _find_env_file(tmp_path) is None


class TestMain:
    @pytest.mark.asyncio
    async def test_missing_project_dir(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        code = await main(["-d", str(tmp_path / "nope")])
        assert code == 1
        assert "Project directory not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_invalid_config_exits(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        bad = tmp_path / "config.yaml"
        bad.write_text("session:\n  max_rounds: 0\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            await main(["--config", str(bad)])
        assert exc_info.value.code == 1
        assert "Config validation failed" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_unreachable_service_does_not_stop_startup(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("API_URL", "http://127.0.0.1:9")
        config = tmp_path / "config.yaml"
        config.write_text(f"logging:\n  log_dir: {tmp_path / 'logs'}\n", encoding="utf-8")
        run_menu = AsyncMock(return_value=None)
        monkeypatch.setattr("copypaist.commands.run_menu", run_menu)

        code = await main(["--config", str(config), "-d", str(tmp_path)])

        assert code == 0
        run_menu.assert_awaited_once()
