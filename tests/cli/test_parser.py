"""
Tests for the rocq-setup argument parser and command dispatch.
"""

import logging

import pytest

from rocqsetup.cli.parser import CLI


@pytest.fixture
def cli():
    return CLI()


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestParsing:
    def test_install_defaults(self, cli):
        args = cli.parse_args(["install"])

        assert args.command == "install"
        assert args.reuse is None
        assert args.skip_vscode is None
        assert args.force is None
        assert args.manifest is None
        assert args.release is None

    def test_install_flags(self, cli, tmp_path):
        args = cli.parse_args(
            [
                "install",
                "--no-reuse",
                "--skip-vscode",
                "--with-rocqide",
                "--snapshot", "beta",
                "--download-timeout", "5",
                "--workspace", str(tmp_path),
            ]
        )

        assert args.reuse is False
        assert args.skip_vscode is True
        assert args.with_rocqide is True
        assert args.snapshot == "beta"
        assert args.download_timeout == 5.0
        assert args.workspace == tmp_path

    def test_reuse_flags_are_exclusive(self, cli):
        with pytest.raises(SystemExit):
            cli.parse_args(["install", "--reuse", "--no-reuse"])

    def test_release(self, cli):
        assert cli.parse_args(["install", "--release", "2025.01.0"]).release == "2025.01.0"

    def test_release_and_manifest_are_exclusive(self, cli, tmp_path):
        with pytest.raises(SystemExit):
            cli.parse_args(
                ["install", "--release", "2025.01.0", "--manifest", str(tmp_path / "m.json")]
            )

    def test_releases_limit(self, cli):
        assert cli.parse_args(["releases"]).limit == 30
        assert cli.parse_args(["releases", "--limit", "5"]).limit == 5

    def test_version(self, cli, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.parse_args(["--version"])
        assert excinfo.value.code == 0
        assert "rocq-setup" in capsys.readouterr().out


class TestRun:
    def test_no_command_prints_help(self, cli, capsys):
        assert cli.run([]) == 1
        assert "usage: rocq-setup" in capsys.readouterr().out

    def test_dispatches_to_command_module(self, cli, monkeypatch):
        from rocqsetup.cli.commands import detect

        seen = []
        monkeypatch.setattr(detect, "run", lambda args: seen.append(args.command) or 7)

        assert cli.run(["detect"]) == 7
        assert seen == ["detect"]

    def test_keyboard_interrupt(self, cli, monkeypatch):
        from rocqsetup.cli.commands import doctor

        def interrupted(args):
            raise KeyboardInterrupt

        monkeypatch.setattr(doctor, "run", interrupted)

        assert cli.run(["doctor"]) == 130

    def test_unexpected_error_returns_one(self, cli, monkeypatch, capsys):
        from rocqsetup.cli.commands import detect

        def broken(args):
            raise NotADirectoryError("Not a directory: blocker/ws")

        monkeypatch.setattr(detect, "run", broken)

        assert cli.run(["detect"]) == 1
        err = capsys.readouterr().err
        assert "Error: Not a directory: blocker/ws" in err
        assert "Traceback" not in err

    def test_verbose_error_prints_traceback(self, cli, monkeypatch, capsys):
        from rocqsetup.cli.commands import detect

        def broken(args):
            raise ValueError("bad prefix")

        monkeypatch.setattr(detect, "run", broken)

        assert cli.run(["-v", "detect"]) == 1
        assert "Traceback" in capsys.readouterr().err

    @pytest.mark.parametrize(
        "flags,level",
        [([], logging.WARNING), (["-v"], logging.DEBUG), (["-q"], logging.ERROR)],
    )
    def test_console_log_level(self, cli, monkeypatch, flags, level):
        from rocqsetup.cli.commands import detect

        monkeypatch.setattr(detect, "run", lambda args: 0)

        cli.run(flags + ["detect"])

        root = logging.getLogger()
        assert root.level == level
        assert all(handler.level == level for handler in root.handlers)
