"""
Unit tests for VSCode integration.
"""

import json
from pathlib import Path

from rocqsetup.ide.vscode import EXTENSION_INSTALL_TIMEOUT, VSCodeIntegration
from rocqsetup.toolchain.names import CURRENT_NAMES, LEGACY_NAMES

CODE = "/usr/bin/code"


def integration(roots, runner, names=CURRENT_NAMES):
    return VSCodeIntegration(roots, runner, names)


class RecordingRunner:
    """Captures the timeout passed with each command."""

    def __init__(self, runner):
        self.runner = runner
        self.timeouts = []

    def which(self, name):
        return self.runner.which(name)

    def run(self, args, env=None, timeout=None, cwd=None):
        self.timeouts.append(timeout)
        return self.runner.run(args, env=env, timeout=timeout, cwd=cwd)


class TestFindCode:
    def test_on_path(self, linux_roots, runner):
        runner.available["code"] = CODE
        assert integration(linux_roots, runner).find_code() == CODE

    def test_well_known_location(self, linux_roots, runner, tmp_path):
        launcher = tmp_path / "vscode" / "bin" / "code"
        launcher.parent.mkdir(parents=True)
        launcher.write_text("#!/bin/sh\n")
        launcher.chmod(0o755)
        roots = linux_roots.rebased(editor_candidates=(tmp_path / "nope", launcher))

        assert integration(roots, runner).find_code() == str(launcher)

    def test_not_installed(self, linux_roots, runner):
        assert integration(linux_roots, runner).find_code() is None


class TestExtension:
    def test_already_installed_any_case(self, linux_roots, runner):
        runner.on("code", "--list-extensions", stdout="ms-python.python\nRocq-Prover.VsRocq\n")

        assert integration(linux_roots, runner).ensure_extension(CODE)
        assert not runner.called("code", "--install-extension")

    def test_installs_missing_extension(self, linux_roots, runner):
        runner.on("code", "--list-extensions", stdout="ms-python.python\n")
        runner.on("code", "--install-extension")
        recording = RecordingRunner(runner)

        assert integration(linux_roots, recording).ensure_extension(CODE)
        assert runner.calls_for("code", "--install-extension") == [
            [CODE, "--install-extension", "rocq-prover.vsrocq"]
        ]
        assert recording.timeouts[-1] == EXTENSION_INSTALL_TIMEOUT

    def test_legacy_extension_id(self, linux_roots, runner):
        runner.on("code", "--list-extensions")
        runner.on("code", "--install-extension")

        integration(linux_roots, runner, LEGACY_NAMES).ensure_extension(CODE)

        assert runner.calls[-1] == [CODE, "--install-extension", "coq-community.vscoq"]

    def test_install_failure_is_not_fatal(self, linux_roots, runner):
        runner.on("code", "--list-extensions")
        runner.on("code", "--install-extension", returncode=1, stderr="offline")

        assert integration(linux_roots, runner).ensure_extension(CODE) is False


class TestSettings:
    def test_writes_new_settings(self, linux_roots, runner, tmp_path):
        workspace = tmp_path / "ws"
        server = Path("/home/user/.opam/CP.2025.08.1~9.0/bin/vsrocqtop")

        path = integration(linux_roots, runner).write_settings(workspace, server)

        assert path == workspace / ".vscode" / "settings.json"
        assert json.loads(path.read_text()) == {"vsrocq.path": str(server)}
        assert path.read_text().endswith("}\n")

    def test_preserves_existing_keys(self, linux_roots, runner, tmp_path):
        settings = tmp_path / ".vscode" / "settings.json"
        settings.parent.mkdir()
        settings.write_text(json.dumps({"editor.fontSize": 14, "vsrocq.path": "/old"}))

        integration(linux_roots, runner).write_settings(tmp_path, Path("/new/vsrocqtop"))

        assert json.loads(settings.read_text()) == {
            "editor.fontSize": 14,
            "vsrocq.path": "/new/vsrocqtop",
        }

    def test_replaces_malformed_settings(self, linux_roots, runner, tmp_path):
        settings = tmp_path / ".vscode" / "settings.json"
        settings.parent.mkdir()
        settings.write_text("{ not json")

        integration(linux_roots, runner).write_settings(tmp_path, Path("/bin/vsrocqtop"))

        assert json.loads(settings.read_text()) == {"vsrocq.path": "/bin/vsrocqtop"}

    def test_replaces_non_object_settings(self, linux_roots, runner, tmp_path):
        settings = tmp_path / ".vscode" / "settings.json"
        settings.parent.mkdir()
        settings.write_text("[1, 2]")

        integration(linux_roots, runner).write_settings(tmp_path, Path("/bin/vsrocqtop"))

        assert json.loads(settings.read_text()) == {"vsrocq.path": "/bin/vsrocqtop"}

    def test_legacy_settings_key(self, linux_roots, runner, tmp_path):
        path = integration(linux_roots, runner, LEGACY_NAMES).write_settings(
            tmp_path, Path("/bin/vscoqtop")
        )
        assert json.loads(path.read_text()) == {"vscoq.path": "/bin/vscoqtop"}

    def test_windows_server_setting(self, windows_roots, runner):
        vscode = integration(windows_roots, runner)
        assert (
            vscode.server_setting(Path("C:\\Rocq\\bin\\vsrocqtop.EXE"))
            == "C:/Rocq/bin/vsrocqtop"
        )

    def test_posix_server_setting_unchanged(self, macos_roots, runner):
        server = Path("/Applications/Rocq.app/Contents/Resources/bin/vsrocqtop")
        assert integration(macos_roots, runner).server_setting(server) == str(server)


class TestOpenWorkspace:
    def test_open(self, linux_roots, runner, tmp_path):
        runner.on("code")
        assert integration(linux_roots, runner).open_workspace(CODE, tmp_path)
        assert runner.calls == [[CODE, str(tmp_path)]]

    def test_open_failure_is_not_fatal(self, linux_roots, runner, tmp_path):
        runner.on("code", returncode=1)
        assert integration(linux_roots, runner).open_workspace(CODE, tmp_path) is False
