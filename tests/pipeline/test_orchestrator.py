"""
Unit tests for the seven-step installation pipeline.

Strategies run for real against FakeRunner, mocked downloads and temporary
install roots; nothing touches the network or the real machine.
"""

import hashlib
import json
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
import responses

from rocqsetup.core.exceptions import ChecksumError, InstallError
from rocqsetup.ide.vscode import VSCodeIntegration
from rocqsetup.pipeline import InstallPipeline, build_pipeline
from rocqsetup.toolchain.locator import BinaryLocator
from rocqsetup.toolchain.names import CURRENT_NAMES
from rocqsetup.toolchain.strategies import ElevatedInstallerStrategy
from rocqsetup.toolchain.strategies.opam import OPAM_INSTALL_SCRIPT_URL
from rocqsetup.toolchain.strategy import InstallStrategy, StepLabels
from tests.mocks import download_manifest, opam_manifest

CODE = "/usr/bin/code"


class StepRecorder:
    """Step callback that records every event."""

    def __init__(self):
        self.events: List[Tuple[int, str, float]] = []

    def __call__(self, step: int, label: str, fraction: float) -> None:
        self.events.append((step, label, fraction))

    def steps(self) -> List[int]:
        return sorted({step for step, _, _ in self.events})

    def of(self, step: int) -> List[Tuple[str, float]]:
        return [(label, fraction) for s, label, fraction in self.events if s == step]

    def final(self, step: int) -> Tuple[str, float]:
        return self.of(step)[-1]


class StubStrategy(InstallStrategy):
    """Strategy that records its calls and installs nothing."""

    def __init__(self, manifest, options, location: str, existing: Optional[str] = None):
        super().__init__(manifest, options)
        self.location = location
        self.existing = existing
        self.calls: List[str] = []

    @property
    def step_labels(self) -> StepLabels:
        return StepLabels(
            acquire="Acquiring...",
            acquired="Acquired.",
            verify="Verifying...",
            verified="Verified.",
            install="Installing...",
            installed="Installed.",
        )

    def acquire(self, on_progress=None):
        self.calls.append("acquire")
        on_progress(0.5, None)
        on_progress(1.0, "Finishing download...")
        return None

    def verify(self, artifact):
        self.calls.append("verify")

    def install(self, artifact, on_progress=None):
        self.calls.append("install")
        return self.location

    def existing_installation(self):
        return self.existing


def make_server(directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    server = directory / "vsrocqtop"
    server.write_text("#!/bin/sh\n")
    server.chmod(0o755)
    return server


@pytest.fixture
def recorder():
    return StepRecorder()


@pytest.fixture
def server_dir(tmp_path):
    return tmp_path / "install"


def stub_pipeline(options, roots, runner, recorder, server_dir, existing=None, editor=True):
    manifest = opam_manifest()
    strategy = StubStrategy(manifest, options, str(server_dir), existing=existing)
    return InstallPipeline(
        manifest,
        options,
        strategy,
        roots,
        editor=VSCodeIntegration(roots, runner, CURRENT_NAMES) if editor else None,
        locator=BinaryLocator(roots, CURRENT_NAMES, which=lambda name: None),
        on_step=recorder,
    )


def script_editor(runner):
    runner.available["code"] = CODE
    runner.on("code")
    runner.on("code", "--list-extensions", stdout="rocq-prover.vsrocq\n")
    runner.on("code", "--install-extension")


# ============================================================================
# Step reporting
# ============================================================================


class TestStepReporting:
    def test_every_step_starts_at_zero_and_ends_at_one(
        self, options, linux_roots, runner, recorder, server_dir
    ):
        make_server(server_dir)
        script_editor(runner)

        stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        assert recorder.steps() == [1, 2, 3, 4, 5, 6, 7]
        for step in range(1, 8):
            fractions = [fraction for _, fraction in recorder.of(step)]
            assert fractions[0] == 0.0
            assert fractions[-1] == 1.0
            assert all(0.0 <= f <= 1.0 for f in fractions)

    def test_intermediate_progress_stays_below_completion(
        self, options, linux_roots, runner, recorder, server_dir
    ):
        stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        assert recorder.of(1) == [
            ("Acquiring...", 0.0),
            ("Acquiring...", 0.5),
            ("Finishing download...", 0.99),
            ("Acquired.", 1.0),
        ]

    def test_steps_run_in_order(self, options, linux_roots, runner, recorder, server_dir):
        stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        order = [step for step, _, _ in recorder.events]
        assert order == sorted(order)


# ============================================================================
# Reuse
# ============================================================================


class TestReuse:
    def test_existing_installation_skips_first_three_steps(
        self, options, linux_roots, runner, recorder, server_dir
    ):
        make_server(server_dir)
        pipeline = stub_pipeline(options, linux_roots, runner, recorder, server_dir)

        result = pipeline.run(existing=str(server_dir))

        assert pipeline.strategy.calls == []
        assert result.installed_location == str(server_dir)
        for step in (1, 2, 3):
            assert recorder.of(step) == [
                ("Skipped (already installed).", 0.0),
                ("Skipped (already installed).", 1.0),
            ]

    def test_strategy_recognised_installation(
        self, options, linux_roots, runner, recorder, server_dir
    ):
        pipeline = stub_pipeline(
            options, linux_roots, runner, recorder, server_dir, existing="/opt/rocq"
        )

        assert pipeline.run().installed_location == "/opt/rocq"
        assert pipeline.strategy.calls == []

    def test_reuse_disabled(self, options, linux_roots, runner, recorder, server_dir):
        options.reuse = False
        pipeline = stub_pipeline(
            options, linux_roots, runner, recorder, server_dir, existing="/opt/rocq"
        )

        result = pipeline.run(existing="/opt/other")

        assert pipeline.strategy.calls == ["acquire", "verify", "install"]
        assert result.installed_location == str(server_dir)


# ============================================================================
# Editor steps
# ============================================================================


class TestEditorSteps:
    def test_editor_configured(self, options, linux_roots, runner, recorder, server_dir):
        server = make_server(server_dir)
        script_editor(runner)

        result = stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        settings = options.workspace_dir / ".vscode" / "settings.json"
        assert json.loads(settings.read_text()) == {"vsrocq.path": str(server)}
        assert result.editor_found
        assert result.language_server_path == server
        assert runner.calls_for("code", str(options.workspace_dir)) == [
            [CODE, str(options.workspace_dir)]
        ]

    def test_skip_vscode(self, options, linux_roots, runner, recorder, server_dir):
        make_server(server_dir)
        script_editor(runner)
        options.skip_vscode = True

        result = stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        assert recorder.final(5) == ("Skipped (VSCode integration disabled).", 1.0)
        assert recorder.final(7) == ("Skipped (VSCode integration disabled).", 1.0)
        assert (options.workspace_dir / "main.v").is_file()
        assert not (options.workspace_dir / ".vscode" / "settings.json").exists()
        assert not runner.called("code")
        assert not result.editor_found

    def test_language_server_not_found(
        self, options, linux_roots, runner, recorder, server_dir
    ):
        script_editor(runner)

        result = stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        assert result.language_server_path is None
        assert recorder.final(4) == ("vsrocqtop not found.", 1.0)
        assert not (options.workspace_dir / ".vscode" / "settings.json").exists()
        assert runner.called("code", str(options.workspace_dir))

    def test_extension_failure_does_not_abort(
        self, options, linux_roots, runner, recorder, server_dir
    ):
        make_server(server_dir)
        script_editor(runner)
        runner.on("code", "--list-extensions", stdout="")
        runner.on("code", "--install-extension", returncode=1)

        result = stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        assert result.editor_found
        assert recorder.final(7) == ("VSCode configured.", 1.0)


# ============================================================================
# Scenarios
# ============================================================================


class TestScenarios:
    @responses.activate
    def test_bootstrap_opam_and_install(self, options, linux_roots, runner, recorder, tmp_path):
        """Package manager absent: bootstrap, create switch, install, check version."""
        manifest = opam_manifest(
            switch_prefix="PFX", packages=[{"name": "core", "version": "9.0.0"}]
        )
        responses.add(responses.GET, OPAM_INSTALL_SCRIPT_URL, body=b"#!/bin/sh\n")
        runner.available.update({"unzip": "u", "bwrap": "b", "make": "m", "cc": "c"})
        opam = linux_roots.opam_fallback_dirs[0] / "opam"

        def install_opam(args):
            opam.parent.mkdir(parents=True, exist_ok=True)
            opam.write_text("")

        switch = "PFX.2025.08.1~9.0"
        bin_dir = tmp_path / "opam-root" / switch / "bin"
        server = make_server(bin_dir)
        (bin_dir / "rocq").write_text("")
        runner.on("sh", effect=install_opam)
        runner.on("opam", "--version", stdout="2.3.0")
        runner.on("opam", "init")
        runner.on("opam", "switch", "list", stdout="default\n")
        runner.on("opam", "switch", "create")
        runner.on("opam", "repo")
        runner.on("opam", "update")
        runner.on("opam", "install", stdout="Done.\n")
        runner.on("opam", "var", stdout=f"{bin_dir}\n")
        runner.on("rocq", "--print-version", stdout="9.0.0 4.14.2\n")
        script_editor(runner)

        pipeline = build_pipeline(
            manifest, options, linux_roots, tmp_path / "downloads", runner=runner,
            on_step=recorder,
        )
        result = pipeline.run()

        assert result.installed_location == switch
        assert result.language_server_path == server
        assert result.editor_found
        assert runner.calls_for("opam", "install") == [
            [str(opam), "install", f"--switch={switch}", "-y", "core=9.0.0"]
        ]
        assert f"--switch={switch}" in (options.workspace_dir / "activate.sh").read_text()

    @responses.activate
    def test_disk_image_with_existing_bundle(
        self, options, macos_roots, runner, recorder, tmp_path
    ):
        """Bundle one level deep, destination present, no force: copy skipped."""
        dmg = b"disk image bytes"
        url = "https://example.com/Rocq-Platform.dmg"
        responses.add(responses.GET, url, body=dmg)
        manifest = download_manifest(
            "macos", "arm64", "disk-image", url, hashlib.sha256(dmg).hexdigest()
        )
        app_name = "Rocq-Platform~9.0~2025.08.app"
        volume = tmp_path / "volume"
        (volume / "Rocq Platform" / app_name / "Contents").mkdir(parents=True)
        existing = macos_roots.system_app_dir / app_name
        server = make_server(existing / "Contents" / "Resources" / "bin")
        runner.on("hdiutil")

        pipeline = build_pipeline(
            manifest, options, macos_roots, tmp_path / "downloads", runner=runner,
            on_step=recorder,
        )
        pipeline.strategy.mount = lambda image: volume
        result = pipeline.run()

        assert result.installed_location == str(existing)
        assert result.language_server_path == server
        assert not runner.called("rsync")
        assert runner.calls_for("hdiutil", "detach") == [["hdiutil", "detach", str(volume)]]

    @responses.activate
    def test_disk_image_without_checksum_rerun_transfers_nothing(
        self, options, macos_roots, runner, tmp_path
    ):
        url = "https://example.com/Rocq-Platform.dmg"
        responses.add(responses.GET, url, body=b"disk image bytes")
        manifest = download_manifest("macos", "arm64", "disk-image", url, "")
        app_name = "Rocq-Platform~9.0~2025.08.app"
        volume = tmp_path / "volume"
        (volume / app_name / "Contents").mkdir(parents=True)
        existing = macos_roots.system_app_dir / app_name
        make_server(existing / "Contents" / "Resources" / "bin")
        runner.on("hdiutil")

        locations = []
        for _ in range(2):
            pipeline = build_pipeline(
                manifest, options, macos_roots, tmp_path / "downloads", runner=runner
            )
            pipeline.strategy.mount = lambda image: volume
            locations.append(pipeline.run().installed_location)

        assert locations == [str(existing), str(existing)]
        assert len(responses.calls) == 1

    @responses.activate
    def test_installer_checksum_mismatch(self, options, windows_roots, recorder, tmp_path):
        """Tampered installer: abort at step 2, nothing installed."""
        url = "https://example.com/Rocq-Platform.exe"
        responses.add(responses.GET, url, body=b"tampered")
        manifest = download_manifest(
            "windows", "x86_64", "self-extracting-installer", url,
            hashlib.sha256(b"genuine").hexdigest(),
        )
        launches = []

        class Launcher:
            def run(self, executable, args):
                launches.append(executable)
                return 0

        strategy = ElevatedInstallerStrategy(
            manifest, options, windows_roots, tmp_path / "downloads", launcher=Launcher()
        )
        pipeline = InstallPipeline(manifest, options, strategy, windows_roots, on_step=recorder)

        with pytest.raises(ChecksumError):
            pipeline.run()

        assert recorder.steps() == [1, 2]
        assert recorder.final(2) == ("Verifying checksum...", 0.0)
        assert launches == []
        assert not options.workspace_dir.exists()

    def test_editor_not_found(self, options, linux_roots, runner, recorder, server_dir):
        """No VSCode: steps 6 and 7 are skipped and the run still succeeds."""
        make_server(server_dir)

        result = stub_pipeline(options, linux_roots, runner, recorder, server_dir).run()

        assert not result.editor_found
        assert recorder.final(5) == ("VSCode not found.", 1.0)
        for step in (6, 7):
            label, fraction = recorder.final(step)
            assert label.startswith("Skipped (")
            assert fraction == 1.0
        assert not options.workspace_dir.exists()

    def test_toolchain_version_mismatch(self, options, linux_roots, runner, recorder, tmp_path):
        """Package manager succeeds but the binary reports 8.19: fatal."""
        bin_dir = tmp_path / "switch" / "bin"
        bin_dir.mkdir(parents=True)
        (bin_dir / "rocq").write_text("")
        (linux_roots.home / ".opam").mkdir()
        runner.available["opam"] = "/usr/bin/opam"
        runner.on("opam", "--version", stdout="2.2.1")
        runner.on("opam", "switch", "list", stdout="")
        runner.on("opam", "switch", "create")
        runner.on("opam", "repo")
        runner.on("opam", "update")
        runner.on("opam", "install")
        runner.on("opam", "var", stdout=str(bin_dir))
        runner.on("rocq", "--print-version", stdout="8.19.2 4.14.1")

        pipeline = build_pipeline(
            opam_manifest(), options, linux_roots, tmp_path / "downloads", runner=runner,
            on_step=recorder,
        )

        with pytest.raises(InstallError, match="Version mismatch"):
            pipeline.run()
        assert recorder.steps() == [1, 2, 3]
        assert recorder.final(3)[1] < 1.0
