"""
Pytest configuration and shared fixtures for rocq-setup tests.
"""

from pathlib import Path

import pytest

from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import InstallOptions
from tests.mocks import FakeRunner


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests that require network access",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration flag is provided."""
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (requires --integration)",
    )


# ============================================================================
# Roots and options
# ============================================================================


@pytest.fixture
def fake_home(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def linux_roots(fake_home: Path) -> InstallRoots:
    """Linux roots with every fixed location under the temporary directory."""
    return InstallRoots.for_os("linux", fake_home).rebased(
        editor_candidates=(),
        opam_fallback_dirs=(fake_home / ".local" / "bin",),
    )


@pytest.fixture
def macos_roots(tmp_path: Path, fake_home: Path) -> InstallRoots:
    applications = tmp_path / "Applications"
    user_applications = fake_home / "Applications"
    applications.mkdir()
    return InstallRoots.for_os("macos", fake_home).rebased(
        install_parents=(applications, user_applications),
        fixed_binary_paths=(),
        fixed_binary_dirs=(),
        application_dirs=(applications, user_applications),
        system_app_dir=applications,
        user_app_dir=user_applications,
        editor_candidates=(),
    )


@pytest.fixture
def windows_roots(tmp_path: Path, fake_home: Path) -> InstallRoots:
    drive = tmp_path / "C"
    drive.mkdir()
    return InstallRoots.for_os("windows", fake_home).rebased(
        install_parents=(drive,),
        fixed_install_paths=(drive / "Rocq",),
        editor_candidates=(),
        default_install_base=drive,
    )


@pytest.fixture
def options(tmp_path: Path) -> InstallOptions:
    return InstallOptions(workspace_dir=tmp_path / "rocq-workspace")


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
