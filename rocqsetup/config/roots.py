"""Well-known install locations per operating system.

Every hard-coded path and brand token the detector, locator, strategies and
editor integration consult lives in one InstallRoots table. Tests build the
same table against a temporary directory.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple

from rocqsetup.core.exceptions import ConfigError

BRAND_TOKENS = ("rocq", "coq")
SWITCH_PREFIXES = ("CP.", "coq-")


@dataclass(frozen=True)
class InstallRoots:
    """
    Per-OS table of well-known paths and name tokens.

    Attributes:
        os_name: 'linux', 'macos' or 'windows'
        install_parents: Directories whose entries may be installations
        bundle_suffix: Required suffix of an installation entry ('.app' on macOS)
        brand_tokens: Case-insensitive substrings identifying Rocq/Coq entries
        switch_prefixes: opam switch name prefixes created by rocq installers
        fixed_install_paths: Installation roots checked verbatim
        fixed_binary_paths: Primary-binary paths checked verbatim
        fixed_binary_dirs: Directories checked for the language server
        application_dirs: Directories scanned for Rocq/Coq bundles
        system_app_dir: Preferred bundle destination
        user_app_dir: Bundle destination when system_app_dir is not writable
        binary_subdirs: Subdirectories of an installation holding binaries
        editor_candidates: Fixed locations of the VSCode ``code`` launcher
        opam_fallback_dirs: Where the opam bootstrap script puts opam
        default_install_base: Parent of the default installer target directory
        home: Home directory the table was built for
    """

    os_name: str
    home: Path
    install_parents: Tuple[Path, ...] = ()
    bundle_suffix: str = ""
    brand_tokens: Tuple[str, ...] = BRAND_TOKENS
    switch_prefixes: Tuple[str, ...] = SWITCH_PREFIXES
    fixed_install_paths: Tuple[Path, ...] = ()
    fixed_binary_paths: Tuple[Path, ...] = ()
    fixed_binary_dirs: Tuple[Path, ...] = ()
    application_dirs: Tuple[Path, ...] = ()
    system_app_dir: Optional[Path] = None
    user_app_dir: Optional[Path] = None
    binary_subdirs: Tuple[str, ...] = ()
    editor_candidates: Tuple[Path, ...] = ()
    opam_fallback_dirs: Tuple[Path, ...] = ()
    default_install_base: Optional[Path] = None

    @classmethod
    def for_os(cls, os_name: str, home: Optional[Path] = None) -> "InstallRoots":
        """
        Build the table for an operating system.

        Raises:
            ConfigError: If os_name is not supported
        """
        home = Path(home) if home else Path.home()

        if os_name == "macos":
            applications = Path("/Applications")
            user_applications = home / "Applications"
            return cls(
                os_name=os_name,
                home=home,
                install_parents=(applications, user_applications),
                bundle_suffix=".app",
                fixed_binary_paths=(
                    Path("/opt/homebrew/bin/rocq"),
                    Path("/usr/local/bin/rocq"),
                ),
                fixed_binary_dirs=(Path("/usr/local/bin"), Path("/opt/homebrew/bin")),
                application_dirs=(applications, user_applications),
                system_app_dir=applications,
                user_app_dir=user_applications,
                binary_subdirs=("Contents/Resources/bin",),
                editor_candidates=(
                    applications
                    / "Visual Studio Code.app/Contents/Resources/app/bin/code",
                    user_applications
                    / "Visual Studio Code.app/Contents/Resources/app/bin/code",
                    Path("/opt/homebrew/bin/code"),
                    Path("/usr/local/bin/code"),
                ),
            )

        if os_name == "linux":
            return cls(
                os_name=os_name,
                home=home,
                binary_subdirs=("",),
                editor_candidates=(
                    Path("/usr/bin/code"),
                    Path("/snap/bin/code"),
                    Path("/usr/share/code/bin/code"),
                ),
                opam_fallback_dirs=(
                    Path("/usr/local/bin"),
                    home / ".local" / "bin",
                    home / ".opam" / "bin",
                ),
            )

        if os_name == "windows":
            drive = Path("C:/")
            return cls(
                os_name=os_name,
                home=home,
                install_parents=(drive,),
                fixed_install_paths=(
                    drive / "Rocq",
                    drive / "Program Files" / "Rocq",
                    drive / "Program Files (x86)" / "Rocq",
                ),
                binary_subdirs=("bin", ""),
                editor_candidates=(
                    drive / "Program Files" / "Microsoft VS Code" / "bin" / "code.cmd",
                    drive
                    / "Program Files (x86)"
                    / "Microsoft VS Code"
                    / "bin"
                    / "code.cmd",
                ),
                default_install_base=drive,
            )

        raise ConfigError(f"Unsupported operating system: {os_name}")

    def rebased(self, **changes) -> "InstallRoots":
        """Return a copy with some entries replaced (used to point at fake roots)."""
        return replace(self, **changes)

    def has_brand(self, name: str) -> bool:
        """Check whether ``name`` contains a brand token, ignoring case."""
        lowered = name.lower()
        return any(token in lowered for token in self.brand_tokens)


__all__ = ["InstallRoots", "BRAND_TOKENS", "SWITCH_PREFIXES"]
