"""
Guest building for the program registry.
"""

import subprocess
import sys
import tomllib
from pathlib import Path
from typing import Optional

from headerchain.exceptions import HeaderChainError

GUEST_TARGET = "riscv32im-risc0-zkvm-elf"


class BuildError(HeaderChainError):
    """Base exception for build errors."""
    pass


class GuestBuildFailedError(BuildError):
    """Raised when cargo build command fails."""
    pass


class ElfNotFoundError(BuildError):
    """Raised when ELF file is not found after successful build."""
    pass


class InvalidGuestDirectoryError(BuildError):
    """Raised when guest directory doesn't exist or lacks Cargo.toml."""
    pass


def _log(message: str) -> None:
    print(message, file=sys.stderr)


def guest_binary_name(guest_dir: str | Path) -> str:
    """
    Determine the guest binary name from its Cargo.toml.

    The first [[bin]] entry wins, then the package name with dashes
    replaced by underscores.
    """
    guest_path = Path(guest_dir).resolve()
    if not guest_path.exists():
        raise InvalidGuestDirectoryError(f"Guest directory does not exist: {guest_path}")

    cargo_toml = guest_path / "Cargo.toml"
    if not cargo_toml.exists():
        raise InvalidGuestDirectoryError(f"No Cargo.toml found in guest directory: {guest_path}")

    with open(cargo_toml, "rb") as f:
        cargo_data = tomllib.load(f)

    bins = cargo_data.get("bin") or []
    if bins and bins[0].get("name"):
        return bins[0]["name"]

    package_name = cargo_data.get("package", {}).get("name")
    if not package_name:
        raise InvalidGuestDirectoryError(f"Could not determine binary name from {cargo_toml}")
    return package_name.replace("-", "_")


def guest_elf_path(guest_dir: str | Path, binary_name: Optional[str] = None, release: bool = True) -> Path:
    """Expected ELF location for a directly built guest: <guest>/target/<target>/<profile>/<bin>."""
    guest_path = Path(guest_dir).resolve()
    if binary_name is None:
        binary_name = guest_binary_name(guest_path)
    profile = "release" if release else "debug"
    return guest_path / "target" / GUEST_TARGET / profile / binary_name


def build_guest(
    guest_dir: str | Path,
    binary_name: Optional[str] = None,
    release: bool = True,
    verbose: bool = True,
) -> Path:
    """
    Build a RISC Zero guest program and return the path to the ELF file.

    Args:
        guest_dir: Path to the guest directory containing Cargo.toml
        binary_name: Name of the binary to build (defaults to the name from Cargo.toml)
        release: If True, build in release mode (recommended)
        verbose: Report progress on stderr

    Returns:
        Path to the built ELF file

    Raises:
        InvalidGuestDirectoryError: If guest_dir doesn't exist or lacks Cargo.toml
        GuestBuildFailedError: If cargo build command fails
        ElfNotFoundError: If ELF file is not found after successful build
    """
    guest_path = Path(guest_dir).resolve()
    if binary_name is None:
        binary_name = guest_binary_name(guest_path)
    elf_path = guest_elf_path(guest_path, binary_name, release)

    if verbose:
        _log(f"Building guest program: {binary_name}")
        _log(f"  Directory: {guest_path}")

    cmd = ["cargo", "+risc0", "build", "--target", GUEST_TARGET]
    if release:
        cmd.append("--release")

    try:
        result = subprocess.run(
            cmd,
            cwd=guest_path,
            capture_output=True,
            text=True,
            check=False
        )
    except FileNotFoundError:
        raise GuestBuildFailedError("cargo or cargo-risczero not found. Please install RISC Zero toolchain.")
    except subprocess.SubprocessError as e:
        raise GuestBuildFailedError(f"Failed to run cargo build: {e}")

    if result.returncode != 0:
        error_msg = f"Guest build failed with exit code {result.returncode}"
        if result.stderr:
            # Show last 10 lines of error
            stderr_lines = result.stderr.strip().split('\n')
            relevant_errors = '\n'.join(stderr_lines[-10:])
            error_msg += f"\n\nBuild errors:\n{relevant_errors}"
        raise GuestBuildFailedError(error_msg)

    if not elf_path.exists():
        for alt_path in (
            elf_path.with_name(binary_name.replace("_", "-")),
            elf_path.with_name(binary_name.replace("-", "_")),
        ):
            if alt_path.exists():
                if verbose:
                    _log(f"Found ELF at alternative location: {alt_path}")
                return alt_path

        parent_dir = elf_path.parent
        existing_files = sorted(parent_dir.glob("*")) if parent_dir.exists() else []
        if existing_files:
            files_list = "\n  ".join(f.name for f in existing_files[:5])
            raise ElfNotFoundError(
                f"ELF not found at {elf_path}\n"
                f"Files found in {parent_dir}:\n  {files_list}\n"
                f"The binary name might be different than expected: {binary_name}"
            )
        raise ElfNotFoundError(
            f"ELF not found at {elf_path}\n"
            f"Target directory is empty or missing: {parent_dir}"
        )

    if verbose:
        _log(f"Guest program built: {elf_path} ({elf_path.stat().st_size:,} bytes)")
    return elf_path
