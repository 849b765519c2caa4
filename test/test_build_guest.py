#!/usr/bin/env python3
"""
Test the build_guest functionality without a RISC Zero toolchain.

cargo is replaced by a stub so the tests exercise name resolution,
command construction and error reporting.
"""

import subprocess
from pathlib import Path

import pytest

from headerchain import build
from headerchain.build import (
    ElfNotFoundError,
    GuestBuildFailedError,
    InvalidGuestDirectoryError,
    build_guest,
    guest_binary_name,
    guest_elf_path,
)


def _guest(tmp_path: Path, cargo_toml: str) -> Path:
    guest = tmp_path / "guest"
    guest.mkdir()
    (guest / "Cargo.toml").write_text(cargo_toml)
    return guest


class FakeCargo:
    def __init__(self, returncode=0, stderr="", produce=None):
        self.returncode = returncode
        self.stderr = stderr
        self.produce = produce
        self.calls = []

    def __call__(self, cmd, cwd, **kwargs):
        self.calls.append((cmd, Path(cwd)))
        if self.produce is not None:
            self.produce.parent.mkdir(parents=True, exist_ok=True)
            self.produce.write_bytes(b"\x7fELF")
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr=self.stderr)


def test_binary_name_prefers_bin_table(tmp_path):
    guest = _guest(tmp_path, '[package]\nname = "methods-guest"\n\n[[bin]]\nname = "bitcoin_block_verify"\n')
    assert guest_binary_name(guest) == "bitcoin_block_verify"


def test_binary_name_falls_back_to_package(tmp_path):
    guest = _guest(tmp_path, '[package]\nname = "bitcoin-block-verify"\n')
    assert guest_binary_name(guest) == "bitcoin_block_verify"


def test_invalid_guest_directories(tmp_path):
    with pytest.raises(InvalidGuestDirectoryError, match="does not exist"):
        build_guest(tmp_path / "nonexistent")
    with pytest.raises(InvalidGuestDirectoryError, match="No Cargo.toml"):
        build_guest(tmp_path)
    guest = _guest(tmp_path, "[dependencies]\n")
    with pytest.raises(InvalidGuestDirectoryError, match="Could not determine"):
        build_guest(guest)


def test_build_runs_cargo_and_returns_elf(tmp_path, monkeypatch):
    guest = _guest(tmp_path, '[package]\nname = "bitcoin-block-verify"\n')
    expected = guest_elf_path(guest)
    cargo = FakeCargo(produce=expected)
    monkeypatch.setattr(build.subprocess, "run", cargo)

    assert build_guest(guest, verbose=False) == expected
    cmd, cwd = cargo.calls[0]
    assert cmd == ["cargo", "+risc0", "build", "--target", "riscv32im-risc0-zkvm-elf", "--release"]
    assert cwd == guest.resolve()


def test_debug_build_path(tmp_path):
    guest = _guest(tmp_path, '[package]\nname = "g"\n')
    assert guest_elf_path(guest, release=False).parts[-2:] == ("debug", "g")


def test_build_accepts_dashed_elf_name(tmp_path, monkeypatch):
    guest = _guest(tmp_path, '[package]\nname = "bitcoin-block-verify"\n')
    dashed = guest_elf_path(guest, "bitcoin-block-verify")
    monkeypatch.setattr(build.subprocess, "run", FakeCargo(produce=dashed))
    assert build_guest(guest, verbose=False) == dashed


def test_build_failure_reports_stderr_tail(tmp_path, monkeypatch):
    guest = _guest(tmp_path, '[package]\nname = "g"\n')
    stderr = "\n".join(f"line {i}" for i in range(20))
    monkeypatch.setattr(build.subprocess, "run", FakeCargo(returncode=101, stderr=stderr))

    with pytest.raises(GuestBuildFailedError) as excinfo:
        build_guest(guest, verbose=False)
    message = str(excinfo.value)
    assert "exit code 101" in message
    assert "line 19" in message
    assert "line 9\n" not in message


def test_missing_cargo(tmp_path, monkeypatch):
    guest = _guest(tmp_path, '[package]\nname = "g"\n')

    def no_cargo(*args, **kwargs):
        raise FileNotFoundError("cargo")

    monkeypatch.setattr(build.subprocess, "run", no_cargo)
    with pytest.raises(GuestBuildFailedError, match="toolchain"):
        build_guest(guest, verbose=False)


def test_elf_not_found_after_build(tmp_path, monkeypatch):
    guest = _guest(tmp_path, '[package]\nname = "g"\n')
    monkeypatch.setattr(build.subprocess, "run", FakeCargo(produce=guest_elf_path(guest, "other")))
    with pytest.raises(ElfNotFoundError, match="other"):
        build_guest(guest, verbose=False)
