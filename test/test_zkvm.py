#!/usr/bin/env python3
"""
Test the pyr0-backed sandbox adapter.

The native extension is not needed: a module object with the same surface
is installed in its place for the duration of each test.
"""

import sys
import types

import pytest

from headerchain.exceptions import ConfigError, ExecutionFailed, VerificationError
from headerchain.zkvm import Risc0Sandbox


class PyR0Error(Exception):
    pass


class Exit:
    def __init__(self, ok=True, kind="Halted(0)"):
        self.ok = ok
        self.kind = kind


class Receipt:
    def __init__(self, image_id=b"\x11" * 32, journal=b"journal", exit=None, valid=True):
        self.claimed_image_id_bytes = image_id
        self.journal_bytes = journal
        self.exit = exit or Exit()
        self.valid = valid

    def verify_bytes(self, image_id):
        if not self.valid or image_id != self.claimed_image_id_bytes:
            raise PyR0Error("Verification failed: image ID mismatch")

    def to_bytes(self):
        return b"receipt:" + self.journal_bytes

    @classmethod
    def from_bytes(cls, data):
        if not data.startswith(b"receipt:"):
            raise PyR0Error("Failed to deserialize receipt")
        return cls(journal=data[len(b"receipt:"):])


@pytest.fixture
def pyr0(monkeypatch):
    module = types.ModuleType("pyr0")
    module.PyR0Error = PyR0Error
    module.Receipt = Receipt
    module.loaded = []

    def load_image(elf):
        module.loaded.append(elf)
        return ("image", elf)

    def dry_run(image, input_data):
        if input_data == b"panic":
            raise RuntimeError("guest panicked")
        return types.SimpleNamespace(journal=b"journal")

    def prove(image, input_data):
        if input_data == b"halt":
            return Receipt(exit=Exit(ok=False, kind="Paused"))
        return Receipt()

    module.load_image = load_image
    module.compute_image_id_hex = lambda elf: "11" * 32
    module.dry_run = dry_run
    module.prove = prove
    monkeypatch.setitem(sys.modules, "pyr0", module)
    return module


def test_missing_pyr0_is_config_error(monkeypatch):
    monkeypatch.setitem(sys.modules, "pyr0", None)
    with pytest.raises(ConfigError, match="headerchain\\[zkvm\\]"):
        Risc0Sandbox()


def test_image_id_is_32_bytes(pyr0):
    assert Risc0Sandbox().image_id(b"\x7fELF") == b"\x11" * 32


def test_images_are_loaded_once(pyr0):
    sandbox = Risc0Sandbox()
    assert sandbox.execute(b"elf", b"in") == b"journal"
    assert sandbox.execute(b"elf", b"in") == b"journal"
    assert pyr0.loaded == [b"elf"]


def test_execution_failure(pyr0):
    with pytest.raises(ExecutionFailed, match="guest panicked"):
        Risc0Sandbox().execute(b"elf", b"panic")


def test_prove_rejects_abnormal_exit(pyr0):
    sandbox = Risc0Sandbox()
    assert sandbox.prove(b"elf", b"in") == b"receipt:journal"
    with pytest.raises(ExecutionFailed, match="Paused"):
        sandbox.prove(b"elf", b"halt")


def test_load_receipt(pyr0):
    sandbox = Risc0Sandbox()
    receipt = sandbox.load_receipt(b"receipt:journal")
    assert receipt.claimed_image_id == b"\x11" * 32
    assert receipt.journal == b"journal"
    receipt.verify(b"\x11" * 32)

    with pytest.raises(VerificationError):
        receipt.verify(b"\x22" * 32)
    with pytest.raises(ValueError):
        sandbox.load_receipt(b"garbage")
