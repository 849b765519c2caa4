"""
Program registry: the fixed set of guest programs this host can prove.

A registry is loaded once at process start from a TOML manifest and handed
to the components that need it. Entries are immutable and their identity is
always computed from the ELF content, never taken from the caller.

Manifest format:

    [[program]]
    name = "BITCOIN_BLOCK_VERIFY"
    guest = "methods/guest"          # or: elf = "path/to/elf"
    binary = "bitcoin_block_verify"  # optional
    image_id = "ab12..."             # optional pin, checked on load
"""

import tomllib
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from headerchain.build import build_guest, guest_elf_path
from headerchain.exceptions import RegistryError, UnknownProgram
from headerchain.zkvm import Sandbox

IDENTITY_SIZE = 32


@dataclass(frozen=True)
class ProgramEntry:
    name: str
    image: bytes = field(repr=False)
    identity: bytes
    storage_path: Path

    @property
    def identity_hex(self) -> str:
        return self.identity.hex()


def _parse_identity(query: str) -> bytes | None:
    text = query
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    # bytes.fromhex skips whitespace between bytes
    if any(c.isspace() for c in text):
        return None
    try:
        digest = bytes.fromhex(text)
    except ValueError:
        return None
    return digest if len(digest) == IDENTITY_SIZE else None


class ProgramRegistry(Mapping):
    """Read-only mapping of upper-cased program name to ProgramEntry."""

    def __init__(self, entries: Iterable[ProgramEntry]):
        by_name = {}
        by_identity = {}
        for entry in entries:
            key = entry.name.upper()
            if key in by_name:
                raise RegistryError(f"Duplicate program name: {entry.name}")
            if len(entry.identity) != IDENTITY_SIZE:
                raise RegistryError(
                    f"Program {entry.name} identity is {len(entry.identity)} bytes, expected {IDENTITY_SIZE}"
                )
            if entry.identity in by_identity:
                raise RegistryError(
                    f"Programs {by_identity[entry.identity].name} and {entry.name} share image ID {entry.identity_hex}"
                )
            by_name[key] = entry
            by_identity[entry.identity] = entry
        self._by_name = by_name
        self._by_identity = by_identity

    @classmethod
    def from_entries(cls, entries: Iterable[ProgramEntry]) -> "ProgramRegistry":
        return cls(entries)

    def __getitem__(self, name: str) -> ProgramEntry:
        return self._by_name[name.upper()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def resolve(self, query: str) -> ProgramEntry:
        """
        Find a program by exact name (case-insensitive) or by hex identity.

        Raises:
            UnknownProgram: If neither form matches exactly
        """
        entry = self._by_name.get(query.upper())
        if entry is not None:
            return entry
        digest = _parse_identity(query)
        if digest is not None and digest in self._by_identity:
            return self._by_identity[digest]
        raise UnknownProgram(query)

    def resolve_identity(self, digest: bytes) -> ProgramEntry:
        """Find a program by its full 32-byte image ID."""
        entry = self._by_identity.get(bytes(digest)) if len(digest) == IDENTITY_SIZE else None
        if entry is None:
            raise UnknownProgram(bytes(digest).hex())
        return entry


def _entry_from_table(table: dict, base_dir: Path, sandbox: Sandbox, build: bool) -> ProgramEntry:
    name = table.get("name")
    if not name:
        raise RegistryError(f"Manifest program without a name: {table}")

    if "elf" in table:
        elf_path = (base_dir / table["elf"]).resolve()
    elif "guest" in table:
        guest_dir = base_dir / table["guest"]
        if build:
            elf_path = build_guest(guest_dir, table.get("binary"))
        else:
            elf_path = guest_elf_path(guest_dir, table.get("binary"))
    else:
        raise RegistryError(f"Program {name} needs either 'elf' or 'guest'")

    if not elf_path.is_file():
        hint = " (build it first, or pass --build)" if "guest" in table else ""
        raise RegistryError(f"ELF for program {name} not found: {elf_path}{hint}")

    image = elf_path.read_bytes()
    identity = sandbox.image_id(image)

    pinned = table.get("image_id")
    if pinned is not None and _parse_identity(pinned) != identity:
        raise RegistryError(
            f"Program {name} image ID {identity.hex()} does not match pinned {pinned}"
        )
    return ProgramEntry(name=name.upper(), image=image, identity=identity, storage_path=elf_path)


def load_registry(manifest_path: str | Path, sandbox: Sandbox, build: bool = False) -> ProgramRegistry:
    """
    Load every program listed in a TOML manifest.

    Args:
        manifest_path: Path to the manifest; relative paths inside it resolve against its directory
        sandbox: Computes each image ID from the ELF bytes
        build: Build guest crates before loading instead of using existing ELFs

    Raises:
        RegistryError: If the manifest is missing, malformed or inconsistent
    """
    manifest_path = Path(manifest_path)
    try:
        with open(manifest_path, "rb") as f:
            manifest = tomllib.load(f)
    except FileNotFoundError:
        raise RegistryError(f"Program manifest not found: {manifest_path}")
    except tomllib.TOMLDecodeError as e:
        raise RegistryError(f"Invalid program manifest {manifest_path}: {e}") from e

    tables = manifest.get("program")
    if not isinstance(tables, list) or not tables:
        raise RegistryError(f"No [[program]] entries in {manifest_path}")

    base_dir = manifest_path.resolve().parent
    return ProgramRegistry(_entry_from_table(table, base_dir, sandbox, build) for table in tables)
