"""
Input packaging for the header-chain guest.

The guest reads its input as

    let (height, headers, enforce_difficulty): (u64, Vec<u8>, bool) = env::read();

so the packaged buffer is the RISC Zero serde encoding of that tuple. Header
content is never validated here; rejecting a broken chain is the guest's job.
Only the framing is checked, before anything is sent to a prover.
"""

import hashlib
import struct
from dataclasses import dataclass
from typing import Iterable, Sequence

from headerchain import serialization
from headerchain.exceptions import MalformedInput

HEADER_SIZE = 80
HEIGHT_SIZE = 8
U64_MAX = 2**64 - 1


@dataclass(frozen=True)
class PackagedInput:
    height: int
    headers: tuple[bytes, ...]
    enforce_difficulty: bool = True

    def encode(self) -> bytes:
        return package_input(self.height, self.headers, self.enforce_difficulty)


def _check_headers(headers: Sequence[bytes]) -> None:
    if not headers:
        raise MalformedInput("Header chain is empty")
    for index, header in enumerate(headers):
        if len(header) != HEADER_SIZE:
            raise MalformedInput(
                f"Header {index} is {len(header)} bytes, expected {HEADER_SIZE}"
            )


def _check_height(height: int) -> None:
    if not isinstance(height, int) or isinstance(height, bool):
        raise MalformedInput(f"Height must be an integer, got {type(height).__name__}")
    if not 0 <= height <= U64_MAX:
        raise MalformedInput(f"Height {height} does not fit in u64")


def package_input(height: int, headers: Iterable[bytes], enforce_difficulty: bool = True) -> bytes:
    """
    Serialize a height and ordered header records for the guest.

    Args:
        height: Height claimed for the last header (u64)
        headers: 80-byte canonical block headers, oldest first
        enforce_difficulty: Whether the guest checks proof-of-work targets

    Returns:
        height as u64, concatenated headers as Vec<u8>, flag as bool

    Raises:
        MalformedInput: If any header is not 80 bytes, the list is empty,
            or height is out of range. Checked before any encoding.
    """
    headers = [bytes(header) for header in headers]
    _check_height(height)
    _check_headers(headers)
    return (
        serialization.to_u64(height)
        + serialization.to_vec_u8(b"".join(headers))
        + serialization.to_bool(enforce_difficulty)
    )


def split_headers(blob: bytes) -> tuple[bytes, ...]:
    """Split concatenated header bytes into 80-byte records."""
    if len(blob) % HEADER_SIZE:
        raise MalformedInput(
            f"Header blob is {len(blob)} bytes, not a multiple of {HEADER_SIZE}"
        )
    return tuple(blob[i:i + HEADER_SIZE] for i in range(0, len(blob), HEADER_SIZE))


def unpack_input(buf: bytes) -> PackagedInput:
    """Decode a packaged buffer the way the guest reads it."""
    reader = serialization.WordReader(buf)
    try:
        height = reader.read_u64()
        blob = reader.read_vec_u8()
        enforce_difficulty = reader.read_bool()
        reader.finish()
    except ValueError as e:
        raise MalformedInput(f"Packaged input is malformed: {e}") from e
    headers = split_headers(blob)
    _check_headers(headers)
    return PackagedInput(height, headers, enforce_difficulty)


def parse_payload(payload: bytes) -> tuple[int, tuple[bytes, ...]]:
    """
    Split a raw host payload into (height, headers).

    Payload layout: 8-byte little-endian height, then N * 80 header bytes.
    """
    if len(payload) < HEIGHT_SIZE + HEADER_SIZE:
        raise MalformedInput(
            f"Payload is {len(payload)} bytes; need an 8-byte height and at least one header"
        )
    (height,) = struct.unpack('<Q', payload[:HEIGHT_SIZE])
    return height, split_headers(payload[HEIGHT_SIZE:])


def block_hash(header: bytes) -> bytes:
    """Double SHA-256 of a header, in internal byte order."""
    return hashlib.sha256(hashlib.sha256(header).digest()).digest()
