"""
Serialization helpers for the words a RISC Zero guest reads and commits.

This module provides:
1. Writers that produce RISC Zero serde words for env::read()
2. A reader that walks the same format back (guest input and journals)

RISC Zero's serde::to_vec returns Vec<u32>: every primitive is widened to
one or more little-endian u32 words, and a Vec<u8> stores each byte in its
own word after a u32 length word.
"""

import struct
from typing import Union, List


def _as_bytes(data: Union[bytes, bytearray, memoryview, List[int]]) -> bytes:
    if isinstance(data, (list, tuple)):
        return bytes(data)
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if not isinstance(data, bytes):
        if hasattr(data, 'tobytes'):  # numpy arrays, array.array
            return data.tobytes()
        return bytes(data)
    return data


def to_u32(value: int) -> bytes:
    """
    Serialize an integer as Rust u32.

    Format: 4 bytes, little-endian

    Raises:
        struct.error: If value is out of range for u32
    """
    return struct.pack('<I', value)


def to_u64(value: int) -> bytes:
    """
    Serialize an integer as Rust u64.

    Format: 8 bytes, little-endian (two u32 words, low word first)

    Raises:
        struct.error: If value is out of range for u64
    """
    return struct.pack('<Q', value)


def to_bool(value: bool) -> bytes:
    """
    Serialize a boolean as Rust bool for env::read().

    Format: one u32 word, 0 or 1
    """
    return struct.pack('<I', 1 if value else 0)


def to_vec_u8(data: Union[bytes, bytearray, List[int]]) -> bytes:
    """
    Serialize data as Rust Vec<u8> for RISC Zero's serde format.

    Format:
    - First word (4 bytes): length as u32
    - Following words: each byte as a u32 (4 bytes per original byte)

    Example:
        >>> to_vec_u8(b"AB")  # 2 bytes
        # Results in: length(2) + A as u32 + B as u32 = 12 bytes total
    """
    data = _as_bytes(data)
    words = [len(data), *data]
    return struct.pack(f'<{len(words)}I', *words)


def to_bytes32(data: Union[bytes, bytearray, List[int]]) -> bytes:
    """
    Check data is a Rust [u8; 32] and return it as raw bytes.

    Raises:
        ValueError: If data is not exactly 32 bytes
    """
    data = _as_bytes(data)
    if len(data) != 32:
        raise ValueError(f"Expected exactly 32 bytes, got {len(data)}")
    return data


class WordReader:
    """
    Sequential reader over RISC Zero serde words.

    Every read raises ValueError when the buffer is too short or a value
    does not fit its declared type.
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview]):
        self._data = _as_bytes(data)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def _take(self, size: int) -> bytes:
        if size > self.remaining:
            raise ValueError(
                f"Truncated input: need {size} bytes at offset {self._offset}, "
                f"{self.remaining} left"
            )
        chunk = self._data[self._offset:self._offset + size]
        self._offset += size
        return chunk

    def read_u32(self) -> int:
        return struct.unpack('<I', self._take(4))[0]

    def read_u64(self) -> int:
        return struct.unpack('<Q', self._take(8))[0]

    def read_bool(self) -> bool:
        word = self.read_u32()
        if word not in (0, 1):
            raise ValueError(f"Invalid bool word: {word}")
        return word == 1

    def read_vec_u8(self) -> bytes:
        length = self.read_u32()
        if length * 4 > self.remaining:
            raise ValueError(
                f"Vec<u8> declares {length} bytes but only {self.remaining // 4} words remain"
            )
        words = struct.unpack(f'<{length}I', self._take(length * 4))
        if any(word > 0xFF for word in words):
            raise ValueError("Vec<u8> word out of byte range")
        return bytes(words)

    def finish(self) -> None:
        """Require that the whole buffer was consumed."""
        if self.remaining:
            raise ValueError(f"{self.remaining} trailing bytes after decoding")


def from_vec_u8(data: Union[bytes, bytearray, memoryview]) -> bytes:
    """Decode a buffer holding exactly one serialized Vec<u8>."""
    reader = WordReader(data)
    value = reader.read_vec_u8()
    reader.finish()
    return value
