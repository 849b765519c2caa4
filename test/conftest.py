"""
Shared fixtures: a scripted sandbox that behaves like the header-chain guest,
a scripted remote transport, and a fake clock.
"""

import hashlib
import struct
from dataclasses import dataclass, field
from pathlib import Path

import cbor2
import pytest
from eth_abi import encode as abi_encode

from headerchain import serialization
from headerchain.bonsai import SessionId, SessionStatus, UploadLocation
from headerchain.exceptions import ExecutionFailed, MalformedInput, VerificationError
from headerchain.packager import block_hash, unpack_input
from headerchain.registry import ProgramEntry, ProgramRegistry

REGTEST_BITS = 0x207FFFFF
GENESIS_TIME = 1296688602


def bits_to_target(bits: int) -> int:
    exponent = bits >> 24
    mantissa = bits & 0xFFFFFF
    return mantissa * 256 ** (exponent - 3)


def make_header(prev_hash: bytes, index: int, bits: int = REGTEST_BITS) -> bytes:
    """Mine a header on top of prev_hash against the given compact target."""
    merkle_root = hashlib.sha256(f"coinbase-{index}".encode()).digest()
    target = bits_to_target(bits)
    nonce = 0
    while True:
        header = (
            struct.pack("<i", 0x20000000)
            + prev_hash
            + merkle_root
            + struct.pack("<III", GENESIS_TIME + 600 * index, bits, nonce)
        )
        if int.from_bytes(block_hash(header), "little") <= target:
            return header
        nonce += 1


def make_chain(count: int, start_prev: bytes = b"\x00" * 32) -> list[bytes]:
    headers = []
    prev = start_prev
    for i in range(count):
        header = make_header(prev, i)
        headers.append(header)
        prev = block_hash(header)
    return headers


def validate_header_chain(headers, enforce_difficulty: bool) -> None:
    """Linkage and proof-of-work checks the guest performs."""
    for i, header in enumerate(headers):
        if i and header[4:36] != block_hash(headers[i - 1]):
            raise ValueError(f"header {i} does not link to its predecessor")
        if enforce_difficulty:
            bits = struct.unpack("<I", header[72:76])[0]
            if int.from_bytes(block_hash(header), "little") > bits_to_target(bits):
                raise ValueError(f"header {i} does not meet its target")


def guest_journal(height: int, last_header: bytes) -> bytes:
    return serialization.to_vec_u8(abi_encode(["uint256", "bytes"], [height, block_hash(last_header)]))


def seal_for(image_id: bytes, journal: bytes) -> bytes:
    return hashlib.sha256(b"seal" + image_id + journal).digest()


def encode_receipt(image_id: bytes, journal: bytes, seal: bytes | None = None) -> bytes:
    if seal is None:
        seal = seal_for(image_id, journal)
    return cbor2.dumps({"image_id": image_id, "journal": journal, "seal": seal}, canonical=True)


@dataclass
class FakeReceipt:
    claimed_image_id: bytes
    journal: bytes
    seal: bytes

    def verify(self, image_id: bytes) -> None:
        if self.seal != seal_for(image_id, self.journal):
            raise VerificationError("seal does not verify")


@dataclass
class FakeSandbox:
    """Runs every ELF as the header-chain guest; receipts are CBOR maps."""

    executed: list = field(default_factory=list)
    proved: list = field(default_factory=list)

    def image_id(self, elf: bytes) -> bytes:
        return hashlib.sha256(b"image" + elf).digest()

    def _run_guest(self, input_data: bytes) -> bytes:
        try:
            packaged = unpack_input(input_data)
            validate_header_chain(packaged.headers, packaged.enforce_difficulty)
        except (MalformedInput, ValueError) as e:
            raise ExecutionFailed(f"Guest panicked: {e}") from e
        return guest_journal(packaged.height, packaged.headers[-1])

    def execute(self, elf: bytes, input_data: bytes) -> bytes:
        self.executed.append(input_data)
        return self._run_guest(input_data)

    def prove(self, elf: bytes, input_data: bytes) -> bytes:
        self.proved.append(input_data)
        journal = self._run_guest(input_data)
        return encode_receipt(self.image_id(elf), journal)

    def load_receipt(self, data: bytes) -> FakeReceipt:
        try:
            obj = cbor2.loads(data)
        except cbor2.CBORDecodeError as e:
            raise ValueError(str(e)) from e
        if not isinstance(obj, dict) or set(obj) != {"image_id", "journal", "seal"}:
            raise ValueError("not a receipt")
        return FakeReceipt(obj["image_id"], obj["journal"], obj["seal"])


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedTransport:
    """
    Stand-in for BonsaiClient that replays status responses in order.

    Every call is appended to `calls` as a tuple so tests can assert on
    exact ordering.
    """

    def __init__(self, statuses, receipt: bytes = b"receipt", failures=None):
        self.statuses = list(statuses)
        self.receipt = receipt
        self.failures = dict(failures or {})
        self.calls = []
        self.uploads = {}
        self.closed = False

    def _maybe_fail(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    def upload_location(self, route: str) -> UploadLocation:
        self.calls.append(("upload_location", route))
        self._maybe_fail(f"upload_location:{route}")
        return UploadLocation(url=f"https://uploads.test/{route}", uuid=f"{route}-uuid")

    def put_bytes(self, url: str, data: bytes) -> None:
        self.calls.append(("put_bytes", url))
        self._maybe_fail(f"put_bytes:{url.rsplit('/', 1)[-1]}")
        self.uploads[url] = data

    def create_session(self, img_id: str, input_id: str) -> SessionId:
        self.calls.append(("create_session", img_id, input_id))
        self._maybe_fail("create_session")
        return SessionId("session-uuid")

    def get_status(self, session: SessionId) -> SessionStatus:
        self.calls.append(("get_status", session.uuid))
        self._maybe_fail("get_status")
        return self.statuses.pop(0)

    def download(self, url: str) -> bytes:
        self.calls.append(("download", url))
        self._maybe_fail("download")
        return self.receipt

    def close(self) -> None:
        self.closed = True

    def ops(self, name: str) -> list:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def sandbox() -> FakeSandbox:
    return FakeSandbox()


@pytest.fixture
def entry(sandbox) -> ProgramEntry:
    image = b"\x7fELF bitcoin_block_verify"
    return ProgramEntry(
        name="BITCOIN_BLOCK_VERIFY",
        image=image,
        identity=sandbox.image_id(image),
        storage_path=Path("methods/guest/bitcoin_block_verify"),
    )


@pytest.fixture
def registry(sandbox, entry) -> ProgramRegistry:
    other_image = b"\x7fELF echo"
    other = ProgramEntry(
        name="ECHO",
        image=other_image,
        identity=sandbox.image_id(other_image),
        storage_path=Path("methods/guest/echo"),
    )
    return ProgramRegistry.from_entries([entry, other])


@pytest.fixture(scope="session")
def chain() -> list[bytes]:
    return make_chain(6)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
