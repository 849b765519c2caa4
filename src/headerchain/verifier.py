"""
Receipt verification: the trust boundary of the whole pipeline.

A receipt is only as good as the program it is bound to. The image ID must
come from the registry, never from the receipt, and it is checked before a
single journal byte is interpreted. A receipt for the wrong program can
commit any (height, hash) it likes.
"""

import hmac
from dataclasses import dataclass

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError

from headerchain import serialization
from headerchain.exceptions import IdentityMismatch, MalformedJournal, VerificationError
from headerchain.packager import U64_MAX
from headerchain.zkvm import Sandbox

JOURNAL_ABI_TYPES = ["uint256", "bytes"]
BLOCK_HASH_SIZE = 32


@dataclass(frozen=True)
class VerifiedOutput:
    height: int
    block_hash: bytes

    def to_abi(self) -> bytes:
        """ABI encoding of (uint256 height, bytes block_hash), as a relay contract decodes it."""
        return abi_encode(JOURNAL_ABI_TYPES, [self.height, self.block_hash])

    def to_hex(self) -> str:
        return self.to_abi().hex()

    @property
    def display_hash(self) -> str:
        """Block hash in the byte-reversed form block explorers show."""
        return self.block_hash[::-1].hex()


def decode_journal(journal: bytes) -> VerifiedOutput:
    """
    Decode the committed (height, block_hash) from a guest journal.

    The guest commits its ABI-encoded tuple as a Vec<u8>, so the journal is
    the serde framing around the ABI bytes.

    Raises:
        MalformedJournal: If framing, ABI layout, height range or hash size is wrong
    """
    try:
        payload = serialization.from_vec_u8(journal)
    except ValueError as e:
        raise MalformedJournal(f"Journal is not a committed byte vector: {e}") from e
    try:
        height, block_hash = abi_decode(JOURNAL_ABI_TYPES, payload)
    except (DecodingError, ValueError, OverflowError) as e:
        raise MalformedJournal(f"Journal does not decode as (uint256, bytes): {e}") from e
    if height > U64_MAX:
        raise MalformedJournal(f"Committed height {height} does not fit in u64")
    if len(block_hash) != BLOCK_HASH_SIZE:
        raise MalformedJournal(f"Committed block hash is {len(block_hash)} bytes, expected {BLOCK_HASH_SIZE}")
    return VerifiedOutput(height=height, block_hash=bytes(block_hash))


class ReceiptVerifier:
    def __init__(self, sandbox: Sandbox):
        self.sandbox = sandbox

    def verify(self, receipt_bytes: bytes, expected_identity: bytes) -> VerifiedOutput:
        """
        Check a receipt against a trusted image ID, then decode its journal.

        Order matters and is fixed: deserialize, compare claimed image ID,
        verify the seal against the trusted ID, and only then decode.

        Raises:
            IdentityMismatch: If the receipt is undecodable, claims another
                image ID, or does not verify against expected_identity
            MalformedJournal: If the verified journal does not decode
        """
        expected_identity = bytes(expected_identity)
        try:
            receipt = self.sandbox.load_receipt(receipt_bytes)
        except ValueError as e:
            raise IdentityMismatch(f"Receipt cannot be decoded, no binding to check: {e}",
                                   expected=expected_identity) from e

        claimed = bytes(receipt.claimed_image_id)
        if not hmac.compare_digest(claimed, expected_identity):
            raise IdentityMismatch(
                f"Receipt is bound to image {claimed.hex()}, expected {expected_identity.hex()}",
                expected=expected_identity,
                actual=claimed,
            )

        try:
            receipt.verify(expected_identity)
        except VerificationError as e:
            raise IdentityMismatch(
                f"Receipt does not verify against image {expected_identity.hex()}: {e}",
                expected=expected_identity,
                actual=claimed,
            ) from e

        return decode_journal(receipt.journal)
