"""
The zkVM capability consumed by the prover backends and the verifier.

Everything that touches RISC Zero cryptography goes through a Sandbox, so
the orchestration code never calls pyr0 directly and tests can substitute
a scripted sandbox.
"""

from typing import Protocol

from headerchain.exceptions import ConfigError, ExecutionFailed, VerificationError


class ReceiptView(Protocol):
    """A deserialized receipt: the claimed image ID, the journal and its seal."""

    @property
    def claimed_image_id(self) -> bytes: ...

    @property
    def journal(self) -> bytes: ...

    def verify(self, image_id: bytes) -> None:
        """Raise VerificationError unless the seal verifies against image_id."""
        ...


class Sandbox(Protocol):
    def image_id(self, elf: bytes) -> bytes:
        """Content-derived 32-byte identity of a guest ELF."""
        ...

    def execute(self, elf: bytes, input_data: bytes) -> bytes:
        """Run the guest without proving and return its journal."""
        ...

    def prove(self, elf: bytes, input_data: bytes) -> bytes:
        """Prove the guest and return the serialized receipt."""
        ...

    def load_receipt(self, data: bytes) -> ReceiptView:
        """Deserialize a receipt; raise ValueError on undecodable bytes."""
        ...


class Risc0Receipt:
    """ReceiptView over a pyr0.Receipt."""

    def __init__(self, receipt, pyr0):
        self._receipt = receipt
        self._pyr0 = pyr0

    @property
    def claimed_image_id(self) -> bytes:
        return bytes(self._receipt.claimed_image_id_bytes)

    @property
    def journal(self) -> bytes:
        return bytes(self._receipt.journal_bytes)

    def verify(self, image_id: bytes) -> None:
        try:
            self._receipt.verify_bytes(image_id)
        except (self._pyr0.PyR0Error, RuntimeError, ValueError) as e:
            raise VerificationError(f"Receipt verification failed: {e}") from e
        if not self._receipt.exit.ok:
            raise VerificationError(f"Receipt records a failed exit: {self._receipt.exit.kind}")


class Risc0Sandbox:
    """
    Sandbox backed by the pyr0 RISC Zero bindings.

    pyr0 is imported on construction so that identity lookups and remote
    proving with a scripted sandbox never need the native extension.
    """

    def __init__(self):
        try:
            import pyr0
        except ImportError as e:
            raise ConfigError("pyr0 is not installed; install headerchain[zkvm]") from e
        self._pyr0 = pyr0
        self._images = {}

    def _load(self, elf: bytes):
        image = self._images.get(elf)
        if image is None:
            image = self._images[elf] = self._pyr0.load_image(elf)
        return image

    def image_id(self, elf: bytes) -> bytes:
        return bytes.fromhex(self._pyr0.compute_image_id_hex(elf))

    def execute(self, elf: bytes, input_data: bytes) -> bytes:
        try:
            info = self._pyr0.dry_run(self._load(elf), input_data)
        except (self._pyr0.PyR0Error, RuntimeError, ValueError) as e:
            raise ExecutionFailed(f"Guest execution failed: {e}") from e
        return bytes(info.journal)

    def prove(self, elf: bytes, input_data: bytes) -> bytes:
        try:
            receipt = self._pyr0.prove(self._load(elf), input_data)
        except (self._pyr0.PyR0Error, RuntimeError, ValueError) as e:
            raise ExecutionFailed(f"Guest proving failed: {e}") from e
        if not receipt.exit.ok:
            raise ExecutionFailed(f"Guest halted abnormally: {receipt.exit.kind}")
        return bytes(receipt.to_bytes())

    def load_receipt(self, data: bytes) -> Risc0Receipt:
        try:
            receipt = self._pyr0.Receipt.from_bytes(data)
        except (self._pyr0.PyR0Error, RuntimeError) as e:
            raise ValueError(f"Cannot deserialize receipt: {e}") from e
        return Risc0Receipt(receipt, self._pyr0)
