"""
Local proving backend: runs the guest on this machine, synchronously.
"""

import sys

from headerchain.packager import PackagedInput
from headerchain.registry import ProgramEntry
from headerchain.zkvm import Sandbox


class LocalBackend:
    """
    Execute or prove a registry program in-process.

    With prove_locally=True the result is a serialized receipt for the
    Receipt Verifier. Otherwise the guest is only executed and the journal
    is returned as-is; that mode trusts this host rather than a seal.

    Failures surface as ExecutionFailed and are never retried: the guest is
    deterministic, so the same input fails the same way.
    """

    def __init__(self, sandbox: Sandbox, prove_locally: bool = False, verbose: bool = True):
        self.sandbox = sandbox
        self.prove_locally = prove_locally
        self.verbose = verbose

    def prove(self, entry: ProgramEntry, packaged: PackagedInput) -> bytes:
        input_data = packaged.encode()
        if self.verbose:
            mode = "Proving" if self.prove_locally else "Executing"
            print(
                f"{mode} {entry.name} locally ({len(packaged.headers)} headers, height {packaged.height})",
                file=sys.stderr,
            )
        if self.prove_locally:
            return self.sandbox.prove(entry.image, input_data)
        return self.sandbox.execute(entry.image, input_data)
