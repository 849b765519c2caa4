"""
Top-level routing: registry lookup, backend selection, verification.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from headerchain.bonsai import BonsaiClient, RemoteEndpoint
from headerchain.config import ProverConfig
from headerchain.local import LocalBackend
from headerchain.packager import PackagedInput, parse_payload
from headerchain.registry import ProgramEntry, ProgramRegistry
from headerchain.session import SessionClient, Transport
from headerchain.verifier import ReceiptVerifier, VerifiedOutput, decode_journal
from headerchain.zkvm import Sandbox

ClientFactory = Callable[[RemoteEndpoint, float], Transport]


@dataclass(frozen=True)
class DispatchResult:
    entry: ProgramEntry
    output: bytes
    verified: Optional[VerifiedOutput] = None
    # False for identity lookups and for local execute-only runs
    proven: bool = False

    def text(self) -> str:
        return self.output.hex()


class Dispatcher:
    """
    Resolve a program, route its input to a backend and verify the result.

    Errors from any component propagate unchanged; nothing is retried or
    recovered here.
    """

    def __init__(
        self,
        registry: ProgramRegistry,
        config: ProverConfig,
        sandbox: Sandbox,
        client_factory: Optional[ClientFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.config = config
        self.sandbox = sandbox
        self.client_factory = client_factory or BonsaiClient.from_endpoint
        self.verifier = ReceiptVerifier(sandbox)
        self._sleep = sleep
        self._clock = clock

    def remote_transport(self) -> Transport:
        return self.client_factory(self.config.backend.endpoint, self.config.request_timeout)

    def remote_backend(self, transport: Transport) -> SessionClient:
        return SessionClient(
            transport,
            poll_interval=self.config.poll_interval,
            deadline=self.config.deadline,
            sleep=self._sleep,
            clock=self._clock,
            verbose=self.config.verbose,
        )

    def local_backend(self) -> LocalBackend:
        return LocalBackend(self.sandbox, prove_locally=self.config.prove_locally,
                            verbose=self.config.verbose)

    def prove(self, entry: ProgramEntry, packaged: PackagedInput) -> tuple[VerifiedOutput, bool]:
        """
        Run one proof job and return (output, proven).

        Receipts always pass through the verifier against the registry
        identity. Local execute-only runs return the journal of the registry
        image run on this host, with proven=False.
        """
        if self.config.is_remote:
            transport = self.remote_transport()
            try:
                receipt = self.remote_backend(transport).prove(entry, packaged)
            finally:
                close = getattr(transport, "close", None)
                if close is not None:
                    close()
            return self.verifier.verify(receipt, entry.identity), True

        backend = self.local_backend()
        result = backend.prove(entry, packaged)
        if backend.prove_locally:
            return self.verifier.verify(result, entry.identity), True
        return decode_journal(result), False

    def dispatch(self, query: str, payload: Optional[bytes] = None) -> DispatchResult:
        entry = self.registry.resolve(query)
        if payload is None:
            return DispatchResult(entry=entry, output=entry.identity)

        height, headers = parse_payload(payload)
        packaged = PackagedInput(height, headers, self.config.enforce_difficulty)
        verified, proven = self.prove(entry, packaged)
        return DispatchResult(entry=entry, output=verified.to_abi(), verified=verified, proven=proven)
