"""
Custom exception hierarchy for headerchain.

These exceptions provide specific error handling for the different
failure modes of packaging, proving and verifying a header-chain proof.
"""


class HeaderChainError(Exception):
    """Base exception for all headerchain errors."""
    pass


class ConfigError(HeaderChainError):
    """Raised when prover configuration is missing or malformed."""
    pass


class MalformedInput(HeaderChainError):
    """
    Raised when host input cannot be packaged for the guest.

    This indicates:
    - A header record that is not exactly 80 bytes
    - An empty header sequence
    - A height outside the u64 range
    - A payload or packaged buffer with the wrong framing
    """
    pass


class UnknownProgram(HeaderChainError):
    """Raised when no registry entry matches a name or identity query."""

    def __init__(self, query: str):
        super().__init__(f"Unknown guest program: {query!r}")
        self.query = query


class RegistryError(HeaderChainError):
    """
    Raised when the program manifest cannot be loaded.

    This indicates:
    - Missing ELF files or malformed manifest tables
    - Duplicate program names or identities
    - A pinned image ID that does not match the ELF content
    """
    pass


class ExecutionFailed(HeaderChainError):
    """
    Raised when the guest halts abnormally during local execution.

    Deterministic: retrying with the same input fails the same way.
    """
    pass


class RemoteError(HeaderChainError):
    """Base for failures talking to the remote proving service."""

    def __init__(self, message: str, body: str | None = None):
        super().__init__(message)
        self.body = body


class UploadLocationUnavailable(RemoteError):
    """Raised when the service does not issue a presigned upload location."""
    pass


class UploadFailed(RemoteError):
    """Raised when a PUT to a presigned upload location is not 2xx."""
    pass


class SessionCreationFailed(RemoteError):
    """Raised when the service rejects a session creation request."""
    pass


class StatusQueryFailed(RemoteError):
    """Raised when a session status query is not 2xx or undecodable."""
    pass


class ProtocolViolation(RemoteError):
    """
    Raised when the service breaks its own contract.

    For example a SUCCEEDED session whose status carries no receipt_url.
    """
    pass


class RemoteJobFailed(RemoteError):
    """Raised when a session ends in FAILED, TIMED_OUT or ABORTED."""

    def __init__(self, status: str, session: str | None = None):
        message = f"Workflow exited: {status}"
        if session:
            message += f" (session {session})"
        super().__init__(message)
        self.status = status
        self.session = session


class PollDeadlineExceeded(RemoteJobFailed):
    """
    Raised when a session is still RUNNING at the polling deadline.

    The remote job is not cancelled; it is orphaned.
    """

    def __init__(self, session: str, deadline: float):
        super().__init__("DEADLINE_EXCEEDED", session)
        self.deadline = deadline


class DownloadFailed(RemoteError):
    """Raised when the receipt cannot be downloaded."""
    pass


class VerificationError(HeaderChainError):
    """Base for receipt verification failures."""
    pass


class IdentityMismatch(VerificationError):
    """
    Raised when a receipt is not bound to the expected program identity.

    This indicates:
    - The receipt claims a different image ID
    - The receipt does not verify against the trusted image ID
    - The receipt bytes cannot be decoded into a receipt at all

    Never catch this to fall back to the journal.
    """

    def __init__(self, message: str, expected: bytes | None = None, actual: bytes | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class MalformedJournal(VerificationError):
    """Raised when a verified journal does not decode as (height, block_hash)."""
    pass
