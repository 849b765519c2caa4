from headerchain import serialization
from headerchain.packager import (
    HEADER_SIZE,
    PackagedInput,
    package_input,
    unpack_input,
    parse_payload,
    split_headers,
    block_hash,
)
from headerchain.registry import ProgramEntry, ProgramRegistry, load_registry
from headerchain.build import (
    build_guest,
    BuildError,
    GuestBuildFailedError,
    ElfNotFoundError,
    InvalidGuestDirectoryError,
)
from headerchain.zkvm import Sandbox, ReceiptView, Risc0Sandbox
from headerchain.local import LocalBackend
from headerchain.bonsai import BonsaiClient, RemoteEndpoint, SessionId, SessionStatus, UploadLocation
from headerchain.session import SessionClient, JobState
from headerchain.verifier import ReceiptVerifier, VerifiedOutput, decode_journal
from headerchain.config import ProverConfig, LocalBackendConfig, RemoteBackendConfig
from headerchain.dispatcher import Dispatcher, DispatchResult
from headerchain.exceptions import (
    HeaderChainError,
    ConfigError,
    MalformedInput,
    UnknownProgram,
    RegistryError,
    ExecutionFailed,
    RemoteError,
    UploadLocationUnavailable,
    UploadFailed,
    SessionCreationFailed,
    StatusQueryFailed,
    ProtocolViolation,
    RemoteJobFailed,
    PollDeadlineExceeded,
    DownloadFailed,
    VerificationError,
    IdentityMismatch,
    MalformedJournal,
)

__version__ = "0.1.0"

__all__ = [
    # Input packaging
    "HEADER_SIZE",
    "PackagedInput",
    "package_input",
    "unpack_input",
    "parse_payload",
    "split_headers",
    "block_hash",
    "serialization",

    # Programs
    "ProgramEntry",
    "ProgramRegistry",
    "load_registry",
    "build_guest",

    # Proving and verification
    "Sandbox",
    "ReceiptView",
    "Risc0Sandbox",
    "LocalBackend",
    "BonsaiClient",
    "RemoteEndpoint",
    "SessionId",
    "SessionStatus",
    "UploadLocation",
    "SessionClient",
    "JobState",
    "ReceiptVerifier",
    "VerifiedOutput",
    "decode_journal",

    # Dispatch
    "ProverConfig",
    "LocalBackendConfig",
    "RemoteBackendConfig",
    "Dispatcher",
    "DispatchResult",

    # Exceptions
    "BuildError",
    "GuestBuildFailedError",
    "ElfNotFoundError",
    "InvalidGuestDirectoryError",
    "HeaderChainError",
    "ConfigError",
    "MalformedInput",
    "UnknownProgram",
    "RegistryError",
    "ExecutionFailed",
    "RemoteError",
    "UploadLocationUnavailable",
    "UploadFailed",
    "SessionCreationFailed",
    "StatusQueryFailed",
    "ProtocolViolation",
    "RemoteJobFailed",
    "PollDeadlineExceeded",
    "DownloadFailed",
    "VerificationError",
    "IdentityMismatch",
    "MalformedJournal",
]
