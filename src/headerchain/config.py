"""
Prover configuration.

The Dispatcher receives a ProverConfig at construction. Environment
variables are only read by from_env(), which the CLI calls once.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from headerchain.bonsai import DEFAULT_TIMEOUT_S, RemoteEndpoint
from headerchain.exceptions import ConfigError
from headerchain.session import DEFAULT_DEADLINE_S, DEFAULT_POLL_INTERVAL_S

ENDPOINT_ENV = "BONSAI_ENDPOINT"
PROVE_LOCALLY_ENV = "PROVE_LOCALLY"


@dataclass(frozen=True)
class LocalBackendConfig:
    pass


@dataclass(frozen=True)
class RemoteBackendConfig:
    endpoint: RemoteEndpoint

    @classmethod
    def parse(cls, value: str) -> "RemoteBackendConfig":
        return cls(RemoteEndpoint.parse(value))


Backend = Union[LocalBackendConfig, RemoteBackendConfig]


@dataclass(frozen=True)
class ProverConfig:
    backend: Backend = LocalBackendConfig()
    prove_locally: bool = False
    enforce_difficulty: bool = True
    poll_interval: float = DEFAULT_POLL_INTERVAL_S
    deadline: Optional[float] = DEFAULT_DEADLINE_S
    request_timeout: float = DEFAULT_TIMEOUT_S
    verbose: bool = True

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.deadline is not None and self.deadline <= 0:
            raise ConfigError(f"deadline must be positive or None, got {self.deadline}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @property
    def is_remote(self) -> bool:
        return isinstance(self.backend, RemoteBackendConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ProverConfig":
        """
        Build a config from BONSAI_ENDPOINT and PROVE_LOCALLY.

        A set BONSAI_ENDPOINT selects the remote backend; PROVE_LOCALLY only
        needs to be present. Keyword overrides win over the environment.
        """
        environ = os.environ if environ is None else environ
        values = {}
        endpoint = environ.get(ENDPOINT_ENV)
        if endpoint:
            values["backend"] = RemoteBackendConfig.parse(endpoint)
        if PROVE_LOCALLY_ENV in environ:
            values["prove_locally"] = True
        values.update(overrides)
        return cls(**values)
