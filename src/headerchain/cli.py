from __future__ import annotations

import argparse
import os
import sys
from typing import Mapping, Optional

from headerchain.config import ENDPOINT_ENV, ProverConfig, RemoteBackendConfig
from headerchain.dispatcher import ClientFactory, Dispatcher
from headerchain.exceptions import HeaderChainError, MalformedInput
from headerchain.registry import load_registry
from headerchain.zkvm import Risc0Sandbox, Sandbox

MANIFEST_ENV = "HEADERCHAIN_MANIFEST"
DEFAULT_MANIFEST = "programs.toml"


def _parse_hex(text: str) -> bytes:
    t = str(text).strip()
    if t[:2] in ("0x", "0X"):
        t = t[2:]
    try:
        return bytes.fromhex(t)
    except ValueError as e:
        raise MalformedInput(f"Input is not valid hex: {e}") from e


def _build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="headerchain",
        description="Prove a Bitcoin header chain with a RISC Zero guest, or print a guest's image ID.",
    )
    p.add_argument("program", help="Guest program name or hex image ID")
    p.add_argument("input", nargs="?", default=None,
                   help="Hex payload: 8-byte little-endian height followed by 80-byte headers")
    p.add_argument("--manifest", default=environ.get(MANIFEST_ENV, DEFAULT_MANIFEST),
                   help=f"Program manifest (default: ${MANIFEST_ENV} or {DEFAULT_MANIFEST})")
    p.add_argument("--build", action="store_true", help="Build guest crates before loading the registry")
    p.add_argument("--endpoint", default=None,
                   help="Remote prover as '<api_url>|<api_key>' (default: $BONSAI_ENDPOINT)")
    p.add_argument("--prove-locally", action="store_true", default=None,
                   help="Generate a receipt when running locally (default: set if $PROVE_LOCALLY exists)")
    p.add_argument("--no-difficulty", action="store_true", help="Do not enforce proof-of-work targets in the guest")
    p.add_argument("--poll-interval", type=float, default=None, help="Seconds between remote status queries")
    p.add_argument("--deadline", type=float, default=None,
                   help="Seconds to wait for a remote session; 0 waits forever")
    p.add_argument("--timeout", type=float, default=None, help="Per-request HTTP timeout in seconds")
    p.add_argument("--quiet", action="store_true", help="No progress output on stderr")
    return p


def _config_from_args(args: argparse.Namespace, environ: Mapping[str, str]) -> ProverConfig:
    overrides = {"enforce_difficulty": not args.no_difficulty, "verbose": not args.quiet}
    if args.input is None:
        # Identity lookups never reach a backend
        environ = {k: v for k, v in environ.items() if k != ENDPOINT_ENV}
    elif args.endpoint:
        overrides["backend"] = RemoteBackendConfig.parse(args.endpoint)
    if args.prove_locally:
        overrides["prove_locally"] = True
    if args.poll_interval is not None:
        overrides["poll_interval"] = args.poll_interval
    if args.deadline is not None:
        overrides["deadline"] = args.deadline or None
    if args.timeout is not None:
        overrides["request_timeout"] = args.timeout
    return ProverConfig.from_env(environ, **overrides)


def main(
    argv: list[str] | None = None,
    environ: Optional[Mapping[str, str]] = None,
    sandbox: Optional[Sandbox] = None,
    client_factory: Optional[ClientFactory] = None,
) -> int:
    environ = os.environ if environ is None else environ
    args = _build_parser(environ).parse_args(argv)
    try:
        config = _config_from_args(args, environ)
        payload = _parse_hex(args.input) if args.input is not None else None
        sandbox = sandbox if sandbox is not None else Risc0Sandbox()
        registry = load_registry(args.manifest, sandbox, build=args.build)
        dispatcher = Dispatcher(registry, config, sandbox, client_factory=client_factory)
        result = dispatcher.dispatch(args.program, payload)
    except HeaderChainError as e:
        print(f"error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    if config.verbose and result.verified is not None:
        v = result.verified
        trust = "verified receipt" if result.proven else "unproven local execution"
        print(f"Height {v.height}, block {v.display_hash} ({trust})", file=sys.stderr)

    sys.stdout.write(result.text())
    sys.stdout.flush()
    return 0
