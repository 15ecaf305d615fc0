#!/usr/bin/env python3
"""
agegate CLI

Command-line access to the proof system: parameter ceremony, key
derivation, proving and verification.

Usage:
    agegate <command> [subcommand] [options]

Commands:
    params      Generate, digest, sign setup parameters
    setup       Derive the verifying key for pinned parameters
    prove       Prove an age threshold for a birth date
    verify      Verify a proof produced by `prove`
    config      Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple

import yaml

from agegate import __version__
from agegate.config import ConfigError, get_config, get_config_manager
from agegate.core import day_number, load_json, write_canonical_json
from agegate.errors import AgegateError
from agegate.observability import generate_correlation_id, set_correlation_id
from agegate.signing import generate_ed25519_jwk, load_signing_key, public_key_hex, sign_document


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=True)
    return json.dumps(data, indent=2, default=str, sort_keys=True)


def parse_day(value: str) -> int:
    """Day count from an integer string or an ISO date."""
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    try:
        return day_number(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a day count or ISO date: {value}") from e


def today() -> int:
    return day_number(datetime.now(timezone.utc).date())


class AgegateCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="agegate",
            description="Age-gated subscription proofs",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"agegate {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="YAML configuration file to load",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_params_commands()
        self._register_proof_commands()
        self._register_config_commands()

    def _register_params_commands(self) -> None:
        params = self.subparsers.add_parser("params", help="Setup parameter ceremony")
        params_sub = params.add_subparsers(dest="subcommand")

        generate = params_sub.add_parser("generate", help="Derive parameters from a public seed")
        generate.add_argument("--seed", help="Hex seed (default: the published agegate seed)")
        generate.add_argument("--max-degree", type=int, default=2)
        generate.add_argument("--max-constraints", type=int, default=4096)
        generate.add_argument("--out", "-o", required=True, help="Output path")

        digest = params_sub.add_parser("digest", help="Compute the pinned digest of a parameters file")
        digest.add_argument("path")

        keygen = params_sub.add_parser("keygen", help="Generate an Ed25519 ceremony key (JWK)")
        keygen.add_argument("--out", "-o", required=True)
        keygen.add_argument("--kid", default="ceremony-1")

        sign = params_sub.add_parser("sign", help="Sign a parameters file")
        sign.add_argument("path")
        sign.add_argument("--key", "-k", required=True, help="Ed25519 private JWK file")
        sign.add_argument("--out", "-o", help="Output path (default: overwrite)")

    def _add_params_args(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--params", "-p", help="Parameters file (default: proof.params_path)")
        parser.add_argument("--digest", "-d", help="Pinned digest (default: proof.params_digest)")
        parser.add_argument("--range-bits", type=int, help="Age surplus bit width (default: proof.range_bits)")

    def _register_proof_commands(self) -> None:
        setup_cmd = self.subparsers.add_parser("setup", help="Derive keys for pinned parameters")
        self._add_params_args(setup_cmd)
        setup_cmd.add_argument("--out", "-o", help="Write the verifying key here")

        prove = self.subparsers.add_parser("prove", help="Prove current_date - birth_date >= minimum_age")
        self._add_params_args(prove)
        prove.add_argument("--birth-date", type=parse_day, required=True, help="ISO date or day count")
        prove.add_argument("--minimum-age", type=int, required=True, help="Threshold in days")
        prove.add_argument("--current-date", type=parse_day, help="ISO date or day count (default: today)")
        prove.add_argument("--binding", "-b", required=True, help="Subscriber account the proof is bound to")
        prove.add_argument("--notification-handle", help="Opaque off-ledger contact handle carried into registration")
        prove.add_argument("--out", "-o", help="Write the proof document here")

        verify = self.subparsers.add_parser("verify", help="Verify a proof document")
        self._add_params_args(verify)
        verify.add_argument("proof_file", help="Proof document written by `prove`")
        verify.add_argument("--binding", "-b", help="Override the binding context")
        verify.add_argument("--gas-limit", type=int, help="Gas budget (default: proof.verifier_gas_limit)")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., proof.verifier_gas_limit)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        set_correlation_id(generate_correlation_id())
        try:
            if parsed.config:
                get_config_manager().load_from_file(parsed.config)
            else:
                get_config_manager().load_defaults()
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (AgegateError, ConfigError, OSError, ValueError) as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    # Params handlers
    def _handle_params_generate(self, args: argparse.Namespace) -> Any:
        from agegate.zk.params import generate_parameters, save_parameters
        params = generate_parameters(args.seed, args.max_degree, args.max_constraints)
        digest = save_parameters(params, args.out)
        return {"path": args.out, "digest": digest, "seed": params.seed}

    def _handle_params_digest(self, args: argparse.Namespace) -> Any:
        from agegate.zk.params import SetupParameters
        params = SetupParameters.from_dict(load_json(pathlib.Path(args.path)))
        return {
            "path": args.path,
            "digest": params.digest,
            "generators_valid": params.generators_valid(),
            "signed": params.signature is not None,
        }

    def _handle_params_keygen(self, args: argparse.Namespace) -> Any:
        jwk = generate_ed25519_jwk(args.kid)
        path = pathlib.Path(args.out)
        path.write_text(json.dumps(jwk, indent=2) + "\n", encoding="utf-8")
        return {"path": args.out, "signer": public_key_hex(load_signing_key(path))}

    def _handle_params_sign(self, args: argparse.Namespace) -> Any:
        document = load_json(pathlib.Path(args.path))
        if not isinstance(document, dict):
            raise CLIError("parameters file must contain a JSON object")
        key = load_signing_key(args.key)
        signed = sign_document(document, key)
        out = args.out or args.path
        write_canonical_json(pathlib.Path(out), signed)
        return {"path": out, "signer": signed["signature"]["signer"]}

    # Proof handlers
    def _resolve_keys(self, args: argparse.Namespace) -> Tuple[Any, Any, Any]:
        from agegate.zk.circuit import AgeCircuit
        from agegate.zk.keys import setup
        from agegate.zk.params import load_parameters

        proof_cfg = get_config().proof
        path = args.params or proof_cfg.params_path.get()
        digest = args.digest or proof_cfg.params_digest.get()
        if not path or not digest:
            raise CLIError("parameters path and pinned digest are required (--params/--digest)", exit_code=2)

        params = load_parameters(path, digest, trusted_signer=proof_cfg.trusted_signer.get())
        range_bits = args.range_bits or proof_cfg.range_bits.get()
        pk, vk = setup(params, AgeCircuit(range_bits=range_bits))
        return params, pk, vk

    def _handle_setup(self, args: argparse.Namespace) -> Any:
        _, _, vk = self._resolve_keys(args)
        if args.out:
            write_canonical_json(pathlib.Path(args.out), vk.to_dict())
        return {
            "vk_digest": vk.digest,
            "params_digest": vk.params_digest,
            "circuit_digest": vk.circuit_digest,
            "proof_length": vk.proof_length,
            "verification_cost": vk.verification_cost,
        }

    def _handle_prove(self, args: argparse.Namespace) -> Any:
        from agegate.hardening import Validators
        from agegate.zk.circuit import PublicInputs
        from agegate.zk.prover import AgeProver

        if args.notification_handle is not None and not Validators.validate_handle(args.notification_handle).is_valid:
            raise CLIError("--notification-handle must be 1-256 printable characters without spaces", exit_code=2)

        _, pk, vk = self._resolve_keys(args)
        current = args.current_date if args.current_date is not None else today()
        result = AgeProver(pk).prove(args.birth_date, PublicInputs(args.minimum_age, current), args.binding)
        if not result.ok:
            raise CLIError(f"witness does not satisfy the circuit: {', '.join(result.unsatisfied) or result.error}", exit_code=2)

        document = result.to_dict()
        document["vk_digest"] = vk.digest
        if args.notification_handle is not None:
            document["notification_handle"] = args.notification_handle
        if args.out:
            pathlib.Path(args.out).write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
        return document

    def _handle_verify(self, args: argparse.Namespace) -> Any:
        from agegate.zk.circuit import PublicInputs
        from agegate.zk.verifier import AgeVerifier

        params, _, vk = self._resolve_keys(args)
        document = load_json(pathlib.Path(args.proof_file))
        try:
            proof = bytes.fromhex(document["proof"])
            public = PublicInputs.from_dict(document["public_inputs"])
        except (KeyError, TypeError) as e:
            raise CLIError(f"proof document is missing {e}", exit_code=2) from e
        binding = args.binding if args.binding is not None else document.get("binding", "")
        gas_limit = args.gas_limit or get_config().proof.verifier_gas_limit.get()

        result = AgeVerifier(vk, params, gas_limit=gas_limit).check(proof, public, binding)
        if not result.accepted:
            print(format_output(result.to_dict(), OutputFormat(args.format)))
            raise CLIError(f"proof {result.outcome.value}: {result.reason}", exit_code=3)
        return result.to_dict()

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if errors:
            raise CLIError("; ".join(errors), exit_code=2)
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    cli = AgegateCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
