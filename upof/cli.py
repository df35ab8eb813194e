#!/usr/bin/env python3
"""
UPoF Command-Line Interface

Off-system tooling for attesters and operators: key management, attestation
signing and recovery, sanctions label hashing and configuration.

Usage:
    upof <command> [subcommand] [options]

Commands:
    keygen          Generate a secp256k1 attester key (PKCS#8 PEM)
    address         Show the identity of an attester key
    attest          Sign, recover or hash attestation requests
    sanctions-hash  Hash a sanctions dataset label
    config          Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from upof import __version__
from upof.canonical import to_json_types


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    data = to_json_types(data)
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, sort_keys=True)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=True)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class UpofCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="upof",
            description="Universal Proof-of-Funds tooling",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"upof {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="YAML configuration file to load before running",
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
        self._register_key_commands()
        self._register_attest_commands()
        self._register_config_commands()

        sanctions = self.subparsers.add_parser("sanctions-hash", help="Hash a sanctions dataset label")
        sanctions.add_argument("label", help='Dataset label, e.g. "OFAC:2025-09-04"')

    def _register_key_commands(self) -> None:
        keygen = self.subparsers.add_parser("keygen", help="Generate an attester key")
        keygen.add_argument("--out", "-o", required=True, help="Output PEM path")
        keygen.add_argument("--password-env", help="Environment variable holding the PEM password")
        keygen.add_argument("--force", action="store_true", help="Overwrite an existing file")

        address = self.subparsers.add_parser("address", help="Show the identity of a key")
        address.add_argument("--key", "-k", required=True, help="PEM private key path")
        address.add_argument("--password-env", help="Environment variable holding the PEM password")

    def _register_attest_commands(self) -> None:
        attest = self.subparsers.add_parser("attest", help="Attestation operations")
        attest_sub = attest.add_subparsers(dest="subcommand")

        # attest sign
        sign = attest_sub.add_parser("sign", help="Sign an attestation request")
        sign.add_argument("--key", "-k", required=True, help="PEM private key path")
        sign.add_argument("--request", "-r", required=True, help="Attestation request JSON path")
        sign.add_argument("--password-env", help="Environment variable holding the PEM password")

        # attest recover
        recover = attest_sub.add_parser("recover", help="Recover the signer of an attestation")
        recover.add_argument("--request", "-r", required=True, help="Attestation request JSON path")
        recover.add_argument("--signature", "-s", required=True, help="65-byte signature hex (r || s || v)")

        # attest digest
        digest = attest_sub.add_parser("digest", help="Compute the digest to sign")
        digest.add_argument("--request", "-r", required=True, help="Attestation request JSON path")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get a configuration value")
        get.add_argument("path", help="Dotted config path, e.g. domain.chain_id")
        config_sub.add_parser("show", help="Show the effective configuration")
        config_sub.add_parser("validate", help="Validate the effective configuration")
        config_sub.add_parser("schema", help="Export the configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        from upof.config import ConfigError, get_config_manager
        from upof.hardening import ValidationError
        from upof.observability import (
            UpofLayer,
            generate_correlation_id,
            get_logger,
            set_correlation_id,
            timed_operation,
        )
        from upof.schema import SchemaValidationError

        try:
            fmt = OutputFormat(parsed.format)
            manager = get_config_manager()
            if parsed.config:
                try:
                    manager.load_from_file(parsed.config)
                except ConfigError as e:
                    raise CLIError(str(e), exit_code=2) from e
            else:
                manager.load_defaults()

            set_correlation_id(generate_correlation_id())
            log = get_logger("cli", UpofLayer.CLI)
            for error in manager.load_errors:
                log.warning("Skipped configuration file", error_code="CONFIG_LOAD_FAILED", detail=error)
            operation = f"{parsed.command}.{getattr(parsed, 'subcommand', None) or 'run'}"
            result = timed_operation(log, operation)(self._dispatch)(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (ConfigError, SchemaValidationError, ValidationError, ValueError) as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 2

        except OSError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}".strip())

        return handler(args)

    @staticmethod
    def _password(args: argparse.Namespace) -> Optional[bytes]:
        var = getattr(args, "password_env", None)
        if not var:
            return None
        value = os.environ.get(var)
        if value is None:
            raise CLIError(f"Password environment variable {var} is not set", exit_code=2)
        return value.encode("utf-8")

    # Key handlers
    def _handle_keygen(self, args: argparse.Namespace) -> Any:
        from upof.keys import address_of, generate_private_key, save_private_key

        out = Path(args.out)
        if out.exists() and not args.force:
            raise CLIError(f"{out} already exists (use --force to overwrite)")
        key = generate_private_key()
        save_private_key(key, out, self._password(args))
        return {"address": address_of(key), "path": str(out)}

    def _handle_address(self, args: argparse.Namespace) -> Any:
        from upof.keys import address_of, load_private_key, public_key_bytes

        key = load_private_key(args.key, self._password(args))
        return {"address": address_of(key), "public_key": "0x" + public_key_bytes(key).hex()}

    # Attestation handlers
    def _handle_attest_sign(self, args: argparse.Namespace) -> Any:
        from upof.keys import load_private_key
        from upof.schema import load_attestation_request
        from upof.signature import AttestationSigner
        from upof.typed_data import attestation_digest
        from upof.vault import ComplianceAttachment

        domain, attestation, compliance = load_attestation_request(args.request)
        attachment = ComplianceAttachment.from_wire(compliance)
        signer = AttestationSigner(load_private_key(args.key, self._password(args)))
        signature = signer.sign(domain, attestation)
        if not signer.check(domain, attestation, signature):
            raise CLIError("Signature self-check failed")
        return {
            "attester": signer.address,
            "digest": attestation_digest(domain, attestation),
            "domain": domain.to_dict(),
            "attestation": attestation.to_dict(),
            "signature": signature.to_dict(),
            "compliance": attachment.to_dict() if attachment else None,
        }

    def _handle_attest_recover(self, args: argparse.Namespace) -> Any:
        from upof.schema import load_attestation_request
        from upof.signature import Signature, SignatureVerifier

        domain, attestation, _ = load_attestation_request(args.request)
        signature = Signature.from_hex(args.signature)
        signer = SignatureVerifier.recover(domain, attestation, signature)
        return {
            "signer": signer,
            "well_formed": signature.is_well_formed,
            "malformation": signature.malformation(),
        }

    def _handle_attest_digest(self, args: argparse.Namespace) -> Any:
        from upof.schema import load_attestation_request
        from upof.typed_data import attestation_digest

        domain, attestation, _ = load_attestation_request(args.request)
        return {
            "digest": attestation_digest(domain, attestation),
            "domain_separator": domain.separator(),
            "struct_hash": attestation.struct_hash(),
        }

    def _handle_sanctions_hash(self, args: argparse.Namespace) -> Any:
        from upof.signature import sanctions_label_hash
        return {"label": args.label, "hash": sanctions_label_hash(args.label)}

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from upof.config import ConfigError, get_config_manager
        try:
            return {"path": args.path, "value": get_config_manager().get(args.path)}
        except ConfigError as e:
            raise CLIError(str(e), exit_code=2) from e

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from upof.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from upof.config import get_config_manager
        errors = get_config_manager().validate()
        if errors:
            raise CLIError("Invalid configuration: " + "; ".join(errors), exit_code=2)
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from upof.config import get_config_manager
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = UpofCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
