"""
Command Line Interface Module

CLI for ecdh-files-cli. Parses arguments, loads key material and
configuration, runs one operation and maps its result to an exit code.
"""

import os
import sys
import argparse
import binascii
from typing import List, Optional

import yaml

from . import __version__
from .config import Config, ConfigError, create_default_config, load_config
from .core import KEY_LENGTH, NONCE_LENGTH, TAG_LENGTH, generate_nonce
from .integrity import DIGEST_LENGTH
from .key_agreement import CURVE_NAME, PRIVATE_KEY_LENGTH, PUBLIC_KEY_LENGTH, KeyAgreementError, read_key_file
from .key_derivation import list_key_derivers
from .logging_config import configure_logging
from .operations import Operation, OperationResult, run_operation
from .utils import (
    flatten_dict, get_system_info, print_error, print_success, print_table, print_warning, validate_file_path,
    write_file_atomic
)


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_VERIFICATION_FAILED = 2


class CLIError(Exception):
    """Raised when CLI operations fail."""
    pass


class EcdhFilesCLI:
    """Main CLI application class."""

    def __init__(self):
        self.config: Optional[Config] = None
        self.verbose = False
        self.use_rich = True

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run the CLI application.

        Args:
            args: Command line arguments (default: sys.argv)

        Returns:
            Exit code
        """
        parser = self._create_parser()
        parsed_args = parser.parse_args(args)

        self.verbose = parsed_args.verbose
        self.use_rich = not parsed_args.no_rich

        try:
            self._load_configuration(parsed_args)

            if not getattr(parsed_args, 'func', None):
                parser.print_help()
                return EXIT_FAILURE

            return parsed_args.func(parsed_args)

        except KeyboardInterrupt:
            print_error("Operation cancelled by user", self.use_rich)
            return EXIT_FAILURE
        except (CLIError, ConfigError, KeyAgreementError) as e:
            print_error(str(e), self.use_rich)
            return EXIT_FAILURE

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog='ecdh-files-cli',
            description='ECDH key agreement, AES-256-GCM file encryption and SHA-512 file digests',
            formatter_class=argparse.RawDescriptionHelpFormatter
        )

        parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')
        parser.add_argument('--no-rich', action='store_true', help='Disable rich formatting')
        parser.add_argument('--config', help='Configuration file path')
        parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

        subparsers = parser.add_subparsers(dest='command', title='Commands', metavar='COMMAND')

        keygen_parser = subparsers.add_parser('keygen', help='Generate a P-256 key pair')
        keygen_parser.add_argument('prefix', help='Output prefix (writes PREFIX.pub and PREFIX.priv)')
        keygen_parser.add_argument('--overwrite', action='store_true', help='Overwrite existing key files')
        keygen_parser.set_defaults(func=self._cmd_keygen)

        agree_parser = subparsers.add_parser('agree', help='Derive a symmetric key from a key agreement')
        agree_parser.add_argument('--private', required=True, help='Local private key file')
        agree_parser.add_argument('--peer-public', required=True, help='Peer public key file')
        agree_parser.add_argument('-o', '--output', required=True, help='Output symmetric key file')
        agree_parser.add_argument('--kdf', choices=list_key_derivers(), help='Key derivation function')
        agree_parser.add_argument('--overwrite', action='store_true', help='Overwrite existing key file')
        agree_parser.set_defaults(func=self._cmd_agree)

        encrypt_parser = subparsers.add_parser('encrypt', help='Encrypt a file')
        encrypt_parser.add_argument('input', help='Input file to encrypt')
        encrypt_parser.add_argument('-o', '--output', help='Output encrypted file')
        encrypt_parser.add_argument('--key', required=True, help='Symmetric key file')
        encrypt_parser.add_argument('--aad', help='Associated data file (authenticated, not encrypted)')
        encrypt_parser.add_argument('--nonce', help='Nonce as hex (generated and saved next to the output if omitted)')
        encrypt_parser.set_defaults(func=self._cmd_encrypt)

        decrypt_parser = subparsers.add_parser('decrypt', help='Decrypt a file')
        decrypt_parser.add_argument('input', help='Input encrypted file')
        decrypt_parser.add_argument('-o', '--output', help='Output decrypted file')
        decrypt_parser.add_argument('--key', required=True, help='Symmetric key file')
        decrypt_parser.add_argument('--aad', help='Associated data file (authenticated, not encrypted)')
        nonce_group = decrypt_parser.add_mutually_exclusive_group()
        nonce_group.add_argument('--nonce', help='Nonce as hex')
        nonce_group.add_argument('--nonce-file', help='File holding the raw nonce')
        decrypt_parser.set_defaults(func=self._cmd_decrypt)

        digest_parser = subparsers.add_parser('digest', help='Create a SHA-512 digest over files')
        digest_parser.add_argument('files', nargs='+', help='Files to hash, in order')
        digest_parser.add_argument('-o', '--output', help='Output digest file')
        digest_parser.set_defaults(func=self._cmd_digest)

        verify_parser = subparsers.add_parser('verify', help='Verify a SHA-512 digest over files')
        verify_parser.add_argument('files', nargs='+', help='Files to hash, in the original order')
        verify_parser.add_argument('--digest', required=True, help='Digest file to compare against')
        verify_parser.set_defaults(func=self._cmd_verify)

        config_parser = subparsers.add_parser('config', help='Configuration management')
        config_subparsers = config_parser.add_subparsers(dest='config_command', title='Config Commands')

        config_show_parser = config_subparsers.add_parser('show', help='Show current configuration')
        config_show_parser.set_defaults(func=self._cmd_config_show)

        config_create_parser = config_subparsers.add_parser('create', help='Create default configuration')
        config_create_parser.add_argument('file', help='Configuration file path')
        config_create_parser.set_defaults(func=self._cmd_config_create)

        config_set_parser = config_subparsers.add_parser('set', help='Set configuration value')
        config_set_parser.add_argument('key', help='Configuration key')
        config_set_parser.add_argument('value', help='Configuration value')
        config_set_parser.set_defaults(func=self._cmd_config_set)

        info_parser = subparsers.add_parser('info', help='Show algorithm parameters and system information')
        info_parser.set_defaults(func=self._cmd_info)

        return parser

    def _load_configuration(self, args: argparse.Namespace) -> None:
        self.config = load_config(args.config)

        errors = self.config.validation_errors()
        if errors:
            for error in errors:
                print_warning(f"Invalid configuration: {error}", self.use_rich)
            print_warning("Using default configuration", self.use_rich)
            self.config.reset_to_defaults()

        if args.no_rich or not self.config.get('output.color_output', True):
            self.use_rich = False
        self.verbose = self.verbose or bool(self.config.get('output.verbose'))

        level = 'DEBUG' if self.verbose else self.config.get('output.log_level', 'WARNING')
        configure_logging(level, use_rich=self.use_rich)

    def _finish(self, result: OperationResult) -> int:
        """Report a result and turn it into an exit code."""
        for warning in result.warnings:
            print_warning(warning, self.use_rich)

        if result.success:
            print_success(result.message, self.use_rich)
            if self.verbose and result.duration is not None:
                print(f"Completed in {result.duration:.3f} s")
            return EXIT_SUCCESS

        print_error(result.message, self.use_rich)
        if result.fatal:
            return EXIT_FAILURE
        return EXIT_VERIFICATION_FAILED

    def _parse_nonce(self, value: str) -> bytes:
        try:
            return binascii.unhexlify(value.strip())
        except (binascii.Error, ValueError):
            raise CLIError(f"Nonce is not valid hex: {value}")

    def _read_nonce_file(self, path: str) -> bytes:
        try:
            with open(path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise CLIError(f"Failed to read nonce file {path}: {e}")

    def _cmd_keygen(self, args: argparse.Namespace) -> int:
        operation = Operation(
            'keygen',
            output_path=args.prefix,
            options={
                'overwrite': args.overwrite,
                'public_suffix': self.config.get('keys.public_suffix'),
                'private_suffix': self.config.get('keys.private_suffix'),
            }
        )
        return self._finish(run_operation(operation))

    def _cmd_agree(self, args: argparse.Namespace) -> int:
        kdf = args.kdf or self.config.get('encryption.kdf')

        with read_key_file(args.private) as private_key, read_key_file(args.peer_public) as peer_public_key:
            operation = Operation(
                'agree',
                output_path=args.output,
                options={
                    'private_key': private_key,
                    'peer_public_key': peer_public_key,
                    'kdf': kdf,
                    'overwrite': args.overwrite,
                }
            )
            return self._finish(run_operation(operation))

    def _cmd_encrypt(self, args: argparse.Namespace) -> int:
        if not validate_file_path(args.input, must_exist=True):
            raise CLIError(f"Invalid input file: {args.input}")

        output_path = args.output or args.input + self.config.get('encryption.encrypted_extension')
        if not validate_file_path(output_path, must_exist=False):
            raise CLIError(f"Invalid output file: {output_path}")

        nonce_path = None
        if args.nonce:
            nonce = self._parse_nonce(args.nonce)
        else:
            nonce = generate_nonce()
            nonce_path = output_path + self.config.get('encryption.nonce_extension')

        with read_key_file(args.key) as key:
            operation = Operation(
                'encrypt',
                input_paths=[args.input],
                output_path=output_path,
                options={'key': key, 'nonce': nonce, 'associated_data_path': args.aad}
            )
            result = run_operation(operation)

        if result.success and nonce_path:
            try:
                write_file_atomic(nonce_path, nonce)
            except OSError as e:
                # Ciphertext without its nonce cannot be decrypted
                os.remove(output_path)
                raise CLIError(f"Failed to write nonce file {nonce_path}: {e}")
            result.message += f" (nonce saved to {nonce_path})"

        return self._finish(result)

    def _cmd_decrypt(self, args: argparse.Namespace) -> int:
        if not validate_file_path(args.input, must_exist=True):
            raise CLIError(f"Invalid input file: {args.input}")

        encrypted_extension = self.config.get('encryption.encrypted_extension')
        if args.output:
            output_path = args.output
        elif args.input.endswith(encrypted_extension):
            output_path = args.input[:-len(encrypted_extension)]
        else:
            output_path = args.input + self.config.get('encryption.decrypted_extension')

        if not validate_file_path(output_path, must_exist=False):
            raise CLIError(f"Invalid output file: {output_path}")

        if args.nonce:
            nonce = self._parse_nonce(args.nonce)
        else:
            nonce_path = args.nonce_file or args.input + self.config.get('encryption.nonce_extension')
            nonce = self._read_nonce_file(nonce_path)

        with read_key_file(args.key) as key:
            operation = Operation(
                'decrypt',
                input_paths=[args.input],
                output_path=output_path,
                options={'key': key, 'nonce': nonce, 'associated_data_path': args.aad}
            )
            return self._finish(run_operation(operation))

    def _cmd_digest(self, args: argparse.Namespace) -> int:
        output_path = args.output or args.files[0] + self.config.get('digest.extension')
        operation = Operation(
            'digest',
            input_paths=list(args.files),
            output_path=output_path,
            options={'buffer_size': self.config.get('digest.buffer_size')}
        )
        return self._finish(run_operation(operation))

    def _cmd_verify(self, args: argparse.Namespace) -> int:
        operation = Operation(
            'verify',
            input_paths=list(args.files),
            options={
                'digest_path': args.digest,
                'buffer_size': self.config.get('digest.buffer_size'),
            }
        )
        return self._finish(run_operation(operation))

    def _cmd_config_show(self, args: argparse.Namespace) -> int:
        if self.config.config_file:
            print(f"Configuration file: {self.config.config_file}")
        print_table("Configuration", flatten_dict(self.config.to_dict()), self.use_rich)
        return EXIT_SUCCESS

    def _cmd_config_create(self, args: argparse.Namespace) -> int:
        if os.path.exists(args.file):
            raise CLIError(f"Configuration file already exists: {args.file}")
        create_default_config(args.file)
        print_success(f"Configuration created: {args.file}", self.use_rich)
        return EXIT_SUCCESS

    def _cmd_config_set(self, args: argparse.Namespace) -> int:
        if not self.config.config_file:
            raise CLIError("No configuration file loaded; use --config or 'config create' first")

        # YAML scalar rules: "true" -> True, "4096" -> 4096, anything else stays a string
        try:
            value = yaml.safe_load(args.value)
        except yaml.YAMLError:
            value = args.value
        if value is None or isinstance(value, (dict, list)):
            value = args.value

        self.config.set(args.key, value)
        errors = self.config.validation_errors()
        if errors:
            raise CLIError(f"Invalid value for {args.key}: {'; '.join(errors)}")

        self.config.save()
        print_success(f"Set {args.key} = {value}", self.use_rich)
        return EXIT_SUCCESS

    def _cmd_info(self, args: argparse.Namespace) -> int:
        rows = [
            ("Key agreement", f"ECDH {CURVE_NAME}"),
            ("Private key", f"{PRIVATE_KEY_LENGTH} bytes (raw scalar)"),
            ("Public key", f"{PUBLIC_KEY_LENGTH} bytes (uncompressed point)"),
            ("Key derivation", ", ".join(list_key_derivers())),
            ("Cipher", f"AES-256-GCM, {KEY_LENGTH}-byte key"),
            ("Nonce", f"{NONCE_LENGTH} bytes"),
            ("Tag", f"{TAG_LENGTH} bytes, appended"),
            ("Digest", f"SHA-512, {DIGEST_LENGTH} bytes"),
        ]
        print_table("Algorithms", rows, self.use_rich)
        print_table("System", list(get_system_info().items()), self.use_rich)
        return EXIT_SUCCESS


def main() -> int:
    """Main entry point."""
    cli = EcdhFilesCLI()
    return cli.run()


if __name__ == '__main__':
    sys.exit(main())
