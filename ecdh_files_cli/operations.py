"""
Operations Module

Boundary between the cryptographic modules and their callers. An
Operation names what to run with already-validated paths and key
material; run_operation performs it and converts every library exception
into an OperationResult, so callers decide how to react (the command line
maps results to exit codes).
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .core import AuthenticationFailed, CipherError, TruncatedInput, decrypt_file, encrypt_file
from .integrity import IntegrityError, create_digest_file, verify_digest
from .key_agreement import (
    PRIVATE_KEY_SUFFIX, PUBLIC_KEY_SUFFIX, KeyAgreementError, agree, generate_key_pair, save_key_pair, write_key_file
)
from .key_derivation import DEFAULT_KEY_DERIVER, KeyDerivationError, derive_key, get_key_deriver
from .memory import SecureBufferError
from .utils import format_file_size


logger = logging.getLogger(__name__)

OPERATIONS = ('keygen', 'agree', 'encrypt', 'decrypt', 'digest', 'verify')


class OperationError(Exception):
    """Raised when an operation is malformed."""
    pass


@dataclass
class Operation:
    """A single requested operation."""
    operation: str
    input_paths: List[str] = field(default_factory=list)
    output_path: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.operation not in OPERATIONS:
            raise OperationError(f"Invalid operation: {self.operation}")

    def require(self, name: str) -> Any:
        """Return a required option or raise OperationError."""
        value = self.options.get(name)
        if value is None:
            raise OperationError(f"Operation {self.operation} requires option '{name}'")
        return value


@dataclass
class OperationResult:
    """The result of an operation, including failures."""
    operation: Operation
    success: bool
    message: str = ""
    fatal: bool = False
    verified: Optional[bool] = None
    warnings: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def duration(self) -> Optional[float]:
        """Get operation duration in seconds."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None


def _require_output(operation: Operation) -> str:
    if not operation.output_path:
        raise OperationError(f"Operation {operation.operation} requires an output path")
    return operation.output_path


def _require_single_input(operation: Operation) -> str:
    if len(operation.input_paths) != 1:
        raise OperationError(
            f"Operation {operation.operation} takes exactly one input file, "
            f"got {len(operation.input_paths)}"
        )
    return operation.input_paths[0]


def _run_keygen(operation: Operation, result: OperationResult) -> None:
    prefix = _require_output(operation)
    with generate_key_pair() as key_pair:
        public_path, private_path = save_key_pair(
            key_pair,
            prefix,
            overwrite=operation.options.get('overwrite', False),
            public_suffix=operation.options.get('public_suffix') or PUBLIC_KEY_SUFFIX,
            private_suffix=operation.options.get('private_suffix') or PRIVATE_KEY_SUFFIX
        )
    result.outputs = [public_path, private_path]
    result.message = f"Key pair written: {public_path}, {private_path}"


def _run_agree(operation: Operation, result: OperationResult) -> None:
    output_path = _require_output(operation)
    deriver = get_key_deriver(operation.options.get('kdf') or DEFAULT_KEY_DERIVER)

    with agree(operation.require('private_key'), operation.require('peer_public_key')) as secret:
        with derive_key(secret, deriver) as key:
            write_key_file(
                output_path, key, private=True,
                overwrite=operation.options.get('overwrite', False)
            )

    result.outputs = [output_path]
    result.message = f"Symmetric key ({deriver.name}) written: {output_path}"


def _run_cipher(operation: Operation, result: OperationResult) -> None:
    input_path = _require_single_input(operation)
    output_path = _require_output(operation)
    func = encrypt_file if operation.operation == 'encrypt' else decrypt_file

    file_result = func(
        input_path,
        output_path,
        operation.require('key'),
        operation.require('nonce'),
        operation.options.get('associated_data_path')
    )

    result.warnings.extend(file_result.warnings)
    result.outputs = [output_path]
    if operation.operation == 'decrypt':
        result.verified = True
    action = "encrypted" if operation.operation == 'encrypt' else "decrypted"
    result.message = (
        f"File {action} successfully: {output_path} ({format_file_size(file_result.output_size)})"
    )


def _run_digest(operation: Operation, result: OperationResult) -> None:
    output_path = _require_output(operation)
    if not operation.input_paths:
        raise OperationError("Operation digest requires at least one input file")

    digest = create_digest_file(
        operation.input_paths, output_path,
        buffer_size=operation.options.get('buffer_size', 65536)
    )
    result.outputs = [output_path]
    result.message = f"Digest {digest.hex()[:16]}... written: {output_path}"


def _run_verify(operation: Operation, result: OperationResult) -> None:
    if not operation.input_paths:
        raise OperationError("Operation verify requires at least one input file")

    verified = verify_digest(
        operation.input_paths,
        operation.require('digest_path'),
        buffer_size=operation.options.get('buffer_size', 65536)
    )
    result.verified = verified
    if verified:
        result.message = "Digest verified"
    else:
        result.success = False
        result.message = "Digest mismatch"


_HANDLERS: Dict[str, Callable[[Operation, OperationResult], None]] = {
    'keygen': _run_keygen,
    'agree': _run_agree,
    'encrypt': _run_cipher,
    'decrypt': _run_cipher,
    'digest': _run_digest,
    'verify': _run_verify,
}


def run_operation(operation: Operation) -> OperationResult:
    """
    Run one operation and report its outcome.

    Verification failures (tag or digest mismatch) give success=False with
    fatal=False. I/O failures, invalid key material and truncated input
    give success=False with fatal=True. A missing associated-data file
    gives success=True with a warning.

    Args:
        operation: Operation to run

    Returns:
        OperationResult
    """
    result = OperationResult(operation=operation, success=True, start_time=time.time())

    try:
        _HANDLERS[operation.operation](operation, result)
    except AuthenticationFailed as e:
        result.success = False
        result.verified = False
        result.message = f"Verification failed: {e}"
    except TruncatedInput as e:
        result.success = False
        result.fatal = True
        result.message = f"Malformed input: {e}"
    except (CipherError, KeyAgreementError, KeyDerivationError, IntegrityError, SecureBufferError,
            OperationError) as e:
        result.success = False
        result.fatal = True
        result.message = str(e)

    result.end_time = time.time()
    if not result.success:
        logger.debug("Operation %s failed: %s", operation.operation, result.message)
    return result


class OperationRunner:
    """
    Runs operations one after another and keeps their results.
    """

    def __init__(
        self,
        continue_on_error: bool = False,
        progress_callback: Optional[Callable] = None
    ):
        """
        Args:
            continue_on_error: Keep going after a fatal result
            progress_callback: Called as callback(completed, total, result)
        """
        self.continue_on_error = continue_on_error
        self.progress_callback = progress_callback
        self.results: List[OperationResult] = []

    def run(self, operations: List[Operation]) -> List[OperationResult]:
        """Run operations in order and return their results."""
        self.results = []
        total = len(operations)

        for completed, operation in enumerate(operations, start=1):
            result = run_operation(operation)
            self.results.append(result)

            if self.progress_callback:
                self.progress_callback(completed, total, result)

            if result.fatal and not self.continue_on_error:
                break

        return self.results

    def get_summary(self) -> Dict[str, Any]:
        """
        Get summary of results.

        Returns:
            Dictionary with summary statistics
        """
        successful = sum(1 for r in self.results if r.success)
        fatal = sum(1 for r in self.results if r.fatal)
        total_time = sum(r.duration or 0 for r in self.results)

        return {
            'total_operations': len(self.results),
            'successful': successful,
            'failed': len(self.results) - successful,
            'fatal': fatal,
            'verification_failures': sum(1 for r in self.results if r.verified is False),
            'warnings': sum(len(r.warnings) for r in self.results),
            'total_time': total_time,
        }

    def get_failed_operations(self) -> List[OperationResult]:
        """Get list of failed operations."""
        return [r for r in self.results if not r.success]
