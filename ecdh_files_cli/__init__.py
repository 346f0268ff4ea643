"""
ECDH Files CLI - Key Agreement and Authenticated File Encryption

A Python toolkit for P-256 ECDH key agreement, symmetric key derivation,
AES-256-GCM file encryption with optional associated data, and SHA-512
digests over sets of files.

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .memory import SecureBuffer, wipe_memory
from .key_agreement import KeyPair, generate_key_pair, agree, InvalidKeyMaterial, AgreementFailed
from .key_derivation import derive_key, get_key_deriver, KeyDeriver, EmptySecret
from .core import (
    AuthenticatedCipher,
    encrypt_data,
    decrypt_data,
    encrypt_file,
    decrypt_file,
    generate_nonce,
    InvalidNonceLength,
    ChannelOrderViolation,
    TruncatedInput,
    AuthenticationFailed,
)
from .integrity import compute_digest, create_digest_file, verify_digest
from .operations import Operation, OperationResult, run_operation
from .config import Config

__all__ = [
    "SecureBuffer",
    "wipe_memory",
    "KeyPair",
    "generate_key_pair",
    "agree",
    "InvalidKeyMaterial",
    "AgreementFailed",
    "derive_key",
    "get_key_deriver",
    "KeyDeriver",
    "EmptySecret",
    "AuthenticatedCipher",
    "encrypt_data",
    "decrypt_data",
    "encrypt_file",
    "decrypt_file",
    "generate_nonce",
    "InvalidNonceLength",
    "ChannelOrderViolation",
    "TruncatedInput",
    "AuthenticationFailed",
    "compute_digest",
    "create_digest_file",
    "verify_digest",
    "Operation",
    "OperationResult",
    "run_operation",
    "Config",
]
