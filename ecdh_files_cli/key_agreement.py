"""
Key Agreement Module

Elliptic-curve Diffie-Hellman over NIST P-256 (secp256r1).

Keys are exchanged as raw byte strings: the private key is the 32-byte
big-endian scalar, the public key is the 65-byte uncompressed SEC1 point
(0x04 || X || Y). The agreed value is the 32-byte X coordinate of the
shared point.
"""

import os
import logging
from typing import Union, Tuple

from Crypto.PublicKey import ECC

from .memory import BytesLike, SecureBuffer, as_bytes_like


logger = logging.getLogger(__name__)

CURVE_NAME = "P-256"
COORDINATE_LENGTH = 32
PRIVATE_KEY_LENGTH = COORDINATE_LENGTH
PUBLIC_KEY_LENGTH = 1 + 2 * COORDINATE_LENGTH
SHARED_SECRET_LENGTH = COORDINATE_LENGTH
UNCOMPRESSED_POINT_PREFIX = 0x04

PUBLIC_KEY_SUFFIX = ".pub"
PRIVATE_KEY_SUFFIX = ".priv"


class KeyAgreementError(Exception):
    """Raised when key agreement operations fail."""
    pass


class InvalidKeyMaterial(KeyAgreementError):
    """Raised when a key is empty, has the wrong length or is out of range."""
    pass


class AgreementFailed(KeyAgreementError):
    """Raised when the peer public key is rejected by the curve arithmetic."""
    pass


class KeyPair:
    """An EC key pair in raw interchange form."""

    def __init__(self, public_key: bytes, private_key: SecureBuffer):
        self.public_key = public_key
        self.private_key = private_key

    def wipe(self) -> None:
        """Zero the private key."""
        self.private_key.wipe()

    def __enter__(self) -> 'KeyPair':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return f"<KeyPair curve={CURVE_NAME} public={self.public_key[:4].hex()}...>"


def _encode_public_point(point) -> bytes:
    x = int(point.x).to_bytes(COORDINATE_LENGTH, 'big')
    y = int(point.y).to_bytes(COORDINATE_LENGTH, 'big')
    return bytes([UNCOMPRESSED_POINT_PREFIX]) + x + y


def _check_length(material: BytesLike, expected: int, label: str) -> None:
    if len(material) == 0:
        raise InvalidKeyMaterial(f"{label} is empty")
    if len(material) != expected:
        raise InvalidKeyMaterial(
            f"{label} must be {expected} bytes for {CURVE_NAME}, got {len(material)}"
        )


def _import_public_key(public_key: BytesLike) -> ECC.EccKey:
    if public_key[0] != UNCOMPRESSED_POINT_PREFIX:
        raise AgreementFailed("Peer public key is not an uncompressed SEC1 point")

    x = int.from_bytes(public_key[1:1 + COORDINATE_LENGTH], 'big')
    y = int.from_bytes(public_key[1 + COORDINATE_LENGTH:], 'big')

    try:
        key = ECC.construct(curve=CURVE_NAME, point_x=x, point_y=y)
    except ValueError as e:
        raise AgreementFailed(f"Peer public key rejected: {e}")

    if key.pointQ.is_point_at_infinity():
        raise AgreementFailed("Peer public key is the point at infinity")

    return key


def generate_key_pair() -> KeyPair:
    """
    Generate a fresh P-256 key pair.

    Returns:
        KeyPair with raw public and private key bytes
    """
    key = ECC.generate(curve=CURVE_NAME)
    private_key = bytearray(int(key.d).to_bytes(PRIVATE_KEY_LENGTH, 'big'))
    public_key = _encode_public_point(key.pointQ)

    logger.debug("Generated %s key pair", CURVE_NAME)
    return KeyPair(public_key, SecureBuffer.adopt(private_key))


def agree(
    private_key: Union[BytesLike, SecureBuffer],
    peer_public_key: Union[BytesLike, SecureBuffer]
) -> SecureBuffer:
    """
    Compute the ECDH shared secret.

    Args:
        private_key: Local raw private key (32 bytes)
        peer_public_key: Peer raw public key (65 bytes)

    Returns:
        SecureBuffer holding the 32-byte shared secret

    Raises:
        InvalidKeyMaterial: If either key is empty, the wrong length, or the
            private scalar is outside the curve order
        AgreementFailed: If the peer public key is not a valid curve point
            or the shared point is the identity
    """
    private_bytes = as_bytes_like(private_key)
    public_bytes = as_bytes_like(peer_public_key)

    _check_length(public_bytes, PUBLIC_KEY_LENGTH, "Peer public key")
    _check_length(private_bytes, PRIVATE_KEY_LENGTH, "Private key")

    try:
        local = ECC.construct(curve=CURVE_NAME, d=int.from_bytes(private_bytes, 'big'))
    except ValueError as e:
        raise InvalidKeyMaterial(f"Private key is outside the {CURVE_NAME} order: {e}")

    peer = _import_public_key(public_bytes)
    shared_point = peer.pointQ * int(local.d)

    if shared_point.is_point_at_infinity():
        raise AgreementFailed("Shared point is the point at infinity")

    secret = bytearray(int(shared_point.x).to_bytes(SHARED_SECRET_LENGTH, 'big'))
    logger.debug("Agreed %d-byte shared secret", len(secret))
    return SecureBuffer.adopt(secret)


def public_key_from_private(private_key: Union[BytesLike, SecureBuffer]) -> bytes:
    """
    Recompute the raw public key that belongs to a raw private key.

    Raises:
        InvalidKeyMaterial: If the private key is malformed
    """
    private_bytes = as_bytes_like(private_key)
    _check_length(private_bytes, PRIVATE_KEY_LENGTH, "Private key")

    try:
        key = ECC.construct(curve=CURVE_NAME, d=int.from_bytes(private_bytes, 'big'))
    except ValueError as e:
        raise InvalidKeyMaterial(f"Invalid private key: {e}")

    return _encode_public_point(key.pointQ)


def write_key_file(
    output_path: str,
    material: Union[BytesLike, SecureBuffer],
    private: bool = False,
    overwrite: bool = False
) -> str:
    """
    Write raw key bytes to disk.

    Args:
        output_path: Destination path
        material: Raw key bytes
        private: Restrict permissions to the owner
        overwrite: Whether to replace an existing file

    Returns:
        Path written

    Raises:
        KeyAgreementError: If the file exists or cannot be written
    """
    if os.path.exists(output_path) and not overwrite:
        raise KeyAgreementError(f"Key file already exists: {output_path}")

    directory = os.path.dirname(output_path)
    try:
        if directory:
            os.makedirs(directory, exist_ok=True)

        if private:
            fd = os.open(output_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'wb') as f:
                f.write(as_bytes_like(material))
        else:
            with open(output_path, 'wb') as f:
                f.write(as_bytes_like(material))
    except OSError as e:
        raise KeyAgreementError(f"Failed to write key file {output_path}: {e}")

    return output_path


def read_key_file(key_path: str) -> SecureBuffer:
    """
    Read raw key bytes from disk into a SecureBuffer.

    Raises:
        KeyAgreementError: If the file cannot be read
    """
    try:
        with open(key_path, 'rb') as f:
            data = bytearray(f.read())
    except OSError as e:
        raise KeyAgreementError(f"Failed to read key file {key_path}: {e}")

    return SecureBuffer.adopt(data)


def save_key_pair(
    key_pair: KeyPair,
    prefix: str,
    overwrite: bool = False,
    public_suffix: str = PUBLIC_KEY_SUFFIX,
    private_suffix: str = PRIVATE_KEY_SUFFIX
) -> Tuple[str, str]:
    """
    Save a key pair as '<prefix>.pub' and '<prefix>.priv' (or the given suffixes).

    Returns:
        (public_path, private_path)
    """
    public_path = prefix + public_suffix
    private_path = prefix + private_suffix

    if not overwrite:
        for path in (public_path, private_path):
            if os.path.exists(path):
                raise KeyAgreementError(f"Key file already exists: {path}")

    write_key_file(private_path, key_pair.private_key, private=True, overwrite=overwrite)
    write_key_file(public_path, key_pair.public_key, overwrite=overwrite)
    return public_path, private_path


def load_key_pair(
    prefix: str,
    public_suffix: str = PUBLIC_KEY_SUFFIX,
    private_suffix: str = PRIVATE_KEY_SUFFIX
) -> KeyPair:
    """
    Load a key pair saved by save_key_pair.

    Raises:
        KeyAgreementError: If either file is unreadable
        InvalidKeyMaterial: If the public key does not match the private key
    """
    private_key = read_key_file(prefix + private_suffix)
    public_buffer = read_key_file(prefix + public_suffix)
    public_key = bytes(public_buffer.view())
    public_buffer.wipe()

    try:
        expected = public_key_from_private(private_key)
    except InvalidKeyMaterial:
        private_key.wipe()
        raise

    if expected != public_key:
        private_key.wipe()
        raise InvalidKeyMaterial(f"Public key does not match private key for {prefix}")

    return KeyPair(public_key, private_key)
