"""
Key Derivation Module

Reduces a variable-length shared secret to a fixed-length symmetric key.

The default deriver is a single SHA-256 pass over the raw secret, with no
salt and no context binding. It offers no resistance to related-key attacks
beyond what a raw digest provides. Callers that need domain separation can
select the HKDF-based deriver without changing any other code.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Type, Union

from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import HKDF

from .memory import BytesLike, SecureBuffer, as_bytes_like


SYMMETRIC_KEY_LENGTH = 32
DEFAULT_KEY_DERIVER = "sha256"


class KeyDerivationError(Exception):
    """Raised when key derivation fails."""
    pass


class EmptySecret(KeyDerivationError):
    """Raised when the shared secret is empty."""
    pass


class KeyDeriver(ABC):
    """Turns shared secret material into a 256-bit symmetric key."""

    name: str = ""

    @abstractmethod
    def derive(self, secret: BytesLike) -> SecureBuffer:
        """Derive key material from a non-empty secret."""


class Sha256KeyDeriver(KeyDeriver):
    """
    Single-pass SHA-256 over the raw secret bytes.

    pycryptodome returns the digest as immutable bytes. That object is copied
    into the returned SecureBuffer and dropped at once, but it cannot be wiped;
    only the buffer's copy is zeroed.
    """

    name = "sha256"

    def derive(self, secret: BytesLike) -> SecureBuffer:
        return SecureBuffer.adopt(bytearray(SHA256.new(data=secret).digest()))


class HkdfSha256KeyDeriver(KeyDeriver):
    """
    HKDF (RFC 5869) with SHA-256, optional salt and context.

    The secret is read in place through its view. As with the SHA-256
    deriver, the key pycryptodome hands back is an immutable bytes object
    that cannot be wiped; only the SecureBuffer copy is zeroed.
    """

    name = "hkdf-sha256"

    def __init__(self, salt: Optional[bytes] = None, context: bytes = b"ecdh-files-cli aes-256-gcm"):
        self.salt = salt
        self.context = context

    def derive(self, secret: BytesLike) -> SecureBuffer:
        key = HKDF(
            secret,
            SYMMETRIC_KEY_LENGTH,
            self.salt,
            SHA256,
            context=self.context
        )
        return SecureBuffer.adopt(bytearray(key))


_DERIVERS: Dict[str, Type[KeyDeriver]] = {
    Sha256KeyDeriver.name: Sha256KeyDeriver,
    HkdfSha256KeyDeriver.name: HkdfSha256KeyDeriver,
}


def get_key_deriver(name: str = DEFAULT_KEY_DERIVER) -> KeyDeriver:
    """
    Look up a key deriver by name.

    Args:
        name: Deriver name (sha256, hkdf-sha256)

    Returns:
        KeyDeriver instance

    Raises:
        KeyDerivationError: If the name is unknown
    """
    try:
        return _DERIVERS[name.lower()]()
    except KeyError:
        raise KeyDerivationError(f"Unsupported key derivation function: {name}")


def list_key_derivers() -> list:
    """Return the names of available key derivers."""
    return sorted(_DERIVERS)


def derive_key(
    shared_secret: Union[BytesLike, SecureBuffer],
    deriver: Optional[KeyDeriver] = None
) -> SecureBuffer:
    """
    Derive a 256-bit symmetric key from a shared secret.

    Args:
        shared_secret: Raw secret bytes from key agreement
        deriver: Key deriver to use (default: single-pass SHA-256)

    Returns:
        SecureBuffer holding SYMMETRIC_KEY_LENGTH bytes

    Raises:
        EmptySecret: If the shared secret is empty
        KeyDerivationError: If the deriver produces a key of the wrong size
    """
    secret = as_bytes_like(shared_secret)
    if len(secret) == 0:
        raise EmptySecret("Shared secret is empty")

    deriver = deriver or get_key_deriver(DEFAULT_KEY_DERIVER)
    key = deriver.derive(secret)

    if len(key) != SYMMETRIC_KEY_LENGTH:
        key.wipe()
        raise KeyDerivationError(
            f"Key deriver {deriver.name} produced {len(key)} bytes, "
            f"expected {SYMMETRIC_KEY_LENGTH}"
        )

    return key
