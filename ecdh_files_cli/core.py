"""
Core Encryption Module

AES-256-GCM authenticated encryption of file contents with an optional
associated-data channel.

File format: [CIPHERTEXT:N][TAG:12]

The nonce is supplied by the caller and is not stored in the output. It is
16 bytes (one AES block) and must never be reused with the same key.

Both directions share one layout: the encryptor appends the tag, the
decryptor splits it off the end and hands it to the verifier before any
associated data or ciphertext is fed.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes

from .memory import BytesLike, SecureBuffer, as_bytes_like, wipe_memory
from .utils import read_file_bytes, write_file_atomic


logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = AES.block_size
TAG_LENGTH = 12

KeyMaterial = Union[BytesLike, SecureBuffer]


class CipherError(Exception):
    """Base class for authenticated cipher failures."""
    pass


class InvalidKeyLength(CipherError):
    """Raised when the symmetric key is not KEY_LENGTH bytes."""
    pass


class InvalidNonceLength(CipherError):
    """Raised when the nonce is not NONCE_LENGTH bytes."""
    pass


class ChannelOrderViolation(CipherError):
    """Raised when associated data is fed after confidential data."""
    pass


class EncryptionError(CipherError):
    """Raised when encryption operations fail."""
    pass


class DecryptionError(CipherError):
    """Raised when decryption operations fail."""
    pass


class TruncatedInput(DecryptionError):
    """Raised when the input is too short to hold an authentication tag."""
    pass


class AuthenticationFailed(DecryptionError):
    """Raised when the authentication tag does not verify."""
    pass


@dataclass
class CipherFileResult:
    """Outcome of a file encryption or decryption."""
    input_path: str
    output_path: str
    input_size: int
    output_size: int
    associated_data_used: bool
    warnings: List[str] = field(default_factory=list)


def generate_nonce() -> bytes:
    """Return a fresh random nonce of NONCE_LENGTH bytes."""
    return get_random_bytes(NONCE_LENGTH)


def _check_key_and_nonce(key: BytesLike, nonce: BytesLike) -> None:
    if len(key) != KEY_LENGTH:
        raise InvalidKeyLength(f"Key must be {KEY_LENGTH} bytes, got {len(key)}")
    if len(nonce) != NONCE_LENGTH:
        raise InvalidNonceLength(f"Nonce must be {NONCE_LENGTH} bytes, got {len(nonce)}")



class AuthenticatedCipher:
    """
    One AEAD computation fed through two ordered channels.

    Phase 1 accepts associated data (authenticated, not encrypted) and is
    closed by end_associated() or implicitly by the first confidential
    feed. Phase 2 accepts confidential data. Associated data offered in
    phase 2 raises ChannelOrderViolation instead of producing a wrong tag.

    Instances are single use: after finalize() or verify() every call
    raises CipherError.
    """

    _ASSOCIATED = "associated"
    _CONFIDENTIAL = "confidential"
    _FINISHED = "finished"

    def __init__(self, key: KeyMaterial, nonce: BytesLike, tag: Optional[BytesLike] = None):
        key = as_bytes_like(key)
        _check_key_and_nonce(key, nonce)

        self._cipher = AES.new(key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_LENGTH)
        self._decrypting = tag is not None
        self._tag = bytes(tag) if tag is not None else None
        self._phase = self._ASSOCIATED
        self._associated_closed = False

    @classmethod
    def for_encryption(cls, key: KeyMaterial, nonce: BytesLike) -> 'AuthenticatedCipher':
        return cls(key, nonce)

    @classmethod
    def for_decryption(cls, key: KeyMaterial, nonce: BytesLike, tag: BytesLike) -> 'AuthenticatedCipher':
        """Create a verifier; the tag is taken before any data is fed."""
        if len(tag) != TAG_LENGTH:
            raise TruncatedInput(f"Authentication tag must be {TAG_LENGTH} bytes, got {len(tag)}")
        return cls(key, nonce, tag=tag)

    @property
    def decrypting(self) -> bool:
        return self._decrypting

    def _require_open(self) -> None:
        if self._phase == self._FINISHED:
            raise CipherError("Cipher has already been finalized")

    def feed_associated(self, data: BytesLike) -> None:
        """Authenticate data without encrypting it."""
        self._require_open()
        if self._phase != self._ASSOCIATED or self._associated_closed:
            raise ChannelOrderViolation(
                "Associated data must be fed before any confidential data"
            )
        self._cipher.update(data)

    def end_associated(self) -> None:
        """Close the associated-data channel."""
        self._require_open()
        if self._phase != self._ASSOCIATED:
            raise ChannelOrderViolation("Associated data channel is already closed")
        self._associated_closed = True

    def feed_confidential(self, data: BytesLike, output: Optional[bytearray] = None) -> Optional[bytes]:
        """
        Encrypt or decrypt a chunk of confidential data.

        When output is given it must have the same length as data and
        receives the result in place; None is returned in that case.
        """
        self._require_open()
        self._phase = self._CONFIDENTIAL
        if len(data) == 0:
            return None if output is not None else b""

        if self._decrypting:
            return self._cipher.decrypt(data, output=output)
        return self._cipher.encrypt(data, output=output)

    def finalize(self) -> bytes:
        """Finish encryption and return the TAG_LENGTH-byte tag."""
        self._require_open()
        if self._decrypting:
            raise CipherError("finalize() is for encryption; use verify() when decrypting")
        self._phase = self._FINISHED
        return self._cipher.digest()

    def verify(self) -> None:
        """
        Finish decryption and check the tag.

        Raises:
            AuthenticationFailed: If the tag does not match
        """
        self._require_open()
        if not self._decrypting:
            raise CipherError("verify() is for decryption; use finalize() when encrypting")
        self._phase = self._FINISHED
        try:
            self._cipher.verify(self._tag)
        except ValueError:
            raise AuthenticationFailed("Authentication tag mismatch")


def _open_into(
    ciphertext: BytesLike,
    tag: BytesLike,
    key: KeyMaterial,
    nonce: BytesLike,
    associated_data: Optional[BytesLike]
) -> bytearray:
    """Decrypt into a scratch buffer that is wiped unless the tag verifies."""
    cipher = AuthenticatedCipher.for_decryption(key, nonce, tag)
    if associated_data is not None:
        cipher.feed_associated(associated_data)
        cipher.end_associated()

    plaintext = bytearray(len(ciphertext))
    try:
        cipher.feed_confidential(ciphertext, output=plaintext)
        cipher.verify()
    except BaseException:
        wipe_memory(plaintext)
        raise
    return plaintext


def encrypt_data(
    plaintext: BytesLike,
    key: KeyMaterial,
    nonce: BytesLike,
    associated_data: Optional[BytesLike] = None
) -> Tuple[bytes, bytes]:
    """
    Encrypt data with AES-256-GCM.

    Args:
        plaintext: Data to encrypt
        key: 32-byte symmetric key
        nonce: 16-byte nonce, unique per key
        associated_data: Optional data authenticated but not encrypted

    Returns:
        (ciphertext, tag); ciphertext has the plaintext's length

    Raises:
        InvalidKeyLength: If the key has the wrong size
        InvalidNonceLength: If the nonce has the wrong size
    """
    cipher = AuthenticatedCipher.for_encryption(key, nonce)
    if associated_data is not None:
        cipher.feed_associated(associated_data)
        cipher.end_associated()

    ciphertext = cipher.feed_confidential(plaintext)
    tag = cipher.finalize()
    return ciphertext, tag


def decrypt_data(
    ciphertext: BytesLike,
    tag: BytesLike,
    key: KeyMaterial,
    nonce: BytesLike,
    associated_data: Optional[BytesLike] = None
) -> bytes:
    """
    Decrypt and verify data encrypted with encrypt_data.

    Args:
        ciphertext: Encrypted data
        tag: Authentication tag from encryption
        key: 32-byte symmetric key
        nonce: Nonce used for encryption
        associated_data: Associated data used for encryption

    Returns:
        Recovered plaintext

    Raises:
        AuthenticationFailed: If the tag does not verify; no plaintext
            is returned
        TruncatedInput: If the tag has the wrong size
    """
    plaintext = _open_into(ciphertext, tag, key, nonce, associated_data)
    try:
        return bytes(plaintext)
    finally:
        wipe_memory(plaintext)


def split_sealed(sealed: BytesLike) -> Tuple[memoryview, memoryview]:
    """
    Split [ciphertext][tag] into its two parts.

    Raises:
        TruncatedInput: If the input is shorter than the tag
    """
    ciphertext_length = len(sealed) - TAG_LENGTH
    if ciphertext_length < 0:
        raise TruncatedInput(
            f"Input is {len(sealed)} bytes, shorter than the {TAG_LENGTH}-byte authentication tag"
        )
    view = memoryview(sealed)
    return view[:ciphertext_length], view[ciphertext_length:]


def seal_data(
    plaintext: BytesLike,
    key: KeyMaterial,
    nonce: BytesLike,
    associated_data: Optional[BytesLike] = None
) -> bytes:
    """Encrypt data and return ciphertext with the tag appended."""
    ciphertext, tag = encrypt_data(plaintext, key, nonce, associated_data)
    return ciphertext + tag


def open_data(
    sealed: BytesLike,
    key: KeyMaterial,
    nonce: BytesLike,
    associated_data: Optional[BytesLike] = None
) -> bytes:
    """Decrypt output of seal_data."""
    ciphertext, tag = split_sealed(sealed)
    return decrypt_data(ciphertext, tag, key, nonce, associated_data)


def _read_associated_data(associated_data_path: Optional[str]) -> Tuple[Optional[bytearray], List[str]]:
    """
    Read the associated-data file.

    A path that cannot be read degrades to empty associated data with a
    warning; the operation continues.
    """
    if associated_data_path is None:
        return None, []

    try:
        return read_file_bytes(associated_data_path), []
    except OSError as e:
        message = (
            f"Could not read associated data file {associated_data_path} ({e}); "
            "continuing with empty associated data"
        )
        logger.warning(message)
        return bytearray(), [message]


def encrypt_file(
    input_path: str,
    output_path: str,
    key: KeyMaterial,
    nonce: BytesLike,
    associated_data_path: Optional[str] = None
) -> CipherFileResult:
    """
    Encrypt a file with AES-256-GCM.

    Args:
        input_path: Path to plaintext file
        output_path: Path to output file ([ciphertext][tag])
        key: 32-byte symmetric key
        nonce: 16-byte nonce, unique per key
        associated_data_path: Optional file of associated data

    Returns:
        CipherFileResult describing the operation

    Raises:
        InvalidKeyLength, InvalidNonceLength: Before any file is touched
        EncryptionError: If the input cannot be read or the output written;
            no output file is left behind
    """
    _check_key_and_nonce(as_bytes_like(key), nonce)

    try:
        plaintext = read_file_bytes(input_path)
    except OSError as e:
        raise EncryptionError(f"Input file not readable: {input_path}: {e}")

    associated_data, warnings = _read_associated_data(associated_data_path)
    try:
        ciphertext, tag = encrypt_data(plaintext, key, nonce, associated_data)
    finally:
        wipe_memory(plaintext)

    try:
        written = write_file_atomic(output_path, ciphertext, tag)
    except OSError as e:
        raise EncryptionError(f"Failed to write encrypted file {output_path}: {e}")

    logger.debug("Encrypted %s -> %s (%d bytes)", input_path, output_path, written)
    return CipherFileResult(
        input_path=input_path,
        output_path=output_path,
        input_size=len(ciphertext),
        output_size=written,
        associated_data_used=bool(associated_data),
        warnings=warnings
    )


def decrypt_file(
    input_path: str,
    output_path: str,
    key: KeyMaterial,
    nonce: BytesLike,
    associated_data_path: Optional[str] = None
) -> CipherFileResult:
    """
    Decrypt a file produced by encrypt_file.

    Args:
        input_path: Path to encrypted file
        output_path: Path to output plaintext file
        key: 32-byte symmetric key
        nonce: Nonce used for encryption
        associated_data_path: Optional file of associated data

    Returns:
        CipherFileResult describing the operation

    Raises:
        InvalidKeyLength, InvalidNonceLength: Before any file is touched
        DecryptionError: If the input cannot be read or the output written
        TruncatedInput: If the input is shorter than the tag
        AuthenticationFailed: If verification fails; no output is written
    """
    _check_key_and_nonce(as_bytes_like(key), nonce)

    try:
        sealed = read_file_bytes(input_path)
    except OSError as e:
        raise DecryptionError(f"Input file not readable: {input_path}: {e}")

    ciphertext, tag = split_sealed(sealed)
    associated_data, warnings = _read_associated_data(associated_data_path)

    try:
        plaintext = _open_into(ciphertext, tag, key, nonce, associated_data)
    except AuthenticationFailed:
        logger.warning("Authentication failed for %s", input_path)
        raise
    finally:
        ciphertext.release()
        tag.release()

    try:
        written = write_file_atomic(output_path, plaintext)
    except OSError as e:
        raise DecryptionError(f"Failed to write decrypted file {output_path}: {e}")
    finally:
        wipe_memory(plaintext)

    logger.debug("Decrypted %s -> %s (%d bytes)", input_path, output_path, written)
    return CipherFileResult(
        input_path=input_path,
        output_path=output_path,
        input_size=len(sealed),
        output_size=written,
        associated_data_used=bool(associated_data),
        warnings=warnings
    )


def get_encrypted_file_info(input_path: str) -> dict:
    """
    Get information about an encrypted file.

    Raises:
        DecryptionError: If the file cannot be inspected
        TruncatedInput: If the file is shorter than the tag
    """
    try:
        file_size = os.path.getsize(input_path)
    except OSError as e:
        raise DecryptionError(f"Failed to analyze encrypted file: {e}")

    if file_size < TAG_LENGTH:
        raise TruncatedInput(f"File is {file_size} bytes, shorter than the authentication tag")

    return {
        'file_size': file_size,
        'ciphertext_size': file_size - TAG_LENGTH,
        'tag_length': TAG_LENGTH,
        'nonce_length': NONCE_LENGTH,
        'algorithm': 'AES-256-GCM',
    }
