"""
Integrity Module

SHA-512 digests over one or more files treated as a single byte stream,
in the order given. Digest files hold the raw 64 digest bytes with no
encoding.
"""

import logging
from typing import Iterable, List

from Crypto.Hash import SHA512

from .utils import read_file_bytes, write_file_atomic


logger = logging.getLogger(__name__)

DIGEST_LENGTH = SHA512.digest_size
DEFAULT_BUFFER_SIZE = 65536


class IntegrityError(Exception):
    """Raised when integrity operations fail."""
    pass


def _hash_files(file_paths: Iterable[str], buffer_size: int):
    hash_obj = SHA512.new()
    for file_path in file_paths:
        try:
            with open(file_path, 'rb') as f:
                while True:
                    chunk = f.read(buffer_size)
                    if not chunk:
                        break
                    hash_obj.update(chunk)
        except OSError as e:
            raise IntegrityError(f"Failed to read {file_path}: {e}")
    return hash_obj


def compute_digest(file_paths: List[str], buffer_size: int = DEFAULT_BUFFER_SIZE) -> bytes:
    """
    Compute the SHA-512 digest of the concatenation of files.

    Args:
        file_paths: Files to hash, in order
        buffer_size: Read size per chunk

    Returns:
        Raw 64-byte digest

    Raises:
        IntegrityError: If any file cannot be read
    """
    return _hash_files(file_paths, buffer_size).digest()


def create_digest_file(
    file_paths: List[str],
    output_path: str,
    buffer_size: int = DEFAULT_BUFFER_SIZE
) -> bytes:
    """
    Compute the digest of the files and write it to output_path.

    Returns:
        Raw digest written

    Raises:
        IntegrityError: If an input cannot be read or the output written
    """
    digest = compute_digest(file_paths, buffer_size)
    try:
        write_file_atomic(output_path, digest)
    except OSError as e:
        raise IntegrityError(f"Failed to write digest file {output_path}: {e}")

    logger.debug("Wrote digest of %d file(s) to %s", len(file_paths), output_path)
    return digest


def read_digest_file(digest_path: str) -> bytes:
    """
    Read a raw digest file.

    Raises:
        IntegrityError: If the file cannot be read
    """
    try:
        return bytes(read_file_bytes(digest_path))
    except OSError as e:
        raise IntegrityError(f"Failed to read digest file {digest_path}: {e}")


def verify_digest(
    file_paths: List[str],
    expected_digest_path: str,
    buffer_size: int = DEFAULT_BUFFER_SIZE
) -> bool:
    """
    Recompute the digest of the files and compare it to a stored digest.

    Args:
        file_paths: Files to hash, in the order used when creating the digest
        expected_digest_path: File holding the raw expected digest
        buffer_size: Read size per chunk

    Returns:
        True if the digests are equal, False otherwise

    Raises:
        IntegrityError: If an input or the digest file cannot be read
    """
    expected = read_digest_file(expected_digest_path)
    if len(expected) != DIGEST_LENGTH:
        logger.warning(
            "Digest file %s holds %d bytes, expected %d",
            expected_digest_path, len(expected), DIGEST_LENGTH
        )
        return False

    actual = compute_digest(file_paths, buffer_size)
    if actual != expected:
        logger.warning("Digest mismatch for %s", ", ".join(file_paths))
        return False

    return True


def get_file_hash(file_path: str, buffer_size: int = DEFAULT_BUFFER_SIZE) -> str:
    """
    Calculate the SHA-512 hash of a single file.

    Returns:
        Hexadecimal hash string
    """
    return _hash_files([file_path], buffer_size).hexdigest()
