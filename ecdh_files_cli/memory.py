"""
Memory Module

Scoped buffers for secret material (private keys, shared secrets,
symmetric keys). Buffers are wiped when their scope ends, on every exit
path, and expose only zero-copy views of their contents.
"""

import hmac
from typing import Union


BytesLike = Union[bytes, bytearray, memoryview]


class SecureBufferError(Exception):
    """Raised when a wiped buffer is accessed."""
    pass


def wipe_memory(data: bytearray) -> None:
    """
    Overwrite a byte array with zeros in place.

    Args:
        data: Byte array to wipe
    """
    if not isinstance(data, bytearray):
        return
    data[:] = b'\x00' * len(data)


def secure_compare(a: BytesLike, b: BytesLike) -> bool:
    """
    Compare two byte sequences in constant time.

    Args:
        a: First byte sequence
        b: Second byte sequence

    Returns:
        True if sequences are equal, False otherwise
    """
    return hmac.compare_digest(a, b)


class SecureBuffer:
    """
    Owned buffer for secret bytes.

    The contents live in a private bytearray that is zeroed by ``wipe()``,
    on leaving a ``with`` block, and when the object is collected. Callers
    read the contents through ``view()``, which does not copy.
    """

    def __init__(self, data: Union[BytesLike, int] = b""):
        self._data = bytearray(data)
        self._wiped = False

    @classmethod
    def adopt(cls, data: bytearray) -> 'SecureBuffer':
        """Take ownership of an existing bytearray without copying it."""
        buffer = cls()
        buffer._data = data
        return buffer

    @property
    def wiped(self) -> bool:
        return self._wiped

    def view(self) -> memoryview:
        """Return a read-only view of the secret bytes."""
        if self._wiped:
            raise SecureBufferError("Secure buffer has already been wiped")
        return memoryview(self._data).toreadonly()

    def wipe(self) -> None:
        """Zero the buffer. Safe to call more than once."""
        if not self._wiped:
            wipe_memory(self._data)
            self._wiped = True

    def __len__(self) -> int:
        return 0 if self._wiped else len(self._data)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecureBuffer):
            return secure_compare(self.view(), other.view())
        if isinstance(other, (bytes, bytearray, memoryview)):
            return secure_compare(self.view(), other)
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else f"{len(self._data)} bytes"
        return f"<SecureBuffer {state}>"

    def __enter__(self) -> 'SecureBuffer':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.wipe()

    def __del__(self):
        try:
            self.wipe()
        except AttributeError:
            pass  # __init__ did not complete


def as_bytes_like(material: Union[BytesLike, SecureBuffer]) -> BytesLike:
    """Return a bytes-like object for either raw bytes or a SecureBuffer."""
    if isinstance(material, SecureBuffer):
        return material.view()
    return material
