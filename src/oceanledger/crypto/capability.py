"""Ciphertext capability interface.

The ledger never inspects ciphertext contents. Everything it does with an
encrypted reading goes through a CiphertextCapability injected at
construction time, so ledger logic and tests are independent of the
homomorphic scheme that backs it.

Backends:
    MockCapability      - transparent test double (crypto.mock)
    TenSEALCapability   - CKKS via TenSEAL (crypto.tenseal_backend)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

# Opaque to the ledger; only the backend knows its shape.
Ciphertext = Any

HANDLE_SIZE = 32


class CiphertextCapability(ABC):
    """Abstract homomorphic operations consumed by the ledger.

    ``zero``, ``add``, ``div``, ``is_initialized`` and ``to_handle`` are the
    operations the store, aggregator and decryption manager rely on.
    ``sub``, ``mul`` and ``mul_plain`` are used by the trend calculator for
    variance and forecasting.
    """

    @abstractmethod
    def zero(self) -> Ciphertext:
        """Return an encryption of zero."""
        ...

    @abstractmethod
    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Return an encryption of a + b."""
        ...

    @abstractmethod
    def div(self, a: Ciphertext, n: int) -> Ciphertext:
        """Return an encryption of a / n for a plaintext integer n."""
        ...

    @abstractmethod
    def is_initialized(self, c: Ciphertext) -> bool:
        """Whether ``c`` is a usable ciphertext produced by this backend."""
        ...

    @abstractmethod
    def to_handle(self, c: Ciphertext) -> bytes:
        """Return the 32-byte handle the decryption oracle resolves."""
        ...

    @abstractmethod
    def sub(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Return an encryption of a - b."""
        ...

    @abstractmethod
    def mul(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Return an encryption of a * b."""
        ...

    @abstractmethod
    def mul_plain(self, a: Ciphertext, k: float) -> Ciphertext:
        """Return an encryption of a * k for a plaintext scalar k."""
        ...


class KeyHolder(ABC):
    """Secret-key side of a backend, used only by the decryption oracle."""

    @abstractmethod
    def encrypt(self, value: float) -> Ciphertext:
        """Encrypt a plaintext reading."""
        ...

    @abstractmethod
    def decrypt_handle(self, handle: bytes) -> float:
        """Decrypt the ciphertext a handle refers to.

        Raises:
            KeyError: If the handle was never produced by this backend.
        """
        ...
