"""Transparent ciphertext backend for development and tests.

MockCiphertext carries its plaintext value in the clear. It implements the
same capability surface as a real scheme, so ledger tests exercise the exact
code paths production uses, and the same object doubles as the key holder
for the in-process decryption oracle.

Not for production use: nothing here is confidential.
"""

from __future__ import annotations

import hashlib
import secrets
import threading
from dataclasses import dataclass, field

from .capability import Ciphertext, CiphertextCapability, KeyHolder


@dataclass(frozen=True)
class MockCiphertext:
    """A 'ciphertext' whose value is visible to anyone holding it."""

    value: float
    nonce: bytes = field(default_factory=lambda: secrets.token_bytes(16), repr=False)

    @property
    def handle(self) -> bytes:
        return hashlib.sha256(self.nonce).digest()


class MockCapability(CiphertextCapability, KeyHolder):
    """In-memory backend that registers every ciphertext it produces.

    Only registered ciphertexts count as initialized, so a ciphertext minted
    by another MockCapability instance is rejected like foreign input.
    """

    def __init__(self) -> None:
        self._registry: dict[bytes, MockCiphertext] = {}
        self._lock = threading.Lock()

    def _register(self, value: float) -> MockCiphertext:
        ct = MockCiphertext(value=float(value))
        with self._lock:
            self._registry[ct.handle] = ct
        return ct

    # -- key holder ---------------------------------------------------------

    def encrypt(self, value: float) -> MockCiphertext:
        return self._register(value)

    def decrypt(self, c: Ciphertext) -> float:
        """Decrypt a ciphertext object directly (tests only)."""
        if not self.is_initialized(c):
            raise KeyError("ciphertext was not produced by this backend")
        return c.value

    def decrypt_handle(self, handle: bytes) -> float:
        with self._lock:
            ct = self._registry.get(handle)
        if ct is None:
            raise KeyError(handle.hex())
        return ct.value

    # -- capability ---------------------------------------------------------

    def zero(self) -> MockCiphertext:
        return self._register(0.0)

    def add(self, a: Ciphertext, b: Ciphertext) -> MockCiphertext:
        return self._register(a.value + b.value)

    def sub(self, a: Ciphertext, b: Ciphertext) -> MockCiphertext:
        return self._register(a.value - b.value)

    def mul(self, a: Ciphertext, b: Ciphertext) -> MockCiphertext:
        return self._register(a.value * b.value)

    def mul_plain(self, a: Ciphertext, k: float) -> MockCiphertext:
        return self._register(a.value * k)

    def div(self, a: Ciphertext, n: int) -> MockCiphertext:
        if n == 0:
            raise ZeroDivisionError("division of ciphertext by zero")
        return self._register(a.value / n)

    def is_initialized(self, c: Ciphertext) -> bool:
        if not isinstance(c, MockCiphertext):
            return False
        with self._lock:
            return self._registry.get(c.handle) is c

    def to_handle(self, c: Ciphertext) -> bytes:
        return c.handle

    def __len__(self) -> int:
        with self._lock:
            return len(self._registry)
