"""CKKS ciphertext backend built on TenSEAL.

Requires the optional dependency: ``pip install oceanledger[tenseal]``

Each reading is a one-slot CKKS vector. Handles are SHA-256 digests of the
serialized vector and are registered when first taken, which is how the
key-holding oracle finds the ciphertext a handle refers to.

The default parameters (poly modulus 8192, coefficient moduli
[60, 40, 40, 60]) leave two multiplicative levels: enough for sums,
averages and forecasts. Variance needs a deeper chain, e.g.
``TenSEALCapability(poly_modulus_degree=16384, coeff_mod_bit_sizes=[60, 40, 40, 40, 60])``.
"""

from __future__ import annotations

import hashlib
import logging
import threading

try:
    import tenseal as ts
except ImportError:  # pragma: no cover
    ts = None  # type: ignore[assignment]

from .capability import Ciphertext, CiphertextCapability, KeyHolder

logger = logging.getLogger(__name__)

DEFAULT_POLY_MODULUS_DEGREE = 8192
DEFAULT_COEFF_MOD_BIT_SIZES = (60, 40, 40, 60)
DEFAULT_GLOBAL_SCALE = 2**40


class TenSEALCapability(CiphertextCapability, KeyHolder):
    """CKKS capability holding a TenSEAL context with its secret key."""

    def __init__(
        self,
        poly_modulus_degree: int = DEFAULT_POLY_MODULUS_DEGREE,
        coeff_mod_bit_sizes: tuple[int, ...] | list[int] = DEFAULT_COEFF_MOD_BIT_SIZES,
        global_scale: float = DEFAULT_GLOBAL_SCALE,
    ) -> None:
        if ts is None:
            raise ImportError("tenseal package is required for TenSEALCapability. Install with: pip install oceanledger[tenseal]")

        self.context = ts.context(
            ts.SCHEME_TYPE.CKKS,
            poly_modulus_degree=poly_modulus_degree,
            coeff_mod_bit_sizes=list(coeff_mod_bit_sizes),
        )
        self.context.global_scale = global_scale
        self.context.generate_galois_keys()
        self.context.generate_relin_keys()

        self._handles: dict[bytes, Ciphertext] = {}
        self._lock = threading.Lock()
        logger.debug(f"TenSEAL CKKS context ready (N={poly_modulus_degree}, moduli={list(coeff_mod_bit_sizes)})")

    def encrypt(self, value: float) -> Ciphertext:
        return ts.ckks_vector(self.context, [float(value)])

    def decrypt_handle(self, handle: bytes) -> float:
        with self._lock:
            vector = self._handles.get(handle)
        if vector is None:
            raise KeyError(handle.hex())
        return float(vector.decrypt()[0])

    def zero(self) -> Ciphertext:
        return self.encrypt(0.0)

    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        return a + b

    def sub(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        return a - b

    def mul(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        return a * b

    def mul_plain(self, a: Ciphertext, k: float) -> Ciphertext:
        return a * float(k)

    def div(self, a: Ciphertext, n: int) -> Ciphertext:
        if n == 0:
            raise ZeroDivisionError("division of ciphertext by zero")
        return a * (1.0 / n)

    def is_initialized(self, c: Ciphertext) -> bool:
        return isinstance(c, ts.CKKSVector) and c.size() >= 1

    def to_handle(self, c: Ciphertext) -> bytes:
        handle = hashlib.sha256(c.serialize()).digest()
        with self._lock:
            self._handles.setdefault(handle, c)
        return handle
