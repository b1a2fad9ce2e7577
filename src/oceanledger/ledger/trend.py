"""Encrypted trend statistics.

Every statistic is composed from capability operations over ciphertexts and
returned as a ciphertext; nothing here decrypts. Plaintext only ever comes
back through the decryption request manager.

Statistics:
    total     - fold_add(x)
    average   - fold_add(x) / n
    variance  - fold_add((x - mean)^2) / n   (population variance)
    slope     - least-squares slope against the sequence index
    forecast  - least-squares linear extrapolation ``steps_ahead`` past the end

``slope`` and ``forecast`` use only plaintext weights on ciphertexts
(``mul_plain`` then ``add``), so they cost one multiplicative level.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import reduce

from ..core.exceptions import InsufficientDataError, InvalidInputError
from ..crypto.capability import Ciphertext, CiphertextCapability

logger = logging.getLogger(__name__)

MIN_VALUES = 2


class TrendCalculator:
    """Pure functions over ordered ciphertext sequences."""

    def __init__(self, capability: CiphertextCapability) -> None:
        self._capability = capability

    def _check(self, values: Sequence[Ciphertext], minimum: int = MIN_VALUES) -> list[Ciphertext]:
        values = list(values)
        if len(values) < minimum:
            raise InsufficientDataError(len(values), minimum)
        for index, value in enumerate(values):
            if value is None or not self._capability.is_initialized(value):
                raise InvalidInputError(f"Value {index} is not an initialized ciphertext", field="values", value=index)
        return values

    def fold_add(self, values: Sequence[Ciphertext]) -> Ciphertext:
        """Homomorphic sum of a non-empty sequence (order is irrelevant)."""
        return reduce(self._capability.add, values)

    def total(self, values: Sequence[Ciphertext]) -> Ciphertext:
        values = self._check(values, minimum=1)
        return self.fold_add(values)

    def average(self, values: Sequence[Ciphertext], declared_count: int | None = None) -> Ciphertext:
        """Encrypted mean of ``values``.

        Args:
            values: Ciphertexts, at least two.
            declared_count: Optional length asserted by the caller; it must
                equal ``len(values)``.

        Raises:
            InsufficientDataError: Fewer than two values.
            InvalidInputError: Uninitialized value or inconsistent declared_count.
        """
        values = self._check(values)
        n = len(values)
        if declared_count is not None and declared_count != n:
            raise InvalidInputError(
                f"Declared count {declared_count} does not match {n} ciphertexts",
                field="declared_count",
                value=declared_count,
            )
        return self._capability.div(self.fold_add(values), n)

    def variance(self, values: Sequence[Ciphertext]) -> Ciphertext:
        values = self._check(values)
        n = len(values)
        mean = self._capability.div(self.fold_add(values), n)
        squares = []
        for value in values:
            deviation = self._capability.sub(value, mean)
            squares.append(self._capability.mul(deviation, deviation))
        return self._capability.div(self.fold_add(squares), n)

    def slope(self, values: Sequence[Ciphertext]) -> Ciphertext:
        """Encrypted change per step of the least-squares line."""
        values = self._check(values)
        weights = _slope_weights(len(values))
        return self._weighted_sum(values, weights)

    def forecast(self, values: Sequence[Ciphertext], steps_ahead: int = 1) -> Ciphertext:
        """Encrypted value of the least-squares line ``steps_ahead`` past the last point."""
        if steps_ahead < 0:
            raise InvalidInputError("steps_ahead must be non-negative", field="steps_ahead", value=steps_ahead)
        values = self._check(values)
        n = len(values)
        t_mean = (n - 1) / 2
        target = (n - 1) + steps_ahead
        weights = [1.0 / n + w * (target - t_mean) for w in _slope_weights(n)]
        return self._weighted_sum(values, weights)

    def _weighted_sum(self, values: list[Ciphertext], weights: list[float]) -> Ciphertext:
        terms = [self._capability.mul_plain(v, w) for v, w in zip(values, weights, strict=True)]
        return self.fold_add(terms)


def _slope_weights(n: int) -> list[float]:
    # slope = sum((t - t_mean) * x) / sum((t - t_mean)^2), t = 0..n-1
    t_mean = (n - 1) / 2
    denominator = sum((t - t_mean) ** 2 for t in range(n))
    return [(t - t_mean) / denominator for t in range(n)]
