"""Per-region homomorphic accumulators.

Each region holds a running encrypted sum and a plaintext count. Updates to
one region are serialized by that region's lock, so two concurrent
submissions cannot both read the pre-update sum; different regions update in
parallel. The region table itself is guarded by a separate lock.
"""

from __future__ import annotations

import logging
import threading

from ..core.exceptions import NotFoundError
from ..crypto.capability import Ciphertext, CiphertextCapability
from .models import AccumulatorSnapshot, RegionAccumulator

logger = logging.getLogger(__name__)


class RegionAggregator:
    """Owns every RegionAccumulator; exposes ciphertexts, never plaintext."""

    def __init__(self, capability: CiphertextCapability) -> None:
        self._capability = capability
        self._accumulators: dict[str, RegionAccumulator] = {}
        self._region_locks: dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()

    def ensure_region(self, region: str) -> bool:
        """Create the region's accumulator unless it already exists.

        Returns:
            True if the accumulator was created by this call.
        """
        with self._table_lock:
            if region in self._accumulators:
                return False
            self._accumulators[region] = RegionAccumulator(
                region=region,
                encrypted_sum=self._capability.zero(),
                count=0,
            )
            self._region_locks[region] = threading.Lock()
        logger.info(f"Initialized accumulator for region {region!r}")
        return True

    def _entry(self, region: str) -> tuple[RegionAccumulator, threading.Lock]:
        with self._table_lock:
            acc = self._accumulators.get(region)
            if acc is None:
                raise NotFoundError("Region", region)
            return acc, self._region_locks[region]

    def accumulate(self, region: str, value: Ciphertext) -> int:
        """Fold one ciphertext into the region's sum.

        Returns:
            The region's count after the update.
        """
        self.ensure_region(region)
        acc, lock = self._entry(region)
        with lock:
            acc.encrypted_sum = self._capability.add(acc.encrypted_sum, value)
            acc.count += 1
            count = acc.count
        logger.debug(f"Region {region!r} accumulated value #{count}")
        return count

    def get_accumulator(self, region: str) -> AccumulatorSnapshot:
        acc, lock = self._entry(region)
        with lock:
            return AccumulatorSnapshot(acc.encrypted_sum, acc.count)

    def has_region(self, region: str) -> bool:
        with self._table_lock:
            return region in self._accumulators

    def regions(self) -> list[str]:
        with self._table_lock:
            return sorted(self._accumulators)
