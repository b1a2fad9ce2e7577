"""Append-only store of encrypted measurements and their reveal slots.

Records are created once on submission and never mutated or deleted. Each
record gets an empty RevealSlot; only the decryption manager populates it,
through ``MeasurementStore.reveal``.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections import Counter
from datetime import UTC, datetime
from typing import Any

from ..core.config import CoreSettings, get_config
from ..core.exceptions import InvalidInputError, NotFoundError
from ..crypto.capability import Ciphertext, CiphertextCapability
from .aggregator import RegionAggregator
from .events import EventBus, EventType
from .ids import MeasurementIdAllocator
from .models import EncryptedMeasurement, RevealSlot

logger = logging.getLogger(__name__)


class MeasurementStore:
    """Owns EncryptedMeasurement records and RevealSlots.

    Args:
        capability: Ciphertext backend used to validate submissions.
        aggregator: Receives the tracked reading of every new record.
        events: Notification bus; a private one is created if omitted.
        settings: Configuration; defaults to the global config.
    """

    def __init__(
        self,
        capability: CiphertextCapability,
        aggregator: RegionAggregator,
        events: EventBus | None = None,
        settings: CoreSettings | None = None,
    ) -> None:
        self._capability = capability
        self._aggregator = aggregator
        self._events = events or EventBus()
        self._settings = settings or get_config()
        self._ids = MeasurementIdAllocator(self._settings.max_measurement_id)
        self._records: dict[int, EncryptedMeasurement] = {}
        self._reveals: dict[int, RevealSlot] = {}
        self._lock = threading.Lock()

    @property
    def tracked_field(self) -> str:
        return self._settings.tracked_field

    def _validate(
        self,
        encrypted_ph: Ciphertext,
        encrypted_carbonate: Ciphertext,
        encrypted_temperature: Ciphertext,
        region: str,
        station_id: str,
    ) -> None:
        for name, value in (
            ("encrypted_ph", encrypted_ph),
            ("encrypted_carbonate", encrypted_carbonate),
            ("encrypted_temperature", encrypted_temperature),
        ):
            if value is None or not self._capability.is_initialized(value):
                raise InvalidInputError(f"{name} is not an initialized ciphertext", field=name)

        if not isinstance(region, str) or not region.strip():
            raise InvalidInputError("region is required", field="region")
        if not isinstance(station_id, str) or not station_id.strip():
            raise InvalidInputError("station_id is required", field="station_id")

        allowed = self._settings.region_allow_list
        if allowed is not None and region not in allowed:
            raise InvalidInputError(f"Region {region!r} is not a known region", field="region", value=region)

    def submit(
        self,
        encrypted_ph: Ciphertext,
        encrypted_carbonate: Ciphertext,
        encrypted_temperature: Ciphertext,
        region: str,
        station_id: str,
        location: str = "",
    ) -> int:
        """Append a measurement and fold its tracked reading into the region.

        Returns:
            The newly allocated measurement id.

        Raises:
            InvalidInputError: If a ciphertext is uninitialized or a required
                field is missing. Nothing is written.
            AllocationError: If the id space is exhausted. Nothing is written.
        """
        self._validate(encrypted_ph, encrypted_carbonate, encrypted_temperature, region, station_id)

        measurement_id = self._ids.allocate()
        record = EncryptedMeasurement(
            id=measurement_id,
            station_id=station_id,
            encrypted_ph=encrypted_ph,
            encrypted_carbonate=encrypted_carbonate,
            encrypted_temperature=encrypted_temperature,
            region=region,
            timestamp=datetime.now(UTC),
            location=location,
        )

        self._aggregator.accumulate(region, record.ciphertext_for(self.tracked_field))
        with self._lock:
            self._records[measurement_id] = record
            self._reveals[measurement_id] = RevealSlot(measurement_id=measurement_id)

        logger.info(f"Measurement {measurement_id} submitted by station {station_id!r} into region {region!r}")
        self._events.emit(
            EventType.MEASUREMENT_SUBMITTED,
            id=measurement_id,
            timestamp=record.timestamp.isoformat(),
        )
        return measurement_id

    def get(self, measurement_id: int) -> EncryptedMeasurement:
        with self._lock:
            record = self._records.get(measurement_id)
        if record is None:
            raise NotFoundError("Measurement", measurement_id)
        return record

    def get_reveal(self, measurement_id: int) -> RevealSlot:
        """Return a copy of the measurement's reveal slot."""
        with self._lock:
            slot = self._reveals.get(measurement_id)
            if slot is None:
                raise NotFoundError("Measurement", measurement_id)
            return dataclasses.replace(slot)

    def exists(self, measurement_id: int) -> bool:
        with self._lock:
            return measurement_id in self._records

    def reveal(self, measurement_id: int, ph: float, carbonate: float, temperature: float) -> RevealSlot:
        """Populate a reveal slot. Reserved for the decryption manager.

        Raises:
            NotFoundError: Unknown measurement.
            AlreadyRevealedError: The slot is already populated.
        """
        with self._lock:
            slot = self._reveals.get(measurement_id)
            if slot is None:
                raise NotFoundError("Measurement", measurement_id)
            slot.reveal(ph, carbonate, temperature)
            return dataclasses.replace(slot)

    def ids(self) -> list[int]:
        with self._lock:
            return sorted(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def station_summary(self) -> dict[str, Any]:
        """Record counts per station and per region (metadata only)."""
        with self._lock:
            records = list(self._records.values())
        by_station = Counter(r.station_id for r in records)
        by_region = Counter(r.region for r in records)
        return {
            "total_records": len(records),
            "unique_stations": len(by_station),
            "records_per_station": dict(sorted(by_station.items())),
            "records_per_region": dict(sorted(by_region.items())),
        }
