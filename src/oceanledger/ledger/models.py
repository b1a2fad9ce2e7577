"""Ledger data model.

EncryptedMeasurement records are append-only. Reveal slots (per measurement,
and per region snapshot) move from unrevealed to revealed exactly once and
never back. Decryption requests move from PENDING to a terminal state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple

from ..core.exceptions import AlreadyRevealedError
from ..crypto.capability import Ciphertext

# Order in which a measurement's ciphertexts are gathered for decryption
# and in which cleartexts are decoded on fulfilment.
MEASUREMENT_FIELDS = ("ph", "carbonate", "temperature")


@dataclass(frozen=True)
class EncryptedMeasurement:
    """One station reading as stored on the ledger."""

    id: int
    station_id: str
    encrypted_ph: Ciphertext = field(repr=False)
    encrypted_carbonate: Ciphertext = field(repr=False)
    encrypted_temperature: Ciphertext = field(repr=False)
    region: str
    timestamp: datetime
    location: str = ""

    def ciphertext_for(self, name: str) -> Ciphertext:
        """Ciphertext of one reading ('ph', 'carbonate' or 'temperature')."""
        if name not in MEASUREMENT_FIELDS:
            raise ValueError(f"Unknown measurement field: {name}")
        return getattr(self, f"encrypted_{name}")

    def ciphertexts(self) -> tuple[Ciphertext, Ciphertext, Ciphertext]:
        return (self.encrypted_ph, self.encrypted_carbonate, self.encrypted_temperature)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "region": self.region,
            "location": self.location,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RevealSlot:
    """Plaintext slot for one measurement, populated once after verification."""

    measurement_id: int
    plaintext_ph: float | None = None
    plaintext_carbonate: float | None = None
    plaintext_temperature: float | None = None
    is_revealed: bool = False

    def reveal(self, ph: float, carbonate: float, temperature: float) -> None:
        if self.is_revealed:
            raise AlreadyRevealedError(f"Measurement {self.measurement_id} is already revealed")
        self.plaintext_ph = float(ph)
        self.plaintext_carbonate = float(carbonate)
        self.plaintext_temperature = float(temperature)
        self.is_revealed = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "measurement_id": self.measurement_id,
            "is_revealed": self.is_revealed,
            "ph": self.plaintext_ph,
            "carbonate": self.plaintext_carbonate,
            "temperature": self.plaintext_temperature,
        }


@dataclass
class RegionAccumulator:
    """Running homomorphic sum and count for one region."""

    region: str
    encrypted_sum: Ciphertext = field(repr=False)
    count: int = 0


class AccumulatorSnapshot(NamedTuple):
    """Read-only view of a region accumulator: (encrypted_sum, count)."""

    encrypted_sum: Ciphertext
    count: int


@dataclass
class RegionReveal:
    """Plaintext slot for a region statistic at a given measurement count.

    The accumulator keeps growing after a reveal, so a region slot is keyed
    by the count it was requested at. Each (region, count) pair reveals once.
    """

    region: str
    count: int
    plaintext_sum: float | None = None
    is_revealed: bool = False

    @property
    def mean(self) -> float | None:
        if not self.is_revealed or self.count == 0:
            return None
        return self.plaintext_sum / self.count

    def reveal(self, plaintext_sum: float) -> None:
        if self.is_revealed:
            raise AlreadyRevealedError(f"Region {self.region!r} at count {self.count} is already revealed")
        value = float(plaintext_sum)
        if not math.isfinite(value):
            raise ValueError("Region sum must be finite")
        self.plaintext_sum = value
        self.is_revealed = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "region": self.region,
            "count": self.count,
            "is_revealed": self.is_revealed,
            "sum": self.plaintext_sum,
            "mean": self.mean,
        }


# =============================================================================
# DECRYPTION TARGETS AND REQUESTS
# =============================================================================


@dataclass(frozen=True)
class MeasurementTarget:
    """Decrypt the three readings of one measurement."""

    measurement_id: int

    @property
    def kind(self) -> str:
        return "measurement"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "measurement_id": self.measurement_id}


@dataclass(frozen=True)
class RegionTarget:
    """Decrypt a region's accumulated sum at a fixed count.

    The region name is stored as-is so a callback maps back to exactly one
    region without any digest lookup.
    """

    region: str
    count: int

    @property
    def kind(self) -> str:
        return "region"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "region": self.region, "count": self.count}


DecryptionTarget = MeasurementTarget | RegionTarget


class RequestState(str, Enum):
    """Lifecycle of a decryption request. Only PENDING is non-terminal."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


@dataclass
class DecryptionRequest:
    """Bookkeeping for one request: id -> target, fixed at creation."""

    request_id: str
    target: DecryptionTarget
    handles: tuple[bytes, ...] = field(repr=False)
    state: RequestState = RequestState.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    closed_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.state == RequestState.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "target": self.target.to_dict(),
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }
