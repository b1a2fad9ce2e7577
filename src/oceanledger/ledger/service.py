"""OceanLedger facade.

Wires the measurement store, region aggregator, decryption request manager
and trend calculator around one injected ciphertext capability. Callers
interact with ledger state only through this object; there are no
module-level ledgers.

Usage:
    ledger = OceanLedger(capability, oracle, verifier)
    mid = ledger.submit(ph, carbonate, temperature, region="pacific-nw", station_id="st-1")
    rid = ledger.request_decryption(mid)
    # ... oracle calls ledger.fulfill(rid, cleartexts, proof) later
    ledger.get_reveal(mid)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..core.config import CoreSettings, get_config
from ..core.exceptions import ConfigException, InsufficientDataError, InvalidInputError
from ..crypto.capability import Ciphertext, CiphertextCapability
from ..crypto.mock import MockCapability
from ..crypto.oracle import DecryptionOracle, LocalDecryptionOracle
from ..crypto.proofs import Ed25519ProofVerifier, ProofSigner, ProofVerifier, generate_keypair
from .aggregator import RegionAggregator
from .decryption import DecryptionRequestManager
from .events import EventBus
from .models import (
    AccumulatorSnapshot,
    DecryptionRequest,
    DecryptionTarget,
    EncryptedMeasurement,
    MeasurementTarget,
    RegionReveal,
    RegionTarget,
    RevealSlot,
)
from .store import MeasurementStore
from .trend import MIN_VALUES, TrendCalculator

logger = logging.getLogger(__name__)

# A trend source is either a region name or an explicit ciphertext sequence.
TrendSource = str | Sequence[Ciphertext]


class OceanLedger:
    """Confidential measurement ledger with homomorphic regional statistics."""

    def __init__(
        self,
        capability: CiphertextCapability,
        oracle: DecryptionOracle,
        verifier: ProofVerifier,
        settings: CoreSettings | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.settings = settings or get_config()
        self.events = events or EventBus()
        self.capability = capability
        self.aggregator = RegionAggregator(capability)
        self.store = MeasurementStore(capability, self.aggregator, self.events, self.settings)
        self.decryptions = DecryptionRequestManager(
            self.store,
            self.aggregator,
            capability,
            oracle,
            verifier,
            self.events,
            self.settings,
        )
        self.trend = TrendCalculator(capability)

    # -- records --------------------------------------------------------------

    def submit(
        self,
        encrypted_ph: Ciphertext,
        encrypted_carbonate: Ciphertext,
        encrypted_temperature: Ciphertext,
        region: str,
        station_id: str,
        location: str = "",
    ) -> int:
        return self.store.submit(
            encrypted_ph,
            encrypted_carbonate,
            encrypted_temperature,
            region=region,
            station_id=station_id,
            location=location,
        )

    def get(self, measurement_id: int) -> EncryptedMeasurement:
        return self.store.get(measurement_id)

    def get_reveal(self, measurement_id: int) -> RevealSlot:
        return self.store.get_reveal(measurement_id)

    def station_summary(self) -> dict[str, Any]:
        summary = self.store.station_summary()
        summary["regions"] = self.aggregator.regions()
        return summary

    # -- decryption -----------------------------------------------------------

    def request_decryption(self, target: int | str | DecryptionTarget) -> str:
        """Request decryption of a measurement id, a region name, or an explicit target."""
        if isinstance(target, MeasurementTarget | RegionTarget):
            return self.decryptions.request_decryption(target)
        if isinstance(target, bool):
            raise InvalidInputError("Decryption target must be a measurement id or region", field="target")
        if isinstance(target, int):
            return self.decryptions.request_measurement(target)
        if isinstance(target, str):
            return self.decryptions.request_region(target)
        raise InvalidInputError("Decryption target must be a measurement id or region", field="target")

    def fulfill(self, request_id: str, cleartexts: Sequence[float], proof: bytes) -> DecryptionRequest:
        return self.decryptions.fulfill(request_id, cleartexts, proof)

    def cancel(self, request_id: str) -> DecryptionRequest:
        return self.decryptions.cancel(request_id)

    def expire_stale(self, now: datetime | None = None) -> list[str]:
        return self.decryptions.expire_stale(now)

    def get_request(self, request_id: str) -> DecryptionRequest:
        return self.decryptions.get_request(request_id)

    # -- aggregates -----------------------------------------------------------

    def get_accumulator(self, region: str) -> AccumulatorSnapshot:
        return self.aggregator.get_accumulator(region)

    def get_region_reveal(self, region: str, count: int | None = None) -> RegionReveal:
        return self.decryptions.get_region_reveal(region, count)

    def region_series(self, region: str) -> list[Ciphertext]:
        """Tracked-field ciphertexts of a region, in submission order."""
        self.aggregator.get_accumulator(region)
        field_name = self.store.tracked_field
        series = []
        for measurement_id in self.store.ids():
            record = self.store.get(measurement_id)
            if record.region == region:
                series.append(record.ciphertext_for(field_name))
        return series

    def average(self, source: TrendSource) -> Ciphertext:
        """Encrypted mean of a region (from its accumulator) or of an explicit list."""
        if isinstance(source, str):
            snapshot = self.aggregator.get_accumulator(source)
            if snapshot.count < MIN_VALUES:
                raise InsufficientDataError(snapshot.count, MIN_VALUES)
            return self.capability.div(snapshot.encrypted_sum, snapshot.count)
        return self.trend.average(source)

    def variance(self, source: TrendSource) -> Ciphertext:
        return self.trend.variance(self._series(source))

    def forecast(self, source: TrendSource, steps_ahead: int = 1) -> Ciphertext:
        return self.trend.forecast(self._series(source), steps_ahead)

    def _series(self, source: TrendSource) -> Sequence[Ciphertext]:
        if isinstance(source, str):
            return self.region_series(source)
        return source

    # -- health ---------------------------------------------------------------

    def is_available(self) -> bool:
        """Whether the ciphertext backend can produce usable ciphertexts."""
        try:
            return bool(self.capability.is_initialized(self.capability.zero()))
        except Exception as e:
            logger.error(f"Ciphertext backend unavailable: {e}")
            return False


@dataclass
class LocalLedger:
    """A ledger wired to an in-process mock backend and oracle."""

    ledger: OceanLedger
    capability: MockCapability
    oracle: LocalDecryptionOracle
    signer: ProofSigner


def build_local_ledger(settings: CoreSettings | None = None, events: EventBus | None = None) -> LocalLedger:
    """Build a self-contained ledger for demos and tests.

    The mock backend is transparent, so this is never suitable for real data.
    """
    capability = MockCapability()
    signer = ProofSigner(generate_keypair())
    oracle = LocalDecryptionOracle(capability, signer)
    verifier = Ed25519ProofVerifier(signer.public_key_bytes)
    ledger = OceanLedger(capability, oracle, verifier, settings=settings, events=events)
    return LocalLedger(ledger=ledger, capability=capability, oracle=oracle, signer=signer)


def build_ledger(
    capability: CiphertextCapability,
    oracle: DecryptionOracle,
    settings: CoreSettings | None = None,
    events: EventBus | None = None,
) -> OceanLedger:
    """Build a ledger that trusts the oracle key pinned in settings.

    Raises:
        ConfigException: OCEANLEDGER_ORACLE_PUBLIC_KEY is unset or not a valid
            Ed25519 public key.
    """
    settings = settings or get_config()
    if not settings.oracle_public_key:
        raise ConfigException("Oracle public key is not configured", setting="OCEANLEDGER_ORACLE_PUBLIC_KEY")
    try:
        verifier = Ed25519ProofVerifier.from_hex(settings.oracle_public_key.strip())
    except ValueError as e:
        raise ConfigException(f"Invalid oracle public key: {e}", setting="OCEANLEDGER_ORACLE_PUBLIC_KEY") from e
    logger.info(f"Ledger pinned to oracle key {settings.oracle_public_key.strip()[:12]}")
    return OceanLedger(capability, oracle, verifier, settings=settings, events=events)
