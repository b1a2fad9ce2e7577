"""Measurement ledger: store, region aggregation, decryption requests, trends."""

from .aggregator import RegionAggregator
from .decryption import DecryptionRequestManager
from .events import EventBus, EventRecorder, EventType, LedgerEvent
from .ids import MeasurementIdAllocator, RequestIdAllocator
from .models import (
    MEASUREMENT_FIELDS,
    AccumulatorSnapshot,
    DecryptionRequest,
    DecryptionTarget,
    EncryptedMeasurement,
    MeasurementTarget,
    RegionAccumulator,
    RegionReveal,
    RegionTarget,
    RequestState,
    RevealSlot,
)
from .service import LocalLedger, OceanLedger, build_ledger, build_local_ledger
from .store import MeasurementStore
from .trend import TrendCalculator

__all__ = [
    # Models
    "MEASUREMENT_FIELDS",
    "EncryptedMeasurement",
    "RevealSlot",
    "RegionAccumulator",
    "AccumulatorSnapshot",
    "RegionReveal",
    "MeasurementTarget",
    "RegionTarget",
    "DecryptionTarget",
    "RequestState",
    "DecryptionRequest",
    # Components
    "MeasurementIdAllocator",
    "RequestIdAllocator",
    "MeasurementStore",
    "RegionAggregator",
    "DecryptionRequestManager",
    "TrendCalculator",
    # Events
    "EventBus",
    "EventRecorder",
    "EventType",
    "LedgerEvent",
    # Facade
    "OceanLedger",
    "LocalLedger",
    "build_ledger",
    "build_local_ledger",
]
