# SPDX-License-Identifier: MIT
# Copyright (c) 2026 OceanLedger Contributors

"""OceanLedger - confidential ocean measurement ledger.

Stations submit encrypted pH, carbonate and temperature readings. The ledger
keeps a running homomorphic sum per region and computes encrypted trends
without ever decrypting an individual value. Plaintext is released only
through a two-phase decryption request: a request is recorded as pending and
handed to an external oracle, and the oracle's later callback is applied only
after its Ed25519 proof verifies.

Architecture:
  Station -> MeasurementStore (append-only, encrypted)
    -> RegionAggregator (encrypted sum + count per region)
    -> DecryptionRequestManager (pending -> fulfilled, proof-checked)
    -> TrendCalculator (encrypted mean, variance, slope, forecast)

CLI entry point: ``oceanledger``
"""

__version__ = "0.1.0"

from .ledger import OceanLedger, build_ledger, build_local_ledger

__all__ = ["OceanLedger", "build_ledger", "build_local_ledger", "__version__"]
