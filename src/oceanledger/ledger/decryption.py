"""Decryption request lifecycle.

State machine per request::

    (no request) --request_decryption--> PENDING --fulfill--> FULFILLED
                                            |
                                            +--cancel / expire_stale--> CANCELLED

FULFILLED and CANCELLED are terminal. ``request_decryption`` records PENDING,
hands the target's ciphertext handles to the oracle and returns at once.
The oracle answers later through ``fulfill``, which verifies the proof
before writing anything: a bad proof leaves the request PENDING so a valid
retry can still land, and a duplicate callback for a FULFILLED request is
rejected instead of reapplied.

Only this manager moves a reveal slot from unrevealed to revealed.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from ..core.config import CoreSettings, get_config
from ..core.exceptions import (
    AlreadyFulfilledError,
    AlreadyRevealedError,
    InvalidInputError,
    InvalidProofError,
    NotFoundError,
    RequestClosedError,
    RequestPendingError,
    UnknownRequestError,
)
from ..core.logging import correlation_context, handle_fingerprint
from ..crypto.capability import CiphertextCapability
from ..crypto.oracle import DecryptionOracle
from ..crypto.proofs import ProofVerifier
from .aggregator import RegionAggregator
from .events import EventBus, EventType
from .ids import RequestIdAllocator
from .models import (
    DecryptionRequest,
    DecryptionTarget,
    MeasurementTarget,
    RegionReveal,
    RegionTarget,
    RequestState,
)
from .store import MeasurementStore

logger = logging.getLogger(__name__)


class DecryptionRequestManager:
    """Issues decryption requests and applies proof-checked callbacks."""

    def __init__(
        self,
        store: MeasurementStore,
        aggregator: RegionAggregator,
        capability: CiphertextCapability,
        oracle: DecryptionOracle,
        verifier: ProofVerifier,
        events: EventBus | None = None,
        settings: CoreSettings | None = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._capability = capability
        self._oracle = oracle
        self._verifier = verifier
        self._events = events or EventBus()
        self._settings = settings or get_config()

        self._request_ids = RequestIdAllocator()
        self._requests: dict[str, DecryptionRequest] = {}
        self._pending_by_target: dict[DecryptionTarget, str] = {}
        self._region_reveals: dict[tuple[str, int], RegionReveal] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # REQUEST
    # =========================================================================

    def request_measurement(self, measurement_id: int) -> str:
        """Request decryption of one measurement's three readings."""
        return self.request_decryption(MeasurementTarget(measurement_id))

    def request_region(self, region: str) -> str:
        """Request decryption of a region's sum at its current count.

        The target and its handle come from one accumulator snapshot, so a
        submission landing meanwhile only opens the next snapshot.
        """
        snapshot = self._aggregator.get_accumulator(region)
        target = RegionTarget(region, snapshot.count)
        return self._open_request(target, (self._capability.to_handle(snapshot.encrypted_sum),))

    def request_decryption(self, target: DecryptionTarget) -> str:
        """Open a PENDING request for ``target`` and dispatch it to the oracle.

        Every precondition is checked before a request id is allocated.

        Raises:
            NotFoundError: Unknown measurement or region.
            AlreadyRevealedError: The target is already revealed.
            RequestPendingError: The target already has a PENDING request.
        """
        return self._open_request(target, self._gather_handles(target))

    def _open_request(self, target: DecryptionTarget, handles: tuple[bytes, ...]) -> str:
        with self._lock:
            if self._is_revealed(target):
                raise AlreadyRevealedError(f"{_describe(target)} is already revealed")
            existing = self._pending_by_target.get(target)
            if existing is not None:
                raise RequestPendingError(f"{_describe(target)} already has a pending request", existing_id=existing)

            request_id = self._request_ids.allocate()
            request = DecryptionRequest(request_id=request_id, target=target, handles=handles)
            self._requests[request_id] = request
            self._pending_by_target[target] = request_id

        # Announced before dispatch: a synchronous oracle may fulfill inside the call
        self._events.emit(EventType.DECRYPTION_REQUESTED, request_id=request_id, target=target.to_dict())

        with correlation_context(request_id):
            logger.info(
                f"Decryption requested for {_describe(target)} "
                f"(handles: {', '.join(handle_fingerprint(h) for h in handles)})"
            )
            try:
                self._oracle.request_decryption(request_id, handles, self.fulfill)
            except Exception:
                with self._lock:
                    still_pending = self._requests[request_id].is_pending
                    if still_pending:
                        self._close(request_id, RequestState.CANCELLED)
                if still_pending:
                    logger.exception(f"Oracle dispatch failed for {request_id[:12]}, cancelling")
                    self._events.emit(EventType.DECRYPTION_CANCELLED, request_id=request_id, target=target.to_dict())
                else:
                    logger.exception(f"Oracle dispatch failed for {request_id[:12]} after the request closed")
                raise

        return request_id

    def _gather_handles(self, target: DecryptionTarget) -> tuple[bytes, ...]:
        if isinstance(target, MeasurementTarget):
            record = self._store.get(target.measurement_id)
            return tuple(self._capability.to_handle(c) for c in record.ciphertexts())

        snapshot = self._aggregator.get_accumulator(target.region)
        if snapshot.count != target.count:
            raise NotFoundError("Region snapshot", f"{target.region}@{target.count}")
        return (self._capability.to_handle(snapshot.encrypted_sum),)

    def _is_revealed(self, target: DecryptionTarget) -> bool:
        if isinstance(target, MeasurementTarget):
            return self._store.get_reveal(target.measurement_id).is_revealed
        slot = self._region_reveals.get((target.region, target.count))
        return slot is not None and slot.is_revealed

    # =========================================================================
    # CALLBACK
    # =========================================================================

    def fulfill(self, request_id: str, cleartexts: Sequence[float], proof: bytes) -> DecryptionRequest:
        """Apply the oracle's answer to a PENDING request.

        Cleartexts are decoded in the order the handles were gathered:
        (ph, carbonate, temperature) for a measurement, (sum,) for a region.

        Raises:
            UnknownRequestError: The id was never issued.
            AlreadyFulfilledError: The request was already fulfilled.
            RequestClosedError: The request was cancelled or expired.
            InvalidInputError: Wrong number of cleartexts, or non-numeric values.
            InvalidProofError: Proof verification failed.
        """
        with correlation_context(request_id), self._lock:
            request = self._requests.get(request_id)
            if request is None:
                logger.warning(f"Protocol violation: callback for unknown request {str(request_id)[:12]}")
                raise UnknownRequestError(str(request_id))
            if request.state == RequestState.FULFILLED:
                logger.info(f"Duplicate callback for fulfilled request {request_id[:12]} rejected")
                raise AlreadyFulfilledError(f"Request {request_id} is already fulfilled", existing_id=request_id)
            if request.state == RequestState.CANCELLED:
                raise RequestClosedError(f"Request {request_id} was cancelled", existing_id=request_id)

            values = _decode_cleartexts(cleartexts, expected=len(request.handles))

            if not self._verifier.check_proof(request_id, values, proof):
                logger.warning(f"Invalid proof for request {request_id[:12]}; request stays pending")
                raise InvalidProofError(request_id)

            target = request.target
            if isinstance(target, MeasurementTarget):
                ph, carbonate, temperature = values
                self._store.reveal(target.measurement_id, ph, carbonate, temperature)
                event_type = EventType.MEASUREMENT_DECRYPTED
                payload: dict[str, Any] = {"id": target.measurement_id}
            else:
                slot = self._region_reveals.setdefault(
                    (target.region, target.count),
                    RegionReveal(region=target.region, count=target.count),
                )
                slot.reveal(values[0])
                event_type = EventType.REGION_DECRYPTED
                payload = {"region": target.region, "count": target.count}

            self._close(request_id, RequestState.FULFILLED)
            logger.info(f"Request {request_id[:12]} fulfilled for {_describe(target)}")
            fulfilled = dataclasses.replace(request)

        self._events.emit(event_type, request_id=request_id, **payload)
        return fulfilled

    # =========================================================================
    # CANCELLATION
    # =========================================================================

    def cancel(self, request_id: str) -> DecryptionRequest:
        """Withdraw a PENDING request so the target can be requested again.

        Raises:
            UnknownRequestError: The id was never issued.
            AlreadyFulfilledError: The request already completed.
            RequestClosedError: The request was already cancelled.
        """
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise UnknownRequestError(str(request_id))
            if request.state == RequestState.FULFILLED:
                raise AlreadyFulfilledError(f"Request {request_id} is already fulfilled", existing_id=request_id)
            if request.state == RequestState.CANCELLED:
                raise RequestClosedError(f"Request {request_id} was already cancelled", existing_id=request_id)
            self._close(request_id, RequestState.CANCELLED)
            cancelled = dataclasses.replace(request)

        logger.info(f"Request {request_id[:12]} cancelled")
        self._events.emit(EventType.DECRYPTION_CANCELLED, request_id=request_id, target=cancelled.target.to_dict())
        return cancelled

    def expire_stale(self, now: datetime | None = None, max_age_seconds: int | None = None) -> list[str]:
        """Cancel PENDING requests older than the configured timeout.

        Returns:
            Ids of the requests that were cancelled.
        """
        timeout = self._settings.request_timeout_seconds if max_age_seconds is None else max_age_seconds
        if timeout <= 0:
            return []

        cutoff = (now or datetime.now(UTC)) - timedelta(seconds=timeout)
        with self._lock:
            stale = [r.request_id for r in self._requests.values() if r.is_pending and r.created_at < cutoff]

        expired = []
        for request_id in stale:
            try:
                self.cancel(request_id)
            except (AlreadyFulfilledError, RequestClosedError):
                # Closed by a callback between the scan and the cancel
                continue
            expired.append(request_id)

        if expired:
            logger.info(f"Expired {len(expired)} stale decryption request(s)")
        return expired

    def _close(self, request_id: str, state: RequestState) -> None:
        with self._lock:
            request = self._requests[request_id]
            request.state = state
            request.closed_at = datetime.now(UTC)
            if self._pending_by_target.get(request.target) == request_id:
                del self._pending_by_target[request.target]

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_request(self, request_id: str) -> DecryptionRequest:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise NotFoundError("Decryption request", request_id)
            return dataclasses.replace(request)

    def pending(self) -> list[DecryptionRequest]:
        with self._lock:
            return [dataclasses.replace(r) for r in self._requests.values() if r.is_pending]

    def get_region_reveal(self, region: str, count: int | None = None) -> RegionReveal:
        """Reveal slot for a region at ``count`` (default: its current count)."""
        if count is None:
            count = self._aggregator.get_accumulator(region).count
        elif not self._aggregator.has_region(region):
            raise NotFoundError("Region", region)

        with self._lock:
            slot = self._region_reveals.get((region, count))
            if slot is None:
                return RegionReveal(region=region, count=count)
            return dataclasses.replace(slot)

    def region_reveals(self, region: str) -> list[RegionReveal]:
        """Every revealed snapshot of a region, by ascending count."""
        with self._lock:
            slots = [dataclasses.replace(s) for (r, _), s in self._region_reveals.items() if r == region and s.is_revealed]
        return sorted(slots, key=lambda s: s.count)


def _describe(target: DecryptionTarget) -> str:
    if isinstance(target, MeasurementTarget):
        return f"measurement {target.measurement_id}"
    return f"region {target.region!r}@{target.count}"


def _decode_cleartexts(cleartexts: Sequence[float], expected: int) -> list[float]:
    if isinstance(cleartexts, str | bytes) or not isinstance(cleartexts, Sequence):
        raise InvalidInputError("cleartexts must be a sequence of numbers", field="cleartexts")
    if len(cleartexts) != expected:
        raise InvalidInputError(
            f"Expected {expected} cleartexts, got {len(cleartexts)}",
            field="cleartexts",
        )
    values = []
    for value in cleartexts:
        if isinstance(value, bool) or not isinstance(value, int | float) or not math.isfinite(value):
            raise InvalidInputError("cleartexts must be finite numbers", field="cleartexts")
        values.append(float(value))
    return values
