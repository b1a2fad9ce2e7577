"""Tests for the decryption request lifecycle.

Tests cover:
- Request preconditions (NotFound, AlreadyRevealed, one pending per target)
- Proof-checked fulfilment for measurement and region targets
- Idempotency against duplicate and late callbacks
- Invalid proofs leave the request pending with no partial writes
- Cancellation and timeout expiry
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from oceanledger.core.exceptions import (
    AlreadyFulfilledError,
    AlreadyRevealedError,
    InvalidInputError,
    InvalidProofError,
    NotFoundError,
    RequestClosedError,
    RequestPendingError,
    UnknownRequestError,
)
from oceanledger.crypto.oracle import DecryptionOracle
from oceanledger.ledger.events import EventType
from oceanledger.ledger.models import MeasurementTarget, RegionTarget, RequestState
from oceanledger.ledger.service import LocalLedger


def _answer(local: LocalLedger, request_id: str) -> tuple[list[float], bytes]:
    """Have the oracle decrypt and sign without delivering the callback."""
    return local.oracle.decrypt(request_id)


class _AnswerThenFail(DecryptionOracle):
    """Delivers the callback inside ``request_decryption`` and then raises."""

    def __init__(self, local: LocalLedger, error: Exception | None = None) -> None:
        self._local = local
        self._error = error

    def request_decryption(self, request_id, handles, callback):
        values = [self._local.capability.decrypt_handle(h) for h in handles]
        callback(request_id, values, self._local.signer.sign(request_id, values))
        if self._error is not None:
            raise self._error


# =============================================================================
# REQUEST
# =============================================================================


class TestRequestDecryption:
    def test_returns_pending_request(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)

        request = local.ledger.get_request(rid)
        assert request.state == RequestState.PENDING
        assert request.target == MeasurementTarget(mid)
        assert len(request.handles) == 3
        assert local.oracle.pending_jobs() == [rid]

    def test_handles_in_fixed_order(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)

        record = local.ledger.get(mid)
        expected = tuple(local.capability.to_handle(c) for c in record.ciphertexts())
        assert local.ledger.get_request(rid).handles == expected

    def test_unknown_measurement(self, local):
        with pytest.raises(NotFoundError):
            local.ledger.request_decryption(99)
        assert local.ledger.decryptions.pending() == []
        assert local.oracle.pending_jobs() == []

    def test_unknown_region(self, local):
        with pytest.raises(NotFoundError):
            local.ledger.request_decryption("nowhere")
        assert local.oracle.pending_jobs() == []

    def test_already_revealed_allocates_nothing(self, local, submit):
        mid = submit()
        local.ledger.request_decryption(mid)
        local.oracle.process()
        issued = len(local.ledger.decryptions._request_ids)

        with pytest.raises(AlreadyRevealedError):
            local.ledger.request_decryption(mid)
        assert len(local.ledger.decryptions._request_ids) == issued
        assert local.oracle.pending_jobs() == []

    def test_one_pending_request_per_target(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)

        with pytest.raises(RequestPendingError) as exc_info:
            local.ledger.request_decryption(mid)
        assert exc_info.value.existing_id == rid

    def test_emits_requested(self, local, submit, recorder):
        mid = submit()
        rid = local.ledger.request_decryption(mid)

        events = recorder.of_type(EventType.DECRYPTION_REQUESTED)
        assert events[-1].payload == {"request_id": rid, "target": {"kind": "measurement", "measurement_id": mid}}

    def test_oracle_failure_cancels_request(self, local, submit):
        mid = submit()
        manager = local.ledger.decryptions
        manager._oracle = MagicMock()
        manager._oracle.request_decryption.side_effect = ConnectionError("oracle down")

        with pytest.raises(ConnectionError):
            manager.request_measurement(mid)

        assert manager.pending() == []
        manager._oracle = local.oracle
        assert manager.request_measurement(mid)

    def test_dispatch_error_after_callback_keeps_fulfilled(self, local, submit):
        mid = submit(ph=8.05, carbonate=2100.0, temperature=12.5)
        manager = local.ledger.decryptions
        manager._oracle = _AnswerThenFail(local, RuntimeError("ack lost"))

        with pytest.raises(RuntimeError):
            manager.request_measurement(mid)

        (request,) = manager._requests.values()
        assert manager.get_request(request.request_id).state == RequestState.FULFILLED
        assert local.ledger.get_reveal(mid).plaintext_ph == 8.05
        with pytest.raises(AlreadyRevealedError):
            manager.request_measurement(mid)

    def test_requested_event_precedes_synchronous_fulfilment(self, local, submit, recorder):
        mid = submit()
        local.ledger.decryptions._oracle = _AnswerThenFail(local)

        rid = local.ledger.request_decryption(mid)

        assert [e.type for e in recorder.events if e.payload.get("request_id") == rid] == [
            EventType.DECRYPTION_REQUESTED,
            EventType.MEASUREMENT_DECRYPTED,
        ]

    def test_region_request_uses_one_snapshot(self, local, submit, monkeypatch):
        submit(ph=8.0, region="r")
        aggregator = local.ledger.aggregator
        original = aggregator.get_accumulator

        def snapshot_then_submit(region):
            snapshot = original(region)
            monkeypatch.setattr(aggregator, "get_accumulator", original)
            submit(ph=7.0, region="r")
            return snapshot

        monkeypatch.setattr(aggregator, "get_accumulator", snapshot_then_submit)
        rid = local.ledger.request_decryption("r")

        assert local.ledger.get_request(rid).target == RegionTarget("r", 1)
        local.oracle.process()
        assert local.ledger.get_region_reveal("r", 1).plaintext_sum == 8.0
        assert aggregator.get_accumulator("r").count == 2

    def test_bool_target_rejected(self, local):
        with pytest.raises(InvalidInputError):
            local.ledger.request_decryption(True)


# =============================================================================
# FULFIL
# =============================================================================


class TestFulfillMeasurement:
    def test_reveals_plaintexts(self, local, submit, recorder):
        mid = submit(ph=8.05, carbonate=2100.0, temperature=12.5)
        rid = local.ledger.request_decryption(mid)
        cleartexts, proof = _answer(local, rid)

        request = local.ledger.fulfill(rid, cleartexts, proof)

        assert request.state == RequestState.FULFILLED
        assert request.closed_at is not None
        slot = local.ledger.get_reveal(mid)
        assert slot.is_revealed is True
        assert (slot.plaintext_ph, slot.plaintext_carbonate, slot.plaintext_temperature) == (8.05, 2100.0, 12.5)
        assert recorder.of_type(EventType.MEASUREMENT_DECRYPTED)[-1].payload == {"request_id": rid, "id": mid}

    def test_second_fulfill_rejected_and_state_unchanged(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)
        cleartexts, proof = _answer(local, rid)
        local.ledger.fulfill(rid, cleartexts, proof)
        before = (local.ledger.get_reveal(mid), local.ledger.get_request(rid))

        with pytest.raises(AlreadyFulfilledError):
            local.ledger.fulfill(rid, cleartexts, proof)

        assert (local.ledger.get_reveal(mid), local.ledger.get_request(rid)) == before

    def test_unknown_request(self, local):
        with pytest.raises(UnknownRequestError):
            local.ledger.fulfill("f" * 64, [1.0], b"proof")

    def test_invalid_proof_keeps_pending(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)
        cleartexts, _ = _answer(local, rid)

        with pytest.raises(InvalidProofError):
            local.ledger.fulfill(rid, cleartexts, b"\x00" * 64)

        assert local.ledger.get_request(rid).state == RequestState.PENDING
        slot = local.ledger.get_reveal(mid)
        assert slot.is_revealed is False
        assert slot.plaintext_ph is None

    def test_retry_after_invalid_proof(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)
        cleartexts, proof = _answer(local, rid)

        with pytest.raises(InvalidProofError):
            local.ledger.fulfill(rid, [c + 1 for c in cleartexts], proof)
        local.ledger.fulfill(rid, cleartexts, proof)

        assert local.ledger.get_reveal(mid).is_revealed is True

    def test_proof_for_other_request_rejected(self, local, submit):
        first, second = submit(ph=8.0), submit(ph=7.0)
        rid_1 = local.ledger.request_decryption(first)
        rid_2 = local.ledger.request_decryption(second)
        cleartexts_1, proof_1 = _answer(local, rid_1)

        with pytest.raises(InvalidProofError):
            local.ledger.fulfill(rid_2, cleartexts_1, proof_1)
        assert local.ledger.get_reveal(second).is_revealed is False

    @pytest.mark.parametrize("cleartexts", [[8.05], [8.05, 1.0, 2.0, 3.0], "abc", [8.05, "x", 1.0], [float("nan"), 1.0, 1.0]])
    def test_malformed_cleartexts_keep_pending(self, local, submit, cleartexts):
        mid = submit()
        rid = local.ledger.request_decryption(mid)

        with pytest.raises(InvalidInputError):
            local.ledger.fulfill(rid, cleartexts, b"proof")
        assert local.ledger.get_request(rid).state == RequestState.PENDING

    def test_delivered_through_oracle(self, local, submit):
        mid = submit(ph=7.9)
        local.ledger.request_decryption(mid)

        assert local.oracle.process() == 1
        assert local.ledger.get_reveal(mid).plaintext_ph == 7.9


class TestFulfillRegion:
    def test_reveals_sum_at_count(self, local, submit, recorder):
        for ph in (8.0, 8.5):
            submit(ph=ph)
        rid = local.ledger.request_decryption("pacific-nw")
        assert local.ledger.get_request(rid).target == RegionTarget("pacific-nw", 2)

        local.oracle.process()

        reveal = local.ledger.get_region_reveal("pacific-nw")
        assert reveal.is_revealed is True
        assert reveal.count == 2
        assert reveal.plaintext_sum == 16.5
        assert reveal.mean == 8.25
        assert recorder.of_type(EventType.REGION_DECRYPTED)[-1].payload == {
            "request_id": rid,
            "region": "pacific-nw",
            "count": 2,
        }

    def test_revealed_snapshot_cannot_be_requested_again(self, local, submit):
        submit()
        local.ledger.request_decryption("pacific-nw")
        local.oracle.process()

        with pytest.raises(AlreadyRevealedError):
            local.ledger.request_decryption("pacific-nw")

    def test_new_measurements_open_a_new_snapshot(self, local, submit):
        submit(ph=8.0)
        local.ledger.request_decryption("pacific-nw")
        local.oracle.process()

        submit(ph=7.0)
        local.ledger.request_decryption("pacific-nw")
        local.oracle.process()

        reveals = local.ledger.decryptions.region_reveals("pacific-nw")
        assert [(r.count, r.plaintext_sum) for r in reveals] == [(1, 8.0), (2, 15.0)]

    def test_pending_snapshot_reflects_request_time(self, local, submit):
        submit(ph=8.0)
        rid = local.ledger.request_decryption("pacific-nw")
        submit(ph=7.0)

        local.oracle.process()

        assert local.ledger.get_region_reveal("pacific-nw", count=1).plaintext_sum == 8.0
        assert local.ledger.get_region_reveal("pacific-nw").is_revealed is False
        assert local.ledger.get_request(rid).state == RequestState.FULFILLED

    def test_region_names_are_not_confused(self, local, submit):
        submit(ph=8.0, region="pacific-nw")
        submit(ph=6.0, region="pacific-nw2")
        rid = local.ledger.request_decryption("pacific-nw2")
        local.oracle.process()

        assert local.ledger.get_request(rid).target.region == "pacific-nw2"
        assert local.ledger.get_region_reveal("pacific-nw2").plaintext_sum == 6.0
        assert local.ledger.get_region_reveal("pacific-nw").is_revealed is False

    def test_region_reveal_unknown_region(self, local):
        with pytest.raises(NotFoundError):
            local.ledger.get_region_reveal("nowhere")
        with pytest.raises(NotFoundError):
            local.ledger.get_region_reveal("nowhere", count=1)


# =============================================================================
# CANCELLATION
# =============================================================================


class TestCancel:
    def test_cancel_frees_target(self, local, submit, recorder):
        mid = submit()
        rid = local.ledger.request_decryption(mid)

        assert local.ledger.cancel(rid).state == RequestState.CANCELLED
        assert recorder.of_type(EventType.DECRYPTION_CANCELLED)[-1].payload["request_id"] == rid

        new_rid = local.ledger.request_decryption(mid)
        assert new_rid != rid

    def test_late_callback_after_cancel_rejected(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)
        cleartexts, proof = _answer(local, rid)
        local.ledger.cancel(rid)

        with pytest.raises(RequestClosedError):
            local.ledger.fulfill(rid, cleartexts, proof)
        assert local.ledger.get_reveal(mid).is_revealed is False

    def test_cannot_cancel_fulfilled(self, local, submit):
        mid = submit()
        rid = local.ledger.request_decryption(mid)
        local.oracle.process()

        with pytest.raises(AlreadyFulfilledError):
            local.ledger.cancel(rid)
        assert local.ledger.get_request(rid).state == RequestState.FULFILLED

    def test_cancel_twice(self, local, submit):
        rid = local.ledger.request_decryption(submit())
        local.ledger.cancel(rid)
        with pytest.raises(RequestClosedError):
            local.ledger.cancel(rid)

    def test_cancel_unknown(self, local):
        with pytest.raises(UnknownRequestError):
            local.ledger.cancel("missing")


class TestExpireStale:
    def test_disabled_by_default(self, local, submit):
        local.ledger.request_decryption(submit())
        assert local.ledger.expire_stale(datetime.now(UTC) + timedelta(days=365)) == []

    def test_expires_old_pending_only(self, local, submit):
        manager = local.ledger.decryptions
        old = manager.request_measurement(submit())
        done = manager.request_measurement(submit())
        local.oracle.process_one(done)

        later = datetime.now(UTC) + timedelta(seconds=120)
        assert manager.expire_stale(now=later, max_age_seconds=60) == [old]
        assert manager.get_request(old).state == RequestState.CANCELLED
        assert manager.get_request(done).state == RequestState.FULFILLED

    def test_fresh_requests_survive(self, local, submit):
        manager = local.ledger.decryptions
        rid = manager.request_measurement(submit())
        assert manager.expire_stale(max_age_seconds=3600) == []
        assert manager.get_request(rid).is_pending


class TestQueries:
    def test_get_unknown_request(self, local):
        with pytest.raises(NotFoundError):
            local.ledger.get_request("missing")

    def test_pending_lists_open_requests(self, local, submit):
        rid_1 = local.ledger.request_decryption(submit())
        rid_2 = local.ledger.request_decryption(submit())
        local.oracle.process_one(rid_1)

        assert [r.request_id for r in local.ledger.decryptions.pending()] == [rid_2]
