"""Decryption oracle boundary and an in-process reference oracle.

The ledger hands an oracle the ciphertext handles for a request together with
a callback, and returns to its caller immediately. The oracle decrypts off
the ledger's critical path and later invokes
``callback(request_id, cleartexts, proof)``.

LocalDecryptionOracle queues requests until ``process()`` is called, which
makes the out-of-band timing explicit in tests and demos.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ..core.exceptions import OceanLedgerException
from .capability import KeyHolder
from .proofs import ProofSigner

logger = logging.getLogger(__name__)

FulfillCallback = Callable[[str, list[float], bytes], object]


class DecryptionOracle(ABC):
    """External actor that decrypts handles and calls back with a proof."""

    @abstractmethod
    def request_decryption(
        self,
        request_id: str,
        handles: Sequence[bytes],
        callback: FulfillCallback,
    ) -> None:
        """Accept a decryption job. Must not block on decryption."""
        ...


@dataclass
class OracleJob:
    """A queued decryption job."""

    request_id: str
    handles: tuple[bytes, ...]
    callback: FulfillCallback


class LocalDecryptionOracle(DecryptionOracle):
    """Queue-backed oracle that decrypts with a local key holder.

    Args:
        key_holder: Secret-key side of the ciphertext backend.
        signer: Signs each result so the ledger can verify it.
    """

    def __init__(self, key_holder: KeyHolder, signer: ProofSigner) -> None:
        self._key_holder = key_holder
        self._signer = signer
        self._jobs: OrderedDict[str, OracleJob] = OrderedDict()
        self._lock = threading.Lock()

    def request_decryption(
        self,
        request_id: str,
        handles: Sequence[bytes],
        callback: FulfillCallback,
    ) -> None:
        with self._lock:
            self._jobs[request_id] = OracleJob(request_id, tuple(handles), callback)
        logger.debug(f"Oracle queued request {request_id[:12]} ({len(handles)} handles)")

    def pending_jobs(self) -> list[str]:
        """Request ids waiting to be processed, oldest first."""
        with self._lock:
            return list(self._jobs)

    def decrypt(self, request_id: str) -> tuple[list[float], bytes]:
        """Decrypt a queued job and sign it without delivering the callback."""
        with self._lock:
            job = self._jobs.get(request_id)
        if job is None:
            raise KeyError(request_id)
        cleartexts = [self._key_holder.decrypt_handle(h) for h in job.handles]
        return cleartexts, self._signer.sign(request_id, cleartexts)

    def process_one(self, request_id: str) -> bool:
        """Decrypt, sign and deliver one job.

        Returns:
            True if the ledger accepted the callback.
        """
        cleartexts, proof = self.decrypt(request_id)
        with self._lock:
            job = self._jobs.pop(request_id)
        try:
            job.callback(request_id, cleartexts, proof)
        except OceanLedgerException as e:
            logger.warning(f"Ledger rejected callback for {request_id[:12]}: {e.message}")
            return False
        return True

    def process(self) -> int:
        """Deliver every queued job.

        Returns:
            Number of callbacks the ledger accepted.
        """
        delivered = 0
        for request_id in self.pending_jobs():
            if self.process_one(request_id):
                delivered += 1
        return delivered
