"""Decryption proofs: Ed25519 signatures over (request_id, cleartexts).

The decryption oracle signs the canonical JSON of

    {"cleartexts": [...], "request_id": "<hex>"}

and the ledger verifies that signature before it writes a single plaintext
value. Binding the request id into the signed message stops a valid proof
for one request from being replayed against another.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

logger = logging.getLogger(__name__)


def canonical_json(obj: Any) -> bytes:
    """Convert object to canonical JSON for signing.

    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoding
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def proof_message(request_id: str, cleartexts: Sequence[float]) -> bytes:
    """Bytes the oracle signs for a decryption result."""
    return canonical_json(
        {
            "request_id": request_id,
            "cleartexts": [float(v) for v in cleartexts],
        }
    )


class ProofVerifier(ABC):
    """Signature/attestation check consumed by the decryption manager."""

    @abstractmethod
    def check_proof(self, request_id: str, cleartexts: Sequence[float], proof: bytes) -> bool:
        """Return True only if ``proof`` attests ``cleartexts`` for ``request_id``."""
        ...


@dataclass
class KeyPair:
    """Ed25519 key pair for the decryption oracle."""

    private_key_bytes: bytes
    public_key_bytes: bytes

    @property
    def private_key_hex(self) -> str:
        return self.private_key_bytes.hex()

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()

    @classmethod
    def from_private_key_hex(cls, hex_string: str) -> KeyPair:
        """Create KeyPair from stored private key hex."""
        private_bytes = bytes.fromhex(hex_string)
        private_key = Ed25519PrivateKey.from_private_bytes(private_bytes)
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return cls(private_key_bytes=private_bytes, public_key_bytes=public_bytes)


def generate_keypair() -> KeyPair:
    """Generate a new Ed25519 key pair."""
    private_key = Ed25519PrivateKey.generate()
    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return KeyPair(private_key_bytes=private_bytes, public_key_bytes=public_bytes)


class ProofSigner:
    """Oracle-side signer producing proofs the ledger accepts."""

    def __init__(self, keypair: KeyPair) -> None:
        self._keypair = keypair
        self._private_key = Ed25519PrivateKey.from_private_bytes(keypair.private_key_bytes)

    @property
    def public_key_bytes(self) -> bytes:
        return self._keypair.public_key_bytes

    def sign(self, request_id: str, cleartexts: Sequence[float]) -> bytes:
        return self._private_key.sign(proof_message(request_id, cleartexts))


class Ed25519ProofVerifier(ProofVerifier):
    """Verifies oracle proofs against a pinned Ed25519 public key."""

    def __init__(self, public_key_bytes: bytes) -> None:
        self._public_key = Ed25519PublicKey.from_public_bytes(public_key_bytes)

    @classmethod
    def from_hex(cls, public_key_hex: str) -> Ed25519ProofVerifier:
        return cls(bytes.fromhex(public_key_hex))

    def check_proof(self, request_id: str, cleartexts: Sequence[float], proof: bytes) -> bool:
        try:
            message = proof_message(request_id, cleartexts)
        except (TypeError, ValueError):
            return False
        if not isinstance(proof, bytes | bytearray):
            return False
        try:
            self._public_key.verify(bytes(proof), message)
        except InvalidSignature:
            logger.debug(f"Signature mismatch for request {request_id[:12]}")
            return False
        return True
