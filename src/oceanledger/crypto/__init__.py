"""Cryptographic boundaries: ciphertext capability, proofs, decryption oracle."""

from .capability import HANDLE_SIZE, Ciphertext, CiphertextCapability, KeyHolder
from .mock import MockCapability, MockCiphertext
from .oracle import DecryptionOracle, LocalDecryptionOracle
from .proofs import (
    Ed25519ProofVerifier,
    KeyPair,
    ProofSigner,
    ProofVerifier,
    canonical_json,
    generate_keypair,
    proof_message,
)

__all__ = [
    "HANDLE_SIZE",
    "Ciphertext",
    "CiphertextCapability",
    "KeyHolder",
    "MockCapability",
    "MockCiphertext",
    "DecryptionOracle",
    "LocalDecryptionOracle",
    "ProofVerifier",
    "Ed25519ProofVerifier",
    "ProofSigner",
    "KeyPair",
    "generate_keypair",
    "canonical_json",
    "proof_message",
]
