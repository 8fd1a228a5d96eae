"""Tests for the runtime proof fingerprint."""
from __future__ import annotations

import hashlib

import base58
import pytest

from runtime_proofs.exceptions import ProofStepError
from runtime_proofs.hashing import (
    compute_runtime_proof_hash,
    decode_tx_bytes,
    fingerprint_suffix,
    verify_runtime_proof_hash,
)
from runtime_proofs.models import ErrorCode

TX = b"\x01\x02\x03signed-transaction"


class TestComputeRuntimeProofHash:

    def test_matches_documented_construction(self):
        expected = hashlib.sha256(TX + b"|ts:1700000000000|rid:rt-1").hexdigest()
        assert compute_runtime_proof_hash(TX, 1700000000000, "rt-1") == expected

    def test_missing_runtime_id_hashes_as_empty(self):
        expected = hashlib.sha256(TX + b"|ts:5|rid:").hexdigest()
        assert compute_runtime_proof_hash(TX, 5, None) == expected
        assert compute_runtime_proof_hash(TX, 5, "") == expected

    def test_deterministic(self):
        assert compute_runtime_proof_hash(TX, 42, "a") == compute_runtime_proof_hash(TX, 42, "a")

    def test_lowercase_hex(self):
        digest = compute_runtime_proof_hash(TX, 42)
        assert len(digest) == 64
        assert digest == digest.lower()

    def test_suffix_format(self):
        assert fingerprint_suffix(7, "x") == b"|ts:7|rid:x"


class TestVerifyRuntimeProofHash:

    def test_accepts_matching_claim(self):
        claimed = compute_runtime_proof_hash(TX, 42, "a")
        assert verify_runtime_proof_hash(TX, 42, "a", claimed) is True

    def test_rejects_single_digit_change(self):
        claimed = compute_runtime_proof_hash(TX, 42, "a")
        altered = ("0" if claimed[0] != "0" else "1") + claimed[1:]
        assert verify_runtime_proof_hash(TX, 42, "a", altered) is False

    def test_rejects_uppercase_claim(self):
        claimed = compute_runtime_proof_hash(TX, 42, "a").upper()
        assert verify_runtime_proof_hash(TX, 42, "a", claimed) is False


class TestDecodeTxBytes:

    def test_round_trips_base58(self):
        assert decode_tx_bytes(base58.b58encode(TX).decode()) == TX

    def test_invalid_alphabet(self):
        with pytest.raises(ProofStepError) as exc_info:
            decode_tx_bytes("0OIl-not-base58")
        assert exc_info.value.code == ErrorCode.INVALID_TX_BYTES_BASE58
