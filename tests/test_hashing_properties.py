"""Property-based tests for the runtime proof fingerprint."""
from __future__ import annotations

import pytest

hypothesis = pytest.importorskip("hypothesis")
st = hypothesis.strategies
given = hypothesis.given
settings = hypothesis.settings

from runtime_proofs.hashing import (  # noqa: E402
    compute_runtime_proof_hash,
    verify_runtime_proof_hash,
)

runtime_ids = st.one_of(
    st.none(),
    st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=64),
)
timestamps = st.integers(min_value=0, max_value=2**63 - 1)


@given(
    tx=st.binary(min_size=1, max_size=512),
    timestamp=timestamps,
    runtime_id=runtime_ids,
    data=st.data(),
)
@settings(max_examples=200, deadline=None)
def test_flipping_any_byte_changes_fingerprint(tx, timestamp, runtime_id, data) -> None:
    position = data.draw(st.integers(min_value=0, max_value=len(tx) - 1))
    mask = data.draw(st.integers(min_value=1, max_value=255))
    altered = bytearray(tx)
    altered[position] ^= mask

    assert compute_runtime_proof_hash(bytes(altered), timestamp, runtime_id) != compute_runtime_proof_hash(
        tx, timestamp, runtime_id
    )


@given(
    tx=st.binary(max_size=256),
    first=timestamps,
    second=timestamps,
    runtime_id=runtime_ids,
)
@settings(max_examples=150, deadline=None)
def test_distinct_timestamps_give_distinct_fingerprints(tx, first, second, runtime_id) -> None:
    hypothesis.assume(first != second)

    assert compute_runtime_proof_hash(tx, first, runtime_id) != compute_runtime_proof_hash(
        tx, second, runtime_id
    )


@given(
    tx=st.binary(max_size=256),
    timestamp=timestamps,
    first=st.text(alphabet=st.characters(blacklist_categories=("Cs",)), min_size=1, max_size=64),
    second=st.text(alphabet=st.characters(blacklist_categories=("Cs",)), min_size=1, max_size=64),
)
@settings(max_examples=150, deadline=None)
def test_distinct_runtime_ids_give_distinct_fingerprints(tx, timestamp, first, second) -> None:
    hypothesis.assume(first != second)

    assert compute_runtime_proof_hash(tx, timestamp, first) != compute_runtime_proof_hash(
        tx, timestamp, second
    )


@given(
    tx=st.binary(max_size=512),
    timestamp=timestamps,
    runtime_id=runtime_ids,
    data=st.data(),
)
@settings(max_examples=150, deadline=None)
def test_verification_accepts_exact_fingerprint_only(tx, timestamp, runtime_id, data) -> None:
    claimed = compute_runtime_proof_hash(tx, timestamp, runtime_id)
    assert len(claimed) == 64
    assert claimed == claimed.lower()
    assert verify_runtime_proof_hash(tx, timestamp, runtime_id, claimed) is True

    position = data.draw(st.integers(min_value=0, max_value=63))
    digit = data.draw(st.sampled_from("0123456789abcdef").filter(lambda d: d != claimed[position]))
    altered = claimed[:position] + digit + claimed[position + 1:]
    assert verify_runtime_proof_hash(tx, timestamp, runtime_id, altered) is False
