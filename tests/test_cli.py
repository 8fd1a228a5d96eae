"""Tests for the rtproof CLI."""
from __future__ import annotations

import base58
from click.testing import CliRunner

from runtime_proofs.cli import cli
from runtime_proofs.hashing import compute_runtime_proof_hash

TX = b"cli-transaction-bytes"
TX_B58 = base58.b58encode(TX).decode()


class TestHashCommand:

    def test_prints_fingerprint(self):
        result = CliRunner().invoke(
            cli, ["hash", "--tx-bytes", TX_B58, "--timestamp", "1700", "--runtime-id", "rt"]
        )

        assert result.exit_code == 0
        assert result.output.strip() == compute_runtime_proof_hash(TX, 1700, "rt")

    def test_rejects_invalid_base58(self):
        result = CliRunner().invoke(cli, ["hash", "--tx-bytes", "0OIl", "--timestamp", "1"])

        assert result.exit_code == 2


class TestVerifyCommand:

    def test_match(self):
        claimed = compute_runtime_proof_hash(TX, 1700, None)

        result = CliRunner().invoke(
            cli, ["verify", "--tx-bytes", TX_B58, "--timestamp", "1700", "--claimed", claimed]
        )

        assert result.exit_code == 0
        assert "matches" in result.output

    def test_mismatch_exit_code(self):
        result = CliRunner().invoke(
            cli, ["verify", "--tx-bytes", TX_B58, "--timestamp", "1700", "--claimed", "0" * 64]
        )

        assert result.exit_code == 1
        assert "mismatch" in result.output
