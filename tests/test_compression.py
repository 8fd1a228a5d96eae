"""Tests for compressed-token helpers and instruction builders."""
from __future__ import annotations

import struct

import pytest
from solders.keypair import Keypair

from runtime_proofs.solana import programs
from runtime_proofs.solana.compression import (
    COMPRESSED_TOKEN_PROGRAM_ID,
    CREATE_TOKEN_POOL_DISCRIMINATOR,
    LOOKUP_TABLE_META_SIZE,
    TRANSFER_DISCRIMINATOR,
    TokenPoolInfo,
    TreeInfo,
    compress,
    create_token_pool,
    derive_token_pool_pda,
    parse_lookup_table_addresses,
    parse_token_account_amount,
    parse_tree_entry,
    select_token_pool,
    tree_infos_from_lookup_tables,
)


def _pool(mint, index, initialized=True) -> TokenPoolInfo:
    return TokenPoolInfo(
        mint=mint,
        token_pool_pda=derive_token_pool_pda(mint, index),
        token_program=programs.TOKEN_2022_PROGRAM_ID,
        pool_index=index,
        is_initialized=initialized,
    )


class TestParsing:

    def test_lookup_table_addresses(self):
        keys = [Keypair().pubkey() for _ in range(3)]
        data = bytes(LOOKUP_TABLE_META_SIZE) + b"".join(bytes(k) for k in keys)

        assert parse_lookup_table_addresses(data) == keys

    def test_lookup_table_ignores_partial_entry(self):
        key = Keypair().pubkey()
        data = bytes(LOOKUP_TABLE_META_SIZE) + bytes(key) + b"\x01\x02"

        assert parse_lookup_table_addresses(data) == [key]

    def test_token_account_amount(self):
        data = bytes(64) + struct.pack("<Q", 123456) + bytes(93)

        assert parse_token_account_amount(data) == 123456

    def test_short_token_account(self):
        assert parse_token_account_amount(b"\x00" * 10) == 0

    def test_tree_triples_skip_nullified(self):
        keys = [Keypair().pubkey() for _ in range(7)]

        trees = tree_infos_from_lookup_tables(keys, nullify_table=[keys[3]])

        assert trees == [TreeInfo(tree=keys[0], queue=keys[1], cpi_context=keys[2])]

    def test_tree_entry(self):
        tree, queue, cpi = (Keypair().pubkey() for _ in range(3))

        info = parse_tree_entry(f" {tree} : {queue} : {cpi} ")

        assert info == TreeInfo(tree=tree, queue=queue, cpi_context=cpi)
        assert parse_tree_entry(f"{tree}:{queue}").cpi_context is None

    @pytest.mark.parametrize("entry", ["", "justone", "a:b:c:d", "::"])
    def test_invalid_tree_entry(self, entry):
        with pytest.raises(ValueError):
            parse_tree_entry(entry)


class TestPools:

    def test_pool_pdas_distinct_per_index(self):
        mint = Keypair().pubkey()

        assert len({derive_token_pool_pda(mint, i) for i in range(5)}) == 5

    def test_select_first_initialized(self):
        mint = Keypair().pubkey()
        pools = [_pool(mint, 3), _pool(mint, 0, initialized=False), _pool(mint, 1)]

        assert select_token_pool(pools).pool_index == 1

    def test_select_none(self):
        mint = Keypair().pubkey()

        assert select_token_pool([_pool(mint, 0, initialized=False)]) is None
        assert select_token_pool([]) is None


class TestInstructions:

    def test_create_token_pool_accounts(self):
        payer, mint = Keypair().pubkey(), Keypair().pubkey()

        ix = create_token_pool(payer, mint)

        assert ix.program_id == COMPRESSED_TOKEN_PROGRAM_ID
        assert bytes(ix.data) == CREATE_TOKEN_POOL_DISCRIMINATOR
        assert ix.accounts[0].pubkey == payer
        assert ix.accounts[0].is_signer
        assert ix.accounts[1].pubkey == derive_token_pool_pda(mint)
        assert ix.accounts[3].pubkey == mint

    def test_compress_encodes_amount(self):
        payer, mint, source = (Keypair().pubkey() for _ in range(3))
        tree = TreeInfo(tree=Keypair().pubkey(), queue=Keypair().pubkey())
        pool = _pool(mint, 0)

        ix = compress(
            payer=payer,
            owner=payer,
            source=source,
            to_address=payer,
            mint=mint,
            amount=9,
            tree=tree,
            pool=pool,
        )

        data = bytes(ix.data)
        assert data.startswith(TRANSFER_DISCRIMINATOR)
        assert bytes(mint) in data
        assert data.count(struct.pack("<Q", 9)) == 2
        pubkeys = [meta.pubkey for meta in ix.accounts]
        assert pool.token_pool_pda in pubkeys
        assert source in pubkeys
        assert pubkeys[-1] == tree.tree


class TestTokenPrograms:

    def test_ata_derivation_stable(self):
        owner, mint = Keypair().pubkey(), Keypair().pubkey()

        assert programs.get_associated_token_address(owner, mint) == programs.get_associated_token_address(
            owner, mint
        )

    def test_mint_to_layout(self):
        mint, dest, authority = (Keypair().pubkey() for _ in range(3))

        ix = programs.mint_to(mint, dest, authority, 5)

        assert bytes(ix.data) == struct.pack("<BQ", programs.MINT_TO, 5)
        assert ix.accounts[2].is_signer

    def test_metadata_tlv_len(self):
        metadata = programs.ProofTokenMetadata(
            mint=Keypair().pubkey(),
            update_authority=Keypair().pubkey(),
            name="RuntimeProof",
            symbol="RTPRF",
            uri="https://example.test/p",
            additional_metadata=[("chain", "solana")],
        )

        # authorities(64) + 3 strings + vec len + one pair, plus TLV header
        expected = 64 + (4 + 12) + (4 + 5) + (4 + 22) + 4 + (4 + 5) + (4 + 6) + 4
        assert metadata.tlv_len == expected

    def test_update_field_uses_key_variant(self):
        ix = programs.update_token_metadata_field(Keypair().pubkey(), Keypair().pubkey(), "userId", "abc")

        data = bytes(ix.data)
        assert data[:8] == programs.METADATA_UPDATE_FIELD_DISCRIMINATOR
        assert data[8] == programs.FIELD_KEY
