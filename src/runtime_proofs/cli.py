"""
rtproof CLI entry point.

Usage:
    rtproof [OPTIONS] COMMAND [ARGS]...
"""
from __future__ import annotations

import click
import httpx
from rich.console import Console
from rich.table import Table

from .exceptions import ProofStepError
from .hashing import compute_runtime_proof_hash, decode_tx_bytes, verify_runtime_proof_hash

console = Console()

DEFAULT_API_URL = "http://127.0.0.1:8000"


@click.group()
@click.version_option(package_name="runtime-proofs", message="%(prog)s %(version)s")
def cli():
    """Runtime proof anchoring tools."""


def _tx_bytes(tx_bytes_base58: str) -> bytes:
    try:
        return decode_tx_bytes(tx_bytes_base58)
    except ProofStepError as e:
        raise click.BadParameter(e.message, param_hint="--tx-bytes") from e


@cli.command("hash")
@click.option("--tx-bytes", "tx_bytes_base58", required=True, help="Transaction bytes, base58")
@click.option("--timestamp", type=int, required=True, help="Claimed timestamp (epoch millis)")
@click.option("--runtime-id", default=None, help="Runtime identifier")
def hash_cmd(tx_bytes_base58: str, timestamp: int, runtime_id: str | None):
    """Print the runtime proof fingerprint."""
    click.echo(compute_runtime_proof_hash(_tx_bytes(tx_bytes_base58), timestamp, runtime_id))


@cli.command()
@click.option("--tx-bytes", "tx_bytes_base58", required=True, help="Transaction bytes, base58")
@click.option("--timestamp", type=int, required=True, help="Claimed timestamp (epoch millis)")
@click.option("--runtime-id", default=None, help="Runtime identifier")
@click.option("--claimed", required=True, help="Claimed fingerprint (hex)")
def verify(tx_bytes_base58: str, timestamp: int, runtime_id: str | None, claimed: str):
    """Check a claimed fingerprint against the transaction bytes."""
    if verify_runtime_proof_hash(_tx_bytes(tx_bytes_base58), timestamp, runtime_id, claimed):
        console.print("[green]✓ Fingerprint matches[/green]")
        return
    console.print("[red]✗ Fingerprint mismatch[/red]")
    raise SystemExit(1)


@cli.command()
@click.argument("wallet")
@click.option("--api-url", envvar="RTPROOF_API_URL", default=DEFAULT_API_URL, help="API base URL")
def proofs(wallet: str, api_url: str):
    """List anchored proofs for a wallet."""
    try:
        response = httpx.post(f"{api_url.rstrip('/')}/proofs/retrieve", json={"wallet": wallet}, timeout=30.0)
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    if not data.get("ok"):
        console.print(f"[red]Error: {data.get('error', response.status_code)}[/red]")
        raise SystemExit(1)

    rows = data.get("proofs", [])
    if not rows:
        console.print("[dim]No proofs found[/dim]")
        return

    table = Table(title=f"Proofs for {wallet}")
    table.add_column("Tx Signature", style="cyan")
    table.add_column("Mint", style="green")
    table.add_column("Compressed Tx")
    table.add_column("Runtime")
    table.add_column("Created")

    for proof in rows:
        table.add_row(
            proof.get("txSignature", ""),
            proof.get("mint", ""),
            proof.get("compressedTxId", ""),
            proof.get("runtimeId") or "-",
            (proof.get("createdAt") or "")[:19],
        )

    console.print(table)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host: str, port: int):
    """Run the proof API server."""
    import uvicorn

    uvicorn.run("runtime_proofs.api.main:create_app", host=host, port=port, factory=True)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
