"""
Command line entry point.

A scheduler runs `marketsync reconcile --chain-id N` (or `reconcile-all`)
periodically; every command is a single one-shot run.
"""

import asyncio
import sys
from decimal import Decimal
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from marketsync.blockchain import (
    BitQueryClientFactory,
    Web3MarketplaceClientFactory,
    Web3SellerMarketplaceClientFactory,
)
from marketsync.core.config import settings
from marketsync.core.database import DatabaseManager, close_database, get_async_session, init_database
from marketsync.core.exceptions import MarketSyncError
from marketsync.core.logging import get_logger, setup_logging
from marketsync.repositories import SqlLedgerRepository
from marketsync.services.payout_balance import PayoutBalanceCalculator
from marketsync.services.reconciliation import BlockchainReconciler, ReconciliationReport

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Marketplace chain reconciliation commands")


def build_reconciler(repository: SqlLedgerRepository) -> BlockchainReconciler:
    return BlockchainReconciler(
        repository,
        BitQueryClientFactory(settings),
        Web3SellerMarketplaceClientFactory(settings),
        Web3MarketplaceClientFactory(settings),
    )


def print_report(report: ReconciliationReport) -> None:
    table = Table(title=f"Reconciliation of chain {report.chain_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Requested", str(report.transactions_requested))
    table.add_row("Confirmed", str(report.transactions_confirmed))
    table.add_row("Failed", str(report.transactions_failed))
    table.add_row("Still pending", str(report.transactions_still_pending))
    table.add_row("Skipped", str(report.transactions_skipped))
    table.add_row("Sales created", str(report.sales_created))
    table.add_row("Units failed", str(report.units_failed))
    table.add_row("Duration", f"{report.duration:.2f}s")

    console.print(table)


def print_error(chain_id: int, error: MarketSyncError) -> None:
    console.print(f"❌ Chain {chain_id}: [{error.kind.value}/{error.code}] {error.message}")
    for failure in error.details.get("failures", []):
        console.print(
            f"   {failure['aggregate_kind']} {failure['aggregate_id']} "
            f"{failure['transaction_hash']}: {failure['code']}"
        )


async def _reconcile(chain_ids) -> bool:
    session_maker = await init_database()
    try:
        reconciler = build_reconciler(SqlLedgerRepository(session_maker))
        succeeded = True
        for chain_id in chain_ids:
            try:
                report = await reconciler.reconcile_network(chain_id)
            except MarketSyncError as e:
                logger.error("Reconciliation failed", chain_id=chain_id, **e.to_dict())
                print_error(chain_id, e)
                succeeded = False
                continue
            print_report(report)
        return succeeded
    finally:
        await close_database()


@app.command()
def reconcile(chain_id: int = typer.Option(..., "--chain-id", help="EIP-155 chain id")):
    """Run one reconciliation pass over a network."""
    setup_logging()
    if not asyncio.run(_reconcile([chain_id])):
        sys.exit(1)


@app.command("reconcile-all")
def reconcile_all():
    """Run one reconciliation pass per configured chain id."""
    setup_logging()
    if not settings.reconcile_chain_ids:
        console.print("⚠️ No chain ids configured in RECONCILE_CHAIN_IDS")
        return
    if not asyncio.run(_reconcile(settings.reconcile_chain_ids)):
        sys.exit(1)


@app.command()
def balance(seller_id: str):
    """Show the withdrawable balance of a seller."""
    async def _balance():
        session_maker = await init_database()
        try:
            calculator = PayoutBalanceCalculator(SqlLedgerRepository(session_maker))
            return await calculator.available_balance(seller_id)
        finally:
            await close_database()

    setup_logging()
    balances = asyncio.run(_balance())

    table = Table(title=f"Balance of seller {seller_id}")
    table.add_column("Network", style="cyan")
    table.add_column("Marketplace", style="magenta")
    table.add_column("Token", style="magenta")
    table.add_column("Amount", style="green", justify="right")

    for row in balances:
        table.add_row(
            row.network_title,
            row.marketplace_smart_contract_address or "-",
            row.token_smart_contract_address or "native",
            row.amount_formatted,
        )

    console.print(table)


@app.command("init-db")
def init_db():
    """Create all tables."""
    async def _init():
        await init_database()
        try:
            await DatabaseManager.create_tables()
        finally:
            await close_database()

    setup_logging()
    asyncio.run(_init())
    console.print("✅ Database initialized successfully!")


@app.command()
def health():
    """Check database health."""
    async def _health() -> bool:
        await init_database()
        try:
            return await DatabaseManager.health_check()
        finally:
            await close_database()

    setup_logging()
    if asyncio.run(_health()):
        console.print("✅ Database is healthy!")
    else:
        console.print("❌ Database health check failed!")
        sys.exit(1)


@app.command()
def seed(
    marketplace_address: str = typer.Option(
        "0x86261aD1d50a509ce62AbC9A1034F0310B125801", help="Marketplace contract on BSC testnet"
    ),
    busd_address: Optional[str] = typer.Option(
        "0xed24fc36d5ee211ea25a80239fb8c4cfd80f12ee", help="BUSD token contract"
    ),
):
    """Seed the BSC testnet network, its marketplace and tokens."""
    from marketsync.models import Network, NetworkMarketplace, NetworkMarketplaceToken

    if settings.is_production:
        console.print("❌ Seeding is unavailable on production")
        sys.exit(1)

    async def _seed():
        await init_database()
        try:
            async with get_async_session() as session:
                network = Network(
                    title="Binance Smart Chain Testnet",
                    chain_id=97,
                    blockchain_explorer_url="https://testnet.bscscan.com",
                )
                session.add(network)
                await session.flush()

                marketplace = NetworkMarketplace(
                    network_id=network.id,
                    smart_contract_address=marketplace_address.lower(),
                    commission_rate=Decimal(3),
                )
                session.add(marketplace)
                await session.flush()

                session.add(NetworkMarketplaceToken(
                    network_marketplace_id=marketplace.id, symbol="tBNB", decimals=18
                ))
                if busd_address:
                    session.add(NetworkMarketplaceToken(
                        network_marketplace_id=marketplace.id,
                        symbol="BUSD",
                        decimals=18,
                        smart_contract_address=busd_address.lower(),
                    ))
        finally:
            await close_database()

    setup_logging()
    console.print("🌱 Seeding networks...")
    asyncio.run(_seed())
    console.print("✅ Database seeded successfully!")


if __name__ == "__main__":
    app()
