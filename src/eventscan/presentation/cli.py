import asyncio, json, logging
from dataclasses import replace
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..application.use_cases import EventCollector
from ..config import CollectorConfig
from ..domain.models import EventFilter, QueryResult

app = typer.Typer(help="eventscan: adaptive-batch blockchain event collector.", no_args_is_help=True)
console = Console()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(rpc_url: Optional[str], chain_id: Optional[int]) -> CollectorConfig:
    load_dotenv()
    cfg = CollectorConfig.from_env()
    if rpc_url:
        cfg = replace(cfg, rpc_url=rpc_url)
    if chain_id is not None:
        cfg = replace(cfg, chain_id=chain_id)
    return cfg


def _events_table(res: QueryResult) -> Table:
    table = Table(title=f"blocks {res.from_block:,}-{res.to_block:,}", expand=True)
    for col in ("block", "log", "event", "user", "details", "tx"):
        table.add_column(col)
    for ev in res.events:
        d = ev.to_dict()
        details = ", ".join(
            f"{k}={v}" for k, v in d.items()
            if k not in ("eventType", "transactionHash", "blockNumber", "blockHash", "logIndex",
                         "contractAddress", "timestamp", "chainId", "user")
        )
        table.add_row(str(ev.block_number), str(ev.log_index), ev.event_type,
                      d.get("user") or "-", details, ev.transaction_hash[:12] + "…")
    return table


@app.command()
def health(
    rpc_url: Optional[str] = typer.Option(None, "--rpc-url", help="RPC endpoint URL (default: EVENTSCAN_RPC_URL)"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
    log_level: str = typer.Option("WARNING", "--log-level"),
):
    """Check that the RPC provider answers before running a scan."""
    configure_logging(log_level)
    cfg = _load_config(rpc_url, None)

    async def main():
        async with EventCollector.from_config(cfg) as collector:
            return await collector.check_health()

    res = asyncio.run(main())
    if as_json:
        typer.echo(json.dumps(res.to_dict()))
    elif res.connected:
        console.print(f"[green]connected[/] • {res.network_name} (chain {res.chain_id}) • "
                      f"block {res.block_number:,} • {res.response_time_ms:.0f}ms")
    else:
        console.print(f"[red]unreachable[/] • {res.error} • {res.response_time_ms:.0f}ms")
    if not res.connected:
        raise typer.Exit(code=1)


@app.command()
def query(
    contract: str = typer.Argument(..., help="Contract address to scan"),
    event: list[str] = typer.Option([], "--event", help="Event name to keep; repeat to OR"),
    user: Optional[str] = typer.Option(None, "--user", help="Only events for this user address"),
    from_block: Optional[int] = typer.Option(None, "--from-block"),
    to_block: Optional[int] = typer.Option(None, "--to-block"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Keep the N most recent events"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Initial blocks per request"),
    rpc_url: Optional[str] = typer.Option(None, "--rpc-url", help="RPC endpoint URL (default: EVENTSCAN_RPC_URL)"),
    chain_id: Optional[int] = typer.Option(None, "--chain-id"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Give up scanning after this many seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
    log_level: str = typer.Option("INFO", "--log-level"),
):
    """Collect decoded events for a contract over a block range."""
    configure_logging(log_level)
    cfg = _load_config(rpc_url, chain_id)
    if timeout is not None:
        cfg = replace(cfg, scan_timeout_s=timeout)
    flt = EventFilter(
        contract_address=contract,
        event_types=tuple(event) or None,
        user_address=user,
        from_block=from_block,
        to_block=to_block,
        limit=limit,
        max_block_range=batch_size,
    )

    async def main():
        async with EventCollector.from_config(cfg) as collector:
            return await collector.query_events(flt)

    res = asyncio.run(main())
    if as_json:
        typer.echo(json.dumps(res.to_dict()))
    else:
        console.print(_events_table(res))
        summary = f"[bold]done[/]: {res.total_logs} events • {res.query_time_ms / 1000:.2f}s"
        if res.skipped_ranges:
            gaps = ", ".join(f"{s}-{e}" for s, e in res.skipped_ranges)
            summary += f" • [yellow]skipped[/]={gaps}"
        console.print(summary)
        if res.error:
            console.print(f"[red]error[/]: {res.error}")
    if res.error:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
