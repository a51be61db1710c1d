import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

import questionary
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

import config
from core import RunResult, SweepError, WalletRecord, sweep
from core.models import format_units
from utils.helper import FileHelper, Web3Helper
from utils.wallet_parser import load_wallet_records

console = Console()


class WalletSweeper:
    """
    Sweep native funds from every wallet in the wallet file into the
    destination wallet (WALLET in .env), then print and save the results.
    """

    def __init__(self, settings: config.SweepConfig, console: Console = console):
        self.console = console
        self.settings = settings

        logging.basicConfig(level=logging.INFO, handlers=[RichHandler(console=self.console)])
        self.logger = logging.getLogger(__name__)

    def load_wallets(self, start: Optional[int] = None, end: Optional[int] = None) -> List[WalletRecord]:
        FileHelper.ensure_placeholder(self.settings.wallet_file, 'wallets')
        wallets = load_wallet_records(self.settings.wallet_file, start, end)
        self.console.log(f"[green]Loaded {len(wallets)} wallets[/green]")
        return wallets

    async def sweep_async(self, wallets: List[WalletRecord]) -> RunResult:
        client = Web3Helper(self.settings)
        try:
            return await sweep(wallets, client, self.settings)
        finally:
            await client.aclose()

    def print_summary(self, result: RunResult) -> None:
        self.console.rule("[bold cyan]SUMMARY")
        table = Table(show_header=True, header_style="bold")
        table.add_column("Outcome")
        table.add_column("Count", justify="right")
        table.add_row("[green]Successful transfers[/green]", str(len(result.successful)))
        table.add_row("[yellow]Skipped (no balance/gas)[/yellow]", str(len(result.skipped)))
        table.add_row("[red]Failed[/red]", str(len(result.failed)))
        self.console.print(table)

        if result.successful:
            self.console.print(f"Total transferred: {format_units(result.total_transferred):.6f}")
            self.console.print(f"Total gas cost: {format_units(result.total_gas_cost):.6f}")
        for failed in result.failed:
            self.console.log(f"[red]{failed.address}: {failed.reason}[/red]")

    def save_results(self, result: RunResult) -> str:
        out_file = os.path.join(config.RESULT_PATH, "sweep_results.json")
        return FileHelper.write_json(out_file, result.to_dict())

    def run(self, start: Optional[int] = None, end: Optional[int] = None, assume_yes: bool = False) -> Optional[RunResult]:
        self.console.rule("[bold cyan]Starting wallet sweep")
        self.console.log(f"Main wallet: {self.settings.destination_address}")
        self.console.log(f"RPC: {', '.join(self.settings.rpc_urls) or '(not set)'}")

        wallets = self.load_wallets(start, end)
        if not assume_yes:
            proceed = questionary.confirm(
                f"Sweep {len(wallets)} wallet(s) into {self.settings.destination_address}?", default=False
            ).ask()
            if not proceed:
                self.console.log("[yellow]Cancelled by user[/yellow]")
                return None

        try:
            result = asyncio.run(self.sweep_async(wallets))
        except SweepError as e:
            self.console.log(f"[bold red]{e}[/bold red]")
            return None

        self.print_summary(result)
        saved = self.save_results(result)
        self.console.log(f"[bold green]Detailed results saved to[/bold green] {saved}")
        return result


def _index_or_blank(text: str):
    text = (text or "").strip()
    return True if not text or text.isdecimal() else "Enter a wallet index (whole number) or leave blank"


def _ask_index(prompt: str) -> Optional[int]:
    raw = questionary.text(prompt, default="", validate=_index_or_blank).ask()
    if raw is None or not raw.strip():
        return None
    return int(raw.strip())


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sweep_wallets", description="Sweep funded wallets into the main wallet")
    parser.add_argument("start", nargs="?", type=int, help="First wallet index (inclusive)")
    parser.add_argument("end", nargs="?", type=int, help="Last wallet index (exclusive)")
    parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(sys.argv[1:] if argv is None else argv)
    start, end = args.start, args.end
    if start is None and end is None and sys.stdin.isatty():
        start = _ask_index("Start index (blank = first wallet):")
        end = _ask_index("End index (blank = last wallet):")

    app = WalletSweeper(config.load_sweep_config())
    app.run(start, end, assume_yes=args.yes)


if __name__ == "__main__":
    main()
