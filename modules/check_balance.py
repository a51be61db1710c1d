import asyncio
import csv
import logging
import os
import sys
from typing import Dict, List, Optional

import questionary as q
from rich.console import Console
from rich.logging import RichHandler
from web3 import Web3

import config
from core import BalanceFilter, BalanceProbe, FundedWallet, WalletRecord
from core.models import format_units
from utils.helper import FileHelper, Web3Helper
from utils.wallet_parser import load_wallet_records

console = Console()


class BalanceChecker:
    """
    Report which wallets hold native or token balance, without moving funds.
    - Wallets come from settings.wallet_file (any supported wallet file format)
    - Tokens come from TOKEN_ADDRESSES, resources/tokens.txt or manual input
    - Exports results to CSV in result/check_balance_result.csv
    """
    def __init__(self, settings: config.SweepConfig, console: Console = console):
        self.console = console
        self.settings = settings
        self.tokens_file = os.path.join(config.BASE_PATH, "tokens.txt")

        logging.basicConfig(level=logging.INFO, handlers=[RichHandler(console=self.console)])
        self.logger = logging.getLogger(__name__)

        self.tokens: List[str] = list(settings.token_addresses)

    # ---------- Loaders ----------
    def select_token_input_method(self) -> List[str]:
        choice = q.select(
            "Choose token contract input method:",
            choices=["Configured tokens (.env)", "Default path (file)", "Manual input (CLI)", "Native only"],
        ).ask()
        if choice == "Default path (file)":
            FileHelper.ensure_placeholder(self.tokens_file, 'tokens')
            tokens = FileHelper.load_lines(self.tokens_file)
        elif choice == "Manual input (CLI)":
            raw = q.text("Token addresses (comma separated):").ask() or ""
            tokens = [t.strip() for t in raw.split(",") if t.strip()]
        elif choice == "Native only":
            tokens = []
        else:
            tokens = list(self.settings.token_addresses)

        valid = []
        for t in tokens:
            if Web3.is_address(t):
                valid.append(t)
            else:
                self.console.log(f"[yellow]tokens: ignoring invalid address: {t}[/yellow]")
        self.tokens = valid
        return valid

    # ---------- Balance discovery ----------
    async def collect_balances(self, wallets: List[WalletRecord], token: Optional[str] = None) -> List[FundedWallet]:
        client = Web3Helper(self.settings)
        balance_filter = BalanceFilter(
            BalanceProbe(client),
            thresholds=self.settings.thresholds(),
            chunk_delay=self.settings.filter_delay,
        )
        try:
            if token:
                funded = await balance_filter.filter_token(wallets, token, self.settings.filter_batch_size)
            else:
                funded = await balance_filter.filter(wallets, self.tokens, self.settings.filter_batch_size)
        finally:
            await client.aclose()

        for failure in balance_filter.failures:
            target = failure.token or "native"
            self.console.log(f"[yellow]{failure.address} ({target}): {failure.reason}[/yellow]")
        return funded

    def build_rows(self, wallets: List[WalletRecord], funded: List[FundedWallet]) -> List[Dict[str, str]]:
        thresholds = self.settings.thresholds()
        positions = {w.public_address.lower(): idx for idx, w in enumerate(wallets, start=1)}
        rows = []
        for f in funded:
            base = {
                "wallet_number": positions.get(f.public_address.lower(), ""),
                "wallet": f.public_address,
                "native_raw": str(f.native_balance),
                "native": f"{format_units(f.native_balance):.8f}",
            }
            if not f.token_balances:
                rows.append({**base, "token": "", "token_raw": "", "token_formatted": ""})
            for token, raw in f.token_balances.items():
                pretty = format_units(raw, thresholds.decimals_for(token))
                rows.append({**base, "token": token, "token_raw": str(raw), "token_formatted": f"{pretty:.5f}"})
        return rows

    def export_csv(self, rows, out_path: str) -> str:
        headers = ["wallet_number", "wallet", "native_raw", "native", "token", "token_raw", "token_formatted"]
        os.makedirs(os.path.dirname(out_path), exist_ok=True)
        with open(out_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=headers)
            writer.writeheader()
            for r in rows:
                writer.writerow({k: r.get(k, "") for k in headers})
        return out_path

    def run(self, start: Optional[int] = None, end: Optional[int] = None):
        FileHelper.ensure_placeholder(self.settings.wallet_file, 'wallets')
        wallets = load_wallet_records(self.settings.wallet_file, start, end)
        if not wallets:
            self.console.log("[bold red]No wallets loaded. Exiting.[/bold red]")
            return

        mode = q.select("What to check?", choices=["Native + tokens", "Single token"]).ask()
        token = None
        if mode == "Single token":
            token = (q.text("Token contract address:").ask() or "").strip()
            if not Web3.is_address(token):
                self.console.log(f"[bold red]Invalid token address: {token}[/bold red]")
                return
        else:
            self.select_token_input_method()

        self.console.rule("[bold cyan]Fetching balances")
        funded = asyncio.run(self.collect_balances(wallets, token))

        self.console.rule("[bold cyan]Wallet Balance")
        rows = self.build_rows(wallets, funded)
        for r in rows:
            label = r["token"][:10] + "..." if r["token"] else "NATIVE"
            amount = r["token_formatted"] or r["native"]
            self.console.log(f"#{r['wallet_number']} {r['wallet']} | {label} | {amount}")
        self.console.log(f"[bold]Wallets with balance:[/bold] {len(funded)}/{len(wallets)}")

        out_path = os.path.abspath(os.path.join(config.RESULT_PATH, "check_balance_result.csv"))
        saved = self.export_csv(rows, out_path)
        self.console.log(f"[bold green]Exported CSV:[/bold green] {saved}")


def main():
    args = [a for a in sys.argv[1:] if a.lstrip("-").isdigit()]
    start = int(args[0]) if len(args) > 0 else None
    end = int(args[1]) if len(args) > 1 else None

    app = BalanceChecker(config.load_sweep_config())
    app.run(start, end)


if __name__ == "__main__":
    main()
