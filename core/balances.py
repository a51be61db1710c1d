import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from .chain import ChainClient
from .exceptions import MalformedResponseError
from .models import (
    FundedWallet,
    ProbeFailure,
    ProbeReport,
    WalletBalances,
    WalletRecord,
    format_units,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_NATIVE = 10 ** 11  # 0.0000001 of the native unit
DEFAULT_FILTER_DELAY = 0.2

Sleep = Callable[[float], Awaitable[None]]


def unique_tokens(token_addresses: Iterable[str]) -> List[str]:
    """Order-preserving de-dup (case-insensitive) so aggregator rows line up with tokens."""
    out: List[str] = []
    seen = set()
    for token in token_addresses or []:
        key = token.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(token)
    return out


def chunked(items: Sequence, size: int):
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield start, items[start:start + size]


@dataclass(frozen=True)
class BalanceThresholds:
    """
    Balances must be strictly greater than these minimums to count.
    Token minimums are ``min_token_units`` whole tokens scaled by decimals.
    """
    min_native: int = DEFAULT_MIN_NATIVE
    min_token_units: Decimal = Decimal(1)
    default_token_decimals: int = 18
    token_decimals: Dict[str, int] = field(default_factory=dict)

    def decimals_for(self, token: str) -> int:
        for key, value in self.token_decimals.items():
            if key.lower() == token.lower():
                return int(value)
        return self.default_token_decimals

    def token_minimum(self, token: str) -> int:
        return int(self.min_token_units * (Decimal(10) ** self.decimals_for(token)))

    def has_native(self, balance: int) -> bool:
        return balance > self.min_native

    def has_token(self, token: str, balance: int) -> bool:
        return balance > self.token_minimum(token)


class BalanceProbe:
    """
    Native + token balances for a batch of addresses.

    Primary path is one aggregator call for native balances and one for all
    tokens. If either raises or comes back in the wrong shape, every address
    is re-read on its own, serially. On that path a failed token read counts
    as zero and a failed native read drops the address; both are recorded in
    ``ProbeReport.failures``.
    """

    def __init__(self, client: ChainClient):
        self.client = client

    async def probe(self, addresses: Sequence[str], token_addresses: Iterable[str] = ()) -> ProbeReport:
        addresses = list(addresses)
        tokens = unique_tokens(token_addresses)
        if not addresses:
            return ProbeReport()
        try:
            return await self._probe_batched(addresses, tokens)
        except Exception as e:
            logger.warning("Batch balance check failed (%s), retrying %d wallet(s) individually", e, len(addresses))
        return await self._probe_individually(addresses, tokens)

    async def probe_token(self, addresses: Sequence[str], token_address: str) -> ProbeReport:
        """Single-token variant backed by the aggregator's getTokenBalances."""
        addresses = list(addresses)
        if not addresses:
            return ProbeReport()
        try:
            raw = await self.client.call_aggregator_token_balance(token_address, addresses)
            values = self._check_row(raw, len(addresses), f"token {token_address}")
            balances = {
                addr: WalletBalances(native=0, tokens={token_address: value})
                for addr, value in zip(addresses, values)
            }
            return ProbeReport(balances=balances)
        except Exception as e:
            logger.warning("Batch token check failed for %s (%s), retrying individually", token_address, e)

        report = ProbeReport(used_fallback=True)
        for addr in addresses:
            value = await self._token_balance_or_zero(token_address, addr, report)
            report.balances[addr] = WalletBalances(native=0, tokens={token_address: value})
        return report

    # ---------- primary path ----------
    async def _probe_batched(self, addresses: List[str], tokens: List[str]) -> ProbeReport:
        native_raw = await self.client.call_aggregator_native_balances(addresses)
        native = self._check_row(native_raw, len(addresses), "native balances")

        matrix: List[List[int]] = []
        if tokens:
            matrix_raw = await self.client.call_aggregator_token_balances(tokens, addresses)
            if not isinstance(matrix_raw, (list, tuple)) or len(matrix_raw) != len(tokens):
                raise MalformedResponseError(
                    f"token balances: expected {len(tokens)} rows, got {_describe(matrix_raw)}"
                )
            matrix = [self._check_row(row, len(addresses), f"token {tok}") for tok, row in zip(tokens, matrix_raw)]

        report = ProbeReport()
        for idx, addr in enumerate(addresses):
            report.balances[addr] = WalletBalances(
                native=native[idx],
                tokens={tok: matrix[t_idx][idx] for t_idx, tok in enumerate(tokens)},
            )
        return report

    @staticmethod
    def _check_row(row, expected: int, label: str) -> List[int]:
        if not isinstance(row, (list, tuple)) or len(row) != expected:
            raise MalformedResponseError(f"{label}: expected {expected} values, got {_describe(row)}")
        out = []
        for value in row:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise MalformedResponseError(f"{label}: invalid balance {value!r}")
            out.append(value)
        return out

    # ---------- fallback path ----------
    async def _probe_individually(self, addresses: List[str], tokens: List[str]) -> ProbeReport:
        report = ProbeReport(used_fallback=True)
        for addr in addresses:
            try:
                native = int(await self.client.get_native_balance(addr))
            except Exception as e:
                logger.error("%s: native balance read failed: %s", addr, e)
                report.failures.append(ProbeFailure(address=addr, token=None, reason=str(e)))
                continue
            token_values = {}
            for tok in tokens:
                token_values[tok] = await self._token_balance_or_zero(tok, addr, report)
            report.balances[addr] = WalletBalances(native=native, tokens=token_values)
        return report

    async def _token_balance_or_zero(self, token: str, addr: str, report: ProbeReport) -> int:
        try:
            return int(await self.client.call_token_balance_of(token, addr))
        except Exception as e:
            logger.error("%s: token %s balance read failed: %s", addr, token, e)
            report.failures.append(ProbeFailure(address=addr, token=token, reason=str(e)))
            return 0


def _describe(value) -> str:
    if isinstance(value, (list, tuple)):
        return f"{len(value)} item(s)"
    return type(value).__name__


class BalanceFilter:
    """
    Runs BalanceProbe over the wallet list in sequential chunks and keeps the
    wallets holding native or token balance above the thresholds.
    """

    def __init__(
        self,
        probe: BalanceProbe,
        thresholds: Optional[BalanceThresholds] = None,
        chunk_delay: float = DEFAULT_FILTER_DELAY,
        sleep: Sleep = asyncio.sleep,
    ):
        self.probe = probe
        self.thresholds = thresholds or BalanceThresholds()
        self.chunk_delay = chunk_delay
        self._sleep = sleep
        self.failures: List[ProbeFailure] = []

    async def filter(
        self,
        wallets: Sequence[WalletRecord],
        token_addresses: Iterable[str] = (),
        batch_size: int = 100,
    ) -> List[FundedWallet]:
        tokens = unique_tokens(token_addresses)
        funded: List[FundedWallet] = []
        self.failures = []

        logger.info("Checking balances for %d wallets via balance checker", len(wallets))
        if tokens:
            logger.info("Checking %d token(s): %s", len(tokens), ", ".join(tokens))

        async def check(batch: Sequence[WalletRecord]) -> List[FundedWallet]:
            report = await self.probe.probe([w.public_address for w in batch], tokens)
            return self._select(batch, report)

        await self._run_chunks(wallets, batch_size, check, funded)
        logger.info("Total wallets with balance: %d/%d", len(funded), len(wallets))
        return funded

    async def filter_token(
        self,
        wallets: Sequence[WalletRecord],
        token_address: str,
        batch_size: int = 100,
    ) -> List[FundedWallet]:
        funded: List[FundedWallet] = []
        self.failures = []
        logger.info("Checking %s balances for %d wallets", token_address, len(wallets))

        async def check(batch: Sequence[WalletRecord]) -> List[FundedWallet]:
            report = await self.probe.probe_token([w.public_address for w in batch], token_address)
            self.failures.extend(report.failures)
            kept = []
            for wallet in batch:
                balances = report.balances.get(wallet.public_address)
                if balances is None:
                    continue
                value = balances.tokens.get(token_address, 0)
                if self.thresholds.has_token(token_address, value):
                    kept.append(wallet.with_balances(0, {token_address: value}))
            return kept

        await self._run_chunks(wallets, batch_size, check, funded)
        logger.info("Total wallets with token balance: %d/%d", len(funded), len(wallets))
        return funded

    async def _run_chunks(self, wallets, batch_size, check, funded: List[FundedWallet]) -> None:
        total_batches = (len(wallets) + batch_size - 1) // batch_size if batch_size > 0 else 0
        for start, batch in chunked(wallets, batch_size):
            batch_num = start // batch_size + 1
            logger.info("Batch %d/%d: checking wallets %d to %d", batch_num, total_batches, start, start + len(batch) - 1)
            kept = await check(batch)
            if not kept:
                logger.info("No wallets with balance in this batch")
            funded.extend(kept)
            if start + batch_size < len(wallets):
                await self._sleep(self.chunk_delay)

    def _select(self, batch: Sequence[WalletRecord], report: ProbeReport) -> List[FundedWallet]:
        self.failures.extend(report.failures)
        kept: List[FundedWallet] = []
        for wallet in batch:
            balances = report.balances.get(wallet.public_address)
            if balances is None:
                # fallback could not read it at all; treated as empty
                continue
            held = {tok: v for tok, v in balances.tokens.items() if self.thresholds.has_token(tok, v)}
            if self.thresholds.has_native(balances.native) or held:
                funded = wallet.with_balances(balances.native, held)
                kept.append(funded)
                logger.info("%s: native %s", wallet.public_address, format_units(balances.native))
                for tok, value in held.items():
                    logger.info("  token %s: %s", tok, format_units(value, self.thresholds.decimals_for(tok)))
        return kept
