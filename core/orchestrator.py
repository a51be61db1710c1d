import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from web3 import Web3

from .balances import BalanceFilter, BalanceProbe, chunked
from .chain import ChainClient
from .exceptions import ConfigurationError, EmptyWalletSourceError
from .fees import FeeEstimator
from .models import FundedWallet, RunResult, TransferOutcome, WalletRecord, format_units
from .transfer import TransferExecutor

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class BatchOrchestrator:
    """
    Transfers run concurrently inside a chunk; chunks run one after another
    with ``inter_batch_delay`` between them (not after the last one).
    """

    def __init__(self, executor: TransferExecutor, sleep: Sleep = asyncio.sleep):
        self.executor = executor
        self._sleep = sleep

    async def run(
        self,
        funded: Sequence[FundedWallet],
        batch_size: int,
        inter_batch_delay: float = 0.0,
    ) -> RunResult:
        result = RunResult()
        total = len(funded)
        logger.info("Starting transfer for %d wallets", total)

        for start, batch in chunked(funded, batch_size):
            outcomes = await self._run_batch(batch, start, total)
            result.extend(outcomes)
            if start + batch_size < total:
                logger.info("Waiting %sms before next batch...", int(inter_batch_delay * 1000))
                await self._sleep(inter_batch_delay)

        logger.info(
            "Done: %d successful, %d skipped, %d failed",
            len(result.successful), len(result.skipped), len(result.failed),
        )
        return result

    async def _run_batch(self, batch: Sequence[FundedWallet], start: int, total: int) -> List[TransferOutcome]:
        tasks = [
            self.executor.execute(wallet, label=f"{start + i + 1}/{total}")
            for i, wallet in enumerate(batch)
        ]
        # gather keeps input order
        return list(await asyncio.gather(*tasks))


def check_destination(destination: Optional[str]) -> str:
    if not destination:
        raise ConfigurationError("Destination wallet address is not configured (set WALLET in .env)")
    if not Web3.is_address(destination):
        raise ConfigurationError(f"Destination wallet address is invalid: {destination}")
    return Web3.to_checksum_address(destination)


async def sweep(
    wallets: Sequence[WalletRecord],
    client: ChainClient,
    settings,
    sleep: Sleep = asyncio.sleep,
) -> RunResult:
    """
    Full run: discover funded wallets then sweep them. ``settings`` is a
    config.SweepConfig (or anything with the same attributes).

    Raises EmptyWalletSourceError / ConfigurationError before any transfer.
    """
    destination = check_destination(settings.destination_address)
    if not wallets:
        raise EmptyWalletSourceError("No wallets loaded")

    balance_filter = BalanceFilter(
        BalanceProbe(client),
        thresholds=settings.thresholds(),
        chunk_delay=settings.filter_delay,
        sleep=sleep,
    )
    funded = await balance_filter.filter(wallets, settings.token_addresses, settings.filter_batch_size)
    if not funded:
        logger.warning("No wallets with balance found")
        return RunResult()

    executor = TransferExecutor(
        client,
        FeeEstimator(client),
        destination,
        gas_limit=settings.gas_limit,
        safety_margin=settings.safety_margin,
    )
    result = await BatchOrchestrator(executor, sleep=sleep).run(
        funded, settings.transfer_batch_size, settings.inter_batch_delay
    )
    if result.successful:
        logger.info(
            "Total transferred: %s | total gas cost: %s",
            format_units(result.total_transferred), format_units(result.total_gas_cost),
        )
    return result
