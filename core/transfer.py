import logging
from typing import Optional

from .chain import ChainClient
from .fees import FeeEstimator
from .models import (
    FundedWallet,
    SkipReason,
    TransferFailed,
    TransferOutcome,
    TransferSkipped,
    TransferSuccess,
    format_units,
)

logger = logging.getLogger(__name__)

NATIVE_TRANSFER_GAS_LIMIT = 21000
DEFAULT_SAFETY_MARGIN = 10 ** 9  # 1 gwei worth of wei


class TransferExecutor:
    """
    Sweeps one wallet's native balance (minus gas and a safety margin) to the
    destination. ``execute`` always returns an outcome; it never raises.
    """

    def __init__(
        self,
        client: ChainClient,
        fee_estimator: FeeEstimator,
        destination: str,
        gas_limit: int = NATIVE_TRANSFER_GAS_LIMIT,
        safety_margin: int = DEFAULT_SAFETY_MARGIN,
    ):
        self.client = client
        self.fee_estimator = fee_estimator
        self.destination = destination
        self.gas_limit = int(gas_limit)
        self.safety_margin = int(safety_margin)

    def transfer_amount(self, balance: int, gas_cost: int) -> int:
        return balance - gas_cost - self.safety_margin

    async def execute(self, wallet: FundedWallet, label: str = "") -> TransferOutcome:
        address = wallet.public_address
        prefix = f"[{label}] " if label else ""
        tx_hash: Optional[str] = None
        try:
            logger.info("%sProcessing: %s", prefix, address)

            # fresh read; the filter's value may be stale by now
            balance = int(await self.client.get_native_balance(address))
            if balance == 0:
                logger.info("%sNo balance, skipping %s", prefix, address)
                return TransferSkipped(address=address, reason=SkipReason.NO_BALANCE)
            logger.info("%sBalance: %s", prefix, format_units(balance))

            quote = await self.fee_estimator.estimate()
            gas_cost = quote.gas_cost(self.gas_limit)
            amount = self.transfer_amount(balance, gas_cost)
            if amount <= 0:
                logger.info("%sInsufficient balance for gas, skipping %s", prefix, address)
                return TransferSkipped(address=address, reason=SkipReason.INSUFFICIENT_FOR_GAS)

            logger.info("%sTransferring: %s | gas price: %s gwei", prefix, format_units(amount), quote.display_gwei)
            tx_hash = await self.client.send_transfer(wallet, self.destination, amount, quote, self.gas_limit)
            logger.info("%sWaiting for confirmation... TX: %s", prefix, tx_hash)

            receipt = await self.client.await_confirmation(tx_hash)
            if not receipt.succeeded:
                logger.error("%sTransaction failed: %s", prefix, receipt.tx_hash or tx_hash)
                return TransferFailed(address=address, reason="Transaction failed", tx_hash=receipt.tx_hash or tx_hash)

            actual_gas_cost = quote.max_fee_per_gas * int(receipt.gas_used)
            logger.info(
                "%sSuccess! transferred %s, gas used %s",
                prefix, format_units(amount), format_units(actual_gas_cost),
            )
            return TransferSuccess(
                address=address,
                tx_hash=receipt.tx_hash or tx_hash,
                transferred_amount=amount,
                gas_cost=actual_gas_cost,
            )
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.error("%sError on %s: %s", prefix, address, reason)
            return TransferFailed(address=address, reason=reason, tx_hash=tx_hash)
