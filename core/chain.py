from typing import List, Protocol, Sequence, Tuple

from .models import FeeQuote, Receipt, WalletRecord


class ChainClient(Protocol):
    """
    Async capability the sweep pipeline needs from the chain.

    Implementations raise on any RPC failure; the pipeline decides which
    failures are recoverable. utils.helper.Web3Helper is the web3 backed one.
    """

    async def get_native_balance(self, address: str) -> int: ...

    async def get_fee_estimate(self) -> Tuple[int, int]:
        """Return (max_fee_per_gas, max_priority_fee_per_gas) in wei."""
        ...

    async def call_aggregator_native_balances(self, addresses: Sequence[str]) -> List[int]: ...

    async def call_aggregator_token_balances(
        self, token_addresses: Sequence[str], addresses: Sequence[str]
    ) -> List[List[int]]:
        """Balances indexed [token][address]."""
        ...

    async def call_aggregator_token_balance(self, token_address: str, addresses: Sequence[str]) -> List[int]: ...

    async def call_token_balance_of(self, token_address: str, address: str) -> int: ...

    async def send_transfer(
        self, sender: WalletRecord, to: str, amount: int, fee_quote: FeeQuote, gas_limit: int
    ) -> str:
        """Sign and submit a native transfer, returning the tx hash."""
        ...

    async def await_confirmation(self, tx_hash: str) -> Receipt: ...
