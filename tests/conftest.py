import asyncio
from collections import Counter

import pytest

from core.models import Receipt, WalletRecord

DEST = "0x" + "d" * 40


def addr(i: int) -> str:
    return "0x" + f"{i:040x}"


def key(i: int) -> str:
    return "0x" + f"{i + 1:064x}"


def make_wallets(n: int, offset: int = 1):
    return [WalletRecord(public_address=addr(i), private_key=key(i)) for i in range(offset, offset + n)]


class FakeChainClient:
    """In-memory ChainClient with switches for each failure mode."""

    def __init__(self, balances=None, token_balances=None, fee=(10 ** 10, 10 ** 9)):
        self.balances = dict(balances or {})
        self.token_balances = dict(token_balances or {})  # {(token, address): int}
        self.fee = fee
        self.fee_error = None
        self.aggregator_error = None
        self.token_aggregator_error = None
        self.native_row_override = None
        self.fail_native = set()
        self.fail_tokens = set()  # {(token, address)}
        self.fail_send = {}  # {address: exception}
        self.receipt_status = 1
        self.gas_used = 21000
        self.calls = Counter()
        self.sent = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _tick(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1

    async def get_native_balance(self, address):
        self.calls["get_native_balance"] += 1
        await self._tick()
        if address in self.fail_native:
            raise ConnectionError(f"rpc down for {address}")
        return self.balances.get(address, 0)

    async def get_fee_estimate(self):
        self.calls["get_fee_estimate"] += 1
        if self.fee_error is not None:
            raise self.fee_error
        return self.fee

    async def call_aggregator_native_balances(self, addresses):
        self.calls["call_aggregator_native_balances"] += 1
        if self.aggregator_error is not None:
            raise self.aggregator_error
        if self.native_row_override is not None:
            return self.native_row_override
        return [self.balances.get(a, 0) for a in addresses]

    async def call_aggregator_token_balances(self, token_addresses, addresses):
        self.calls["call_aggregator_token_balances"] += 1
        if self.token_aggregator_error is not None:
            raise self.token_aggregator_error
        return [[self.token_balances.get((t, a), 0) for a in addresses] for t in token_addresses]

    async def call_aggregator_token_balance(self, token_address, addresses):
        self.calls["call_aggregator_token_balance"] += 1
        if self.token_aggregator_error is not None:
            raise self.token_aggregator_error
        return [self.token_balances.get((token_address, a), 0) for a in addresses]

    async def call_token_balance_of(self, token_address, address):
        self.calls["call_token_balance_of"] += 1
        if (token_address, address) in self.fail_tokens:
            raise ValueError("execution reverted")
        return self.token_balances.get((token_address, address), 0)

    async def send_transfer(self, sender, to, amount, fee_quote, gas_limit):
        self.calls["send_transfer"] += 1
        await self._tick()
        if sender.public_address in self.fail_send:
            raise self.fail_send[sender.public_address]
        tx_hash = "0x" + f"{len(self.sent) + 1:064x}"
        self.sent.append((sender.public_address, to, amount, fee_quote, gas_limit, tx_hash))
        return tx_hash

    async def await_confirmation(self, tx_hash):
        self.calls["await_confirmation"] += 1
        return Receipt(status=self.receipt_status, gas_used=self.gas_used, tx_hash=tx_hash)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def client():
    return FakeChainClient()


@pytest.fixture
def sleep():
    return RecordingSleep()
