import asyncio

import pytest
from conftest import DEST, FakeChainClient, make_wallets

import config
from core.exceptions import ConfigurationError, EmptyWalletSourceError
from core.fees import FeeEstimator
from core.models import SkipReason, TransferFailed, TransferSkipped, TransferSuccess
from core.orchestrator import BatchOrchestrator, sweep
from core.transfer import TransferExecutor

ETH = 10 ** 18


def _run(client, funded, batch_size, sleep, delay=0.1):
    executor = TransferExecutor(client, FeeEstimator(client), DEST)
    return asyncio.run(BatchOrchestrator(executor, sleep=sleep).run(funded, batch_size, delay))


def _mixed_population():
    wallets = make_wallets(5)
    a = [w.public_address for w in wallets]
    client = FakeChainClient(balances={a[0]: ETH, a[2]: 1, a[3]: ETH, a[4]: ETH})
    client.fail_send[a[3]] = ValueError("insufficient funds")
    funded = [w.with_balances(ETH) for w in wallets]
    return client, funded


@pytest.mark.parametrize("batch_size", [1, 5, 6])
def test_every_wallet_gets_exactly_one_outcome(batch_size, sleep):
    client, funded = _mixed_population()
    result = _run(client, funded, batch_size, sleep)

    assert len(result.successful) + len(result.skipped) + len(result.failed) == len(funded)
    assert result.total == len(funded)
    assert [o.address for o in result.successful] == [funded[0].public_address, funded[4].public_address]
    assert [o.address for o in result.skipped] == [funded[1].public_address, funded[2].public_address]
    assert [o.address for o in result.failed] == [funded[3].public_address]


def test_three_wallets_in_batches_of_two_sleep_once(sleep):
    wallets = make_wallets(3)
    client = FakeChainClient(balances={w.public_address: ETH for w in wallets})
    funded = [w.with_balances(ETH) for w in wallets]

    result = _run(client, funded, 2, sleep, delay=0.25)

    assert len(result.successful) == 3
    assert sleep.delays == [0.25]


def test_transfers_in_a_chunk_run_concurrently(sleep):
    wallets = make_wallets(4)
    client = FakeChainClient(balances={w.public_address: ETH for w in wallets})
    funded = [w.with_balances(ETH) for w in wallets]

    _run(client, funded, 4, sleep)
    assert client.max_in_flight == 4


def test_chunks_do_not_overlap(sleep):
    wallets = make_wallets(4)
    client = FakeChainClient(balances={w.public_address: ETH for w in wallets})
    funded = [w.with_balances(ETH) for w in wallets]

    _run(client, funded, 2, sleep)
    assert client.max_in_flight == 2


def test_empty_funded_list(sleep):
    result = _run(FakeChainClient(), [], 3, sleep)
    assert result.total == 0
    assert sleep.delays == []


# ---------- sweep() ----------

def _settings(**overrides):
    values = dict(destination_address=DEST, token_addresses=(), filter_batch_size=2, transfer_batch_size=2)
    values.update(overrides)
    return config.SweepConfig(**values)


def test_sweep_end_to_end(sleep):
    wallets = make_wallets(4)
    a = [w.public_address for w in wallets]
    client = FakeChainClient(balances={a[1]: ETH, a[3]: 10 ** 12})

    result = asyncio.run(sweep(wallets, client, _settings(), sleep=sleep))

    assert [o.address for o in result.successful] == [a[1]]
    assert result.skipped == [TransferSkipped(address=a[3], reason=SkipReason.INSUFFICIENT_FOR_GAS)]
    assert result.failed == []
    # filter pacing (2 chunks) then transfer pacing (1 chunk)
    assert sleep.delays == [0.2]


def test_sweep_sends_to_checksummed_destination(sleep):
    wallets = make_wallets(1)
    client = FakeChainClient(balances={wallets[0].public_address: ETH})

    result = asyncio.run(sweep(wallets, client, _settings(), sleep=sleep))

    assert isinstance(result.successful[0], TransferSuccess)
    assert client.sent[0][1].lower() == DEST


def test_sweep_with_nothing_funded_returns_empty_result(sleep):
    client = FakeChainClient()
    result = asyncio.run(sweep(make_wallets(3), client, _settings(), sleep=sleep))
    assert result.total == 0
    assert client.calls["send_transfer"] == 0


def test_missing_destination_is_fatal(sleep):
    client = FakeChainClient()
    with pytest.raises(ConfigurationError):
        asyncio.run(sweep(make_wallets(1), client, _settings(destination_address=None), sleep=sleep))
    assert sum(client.calls.values()) == 0


def test_invalid_destination_is_fatal(sleep):
    with pytest.raises(ConfigurationError):
        asyncio.run(sweep(make_wallets(1), FakeChainClient(), _settings(destination_address="0x1234"), sleep=sleep))


def test_empty_wallet_source_is_fatal(sleep):
    client = FakeChainClient()
    with pytest.raises(EmptyWalletSourceError):
        asyncio.run(sweep([], client, _settings(), sleep=sleep))
    assert sum(client.calls.values()) == 0


def test_failed_outcomes_keep_reason(sleep):
    wallets = make_wallets(2)
    a = [w.public_address for w in wallets]
    client = FakeChainClient(balances={x: ETH for x in a})
    client.fail_send[a[0]] = ValueError("replacement transaction underpriced")

    result = asyncio.run(sweep(wallets, client, _settings(), sleep=sleep))

    assert result.failed == [TransferFailed(address=a[0], reason="replacement transaction underpriced")]
    assert [o.address for o in result.successful] == [a[1]]
