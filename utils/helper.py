import asyncio
import json
import logging
import os
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import requests
from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

import config
from core.exceptions import ConfigurationError
from core.models import FeeQuote, Receipt, WalletRecord

from .rpc_provider import RotatingAsyncHTTPProvider

logger = logging.getLogger(__name__)


def parse_gas_api_payload(gas_data: dict, tier: str = "medium") -> Tuple[int, int]:
    """
    Infura-style suggestedGasFees payload -> (max_fee_wei, max_priority_fee_wei).
    Values in the payload are gwei strings.
    """
    if tier not in gas_data:
        raise KeyError(f"Gas tier '{tier}' not found in response")
    tier_data = gas_data[tier]
    if 'suggestedMaxFeePerGas' not in tier_data or 'suggestedMaxPriorityFeePerGas' not in tier_data:
        raise KeyError("Missing required gas fee fields in response")
    max_fee = Web3.to_wei(Decimal(str(tier_data['suggestedMaxFeePerGas'])), 'gwei')
    max_prio = Web3.to_wei(Decimal(str(tier_data['suggestedMaxPriorityFeePerGas'])), 'gwei')
    return int(max_fee), int(max_prio)


class Web3Helper:
    """
    AsyncWeb3-backed chain client used by the sweep pipeline: rotating RPC
    provider, balance checker contract, fee estimates, native transfers and
    receipt polling.
    """

    def __init__(self, settings, w3: Optional[AsyncWeb3] = None, request_timeout: int = 30, sleep=asyncio.sleep):
        self.cfg = settings
        if w3 is None:
            if not settings.rpc_urls:
                raise ConfigurationError('No RPC URLs configured. Set RPC or EXTRA_RPC_URLS in .env')
            self.provider = RotatingAsyncHTTPProvider(list(settings.rpc_urls), request_kwargs={"timeout": request_timeout})
            w3 = AsyncWeb3(self.provider)
        else:
            self.provider = w3.provider
        self.w3 = w3
        self.gas_api_url = getattr(settings, "gas_api_url", None)
        self.receipt_timeout = getattr(settings, "receipt_timeout", config.RECEIPT_TIMEOUT)

        self.balance_checker = self.w3.eth.contract(
            address=Web3.to_checksum_address(config.BALANCE_CHECKER_ADDRESS),
            abi=json.loads(config.BALANCE_CHECKER_ABI),
        )
        self.erc20_abi = json.loads(config.TOKEN_ABI)
        self._chain_id: Optional[int] = None
        self._sleep = sleep

    @staticmethod
    def _cs(addrs: Sequence[str]) -> List[str]:
        return [Web3.to_checksum_address(a) for a in addrs]

    # ---------- Balances ----------
    async def get_native_balance(self, address: str) -> int:
        return int(await self.w3.eth.get_balance(Web3.to_checksum_address(address)))

    async def call_aggregator_native_balances(self, addresses: Sequence[str]) -> List[int]:
        result = await self.balance_checker.functions.getEthBalances(self._cs(addresses)).call()
        return [int(v) for v in result]

    async def call_aggregator_token_balances(self, token_addresses: Sequence[str], addresses: Sequence[str]) -> List[List[int]]:
        result = await self.balance_checker.functions.getMultipleTokenBalances(
            self._cs(token_addresses), self._cs(addresses)
        ).call()
        return [[int(v) for v in row] for row in result]

    async def call_aggregator_token_balance(self, token_address: str, addresses: Sequence[str]) -> List[int]:
        result = await self.balance_checker.functions.getTokenBalances(
            Web3.to_checksum_address(token_address), self._cs(addresses)
        ).call()
        return [int(v) for v in result]

    def _erc20(self, token_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=self.erc20_abi)

    async def call_token_balance_of(self, token_address: str, address: str) -> int:
        c = self._erc20(token_address)
        return int(await c.functions.balanceOf(Web3.to_checksum_address(address)).call())

    # ---------- Gas ----------
    def _fetch_gas_api(self, tier: str) -> Tuple[int, int]:
        response = requests.get(self.gas_api_url, timeout=10)
        response.raise_for_status()
        return parse_gas_api_payload(response.json(), tier)

    async def get_fee_estimate(self, tier: str = 'medium') -> Tuple[int, int]:
        if self.gas_api_url:
            try:
                max_fee, max_prio = await asyncio.to_thread(self._fetch_gas_api, tier)
                logger.info("Fetched gas fees - max fee %s wei, priority %s wei", max_fee, max_prio)
                return max_fee, max_prio
            except requests.exceptions.RequestException as http_err:
                logger.warning("HTTP error occurred while fetching gas fees: %s", http_err)
            except (KeyError, ValueError) as err:
                logger.warning("Invalid gas fee data format: %s", err)

        block = await self.w3.eth.get_block('latest')
        base_fee = block['baseFeePerGas']
        tip = await self.w3.eth.max_priority_fee
        return int(base_fee + tip), int(tip)

    # ---------- Tx lifecycle ----------
    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self.w3.eth.chain_id)
        return self._chain_id

    async def build_transfer_tx(self, sender: WalletRecord, to: str, amount: int, fee_quote: FeeQuote, gas_limit: int) -> dict:
        acct = Account.from_key(sender.private_key)
        # balance and amount were read for public_address; never sign for another account
        if acct.address.lower() != sender.public_address.lower():
            raise ValueError(
                f"Private key belongs to {acct.address}, not to wallet {sender.public_address}"
            )
        return {
            'from': acct.address,
            'to': Web3.to_checksum_address(to),
            'value': int(amount),
            'gas': int(gas_limit),
            'chainId': await self._get_chain_id(),
            'nonce': await self.w3.eth.get_transaction_count(acct.address, 'pending'),
            'type': 2,
            'maxFeePerGas': fee_quote.max_fee_per_gas,
            'maxPriorityFeePerGas': fee_quote.max_priority_fee_per_gas,
        }

    async def send_transfer(self, sender: WalletRecord, to: str, amount: int, fee_quote: FeeQuote, gas_limit: int) -> str:
        tx = await self.build_transfer_tx(sender, to, amount, fee_quote, gas_limit)
        signed = Account.sign_transaction(tx, sender.private_key)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def await_confirmation(self, tx_hash: str, start_delay: float = 2, max_delay: float = 8) -> Receipt:
        waited = 0.0
        delay = start_delay
        while True:
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
                if receipt:
                    return Receipt(
                        status=int(receipt['status']),
                        gas_used=int(receipt['gasUsed']),
                        tx_hash=Web3.to_hex(receipt['transactionHash']),
                    )
            except TransactionNotFound:
                pass
            if waited >= self.receipt_timeout:
                raise TimeoutError(f"Timed out waiting for transaction receipt {tx_hash}")
            await self._sleep(delay)
            waited += delay
            delay = min(max_delay, delay * 1.5)

    async def aclose(self) -> None:
        disconnect = getattr(self.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()


class FileHelper:
    """
    Basic file helpers to ensure placeholders and write results.
    """

    TEMPLATES = {
        'wallets': "[]\n",
        'tokens': "# Enter token contract addresses (one per line).\n",
    }

    @staticmethod
    def ensure_placeholder(file_path: str, kind: str) -> None:
        if not os.path.exists(file_path):
            os.makedirs(os.path.dirname(os.path.abspath(file_path)), exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                f.write(FileHelper.TEMPLATES.get(kind, ''))

    @staticmethod
    def _strip_comment(line: str) -> str:
        s = line.strip()
        if not s or s.startswith('#'):
            return ''
        if '#' in s:
            s = s.split('#', 1)[0].strip()
        return s

    @staticmethod
    def load_lines(file_path: str) -> List[str]:
        out: List[str] = []
        if not os.path.exists(file_path):
            return out
        with open(file_path, 'r', encoding='utf-8') as f:
            for line in f:
                s = FileHelper._strip_comment(line)
                if s:
                    out.append(s)
        return out

    @staticmethod
    def write_json(file_path: str, data) -> str:
        os.makedirs(os.path.dirname(os.path.abspath(file_path)), exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        return os.path.abspath(file_path)
