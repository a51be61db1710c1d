# config.py
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from core.balances import BalanceThresholds
from core.exceptions import ConfigurationError

load_dotenv()

BASE_PATH = Path(__file__).resolve().parent / "resources"
RESULT_PATH = Path(__file__).resolve().parent / "result"

BALANCE_CHECKER_ADDRESS = "0x3040c40D66cfac7C03E3aAF57f16E9C40Be4Eab8"

BALANCE_CHECKER_ABI = '''[
  {
    "type": "function",
    "name": "getEthBalances",
    "stateMutability": "view",
    "inputs": [{"name": "wallets", "type": "address[]"}],
    "outputs": [{"name": "balances", "type": "uint256[]"}]
  },
  {
    "type": "function",
    "name": "getMultipleTokenBalances",
    "stateMutability": "view",
    "inputs": [
      {"name": "tokens", "type": "address[]"},
      {"name": "wallets", "type": "address[]"}
    ],
    "outputs": [{"name": "balances", "type": "uint256[][]"}]
  },
  {
    "type": "function",
    "name": "getTokenBalances",
    "stateMutability": "view",
    "inputs": [
      {"name": "token", "type": "address"},
      {"name": "wallets", "type": "address[]"}
    ],
    "outputs": [{"name": "balances", "type": "uint256[]"}]
  }
]'''

TOKEN_ABI = '''[
  {
    "type": "function",
    "name": "balanceOf",
    "stateMutability": "view",
    "inputs": [{"name": "_owner", "type": "address"}],
    "outputs": [{"name": "balance", "type": "uint256"}]
  }
]'''

# Tokens watched by default (KEPT, KIKI, SECUYA, PITTY, BONK)
DEFAULT_TOKEN_ADDRESSES = (
    "0x8a9430e92153c026092544444cBb38077e6688D1",
    "0xc849418f46A25D302f55d25c40a82C99404E5245",
    "0x623cD3a3EdF080057892aaF8D773Bbb7A5C9b6e9",
    "0x5A8F95B20F986E31Dda904bc2059b21D5Ad8A66c",
    "0x2Dc1C8BE620b95cBA25D78774F716F05B159C8B9",
)

GAS_LIMIT = 21000
SAFETY_MARGIN_WEI = 1_000_000_000
MIN_NATIVE_WEI = 10 ** 11           # 0.0000001 native
FILTER_BATCH_SIZE = 2500
TRANSFER_BATCH_SIZE = 2500
BATCH_DELAY_MS = 100
FILTER_DELAY_MS = 200
RECEIPT_TIMEOUT = 300

MODULE_PATH = Path(__file__).resolve().parent / "modules"


def _split_csv(raw: Optional[str]) -> Tuple[str, ...]:
    return tuple(x.strip() for x in (raw or "").split(",") if x.strip())


def _env_int(env, name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_decimal(env, name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative")
    return value


@dataclass(frozen=True)
class SweepConfig:
    destination_address: Optional[str]
    rpc_url: Optional[str] = None
    extra_rpc_urls: Tuple[str, ...] = ()
    gas_api_url: Optional[str] = None
    token_addresses: Tuple[str, ...] = DEFAULT_TOKEN_ADDRESSES
    wallet_file: str = str(BASE_PATH / "wallets.json")
    gas_limit: int = GAS_LIMIT
    safety_margin: int = SAFETY_MARGIN_WEI
    min_native_threshold: int = MIN_NATIVE_WEI
    min_token_units: Decimal = Decimal(1)
    default_token_decimals: int = 18
    token_decimals: Dict[str, int] = field(default_factory=dict)
    filter_batch_size: int = FILTER_BATCH_SIZE
    transfer_batch_size: int = TRANSFER_BATCH_SIZE
    inter_batch_delay: float = BATCH_DELAY_MS / 1000
    filter_delay: float = FILTER_DELAY_MS / 1000
    receipt_timeout: int = RECEIPT_TIMEOUT

    @property
    def rpc_urls(self) -> Tuple[str, ...]:
        urls = []
        for u in ((self.rpc_url,) if self.rpc_url else ()) + self.extra_rpc_urls:
            if u not in urls:
                urls.append(u)
        return tuple(urls)

    def thresholds(self) -> BalanceThresholds:
        return BalanceThresholds(
            min_native=self.min_native_threshold,
            min_token_units=self.min_token_units,
            default_token_decimals=self.default_token_decimals,
            token_decimals=dict(self.token_decimals),
        )


def load_sweep_config(env=None) -> SweepConfig:
    """
    Build a SweepConfig from environment variables (.env already loaded).
    Missing destination is left as None here; the pipeline refuses to run on it.
    """
    env = os.environ if env is None else env

    tokens_raw = env.get("TOKEN_ADDRESSES")
    tokens = _split_csv(tokens_raw) if tokens_raw is not None else DEFAULT_TOKEN_ADDRESSES

    token_decimals: Dict[str, int] = {}
    for item in _split_csv(env.get("TOKEN_DECIMALS_MAP")):
        token, _, dec = item.partition(":")
        try:
            token_decimals[token.strip()] = int(dec)
        except ValueError:
            raise ConfigurationError(f"TOKEN_DECIMALS_MAP entry must be address:decimals, got {item!r}") from None

    return SweepConfig(
        destination_address=(env.get("WALLET") or "").strip() or None,
        rpc_url=(env.get("RPC") or "").strip() or None,
        extra_rpc_urls=_split_csv(env.get("EXTRA_RPC_URLS")),
        gas_api_url=(env.get("INFURA_GAS_API_URL") or "").strip() or None,
        token_addresses=tokens,
        wallet_file=env.get("WALLET_FILE") or str(BASE_PATH / "wallets.json"),
        gas_limit=_env_int(env, "GAS_LIMIT", GAS_LIMIT, minimum=21000),
        safety_margin=_env_int(env, "SAFETY_MARGIN_WEI", SAFETY_MARGIN_WEI),
        min_native_threshold=_env_int(env, "MIN_NATIVE_WEI", MIN_NATIVE_WEI),
        min_token_units=_env_decimal(env, "MIN_TOKEN_UNITS", Decimal(1)),
        default_token_decimals=_env_int(env, "TOKEN_DECIMALS", 18),
        token_decimals=token_decimals,
        filter_batch_size=_env_int(env, "FILTER_BATCH_SIZE", FILTER_BATCH_SIZE, minimum=1),
        transfer_batch_size=_env_int(env, "TRANSFER_BATCH_SIZE", TRANSFER_BATCH_SIZE, minimum=1),
        inter_batch_delay=_env_int(env, "BATCH_DELAY_MS", BATCH_DELAY_MS) / 1000,
        filter_delay=_env_int(env, "FILTER_DELAY_MS", FILTER_DELAY_MS) / 1000,
        receipt_timeout=_env_int(env, "RECEIPT_TIMEOUT", RECEIPT_TIMEOUT, minimum=1),
    )
