from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

WEI_PER_GWEI = 10 ** 9


def format_units(value: int, decimals: int = 18) -> Decimal:
    """Base units -> Decimal in whole units (display only)."""
    return Decimal(int(value)) / (Decimal(10) ** decimals)


@dataclass(frozen=True)
class WalletRecord:
    public_address: str
    private_key: str = field(repr=False)

    def with_balances(self, native_balance: int, token_balances: Optional[Dict[str, int]] = None) -> "FundedWallet":
        return FundedWallet(
            public_address=self.public_address,
            private_key=self.private_key,
            native_balance=int(native_balance),
            token_balances=dict(token_balances or {}),
        )


@dataclass(frozen=True)
class FundedWallet(WalletRecord):
    native_balance: int = 0
    token_balances: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class FeeQuote:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    display_gwei: Decimal
    is_fallback: bool = False

    @classmethod
    def from_wei(cls, max_fee_per_gas: int, max_priority_fee_per_gas: int, is_fallback: bool = False) -> "FeeQuote":
        return cls(
            max_fee_per_gas=int(max_fee_per_gas),
            max_priority_fee_per_gas=int(max_priority_fee_per_gas),
            display_gwei=format_units(max_fee_per_gas, 9),
            is_fallback=is_fallback,
        )

    def gas_cost(self, gas_limit: int) -> int:
        return self.max_fee_per_gas * int(gas_limit)


@dataclass(frozen=True)
class Receipt:
    status: int
    gas_used: int
    tx_hash: str

    @property
    def succeeded(self) -> bool:
        return self.status == 1


# ---------- Balance probing ----------

@dataclass(frozen=True)
class WalletBalances:
    native: int
    tokens: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ProbeFailure:
    """A single call that failed on the fallback path. ``token`` is None for native reads."""
    address: str
    token: Optional[str]
    reason: str


@dataclass
class ProbeReport:
    balances: Dict[str, WalletBalances] = field(default_factory=dict)
    failures: List[ProbeFailure] = field(default_factory=list)
    used_fallback: bool = False


# ---------- Transfer outcomes ----------

class SkipReason(str, Enum):
    NO_BALANCE = "no_balance"
    INSUFFICIENT_FOR_GAS = "insufficient_for_gas"


@dataclass(frozen=True)
class TransferSuccess:
    address: str
    tx_hash: str
    transferred_amount: int
    gas_cost: int

    def to_dict(self) -> dict:
        return {
            "success": True,
            "address": self.address,
            "txHash": self.tx_hash,
            "transferred": str(format_units(self.transferred_amount)),
            "transferredWei": str(self.transferred_amount),
            "gasCost": str(format_units(self.gas_cost)),
            "gasCostWei": str(self.gas_cost),
        }


@dataclass(frozen=True)
class TransferSkipped:
    address: str
    reason: SkipReason

    def to_dict(self) -> dict:
        return {"success": False, "address": self.address, "reason": self.reason.value}


@dataclass(frozen=True)
class TransferFailed:
    address: str
    reason: str
    tx_hash: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"success": False, "address": self.address, "reason": self.reason}
        if self.tx_hash:
            out["txHash"] = self.tx_hash
        return out


TransferOutcome = Union[TransferSuccess, TransferSkipped, TransferFailed]


@dataclass
class RunResult:
    successful: List[TransferSuccess] = field(default_factory=list)
    skipped: List[TransferSkipped] = field(default_factory=list)
    failed: List[TransferFailed] = field(default_factory=list)

    def add(self, outcome: TransferOutcome) -> None:
        if isinstance(outcome, TransferSuccess):
            self.successful.append(outcome)
        elif isinstance(outcome, TransferSkipped):
            self.skipped.append(outcome)
        elif isinstance(outcome, TransferFailed):
            self.failed.append(outcome)
        else:
            raise TypeError(f"Unknown transfer outcome: {outcome!r}")

    def extend(self, outcomes: List[TransferOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.skipped) + len(self.failed)

    @property
    def total_transferred(self) -> int:
        return sum(s.transferred_amount for s in self.successful)

    @property
    def total_gas_cost(self) -> int:
        return sum(s.gas_cost for s in self.successful)

    def to_dict(self) -> dict:
        return {
            "successful": [o.to_dict() for o in self.successful],
            "failed": [o.to_dict() for o in self.failed],
            "skipped": [o.to_dict() for o in self.skipped],
        }
