from .balances import BalanceFilter, BalanceProbe, BalanceThresholds
from .exceptions import ConfigurationError, EmptyWalletSourceError, MalformedResponseError, SweepError
from .fees import FALLBACK_FEE_QUOTE, FeeEstimator
from .models import (
    FeeQuote,
    FundedWallet,
    ProbeFailure,
    ProbeReport,
    Receipt,
    RunResult,
    SkipReason,
    TransferFailed,
    TransferSkipped,
    TransferSuccess,
    WalletBalances,
    WalletRecord,
)
from .orchestrator import BatchOrchestrator, sweep
from .transfer import TransferExecutor
