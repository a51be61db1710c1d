import logging

from .chain import ChainClient
from .models import FeeQuote, WEI_PER_GWEI

logger = logging.getLogger(__name__)

# 0.01 gwei max fee / 0.001 gwei tip: conservative for the L2s this runs on.
FALLBACK_MAX_FEE_PER_GAS = WEI_PER_GWEI // 100
FALLBACK_MAX_PRIORITY_FEE_PER_GAS = WEI_PER_GWEI // 1000

FALLBACK_FEE_QUOTE = FeeQuote.from_wei(
    FALLBACK_MAX_FEE_PER_GAS, FALLBACK_MAX_PRIORITY_FEE_PER_GAS, is_fallback=True
)


class FeeEstimator:
    """
    One live fee estimate per call. Any failure (RPC error, malformed values)
    yields the static fallback quote instead of an exception.
    """

    def __init__(self, client: ChainClient, fallback: FeeQuote = FALLBACK_FEE_QUOTE):
        self.client = client
        self.fallback = fallback

    async def estimate(self) -> FeeQuote:
        try:
            max_fee, max_prio = await self.client.get_fee_estimate()
            return self._validate(max_fee, max_prio)
        except Exception as e:
            logger.warning("Gas price analysis failed: %s (using %s gwei fallback)", e, self.fallback.display_gwei)
            return self.fallback

    @staticmethod
    def _validate(max_fee, max_prio) -> FeeQuote:
        if isinstance(max_fee, bool) or isinstance(max_prio, bool):
            raise ValueError("fee estimate must be integers")
        if not isinstance(max_fee, int) or not isinstance(max_prio, int):
            raise ValueError(f"fee estimate must be integers, got {max_fee!r}/{max_prio!r}")
        if max_fee <= 0 or max_prio < 0:
            raise ValueError(f"non-positive fee estimate: {max_fee}/{max_prio}")
        if max_prio > max_fee:
            raise ValueError(f"priority fee {max_prio} exceeds max fee {max_fee}")
        return FeeQuote.from_wei(max_fee, max_prio)
