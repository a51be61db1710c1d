"""Sweep pipeline specific exceptions."""


class SweepError(Exception):
    """Base class for sweep errors."""


class ConfigurationError(SweepError):
    """Raised when the sweep configuration is missing or invalid."""


class EmptyWalletSourceError(SweepError):
    """Raised when there are no wallet records to process."""


class MalformedResponseError(SweepError):
    """Raised when a batched on-chain call returns an unexpected shape."""
