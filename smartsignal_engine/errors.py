"""Exception taxonomy for the signal pipeline."""


class EngineError(Exception):
    """Base class for engine errors."""


class DataUnavailableError(EngineError):
    """Market data, klines or exchange metadata could not be fetched."""


class SymbolValidationError(EngineError):
    """A candidate symbol is malformed or not listed on the exchange."""


class RateLimitedError(EngineError):
    """An external collaborator kept answering with rate-limit responses."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class SafetyLimitExceeded(EngineError):
    """Trading disabled, a cap is reached, or the symbol already has a position."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class OrderPlacementError(EngineError):
    """The exchange rejected or failed an order."""

    def __init__(self, message: str, step: str | None = None) -> None:
        super().__init__(message)
        self.step = step
