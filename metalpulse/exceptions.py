from __future__ import annotations


class MetalPulseError(Exception):
    pass


class UpstreamFetchError(MetalPulseError):
    def __init__(self, message: str, status_code: int | None = None, provider: str | None = None):
        """
        Initialize the UpstreamFetchError.

        :param message: The error message.
        :param status_code: HTTP status returned by the upstream, if any.
        :param provider: Name of the provider that failed.
        """
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider

    def __str__(self):
        if self.status_code is not None:
            return f"{super().__str__()} (HTTP {self.status_code})"
        return super().__str__()


class UpstreamParseError(MetalPulseError):
    pass


class ValidationError(MetalPulseError):
    pass


class ProviderDisabledError(MetalPulseError):
    def __init__(self, provider: str, disabled_until: float):
        super().__init__(f"Provider '{provider}' is disabled until {disabled_until:.0f}")
        self.provider = provider
        self.disabled_until = disabled_until


class PersistenceError(MetalPulseError):
    pass


class ConfigError(MetalPulseError):
    pass


class UnknownSymbolError(MetalPulseError):
    def __init__(self, symbol: str, kind: str = 'metal'):
        super().__init__(f"Unknown {kind} symbol: {symbol!r}")
        self.symbol = symbol
        self.kind = kind


class FetchCancelledError(MetalPulseError):
    pass


class AggregationError(MetalPulseError):
    def __init__(self, attempts: list[tuple[str, str]]):
        """
        Raised when every provider failed or was skipped.

        :param attempts: (provider, reason) pairs in the order they were tried.
        """
        self.attempts = list(attempts)
        if self.attempts:
            detail = '; '.join(f"{name}: {reason}" for name, reason in self.attempts)
        else:
            detail = 'no providers configured'
        super().__init__(f"Price aggregation failed ({detail})")
