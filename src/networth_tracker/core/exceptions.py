"""Custom exception hierarchy for networth-tracker."""

from typing import Any


class NetWorthError(Exception):
    """Base exception for all networth-tracker errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(NetWorthError):
    """Invalid or missing configuration.

    Raised by load_config() during startup, and by sync/aggregation when no
    home currency has been set. Aborts the calling operation.

    Context keys:
        field: str: the config field that failed validation
        value: Any: the invalid value
    """


class ProviderError(NetWorthError):
    """An exchange-rate provider could not deliver observations.

    Policy: log and drop that provider's contribution. Other providers
    continue.

    Context keys:
        provider: str: provider name
        url: str: the URL that was being fetched
    """


class TransportError(ProviderError):
    """Network failure or timeout talking to a provider."""


class ProtocolError(ProviderError):
    """Provider answered with a non-2xx status or an undecodable payload.

    Context keys:
        status_code: int | None: HTTP status code if applicable
        response_body: str | None: truncated response for debugging
    """


class SyncError(NetWorthError):
    """Every provider that attempted a fetch failed.

    Context keys:
        providers: list[str]: names of the failed providers
    """


class ConsistencyError(NetWorthError):
    """An entry references an account or balance sheet that was not loaded.

    Policy: raise immediately. A partial net-worth series is misleading.

    Context keys:
        entry_id: str: the offending entry
        balance_sheet_id / account_id: str: the unresolved reference
    """


class PersistenceError(NetWorthError):
    """Database operation failed.

    Policy: raise. During rate sync, single-row write failures are counted
    and logged instead so the rest of the batch still lands.

    Context keys:
        operation: str: "insert", "query", "migrate", etc.
        table: str: the table involved
    """
