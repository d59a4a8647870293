"""networth_tracker.core: Foundation types, config, and exceptions."""

from networth_tracker.core.config import (
    APIConfig,
    AppConfig,
    FrankfurterConfig,
    ProvidersConfig,
    StorageConfig,
    SyncConfig,
    load_config,
)
from networth_tracker.core.exceptions import (
    ConfigurationError,
    ConsistencyError,
    NetWorthError,
    PersistenceError,
    ProtocolError,
    ProviderError,
    SyncError,
    TransportError,
)
from networth_tracker.core.models import (
    MANUAL_PROVIDER,
    Account,
    AccountType,
    BalanceSheet,
    CurrencyCode,
    CurrencyRate,
    Entry,
    NetWorthDataPoint,
    Period,
    ProviderKind,
    RateKey,
    RateObservation,
    RateObservationSet,
    SyncInputs,
    SyncReport,
    UserSettings,
)

__all__ = [
    # Type aliases
    "CurrencyCode",
    # Enums
    "AccountType",
    "ProviderKind",
    "MANUAL_PROVIDER",
    # Keys
    "RateKey",
    "Period",
    # Collaborator models
    "UserSettings",
    "Account",
    "BalanceSheet",
    "Entry",
    # Rate models
    "CurrencyRate",
    "RateObservation",
    "RateObservationSet",
    "SyncInputs",
    "SyncReport",
    # Net worth
    "NetWorthDataPoint",
    # Config
    "AppConfig",
    "StorageConfig",
    "FrankfurterConfig",
    "ProvidersConfig",
    "SyncConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "NetWorthError",
    "ConfigurationError",
    "ProviderError",
    "TransportError",
    "ProtocolError",
    "SyncError",
    "ConsistencyError",
    "PersistenceError",
]
