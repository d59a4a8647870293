"""Exchange-rate synchronisation.

Architecture
------------
::

    SyncInputs → RateProvider.fetch → reduce_latest_per_month
               → is_finalized guard → RateStore.upsert_rate

- ``RateProvider``: protocol for one external rate source. The set of
  providers is closed and enumerated by ``build_providers``.
- ``reduce_latest_per_month``: one currency map per calendar month, the
  latest observed date winning outright.
- ``is_finalized``: a stored rate written after its month closed is frozen.
- ``RateSyncService``: drives every provider and ingests idempotently.
- ``SyncScheduler``: fire-and-forget background syncs.

Built-in providers:

- ``FrankfurterProvider``: the Frankfurter time-series API.
"""

from networth_tracker.rates.finalization import invert_rate, is_finalized, last_day_of_month
from networth_tracker.rates.frankfurter import SUPPORTED_CURRENCIES, FrankfurterProvider
from networth_tracker.rates.provider import RateProvider
from networth_tracker.rates.reducer import flatten_observations, reduce_latest_per_month
from networth_tracker.rates.scheduler import SyncScheduler
from networth_tracker.rates.sync import RateSyncService, build_providers

__all__ = [
    # Protocol
    "RateProvider",
    # Frankfurter
    "FrankfurterProvider",
    "SUPPORTED_CURRENCIES",
    # Reduction and finalization
    "reduce_latest_per_month",
    "flatten_observations",
    "last_day_of_month",
    "is_finalized",
    "invert_rate",
    # Orchestration
    "RateSyncService",
    "SyncScheduler",
    "build_providers",
]
