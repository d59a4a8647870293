"""Exchange-rate provider protocol.

A provider turns a ``SyncInputs`` snapshot into reduced monthly
observations. Returning ``None`` means the provider skipped this pass
(nothing to fetch, or nothing it supports); failures raise
``ProviderError`` subclasses so the orchestrator can scope them.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from networth_tracker.core.models import RateObservationSet, SyncInputs


@runtime_checkable
class RateProvider(Protocol):
    """Fetches historical rates with the home currency as base.

    Observation values are foreign units per one home unit, exactly as
    quoted against the home base; inversion happens during ingestion.
    """

    name: str

    def supports(self, currency: str) -> bool:
        """Whether ``currency`` is on this provider's allowlist."""
        ...

    async def fetch(self, inputs: SyncInputs) -> RateObservationSet | None:
        """Fetch and reduce observations for ``inputs``.

        Returns
        -------
        RateObservationSet | None
            None when the provider skipped the request.

        Raises
        ------
        TransportError
            Network failure or timeout.
        ProtocolError
            Non-2xx response or malformed payload.
        """
        ...
