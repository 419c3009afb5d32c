"""
Core package for FamilyLedger providing the data synchronization machinery.

This package includes:

- :mod:`FamilyLedger.core.remote` – RemoteSource contract and the HTTP adapter for the FamilyLedger server.
- :mod:`FamilyLedger.core.service` – Worker threads for blocking remote calls and a responsive wait helper.
- :mod:`FamilyLedger.core.cache` – Keyed cache of named query results with invalidation and background refetch.
- :mod:`FamilyLedger.core.sync` – Single-flight sync coordinator with bounded retries and staleness checks.
- :mod:`FamilyLedger.core.triggers` – Mount, window-focus and periodic staleness triggers.
- :mod:`FamilyLedger.core.session` – Session object wiring the adapter, cache, coordinator and triggers together.
"""
